"""
FastAPI surface for the Flowys workflow execution engine.

Routes stay thin; execution, metering and notification live in
flowys.services and are resolved from the container.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from flowys import __version__
from flowys.core.config import Settings
from flowys.core.container import container
from flowys.core.logging import configure_logging, get_logger
from flowys.routers import nodes, workflows

logger = get_logger(__name__)

QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


@asynccontextmanager
async def lifespan(app: FastAPI):
    node_types = container.node_executor().node_types
    logger.info("Flowys engine ready", version=__version__, node_types=node_types)
    yield
    logger.info("Flowys engine stopped")


async def handle_unexpected_error(request: Request, exc: Exception) -> ORJSONResponse:
    """Last-resort 500 for errors no route mapped."""
    logger.error("Unhandled exception", path=request.url.path,
                 error_type=type(exc).__name__, error=str(exc), exc_info=True)
    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": f"{type(exc).__name__}: {exc}", "detail": "Internal server error"},
    )


def create_app(settings: Settings) -> FastAPI:
    configure_logging(settings)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    application = FastAPI(
        title="Flowys Workflow Engine",
        version=__version__,
        description="Workflow execution engine with AI, API, logic and integration nodes",
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
    )
    application.add_exception_handler(Exception, handle_unexpected_error)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.include_router(nodes.router)
    application.include_router(workflows.router)

    @application.get("/health")
    async def health_check():
        return {
            "status": "OK",
            "service": "flowys",
            "version": __version__,
            "environment": "development" if settings.is_development else "production",
            "node_types": container.node_executor().node_types,
            "timestamp": datetime.now().isoformat(),
        }

    return application


settings = container.settings()
app = create_app(settings)


if __name__ == "__main__":
    import uvicorn
    logger.info("Starting Flowys engine", host=settings.host, port=settings.port, debug=settings.debug)
    uvicorn.run("flowys.main:app", host=settings.host, port=settings.port, reload=settings.debug)
