"""Environment-driven configuration with Pydantic v2."""

from typing import List, Literal, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Engine settings driven entirely by environment variables."""

    # Server Configuration
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8010, ge=1024, le=65535)
    debug: bool = Field(default=False)
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    # Logging
    log_level: str = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="json")
    log_file: Optional[str] = Field(default=None)

    # LLM providers (optional, the AI node fails with an auth error when missing)
    openai_api_key: Optional[str] = Field(default=None)
    anthropic_api_key: Optional[str] = Field(default=None)
    ai_timeout: Optional[float] = Field(default=None, ge=1.0, le=600.0)

    # Integration credentials
    credential_encryption_key: Optional[str] = Field(default=None, min_length=32)
    credential_encryption_salt: str = Field(default="flowys-credentials")

    # Metering
    default_credit_balance: int = Field(default=1000, ge=0)

    # Lifecycle notifications
    notification_webhook_url: Optional[str] = Field(default=None)
    notification_webhook_secret: Optional[str] = Field(default=None)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Normalize and check the log level name."""
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unsupported log level: {v}")
        return level

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.debug

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
        "env_parse_none_str": "none",
    }
