"""Integration framework types and the base class for third-party providers."""

import base64
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx

# Refresh OAuth tokens that expire within this window
TOKEN_REFRESH_MARGIN = timedelta(minutes=5)


@dataclass
class IntegrationConfig:
    """Static description of a provider (shown in the integration catalogue)."""
    id: str
    name: str
    description: str
    category: str
    auth_type: str  # oauth2 | api_key | basic_auth | none
    website: str = ""
    docs_url: Optional[str] = None
    api_key_header: Optional[str] = None
    api_key_prefix: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "authType": self.auth_type,
            "website": self.website,
            "docsUrl": self.docs_url,
        }


@dataclass
class IntegrationAction:
    id: str
    name: str
    description: str
    input_schema: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    output_schema: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
            "outputSchema": self.output_schema,
        }


@dataclass
class IntegrationDefinition:
    config: IntegrationConfig
    actions: List[IntegrationAction] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "config": self.config.to_dict(),
            "actions": [action.to_dict() for action in self.actions],
        }


@dataclass
class ConnectionData:
    """A stored connection with its credentials already decrypted."""
    id: str
    integration_id: str
    name: str
    credentials: Dict[str, Any]
    metadata: Dict[str, Any] = field(default_factory=dict)
    enabled: bool = True
    last_used_at: Optional[datetime] = None


@dataclass
class ActionContext:
    connection: ConnectionData
    input: Dict[str, Any]


@dataclass
class ActionResult:
    success: bool
    output: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, output: Dict[str, Any]) -> "ActionResult":
        return cls(success=True, output=output)

    @classmethod
    def fail(cls, error: str) -> "ActionResult":
        return cls(success=False, error=error)


@dataclass
class CredentialCheck:
    valid: bool
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class BaseIntegration(ABC):
    """Base class for all integration providers.

    Subclasses provide a ``definition`` and implement ``execute_action`` and
    ``validate_credentials``. ``make_request`` attaches whichever credential
    the connection carries (OAuth token, API key or basic auth).
    """

    definition: IntegrationDefinition

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None, timeout: float = 30.0):
        self._transport = transport
        self._timeout = timeout

    @property
    def id(self) -> str:
        return self.definition.config.id

    @abstractmethod
    async def execute_action(self, action_id: str, context: ActionContext) -> ActionResult:
        """Run one action with the given connection and input."""

    @abstractmethod
    async def validate_credentials(self, credentials: Dict[str, Any]) -> CredentialCheck:
        """Check credentials against the provider before they are stored."""

    def get_action(self, action_id: str) -> Optional[IntegrationAction]:
        return next((a for a in self.definition.actions if a.id == action_id), None)

    def needs_refresh(self, credentials: Dict[str, Any]) -> bool:
        """True when an OAuth token expires within the refresh margin."""
        expires_at = credentials.get("expiresAt")
        if not expires_at:
            return False
        if isinstance(expires_at, str):
            expires_at = datetime.fromisoformat(expires_at.replace("Z", "+00:00"))
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at - datetime.now(timezone.utc) < TOKEN_REFRESH_MARGIN

    def auth_headers(self, credentials: Dict[str, Any]) -> Dict[str, str]:
        if credentials.get("accessToken"):
            token_type = credentials.get("tokenType") or "Bearer"
            return {"Authorization": f"{token_type} {credentials['accessToken']}"}
        if credentials.get("apiKey"):
            header = self.definition.config.api_key_header or "Authorization"
            prefix = self.definition.config.api_key_prefix or "Bearer"
            return {header: f"{prefix} {credentials['apiKey']}"}
        if credentials.get("username") and credentials.get("password"):
            raw = f"{credentials['username']}:{credentials['password']}".encode()
            return {"Authorization": "Basic " + base64.b64encode(raw).decode()}
        return {}

    async def make_request(self, method: str, url: str, credentials: Dict[str, Any],
                           **kwargs: Any) -> httpx.Response:
        """Authenticated request against the provider API."""
        headers = {**kwargs.pop("headers", {}), **self.auth_headers(credentials)}
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            return await client.request(method, url, headers=headers, **kwargs)
