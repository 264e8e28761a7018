"""Connection storage boundary for the Integration node.

Persistence lives outside the engine; the node only needs to look a
connection up and record when it was last used. Credentials are stored
encrypted and decrypted on use.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

from flowys.core.encryption import EncryptionService


@dataclass
class StoredConnection:
    id: str
    integration_id: str
    name: str
    encrypted_credentials: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    enabled: bool = True
    last_used_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ConnectionStore(Protocol):
    """Protocol for connection lookups (enables duck typing)."""

    async def get(self, connection_id: str) -> Optional[StoredConnection]:
        ...

    async def touch(self, connection_id: str) -> None:
        """Record that the connection was just used."""
        ...


class InMemoryConnectionStore:
    """Process-local connection store."""

    def __init__(self, encryption: EncryptionService):
        self._encryption = encryption
        self._connections: Dict[str, StoredConnection] = {}

    def add(self, integration_id: str, name: str, credentials: Dict[str, Any],
            metadata: Optional[Dict[str, Any]] = None, enabled: bool = True,
            connection_id: Optional[str] = None) -> StoredConnection:
        """Encrypt and store a new connection."""
        connection = StoredConnection(
            id=connection_id or str(uuid.uuid4()),
            integration_id=integration_id,
            name=name,
            encrypted_credentials=self._encryption.encrypt_credentials(credentials),
            metadata=metadata or {},
            enabled=enabled,
        )
        self._connections[connection.id] = connection
        return connection

    async def get(self, connection_id: str) -> Optional[StoredConnection]:
        return self._connections.get(connection_id)

    async def touch(self, connection_id: str) -> None:
        connection = self._connections.get(connection_id)
        if connection:
            connection.last_used_at = datetime.now(timezone.utc)
