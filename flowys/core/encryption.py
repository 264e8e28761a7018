"""Credential encryption and webhook payload signing.

Integration connections store their credentials as Fernet tokens. The
Fernet key is stretched with PBKDF2-SHA256 from the CREDENTIAL_ENCRYPTION_KEY
setting, so tokens stay readable across restarts while key and salt are
unchanged.

Outbound webhooks (the Webhook node and lifecycle notifications) carry an
``X-Webhook-Signature: sha256=<hex>`` header computed over the exact body.
"""

import base64
import hashlib
import hmac
import json
from typing import Any, Dict, Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from flowys.core.logging import get_logger

logger = get_logger(__name__)

SIGNATURE_PREFIX = "sha256="
DEFAULT_KDF_ITERATIONS = 600_000


def derive_fernet_key(passphrase: str, salt: bytes, iterations: int = DEFAULT_KDF_ITERATIONS) -> bytes:
    """Stretch a passphrase into a urlsafe-base64 Fernet key."""
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=32, salt=salt, iterations=iterations)
    return base64.urlsafe_b64encode(kdf.derive(passphrase.encode()))


class EncryptionService:
    """Seals and opens credential maps for the connection store.

    Build one with ``EncryptionService.from_passphrase(key, salt)`` or
    through ``create_encryption_service`` from settings.
    """

    def __init__(self, fernet: Fernet):
        self._fernet = fernet

    @classmethod
    def from_passphrase(cls, passphrase: str, salt: bytes,
                        iterations: Optional[int] = None) -> "EncryptionService":
        key = derive_fernet_key(passphrase, salt, iterations or DEFAULT_KDF_ITERATIONS)
        logger.debug("Credential cipher ready", kdf_iterations=iterations or DEFAULT_KDF_ITERATIONS)
        return cls(Fernet(key))

    def encrypt_credentials(self, credentials: Dict[str, Any]) -> str:
        """Serialize a credentials map to JSON and seal it as a Fernet token."""
        return self._fernet.encrypt(json.dumps(credentials).encode()).decode()

    def decrypt_credentials(self, token: str) -> Dict[str, Any]:
        """Open a token from encrypt_credentials().

        Raises:
            ValueError: wrong key, wrong salt or a tampered token
        """
        try:
            plaintext = self._fernet.decrypt(token.encode())
        except InvalidToken as e:
            logger.error("Credential token rejected")
            raise ValueError("Decryption failed - invalid key or corrupted data") from e
        return json.loads(plaintext)


def generate_webhook_signature(payload: str, secret: str) -> str:
    """Return the ``sha256=<hex>`` HMAC signature of a serialized payload."""
    digest = hmac.new(secret.encode(), payload.encode(), hashlib.sha256).hexdigest()
    return SIGNATURE_PREFIX + digest


def verify_webhook_signature(payload: str, signature: str, secret: str) -> bool:
    """Constant-time check of a signature produced by generate_webhook_signature()."""
    expected = generate_webhook_signature(payload, secret)[len(SIGNATURE_PREFIX):]
    provided = signature[len(SIGNATURE_PREFIX):] if signature.startswith(SIGNATURE_PREFIX) else signature
    return hmac.compare_digest(expected, provided)


def create_encryption_service(key: Optional[str], salt: str,
                              iterations: Optional[int] = None) -> EncryptionService:
    """Service for the configured key.

    Without a key, a random per-process key is used, so stored credentials
    do not survive a restart.
    """
    if key:
        return EncryptionService.from_passphrase(key, salt.encode(), iterations)
    logger.warning("CREDENTIAL_ENCRYPTION_KEY not set, using an ephemeral credential key")
    return EncryptionService(Fernet(Fernet.generate_key()))
