"""Credential record encryption.

Serialized credential records are Fernet-encrypted before they reach the
key-value backend when DOCSAGENT_TOKEN_ENCRYPTION_KEY is configured.
"""

import logging

from cryptography.fernet import Fernet, InvalidToken

from .config import get_settings_instance
from .exceptions import CredentialEncryptionError

logger = logging.getLogger(__name__)


class TokenEncryptionService:
    """Encrypts and decrypts serialized credential records."""

    def __init__(self, key: str) -> None:
        if not key:
            raise CredentialEncryptionError("Encryption key not configured")

        try:
            self.fernet = Fernet(key.encode())
        except (ValueError, TypeError) as e:
            raise CredentialEncryptionError(f"Invalid encryption key: {e}") from e

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a string for storage.

        Raises:
            CredentialEncryptionError: If the input is empty.
        """
        if not plaintext:
            raise CredentialEncryptionError("Cannot encrypt empty value")
        return self.fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a stored value.

        Raises:
            CredentialEncryptionError: If the value was not produced with this key.
        """
        if not ciphertext:
            raise CredentialEncryptionError("Cannot decrypt empty value")

        try:
            return self.fernet.decrypt(ciphertext.encode()).decode()
        except InvalidToken as e:
            logger.error("Failed to decrypt credential record: invalid token or key")
            raise CredentialEncryptionError("Decryption failed: invalid token or key") from e

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode()


def get_token_encryption_service() -> TokenEncryptionService | None:
    """Build the encryption service from settings, or None when no key is configured."""
    settings = get_settings_instance()
    if not settings.token_encryption_key:
        return None
    return TokenEncryptionService(settings.token_encryption_key)
