"""Credential persistence on the key-value backend.

Layout:
    token:<user_id>  -> serialized UserCredential (optionally Fernet-encrypted)
    email:<email>    -> user_id

The primary record and the email index are written together and removed
together.
"""

from pydantic import ValidationError

from ..core.cache_backend import CacheBackend
from ..core.encryption import TokenEncryptionService
from ..core.exceptions import CredentialEncryptionError
from ..core.logging import get_logger
from .credentials import UserCredential

logger = get_logger(__name__)

TOKEN_PREFIX = "token:"
EMAIL_PREFIX = "email:"


def token_key(user_id: str) -> str:
    return f"{TOKEN_PREFIX}{user_id}"


def email_key(email: str) -> str:
    return f"{EMAIL_PREFIX}{email}"


class CredentialStore:
    """Reads and writes UserCredential records."""

    def __init__(self, backend: CacheBackend, encryption: TokenEncryptionService | None = None):
        self.backend = backend
        self.encryption = encryption

    def _serialize(self, credential: UserCredential) -> str:
        payload = credential.model_dump_json()
        if self.encryption is not None:
            return self.encryption.encrypt(payload)
        return payload

    def _deserialize(self, raw: str) -> UserCredential:
        payload = self.encryption.decrypt(raw) if self.encryption is not None else raw
        return UserCredential.model_validate_json(payload)

    async def get(self, user_id: str) -> UserCredential | None:
        raw = await self.backend.get(token_key(user_id))
        if raw is None:
            return None
        return self._deserialize(raw)

    async def exists(self, user_id: str) -> bool:
        return await self.backend.exists(token_key(user_id))

    async def get_user_id_for_email(self, email: str) -> str | None:
        return await self.backend.get(email_key(email))

    async def save(self, credential: UserCredential, previous_email: str | None = None) -> None:
        """Write the primary record, then the email index.

        When the user's email changed since ``previous_email`` was stored, the
        stale index entry is removed if it still points at this user.
        """
        await self.backend.set(token_key(credential.user_id), self._serialize(credential))
        await self.backend.set(email_key(credential.email), credential.user_id)

        if previous_email and previous_email != credential.email:
            if await self.backend.get(email_key(previous_email)) == credential.user_id:
                await self.backend.delete(email_key(previous_email))
                logger.info(
                    "Removed stale email index",
                    extra={"user_id": credential.user_id},
                )

    async def delete(self, user_id: str) -> bool:
        """Remove the email index recorded on the stored credential, then the record.

        A record that cannot be decrypted or parsed is still removed; its email
        index is left alone since the address cannot be read.

        Returns True if a record was stored.
        """
        raw = await self.backend.get(token_key(user_id))
        if raw is None:
            return False

        try:
            existing = self._deserialize(raw)
        except (ValidationError, CredentialEncryptionError) as e:
            logger.warning(
                "Removing unreadable credential record",
                extra={"user_id": user_id, "error": str(e)},
            )
        else:
            if await self.backend.get(email_key(existing.email)) == user_id:
                await self.backend.delete(email_key(existing.email))

        await self.backend.delete(token_key(user_id))
        return True

    async def list_all(self) -> list[UserCredential]:
        """Every stored credential. Unreadable records are logged and skipped."""
        credentials = []
        for key in await self.backend.keys(f"{TOKEN_PREFIX}*"):
            raw = await self.backend.get(key)
            if raw is None:
                # Removed between the scan and the read
                continue
            try:
                credentials.append(self._deserialize(raw))
            except (ValidationError, CredentialEncryptionError) as e:
                logger.warning("Skipping unreadable credential record", extra={"key": key, "error": str(e)})
        return credentials
