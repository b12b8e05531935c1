"""Per-user Google OAuth credential record."""

import time
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def ms_to_iso(value: int | None) -> str | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, UTC).isoformat()


class UserCredential(BaseModel):
    """OAuth grant for one end user.

    ``refresh_token`` only changes on a fresh authorization for the same user;
    ``access_token``, ``expires_at`` and ``updated_at`` change on every refresh.
    All timestamps are epoch milliseconds.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str
    email: str
    access_token: str
    refresh_token: str
    expires_at: int | None = None
    scopes: list[str] = Field(default_factory=list)
    created_at: int = Field(default_factory=now_ms)
    updated_at: int = Field(default_factory=now_ms)

    def is_expired(self, skew_ms: int = 60_000, at_ms: int | None = None) -> bool:
        """True if the access token is expired or expires within ``skew_ms``.

        A credential without a known expiry is treated as valid.
        """
        if self.expires_at is None:
            return False
        reference = now_ms() if at_ms is None else at_ms
        return self.expires_at - skew_ms <= reference

    def public_view(self) -> dict:
        """Listing shape without tokens, with ISO-8601 timestamps."""
        return {
            "user_id": self.user_id,
            "email": self.email,
            "scopes": list(self.scopes),
            "expires_at": ms_to_iso(self.expires_at),
            "created_at": ms_to_iso(self.created_at),
            "updated_at": ms_to_iso(self.updated_at),
        }
