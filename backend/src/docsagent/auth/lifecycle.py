"""Per-user OAuth credential lifecycle.

The manager owns the whole life of a user's Google grant: code exchange,
persistence, lookup by user id or email, refresh and removal. It also hands
out AuthorizedSession objects, the per-user handles the Google API clients
use to obtain a bearer token.

Refresh is explicit. A session refreshes itself when its access token is
about to expire, and every refresh is a read-modify-write performed under
the user's lock. ``remove_user`` takes the same lock, so a refresh that
starts after a removal sees no stored credential and fails instead of
writing the user back.
"""

from __future__ import annotations

import asyncio
import weakref

from ..core.exceptions import MissingRefreshTokenError, TokenExchangeFailedError, UserNotAuthorizedError
from ..core.logging import get_logger
from .credential_store import CredentialStore
from .credentials import UserCredential, now_ms
from .oauth import GoogleOAuthClient

logger = get_logger(__name__)

# Refresh this long before the recorded expiry
EXPIRY_SKEW_MS = 60_000


class AuthorizedSession:
    """Bearer-token handle bound to one user's credential."""

    def __init__(self, manager: CredentialLifecycleManager, credential: UserCredential):
        self._manager = manager
        self._credential = credential

    @property
    def user_id(self) -> str:
        return self._credential.user_id

    @property
    def email(self) -> str:
        return self._credential.email

    @property
    def credential(self) -> UserCredential:
        return self._credential

    @property
    def access_token(self) -> str:
        return self._credential.access_token

    def needs_refresh(self) -> bool:
        return self._credential.is_expired(skew_ms=EXPIRY_SKEW_MS)

    async def refresh(self) -> tuple[str, int | None]:
        """Refresh the access token now and return ``(access_token, expires_at)``.

        Raises:
            UserNotAuthorizedError: If the user was removed.
            TokenRefreshError: If Google rejects the refresh.
        """
        self._credential = await self._manager.refresh_credential(
            self.user_id, stale_access_token=self._credential.access_token
        )
        return self._credential.access_token, self._credential.expires_at

    async def authorization_header(self) -> dict[str, str]:
        """``Authorization`` header for the next API call, refreshing first if needed."""
        if self.needs_refresh():
            await self.refresh()
        return {"Authorization": f"Bearer {self._credential.access_token}"}


def _expires_at_from(token_response: dict, issued_at: int) -> int | None:
    expires_in = token_response.get("expires_in")
    if expires_in is None:
        return None
    return issued_at + int(expires_in) * 1000


def _scopes_from(token_response: dict, fallback: list[str]) -> list[str]:
    scope = token_response.get("scope")
    if not scope:
        return list(fallback)
    return [s for s in str(scope).split() if s]


class _UserState:
    """Per-user lock and change counter.

    Held in a weak-value map, so it lives only while some operation on the
    user holds a reference to it.
    """

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        # Bumped whenever the credential is replaced or removed, so a lookup
        # that raced with the change does not cache a stale session.
        self.generation = 0


class CredentialLifecycleManager:
    """Owns per-user credentials and their AuthorizedSession cache."""

    def __init__(self, store: CredentialStore, oauth_client: GoogleOAuthClient):
        self.store = store
        self.oauth = oauth_client
        self._sessions: dict[str, AuthorizedSession] = {}
        self._states: weakref.WeakValueDictionary[str, _UserState] = weakref.WeakValueDictionary()

    def _state_for(self, user_id: str) -> _UserState:
        """The user's state; callers keep the returned reference for the whole operation."""
        state = self._states.get(user_id)
        if state is None:
            state = _UserState()
            self._states[user_id] = state
        return state

    def _invalidate(self, user_id: str) -> None:
        self._sessions.pop(user_id, None)
        state = self._states.get(user_id)
        if state is not None:
            state.generation += 1

    def build_authorization_url(self, state: str | None = None) -> str:
        return self.oauth.authorization_url(state=state)

    async def complete_authorization(self, code: str) -> UserCredential:
        """Exchange ``code``, persist the resulting credential and return it.

        Raises:
            MissingRefreshTokenError: Google returned no refresh token; nothing
                is persisted.
            TokenExchangeFailedError: The exchange or identity lookup failed.
        """
        issued_at = now_ms()
        tokens = await self.oauth.exchange_code(code)

        refresh_token = tokens.get("refresh_token")
        if not refresh_token:
            logger.warning("Authorization completed without a refresh token")
            raise MissingRefreshTokenError()

        access_token = tokens.get("access_token")
        if not access_token:
            raise TokenExchangeFailedError("token response missing access_token")

        info = await self.oauth.fetch_user_info(access_token)
        user_id = str(info["id"])
        email = str(info["email"])

        state = self._state_for(user_id)
        async with state.lock:
            existing = await self.store.get(user_id)
            stamp = now_ms()
            credential = UserCredential(
                user_id=user_id,
                email=email,
                access_token=access_token,
                refresh_token=refresh_token,
                expires_at=_expires_at_from(tokens, issued_at),
                scopes=_scopes_from(tokens, self.oauth.scopes),
                created_at=existing.created_at if existing else stamp,
                updated_at=stamp,
            )
            await self.store.save(credential, previous_email=existing.email if existing else None)
            self._invalidate(user_id)

        logger.info(
            "User authorized",
            extra={"user_id": user_id, "reauthorized": existing is not None},
        )
        return credential

    async def get_client_for_user(self, user_id: str) -> AuthorizedSession | None:
        """Cached session for ``user_id``, or None if the user has no credential."""
        session = self._sessions.get(user_id)
        if session is not None:
            return session

        state = self._state_for(user_id)
        generation = state.generation
        credential = await self.store.get(user_id)
        if credential is None:
            return None

        session = AuthorizedSession(self, credential)
        if state.generation == generation:
            self._sessions[user_id] = session
        return session

    async def get_client_for_email(self, email: str) -> AuthorizedSession | None:
        user_id = await self.store.get_user_id_for_email(email)
        if user_id is None:
            return None
        return await self.get_client_for_user(user_id)

    async def has_user(self, user_id: str) -> bool:
        return await self.store.exists(user_id)

    async def has_user_by_email(self, email: str) -> bool:
        user_id = await self.store.get_user_id_for_email(email)
        if user_id is None:
            return False
        return await self.store.exists(user_id)

    async def resolve_user_id(self, email: str) -> str | None:
        return await self.store.get_user_id_for_email(email)

    async def remove_user(self, user_id: str) -> bool:
        """Delete the user's credential and email index and evict the cached session.

        Idempotent. Returns True if a credential was removed.
        """
        state = self._state_for(user_id)
        async with state.lock:
            removed = await self.store.delete(user_id)
            self._invalidate(user_id)

        if removed:
            logger.info("User removed", extra={"user_id": user_id})
        return removed

    async def list_users(self) -> list[UserCredential]:
        return await self.store.list_all()

    async def refresh_credential(self, user_id: str, stale_access_token: str | None = None) -> UserCredential:
        """Refresh the user's access token and persist the result.

        Runs under the user's lock. When another request already replaced
        ``stale_access_token`` with a still-valid token, that token is
        adopted instead of refreshing again.

        Raises:
            UserNotAuthorizedError: If the user has no stored credential.
            TokenRefreshError: If Google rejects the refresh.
        """
        state = self._state_for(user_id)
        async with state.lock:
            current = await self.store.get(user_id)
            if current is None:
                self._invalidate(user_id)
                raise UserNotAuthorizedError(
                    f"User {user_id} is no longer connected. Please reconnect via /auth/google",
                    details={"user_id": user_id},
                )

            if (
                stale_access_token is not None
                and current.access_token != stale_access_token
                and not current.is_expired(skew_ms=EXPIRY_SKEW_MS)
            ):
                return current

            issued_at = now_ms()
            tokens = await self.oauth.refresh_access_token(user_id, current.refresh_token)
            updated = current.model_copy(
                update={
                    "access_token": tokens["access_token"],
                    "expires_at": _expires_at_from(tokens, issued_at),
                    "updated_at": now_ms(),
                }
            )
            await self.store.save(updated)

        logger.debug("Access token refreshed", extra={"user_id": user_id})
        return updated
