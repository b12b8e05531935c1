"""Per-user GoogleWorkspaceClient cache over the credential lifecycle manager.

The cache is keyed by user id only. Email lookups resolve to the id first,
so each connected user has at most one cached client regardless of lookup
path. Concurrent first lookups for the same user may both build a client;
the last one stored wins.
"""

from __future__ import annotations

import weakref

import httpx

from ..auth.credentials import UserCredential
from ..auth.lifecycle import CredentialLifecycleManager
from ..core.logging import get_logger
from .google_workspace_client import GoogleWorkspaceClient

logger = get_logger(__name__)


class _Generation:
    """Counts invalidations of one user while lookups for it are running."""

    def __init__(self) -> None:
        self.value = 0


class GoogleClientFactory:
    """Hands out cached GoogleWorkspaceClient instances per user."""

    def __init__(self, manager: CredentialLifecycleManager, http_client: httpx.AsyncClient | None = None):
        self.manager = manager
        self._http_client = http_client
        self._clients: dict[str, GoogleWorkspaceClient] = {}
        # Only users with a lookup in flight have an entry
        self._generations: weakref.WeakValueDictionary[str, _Generation] = weakref.WeakValueDictionary()

    def invalidate(self, user_id: str) -> None:
        generation = self._generations.get(user_id)
        if generation is not None:
            generation.value += 1
        if self._clients.pop(user_id, None) is not None:
            logger.debug("Evicted cached client", extra={"user_id": user_id})

    async def get_client_for_user(self, user_id: str) -> GoogleWorkspaceClient | None:
        """Cached client for ``user_id``, or None when the user is not connected."""
        client = self._clients.get(user_id)
        if client is not None:
            return client

        generation = self._generations.get(user_id)
        if generation is None:
            generation = _Generation()
            self._generations[user_id] = generation
        seen = generation.value
        session = await self.manager.get_client_for_user(user_id)
        if session is None:
            return None

        client = GoogleWorkspaceClient(session, http_client=self._http_client)
        # Skip caching if the user was re-authorized or removed meanwhile
        if generation.value == seen:
            self._clients[user_id] = client
        return client

    async def get_client_for_email(self, email: str) -> GoogleWorkspaceClient | None:
        user_id = await self.manager.resolve_user_id(email)
        if user_id is None:
            return None
        return await self.get_client_for_user(user_id)

    def build_authorization_url(self, state: str | None = None) -> str:
        return self.manager.build_authorization_url(state=state)

    async def complete_authorization(self, code: str) -> UserCredential:
        credential = await self.manager.complete_authorization(code)
        self.invalidate(credential.user_id)
        return credential

    async def remove_user(self, user_id: str) -> bool:
        removed = await self.manager.remove_user(user_id)
        self.invalidate(user_id)
        return removed

    async def has_user(self, user_id: str) -> bool:
        return await self.manager.has_user(user_id)

    async def has_user_by_email(self, email: str) -> bool:
        return await self.manager.has_user_by_email(email)

    async def list_users(self) -> list[UserCredential]:
        return await self.manager.list_users()
