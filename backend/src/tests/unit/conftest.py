"""
Shared pytest fixtures and path setup for unit tests.
"""

import asyncio
import os
import sys
from pathlib import Path
from urllib.parse import parse_qs

# Set environment variables BEFORE any docsagent imports so Settings sees
# deterministic test-only values.
os.environ.setdefault("DOCSAGENT_ENVIRONMENT", "development")
os.environ.setdefault("DOCSAGENT_LOG_LEVEL", "WARNING")
os.environ.setdefault("DOCSAGENT_ADMIN_KEY", "test-admin-key")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id.apps.googleusercontent.com")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("OAUTH_REDIRECT_URI", "http://localhost:8000/auth/google/callback")

# Add backend/src to sys.path so docsagent.* imports work when running pytest from repo root.
PROJECT_SRC = Path(__file__).resolve().parents[2]
if str(PROJECT_SRC) not in sys.path:
    sys.path.insert(0, str(PROJECT_SRC))

import httpx
import pytest

from docsagent.auth.credential_store import CredentialStore
from docsagent.auth.lifecycle import CredentialLifecycleManager
from docsagent.auth.oauth import GOOGLE_SCOPES, GOOGLE_TOKEN_URI, GOOGLE_USERINFO_URI, GoogleOAuthClient
from docsagent.core.cache_backend import InMemoryCacheBackend, reset_cache_backend
from docsagent.core.config import reset_settings_instance


@pytest.fixture(autouse=True)
def _fresh_singletons():
    """Each test starts with settings and the cache backend re-read from the environment."""
    reset_settings_instance()
    reset_cache_backend()
    yield
    reset_settings_instance()
    reset_cache_backend()


@pytest.fixture
def memory_backend():
    return InMemoryCacheBackend(cleanup_interval_seconds=0)


class FakeGoogle:
    """In-process stand-in for Google's token and userinfo endpoints.

    ``grants`` maps authorization codes to ``(user_id, email, refresh_token)``;
    a ``None`` refresh token models a consent that returned no refresh token.
    """

    def __init__(self, expires_in: int = 3600, refresh_delay: float = 0.0):
        self.grants: dict[str, tuple[str, str, str | None]] = {}
        self.revoked: set[str] = set()
        self.expires_in = expires_in
        self.refresh_delay = refresh_delay
        self.exchange_calls = 0
        self.refresh_calls = 0
        self._access_tokens: dict[str, tuple[str, str]] = {}
        self._refresh_owners: dict[str, tuple[str, str]] = {}
        self._issued = 0

    def grant(self, code: str, user_id: str, email: str, refresh_token: str | None = "refresh-token") -> None:
        self.grants[code] = (user_id, email, refresh_token)

    def _issue(self, user_id: str, email: str) -> str:
        self._issued += 1
        token = f"access-{user_id}-{self._issued}"
        self._access_tokens[token] = (user_id, email)
        return token

    async def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if request.method == "POST" and url == GOOGLE_TOKEN_URI:
            form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
            if form.get("grant_type") == "authorization_code":
                return self._exchange(form.get("code", ""), GOOGLE_SCOPES)
            if form.get("grant_type") == "refresh_token":
                return await self._refresh(form.get("refresh_token", ""))
            return httpx.Response(400, json={"error": "unsupported_grant_type"})

        if request.method == "GET" and url == GOOGLE_USERINFO_URI:
            token = request.headers.get("Authorization", "").removeprefix("Bearer ")
            owner = self._access_tokens.get(token)
            if owner is None:
                return httpx.Response(401, json={"error": "invalid_token"})
            return httpx.Response(200, json={"id": owner[0], "email": owner[1], "verified_email": True})

        return httpx.Response(404, json={"error": "not_found"})

    def _exchange(self, code: str, scopes: list[str]) -> httpx.Response:
        self.exchange_calls += 1
        grant = self.grants.get(code)
        if grant is None:
            return httpx.Response(400, json={"error": "invalid_grant"})
        user_id, email, refresh_token = grant
        body = {
            "access_token": self._issue(user_id, email),
            "expires_in": self.expires_in,
            "scope": " ".join(scopes),
            "token_type": "Bearer",
        }
        if refresh_token is not None:
            body["refresh_token"] = refresh_token
            self._refresh_owners[refresh_token] = (user_id, email)
        return httpx.Response(200, json=body)

    async def _refresh(self, refresh_token: str) -> httpx.Response:
        self.refresh_calls += 1
        if self.refresh_delay:
            await asyncio.sleep(self.refresh_delay)
        owner = self._refresh_owners.get(refresh_token)
        if owner is None or refresh_token in self.revoked:
            return httpx.Response(400, json={"error": "invalid_grant"})
        return httpx.Response(
            200,
            json={"access_token": self._issue(*owner), "expires_in": self.expires_in, "token_type": "Bearer"},
        )


@pytest.fixture
def fake_google():
    return FakeGoogle()


@pytest.fixture
def oauth_client(fake_google):
    return GoogleOAuthClient(
        client_id="test-client-id.apps.googleusercontent.com",
        client_secret="test-client-secret",
        redirect_uri="http://localhost:8000/auth/google/callback",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(fake_google.handler)),
    )


@pytest.fixture
def manager(memory_backend, oauth_client):
    return CredentialLifecycleManager(CredentialStore(memory_backend), oauth_client)
