"""Google OAuth 2.0 web-server flow.

Builds consent URLs with google_auth_oauthlib and talks to the token and
userinfo endpoints over httpx.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import urlparse

import httpx
from google_auth_oauthlib.flow import Flow
from oauthlib.oauth2 import WebApplicationClient

from ..core.config import Settings, get_settings_instance
from ..core.exceptions import OAuthNotConfiguredError, TokenExchangeFailedError, TokenRefreshError
from ..core.http_client import get_http_client
from ..core.logging import get_logger

logger = get_logger(__name__)

GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URI = "https://www.googleapis.com/oauth2/v2/userinfo"

GOOGLE_SCOPES = [
    "https://www.googleapis.com/auth/documents",
    "https://www.googleapis.com/auth/drive",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
]


def _json_object(resp: httpx.Response, what: str) -> dict[str, Any]:
    try:
        body = resp.json()
    except ValueError as e:
        raise TokenExchangeFailedError(f"{what} was not JSON") from e
    if not isinstance(body, dict):
        raise TokenExchangeFailedError(f"{what} was not a JSON object")
    return body


class GoogleOAuthClient:
    """OAuth client for one Google Cloud web application."""

    def __init__(
        self,
        client_id: str | None,
        client_secret: str | None,
        redirect_uri: str | None,
        scopes: list[str] | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scopes = list(scopes or GOOGLE_SCOPES)
        self._http_client = http_client

    @classmethod
    def from_settings(cls, settings: Settings | None = None, http_client: httpx.AsyncClient | None = None) -> GoogleOAuthClient:
        settings = settings or get_settings_instance()
        return cls(
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            redirect_uri=settings.oauth_redirect_uri,
            http_client=http_client,
        )

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.redirect_uri)

    def _require_configured(self) -> None:
        if not self.configured:
            raise OAuthNotConfiguredError()

    async def _client(self) -> httpx.AsyncClient:
        if self._http_client is not None:
            return self._http_client
        return await get_http_client()

    def authorization_url(self, state: str | None = None) -> str:
        """Consent URL requesting offline access with a forced consent prompt.

        Offline access plus ``prompt=consent`` makes Google return a refresh
        token on every grant. No PKCE verifier is attached, so the URL is
        identical for identical configuration and state. When ``state`` is
        None the URL carries no state parameter.
        """
        self._require_configured()

        parsed = urlparse(self.redirect_uri)
        if not parsed.scheme or not parsed.netloc:
            raise OAuthNotConfiguredError(
                details={"reason": "OAUTH_REDIRECT_URI must be an absolute URL"}
            )

        if state is None:
            # requests-oauthlib invents a random state when given none
            return WebApplicationClient(self.client_id).prepare_request_uri(
                GOOGLE_AUTH_URI,
                redirect_uri=self.redirect_uri,
                scope=self.scopes,
                access_type="offline",
                prompt="consent",
            )

        flow = Flow.from_client_config(
            {
                "web": {
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "auth_uri": GOOGLE_AUTH_URI,
                    "token_uri": GOOGLE_TOKEN_URI,
                    "redirect_uris": [self.redirect_uri],
                }
            },
            scopes=self.scopes,
            autogenerate_code_verifier=False,
        )
        flow.redirect_uri = self.redirect_uri

        url, _ = flow.authorization_url(
            access_type="offline",
            prompt="consent",
            state=state,
        )
        return url

    async def _post_token(self, data: dict[str, str]) -> httpx.Response:
        client = await self._client()
        return await client.post(
            GOOGLE_TOKEN_URI,
            data={
                **data,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
            headers={"Accept": "application/json"},
        )

    async def exchange_code(self, code: str) -> dict[str, Any]:
        """Exchange an authorization code for tokens.

        Returns the token endpoint's JSON body (access_token, refresh_token,
        expires_in, scope, token_type).

        Raises:
            TokenExchangeFailedError: On transport errors or a non-2xx response.
        """
        self._require_configured()
        try:
            resp = await self._post_token(
                {
                    "code": code,
                    "redirect_uri": self.redirect_uri,
                    "grant_type": "authorization_code",
                }
            )
        except httpx.HTTPError as e:
            logger.error("Token exchange network error", extra={"error": str(e)})
            raise TokenExchangeFailedError(f"network error: {e}") from e

        if resp.status_code != 200:
            text = resp.text[:300]
            logger.warning("Token exchange rejected", extra={"status": resp.status_code})
            raise TokenExchangeFailedError(f"HTTP {resp.status_code}: {text}")
        return _json_object(resp, "token response")

    async def fetch_user_info(self, access_token: str) -> dict[str, Any]:
        """Fetch the Google account id and email for an access token."""
        client = await self._client()
        try:
            resp = await client.get(
                GOOGLE_USERINFO_URI,
                headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            logger.error("User info network error", extra={"error": str(e)})
            raise TokenExchangeFailedError(f"user info request failed: {e}") from e

        if resp.status_code != 200:
            raise TokenExchangeFailedError(f"user info HTTP {resp.status_code}: {resp.text[:300]}")

        data = _json_object(resp, "user info response")
        if not data.get("id") or not data.get("email"):
            raise TokenExchangeFailedError("user info response missing id or email")
        return data

    async def refresh_access_token(self, user_id: str, refresh_token: str) -> dict[str, Any]:
        """Trade a refresh token for a new access token.

        Raises:
            TokenRefreshError: On transport errors or a non-2xx response
                (including a revoked grant).
        """
        self._require_configured()
        try:
            resp = await self._post_token(
                {
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                }
            )
        except httpx.HTTPError as e:
            raise TokenRefreshError(user_id, f"network error: {e}") from e

        if resp.status_code != 200:
            raise TokenRefreshError(user_id, f"HTTP {resp.status_code}: {resp.text[:300]}")

        try:
            body = resp.json()
        except ValueError as e:
            raise TokenRefreshError(user_id, "response was not JSON") from e
        if not isinstance(body, dict) or not body.get("access_token"):
            raise TokenRefreshError(user_id, "response missing access_token")
        return body
