#!/usr/bin/env python3
"""
Run the Google OAuth consent flow locally and print the resulting tokens.

Starts a one-shot callback server on localhost, prints the consent URL and
exchanges the returned code. Useful for checking OAuth client setup before
connecting users through /auth/google.
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add the src directory to the path
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, PlainTextResponse
from starlette.routing import Route

from docsagent.auth.oauth import GOOGLE_SCOPES, GoogleOAuthClient
from docsagent.core.config import get_settings_instance
from docsagent.core.exceptions import DocsAgentException, OAuthCallbackError
from docsagent.core.http_client import close_http_client

CALLBACK_PATH = "/oauth/callback"

SETUP_STEPS = """Setup steps:
1. Go to https://console.cloud.google.com/apis/credentials
2. Create OAuth 2.0 credentials (Web application)
3. Add http://localhost:{port}{path} to authorized redirect URIs
4. Enable Google Docs API and Google Drive API
5. Add GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET to your .env file"""


async def wait_for_code(port: int) -> str:
    """Serve the callback path until Google redirects back with a code or an error."""
    result: asyncio.Future[str] = asyncio.get_running_loop().create_future()

    async def callback(request: Request):
        error = request.query_params.get("error")
        code = request.query_params.get("code")
        if error:
            if not result.done():
                result.set_exception(OAuthCallbackError(error))
            return HTMLResponse(f"<h1>Error</h1><p>{error}</p>", status_code=400)
        if code:
            if not result.done():
                result.set_result(code)
            return HTMLResponse("<h1>Success!</h1><p>You can close this window and return to the terminal.</p>")
        return PlainTextResponse("Not found", status_code=404)

    app = Starlette(routes=[Route(CALLBACK_PATH, callback)])
    server = uvicorn.Server(uvicorn.Config(app, host="127.0.0.1", port=port, log_level="warning"))
    serving = asyncio.create_task(server.serve())
    print(f"Callback server listening on port {port}")

    try:
        done, _ = await asyncio.wait({result, serving}, return_when=asyncio.FIRST_COMPLETED)
        if result not in done:
            # uvicorn exits early when the port is taken
            raise RuntimeError(f"Callback server stopped; is port {port} in use?")
        return result.result()
    finally:
        server.should_exit = True
        await serving


async def generate_token(port: int) -> int:
    settings = get_settings_instance()
    if not settings.google_client_id or not settings.google_client_secret:
        print("Missing GOOGLE_CLIENT_ID or GOOGLE_CLIENT_SECRET in .env\n")
        print(SETUP_STEPS.format(port=port, path=CALLBACK_PATH))
        return 1

    oauth = GoogleOAuthClient(
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        redirect_uri=f"http://localhost:{port}{CALLBACK_PATH}",
    )

    print("\n=== Google OAuth Token Generator ===\n")
    print("Scopes requested:")
    for scope in GOOGLE_SCOPES:
        print(f"  - {scope}")
    print("\n1. Open this URL in your browser:\n")
    print(f"   {oauth.authorization_url()}\n")
    print("2. Sign in and grant permissions")
    print("3. You will be redirected back here\n")

    try:
        code = await wait_for_code(port)
        print("Exchanging code for tokens...\n")
        tokens = await oauth.exchange_code(code)
        info = await oauth.fetch_user_info(tokens["access_token"])
    except DocsAgentException as e:
        print(f"Error: {e.message}")
        return 1
    finally:
        await close_http_client()

    print("=== SUCCESS ===\n")
    print("User info:")
    print(f"  Email: {info['email']}")
    print(f"  ID: {info['id']}\n")

    if tokens.get("refresh_token"):
        print("Refresh token (for manual testing):")
        print(f"  {tokens['refresh_token']}\n")
    else:
        print("No refresh token returned; revoke the app's access and run again.\n")

    print(f"In production, users connect via: http://{settings.api_host}:{settings.api_port}/auth/google")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the Google OAuth flow locally and print tokens")
    parser.add_argument("--port", type=int, default=3000, help="Local callback port (default: 3000)")
    args = parser.parse_args()
    sys.exit(asyncio.run(generate_token(args.port)))


if __name__ == "__main__":
    main()
