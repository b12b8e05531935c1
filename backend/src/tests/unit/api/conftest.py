"""
Application fixtures for route tests: a fresh app per test with its services
wired to the fake Google endpoints.
"""

import httpx
import pytest
from starlette.testclient import TestClient

from docsagent.api.dependencies import AgentServices
from docsagent.main import create_app
from docsagent.services.client_factory import GoogleClientFactory
from docsagent.tasks.dispatcher import TaskDispatcher


def docs_api(request: httpx.Request) -> httpx.Response:
    """Minimal Docs API: every document exists and holds one line of text."""
    document_id = request.url.path.rsplit("/", 1)[1]
    return httpx.Response(
        200,
        json={
            "documentId": document_id,
            "title": "Shared plan",
            "body": {
                "content": [
                    {"endIndex": 1, "sectionBreak": {}},
                    {"startIndex": 1, "endIndex": 7, "paragraph": {"elements": [{"textRun": {"content": "Hello\n"}}]}},
                ]
            },
        },
    )


@pytest.fixture
def services(manager, fake_google):
    async def route(request: httpx.Request) -> httpx.Response:
        if request.url.host == "docs.googleapis.com":
            return docs_api(request)
        return await fake_google.handler(request)

    http = httpx.AsyncClient(transport=httpx.MockTransport(route))
    return AgentServices(
        factory=GoogleClientFactory(manager, http_client=http),
        dispatcher=TaskDispatcher(default_timeout_ms=5000),
    )


@pytest.fixture
def app(services):
    application = create_app()
    application.state.services = services
    return application


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def connect_user(client, fake_google):
    def _connect(user_id="u1", email="u1@example.com"):
        code = f"code-{user_id}"
        fake_google.grant(code, user_id, email, refresh_token=f"refresh-{user_id}")
        response = client.get("/auth/google/callback", params={"code": code})
        assert response.status_code == 200
        return response.json()["user"]

    return _connect
