"""
Tests for the Google Workspace client and the ToolResult wrappers, run
against an in-process fake of the Docs and Drive REST APIs.
"""

import json
from urllib.parse import parse_qs

import httpx
import pytest

from docsagent.core.exceptions import GoogleAPIError
from docsagent.services.document_tools import DocumentTools
from docsagent.services.google_workspace_client import GoogleWorkspaceClient, end_index, extract_text


class StubSession:
    user_id = "u1"
    email = "u1@example.com"

    def __init__(self):
        self.header_calls = 0

    async def authorization_header(self):
        self.header_calls += 1
        return {"Authorization": "Bearer access-u1"}


def _body(text: str) -> dict:
    """Docs API body with a single paragraph holding ``text`` plus the trailing newline."""
    if not text:
        return {"content": [{"endIndex": 1, "sectionBreak": {}}, {"endIndex": 2, "paragraph": {"elements": [{"textRun": {"content": "\n"}}]}}]}
    return {
        "content": [
            {"endIndex": 1, "sectionBreak": {}},
            {"startIndex": 1, "endIndex": len(text) + 2, "paragraph": {"elements": [{"textRun": {"content": text + "\n"}}]}},
        ]
    }


class FakeWorkspace:
    def __init__(self):
        self.docs: dict[str, dict] = {}
        self.batch_requests: list[list[dict]] = []
        self.list_params: list[dict] = []
        self.patches: list[dict] = []
        self.fail_with: int | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == "Bearer access-u1"
        if self.fail_with:
            return httpx.Response(self.fail_with, json={"error": {"code": self.fail_with, "message": "Requested entity was not found."}})

        path = request.url.path
        if request.method == "POST" and path == "/v1/documents":
            doc_id = f"doc{len(self.docs) + 1}"
            title = json.loads(request.content)["title"]
            self.docs[doc_id] = {"documentId": doc_id, "title": title, "body": _body("")}
            return httpx.Response(200, json=self.docs[doc_id])
        if request.method == "POST" and path.endswith(":batchUpdate"):
            self.batch_requests.append(json.loads(request.content)["requests"])
            return httpx.Response(200, json={"replies": []})
        if request.method == "GET" and path.startswith("/v1/documents/"):
            doc = self.docs.get(path.rsplit("/", 1)[1])
            if doc is None:
                return httpx.Response(404, json={"error": {"code": 404, "message": "Requested entity was not found."}})
            return httpx.Response(200, json=doc)
        if request.method == "PATCH" and path.startswith("/drive/v3/files/"):
            self.patches.append(dict(request.url.params))
            return httpx.Response(200, json={"id": path.rsplit("/", 1)[1]})
        if request.method == "GET" and path == "/drive/v3/files":
            self.list_params.append(dict(request.url.params))
            return httpx.Response(
                200,
                json={
                    "files": [
                        {"id": "f1", "name": "Quarterly report", "mimeType": "application/vnd.google-apps.document", "webViewLink": "https://docs.google.com/document/d/f1/edit"},
                        {"id": "f2", "name": "Budget", "mimeType": "application/vnd.google-apps.spreadsheet"},
                    ]
                },
            )
        return httpx.Response(404, json={})


@pytest.fixture
def workspace():
    return FakeWorkspace()


@pytest.fixture
def client(workspace):
    http = httpx.AsyncClient(transport=httpx.MockTransport(workspace.handler))
    return GoogleWorkspaceClient(StubSession(), http_client=http)


@pytest.fixture
def tools(client):
    return DocumentTools(client)


def test_extract_text_and_end_index():
    doc = {"body": _body("Hello")}
    assert extract_text(doc) == "Hello\n"
    assert end_index(doc) == 6
    assert end_index({"body": {}}) == 0


class TestGoogleWorkspaceClient:
    @pytest.mark.asyncio
    async def test_create_with_content_and_folder(self, client, workspace):
        info = await client.create_document("Notes", content="First line", folder_id="folder1")

        assert info.id == "doc1"
        assert info.url == "https://docs.google.com/document/d/doc1/edit"
        assert workspace.batch_requests == [[{"insertText": {"location": {"index": 1}, "text": "First line"}}]]
        assert workspace.patches[0]["addParents"] == "folder1"

    @pytest.mark.asyncio
    async def test_update_replaces_existing_body(self, client, workspace):
        workspace.docs["d"] = {"documentId": "d", "title": "Plan", "body": _body("old text")}

        await client.update_document("d", "new text")

        assert workspace.batch_requests[-1] == [
            {"deleteContentRange": {"range": {"startIndex": 1, "endIndex": 9}}},
            {"insertText": {"location": {"index": 1}, "text": "new text"}},
        ]

    @pytest.mark.asyncio
    async def test_update_empty_document_only_inserts(self, client, workspace):
        workspace.docs["d"] = {"documentId": "d", "title": "Plan", "body": _body("")}

        await client.update_document("d", "text")

        assert workspace.batch_requests[-1] == [{"insertText": {"location": {"index": 1}, "text": "text"}}]

    @pytest.mark.asyncio
    async def test_append_inserts_before_final_newline(self, client, workspace):
        workspace.docs["d"] = {"documentId": "d", "title": "Log", "body": _body("abc")}

        await client.append_to_document("d", "more")

        assert workspace.batch_requests[-1] == [{"insertText": {"location": {"index": 4}, "text": "\nmore"}}]

    @pytest.mark.asyncio
    async def test_list_documents_builds_drive_query(self, client, workspace):
        docs = await client.list_documents(folder_id="f'1", query="report", limit=5)

        params = workspace.list_params[-1]
        assert "mimeType='application/vnd.google-apps.document'" in params["q"]
        assert "'f\\'1' in parents" in params["q"]
        assert "name contains 'report'" in params["q"]
        assert params["pageSize"] == "5"
        assert [d.id for d in docs] == ["f1", "f2"]

    @pytest.mark.asyncio
    async def test_search_drive_filters_type_and_falls_back_to_drive_url(self, client, workspace):
        files = await client.search_drive("budget", file_type="spreadsheet")

        assert "mimeType='application/vnd.google-apps.spreadsheet'" in workspace.list_params[-1]["q"]
        assert files[1].url == "https://drive.google.com/file/d/f2/view"

    @pytest.mark.asyncio
    async def test_error_status_raises_google_api_error(self, client, workspace):
        workspace.fail_with = 404

        with pytest.raises(GoogleAPIError) as exc_info:
            await client.read_document("missing")

        assert exc_info.value.http_status == 404
        assert "Requested entity was not found." in exc_info.value.message


class TestDocumentTools:
    @pytest.mark.asyncio
    async def test_create_document(self, tools):
        result = await tools.create_document("Meeting notes")

        assert result.success
        assert result.data["message"] == 'Document "Meeting notes" created successfully'
        assert result.data["document"]["id"] == "doc1"

    @pytest.mark.asyncio
    async def test_read_document_preview_is_truncated(self, tools, workspace):
        workspace.docs["d"] = {"documentId": "d", "title": "Long", "body": _body("x" * 600)}

        result = await tools.read_document("d")

        assert result.data["document"]["content"] == "x" * 600 + "\n"
        assert result.data["preview"] == "x" * 500 + "..."

    @pytest.mark.asyncio
    async def test_update_and_append_report_lengths(self, tools, workspace):
        workspace.docs["d"] = {"documentId": "d", "title": "Doc", "body": _body("abc")}

        updated = await tools.update_document("d", "12345")
        appended = await tools.append_to_document("d", "xyz")

        assert updated.data["content_length"] == 5
        assert appended.data["message"] == 'Content appended to "Doc" successfully'
        assert appended.data["appended_length"] == 3

    @pytest.mark.asyncio
    async def test_list_and_search_counts(self, tools):
        listed = await tools.list_documents()
        found = await tools.search_drive("report")

        assert listed.data["count"] == 2
        assert found.data["count"] == 2
        assert found.data["files"][0]["mime_type"] == "application/vnd.google-apps.document"

    @pytest.mark.asyncio
    async def test_api_failure_becomes_error_result(self, tools, workspace):
        workspace.fail_with = 403

        result = await tools.read_document("d")

        assert result.success is False
        assert result.error.startswith("Failed to read document:")
