"""Google Docs v1 and Drive v3 REST wrappers bound to one user's session."""

from __future__ import annotations

from typing import Any, Literal

import httpx
from pydantic import BaseModel

from ..auth.lifecycle import AuthorizedSession
from ..core.exceptions import GoogleAPIError
from ..core.http_client import get_http_client
from ..core.logging import get_logger

logger = get_logger(__name__)

DOCS_API = "https://docs.googleapis.com/v1/documents"
DRIVE_FILES_API = "https://www.googleapis.com/drive/v3/files"

DOCUMENT_MIME_TYPE = "application/vnd.google-apps.document"
MIME_TYPES = {
    "document": DOCUMENT_MIME_TYPE,
    "spreadsheet": "application/vnd.google-apps.spreadsheet",
    "presentation": "application/vnd.google-apps.presentation",
}

FileType = Literal["document", "spreadsheet", "presentation", "any"]


def document_url(document_id: str) -> str:
    return f"https://docs.google.com/document/d/{document_id}/edit"


def escape_query_value(value: str) -> str:
    """Escape a literal for a Drive ``q`` expression."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


class DocumentInfo(BaseModel):
    id: str
    title: str
    url: str
    created_time: str | None = None
    modified_time: str | None = None


class DocumentContent(BaseModel):
    id: str
    title: str
    content: str
    url: str


class DriveFile(BaseModel):
    id: str
    name: str
    mime_type: str
    url: str
    created_time: str | None = None
    modified_time: str | None = None


def extract_text(document: dict[str, Any]) -> str:
    """Concatenate the text runs of every paragraph in the document body."""
    parts = []
    for element in (document.get("body") or {}).get("content") or []:
        paragraph = element.get("paragraph")
        if not paragraph:
            continue
        for item in paragraph.get("elements") or []:
            text = (item.get("textRun") or {}).get("content")
            if text:
                parts.append(text)
    return "".join(parts)


def end_index(document: dict[str, Any]) -> int:
    """Index just before the body's trailing newline; 0 for an empty body.

    The Docs API rejects edits that touch the final newline, so this is the
    last position content can be inserted at or deleted up to.
    """
    highest = 1
    for element in (document.get("body") or {}).get("content") or []:
        idx = element.get("endIndex")
        if idx and idx > highest:
            highest = idx
    return highest - 1


class GoogleWorkspaceClient:
    """Docs/Drive operations executed with one user's credentials."""

    def __init__(self, session: AuthorizedSession, http_client: httpx.AsyncClient | None = None):
        self.session = session
        self._http_client = http_client

    @property
    def user_id(self) -> str:
        return self.session.user_id

    async def _request(self, operation: str, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        client = self._http_client or await get_http_client()
        headers = await self.session.authorization_header()
        headers["Accept"] = "application/json"

        resp = await client.request(method, url, headers=headers, **kwargs)
        if resp.status_code >= 400:
            reason = resp.text[:300]
            try:
                error = resp.json().get("error")
            except (ValueError, AttributeError):
                error = None
            if isinstance(error, dict) and error.get("message"):
                reason = error["message"]
            logger.warning(
                "Google API call failed",
                extra={"operation": operation, "status": resp.status_code, "user_id": self.user_id},
            )
            raise GoogleAPIError(operation, resp.status_code, reason)

        if not resp.content:
            return {}
        return resp.json()

    async def _get_document(self, document_id: str) -> dict[str, Any]:
        return await self._request("documents.get", "GET", f"{DOCS_API}/{document_id}")

    async def _batch_update(self, document_id: str, requests: list[dict[str, Any]]) -> dict[str, Any]:
        return await self._request(
            "documents.batchUpdate",
            "POST",
            f"{DOCS_API}/{document_id}:batchUpdate",
            json={"requests": requests},
        )

    async def create_document(self, title: str, content: str | None = None, folder_id: str | None = None) -> DocumentInfo:
        doc = await self._request("documents.create", "POST", DOCS_API, json={"title": title})
        document_id = doc["documentId"]

        if content:
            await self._batch_update(
                document_id,
                [{"insertText": {"location": {"index": 1}, "text": content}}],
            )

        if folder_id:
            await self._request(
                "files.update",
                "PATCH",
                f"{DRIVE_FILES_API}/{document_id}",
                params={"addParents": folder_id, "fields": "id, parents"},
                json={},
            )

        return DocumentInfo(id=document_id, title=title, url=document_url(document_id))

    async def read_document(self, document_id: str) -> DocumentContent:
        doc = await self._get_document(document_id)
        return DocumentContent(
            id=document_id,
            title=doc.get("title") or "Untitled",
            content=extract_text(doc),
            url=document_url(document_id),
        )

    async def update_document(self, document_id: str, content: str) -> DocumentInfo:
        """Replace the whole body with ``content``."""
        doc = await self._get_document(document_id)
        end = end_index(doc)

        requests: list[dict[str, Any]] = []
        if end > 1:
            requests.append({"deleteContentRange": {"range": {"startIndex": 1, "endIndex": end}}})
        requests.append({"insertText": {"location": {"index": 1}, "text": content}})
        await self._batch_update(document_id, requests)

        return DocumentInfo(id=document_id, title=doc.get("title") or "Untitled", url=document_url(document_id))

    async def append_to_document(self, document_id: str, content: str) -> DocumentInfo:
        doc = await self._get_document(document_id)
        index = max(1, end_index(doc))

        await self._batch_update(
            document_id,
            [{"insertText": {"location": {"index": index}, "text": "\n" + content}}],
        )

        return DocumentInfo(id=document_id, title=doc.get("title") or "Untitled", url=document_url(document_id))

    async def list_documents(
        self, folder_id: str | None = None, query: str | None = None, limit: int = 20
    ) -> list[DocumentInfo]:
        q = f"mimeType='{DOCUMENT_MIME_TYPE}' and trashed=false"
        if folder_id:
            q += f" and '{escape_query_value(folder_id)}' in parents"
        if query:
            q += f" and name contains '{escape_query_value(query)}'"

        body = await self._request(
            "files.list",
            "GET",
            DRIVE_FILES_API,
            params={
                "q": q,
                "pageSize": limit,
                "fields": "files(id, name, createdTime, modifiedTime)",
                "orderBy": "modifiedTime desc",
            },
        )
        return [
            DocumentInfo(
                id=f["id"],
                title=f.get("name") or "Untitled",
                url=document_url(f["id"]),
                created_time=f.get("createdTime"),
                modified_time=f.get("modifiedTime"),
            )
            for f in body.get("files") or []
        ]

    async def search_drive(self, query: str, file_type: FileType = "any", limit: int = 20) -> list[DriveFile]:
        q = f"name contains '{escape_query_value(query)}' and trashed=false"
        mime_type = MIME_TYPES.get(file_type)
        if mime_type:
            q += f" and mimeType='{mime_type}'"

        body = await self._request(
            "files.list",
            "GET",
            DRIVE_FILES_API,
            params={
                "q": q,
                "pageSize": limit,
                "fields": "files(id, name, mimeType, createdTime, modifiedTime, webViewLink)",
                "orderBy": "modifiedTime desc",
            },
        )
        return [
            DriveFile(
                id=f["id"],
                name=f.get("name") or "",
                mime_type=f.get("mimeType") or "",
                url=f.get("webViewLink") or f"https://drive.google.com/file/d/{f['id']}/view",
                created_time=f.get("createdTime"),
                modified_time=f.get("modifiedTime"),
            )
            for f in body.get("files") or []
        ]
