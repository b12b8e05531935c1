"""Document tools: Google Workspace operations wrapped as ToolResult values."""

from __future__ import annotations

from typing import Any, Optional

import httpx
from pydantic import BaseModel

from ..core.exceptions import DocsAgentException
from ..core.logging import get_logger
from .google_workspace_client import FileType, GoogleWorkspaceClient

logger = get_logger(__name__)

PREVIEW_LENGTH = 500


class ToolResult(BaseModel):
    success: bool
    data: Optional[dict[str, Any]] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Optional[dict[str, Any]] = None):
        return cls(success=True, data=data or {})

    @classmethod
    def err(cls, message: str):
        return cls(success=False, error=message)


def _describe(exc: Exception) -> str:
    if isinstance(exc, DocsAgentException):
        return exc.message
    return str(exc) or type(exc).__name__


class DocumentTools:
    """Docs/Drive operations for one user; API failures come back as ``ToolResult.err``."""

    def __init__(self, client: GoogleWorkspaceClient):
        self.client = client

    def _failed(self, action: str, exc: Exception) -> ToolResult:
        logger.warning(
            f"Failed to {action}",
            extra={"user_id": self.client.user_id, "error": _describe(exc)},
        )
        return ToolResult.err(f"Failed to {action}: {_describe(exc)}")

    async def create_document(self, title: str, content: str | None = None, folder_id: str | None = None) -> ToolResult:
        try:
            doc = await self.client.create_document(title, content=content, folder_id=folder_id)
        except (DocsAgentException, httpx.HTTPError) as e:
            return self._failed("create document", e)
        return ToolResult.ok(
            {
                "message": f'Document "{title}" created successfully',
                "document": doc.model_dump(exclude_none=True),
            }
        )

    async def read_document(self, document_id: str) -> ToolResult:
        try:
            doc = await self.client.read_document(document_id)
        except (DocsAgentException, httpx.HTTPError) as e:
            return self._failed("read document", e)

        preview = doc.content
        if len(preview) > PREVIEW_LENGTH:
            preview = preview[:PREVIEW_LENGTH] + "..."
        return ToolResult.ok({"document": doc.model_dump(), "preview": preview})

    async def update_document(self, document_id: str, content: str) -> ToolResult:
        try:
            doc = await self.client.update_document(document_id, content)
        except (DocsAgentException, httpx.HTTPError) as e:
            return self._failed("update document", e)
        return ToolResult.ok(
            {
                "message": f'Document "{doc.title}" updated successfully',
                "document": doc.model_dump(exclude_none=True),
                "content_length": len(content),
            }
        )

    async def append_to_document(self, document_id: str, content: str) -> ToolResult:
        try:
            doc = await self.client.append_to_document(document_id, content)
        except (DocsAgentException, httpx.HTTPError) as e:
            return self._failed("append to document", e)
        return ToolResult.ok(
            {
                "message": f'Content appended to "{doc.title}" successfully',
                "document": doc.model_dump(exclude_none=True),
                "appended_length": len(content),
            }
        )

    async def list_documents(self, folder_id: str | None = None, query: str | None = None, limit: int = 20) -> ToolResult:
        try:
            docs = await self.client.list_documents(folder_id=folder_id, query=query, limit=limit)
        except (DocsAgentException, httpx.HTTPError) as e:
            return self._failed("list documents", e)
        return ToolResult.ok(
            {
                "count": len(docs),
                "documents": [d.model_dump(exclude_none=True) for d in docs],
            }
        )

    async def search_drive(self, query: str, file_type: FileType = "any", limit: int = 20) -> ToolResult:
        try:
            files = await self.client.search_drive(query, file_type=file_type, limit=limit)
        except (DocsAgentException, httpx.HTTPError) as e:
            return self._failed("search Drive", e)
        return ToolResult.ok(
            {
                "count": len(files),
                "files": [f.model_dump(exclude_none=True) for f in files],
            }
        )
