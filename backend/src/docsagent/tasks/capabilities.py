"""Capability table: the fixed set of task types the agent can execute.

Every ``CapabilityType`` member maps to exactly one handler in
``CAPABILITIES``; ``CapabilityRegistry`` refuses to build from a table that
misses a member.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Mapping, Optional

from ..core.exceptions import TaskInputError
from ..core.logging import get_logger
from ..services.chat_agent import ChatAgent
from ..services.document_tools import DocumentTools, ToolResult

logger = get_logger(__name__)


class CapabilityType(str, Enum):
    DOCS_CREATE = "google:docs:create"
    DOCS_READ = "google:docs:read"
    DOCS_UPDATE = "google:docs:update"
    DOCS_APPEND = "google:docs:append"
    DOCS_LIST = "google:docs:list"
    DRIVE_SEARCH = "google:drive:search"
    CHAT = "task:chat"


# Unregistered types under these namespaces fall back to the chat capability
FALLBACK_PREFIXES = ("google:", "task:")

DEFAULT_LIST_LIMIT = 20
FILE_TYPES = ("document", "spreadsheet", "presentation", "any")

UNDERSTANDING_REQUIRED_MESSAGE = (
    "Could not understand the request. Please use specific tool commands "
    "or enable LLM for natural language processing."
)

TITLE_PATTERN = re.compile(r'(?:called|named|titled)\s+"([^"]+)"', re.IGNORECASE)
SEARCH_PATTERN = re.compile(r"""(?:search|find)\s+(?:for\s+)?["']?([^"']+)["']?""", re.IGNORECASE)


@dataclass(frozen=True)
class CapabilityContext:
    """What a handler may use: the caller's document tools and the optional chat agent."""

    tools: DocumentTools
    agent: Optional[ChatAgent] = None


CapabilityHandler = Callable[[dict[str, Any], CapabilityContext], Awaitable[Any]]


@dataclass(frozen=True)
class Capability:
    type: CapabilityType
    description: str
    handler: CapabilityHandler


def _required_str(payload: dict[str, Any], field: str, task_type: CapabilityType) -> str:
    value = payload.get(field)
    if not isinstance(value, str) or not value:
        raise TaskInputError(field, task_type.value)
    return value


def _optional_str(payload: dict[str, Any], field: str) -> Optional[str]:
    value = payload.get(field)
    if value is None or value == "":
        return None
    return str(value)


def _limit(payload: dict[str, Any], task_type: CapabilityType) -> int:
    value = payload.get("limit")
    if value is None or value == "":
        return DEFAULT_LIST_LIMIT
    try:
        limit = int(value)
    except (TypeError, ValueError) as e:
        raise TaskInputError("limit", task_type.value) from e
    return limit if limit > 0 else DEFAULT_LIST_LIMIT


async def _create_document(payload: dict[str, Any], ctx: CapabilityContext) -> dict[str, Any]:
    result = await ctx.tools.create_document(
        title=_required_str(payload, "title", CapabilityType.DOCS_CREATE),
        content=_optional_str(payload, "content"),
        folder_id=_optional_str(payload, "folder_id"),
    )
    return result.model_dump()


async def _read_document(payload: dict[str, Any], ctx: CapabilityContext) -> dict[str, Any]:
    result = await ctx.tools.read_document(_required_str(payload, "document_id", CapabilityType.DOCS_READ))
    return result.model_dump()


async def _update_document(payload: dict[str, Any], ctx: CapabilityContext) -> dict[str, Any]:
    result = await ctx.tools.update_document(
        _required_str(payload, "document_id", CapabilityType.DOCS_UPDATE),
        _required_str(payload, "content", CapabilityType.DOCS_UPDATE),
    )
    return result.model_dump()


async def _append_document(payload: dict[str, Any], ctx: CapabilityContext) -> dict[str, Any]:
    result = await ctx.tools.append_to_document(
        _required_str(payload, "document_id", CapabilityType.DOCS_APPEND),
        _required_str(payload, "content", CapabilityType.DOCS_APPEND),
    )
    return result.model_dump()


async def _list_documents(payload: dict[str, Any], ctx: CapabilityContext) -> dict[str, Any]:
    result = await ctx.tools.list_documents(
        folder_id=_optional_str(payload, "folder_id"),
        query=_optional_str(payload, "query"),
        limit=_limit(payload, CapabilityType.DOCS_LIST),
    )
    return result.model_dump()


async def _search_drive(payload: dict[str, Any], ctx: CapabilityContext) -> dict[str, Any]:
    file_type = payload.get("file_type") or "any"
    if file_type not in FILE_TYPES:
        raise TaskInputError("file_type", CapabilityType.DRIVE_SEARCH.value)
    result = await ctx.tools.search_drive(
        _required_str(payload, "query", CapabilityType.DRIVE_SEARCH),
        file_type=file_type,
        limit=_limit(payload, CapabilityType.DRIVE_SEARCH),
    )
    return result.model_dump()


async def interpret_without_agent(message: str, tools: DocumentTools) -> ToolResult:
    """Keyword routing for the chat capability when no language model is configured.

    Checks run in order against the lower-cased message. Titles and queries
    are extracted from the original text so their casing is kept.
    """
    lowered = message.lower()

    if "create" in lowered and "doc" in lowered:
        match = TITLE_PATTERN.search(message)
        title = match.group(1) if match else "Untitled Document"
        return await tools.create_document(title=title)

    if "list" in lowered and "doc" in lowered:
        return await tools.list_documents()

    if "search" in lowered:
        match = SEARCH_PATTERN.search(message)
        query = match.group(1).strip() if match else ""
        return await tools.search_drive(query or message)

    return ToolResult.err(UNDERSTANDING_REQUIRED_MESSAGE)


async def _chat(payload: dict[str, Any], ctx: CapabilityContext) -> dict[str, Any]:
    message = payload.get("message") or payload.get("description") or ""
    if not isinstance(message, str):
        message = str(message)

    if ctx.agent is None:
        result = await interpret_without_agent(message, ctx.tools)
        return result.model_dump()

    reply = await ctx.agent.chat(message)
    return {"response": reply}


CAPABILITIES: Mapping[CapabilityType, Capability] = MappingProxyType(
    {
        CapabilityType.DOCS_CREATE: Capability(CapabilityType.DOCS_CREATE, "Create a new Google Doc", _create_document),
        CapabilityType.DOCS_READ: Capability(CapabilityType.DOCS_READ, "Read content from a Google Doc", _read_document),
        CapabilityType.DOCS_UPDATE: Capability(CapabilityType.DOCS_UPDATE, "Update content in a Google Doc", _update_document),
        CapabilityType.DOCS_APPEND: Capability(CapabilityType.DOCS_APPEND, "Append content to a Google Doc", _append_document),
        CapabilityType.DOCS_LIST: Capability(CapabilityType.DOCS_LIST, "List Google Docs", _list_documents),
        CapabilityType.DRIVE_SEARCH: Capability(CapabilityType.DRIVE_SEARCH, "Search Google Drive", _search_drive),
        CapabilityType.CHAT: Capability(
            CapabilityType.CHAT, "Natural language interaction with Google Workspace", _chat
        ),
    }
)


class CapabilityRegistry:
    """Read-only lookup over the capability table."""

    def __init__(self, capabilities: Mapping[CapabilityType, Capability] = CAPABILITIES):
        missing = [t.value for t in CapabilityType if t not in capabilities]
        if missing:
            raise ValueError(f"No handler registered for capability types: {', '.join(missing)}")
        for key, capability in capabilities.items():
            if capability.type is not key:
                raise ValueError(f"Capability registered under {key.value} declares type {capability.type.value}")
        self._capabilities = MappingProxyType(dict(capabilities))

    def get(self, task_type: str) -> Optional[Capability]:
        try:
            return self._capabilities.get(CapabilityType(task_type))
        except ValueError:
            return None

    def keys(self) -> list[str]:
        return [t.value for t in self._capabilities]

    def is_fallback_eligible(self, task_type: str) -> bool:
        return task_type.startswith(FALLBACK_PREFIXES)

    @property
    def fallback(self) -> Capability:
        return self._capabilities[CapabilityType.CHAT]

    def describe(self) -> list[dict[str, str]]:
        return [{"type": c.type.value, "description": c.description} for c in self._capabilities.values()]
