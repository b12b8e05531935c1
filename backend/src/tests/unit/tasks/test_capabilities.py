"""
Tests for the capability table, its registry and the keyword chat fallback.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from docsagent.core.exceptions import TaskInputError
from docsagent.services.document_tools import DocumentTools, ToolResult
from docsagent.tasks.capabilities import (
    CAPABILITIES,
    UNDERSTANDING_REQUIRED_MESSAGE,
    Capability,
    CapabilityContext,
    CapabilityRegistry,
    CapabilityType,
)


def _tools() -> MagicMock:
    tools = MagicMock(spec=DocumentTools)
    for name in ("create_document", "read_document", "update_document", "append_to_document", "list_documents", "search_drive"):
        setattr(tools, name, AsyncMock(return_value=ToolResult.ok({"op": name})))
    return tools


def _handler(task_type: CapabilityType):
    return CAPABILITIES[task_type].handler


class TestRegistry:
    def test_every_capability_type_has_a_handler(self):
        assert set(CAPABILITIES) == set(CapabilityType)
        for task_type, capability in CAPABILITIES.items():
            assert capability.type is task_type

    def test_incomplete_table_is_rejected(self):
        table = {k: v for k, v in CAPABILITIES.items() if k is not CapabilityType.CHAT}
        with pytest.raises(ValueError, match="task:chat"):
            CapabilityRegistry(table)

    def test_mismatched_entry_is_rejected(self):
        table = dict(CAPABILITIES)
        table[CapabilityType.DOCS_READ] = Capability(CapabilityType.DOCS_LIST, "wrong", _handler(CapabilityType.DOCS_LIST))
        with pytest.raises(ValueError):
            CapabilityRegistry(table)

    def test_lookup(self):
        registry = CapabilityRegistry()

        assert registry.get("google:docs:create").type is CapabilityType.DOCS_CREATE
        assert registry.get("google:sheets:create") is None
        assert registry.fallback.type is CapabilityType.CHAT
        assert registry.keys() == [t.value for t in CapabilityType]

    @pytest.mark.parametrize(
        "task_type, eligible",
        [("google:sheets:create", True), ("task:summarize", True), ("slack:post", False), ("", False)],
    )
    def test_fallback_eligibility(self, task_type, eligible):
        assert CapabilityRegistry().is_fallback_eligible(task_type) is eligible

    def test_describe_lists_every_capability(self):
        described = CapabilityRegistry().describe()
        assert [d["type"] for d in described] == [t.value for t in CapabilityType]
        assert all(d["description"] for d in described)


class TestDocumentHandlers:
    @pytest.mark.asyncio
    async def test_create_passes_optional_fields(self):
        tools = _tools()

        output = await _handler(CapabilityType.DOCS_CREATE)(
            {"title": "Notes", "content": "hi"}, CapabilityContext(tools=tools)
        )

        tools.create_document.assert_awaited_once_with(title="Notes", content="hi", folder_id=None)
        assert output == {"success": True, "data": {"op": "create_document"}, "error": None}

    @pytest.mark.asyncio
    async def test_missing_required_input(self):
        with pytest.raises(TaskInputError) as exc_info:
            await _handler(CapabilityType.DOCS_UPDATE)({"document_id": "d"}, CapabilityContext(tools=_tools()))
        assert exc_info.value.message == "Missing required input 'content' for google:docs:update"

    @pytest.mark.asyncio
    async def test_list_limit_defaults_and_coerces(self):
        tools = _tools()
        ctx = CapabilityContext(tools=tools)

        await _handler(CapabilityType.DOCS_LIST)({}, ctx)
        await _handler(CapabilityType.DOCS_LIST)({"limit": "5", "query": "plan"}, ctx)

        assert tools.list_documents.await_args_list[0].kwargs == {"folder_id": None, "query": None, "limit": 20}
        assert tools.list_documents.await_args_list[1].kwargs == {"folder_id": None, "query": "plan", "limit": 5}

    @pytest.mark.asyncio
    async def test_bad_limit_and_file_type(self):
        ctx = CapabilityContext(tools=_tools())
        with pytest.raises(TaskInputError):
            await _handler(CapabilityType.DOCS_LIST)({"limit": "many"}, ctx)
        with pytest.raises(TaskInputError):
            await _handler(CapabilityType.DRIVE_SEARCH)({"query": "x", "file_type": "video"}, ctx)

    @pytest.mark.asyncio
    async def test_search_defaults_to_any(self):
        tools = _tools()
        await _handler(CapabilityType.DRIVE_SEARCH)({"query": "budget"}, CapabilityContext(tools=tools))
        tools.search_drive.assert_awaited_once_with("budget", file_type="any", limit=20)


class TestChatWithoutAgent:
    @pytest.mark.asyncio
    async def test_create_with_quoted_title(self):
        tools = _tools()
        await _handler(CapabilityType.CHAT)(
            {"message": 'Please create a doc called "Q3 Plan"'}, CapabilityContext(tools=tools)
        )
        tools.create_document.assert_awaited_once_with(title="Q3 Plan")

    @pytest.mark.asyncio
    async def test_create_without_title(self):
        tools = _tools()
        await _handler(CapabilityType.CHAT)({"message": "create a new document"}, CapabilityContext(tools=tools))
        tools.create_document.assert_awaited_once_with(title="Untitled Document")

    @pytest.mark.asyncio
    async def test_list(self):
        tools = _tools()
        await _handler(CapabilityType.CHAT)({"message": "List my Docs"}, CapabilityContext(tools=tools))
        tools.list_documents.assert_awaited_once_with()

    @pytest.mark.asyncio
    async def test_search_extracts_query(self):
        tools = _tools()
        await _handler(CapabilityType.CHAT)({"message": "search for 'Budget 2024'"}, CapabilityContext(tools=tools))
        tools.search_drive.assert_awaited_once_with("Budget 2024")

    @pytest.mark.asyncio
    async def test_description_used_when_no_message(self):
        tools = _tools()
        await _handler(CapabilityType.CHAT)({"description": "list docs"}, CapabilityContext(tools=tools))
        tools.list_documents.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unrecognized_request(self):
        output = await _handler(CapabilityType.CHAT)({"message": "hello there"}, CapabilityContext(tools=_tools()))
        assert output == {"success": False, "data": None, "error": UNDERSTANDING_REQUIRED_MESSAGE}


@pytest.mark.asyncio
async def test_chat_with_agent_returns_reply():
    agent = MagicMock()
    agent.chat = AsyncMock(return_value="Sure, ask me to create a doc.")
    tools = _tools()

    output = await _handler(CapabilityType.CHAT)({"message": "create a doc"}, CapabilityContext(tools=tools, agent=agent))

    agent.chat.assert_awaited_once_with("create a doc")
    tools.create_document.assert_not_called()
    assert output == {"response": "Sure, ask me to create a doc."}
