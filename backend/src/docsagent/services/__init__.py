"""
Services package for the Docs Agent.

Google Workspace clients, the per-user client factory, document tools and
the conversational agent.
"""

from .chat_agent import ChatAgent, GeminiChatAgent, build_chat_agent
from .client_factory import GoogleClientFactory
from .document_tools import DocumentTools, ToolResult
from .google_workspace_client import GoogleWorkspaceClient

__all__ = [
    "ChatAgent",
    "DocumentTools",
    "GeminiChatAgent",
    "GoogleClientFactory",
    "GoogleWorkspaceClient",
    "ToolResult",
    "build_chat_agent",
]
