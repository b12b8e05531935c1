"""Conversational agent used by the ``task:chat`` capability.

Only constructed when GOOGLE_API_KEY is configured; without it the chat
capability falls back to keyword matching.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import httpx

from ..core.config import Settings, get_settings_instance
from ..core.exceptions import DocsAgentException
from ..core.http_client import get_http_client
from ..core.logging import get_logger

logger = get_logger(__name__)

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"

SYSTEM_PROMPT = (
    "You are a Google Workspace assistant that helps users work with Google Docs and Google Drive. "
    "You can create, read, update and append to documents, list documents and search Drive. "
    "Answer concisely and say which operation the user should request when an action is needed."
)


class ChatAgentError(DocsAgentException):
    """Raised when the language model call fails."""

    def __init__(self, reason: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=f"Chat agent request failed: {reason}",
            error_code="chat_agent_error",
            status_code=502,
            details=details,
        )


@runtime_checkable
class ChatAgent(Protocol):
    async def chat(self, message: str) -> str:
        ...


class GeminiChatAgent:
    """Single-turn chat against the Gemini ``generateContent`` REST endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-1.5-flash",
        system_prompt: str = SYSTEM_PROMPT,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self.system_prompt = system_prompt
        self._http_client = http_client

    async def chat(self, message: str) -> str:
        client = self._http_client or await get_http_client()
        payload = {
            "system_instruction": {"parts": [{"text": self.system_prompt}]},
            "contents": [{"role": "user", "parts": [{"text": message}]}],
        }
        try:
            resp = await client.post(
                f"{GEMINI_API_BASE}/models/{self.model}:generateContent",
                json=payload,
                headers={"x-goog-api-key": self.api_key},
            )
        except httpx.HTTPError as e:
            raise ChatAgentError(str(e)) from e

        if resp.status_code != 200:
            raise ChatAgentError(f"HTTP {resp.status_code}: {resp.text[:300]}")

        data = resp.json()
        candidates = data.get("candidates") or []
        if not candidates:
            raise ChatAgentError("no candidates in response")
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(p.get("text", "") for p in parts)


def build_chat_agent(settings: Settings | None = None) -> ChatAgent | None:
    """GeminiChatAgent when GOOGLE_API_KEY is set, otherwise None."""
    settings = settings or get_settings_instance()
    if not settings.google_api_key:
        logger.info("GOOGLE_API_KEY not set; chat capability uses keyword matching")
        return None
    return GeminiChatAgent(api_key=settings.google_api_key, model=settings.chat_model)
