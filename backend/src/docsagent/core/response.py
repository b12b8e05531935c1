"""Response helpers for the Docs Agent API.

Error bodies share one envelope: ``{"error": {"code", "message", "details"}}``.
"""

from typing import Any

from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from .logging import get_logger

logger = get_logger(__name__)


def to_serializable(obj):
    """Recursively convert Pydantic models, lists, and dicts to serializable types."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    if isinstance(obj, list):
        return [to_serializable(item) for item in obj]
    if isinstance(obj, dict):
        return {k: to_serializable(v) for k, v in obj.items()}
    return obj


class AgentResponse:
    """Consistent JSON responses for agent endpoints."""

    @staticmethod
    def success(
        data: Any, status_code: int = status.HTTP_200_OK, headers: dict[str, str] | None = None
    ) -> JSONResponse:
        """Return ``data`` as the JSON body."""
        content = jsonable_encoder(to_serializable(data))
        return JSONResponse(content=content, status_code=status_code, headers=headers)

    @staticmethod
    def error(
        message: str,
        code: str = "api_error",
        details: Any | None = None,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        headers: dict[str, str] | None = None,
    ) -> JSONResponse:
        """Create an error response with the shared envelope.

        Args:
            message: Human-readable error message
            code: Machine-readable error code for client handling
            details: Optional structured details
            status_code: HTTP status code (default: 400)
            headers: Optional response headers
        """
        error_content: dict[str, Any] = {"error": {"code": code, "message": message}}
        if details is not None:
            error_content["error"]["details"] = to_serializable(details)

        logger.debug(
            "Creating error response",
            extra={
                "status_code": status_code,
                "error_code": code,
                "has_details": details is not None,
            },
        )

        return JSONResponse(content=jsonable_encoder(error_content), status_code=status_code, headers=headers)
