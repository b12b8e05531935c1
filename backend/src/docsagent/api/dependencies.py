"""
FastAPI dependencies for the Docs Agent.

Service lookup from ``app.state``, caller authentication and task rate
limiting.
"""

import hmac
import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from fastapi import Request

from ..core.config import get_settings_instance
from ..core.exceptions import AuthenticationError, RateLimitExceededError
from ..core.rate_limiting import FixedWindowRateLimiter, get_client_ip
from ..services.chat_agent import ChatAgent
from ..services.client_factory import GoogleClientFactory
from ..tasks.dispatcher import TaskDispatcher

logger = logging.getLogger(__name__)


@dataclass
class AgentServices:
    """Everything the routes need, built once by the application lifespan."""

    factory: GoogleClientFactory
    dispatcher: TaskDispatcher
    chat_agent: Optional[ChatAgent] = None
    rate_limiter: Optional[FixedWindowRateLimiter] = None
    started_at: float = field(default_factory=time.time)


def get_services(request: Request) -> AgentServices:
    return request.app.state.services


def get_request_id(request: Request) -> str:
    """Extract request ID from request state."""
    return getattr(request.state, "request_id", "unknown")


def _presented_key(request: Request) -> Optional[str]:
    authorization = request.headers.get("Authorization", "")
    if authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return request.headers.get("X-Admin-Key") or None


async def verify_caller(request: Request) -> None:
    """Require the configured admin key as a Bearer token or ``X-Admin-Key``.

    ``DOCSAGENT_SKIP_TASK_AUTH`` disables the check. With no admin key
    configured every caller is refused.
    """
    settings = get_settings_instance()
    if settings.skip_task_auth:
        return

    presented = _presented_key(request)
    if not presented:
        raise AuthenticationError("Missing caller credentials")

    if not settings.admin_key or not hmac.compare_digest(presented, settings.admin_key):
        logger.warning(
            "Rejected caller credentials",
            extra={"path": request.url.path, "request_id": get_request_id(request)},
        )
        raise AuthenticationError("Invalid caller credentials")


async def check_task_rate_limit(request: Request) -> None:
    """Per-client fixed-window limit on task submission."""
    services = get_services(request)
    if services.rate_limiter is None:
        return

    client_ip = get_client_ip(request.headers, request.client.host if request.client else None)
    result = await services.rate_limiter.check(f"tasks:{client_ip}")
    if not result.allowed:
        logger.warning(
            "Task rate limit exceeded",
            extra={"client_ip": client_ip, "retry_after": result.retry_after_seconds},
        )
        raise RateLimitExceededError(
            result.retry_after_seconds,
            details={"limit": result.limit},
            headers=result.to_headers(),
        )
