"""Health, metrics and agent discovery endpoints.

None of these require caller authentication.
"""

import time

from fastapi import APIRouter, Depends, Request

from ..core.config import get_settings_instance
from ..core.logging import get_logger
from ..core.response import AgentResponse
from .dependencies import AgentServices, get_services

logger = get_logger(__name__)
router = APIRouter(tags=["health"])


@router.get("/health", summary="Liveness check")
async def health_check(services: AgentServices = Depends(get_services)):
    settings = get_settings_instance()
    return AgentResponse.success(
        {
            "status": "healthy",
            "agent_id": settings.agent_id,
            "version": settings.version,
            "environment": settings.environment,
            "timestamp": time.time(),
            "uptime_seconds": round(time.time() - services.started_at, 3),
            "oauth_configured": settings.google_oauth_configured,
            "chat_agent_enabled": services.chat_agent is not None,
        }
    )


@router.get("/metrics", summary="Process counters")
async def metrics(request: Request, services: AgentServices = Depends(get_services)):
    counter = getattr(request.app.state, "request_counter", None)
    users = await services.factory.list_users()
    return AgentResponse.success(
        {
            "uptime_seconds": round(time.time() - services.started_at, 3),
            "requests_total": counter.total if counter is not None else 0,
            "tasks_processed": services.dispatcher.tasks_processed,
            "tasks_abandoned_in_flight": services.dispatcher.abandoned_in_flight,
            "connected_users": len(users),
        }
    )


def _agent_card(services: AgentServices) -> dict:
    settings = get_settings_instance()
    card = {
        "agent_id": settings.agent_id,
        "name": settings.app_name,
        "description": settings.agent_description,
        "version": settings.version,
        "capabilities": services.dispatcher.capabilities(),
        "skills": services.dispatcher.registry.describe(),
        "authentication": {
            "type": "oauth2",
            "provider": "google",
            "authorization_endpoint": "/auth/google",
        },
        "endpoints": {"tasks": "/tasks", "health": "/health", "metrics": "/metrics"},
    }
    if settings.workspace_id:
        card["workspace_id"] = settings.workspace_id
    if settings.public_url:
        card["url"] = settings.public_url
    return card


@router.get("/agent/info", summary="Agent description")
async def agent_info(services: AgentServices = Depends(get_services)):
    return AgentResponse.success(_agent_card(services))


@router.get("/.well-known/agent.json", summary="Agent discovery card")
async def agent_discovery(services: AgentServices = Depends(get_services)):
    return AgentResponse.success(_agent_card(services))
