"""
API package for the Docs Agent.

This package contains the FastAPI routers for all endpoints.
"""

from .auth import router as auth_router
from .health import router as health_router
from .tasks import router as tasks_router

__all__ = ["auth_router", "health_router", "tasks_router"]
