"""Docs Agent - FastAPI Application

This module creates and configures the FastAPI application for the Docs Agent.
"""

import traceback
import uuid
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from .api import auth_router, health_router, tasks_router
from .api.dependencies import AgentServices
from .auth.credential_store import CredentialStore
from .auth.lifecycle import CredentialLifecycleManager
from .auth.oauth import GoogleOAuthClient
from .core.cache_backend import close_cache_backend, get_cache_backend
from .core.config import get_settings_instance
from .core.encryption import get_token_encryption_service
from .core.exceptions import DocsAgentException
from .core.http_client import close_http_client
from .core.logging import get_logger, setup_logging
from .core.middleware import RequestCounter, RequestIDMiddleware, TimingMiddleware
from .core.rate_limiting import FixedWindowRateLimiter
from .services.chat_agent import build_chat_agent
from .services.client_factory import GoogleClientFactory
from .tasks.dispatcher import TaskDispatcher

logger = get_logger(__name__)
settings = get_settings_instance()


def generate_error_id() -> str:
    """Generate a unique error ID for tracking."""
    return f"ERR-{uuid.uuid4().hex[:8].upper()}"


def get_request_context(request: Request) -> dict[str, Any]:
    """Extract relevant context from request for error logging."""
    return {
        "method": request.method,
        "path": request.url.path,
        "query_params": dict(request.query_params),
        "client": {"host": request.client.host if request.client else None},
        "request_id": getattr(request.state, "request_id", None),
    }


async def build_services() -> AgentServices:
    """Wire the credential store, lifecycle manager, client factory and dispatcher."""
    settings = get_settings_instance()
    backend = await get_cache_backend()

    encryption = get_token_encryption_service()
    if encryption is None:
        logger.warning("DOCSAGENT_TOKEN_ENCRYPTION_KEY not set; credentials are stored unencrypted")

    oauth_client = GoogleOAuthClient.from_settings(settings)
    if not oauth_client.configured:
        logger.warning("Google OAuth is not configured; /auth/google will return 503")

    manager = CredentialLifecycleManager(CredentialStore(backend, encryption), oauth_client)

    rate_limiter = None
    if settings.task_rate_limit_enabled:
        rate_limiter = FixedWindowRateLimiter(
            backend,
            limit=settings.task_rate_limit_requests,
            window_seconds=settings.task_rate_limit_period,
            namespace="rl:tasks",
        )

    return AgentServices(
        factory=GoogleClientFactory(manager),
        dispatcher=TaskDispatcher(default_timeout_ms=settings.task_default_timeout_ms),
        chat_agent=build_chat_agent(settings),
        rate_limiter=rate_limiter,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    setup_logging()

    logger.info("Starting Docs Agent...")
    logger.info(f"Version: {settings.version}")
    logger.info(f"Environment: {settings.environment}")

    # Tests install their own services before startup
    if getattr(app.state, "services", None) is None:
        app.state.services = await build_services()

    logger.info(
        "Docs Agent ready",
        extra={"agent_id": settings.agent_id, "capabilities": app.state.services.dispatcher.capabilities()},
    )

    yield

    logger.info("Shutting down Docs Agent...")
    await close_http_client()
    await close_cache_backend()
    logger.info("Docs Agent shutdown complete")


def setup_middleware(app: FastAPI) -> None:
    """Request ID, timing (feeding the /metrics request counter) and CORS."""
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(TimingMiddleware, counter=app.state.request_counter)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register handlers that render every failure in the shared error envelope.

    Server errors (5xx) carry an ``error_id`` that also appears in the log
    line. The catch-all handler only exposes exception details in debug mode.
    """

    @app.exception_handler(DocsAgentException)
    async def docsagent_exception_handler(request: Request, exc: DocsAgentException):
        error_id = generate_error_id() if exc.status_code >= 500 else None

        if exc.status_code >= 500:
            logger.error(
                "Docs Agent server error",
                extra={
                    "error_id": error_id,
                    "error_code": exc.error_code,
                    "error_message": exc.message,
                    "details": exc.details,
                    "request_context": get_request_context(request),
                },
            )
        else:
            logger.warning(
                "Docs Agent client error",
                extra={
                    "error_code": exc.error_code,
                    "error_message": exc.message,
                    "request_context": get_request_context(request),
                },
            )

        error_response = {
            "error": {
                "code": exc.error_code,
                "message": exc.message,
                "details": exc.details,
            }
        }
        if error_id:
            error_response["error"]["error_id"] = error_id

        return JSONResponse(
            status_code=exc.status_code,
            content=error_response,
            headers=getattr(exc, "headers", None) or None,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.warning(
            "Request validation failed",
            extra={"errors": exc.errors(), "request_context": get_request_context(request)},
        )
        return JSONResponse(
            status_code=400,
            content={
                "error": {
                    "code": "invalid_request",
                    "message": "Malformed request body",
                    "details": {"errors": jsonable_errors(exc)},
                }
            },
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        error_id = generate_error_id() if exc.status_code >= 500 else None
        if error_id:
            logger.error(
                "HTTP server error",
                extra={"error_id": error_id, "detail": exc.detail, "request_context": get_request_context(request)},
            )

        error_response = {
            "error": {
                "code": f"HTTP_{exc.status_code}",
                "message": exc.detail,
                "details": {},
            }
        }
        if error_id:
            error_response["error"]["error_id"] = error_id

        return JSONResponse(
            status_code=exc.status_code,
            content=error_response,
            headers=getattr(exc, "headers", None) or None,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        error_id = generate_error_id()
        include_traceback = settings.debug or settings.log_level == "DEBUG"

        logger.error(
            "Unhandled exception",
            extra={
                "error_id": error_id,
                "exception_type": type(exc).__name__,
                "request_context": get_request_context(request),
            },
            exc_info=exc,
        )

        error_response = {
            "error": {
                "code": "internal_error",
                "message": "Internal server error",
                "error_id": error_id,
                "details": {},
            }
        }
        if include_traceback:
            error_response["error"]["details"] = {
                "exception_type": type(exc).__name__,
                "exception_message": str(exc),
                "traceback": traceback.format_exception(type(exc), exc, exc.__traceback__),
            }

        return JSONResponse(status_code=500, content=error_response)


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    """Validation errors reduced to location and message."""
    return [{"loc": list(e.get("loc", ())), "msg": e.get("msg", "")} for e in exc.errors()]


def setup_routes(app: FastAPI) -> None:
    """Configure application routes."""
    app.include_router(tasks_router)
    app.include_router(auth_router)
    app.include_router(health_router)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="Google Docs and Drive agent",
        version=settings.version,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.request_counter = RequestCounter()
    app.state.services = None

    setup_middleware(app)
    setup_exception_handlers(app)
    setup_routes(app)

    logger.info("Docs Agent FastAPI application created successfully")
    return app


# Configure logging before app instantiation; the lifespan call is a no-op afterwards
setup_logging()

app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_config=None)
