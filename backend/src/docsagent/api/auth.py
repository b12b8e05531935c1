"""Google account connection endpoints"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import RedirectResponse

from ..core.exceptions import MissingCodeError, OAuthCallbackError
from ..core.response import AgentResponse
from .dependencies import AgentServices, get_services, verify_caller

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


@router.get("/google", summary="Start Google OAuth")
async def start_google_oauth(
    state: Optional[str] = Query(None, description="Opaque value echoed back to the callback"),
    services: AgentServices = Depends(get_services),
):
    """Redirect the browser to Google's consent screen."""
    url = services.factory.build_authorization_url(state=state)
    return RedirectResponse(url=url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)


@router.get("/google/callback", summary="Google OAuth callback")
async def google_oauth_callback(
    code: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    services: AgentServices = Depends(get_services),
):
    if error:
        logger.warning("Google OAuth returned an error", extra={"oauth_error": error, "state": state})
        raise OAuthCallbackError(error)
    if not code:
        raise MissingCodeError()

    credential = await services.factory.complete_authorization(code)
    return AgentResponse.success(
        {
            "success": True,
            "message": "Google account connected",
            "user": {"id": credential.user_id, "email": credential.email},
            "state": state,
        }
    )


@router.get("/users", dependencies=[Depends(verify_caller)], summary="List connected users")
async def list_users(services: AgentServices = Depends(get_services)):
    credentials = await services.factory.list_users()
    users = [c.public_view() for c in credentials]
    return AgentResponse.success({"users": users, "count": len(users)})


@router.delete("/users/{user_id}", dependencies=[Depends(verify_caller)], summary="Disconnect a user")
async def remove_user(user_id: str, services: AgentServices = Depends(get_services)):
    """Delete the user's stored credential and evict cached clients.

    Removing an unknown user is not an error; ``removed`` reports whether a
    credential existed.
    """
    removed = await services.factory.remove_user(user_id)
    logger.info("User removal requested", extra={"user_id": user_id, "removed": removed})
    return AgentResponse.success({"success": True, "user_id": user_id, "removed": removed})
