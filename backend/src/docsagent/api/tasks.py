"""Task submission endpoint."""

import logging

from fastapi import APIRouter, Depends, Request, status

from ..core.exceptions import DocsAgentException, InvalidTaskRequestError, UserNotAuthorizedError
from ..core.response import AgentResponse
from ..services.document_tools import DocumentTools
from ..services.google_workspace_client import GoogleWorkspaceClient
from ..tasks.capabilities import CapabilityContext
from ..tasks.models import TaskRequest, TaskResponse
from .dependencies import AgentServices, check_task_rate_limit, get_request_id, get_services, verify_caller

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tasks", tags=["tasks"])

MISSING_USER_MESSAGE = "Missing user_email or user_id in task context"


async def _resolve_client(services: AgentServices, task: TaskRequest) -> GoogleWorkspaceClient:
    user_email = task.context.get("user_email")
    user_id = task.context.get("user_id")
    if not user_email and not user_id:
        raise UserNotAuthorizedError(MISSING_USER_MESSAGE)

    # user_id takes precedence; no fallback to the other field
    if user_id:
        client = await services.factory.get_client_for_user(str(user_id))
    else:
        client = await services.factory.get_client_for_email(str(user_email))
    if client is None:
        raise UserNotAuthorizedError()
    return client


@router.post(
    "",
    response_model=TaskResponse,
    dependencies=[Depends(verify_caller), Depends(check_task_rate_limit)],
    summary="Submit a task",
)
async def submit_task(task: TaskRequest, request: Request, services: AgentServices = Depends(get_services)):
    """Resolve the caller's Google client and dispatch the task.

    Every dispatched outcome (completed, failed, timeout, rejected) is a 200
    with a TaskResponse body. Errors before dispatch use the error envelope.
    """
    if not task.is_addressable():
        raise InvalidTaskRequestError()

    try:
        client = await _resolve_client(services, task)
    except UserNotAuthorizedError:
        raise
    except DocsAgentException as e:
        logger.error(
            "Task setup failed",
            extra={"task_id": task.task_id, "error_code": e.error_code, "request_id": get_request_id(request)},
        )
        return AgentResponse.error(e.message, code="internal_error", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
    except Exception:
        logger.exception(
            "Task setup failed",
            extra={"task_id": task.task_id, "request_id": get_request_id(request)},
        )
        return AgentResponse.error("Internal error while preparing task", code="internal_error", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    context = CapabilityContext(tools=DocumentTools(client), agent=services.chat_agent)
    result = await services.dispatcher.dispatch(task, context)
    return AgentResponse.success(result)
