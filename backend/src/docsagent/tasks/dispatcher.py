"""Task dispatch: resolve a capability, run it under a deadline, normalize the outcome.

Terminal states: ``rejected`` (no capability and no fallback), ``completed``,
``failed`` and ``timeout``. Every dispatch that reaches a terminal state
increments the processed-task counter once and logs one "Task processed"
record.

A timeout stops the wait, not the work. The handler keeps running in the
background; the dispatcher holds a reference until it finishes and then
discards its result.
"""

from __future__ import annotations

import asyncio
import functools
import math
import time
import uuid
from typing import Any, Optional

from ..core.exceptions import DocsAgentException, TaskExecutionError, TaskTimeoutError, UnknownTaskTypeError
from ..core.logging import get_logger
from .capabilities import Capability, CapabilityContext, CapabilityRegistry, CapabilityType
from .models import TaskError, TaskRequest, TaskResponse, TaskStatus

logger = get_logger(__name__)

DEFAULT_TIMEOUT_MS = 30000


def _failure_message(exc: BaseException) -> str:
    if isinstance(exc, DocsAgentException):
        return exc.message
    return str(exc) or type(exc).__name__


def _is_timeout(exc: BaseException, message: str) -> bool:
    return isinstance(exc, TimeoutError) or "timeout" in message


class TaskDispatcher:
    """Routes TaskRequests to capability handlers."""

    def __init__(self, registry: CapabilityRegistry | None = None, default_timeout_ms: int = DEFAULT_TIMEOUT_MS):
        self.registry = registry or CapabilityRegistry()
        self.default_timeout_ms = default_timeout_ms if default_timeout_ms > 0 else DEFAULT_TIMEOUT_MS
        self._tasks_processed = 0
        self._abandoned: set[asyncio.Future] = set()

    @property
    def tasks_processed(self) -> int:
        return self._tasks_processed

    @property
    def abandoned_in_flight(self) -> int:
        """Timed-out handlers that are still running."""
        return len(self._abandoned)

    def capabilities(self) -> list[str]:
        return self.registry.keys()

    async def dispatch(self, request: TaskRequest, context: CapabilityContext) -> TaskResponse:
        """Run one task to a terminal state. Never raises for handler failures."""
        started = time.monotonic()

        task_id = request.task_id or f"task_{uuid.uuid4().hex}"
        task_type = request.type or CapabilityType.CHAT.value
        payload: dict[str, Any] = dict(request.input) if request.input is not None else {"message": request.description}
        timeout_ms = request.timeout_ms if request.timeout_ms and request.timeout_ms > 0 else self.default_timeout_ms

        capability = self.registry.get(task_type)
        if capability is None:
            if not self.registry.is_fallback_eligible(task_type):
                rejection = UnknownTaskTypeError(task_type, self.registry.keys())
                return self._finish(
                    request,
                    task_id,
                    task_type,
                    started,
                    TaskStatus.REJECTED,
                    error=TaskError(code=rejection.error_code, message=rejection.message),
                )

            logger.debug(
                "Falling back to chat capability",
                extra={"task_id": task_id, "task_type": task_type},
            )
            capability = self.registry.fallback
            if request.description is not None:
                payload = {**payload, "description": request.description}

        status, output, error, deadline_hit = await self._execute(capability, payload, context, timeout_ms, task_id)
        return self._finish(
            request,
            task_id,
            task_type,
            started,
            status,
            output=output,
            error=error,
            # The timer may fire a hair early by clock resolution
            min_duration_ms=timeout_ms if deadline_hit else 0,
        )

    async def _execute(
        self,
        capability: Capability,
        payload: dict[str, Any],
        context: CapabilityContext,
        timeout_ms: int,
        task_id: str,
    ) -> tuple[TaskStatus, Any, Optional[TaskError], bool]:
        """Run the handler against the deadline.

        Returns ``(status, output, error, deadline_hit)``.
        """
        task = asyncio.ensure_future(capability.handler(payload, context))
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000)
        except asyncio.CancelledError:
            # Caller went away; leave the handler running like a timeout would
            self._abandon(task, task_id)
            raise

        if task not in done:
            self._abandon(task, task_id)
            expired = TaskTimeoutError(timeout_ms)
            return TaskStatus.TIMEOUT, None, TaskError(code=expired.error_code, message=expired.message), True

        if task.cancelled():
            return TaskStatus.FAILED, None, TaskError(code="execution_error", message="Task was cancelled"), False

        exc = task.exception()
        if exc is None:
            return TaskStatus.COMPLETED, task.result(), None, False

        message = _failure_message(exc)
        if _is_timeout(exc, message):
            logger.warning("Task handler timed out", extra={"task_id": task_id, "error": message})
            return TaskStatus.TIMEOUT, None, TaskError(code="timeout", message=message), False

        logger.warning(
            "Task handler failed",
            extra={"task_id": task_id, "task_type": capability.type.value, "error": message},
            exc_info=exc,
        )
        failure = TaskExecutionError(message)
        return TaskStatus.FAILED, None, TaskError(code=failure.error_code, message=failure.message), False

    def _abandon(self, task: asyncio.Future, task_id: str) -> None:
        self._abandoned.add(task)
        task.add_done_callback(functools.partial(self._reap_abandoned, task_id))

    def _reap_abandoned(self, task_id: str, task: asyncio.Future) -> None:
        self._abandoned.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.debug(
                "Abandoned task failed after timeout",
                extra={"task_id": task_id, "error": _failure_message(exc)},
            )
        else:
            logger.debug("Abandoned task finished after timeout; result discarded", extra={"task_id": task_id})

    def _finish(
        self,
        request: TaskRequest,
        task_id: str,
        task_type: str,
        started: float,
        status: TaskStatus,
        output: Any = None,
        error: Optional[TaskError] = None,
        min_duration_ms: int = 0,
    ) -> TaskResponse:
        elapsed_ms = max(math.ceil((time.monotonic() - started) * 1000), min_duration_ms)
        self._tasks_processed += 1

        logger.info(
            "Task processed",
            extra={
                "task_id": task_id,
                "task_type": task_type,
                "status": status.value,
                "duration_ms": elapsed_ms,
                "error_code": error.code if error else None,
                "from_agent": request.from_agent,
            },
        )

        return TaskResponse(
            task_id=task_id,
            status=status,
            output=output,
            error=error,
            execution_time_ms=elapsed_ms,
        )
