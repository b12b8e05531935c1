"""Task request/response schemas."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class TaskStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"
    REJECTED = "rejected"


class TaskRequest(BaseModel):
    """Inbound task. Every field is optional; the dispatcher fills defaults."""

    model_config = ConfigDict(extra="ignore")

    task_id: Optional[str] = None
    type: Optional[str] = None
    description: Optional[str] = None
    input: Optional[dict[str, Any]] = None
    context: dict[str, Any] = Field(default_factory=dict)
    timeout_ms: Optional[int] = None
    from_agent: Optional[str] = None
    delegation_chain: list[str] = Field(default_factory=list)

    def is_addressable(self) -> bool:
        """False when none of task_id, type or description was supplied."""
        return bool(self.task_id or self.type or self.description)


class TaskError(BaseModel):
    code: str
    message: str


class TaskResponse(BaseModel):
    task_id: str
    status: TaskStatus
    output: Any = None
    error: Optional[TaskError] = None
    execution_time_ms: int = 0
