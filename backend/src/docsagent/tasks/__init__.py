"""Task capabilities and dispatch."""

from .capabilities import CAPABILITIES, Capability, CapabilityContext, CapabilityRegistry, CapabilityType
from .dispatcher import TaskDispatcher
from .models import TaskError, TaskRequest, TaskResponse, TaskStatus

__all__ = [
    "CAPABILITIES",
    "Capability",
    "CapabilityContext",
    "CapabilityRegistry",
    "CapabilityType",
    "TaskDispatcher",
    "TaskError",
    "TaskRequest",
    "TaskResponse",
    "TaskStatus",
]
