from __future__ import annotations

from enum import StrEnum

__all__ = [
    "ErrorType",
    "GenerationMode",
    "GenerationStatus",
    "InputType",
    "NotificationKind",
    "Service",
    "StepId",
    "StepStatus",
]


class Service(StrEnum):
    """External music providers reachable through the functions gateway."""

    SUNO = "suno"
    MUREKA = "mureka"

    @property
    def display_name(self) -> str:
        return "Suno AI" if self is Service.SUNO else "Mureka"


class InputType(StrEnum):
    """Which field of the request carries the primary content."""

    DESCRIPTION = "description"
    LYRICS = "lyrics"


class GenerationMode(StrEnum):
    QUICK = "quick"
    CUSTOM = "custom"


class GenerationStatus(StrEnum):
    """Lifecycle states tracked for a single generation attempt."""

    PENDING = "pending"
    QUEUED = "queued"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES

    @property
    def rank(self) -> int:
        """Position in the forward-only lifecycle; terminal states share a rank."""
        return _STATUS_RANK[self]


_TERMINAL_STATUSES = frozenset(
    {
        GenerationStatus.COMPLETED,
        GenerationStatus.FAILED,
        GenerationStatus.TIMEOUT,
        GenerationStatus.CANCELLED,
    }
)

_STATUS_RANK = {
    GenerationStatus.PENDING: 0,
    GenerationStatus.QUEUED: 1,
    GenerationStatus.GENERATING: 2,
    GenerationStatus.COMPLETED: 3,
    GenerationStatus.FAILED: 3,
    GenerationStatus.TIMEOUT: 3,
    GenerationStatus.CANCELLED: 3,
}


class StepId(StrEnum):
    """Provider independent phases, declared in execution order."""

    VALIDATE = "validate"
    QUEUE = "queue"
    GENERATE = "generate"
    PROCESS = "process"
    SAVE = "save"


class StepStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"

    @property
    def rank(self) -> int:
        if self is StepStatus.PENDING:
            return 0
        if self is StepStatus.RUNNING:
            return 1
        return 2


class ErrorType(StrEnum):
    """Provider independent error classification."""

    NETWORK = "network"
    AUTH = "auth"
    QUOTA = "quota"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


class NotificationKind(StrEnum):
    """User visible lifecycle events."""

    SUBMISSION_STARTED = "submission-started"
    QUEUED = "queued"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
