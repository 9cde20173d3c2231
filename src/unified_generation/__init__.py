"""Unified music generation core for the Suno and Mureka providers."""

from .backend import FunctionsBackend, FunctionsClient
from .completion import CompletionTrigger
from .config import BackendConfig, GenerationSettings
from .enums import (
    ErrorType,
    GenerationMode,
    GenerationStatus,
    InputType,
    NotificationKind,
    Service,
    StepId,
    StepStatus,
)
from .exceptions import (
    BackendError,
    BackendUnavailableError,
    GenerationError,
    GenerationNotFoundError,
    StandardError,
    classify_error,
)
from .logging import configure_logging, get_logger
from .mappers import MurekaMapper, ServiceMapper, SunoMapper, get_mapper
from .models import (
    CanonicalRequest,
    Generation,
    GenerationContext,
    GenerationFlags,
    Notification,
    ProviderStatus,
    Step,
)
from .notifications import GenerationNotifier
from .orchestrator import GenerationOrchestrator
from .poller import PollerState, StatusPoller
from .registry import GenerationRegistry

__all__ = (
    "BackendConfig",
    "BackendError",
    "BackendUnavailableError",
    "CanonicalRequest",
    "CompletionTrigger",
    "ErrorType",
    "FunctionsBackend",
    "FunctionsClient",
    "Generation",
    "GenerationContext",
    "GenerationError",
    "GenerationFlags",
    "GenerationMode",
    "GenerationNotFoundError",
    "GenerationNotifier",
    "GenerationOrchestrator",
    "GenerationRegistry",
    "GenerationSettings",
    "GenerationStatus",
    "InputType",
    "MurekaMapper",
    "Notification",
    "NotificationKind",
    "PollerState",
    "ProviderStatus",
    "Service",
    "ServiceMapper",
    "StandardError",
    "StatusPoller",
    "Step",
    "StepId",
    "StepStatus",
    "SunoMapper",
    "classify_error",
    "configure_logging",
    "get_logger",
    "get_mapper",
)
