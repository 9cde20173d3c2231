"""Error taxonomy shared by every component of the generation core."""

from __future__ import annotations

import re
from typing import Any

import httpx

from .enums import ErrorType, Service

__all__ = [
    "BackendError",
    "BackendUnavailableError",
    "GenerationError",
    "GenerationNotFoundError",
    "StandardError",
    "classify_error",
]

_RETRYABLE_TYPES = frozenset({ErrorType.NETWORK, ErrorType.QUOTA})

_QUOTA_PATTERN = re.compile(
    r"rate[\s_-]?limit|too many requests|quota|credit|insufficient (balance|funds)",
    re.IGNORECASE,
)
_NETWORK_PATTERN = re.compile(
    r"fetch|network|timed? ?out|connection (refused|reset|error)", re.IGNORECASE
)


class GenerationError(Exception):
    """Base error for generation core failures."""


class BackendError(GenerationError):
    """Raised when the functions gateway returns an error response."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class BackendUnavailableError(BackendError):
    """Raised when the functions gateway could not be reached at all."""


class GenerationNotFoundError(GenerationError, LookupError):
    """Raised when a generation id is not present in the registry."""


class StandardError(GenerationError):
    """Provider independent error surfaced to callers.

    UI and retry logic only ever branch on :attr:`type`, never on the shape of
    whatever the provider or gateway returned.
    """

    def __init__(
        self,
        type: ErrorType,
        message: str,
        details: str | None = None,
        *,
        provider: Service | None = None,
    ) -> None:
        super().__init__(message)
        self.type = ErrorType(type)
        self.message = message
        self.details = details
        self.provider = provider

    @property
    def retryable(self) -> bool:
        return self.type in _RETRYABLE_TYPES

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "message": self.message,
            "details": self.details,
            "provider": self.provider.value if self.provider else None,
            "retryable": self.retryable,
        }

    def __repr__(self) -> str:
        return f"StandardError(type={self.type.value!r}, message={self.message!r})"


def classify_error(
    exc: BaseException, *, provider: Service | None = None
) -> StandardError:
    """Map any exception raised around a backend call onto :class:`StandardError`."""

    if isinstance(exc, StandardError):
        return exc

    text = _error_text(exc)

    if isinstance(
        exc,
        BackendUnavailableError | httpx.TransportError | TimeoutError | ConnectionError,
    ):
        return StandardError(
            ErrorType.NETWORK, "Network error", text, provider=provider
        )

    status_code = getattr(exc, "status_code", None)
    if status_code == 429 or _QUOTA_PATTERN.search(text):
        return StandardError(
            ErrorType.QUOTA, "Generation quota exceeded", text, provider=provider
        )

    if _NETWORK_PATTERN.search(text):
        return StandardError(
            ErrorType.NETWORK, "Network error", text, provider=provider
        )

    return StandardError(
        ErrorType.UNKNOWN,
        "Generation failed",
        text or "Unknown error occurred",
        provider=provider,
    )


def _error_text(exc: BaseException) -> str:
    message = getattr(exc, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(exc)
