"""Human readable lifecycle notifications for UI consumers."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any

from .enums import NotificationKind, Service
from .exceptions import StandardError
from .logging import get_logger
from .models import Notification

__all__ = ["GenerationNotifier", "NotificationCallback"]

NotificationCallback = Callable[[Notification], Awaitable[None] | None]


class GenerationNotifier:
    """Fan out lifecycle transitions to subscribed callbacks."""

    def __init__(self) -> None:
        self._subscribers: list[NotificationCallback] = []
        self._pending: set[asyncio.Future[None]] = set()
        self._log = get_logger(__name__)

    def subscribe(self, callback: NotificationCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def submission_started(self, generation_id: str, service: Service) -> None:
        self._publish(
            NotificationKind.SUBMISSION_STARTED,
            generation_id,
            "Starting generation",
            f"Creating a track with {service.display_name}...",
        )

    def queued(self, generation_id: str, service: Service, task_id: str) -> None:
        self._publish(
            NotificationKind.QUEUED,
            generation_id,
            "Generation started",
            f"Task {task_id} added to the {service.display_name} queue",
        )

    def completed(self, generation_id: str) -> None:
        self._publish(
            NotificationKind.COMPLETED,
            generation_id,
            "Generation complete",
            "Track created and saved to the library",
        )

    def failed(self, generation_id: str, error: StandardError | str | None) -> None:
        if isinstance(error, StandardError):
            message, payload = error.message, error.to_dict()
        else:
            message, payload = error or "Unknown generation error", None
        self._publish(
            NotificationKind.FAILED,
            generation_id,
            "Generation failed",
            message,
            error=payload,
        )

    def timed_out(self, generation_id: str) -> None:
        self._publish(
            NotificationKind.TIMEOUT,
            generation_id,
            "Generation timed out",
            "Check the status manually or try again",
        )

    def cancelled(self, generation_id: str) -> None:
        self._publish(
            NotificationKind.CANCELLED,
            generation_id,
            "Generation cancelled",
            "The task was stopped",
        )

    async def drain(self) -> None:
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _publish(
        self,
        kind: NotificationKind,
        generation_id: str,
        title: str,
        message: str,
        *,
        error: dict[str, Any] | None = None,
    ) -> None:
        notification = Notification(
            kind=kind,
            generation_id=generation_id,
            title=title,
            message=message,
            error=error,
        )
        log = self._log.bind(generation_id=generation_id, kind=kind.value)
        if notification.is_error:
            log.warning("generation-notification", message_text=message)
        else:
            log.info("generation-notification", message_text=message)

        for callback in list(self._subscribers):
            try:
                result = callback(notification)
            except Exception:
                log.exception("notification-callback-failed")
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._pending.add(task)
                task.add_done_callback(self._on_callback_done)

    def _on_callback_done(self, task: asyncio.Future[None]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._log.error(
                "notification-callback-failed",
                error=str(exc),
                exc_info=exc,
            )
