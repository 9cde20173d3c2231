from __future__ import annotations

import pytest

from unified_generation.completion import PERSIST_ENDPOINT, CompletionTrigger
from unified_generation.enums import ErrorType, NotificationKind, Service
from unified_generation.exceptions import BackendError, StandardError
from unified_generation.models import Notification
from unified_generation.notifications import GenerationNotifier

from .fakes import FakeBackend


@pytest.mark.asyncio
async def test_notifier_fans_out_to_sync_and_async_subscribers() -> None:
    notifier = GenerationNotifier()
    received: list[Notification] = []
    awaited: list[NotificationKind] = []

    def broken(notification: Notification) -> None:
        raise RuntimeError("subscriber failure")

    async def async_subscriber(notification: Notification) -> None:
        awaited.append(notification.kind)

    notifier.subscribe(broken)
    notifier.subscribe(received.append)
    notifier.subscribe(async_subscriber)

    notifier.submission_started("g1", Service.SUNO)
    notifier.queued("g1", Service.MUREKA, "task-7")
    await notifier.drain()

    assert [n.kind for n in received] == [
        NotificationKind.SUBMISSION_STARTED,
        NotificationKind.QUEUED,
    ]
    assert received[0].message == "Creating a track with Suno AI..."
    assert received[1].message == "Task task-7 added to the Mureka queue"
    assert awaited == [NotificationKind.SUBMISSION_STARTED, NotificationKind.QUEUED]


def test_failed_notification_carries_error_payload() -> None:
    notifier = GenerationNotifier()
    received: list[Notification] = []
    unsubscribe = notifier.subscribe(received.append)

    error = StandardError(ErrorType.QUOTA, "Generation quota exceeded", "429")
    notifier.failed("g1", error)
    notifier.failed("g2", None)
    unsubscribe()
    notifier.timed_out("g3")

    assert len(received) == 2
    assert received[0].is_error
    assert received[0].message == "Generation quota exceeded"
    assert received[0].error is not None
    assert received[0].error["type"] == "quota"
    assert received[1].message == "Unknown generation error"
    assert received[1].error is None


@pytest.mark.asyncio
async def test_persist_asset_posts_download_request() -> None:
    backend = FakeBackend()
    backend.always(PERSIST_ENDPOINT, {"success": True})
    trigger = CompletionTrigger(backend)

    trigger.persist_asset("g1", "https://cdn/a.mp3", "track-1", task_id="t1")
    assert trigger.pending == 1
    await trigger.drain()

    assert trigger.pending == 0
    assert backend.calls_to(PERSIST_ENDPOINT) == [
        {
            "generation_id": "g1",
            "external_url": "https://cdn/a.mp3",
            "filename": "track-1",
            "taskId": "t1",
        }
    ]


@pytest.mark.asyncio
async def test_persist_failures_are_contained() -> None:
    backend = FakeBackend()
    backend.queue(
        PERSIST_ENDPOINT,
        BackendError("storage unavailable", status_code=500),
        {"success": False, "error": "bucket missing"},
    )
    trigger = CompletionTrigger(backend)

    first = trigger.persist_asset("g1", "https://cdn/a.mp3", "a")
    second = trigger.persist_asset("g1", "https://cdn/b.mp3", "b")
    await trigger.drain()

    assert first.exception() is None
    assert second.exception() is None
    assert len(backend.calls_to(PERSIST_ENDPOINT)) == 2
