from __future__ import annotations

import asyncio

import pytest

from unified_generation.enums import GenerationStatus, Service
from unified_generation.mappers import SunoMapper
from unified_generation.models import CanonicalRequest
from unified_generation.notifications import GenerationNotifier
from unified_generation.poller import PollerState, StatusPoller
from unified_generation.registry import GenerationRegistry

from .fakes import FakeBackend, suno_success


def _poller(
    backend: FakeBackend,
    registry: GenerationRegistry,
    *,
    interval: float = 0.01,
    timeout: float = 2.0,
) -> StatusPoller:
    request = CanonicalRequest(service=Service.SUNO, description="ambient pads")
    registry.create("g1", request)
    registry.update("g1", status=GenerationStatus.QUEUED, task_id="t1")
    return StatusPoller(
        "g1",
        "t1",
        request,
        mapper=SunoMapper(),
        backend=backend,
        registry=registry,
        notifier=GenerationNotifier(),
        interval=interval,
        timeout=timeout,
    )


@pytest.mark.asyncio
async def test_poller_advances_then_completes() -> None:
    backend = FakeBackend()
    registry = GenerationRegistry()
    backend.queue(
        "get-suno-record-info",
        {"status": "PENDING"},
        suno_success("https://cdn/a.mp3"),
    )
    poller = _poller(backend, registry)

    poller.start()
    poller.start()
    outcome = await poller.wait()

    assert outcome is PollerState.SUCCESS
    assert poller.ticks == 2
    assert backend.calls_to("get-suno-record-info")[0] == {
        "taskId": "t1",
        "generationId": "g1",
    }
    final = registry.require("g1")
    assert final.status is GenerationStatus.COMPLETED
    assert final.overall_progress == 100
    assert final.metadata.audio_urls == ["https://cdn/a.mp3"]


@pytest.mark.asyncio
async def test_poller_stops_when_generation_finished_elsewhere() -> None:
    backend = FakeBackend()
    registry = GenerationRegistry()
    backend.always("get-suno-record-info", {"status": "PENDING"})
    poller = _poller(backend, registry)

    poller.start()
    await asyncio.sleep(0.05)
    registry.update("g1", status=GenerationStatus.CANCELLED)
    outcome = await poller.wait()

    assert outcome is PollerState.CANCELLED
    assert registry.require("g1").status is GenerationStatus.CANCELLED


@pytest.mark.asyncio
async def test_poller_times_out() -> None:
    backend = FakeBackend()
    registry = GenerationRegistry()
    backend.always("get-suno-record-info", {"status": "PENDING"})
    poller = _poller(backend, registry, timeout=0.05)

    poller.start()
    outcome = await poller.wait()

    assert outcome is PollerState.TIMEOUT
    assert registry.require("g1").status is GenerationStatus.TIMEOUT
    assert not poller.running


@pytest.mark.asyncio
async def test_stop_cancels_without_touching_registry() -> None:
    backend = FakeBackend()
    registry = GenerationRegistry()
    backend.always("get-suno-record-info", {"status": "PENDING"})
    poller = _poller(backend, registry)

    poller.start()
    await asyncio.sleep(0.05)
    poller.stop()
    outcome = await poller.wait()

    assert outcome is PollerState.CANCELLED
    assert registry.require("g1").status is GenerationStatus.GENERATING


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        TimeoutError("read timed out"),
        ConnectionError("reset"),
        RuntimeError("custom backend exploded"),
    ],
)
async def test_failed_tick_is_retried_until_success(error: Exception) -> None:
    backend = FakeBackend()
    registry = GenerationRegistry()
    backend.queue("get-suno-record-info", error, suno_success("https://cdn/a.mp3"))
    poller = _poller(backend, registry)

    poller.start()
    outcome = await poller.wait()

    assert outcome is PollerState.SUCCESS
    assert poller.ticks == 2
    assert registry.require("g1").status is GenerationStatus.COMPLETED


@pytest.mark.asyncio
async def test_failing_ticks_still_hit_the_ceiling() -> None:
    backend = FakeBackend()
    registry = GenerationRegistry()
    backend.always("get-suno-record-info", ConnectionError("reset"))
    poller = _poller(backend, registry, timeout=0.05)

    poller.start()
    outcome = await poller.wait()

    assert outcome is PollerState.TIMEOUT
    assert poller.ticks >= 1
    assert registry.require("g1").status is GenerationStatus.TIMEOUT
