from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest
import pytest_asyncio

from unified_generation.completion import PERSIST_ENDPOINT
from unified_generation.config import GenerationSettings
from unified_generation.orchestrator import GenerationOrchestrator

from .fakes import FakeBackend


@pytest.fixture
def backend() -> FakeBackend:
    fake = FakeBackend()
    fake.always(PERSIST_ENDPOINT, {"success": True})
    return fake


@pytest.fixture
def settings() -> GenerationSettings:
    return GenerationSettings(
        _env_file=None,
        poll_interval_seconds=0.01,
        poll_timeout_seconds=2.0,
        completed_grace_seconds=60.0,
    )


@pytest.fixture
def make_orchestrator(
    backend: FakeBackend, settings: GenerationSettings
) -> Callable[..., GenerationOrchestrator]:
    def factory(**overrides: Any) -> GenerationOrchestrator:
        effective = settings.model_copy(update=overrides) if overrides else settings
        return GenerationOrchestrator(backend, settings=effective)

    return factory


@pytest_asyncio.fixture
async def orchestrator(
    make_orchestrator: Callable[..., GenerationOrchestrator],
) -> AsyncIterator[GenerationOrchestrator]:
    instance = make_orchestrator()
    try:
        yield instance
    finally:
        await instance.aclose()
