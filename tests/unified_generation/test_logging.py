from __future__ import annotations

import logging
from collections.abc import Iterator

import pytest
import structlog

from unified_generation import logging as generation_logging
from unified_generation import orchestrator as orchestrator_module
from unified_generation.config import GenerationSettings
from unified_generation.logging import configure_logging, get_logger, resolve_level
from unified_generation.orchestrator import GenerationOrchestrator


@pytest.fixture(autouse=True)
def _reset_logging(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.setattr(generation_logging, "_configured", False)
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    logging.getLogger().setLevel(logging.WARNING)


def _settings(**values: object) -> GenerationSettings:
    return GenerationSettings(_env_file=None, **values)


def test_configure_logging_uses_settings_level() -> None:
    configure_logging(_settings(log_level="debug"))

    assert structlog.is_configured()
    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.DEBUG
    assert structlog.contextvars.get_contextvars()["component"] == (
        generation_logging.COMPONENT_NAME
    )
    get_logger("unified_generation.tests").info("logging-configured", service="suno")


def test_transport_loggers_stay_quiet_above_debug() -> None:
    configure_logging(_settings(log_level="INFO", log_json=False))

    assert logging.getLogger().level == logging.INFO
    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("httpcore").level == logging.WARNING


def test_configure_logging_runs_once_unless_forced() -> None:
    configure_logging(_settings(log_level="ERROR"))
    configure_logging(_settings(log_level="DEBUG"))

    assert logging.getLogger().level == logging.ERROR

    configure_logging(_settings(log_level="DEBUG"), force=True)

    assert logging.getLogger().level == logging.DEBUG


def test_resolve_level_falls_back_to_info() -> None:
    assert resolve_level("warning") == logging.WARNING
    assert resolve_level("chatty") == logging.INFO


@pytest.mark.asyncio
async def test_orchestrator_from_settings_configures_logging(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    seen: list[GenerationSettings] = []
    monkeypatch.setattr(orchestrator_module, "configure_logging", seen.append)
    settings = _settings(log_level="WARNING")

    orchestrator = GenerationOrchestrator.from_settings(settings)
    await orchestrator.aclose()

    assert seen == [settings]
