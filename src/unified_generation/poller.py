from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum

from .backend import FunctionsBackend
from .enums import ErrorType, GenerationStatus, StepId, StepStatus
from .exceptions import StandardError
from .logging import get_logger
from .mappers import ServiceMapper
from .models import CanonicalRequest, ProviderStatus
from .notifications import GenerationNotifier
from .registry import GenerationRegistry

__all__ = ["PollOutcome", "PollerState", "StatusPoller"]

SuccessCallback = Callable[[str, str, ProviderStatus], None]


class PollerState(StrEnum):
    ARMED = "armed"
    POLLING = "polling"
    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


PollOutcome = PollerState

_FINAL_STATES = frozenset(
    {
        PollerState.SUCCESS,
        PollerState.FAILURE,
        PollerState.TIMEOUT,
        PollerState.CANCELLED,
    }
)


class StatusPoller:
    """Repeatedly query the status endpoint for one generation.

    Each instance owns exactly one asyncio task; calling :meth:`start` again
    never schedules a second loop for the same generation.
    """

    def __init__(
        self,
        generation_id: str,
        task_id: str,
        request: CanonicalRequest,
        *,
        mapper: ServiceMapper,
        backend: FunctionsBackend,
        registry: GenerationRegistry,
        notifier: GenerationNotifier,
        interval: float,
        timeout: float,
        on_success: SuccessCallback | None = None,
    ) -> None:
        self.generation_id = generation_id
        self.task_id = task_id
        self._request = request
        self._mapper = mapper
        self._backend = backend
        self._registry = registry
        self._notifier = notifier
        self._interval = interval
        self._timeout = timeout
        self._on_success = on_success
        self._endpoint = mapper.status_endpoint(request)
        self._task: asyncio.Task[PollerState] | None = None
        self.state = PollerState.ARMED
        self.ticks = 0
        self._log = get_logger(__name__).bind(
            generation_id=generation_id,
            task_id=task_id,
            service=request.service.value,
        )

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.create_task(
            self._run(), name=f"status-poller-{self.generation_id}"
        )

    def stop(self) -> None:
        """Stop polling without touching the registry."""

        if self._task is not None and not self._task.done():
            self._task.cancel()
        if self.state not in _FINAL_STATES:
            self.state = PollerState.CANCELLED

    async def wait(self) -> PollOutcome:
        if self._task is None:
            return self.state
        try:
            return await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if self._task.cancelled():
                return self.state
            raise

    async def _run(self) -> PollerState:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout
        self.state = PollerState.POLLING
        self._log.info(
            "polling-started", endpoint=self._endpoint, interval=self._interval
        )
        scope = asyncio.timeout_at(deadline)
        try:
            async with scope:
                while self.state is PollerState.POLLING:
                    await asyncio.sleep(self._interval)
                    await self._tick()
        except TimeoutError:
            if not scope.expired():
                raise
            self._expire()
        except asyncio.CancelledError:
            self.state = PollerState.CANCELLED
            self._log.info("polling-cancelled", ticks=self.ticks)
            raise
        return self.state

    async def _tick(self) -> None:
        current = self._registry.get(self.generation_id)
        if current is None or current.is_terminal:
            self.state = PollerState.CANCELLED
            self._log.info(
                "polling-stopped-externally",
                status=current.status.value if current else None,
            )
            return

        self.ticks += 1
        body = self._mapper.status_body(self.task_id, self.generation_id)
        try:
            payload = await self._backend.invoke(self._endpoint, body)
        except Exception as exc:
            self._log.warning(
                "poll-tick-failed",
                tick=self.ticks,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return

        status = self._mapper.from_provider_status(payload)
        if not status.terminal:
            self._advance(status)
        elif status.success:
            self._succeed(status)
        else:
            self._fail(status)

    def _advance(self, status: ProviderStatus) -> None:
        self._registry.update(
            self.generation_id,
            status=GenerationStatus.GENERATING,
            overall_progress=status.progress_hint,
            steps={
                StepId.GENERATE: {
                    "status": StepStatus.RUNNING,
                    "progress": status.progress_hint,
                }
            },
        )
        self._log.debug("poll-tick", tick=self.ticks, progress=status.progress_hint)

    def _succeed(self, status: ProviderStatus) -> None:
        done = {"status": StepStatus.DONE, "progress": 100}
        updated = self._registry.update(
            self.generation_id,
            status=GenerationStatus.COMPLETED,
            overall_progress=100,
            estimated_completion=datetime.now(UTC),
            steps={StepId.GENERATE: done, StepId.PROCESS: done, StepId.SAVE: done},
            audio_urls=status.audio_urls,
        )
        self.state = PollerState.SUCCESS
        if updated is None:
            self._log.info("poll-success-discarded")
            return
        self._log.info(
            "generation-completed", ticks=self.ticks, tracks=len(status.audio_urls)
        )
        self._notifier.completed(self.generation_id)
        if self._on_success is not None:
            self._on_success(self.generation_id, self.task_id, status)

    def _fail(self, status: ProviderStatus) -> None:
        current = self._registry.get(self.generation_id)
        step = current.current_step.id if current else StepId.GENERATE
        error = StandardError(
            ErrorType.UNKNOWN,
            status.error or "Unknown error during generation",
            provider=self._request.service,
        )
        updated = self._registry.update(
            self.generation_id,
            status=GenerationStatus.FAILED,
            overall_progress=0,
            steps={step: {"status": StepStatus.ERROR}},
            error=error.to_dict(),
        )
        self.state = PollerState.FAILURE
        if updated is None:
            return
        self._log.warning("generation-failed", ticks=self.ticks, error=error.message)
        self._notifier.failed(self.generation_id, error)

    def _expire(self) -> None:
        updated = self._registry.update(
            self.generation_id, status=GenerationStatus.TIMEOUT
        )
        self.state = PollerState.TIMEOUT
        if updated is None:
            return
        self._log.warning("generation-timed-out", ticks=self.ticks)
        self._notifier.timed_out(self.generation_id)
