"""Submission, cancellation and retry of generations."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import uuid4

from .backend import FunctionsBackend, FunctionsClient
from .completion import CompletionTrigger
from .config import GenerationSettings
from .enums import ErrorType, GenerationStatus, Service, StepId, StepStatus
from .exceptions import BackendError, StandardError, classify_error
from .logging import configure_logging, get_logger
from .mappers import ServiceMapper, get_mapper
from .models import CanonicalRequest, Generation, ProviderStatus
from .notifications import GenerationNotifier
from .poller import StatusPoller
from .registry import GenerationRegistry

__all__ = ["GenerationOrchestrator"]

_VALIDATED_PROGRESS = 20
_QUEUED_PROGRESS = 40


class GenerationOrchestrator:
    """Coordinates submission, polling and asset persistence for generations."""

    def __init__(
        self,
        backend: FunctionsBackend,
        *,
        settings: GenerationSettings | None = None,
        registry: GenerationRegistry | None = None,
        notifier: GenerationNotifier | None = None,
        completion: CompletionTrigger | None = None,
    ) -> None:
        self._backend = backend
        self._settings = settings or GenerationSettings()
        self._registry = registry or GenerationRegistry()
        self._notifier = notifier or GenerationNotifier()
        self._completion = completion or CompletionTrigger(backend)
        self._mappers: dict[Service, ServiceMapper] = {
            service: get_mapper(
                service, suno_default_model=self._settings.suno_default_model
            )
            for service in Service
        }
        self._submissions: dict[str, asyncio.Task[Any]] = {}
        self._pollers: dict[str, StatusPoller] = {}
        self._last_error: StandardError | None = None
        self._log = get_logger(__name__)
        self._registry.subscribe(self._forget_removed)

    @classmethod
    def from_settings(cls, settings: GenerationSettings) -> GenerationOrchestrator:
        configure_logging(settings)
        return cls(FunctionsClient.from_settings(settings), settings=settings)

    @property
    def registry(self) -> GenerationRegistry:
        return self._registry

    @property
    def notifier(self) -> GenerationNotifier:
        return self._notifier

    @property
    def completion(self) -> CompletionTrigger:
        return self._completion

    @property
    def last_error(self) -> StandardError | None:
        return self._last_error

    def clear_error(self) -> None:
        self._last_error = None

    def get(self, generation_id: str) -> Generation | None:
        return self._registry.get(generation_id)

    def poller(self, generation_id: str) -> StatusPoller | None:
        return self._pollers.get(generation_id)

    async def submit(self, request: CanonicalRequest) -> str:
        """Submit *request* and return the new generation id.

        Raises:
            StandardError: ``validation`` before anything is created, or the
                classified submission error after the generation was marked
                ``failed``.
        """

        try:
            request.validate_for_submission()
        except StandardError as exc:
            self._last_error = exc
            raise
        self._last_error = None

        generation_id = str(uuid4())
        log = self._log.bind(
            generation_id=generation_id, service=request.service.value
        )
        mapper = self._mappers[request.service]

        self._registry.create(generation_id, request)
        self._notifier.submission_started(generation_id, request.service)
        self._registry.update_steps(
            generation_id, {StepId.VALIDATE: {"status": StepStatus.RUNNING}}
        )
        self._registry.update(
            generation_id,
            overall_progress=_VALIDATED_PROGRESS,
            steps={
                StepId.VALIDATE: {"status": StepStatus.DONE, "progress": 100},
                StepId.QUEUE: {"status": StepStatus.RUNNING},
            },
        )

        payload = mapper.to_provider_request(request)
        log.info("generation-submitting", endpoint=payload.endpoint)
        handle = asyncio.create_task(
            self._backend.invoke(payload.endpoint, payload.body),
            name=f"submit-{generation_id}",
        )
        self._submissions[generation_id] = handle
        try:
            response = await handle
            task_id = self._acknowledge(mapper, response)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            caller_cancelled = current is not None and current.cancelling() > 0
            if caller_cancelled or not self._is_cancelled(generation_id):
                handle.cancel()
                self._abandon_submission(generation_id)
                raise
            error = StandardError(
                ErrorType.UNKNOWN,
                "Generation cancelled",
                "User cancelled the operation",
                provider=request.service,
            )
            self._last_error = error
            log.info("generation-submission-aborted")
            raise error from None
        except Exception as exc:
            error = classify_error(exc, provider=request.service)
            self._fail_submission(generation_id, error)
            if error is exc:
                raise
            raise error from exc
        finally:
            self._submissions.pop(generation_id, None)

        estimate = (
            self._settings.suno_estimate_seconds
            if request.service is Service.SUNO
            else self._settings.mureka_estimate_seconds
        )
        updated = self._registry.update(
            generation_id,
            task_id=task_id,
            status=GenerationStatus.QUEUED,
            overall_progress=_QUEUED_PROGRESS,
            estimated_completion=datetime.now(UTC) + timedelta(seconds=estimate),
            steps={
                StepId.QUEUE: {"status": StepStatus.DONE, "progress": 100},
                StepId.GENERATE: {"status": StepStatus.RUNNING},
            },
        )
        if updated is None:
            log.info("generation-acknowledged-after-cancel", task_id=task_id)
            return generation_id

        log.info("generation-submitted", task_id=task_id)
        self._notifier.queued(generation_id, request.service, task_id)
        self._start_polling(generation_id, task_id, request, mapper)
        return generation_id

    def cancel(self, generation_id: str) -> bool:
        """Optimistically cancel a generation.

        The remote provider may keep generating; only local state is final.
        """

        current = self._registry.get(generation_id)
        if current is None or current.is_terminal:
            return False

        handle = self._submissions.pop(generation_id, None)
        if handle is not None and not handle.done():
            handle.cancel()
        poller = self._pollers.get(generation_id)
        if poller is not None:
            poller.stop()

        self._registry.update(generation_id, status=GenerationStatus.CANCELLED)
        self._log.info("generation-cancelled", generation_id=generation_id)
        self._notifier.cancelled(generation_id)
        return True

    async def retry(self, generation_id: str) -> str:
        """Resubmit the original request of *generation_id* as a new attempt."""

        previous = self._registry.require(generation_id)
        self._log.info("generation-retry", generation_id=generation_id)
        return await self.submit(previous.metadata.input)

    def clear_completed(self) -> list[str]:
        return self._registry.clear_terminal()

    async def wait(self, generation_id: str) -> Generation | None:
        """Wait for the poller of *generation_id* to finish, then return its state."""

        poller = self._pollers.get(generation_id)
        if poller is not None:
            await poller.wait()
        return self._registry.get(generation_id)

    async def aclose(self) -> None:
        for handle in list(self._submissions.values()):
            handle.cancel()
        for poller in list(self._pollers.values()):
            poller.stop()
        await asyncio.gather(
            *(poller.wait() for poller in self._pollers.values()),
            return_exceptions=True,
        )
        self._pollers.clear()
        await self._completion.drain()
        await self._notifier.drain()
        self._registry.cancel_removals()
        close = getattr(self._backend, "close", None)
        if close is not None:
            await close()

    def _acknowledge(self, mapper: ServiceMapper, response: Any) -> str:
        if isinstance(response, Mapping) and response.get("success") is False:
            message = response.get("error") or (
                f"{mapper.service.display_name} generation failed"
            )
            raise BackendError(str(message))
        task_id = mapper.extract_task_id(response)
        if task_id is None:
            raise StandardError(
                ErrorType.UNKNOWN,
                "Generation failed",
                "No task id in submission response",
                provider=mapper.service,
            )
        return task_id

    def _fail_submission(self, generation_id: str, error: StandardError) -> None:
        self._last_error = error
        current = self._registry.get(generation_id)
        step = current.current_step.id if current else StepId.QUEUE
        updated = self._registry.update(
            generation_id,
            status=GenerationStatus.FAILED,
            overall_progress=0,
            steps={step: {"status": StepStatus.ERROR}},
            error=error.to_dict(),
        )
        self._log.warning(
            "generation-submission-failed",
            generation_id=generation_id,
            error_type=error.type.value,
            details=error.details,
        )
        if updated is not None:
            self._notifier.failed(generation_id, error)

    def _abandon_submission(self, generation_id: str) -> None:
        updated = self._registry.update(
            generation_id, status=GenerationStatus.CANCELLED
        )
        if updated is None:
            return
        self._log.info("generation-submission-abandoned", generation_id=generation_id)
        self._notifier.cancelled(generation_id)

    def _start_polling(
        self,
        generation_id: str,
        task_id: str,
        request: CanonicalRequest,
        mapper: ServiceMapper,
    ) -> None:
        if generation_id in self._pollers:
            return
        poller = StatusPoller(
            generation_id,
            task_id,
            request,
            mapper=mapper,
            backend=self._backend,
            registry=self._registry,
            notifier=self._notifier,
            interval=self._settings.poll_interval_seconds,
            timeout=self._settings.poll_timeout_seconds,
            on_success=self._on_success,
        )
        self._pollers[generation_id] = poller
        poller.start()

    def _on_success(
        self, generation_id: str, task_id: str, status: ProviderStatus
    ) -> None:
        generation = self._registry.get(generation_id)
        if generation is not None:
            mapper = self._mappers[generation.service]
            for audio_url, filename in mapper.assets(task_id, status):
                self._completion.persist_asset(
                    generation_id, audio_url, filename, task_id=task_id
                )
        self._registry.schedule_removal(
            generation_id, self._settings.completed_grace_seconds
        )

    def _forget_removed(self, generation_id: str, snapshot: Generation | None) -> None:
        if snapshot is None:
            self._pollers.pop(generation_id, None)

    def _is_cancelled(self, generation_id: str) -> bool:
        current = self._registry.get(generation_id)
        return current is not None and current.status is GenerationStatus.CANCELLED

