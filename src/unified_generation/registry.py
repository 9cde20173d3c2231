from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from .enums import GenerationStatus, StepId, StepStatus
from .exceptions import GenerationNotFoundError
from .logging import get_logger
from .models import CanonicalRequest, Generation

__all__ = ["GenerationRegistry", "RegistryListener", "StepUpdate"]

RegistryListener = Callable[[str, Generation | None], None]
"""Called with ``(generation_id, snapshot)``; ``None`` means removed."""

StepUpdate = Mapping[str, Any]


class GenerationRegistry:
    """In-memory single source of truth for generation progress.

    Every mutation is a synchronous method call so, on one event loop, no
    update can interleave with another.  Records handed out are deep copies;
    the registry is the only holder of the live objects.
    """

    def __init__(self) -> None:
        self._generations: dict[str, Generation] = {}
        self._listeners: list[RegistryListener] = []
        self._removals: dict[str, asyncio.TimerHandle] = {}
        self._log = get_logger(__name__)

    def __contains__(self, generation_id: object) -> bool:
        return generation_id in self._generations

    def __len__(self) -> int:
        return len(self._generations)

    def create(self, generation_id: str, request: CanonicalRequest) -> Generation:
        if generation_id in self._generations:
            raise ValueError(f"generation {generation_id} already exists")
        generation = Generation.start(generation_id, request)
        self._generations[generation_id] = generation
        self._emit(generation_id, generation)
        return generation.model_copy(deep=True)

    def get(self, generation_id: str) -> Generation | None:
        generation = self._generations.get(generation_id)
        return generation.model_copy(deep=True) if generation else None

    def require(self, generation_id: str) -> Generation:
        generation = self.get(generation_id)
        if generation is None:
            raise GenerationNotFoundError(generation_id)
        return generation

    def snapshot(self) -> dict[str, Generation]:
        return {
            generation_id: generation.model_copy(deep=True)
            for generation_id, generation in self._generations.items()
        }

    def active(self) -> list[Generation]:
        return [g for g in self.snapshot().values() if not g.is_terminal]

    def update(
        self,
        generation_id: str,
        *,
        status: GenerationStatus | None = None,
        overall_progress: int | None = None,
        task_id: str | None = None,
        estimated_completion: datetime | None = None,
        steps: Mapping[StepId, StepUpdate] | None = None,
        audio_urls: list[str] | None = None,
        error: Mapping[str, Any] | None = None,
    ) -> Generation | None:
        """Apply a proposed update atomically.

        Returns the updated snapshot, or ``None`` when the update was refused:
        unknown id, a generation that already reached a terminal state, or a
        status that would move backwards.
        """

        generation = self._generations.get(generation_id)
        if generation is None:
            self._log.debug("update-unknown-generation", generation_id=generation_id)
            return None
        if generation.is_terminal:
            self._log.info(
                "update-after-terminal-ignored",
                generation_id=generation_id,
                current=generation.status.value,
                proposed=status.value if status else None,
            )
            return None
        if status is not None and status.rank < generation.status.rank:
            self._log.warning(
                "status-regression-ignored",
                generation_id=generation_id,
                current=generation.status.value,
                proposed=status.value,
            )
            return None

        if task_id is not None:
            generation.task_id = task_id
        if estimated_completion is not None:
            generation.estimated_completion = estimated_completion
        if overall_progress is not None:
            generation.overall_progress = max(0, min(100, overall_progress))
        for step_id, change in (steps or {}).items():
            self._apply_step(generation, StepId(step_id), change)
        if audio_urls is not None:
            generation.metadata.audio_urls = list(audio_urls)
        if error is not None:
            generation.metadata.error = dict(error)
        if status is not None:
            generation.status = status
        generation.updated_at = datetime.now(UTC)

        self._emit(generation_id, generation)
        return generation.model_copy(deep=True)

    def update_steps(
        self, generation_id: str, steps: Mapping[StepId, StepUpdate]
    ) -> Generation | None:
        return self.update(generation_id, steps=steps)

    def remove(self, generation_id: str) -> bool:
        handle = self._removals.pop(generation_id, None)
        if handle is not None:
            handle.cancel()
        if self._generations.pop(generation_id, None) is None:
            return False
        self._emit(generation_id, None)
        return True

    def clear_terminal(self) -> list[str]:
        removed = [
            generation_id
            for generation_id, generation in self._generations.items()
            if generation.is_terminal
        ]
        for generation_id in removed:
            self.remove(generation_id)
        return removed

    def schedule_removal(self, generation_id: str, delay: float) -> None:
        """Drop *generation_id* after *delay* seconds on the running loop."""

        if generation_id not in self._generations:
            return
        previous = self._removals.pop(generation_id, None)
        if previous is not None:
            previous.cancel()
        loop = asyncio.get_running_loop()
        self._removals[generation_id] = loop.call_later(
            delay, self._expire, generation_id
        )

    def cancel_removals(self) -> None:
        for handle in self._removals.values():
            handle.cancel()
        self._removals.clear()

    def subscribe(self, listener: RegistryListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _expire(self, generation_id: str) -> None:
        self._removals.pop(generation_id, None)
        if self._generations.pop(generation_id, None) is not None:
            self._log.debug("generation-expired", generation_id=generation_id)
            self._emit(generation_id, None)

    def _apply_step(
        self, generation: Generation, step_id: StepId, change: StepUpdate
    ) -> None:
        step = generation.step(step_id)
        new_status = change.get("status")
        if new_status is not None:
            new_status = StepStatus(new_status)
            if new_status.rank < step.status.rank or (
                step.status.rank == 2 and new_status is not step.status
            ):
                self._log.debug(
                    "step-regression-ignored",
                    generation_id=generation.generation_id,
                    step=step_id.value,
                    current=step.status.value,
                    proposed=new_status.value,
                )
                return
            step.status = new_status
        if change.get("progress") is not None:
            step.progress = change["progress"]
        if change.get("eta") is not None:
            step.eta = change["eta"]

    def _emit(self, generation_id: str, generation: Generation | None) -> None:
        for listener in list(self._listeners):
            snapshot = generation.model_copy(deep=True) if generation else None
            try:
                listener(generation_id, snapshot)
            except Exception:
                self._log.exception(
                    "registry-listener-failed", generation_id=generation_id
                )
