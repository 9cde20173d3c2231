from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

from .backend import FunctionsBackend
from .logging import get_logger

__all__ = ["CompletionTrigger", "PERSIST_ENDPOINT"]

PERSIST_ENDPOINT = "download-and-save-track"


class CompletionTrigger:
    """Best-effort download of finished audio into durable storage.

    A generation is reported ``completed`` as soon as the provider says so;
    whether the file actually lands in storage is only ever logged.
    """

    def __init__(self, backend: FunctionsBackend) -> None:
        self._backend = backend
        self._tasks: set[asyncio.Task[None]] = set()
        self._log = get_logger(__name__)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def persist_asset(
        self,
        generation_id: str,
        audio_url: str,
        filename: str,
        *,
        task_id: str | None = None,
    ) -> asyncio.Task[None]:
        body: dict[str, Any] = {
            "generation_id": generation_id,
            "external_url": audio_url,
            "filename": filename,
            "taskId": task_id,
        }
        task = asyncio.create_task(
            self._persist(body), name=f"persist-asset-{generation_id}-{filename}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _persist(self, body: Mapping[str, Any]) -> None:
        log = self._log.bind(
            generation_id=body["generation_id"], filename=body["filename"]
        )
        log.info("asset-persist-started", external_url=body["external_url"])
        try:
            response = await self._backend.invoke(PERSIST_ENDPOINT, body)
        except Exception as exc:
            log.error("asset-persist-failed", error=str(exc))
            return
        if isinstance(response, Mapping) and response.get("success") is False:
            log.error("asset-persist-rejected", error=response.get("error"))
            return
        log.info("asset-persisted")
