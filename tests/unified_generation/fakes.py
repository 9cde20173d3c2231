from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Mapping
from typing import Any

from unified_generation.exceptions import BackendError


class FakeBackend:
    """Scripted stand-in for the functions gateway.

    Queued responses are consumed first; afterwards the endpoint's default is
    returned.  Exceptions are raised, futures are awaited and callables are
    invoked with the request body.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self._queued: dict[str, list[Any]] = defaultdict(list)
        self._defaults: dict[str, Any] = {}

    def queue(self, name: str, *responses: Any) -> None:
        self._queued[name].extend(responses)

    def always(self, name: str, response: Any) -> None:
        self._defaults[name] = response

    def calls_to(self, name: str) -> list[dict[str, Any]]:
        return [body for called, body in self.calls if called == name]

    async def invoke(self, name: str, body: Mapping[str, Any]) -> Any:
        self.calls.append((name, dict(body)))
        if self._queued[name]:
            item = self._queued[name].pop(0)
        elif name in self._defaults:
            item = self._defaults[name]
        else:
            raise BackendError(f"no scripted response for {name}")

        if isinstance(item, BaseException):
            raise item
        if isinstance(item, asyncio.Future):
            return await item
        if callable(item):
            return item(dict(body))
        return item


def suno_success(*urls: str, title: str | None = None) -> dict[str, Any]:
    tracks: list[dict[str, Any]] = [{"audioUrl": url} for url in urls]
    if title is not None and tracks:
        tracks[0]["title"] = title
    return {"status": "SUCCESS", "data": {"response": {"sunoData": tracks}}}


def accepted(task_id: str) -> dict[str, Any]:
    return {"success": True, "data": {"taskId": task_id}}
