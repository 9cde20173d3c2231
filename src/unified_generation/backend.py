"""Client for the Supabase Edge Functions gateway."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any, Protocol

import httpx
from httpx import Response

from .config import BackendConfig, GenerationSettings
from .exceptions import BackendError, BackendUnavailableError
from .logging import get_logger

__all__ = ["FunctionsBackend", "FunctionsClient"]


class FunctionsBackend(Protocol):
    """Invoke a named backend function with a JSON body."""

    async def invoke(self, name: str, body: Mapping[str, Any]) -> Any: ...


class FunctionsClient:
    """Lightweight httpx client posting JSON to ``/functions/v1/<name>``."""

    def __init__(
        self,
        config: BackendConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.timeout,
            headers=config.request_headers(),
        )
        self._log = get_logger(__name__)

    @classmethod
    def from_settings(cls, settings: GenerationSettings) -> FunctionsClient:
        return cls(BackendConfig.from_settings(settings))

    async def close(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def invoke(self, name: str, body: Mapping[str, Any]) -> Any:
        try:
            response = await self._http.request("POST", f"/{name}", json=dict(body))
        except httpx.TransportError as exc:
            self._log.warning("function-unreachable", function=name, error=str(exc))
            raise BackendUnavailableError(
                f"Failed to fetch function '{name}': {exc}"
            ) from exc
        return self._parse_response(name, response)

    def _parse_response(self, name: str, response: Response) -> Any:
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = self._extract_error_message(response)
            self._log.warning(
                "function-error-response",
                function=name,
                status_code=response.status_code,
                detail=detail,
            )
            raise BackendError(detail, status_code=response.status_code) from exc
        if response.headers.get("content-type", "").startswith("application/json"):
            return response.json()
        return response.text

    @staticmethod
    def _extract_error_message(response: Response) -> str:
        try:
            payload = response.json()
        except json.JSONDecodeError:
            return f"Backend responded with status {response.status_code}"
        if isinstance(payload, dict):
            for key in ("error", "message", "detail"):
                detail = payload.get(key)
                if isinstance(detail, str) and detail:
                    return detail
        return f"Backend responded with status {response.status_code}"
