"""Translate canonical requests to provider payloads and provider payloads back.

Provider response shapes drift between API versions, so every lookup here is
driven by ordered tables of JSON paths instead of inline conditionals.  Nothing
outside this module knows what a provider response looks like.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from typing import Any, ClassVar

from .enums import InputType, Service
from .models import CanonicalRequest, ProviderStatus, SubmissionPayload

__all__ = [
    "MurekaMapper",
    "ServiceMapper",
    "StatusRules",
    "SunoMapper",
    "TASK_ID_FIELDS",
    "get_mapper",
]

JsonPath = tuple[str, ...]

TASK_ID_FIELDS: tuple[str, ...] = (
    "task_id",
    "taskId",
    "id",
    "mureka_task_id",
    "generation_id",
)
_AUDIO_URL_KEYS: tuple[str, ...] = (
    "audioUrl",
    "audio_url",
    "sourceAudioUrl",
    "source_audio_url",
    "url",
)


@dataclass(frozen=True, slots=True)
class StatusRules:
    """Alternative shapes a provider uses to report progress."""

    status_paths: tuple[JsonPath, ...]
    success_values: frozenset[str]
    failure_values: frozenset[str]
    failure_suffixes: tuple[str, ...]
    pending_values: frozenset[str]
    success_flags: tuple[JsonPath, ...]
    failure_flags: tuple[JsonPath, ...]
    result_paths: tuple[JsonPath, ...]
    title_paths: tuple[JsonPath, ...]
    error_paths: tuple[JsonPath, ...]


_COMMON_STATUS_PATHS: tuple[JsonPath, ...] = (("status",), ("data", "status"))
_COMMON_SUCCESS_VALUES = frozenset({"success", "succeeded", "completed", "complete"})
_COMMON_FAILURE_VALUES = frozenset({"failed", "error", "sensitive_word_error"})
_COMMON_SUCCESS_FLAGS: tuple[JsonPath, ...] = (
    ("completed",),
    ("isCompleted",),
    ("data", "completed"),
    ("data", "isCompleted"),
)
_COMMON_FAILURE_FLAGS: tuple[JsonPath, ...] = (
    ("failed",),
    ("isFailed",),
    ("data", "failed"),
    ("data", "isFailed"),
)
_COMMON_ERROR_PATHS: tuple[JsonPath, ...] = (
    ("errorMessage",),
    ("error",),
    ("data", "errorMessage"),
    ("data", "error"),
)


def _lookup(payload: Any, path: JsonPath) -> Any:
    current = payload
    for key in path:
        if isinstance(current, Mapping):
            current = current.get(key)
        elif isinstance(current, list) and key.isdigit():
            index = int(key)
            current = current[index] if index < len(current) else None
        else:
            return None
    return current


def _first_string(payload: Any, paths: Sequence[JsonPath]) -> str | None:
    for path in paths:
        value = _lookup(payload, path)
        if isinstance(value, str) and value.strip():
            return value
    return None


def _iter_audio_urls(entries: Sequence[Any]) -> Iterator[str]:
    for entry in entries:
        if isinstance(entry, str) and entry:
            yield entry
        elif isinstance(entry, Mapping):
            for key in _AUDIO_URL_KEYS:
                value = entry.get(key)
                if isinstance(value, str) and value:
                    yield value
                    break


class ServiceMapper(ABC):
    """Base mapper; subclasses declare their endpoints and status rules."""

    service: ClassVar[Service]
    status_rules: ClassVar[StatusRules]
    progress_hint: ClassVar[int]
    task_id_fields: ClassVar[tuple[str, ...]] = TASK_ID_FIELDS

    @abstractmethod
    def submit_endpoint(self, request: CanonicalRequest) -> str: ...

    @abstractmethod
    def status_endpoint(self, request: CanonicalRequest) -> str: ...

    @abstractmethod
    def to_provider_request(self, request: CanonicalRequest) -> SubmissionPayload: ...

    def status_body(self, task_id: str, generation_id: str) -> dict[str, Any]:
        return {"taskId": task_id, "generationId": generation_id}

    def extract_task_id(self, response: Any) -> str | None:
        """Pick the provider task id, honouring :data:`TASK_ID_FIELDS` order.

        Field priority wins over nesting; for the same field the ``data``
        envelope is checked before the top level of the response.
        """

        containers = [
            container
            for container in (_lookup(response, ("data",)), response)
            if isinstance(container, Mapping)
        ]
        for field_name in self.task_id_fields:
            for container in containers:
                value = container.get(field_name)
                if isinstance(value, str | int) and not isinstance(value, bool):
                    text = str(value).strip()
                    if text:
                        return text
        return None

    def from_provider_status(self, payload: Any) -> ProviderStatus:
        rules = self.status_rules
        status_value = self._status_value(payload)
        audio_urls = self._audio_urls(payload)
        title = _first_string(payload, rules.title_paths)

        if self._is_success(payload, status_value):
            return ProviderStatus(
                terminal=True,
                success=True,
                progress_hint=100,
                audio_urls=audio_urls,
                title=title,
            )
        if self._is_failure(payload, status_value):
            return ProviderStatus(
                terminal=True,
                success=False,
                progress_hint=0,
                title=title,
                error=_first_string(payload, rules.error_paths),
            )
        return ProviderStatus(
            terminal=False, success=False, progress_hint=self.progress_hint
        )

    @abstractmethod
    def assets(self, task_id: str, status: ProviderStatus) -> list[tuple[str, str]]:
        """Return ``(audio_url, filename)`` pairs to persist after success."""

    def _status_value(self, payload: Any) -> str | None:
        value = _first_string(payload, self.status_rules.status_paths)
        return value.strip().lower() if value else None

    def _is_success(self, payload: Any, status_value: str | None) -> bool:
        rules = self.status_rules
        if status_value in rules.success_values:
            return True
        if any(_lookup(payload, path) is True for path in rules.success_flags):
            return True
        if status_value in rules.pending_values or self._status_failed(status_value):
            return False
        return any(
            isinstance(entries, list) and entries
            for entries in (_lookup(payload, path) for path in rules.result_paths)
        )

    def _status_failed(self, status_value: str | None) -> bool:
        rules = self.status_rules
        if status_value is None:
            return False
        return status_value in rules.failure_values or status_value.endswith(
            rules.failure_suffixes
        )

    def _is_failure(self, payload: Any, status_value: str | None) -> bool:
        if self._status_failed(status_value):
            return True
        flags = self.status_rules.failure_flags
        return any(_lookup(payload, path) is True for path in flags)

    def _audio_urls(self, payload: Any) -> list[str]:
        urls: list[str] = []
        for path in self.status_rules.result_paths:
            entries = _lookup(payload, path)
            if not isinstance(entries, list):
                continue
            for url in _iter_audio_urls(entries):
                if url not in urls:
                    urls.append(url)
        return urls


class SunoMapper(ServiceMapper):
    service = Service.SUNO
    progress_hint = 60
    lyrics_prompt_fallback = "Create music for these lyrics"
    status_rules = StatusRules(
        status_paths=_COMMON_STATUS_PATHS,
        success_values=_COMMON_SUCCESS_VALUES,
        failure_values=_COMMON_FAILURE_VALUES,
        failure_suffixes=("_failed",),
        pending_values=frozenset({"pending", "text_success", "first_success"}),
        success_flags=_COMMON_SUCCESS_FLAGS,
        failure_flags=_COMMON_FAILURE_FLAGS,
        result_paths=(
            ("tracks",),
            ("data", "tracks"),
            ("response", "sunoData"),
            ("data", "response", "sunoData"),
        ),
        title_paths=(
            ("title",),
            ("tracks", "0", "title"),
            ("data", "tracks", "0", "title"),
            ("response", "sunoData", "0", "title"),
            ("data", "response", "sunoData", "0", "title"),
        ),
        error_paths=_COMMON_ERROR_PATHS,
    )

    def __init__(self, default_model: str = "chirp-v3-5") -> None:
        self._default_model = default_model

    def submit_endpoint(self, request: CanonicalRequest) -> str:
        return "generate-suno-track"

    def status_endpoint(self, request: CanonicalRequest) -> str:
        return "get-suno-record-info"

    def to_provider_request(self, request: CanonicalRequest) -> SubmissionPayload:
        flags = request.flags
        context = request.effective_context()
        joined_tags = ", ".join(request.tags)
        is_lyrics = request.input_type is InputType.LYRICS
        model = flags.model if flags.model and flags.model != "auto" else None

        body: dict[str, Any] = {
            "prompt": (joined_tags or self.lyrics_prompt_fallback)
            if is_lyrics
            else request.description,
            "style": joined_tags,
            "tags": joined_tags,
            "title": f"AI Generated Track {date.today().isoformat()}",
            "make_instrumental": flags.instrumental,
            "wait_audio": False,
            "model": model or self._default_model,
            "mode": request.mode.value,
            "inputType": request.input_type.value,
            "voice_style": flags.voice_style or "",
            "language": flags.language,
            "tempo": flags.tempo or "",
            "projectId": context.project_id,
            "artistId": context.artist_id,
            "useInbox": context.use_inbox,
        }
        if is_lyrics:
            body["lyrics"] = request.lyrics
        return SubmissionPayload(endpoint=self.submit_endpoint(request), body=body)

    def assets(self, task_id: str, status: ProviderStatus) -> list[tuple[str, str]]:
        base = status.title or f"suno-{task_id}"
        return [
            (url, f"{base}-{index}")
            for index, url in enumerate(status.audio_urls, start=1)
        ]


class MurekaMapper(ServiceMapper):
    service = Service.MUREKA
    progress_hint = 70
    lyrics_prompt_fallback = "Generate music for these lyrics"
    instrumental_lyrics = "[Instrumental]"
    default_duration = 120
    status_rules = StatusRules(
        status_paths=_COMMON_STATUS_PATHS,
        success_values=_COMMON_SUCCESS_VALUES,
        failure_values=_COMMON_FAILURE_VALUES,
        failure_suffixes=("_failed",),
        pending_values=frozenset({"pending", "queued", "preparing", "running"}),
        success_flags=_COMMON_SUCCESS_FLAGS,
        failure_flags=_COMMON_FAILURE_FLAGS,
        result_paths=(
            ("mureka", "choices"),
            ("choices",),
            ("data", "choices"),
            ("audio_urls",),
            ("data", "audio_urls"),
        ),
        title_paths=(("mureka", "title"), ("title",), ("data", "title")),
        error_paths=_COMMON_ERROR_PATHS,
    )

    def submit_endpoint(self, request: CanonicalRequest) -> str:
        if request.flags.instrumental:
            return "generate-mureka-instrumental"
        return "generate-mureka-track"

    def status_endpoint(self, request: CanonicalRequest) -> str:
        if request.flags.instrumental:
            return "get-mureka-instrumental-status"
        return "get-mureka-task-status"

    def to_provider_request(self, request: CanonicalRequest) -> SubmissionPayload:
        flags = request.flags
        context = request.effective_context()
        tags = request.tags
        joined_tags = ", ".join(tags)
        is_lyrics = request.input_type is InputType.LYRICS

        if is_lyrics:
            lyrics = request.lyrics or ""
        elif flags.instrumental:
            lyrics = self.instrumental_lyrics
        else:
            lyrics = request.description

        body: dict[str, Any] = {
            "prompt": (joined_tags or self.lyrics_prompt_fallback)
            if is_lyrics
            else request.description,
            "lyrics": lyrics,
            "instrumental": flags.instrumental,
            "model": flags.model or "auto",
            "style": joined_tags,
            "duration": flags.duration or self.default_duration,
            "genre": tags[0] if len(tags) > 0 else "electronic",
            "mood": tags[1] if len(tags) > 1 else "energetic",
            "tempo": flags.tempo or "medium",
            "language": flags.language or "auto",
            "mode": request.mode.value,
            "projectId": context.project_id,
            "artistId": context.artist_id,
            "useInbox": context.use_inbox,
        }
        return SubmissionPayload(endpoint=self.submit_endpoint(request), body=body)

    def assets(self, task_id: str, status: ProviderStatus) -> list[tuple[str, str]]:
        if not status.audio_urls:
            return []
        return [(status.audio_urls[0], status.title or f"mureka-{task_id}")]


def get_mapper(
    service: Service, *, suno_default_model: str | None = None
) -> ServiceMapper:
    if service is Service.SUNO:
        if suno_default_model:
            return SunoMapper(default_model=suno_default_model)
        return SunoMapper()
    if service is Service.MUREKA:
        return MurekaMapper()
    raise ValueError(f"Unsupported service: {service}")
