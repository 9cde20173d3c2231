"""Data models used by the generation core."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .enums import (
    ErrorType,
    GenerationMode,
    GenerationStatus,
    InputType,
    NotificationKind,
    Service,
    StepId,
    StepStatus,
)
from .exceptions import StandardError

PENDING_TASK_ID = "pending"
SUBTITLE_LENGTH = 60

STEP_LABELS: dict[StepId, str] = {
    StepId.VALIDATE: "Validating parameters",
    StepId.QUEUE: "Submitting to queue",
    StepId.GENERATE: "Generating music",
    StepId.PROCESS: "Processing result",
    StepId.SAVE: "Saving to library",
}


def _utcnow() -> datetime:
    return datetime.now(UTC)


class _CanonicalModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class GenerationFlags(_CanonicalModel):
    instrumental: bool = False
    language: str = "auto"
    voice_style: str | None = None
    tempo: str | None = None
    duration: int | None = Field(default=None, gt=0)
    model: str | None = None


class GenerationContext(_CanonicalModel):
    """Destination of the resulting track."""

    project_id: str | None = None
    artist_id: str | None = None
    use_inbox: bool = True


class CanonicalRequest(_CanonicalModel):
    """Provider agnostic description of what music to generate."""

    service: Service
    input_type: InputType = InputType.DESCRIPTION
    description: str = ""
    lyrics: str | None = None
    tags: tuple[str, ...] = ()
    mode: GenerationMode = GenerationMode.QUICK
    flags: GenerationFlags = Field(default_factory=GenerationFlags)
    context: GenerationContext = Field(default_factory=GenerationContext)

    @field_validator("tags", mode="before")
    @classmethod
    def _normalise_tags(cls, value: Any) -> tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, str):
            value = [value]
        tags: list[str] = []
        for raw in value:
            tag = str(raw).strip()
            if not tag:
                raise ValueError("tags must not be blank")
            if tag in tags:
                raise ValueError(f"duplicate tag '{tag}'")
            tags.append(tag)
        return tuple(tags)

    @property
    def primary_content(self) -> str:
        if self.input_type is InputType.LYRICS:
            return self.lyrics or ""
        return self.description

    def validate_for_submission(self) -> None:
        """Raise a ``validation`` error when there is nothing to generate from.

        Raises:
            StandardError: If the primary content is empty after trimming.
        """

        if not self.primary_content.strip():
            field = "lyrics" if self.input_type is InputType.LYRICS else "description"
            raise StandardError(
                ErrorType.VALIDATION,
                "Nothing to generate",
                f"{field} must not be empty",
                provider=self.service,
            )

    def with_tag(self, tag: str) -> CanonicalRequest:
        """Return a copy with *tag* appended; duplicates are refused."""

        cleaned = tag.strip()
        if not cleaned:
            raise StandardError(ErrorType.VALIDATION, "Tag must not be blank")
        if cleaned in self.tags:
            raise StandardError(
                ErrorType.VALIDATION,
                "Tag already added",
                f"duplicate tag '{cleaned}'",
            )
        return self.model_copy(update={"tags": (*self.tags, cleaned)})

    def effective_context(self) -> GenerationContext:
        if self.context.use_inbox:
            return GenerationContext(use_inbox=True)
        return self.context


class Step(BaseModel):
    id: StepId
    label: str
    status: StepStatus = StepStatus.PENDING
    progress: int | None = Field(default=None, ge=0, le=100)
    eta: int | None = Field(default=None, ge=0)


def standard_steps() -> list[Step]:
    return [Step(id=step_id, label=STEP_LABELS[step_id]) for step_id in StepId]


class GenerationMetadata(BaseModel):
    input: CanonicalRequest
    audio_urls: list[str] = Field(default_factory=list)
    error: dict[str, Any] | None = None


class Generation(BaseModel):
    """One attempt to produce a track, owned by the registry."""

    generation_id: str
    task_id: str = PENDING_TASK_ID
    service: Service
    status: GenerationStatus = GenerationStatus.PENDING
    overall_progress: int = Field(default=0, ge=0, le=100)
    steps: list[Step] = Field(default_factory=standard_steps)
    title: str
    subtitle: str | None = None
    estimated_completion: datetime | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    metadata: GenerationMetadata

    model_config = ConfigDict(validate_assignment=True)

    @classmethod
    def start(cls, generation_id: str, request: CanonicalRequest) -> Generation:
        content = request.primary_content.strip()
        subtitle = content[:SUBTITLE_LENGTH]
        if len(content) > SUBTITLE_LENGTH:
            subtitle += "..."
        return cls(
            generation_id=generation_id,
            service=request.service,
            title=f"{request.service.display_name} generation",
            subtitle=subtitle or None,
            metadata=GenerationMetadata(input=request),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def current_step(self) -> Step:
        """Latest step that has left ``pending``, or the first step."""

        current = self.steps[0]
        for step in self.steps:
            if step.status is not StepStatus.PENDING:
                current = step
        return current

    @property
    def current_step_index(self) -> int:
        return self.steps.index(self.current_step)

    def step(self, step_id: StepId) -> Step:
        for step in self.steps:
            if step.id is step_id:
                return step
        raise KeyError(step_id)

    def format_progress(self) -> str:
        parts = [self.title, f"{self.status.value} ({self.overall_progress}%)"]
        current = self.current_step
        if not self.is_terminal:
            parts.append(current.label)
        return " - ".join(parts)


class ProviderStatus(BaseModel):
    """Canonical reading of a provider status payload."""

    terminal: bool
    success: bool
    progress_hint: int = Field(ge=0, le=100)
    audio_urls: list[str] = Field(default_factory=list)
    title: str | None = None
    error: str | None = None


class SubmissionPayload(BaseModel):
    endpoint: str
    body: dict[str, Any]


class Notification(BaseModel):
    """Discrete human readable lifecycle message."""

    kind: NotificationKind
    generation_id: str
    title: str
    message: str
    error: dict[str, Any] | None = None
    timestamp: datetime = Field(default_factory=_utcnow)

    @property
    def is_error(self) -> bool:
        return self.kind in {
            NotificationKind.FAILED,
            NotificationKind.TIMEOUT,
        }

    def to_message(self) -> str:
        return f"{self.title}: {self.message}"
