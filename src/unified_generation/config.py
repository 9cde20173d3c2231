from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class GenerationSettings(BaseSettings):
    """Configuration container for the generation core."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    supabase_url: str = Field(
        "http://localhost:54321",
        validation_alias=AliasChoices("GENERATION_SUPABASE_URL", "SUPABASE_URL"),
    )
    supabase_key: SecretStr = Field(
        SecretStr("anon-key"),
        validation_alias=AliasChoices(
            "GENERATION_SUPABASE_KEY", "SUPABASE_ANON_KEY", "SUPABASE_KEY"
        ),
    )
    functions_path: str = Field("/functions/v1")
    http_timeout_seconds: float = Field(30.0, gt=0)

    poll_interval_seconds: float = Field(
        5.0,
        gt=0,
        validation_alias=AliasChoices("GENERATION_POLL_INTERVAL_SECONDS"),
    )
    poll_timeout_seconds: float = Field(
        600.0,
        gt=0,
        validation_alias=AliasChoices("GENERATION_POLL_TIMEOUT_SECONDS"),
    )
    completed_grace_seconds: float = Field(10.0, ge=0)

    suno_estimate_seconds: int = Field(60, ge=0)
    mureka_estimate_seconds: int = Field(120, ge=0)
    suno_default_model: str = Field("chirp-v3-5")

    log_level: str = Field(
        "INFO", validation_alias=AliasChoices("GENERATION_LOG_LEVEL", "LOG_LEVEL")
    )
    log_json: bool = Field(
        True, validation_alias=AliasChoices("GENERATION_LOG_JSON", "LOG_JSON")
    )

    @property
    def functions_url(self) -> str:
        return f"{self.supabase_url.rstrip('/')}/{self.functions_path.strip('/')}"


@dataclass(slots=True)
class BackendConfig:
    """Configuration required to talk to the functions gateway."""

    base_url: str
    api_key: str
    timeout: float = 30.0
    headers: Mapping[str, str] | None = field(default=None)

    @classmethod
    def from_settings(cls, settings: GenerationSettings) -> BackendConfig:
        return cls(
            base_url=settings.functions_url,
            api_key=settings.supabase_key.get_secret_value(),
            timeout=settings.http_timeout_seconds,
        )

    def request_headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "apikey": self.api_key,
            "Content-Type": "application/json",
        }
        if self.headers:
            headers.update(self.headers)
        return headers
