from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class ModelBackendSettings:
    """OpenAI-compatible model backend settings."""

    api_key: Optional[str]
    base_url: str
    model: str
    timeout: float


@dataclass(frozen=True)
class StreamingSettings:
    """Default chunk-buffering parameters for streamed answers."""

    max_wait_ms: int
    brief_chunk_count: int
    research_chunk_count: int


@dataclass(frozen=True)
class Settings:
    """Simple settings container sourced from environment variables."""

    auth_token: Optional[str]

    # Agent card
    agent_name: str
    agent_description: str
    public_url: str

    # Server binding
    host: str
    port: int

    # Optional YAML file overriding the built-in skill profiles
    skills_config_path: Optional[Path]

    model_backend: ModelBackendSettings
    streaming: StreamingSettings


def _get_model_backend_settings() -> ModelBackendSettings:
    return ModelBackendSettings(
        api_key=os.getenv("OPENAI_API_KEY"),
        base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"),
        model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        timeout=float(os.getenv("OPENAI_TIMEOUT", "60")),
    )


def _get_streaming_settings() -> StreamingSettings:
    return StreamingSettings(
        max_wait_ms=int(os.getenv("A2A_STREAM_MAX_WAIT_MS", "350")),
        brief_chunk_count=int(os.getenv("A2A_BRIEF_CHUNK_COUNT", "120")),
        research_chunk_count=int(os.getenv("A2A_RESEARCH_CHUNK_COUNT", "80")),
    )


def validate_settings(settings: Settings) -> None:
    """Validate settings and raise ValueError for invalid configurations."""
    errors = []

    if not 0 < settings.port < 65536:
        errors.append("A2A_PORT must be between 1 and 65535")

    if settings.model_backend.timeout <= 0:
        errors.append("OPENAI_TIMEOUT must be positive")

    streaming = settings.streaming
    if streaming.max_wait_ms <= 0:
        errors.append("A2A_STREAM_MAX_WAIT_MS must be positive")
    if streaming.brief_chunk_count <= 0:
        errors.append("A2A_BRIEF_CHUNK_COUNT must be positive")
    if streaming.research_chunk_count <= 0:
        errors.append("A2A_RESEARCH_CHUNK_COUNT must be positive")

    if settings.skills_config_path and not settings.skills_config_path.exists():
        errors.append(
            f"A2A_SKILLS_CONFIG points to a missing file: {settings.skills_config_path}"
        )

    if errors:
        error_msg = "Configuration validation failed:\n" + "\n".join(
            f"  - {error}" for error in errors
        )
        raise ValueError(error_msg)


@lru_cache()
def get_settings() -> Settings:
    """Return cached and validated settings."""
    skills_config_raw = os.getenv("A2A_SKILLS_CONFIG")

    settings = Settings(
        auth_token=os.getenv("A2A_AUTH_TOKEN") or None,
        agent_name=os.getenv("A2A_AGENT_NAME", "Python A2A OpenAI Agent"),
        agent_description=os.getenv(
            "A2A_AGENT_DESCRIPTION",
            "Minimal A2A server that forwards user prompts to OpenAI (streaming supported).",
        ),
        public_url=os.getenv("A2A_PUBLIC_URL", "http://localhost:9999/"),
        host=os.getenv("A2A_HOST", "0.0.0.0"),
        port=int(os.getenv("A2A_PORT", "9999")),
        skills_config_path=Path(skills_config_raw) if skills_config_raw else None,
        model_backend=_get_model_backend_settings(),
        streaming=_get_streaming_settings(),
    )

    validate_settings(settings)

    return settings
