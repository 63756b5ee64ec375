"""Nested pydantic-settings configuration for the application.

Each concern has its own settings group reading ``VISA_AUDIT_<GROUP>_*``
env vars; ``AppSettings`` aggregates them::

    export VISA_AUDIT_LLM_MODEL=anthropic/claude-sonnet-4-20250514
    export VISA_AUDIT_SCHEDULER_RATIO=0.8
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class LLMConfig(BaseSettings):
    """LLM backend configuration.

    Model ids use LiteLLM prefixes (``anthropic/``, ``openai/``, ``ollama/``).
    ``vision_model`` and ``advisory_model`` fall back to ``model`` when empty.
    """

    model_config = {"env_prefix": "VISA_AUDIT_LLM_"}

    provider: Literal["anthropic", "openai", "ollama", "litellm", "bedrock"] = "anthropic"
    model: str = "anthropic/claude-sonnet-4-20250514"
    vision_model: str = ""
    advisory_model: str = ""
    api_key: str = "no-key"
    base_url: str = ""
    temperature: float = 0.0
    timeout: float = 60.0
    max_inflight_calls: int = 8
    thinking_budget: int = 16000
    read_max_tokens: int = 8000
    cross_check_max_tokens: int = 4000
    advisory_max_tokens: int = 4000


class StreamingConfig(BaseSettings):
    """Rate controls for interim thinking events.

    Env vars use ``VISA_AUDIT_STREAMING_`` prefix.
    """

    model_config = {"env_prefix": "VISA_AUDIT_STREAMING_"}

    emit_interval_ms: int = 400
    min_new_chars: int = 80
    doc_emit_interval_ms: int = 300
    doc_min_new_chars: int = 60
    depth_interval_chars: int = 2000
    excerpt_chars: int = 2000
    agent_excerpt_chars: int = 8000


class ContextConfig(BaseSettings):
    """Bounds on extraction text sent to cross-check and advisory calls.

    Env vars use ``VISA_AUDIT_CONTEXT_`` prefix.
    """

    model_config = {"env_prefix": "VISA_AUDIT_CONTEXT_"}

    new_document_chars: int = 3000
    prior_document_chars: int = 1500
    max_context_chars: int = 12000
    advisory_document_chars: int = 500


class SchedulerConfig(BaseSettings):
    """Early-trigger policy for advisory refinement.

    Env vars use ``VISA_AUDIT_SCHEDULER_`` prefix.
    """

    model_config = {"env_prefix": "VISA_AUDIT_SCHEDULER_"}

    ratio: float = 0.8
    slack: int = 2
    match_min_overlap: int = 2


class UploadConfig(BaseSettings):
    """Upload bounds enforced before any model call.

    Env vars use ``VISA_AUDIT_UPLOAD_`` prefix.
    """

    model_config = {"env_prefix": "VISA_AUDIT_UPLOAD_"}

    allowed_mime_types: list[str] = Field(default_factory=lambda: ["image/png", "image/jpeg"])
    max_bytes: int = 5 * 1024 * 1024


RATE_LIMIT_PRESETS: dict[str, tuple[int, float]] = {
    "strict": (10, 60.0),
    "standard": (30, 60.0),
    "relaxed": (100, 60.0),
}


class RateLimitConfig(BaseSettings):
    """Per-client request limits.

    Env vars use ``VISA_AUDIT_RATE_LIMIT_`` prefix. ``preset`` overrides the
    explicit numbers when set.
    """

    model_config = {"env_prefix": "VISA_AUDIT_RATE_LIMIT_"}

    enabled: bool = True
    preset: Literal["", "strict", "standard", "relaxed"] = ""
    max_requests: int = 30
    window_seconds: float = 60.0

    def effective(self) -> tuple[int, float]:
        if self.preset:
            return RATE_LIMIT_PRESETS[self.preset]
        return self.max_requests, self.window_seconds


class SessionConfig(BaseSettings):
    """In-memory session store configuration.

    Env vars use ``VISA_AUDIT_SESSION_`` prefix.
    """

    model_config = {"env_prefix": "VISA_AUDIT_SESSION_"}

    ttl_seconds: float = 3600.0
    max_sessions: int = 256


class ObservabilityConfig(BaseSettings):
    """Observability configuration.

    Env vars use ``VISA_AUDIT_OBSERVABILITY_`` prefix.
    """

    model_config = {"env_prefix": "VISA_AUDIT_OBSERVABILITY_"}

    service_name: str = "visa-audit"
    log_level: str = "INFO"


class APIConfig(BaseSettings):
    """HTTP surface metadata and bind address.

    Env vars use ``VISA_AUDIT_API_`` prefix.
    """

    model_config = {"env_prefix": "VISA_AUDIT_API_"}

    title: str = "visa-audit"
    description: str = "Streaming compliance audit for visa application documents"
    host: str = "127.0.0.1"
    port: int = 8080


class AppSettings(BaseSettings):
    """Top-level application settings aggregating all sub-configs.

    Each sub-config reads its own ``VISA_AUDIT_<GROUP>_*`` env vars.
    """

    llm: LLMConfig = Field(default_factory=LLMConfig)
    streaming: StreamingConfig = Field(default_factory=StreamingConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    upload: UploadConfig = Field(default_factory=UploadConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)
    api: APIConfig = Field(default_factory=APIConfig)
