"""Startup validation: fail-fast on critical misconfigurations."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from visa_audit.core.config import AppSettings

log = logging.getLogger(__name__)

# Providers that use IAM/local auth and do not require an API key
_NO_KEY_PROVIDERS = frozenset({"bedrock", "ollama"})


def validate_settings(settings: AppSettings) -> None:
    """Validate application settings at startup. Raises ValueError on fatal misconfig."""
    _check_api_key(settings)
    _check_limits(settings)
    _check_scheduler(settings)


def _check_api_key(settings: AppSettings) -> None:
    """Reject placeholder API keys for providers that need real ones."""
    if settings.llm.provider not in _NO_KEY_PROVIDERS:
        if settings.llm.api_key in ("no-key", ""):
            raise ValueError(
                f"VISA_AUDIT_LLM_API_KEY is required for provider '{settings.llm.provider}'. "
                f"Set it via environment variable or secrets manager."
            )


def _check_limits(settings: AppSettings) -> None:
    """Concurrency and upload caps must be positive or nothing can run."""
    if settings.llm.max_inflight_calls < 1:
        raise ValueError("VISA_AUDIT_LLM_MAX_INFLIGHT_CALLS must be at least 1.")
    if settings.upload.max_bytes < 1:
        raise ValueError("VISA_AUDIT_UPLOAD_MAX_BYTES must be positive.")
    if not settings.upload.allowed_mime_types:
        raise ValueError("VISA_AUDIT_UPLOAD_ALLOWED_MIME_TYPES must list at least one type.")
    if settings.context.max_context_chars < settings.context.prior_document_chars:
        log.warning(
            "VISA_AUDIT_CONTEXT_MAX_CONTEXT_CHARS (%d) is smaller than one prior document (%d); "
            "cross-checks will see no prior documents.",
            settings.context.max_context_chars,
            settings.context.prior_document_chars,
        )


def _check_scheduler(settings: AppSettings) -> None:
    """The early-trigger ratio is a fraction of the uploadable requirements."""
    if not 0.0 < settings.scheduler.ratio <= 1.0:
        raise ValueError(
            f"VISA_AUDIT_SCHEDULER_RATIO must be in (0, 1], got {settings.scheduler.ratio}."
        )
    if settings.scheduler.slack < 0:
        raise ValueError("VISA_AUDIT_SCHEDULER_SLACK must not be negative.")
