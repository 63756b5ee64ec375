"""Prompt management: registry and domain-specific templates."""

from __future__ import annotations

from visa_audit.prompts.registry import get_prompt

__all__ = ["get_prompt"]
