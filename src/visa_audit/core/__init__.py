"""Core configuration and startup validation."""

from __future__ import annotations

from visa_audit.core.config import AppSettings
from visa_audit.core.startup_checks import validate_settings

__all__ = ["AppSettings", "validate_settings"]
