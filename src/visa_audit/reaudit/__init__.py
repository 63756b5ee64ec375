"""Re-verification of corrected documents."""

from __future__ import annotations

from visa_audit.reaudit.orchestrator import ReauditOutcome, ReauditRunner

__all__ = ["ReauditOutcome", "ReauditRunner"]
