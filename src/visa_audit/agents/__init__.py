"""Model-backed pipeline stages: document reading and incremental cross-checks."""

from __future__ import annotations

from visa_audit.agents.cross_checker import CrossChecker
from visa_audit.agents.document_reader import DocumentReader
from visa_audit.agents.streaming import ThinkingThrottle

__all__ = ["CrossChecker", "DocumentReader", "ThinkingThrottle"]
