"""Protocols for external collaborators."""

from __future__ import annotations

from visa_audit.interfaces.research import RequirementsResearcher

__all__ = ["RequirementsResearcher"]
