"""Advisory synthesis: deterministic draft, early trigger, and LLM refinement."""

from __future__ import annotations

from visa_audit.advisory.builder import (
    apply_compliance,
    build_preliminary_advisory,
    compute_overall,
    fold_compliances,
)
from visa_audit.advisory.refiner import AdvisoryRefiner, backfill_document_refs, parse_advisory
from visa_audit.advisory.scheduler import EarlyTriggerScheduler, analyzed_count, trigger_threshold

__all__ = [
    "AdvisoryRefiner",
    "EarlyTriggerScheduler",
    "analyzed_count",
    "apply_compliance",
    "backfill_document_refs",
    "build_preliminary_advisory",
    "compute_overall",
    "fold_compliances",
    "parse_advisory",
    "trigger_threshold",
]
