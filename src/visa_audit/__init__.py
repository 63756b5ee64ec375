"""visa-audit: streaming compliance audit for visa application documents.

Public API::

    from visa_audit import (
        AppSettings, LLMClient,
        AuditPipeline, ReauditRunner, SessionStore,
        build_preliminary_advisory, fold_compliances, EarlyTriggerScheduler,
        reconstruct, iter_sse_events,
        RequirementsChecklist, UploadedDocument, AdvisoryReport,
    )
"""

from __future__ import annotations

from visa_audit.advisory import (
    AdvisoryRefiner,
    EarlyTriggerScheduler,
    build_preliminary_advisory,
    fold_compliances,
)
from visa_audit.agents import CrossChecker, DocumentReader
from visa_audit.client import iter_sse_events, reconstruct
from visa_audit.core.config import AppSettings
from visa_audit.events import Event, parse_event
from visa_audit.models import (
    AdvisoryReport,
    AnalysisResult,
    Assessment,
    ComplianceItem,
    CrossDocFinding,
    DocumentExtraction,
    RemediationItem,
    RequirementItem,
    RequirementsChecklist,
    UploadedDocument,
)
from visa_audit.pipeline.orchestrator import AuditPipeline
from visa_audit.providers.client import LLMClient
from visa_audit.reaudit import ReauditRunner
from visa_audit.session import AuditSession, SessionStore

__all__ = [
    # Configuration and model access
    "AppSettings",
    "LLMClient",
    # Pipeline
    "AuditPipeline",
    "AuditSession",
    "SessionStore",
    "ReauditRunner",
    "DocumentReader",
    "CrossChecker",
    "AdvisoryRefiner",
    "EarlyTriggerScheduler",
    "build_preliminary_advisory",
    "fold_compliances",
    # Events and client state
    "Event",
    "parse_event",
    "iter_sse_events",
    "reconstruct",
    # Data model
    "AdvisoryReport",
    "AnalysisResult",
    "Assessment",
    "ComplianceItem",
    "CrossDocFinding",
    "DocumentExtraction",
    "RemediationItem",
    "RequirementItem",
    "RequirementsChecklist",
    "UploadedDocument",
]
