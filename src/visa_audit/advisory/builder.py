"""Deterministic advisory: an instant draft from the checklist alone.

No model call. ``build_preliminary_advisory`` runs as soon as the checklist
exists; ``fold_compliances`` rebuilds the draft from scratch with every
compliance result seen so far, so applying the same list twice gives the
same report.
"""

from __future__ import annotations

from typing import Iterable

from visa_audit.models import (
    AdvisoryReport,
    Assessment,
    ComplianceItem,
    RemediationItem,
    RequirementsChecklist,
    names_match,
)

MAX_TEMPLATE_TIPS = 4

_SEVERITY_ORDER = {"critical": 0, "warning": 1, "info": 2}

_STATUS_UPDATES = {
    "met": ("info", "verified"),
    "warning": ("warning", "needs attention"),
    "critical": ("critical", "action required"),
}


def build_preliminary_advisory(requirements: RequirementsChecklist) -> AdvisoryReport:
    """One informational fix per required item, plus corridor warnings and template tips."""
    fixes = [
        RemediationItem(
            priority=i,
            severity="info",
            issue=f"{item.name} — required for your {requirements.visa_type} application",
            fix=item.personalized_detail or item.description,
            document_ref=item.name if item.uploadable else None,
        )
        for i, item in enumerate((it for it in requirements.items if it.required), start=1)
    ]
    return AdvisoryReport(
        overall=Assessment.ADDITIONAL_DOCUMENTS_NEEDED,
        fixes=fixes,
        interview_tips=build_template_tips(requirements),
        corridor_warnings=build_corridor_warnings(requirements),
    )


def build_corridor_warnings(requirements: RequirementsChecklist) -> list[str]:
    warnings = list(requirements.important_notes)

    if requirements.processing_time:
        warnings.append(
            f"Processing time: {requirements.processing_time}. Apply at: {requirements.apply_at}"
        )

    window = requirements.application_window
    if window:
        warnings.append(f"Application window: earliest {window.earliest}, latest {window.latest}")

    if requirements.common_rejection_reasons:
        warnings.append(
            f"Common rejection reasons: {'; '.join(requirements.common_rejection_reasons)}"
        )

    ft = requirements.financial_thresholds
    if ft:
        parts = []
        if ft.daily_minimum:
            parts.append(f"{ft.daily_minimum}/day minimum")
        if ft.total_recommended:
            parts.append(f"{ft.total_recommended} total recommended")
        if ft.notes:
            parts.append(ft.notes)
        if parts:
            warnings.append(f"Financial requirements: {', '.join(parts)}")

    reg = requirements.post_arrival_registration
    if reg and reg.required:
        deadline = f" {reg.deadline}" if reg.deadline else ""
        where = f" at {reg.where}" if reg.where else ""
        warnings.append(f"Post-arrival registration required{deadline}{where}")

    if requirements.transit_visa_info:
        warnings.append(requirements.transit_visa_info.warning)

    return warnings


def build_template_tips(requirements: RequirementsChecklist) -> list[str]:
    """Generic interview tips keyed off the visa type and checklist contents."""
    names = [item.name.lower() for item in requirements.items]
    tips = [
        "Be prepared to clearly explain the purpose of your trip and how it relates to "
        f"your {requirements.visa_type} application."
    ]

    if requirements.financial_thresholds:
        tips.append(
            "Have your financial documents organized and be ready to explain the source "
            "of funds shown in your bank statements."
        )

    if any("accommodation" in n or "hotel" in n for n in names):
        tips.append(
            "Bring a printed copy of your accommodation booking that matches your stated "
            "travel dates."
        )

    if any(k in n for n in names for k in ("employer", "invitation", "business")):
        tips.append(
            "If asked about your employer, have your company's registration details and "
            "your employment contract handy."
        )

    return tips[:MAX_TEMPLATE_TIPS]


def _fix_key(fix: RemediationItem) -> str:
    return fix.document_ref or fix.issue.split("—")[0].strip()


def apply_compliance(advisory: AdvisoryReport, compliance: ComplianceItem) -> AdvisoryReport:
    """Return a new report with ``compliance`` applied to every fix it names.

    ``not_checked`` leaves fixes untouched. Fixes are re-sorted by severity
    (stable) and renumbered from 1, then the overall verdict is recomputed.
    """
    update = _STATUS_UPDATES.get(compliance.status)
    fixes: list[RemediationItem] = []
    for fix in advisory.fixes:
        if update is None or not names_match(_fix_key(fix), compliance.requirement):
            fixes.append(fix.model_copy())
            continue
        severity, label = update
        fixes.append(
            fix.model_copy(
                update={
                    "severity": severity,
                    "issue": f"{compliance.requirement} — {label}",
                    "fix": compliance.detail or fix.fix,
                    "document_ref": compliance.document_ref or fix.document_ref,
                }
            )
        )

    fixes.sort(key=lambda f: _SEVERITY_ORDER.get(f.severity, 2))
    fixes = [f.model_copy(update={"priority": i}) for i, f in enumerate(fixes, start=1)]
    return advisory.model_copy(update={"fixes": fixes, "overall": compute_overall(fixes)})


def compute_overall(fixes: list[RemediationItem]) -> Assessment:
    if any(f.severity == "critical" for f in fixes):
        return Assessment.SIGNIFICANT_ISSUES
    has_warning = any(f.severity == "warning" for f in fixes)
    all_verified = all(f.severity == "info" and "verified" in f.issue for f in fixes)
    if has_warning or not all_verified:
        return Assessment.ADDITIONAL_DOCUMENTS_NEEDED
    return Assessment.APPLICATION_PROCEEDS


def fold_compliances(
    requirements: RequirementsChecklist, compliances: Iterable[ComplianceItem]
) -> AdvisoryReport:
    """Preliminary draft with every compliance applied, rebuilt from scratch."""
    advisory = build_preliminary_advisory(requirements)
    for compliance in compliances:
        advisory = apply_compliance(advisory, compliance)
    return advisory
