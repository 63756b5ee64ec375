"""Explicit session state and its transition function.

All accumulated evidence lives in one immutable :class:`SessionState`.
:func:`transition` is the only way to derive a new state, so the rules
below hold by construction:

- extractions only grow, in the order documents finished their turn;
- there is at most one compliance item per requirement (latest wins);
- the preliminary advisory is refolded from scratch on every compliance;
- once a refined advisory exists it is never patched by later compliances;
- a finished advisory run is applied only if no newer run has started since.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Literal, Union

from visa_audit.advisory.builder import build_preliminary_advisory, fold_compliances
from visa_audit.models import (
    AdvisoryReport,
    ComplianceItem,
    CrossDocFinding,
    DocumentExtraction,
    RequirementsChecklist,
)


class PipelineStage(str, Enum):
    COLLECTING = "collecting"
    REFINING = "refining"
    REFINED = "refined"
    REFINEMENT_FAILED = "refinement_failed"
    REAUDITING = "reauditing"


# ── Transition events ───────────────────────────────────────────────


@dataclass(frozen=True)
class DocumentVerified:
    """A document finished its turn. ``compliance`` is None when nothing was checked."""

    extraction: DocumentExtraction
    compliance: ComplianceItem | None = None
    findings: tuple[CrossDocFinding, ...] = ()


@dataclass(frozen=True)
class RefinementStarted:
    pass


@dataclass(frozen=True)
class RefinementFinished:
    """The advisory run numbered ``run`` ended. ``run=None`` means the latest run."""

    report: AdvisoryReport | None
    run: int | None = None


@dataclass(frozen=True)
class ReauditStarted:
    pass


@dataclass(frozen=True)
class ReauditFinished:
    report: AdvisoryReport | None
    run: int | None = None


Transition = Union[
    DocumentVerified, RefinementStarted, RefinementFinished, ReauditStarted, ReauditFinished
]


# ── State ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class SessionState:
    requirements: RequirementsChecklist
    advisory: AdvisoryReport
    stage: PipelineStage = PipelineStage.COLLECTING
    extractions: tuple[DocumentExtraction, ...] = ()
    compliances: tuple[ComplianceItem, ...] = ()
    findings: tuple[CrossDocFinding, ...] = ()
    generation: Literal["preliminary", "refined"] = "preliminary"
    refinement_triggered: bool = False
    advisory_run: int = 0

    @classmethod
    def start(cls, requirements: RequirementsChecklist) -> SessionState:
        return cls(requirements=requirements, advisory=build_preliminary_advisory(requirements))


def _upsert(compliances: tuple[ComplianceItem, ...], item: ComplianceItem) -> tuple[ComplianceItem, ...]:
    kept = tuple(c for c in compliances if c.requirement != item.requirement)
    return kept + (item,)


def _stale(state: SessionState, run: int | None) -> bool:
    return run is not None and run != state.advisory_run


def transition(state: SessionState, event: Transition) -> SessionState:
    """Pure state transition. Returns a new state; ``state`` is untouched.

    Every refinement or re-audit start opens a new advisory run. A finish
    tagged with an older run is ignored, so a slow refinement cannot
    overwrite the advisory of a re-audit that started after it.
    """
    if isinstance(event, DocumentVerified):
        compliances = state.compliances
        if event.compliance is not None:
            compliances = _upsert(compliances, event.compliance)
        advisory = state.advisory
        if state.generation == "preliminary":
            advisory = fold_compliances(state.requirements, compliances)
        return replace(
            state,
            extractions=state.extractions + (event.extraction,),
            compliances=compliances,
            findings=state.findings + tuple(event.findings),
            advisory=advisory,
        )

    if isinstance(event, RefinementStarted):
        return replace(
            state,
            stage=PipelineStage.REFINING,
            refinement_triggered=True,
            advisory_run=state.advisory_run + 1,
        )

    if isinstance(event, RefinementFinished):
        if _stale(state, event.run):
            return state
        if event.report is None:
            return replace(state, stage=PipelineStage.REFINEMENT_FAILED)
        return replace(state, stage=PipelineStage.REFINED, advisory=event.report, generation="refined")

    if isinstance(event, ReauditStarted):
        return replace(state, stage=PipelineStage.REAUDITING, advisory_run=state.advisory_run + 1)

    if isinstance(event, ReauditFinished):
        if _stale(state, event.run):
            return state
        if event.report is None:
            stage = PipelineStage.REFINED if state.generation == "refined" else PipelineStage.REFINEMENT_FAILED
            return replace(state, stage=stage)
        return replace(state, stage=PipelineStage.REFINED, advisory=event.report, generation="refined")

    raise TypeError(f"Unknown session transition: {type(event).__name__}")
