"""Early-trigger policy for advisory refinement.

Refinement takes several seconds, so it starts once "enough" requirements
have a verdict instead of waiting for the last document. The threshold is
``max(ceil(ratio * total), total - slack)``; reaching ``total`` always fires.
A one-shot latch guarantees at most one fire per session.
"""

from __future__ import annotations

import logging
import math

from visa_audit.core.config import SchedulerConfig
from visa_audit.models import ComplianceItem

log = logging.getLogger(__name__)

ANALYZED_STATUSES = frozenset({"met", "warning", "critical"})


def trigger_threshold(total_uploadable: int, ratio: float = 0.8, slack: int = 2) -> int:
    """Number of analyzed requirements at which refinement should start.

    >>> trigger_threshold(9)
    8
    >>> trigger_threshold(6)
    5
    """
    if total_uploadable <= 0:
        return 0
    threshold = max(math.ceil(ratio * total_uploadable), total_uploadable - slack)
    return min(threshold, total_uploadable)


def analyzed_count(compliances: list[ComplianceItem]) -> int:
    """Distinct requirements with a real verdict (``not_checked`` does not count)."""
    return len({c.requirement for c in compliances if c.status in ANALYZED_STATUSES})


class EarlyTriggerScheduler:
    """Decides the single instant refinement starts for one session."""

    def __init__(self, total_uploadable: int, config: SchedulerConfig | None = None) -> None:
        config = config or SchedulerConfig()
        self.total_uploadable = total_uploadable
        self.threshold = trigger_threshold(total_uploadable, config.ratio, config.slack)
        self._fired = False

    @property
    def fired(self) -> bool:
        return self._fired

    def observe(self, analyzed: int) -> bool:
        """Record progress. True exactly once, when the threshold is first reached."""
        if self._fired or self.total_uploadable <= 0:
            return False
        if analyzed >= self.threshold or analyzed >= self.total_uploadable:
            self._fired = True
            log.info(
                "Advisory refinement triggered at %d/%d analyzed (threshold %d)",
                analyzed, self.total_uploadable, self.threshold,
            )
            return True
        return False

    def finish(self) -> bool:
        """End of evidence: fire now if it never fired. True if this call fired."""
        if self._fired:
            return False
        self._fired = True
        log.info("Advisory refinement triggered at end of evidence")
        return True
