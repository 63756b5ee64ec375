"""Abstract requirements researcher.

Requirements discovery (searching embassy sites, summarizing sources) lives
outside this package. The full-analysis flow only needs something that turns
travel details into a checklist and reports its progress as events.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from visa_audit.events import Emit
from visa_audit.models import RequirementsChecklist, TravelDetails


class RequirementsResearcher(ABC):
    @abstractmethod
    async def research(self, travel: TravelDetails, emit: Emit) -> RequirementsChecklist:
        """Produce the corridor checklist for ``travel``.

        Implementations emit their own ``orchestrator``, ``search_status``,
        ``requirement`` and ``sources`` events through ``emit``.
        """
