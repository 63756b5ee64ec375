"""Consumer side of the event protocol: stream decoding and state folding."""

from __future__ import annotations

from visa_audit.client.reconstructor import (
    AuditView,
    RequirementState,
    normalize_agent_name,
    reconstruct,
)
from visa_audit.client.stream import iter_ndjson_events, iter_sse_events

__all__ = [
    "AuditView",
    "RequirementState",
    "iter_ndjson_events",
    "iter_sse_events",
    "normalize_agent_name",
    "reconstruct",
]
