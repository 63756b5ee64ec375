"""Decode an SSE capture back into typed events."""

from __future__ import annotations

import json
import logging
from typing import Iterable, Iterator

from pydantic import ValidationError

from visa_audit.events import Event, parse_event

log = logging.getLogger(__name__)

_DATA_PREFIX = "data:"
_DONE = "[DONE]"


def iter_sse_events(lines: Iterable[str]) -> Iterator[Event]:
    """Yield events from raw SSE lines until the ``[DONE]`` frame.

    Blank lines and ``:`` comments are skipped. Frames that are not valid
    JSON, or not a known event kind, are logged and skipped so one bad frame
    never ends the stream.
    """
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith(":"):
            continue
        if not line.startswith(_DATA_PREFIX):
            log.debug("Ignoring non-data SSE line: %.80s", line)
            continue
        payload = line[len(_DATA_PREFIX):].strip()
        if payload == _DONE:
            return
        try:
            yield parse_event(json.loads(payload))
        except (json.JSONDecodeError, ValidationError) as e:
            log.warning("Skipping malformed SSE frame: %s", e)


def iter_ndjson_events(lines: Iterable[str]) -> Iterator[Event]:
    """Yield events from a newline-delimited JSON capture (one event per line)."""
    for raw in lines:
        line = raw.strip()
        if not line:
            continue
        try:
            yield parse_event(json.loads(line))
        except (json.JSONDecodeError, ValidationError) as e:
            log.warning("Skipping malformed event line: %s", e)
