"""Bounded text context built from accumulated extractions."""

from __future__ import annotations

from visa_audit.core.config import ContextConfig
from visa_audit.models import DocumentExtraction


def _label(index: int, extraction: DocumentExtraction) -> str:
    return f"--- PREVIOUS DOC {index}: {extraction.doc_type} ({extraction.language}) ---"


def build_prior_context(previous: list[DocumentExtraction], config: ContextConfig) -> str:
    """Render prior extractions for a cross-check prompt.

    Each document contributes at most ``prior_document_chars`` of text. When the
    total exceeds ``max_context_chars`` the oldest documents are dropped first
    and a note records how many were left out. Unreadable documents are skipped.
    Numbering follows upload order among readable documents.
    """
    readable = [e for e in previous if not e.is_error]
    blocks = [
        f"{_label(i, ext)}\n{ext.extracted_text[: config.prior_document_chars]}"
        for i, ext in enumerate(readable, start=1)
    ]

    kept: list[str] = []
    used = 0
    for block in reversed(blocks):
        cost = len(block) + 2
        if kept and used + cost > config.max_context_chars:
            break
        if not kept and cost > config.max_context_chars:
            break
        kept.append(block)
        used += cost
    kept.reverse()

    omitted = len(blocks) - len(kept)
    if omitted:
        kept.insert(0, f"({omitted} earlier document(s) omitted for length)")
    return "\n\n".join(kept)


def summarize_extractions(extractions: list[DocumentExtraction], max_chars: int) -> str:
    """One short paragraph per readable extraction, for the advisory prompt."""
    lines = []
    for ext in extractions:
        if ext.is_error:
            continue
        text = ext.extracted_text
        suffix = "..." if len(text) > max_chars else ""
        lines.append(f"[{ext.doc_type}] ({ext.language}): {text[:max_chars]}{suffix}")
    return "\n\n".join(lines) if lines else "(no readable documents yet)"
