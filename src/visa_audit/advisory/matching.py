"""Token-overlap scoring used to join fixes, documents and requirements.

Text is normalized to a set of lowercase alphanumeric tokens with stop words
and single characters removed and a plural "s" stripped. Two texts match when
they share at least ``min(min_overlap, smaller token set size)`` tokens, so a
one-word document type like ``passport`` can still match ``Valid Passport``.
"""

from __future__ import annotations

import re
from typing import Sequence

_TOKEN = re.compile(r"[a-z0-9]+")

STOP_WORDS = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "by", "for", "from", "has",
        "have", "in", "is", "it", "its", "of", "on", "or", "that", "the", "this",
        "to", "was", "with", "your", "you", "required", "application", "document",
        "documents", "copy", "verified", "needs", "attention", "action",
    }
)


def _stem(token: str) -> str:
    if len(token) > 3 and token.endswith("s") and not token.endswith("ss"):
        return token[:-1]
    return token


def tokens(text: str) -> frozenset[str]:
    """Normalized token set for ``text``."""
    return frozenset(
        _stem(t) for t in _TOKEN.findall(text.lower()) if len(t) > 1 and t not in STOP_WORDS
    )


def overlap(a: str, b: str) -> int:
    return len(tokens(a) & tokens(b))


def required_overlap(a: frozenset[str], b: frozenset[str], min_overlap: int) -> int:
    return max(1, min(min_overlap, len(a), len(b)))


def best_match(
    query: str,
    candidates: Sequence[str],
    *,
    min_overlap: int,
    exclude: set[int] | frozenset[int] = frozenset(),
) -> int | None:
    """Index of the highest-scoring candidate at or above the threshold.

    Ties go to the earliest candidate. Indices in ``exclude`` are skipped.
    """
    query_tokens = tokens(query)
    if not query_tokens:
        return None

    best_index: int | None = None
    best_score = 0
    for index, candidate in enumerate(candidates):
        if index in exclude:
            continue
        candidate_tokens = tokens(candidate)
        score = len(query_tokens & candidate_tokens)
        if score < required_overlap(query_tokens, candidate_tokens, min_overlap):
            continue
        if score > best_score:
            best_index, best_score = index, score
    return best_index
