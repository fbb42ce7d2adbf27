"""Candidate ranking and budget truncation ahead of Stage 3."""

from __future__ import annotations

import heapq

from loanmatch.schemas.matching import MatchCandidate

# Below this limit/input ratio a bounded heap beats a full sort.
_HEAP_RATIO = 0.1


def rank_candidates(candidates: list[MatchCandidate], limit: int) -> list[MatchCandidate]:
    """Highest score first, ties kept in input order, at most ``limit`` items."""
    if limit <= 0 or not candidates:
        return []
    if limit >= len(candidates):
        return sorted(candidates, key=lambda c: c.score, reverse=True)

    if limit < len(candidates) * _HEAP_RATIO:
        ranked = heapq.nsmallest(
            limit,
            enumerate(candidates),
            key=lambda item: (-item[1].score, item[0]),
        )
        return [candidate for _, candidate in ranked]

    return sorted(candidates, key=lambda c: c.score, reverse=True)[:limit]
