"""Percentile ranking of prospect scores.

Two views of the same population:

1. **Single lookup** — where does one score fall among the stored scores?
   ``100 × (members strictly below) / (population size)``.  Ties with the
   query score do not count, so equal scores share the lower percentile.

2. **Rank pass** — order the whole population ascending by score (ties
   keep insertion order), assign zero-based ranks and spread them over
   [0, 100] with ``100 × rank / (N - 1)``.  A sole company sits at 50.0.

An empty population never yields NaN: the lookup raises EMPTY_POPULATION
and the rank pass returns nothing.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import TYPE_CHECKING

from prospect_rag.errors import ActionableError

if TYPE_CHECKING:
    from collections.abc import Iterable

SOLE_MEMBER_PERCENTILE = 50.0


def percentile_from_counts(below: int, total: int) -> float:
    """Percentile from a strictly-below count and the population size."""
    if total <= 0:
        raise ActionableError.empty_population()
    return 100.0 * below / total


def percentile_of(score: float, population: Iterable[float]) -> float:
    """Percentile rank of *score* within *population* (a multiset of scores)."""
    total = 0
    below = 0
    for member in population:
        total += 1
        if member < score:
            below += 1
    return percentile_from_counts(below, total)


@dataclass(frozen=True)
class RankedEntry:
    company_id: str
    score: float
    rank: int
    percentile: float


def rank_population(entries: Iterable[tuple[str, float, int]]) -> list[RankedEntry]:
    """Rank ``(company_id, score, ingest_seq)`` triples ascending by score.

    Ties are broken by ``ingest_seq`` and then id, so the order is fully
    determined by the population and not by how it was read.
    """
    ordered = sorted(entries, key=lambda e: (e[1], e[2], e[0]))
    n = len(ordered)
    if n == 0:
        return []
    if n == 1:
        cid, score, _ = ordered[0]
        return [RankedEntry(cid, score, 0, SOLE_MEMBER_PERCENTILE)]

    return [
        RankedEntry(cid, score, rank, 100.0 * rank / (n - 1))
        for rank, (cid, score, _) in enumerate(ordered)
    ]


def ranking_fingerprint(ranked: list[RankedEntry]) -> str:
    """Stable digest of a ranking, used to decide whether a write-back may resume."""
    digest = hashlib.sha256()
    for entry in ranked:
        digest.update(f"{entry.company_id}:{entry.score!r}\n".encode())
    return digest.hexdigest()
