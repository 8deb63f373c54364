"""Shared data contract for reference companies and scoring results.

``Company`` is the persisted entity; ``Neighbor`` and ``ScoreResult`` are
transient and owned by the scoring call that produced them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class OutcomeLabel(StrEnum):
    """Historical fate of a reference company."""

    ACTIVE = "Active"
    ACQUIRED = "Acquired"
    IPO = "IPO"
    INACTIVE = "Inactive"

    @classmethod
    def parse(cls, raw: str | None) -> OutcomeLabel:
        """Map a raw status string onto the closed label set.

        Matching is case-insensitive.  Anything unrecognised is ``ACTIVE``,
        which contributes nothing to a score.
        """
        if not raw:
            return cls.ACTIVE
        wanted = raw.strip().lower()
        for label in cls:
            if label.value.lower() == wanted:
                return label
        return cls.ACTIVE


@dataclass
class OutcomeCounts:
    """Neighbor outcome tallies reported alongside a score."""

    acquired: int = 0
    ipo: int = 0
    inactive: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"acquired": self.acquired, "ipo": self.ipo, "inactive": self.inactive}


@dataclass
class Company:
    """A reference company as stored in the ``companies`` collection.

    ``score is None`` means the company has never been scored; a computed
    score of exactly ``0.0`` is a real score.  ``score_failed`` marks a
    company that was written with the safe default after a scoring error.
    """

    id: str
    name: str
    website: str
    description: str
    status: OutcomeLabel = OutcomeLabel.ACTIVE
    one_liner: str = ""
    team_size: int = 0
    industry: str = ""
    subindustry: str = ""
    tags: list[str] = field(default_factory=list)
    top_company: bool = False
    nonprofit: bool = False
    batch: str = ""
    stage: str = ""
    category: str = "yc"
    ingest_seq: int = 0
    score: float | None = None
    percentile: float | None = None
    counts: OutcomeCounts = field(default_factory=OutcomeCounts)
    score_failed: bool = False

    @property
    def is_scored(self) -> bool:
        return self.score is not None


@dataclass
class Neighbor:
    """A reference company returned by a similarity query."""

    id: str
    name: str
    status: OutcomeLabel
    similarity: float
    website: str = ""
    one_liner: str = ""
    batch: str = ""
    score: float | None = None
    percentile: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "website": self.website,
            "one_liner": self.one_liner,
            "batch": self.batch,
            "status": self.status.value,
            "similarity": self.similarity,
            "prospect_score": self.score,
            "prospect_percentile": self.percentile,
        }


@dataclass
class ScoreResult:
    """Outcome of scoring one description."""

    score: float
    percentile: float
    counts: OutcomeCounts = field(default_factory=OutcomeCounts)
    neighbors: list[Neighbor] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready payload for the HTTP and CLI surfaces."""
        return {
            "prospect_score": self.score,
            "prospect_percentile": self.percentile,
            "neighbor_acquisitions": self.counts.acquired,
            "neighbor_ipos": self.counts.ipo,
            "neighbor_failures": self.counts.inactive,
            "neighbors": [n.to_dict() for n in self.neighbors],
        }
