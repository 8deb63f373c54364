"""Percentile tests — single lookups and full-population rank passes."""

from __future__ import annotations

import pytest

from prospect_rag.errors import ActionableError, ErrorType
from prospect_rag.rag.percentile import (
    SOLE_MEMBER_PERCENTILE,
    percentile_from_counts,
    percentile_of,
    rank_population,
    ranking_fingerprint,
)

# ---------------------------------------------------------------------------
# TestPercentileLookup
# ---------------------------------------------------------------------------


class TestPercentileLookup:
    """REQUIREMENT: A score's percentile is the share of the population strictly below it.

    WHO: The scorer reporting where a new description falls
    WHAT: percentile = 100 × count(score < s) / N; ties do not count;
          results lie in [0, 100]; an empty population raises
          EMPTY_POPULATION instead of dividing by zero
    WHY: Percentiles are compared across runs; a NaN or an off-by-tie
         definition would make them incomparable
    """

    def test_ties_do_not_count_as_below(self) -> None:
        """Score 0.2 in [0.1, 0.2, 0.2, 0.5] sits at the 25th percentile."""
        assert percentile_of(0.2, [0.1, 0.2, 0.2, 0.5]) == 25.0

    def test_lowest_score_is_zero(self) -> None:
        """A score at or below every member is at percentile 0."""
        assert percentile_of(0.1, [0.1, 0.2, 0.5]) == 0.0

    def test_score_above_everything_is_one_hundred(self) -> None:
        """A score above every member is at percentile 100."""
        assert percentile_of(0.9, [0.1, 0.2, 0.5]) == 100.0

    def test_percentile_is_monotonic_in_score(self) -> None:
        """A higher score never gets a lower percentile."""
        population = [-0.4, -0.1, 0.0, 0.0, 0.3, 0.7]
        results = [percentile_of(s, population) for s in (-1.0, -0.2, 0.0, 0.1, 0.5, 1.0)]
        assert results == sorted(results)

    def test_empty_population_raises(self) -> None:
        """An empty population raises EMPTY_POPULATION."""
        with pytest.raises(ActionableError) as exc_info:
            percentile_of(0.2, [])
        assert exc_info.value.error_type == ErrorType.EMPTY_POPULATION

    def test_counts_form_matches_lookup(self) -> None:
        """The count-based form agrees with the population form."""
        assert percentile_from_counts(1, 4) == 25.0


# ---------------------------------------------------------------------------
# TestRankPopulation
# ---------------------------------------------------------------------------


class TestRankPopulation:
    """REQUIREMENT: The rank pass spreads ascending ranks over [0, 100].

    WHO: The batch re-rank pipeline
    WHAT: Entries are sorted ascending by score; rank i gets
          100 × i / (N - 1); ties keep insertion order; a single entry
          sits at 50.0; an empty population yields nothing
    WHY: Every stored percentile must come from one consistent ordering
    """

    def test_three_scores_spread_to_zero_fifty_hundred(self) -> None:
        """Scores [0.3, 0.1, 0.2] map to 0.1→0, 0.2→50, 0.3→100."""
        ranked = rank_population([("a", 0.3, 1), ("b", 0.1, 2), ("c", 0.2, 3)])
        assert {e.company_id: e.percentile for e in ranked} == {"b": 0.0, "c": 50.0, "a": 100.0}
        assert [e.rank for e in ranked] == [0, 1, 2]

    def test_ties_keep_insertion_order(self) -> None:
        """Equal scores are ordered by ingest sequence, not by read order."""
        ranked = rank_population([("late", 0.5, 20), ("early", 0.5, 10)])
        assert [e.company_id for e in ranked] == ["early", "late"]

    def test_single_entry_sits_at_fifty(self) -> None:
        """A one-company population is placed at the middle percentile."""
        ranked = rank_population([("only", 0.4, 1)])
        assert ranked[0].percentile == SOLE_MEMBER_PERCENTILE == 50.0

    def test_empty_population_ranks_nothing(self) -> None:
        """Ranking an empty population returns an empty list."""
        assert rank_population([]) == []

    def test_percentiles_stay_in_bounds(self) -> None:
        """Every percentile in a rank pass lies in [0, 100]."""
        ranked = rank_population([(f"co-{i}", (i * 7 % 11) / 11, i) for i in range(25)])
        assert all(0.0 <= e.percentile <= 100.0 for e in ranked)
        assert ranked[0].percentile == 0.0
        assert ranked[-1].percentile == 100.0


# ---------------------------------------------------------------------------
# TestRankingFingerprint
# ---------------------------------------------------------------------------


class TestRankingFingerprint:
    """REQUIREMENT: A ranking's fingerprint changes exactly when the ranking does.

    WHO: The re-rank cursor deciding whether a write-back may resume
    WHAT: Identical populations fingerprint identically regardless of
          read order; a changed score or a new member changes the digest
    WHY: Resuming a write-back against a different ranking would leave
         percentiles from two orderings mixed together permanently
    """

    def test_read_order_does_not_matter(self) -> None:
        """The same population read in a different order has the same fingerprint."""
        a = rank_population([("x", 0.1, 1), ("y", 0.2, 2)])
        b = rank_population([("y", 0.2, 2), ("x", 0.1, 1)])
        assert ranking_fingerprint(a) == ranking_fingerprint(b)

    def test_changed_score_changes_fingerprint(self) -> None:
        """Changing one score changes the fingerprint."""
        a = rank_population([("x", 0.1, 1), ("y", 0.2, 2)])
        b = rank_population([("x", 0.1, 1), ("y", 0.25, 2)])
        assert ranking_fingerprint(a) != ranking_fingerprint(b)
