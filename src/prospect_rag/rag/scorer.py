"""Prospect scoring — one description in, one :class:`ScoreResult` out.

The Scorer drives the read-only scoring pipeline in a fixed order:

1. Reject empty input (VALIDATION, never retried).
2. Embed the description (the Embedder retries transient failures and
   raises EMBEDDING when it gives up).
3. Query the company store for the nearest reference companies in a
   widened candidate pool, retrying INDEX failures with the same policy.
4. Zero neighbors is only acceptable when the reference population is
   genuinely empty; then the score is 0.0 and no error is raised.
5. Aggregate neighbor outcomes into the prospect score.
6. Place the score among all stored scores as a percentile.

Nothing here writes to the store; the batch pipeline owns writes.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from prospect_rag.errors import ActionableError, ErrorType
from prospect_rag.logging import logger
from prospect_rag.models import ScoreResult
from prospect_rag.rag.aggregator import DEFAULT_WEIGHTS, OutcomeWeights, aggregate
from prospect_rag.rag.percentile import percentile_from_counts
from prospect_rag.rag.retry import RetryPolicy

if TYPE_CHECKING:
    from prospect_rag.models import Neighbor
    from prospect_rag.rag.embedder import Embedder
    from prospect_rag.rag.store import CompanyStore


class Scorer:
    """Scores free-text company descriptions against the reference corpus.

    Parameters
    ----------
    store:
        The :class:`CompanyStore` holding embedded reference companies.
    embedder:
        The :class:`Embedder` used to vectorise the description.
    weights:
        Per-outcome contributions used by the aggregator.
    neighbors:
        How many nearest companies feed the score.
    candidates:
        Size of the widened candidate pool the neighbors are picked from.
    category:
        Reference population the neighbors are drawn from.
    retry_policy:
        Backoff schedule for failed similarity queries.
    """

    def __init__(
        self,
        *,
        store: CompanyStore,
        embedder: Embedder,
        weights: OutcomeWeights = DEFAULT_WEIGHTS,
        neighbors: int = 50,
        candidates: int = 100,
        category: str = "yc",
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self._weights = weights
        self._neighbors = neighbors
        self._candidates = max(candidates, neighbors)
        self._category = category
        self._retry_policy = retry_policy or RetryPolicy()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def score(self, description: str | None) -> ScoreResult:
        """Compute the prospect score and percentile for *description*.

        Raises ``ActionableError``:
          - VALIDATION if the description is empty or missing
          - EMBEDDING if the embedding provider is unavailable
          - INDEX if the similarity query fails or comes back empty while
            reference companies exist
          - STORAGE if a population count cannot be read
        """
        if not isinstance(description, str) or not description.strip():
            raise ActionableError.validation(
                field_name="description",
                reason="must be a non-empty string",
                suggestion="Provide the company's long description text",
            )

        embedding = await self._embedder.embed(description)
        neighbors = await self._nearest(embedding)

        if not neighbors:
            if self._store.has_reference(self._category):
                raise ActionableError.index(
                    self._store.collection_name,
                    f"query returned no neighbors although "
                    f"'{self._category}' companies are indexed",
                )
            logger.info(
                "No '%s' reference companies indexed — scoring as 0.0",
                self._category,
            )

        result = aggregate(neighbors, self._weights)
        percentile = self._percentile(result.score)

        logger.debug(
            "Scored description: score=%.4f percentile=%.2f "
            "(%d neighbors: %d acquired, %d IPO, %d inactive)",
            result.score,
            percentile,
            len(neighbors),
            result.counts.acquired,
            result.counts.ipo,
            result.counts.inactive,
        )
        return ScoreResult(
            score=result.score,
            percentile=percentile,
            counts=result.counts,
            neighbors=neighbors,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _nearest(self, embedding: list[float]) -> list[Neighbor]:
        """Similarity query with backoff on INDEX failures."""
        policy = self._retry_policy
        last_error: ActionableError | None = None

        for attempt in range(1, policy.max_attempts + 1):
            try:
                return self._store.nearest(
                    embedding,
                    limit=self._neighbors,
                    candidates=self._candidates,
                    category=self._category,
                )
            except ActionableError as exc:
                if exc.error_type != ErrorType.INDEX:
                    raise
                last_error = exc
            if attempt < policy.max_attempts:
                delay = policy.delay_for(attempt)
                logger.warning(
                    "Similarity query attempt %d/%d failed, retrying in %.1fs: %s",
                    attempt,
                    policy.max_attempts,
                    delay,
                    last_error.error if last_error else "",
                )
                await asyncio.sleep(delay)

        raise last_error or ActionableError.index(self._store.collection_name)

    def _percentile(self, score: float) -> float:
        """Percentile of *score* among stored scores; 0.0 for an empty population."""
        total = self._store.count_scored()
        below = self._store.count_scored_below(score) if total else 0
        try:
            return percentile_from_counts(below, total)
        except ActionableError as exc:
            if exc.error_type != ErrorType.EMPTY_POPULATION:
                raise
            logger.warning("No scored companies yet — reporting percentile 0.0")
            return 0.0
