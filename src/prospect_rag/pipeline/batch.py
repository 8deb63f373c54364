"""Batch scoring — score every company that does not have a score yet.

The BatchScorer selects unscored companies, runs each description through
the interactive :class:`~prospect_rag.rag.scorer.Scorer`, and writes the
score and neighbor counts back to the store.

Failures are isolated per company: when scoring or the write fails, the
company is written with the safe default (score 0.0, all counts 0) and
flagged ``score_failed`` so a later ``score-all --retry-failed`` can pick
it up again.  The batch itself never aborts because of one company.

Percentiles are not touched here; run the re-rank pass afterwards.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from prospect_rag.errors import ActionableError
from prospect_rag.logging import logger
from prospect_rag.models import OutcomeCounts

if TYPE_CHECKING:
    from prospect_rag.models import Company
    from prospect_rag.rag.scorer import Scorer
    from prospect_rag.rag.store import CompanyStore


@dataclass
class BatchFailure:
    company_id: str
    name: str
    reason: str


@dataclass
class BatchReport:
    """Results from a batch scoring run."""

    selected: int = 0
    scored: int = 0
    failures: list[BatchFailure] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)


class BatchScorer:
    """Scores unscored companies and persists the results.

    Usage::

        batch = BatchScorer(store=store, scorer=scorer, concurrency=1)
        report = await batch.score_all_unscored(limit=100)
    """

    def __init__(
        self,
        *,
        store: CompanyStore,
        scorer: Scorer,
        concurrency: int = 1,
    ) -> None:
        self._store = store
        self._scorer = scorer
        self._concurrency = max(concurrency, 1)

    async def score_all_unscored(
        self,
        limit: int | None = None,
        *,
        retry_failed: bool = False,
    ) -> BatchReport:
        """Score up to *limit* unscored companies (``None`` = all of them).

        Companies are processed one at a time unless the scorer was built
        with ``concurrency > 1``; either way one company's failure never
        affects another's.
        """
        companies = self._store.select_unscored(limit, retry_failed=retry_failed)
        report = BatchReport(selected=len(companies))
        logger.info(
            "Found %d companies without a prospect score (limit: %s)",
            len(companies),
            "none" if limit is None else limit,
        )
        if not companies:
            return report

        semaphore = asyncio.Semaphore(self._concurrency)

        async def _bounded(company: Company) -> None:
            async with semaphore:
                await self._score_one(company, report)

        await asyncio.gather(*[_bounded(c) for c in companies])

        logger.info(
            "Batch scoring finished: %d selected, %d scored, %d failed",
            report.selected,
            report.scored,
            report.failed,
        )
        return report

    async def _score_one(self, company: Company, report: BatchReport) -> None:
        try:
            result = await self._scorer.score(company.description)
            self._store.write_score(company.id, result.score, result.counts)
        except ActionableError as exc:
            logger.error(
                "Scoring failed for %s (%s): %s",
                company.name,
                company.id,
                exc.error,
            )
            self._write_default(company, report, exc.error)
            return
        except Exception as exc:
            logger.exception("Unexpected error scoring %s (%s)", company.name, company.id)
            self._write_default(company, report, str(exc))
            return

        report.scored += 1
        logger.info(
            "Scored %s: %.4f (%d acquired, %d IPO, %d inactive)",
            company.name,
            result.score,
            result.counts.acquired,
            result.counts.ipo,
            result.counts.inactive,
        )

    def _write_default(self, company: Company, report: BatchReport, reason: str) -> None:
        report.failures.append(BatchFailure(company.id, company.name, reason))
        try:
            self._store.write_score(company.id, 0.0, OutcomeCounts(), failed=True)
        except ActionableError as exc:
            logger.error(
                "Could not write default score for %s (%s): %s",
                company.name,
                company.id,
                exc.error,
            )
            return
        logger.info("Set default values for %s due to error", company.name)
