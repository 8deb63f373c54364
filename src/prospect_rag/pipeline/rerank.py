"""Batch percentile re-rank over the whole score population.

Two stages:

1. **Rank** — read every scored company's ``(id, score, ingest_seq)``,
   sort ascending and assign percentiles.  This stage is not
   checkpointed: a crash here means ranking again from scratch, which is
   cheap because only metadata is read.

2. **Write-back** — apply ``prospect_percentile`` in fixed-size batches.
   After each batch the cursor file records how far the write-back got,
   together with a fingerprint of the ranking.  A later run whose ranking
   has the same fingerprint resumes at the recorded offset; any change to
   the score population restarts the write-back at zero.

No lock is held across the two stages.  Interactive scoring that reads
percentiles during a re-rank may see a mix of old and new values; the
values converge once the run completes.
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from prospect_rag.logging import logger
from prospect_rag.rag.percentile import rank_population, ranking_fingerprint

if TYPE_CHECKING:
    from prospect_rag.rag.store import CompanyStore


@dataclass
class RerankCursor:
    offset: int
    total: int
    fingerprint: str


@dataclass
class RerankReport:
    """Results from a re-rank run."""

    total: int = 0
    written: int = 0
    resumed_from: int = 0
    batches: int = 0


class Reranker:
    """Recomputes every company's percentile with a resumable write-back.

    Usage::

        reranker = Reranker(store=store, batch_size=500, cursor_path="data/rerank_cursor.json")
        report = reranker.run()
    """

    def __init__(
        self,
        *,
        store: CompanyStore,
        batch_size: int = 500,
        cursor_path: str | Path = "data/rerank_cursor.json",
    ) -> None:
        self._store = store
        self._batch_size = max(batch_size, 1)
        self._cursor_path = Path(cursor_path)

    def run(self, *, restart: bool = False) -> RerankReport:
        """Rank the population and write percentiles, resuming if possible.

        Args:
            restart: Ignore any saved cursor and write every batch.
        """
        ranked = rank_population(self._store.iter_scored_entries())
        fingerprint = ranking_fingerprint(ranked)
        report = RerankReport(total=len(ranked))
        logger.info("Ranked %d scored companies", len(ranked))

        start = 0
        if restart:
            self.clear_cursor()
        else:
            cursor = self.load_cursor()
            if cursor is not None:
                if cursor.fingerprint == fingerprint and cursor.total == len(ranked):
                    start = min(cursor.offset, len(ranked))
                    logger.info("Resuming percentile write-back at offset %d", start)
                else:
                    logger.info("Score population changed since last run — restarting write-back")
        report.resumed_from = start

        for offset in range(start, len(ranked), self._batch_size):
            chunk = ranked[offset : offset + self._batch_size]
            self._store.write_percentiles([(e.company_id, e.percentile) for e in chunk])
            report.written += len(chunk)
            report.batches += 1
            self._save_cursor(RerankCursor(offset + len(chunk), len(ranked), fingerprint))
            logger.info("Updated percentiles %d-%d of %d", offset + 1, offset + len(chunk), len(ranked))

        self.clear_cursor()
        logger.info(
            "Percentile re-rank complete: %d written in %d batches (resumed from %d)",
            report.written,
            report.batches,
            report.resumed_from,
        )
        return report

    # -- Cursor persistence --------------------------------------------------

    def load_cursor(self) -> RerankCursor | None:
        if not self._cursor_path.exists():
            return None
        try:
            data = json.loads(self._cursor_path.read_text(encoding="utf-8"))
            return RerankCursor(
                offset=int(data["offset"]),
                total=int(data["total"]),
                fingerprint=str(data["fingerprint"]),
            )
        except (json.JSONDecodeError, KeyError, TypeError, ValueError):
            logger.warning("Ignoring unreadable re-rank cursor at %s", self._cursor_path)
            return None

    def clear_cursor(self) -> None:
        self._cursor_path.unlink(missing_ok=True)

    def _save_cursor(self, cursor: RerankCursor) -> None:
        self._cursor_path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._cursor_path.with_suffix(self._cursor_path.suffix + ".tmp")
        tmp.write_text(json.dumps(asdict(cursor)), encoding="utf-8")
        os.replace(tmp, self._cursor_path)
