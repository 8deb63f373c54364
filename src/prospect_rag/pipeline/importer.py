"""Reference corpus import from CSV.

Reads a companies CSV (one row per company), drops rows whose long
description is too short to embed meaningfully, embeds descriptions in
batches and stores each batch in the company store.

Expected columns::

    name, website, long_description, one_liner, team_size, industry,
    subindustry, tags, top_company, nonprofit, batch, status, stage

plus an optional ``prospect_score`` carried over from older exports.

Only ``name`` and ``long_description`` are required.  A batch whose
embedding or write fails is logged and skipped; the import continues.
"""

from __future__ import annotations

import csv
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from prospect_rag.errors import ActionableError
from prospect_rag.models import Company, OutcomeLabel

if TYPE_CHECKING:
    from prospect_rag.rag.embedder import Embedder
    from prospect_rag.rag.store import CompanyStore

logger = logging.getLogger(__name__)

MIN_DESCRIPTION_CHARS = 10
_REQUIRED_COLUMNS = ("name", "long_description")


@dataclass
class ImportReport:
    """Results from a corpus import."""

    parsed: int = 0
    skipped: int = 0
    imported: int = 0
    failed: int = 0
    failed_batches: int = 0


def _flag(raw: str | None) -> bool:
    return (raw or "").strip().lower() in {"true", "yes", "1"}


def _int(raw: str | None) -> int:
    try:
        return int((raw or "").strip())
    except ValueError:
        return 0


def _legacy_score(raw: str | None) -> float | None:
    try:
        value = float((raw or "").strip())
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def row_to_company(row: dict[str, str], *, category: str) -> Company:
    """Build an unsaved company (no id yet) from one CSV row.

    A non-blank ``prospect_score`` column marks the company as already
    scored.  Older exports wrote 0 both for real scores and for failures,
    so a legacy 0 is imported as a failed score that
    ``score-all --retry-failed`` will pick up again.
    """
    score = _legacy_score(row.get("prospect_score"))
    return Company(
        id="",
        name=(row.get("name") or "").strip(),
        website=(row.get("website") or "").strip(),
        description=(row.get("long_description") or "").strip(),
        status=OutcomeLabel.parse(row.get("status")),
        one_liner=(row.get("one_liner") or "").strip(),
        team_size=_int(row.get("team_size")),
        industry=(row.get("industry") or "").strip(),
        subindustry=(row.get("subindustry") or "").strip(),
        tags=[t.strip() for t in (row.get("tags") or "").split(",") if t.strip()],
        top_company=_flag(row.get("top_company")),
        nonprofit=_flag(row.get("nonprofit")),
        batch=(row.get("batch") or "").strip(),
        stage=(row.get("stage") or "").strip(),
        category=category,
        score=score,
        score_failed=score == 0.0,
    )


def load_companies_csv(
    path: str | Path,
    *,
    category: str = "yc",
    report: ImportReport | None = None,
) -> list[Company]:
    """Parse *path* into companies, skipping rows with short descriptions.

    Raises ``ActionableError``:
      - VALIDATION if the file does not exist
      - PARSE if a required column is missing or the CSV is malformed
    """
    csv_path = Path(path)
    if not csv_path.is_file():
        raise ActionableError.validation(
            field_name="csv_path",
            reason=f"file not found: {csv_path}",
        )

    report = report if report is not None else ImportReport()
    companies: list[Company] = []
    with open(csv_path, newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        missing = [c for c in _REQUIRED_COLUMNS if c not in (reader.fieldnames or [])]
        if missing:
            raise ActionableError.parse(
                source=str(csv_path),
                location="header row",
                raw_error=f"missing column(s): {', '.join(missing)}",
                suggestion="Export the corpus with name and long_description columns",
            )
        try:
            for row in reader:
                description = (row.get("long_description") or "").strip()
                if len(description) <= MIN_DESCRIPTION_CHARS:
                    report.skipped += 1
                    continue
                companies.append(row_to_company(row, category=category))
        except csv.Error as exc:
            raise ActionableError.parse(
                source=str(csv_path),
                location=f"line {reader.line_num}",
                raw_error=str(exc),
            ) from None

    report.parsed = len(companies)
    logger.info("Parsed %d valid companies from %s (%d skipped)", len(companies), csv_path, report.skipped)
    return companies


class CorpusImporter:
    """Embeds and stores reference companies in batches.

    Usage::

        importer = CorpusImporter(store=store, embedder=embedder, batch_size=50)
        report = await importer.import_csv("datasets/yc-companies.csv")
    """

    def __init__(
        self,
        *,
        store: CompanyStore,
        embedder: Embedder,
        batch_size: int = 50,
        category: str = "yc",
    ) -> None:
        self._store = store
        self._embedder = embedder
        self._batch_size = max(batch_size, 1)
        self._category = category

    async def import_csv(self, path: str | Path) -> ImportReport:
        report = ImportReport()
        companies = load_companies_csv(path, category=self._category, report=report)

        for start in range(0, len(companies), self._batch_size):
            batch = companies[start : start + self._batch_size]
            batch_no = start // self._batch_size + 1
            try:
                embeddings = await self._embedder.embed_batch([c.description for c in batch])
                self._store.add_companies(batch, embeddings)
            except ActionableError as exc:
                logger.error("Failed to import batch %d: %s", batch_no, exc.error)
                report.failed += len(batch)
                report.failed_batches += 1
                continue
            report.imported += len(batch)
            logger.info("Processed batch %d (%d companies)", batch_no, len(batch))

        logger.info(
            "Import completed: %d imported, %d failed, %d skipped",
            report.imported,
            report.failed,
            report.skipped,
        )
        return report
