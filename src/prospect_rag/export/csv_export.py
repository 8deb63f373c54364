"""CSV export of scored companies."""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from prospect_rag.models import Company
    from prospect_rag.rag.store import CompanyStore

logger = logging.getLogger(__name__)

# Header titles, in column order.  Embeddings are never exported.
_COLUMNS = [
    "Name",
    "Website",
    "Batch",
    "Status",
    "Stage",
    "Industry",
    "Subindustry",
    "Team Size",
    "Tags",
    "Top Company",
    "Nonprofit",
    "One Liner",
    "Long Description",
    "Prospect Score",
    "Prospect Percentile",
    "Neighbor Acquisitions",
    "Neighbor IPOs",
    "Neighbor Failures",
]


def _row(company: Company) -> list[object]:
    return [
        company.name,
        company.website,
        company.batch,
        company.status.value,
        company.stage,
        company.industry,
        company.subindustry,
        company.team_size,
        ", ".join(company.tags),
        company.top_company,
        company.nonprofit,
        company.one_liner,
        company.description,
        f"{company.score:.4f}" if company.score is not None else "",
        f"{company.percentile:.2f}" if company.percentile is not None else "",
        company.counts.acquired,
        company.counts.ipo,
        company.counts.inactive,
    ]


class CSVExporter:
    """Writes every scored company to a spreadsheet-friendly CSV."""

    def __init__(self, page_size: int = 500) -> None:
        self.page_size = page_size

    def export(self, store: CompanyStore, output_path: str | Path) -> int:
        """Write a CSV with header row; returns the number of companies exported.

        Companies are read from the store a page at a time.
        """
        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        exported = 0
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(_COLUMNS)
            for company in store.iter_companies(where={"scored": True}, page_size=self.page_size):
                writer.writerow(_row(company))
                exported += 1
                if exported % self.page_size == 0:
                    logger.info("Exported %d companies", exported)

        logger.info("CSV file has been written to %s (%d companies)", path, exported)
        return exported
