"""Website-keyed deduplication of the reference corpus.

Repeated imports of the same dataset leave several records per company.
Companies are grouped by normalised website; within a group the earliest
record (lowest ``ingest_seq``, then id) is kept and the rest are deleted.
Companies without a website are never grouped together.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from prospect_rag.models import Company
    from prospect_rag.rag.store import CompanyStore

logger = logging.getLogger(__name__)

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://")


def website_key(website: str) -> str:
    """Normalise a website for identity comparison.

    >>> website_key("HTTPS://www.Example.com/")
    'example.com'
    """
    key = website.strip().lower()
    key = _SCHEME_RE.sub("", key)
    key = key.removeprefix("www.")
    return key.rstrip("/")


def find_duplicates(companies: Iterable[Company]) -> list[str]:
    """Return the ids to delete so that each website key keeps one company."""
    keepers: dict[str, Company] = {}
    duplicates: list[str] = []
    for company in companies:
        key = website_key(company.website)
        if not key:
            continue
        kept = keepers.get(key)
        if kept is None:
            keepers[key] = company
            continue
        if (company.ingest_seq, company.id) < (kept.ingest_seq, kept.id):
            duplicates.append(kept.id)
            keepers[key] = company
        else:
            duplicates.append(company.id)
    return duplicates


def remove_duplicates(store: CompanyStore) -> int:
    """Delete duplicate companies from *store*; returns how many were removed."""
    duplicates = find_duplicates(store.iter_companies())
    store.delete_companies(duplicates)
    logger.info("Removed %d duplicate companies", len(duplicates))
    return len(duplicates)
