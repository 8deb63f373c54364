"""Deduplication tests — one company per website, earliest record wins."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from conftest import make_company, seed_store
from prospect_rag.models import Company
from prospect_rag.pipeline.dedupe import find_duplicates, remove_duplicates, website_key

if TYPE_CHECKING:
    from prospect_rag.rag.store import CompanyStore


def _company(cid: str, website: str, seq: int) -> Company:
    return Company(id=cid, name=cid, website=website, description="x" * 20, ingest_seq=seq)


class TestWebsiteKey:
    """REQUIREMENT: Websites are compared after normalisation.

    WHO: The dedupe pass grouping repeated imports
    WHAT: Scheme, leading www., trailing slash and letter case are ignored
    WHY: The same company exported twice often differs only in URL form
    """

    @pytest.mark.parametrize(
        "raw",
        ["https://acme.com", "http://www.acme.com/", "ACME.com", "  https://www.Acme.com  "],
    )
    def test_variants_share_a_key(self, raw: str) -> None:
        """Every spelling of the same site normalises to 'acme.com'."""
        assert website_key(raw) == "acme.com"

    def test_paths_are_kept(self) -> None:
        """Different paths on one host are different keys."""
        assert website_key("https://github.com/a") != website_key("https://github.com/b")


class TestFindDuplicates:
    """REQUIREMENT: Within a website group the earliest record survives.

    WHO: An operator cleaning up after importing the dataset twice
    WHAT: The record with the lowest ingest sequence is kept regardless of
          read order; companies with no website are never grouped
    WHY: The earliest record carries the scores computed before the
         duplicate import
    """

    def test_earliest_record_is_kept(self) -> None:
        """The later duplicate is returned for deletion even when read first."""
        companies = [
            _company("late", "https://acme.com", 20),
            _company("early", "acme.com", 10),
        ]
        assert find_duplicates(companies) == ["late"]

    def test_three_copies_keep_one(self) -> None:
        """Three copies of one site yield two deletions."""
        companies = [
            _company("a", "acme.com", 1),
            _company("b", "acme.com", 2),
            _company("c", "acme.com", 3),
        ]
        assert sorted(find_duplicates(companies)) == ["b", "c"]

    def test_blank_websites_are_never_duplicates(self) -> None:
        """Two companies without a website are both kept."""
        companies = [_company("a", "", 1), _company("b", "  ", 2)]
        assert find_duplicates(companies) == []


class TestRemoveDuplicates:
    """REQUIREMENT: Duplicates are deleted from the store.

    WHO: The dedupe command
    WHAT: Later duplicates are removed, the earliest survives, distinct
          sites are untouched, and the number removed is reported
    WHY: Duplicates double-count their outcome in every neighbor set
    """

    def test_removes_later_duplicates(self, store: CompanyStore) -> None:
        """Importing one site twice leaves only the first record."""
        [first, second, other] = seed_store(
            store,
            [
                make_company("Acme", website="https://acme.com"),
                make_company("Acme Again", website="http://www.acme.com/"),
                make_company("Other", website="https://other.com"),
            ],
        )
        removed = remove_duplicates(store)

        assert removed == 1
        assert store.get_company(first.id) is not None
        assert store.get_company(second.id) is None
        assert store.get_company(other.id) is not None
