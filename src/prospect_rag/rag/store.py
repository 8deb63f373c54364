"""ChromaDB-backed company corpus.

A thin wrapper around one ChromaDB collection that serves as both the
**similarity index** and the **persistent store** for reference companies:

- Each company is one record: the long description is the document, its
  embedding is the vector, and every other field lives in scalar metadata.
- Similarity queries use cosine space; ChromaDB returns *distances*
  (``1 - cosine_similarity``) which are converted back to similarities.
- Scoring state is tracked with an explicit ``scored`` flag.  A company
  whose ``prospect_score`` is ``0.0`` is scored, never "unscored".

All ChromaDB failures on reads and writes surface as STORAGE errors;
similarity query failures surface as INDEX errors.

The store is an explicit handle: build one from settings and pass it to
every component that needs it.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import chromadb
import chromadb.errors

from prospect_rag.errors import ActionableError
from prospect_rag.logging import logger
from prospect_rag.models import Company, Neighbor, OutcomeCounts, OutcomeLabel

if TYPE_CHECKING:
    from collections.abc import Iterator

_DEFAULT_PAGE_SIZE = 500

# ChromaDB signals most misuse with ValueError and everything else with
# ChromaError subclasses; both are storage-layer failures to callers.
_CHROMA_ERRORS = (ValueError, chromadb.errors.ChromaError)


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except ActionableError:
        raise
    except _CHROMA_ERRORS as exc:
        raise ActionableError.storage(operation, str(exc)) from None


class CompanyStore:
    """Manages the ``companies`` collection: corpus rows, scores, percentiles.

    Usage::

        store = CompanyStore(persist_dir="./data/chroma_db")
        store.add_companies(companies, embeddings)
        neighbors = store.nearest(vector, limit=50, candidates=100, category="yc")
        store.write_score(company.id, 0.2, counts)
    """

    def __init__(self, persist_dir: str, collection: str = "companies") -> None:
        self.persist_dir = persist_dir
        self.collection_name = collection
        self._client = chromadb.PersistentClient(path=persist_dir)
        self._last_seq = 0
        with _storage_errors("open collection"):
            self._collection = self._open_collection()
        logger.debug("ChromaDB client initialized at %s", persist_dir)

    # -- Collection lifecycle ------------------------------------------------

    def _open_collection(self) -> chromadb.Collection:
        return self._client.get_or_create_collection(
            name=self.collection_name,
            metadata={"hnsw:space": "cosine"},
        )

    def count(self) -> int:
        """Total number of companies in the corpus."""
        with _storage_errors("count"):
            return self._collection.count()

    def reset(self) -> None:
        """Drop and recreate the collection empty."""
        with _storage_errors("reset"):
            try:
                self._client.delete_collection(self.collection_name)
                logger.info("Collection '%s' deleted", self.collection_name)
            except _CHROMA_ERRORS:
                logger.debug(
                    "Collection '%s' does not exist — nothing to reset",
                    self.collection_name,
                )
            self._collection = self._open_collection()

    # -- Corpus writes -------------------------------------------------------

    def next_ingest_seq(self) -> int:
        """Return a strictly increasing insertion-order key.

        Derived from the wall clock so that sequence numbers keep growing
        across separate import runs.
        """
        self._last_seq = max(self._last_seq + 1, time.time_ns())
        return self._last_seq

    def add_companies(
        self,
        companies: list[Company],
        embeddings: list[list[float]],
    ) -> list[Company]:
        """Insert (or update) companies with pre-computed embeddings.

        Companies without an ``id`` are assigned one, along with a fresh
        ``ingest_seq``.  Returns the companies as stored.
        """
        if len(companies) != len(embeddings):
            raise ActionableError.validation(
                field_name="embeddings",
                reason=f"{len(companies)} companies but {len(embeddings)} embeddings",
                suggestion="Pass exactly one embedding per company",
            )
        if not companies:
            return []

        for company in companies:
            if not company.id:
                company.ingest_seq = self.next_ingest_seq()
                company.id = f"co-{company.ingest_seq}"

        with _storage_errors("add companies"):
            self._collection.upsert(
                ids=[c.id for c in companies],
                documents=[c.description for c in companies],
                embeddings=embeddings,  # type: ignore[arg-type]
                metadatas=[_to_metadata(c) for c in companies],  # type: ignore[arg-type]
            )
        logger.info(
            "Upserted %d companies into '%s'",
            len(companies),
            self.collection_name,
        )
        return companies

    def delete_companies(self, ids: list[str]) -> None:
        if not ids:
            return
        with _storage_errors("delete companies"):
            self._collection.delete(ids=ids)

    def write_score(
        self,
        company_id: str,
        score: float,
        counts: OutcomeCounts,
        *,
        failed: bool = False,
    ) -> None:
        """Record a computed score (or the safe default when *failed*)."""
        patch: dict[str, Any] = {
            "scored": True,
            "score_failed": failed,
            "prospect_score": float(score),
            "neighbor_acquisitions": counts.acquired,
            "neighbor_ipos": counts.ipo,
            "neighbor_failures": counts.inactive,
        }
        self._merge_update({company_id: patch}, operation="write score")

    def write_percentiles(self, updates: list[tuple[str, float]]) -> None:
        """Bulk-write ``prospect_percentile`` for ``(company_id, percentile)`` pairs."""
        if not updates:
            return
        self._merge_update(
            {cid: {"prospect_percentile": float(pct)} for cid, pct in updates},
            operation="write percentiles",
        )

    def _merge_update(self, patches: dict[str, dict[str, Any]], *, operation: str) -> None:
        """Merge *patches* into existing metadata; unknown ids are an error."""
        ids = list(patches)
        with _storage_errors(operation):
            existing = self._collection.get(ids=ids, include=["metadatas"])
            current = dict(zip(existing["ids"], existing["metadatas"] or [], strict=False))
            missing = [cid for cid in ids if cid not in current]
            if missing:
                raise ActionableError.storage(
                    operation, f"unknown company id(s): {', '.join(missing[:5])}"
                )
            merged = [{**(current[cid] or {}), **patches[cid]} for cid in ids]
            self._collection.update(ids=ids, metadatas=merged)  # type: ignore[arg-type]

    # -- Corpus reads --------------------------------------------------------

    def get_company(self, company_id: str) -> Company | None:
        with _storage_errors("get company"):
            result = self._collection.get(ids=[company_id], include=["documents", "metadatas"])
        if not result["ids"]:
            return None
        return _from_record(
            result["ids"][0],
            (result["documents"] or [""])[0],
            (result["metadatas"] or [{}])[0],
        )

    def iter_companies(
        self,
        *,
        where: dict[str, Any] | None = None,
        page_size: int = _DEFAULT_PAGE_SIZE,
    ) -> Iterator[Company]:
        """Yield companies page by page (optionally filtered by *where*)."""
        offset = 0
        while True:
            with _storage_errors("read companies"):
                result = self._collection.get(
                    where=where,
                    limit=page_size,
                    offset=offset,
                    include=["documents", "metadatas"],
                )
            ids = result["ids"]
            if not ids:
                return
            documents = result["documents"] or [""] * len(ids)
            metadatas = result["metadatas"] or [{}] * len(ids)
            for cid, doc, meta in zip(ids, documents, metadatas, strict=False):
                yield _from_record(cid, doc, meta)
            offset += len(ids)

    def iter_scored_entries(
        self,
        *,
        page_size: int = _DEFAULT_PAGE_SIZE,
    ) -> Iterator[tuple[str, float, int]]:
        """Yield ``(company_id, score, ingest_seq)`` for every scored company.

        Only metadata is read, so the rank pass stays small even for a
        large corpus.
        """
        offset = 0
        while True:
            with _storage_errors("read scores"):
                result = self._collection.get(
                    where={"scored": True},
                    limit=page_size,
                    offset=offset,
                    include=["metadatas"],
                )
            ids = result["ids"]
            if not ids:
                return
            for cid, meta in zip(ids, result["metadatas"] or [], strict=False):
                meta = meta or {}
                yield (
                    cid,
                    float(meta.get("prospect_score", 0.0)),  # type: ignore[arg-type]
                    int(meta.get("ingest_seq", 0)),  # type: ignore[arg-type]
                )
            offset += len(ids)

    def select_unscored(
        self,
        limit: int | None = None,
        *,
        retry_failed: bool = False,
    ) -> list[Company]:
        """Return companies awaiting a score, oldest first, up to *limit*.

        With *retry_failed*, companies that were written with the safe
        default after an error are selected as well.
        """
        where: dict[str, Any] = {"scored": False}
        if retry_failed:
            where = {"$or": [{"scored": False}, {"score_failed": True}]}

        # Order on metadata alone; documents are read only for the selection.
        order: list[tuple[int, str]] = []
        offset = 0
        while True:
            with _storage_errors("select unscored"):
                result = self._collection.get(
                    where=where,
                    limit=_DEFAULT_PAGE_SIZE,
                    offset=offset,
                    include=["metadatas"],
                )
            ids = result["ids"]
            if not ids:
                break
            for cid, meta in zip(ids, result["metadatas"] or [{}] * len(ids), strict=False):
                order.append((int((meta or {}).get("ingest_seq", 0)), cid))  # type: ignore[arg-type]
            offset += len(ids)

        order.sort()
        if limit is not None:
            order = order[:limit]
        return self._get_many([cid for _, cid in order])

    def _get_many(self, company_ids: list[str]) -> list[Company]:
        """Load full companies for *company_ids*, preserving their order."""
        by_id: dict[str, Company] = {}
        for start in range(0, len(company_ids), _DEFAULT_PAGE_SIZE):
            chunk = company_ids[start : start + _DEFAULT_PAGE_SIZE]
            with _storage_errors("read companies"):
                result = self._collection.get(ids=chunk, include=["documents", "metadatas"])
            documents = result["documents"] or [""] * len(result["ids"])
            metadatas = result["metadatas"] or [{}] * len(result["ids"])
            for cid, doc, meta in zip(result["ids"], documents, metadatas, strict=False):
                by_id[cid] = _from_record(cid, doc, meta)
        return [by_id[cid] for cid in company_ids if cid in by_id]

    # -- Population counts ---------------------------------------------------

    def has_reference(self, category: str) -> bool:
        """Whether any embedded company belongs to the reference *category*."""
        with _storage_errors("check reference"):
            result = self._collection.get(where={"category": category}, limit=1, include=[])
        return bool(result["ids"])

    def count_scored(self) -> int:
        """Size of the score population used for percentiles."""
        return self._count_where({"scored": True}, operation="count scored")

    def count_scored_below(self, score: float) -> int:
        """Number of scored companies with ``prospect_score`` strictly below *score*."""
        return self._count_where(
            {"$and": [{"scored": True}, {"prospect_score": {"$lt": float(score)}}]},
            operation="count scored below",
        )

    def _count_where(self, where: dict[str, Any], *, operation: str) -> int:
        """Count records matching *where*.

        ChromaDB has no filtered count, so this reads every matching id:
        memory grows with the number of matches.
        """
        with _storage_errors(operation):
            result = self._collection.get(where=where, include=[])
        return len(result["ids"])

    # -- Similarity query ----------------------------------------------------

    def nearest(
        self,
        query_embedding: list[float],
        *,
        limit: int,
        candidates: int,
        category: str,
    ) -> list[Neighbor]:
        """Return up to *limit* companies most similar to *query_embedding*.

        ChromaDB exposes no per-query candidate knob, so the widened pool of
        *candidates* is fetched and narrowed to the best *limit* by
        similarity.  Only companies in *category* are considered.

        Raises :class:`~prospect_rag.errors.ActionableError` (INDEX) if the
        query fails.
        """
        try:
            available = self._collection.count()
            if available == 0:
                return []
            result = self._collection.query(
                query_embeddings=[query_embedding],  # type: ignore[arg-type]
                n_results=min(max(candidates, limit), available),
                where={"category": category},
                include=["metadatas", "distances"],
            )
        except _CHROMA_ERRORS as exc:
            raise ActionableError.index(self.collection_name, str(exc)) from None

        ids = (result.get("ids") or [[]])[0]
        metadatas = (result.get("metadatas") or [[]])[0]
        distances = (result.get("distances") or [[]])[0]

        neighbors = [
            _to_neighbor(cid, meta or {}, distance)
            for cid, meta, distance in zip(ids, metadatas, distances, strict=False)
        ]
        neighbors.sort(key=lambda n: n.similarity, reverse=True)
        return neighbors[:limit]


# ---------------------------------------------------------------------------
# Record conversion
# ---------------------------------------------------------------------------


def _to_metadata(company: Company) -> dict[str, Any]:
    """Flatten a company into ChromaDB's scalar-only metadata."""
    meta: dict[str, Any] = {
        "name": company.name,
        "website": company.website,
        "one_liner": company.one_liner,
        "team_size": company.team_size,
        "industry": company.industry,
        "subindustry": company.subindustry,
        "tags": ", ".join(company.tags),
        "top_company": company.top_company,
        "nonprofit": company.nonprofit,
        "batch": company.batch,
        "status": company.status.value,
        "stage": company.stage,
        "category": company.category,
        "ingest_seq": company.ingest_seq,
        "scored": company.score is not None,
        "score_failed": company.score_failed,
        "neighbor_acquisitions": company.counts.acquired,
        "neighbor_ipos": company.counts.ipo,
        "neighbor_failures": company.counts.inactive,
    }
    # ChromaDB rejects None values; absent means "not computed"
    if company.score is not None:
        meta["prospect_score"] = float(company.score)
    if company.percentile is not None:
        meta["prospect_percentile"] = float(company.percentile)
    return meta


def _from_record(company_id: str, document: str | None, meta: dict[str, Any]) -> Company:
    scored = bool(meta.get("scored", False))
    raw_tags = str(meta.get("tags", ""))
    return Company(
        id=company_id,
        name=str(meta.get("name", "")),
        website=str(meta.get("website", "")),
        description=document or "",
        status=OutcomeLabel.parse(meta.get("status")),
        one_liner=str(meta.get("one_liner", "")),
        team_size=int(meta.get("team_size", 0)),
        industry=str(meta.get("industry", "")),
        subindustry=str(meta.get("subindustry", "")),
        tags=[t.strip() for t in raw_tags.split(",") if t.strip()],
        top_company=bool(meta.get("top_company", False)),
        nonprofit=bool(meta.get("nonprofit", False)),
        batch=str(meta.get("batch", "")),
        stage=str(meta.get("stage", "")),
        category=str(meta.get("category", "")),
        ingest_seq=int(meta.get("ingest_seq", 0)),
        score=float(meta["prospect_score"]) if scored and "prospect_score" in meta else None,
        percentile=(
            float(meta["prospect_percentile"]) if "prospect_percentile" in meta else None
        ),
        counts=OutcomeCounts(
            acquired=int(meta.get("neighbor_acquisitions", 0)),
            ipo=int(meta.get("neighbor_ipos", 0)),
            inactive=int(meta.get("neighbor_failures", 0)),
        ),
        score_failed=bool(meta.get("score_failed", False)),
    )


def _to_neighbor(company_id: str, meta: dict[str, Any], distance: float) -> Neighbor:
    scored = bool(meta.get("scored", False))
    return Neighbor(
        id=company_id,
        name=str(meta.get("name", "")),
        status=OutcomeLabel.parse(meta.get("status")),
        similarity=1.0 - float(distance),
        website=str(meta.get("website", "")),
        one_liner=str(meta.get("one_liner", "")),
        batch=str(meta.get("batch", "")),
        score=float(meta["prospect_score"]) if scored and "prospect_score" in meta else None,
        percentile=(
            float(meta["prospect_percentile"]) if "prospect_percentile" in meta else None
        ),
    )
