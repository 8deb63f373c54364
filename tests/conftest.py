"""Global test configuration — shared fixtures and factories.

This conftest provides:

1. **Shared I/O-boundary fixtures** — ``mock_embedder`` (Embedder with
   stubbed Ollama methods) and ``store`` (real ChromaDB backed by
   ``tmp_path``).  Only Ollama network I/O is mocked; every test that
   touches the corpus uses a real :class:`CompanyStore`.

2. **Corpus factories** — ``make_company`` builds unsaved companies and
   ``seed_store`` inserts them with hand-picked vectors so similarity
   ordering in tests is deterministic.

3. **Settings factory** — ``make_settings`` returns a :class:`Settings`
   whose every path lives under a temporary directory.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock

import pytest

from prospect_rag.config import (
    ChromaConfig,
    OutputConfig,
    RankingConfig,
    RetryConfig,
    Settings,
)
from prospect_rag.models import Company, OutcomeLabel
from prospect_rag.rag.embedder import Embedder
from prospect_rag.rag.retry import RetryPolicy
from prospect_rag.rag.store import CompanyStore

if TYPE_CHECKING:
    from collections.abc import Sequence

# Canonical fake embedding used across test files.  Three dimensions are
# enough for cosine ordering; individual tests pick their own vectors
# when the ordering matters.
EMBED_FAKE: list[float] = [1.0, 0.0, 0.0]

# Retry schedule with no sleeping, so retry paths run instantly.
FAST_RETRY = RetryPolicy(max_attempts=3, base_delay=0.0, max_delay=0.0, jitter=0.0)


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def make_company(
    name: str = "Acme",
    *,
    status: OutcomeLabel = OutcomeLabel.ACTIVE,
    website: str | None = None,
    description: str | None = None,
    **overrides: Any,
) -> Company:
    """Build an unsaved company (empty id) with sensible defaults."""
    return Company(
        id="",
        name=name,
        website=website if website is not None else f"https://{name.lower()}.com",
        description=description or f"{name} builds infrastructure software for small teams",
        status=status,
        **overrides,
    )


def seed_store(
    store: CompanyStore,
    companies: Sequence[Company],
    vectors: Sequence[list[float]] | None = None,
) -> list[Company]:
    """Insert *companies* one at a time so ``ingest_seq`` follows list order."""
    stored: list[Company] = []
    for i, company in enumerate(companies):
        vector = list(vectors[i]) if vectors is not None else list(EMBED_FAKE)
        stored.extend(store.add_companies([company], [vector]))
    return stored


def make_settings(tmpdir: str | Path) -> Settings:
    """Settings with ChromaDB, cursor, logs and output under *tmpdir*."""
    root = Path(tmpdir)
    return Settings(
        retry=RetryConfig(max_attempts=3, base_delay=0.0, max_delay=0.0, jitter=0.0),
        chroma=ChromaConfig(persist_dir=str(root / "chroma")),
        ranking=RankingConfig(batch_size=2, cursor_path=str(root / "rerank_cursor.json")),
        output=OutputConfig(
            output_dir=str(root / "output"),
            log_dir=str(root / "logs"),
            import_batch_size=2,
        ),
    )


# ---------------------------------------------------------------------------
# Shared I/O-boundary fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store(tmp_path: Path) -> CompanyStore:
    """A real CompanyStore backed by a temporary directory."""
    return CompanyStore(persist_dir=str(tmp_path / "chroma"))


@pytest.fixture
def mock_embedder() -> Embedder:
    """Embedder with stubbed I/O methods — no Ollama connection needed.

    Uses ``Embedder.__new__`` to create a real instance without calling
    ``__init__`` (which would create an ``ollama.AsyncClient``).  All
    async methods are replaced with ``AsyncMock`` stubs that return
    deterministic values.
    """
    embedder = Embedder.__new__(Embedder)
    embedder.base_url = "http://localhost:11434"
    embedder.embed_model = "nomic-embed-text"
    embedder.dimensionality = 3
    embedder.task_type = "clustering"
    embedder.retry_policy = FAST_RETRY
    embedder.embed = AsyncMock(return_value=EMBED_FAKE)  # type: ignore[method-assign]
    embedder.embed_batch = AsyncMock(  # type: ignore[method-assign]
        side_effect=lambda texts: [list(EMBED_FAKE) for _ in texts],
    )
    embedder.health_check = AsyncMock(return_value=None)  # type: ignore[method-assign]
    return embedder
