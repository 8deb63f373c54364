"""CLI command handlers for prospect-rag.

Each public function corresponds to a CLI subcommand and encapsulates
the wiring, orchestration, and output for that command.  Components are
built from :class:`~prospect_rag.config.Settings` and passed explicitly;
nothing holds a global database handle.
"""

from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path
from typing import TYPE_CHECKING

from prospect_rag.config import DEFAULT_SETTINGS_PATH, load_settings
from prospect_rag.errors import ActionableError

if TYPE_CHECKING:
    from prospect_rag.config import Settings
    from prospect_rag.rag.embedder import Embedder
    from prospect_rag.rag.scorer import Scorer
    from prospect_rag.rag.store import CompanyStore


def build_components(settings: Settings) -> tuple[CompanyStore, Embedder, Scorer]:
    """Wire store, embedder, and scorer from validated settings."""
    from prospect_rag.rag.aggregator import OutcomeWeights
    from prospect_rag.rag.embedder import Embedder
    from prospect_rag.rag.retry import RetryPolicy
    from prospect_rag.rag.scorer import Scorer
    from prospect_rag.rag.store import CompanyStore

    retry_policy = RetryPolicy.from_config(settings.retry)
    store = CompanyStore(
        persist_dir=settings.chroma.persist_dir,
        collection=settings.chroma.collection,
    )
    embedder = Embedder(
        base_url=settings.ollama.base_url,
        embed_model=settings.ollama.embed_model,
        dimensionality=settings.ollama.dimensionality,
        task_type=settings.ollama.task_type,
        retry_policy=retry_policy,
        timeout=settings.ollama.timeout,
    )
    scorer = Scorer(
        store=store,
        embedder=embedder,
        weights=OutcomeWeights.from_config(settings.scoring),
        neighbors=settings.scoring.neighbors,
        candidates=settings.scoring.candidates,
        category=settings.scoring.reference_category,
        retry_policy=retry_policy,
    )
    return store, embedder, scorer


def handle_import(args: argparse.Namespace) -> None:
    """Embed and store the reference corpus from a CSV file."""
    from prospect_rag.pipeline.importer import CorpusImporter

    settings = load_settings(args.settings)
    store, embedder, _ = build_components(settings)
    importer = CorpusImporter(
        store=store,
        embedder=embedder,
        batch_size=settings.output.import_batch_size,
        category=settings.scoring.reference_category,
    )

    async def _run() -> None:
        await embedder.health_check()
        report = await importer.import_csv(args.csv_path)
        print(f"Parsed:   {report.parsed} companies ({report.skipped} skipped)")
        print(f"Imported: {report.imported}")
        print(f"Failed:   {report.failed} ({report.failed_batches} batches)")

    asyncio.run(_run())


def handle_score(args: argparse.Namespace) -> None:
    """Score one description and print the result as JSON."""
    settings = load_settings(args.settings)

    description = args.description
    if args.file:
        try:
            description = Path(args.file).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ActionableError.validation(
                field_name="file",
                reason=f"cannot read {args.file}: {exc}",
                suggestion="Pass a readable UTF-8 text file with the company description",
            ) from None

    _, _, scorer = build_components(settings)

    async def _run() -> None:
        result = await scorer.score(description)
        payload = result.to_dict()
        if not args.neighbors:
            payload.pop("neighbors")
        print(json.dumps(payload, indent=2))

    asyncio.run(_run())


def handle_score_all(args: argparse.Namespace) -> None:
    """Score every company that has no prospect score yet."""
    from prospect_rag.logging import configure_file_logging
    from prospect_rag.pipeline.batch import BatchScorer

    settings = load_settings(args.settings)
    configure_file_logging(settings.output.log_dir)
    store, embedder, scorer = build_components(settings)
    concurrency = args.concurrency or settings.scoring.concurrency
    batch = BatchScorer(store=store, scorer=scorer, concurrency=concurrency)

    async def _run() -> None:
        await embedder.health_check()
        report = await batch.score_all_unscored(args.limit, retry_failed=args.retry_failed)

        print(f"\n{'=' * 60}")
        print(" Batch Scoring Summary")
        print(f"{'=' * 60}")
        print(f" Selected: {report.selected}")
        print(f" Scored:   {report.scored}")
        print(f" Failed:   {report.failed}")
        print(f"{'=' * 60}")
        for failure in report.failures:
            print(f"  - {failure.name} ({failure.company_id}): {failure.reason}")
        if report.scored:
            print("\nRun 'rerank' to refresh percentiles.")

    asyncio.run(_run())


def handle_rerank(args: argparse.Namespace) -> None:
    """Recompute every scored company's percentile."""
    from prospect_rag.pipeline.rerank import Reranker
    from prospect_rag.rag.store import CompanyStore

    settings = load_settings(args.settings)
    store = CompanyStore(
        persist_dir=settings.chroma.persist_dir,
        collection=settings.chroma.collection,
    )
    reranker = Reranker(
        store=store,
        batch_size=args.batch_size or settings.ranking.batch_size,
        cursor_path=settings.ranking.cursor_path,
    )
    report = reranker.run(restart=args.restart)
    print(f"Ranked {report.total} companies")
    print(f"  Written: {report.written} in {report.batches} batches")
    if report.resumed_from:
        print(f"  Resumed from offset {report.resumed_from}")


def handle_dedupe(args: argparse.Namespace) -> None:
    """Remove duplicate companies, keeping the earliest per website."""
    from prospect_rag.pipeline.dedupe import remove_duplicates
    from prospect_rag.rag.store import CompanyStore

    settings = load_settings(args.settings)
    store = CompanyStore(
        persist_dir=settings.chroma.persist_dir,
        collection=settings.chroma.collection,
    )
    removed = remove_duplicates(store)
    print(f"Removed {removed} duplicate companies ({store.count()} remaining)")


def handle_export(args: argparse.Namespace) -> None:
    """Write scored companies to CSV."""
    from prospect_rag.export import CSVExporter
    from prospect_rag.rag.store import CompanyStore

    settings = load_settings(args.settings)
    store = CompanyStore(
        persist_dir=settings.chroma.persist_dir,
        collection=settings.chroma.collection,
    )
    out_path = args.output or str(
        Path(settings.output.output_dir) / "companies_with_prospect_scores.csv"
    )
    exported = CSVExporter().export(store, out_path)
    print(f"Exported {exported} companies → {out_path}")


def handle_serve(args: argparse.Namespace) -> None:
    """Serve the scoring API over HTTP."""
    import uvicorn

    from prospect_rag.api import create_app

    settings = load_settings(args.settings)
    _, _, scorer = build_components(settings)
    uvicorn.run(
        create_app(scorer),
        host=args.host or settings.server.host,
        port=args.port or settings.server.port,
    )


def handle_reset(args: argparse.Namespace) -> None:
    """Drop the company collection and any pending re-rank cursor."""
    from prospect_rag.rag.store import CompanyStore

    settings = load_settings(args.settings)
    store = CompanyStore(
        persist_dir=settings.chroma.persist_dir,
        collection=settings.chroma.collection,
    )
    store.reset()
    Path(settings.ranking.cursor_path).unlink(missing_ok=True)
    print(f"Reset collection: {settings.chroma.collection}")
    print("Run 'import' to load the reference corpus again.")


def _positive_int(raw: str) -> int:
    value = int(raw)
    if value <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {raw}")
    return value


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="prospect-rag",
        description="Score company descriptions against a reference corpus of known outcomes",
    )
    parser.add_argument(
        "--settings",
        type=str,
        default=str(DEFAULT_SETTINGS_PATH),
        help=f"Path to settings.toml (default: {DEFAULT_SETTINGS_PATH})",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    # -- import --------------------------------------------------------------
    import_p = sub.add_parser("import", help="Embed and store reference companies from CSV")
    import_p.add_argument("csv_path", type=str, help="Companies CSV file")

    # -- score ---------------------------------------------------------------
    score_p = sub.add_parser("score", help="Score one company description")
    score_p.add_argument("description", type=str, nargs="?", default=None, help="Description text")
    score_p.add_argument("--file", type=str, default=None, help="Read the description from a file")
    score_p.add_argument(
        "--neighbors",
        action="store_true",
        help="Include the nearest reference companies in the output",
    )

    # -- score-all -----------------------------------------------------------
    score_all_p = sub.add_parser("score-all", help="Score every unscored company")
    score_all_p.add_argument(
        "--limit",
        type=_positive_int,
        default=None,
        metavar="N",
        help="Score at most N companies (default: all)",
    )
    score_all_p.add_argument(
        "--retry-failed",
        action="store_true",
        help="Also re-score companies that previously failed",
    )
    score_all_p.add_argument(
        "--concurrency",
        type=_positive_int,
        default=None,
        metavar="N",
        help="Companies scored in parallel (default: [scoring].concurrency)",
    )

    # -- rerank --------------------------------------------------------------
    rerank_p = sub.add_parser("rerank", help="Recompute percentiles for all scored companies")
    rerank_p.add_argument(
        "--batch-size",
        type=_positive_int,
        default=None,
        metavar="N",
        help="Percentile writes per batch (default: [ranking].batch_size)",
    )
    rerank_p.add_argument(
        "--restart",
        action="store_true",
        help="Ignore a saved cursor and rewrite every batch",
    )

    # -- dedupe --------------------------------------------------------------
    sub.add_parser("dedupe", help="Remove duplicate companies (same website)")

    # -- export --------------------------------------------------------------
    export_p = sub.add_parser("export", help="Export scored companies to CSV")
    export_p.add_argument("--output", type=str, default=None, help="Output CSV path")

    # -- serve ---------------------------------------------------------------
    serve_p = sub.add_parser("serve", help="Run the HTTP scoring API")
    serve_p.add_argument("--host", type=str, default=None)
    serve_p.add_argument("--port", type=int, default=None)

    # -- reset ---------------------------------------------------------------
    sub.add_parser("reset", help="Drop the company collection (clears all imported data)")

    return parser
