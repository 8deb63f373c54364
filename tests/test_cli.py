"""CLI tests — argument parsing and command handlers.

Handlers are exercised with real settings pointing into ``tmp_path``.
Only Ollama I/O is mocked; ``build_components`` is patched where a
handler would otherwise construct a live embedder.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import make_company, make_settings, seed_store
from prospect_rag.__main__ import main
from prospect_rag.cli import (
    build_parser,
    handle_export,
    handle_rerank,
    handle_reset,
    handle_score,
    handle_score_all,
)
from prospect_rag.models import OutcomeCounts, ScoreResult
from prospect_rag.rag.store import CompanyStore

if TYPE_CHECKING:
    from pathlib import Path

    from prospect_rag.config import Settings
    from prospect_rag.rag.embedder import Embedder

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def cli_store(settings: Settings) -> CompanyStore:
    """A store at the same location the handlers will open."""
    return CompanyStore(
        persist_dir=settings.chroma.persist_dir,
        collection=settings.chroma.collection,
    )


def _args(argv: list[str]) -> object:
    return build_parser().parse_args(["--settings", "unused.toml", *argv])


# ---------------------------------------------------------------------------
# TestParser
# ---------------------------------------------------------------------------


class TestParser:
    """REQUIREMENT: Every command is reachable with its documented flags.

    WHO: Operators driving the pipeline from a shell
    WHAT: import, score, score-all, rerank, dedupe, export, serve and
          reset parse with their flags and defaults; invalid counts are
          rejected; a missing subcommand exits
    WHY: A flag that silently parses to the wrong default changes what
         a long batch run does
    """

    def test_score_all_flags(self) -> None:
        """score-all accepts --limit, --retry-failed and --concurrency."""
        args = build_parser().parse_args(
            ["score-all", "--limit", "100", "--retry-failed", "--concurrency", "4"]
        )
        assert args.limit == 100
        assert args.retry_failed is True
        assert args.concurrency == 4

    def test_score_all_defaults(self) -> None:
        """Without flags score-all scores everything, skipping failures, at configured concurrency."""
        args = build_parser().parse_args(["score-all"])
        assert args.limit is None
        assert args.retry_failed is False
        assert args.concurrency is None

    def test_non_positive_limit_is_rejected(self) -> None:
        """--limit 0 is a usage error."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["score-all", "--limit", "0"])

    def test_rerank_flags(self) -> None:
        """rerank accepts --batch-size and --restart."""
        args = build_parser().parse_args(["rerank", "--batch-size", "250", "--restart"])
        assert args.batch_size == 250
        assert args.restart is True

    def test_import_requires_csv_path(self) -> None:
        """import without a path is a usage error."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["import"])

    def test_settings_defaults_to_config_dir(self) -> None:
        """--settings defaults to config/settings.toml."""
        args = build_parser().parse_args(["dedupe"])
        assert args.settings == "config/settings.toml"

    def test_missing_subcommand_exits(self) -> None:
        """Running with no subcommand is a usage error."""
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


# ---------------------------------------------------------------------------
# TestHandlers
# ---------------------------------------------------------------------------


class TestHandlers:
    """REQUIREMENT: Handlers wire components from settings and report results.

    WHO: The CLI entry point dispatching a parsed command
    WHAT: score prints the result JSON; score-all checks Ollama first and
          prints a summary; rerank writes percentiles; export writes
          to the configured output directory; reset clears the collection
          and any re-rank cursor
    WHY: The handlers are the only place where configuration meets the
         pipeline; wiring mistakes there affect every run
    """

    def test_score_prints_json(
        self, settings: Settings, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """score prints the score payload without neighbors by default."""
        scorer = MagicMock()
        scorer.score = AsyncMock(
            return_value=ScoreResult(score=0.2, percentile=25.0, counts=OutcomeCounts(acquired=1))
        )
        with (
            patch("prospect_rag.cli.load_settings", return_value=settings),
            patch("prospect_rag.cli.build_components", return_value=(MagicMock(), MagicMock(), scorer)),
        ):
            handle_score(_args(["score", "Payments API for clinics"]))  # type: ignore[arg-type]

        payload = json.loads(capsys.readouterr().out)
        assert payload["prospect_score"] == 0.2
        assert payload["prospect_percentile"] == 25.0
        assert "neighbors" not in payload

    def test_score_reads_description_from_file(
        self, settings: Settings, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """score --file scores the file contents."""
        path = tmp_path / "description.txt"
        path.write_text("Payments API for clinics", encoding="utf-8")
        scorer = MagicMock()
        scorer.score = AsyncMock(return_value=ScoreResult(score=0.2, percentile=25.0))
        with (
            patch("prospect_rag.cli.load_settings", return_value=settings),
            patch("prospect_rag.cli.build_components", return_value=(MagicMock(), MagicMock(), scorer)),
        ):
            handle_score(_args(["score", "--file", str(path)]))  # type: ignore[arg-type]

        scorer.score.assert_awaited_once_with("Payments API for clinics")
        assert json.loads(capsys.readouterr().out)["prospect_score"] == 0.2

    def test_score_all_runs_health_check_and_scores(
        self,
        settings: Settings,
        cli_store: CompanyStore,
        mock_embedder: Embedder,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """score-all verifies Ollama, scores pending companies and prints a summary."""
        seed_store(cli_store, [make_company("Alpha"), make_company("Beta")])
        scorer = MagicMock()
        scorer.score = AsyncMock(return_value=ScoreResult(score=0.1, percentile=0.0))
        with (
            patch("prospect_rag.cli.load_settings", return_value=settings),
            patch(
                "prospect_rag.cli.build_components",
                return_value=(cli_store, mock_embedder, scorer),
            ),
            patch("prospect_rag.logging.configure_file_logging"),
        ):
            handle_score_all(_args(["score-all"]))  # type: ignore[arg-type]

        mock_embedder.health_check.assert_awaited_once()  # type: ignore[attr-defined]
        out = capsys.readouterr().out
        assert "Scored:   2" in out
        assert cli_store.count_scored() == 2

    def test_rerank_writes_percentiles(
        self,
        settings: Settings,
        cli_store: CompanyStore,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """rerank ranks scored companies and reports the count."""
        stored = seed_store(cli_store, [make_company("A"), make_company("B")])
        cli_store.write_score(stored[0].id, 0.1, OutcomeCounts())
        cli_store.write_score(stored[1].id, 0.9, OutcomeCounts())
        with patch("prospect_rag.cli.load_settings", return_value=settings):
            handle_rerank(_args(["rerank"]))  # type: ignore[arg-type]

        assert "Ranked 2 companies" in capsys.readouterr().out
        top = cli_store.get_company(stored[1].id)
        assert top is not None
        assert top.percentile == 100.0

    def test_export_writes_to_output_dir(
        self, settings: Settings, cli_store: CompanyStore, tmp_path: Path
    ) -> None:
        """export without --output writes into the configured output directory."""
        [company] = seed_store(cli_store, [make_company("Alpha")])
        cli_store.write_score(company.id, 0.3, OutcomeCounts())
        with patch("prospect_rag.cli.load_settings", return_value=settings):
            handle_export(_args(["export"]))  # type: ignore[arg-type]

        out = tmp_path / "output" / "companies_with_prospect_scores.csv"
        assert out.exists()
        assert "Alpha" in out.read_text(encoding="utf-8")

    def test_reset_clears_collection_and_cursor(
        self, settings: Settings, cli_store: CompanyStore, tmp_path: Path
    ) -> None:
        """reset empties the collection and deletes a pending re-rank cursor."""
        seed_store(cli_store, [make_company("Alpha")])
        cursor = tmp_path / "rerank_cursor.json"
        cursor.write_text("{}", encoding="utf-8")
        with patch("prospect_rag.cli.load_settings", return_value=settings):
            handle_reset(_args(["reset"]))  # type: ignore[arg-type]

        assert not cursor.exists()
        reopened = CompanyStore(
            persist_dir=settings.chroma.persist_dir,
            collection=settings.chroma.collection,
        )
        assert reopened.count() == 0


# ---------------------------------------------------------------------------
# TestMain
# ---------------------------------------------------------------------------


class TestMain:
    """REQUIREMENT: Actionable errors end the process with a JSON report.

    WHO: Operators and scripts running the CLI
    WHAT: An ActionableError from a handler is printed to stderr as JSON
          and the process exits with status 1
    WHY: Scripts need a non-zero exit; humans need the recovery steps
    """

    def test_missing_settings_exits_with_json_error(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """A missing settings file exits 1 with a CONFIG error on stderr."""
        with pytest.raises(SystemExit) as exc_info:
            main(["--settings", str(tmp_path / "missing.toml"), "rerank"])
        assert exc_info.value.code == 1
        payload = json.loads(capsys.readouterr().err)
        assert payload["error_type"] == "config"

    def test_unreadable_description_file_exits_with_validation_error(
        self, settings: Settings, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """score --file with a missing file exits 1 with a VALIDATION error on stderr."""
        build = MagicMock()
        with (
            patch("prospect_rag.cli.load_settings", return_value=settings),
            patch("prospect_rag.cli.build_components", build),
            pytest.raises(SystemExit) as exc_info,
        ):
            main(["--settings", "unused.toml", "score", "--file", str(tmp_path / "missing.txt")])

        assert exc_info.value.code == 1
        payload = json.loads(capsys.readouterr().err)
        assert payload["error_type"] == "validation"
        assert "missing.txt" in payload["error"]
        build.assert_not_called()
