"""Configuration loading and validation.

Loads ``settings.toml`` and validates all fields at startup, before any
embedding calls or batch passes begin.  A config failure halfway through
scoring thousands of companies is far more costly than a startup
validation failure.

The validated config is exposed as a :class:`Settings` dataclass with
typed fields for each section: ``ollama``, ``retry``, ``chroma``,
``scoring``, ``ranking``, ``output``, and ``server``.  Every section is
optional; missing sections fall back to their defaults.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from prospect_rag.errors import ActionableError

# ---------------------------------------------------------------------------
# Config dataclasses
# ---------------------------------------------------------------------------


@dataclass
class OllamaConfig:
    """Embedding provider settings from ``[ollama]``."""

    base_url: str = "http://localhost:11434"
    embed_model: str = "nomic-embed-text"
    dimensionality: int = 512
    task_type: str = "clustering"
    timeout: float = 60.0


@dataclass
class RetryConfig:
    """Retry policy for embedding and index calls from ``[retry]``."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: float = 0.1


@dataclass
class ChromaConfig:
    """ChromaDB settings from ``[chroma]``."""

    persist_dir: str = "./data/chroma_db"
    collection: str = "companies"


@dataclass
class ScoringConfig:
    """Outcome weights and neighbor search sizes from ``[scoring]``."""

    acquired_weight: float = 0.8
    ipo_weight: float = 1.0
    inactive_weight: float = -1.0
    active_weight: float = 0.0
    neighbors: int = 50
    candidates: int = 100
    reference_category: str = "yc"
    concurrency: int = 1


@dataclass
class RankingConfig:
    """Batch percentile re-rank settings from ``[ranking]``."""

    batch_size: int = 500
    cursor_path: str = "./data/rerank_cursor.json"


@dataclass
class OutputConfig:
    """Export and log locations from ``[output]``."""

    output_dir: str = "./output"
    log_dir: str = "./data/logs"
    import_batch_size: int = 50


@dataclass
class ServerConfig:
    """HTTP server bind address from ``[server]``."""

    host: str = "127.0.0.1"
    port: int = 8000


@dataclass
class Settings:
    """Top-level validated configuration."""

    ollama: OllamaConfig = field(default_factory=OllamaConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    chroma: ChromaConfig = field(default_factory=ChromaConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    ranking: RankingConfig = field(default_factory=RankingConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    server: ServerConfig = field(default_factory=ServerConfig)


# ---------------------------------------------------------------------------
# Default settings path
# ---------------------------------------------------------------------------

DEFAULT_SETTINGS_PATH = Path("config/settings.toml")


# ---------------------------------------------------------------------------
# Loading and validation
# ---------------------------------------------------------------------------


def load_settings(path: str | Path = DEFAULT_SETTINGS_PATH) -> Settings:
    """Load and validate settings from a TOML file.

    Raises :class:`~prospect_rag.errors.ActionableError`:
      - CONFIG if the file is missing
      - VALIDATION if field values are out of range
      - PARSE if the TOML is malformed

    Returns a fully validated :class:`Settings` instance.
    """
    filepath = Path(path)
    if not filepath.exists():
        raise ActionableError.config(
            field_name="settings_path",
            reason=f"Settings file not found: {filepath}",
            suggestion=f"Create {filepath} or copy the shipped {DEFAULT_SETTINGS_PATH}",
        )

    raw_text = filepath.read_text(encoding="utf-8")
    try:
        data = tomllib.loads(raw_text)
    except tomllib.TOMLDecodeError as exc:
        raise ActionableError.parse(
            source=str(filepath),
            location="TOML syntax",
            raw_error=str(exc),
            suggestion=f"Fix TOML syntax in {filepath}",
        ) from None

    return _validate(data)


def _validate(data: dict[str, object]) -> Settings:
    """Validate raw TOML data and return a Settings instance."""

    # -- ollama section ------------------------------------------------------
    ollama_data = _section(data, "ollama")

    base_url = str(ollama_data.get("base_url", "http://localhost:11434"))
    if not base_url.startswith(("http://", "https://")):
        raise ActionableError.validation(
            field_name="ollama.base_url",
            reason=f"'{base_url}' is missing a scheme (http:// or https://)",
            suggestion="Set [ollama].base_url to a URL starting with http:// or https://",
        )

    ollama = OllamaConfig(
        base_url=base_url,
        embed_model=str(ollama_data.get("embed_model", "nomic-embed-text")),
        dimensionality=int(ollama_data.get("dimensionality", 512)),  # type: ignore[arg-type]
        task_type=str(ollama_data.get("task_type", "clustering")),
        timeout=float(ollama_data.get("timeout", 60.0)),  # type: ignore[arg-type]
    )
    _require_positive("ollama.dimensionality", ollama.dimensionality)
    _require_positive("ollama.timeout", ollama.timeout)

    # -- retry section -------------------------------------------------------
    retry_data = _section(data, "retry")
    retry = RetryConfig(
        max_attempts=int(retry_data.get("max_attempts", 3)),  # type: ignore[arg-type]
        base_delay=float(retry_data.get("base_delay", 1.0)),  # type: ignore[arg-type]
        max_delay=float(retry_data.get("max_delay", 30.0)),  # type: ignore[arg-type]
        jitter=float(retry_data.get("jitter", 0.1)),  # type: ignore[arg-type]
    )
    _require_positive("retry.max_attempts", retry.max_attempts)
    for name in ("base_delay", "max_delay", "jitter"):
        value = getattr(retry, name)
        if value < 0.0:
            raise ActionableError.validation(
                field_name=f"retry.{name}",
                reason=f"is {value} — must be >= 0.0",
            )

    # -- chroma section ------------------------------------------------------
    chroma_data = _section(data, "chroma")
    chroma = ChromaConfig(
        persist_dir=str(chroma_data.get("persist_dir", "./data/chroma_db")),
        collection=str(chroma_data.get("collection", "companies")),
    )

    # -- scoring section -----------------------------------------------------
    scoring_data = _section(data, "scoring")
    scoring = ScoringConfig(
        acquired_weight=float(scoring_data.get("acquired_weight", 0.8)),  # type: ignore[arg-type]
        ipo_weight=float(scoring_data.get("ipo_weight", 1.0)),  # type: ignore[arg-type]
        inactive_weight=float(scoring_data.get("inactive_weight", -1.0)),  # type: ignore[arg-type]
        active_weight=float(scoring_data.get("active_weight", 0.0)),  # type: ignore[arg-type]
        neighbors=int(scoring_data.get("neighbors", 50)),  # type: ignore[arg-type]
        candidates=int(scoring_data.get("candidates", 100)),  # type: ignore[arg-type]
        reference_category=str(scoring_data.get("reference_category", "yc")),
        concurrency=int(scoring_data.get("concurrency", 1)),  # type: ignore[arg-type]
    )

    # Weights bound the aggregate score to [-1.0, 1.0]
    for weight_name in ("acquired_weight", "ipo_weight", "inactive_weight", "active_weight"):
        value = getattr(scoring, weight_name)
        if not -1.0 <= value <= 1.0:
            raise ActionableError.validation(
                field_name=f"scoring.{weight_name}",
                reason=f"is {value} — must be between -1.0 and 1.0",
                suggestion=f"Set [scoring].{weight_name} to a value between -1.0 and 1.0",
            )

    _require_positive("scoring.neighbors", scoring.neighbors)
    _require_positive("scoring.concurrency", scoring.concurrency)
    if scoring.candidates < scoring.neighbors:
        raise ActionableError.validation(
            field_name="scoring.candidates",
            reason=f"is {scoring.candidates} — must be >= scoring.neighbors ({scoring.neighbors})",
            suggestion="Widen [scoring].candidates to at least the neighbor count",
        )

    # -- ranking section -----------------------------------------------------
    ranking_data = _section(data, "ranking")
    ranking = RankingConfig(
        batch_size=int(ranking_data.get("batch_size", 500)),  # type: ignore[arg-type]
        cursor_path=str(ranking_data.get("cursor_path", "./data/rerank_cursor.json")),
    )
    _require_positive("ranking.batch_size", ranking.batch_size)

    # -- output section ------------------------------------------------------
    output_data = _section(data, "output")
    output = OutputConfig(
        output_dir=str(output_data.get("output_dir", "./output")),
        log_dir=str(output_data.get("log_dir", "./data/logs")),
        import_batch_size=int(output_data.get("import_batch_size", 50)),  # type: ignore[arg-type]
    )
    _require_positive("output.import_batch_size", output.import_batch_size)

    # -- server section ------------------------------------------------------
    server_data = _section(data, "server")
    server = ServerConfig(
        host=str(server_data.get("host", "127.0.0.1")),
        port=int(server_data.get("port", 8000)),  # type: ignore[arg-type]
    )
    if not 0 < server.port < 65536:
        raise ActionableError.validation(
            field_name="server.port",
            reason=f"is {server.port} — must be between 1 and 65535",
        )

    return Settings(
        ollama=ollama,
        retry=retry,
        chroma=chroma,
        scoring=scoring,
        ranking=ranking,
        output=output,
        server=server,
    )


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _section(data: dict[str, object], name: str) -> dict[str, object]:
    """Return an optional top-level section, or raise CONFIG if it is not a table."""
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ActionableError.config(
            field_name=name,
            reason=f"[{name}] must be a table, not {type(section).__name__}",
            suggestion=f"Define [{name}] as a TOML table",
        )
    return section


def _require_positive(field_name: str, value: float) -> None:
    if value <= 0:
        raise ActionableError.validation(
            field_name=field_name,
            reason=f"is {value} — must be > 0",
            suggestion=f"Set {field_name} to a positive number",
        )
