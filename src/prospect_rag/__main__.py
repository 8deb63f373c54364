"""CLI entry point for prospect-rag."""

from __future__ import annotations

import json
import sys

from prospect_rag.cli import (
    build_parser,
    handle_dedupe,
    handle_export,
    handle_import,
    handle_rerank,
    handle_reset,
    handle_score,
    handle_score_all,
    handle_serve,
)
from prospect_rag.errors import ActionableError

_HANDLERS = {
    "import": handle_import,
    "score": handle_score,
    "score-all": handle_score_all,
    "rerank": handle_rerank,
    "dedupe": handle_dedupe,
    "export": handle_export,
    "serve": handle_serve,
    "reset": handle_reset,
}


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        _HANDLERS[args.command](args)
    except ActionableError as exc:
        print(json.dumps(exc.to_dict(), indent=2), file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
