"""HTTP surface for interactive scoring.

Endpoints:

- ``GET  /api/health``              — liveness probe
- ``POST /api/calculate-prospect``  — score one description

Errors are returned as :meth:`ActionableError.to_dict` payloads: invalid
input maps to 422, unavailable backends (Ollama, ChromaDB) to 503, and
anything else to 500.  Payloads carry the failure reason and recovery
guidance only; configuration values are never echoed back.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from prospect_rag.errors import ActionableError, ErrorType
from prospect_rag.logging import logger

if TYPE_CHECKING:
    from prospect_rag.rag.scorer import Scorer

_UNAVAILABLE = {
    ErrorType.EMBEDDING,
    ErrorType.INDEX,
    ErrorType.STORAGE,
    ErrorType.CONNECTION,
}


class ProspectRequest(BaseModel):
    description: str | None = None


def status_for(error: ActionableError) -> int:
    """HTTP status code for an actionable error."""
    if error.error_type == ErrorType.VALIDATION:
        return 422
    if error.error_type in _UNAVAILABLE:
        return 503
    return 500


def create_app(scorer: Scorer) -> FastAPI:
    """Build the FastAPI app around an already-wired :class:`Scorer`."""
    app = FastAPI(
        title="prospect-rag",
        description="Prospect scoring of company descriptions against a reference corpus",
    )

    @app.get("/api/health")
    async def health() -> dict[str, str]:
        return {"status": "OK"}

    @app.post("/api/calculate-prospect", response_model=None)
    async def calculate_prospect(request: ProspectRequest) -> dict[str, Any] | JSONResponse:
        try:
            result = await scorer.score(request.description)
        except ActionableError as exc:
            logger.error("Error calculating prospect score: %s", exc.error)
            return JSONResponse(status_code=status_for(exc), content=exc.to_dict())
        except Exception as exc:
            logger.exception("Unexpected error calculating prospect score")
            error = ActionableError.from_exception(exc, "api", "calculate prospect")
            return JSONResponse(status_code=status_for(error), content=error.to_dict())
        return result.to_dict()

    return app
