"""Ollama embedding wrapper with retry logic.

Wraps the ``ollama`` Python SDK's :class:`AsyncClient` to provide:

- **Embedding**: text → float vector via ``nomic-embed-text``
- **Batch embedding**: many texts in one request (corpus import)
- **Health check**: verify Ollama + the embed model are available
- **Retry with backoff**: transient failures are retried according to an
  injected :class:`~prospect_rag.rag.retry.RetryPolicy` before giving up

nomic models select their task through a text prefix, so the configured
``task_type`` is prepended as ``"<task_type>: <text>"``.  The model is
Matryoshka-trained: a shorter ``dimensionality`` is produced by truncating
the returned vector and re-normalising it to unit length.

Any failure talking to Ollama, including a malformed response,
surfaces as an EMBEDDING :class:`~prospect_rag.errors.ActionableError`.
"""

from __future__ import annotations

import asyncio
import math
from numbers import Real
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

import httpx
import ollama as ollama_sdk

from prospect_rag.errors import ActionableError, ErrorType
from prospect_rag.logging import logger
from prospect_rag.rag.retry import RetryPolicy

_T = TypeVar("_T")

# Status codes that warrant a retry (server overloaded / temporary failure)
_RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}

# nomic-embed-text has an 8192-token window; company descriptions are far
# shorter, but scraped "long descriptions" occasionally carry whole pages.
_MAX_EMBED_CHARS = 8_000


class MalformedEmbeddingError(ValueError):
    """The provider answered, but not with one numeric vector per input."""


class Embedder:
    """Wraps Ollama embedding calls with backoff and error handling.

    Usage::

        embedder = Embedder(
            base_url="http://localhost:11434",
            embed_model="nomic-embed-text",
            dimensionality=512,
            task_type="clustering",
        )
        await embedder.health_check()
        vec = await embedder.embed("Payments API for marketplaces")
        vecs = await embedder.embed_batch(["...", "..."])
    """

    MAX_EMBED_CHARS = _MAX_EMBED_CHARS

    def __init__(
        self,
        base_url: str,
        embed_model: str,
        *,
        dimensionality: int = 512,
        task_type: str = "clustering",
        retry_policy: RetryPolicy | None = None,
        timeout: float | None = None,
    ) -> None:
        self.base_url = base_url
        self.embed_model = embed_model
        self.dimensionality = dimensionality
        self.task_type = task_type
        self.retry_policy = retry_policy or RetryPolicy()
        self._client = ollama_sdk.AsyncClient(host=base_url, timeout=timeout)

    # -- Public API ----------------------------------------------------------

    async def embed(self, text: str | None) -> list[float]:
        """Return the embedding vector for *text*.

        Raises VALIDATION for empty or missing input; retries transient
        Ollama errors according to the retry policy.
        """
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: list[str | None]) -> list[list[float]]:
        """Return one vector per input text, in input order.

        The whole batch is rejected with VALIDATION if it is empty or any
        text is empty, so a bad row cannot silently shift the alignment
        between texts and vectors.
        """
        if not texts:
            raise ActionableError.validation(
                field_name="texts",
                reason="at least one text is required",
            )
        prepared = [self._prepare(t) for t in texts]

        async def _call() -> list[list[float]]:
            response = await self._client.embed(model=self.embed_model, input=prepared)
            return self._validate_response(response, expected=len(prepared))

        return await self._with_retry(_call, operation="embed")

    async def health_check(self) -> None:
        """Verify Ollama is reachable and the embed model is available.

        Raises :class:`~prospect_rag.errors.ActionableError`:
          - CONNECTION if Ollama is unreachable
          - EMBEDDING if the model is not pulled

        Batch commands call this before touching the corpus.
        """
        try:
            response = await self._client.list()
        except (ConnectionError, OSError, httpx.TransportError) as exc:
            raise ActionableError.connection(
                service="Ollama",
                url=self.base_url,
                raw_error=str(exc),
            ) from None

        available = {m.model for m in response.models if m.model}
        # Ollama model names may include :latest suffix, so normalise
        available_all = available | {name.split(":")[0] for name in available}

        model_base = self.embed_model.split(":")[0]
        if self.embed_model not in available_all and model_base not in available_all:
            raise ActionableError.embedding(
                model=self.embed_model,
                raw_error=f"Model '{self.embed_model}' is not pulled in Ollama",
                suggestion=f"Run: ollama pull {self.embed_model}",
            )

        logger.info("Ollama health check passed — %s available", self.embed_model)

    # -- Request / response shaping ------------------------------------------

    def _prepare(self, text: str | None) -> str:
        cleaned = (text or "").strip()
        if not cleaned:
            raise ActionableError(
                error="Cannot embed empty text",
                error_type=ErrorType.VALIDATION,
                service="Ollama",
                suggestion="Provide a non-empty company description",
            )
        if len(cleaned) > _MAX_EMBED_CHARS:
            logger.debug(
                "Truncating embed input from %d to %d chars",
                len(cleaned),
                _MAX_EMBED_CHARS,
            )
            cleaned = cleaned[:_MAX_EMBED_CHARS]
        if self.task_type:
            return f"{self.task_type}: {cleaned}"
        return cleaned

    def _validate_response(self, response: object, *, expected: int) -> list[list[float]]:
        embeddings = getattr(response, "embeddings", None)
        if not isinstance(embeddings, list | tuple):
            raise MalformedEmbeddingError(
                f"expected a list of embeddings, got {type(embeddings).__name__}"
            )
        if len(embeddings) != expected:
            raise MalformedEmbeddingError(
                f"expected {expected} embeddings, got {len(embeddings)}"
            )
        return [self._fit_dimensions(vector) for vector in embeddings]

    def _fit_dimensions(self, vector: object) -> list[float]:
        """Validate one vector and truncate it to ``dimensionality``."""
        if not isinstance(vector, list | tuple) or not all(
            isinstance(v, Real) and not isinstance(v, bool) for v in vector
        ):
            raise MalformedEmbeddingError("embedding is not a sequence of numbers")
        if not all(math.isfinite(v) for v in vector):
            raise MalformedEmbeddingError("embedding contains NaN or infinite values")
        if len(vector) < self.dimensionality:
            raise MalformedEmbeddingError(
                f"embedding has {len(vector)} dimensions, "
                f"{self.dimensionality} requested"
            )
        values = [float(v) for v in vector]
        if len(values) == self.dimensionality:
            return values

        truncated = values[: self.dimensionality]
        norm = math.sqrt(sum(v * v for v in truncated))
        if norm == 0.0 or not math.isfinite(norm):
            return truncated
        return [v / norm for v in truncated]

    # -- Retry logic ---------------------------------------------------------

    async def _with_retry(
        self,
        fn: Callable[[], Awaitable[_T]],
        *,
        operation: str,
    ) -> _T:
        """Call *fn*, backing off between attempts on retryable errors.

        Non-retryable errors (e.g. 404 model not found, 401 bad key) fail
        immediately.  After ``max_attempts`` attempts, raises EMBEDDING.
        """
        policy = self.retry_policy
        last_error: Exception | None = None

        for attempt in range(1, policy.max_attempts + 1):
            try:
                return await fn()
            except ollama_sdk.ResponseError as exc:
                last_error = exc
                if exc.status_code not in _RETRYABLE_STATUS_CODES:
                    raise ActionableError.embedding(
                        model=self.embed_model,
                        raw_error=str(exc),
                    ) from None
                reason = f"status {exc.status_code}"
            except (ConnectionError, OSError, httpx.TransportError) as exc:
                last_error = exc
                reason = "connection failed"
            except MalformedEmbeddingError as exc:
                last_error = exc
                reason = "malformed response"

            if attempt < policy.max_attempts:
                delay = policy.delay_for(attempt)
                logger.warning(
                    "Ollama %s attempt %d/%d failed (%s), retrying in %.1fs: %s",
                    operation,
                    attempt,
                    policy.max_attempts,
                    reason,
                    delay,
                    last_error,
                )
                await asyncio.sleep(delay)

        raise ActionableError.embedding(
            model=self.embed_model,
            raw_error=f"Failed after {policy.max_attempts} attempts: {last_error}",
            suggestion="Ollama may be overloaded — check resources and retry",
        )
