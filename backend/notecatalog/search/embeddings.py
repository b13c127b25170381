# @TEST tests/test_embeddings.py

"""Embedding provider client.

Uses the OpenAI embeddings API (text-embedding-3-small by default) to
produce 1536-dimensional vectors for pgvector storage and cosine search.
Inputs longer than the model's token window are truncated with tiktoken.
"""

from __future__ import annotations

import logging

import httpx
import tiktoken
from openai import APIError, AsyncOpenAI, RateLimitError

logger = logging.getLogger(__name__)


class EmbeddingError(Exception):
    """Raised when an embedding call fails."""


class EmbeddingNotConfiguredError(EmbeddingError):
    """Raised when no provider credentials or local service are configured."""


class EmbeddingRateLimitError(EmbeddingError):
    """Raised when the provider rejects a call for rate or quota reasons.

    Attributes:
        retry_after_seconds: Provider hint from ``Retry-After`` /
            ``retry-after-ms`` headers, when present.
    """

    def __init__(self, message: str, retry_after_seconds: float | None = None) -> None:
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


def parse_retry_after(headers: httpx.Headers | dict | None) -> float | None:
    """Read a retry-after hint (seconds) from response headers."""
    if not headers:
        return None
    value = headers.get("retry-after-ms")
    if value is not None:
        try:
            return max(float(value) / 1000.0, 0.0)
        except ValueError:
            pass
    value = headers.get("retry-after")
    if value is not None:
        try:
            return max(float(value), 0.0)
        except ValueError:
            return None
    return None


class EmbeddingService:
    """Generate vector embeddings for text.

    Supports two modes:

    * **OpenAI API mode** (default) -- uses the OpenAI embeddings endpoint.
    * **Local HTTP mode** -- when ``local_url`` (``EMBEDDING_SERVICE_URL``)
      is set, requests go to ``POST {local_url}/embed`` instead.

    Parameters
    ----------
    api_key : str
        OpenAI API key.  Ignored when running in local mode.
    model : str
        Default embedding model name.
    dimensions : int
        Output vector dimensions (default: 1536).
    local_url : str | None
        Base URL of a local embedding service.
    max_tokens : int
        Inputs are truncated to this many tokens before the call.
    """

    def __init__(
        self,
        api_key: str = "",
        model: str = "text-embedding-3-small",
        dimensions: int = 1536,
        local_url: str | None = None,
        max_tokens: int = 8191,
    ) -> None:
        self._model = model
        self._dimensions = dimensions
        self._local_url = local_url or None
        self._max_tokens = max_tokens

        if self._local_url:
            logger.info("EmbeddingService: local mode enabled (%s)", self._local_url)
            self._client = None
        elif api_key:
            self._client = AsyncOpenAI(api_key=api_key)
        else:
            self._client = None

        try:
            self._encoding = tiktoken.encoding_for_model(model)
        except KeyError:
            self._encoding = tiktoken.get_encoding("cl100k_base")

    @property
    def model(self) -> str:
        return self._model

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def is_configured(self) -> bool:
        return bool(self._local_url or self._client)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed(self, text: str, model: str | None = None) -> tuple[list[float], str]:
        """Embed one text and report which model produced the vector.

        Raises
        ------
        EmbeddingRateLimitError
            On HTTP 429 or an ``insufficient_quota`` error.
        EmbeddingError
            On any other provider failure, or when *text* is blank.
        """
        if not text or not text.strip():
            raise EmbeddingError("Cannot embed empty text")

        used_model = model or self._model
        vectors = await self._call_api([self.truncate(text)], used_model)
        if not vectors or not vectors[0]:
            raise EmbeddingError("Provider returned no embedding")
        return vectors[0], used_model

    def truncate(self, text: str) -> str:
        """Cut *text* to the configured token window."""
        tokens = self._encoding.encode(text)
        if len(tokens) <= self._max_tokens:
            return text
        return self._encoding.decode(tokens[: self._max_tokens])

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _call_api(self, texts: list[str], model: str) -> list[list[float]]:
        if self._local_url:
            return await self._call_local_api(texts)
        if self._client is None:
            raise EmbeddingNotConfiguredError("OPENAI_API_KEY is not configured")
        return await self._call_openai_api(texts, model)

    async def _call_openai_api(self, texts: list[str], model: str) -> list[list[float]]:
        """Call the OpenAI embeddings API.

        Raises
        ------
        EmbeddingRateLimitError
            Wraps ``openai.RateLimitError`` and quota errors.
        EmbeddingError
            Wraps any other ``openai.APIError``.
        """
        try:
            response = await self._client.embeddings.create(
                input=texts,
                model=model,
                dimensions=self._dimensions,
            )
        except RateLimitError as exc:
            retry_after = parse_retry_after(exc.response.headers if exc.response is not None else None)
            logger.warning("Embedding API rate limited (retry_after=%s)", retry_after)
            raise EmbeddingRateLimitError(str(exc), retry_after) from exc
        except APIError as exc:
            if getattr(exc, "code", None) == "insufficient_quota":
                logger.warning("Embedding API quota exhausted")
                raise EmbeddingRateLimitError(str(exc)) from exc
            logger.error("Embedding API error: %s", exc)
            raise EmbeddingError(str(exc)) from exc

        sorted_data = sorted(response.data, key=lambda d: d.index)
        return [item.embedding for item in sorted_data]

    async def _call_local_api(self, texts: list[str]) -> list[list[float]]:
        """Call a local HTTP embedding service.

        Expects ``POST /embed`` accepting ``{"input": [...], "dimensions": N}``
        and returning ``{"embeddings": [[...], ...]}``.
        """
        url = f"{self._local_url}/embed"
        payload = {"input": texts, "dimensions": self._dimensions}

        try:
            async with httpx.AsyncClient(timeout=60.0) as client:
                response = await client.post(url, json=payload)
                response.raise_for_status()
                data = response.json()
                return data["embeddings"]
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 429:
                retry_after = parse_retry_after(exc.response.headers)
                logger.warning("Local embedding service rate limited (retry_after=%s)", retry_after)
                raise EmbeddingRateLimitError(str(exc), retry_after) from exc
            logger.error("Local embedding HTTP error: %s", exc)
            raise EmbeddingError(str(exc)) from exc
        except httpx.RequestError as exc:
            logger.error("Local embedding request error: %s", exc)
            raise EmbeddingError(str(exc)) from exc
        except (KeyError, ValueError) as exc:
            logger.error("Local embedding response parse error: %s", exc)
            raise EmbeddingError(f"Unexpected response from local embedding service: {exc}") from exc
