"""Embedding generation with batching, per-item fallback and zero-vector substitution."""
from __future__ import annotations

import asyncio
import hashlib
import logging
import math
import re
import time
from typing import Any, List, Optional, Protocol, Sequence, Union

from google.genai import types

from clauseiq.errors import QueryEmbeddingError
from clauseiq.fallback import TRY_NEXT, Strategy, run_fallback_chain
from clauseiq.telemetry import emit_embeddings_event

LOGGER = logging.getLogger(__name__)

DEFAULT_SENTENCE_TRANSFORMER = "sentence-transformers/all-mpnet-base-v2"

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


class EmbeddingBackend(Protocol):
    """Anything that turns one text into one vector."""

    model_name: str

    async def embed(self, text: str) -> List[float]:
        ...


class GeminiEmbeddingBackend:
    """Embeddings from the Gemini ``embed_content`` endpoint."""

    def __init__(self, client: Any, *, model: str, dimension: int) -> None:
        self._client = client
        self.model_name = model
        self.dimension = dimension

    async def embed(self, text: str) -> List[float]:
        response = await self._client.aio.models.embed_content(
            model=self.model_name,
            contents=text,
            config=types.EmbedContentConfig(output_dimensionality=self.dimension),
        )
        embeddings = response.embeddings or []
        if not embeddings or embeddings[0].values is None:
            raise ValueError("Embedding response contained no values")
        return [float(value) for value in embeddings[0].values]


class SentenceTransformerBackend:
    """Local embeddings from a sentence-transformers model (``local`` extra)."""

    def __init__(self, model_name: str = DEFAULT_SENTENCE_TRANSFORMER, *, device: str | None = None) -> None:
        from sentence_transformers import SentenceTransformer

        self.model_name = model_name
        self._model = SentenceTransformer(model_name, device=device)
        self.dimension = int(self._model.get_sentence_embedding_dimension())

    async def embed(self, text: str) -> List[float]:
        vector = await asyncio.to_thread(
            self._model.encode,
            text,
            convert_to_numpy=True,
            show_progress_bar=False,
            normalize_embeddings=True,
        )
        return [float(value) for value in vector.tolist()]


class DeterministicEmbeddingBackend:
    """Offline hashed bag-of-words embeddings.

    Each lower-cased token is hashed onto a signed dimension, so texts that
    share vocabulary end up close under cosine similarity. Used for local
    development and tests when no Gemini key is configured.
    """

    def __init__(self, dimension: int = 768) -> None:
        self.model_name = "deterministic-hash"
        self.dimension = dimension

    async def embed(self, text: str) -> List[float]:
        return self.embed_sync(text)

    def embed_sync(self, text: str) -> List[float]:
        vector = [0.0] * self.dimension
        for token in _TOKEN_RE.findall(text.lower()):
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            index = int.from_bytes(digest[:4], "big") % self.dimension
            sign = 1.0 if digest[4] & 1 else -1.0
            vector[index] += sign
        norm = math.sqrt(sum(value * value for value in vector))
        if norm == 0.0:
            return vector
        return [value / norm for value in vector]


class EmbeddingGenerator:
    """Embed chunk texts in controlled-concurrency batches.

    A batch whose concurrent requests fail falls back to embedding its items
    one by one; an item that still fails becomes a zero vector so that one
    bad chunk never aborts a whole ingestion.
    """

    def __init__(
        self,
        backend: EmbeddingBackend,
        *,
        dimension: int,
        batch_size: int = 10,
        concurrency: int = 5,
    ) -> None:
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self._backend = backend
        self.dimension = dimension
        self.batch_size = batch_size
        self._concurrency = max(1, concurrency)

    @property
    def model_name(self) -> str:
        return getattr(self._backend, "model_name", type(self._backend).__name__)

    def zero_vector(self) -> List[float]:
        return [0.0] * self.dimension

    async def embed_batch(self, texts: Sequence[str], batch_size: Optional[int] = None) -> List[List[float]]:
        """Return one vector per text, in input order."""

        if not texts:
            return []
        size = batch_size or self.batch_size
        started = time.perf_counter()
        errors: List[str] = []
        zero_positions: List[int] = []
        semaphore = asyncio.Semaphore(self._concurrency)
        vectors: List[List[float]] = []

        for offset in range(0, len(texts), size):
            batch = list(texts[offset : offset + size])

            async def _concurrent(batch: List[str] = batch) -> Union[List[List[float]], object]:
                results = await asyncio.gather(
                    *(self._embed_guarded(text, semaphore) for text in batch),
                    return_exceptions=True,
                )
                failures = [result for result in results if isinstance(result, BaseException)]
                if failures:
                    errors.append(f"batch@{offset}: {failures[0]}")
                    LOGGER.warning(
                        "Embedding batch at offset %s failed (%s errors); retrying items sequentially",
                        offset,
                        len(failures),
                    )
                    return TRY_NEXT
                return list(results)

            async def _sequential(batch: List[str] = batch, offset: int = offset) -> List[List[float]]:
                embedded: List[List[float]] = []
                for position, text in enumerate(batch, start=offset):
                    try:
                        embedded.append(await self._embed_one(text))
                    except Exception as error:
                        errors.append(f"item@{position}: {error}")
                        zero_positions.append(position)
                        LOGGER.warning("Embedding failed for chunk %s; substituting zero vector", position)
                        embedded.append(self.zero_vector())
                return embedded

            _, batch_vectors = await run_fallback_chain(
                [Strategy("concurrent", _concurrent), Strategy("sequential", _sequential)]
            )
            vectors.extend(batch_vectors)

        emit_embeddings_event(
            model=self.model_name,
            count=len(texts),
            duration_ms=(time.perf_counter() - started) * 1000.0,
            errors=errors,
            zero_vectors=len(zero_positions),
        )
        return vectors

    async def embed_query(self, text: str) -> List[float]:
        """Embed a single user query; any failure is fatal to the request."""

        try:
            return await self._embed_one(text)
        except Exception as error:
            LOGGER.error("Query embedding failed: %s", error)
            raise QueryEmbeddingError("Failed to generate query embedding", cause=error) from error

    async def _embed_guarded(self, text: str, semaphore: asyncio.Semaphore) -> List[float]:
        async with semaphore:
            return await self._embed_one(text)

    async def _embed_one(self, text: str) -> List[float]:
        vector = await self._backend.embed(text)
        if len(vector) != self.dimension:
            raise ValueError(
                f"Embedding dimension mismatch: expected {self.dimension}, got {len(vector)}"
            )
        return vector


def build_embedding_backend(
    provider: str,
    *,
    dimension: int,
    model: str,
    gemini_client: Any = None,
) -> EmbeddingBackend:
    """Instantiate the backend named by ``provider``."""

    if provider == "gemini":
        if gemini_client is None:
            raise ValueError("EMBEDDING_PROVIDER=gemini requires GEMINI_API_KEY")
        return GeminiEmbeddingBackend(gemini_client, model=model, dimension=dimension)
    if provider in {"sentence-transformers", "sentence_transformers", "local"}:
        return SentenceTransformerBackend(
            model if "/" in model else DEFAULT_SENTENCE_TRANSFORMER
        )
    if provider in {"deterministic", "mock"}:
        return DeterministicEmbeddingBackend(dimension)
    raise ValueError(f"Unsupported EMBEDDING_PROVIDER: {provider!r}")


__all__ = [
    "DeterministicEmbeddingBackend",
    "EmbeddingBackend",
    "EmbeddingGenerator",
    "GeminiEmbeddingBackend",
    "SentenceTransformerBackend",
    "build_embedding_backend",
]
