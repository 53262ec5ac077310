"""Pinecone vector store adapter."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, List, Mapping, Optional, Sequence

from pinecone import ServerlessSpec
from pinecone.exceptions import NotFoundException

from clauseiq.errors import NamespaceNotFoundError
from clauseiq.retry import Sleeper, poll_until
from clauseiq.telemetry import emit_vectorstore_event

from . import IndexStats, VectorMatch, VectorRecord, sanitize_metadata
from .errors import IndexNotReadyError, VectorStoreUnavailableError

LOGGER = logging.getLogger(__name__)


def _field(obj: Any, name: str, default: Any = None) -> Any:
    """Read ``name`` from an SDK response object or plain mapping."""

    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _is_namespace_not_found(error: BaseException) -> bool:
    if isinstance(error, NotFoundException):
        return True
    message = str(error).lower()
    return "namespace" in message and "not found" in message


class PineconeVectorStore:
    """Adapter around a serverless Pinecone index.

    The SDK is synchronous, so every call is moved off the event loop with
    :func:`asyncio.to_thread`.
    """

    backend_name = "pinecone"

    def __init__(
        self,
        client: Any,
        *,
        index_name: str,
        dimension: int,
        metric: str = "cosine",
        cloud: str = "aws",
        region: str = "us-east-1",
        ready_attempts: int = 30,
        ready_interval: float = 10.0,
        upsert_batch_size: int = 100,
        sleep: Optional[Sleeper] = None,
    ) -> None:
        self._client = client
        self.index_name = index_name
        self.dimension = dimension
        self.metric = metric
        self.cloud = cloud
        self.region = region
        self.ready_attempts = ready_attempts
        self.ready_interval = ready_interval
        self.upsert_batch_size = max(1, upsert_batch_size)
        self._sleep = sleep
        self._index: Any = None
        self._ready = False
        self._lock = asyncio.Lock()

    def _get_index(self) -> Any:
        if self._index is None:
            self._index = self._client.Index(self.index_name)
        return self._index

    async def ensure_index(self) -> None:
        """Create the index when missing and wait until it answers a stats call."""

        if self._ready:
            return
        async with self._lock:
            if self._ready:
                return
            try:
                existing = await asyncio.to_thread(lambda: set(self._client.list_indexes().names()))
            except Exception as exc:
                raise VectorStoreUnavailableError("Failed to list Pinecone indexes", cause=exc) from exc

            if self.index_name not in existing:
                LOGGER.info(
                    "Creating Pinecone index %s (dimension=%s, metric=%s)",
                    self.index_name,
                    self.dimension,
                    self.metric,
                )
                started = time.perf_counter()
                try:
                    await asyncio.to_thread(
                        self._client.create_index,
                        name=self.index_name,
                        dimension=self.dimension,
                        metric=self.metric,
                        spec=ServerlessSpec(cloud=self.cloud, region=self.region),
                    )
                except Exception as exc:
                    raise VectorStoreUnavailableError(
                        f"Failed to create Pinecone index {self.index_name}", cause=exc
                    ) from exc

                try:
                    ready, _ = await poll_until(
                        lambda: asyncio.to_thread(lambda: self._get_index().describe_index_stats()),
                        lambda _stats: True,
                        interval=self.ready_interval,
                        max_attempts=self.ready_attempts,
                        sleep=self._sleep,
                    )
                except Exception as exc:
                    ready = False
                    cause: Optional[BaseException] = exc
                else:
                    cause = None
                if not ready:
                    raise IndexNotReadyError(
                        f"Index {self.index_name} did not become ready after "
                        f"{self.ready_attempts} attempts",
                        cause=cause,
                    )
                emit_vectorstore_event(
                    "vectorstore.index.create",
                    backend=self.backend_name,
                    index=self.index_name,
                    namespace=None,
                    count=0,
                    duration_ms=(time.perf_counter() - started) * 1000.0,
                )
            self._ready = True

    async def upsert(self, namespace: str, records: Sequence[VectorRecord]) -> int:
        if not records:
            return 0
        index = self._get_index()
        started = time.perf_counter()
        written = 0
        for offset in range(0, len(records), self.upsert_batch_size):
            batch = records[offset : offset + self.upsert_batch_size]
            payload = [
                {
                    "id": record.id,
                    "values": [float(value) for value in record.values],
                    "metadata": sanitize_metadata(record.metadata),
                }
                for record in batch
            ]
            try:
                await asyncio.to_thread(index.upsert, vectors=payload, namespace=namespace)
            except Exception as exc:
                emit_vectorstore_event(
                    "vectorstore.upsert",
                    backend=self.backend_name,
                    index=self.index_name,
                    namespace=namespace,
                    count=written,
                    error=exc,
                )
                raise VectorStoreUnavailableError("Failed to upsert vectors into Pinecone", cause=exc) from exc
            written += len(batch)

        emit_vectorstore_event(
            "vectorstore.upsert",
            backend=self.backend_name,
            index=self.index_name,
            namespace=namespace,
            count=written,
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        return written

    async def query(
        self,
        namespace: str,
        vector: Sequence[float],
        top_k: int,
        *,
        include_metadata: bool = True,
        metadata_filter: Optional[Mapping[str, str]] = None,
    ) -> List[VectorMatch]:
        if top_k <= 0:
            return []
        index = self._get_index()
        kwargs: dict[str, Any] = {
            "vector": [float(value) for value in vector],
            "top_k": top_k,
            "include_metadata": include_metadata,
            "include_values": False,
            "namespace": namespace,
        }
        if metadata_filter:
            kwargs["filter"] = {key: {"$eq": value} for key, value in metadata_filter.items()}

        started = time.perf_counter()
        try:
            response = await asyncio.to_thread(index.query, **kwargs)
        except Exception as exc:
            if _is_namespace_not_found(exc):
                raise NamespaceNotFoundError(namespace, cause=exc) from exc
            raise VectorStoreUnavailableError("Pinecone query failed", cause=exc) from exc

        matches = [
            VectorMatch(
                id=str(_field(match, "id", "")),
                score=float(_field(match, "score", 0.0) or 0.0),
                metadata=dict(_field(match, "metadata", None) or {}),
            )
            for match in (_field(response, "matches", None) or [])
        ]
        emit_vectorstore_event(
            "vectorstore.query",
            backend=self.backend_name,
            index=self.index_name,
            namespace=namespace,
            count=len(matches),
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        return matches

    async def describe(self) -> IndexStats:
        try:
            stats = await asyncio.to_thread(lambda: self._get_index().describe_index_stats())
        except Exception as exc:
            raise VectorStoreUnavailableError("Failed to describe Pinecone index", cause=exc) from exc

        namespaces = {
            str(name): int(_field(summary, "vector_count", 0) or 0)
            for name, summary in (_field(stats, "namespaces", None) or {}).items()
        }
        return IndexStats(
            name=self.index_name,
            dimension=_field(stats, "dimension", None),
            total_vector_count=int(_field(stats, "total_vector_count", 0) or 0),
            namespaces=namespaces,
        )


__all__ = ["PineconeVectorStore"]
