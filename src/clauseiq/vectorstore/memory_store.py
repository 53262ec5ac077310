"""Simple in-memory vector store for local development and tests."""
from __future__ import annotations

import asyncio
import logging
import math
from typing import Dict, List, Mapping, Optional, Sequence

from . import IndexStats, VectorMatch, VectorRecord, sanitize_metadata

LOGGER = logging.getLogger(__name__)


def _cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    if len(vec_a) != len(vec_b):
        raise ValueError("Vectors must be of the same dimension")
    dot = sum(a * b for a, b in zip(vec_a, vec_b))
    norm_a = math.sqrt(sum(a * a for a in vec_a))
    norm_b = math.sqrt(sum(b * b for b in vec_b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (norm_a * norm_b)


class InMemoryVectorStore:
    """Namespaced cosine-similarity store kept in process memory.

    Records are keyed by id inside each namespace, so repeated upserts
    overwrite instead of duplicating.
    """

    backend_name = "memory"

    def __init__(self, *, index_name: str = "legal-docs", dimension: int = 768) -> None:
        self.index_name = index_name
        self.dimension = dimension
        self._namespaces: Dict[str, Dict[str, VectorRecord]] = {}
        self._lock = asyncio.Lock()

    async def ensure_index(self) -> None:
        return None

    async def upsert(self, namespace: str, records: Sequence[VectorRecord]) -> int:
        async with self._lock:
            bucket = self._namespaces.setdefault(namespace, {})
            for record in records:
                if len(record.values) != self.dimension:
                    raise ValueError(
                        f"Vector {record.id} has dimension {len(record.values)}, expected {self.dimension}"
                    )
                bucket[record.id] = VectorRecord(
                    id=record.id,
                    values=[float(value) for value in record.values],
                    metadata=sanitize_metadata(record.metadata),
                )
        LOGGER.debug("Upserted %s vectors into namespace %s", len(records), namespace)
        return len(records)

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
        bucket = self._namespaces.get(namespace)
        if not bucket:
            return []

        scored: List[tuple[float, VectorRecord]] = []
        for record in bucket.values():
            if metadata_filter and any(
                record.metadata.get(key) != value for key, value in metadata_filter.items()
            ):
                continue
            scored.append((_cosine_similarity(vector, record.values), record))

        scored.sort(key=lambda item: item[0], reverse=True)
        return [
            VectorMatch(
                id=record.id,
                score=score,
                metadata=dict(record.metadata) if include_metadata else {},
            )
            for score, record in scored[:top_k]
        ]

    async def describe(self) -> IndexStats:
        namespaces = {name: len(bucket) for name, bucket in self._namespaces.items()}
        return IndexStats(
            name=self.index_name,
            dimension=self.dimension,
            total_vector_count=sum(namespaces.values()),
            namespaces=namespaces,
        )


__all__ = ["InMemoryVectorStore"]
