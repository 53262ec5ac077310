"""Namespaced vector store gateways behind a common async interface."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from .errors import IndexNotReadyError, VectorStoreUnavailableError

_NAMESPACE_INVALID_RE = re.compile(r"[^a-z0-9_-]+")


def normalize_namespace(case_name: str) -> str:
    """Derive the vector namespace for a raw case name.

    Lower-cases and trims the input, then collapses every run of characters
    outside ``[a-z0-9_-]`` into a single ``-``. The function is idempotent.
    """

    return _NAMESPACE_INVALID_RE.sub("-", case_name.strip().lower())


@dataclass(slots=True)
class VectorRecord:
    """A vector plus its metadata payload, keyed by a deterministic id."""

    id: str
    values: List[float]
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class VectorMatch:
    """Structured response returned from similarity search queries."""

    id: str
    score: float
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def doc_id(self) -> str:
        return str(self.metadata.get("doc_id", ""))

    @property
    def content(self) -> str:
        return str(self.metadata.get("content", ""))


@dataclass(slots=True)
class IndexStats:
    name: str
    dimension: Optional[int]
    total_vector_count: int
    namespaces: Dict[str, int] = field(default_factory=dict)


class VectorStoreGateway(Protocol):
    """Operations the pipelines need from a namespaced vector index."""

    backend_name: str
    index_name: str
    dimension: int

    async def ensure_index(self) -> None:
        ...

    async def upsert(self, namespace: str, records: Sequence[VectorRecord]) -> int:
        ...

    async def query(
        self,
        namespace: str,
        vector: Sequence[float],
        top_k: int,
        *,
        include_metadata: bool = True,
        metadata_filter: Optional[Mapping[str, str]] = None,
    ) -> List[VectorMatch]:
        ...

    async def describe(self) -> IndexStats:
        ...


def sanitize_metadata(metadata: Mapping[str, Any]) -> Dict[str, Any]:
    """Coerce metadata into the scalar/list-of-strings shape vector indexes accept.

    ``None`` values are dropped and nested mappings are serialised to JSON.
    """

    cleaned: Dict[str, Any] = {}
    for key, value in metadata.items():
        if value is None:
            continue
        if isinstance(value, (str, bool, int, float)):
            cleaned[str(key)] = value
        elif isinstance(value, (list, tuple, set)):
            cleaned[str(key)] = [str(item) for item in value if item is not None]
        elif isinstance(value, Mapping):
            cleaned[str(key)] = json.dumps(value, ensure_ascii=False, default=str)
        else:
            cleaned[str(key)] = str(value)
    return cleaned


def build_vector_store(settings: Any) -> VectorStoreGateway:
    """Return the gateway selected by ``settings.vector_store``."""

    backend = settings.vector_store
    dimension = settings.embedding_dimension

    if backend in {"memory", "mock"}:
        from .memory_store import InMemoryVectorStore

        return InMemoryVectorStore(index_name=settings.pinecone_index, dimension=dimension)

    if backend == "pinecone":
        if not settings.pinecone_api_key:
            raise VectorStoreUnavailableError("VECTOR_STORE=pinecone requires PINECONE_API_KEY")
        from pinecone import Pinecone

        from .pinecone_store import PineconeVectorStore

        try:
            client = Pinecone(api_key=settings.pinecone_api_key)
        except Exception as exc:
            raise VectorStoreUnavailableError("Failed to initialise Pinecone client", cause=exc) from exc
        return PineconeVectorStore(
            client,
            index_name=settings.pinecone_index,
            dimension=dimension,
            metric=settings.vector_metric,
            cloud=settings.pinecone_cloud,
            region=settings.pinecone_region,
            ready_attempts=settings.index_ready_attempts,
            ready_interval=settings.index_ready_interval_seconds,
            upsert_batch_size=settings.upsert_batch_size,
        )

    if backend == "chroma":
        from .chroma_store import ChromaVectorStore

        return ChromaVectorStore(
            settings.chroma_persist_dir,
            index_name=settings.pinecone_index,
            dimension=dimension,
            metric=settings.vector_metric,
        )

    raise ValueError(f"Unsupported VECTOR_STORE backend: {backend!r}")


__all__ = [
    "IndexNotReadyError",
    "IndexStats",
    "VectorMatch",
    "VectorRecord",
    "VectorStoreGateway",
    "VectorStoreUnavailableError",
    "build_vector_store",
    "normalize_namespace",
    "sanitize_metadata",
]
