"""Chroma vector store adapter; one collection per namespace."""
from __future__ import annotations

import asyncio
import hashlib
import re
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from clauseiq.telemetry import traced_duration

from . import IndexStats, VectorMatch, VectorRecord, sanitize_metadata
from .errors import VectorStoreUnavailableError

_COLLECTION_INVALID_RE = re.compile(r"[^a-zA-Z0-9_-]+")


def _flatten_lists(metadata: Dict[str, Any]) -> Dict[str, Any]:
    """Chroma metadata values must be scalars."""

    return {key: ", ".join(value) if isinstance(value, list) else value for key, value in metadata.items()}


class ChromaVectorStore:
    """Adapter around a persistent Chroma database."""

    backend_name = "chroma"

    def __init__(
        self,
        persist_dir: str | Path,
        *,
        index_name: str = "legal-docs",
        dimension: int = 768,
        metric: str = "cosine",
        client: Any = None,
    ) -> None:
        self.persist_dir = Path(persist_dir)
        self.index_name = index_name
        self.dimension = dimension
        self.metric = metric
        if client is None:
            try:
                import chromadb
            except ImportError as exc:
                raise VectorStoreUnavailableError(
                    "VECTOR_STORE=chroma requires the 'chromadb' package to be installed",
                    cause=exc,
                ) from exc
            self.persist_dir.mkdir(parents=True, exist_ok=True)
            try:
                client = chromadb.PersistentClient(path=str(self.persist_dir))
            except Exception as exc:
                raise VectorStoreUnavailableError(
                    "Failed to initialise Chroma persistent client",
                    cause=exc,
                ) from exc
        self._client = client
        self._collections: Dict[str, Any] = {}

    def _collection_prefix(self) -> str:
        prefix = _COLLECTION_INVALID_RE.sub("-", self.index_name).strip("-_")[:38]
        return f"{prefix or 'clauseiq'}-"

    def _collection_name(self, namespace: str) -> str:
        """Collection for ``namespace``; distinct namespaces never share one."""

        digest = hashlib.sha256(namespace.encode("utf-8")).hexdigest()[:24]
        return f"{self._collection_prefix()}{digest}"

    def _collection(self, namespace: str) -> Any:
        name = self._collection_name(namespace)
        collection = self._collections.get(name)
        if collection is None:
            collection = self._client.get_or_create_collection(
                name=name,
                metadata={"hnsw:space": self.metric, "namespace": namespace},
            )
            self._collections[name] = collection
        return collection

    async def ensure_index(self) -> None:
        return None

    async def upsert(self, namespace: str, records: Sequence[VectorRecord]) -> int:
        if not records:
            return 0

        def _write() -> None:
            collection = self._collection(namespace)
            collection.upsert(
                ids=[record.id for record in records],
                embeddings=[[float(value) for value in record.values] for record in records],
                documents=[str(record.metadata.get("content", "")) for record in records],
                metadatas=[_flatten_lists(sanitize_metadata(record.metadata)) for record in records],
            )

        try:
            with traced_duration("vectorstore.chroma.upsert", namespace=namespace, vectors=len(records)):
                await asyncio.to_thread(_write)
        except Exception as exc:
            raise VectorStoreUnavailableError("Failed to upsert vectors into Chroma", cause=exc) from exc
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

        def _search() -> Dict[str, Any]:
            collection = self._collection(namespace)
            available = collection.count()
            if available == 0:
                return {}
            where: Optional[Dict[str, Any]] = None
            if metadata_filter:
                clauses = [{key: value} for key, value in metadata_filter.items()]
                where = clauses[0] if len(clauses) == 1 else {"$and": clauses}
            return collection.query(
                query_embeddings=[[float(value) for value in vector]],
                n_results=min(top_k, available),
                where=where,
                include=["metadatas", "distances"],
            )

        try:
            result = await asyncio.to_thread(_search)
        except Exception as exc:
            raise VectorStoreUnavailableError("Chroma query failed", cause=exc) from exc

        ids = (result.get("ids") or [[]])[0]
        metadatas = (result.get("metadatas") or [[]])[0]
        distances = (result.get("distances") or [[]])[0]
        return [
            VectorMatch(
                id=str(item_id),
                score=1.0 - float(distance or 0.0),
                metadata=dict(metadata or {}) if include_metadata else {},
            )
            for item_id, metadata, distance in zip(ids, metadatas, distances)
        ]

    async def describe(self) -> IndexStats:
        def _counts() -> Dict[str, int]:
            counts: Dict[str, int] = {}
            prefix = self._collection_prefix()
            for item in self._client.list_collections():
                name = getattr(item, "name", item)
                if not str(name).startswith(prefix) or len(str(name)) != len(prefix) + 24:
                    continue
                collection = self._client.get_collection(name=name)
                namespace = (collection.metadata or {}).get("namespace", name)
                counts[str(namespace)] = int(collection.count())
            return counts

        try:
            namespaces = await asyncio.to_thread(_counts)
        except Exception as exc:
            raise VectorStoreUnavailableError("Failed to describe Chroma collections", cause=exc) from exc
        return IndexStats(
            name=self.index_name,
            dimension=self.dimension,
            total_vector_count=sum(namespaces.values()),
            namespaces=namespaces,
        )


__all__ = ["ChromaVectorStore"]
