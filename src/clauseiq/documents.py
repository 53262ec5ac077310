"""SQLite-backed metadata store for documents, chunks and labels."""
from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence

from clauseiq.errors import DocumentNotFoundError, ValidationError
from clauseiq.ingest.models import Chunk, Document

LOGGER = logging.getLogger(__name__)

LABEL_ACTIONS = ("add", "remove", "set")


@dataclass(frozen=True)
class SqliteMigration:
    version: int
    name: str
    statements: tuple[str, ...] = ()


_MIGRATIONS: tuple[SqliteMigration, ...] = (
    SqliteMigration(
        version=1,
        name="create_documents_table",
        statements=(
            """
            CREATE TABLE IF NOT EXISTS documents (
                doc_id TEXT PRIMARY KEY,
                file_name TEXT NOT NULL,
                file_type TEXT NOT NULL,
                file_url TEXT NOT NULL,
                uploaded_by TEXT NOT NULL,
                uploaded_at TEXT NOT NULL,
                total_chunks INTEGER NOT NULL,
                total_characters INTEGER NOT NULL,
                namespace TEXT NOT NULL,
                metadata TEXT NOT NULL DEFAULT '{}',
                labels TEXT NOT NULL DEFAULT '[]'
            )
            """,
            "CREATE INDEX IF NOT EXISTS idx_documents_owner ON documents(uploaded_by)",
        ),
    ),
    SqliteMigration(
        version=2,
        name="create_chunks_table",
        statements=(
            """
            CREATE TABLE IF NOT EXISTS chunks (
                vector_id TEXT PRIMARY KEY,
                doc_id TEXT NOT NULL REFERENCES documents(doc_id),
                chunk_index INTEGER NOT NULL,
                content TEXT NOT NULL,
                start_char INTEGER NOT NULL,
                end_char INTEGER NOT NULL
            )
            """,
            "CREATE INDEX IF NOT EXISTS idx_chunks_doc ON chunks(doc_id)",
        ),
    ),
    SqliteMigration(
        version=3,
        name="add_document_language",
        statements=("ALTER TABLE documents ADD COLUMN language TEXT",),
    ),
)


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def normalize_labels(labels: Iterable[str]) -> List[str]:
    """Trim, drop blanks and collapse duplicates; labels are kept sorted."""

    return sorted({str(label).strip() for label in labels if str(label).strip()})


def apply_label_action(current: Iterable[str], action: str, labels: Iterable[str]) -> List[str]:
    """Return the label set produced by ``action`` without touching storage."""

    requested = normalize_labels(labels)
    existing = set(normalize_labels(current))
    if action == "add":
        return sorted(existing | set(requested))
    if action == "remove":
        return sorted(existing - set(requested))
    if action == "set":
        return requested
    raise ValidationError("Invalid action. Must be 'add', 'remove', or 'set'")


class SQLiteDocumentRepository:
    """Document metadata keyed by id with an ownership column.

    The connection is shared across threads behind a lock so that the async
    services can call in through :func:`asyncio.to_thread`.
    """

    def __init__(self, db_path: str | Path = ":memory:") -> None:
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._conn: Optional[sqlite3.Connection] = self._connect()
        self._apply_migrations()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            if self._conn is None:
                raise RuntimeError("document repository connection is closed")
            try:
                yield self._conn
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            self._conn.close()
            self._conn = None

    def _apply_migrations(self) -> None:
        with self._connection() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version INTEGER PRIMARY KEY,
                    name TEXT NOT NULL,
                    applied_at TEXT NOT NULL
                )
                """
            )
            applied = {int(row["version"]) for row in conn.execute("SELECT version FROM schema_migrations")}
            for migration in sorted(_MIGRATIONS, key=lambda item: item.version):
                if migration.version in applied:
                    continue
                for statement in migration.statements:
                    conn.execute(statement)
                conn.execute(
                    "INSERT INTO schema_migrations (version, name, applied_at) VALUES (?, ?, ?)",
                    (migration.version, migration.name, _utcnow_iso()),
                )
                LOGGER.info("Applied migration %s (%s)", migration.version, migration.name)

    def insert_document(self, document: Document, chunks: Sequence[Chunk]) -> None:
        """Insert a document and its chunks in a single transaction."""

        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO documents (
                    doc_id, file_name, file_type, file_url, uploaded_by, uploaded_at,
                    total_chunks, total_characters, namespace, metadata, labels, language
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    document.doc_id,
                    document.file_name,
                    document.file_type,
                    document.file_url,
                    document.uploaded_by,
                    document.uploaded_at,
                    document.total_chunks,
                    document.total_characters,
                    document.namespace,
                    json.dumps(document.metadata, ensure_ascii=False, default=str),
                    json.dumps(normalize_labels(document.labels)),
                    document.language,
                ),
            )
            conn.executemany(
                """
                INSERT INTO chunks (vector_id, doc_id, chunk_index, content, start_char, end_char)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    (chunk.vector_id, document.doc_id, chunk.index, chunk.content, chunk.start_char, chunk.end_char)
                    for chunk in chunks
                ],
            )

    def get_documents(self, doc_ids: Iterable[str], owner_id: str) -> Dict[str, Document]:
        """Return the caller's documents among ``doc_ids``, keyed by id."""

        ids = list(dict.fromkeys(doc_ids))
        if not ids:
            return {}
        placeholders = ", ".join("?" for _ in ids)
        with self._connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM documents WHERE uploaded_by = ? AND doc_id IN ({placeholders})",
                (owner_id, *ids),
            ).fetchall()
        return {row["doc_id"]: self._row_to_document(row) for row in rows}

    def get_document(self, doc_id: str, owner_id: str) -> Document:
        documents = self.get_documents([doc_id], owner_id)
        if doc_id not in documents:
            raise DocumentNotFoundError(doc_id)
        return documents[doc_id]

    def get_chunks(self, doc_id: str) -> List[Chunk]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM chunks WHERE doc_id = ? ORDER BY chunk_index",
                (doc_id,),
            ).fetchall()
        return [
            Chunk(
                document_id=row["doc_id"],
                index=int(row["chunk_index"]),
                content=row["content"],
                start_char=int(row["start_char"]),
            )
            for row in rows
        ]

    def update_labels(self, doc_id: str, owner_id: str, action: str, labels: Iterable[str]) -> List[str]:
        """Apply a label action to a document the caller owns and return the new set.

        A request that changes nothing is accepted and returns the current set.
        """

        if action not in LABEL_ACTIONS:
            raise ValidationError("Invalid action. Must be 'add', 'remove', or 'set'")
        with self._connection() as conn:
            row = conn.execute(
                "SELECT labels FROM documents WHERE doc_id = ? AND uploaded_by = ?",
                (doc_id, owner_id),
            ).fetchone()
            if row is None:
                raise DocumentNotFoundError(doc_id)
            current = normalize_labels(json.loads(row["labels"] or "[]"))
            updated = apply_label_action(current, action, labels)
            if updated != current:
                conn.execute(
                    "UPDATE documents SET labels = ? WHERE doc_id = ? AND uploaded_by = ?",
                    (json.dumps(updated), doc_id, owner_id),
                )
        return updated

    def list_labels(self, owner_id: str) -> List[str]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT labels FROM documents WHERE uploaded_by = ?",
                (owner_id,),
            ).fetchall()
        collected: set[str] = set()
        for row in rows:
            collected.update(json.loads(row["labels"] or "[]"))
        return normalize_labels(collected)

    def count_documents(self, owner_id: Optional[str] = None) -> int:
        with self._connection() as conn:
            if owner_id is None:
                row = conn.execute("SELECT COUNT(*) AS total FROM documents").fetchone()
            else:
                row = conn.execute(
                    "SELECT COUNT(*) AS total FROM documents WHERE uploaded_by = ?",
                    (owner_id,),
                ).fetchone()
        return int(row["total"])

    @staticmethod
    def _row_to_document(row: sqlite3.Row) -> Document:
        metadata: Dict[str, Any] = json.loads(row["metadata"] or "{}")
        return Document(
            doc_id=row["doc_id"],
            file_name=row["file_name"],
            file_type=row["file_type"],
            file_url=row["file_url"],
            uploaded_by=row["uploaded_by"],
            uploaded_at=row["uploaded_at"],
            total_chunks=int(row["total_chunks"]),
            total_characters=int(row["total_characters"]),
            namespace=row["namespace"],
            metadata=metadata,
            labels=json.loads(row["labels"] or "[]"),
            language=row["language"],
        )


__all__ = [
    "LABEL_ACTIONS",
    "SQLiteDocumentRepository",
    "apply_label_action",
    "normalize_labels",
]
