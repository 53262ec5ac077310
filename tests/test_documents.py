from pathlib import Path
from typing import List

import pytest

from clauseiq.documents import SQLiteDocumentRepository, apply_label_action, normalize_labels
from clauseiq.errors import DocumentNotFoundError, ValidationError
from clauseiq.ingest.models import Chunk, Document


def _document(doc_id: str, owner: str, labels: List[str] | None = None) -> Document:
    return Document(
        doc_id=doc_id,
        file_name=f"{doc_id}.txt",
        file_type="text/plain",
        file_url=f"file:///blobs/{doc_id}.txt",
        uploaded_by=owner,
        uploaded_at="2024-05-01T10:00:00+00:00",
        total_chunks=1,
        total_characters=42,
        namespace="case-a",
        metadata={"caseName": "Case A"},
        labels=labels or [],
        language="en",
    )


@pytest.fixture
def repository() -> SQLiteDocumentRepository:
    repo = SQLiteDocumentRepository(":memory:")
    repo.insert_document(_document("doc-a", "alice", ["x", "y"]), [Chunk("doc-a", 0, "Alpha text", 0)])
    repo.insert_document(_document("doc-b", "bob"), [])
    yield repo
    repo.close()


def test_documents_are_fetched_per_owner(repository: SQLiteDocumentRepository) -> None:
    found = repository.get_documents(["doc-a", "doc-b", "missing"], "alice")

    assert list(found) == ["doc-a"]
    document = found["doc-a"]
    assert document.metadata == {"caseName": "Case A"}
    assert document.labels == ["x", "y"]
    assert document.language == "en"
    assert repository.get_chunks("doc-a")[0].content == "Alpha text"
    assert repository.count_documents() == 2
    assert repository.count_documents("bob") == 1


def test_label_add_collapses_duplicates(repository: SQLiteDocumentRepository) -> None:
    assert repository.update_labels("doc-a", "alice", "add", ["x"]) == ["x", "y"]


def test_label_remove_and_set(repository: SQLiteDocumentRepository) -> None:
    assert repository.update_labels("doc-a", "alice", "remove", ["x"]) == ["y"]
    assert repository.update_labels("doc-a", "alice", "set", ["z"]) == ["z"]
    assert repository.get_document("doc-a", "alice").labels == ["z"]


def test_label_update_on_foreign_document_mutates_nothing(repository: SQLiteDocumentRepository) -> None:
    with pytest.raises(DocumentNotFoundError):
        repository.update_labels("doc-a", "bob", "set", ["stolen"])

    assert repository.get_document("doc-a", "alice").labels == ["x", "y"]


def test_invalid_label_action_is_rejected(repository: SQLiteDocumentRepository) -> None:
    with pytest.raises(ValidationError):
        repository.update_labels("doc-a", "alice", "toggle", ["x"])


def test_list_labels_is_scoped_to_owner(repository: SQLiteDocumentRepository) -> None:
    repository.update_labels("doc-b", "bob", "set", ["private", " x "])

    assert repository.list_labels("alice") == ["x", "y"]
    assert repository.list_labels("bob") == ["private", "x"]
    assert repository.list_labels("carol") == []


def test_label_helpers() -> None:
    assert normalize_labels([" b", "a", "", "b "]) == ["a", "b"]
    assert apply_label_action(["a"], "add", ["b", "a"]) == ["a", "b"]
    assert apply_label_action(["a", "b"], "remove", ["c"]) == ["a", "b"]
    assert apply_label_action(["a"], "set", []) == []


def test_migrations_survive_reopen(tmp_path: Path) -> None:
    path = tmp_path / "meta" / "documents.sqlite3"
    first = SQLiteDocumentRepository(path)
    first.insert_document(_document("doc-c", "carol"), [])
    first.close()

    second = SQLiteDocumentRepository(path)
    try:
        assert second.get_document("doc-c", "carol").file_name == "doc-c.txt"
    finally:
        second.close()
