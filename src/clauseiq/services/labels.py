"""Ownership-checked label management for indexed documents."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, List

from clauseiq.documents import LABEL_ACTIONS, SQLiteDocumentRepository
from clauseiq.errors import ValidationError
from clauseiq.logging_config import AUDIT_LOGGER_NAME

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = logging.getLogger(AUDIT_LOGGER_NAME)


@dataclass(slots=True)
class LabelUpdate:
    doc_id: str
    file_name: str
    labels: List[str]


class LabelService:
    """List and mutate the label sets of the caller's documents."""

    def __init__(self, repository: SQLiteDocumentRepository) -> None:
        self.repository = repository

    async def list_labels(self, owner_id: str) -> List[str]:
        return await asyncio.to_thread(self.repository.list_labels, owner_id)

    async def update_labels(self, doc_id: str, owner_id: str, action: str, labels: Iterable[str]) -> LabelUpdate:
        if not doc_id:
            raise ValidationError("docId and labels array are required")
        if action not in LABEL_ACTIONS:
            raise ValidationError("Invalid action. Must be 'add', 'remove', or 'set'")

        document = await asyncio.to_thread(self.repository.get_document, doc_id, owner_id)
        updated = await asyncio.to_thread(self.repository.update_labels, doc_id, owner_id, action, list(labels))
        AUDIT_LOGGER.info(
            {"event": "labels", "doc_id": doc_id, "owner_id": owner_id, "action": action, "labels": updated}
        )
        return LabelUpdate(doc_id=doc_id, file_name=document.file_name, labels=updated)


__all__ = ["LabelService", "LabelUpdate"]
