"""Blob storage for original uploads and temporary local copies for OCR."""
from __future__ import annotations

import asyncio
import logging
import os
import re
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Final, Protocol

LOGGER = logging.getLogger(__name__)

_FILENAME_SAFE_CHARS_RE: Final[re.Pattern[str]] = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_filename(filename: str) -> str:
    """Return a filesystem-safe filename preserving the extension when possible."""
    if not filename:
        filename = "upload"
    # Remove any path components and replace disallowed characters.
    sanitized = Path(filename).name
    sanitized = _FILENAME_SAFE_CHARS_RE.sub("_", sanitized)
    sanitized = sanitized.strip("._") or "upload"
    return sanitized


class BlobStore(Protocol):
    async def put(self, data: bytes, path: str) -> str:
        ...


class LocalBlobStore:
    """Path-addressed blob store on the local filesystem returning ``file://`` URLs."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).resolve()

    def _resolve(self, path: str) -> Path:
        parts = [sanitize_filename(part) for part in Path(path).parts if part not in {"", ".", "..", "/"}]
        if not parts:
            raise ValueError("Blob path must not be empty")
        return self.root.joinpath(*parts)

    async def put(self, data: bytes, path: str) -> str:
        destination = self._resolve(path)

        def _write() -> None:
            destination.parent.mkdir(parents=True, exist_ok=True)
            destination.write_bytes(data)

        await asyncio.to_thread(_write)
        LOGGER.debug("Stored %s bytes at %s", len(data), destination)
        return destination.as_uri()


@asynccontextmanager
async def temporary_copy(
    data: bytes, file_name: str, *, directory: str | Path | None = None
) -> AsyncIterator[Path]:
    """Write ``data`` to a temporary file that is removed on every exit path."""

    suffix = Path(sanitize_filename(file_name)).suffix
    handle, raw_path = tempfile.mkstemp(
        prefix="clauseiq-", suffix=suffix, dir=str(directory) if directory else None
    )
    path = Path(raw_path)
    try:
        with os.fdopen(handle, "wb") as stream:
            stream.write(data)
        yield path
    finally:
        try:
            path.unlink()
        except FileNotFoundError:
            pass


__all__ = ["BlobStore", "LocalBlobStore", "sanitize_filename", "temporary_copy"]
