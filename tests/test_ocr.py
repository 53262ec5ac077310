import asyncio
from pathlib import Path
from types import SimpleNamespace
from typing import Any, List, Optional

import pytest

from clauseiq.errors import OCRError, OCRTimeoutError
from clauseiq.ingest.ocr import GeminiOCR
from clauseiq.retry import RetryPolicy


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeFiles:
    def __init__(self, states: List[str]) -> None:
        self.states = states
        self.uploads: List[Any] = []
        self.deleted: List[str] = []
        self.get_calls = 0

    async def upload(self, *, file: str, config: Any) -> Any:
        assert Path(file).exists()
        self.uploads.append(config)
        return SimpleNamespace(name=f"files/upload-{len(self.uploads)}", state="PROCESSING")

    async def get(self, *, name: str) -> Any:
        state = self.states[min(self.get_calls, len(self.states) - 1)]
        self.get_calls += 1
        return SimpleNamespace(name=name, uri=f"https://files.example/{name}", mime_type="application/pdf", state=state)

    async def delete(self, *, name: str) -> None:
        self.deleted.append(name)


class FakeModels:
    def __init__(self, text: str = "", error: Optional[Exception] = None) -> None:
        self.text = text
        self.error = error
        self.requests: List[Any] = []

    async def generate_content(self, *, model: str, contents: Any) -> Any:
        self.requests.append((model, contents))
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.text)


def _client(files: FakeFiles, models: FakeModels) -> Any:
    return SimpleNamespace(aio=SimpleNamespace(files=files, models=models))


@pytest.fixture
def scan(tmp_path: Path) -> Path:
    path = tmp_path / "scan.pdf"
    path.write_bytes(b"%PDF-1.4 scanned")
    return path


def test_ocr_uploads_polls_transcribes_and_deletes(scan: Path) -> None:
    files = FakeFiles(["PROCESSING", "PROCESSING", "ACTIVE"])
    models = FakeModels(text="# LEASE\n\nThe tenant shall give 30 days notice.")
    sleeper = SleepRecorder()
    ocr = GeminiOCR(_client(files, models), model="gemini-2.5-flash", poll_interval=2.0, timeout=30.0, sleep=sleeper)

    text = asyncio.run(ocr.ocr(scan, "application/pdf"))

    assert "30 days notice" in text
    assert files.uploads[0].mime_type == "application/pdf"
    assert files.deleted == ["files/upload-1"]
    assert sleeper.delays == [2.0, 2.0]
    model, contents = models.requests[0]
    assert model == "gemini-2.5-flash"
    assert "Do NOT summarize" in contents[-1]


def test_failed_processing_state_is_an_error_and_cleans_up(scan: Path) -> None:
    files = FakeFiles(["FAILED"])
    ocr = GeminiOCR(
        _client(files, FakeModels()),
        model="m",
        retry_policy=RetryPolicy(max_attempts=1),
        sleep=SleepRecorder(),
    )

    with pytest.raises(OCRError, match="File processing failed: FAILED"):
        asyncio.run(ocr.ocr(scan, "application/pdf"))
    assert files.deleted == ["files/upload-1"]


def test_processing_timeout_raises_after_bounded_polls(scan: Path) -> None:
    files = FakeFiles(["PROCESSING"])
    ocr = GeminiOCR(
        _client(files, FakeModels()),
        model="m",
        poll_interval=2.0,
        timeout=6.0,
        retry_policy=RetryPolicy(max_attempts=1),
        sleep=SleepRecorder(),
    )

    with pytest.raises(OCRTimeoutError):
        asyncio.run(ocr.ocr(scan, "application/pdf"))
    assert files.get_calls == 3
    assert files.deleted == ["files/upload-1"]


def test_whole_sequence_is_retried_and_each_upload_deleted(scan: Path) -> None:
    files = FakeFiles(["ACTIVE"])
    models = FakeModels(error=RuntimeError("model overloaded"))
    ocr = GeminiOCR(
        _client(files, models),
        model="m",
        retry_policy=RetryPolicy(max_attempts=2, base_delay=0.1),
        sleep=SleepRecorder(),
    )

    with pytest.raises(OCRError, match="OCR failed"):
        asyncio.run(ocr.ocr(scan, "application/pdf"))
    assert len(files.uploads) == 2
    assert files.deleted == ["files/upload-1", "files/upload-2"]
