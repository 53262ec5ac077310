"""Shared fixtures: an in-memory application context and scripted fakes."""
from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterator, List, Optional

import pytest

from clauseiq.auth import create_access_token
from clauseiq.config import Settings
from clauseiq.context import AppContext
from clauseiq.llm_provider import LLM, LLMGenerationError

TEST_SECRET = "test-secret"
EMBEDDING_DIMENSION = 64


class RecordingLLM(LLM):
    """Returns a canned answer and remembers every prompt it was given."""

    def __init__(self, answer: str = "The notice period is 30 days.", *, fail: bool = False) -> None:
        self.answer = answer
        self.fail = fail
        self.prompts: List[str] = []

    @property
    def model_name(self) -> str:
        return "recording-llm"

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.fail:
            raise LLMGenerationError("model unavailable")
        return self.answer


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        embedding_provider="deterministic",
        embedding_dimension=EMBEDDING_DIMENSION,
        llm_provider="stub",
        vector_store="memory",
        database_path=":memory:",
        blob_dir=str(tmp_path / "blobs"),
        jwt_secret=TEST_SECRET,
        log_dir=str(tmp_path / "logs"),
    )


@pytest.fixture
def llm() -> RecordingLLM:
    return RecordingLLM()


@pytest.fixture
def app_context(settings: Settings, llm: RecordingLLM) -> Iterator[AppContext]:
    context = AppContext.build(settings, llm=llm)
    yield context
    context.close()


@pytest.fixture
def token_for() -> Callable[[str], str]:
    def _issue(user_id: str, *, secret: Optional[str] = None) -> str:
        return create_access_token(user_id, secret or TEST_SECRET)

    return _issue
