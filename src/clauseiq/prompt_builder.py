"""Utilities for constructing prompts for the legal assistant."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable

_PROMPTS_DIR = Path(__file__).resolve().parent / "prompts"

CONTEXT_SEPARATOR = "\n\n---\n\n"


def _load_template(path: Path) -> str:
    """Read and trim the contents of a template file."""
    return path.read_text(encoding="utf-8").strip()


@lru_cache()
def load_prompt(name: str) -> str:
    """Return the bundled prompt template called ``name``."""

    return _load_template(_PROMPTS_DIR / f"{name}.txt")


def build_context(contexts: Iterable[Dict]) -> str:
    """Join retrieved chunks into one block, each tagged with its source document."""

    sections = []
    for context in contexts:
        content = str(context.get("content", "")).strip()
        if not content:
            continue
        sections.append(f"[Document: {context.get('doc_id', 'unknown')}]\n{content}")
    return CONTEXT_SEPARATOR.join(sections)


def build_answer_prompt(question: str, context: str) -> str:
    """Compose the grounded-answer prompt for ``question``."""

    if question is None:
        raise ValueError("question must not be None")
    return load_prompt("answer").format(question=question.strip(), context=context)


__all__ = ["CONTEXT_SEPARATOR", "build_answer_prompt", "build_context", "load_prompt"]
