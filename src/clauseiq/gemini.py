"""Shared construction of the Google GenAI client."""
from __future__ import annotations

import logging
from typing import Any

from google import genai

LOGGER = logging.getLogger(__name__)


def create_gemini_client(api_key: str) -> genai.Client:
    """Return a client used for embeddings, generation and the Files API."""

    if not api_key:
        raise ValueError("GEMINI_API_KEY is required for the Gemini providers")
    client = genai.Client(api_key=api_key)
    LOGGER.info("Gemini client initialised")
    return client


def state_name(state: Any) -> str:
    """Normalise a ``FileState`` enum (or plain string) to its upper-case name."""

    if state is None:
        return "STATE_UNSPECIFIED"
    name = getattr(state, "name", None) or str(state)
    return name.rsplit(".", 1)[-1].upper()


__all__ = ["create_gemini_client", "state_name"]
