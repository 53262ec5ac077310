"""Chat-completion providers used for grounded answer generation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from google.genai import types

LOGGER = logging.getLogger(__name__)

DEFAULT_STUB_RESPONSE = "The language model is not configured. Please try again later."


@dataclass(slots=True)
class LLMStatus:
    """Structured status information about the configured LLM backend."""

    ready: bool
    model_name: str
    error: Optional[str] = None


class LLMError(RuntimeError):
    """Base exception raised for LLM provider issues."""


class LLMGenerationError(LLMError):
    """Raised when text generation fails unexpectedly."""


class LLM:
    """Common interface exposed by language model implementations."""

    async def generate(self, prompt: str) -> str:
        """Generate a response for the provided prompt."""

        raise NotImplementedError

    @property
    def model_name(self) -> str:
        """Human-readable identifier describing the model."""

        return "stub"

    def status(self) -> LLMStatus:
        return LLMStatus(ready=True, model_name=self.model_name)


class LLMStub(LLM):
    """Fallback implementation returning a fixed message."""

    def __init__(
        self,
        message: str = DEFAULT_STUB_RESPONSE,
        *,
        reason: str | None = None,
    ) -> None:
        self._message = message
        self._reason = reason or "LLM stub is active (GEMINI_API_KEY not configured)."

    async def generate(self, prompt: str) -> str:
        return self._message

    def status(self) -> LLMStatus:
        return LLMStatus(ready=False, model_name=self.model_name, error=self._reason)


class GeminiLLM(LLM):
    """Single-turn generation through ``client.aio.models.generate_content``."""

    def __init__(
        self,
        client: Any,
        *,
        model: str,
        temperature: float = 0.2,
        max_tokens: int = 1024,
    ) -> None:
        self._client = client
        self._model = model
        self._config = types.GenerateContentConfig(
            temperature=temperature,
            max_output_tokens=max_tokens,
        )

    @property
    def model_name(self) -> str:
        return self._model

    async def generate(self, prompt: str) -> str:
        try:
            response = await self._client.aio.models.generate_content(
                model=self._model,
                contents=prompt,
                config=self._config,
            )
        except Exception as error:
            raise LLMGenerationError(f"Gemini generation failed: {error}") from error
        text = (response.text or "").strip()
        if not text:
            raise LLMGenerationError("Gemini returned an empty response")
        return text


def build_llm(provider: str, *, settings: Any, gemini_client: Any = None) -> LLM:
    """Instantiate the LLM named by ``provider``."""

    if provider == "gemini":
        if gemini_client is None:
            raise ValueError("LLM_PROVIDER=gemini requires GEMINI_API_KEY")
        return GeminiLLM(
            gemini_client,
            model=settings.llm_model,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
        )
    if provider == "stub":
        return LLMStub()
    raise ValueError(f"Unsupported LLM_PROVIDER: {provider!r}")


__all__ = [
    "DEFAULT_STUB_RESPONSE",
    "GeminiLLM",
    "LLM",
    "LLMError",
    "LLMGenerationError",
    "LLMStatus",
    "LLMStub",
    "build_llm",
]
