"""OCR fallback backed by the Gemini Files API and a vision-capable model."""
from __future__ import annotations

import logging
import math
import time
from pathlib import Path
from typing import Any, Optional

from google.genai import types

from clauseiq.errors import OCRError, OCRTimeoutError
from clauseiq.gemini import state_name
from clauseiq.prompt_builder import load_prompt
from clauseiq.retry import RetryPolicy, Sleeper, poll_until, retry_async
from clauseiq.telemetry import emit_ocr_event

LOGGER = logging.getLogger(__name__)

DEFAULT_OCR_RETRY = RetryPolicy(max_attempts=2, base_delay=1.0, multiplier=2.0)


class GeminiOCR:
    """Transcribe a local file verbatim through an upload, poll, generate cycle.

    The remote copy is deleted on every exit path once the upload succeeded.
    """

    def __init__(
        self,
        client: Any,
        *,
        model: str,
        poll_interval: float = 2.0,
        timeout: float = 30.0,
        retry_policy: RetryPolicy = DEFAULT_OCR_RETRY,
        sleep: Optional[Sleeper] = None,
    ) -> None:
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        self._client = client
        self.model = model
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.retry_policy = retry_policy
        self._sleep = sleep
        self._prompt = load_prompt("ocr")

    async def ocr(self, local_path: str | Path, mime_type: str) -> str:
        path = Path(local_path)
        attempt = 0

        async def _attempt() -> str:
            nonlocal attempt
            attempt += 1
            return await self._transcribe_once(path, mime_type, attempt)

        try:
            return await retry_async(
                _attempt,
                self.retry_policy,
                description=f"ocr {path.name}",
                sleep=self._sleep,
            )
        except OCRError:
            raise
        except Exception as error:
            raise OCRError(f"OCR failed: {error}", cause=error) from error

    async def _transcribe_once(self, path: Path, mime_type: str, attempt: int) -> str:
        started = time.perf_counter()
        uploaded = await self._client.aio.files.upload(
            file=str(path),
            config=types.UploadFileConfig(mime_type=mime_type, display_name=path.name),
        )
        remote_name = uploaded.name
        emit_ocr_event("ocr.upload", file_name=path.name, attempt=attempt, remote_name=remote_name)
        try:
            remote = await self._wait_until_active(remote_name)
            response = await self._client.aio.models.generate_content(
                model=self.model,
                contents=[
                    types.Part.from_uri(
                        file_uri=remote.uri,
                        mime_type=getattr(remote, "mime_type", None) or mime_type,
                    ),
                    self._prompt,
                ],
            )
            text = response.text or ""
        except Exception as error:
            emit_ocr_event(
                "ocr.error",
                file_name=path.name,
                attempt=attempt,
                remote_name=remote_name,
                duration_ms=(time.perf_counter() - started) * 1000.0,
                error=error,
            )
            raise
        finally:
            await self._delete_remote(remote_name)

        emit_ocr_event(
            "ocr.complete",
            file_name=path.name,
            attempt=attempt,
            remote_name=remote_name,
            characters=len(text),
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        return text

    async def _wait_until_active(self, remote_name: str) -> Any:
        async def _probe() -> Any:
            return await self._client.aio.files.get(name=remote_name)

        attempts = max(1, math.ceil(self.timeout / self.poll_interval))
        ready, remote = await poll_until(
            _probe,
            lambda item: state_name(item.state) != "PROCESSING",
            interval=self.poll_interval,
            max_attempts=attempts,
            sleep=self._sleep,
        )
        if not ready:
            raise OCRTimeoutError(
                f"File {remote_name} was still processing after {self.timeout:.0f}s"
            )
        state = state_name(remote.state)
        if state != "ACTIVE":
            raise OCRError(f"File processing failed: {state}")
        return remote

    async def _delete_remote(self, remote_name: str) -> None:
        try:
            await self._client.aio.files.delete(name=remote_name)
        except Exception as error:  # best effort
            LOGGER.warning("Failed to delete remote OCR file %s: %s", remote_name, error)


__all__ = ["DEFAULT_OCR_RETRY", "GeminiOCR"]
