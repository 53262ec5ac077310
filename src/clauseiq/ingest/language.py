"""Language detection for extracted document text."""
from __future__ import annotations

import logging
from typing import Optional

from langdetect import DetectorFactory, LangDetectException, detect

LOGGER = logging.getLogger(__name__)
DetectorFactory.seed = 0

_SAMPLE_CHARS = 5000


def detect_language(text: str) -> Optional[str]:
    """Return an ISO 639-1 code for ``text`` or ``None`` when undecidable."""

    sample = text[:_SAMPLE_CHARS].strip()
    if not sample:
        return None
    try:
        return detect(sample)
    except LangDetectException:
        LOGGER.info("Unable to determine language for text of length %s", len(text))
        return None
