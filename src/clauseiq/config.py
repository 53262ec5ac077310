"""Environment driven configuration for the ClauseIQ service."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass

LOGGER = logging.getLogger(__name__)

DEFAULT_CASE_NAME = "default-case"


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_optional(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _int_from_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        LOGGER.warning("Invalid integer for %s: %s; using default %s", name, value, default)
        return default


def _float_from_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        LOGGER.warning("Invalid float for %s: %s; using default %s", name, value, default)
        return default


@dataclass(slots=True)
class Settings:
    """Runtime settings shared by every component of the service."""

    gemini_api_key: str | None = None
    embedding_provider: str = "auto"
    embedding_model: str = "text-embedding-004"
    embedding_dimension: int = 768
    embedding_batch_size: int = 10
    embedding_concurrency: int = 5

    llm_provider: str = "auto"
    llm_model: str = "gemini-2.5-flash"
    llm_temperature: float = 0.2
    llm_max_tokens: int = 1024

    vector_store: str = "memory"
    pinecone_api_key: str | None = None
    pinecone_index: str = "legal-docs"
    pinecone_cloud: str = "aws"
    pinecone_region: str = "us-east-1"
    vector_metric: str = "cosine"
    index_ready_attempts: int = 30
    index_ready_interval_seconds: float = 10.0
    upsert_batch_size: int = 100
    chroma_persist_dir: str = "chroma_db"

    database_path: str = "data/clauseiq.sqlite3"
    blob_dir: str = "data/blobs"

    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    auth_cache_ttl_seconds: float = 300.0

    rate_limit_window_seconds: float = 60.0
    upload_rate_limit: int = 10
    search_rate_limit: int = 30
    qa_rate_limit: int = 20

    max_upload_bytes: int = 50 * 1024 * 1024
    chunk_size: int = 1000
    chunk_overlap: int = 200
    min_extracted_chars: int = 100
    extract_pdf_text: bool = False
    ocr_poll_interval_seconds: float = 2.0
    ocr_timeout_seconds: float = 30.0

    search_top_k: int = 20
    search_max_documents: int = 10
    qa_top_k: int = 15
    qa_context_chunks: int = 10
    qa_owner_filter: bool = True

    log_dir: str = "logs"
    default_case_name: str = DEFAULT_CASE_NAME

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from process environment variables."""

        return cls(
            gemini_api_key=_env_optional("GEMINI_API_KEY"),
            embedding_provider=_env_str("EMBEDDING_PROVIDER", "auto").lower(),
            embedding_model=_env_str("EMBEDDING_MODEL", "text-embedding-004"),
            embedding_dimension=_int_from_env("EMBEDDING_DIMENSION", 768),
            embedding_batch_size=_int_from_env("EMBEDDING_BATCH_SIZE", 10),
            embedding_concurrency=_int_from_env("EMBEDDING_CONCURRENCY", 5),
            llm_provider=_env_str("LLM_PROVIDER", "auto").lower(),
            llm_model=_env_str("LLM_MODEL", "gemini-2.5-flash"),
            llm_temperature=_float_from_env("LLM_TEMPERATURE", 0.2),
            llm_max_tokens=_int_from_env("LLM_MAX_TOKENS", 1024),
            vector_store=_env_str("VECTOR_STORE", "memory").lower(),
            pinecone_api_key=_env_optional("PINECONE_API_KEY"),
            pinecone_index=_env_str("PINECONE_INDEX", "legal-docs"),
            pinecone_cloud=_env_str("PINECONE_CLOUD", "aws"),
            pinecone_region=_env_str("PINECONE_REGION", "us-east-1"),
            index_ready_attempts=_int_from_env("INDEX_READY_ATTEMPTS", 30),
            index_ready_interval_seconds=_float_from_env("INDEX_READY_INTERVAL_SECONDS", 10.0),
            chroma_persist_dir=_env_str("CHROMA_PERSIST_DIR", "chroma_db"),
            database_path=_env_str("DATABASE_PATH", "data/clauseiq.sqlite3"),
            blob_dir=_env_str("BLOB_DIR", "data/blobs"),
            jwt_secret=_env_str("JWT_SECRET", "change-me"),
            jwt_algorithm=_env_str("JWT_ALGORITHM", "HS256"),
            auth_cache_ttl_seconds=_float_from_env("AUTH_CACHE_TTL_SECONDS", 300.0),
            rate_limit_window_seconds=_float_from_env("RATE_LIMIT_WINDOW_SECONDS", 60.0),
            upload_rate_limit=_int_from_env("UPLOAD_RATE_LIMIT", 10),
            search_rate_limit=_int_from_env("SEARCH_RATE_LIMIT", 30),
            qa_rate_limit=_int_from_env("QA_RATE_LIMIT", 20),
            max_upload_bytes=_int_from_env("MAX_UPLOAD_BYTES", 50 * 1024 * 1024),
            chunk_size=_int_from_env("CHUNK_SIZE", 1000),
            chunk_overlap=_int_from_env("CHUNK_OVERLAP", 200),
            min_extracted_chars=_int_from_env("MIN_EXTRACTED_CHARS", 100),
            extract_pdf_text=_env_flag("EXTRACT_PDF_TEXT"),
            ocr_poll_interval_seconds=_float_from_env("OCR_POLL_INTERVAL_SECONDS", 2.0),
            ocr_timeout_seconds=_float_from_env("OCR_TIMEOUT_SECONDS", 30.0),
            qa_owner_filter=_env_flag("QA_OWNER_FILTER", True),
            log_dir=_env_str("LOG_DIR", "logs"),
        )

    def resolved_embedding_provider(self) -> str:
        if self.embedding_provider != "auto":
            return self.embedding_provider
        return "gemini" if self.gemini_api_key else "deterministic"

    def resolved_llm_provider(self) -> str:
        if self.llm_provider != "auto":
            return self.llm_provider
        return "gemini" if self.gemini_api_key else "stub"


__all__ = ["DEFAULT_CASE_NAME", "Settings"]
