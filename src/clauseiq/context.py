"""Process-scoped application context shared by the HTTP handlers."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from clauseiq.auth import CredentialVerifier
from clauseiq.config import Settings
from clauseiq.documents import SQLiteDocumentRepository
from clauseiq.embeddings import EmbeddingGenerator, build_embedding_backend
from clauseiq.ingest.extractors import TextExtractor
from clauseiq.ingest.ocr import GeminiOCR
from clauseiq.ingest.pipeline import IngestionConfig, IngestionPipeline
from clauseiq.llm_provider import LLM, build_llm
from clauseiq.rate_limit import FixedWindowRateLimiter
from clauseiq.services.labels import LabelService
from clauseiq.services.rag import RetrievalConfig, RetrievalService
from clauseiq.storage import BlobStore, LocalBlobStore
from clauseiq.vectorstore import VectorStoreGateway, build_vector_store

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class RateLimiters:
    upload: FixedWindowRateLimiter
    search: FixedWindowRateLimiter
    qa: FixedWindowRateLimiter

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "RateLimiters":
        window = settings.rate_limit_window_seconds
        return cls(
            upload=FixedWindowRateLimiter(settings.upload_rate_limit, window, name="upload", **kwargs),
            search=FixedWindowRateLimiter(settings.search_rate_limit, window, name="search", **kwargs),
            qa=FixedWindowRateLimiter(settings.qa_rate_limit, window, name="qa", **kwargs),
        )


@dataclass(slots=True)
class AppContext:
    """Every long-lived collaborator a request may need."""

    settings: Settings
    verifier: CredentialVerifier
    limiters: RateLimiters
    repository: SQLiteDocumentRepository
    blob_store: BlobStore
    embeddings: EmbeddingGenerator
    vector_store: VectorStoreGateway
    llm: LLM
    pipeline: IngestionPipeline
    retrieval: RetrievalService
    labels: LabelService

    @classmethod
    def build(
        cls,
        settings: Optional[Settings] = None,
        *,
        gemini_client: Any = None,
        vector_store: Optional[VectorStoreGateway] = None,
        llm: Optional[LLM] = None,
    ) -> "AppContext":
        """Wire the collaborators selected by ``settings``.

        ``gemini_client``, ``vector_store`` and ``llm`` override the
        configured backends.
        """

        settings = settings or Settings.from_env()
        if gemini_client is None and settings.gemini_api_key:
            from clauseiq.gemini import create_gemini_client

            gemini_client = create_gemini_client(settings.gemini_api_key)

        repository = SQLiteDocumentRepository(settings.database_path)
        blob_store = LocalBlobStore(settings.blob_dir)

        backend = build_embedding_backend(
            settings.resolved_embedding_provider(),
            dimension=settings.embedding_dimension,
            model=settings.embedding_model,
            gemini_client=gemini_client,
        )
        embeddings = EmbeddingGenerator(
            backend,
            dimension=settings.embedding_dimension,
            batch_size=settings.embedding_batch_size,
            concurrency=settings.embedding_concurrency,
        )
        vector_store = vector_store or build_vector_store(settings)
        llm = llm or build_llm(settings.resolved_llm_provider(), settings=settings, gemini_client=gemini_client)

        ocr = None
        if gemini_client is not None:
            ocr = GeminiOCR(
                gemini_client,
                model=settings.llm_model,
                poll_interval=settings.ocr_poll_interval_seconds,
                timeout=settings.ocr_timeout_seconds,
            )
        else:
            LOGGER.warning("GEMINI_API_KEY is not set; scanned documents cannot be OCRed")

        pipeline = IngestionPipeline(
            blob_store=blob_store,
            extractor=TextExtractor(extract_pdf_text=settings.extract_pdf_text),
            embeddings=embeddings,
            vector_store=vector_store,
            repository=repository,
            ocr=ocr,
            config=IngestionConfig.from_settings(settings),
        )
        retrieval = RetrievalService(
            embeddings=embeddings,
            vector_store=vector_store,
            repository=repository,
            llm=llm,
            config=RetrievalConfig.from_settings(settings),
        )
        return cls(
            settings=settings,
            verifier=CredentialVerifier(
                settings.jwt_secret,
                algorithm=settings.jwt_algorithm,
                ttl_seconds=settings.auth_cache_ttl_seconds,
            ),
            limiters=RateLimiters.from_settings(settings),
            repository=repository,
            blob_store=blob_store,
            embeddings=embeddings,
            vector_store=vector_store,
            llm=llm,
            pipeline=pipeline,
            retrieval=retrieval,
            labels=LabelService(repository),
        )

    def close(self) -> None:
        self.repository.close()


__all__ = ["AppContext", "RateLimiters"]
