"""Provider selection and service assembly shared by the API and the CLI.

:func:`build_components` constructs every provider and service from a
:class:`Settings` instance and returns them as a flat dict.  The web app
stores the dict on ``app.state``; the CLI pulls the pieces it needs.
Nothing here opens the database; callers own the store's lifecycle.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog

from plansearch.config.settings import Settings
from plansearch.interfaces.embedding_provider import IEmbeddingProvider
from plansearch.interfaces.llm_provider import ILLMProvider
from plansearch.models.ingestion import ChunkingConstraints
from plansearch.providers.classification.llm_classification_provider import (
    LLMClassificationProvider,
)
from plansearch.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider
from plansearch.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from plansearch.providers.extraction.composite_provider import CompositeExtractionProvider
from plansearch.providers.extraction.pdf_provider import PDFExtractionProvider
from plansearch.providers.extraction.text_provider import PlainTextExtractionProvider
from plansearch.providers.llm.anthropic_provider import AnthropicLLMProvider
from plansearch.providers.llm.ollama_provider import OllamaLLMProvider
from plansearch.providers.llm.openai_provider import OpenAILLMProvider
from plansearch.providers.store.sqlite_document_store import SQLiteDocumentStore
from plansearch.services.classification.classification_service import ClassificationService
from plansearch.services.document_service import DocumentService
from plansearch.services.ingestion.chunker import SemanticChunker
from plansearch.services.ingestion.coordinator import IngestionCoordinator
from plansearch.services.ingestion.fact_extractor import FactExtractor
from plansearch.services.retrieval.embedding_store import EmbeddingStore
from plansearch.services.retrieval.retrieval_service import RetrievalService

logger = structlog.get_logger(logger_name=__name__)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def build_llm_provider(app_settings: Settings) -> ILLMProvider:
    """Select the first LLM provider with credentials configured.

    Priority order: Anthropic -> OpenAI -> Ollama (no key needed).
    """
    if app_settings.anthropic_api_key:
        return AnthropicLLMProvider(settings=app_settings)
    if app_settings.openai_api_key:
        return OpenAILLMProvider(settings=app_settings)
    return OllamaLLMProvider(settings=app_settings)


def build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    """Select the first available embedding provider.

    Priority: OpenAI/OpenAI-compatible (if API key set) -> Nomic/Ollama.
    When neither is reachable the Nomic provider is still returned so the
    service can start; embedding calls then fail per unit and are counted
    in each ingestion report.
    """
    if app_settings.openai_api_key:
        provider: IEmbeddingProvider = OpenAIEmbeddingProvider(settings=app_settings)
        if provider.is_available():
            return provider

    provider = NomicEmbeddingProvider(settings=app_settings)
    if not provider.is_available():
        logger.warning(
            "embedding_provider_unreachable",
            provider=provider.get_provider_name(),
            ollama_base_url=app_settings.ollama_base_url,
        )
    return provider


# ---------------------------------------------------------------------------
# Full assembly
# ---------------------------------------------------------------------------


def build_components(app_settings: Settings) -> dict[str, Any]:
    """Construct every provider and service for one process.

    The returned ``document_store`` is not yet open; call
    ``await components["document_store"].open()`` before use.
    """
    document_store = SQLiteDocumentStore(db_path=app_settings.database_path)

    llm = build_llm_provider(app_settings)
    embedding_provider = build_embedding_provider(app_settings)

    extraction_provider = CompositeExtractionProvider(
        providers=[
            PDFExtractionProvider(
                render_images=app_settings.render_page_images,
                dpi=app_settings.page_image_dpi,
            ),
            PlainTextExtractionProvider(),
        ]
    )

    constraints = ChunkingConstraints(
        target_size=app_settings.chunk_target_size,
        min_size=app_settings.chunk_min_size,
        max_size=app_settings.chunk_max_size,
        overlap=app_settings.chunk_overlap,
        floor=app_settings.chunk_floor,
    )
    fact_extractor = FactExtractor(llm=llm) if app_settings.fact_extraction_enabled else None
    chunker = SemanticChunker(fact_extractor=fact_extractor, constraints=constraints)

    embedding_store = EmbeddingStore(document_store=document_store)
    retrieval_service = RetrievalService(
        embedding_provider=embedding_provider,
        embedding_store=embedding_store,
        document_store=document_store,
        default_top_k=app_settings.search_top_k,
        default_threshold=app_settings.search_similarity_threshold,
    )

    classification_service = ClassificationService(
        document_store=document_store,
        provider=LLMClassificationProvider(llm=llm),
        max_pages=app_settings.classification_max_pages,
        excerpt_chars=app_settings.classification_excerpt_chars,
    )

    page_image_dir = (
        Path(app_settings.page_image_dir) if app_settings.render_page_images else None
    )
    coordinator = IngestionCoordinator(
        document_store=document_store,
        extraction_provider=extraction_provider,
        chunker=chunker,
        embedding_provider=embedding_provider,
        embedding_store=embedding_store,
        classification_service=classification_service,
        page_concurrency=app_settings.page_concurrency,
        page_image_dir=page_image_dir,
        combined_page_embeddings=app_settings.combined_page_embeddings,
    )

    document_service = DocumentService(
        document_store=document_store,
        coordinator=coordinator,
        retrieval_service=retrieval_service,
        allowed_mime_types=app_settings.allowed_mime_types,
        max_upload_bytes=app_settings.max_upload_bytes,
        page_image_dir=page_image_dir,
        report_cache_size=app_settings.report_cache_size,
    )

    # -- Provider registry for /health --
    provider_registry: dict[str, Any] = {
        "llm": llm.is_available(),
        "llm_name": llm.get_provider_name(),
        "embedding": embedding_provider.is_available(),
        "embedding_name": embedding_provider.get_provider_name(),
        "extraction": True,
        "store": True,
    }

    return {
        "document_store": document_store,
        "llm": llm,
        "embedding_provider": embedding_provider,
        "retrieval_service": retrieval_service,
        "coordinator": coordinator,
        "document_service": document_service,
        "provider_registry": provider_registry,
    }
