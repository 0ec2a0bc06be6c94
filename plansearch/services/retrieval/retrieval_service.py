"""Query-side retrieval: embed the query, rank the scope, resolve provenance.

The service also explains empty results.  A search that returns nothing
reports whether the scope has no documents yet, whether documents are still
being ingested, or whether nothing scored above the threshold.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from plansearch.models.document import Document, DocumentStatus
from plansearch.models.embedding import (
    ContentType,
    EmbeddingSummary,
    SearchDiagnostics,
    SearchOutcome,
    SearchResponse,
    SearchResult,
)
from plansearch.utils.errors import DocumentValidationError

if TYPE_CHECKING:
    from plansearch.interfaces.document_store import IDocumentStore
    from plansearch.interfaces.embedding_provider import IEmbeddingProvider
    from plansearch.services.retrieval.embedding_store import EmbeddingStore

logger = structlog.get_logger(logger_name=__name__)

_IN_PROGRESS = frozenset({DocumentStatus.UPLOADING, DocumentStatus.PROCESSING})
_CONTENT_TYPE_VALUES = frozenset(c.value for c in ContentType)


class RetrievalService:
    """Semantic search over one scope's embeddings.

    Parameters
    ----------
    embedding_provider:
        Embeds the query text.  Must produce vectors of the same length as
        the stored ones, otherwise every candidate is skipped as a
        dimension mismatch.
    embedding_store:
        Ranks stored embeddings against the query vector.
    document_store:
        Resolves document filenames and per-scope document states.
    default_top_k / default_threshold:
        Used when a call does not pass ``limit`` / ``threshold``.
    """

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        embedding_store: EmbeddingStore,
        document_store: IDocumentStore,
        default_top_k: int = 10,
        default_threshold: float = 0.3,
    ) -> None:
        self._embedding_provider = embedding_provider
        self._embedding_store = embedding_store
        self._document_store = document_store
        self._default_top_k = default_top_k
        self._default_threshold = default_threshold

    async def search(
        self,
        query: str,
        scope_id: str,
        content_type: ContentType | None = None,
        limit: int | None = None,
        threshold: float | None = None,
    ) -> SearchResponse:
        """Return the best-matching embeddings in *scope_id* for *query*."""
        if not query or not query.strip():
            raise DocumentValidationError(message="Search query must not be empty")
        if not scope_id:
            raise DocumentValidationError(message="scope_id is required")

        top_k = limit if limit is not None else self._default_top_k
        min_similarity = threshold if threshold is not None else self._default_threshold
        if top_k < 1:
            raise DocumentValidationError(message=f"limit must be positive, got {top_k}")

        documents = await self._document_store.list_documents(scope_id)
        processing = sum(1 for d in documents if d.status in _IN_PROGRESS)

        if not documents:
            logger.info("search_empty_scope", scope_id=scope_id)
            return SearchResponse(
                query=query,
                scope_id=scope_id,
                diagnostics=SearchDiagnostics(outcome=SearchOutcome.NO_DOCUMENTS),
            )

        query_vector = await self._embedding_provider.embed_single(query)
        ranked = await self._embedding_store.search(
            query_vector,
            scope_id=scope_id,
            content_type=content_type,
            top_k=top_k,
            similarity_threshold=min_similarity,
        )

        by_id: dict[str, Document] = {d.document_id: d for d in documents}
        results: list[SearchResult] = []
        for hit in ranked.hits:
            record = hit.record
            document = by_id.get(record.metadata.document_id)
            # Deleted between the document listing and the scan.
            if document is None:
                continue
            results.append(
                SearchResult(
                    embedding_id=record.embedding_id,
                    similarity=hit.similarity,
                    content_type=record.content_type,
                    content=record.content,
                    document_id=document.document_id,
                    source_document=document.filename,
                    source_page=record.metadata.page_number,
                    bounding_box=record.bounding_box,
                    created_at=record.created_at,
                )
            )

        if results:
            outcome = SearchOutcome.MATCHES
        elif processing:
            outcome = SearchOutcome.STILL_PROCESSING
        else:
            outcome = SearchOutcome.NO_MATCH_ABOVE_THRESHOLD

        diagnostics = ranked.diagnostics.model_copy(
            update={
                "documents_in_scope": len(documents),
                "documents_processing": processing,
                "outcome": outcome,
            }
        )
        logger.info(
            "search_complete",
            scope_id=scope_id,
            results=len(results),
            outcome=outcome.value,
            considered=diagnostics.candidates_considered,
        )
        return SearchResponse(
            query=query, scope_id=scope_id, results=results, diagnostics=diagnostics
        )

    async def embedding_summary(self, scope_id: str) -> EmbeddingSummary:
        """Per-content-type embedding counts and document states for *scope_id*."""
        counts = await self._document_store.count_embeddings_by_type(scope_id)
        documents = await self._document_store.list_documents(scope_id)
        by_type = {ContentType(k): v for k, v in counts.items() if k in _CONTENT_TYPE_VALUES}
        return EmbeddingSummary(
            scope_id=scope_id,
            total=sum(by_type.values()),
            by_content_type=by_type,
            documents_ready=sum(1 for d in documents if d.status is DocumentStatus.READY),
            documents_processing=sum(1 for d in documents if d.status in _IN_PROGRESS),
        )
