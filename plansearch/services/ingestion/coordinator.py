"""Orchestrator for the per-document ingestion pipeline.

Pipeline stages: **extract -> normalise -> persist page -> chunk -> embed ->
classify**.

The :class:`IngestionCoordinator` owns a document's lifecycle state.  It is
the only component that moves a document through
``uploading -> processing -> ready | failed``:

    1. Guard -- only an ``uploading`` document may be ingested
    2. processing -- the extraction provider opens the file and counts pages
    3. Pages run with bounded concurrency; each page is extracted,
       normalised, persisted, chunked and embedded independently
    4. The classification service runs once over the persisted pages
    5. ready -- even when some pages or embeddings failed (degraded)

Failures are isolated by scope.  Any exception raised while processing one
page, or while embedding one chunk, is logged and counted and never touches
its siblings.  Only an error in the orchestration itself (the file cannot
be opened, no page could be extracted, a status write is rejected) marks
the document ``failed``.

All collaborators are injected via the constructor, so providers can be
swapped without changing this class.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from plansearch.models.document import (
    Chunk,
    ChunkingMethod,
    Document,
    DocumentStatus,
    Page,
    VisualElement,
)
from plansearch.models.embedding import ContentType
from plansearch.models.ingestion import IngestionReport
from plansearch.utils.concurrency import throttled_gather
from plansearch.utils.errors import (
    ExtractionError,
    InvalidStatusTransition,
    PipelineFailure,
    PlanSearchError,
)
from plansearch.utils.text_normalizer import preprocess_technical_text

if TYPE_CHECKING:
    from plansearch.interfaces.document_store import IDocumentStore
    from plansearch.interfaces.embedding_provider import IEmbeddingProvider
    from plansearch.interfaces.extraction_provider import IExtractionProvider
    from plansearch.models.classification import Classification
    from plansearch.services.classification.classification_service import (
        ClassificationService,
    )
    from plansearch.services.ingestion.chunker import SemanticChunker
    from plansearch.services.retrieval.embedding_store import EmbeddingStore

logger = structlog.get_logger(logger_name=__name__)

_COMBINED_TEXT_CHARS = 4000


@dataclass
class _PageOutcome:
    """Counters for one successfully extracted page."""

    page: Page
    method: ChunkingMethod
    chunks: int = 0
    embeddings: int = 0
    embeddings_failed: int = 0
    element_types: Counter[str] = field(default_factory=Counter)


class IngestionCoordinator:
    """Runs the ingestion pipeline for one document at a time.

    Parameters
    ----------
    document_store:
        Opened persistence handle for documents, pages and chunks.
    extraction_provider:
        Reads pages out of the uploaded bytes.
    chunker:
        Splits normalised page text into chunks.
    embedding_provider:
        Produces one vector per chunk, visual element and page summary.
    embedding_store:
        Validates and persists embeddings.
    classification_service:
        Optional; classifies the document once all pages are processed.
    page_concurrency:
        Maximum pages of one document in flight at once.
    page_image_dir:
        Directory for rendered page images.  ``None`` discards them.
    combined_page_embeddings:
        Also embed a whole-page summary (text plus visual element counts).
    """

    def __init__(
        self,
        document_store: IDocumentStore,
        extraction_provider: IExtractionProvider,
        chunker: SemanticChunker,
        embedding_provider: IEmbeddingProvider,
        embedding_store: EmbeddingStore,
        classification_service: ClassificationService | None = None,
        page_concurrency: int = 4,
        page_image_dir: str | Path | None = None,
        combined_page_embeddings: bool = True,
    ) -> None:
        self._store = document_store
        self._extractor = extraction_provider
        self._chunker = chunker
        self._embedding_provider = embedding_provider
        self._embedding_store = embedding_store
        self._classifier = classification_service
        self._page_concurrency = max(1, page_concurrency)
        self._page_image_dir = Path(page_image_dir) if page_image_dir else None
        self._combined_page_embeddings = combined_page_embeddings

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ingest(self, document: Document, data: bytes) -> IngestionReport:
        """Run the full pipeline for *document* and return its report.

        Raises
        ------
        InvalidStatusTransition
            If *document* is not in ``uploading``.  Nothing is written in
            that case; a failed or ready document is never re-ingested.
        """
        if document.status is not DocumentStatus.UPLOADING:
            raise InvalidStatusTransition(
                message=(
                    f"Document {document.document_id} is {document.status.value}; "
                    "only uploading documents can be ingested"
                ),
            )

        start = time.monotonic()
        logger.info(
            "ingestion_started",
            document_id=document.document_id,
            scope_id=document.scope_id,
            filename=document.filename,
            mime_type=document.mime_type,
        )

        try:
            await self._store.update_document_status(
                document.document_id, DocumentStatus.PROCESSING
            )
            report = await self._run(document, data, start)
        except Exception as exc:  # noqa: BLE001 -- anything escaping the pipeline fails the document
            message = str(exc) or type(exc).__name__
            logger.error(
                "ingestion_failed",
                document_id=document.document_id,
                error=message,
                error_type=type(exc).__name__,
            )
            await self._mark_failed(document.document_id, message)
            return IngestionReport(
                document_id=document.document_id,
                status=DocumentStatus.FAILED,
                error_message=message,
                ingestion_time=time.monotonic() - start,
            )

        logger.info(
            "ingestion_complete",
            document_id=document.document_id,
            pages=report.page_count,
            pages_failed=report.pages_failed,
            chunks=report.chunk_count,
            embeddings=report.embedding_count,
            embeddings_failed=report.embeddings_failed,
            degraded=report.degraded,
            elapsed_s=round(report.ingestion_time, 2),
        )
        return report

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    async def _run(self, document: Document, data: bytes, start: float) -> IngestionReport:
        try:
            page_count = await self._extractor.count_pages(data, document.mime_type)
        except ExtractionError as exc:
            raise PipelineFailure(
                message=f"Cannot open {document.filename}: {exc.message}",
                provider_name=exc.provider_name,
            ) from exc
        if page_count < 1:
            raise PipelineFailure(message=f"{document.filename} contains no pages")

        semaphore = asyncio.Semaphore(self._page_concurrency)
        results = await throttled_gather(
            [self._process_page(document, data, n) for n in range(1, page_count + 1)],
            semaphore=semaphore,
        )

        outcomes: list[_PageOutcome] = []
        pages_failed = 0
        for page_number, result in enumerate(results, start=1):
            if isinstance(result, _PageOutcome):
                outcomes.append(result)
            elif isinstance(result, Exception):
                pages_failed += 1
                logger.warning(
                    "page_failed",
                    document_id=document.document_id,
                    page_number=page_number,
                    error=str(result) or type(result).__name__,
                    error_type=type(result).__name__,
                )
            elif isinstance(result, BaseException):
                raise result

        if not outcomes:
            raise PipelineFailure(
                message=f"No page of {document.filename} could be extracted "
                f"({pages_failed} of {page_count} failed)"
            )

        classification = await self._classify(document, [o.page for o in outcomes])

        await self._store.update_document_status(document.document_id, DocumentStatus.READY)

        methods: Counter[ChunkingMethod] = Counter(o.method for o in outcomes if o.chunks)
        return IngestionReport(
            document_id=document.document_id,
            status=DocumentStatus.READY,
            page_count=page_count,
            pages_failed=pages_failed,
            chunk_count=sum(o.chunks for o in outcomes),
            embedding_count=sum(o.embeddings for o in outcomes),
            embeddings_failed=sum(o.embeddings_failed for o in outcomes),
            chunking_methods=dict(methods),
            classification=classification,
            ingestion_time=time.monotonic() - start,
        )

    async def _process_page(self, document: Document, data: bytes, page_number: int) -> _PageOutcome:
        extracted = await self._extractor.extract_page(data, document.mime_type, page_number)
        text = preprocess_technical_text(extracted.text)

        page = Page(
            page_id=str(uuid.uuid4()),
            document_id=document.document_id,
            page_number=page_number,
            text=text,
            image_ref=await self._save_page_image(document, page_number, extracted.image_bytes),
            dimensions=extracted.dimensions,
            visual_elements=extracted.visual_elements,
        )
        await self._store.add_page(page)

        result = await self._chunker.chunk(text)
        outcome = _PageOutcome(page=page, method=result.method)

        chunks: list[Chunk] = []
        for sequence, content in enumerate(result.chunks):
            chunk = Chunk(
                chunk_id=str(uuid.uuid4()),
                page_id=page.page_id,
                document_id=document.document_id,
                content=content,
                sequence=sequence,
                extraction_method=result.method,
            )
            await self._store.add_chunk(chunk)
            chunks.append(chunk)
        outcome.chunks = len(chunks)

        for index, chunk in enumerate(chunks):
            metadata = {
                "content_type": ContentType.TEXTUAL.value,
                "chunk_id": chunk.chunk_id,
                "extraction_method": chunk.extraction_method,
                "chunk_index": index,
                "total_chunks": len(chunks),
            }
            ok = await self._embed(
                document,
                page,
                ContentType.TEXTUAL,
                chunk.content,
                metadata,
                chunk_id=chunk.chunk_id,
            )
            self._tally(outcome, ok)

        for index, element in enumerate(page.visual_elements):
            outcome.element_types[element.element_type.value] += 1
            if not element.text_content.strip():
                continue
            ok = await self._embed(
                document,
                page,
                ContentType.VISUAL,
                self._describe_element(element),
                {
                    "content_type": ContentType.VISUAL.value,
                    "element_type": element.element_type,
                    "element_index": index,
                    "confidence": element.confidence,
                },
                element=element,
            )
            self._tally(outcome, ok)

        if self._combined_page_embeddings and (text.strip() or page.visual_elements):
            ok = await self._embed(
                document,
                page,
                ContentType.COMBINED,
                self._summarize_page(page, outcome.element_types),
                {
                    "content_type": ContentType.COMBINED.value,
                    "visual_element_count": len(page.visual_elements),
                },
            )
            self._tally(outcome, ok)

        logger.debug(
            "page_processed",
            document_id=document.document_id,
            page_number=page_number,
            chunks=outcome.chunks,
            method=outcome.method.value,
            embeddings=outcome.embeddings,
            embeddings_failed=outcome.embeddings_failed,
        )
        return outcome

    async def _embed(
        self,
        document: Document,
        page: Page,
        content_type: ContentType,
        content: str,
        variant_fields: dict[str, object],
        chunk_id: str | None = None,
        element: VisualElement | None = None,
    ) -> bool:
        """Embed and store one unit.  Returns ``False`` on a unit-level failure."""
        try:
            vector = await self._embedding_provider.embed_single(content)
            await self._embedding_store.put(
                page_id=page.page_id,
                content_type=content_type,
                vector=vector,
                metadata={
                    "scope_id": document.scope_id,
                    "document_id": document.document_id,
                    "page_id": page.page_id,
                    "page_number": page.page_number,
                    "embedding_dimensions": len(vector),
                    **variant_fields,
                },
                chunk_id=chunk_id,
                bounding_box=element.bounding_box if element else None,
                content=content,
            )
        except Exception as exc:  # noqa: BLE001 -- one failed embedding never touches its siblings
            logger.warning(
                "embedding_failed",
                document_id=document.document_id,
                page_number=page.page_number,
                content_type=content_type.value,
                chunk_id=chunk_id,
                error=str(exc) or type(exc).__name__,
                error_type=type(exc).__name__,
            )
            return False
        return True

    async def _classify(self, document: Document, pages: list[Page]) -> Classification | None:
        if self._classifier is None:
            return None
        try:
            return await self._classifier.classify(
                document.document_id, pages, filename=document.filename
            )
        except Exception:  # noqa: BLE001 -- classification must never fail the document
            logger.exception("classification_crashed", document_id=document.document_id)
            return None

    async def _mark_failed(self, document_id: str, message: str) -> None:
        try:
            await self._store.update_document_status(
                document_id, DocumentStatus.FAILED, error_message=message
            )
        except PlanSearchError as exc:
            logger.error("mark_failed_rejected", document_id=document_id, error=str(exc))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _save_page_image(
        self, document: Document, page_number: int, image_bytes: bytes | None
    ) -> str | None:
        if not image_bytes or self._page_image_dir is None:
            return None
        path = self._page_image_dir / document.document_id / f"page_{page_number:04d}.png"
        try:
            await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
            await asyncio.to_thread(path.write_bytes, image_bytes)
        except OSError as exc:
            logger.warning(
                "page_image_not_saved",
                document_id=document.document_id,
                page_number=page_number,
                error=str(exc),
            )
            return None
        return str(path)

    @staticmethod
    def _tally(outcome: _PageOutcome, ok: bool) -> None:
        if ok:
            outcome.embeddings += 1
        else:
            outcome.embeddings_failed += 1

    @staticmethod
    def _describe_element(element: VisualElement) -> str:
        label = element.element_type.value.replace("_", " ")
        return f"{label}: {element.text_content.strip()}"

    @staticmethod
    def _summarize_page(page: Page, element_types: Counter[str]) -> str:
        parts = [f"Page {page.page_number}"]
        if element_types:
            listed = ", ".join(f"{count} {kind}" for kind, count in sorted(element_types.items()))
            parts.append(f"Visual elements: {listed}")
        if page.text.strip():
            parts.append(page.text.strip()[:_COMBINED_TEXT_CHARS])
        return "\n".join(parts)
