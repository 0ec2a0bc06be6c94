"""Application facade used by the HTTP API and the CLI.

:class:`DocumentService` validates uploads synchronously, creates the
:class:`Document` record and hands ingestion to a background task.  Clients
then poll :meth:`DocumentService.get_status` until the status is terminal.
Search, listing, embedding summaries and deletion are delegated to the
retrieval service and the document store.
"""

from __future__ import annotations

import asyncio
import functools
import shutil
import uuid
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from cachetools import LRUCache

from plansearch.models.document import Document
from plansearch.models.ingestion import DocumentStatusReport, IngestionReport, UploadReceipt
from plansearch.providers.extraction.composite_provider import normalize_mime_type
from plansearch.services.classification.sheet_index import SheetIndexService
from plansearch.utils.errors import DocumentNotFoundError, DocumentValidationError
from plansearch.utils.logging import ingestion_context

if TYPE_CHECKING:
    from plansearch.interfaces.document_store import IDocumentStore
    from plansearch.models.classification import SheetIndex
    from plansearch.models.embedding import ContentType, EmbeddingSummary, SearchResponse
    from plansearch.services.ingestion.coordinator import IngestionCoordinator
    from plansearch.services.retrieval.retrieval_service import RetrievalService

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_ALLOWED_MIME_TYPES = ("application/pdf", "text/plain")
_DEFAULT_MAX_UPLOAD_BYTES = 50 * 1024 * 1024
_DEFAULT_REPORT_CACHE_SIZE = 256


class DocumentService:
    """Upload, poll, search and delete documents.

    Parameters
    ----------
    document_store:
        Opened persistence handle.
    coordinator:
        Runs each document's ingestion pipeline.
    retrieval_service:
        Answers search and embedding-summary requests.
    allowed_mime_types:
        Upload mime types accepted by :meth:`upload`.
    max_upload_bytes:
        Largest accepted upload.
    page_image_dir:
        Root of rendered page images; a document's directory is removed on
        :meth:`delete`.
    report_cache_size:
        Number of recent ingestion reports kept for :meth:`last_report`.
        The least recently used report is evicted first.
    sheet_index_service:
        Builds scope sheet indexes; defaults to one over *document_store*.
    """

    def __init__(
        self,
        document_store: IDocumentStore,
        coordinator: IngestionCoordinator,
        retrieval_service: RetrievalService,
        allowed_mime_types: list[str] | tuple[str, ...] = _DEFAULT_ALLOWED_MIME_TYPES,
        max_upload_bytes: int = _DEFAULT_MAX_UPLOAD_BYTES,
        page_image_dir: str | Path | None = None,
        report_cache_size: int = _DEFAULT_REPORT_CACHE_SIZE,
        sheet_index_service: SheetIndexService | None = None,
    ) -> None:
        self._store = document_store
        self._coordinator = coordinator
        self._retrieval = retrieval_service
        self._allowed_mime_types = frozenset(normalize_mime_type(m) for m in allowed_mime_types)
        self._max_upload_bytes = max_upload_bytes
        self._page_image_dir = Path(page_image_dir) if page_image_dir else None
        self._tasks: dict[str, asyncio.Task[IngestionReport]] = {}
        self._reports: LRUCache[str, IngestionReport] = LRUCache(
            maxsize=max(1, report_cache_size)
        )
        self._sheet_index = sheet_index_service or SheetIndexService(document_store)

    @property
    def active_ingestions(self) -> int:
        return len(self._tasks)

    # ------------------------------------------------------------------
    # Upload and ingestion
    # ------------------------------------------------------------------

    async def upload(
        self, data: bytes, filename: str, mime_type: str, scope_id: str
    ) -> UploadReceipt:
        """Validate an upload, create its document and start ingestion in the background.

        Raises
        ------
        DocumentValidationError
            For a missing scope or filename, an empty or oversized file, or
            an unsupported mime type.  No document is created.
        """
        mime = normalize_mime_type(mime_type or "")
        if not scope_id or not scope_id.strip():
            raise DocumentValidationError(message="scope_id is required")
        if not filename or not filename.strip():
            raise DocumentValidationError(message="filename is required")
        if not data:
            raise DocumentValidationError(message=f"{filename} is empty")
        if len(data) > self._max_upload_bytes:
            raise DocumentValidationError(
                message=(
                    f"{filename} is {len(data)} bytes; "
                    f"the upload limit is {self._max_upload_bytes} bytes"
                )
            )
        if mime not in self._allowed_mime_types:
            raise DocumentValidationError(
                message=(
                    f"Unsupported mime type {mime!r}; "
                    f"allowed: {', '.join(sorted(self._allowed_mime_types))}"
                )
            )

        document = Document(
            document_id=str(uuid.uuid4()),
            scope_id=scope_id.strip(),
            filename=Path(filename).name,
            mime_type=mime,
            file_size=len(data),
        )
        await self._store.create_document(document)

        task = asyncio.create_task(
            self._run_ingestion(document, data), name=f"ingest-{document.document_id}"
        )
        self._tasks[document.document_id] = task
        task.add_done_callback(functools.partial(self._forget_task, document.document_id))

        logger.info(
            "upload_accepted",
            document_id=document.document_id,
            scope_id=document.scope_id,
            filename=document.filename,
            size_bytes=len(data),
        )
        return UploadReceipt(document_id=document.document_id, status=document.status)

    async def wait_for(
        self, document_id: str, timeout: float | None = None
    ) -> DocumentStatusReport:
        """Wait for a background ingestion to finish, then return the document's status."""
        task = self._tasks.get(document_id)
        if task is not None:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        return await self.get_status(document_id)

    def last_report(self, document_id: str) -> IngestionReport | None:
        """Report of a recent ingestion run in this process, if still cached."""
        return self._reports.get(document_id)

    async def shutdown(self) -> None:
        """Wait for in-flight ingestions so the store can be closed safely."""
        pending = list(self._tasks.values())
        if pending:
            logger.info("waiting_for_ingestions", count=len(pending))
            await asyncio.gather(*pending, return_exceptions=True)

    async def _run_ingestion(self, document: Document, data: bytes) -> IngestionReport:
        with ingestion_context(document.document_id, document.scope_id):
            report = await self._coordinator.ingest(document, data)
        self._reports[document.document_id] = report
        return report

    def _forget_task(self, document_id: str, _task: asyncio.Task[IngestionReport]) -> None:
        self._tasks.pop(document_id, None)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_status(self, document_id: str) -> DocumentStatusReport:
        """Return the document's status, counts and current classification.

        Raises
        ------
        DocumentNotFoundError
            If the document does not exist.
        """
        document = await self._store.get_document(document_id)
        if document is None:
            raise DocumentNotFoundError(message=f"Document {document_id} not found")
        counts = await self._store.get_document_counts(document_id)
        classification = await self._store.get_latest_classification(document_id)
        return DocumentStatusReport(
            document_id=document.document_id,
            scope_id=document.scope_id,
            filename=document.filename,
            status=document.status,
            page_count=counts.get("pages", 0),
            chunk_count=counts.get("chunks", 0),
            embedding_count=counts.get("embeddings", 0),
            error_message=document.error_message,
            classification=classification,
        )

    async def list_documents(self, scope_id: str) -> list[Document]:
        return await self._store.list_documents(scope_id)

    async def search(
        self,
        query: str,
        scope_id: str,
        content_type: ContentType | None = None,
        limit: int | None = None,
        threshold: float | None = None,
    ) -> SearchResponse:
        return await self._retrieval.search(
            query, scope_id, content_type=content_type, limit=limit, threshold=threshold
        )

    async def embedding_summary(self, scope_id: str) -> EmbeddingSummary:
        return await self._retrieval.embedding_summary(scope_id)

    async def sheet_index(self, scope_id: str) -> SheetIndex:
        return await self._sheet_index.build(scope_id)

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    async def delete(self, document_id: str) -> None:
        """Delete a document with its pages, chunks, embeddings and page images.

        An ingestion still running for the document is not cancelled; its
        remaining writes fail against the deleted parent row and are logged.

        Raises
        ------
        DocumentNotFoundError
            If the document does not exist.
        """
        deleted = await self._store.delete_document(document_id)
        if not deleted:
            raise DocumentNotFoundError(message=f"Document {document_id} not found")
        self._reports.pop(document_id, None)

        if self._page_image_dir is not None:
            image_dir = self._page_image_dir / document_id
            await asyncio.to_thread(shutil.rmtree, image_dir, ignore_errors=True)
        logger.info("document_removed", document_id=document_id)
