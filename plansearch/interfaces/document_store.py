"""Abstract base class for the persistent document store.

The store is an explicitly constructed handle with an ``open``/``close``
lifecycle (also usable as an async context manager).  It is injected into
the ingestion coordinator, the embedding store and the document service;
nothing in the package holds a module-level connection.

Guarantees every implementation must provide:

- each write is atomic per row and committed before the call returns;
- :meth:`update_document_status` refuses any transition the document
  lifecycle does not allow;
- :meth:`delete_document` cascades to pages, chunks, embeddings and
  classifications.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from plansearch.models.classification import Classification
from plansearch.models.document import Chunk, Document, DocumentStatus, Page
from plansearch.models.embedding import ContentType, EmbeddingRecord


# Concrete implementations: SQLiteDocumentStore
# Located in: plansearch/providers/store/
class IDocumentStore(ABC):
    """Contract for document, page, chunk, embedding and classification persistence."""

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @abstractmethod
    async def open(self) -> None:
        """Acquire the underlying connection and create the schema if needed."""

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying connection.  Safe to call twice."""

    async def __aenter__(self) -> IDocumentStore:
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    @abstractmethod
    async def create_document(self, document: Document) -> Document:
        """Insert a new document row."""

    @abstractmethod
    async def get_document(self, document_id: str) -> Document | None:
        """Return the document, or ``None`` if it does not exist."""

    @abstractmethod
    async def list_documents(self, scope_id: str) -> list[Document]:
        """Return every document in *scope_id*, newest first."""

    @abstractmethod
    async def update_document_status(
        self,
        document_id: str,
        status: DocumentStatus,
        error_message: str | None = None,
    ) -> Document:
        """Move a document to *status* and return the updated record.

        Raises
        ------
        plansearch.utils.errors.DocumentNotFoundError
            If the document does not exist.
        plansearch.utils.errors.InvalidStatusTransition
            If the current status cannot move to *status*.
        """

    @abstractmethod
    async def delete_document(self, document_id: str) -> bool:
        """Delete a document and everything it owns.  Returns ``False`` if absent."""

    @abstractmethod
    async def get_document_counts(self, document_id: str) -> dict[str, int]:
        """Return ``{"pages": n, "chunks": n, "embeddings": n}`` for a document."""

    # ------------------------------------------------------------------
    # Pages and chunks
    # ------------------------------------------------------------------

    @abstractmethod
    async def add_page(self, page: Page) -> Page:
        """Insert one page row."""

    @abstractmethod
    async def list_pages(self, document_id: str) -> list[Page]:
        """Return a document's pages ordered by page number."""

    @abstractmethod
    async def add_chunk(self, chunk: Chunk) -> Chunk:
        """Insert one chunk row."""

    @abstractmethod
    async def list_chunks(self, page_id: str) -> list[Chunk]:
        """Return a page's chunks in sequence order."""

    # ------------------------------------------------------------------
    # Embeddings
    # ------------------------------------------------------------------

    @abstractmethod
    async def add_embedding(self, record: EmbeddingRecord) -> str:
        """Persist a validated embedding and return its id.

        Vectors are stored serialized (JSON array) together with the
        metadata map, bounding box and creation time.
        """

    @abstractmethod
    async def fetch_embedding_rows(
        self, content_type: ContentType | None = None
    ) -> list[dict[str, Any]]:
        """Return raw, unparsed embedding rows for a linear scan.

        Each dict carries ``embedding_id``, ``seq``, ``chunk_id``,
        ``page_id``, ``content_type``, ``vector`` (serialized),
        ``bounding_box`` (serialized or ``None``), ``metadata``
        (serialized), ``content`` and ``created_at``.  Parsing and scope
        filtering are left to the caller so that a malformed row can be
        skipped instead of failing the scan.
        """

    @abstractmethod
    async def count_embeddings_by_type(self, scope_id: str) -> dict[str, int]:
        """Return ``{content_type: count}`` for embeddings owned by *scope_id*'s documents."""

    # ------------------------------------------------------------------
    # Classifications
    # ------------------------------------------------------------------

    @abstractmethod
    async def add_classification(self, classification: Classification) -> Classification:
        """Insert a classification record.  Earlier records are kept."""

    @abstractmethod
    async def get_latest_classification(self, document_id: str) -> Classification | None:
        """Return the most recent classification for a document, if any."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this store."""
