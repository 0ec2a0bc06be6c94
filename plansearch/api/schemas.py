"""Request and response bodies for the HTTP API.

Domain models from :mod:`plansearch.models` are reused where their shape is
already what clients need (search results, classifications); the classes
here add the request bodies and flatten computed properties into fields.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from plansearch.models.classification import Classification
from plansearch.models.document import DocumentStatus
from plansearch.models.embedding import ContentType


class UploadResponse(BaseModel):
    """Returned immediately after an upload is accepted."""

    document_id: str
    status: DocumentStatus


class DocumentStatusResponse(BaseModel):
    """Polling view of one document.  Stop polling once ``is_terminal`` is true."""

    document_id: str
    scope_id: str
    filename: str
    status: DocumentStatus
    is_terminal: bool
    page_count: int = 0
    chunk_count: int = 0
    embedding_count: int = 0
    error_message: str | None = None
    classification: Classification | None = None


class DocumentSummary(BaseModel):
    document_id: str
    filename: str
    mime_type: str
    file_size: int
    status: DocumentStatus
    error_message: str | None = None
    created_at: datetime
    updated_at: datetime


class DocumentListResponse(BaseModel):
    scope_id: str
    documents: list[DocumentSummary] = Field(default_factory=list)


class DeleteResponse(BaseModel):
    document_id: str
    deleted: bool = True


class SearchRequest(BaseModel):
    """Semantic search within one scope."""

    query: str = Field(..., min_length=1, max_length=2000)
    scope_id: str = Field(..., min_length=1)
    content_type: ContentType | None = Field(
        default=None, description="Restrict results to textual, visual or combined embeddings."
    )
    limit: int | None = Field(default=None, ge=1, le=100)
    threshold: float | None = Field(default=None, ge=-1.0, le=1.0)


class EmbeddingStatusResponse(BaseModel):
    """Whether a scope has anything to search yet."""

    scope_id: str
    total: int
    by_content_type: dict[str, int] = Field(default_factory=dict)
    documents_ready: int = 0
    documents_processing: int = 0
    search_ready: bool


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]
    active_ingestions: int = 0


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
