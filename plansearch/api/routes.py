"""FastAPI routes for document upload, status polling, search and deletion.

Service dependencies are resolved from ``app.state`` via FastAPI's
``Depends`` using the ``Annotated`` pattern, so tests can mount the router
on a bare app and set mocks on its state.

Endpoint                                     Method  Description
------------------------------------------   ------  -------------------------------
/api/v1/documents                            POST    Upload a file into a scope
/api/v1/documents/{document_id}/status       GET     Poll ingestion status
/api/v1/documents/{document_id}              DELETE  Delete a document (cascades)
/api/v1/scopes/{scope_id}/documents          GET     List a scope's documents
/api/v1/scopes/{scope_id}/embeddings/status  GET     Embedding counts for a scope
/api/v1/scopes/{scope_id}/sheets             GET     Sheet order and cross-references
/api/v1/search                               POST    Semantic search within a scope
/api/v1/health                               GET     Health check + provider status
"""

from __future__ import annotations

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Form, Request, UploadFile

from plansearch.api.schemas import (
    DeleteResponse,
    DocumentListResponse,
    DocumentStatusResponse,
    DocumentSummary,
    EmbeddingStatusResponse,
    ErrorResponse,
    HealthResponse,
    SearchRequest,
    UploadResponse,
)
from plansearch.models.classification import SheetIndex
from plansearch.models.embedding import SearchResponse
from plansearch.services.document_service import DocumentService
from plansearch.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

_VERSION = "0.1.0"


# ---------------------------------------------------------------------------
# Dependency injection helpers -- resolve singletons from app.state
# ---------------------------------------------------------------------------


def _get_document_service(request: Request) -> DocumentService:
    """Return the document service from application state."""
    return request.app.state.document_service


DocumentServiceDep = Annotated[DocumentService, Depends(_get_document_service)]


# ---------------------------------------------------------------------------
# Document endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/documents",
    response_model=UploadResponse,
    status_code=202,
    responses={400: {"model": ErrorResponse}},
    summary="Upload a document and start ingestion",
)
async def upload_document(
    file: UploadFile,
    scope_id: Annotated[str, Form()],
    service: DocumentServiceDep,
) -> UploadResponse:
    """Accept a file for *scope_id*; ingestion continues in the background."""
    data = await file.read()
    receipt = await service.upload(
        data=data,
        filename=file.filename or "",
        mime_type=file.content_type or "",
        scope_id=scope_id,
    )
    return UploadResponse(document_id=receipt.document_id, status=receipt.status)


@router.get(
    "/documents/{document_id}/status",
    response_model=DocumentStatusResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Poll a document's ingestion status",
)
async def get_document_status(document_id: str, service: DocumentServiceDep) -> DocumentStatusResponse:
    report = await service.get_status(document_id)
    return DocumentStatusResponse(
        document_id=report.document_id,
        scope_id=report.scope_id,
        filename=report.filename,
        status=report.status,
        is_terminal=report.is_terminal,
        page_count=report.page_count,
        chunk_count=report.chunk_count,
        embedding_count=report.embedding_count,
        error_message=report.error_message,
        classification=report.classification,
    )


@router.delete(
    "/documents/{document_id}",
    response_model=DeleteResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Delete a document and everything derived from it",
)
async def delete_document(document_id: str, service: DocumentServiceDep) -> DeleteResponse:
    await service.delete(document_id)
    return DeleteResponse(document_id=document_id)


# ---------------------------------------------------------------------------
# Scope endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/scopes/{scope_id}/documents",
    response_model=DocumentListResponse,
    summary="List the documents in a scope",
)
async def list_scope_documents(scope_id: str, service: DocumentServiceDep) -> DocumentListResponse:
    documents = await service.list_documents(scope_id)
    return DocumentListResponse(
        scope_id=scope_id,
        documents=[
            DocumentSummary(
                document_id=d.document_id,
                filename=d.filename,
                mime_type=d.mime_type,
                file_size=d.file_size,
                status=d.status,
                error_message=d.error_message,
                created_at=d.created_at,
                updated_at=d.updated_at,
            )
            for d in documents
        ],
    )


@router.get(
    "/scopes/{scope_id}/embeddings/status",
    response_model=EmbeddingStatusResponse,
    summary="Embedding counts for a scope and whether search is ready",
)
async def embedding_status(scope_id: str, service: DocumentServiceDep) -> EmbeddingStatusResponse:
    summary = await service.embedding_summary(scope_id)
    return EmbeddingStatusResponse(
        scope_id=summary.scope_id,
        total=summary.total,
        by_content_type={k.value: v for k, v in summary.by_content_type.items()},
        documents_ready=summary.documents_ready,
        documents_processing=summary.documents_processing,
        search_ready=summary.search_ready,
    )


@router.get(
    "/scopes/{scope_id}/sheets",
    response_model=SheetIndex,
    summary="Drawing-set order and sheet cross-references for a scope",
)
async def sheet_index(scope_id: str, service: DocumentServiceDep) -> SheetIndex:
    """Ready documents grouped by discipline in sheet order, with the sheets each one cites.

    References to sheets not uploaded to the scope are listed under
    ``unresolved_references``.
    """
    return await service.sheet_index(scope_id)


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


@router.post(
    "/search",
    response_model=SearchResponse,
    responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
    summary="Semantic search within a scope",
)
async def search(body: SearchRequest, service: DocumentServiceDep) -> SearchResponse:
    """Rank the scope's embeddings against the query.

    An empty ``results`` list is not an error; ``diagnostics.outcome`` says
    whether the scope is empty, still processing, or had no close match.
    """
    return await service.search(
        body.query,
        body.scope_id,
        content_type=body.content_type,
        limit=body.limit,
        threshold=body.threshold,
    )


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health_check(request: Request) -> HealthResponse:
    """Return application health, version, and provider availability."""
    providers: dict[str, Any] = {}
    if hasattr(request.app.state, "provider_registry"):
        providers = dict(request.app.state.provider_registry)

    service: DocumentService | None = getattr(request.app.state, "document_service", None)
    active = service.active_ingestions if service is not None else 0

    if providers.get("embedding", False) and providers.get("store", False):
        status = "healthy" if providers.get("llm", False) else "degraded"
    else:
        status = "unhealthy"

    return HealthResponse(
        status=status,
        version=_VERSION,
        providers=providers,
        active_ingestions=active,
    )
