"""Integration tests for FastAPI API endpoints using TestClient."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from plansearch.api.middleware import ErrorHandlingMiddleware
from plansearch.api.routes import router as api_router
from plansearch.models.classification import (
    DisciplineSet,
    PrimaryType,
    SheetEntry,
    SheetIndex,
    Subtype,
)
from plansearch.models.document import DocumentStatus
from plansearch.models.embedding import (
    ContentType,
    EmbeddingSummary,
    SearchDiagnostics,
    SearchOutcome,
    SearchResponse,
)
from plansearch.models.ingestion import DocumentStatusReport, UploadReceipt
from plansearch.services.document_service import DocumentService
from plansearch.utils.errors import (
    DocumentNotFoundError,
    DocumentValidationError,
    EmbeddingError,
    InvalidStatusTransition,
)
from tests.conftest import make_document

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _create_test_app(registry: dict | None = None) -> tuple[FastAPI, MagicMock]:
    service = MagicMock(spec=DocumentService)
    service.upload = AsyncMock(return_value=UploadReceipt(document_id="doc-1"))
    service.get_status = AsyncMock(
        return_value=DocumentStatusReport(
            document_id="doc-1",
            scope_id="scope-a",
            filename="A-101.pdf",
            status=DocumentStatus.PROCESSING,
            page_count=4,
        )
    )
    service.list_documents = AsyncMock(return_value=[make_document(status=DocumentStatus.READY)])
    service.embedding_summary = AsyncMock(
        return_value=EmbeddingSummary(
            scope_id="scope-a",
            total=7,
            by_content_type={ContentType.TEXTUAL: 5, ContentType.COMBINED: 2},
            documents_ready=1,
        )
    )
    service.search = AsyncMock(
        return_value=SearchResponse(
            query="fire doors",
            scope_id="scope-a",
            diagnostics=SearchDiagnostics(outcome=SearchOutcome.STILL_PROCESSING, documents_processing=1),
        )
    )
    service.sheet_index = AsyncMock(
        return_value=SheetIndex(
            scope_id="scope-a",
            disciplines=[
                DisciplineSet(
                    discipline_code="A",
                    discipline_name="Architectural",
                    sheets=[
                        SheetEntry(
                            document_id="doc-1",
                            filename="A-101.pdf",
                            sheet_number="A-101",
                            title="First Floor Plan",
                            discipline_code="A",
                            primary_type=PrimaryType.ARCHITECTURAL,
                            subtype=Subtype.PLAN,
                            order_index=110_100,
                        )
                    ],
                )
            ],
        )
    )
    service.delete = AsyncMock()
    service.active_ingestions = 2

    app = FastAPI()
    app.add_middleware(ErrorHandlingMiddleware)
    app.include_router(api_router)
    app.state.document_service = service
    app.state.provider_registry = (
        registry
        if registry is not None
        else {"llm": True, "embedding": True, "store": True, "extraction": True}
    )
    return app, service


@pytest.fixture()
def test_app() -> tuple[TestClient, MagicMock]:
    app, service = _create_test_app()
    return TestClient(app), service


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------


class TestUploadEndpoint:
    def test_upload_accepted(self, test_app) -> None:
        client, service = test_app

        response = client.post(
            "/api/v1/documents",
            files={"file": ("A-101.pdf", b"%PDF-1.7 ...", "application/pdf")},
            data={"scope_id": "scope-a"},
        )

        assert response.status_code == 202
        assert response.json() == {"document_id": "doc-1", "status": "uploading"}
        service.upload.assert_awaited_once_with(
            data=b"%PDF-1.7 ...",
            filename="A-101.pdf",
            mime_type="application/pdf",
            scope_id="scope-a",
        )

    def test_upload_validation_error(self, test_app) -> None:
        client, service = test_app
        service.upload.side_effect = DocumentValidationError("Unsupported mime type 'image/png'")

        response = client.post(
            "/api/v1/documents",
            files={"file": ("photo.png", b"\x89PNG", "image/png")},
            data={"scope_id": "scope-a"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "DocumentValidationError"
        assert "image/png" in response.json()["detail"]

    def test_upload_without_scope(self, test_app) -> None:
        client, service = test_app

        response = client.post(
            "/api/v1/documents",
            files={"file": ("A-101.pdf", b"%PDF", "application/pdf")},
        )

        assert response.status_code == 422
        service.upload.assert_not_awaited()


# ---------------------------------------------------------------------------
# Status, listing, deletion
# ---------------------------------------------------------------------------


class TestDocumentEndpoints:
    def test_status(self, test_app) -> None:
        client, _ = test_app

        response = client.get("/api/v1/documents/doc-1/status")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "processing"
        assert body["is_terminal"] is False
        assert body["page_count"] == 4

    def test_status_unknown(self, test_app) -> None:
        client, service = test_app
        service.get_status.side_effect = DocumentNotFoundError("Document nope not found")

        response = client.get("/api/v1/documents/nope/status")

        assert response.status_code == 404
        assert response.json()["detail"] == "Document nope not found"

    def test_list_scope_documents(self, test_app) -> None:
        client, _ = test_app

        response = client.get("/api/v1/scopes/scope-a/documents")

        assert response.status_code == 200
        documents = response.json()["documents"]
        assert [d["document_id"] for d in documents] == ["doc-1"]
        assert documents[0]["status"] == "ready"

    def test_delete(self, test_app) -> None:
        client, service = test_app

        response = client.delete("/api/v1/documents/doc-1")

        assert response.status_code == 200
        assert response.json() == {"document_id": "doc-1", "deleted": True}
        service.delete.assert_awaited_once_with("doc-1")

    def test_conflicting_transition(self, test_app) -> None:
        client, service = test_app
        service.delete.side_effect = InvalidStatusTransition("ready to processing")

        response = client.delete("/api/v1/documents/doc-1")

        assert response.status_code == 409

    def test_embedding_status(self, test_app) -> None:
        client, _ = test_app

        response = client.get("/api/v1/scopes/scope-a/embeddings/status")

        body = response.json()
        assert body["total"] == 7
        assert body["by_content_type"] == {"textual": 5, "combined": 2}
        assert body["search_ready"] is True

    def test_sheet_index(self, test_app) -> None:
        client, service = test_app

        response = client.get("/api/v1/scopes/scope-a/sheets")

        assert response.status_code == 200
        body = response.json()
        assert body["sheet_count"] == 1
        assert body["disciplines"][0]["sheets"][0]["sheet_number"] == "A-101"
        assert body["disciplines"][0]["sheets"][0]["subtype"] == "plan"
        service.sheet_index.assert_awaited_once_with("scope-a")


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


class TestSearchEndpoint:
    def test_empty_results_carry_outcome(self, test_app) -> None:
        client, service = test_app

        response = client.post(
            "/api/v1/search",
            json={"query": "fire doors", "scope_id": "scope-a", "content_type": "textual", "limit": 5},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["results"] == []
        assert body["diagnostics"]["outcome"] == "still_processing"
        service.search.assert_awaited_once_with(
            "fire doors", "scope-a", content_type=ContentType.TEXTUAL, limit=5, threshold=None
        )

    def test_blank_query_rejected(self, test_app) -> None:
        client, service = test_app

        response = client.post("/api/v1/search", json={"query": "", "scope_id": "scope-a"})

        assert response.status_code == 422
        service.search.assert_not_awaited()

    def test_provider_failure_is_bad_gateway(self, test_app) -> None:
        client, service = test_app
        service.search.side_effect = EmbeddingError("quota exceeded", provider_name="openai_embedding")

        response = client.post("/api/v1/search", json={"query": "doors", "scope_id": "scope-a"})

        assert response.status_code == 502


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class TestHealthEndpoint:
    def test_healthy(self, test_app) -> None:
        client, _ = test_app

        body = client.get("/api/v1/health").json()

        assert body["status"] == "healthy"
        assert body["version"] == "0.1.0"
        assert body["active_ingestions"] == 2

    @pytest.mark.parametrize(
        ("registry", "expected"),
        [
            ({"llm": False, "embedding": True, "store": True}, "degraded"),
            ({"llm": True, "embedding": False, "store": True}, "unhealthy"),
            ({}, "unhealthy"),
        ],
    )
    def test_status_from_registry(self, registry: dict, expected: str) -> None:
        app, _ = _create_test_app(registry)
        assert TestClient(app).get("/api/v1/health").json()["status"] == expected
