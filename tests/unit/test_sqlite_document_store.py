"""Unit tests for SQLiteDocumentStore -- persistence, status guard and cascades."""

from __future__ import annotations

import json

import pytest

from plansearch.models.classification import (
    Classification,
    ClassificationRationale,
    ClassificationSource,
    PrimaryType,
    Subtype,
)
from plansearch.models.document import (
    BoundingBox,
    Chunk,
    ChunkingMethod,
    DocumentStatus,
    PageDimensions,
    VisualElement,
    VisualElementType,
)
from plansearch.models.embedding import ContentType, EmbeddingRecord, TextualEmbeddingMetadata
from plansearch.providers.store.sqlite_document_store import SQLiteDocumentStore
from plansearch.utils.errors import DocumentNotFoundError, InvalidStatusTransition, StoreError
from tests.conftest import make_document, make_page

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _chunk(chunk_id: str = "chunk-1", sequence: int = 0) -> Chunk:
    return Chunk(
        chunk_id=chunk_id,
        page_id="page-1",
        document_id="doc-1",
        content="Room 101 Lobby",
        sequence=sequence,
        extraction_method=ChunkingMethod.SLIDING_WINDOW,
    )


def _embedding(embedding_id: str = "emb-1", chunk_id: str = "chunk-1") -> EmbeddingRecord:
    return EmbeddingRecord(
        embedding_id=embedding_id,
        content_type=ContentType.TEXTUAL,
        chunk_id=chunk_id,
        page_id="page-1",
        vector=[0.1, 0.2, 0.3],
        metadata=TextualEmbeddingMetadata(
            scope_id="scope-a",
            document_id="doc-1",
            page_id="page-1",
            page_number=1,
            embedding_dimensions=3,
            chunk_id=chunk_id,
            extraction_method=ChunkingMethod.SLIDING_WINDOW,
            chunk_index=0,
            total_chunks=1,
        ),
        content="Room 101 Lobby",
    )


def _classification(classification_id: str, primary: PrimaryType) -> Classification:
    return Classification(
        classification_id=classification_id,
        document_id="doc-1",
        primary_type=primary,
        subtype=Subtype.PLAN,
        sheet_number="A-101",
        discipline_code="A",
        confidence=0.9,
        rationale=ClassificationRationale(
            source=ClassificationSource.PROVIDER, reasoning="title block", pages_examined=[1]
        ),
    )


async def _seed(store: SQLiteDocumentStore) -> None:
    await store.create_document(make_document())
    await store.add_page(make_page())
    await store.add_chunk(_chunk())
    await store.add_embedding(_embedding())


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    async def test_closed_store_raises(self) -> None:
        store = SQLiteDocumentStore(db_path=":memory:")
        with pytest.raises(StoreError, match="not open"):
            await store.get_document("doc-1")

    async def test_async_context_manager(self) -> None:
        async with SQLiteDocumentStore(db_path=":memory:") as store:
            await store.create_document(make_document())
            assert await store.get_document("doc-1") is not None

    async def test_open_is_idempotent(self, document_store: SQLiteDocumentStore) -> None:
        await document_store.open()
        assert await document_store.list_documents("scope-a") == []

    async def test_data_survives_reopen(self, tmp_path) -> None:
        path = tmp_path / "nested" / "store.db"
        async with SQLiteDocumentStore(db_path=path) as store:
            await store.create_document(make_document())
        async with SQLiteDocumentStore(db_path=path) as store:
            doc = await store.get_document("doc-1")
        assert doc is not None
        assert doc.filename == "A-101.pdf"


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class TestDocuments:
    async def test_round_trip(self, document_store: SQLiteDocumentStore) -> None:
        original = make_document(file_size=2048)
        await document_store.create_document(original)

        loaded = await document_store.get_document("doc-1")
        assert loaded == original

    async def test_missing_document_is_none(self, document_store: SQLiteDocumentStore) -> None:
        assert await document_store.get_document("nope") is None

    async def test_duplicate_id_rejected(self, document_store: SQLiteDocumentStore) -> None:
        await document_store.create_document(make_document())
        with pytest.raises(StoreError, match="Integrity"):
            await document_store.create_document(make_document())

    async def test_list_is_scoped(self, document_store: SQLiteDocumentStore) -> None:
        await document_store.create_document(make_document(document_id="a1", scope_id="scope-a"))
        await document_store.create_document(make_document(document_id="a2", scope_id="scope-a"))
        await document_store.create_document(make_document(document_id="b1", scope_id="scope-b"))

        ids = {d.document_id for d in await document_store.list_documents("scope-a")}
        assert ids == {"a1", "a2"}


class TestStatusTransitions:
    async def test_forward_path(self, document_store: SQLiteDocumentStore) -> None:
        await document_store.create_document(make_document())

        doc = await document_store.update_document_status("doc-1", DocumentStatus.PROCESSING)
        assert doc.status is DocumentStatus.PROCESSING
        doc = await document_store.update_document_status("doc-1", DocumentStatus.READY)
        assert doc.status is DocumentStatus.READY
        assert doc.updated_at >= doc.created_at

    async def test_failed_keeps_error_message(self, document_store: SQLiteDocumentStore) -> None:
        await document_store.create_document(make_document())
        await document_store.update_document_status("doc-1", DocumentStatus.PROCESSING)

        doc = await document_store.update_document_status(
            "doc-1", DocumentStatus.FAILED, error_message="Cannot open A-101.pdf"
        )
        assert doc.status is DocumentStatus.FAILED
        assert doc.error_message == "Cannot open A-101.pdf"

    async def test_skipping_processing_refused(self, document_store: SQLiteDocumentStore) -> None:
        await document_store.create_document(make_document())
        with pytest.raises(InvalidStatusTransition, match="uploading to ready"):
            await document_store.update_document_status("doc-1", DocumentStatus.READY)

        doc = await document_store.get_document("doc-1")
        assert doc is not None and doc.status is DocumentStatus.UPLOADING

    async def test_terminal_state_is_final(self, document_store: SQLiteDocumentStore) -> None:
        await document_store.create_document(make_document())
        await document_store.update_document_status("doc-1", DocumentStatus.PROCESSING)
        await document_store.update_document_status("doc-1", DocumentStatus.READY)

        with pytest.raises(InvalidStatusTransition):
            await document_store.update_document_status("doc-1", DocumentStatus.PROCESSING)
        with pytest.raises(InvalidStatusTransition):
            await document_store.update_document_status("doc-1", DocumentStatus.FAILED)

    async def test_unknown_document(self, document_store: SQLiteDocumentStore) -> None:
        with pytest.raises(DocumentNotFoundError):
            await document_store.update_document_status("nope", DocumentStatus.PROCESSING)

    async def test_uploading_is_never_a_target(self, document_store: SQLiteDocumentStore) -> None:
        await document_store.create_document(make_document())
        with pytest.raises(InvalidStatusTransition):
            await document_store.update_document_status("doc-1", DocumentStatus.UPLOADING)

    async def test_deleted_before_reread(
        self, document_store: SQLiteDocumentStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        await document_store.create_document(make_document())

        async def _gone(document_id: str) -> None:
            return None

        monkeypatch.setattr(document_store, "get_document", _gone)

        with pytest.raises(DocumentNotFoundError, match="doc-1"):
            await document_store.update_document_status("doc-1", DocumentStatus.PROCESSING)


# ---------------------------------------------------------------------------
# Pages, chunks and embeddings
# ---------------------------------------------------------------------------


class TestPagesAndChunks:
    async def test_page_round_trip(self, document_store: SQLiteDocumentStore) -> None:
        await document_store.create_document(make_document())
        page = make_page(
            dimensions=PageDimensions(width=2592.0, height=1728.0, dpi=150),
            visual_elements=[
                VisualElement(
                    element_type=VisualElementType.DIMENSION,
                    bounding_box=BoundingBox(x=10, y=20, width=30, height=8),
                    confidence=0.8,
                    text_content="12'-6\"",
                )
            ],
        )
        await document_store.add_page(page)

        assert await document_store.list_pages("doc-1") == [page]

    async def test_duplicate_page_number_rejected(self, document_store: SQLiteDocumentStore) -> None:
        await document_store.create_document(make_document())
        await document_store.add_page(make_page())
        with pytest.raises(StoreError):
            await document_store.add_page(make_page(page_id="page-2"))

    async def test_page_requires_document(self, document_store: SQLiteDocumentStore) -> None:
        with pytest.raises(StoreError):
            await document_store.add_page(make_page())

    async def test_chunks_listed_in_sequence(self, document_store: SQLiteDocumentStore) -> None:
        await document_store.create_document(make_document())
        await document_store.add_page(make_page())
        await document_store.add_chunk(_chunk("c2", sequence=1))
        await document_store.add_chunk(_chunk("c1", sequence=0))

        chunks = await document_store.list_chunks("page-1")
        assert [c.chunk_id for c in chunks] == ["c1", "c2"]

    async def test_counts(self, document_store: SQLiteDocumentStore) -> None:
        await _seed(document_store)
        counts = await document_store.get_document_counts("doc-1")
        assert counts == {"pages": 1, "chunks": 1, "embeddings": 1}


class TestEmbeddingRows:
    async def test_rows_are_raw_json(self, document_store: SQLiteDocumentStore) -> None:
        await _seed(document_store)

        rows = await document_store.fetch_embedding_rows()
        assert len(rows) == 1
        row = rows[0]
        assert json.loads(row["vector"]) == [0.1, 0.2, 0.3]
        assert json.loads(row["metadata"])["scope_id"] == "scope-a"
        assert row["content_type"] == "textual"
        assert row["chunk_id"] == "chunk-1"

    async def test_filter_by_content_type(self, document_store: SQLiteDocumentStore) -> None:
        await _seed(document_store)
        assert await document_store.fetch_embedding_rows(ContentType.VISUAL) == []
        assert len(await document_store.fetch_embedding_rows(ContentType.TEXTUAL)) == 1

    async def test_embedding_requires_chunk_row(self, document_store: SQLiteDocumentStore) -> None:
        await document_store.create_document(make_document())
        await document_store.add_page(make_page())
        with pytest.raises(StoreError):
            await document_store.add_embedding(_embedding(chunk_id="missing"))

    async def test_count_by_type_is_scoped(self, document_store: SQLiteDocumentStore) -> None:
        await _seed(document_store)
        assert await document_store.count_embeddings_by_type("scope-a") == {"textual": 1}
        assert await document_store.count_embeddings_by_type("scope-b") == {}


# ---------------------------------------------------------------------------
# Classifications and deletion
# ---------------------------------------------------------------------------


class TestClassifications:
    async def test_latest_wins(self, document_store: SQLiteDocumentStore) -> None:
        await document_store.create_document(make_document())
        await document_store.add_classification(_classification("c1", PrimaryType.OTHER))
        await document_store.add_classification(_classification("c2", PrimaryType.ARCHITECTURAL))

        latest = await document_store.get_latest_classification("doc-1")
        assert latest is not None
        assert latest.classification_id == "c2"
        assert latest.primary_type is PrimaryType.ARCHITECTURAL
        assert latest.rationale.pages_examined == [1]

    async def test_none_when_unclassified(self, document_store: SQLiteDocumentStore) -> None:
        await document_store.create_document(make_document())
        assert await document_store.get_latest_classification("doc-1") is None


class TestDelete:
    async def test_cascades_to_everything(self, document_store: SQLiteDocumentStore) -> None:
        await _seed(document_store)
        await document_store.add_classification(_classification("c1", PrimaryType.ARCHITECTURAL))

        assert await document_store.delete_document("doc-1") is True

        assert await document_store.get_document("doc-1") is None
        assert await document_store.list_pages("doc-1") == []
        assert await document_store.list_chunks("page-1") == []
        assert await document_store.fetch_embedding_rows() == []
        assert await document_store.get_latest_classification("doc-1") is None

    async def test_missing_returns_false(self, document_store: SQLiteDocumentStore) -> None:
        assert await document_store.delete_document("nope") is False
