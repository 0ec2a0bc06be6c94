"""Unit tests for EmbeddingStore -- write validation and scoped linear-scan ranking."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from plansearch.interfaces.document_store import IDocumentStore
from plansearch.models.document import BoundingBox, Chunk, ChunkingMethod
from plansearch.models.embedding import ContentType, SearchDiagnostics
from plansearch.providers.store.sqlite_document_store import SQLiteDocumentStore
from plansearch.services.retrieval.embedding_store import EmbeddingStore
from plansearch.utils.errors import StoreError
from tests.conftest import make_document, make_page

_T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _combined_metadata(scope_id: str = "scope-a", dims: int = 2, **overrides: Any) -> dict:
    data: dict[str, Any] = {
        "content_type": "combined",
        "scope_id": scope_id,
        "document_id": "doc-1",
        "page_id": "page-1",
        "page_number": 1,
        "embedding_dimensions": dims,
        "visual_element_count": 0,
    }
    data.update(overrides)
    return data


def _row(
    embedding_id: str,
    vector: Any,
    *,
    scope_id: str = "scope-a",
    created_at: datetime = _T0,
    seq: int = 1,
    metadata: Any = None,
) -> dict[str, Any]:
    """A raw row as returned by ``fetch_embedding_rows``."""
    if metadata is None:
        metadata = json.dumps(_combined_metadata(scope_id, dims=len(vector)))
    return {
        "seq": seq,
        "embedding_id": embedding_id,
        "document_id": "doc-1",
        "page_id": "page-1",
        "chunk_id": None,
        "content_type": "combined",
        "vector": vector if isinstance(vector, str) else json.dumps(vector),
        "bounding_box": None,
        "metadata": metadata,
        "content": f"content of {embedding_id}",
        "created_at": created_at.isoformat(),
    }


def _mock_store(rows: list[dict[str, Any]]) -> MagicMock:
    store = MagicMock(spec=IDocumentStore)
    store.fetch_embedding_rows = AsyncMock(return_value=rows)
    return store


async def _seed_page(
    store: SQLiteDocumentStore, document_id: str = "doc-1", scope_id: str = "scope-a"
) -> None:
    await store.create_document(make_document(document_id=document_id, scope_id=scope_id))
    await store.add_page(make_page(page_id=f"{document_id}-p1", document_id=document_id))
    await store.add_chunk(
        Chunk(
            chunk_id=f"{document_id}-c1",
            page_id=f"{document_id}-p1",
            document_id=document_id,
            content="Room 101 Lobby",
            sequence=0,
            extraction_method=ChunkingMethod.SLIDING_WINDOW,
        )
    )


async def _put_textual(
    embeddings: EmbeddingStore,
    vector: list[float],
    document_id: str = "doc-1",
    scope_id: str = "scope-a",
) -> str:
    return await embeddings.put(
        page_id=f"{document_id}-p1",
        content_type=ContentType.TEXTUAL,
        vector=vector,
        chunk_id=f"{document_id}-c1",
        content="Room 101 Lobby",
        metadata={
            "content_type": "textual",
            "scope_id": scope_id,
            "document_id": document_id,
            "page_id": f"{document_id}-p1",
            "page_number": 1,
            "embedding_dimensions": len(vector),
            "chunk_id": f"{document_id}-c1",
            "extraction_method": "sliding-window",
            "chunk_index": 0,
            "total_chunks": 1,
        },
    )


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


class TestPut:
    async def test_valid_write_persists(self, document_store: SQLiteDocumentStore) -> None:
        await _seed_page(document_store)
        embeddings = EmbeddingStore(document_store=document_store)

        embedding_id = await _put_textual(embeddings, [0.6, 0.8])

        rows = await document_store.fetch_embedding_rows()
        assert [r["embedding_id"] for r in rows] == [embedding_id]

    async def test_visual_write_keeps_bounding_box(self, document_store: SQLiteDocumentStore) -> None:
        await _seed_page(document_store)
        embeddings = EmbeddingStore(document_store=document_store)
        box = BoundingBox(x=100, y=200, width=40, height=12)

        await embeddings.put(
            page_id="doc-1-p1",
            content_type=ContentType.VISUAL,
            vector=[1.0, 0.0],
            bounding_box=box,
            metadata={
                "content_type": "visual",
                "scope_id": "scope-a",
                "document_id": "doc-1",
                "page_id": "doc-1-p1",
                "page_number": 1,
                "embedding_dimensions": 2,
                "element_type": "dimension",
                "element_index": 0,
                "confidence": 0.8,
            },
        )

        ranked = await embeddings.search([1.0, 0.0], scope_id="scope-a")
        assert ranked.hits[0].record.bounding_box == box

    @pytest.mark.parametrize("vector", [[], [0.1, float("nan")], [float("inf"), 1.0]])
    async def test_invalid_vector_rejected(
        self, document_store: SQLiteDocumentStore, vector: list[float]
    ) -> None:
        await _seed_page(document_store)
        with pytest.raises(StoreError, match="finite"):
            await _put_textual(EmbeddingStore(document_store=document_store), vector)

    async def test_configured_dimension_enforced(self, document_store: SQLiteDocumentStore) -> None:
        await _seed_page(document_store)
        embeddings = EmbeddingStore(document_store=document_store, dimension=3)
        with pytest.raises(StoreError, match="3-dimensional"):
            await _put_textual(embeddings, [0.6, 0.8])

    async def test_declared_dimensions_must_match_vector(
        self, document_store: SQLiteDocumentStore
    ) -> None:
        await _seed_page(document_store)
        embeddings = EmbeddingStore(document_store=document_store)
        with pytest.raises(StoreError, match="declares 5"):
            await embeddings.put(
                page_id="doc-1-p1",
                content_type=ContentType.COMBINED,
                vector=[0.6, 0.8],
                metadata=_combined_metadata(dims=5, page_id="doc-1-p1"),
            )

    async def test_metadata_variant_must_match_content_type(
        self, document_store: SQLiteDocumentStore
    ) -> None:
        await _seed_page(document_store)
        embeddings = EmbeddingStore(document_store=document_store)
        with pytest.raises(StoreError, match="Invalid embedding"):
            await embeddings.put(
                page_id="doc-1-p1",
                content_type=ContentType.TEXTUAL,
                chunk_id="doc-1-c1",
                vector=[0.6, 0.8],
                metadata=_combined_metadata(page_id="doc-1-p1"),
            )

    async def test_textual_without_chunk_rejected(self, document_store: SQLiteDocumentStore) -> None:
        await _seed_page(document_store)
        embeddings = EmbeddingStore(document_store=document_store)
        with pytest.raises(StoreError, match="Invalid embedding"):
            await embeddings.put(
                page_id="doc-1-p1",
                content_type=ContentType.TEXTUAL,
                vector=[0.6, 0.8],
                metadata={
                    "content_type": "textual",
                    "scope_id": "scope-a",
                    "document_id": "doc-1",
                    "page_id": "doc-1-p1",
                    "page_number": 1,
                    "embedding_dimensions": 2,
                    "chunk_id": "doc-1-c1",
                    "extraction_method": "sliding-window",
                    "chunk_index": 0,
                    "total_chunks": 1,
                },
            )

    async def test_missing_scope_rejected(self, document_store: SQLiteDocumentStore) -> None:
        await _seed_page(document_store)
        metadata = _combined_metadata(page_id="doc-1-p1")
        del metadata["scope_id"]
        with pytest.raises(StoreError):
            await EmbeddingStore(document_store=document_store).put(
                page_id="doc-1-p1",
                content_type=ContentType.COMBINED,
                vector=[0.6, 0.8],
                metadata=metadata,
            )
        assert await document_store.fetch_embedding_rows() == []


# ---------------------------------------------------------------------------
# Search against a real store
# ---------------------------------------------------------------------------


class TestSearchScoping:
    async def test_only_requested_scope_returned(self, document_store: SQLiteDocumentStore) -> None:
        await _seed_page(document_store, "doc-a", "scope-a")
        await _seed_page(document_store, "doc-b", "scope-b")
        embeddings = EmbeddingStore(document_store=document_store)
        await _put_textual(embeddings, [1.0, 0.0], "doc-a", "scope-a")
        await _put_textual(embeddings, [1.0, 0.0], "doc-b", "scope-b")

        ranked = await embeddings.search([1.0, 0.0], scope_id="scope-a")

        assert [h.record.metadata.scope_id for h in ranked.hits] == ["scope-a"]
        assert ranked.diagnostics.candidates_scanned == 2
        assert ranked.diagnostics.candidates_considered == 1

    async def test_content_type_filter(self, document_store: SQLiteDocumentStore) -> None:
        await _seed_page(document_store)
        embeddings = EmbeddingStore(document_store=document_store)
        await _put_textual(embeddings, [1.0, 0.0])

        ranked = await embeddings.search(
            [1.0, 0.0], scope_id="scope-a", content_type=ContentType.VISUAL
        )
        assert ranked.hits == []
        assert ranked.diagnostics.candidates_scanned == 0


# ---------------------------------------------------------------------------
# Ranking and diagnostics over raw rows
# ---------------------------------------------------------------------------


class TestRanking:
    async def test_sorted_by_similarity(self) -> None:
        rows = [
            _row("far", [0.0, 1.0], seq=1),
            _row("near", [1.0, 0.1], seq=2),
            _row("mid", [1.0, 1.0], seq=3),
        ]
        ranked = await EmbeddingStore(_mock_store(rows)).search([1.0, 0.0], scope_id="scope-a")

        assert [h.record.embedding_id for h in ranked.hits] == ["near", "mid", "far"]
        sims = [h.similarity for h in ranked.hits]
        assert sims == sorted(sims, reverse=True)

    async def test_threshold_filters_and_counts(self) -> None:
        rows = [_row("near", [1.0, 0.0], seq=1), _row("far", [0.0, 1.0], seq=2)]
        ranked = await EmbeddingStore(_mock_store(rows)).search(
            [1.0, 0.0], scope_id="scope-a", similarity_threshold=0.5
        )

        assert [h.record.embedding_id for h in ranked.hits] == ["near"]
        assert all(h.similarity >= 0.5 for h in ranked.hits)
        assert ranked.diagnostics.below_threshold == 1
        assert ranked.diagnostics.candidates_considered == 2

    async def test_top_k_limits_hits(self) -> None:
        rows = [_row(f"e{i}", [1.0, i / 10], seq=i) for i in range(5)]
        ranked = await EmbeddingStore(_mock_store(rows)).search(
            [1.0, 0.0], scope_id="scope-a", top_k=2
        )
        assert [h.record.embedding_id for h in ranked.hits] == ["e0", "e1"]

    async def test_ties_prefer_most_recent(self) -> None:
        rows = [
            _row("old", [1.0, 0.0], created_at=_T0, seq=1),
            _row("new", [1.0, 0.0], created_at=_T0 + timedelta(minutes=5), seq=2),
        ]
        ranked = await EmbeddingStore(_mock_store(rows)).search([1.0, 0.0], scope_id="scope-a")
        assert [h.record.embedding_id for h in ranked.hits] == ["new", "old"]

    async def test_same_timestamp_ties_prefer_later_insert(self) -> None:
        rows = [
            _row("first", [1.0, 0.0], seq=1),
            _row("second", [1.0, 0.0], seq=2),
        ]
        ranked = await EmbeddingStore(_mock_store(rows)).search([1.0, 0.0], scope_id="scope-a")
        assert [h.record.embedding_id for h in ranked.hits] == ["second", "first"]

    async def test_malformed_rows_skipped_and_counted(self) -> None:
        rows = [
            _row("good", [1.0, 0.0], seq=1),
            _row("bad-vector", "not json", seq=2),
            _row("nan-vector", "[1.0, NaN]", seq=3),
            _row("bad-metadata", [1.0, 0.0], seq=4, metadata="{broken"),
            _row("no-tag", [1.0, 0.0], seq=5, metadata=json.dumps({"scope_id": "scope-a"})),
        ]
        ranked = await EmbeddingStore(_mock_store(rows)).search([1.0, 0.0], scope_id="scope-a")

        assert [h.record.embedding_id for h in ranked.hits] == ["good"]
        assert ranked.diagnostics.skipped_malformed == 4
        assert ranked.diagnostics.candidates_scanned == 5

    async def test_dimension_mismatch_skipped_and_counted(self) -> None:
        rows = [_row("two", [1.0, 0.0], seq=1), _row("three", [1.0, 0.0, 0.0], seq=2)]
        ranked = await EmbeddingStore(_mock_store(rows)).search([1.0, 0.0], scope_id="scope-a")

        assert [h.record.embedding_id for h in ranked.hits] == ["two"]
        assert ranked.diagnostics.skipped_dimension_mismatch == 1
        assert ranked.diagnostics.candidates_considered == 1

    async def test_empty_store(self) -> None:
        ranked = await EmbeddingStore(_mock_store([])).search([1.0, 0.0], scope_id="scope-a")
        assert ranked.hits == []
        assert ranked.diagnostics == SearchDiagnostics()

    @pytest.mark.parametrize("query", [[], [float("nan")], "text"])
    async def test_invalid_query_vector(self, query: Any) -> None:
        with pytest.raises(ValueError):
            await EmbeddingStore(_mock_store([])).search(query, scope_id="scope-a")

    async def test_top_k_must_be_positive(self) -> None:
        with pytest.raises(ValueError, match="top_k"):
            await EmbeddingStore(_mock_store([])).search([1.0], scope_id="scope-a", top_k=0)
