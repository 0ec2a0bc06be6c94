"""Validated embedding writes and scoped linear-scan similarity search.

:class:`EmbeddingStore` sits between the pipeline and the persistent
document store:

- **put** validates an embedding at the write boundary (tagged-union
  metadata matching the content type, finite non-empty vector, consistent
  dimensions, chunk reference for textual embeddings) before persisting it.
- **search** reads raw rows, filters them by scope against the stored
  metadata, and ranks the survivors by cosine similarity.  Rows that cannot
  be parsed are skipped and counted instead of failing the query.

There is no vector index; every search is a full scan over the stored
embeddings of the requested content type.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from plansearch.models.document import BoundingBox
from plansearch.models.embedding import (
    EMBEDDING_METADATA_ADAPTER,
    ContentType,
    EmbeddingHit,
    EmbeddingMetadata,
    EmbeddingRecord,
    RankedEmbeddings,
    SearchDiagnostics,
)
from plansearch.utils.errors import StoreError
from plansearch.utils.similarity import cosine_similarity, is_valid_vector

if TYPE_CHECKING:
    from plansearch.interfaces.document_store import IDocumentStore

logger = structlog.get_logger(logger_name=__name__)


class EmbeddingStore:
    """Write-validated embedding persistence with scoped cosine ranking.

    Parameters
    ----------
    document_store:
        Opened persistence handle that stores the serialized rows.
    dimension:
        Expected vector length.  When set, writes of any other length are
        rejected.  ``None`` accepts any length (searches still never compare
        vectors of different lengths).
    """

    def __init__(self, document_store: IDocumentStore, dimension: int | None = None) -> None:
        self._store = document_store
        self._dimension = dimension

    @property
    def dimension(self) -> int | None:
        return self._dimension

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def put(
        self,
        *,
        page_id: str,
        content_type: ContentType,
        vector: list[float],
        metadata: EmbeddingMetadata | dict[str, Any],
        chunk_id: str | None = None,
        bounding_box: BoundingBox | None = None,
        content: str = "",
    ) -> str:
        """Validate and persist one embedding, returning its id.

        Raises
        ------
        StoreError
            If the vector, metadata or references fail validation, or the
            underlying write is rejected.
        """
        if not is_valid_vector(vector):
            raise StoreError(
                message="Embedding vector must be a non-empty list of finite numbers",
                provider_name=self.get_provider_name(),
            )
        if self._dimension is not None and len(vector) != self._dimension:
            raise StoreError(
                message=(
                    f"Embedding has {len(vector)} dimensions; "
                    f"this store holds {self._dimension}-dimensional vectors"
                ),
                provider_name=self.get_provider_name(),
            )

        try:
            parsed_metadata = (
                EMBEDDING_METADATA_ADAPTER.validate_python(metadata)
                if isinstance(metadata, dict)
                else metadata
            )
            record = EmbeddingRecord(
                embedding_id=str(uuid.uuid4()),
                content_type=content_type,
                chunk_id=chunk_id,
                page_id=page_id,
                vector=[float(v) for v in vector],
                bounding_box=bounding_box,
                metadata=parsed_metadata,
                content=content,
            )
        except ValidationError as exc:
            raise StoreError(
                message=f"Invalid embedding: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if record.metadata.embedding_dimensions != len(record.vector):
            raise StoreError(
                message=(
                    f"Metadata declares {record.metadata.embedding_dimensions} dimensions "
                    f"but the vector has {len(record.vector)}"
                ),
                provider_name=self.get_provider_name(),
            )

        return await self._store.add_embedding(record)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search(
        self,
        query_vector: list[float],
        scope_id: str,
        content_type: ContentType | None = None,
        top_k: int = 10,
        similarity_threshold: float = 0.0,
    ) -> RankedEmbeddings:
        """Rank the scope's embeddings against *query_vector*.

        Every hit has ``similarity >= similarity_threshold``.  Hits are
        sorted by similarity descending; ties go to the most recently
        created embedding, then to the later insertion.

        Raises
        ------
        ValueError
            If *query_vector* is not a valid vector or *top_k* is not positive.
        """
        if not is_valid_vector(query_vector):
            raise ValueError("Query vector must be a non-empty list of finite numbers")
        if top_k < 1:
            raise ValueError(f"top_k must be positive, got {top_k}")

        rows = await self._store.fetch_embedding_rows(content_type)

        considered = 0
        malformed = 0
        mismatched = 0
        below = 0
        scored: list[tuple[float, float, int, EmbeddingRecord]] = []

        for row in rows:
            try:
                metadata = EMBEDDING_METADATA_ADAPTER.validate_json(row["metadata"])
            except (ValidationError, TypeError, ValueError):
                malformed += 1
                logger.warning(
                    "embedding_metadata_malformed", embedding_id=row.get("embedding_id")
                )
                continue

            if metadata.scope_id != scope_id:
                continue

            vector = self._parse_vector(row.get("vector"))
            if vector is None:
                malformed += 1
                logger.warning("embedding_vector_malformed", embedding_id=row.get("embedding_id"))
                continue
            if len(vector) != len(query_vector):
                mismatched += 1
                continue

            considered += 1
            similarity = cosine_similarity(query_vector, vector)
            if similarity < similarity_threshold:
                below += 1
                continue

            try:
                record = EmbeddingRecord(
                    embedding_id=row["embedding_id"],
                    content_type=row["content_type"],
                    chunk_id=row.get("chunk_id"),
                    page_id=row["page_id"],
                    vector=vector,
                    bounding_box=(
                        BoundingBox.model_validate_json(row["bounding_box"])
                        if row.get("bounding_box")
                        else None
                    ),
                    metadata=metadata,
                    content=row.get("content") or "",
                    created_at=datetime.fromisoformat(row["created_at"]),
                )
            except (ValidationError, TypeError, ValueError, KeyError):
                malformed += 1
                logger.warning("embedding_row_malformed", embedding_id=row.get("embedding_id"))
                continue

            seq = int(row.get("seq") or 0)
            scored.append((similarity, record.created_at.timestamp(), seq, record))

        scored.sort(key=lambda item: (item[0], item[1], item[2]), reverse=True)
        hits = [EmbeddingHit(record=rec, similarity=sim) for sim, _, _, rec in scored[:top_k]]

        diagnostics = SearchDiagnostics(
            candidates_scanned=len(rows),
            candidates_considered=considered,
            skipped_malformed=malformed,
            skipped_dimension_mismatch=mismatched,
            below_threshold=below,
        )
        logger.info(
            "embedding_search",
            scope_id=scope_id,
            content_type=content_type.value if content_type else None,
            scanned=len(rows),
            considered=considered,
            hits=len(hits),
            skipped_malformed=malformed,
            skipped_dimension_mismatch=mismatched,
        )
        return RankedEmbeddings(hits=hits, diagnostics=diagnostics)

    def get_provider_name(self) -> str:
        return "embedding_store"

    @staticmethod
    def _parse_vector(raw: object) -> list[float] | None:
        if not isinstance(raw, (str, bytes)):
            return None
        try:
            vector = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return None
        if not is_valid_vector(vector):
            return None
        return [float(v) for v in vector]
