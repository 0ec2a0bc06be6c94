"""Embedding, metadata and retrieval models.

Embedding metadata is a tagged union discriminated on ``content_type``.
Every variant carries the scope id and provenance (document, page) so that
retrieval can filter and cite results without joining back to the owning
document.  The union is validated at the store's write boundary via
:data:`EMBEDDING_METADATA_ADAPTER`.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

from plansearch.models.document import BoundingBox, ChunkingMethod, VisualElementType, utc_now


class ContentType(str, Enum):  # noqa: UP042 -- StrEnum requires Python 3.11+
    """What an embedding vector represents."""

    TEXTUAL = "textual"      # one text chunk
    VISUAL = "visual"        # one located visual element
    COMBINED = "combined"    # a whole-page summary of text and visuals


# ---------------------------------------------------------------------------
# Metadata tagged union
# ---------------------------------------------------------------------------
class _EmbeddingMetadataBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    scope_id: str = Field(min_length=1)
    document_id: str = Field(min_length=1)
    page_id: str = Field(min_length=1)
    page_number: int = Field(ge=1)
    embedding_dimensions: int = Field(ge=1)


class TextualEmbeddingMetadata(_EmbeddingMetadataBase):
    content_type: Literal["textual"] = "textual"
    chunk_id: str = Field(min_length=1)
    extraction_method: ChunkingMethod
    chunk_index: int = Field(ge=0)
    total_chunks: int = Field(ge=1)


class VisualEmbeddingMetadata(_EmbeddingMetadataBase):
    content_type: Literal["visual"] = "visual"
    element_type: VisualElementType
    element_index: int = Field(ge=0)
    confidence: float = Field(ge=0.0, le=1.0)


class CombinedEmbeddingMetadata(_EmbeddingMetadataBase):
    content_type: Literal["combined"] = "combined"
    visual_element_count: int = Field(default=0, ge=0)


EmbeddingMetadata = Annotated[
    Union[TextualEmbeddingMetadata, VisualEmbeddingMetadata, CombinedEmbeddingMetadata],
    Field(discriminator="content_type"),
]

EMBEDDING_METADATA_ADAPTER = TypeAdapter(EmbeddingMetadata)


# ---------------------------------------------------------------------------
# Stored embedding
# ---------------------------------------------------------------------------
class EmbeddingRecord(BaseModel):
    """One persisted embedding.  Append-only; never updated."""

    model_config = ConfigDict(frozen=True)

    embedding_id: str
    content_type: ContentType
    chunk_id: str | None = Field(
        default=None, description="Owning chunk for textual embeddings; None for page-level ones."
    )
    page_id: str
    vector: list[float]
    bounding_box: BoundingBox | None = None
    metadata: EmbeddingMetadata
    content: str = Field(default="", description="Text that was embedded, kept for display.")
    created_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def _check_references(self) -> EmbeddingRecord:
        if self.metadata.content_type != self.content_type.value:
            msg = (
                f"metadata variant {self.metadata.content_type!r} does not match "
                f"content_type {self.content_type.value!r}"
            )
            raise ValueError(msg)
        if self.content_type is ContentType.TEXTUAL and not self.chunk_id:
            raise ValueError("textual embeddings must reference a chunk")
        if self.metadata.page_id != self.page_id:
            raise ValueError("metadata page_id does not match the referenced page")
        return self


# ---------------------------------------------------------------------------
# Retrieval results
# ---------------------------------------------------------------------------
class SearchOutcome(str, Enum):  # noqa: UP042
    """Why a search returned what it returned."""

    MATCHES = "matches"
    NO_DOCUMENTS = "no_documents"
    STILL_PROCESSING = "still_processing"
    NO_MATCH_ABOVE_THRESHOLD = "no_match_above_threshold"


class SearchDiagnostics(BaseModel):
    """Counters describing a linear-scan search.

    ``candidates_considered`` counts in-scope embeddings whose vectors were
    actually compared against the query.
    """

    model_config = ConfigDict(frozen=True)

    candidates_scanned: int = Field(default=0, ge=0, description="Rows read from the store.")
    candidates_considered: int = Field(default=0, ge=0)
    skipped_malformed: int = Field(default=0, ge=0)
    skipped_dimension_mismatch: int = Field(default=0, ge=0)
    below_threshold: int = Field(default=0, ge=0)
    documents_in_scope: int = Field(default=0, ge=0)
    documents_processing: int = Field(default=0, ge=0)
    outcome: SearchOutcome = SearchOutcome.MATCHES


class EmbeddingHit(BaseModel):
    model_config = ConfigDict(frozen=True)

    record: EmbeddingRecord
    similarity: float = Field(ge=-1.0, le=1.0)


class RankedEmbeddings(BaseModel):
    """Raw store-level search output: sorted hits plus scan counters."""

    model_config = ConfigDict(frozen=True)

    hits: list[EmbeddingHit] = Field(default_factory=list)
    diagnostics: SearchDiagnostics = Field(default_factory=SearchDiagnostics)


class SearchResult(BaseModel):
    """A ranked retrieval result with its provenance resolved for display."""

    model_config = ConfigDict(frozen=True)

    embedding_id: str
    similarity: float
    content_type: ContentType
    content: str
    document_id: str
    source_document: str = Field(description="Filename of the source document.")
    source_page: int = Field(ge=1)
    bounding_box: BoundingBox | None = None
    created_at: datetime


class SearchResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    query: str
    scope_id: str
    results: list[SearchResult] = Field(default_factory=list)
    diagnostics: SearchDiagnostics = Field(default_factory=SearchDiagnostics)


class EmbeddingSummary(BaseModel):
    """Per-scope embedding counts, used to tell clients when search is usable."""

    model_config = ConfigDict(frozen=True)

    scope_id: str
    total: int = 0
    by_content_type: dict[ContentType, int] = Field(default_factory=dict)
    documents_ready: int = 0
    documents_processing: int = 0

    @property
    def search_ready(self) -> bool:
        return self.total > 0
