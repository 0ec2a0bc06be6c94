"""plansearch domain models -- re-exports all public model classes.

Submodules by concern:
    - document.py        -- Document lifecycle, pages, visual elements, chunks
    - embedding.py       -- Embedding records, metadata union, search results
    - classification.py  -- Classification enums, provider guesses, records
    - ingestion.py       -- Chunking constraints, extraction output, reports

If you add a new model class, add it to ``__all__`` too.
"""

from __future__ import annotations

from plansearch.models.classification import (
    Classification,
    ClassificationRationale,
    ClassificationRequest,
    ClassificationSource,
    DisciplineSet,
    PrimaryType,
    RawClassification,
    SheetEntry,
    SheetIndex,
    SheetReference,
    SheetRelationType,
    SheetRelationship,
    Subtype,
)
from plansearch.models.document import (
    BoundingBox,
    Chunk,
    ChunkingMethod,
    Document,
    DocumentStatus,
    Page,
    PageDimensions,
    VisualElement,
    VisualElementType,
    utc_now,
)
from plansearch.models.embedding import (
    EMBEDDING_METADATA_ADAPTER,
    CombinedEmbeddingMetadata,
    ContentType,
    EmbeddingHit,
    EmbeddingMetadata,
    EmbeddingRecord,
    EmbeddingSummary,
    RankedEmbeddings,
    SearchDiagnostics,
    SearchOutcome,
    SearchResponse,
    SearchResult,
    TextualEmbeddingMetadata,
    VisualEmbeddingMetadata,
)
from plansearch.models.ingestion import (
    ChunkingConstraints,
    ChunkingResult,
    DocumentStatusReport,
    ExtractedPage,
    IngestionReport,
    UploadReceipt,
)

__all__ = [
    # classification
    "Classification",
    "ClassificationRationale",
    "ClassificationRequest",
    "ClassificationSource",
    "DisciplineSet",
    "PrimaryType",
    "RawClassification",
    "SheetEntry",
    "SheetIndex",
    "SheetReference",
    "SheetRelationType",
    "SheetRelationship",
    "Subtype",
    # document
    "BoundingBox",
    "Chunk",
    "ChunkingMethod",
    "Document",
    "DocumentStatus",
    "Page",
    "PageDimensions",
    "VisualElement",
    "VisualElementType",
    "utc_now",
    # embedding
    "EMBEDDING_METADATA_ADAPTER",
    "CombinedEmbeddingMetadata",
    "ContentType",
    "EmbeddingHit",
    "EmbeddingMetadata",
    "EmbeddingRecord",
    "EmbeddingSummary",
    "RankedEmbeddings",
    "SearchDiagnostics",
    "SearchOutcome",
    "SearchResponse",
    "SearchResult",
    "TextualEmbeddingMetadata",
    "VisualEmbeddingMetadata",
    # ingestion
    "ChunkingConstraints",
    "ChunkingResult",
    "DocumentStatusReport",
    "ExtractedPage",
    "IngestionReport",
    "UploadReceipt",
]
