"""Document lifecycle models: documents, pages, visual elements and chunks.

All models are frozen Pydantic v2 models.  State changes never mutate an
instance; the coordinator produces updated copies via
``model_copy(update={...})`` and persists them through the document store.

Lifecycle of a :class:`Document`::

    UPLOADING --> PROCESSING --> READY
                            \\-> FAILED

``READY`` and ``FAILED`` are terminal.  A failed upload is never retried in
place; uploading the file again creates a new document.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    """Timezone-aware ``datetime.now`` used for every model timestamp."""
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# DocumentStatus -- the ingestion state machine.
# ---------------------------------------------------------------------------
class DocumentStatus(str, Enum):  # noqa: UP042 -- StrEnum requires Python 3.11+
    """Processing status of an uploaded document."""

    UPLOADING = "uploading"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DocumentStatus.READY, DocumentStatus.FAILED)

    def can_transition_to(self, target: DocumentStatus) -> bool:
        """Return ``True`` if ``self -> target`` is a legal lifecycle edge."""
        return target in _ALLOWED_TRANSITIONS[self]


_ALLOWED_TRANSITIONS: dict[DocumentStatus, frozenset[DocumentStatus]] = {
    DocumentStatus.UPLOADING: frozenset({DocumentStatus.PROCESSING}),
    DocumentStatus.PROCESSING: frozenset({DocumentStatus.READY, DocumentStatus.FAILED}),
    DocumentStatus.READY: frozenset(),
    DocumentStatus.FAILED: frozenset(),
}


class Document(BaseModel):
    """An uploaded file and its ingestion status.

    ``scope_id`` is the isolation boundary (a chat or project session):
    retrieval never returns content from a different scope.
    """

    model_config = ConfigDict(frozen=True)

    document_id: str = Field(description="Unique identifier (UUID) for this document.")
    scope_id: str = Field(min_length=1, description="Isolation boundary for retrieval.")
    filename: str = Field(min_length=1)
    mime_type: str
    file_size: int = Field(default=0, ge=0, description="Upload size in bytes.")
    status: DocumentStatus = DocumentStatus.UPLOADING
    error_message: str | None = Field(
        default=None, description="Reason the pipeline failed, when status is FAILED."
    )
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


# ---------------------------------------------------------------------------
# Page geometry and visual elements
# ---------------------------------------------------------------------------
class BoundingBox(BaseModel):
    """Axis-aligned rectangle in page coordinates (points, origin top-left)."""

    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    width: float = Field(ge=0.0)
    height: float = Field(ge=0.0)


class PageDimensions(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: float = Field(ge=0.0)
    height: float = Field(ge=0.0)
    dpi: int | None = Field(default=None, ge=1)


class VisualElementType(str, Enum):  # noqa: UP042
    """Kinds of non-text content detected on a drawing sheet."""

    DIMENSION = "dimension"
    WALL = "wall"
    DOOR = "door"
    WINDOW = "window"
    ROOM = "room"
    SYMBOL = "symbol"
    TEXT_ANNOTATION = "text_annotation"
    CALLOUT = "callout"
    GRID_LINE = "grid_line"
    TABLE = "table"
    FIGURE = "figure"
    OTHER = "other"


class VisualElement(BaseModel):
    """A located visual element on a page, as reported by extraction."""

    model_config = ConfigDict(frozen=True)

    element_type: VisualElementType = VisualElementType.OTHER
    bounding_box: BoundingBox
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    text_content: str = Field(
        default="",
        description="Text inside or describing the element; used as its embedding input.",
    )


class Page(BaseModel):
    """One extracted page of a document.  Immutable once persisted."""

    model_config = ConfigDict(frozen=True)

    page_id: str
    document_id: str
    page_number: int = Field(ge=1, description="1-based page number within the document.")
    text: str = ""
    image_ref: str | None = Field(
        default=None, description="Filesystem path of the rendered page image, if any."
    )
    dimensions: PageDimensions | None = None
    visual_elements: list[VisualElement] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Chunks
# ---------------------------------------------------------------------------
class ChunkingMethod(str, Enum):  # noqa: UP042
    """How a chunk's boundaries were chosen."""

    FACT_EXTRACTION = "fact-extraction"
    SLIDING_WINDOW = "sliding-window"


class Chunk(BaseModel):
    """A bounded span of page text chosen to be independently embeddable."""

    model_config = ConfigDict(frozen=True)

    chunk_id: str
    page_id: str
    document_id: str
    content: str = Field(min_length=1)
    sequence: int = Field(ge=0, description="Reading-order position within the page.")
    extraction_method: ChunkingMethod
