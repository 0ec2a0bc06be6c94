"""Models exchanged between the ingestion pipeline and its callers."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

from plansearch.models.classification import Classification
from plansearch.models.document import (
    ChunkingMethod,
    DocumentStatus,
    PageDimensions,
    VisualElement,
)


class ChunkingConstraints(BaseModel):
    """Size bounds for the semantic chunker, in characters.

    ``min_size``/``max_size`` bound every chunk except possibly the last one
    of a section; ``floor`` is the absolute minimum below which leftover
    text is dropped.
    """

    model_config = ConfigDict(frozen=True)

    target_size: int = Field(default=800, gt=0)
    min_size: int = Field(default=150, gt=0)
    max_size: int = Field(default=1000, gt=0)
    overlap: int = Field(default=100, ge=0)
    floor: int = Field(default=50, gt=0)

    @model_validator(mode="after")
    def _check_ordering(self) -> ChunkingConstraints:
        if not self.floor <= self.min_size < self.target_size <= self.max_size:
            msg = (
                "expected floor <= min_size < target_size <= max_size, got "
                f"{self.floor}/{self.min_size}/{self.target_size}/{self.max_size}"
            )
            raise ValueError(msg)
        if self.overlap >= self.min_size:
            msg = f"overlap ({self.overlap}) must be smaller than min_size ({self.min_size})"
            raise ValueError(msg)
        return self


class ChunkingResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    method: ChunkingMethod
    chunks: list[str] = Field(default_factory=list)


class ExtractedPage(BaseModel):
    """Output of an extraction provider for one page."""

    model_config = ConfigDict(frozen=True)

    page_number: int = Field(ge=1)
    text: str = ""
    dimensions: PageDimensions | None = None
    visual_elements: list[VisualElement] = Field(default_factory=list)
    image_bytes: bytes | None = Field(
        default=None, description="Rendered page image (PNG), when the provider produces one."
    )


class IngestionReport(BaseModel):
    """Outcome of one pipeline run.

    ``degraded`` is set when the document reached READY but some pages or
    embeddings failed along the way.
    """

    model_config = ConfigDict(frozen=True)

    document_id: str
    status: DocumentStatus
    page_count: int = 0
    pages_failed: int = 0
    chunk_count: int = 0
    embedding_count: int = 0
    embeddings_failed: int = 0
    chunking_methods: dict[ChunkingMethod, int] = Field(default_factory=dict)
    classification: Classification | None = None
    error_message: str | None = None
    ingestion_time: float = Field(default=0.0, ge=0.0, description="Wall time in seconds.")

    @property
    def degraded(self) -> bool:
        return self.status is DocumentStatus.READY and (
            self.pages_failed > 0 or self.embeddings_failed > 0
        )


class UploadReceipt(BaseModel):
    model_config = ConfigDict(frozen=True)

    document_id: str
    status: DocumentStatus = DocumentStatus.UPLOADING


class DocumentStatusReport(BaseModel):
    """What a polling client sees for one document."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    scope_id: str
    filename: str
    status: DocumentStatus
    page_count: int = 0
    chunk_count: int = 0
    embedding_count: int = 0
    error_message: str | None = None
    classification: Classification | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal
