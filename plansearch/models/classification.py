"""Document classification models.

:class:`RawClassification` is whatever a classification provider returned,
loosely typed.  :class:`Classification` is the validated record the
classification service persists: primary type and subtype are members of
closed enumerations and confidence is always within ``[0, 1]``.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field

from plansearch.models.document import utc_now


class PrimaryType(str, Enum):  # noqa: UP042 -- StrEnum requires Python 3.11+
    """Drawing-set discipline of a document."""

    ARCHITECTURAL = "architectural"
    STRUCTURAL = "structural"
    ELECTRICAL = "electrical"
    PLUMBING = "plumbing"
    MECHANICAL = "mechanical"
    CIVIL = "civil"
    SPECIFICATIONS = "specifications"
    OTHER = "other"


class Subtype(str, Enum):  # noqa: UP042
    """Sheet kind within a discipline."""

    PLAN = "plan"
    ELEVATION = "elevation"
    SECTION = "section"
    DETAIL = "detail"
    SCHEDULE = "schedule"
    COVER = "cover"
    INDEX = "index"
    NOTES = "notes"
    SPECIFICATIONS = "specifications"
    OTHER = "other"


class ClassificationSource(str, Enum):  # noqa: UP042
    PROVIDER = "provider"
    HEURISTIC = "heuristic"


class ClassificationRequest(BaseModel):
    """Representative content sent to a classification provider."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    filename: str = ""
    page_numbers: list[int] = Field(default_factory=list)
    text_excerpt: str = ""
    image_ref: str | None = Field(
        default=None, description="Rendered image of the earliest page, for vision-capable providers."
    )


class RawClassification(BaseModel):
    """Unvalidated category guess returned by a classification provider."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    primary_type: str | None = None
    subtype: str | None = None
    sheet_number: str | None = None
    discipline: str | None = None
    confidence: float | None = None
    title_block_info: dict[str, Any] = Field(default_factory=dict)
    detected_elements: list[str] = Field(default_factory=list)
    drawing_type: str | None = None
    scale: str | None = None
    reasoning: str = ""


class ClassificationRationale(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: ClassificationSource
    reasoning: str = ""
    title_block_info: dict[str, Any] = Field(default_factory=dict)
    detected_elements: list[str] = Field(default_factory=list)
    drawing_type: str | None = None
    scale: str | None = None
    raw_primary_type: str | None = None
    raw_subtype: str | None = None
    pages_examined: list[int] = Field(default_factory=list)


class Classification(BaseModel):
    """A persisted classification.  The newest record per document is current."""

    model_config = ConfigDict(frozen=True)

    classification_id: str
    document_id: str
    primary_type: PrimaryType
    subtype: Subtype
    sheet_number: str | None = None
    discipline_code: str | None = Field(
        default=None, description="Single-letter discipline designator (A, S, E, P, M, C, G)."
    )
    confidence: float = Field(ge=0.0, le=1.0)
    rationale: ClassificationRationale
    created_at: datetime = Field(default_factory=utc_now)


# ---------------------------------------------------------------------------
# Sheet index
# ---------------------------------------------------------------------------


class SheetRelationType(str, Enum):  # noqa: UP042
    """How one sheet relates to another in a drawing set."""

    REFERENCES = "references"
    DETAIL_REFERENCE = "detail_reference"
    COORDINATES_WITH = "coordinates_with"
    DETAILS_FROM = "details_from"
    SECTION_OF = "section_of"


class SheetReference(BaseModel):
    """A sheet number cited in a page's text, e.g. ``SEE A-201`` or ``3/A-501``."""

    model_config = ConfigDict(frozen=True)

    from_sheet: str
    to_sheet: str
    relation_type: SheetRelationType
    page_number: int
    description: str = ""


class SheetRelationship(BaseModel):
    model_config = ConfigDict(frozen=True)

    relation_type: SheetRelationType
    source_document_id: str
    target_document_id: str
    description: str = ""
    confidence: float = Field(ge=0.0, le=1.0)


class SheetEntry(BaseModel):
    """One ready document placed in its scope's drawing set."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    filename: str
    sheet_number: str | None = None
    title: str
    discipline_code: str
    primary_type: PrimaryType
    subtype: Subtype
    order_index: int
    references: list[str] = Field(
        default_factory=list, description="Document ids this sheet cites."
    )
    referenced_by: list[str] = Field(
        default_factory=list, description="Document ids citing this sheet."
    )


class DisciplineSet(BaseModel):
    model_config = ConfigDict(frozen=True)

    discipline_code: str
    discipline_name: str
    sheets: list[SheetEntry] = Field(default_factory=list)
    relationships: list[SheetRelationship] = Field(default_factory=list)


class SheetIndex(BaseModel):
    """Drawing-set structure of a scope: sheets by discipline plus cross-references.

    ``unresolved_references`` cites sheets that are not (yet) in the scope.
    """

    model_config = ConfigDict(frozen=True)

    scope_id: str
    disciplines: list[DisciplineSet] = Field(default_factory=list)
    cross_references: list[SheetReference] = Field(default_factory=list)
    unresolved_references: list[SheetReference] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def sheet_count(self) -> int:
        return sum(len(d.sheets) for d in self.disciplines)
