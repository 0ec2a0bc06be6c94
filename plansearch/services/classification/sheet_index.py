"""Scope-level sheet index: drawing-set order and sheet cross-references.

A drawing set is read by discipline (general, architectural, structural,
...) and by sheet number within each discipline, and its sheets point at
each other: ``SEE A-201``, ``REFER TO SHEET S-301``, or a detail bubble
``3/A-501`` meaning detail 3 on sheet A-501.

:class:`SheetIndexService` rebuilds that structure on demand for one scope
from what ingestion already stored (each ready document's current
classification and its page text):

1. every ready document becomes a :class:`SheetEntry` with an order index
   (discipline priority, then sheet number, then sub-number),
2. sheet numbers cited in page text become :class:`SheetReference` objects,
3. references to a sheet present in the scope link the two documents
   (``references`` / ``referenced_by``); the rest are reported unresolved,
4. within a discipline, plans coordinate with elevations and detail and
   section sheets are tied to the plans they cut from.

Nothing is persisted; the index follows uploads and deletes automatically.
"""

from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from plansearch.models.classification import (
    DisciplineSet,
    PrimaryType,
    SheetEntry,
    SheetIndex,
    SheetReference,
    SheetRelationship,
    SheetRelationType,
    Subtype,
)
from plansearch.models.document import DocumentStatus
from plansearch.services.classification.classification_service import (
    SHEET_NUMBER_PATTERN,
    format_sheet_number,
)

if TYPE_CHECKING:
    from plansearch.interfaces.document_store import IDocumentStore
    from plansearch.models.classification import Classification
    from plansearch.models.document import Document, Page

logger = structlog.get_logger(logger_name=__name__)

DISCIPLINE_NAMES: dict[str, str] = {
    "G": "General",
    "A": "Architectural",
    "S": "Structural",
    "C": "Civil",
    "L": "Landscape",
    "E": "Electrical",
    "P": "Plumbing",
    "M": "Mechanical",
    "T": "Telecommunications",
}

# Sheet order within a set: general sheets first, then by discipline.
_DISCIPLINE_PRIORITY: dict[str, int] = {
    "G": 0,
    "A": 100_000,
    "S": 200_000,
    "C": 300_000,
    "L": 350_000,
    "E": 400_000,
    "P": 500_000,
    "M": 600_000,
    "T": 700_000,
}
_UNKNOWN_PRIORITY = 800_000
UNNUMBERED_ORDER = 999_999

_ORDER_RE = re.compile(r"^([A-Z])[-_]?(\d+)(?:\.(\d+))?")

# "SEE A-201", "REFER TO SHEET S-301", "TYP. A-501".  Keywords match in any
# case, sheet numbers only in upper case.
_EXPLICIT_RE = re.compile(
    r"\b(?i:see|refer\s+to|detail|typ\.?)\s+(?i:sheet\s+|dwg\.?\s+)?"
    + SHEET_NUMBER_PATTERN
    + r"\b"
)
# "3/A-501": detail 3 on sheet A-501.
_DETAIL_RE = re.compile(r"\b(\d{1,2})/" + SHEET_NUMBER_PATTERN + r"\b")

EXPLICIT_CONFIDENCE = 0.8
COORDINATION_CONFIDENCE = 0.6
DERIVED_CONFIDENCE = 0.5


def _discipline_sort_key(code: str) -> tuple[int, str]:
    return _DISCIPLINE_PRIORITY.get(code, _UNKNOWN_PRIORITY), code


def order_index(sheet_number: str | None) -> int:
    """Sortable position of *sheet_number* in a drawing set.

    ``G-001`` < ``A-101`` < ``A-101.2`` < ``A-201`` < ``S-101``; sheets
    without a number sort last.
    """
    if not sheet_number:
        return UNNUMBERED_ORDER
    match = _ORDER_RE.match(sheet_number.upper())
    if match is None:
        return UNNUMBERED_ORDER
    letter, main, sub = match.groups()
    base = _DISCIPLINE_PRIORITY.get(letter, _UNKNOWN_PRIORITY)
    return base + int(main) * 100 + (int(sub) if sub else 0)


def find_sheet_references(text: str, from_sheet: str, page_number: int) -> list[SheetReference]:
    """Sheet numbers cited in *text*, excluding *from_sheet* itself.  One per target and kind."""
    found: dict[tuple[str, SheetRelationType], SheetReference] = {}

    for match in _EXPLICIT_RE.finditer(text):
        target = format_sheet_number(*match.groups())
        key = (target, SheetRelationType.REFERENCES)
        if target != from_sheet and key not in found:
            found[key] = SheetReference(
                from_sheet=from_sheet,
                to_sheet=target,
                relation_type=SheetRelationType.REFERENCES,
                page_number=page_number,
                description=" ".join(match.group(0).split()),
            )

    for match in _DETAIL_RE.finditer(text):
        detail, *sheet_groups = match.groups()
        target = format_sheet_number(*sheet_groups)
        key = (target, SheetRelationType.DETAIL_REFERENCE)
        if target != from_sheet and key not in found:
            found[key] = SheetReference(
                from_sheet=from_sheet,
                to_sheet=target,
                relation_type=SheetRelationType.DETAIL_REFERENCE,
                page_number=page_number,
                description=f"Detail {detail} on sheet {target}",
            )

    return list(found.values())


@dataclass
class _Sheet:
    """Mutable entry while the index is assembled."""

    document: Document
    classification: Classification | None
    sheet_number: str | None
    title: str
    discipline_code: str
    references: list[str] = field(default_factory=list)
    referenced_by: list[str] = field(default_factory=list)

    @property
    def primary_type(self) -> PrimaryType:
        return self.classification.primary_type if self.classification else PrimaryType.OTHER

    @property
    def subtype(self) -> Subtype:
        return self.classification.subtype if self.classification else Subtype.OTHER

    def to_entry(self) -> SheetEntry:
        return SheetEntry(
            document_id=self.document.document_id,
            filename=self.document.filename,
            sheet_number=self.sheet_number,
            title=self.title,
            discipline_code=self.discipline_code,
            primary_type=self.primary_type,
            subtype=self.subtype,
            order_index=order_index(self.sheet_number),
            references=self.references,
            referenced_by=self.referenced_by,
        )


class SheetIndexService:
    """Builds the :class:`SheetIndex` of a scope from stored classifications and pages."""

    def __init__(self, document_store: IDocumentStore) -> None:
        self._store = document_store

    async def build(self, scope_id: str) -> SheetIndex:
        documents = [
            d
            for d in await self._store.list_documents(scope_id)
            if d.status is DocumentStatus.READY
        ]

        sheets: list[_Sheet] = []
        references: list[tuple[_Sheet, SheetReference]] = []
        for document in documents:
            classification = await self._store.get_latest_classification(document.document_id)
            sheet = self._make_sheet(document, classification)
            sheets.append(sheet)
            pages = await self._store.list_pages(document.document_id)
            references.extend((sheet, r) for r in self._references_in(sheet, pages))

        sheets.sort(key=lambda s: (order_index(s.sheet_number), s.document.filename))
        by_number: dict[str, _Sheet] = {}
        for sheet in sheets:
            if sheet.sheet_number:
                by_number.setdefault(sheet.sheet_number, sheet)

        relationships: dict[str, list[SheetRelationship]] = defaultdict(list)
        resolved: list[SheetReference] = []
        unresolved: list[SheetReference] = []
        for source, reference in references:
            target = by_number.get(reference.to_sheet)
            if target is None or target is source:
                unresolved.append(reference)
                continue
            resolved.append(reference)
            source_id = source.document.document_id
            target_id = target.document.document_id
            if target_id not in source.references:
                source.references.append(target_id)
            if source_id not in target.referenced_by:
                target.referenced_by.append(source_id)
            relationships[source.discipline_code].append(
                SheetRelationship(
                    relation_type=reference.relation_type,
                    source_document_id=source_id,
                    target_document_id=target_id,
                    description=reference.description,
                    confidence=EXPLICIT_CONFIDENCE,
                )
            )

        grouped: dict[str, list[_Sheet]] = defaultdict(list)
        for sheet in sheets:
            grouped[sheet.discipline_code].append(sheet)
        for code, members in grouped.items():
            relationships[code].extend(self._implicit_relationships(members))

        disciplines = [
            DisciplineSet(
                discipline_code=code,
                discipline_name=DISCIPLINE_NAMES.get(code, "Other"),
                sheets=[s.to_entry() for s in grouped[code]],
                relationships=relationships[code],
            )
            for code in sorted(grouped, key=_discipline_sort_key)
        ]

        logger.info(
            "sheet_index_built",
            scope_id=scope_id,
            sheets=len(sheets),
            disciplines=len(disciplines),
            cross_references=len(resolved),
            unresolved=len(unresolved),
        )
        return SheetIndex(
            scope_id=scope_id,
            disciplines=disciplines,
            cross_references=resolved,
            unresolved_references=unresolved,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _make_sheet(document: Document, classification: Classification | None) -> _Sheet:
        sheet_number = classification.sheet_number if classification else None
        if sheet_number:
            code = sheet_number[0].upper()
        elif classification and classification.discipline_code:
            code = classification.discipline_code.upper()
        else:
            code = "G"

        title = document.filename
        if classification:
            info = classification.rationale.title_block_info
            title = str(info.get("sheetTitle") or classification.rationale.drawing_type or title)
        return _Sheet(
            document=document,
            classification=classification,
            sheet_number=sheet_number,
            title=title,
            discipline_code=code,
        )

    @staticmethod
    def _label(sheet: _Sheet) -> str:
        return sheet.sheet_number or sheet.document.filename

    def _references_in(self, sheet: _Sheet, pages: list[Page]) -> list[SheetReference]:
        label = self._label(sheet)
        seen: set[tuple[str, SheetRelationType]] = set()
        found: list[SheetReference] = []
        for page in sorted(pages, key=lambda p: p.page_number):
            for reference in find_sheet_references(page.text, label, page.page_number):
                key = (reference.to_sheet, reference.relation_type)
                if key not in seen:
                    seen.add(key)
                    found.append(reference)
        return found

    @staticmethod
    def _implicit_relationships(sheets: list[_Sheet]) -> list[SheetRelationship]:
        by_subtype: dict[Subtype, list[_Sheet]] = defaultdict(list)
        for sheet in sheets:
            by_subtype[sheet.subtype].append(sheet)
        plans = by_subtype[Subtype.PLAN]

        derived = (
            (SheetRelationType.DETAILS_FROM, Subtype.DETAIL, "shows details from"),
            (SheetRelationType.SECTION_OF, Subtype.SECTION, "cuts through"),
        )
        relationships = [
            SheetRelationship(
                relation_type=SheetRelationType.COORDINATES_WITH,
                source_document_id=plan.document.document_id,
                target_document_id=elevation.document.document_id,
                description=f"{plan.title} coordinates with {elevation.title}",
                confidence=COORDINATION_CONFIDENCE,
            )
            for plan in plans
            for elevation in by_subtype[Subtype.ELEVATION]
        ]
        for relation_type, subtype, verb in derived:
            relationships.extend(
                SheetRelationship(
                    relation_type=relation_type,
                    source_document_id=sheet.document.document_id,
                    target_document_id=plan.document.document_id,
                    description=f"{sheet.title} {verb} {plan.title}",
                    confidence=DERIVED_CONFIDENCE,
                )
                for sheet in by_subtype[subtype]
                for plan in plans
            )
        return relationships
