"""Document classification: request, validate, normalise, persist.

The service picks a document's earliest pages (title blocks and cover
sheets come first in a drawing set), asks the classification provider for
a guess, and forces the answer into the closed :class:`PrimaryType` and
:class:`Subtype` enumerations:

1. exact enumeration value,
2. keyword substring heuristics (``"Arch."`` -> architectural,
   ``"HVAC"`` -> mechanical, ``"wall section"`` -> section),
3. fuzzy match against the enumeration values for misspellings,
4. ``other``.

If the provider is missing or fails, a keyword count over the extracted
page text produces the classification instead, with confidence 0.1 and
``source=heuristic``.  Classification never raises to its caller.
"""

from __future__ import annotations

import math
import re
import uuid
from typing import TYPE_CHECKING

import structlog

from plansearch.models.classification import (
    Classification,
    ClassificationRationale,
    ClassificationRequest,
    ClassificationSource,
    PrimaryType,
    RawClassification,
    Subtype,
)
from plansearch.utils.errors import StoreError
from plansearch.utils.text_normalizer import fuzzy_match, normalize_whitespace

if TYPE_CHECKING:
    from plansearch.interfaces.classification_provider import IClassificationProvider
    from plansearch.interfaces.document_store import IDocumentStore
    from plansearch.models.document import Page

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_CONFIDENCE = 0.5
HEURISTIC_CONFIDENCE = 0.1

# Substring -> value, checked in order.
_PRIMARY_SUBSTRINGS: tuple[tuple[str, PrimaryType], ...] = (
    ("arch", PrimaryType.ARCHITECTURAL),
    ("struct", PrimaryType.STRUCTURAL),
    ("elec", PrimaryType.ELECTRICAL),
    ("plumb", PrimaryType.PLUMBING),
    ("mech", PrimaryType.MECHANICAL),
    ("hvac", PrimaryType.MECHANICAL),
    ("civil", PrimaryType.CIVIL),
    ("site", PrimaryType.CIVIL),
    ("spec", PrimaryType.SPECIFICATIONS),
)

_SUBTYPE_SUBSTRINGS: tuple[tuple[str, Subtype], ...] = (
    ("cover", Subtype.COVER),
    ("title sheet", Subtype.COVER),
    ("index", Subtype.INDEX),
    ("sheet list", Subtype.INDEX),
    ("schedul", Subtype.SCHEDULE),
    ("elev", Subtype.ELEVATION),
    ("section", Subtype.SECTION),
    ("detail", Subtype.DETAIL),
    ("note", Subtype.NOTES),
    ("spec", Subtype.SPECIFICATIONS),
    ("plan", Subtype.PLAN),
)

# Keyword hit counts over page text, used when no provider answer exists.
_PRIMARY_KEYWORDS: dict[PrimaryType, tuple[str, ...]] = {
    PrimaryType.ARCHITECTURAL: (
        "architectural", "floor plan", "elevation", "door", "window", "room", "finish",
    ),
    PrimaryType.STRUCTURAL: (
        "structural", "beam", "column", "footing", "foundation", "rebar", "joist", "truss",
    ),
    PrimaryType.ELECTRICAL: (
        "electrical", "outlet", "panel", "circuit", "lighting", "receptacle", "conduit",
    ),
    PrimaryType.PLUMBING: (
        "plumbing", "fixture", "drain", "water heater", "sanitary", "lavatory", "water closet",
    ),
    PrimaryType.MECHANICAL: (
        "mechanical", "hvac", "duct", "air handler", "diffuser", "condenser", "exhaust fan",
    ),
    PrimaryType.CIVIL: (
        "civil", "grading", "site plan", "storm", "paving", "drainage", "survey",
    ),
    PrimaryType.SPECIFICATIONS: (
        "specification", "division", "shall be", "astm", "submittal", "warranty",
    ),
}

_SUBTYPE_KEYWORDS: dict[Subtype, tuple[str, ...]] = {
    Subtype.PLAN: ("plan",),
    Subtype.ELEVATION: ("elevation",),
    Subtype.SECTION: ("section",),
    Subtype.DETAIL: ("detail",),
    Subtype.SCHEDULE: ("schedule",),
    Subtype.COVER: ("cover sheet", "title sheet"),
    Subtype.INDEX: ("sheet index", "drawing index", "sheet list"),
    Subtype.NOTES: ("general notes", "notes"),
    Subtype.SPECIFICATIONS: ("specification",),
}

_DISCIPLINE_TO_PRIMARY: dict[str, PrimaryType] = {
    "A": PrimaryType.ARCHITECTURAL,
    "S": PrimaryType.STRUCTURAL,
    "E": PrimaryType.ELECTRICAL,
    "P": PrimaryType.PLUMBING,
    "M": PrimaryType.MECHANICAL,
    "C": PrimaryType.CIVIL,
}
_PRIMARY_TO_DISCIPLINE = {v: k for k, v in _DISCIPLINE_TO_PRIMARY.items()}

# A-101, S-200.1, E301.  Groups: letter, dashed number, undashed number.
SHEET_NUMBER_PATTERN = r"([ASEPMCG])(?:-(\d{1,3}(?:\.\d{1,2})?)|(\d{3}(?:\.\d{1,2})?))"

# Standards designations (ASTM C150) are not sheets.
_SHEET_NUMBER_RE = re.compile(r"(?<!ASTM )(?<!ACI )\b" + SHEET_NUMBER_PATTERN + r"\b")

_PRIMARY_VALUES = [p.value for p in PrimaryType]
_SUBTYPE_VALUES = [s.value for s in Subtype]


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------

def coerce_primary_type(value: str | None) -> PrimaryType:
    """Map a free-form primary type onto :class:`PrimaryType`."""
    if not value:
        return PrimaryType.OTHER
    normalized = value.strip().lower()
    if normalized in _PRIMARY_VALUES:
        return PrimaryType(normalized)
    for needle, primary in _PRIMARY_SUBSTRINGS:
        if needle in normalized:
            return primary
    match = fuzzy_match(normalized, _PRIMARY_VALUES)
    if match is not None:
        return PrimaryType(match[0])
    return PrimaryType.OTHER


def coerce_subtype(value: str | None) -> Subtype:
    """Map a free-form subtype onto :class:`Subtype`."""
    if not value:
        return Subtype.OTHER
    normalized = value.strip().lower()
    if normalized in _SUBTYPE_VALUES:
        return Subtype(normalized)
    for needle, subtype in _SUBTYPE_SUBSTRINGS:
        if needle in normalized:
            return subtype
    match = fuzzy_match(normalized, _SUBTYPE_VALUES)
    if match is not None:
        return Subtype(match[0])
    return Subtype.OTHER


def clamp_confidence(value: float | None) -> float:
    if value is None or math.isnan(value):
        return DEFAULT_CONFIDENCE
    return max(0.0, min(1.0, value))


def detect_sheet_number(text: str) -> str | None:
    """Return the first sheet number in *text*, normalised to ``X-NNN``."""
    match = _SHEET_NUMBER_RE.search(text)
    if match is None:
        return None
    return format_sheet_number(*match.groups())


def format_sheet_number(letter: str, dashed: str | None, plain: str | None) -> str:
    """Normalise the groups of :data:`SHEET_NUMBER_PATTERN` to ``X-NNN``."""
    return f"{letter.upper()}-{dashed or plain}"


def _count_hits(text: str, keywords: tuple[str, ...]) -> int:
    return sum(text.count(k) for k in keywords)


class ClassificationService:
    """Classifies a document from its earliest pages and persists the result.

    Parameters
    ----------
    document_store:
        Where classification records are written.
    provider:
        Optional classification provider.  Without one every document is
        classified by the keyword heuristic.
    max_pages:
        Number of earliest pages sent to the provider.
    excerpt_chars:
        Maximum length of the text excerpt in the provider request.
    """

    def __init__(
        self,
        document_store: IDocumentStore,
        provider: IClassificationProvider | None = None,
        max_pages: int = 3,
        excerpt_chars: int = 500,
    ) -> None:
        self._store = document_store
        self._provider = provider
        self._max_pages = max_pages
        self._excerpt_chars = excerpt_chars

    async def classify(
        self, document_id: str, pages: list[Page], filename: str = ""
    ) -> Classification:
        """Classify *document_id* from *pages* and store a new classification record."""
        representative = sorted(pages, key=lambda p: p.page_number)[: self._max_pages]
        text = normalize_whitespace("\n".join(p.text for p in representative))
        request = ClassificationRequest(
            document_id=document_id,
            filename=filename,
            page_numbers=[p.page_number for p in representative],
            text_excerpt=text[: self._excerpt_chars],
            image_ref=representative[0].image_ref if representative else None,
        )

        raw: RawClassification | None = None
        if self._provider is not None:
            try:
                raw = await self._provider.classify(request)
            except Exception as exc:  # noqa: BLE001 -- any provider failure falls back to keywords
                logger.warning(
                    "classification_provider_failed",
                    document_id=document_id,
                    provider=self._provider.get_provider_name(),
                    error=str(exc),
                    error_type=type(exc).__name__,
                )

        if raw is not None:
            classification = self._from_provider(document_id, raw, request, text)
        else:
            classification = self._from_heuristic(document_id, request, f"{filename}\n{text}")

        try:
            await self._store.add_classification(classification)
        except StoreError as exc:
            logger.warning(
                "classification_not_persisted", document_id=document_id, error=str(exc)
            )

        logger.info(
            "document_classified",
            document_id=document_id,
            primary_type=classification.primary_type.value,
            subtype=classification.subtype.value,
            confidence=classification.confidence,
            source=classification.rationale.source.value,
        )
        return classification

    # ------------------------------------------------------------------
    # Builders
    # ------------------------------------------------------------------

    def _from_provider(
        self,
        document_id: str,
        raw: RawClassification,
        request: ClassificationRequest,
        text: str,
    ) -> Classification:
        primary = coerce_primary_type(raw.primary_type)
        sheet_number = raw.sheet_number or detect_sheet_number(text)
        return Classification(
            classification_id=str(uuid.uuid4()),
            document_id=document_id,
            primary_type=primary,
            subtype=coerce_subtype(raw.subtype),
            sheet_number=sheet_number,
            discipline_code=self._discipline_code(raw.discipline, sheet_number, primary),
            confidence=clamp_confidence(raw.confidence),
            rationale=ClassificationRationale(
                source=ClassificationSource.PROVIDER,
                reasoning=raw.reasoning,
                title_block_info=raw.title_block_info,
                detected_elements=raw.detected_elements,
                drawing_type=raw.drawing_type,
                scale=raw.scale,
                raw_primary_type=raw.primary_type,
                raw_subtype=raw.subtype,
                pages_examined=request.page_numbers,
            ),
        )

    def _from_heuristic(
        self, document_id: str, request: ClassificationRequest, text: str
    ) -> Classification:
        lowered = text.lower()
        sheet_number = detect_sheet_number(text)

        primary = PrimaryType.OTHER
        best = 0
        for candidate, keywords in _PRIMARY_KEYWORDS.items():
            hits = _count_hits(lowered, keywords)
            if hits > best:
                primary, best = candidate, hits
        if primary is PrimaryType.OTHER and sheet_number:
            primary = _DISCIPLINE_TO_PRIMARY.get(sheet_number[0], PrimaryType.OTHER)

        subtype = Subtype.OTHER
        best = 0
        for candidate, keywords in _SUBTYPE_KEYWORDS.items():
            hits = _count_hits(lowered, keywords)
            if hits > best:
                subtype, best = candidate, hits

        return Classification(
            classification_id=str(uuid.uuid4()),
            document_id=document_id,
            primary_type=primary,
            subtype=subtype,
            sheet_number=sheet_number,
            discipline_code=self._discipline_code(None, sheet_number, primary),
            confidence=HEURISTIC_CONFIDENCE,
            rationale=ClassificationRationale(
                source=ClassificationSource.HEURISTIC,
                reasoning="Keyword heuristic over extracted page text",
                pages_examined=request.page_numbers,
            ),
        )

    @staticmethod
    def _discipline_code(
        raw: str | None, sheet_number: str | None, primary: PrimaryType
    ) -> str | None:
        if raw:
            letter = raw.strip()[:1].upper()
            if letter.isalpha():
                return letter
        if sheet_number:
            return sheet_number[0]
        return _PRIMARY_TO_DISCIPLINE.get(primary)
