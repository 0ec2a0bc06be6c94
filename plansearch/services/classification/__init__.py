"""Document classification with enumeration coercion and a keyword fallback,
plus the scope-level sheet index built from stored classifications."""

from plansearch.services.classification.classification_service import (
    ClassificationService,
    clamp_confidence,
    coerce_primary_type,
    coerce_subtype,
    detect_sheet_number,
)
from plansearch.services.classification.sheet_index import SheetIndexService, order_index

__all__ = [
    "ClassificationService",
    "SheetIndexService",
    "clamp_confidence",
    "coerce_primary_type",
    "coerce_subtype",
    "detect_sheet_number",
    "order_index",
]
