"""Extraction provider implementations.

    - PDFExtractionProvider       -- PyMuPDF: text, images, tables, dimension
                                     strings and page renders
    - PlainTextExtractionProvider -- UTF-8 text, pages split on form feeds
    - CompositeExtractionProvider -- routes by mime type to the above
"""

from plansearch.providers.extraction.composite_provider import (
    CompositeExtractionProvider,
    normalize_mime_type,
)
from plansearch.providers.extraction.pdf_provider import PDFExtractionProvider
from plansearch.providers.extraction.text_provider import PlainTextExtractionProvider

__all__ = [
    "CompositeExtractionProvider",
    "PDFExtractionProvider",
    "PlainTextExtractionProvider",
    "normalize_mime_type",
]
