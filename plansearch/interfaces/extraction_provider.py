"""Abstract base class for document content extraction.

An extraction provider turns raw uploaded bytes into per-page text plus
optional located visual elements.  Extraction is split into two calls so
the ingestion coordinator can tell a file that cannot be opened at all
(:meth:`count_pages` fails, the pipeline fails) from a single unreadable
page (:meth:`extract_page` fails, that page is skipped).
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from plansearch.models.ingestion import ExtractedPage


# Concrete implementations:
#   PDFExtractionProvider       -- PyMuPDF text, image and drawing blocks
#   PlainTextExtractionProvider -- form-feed separated pages
#   CompositeExtractionProvider -- dispatches on mime type
# Located in: plansearch/providers/extraction/
class IExtractionProvider(ABC):
    """Contract for per-page content extraction."""

    @abstractmethod
    def supports(self, mime_type: str) -> bool:
        """Return ``True`` if this provider can read *mime_type*."""

    @abstractmethod
    async def count_pages(self, data: bytes, mime_type: str) -> int:
        """Open the file and return its page count.

        Raises
        ------
        plansearch.utils.errors.ExtractionError
            If the file cannot be opened or is not of the declared type.
        """

    @abstractmethod
    async def extract_page(self, data: bytes, mime_type: str, page_number: int) -> ExtractedPage:
        """Extract text and visual elements from one 1-based page.

        Raises
        ------
        plansearch.utils.errors.ExtractionError
            If this page cannot be read.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this extraction provider."""
