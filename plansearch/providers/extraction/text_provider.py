"""Plain-text extraction provider.

Pages are separated by form feeds (``\\f``), the convention used by
``pdftotext`` and most text exports of drawing sets.  A file without form
feeds is a single page.
"""

from __future__ import annotations

from plansearch.interfaces.extraction_provider import IExtractionProvider
from plansearch.models.ingestion import ExtractedPage
from plansearch.utils.errors import ExtractionError

_TEXT_MIME_TYPES = frozenset({"text/plain", "text/markdown"})


class PlainTextExtractionProvider(IExtractionProvider):
    """Splits UTF-8 text into form-feed delimited pages."""

    def supports(self, mime_type: str) -> bool:
        return mime_type in _TEXT_MIME_TYPES

    async def count_pages(self, data: bytes, mime_type: str) -> int:
        return len(self._pages(data))

    async def extract_page(self, data: bytes, mime_type: str, page_number: int) -> ExtractedPage:
        pages = self._pages(data)
        if not 1 <= page_number <= len(pages):
            raise ExtractionError(
                message=f"Page {page_number} out of range (1..{len(pages)})",
                provider_name=self.get_provider_name(),
            )
        return ExtractedPage(page_number=page_number, text=pages[page_number - 1])

    def get_provider_name(self) -> str:
        return "plain_text"

    def _pages(self, data: bytes) -> list[str]:
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ExtractionError(
                message=f"File is not valid UTF-8 text: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        if not text.strip():
            return []
        return text.split("\f")
