"""PDF extraction provider built on PyMuPDF (fitz).

Per page it extracts:

- plain text (``page.get_text("text")``),
- page dimensions in points,
- visual elements with bounding boxes: embedded images, tables found by
  ``page.find_tables()`` and dimension strings in text spans,
- optionally a rendered PNG of the page for vision-based classification.

PyMuPDF is synchronous, so every call runs in a worker thread via
``asyncio.to_thread`` to keep the event loop free while large drawing
sheets are parsed.
"""

from __future__ import annotations

import asyncio
import re

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog

from plansearch.interfaces.extraction_provider import IExtractionProvider
from plansearch.models.document import BoundingBox, PageDimensions, VisualElement, VisualElementType
from plansearch.models.ingestion import ExtractedPage
from plansearch.utils.errors import ExtractionError

logger = structlog.get_logger(logger_name=__name__)

_PDF_MIME_TYPES = frozenset({"application/pdf", "application/x-pdf"})

# 12'-6", 3'-0 1/2", 2'6"
_IMPERIAL_DIMENSION_RE = re.compile(r"^\d+'\s*-?\s*\d+(?:\s+\d+/\d+)?\"?$")
# 1200, 1200mm, 3.5m -- only when the span is nothing but the number and unit
_METRIC_DIMENSION_RE = re.compile(r"^\d+(?:\.\d+)?\s*(?:mm|cm|m)$")

# PyMuPDF block types in get_text("dict") output.
_BLOCK_TYPE_TEXT = 0
_BLOCK_TYPE_IMAGE = 1


def _to_bbox(rect: tuple[float, float, float, float] | fitz.Rect) -> BoundingBox:
    x0, y0, x1, y1 = tuple(rect)
    return BoundingBox(x=x0, y=y0, width=max(0.0, x1 - x0), height=max(0.0, y1 - y0))


class PDFExtractionProvider(IExtractionProvider):
    """Extracts text, visual elements and page renders from PDF bytes.

    Parameters
    ----------
    render_images:
        Render each page to PNG.  Disable for text-only deployments.
    dpi:
        Resolution of the page render.
    """

    def __init__(self, render_images: bool = True, dpi: int = 150) -> None:
        self._render_images = render_images
        self._dpi = dpi

    def supports(self, mime_type: str) -> bool:
        return mime_type in _PDF_MIME_TYPES

    async def count_pages(self, data: bytes, mime_type: str) -> int:
        return await asyncio.to_thread(self._count_pages_sync, data)

    async def extract_page(self, data: bytes, mime_type: str, page_number: int) -> ExtractedPage:
        return await asyncio.to_thread(self._extract_page_sync, data, page_number)

    def get_provider_name(self) -> str:
        return "pymupdf"

    # ------------------------------------------------------------------
    # Synchronous PyMuPDF work
    # ------------------------------------------------------------------

    def _open(self, data: bytes) -> fitz.Document:
        try:
            return fitz.open(stream=data, filetype="pdf")
        except (fitz.FileDataError, RuntimeError, ValueError) as exc:
            raise ExtractionError(
                message=f"Cannot open PDF: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    def _count_pages_sync(self, data: bytes) -> int:
        doc = self._open(data)
        try:
            if doc.needs_pass:
                raise ExtractionError(
                    message="PDF is password protected",
                    provider_name=self.get_provider_name(),
                )
            return doc.page_count
        finally:
            doc.close()

    def _extract_page_sync(self, data: bytes, page_number: int) -> ExtractedPage:
        doc = self._open(data)
        try:
            if not 1 <= page_number <= doc.page_count:
                raise ExtractionError(
                    message=f"Page {page_number} out of range (1..{doc.page_count})",
                    provider_name=self.get_provider_name(),
                )
            try:
                page = doc[page_number - 1]
                text = page.get_text("text")
                dimensions = PageDimensions(
                    width=float(page.rect.width),
                    height=float(page.rect.height),
                    dpi=self._dpi if self._render_images else None,
                )
                elements = self._visual_elements(page)
                image_bytes = (
                    page.get_pixmap(dpi=self._dpi).tobytes("png") if self._render_images else None
                )
            except RuntimeError as exc:
                raise ExtractionError(
                    message=f"Cannot read page {page_number}: {exc}",
                    provider_name=self.get_provider_name(),
                ) from exc
        finally:
            doc.close()

        logger.debug(
            "pdf_page_extracted",
            page_number=page_number,
            chars=len(text),
            visual_elements=len(elements),
        )
        return ExtractedPage(
            page_number=page_number,
            text=text,
            dimensions=dimensions,
            visual_elements=elements,
            image_bytes=image_bytes,
        )

    def _visual_elements(self, page: fitz.Page) -> list[VisualElement]:
        elements: list[VisualElement] = []

        layout = page.get_text("dict")
        for block in layout.get("blocks", []):
            if block.get("type") == _BLOCK_TYPE_IMAGE:
                elements.append(
                    VisualElement(
                        element_type=VisualElementType.FIGURE,
                        bounding_box=_to_bbox(block["bbox"]),
                        confidence=1.0,
                    )
                )
                continue
            if block.get("type") != _BLOCK_TYPE_TEXT:
                continue
            for line in block.get("lines", []):
                for span in line.get("spans", []):
                    span_text = span.get("text", "").strip()
                    if _IMPERIAL_DIMENSION_RE.match(span_text) or _METRIC_DIMENSION_RE.match(
                        span_text
                    ):
                        elements.append(
                            VisualElement(
                                element_type=VisualElementType.DIMENSION,
                                bounding_box=_to_bbox(span["bbox"]),
                                confidence=0.8,
                                text_content=span_text,
                            )
                        )

        for table in page.find_tables().tables:
            rows = table.extract()
            cells = [" | ".join(str(cell or "").strip() for cell in row) for row in rows]
            elements.append(
                VisualElement(
                    element_type=VisualElementType.TABLE,
                    bounding_box=_to_bbox(table.bbox),
                    confidence=0.9,
                    text_content="\n".join(c for c in cells if c.strip(" |")),
                )
            )

        return elements
