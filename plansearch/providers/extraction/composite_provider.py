"""Extraction provider that dispatches to the first adapter supporting a mime type."""

from __future__ import annotations

import structlog

from plansearch.interfaces.extraction_provider import IExtractionProvider
from plansearch.models.ingestion import ExtractedPage
from plansearch.utils.errors import ExtractionError

logger = structlog.get_logger(logger_name=__name__)


def normalize_mime_type(mime_type: str) -> str:
    """``"Text/Plain; charset=utf-8"`` -> ``"text/plain"``."""
    return mime_type.split(";", 1)[0].strip().lower()


class CompositeExtractionProvider(IExtractionProvider):
    """Routes each call to the first provider whose ``supports`` accepts the mime type."""

    def __init__(self, providers: list[IExtractionProvider]) -> None:
        self._providers = providers

    def supports(self, mime_type: str) -> bool:
        mime = normalize_mime_type(mime_type)
        return any(p.supports(mime) for p in self._providers)

    async def count_pages(self, data: bytes, mime_type: str) -> int:
        mime = normalize_mime_type(mime_type)
        return await self._select(mime).count_pages(data, mime)

    async def extract_page(self, data: bytes, mime_type: str, page_number: int) -> ExtractedPage:
        mime = normalize_mime_type(mime_type)
        return await self._select(mime).extract_page(data, mime, page_number)

    def get_provider_name(self) -> str:
        return "composite[" + ",".join(p.get_provider_name() for p in self._providers) + "]"

    def _select(self, mime_type: str) -> IExtractionProvider:
        for provider in self._providers:
            if provider.supports(mime_type):
                return provider
        logger.warning("extraction_unsupported_mime_type", mime_type=mime_type)
        raise ExtractionError(
            message=f"No extraction provider for mime type {mime_type!r}",
            provider_name=self.get_provider_name(),
        )
