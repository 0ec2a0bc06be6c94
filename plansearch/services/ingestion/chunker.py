"""Semantic chunking of page text into bounded, embeddable pieces.

Two strategies sit behind one :meth:`SemanticChunker.chunk` call:

1. **Fact extraction** -- an LLM rewrites the text as discrete factual
   statements and each statement becomes a chunk.  Facts longer than
   ``max_size`` are windowed.  Any LLM failure, or a response with no
   usable facts, falls through to strategy two.

2. **Sliding window** -- deterministic.  The text is split at heading
   markers found at the start of a line (chapter/section keywords,
   drawing-sheet keywords, numbered code sections such as ``101.1 Scope``).
   Pieces longer than ``max_size`` are cut into ``target_size`` windows
   that overlap by ``overlap`` characters and break at the last sentence
   end or newline past ``min_size``.  Pieces shorter than ``min_size`` are
   merged into the preceding chunk when the result still fits in
   ``max_size``; a short leading piece is carried into the next one.
   Anything still shorter than ``floor`` is dropped.

Chunks always come out in reading order.  Every sliding-window chunk is
within ``[min_size, max_size]`` except possibly the last chunk of a
section.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

import structlog

from plansearch.models.document import ChunkingMethod
from plansearch.models.ingestion import ChunkingConstraints, ChunkingResult
from plansearch.utils.errors import LLMError

if TYPE_CHECKING:
    from plansearch.services.ingestion.fact_extractor import FactExtractor

logger = structlog.get_logger(logger_name=__name__)

# Abbreviations whose trailing period must not end a sentence.
_ABBREVIATIONS = (
    "No",
    "Nos",
    "Sec",
    "Fig",
    "Dwg",
    "Typ",
    "Min",
    "Max",
    "Approx",
    "Dia",
    "Ref",
    "Rev",
    "Dr",
    "Mr",
    "Mrs",
    "Ms",
    "St",
    "Ave",
    "Blvd",
    "ft",
    "in",
    "vs",
    "etc",
)
_ABBREVIATION_RE = re.compile(r"\b(" + "|".join(_ABBREVIATIONS) + r")\.", re.IGNORECASE)

_SENTENCE_BREAK_RE = re.compile(r"[.!?](?=\s)|\n")

_HEADING_RE = re.compile(
    r"^[ \t]*(?:"
    r"(?:chapter|section|part|article)\b"
    r"|(?:property|address|project|room|floor|plan|elevation|detail|schedule|notes"
    r"|drawing|scale|dimension|specification|material|code|area)s?\b"
    r"|(?-i:\d+(?:\.\d+)*\.?[ \t]+[A-Z][A-Za-z])"
    r")",
    re.IGNORECASE | re.MULTILINE,
)


def _mask_abbreviations(text: str) -> str:
    """Replace abbreviation periods with ``\\x00``.  Length is unchanged."""
    return _ABBREVIATION_RE.sub(lambda m: m.group(1) + "\x00", text)


def split_sections(text: str) -> list[str]:
    """Split *text* before every heading line.  Text before the first heading is kept."""
    starts = [m.start() for m in _HEADING_RE.finditer(text)]
    bounds = [0, *[s for s in starts if s > 0], len(text)]
    sections = [text[a:b].strip() for a, b in zip(bounds, bounds[1:])]
    return [s for s in sections if s]


class SemanticChunker:
    """Splits page text into chunks using fact extraction with a sliding-window fallback.

    Parameters
    ----------
    fact_extractor:
        Optional LLM-backed fact extractor.  Without one, every call uses
        the sliding window.
    constraints:
        Default size bounds, overridable per call.
    """

    def __init__(
        self,
        fact_extractor: FactExtractor | None = None,
        constraints: ChunkingConstraints | None = None,
    ) -> None:
        self._fact_extractor = fact_extractor
        self._constraints = constraints or ChunkingConstraints()

    @property
    def constraints(self) -> ChunkingConstraints:
        return self._constraints

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def chunk(
        self, text: str, constraints: ChunkingConstraints | None = None
    ) -> ChunkingResult:
        """Chunk *text*, preferring fact extraction when an extractor is configured."""
        limits = constraints or self._constraints
        if not text or not text.strip():
            return ChunkingResult(method=ChunkingMethod.SLIDING_WINDOW, chunks=[])

        if self._fact_extractor is not None:
            try:
                facts = await self._fact_extractor.extract(text)
            except LLMError as exc:
                logger.info("fact_extraction_fallback", reason=str(exc))
            else:
                chunks: list[str] = []
                for fact in facts:
                    if len(fact) > limits.max_size:
                        chunks.extend(self._window(fact, limits))
                    else:
                        chunks.append(fact)
                logger.debug("chunking_complete", method="fact-extraction", chunks=len(chunks))
                return ChunkingResult(method=ChunkingMethod.FACT_EXTRACTION, chunks=chunks)

        chunks = self.sliding_window(text, limits)
        logger.debug("chunking_complete", method="sliding-window", chunks=len(chunks))
        return ChunkingResult(method=ChunkingMethod.SLIDING_WINDOW, chunks=chunks)

    def sliding_window(
        self, text: str, constraints: ChunkingConstraints | None = None
    ) -> list[str]:
        """Deterministic heading-aware windowing of *text*."""
        limits = constraints or self._constraints
        stripped = text.strip()
        if not stripped:
            return []

        chunks: list[str] = []
        carry = ""
        for section in split_sections(stripped):
            if carry:
                section = f"{carry}\n{section}"
                carry = ""

            if len(section) < limits.min_size:
                if chunks and len(chunks[-1]) + 1 + len(section) <= limits.max_size:
                    chunks[-1] = f"{chunks[-1]}\n{section}"
                else:
                    carry = section
                continue

            chunks.extend(self._window(section, limits))

        if carry:
            if chunks and len(chunks[-1]) + 1 + len(carry) <= limits.max_size:
                chunks[-1] = f"{chunks[-1]}\n{carry}"
            else:
                chunks.append(carry)

        kept = [c for c in chunks if len(c) >= limits.floor]
        # A page is never reduced to nothing just for being short.
        if not kept and len(chunks) == 1:
            kept = chunks
        return kept

    # ------------------------------------------------------------------
    # Windowing
    # ------------------------------------------------------------------

    def _window(self, text: str, limits: ChunkingConstraints) -> list[str]:
        """Cut *text* into overlapping windows that prefer sentence or line breaks."""
        text = text.strip()
        if len(text) <= limits.max_size:
            return [text]

        masked = _mask_abbreviations(text)
        windows: list[str] = []
        start = 0
        length = len(text)
        while start < length:
            if length - start <= limits.max_size:
                windows.append(text[start:].strip())
                break

            end = start + limits.target_size
            breakpoint_ = self._last_break(masked, start + limits.min_size + 1, end)
            if breakpoint_ is not None:
                end = breakpoint_
            windows.append(text[start:end].strip())

            next_start = max(end - limits.overlap, start + limits.min_size)
            # Do not start a window in the middle of a word.
            if next_start < end and not text[next_start - 1].isspace():
                space = text.find(" ", next_start, end)
                if space != -1:
                    next_start = space + 1
            start = next_start

        return [w for w in windows if w]

    @staticmethod
    def _last_break(masked: str, lo: int, hi: int) -> int | None:
        """Return the index just past the last sentence end or newline in ``[lo, hi)``."""
        best = None
        for match in _SENTENCE_BREAK_RE.finditer(masked, lo, hi):
            best = match.end()
        return best
