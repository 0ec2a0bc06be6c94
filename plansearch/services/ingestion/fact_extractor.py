"""LLM-powered fact extraction for the primary chunking strategy.

Uses an :class:`~plansearch.interfaces.llm_provider.ILLMProvider` to
rewrite a page of drawing or specification text as discrete, searchable
factual statements, one per line.  Each statement later becomes one chunk.

The extraction flow:
1. The page text is sent to the LLM with a fact extraction prompt
2. The LLM returns plain text, one fact per line
3. Numbering and bullet markers are stripped and short lines dropped
4. An empty or unusable response raises :class:`LLMError` so the chunker
   can fall back to the deterministic sliding window
"""

from __future__ import annotations

import asyncio
import re
from typing import TYPE_CHECKING

import structlog

from plansearch.utils.errors import LLMError

if TYPE_CHECKING:
    from plansearch.interfaces.llm_provider import ILLMProvider

logger = structlog.get_logger(logger_name=__name__)

_EXTRACTION_SYSTEM_PROMPT = (
    "You are a document analysis assistant specializing in architectural "
    "drawings, construction documents and building codes."
)

_EXTRACTION_USER_PROMPT = """\
Extract specific, detailed information from this document text. Instead of
generic summaries, identify concrete facts that would be useful for
answering specific questions.

Focus on:
- Addresses, locations and property details
- Exact measurements, dimensions, areas and square footage
- Room names, spaces and their specifications
- Material specifications and building components
- Code references and compliance information
- Project details, dates, names and titles
- Technical specifications and requirements

Write one complete, self-contained fact per line.  Do not add headings,
commentary or JSON.

Document text:
{text}"""

# Leading "1.", "2)", "-", "*", "•" and similar list markers.
_LIST_MARKER_RE = re.compile(r"^(?:\d+[.)]|[-*+•◦⦁])\s*")
# Lines that are clearly not facts (section labels the model adds anyway).
_PREAMBLE_RE = re.compile(r"^(?:here (?:are|is)|facts?:|key facts|extracted facts)", re.IGNORECASE)

_MIN_RESPONSE_CHARS = 10
_MAX_INPUT_CHARS = 12000


class FactExtractor:
    """Turns page text into a list of factual statements using an LLM.

    Parameters
    ----------
    llm:
        The LLM provider used for extraction prompts (injected, swappable).
    min_fact_length:
        Facts shorter than this many characters are discarded (default 30).
    max_concurrent:
        Maximum number of concurrent LLM calls across pages.
    """

    def __init__(
        self,
        llm: ILLMProvider,
        min_fact_length: int = 30,
        max_concurrent: int = 4,
    ) -> None:
        self._llm = llm
        self._min_fact_length = min_fact_length
        self._semaphore = asyncio.Semaphore(max_concurrent)

    @property
    def provider_name(self) -> str:
        return self._llm.get_provider_name()

    async def extract(self, text: str) -> list[str]:
        """Return the facts stated in *text*, in the order the model listed them.

        Raises
        ------
        LLMError
            If the provider fails or the response contains no usable facts.
        """
        async with self._semaphore:
            response = await self._llm.complete(
                system_prompt=_EXTRACTION_SYSTEM_PROMPT,
                user_prompt=_EXTRACTION_USER_PROMPT.format(text=text[:_MAX_INPUT_CHARS]),
                temperature=0.1,
                max_tokens=2000,
            )

        if not response or len(response.strip()) < _MIN_RESPONSE_CHARS:
            raise LLMError(
                message="Fact extraction returned an empty response",
                provider_name=self.provider_name,
            )

        facts = self.parse_facts(response)
        if not facts:
            logger.warning("fact_extraction_unusable", response_preview=response[:200])
            raise LLMError(
                message="Fact extraction response contained no usable facts",
                provider_name=self.provider_name,
            )

        logger.debug("facts_extracted", count=len(facts))
        return facts

    def parse_facts(self, response: str) -> list[str]:
        """Split a model response into cleaned fact lines.

        A response that looks like JSON or a code fence is treated as
        malformed and yields no facts.
        """
        stripped = response.strip()
        if stripped.startswith(("{", "[", "```")):
            return []

        facts: list[str] = []
        for line in stripped.splitlines():
            fact = _LIST_MARKER_RE.sub("", line.strip()).strip()
            if not fact or _PREAMBLE_RE.match(fact):
                continue
            if len(fact) < self._min_fact_length:
                continue
            facts.append(fact)
        return facts
