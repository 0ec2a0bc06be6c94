"""LLM-backed document classification provider.

Builds a JSON-response prompt from the representative pages, sends it to an
:class:`ILLMProvider` (with the first page image when the provider supports
vision), and parses the reply into a :class:`RawClassification`.

Parsing follows the usual LLM reply shapes: a bare JSON object, JSON
wrapped in a markdown fence, or JSON embedded in prose.  A reply with no
JSON at all is scanned for discipline and drawing keywords and returned
with a reduced confidence of 0.3.
"""

from __future__ import annotations

import asyncio
import json
import re
from pathlib import Path

import structlog

from plansearch.interfaces.classification_provider import IClassificationProvider
from plansearch.interfaces.llm_provider import ILLMProvider
from plansearch.models.classification import ClassificationRequest, RawClassification
from plansearch.utils.errors import ClassificationError, LLMError

logger = structlog.get_logger(logger_name=__name__)

_SYSTEM_PROMPT = (
    "You are an expert architectural and engineering document classifier. "
    "You answer with a single JSON object and nothing else."
)

_USER_PROMPT = """\
Analyze this construction document and classify it.

CONTEXT:
- File name: {filename}
- Pages examined: {pages}
- Text content extracted: "{excerpt}"

1. primaryType -- the main discipline:
   architectural, structural, electrical, plumbing, mechanical, civil,
   specifications, other
2. subtype -- the drawing type:
   plan, elevation, section, detail, schedule, cover, index, notes,
   specifications, other
3. sheetNumber from the title block (e.g. "A-101", "S-200") and the
   discipline letter (A, S, E, P, M, C, G)
4. titleBlockInfo: projectName, sheetTitle, drawingNumber, revisionInfo
5. detectedElements: key drawing elements (doors, beams, outlets, ...)

RESPONSE FORMAT (JSON):
{{
  "primaryType": "...",
  "subtype": "...",
  "sheetNumber": "... or null",
  "discipline": "... or null",
  "confidence": 0.0-1.0,
  "titleBlockInfo": {{}},
  "detectedElements": [],
  "drawingType": "e.g. First Floor Plan",
  "scaleFactor": "... or null",
  "reasoning": "..."
}}

If uncertain, choose the most likely option and report a lower confidence."""

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)```", re.DOTALL)
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")

# Checked in order; first hit wins.
_FALLBACK_PRIMARY = (
    ("architectural", ("architectural", "floor plan")),
    ("structural", ("structural", "beam")),
    ("electrical", ("electrical", "outlet")),
)
_FALLBACK_SUBTYPE = ("plan", "elevation", "section", "detail", "schedule", "cover")
_FALLBACK_CONFIDENCE = 0.3


class LLMClassificationProvider(IClassificationProvider):
    """Classifies documents by prompting an LLM for a JSON verdict.

    Parameters
    ----------
    llm:
        Text (and optionally vision) provider.
    """

    def __init__(self, llm: ILLMProvider) -> None:
        self._llm = llm

    async def classify(self, request: ClassificationRequest) -> RawClassification:
        prompt = _USER_PROMPT.format(
            filename=request.filename or "unknown",
            pages=", ".join(str(n) for n in request.page_numbers) or "unknown",
            excerpt=request.text_excerpt,
        )

        try:
            image_bytes = await self._load_image(request.image_ref)
            if image_bytes is not None and self._llm.supports_vision():
                reply = await self._llm.vision_extract(image_bytes, f"{_SYSTEM_PROMPT}\n\n{prompt}")
            else:
                reply = await self._llm.complete(
                    system_prompt=_SYSTEM_PROMPT,
                    user_prompt=prompt,
                    temperature=0.1,
                    max_tokens=1000,
                )
        except LLMError as exc:
            raise ClassificationError(
                message=f"Classification request failed: {exc.message}",
                provider_name=self.get_provider_name(),
            ) from exc

        return self.parse_reply(reply)

    def parse_reply(self, reply: str) -> RawClassification:
        """Turn an LLM reply into a :class:`RawClassification`.

        Raises
        ------
        ClassificationError
            If the reply is empty.
        """
        if not reply or not reply.strip():
            raise ClassificationError(
                message="Classification reply was empty",
                provider_name=self.get_provider_name(),
            )

        cleaned = reply.strip()
        fence = _FENCE_RE.search(cleaned)
        if fence:
            cleaned = fence.group(1).strip()
        match = _OBJECT_RE.search(cleaned)

        data: object = None
        if match:
            try:
                data = json.loads(match.group(0))
            except json.JSONDecodeError:
                data = None

        if not isinstance(data, dict):
            logger.warning("classification_json_parse_failed", reply_preview=reply[:200])
            return self._keyword_parse(reply)

        title_block = data.get("titleBlockInfo")
        elements = data.get("detectedElements")
        return RawClassification(
            primary_type=_as_str(data.get("primaryType")),
            subtype=_as_str(data.get("subtype")),
            sheet_number=_as_str(data.get("sheetNumber")),
            discipline=_as_str(data.get("discipline")),
            confidence=_as_float(data.get("confidence")),
            title_block_info=(
                {k: v for k, v in title_block.items() if v is not None}
                if isinstance(title_block, dict)
                else {}
            ),
            detected_elements=[str(e) for e in elements if e] if isinstance(elements, list) else [],
            drawing_type=_as_str(data.get("drawingType")),
            scale=_as_str(data.get("scaleFactor")),
            reasoning=_as_str(data.get("reasoning")) or "",
        )

    def get_provider_name(self) -> str:
        return f"llm_classifier:{self._llm.get_provider_name()}"

    def is_available(self) -> bool:
        return self._llm.is_available()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _load_image(self, image_ref: str | None) -> bytes | None:
        if not image_ref:
            return None
        path = Path(image_ref)
        if not path.is_file():
            logger.warning("classification_image_missing", image_ref=image_ref)
            return None
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            raise ClassificationError(
                message=f"Cannot read page image {image_ref}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    @staticmethod
    def _keyword_parse(reply: str) -> RawClassification:
        lowered = reply.lower()
        primary = None
        for candidate, keywords in _FALLBACK_PRIMARY:
            if any(k in lowered for k in keywords):
                primary = candidate
                break
        subtype = next((s for s in _FALLBACK_SUBTYPE if s in lowered), None)
        return RawClassification(
            primary_type=primary,
            subtype=subtype,
            confidence=_FALLBACK_CONFIDENCE,
            reasoning="Reply was not JSON; classified from reply keywords",
        )


def _as_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() in {"null", "none", "unknown"}:
        return None
    return text


def _as_float(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None
