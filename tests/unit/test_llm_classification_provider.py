"""Unit tests for LLMClassificationProvider -- prompt routing and reply parsing."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from plansearch.models.classification import ClassificationRequest
from plansearch.providers.classification.llm_classification_provider import (
    LLMClassificationProvider,
)
from plansearch.utils.errors import ClassificationError, LLMError
from tests.conftest import make_mock_llm

_JSON_REPLY = {
    "primaryType": "architectural",
    "subtype": "plan",
    "sheetNumber": "A-101",
    "discipline": "A",
    "confidence": 0.92,
    "titleBlockInfo": {"projectName": "Harbor Clinic", "revisionInfo": None},
    "detectedElements": ["doors", "", "rooms"],
    "drawingType": "First Floor Plan",
    "scaleFactor": "1/4\" = 1'-0\"",
    "reasoning": "Title block shows A-101 FIRST FLOOR PLAN",
}


def _request(**overrides: object) -> ClassificationRequest:
    data: dict = {
        "document_id": "doc-1",
        "filename": "A-101.pdf",
        "page_numbers": [1, 2],
        "text_excerpt": "SHEET A-101 FIRST FLOOR PLAN",
    }
    data.update(overrides)
    return ClassificationRequest(**data)


class TestParseReply:
    def test_bare_json(self) -> None:
        provider = LLMClassificationProvider(llm=make_mock_llm())
        raw = provider.parse_reply(json.dumps(_JSON_REPLY))

        assert raw.primary_type == "architectural"
        assert raw.subtype == "plan"
        assert raw.sheet_number == "A-101"
        assert raw.confidence == pytest.approx(0.92)
        assert raw.title_block_info == {"projectName": "Harbor Clinic"}
        assert raw.detected_elements == ["doors", "rooms"]
        assert raw.scale == "1/4\" = 1'-0\""

    def test_fenced_json(self) -> None:
        reply = f"Here is my answer:\n```json\n{json.dumps(_JSON_REPLY)}\n```"
        raw = LLMClassificationProvider(llm=make_mock_llm()).parse_reply(reply)
        assert raw.primary_type == "architectural"

    def test_json_embedded_in_prose(self) -> None:
        reply = f"I believe this is {json.dumps(_JSON_REPLY)} based on the title block."
        raw = LLMClassificationProvider(llm=make_mock_llm()).parse_reply(reply)
        assert raw.sheet_number == "A-101"

    def test_null_like_strings_become_none(self) -> None:
        reply = json.dumps({"primaryType": "structural", "sheetNumber": "null", "discipline": "unknown"})
        raw = LLMClassificationProvider(llm=make_mock_llm()).parse_reply(reply)
        assert raw.sheet_number is None
        assert raw.discipline is None

    def test_string_confidence_parsed(self) -> None:
        raw = LLMClassificationProvider(llm=make_mock_llm()).parse_reply(
            json.dumps({"primaryType": "civil", "confidence": "0.4"})
        )
        assert raw.confidence == pytest.approx(0.4)

    def test_non_json_reply_uses_keywords(self) -> None:
        raw = LLMClassificationProvider(llm=make_mock_llm()).parse_reply(
            "This looks like a structural framing plan with beams."
        )
        assert raw.primary_type == "structural"
        assert raw.subtype == "plan"
        assert raw.confidence == pytest.approx(0.3)

    def test_empty_reply_raises(self) -> None:
        with pytest.raises(ClassificationError, match="empty"):
            LLMClassificationProvider(llm=make_mock_llm()).parse_reply("  ")


class TestClassify:
    async def test_text_prompt_without_image(self) -> None:
        llm = make_mock_llm(json.dumps(_JSON_REPLY), vision=True)
        raw = await LLMClassificationProvider(llm=llm).classify(_request())

        assert raw.primary_type == "architectural"
        llm.vision_extract.assert_not_awaited()
        prompt = llm.complete.call_args.kwargs["user_prompt"]
        assert "A-101.pdf" in prompt
        assert "SHEET A-101 FIRST FLOOR PLAN" in prompt
        assert "1, 2" in prompt

    async def test_vision_used_when_image_exists(self, tmp_path: Path) -> None:
        image = tmp_path / "page_0001.png"
        image.write_bytes(b"\x89PNG\r\n\x1a\nfake")
        llm = make_mock_llm(json.dumps(_JSON_REPLY), vision=True)

        await LLMClassificationProvider(llm=llm).classify(_request(image_ref=str(image)))

        llm.vision_extract.assert_awaited_once()
        assert llm.vision_extract.call_args.args[0] == b"\x89PNG\r\n\x1a\nfake"
        llm.complete.assert_not_awaited()

    async def test_image_ignored_without_vision_support(self, tmp_path: Path) -> None:
        image = tmp_path / "page_0001.png"
        image.write_bytes(b"\x89PNG\r\n\x1a\nfake")
        llm = make_mock_llm(json.dumps(_JSON_REPLY), vision=False)

        await LLMClassificationProvider(llm=llm).classify(_request(image_ref=str(image)))

        llm.complete.assert_awaited_once()
        llm.vision_extract.assert_not_awaited()

    async def test_missing_image_falls_back_to_text(self) -> None:
        llm = make_mock_llm(json.dumps(_JSON_REPLY), vision=True)
        await LLMClassificationProvider(llm=llm).classify(_request(image_ref="/nonexistent.png"))
        llm.complete.assert_awaited_once()

    async def test_unreadable_image_becomes_classification_error(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        image = tmp_path / "page_0001.png"
        image.write_bytes(b"\x89PNG\r\n\x1a\nfake")

        def _denied(self: Path) -> bytes:
            raise PermissionError(13, "Permission denied", str(self))

        monkeypatch.setattr(Path, "read_bytes", _denied)
        llm = make_mock_llm(json.dumps(_JSON_REPLY), vision=True)

        with pytest.raises(ClassificationError, match="Cannot read page image"):
            await LLMClassificationProvider(llm=llm).classify(_request(image_ref=str(image)))
        llm.vision_extract.assert_not_awaited()

    async def test_llm_error_becomes_classification_error(self) -> None:
        llm = make_mock_llm()
        llm.complete.side_effect = LLMError(message="rate limited", provider_name="mock-llm")

        with pytest.raises(ClassificationError, match="rate limited"):
            await LLMClassificationProvider(llm=llm).classify(_request())

    def test_provider_name_includes_llm(self) -> None:
        assert LLMClassificationProvider(llm=make_mock_llm()).get_provider_name() == (
            "llm_classifier:mock-llm"
        )
