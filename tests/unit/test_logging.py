"""Unit tests for logging setup and per-ingestion context binding."""

from __future__ import annotations

import asyncio
import logging

import pytest
import structlog

from plansearch.utils.logging import (
    MAX_VALUE_CHARS,
    _clip_long_values,
    configure_logging,
    ingestion_context,
)


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


class TestConfigureLogging:
    def test_unknown_level_rejected(self) -> None:
        with pytest.raises(ValueError, match="LOUD"):
            configure_logging(log_level="LOUD")

    def test_noisy_libraries_quieted(self) -> None:
        configure_logging(log_level="DEBUG")
        assert logging.getLogger("aiosqlite").level == logging.WARNING
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger().level == logging.DEBUG

    def test_quiet_loggers_follow_higher_level(self) -> None:
        configure_logging(log_level="ERROR")
        assert logging.getLogger("openai").level == logging.ERROR


class TestClipLongValues:
    def test_long_strings_clipped(self) -> None:
        event = {"event": "chunk_stored", "content": "x" * (MAX_VALUE_CHARS + 20), "count": 3}

        clipped = _clip_long_values(None, "info", event)

        assert clipped["content"].startswith("x" * MAX_VALUE_CHARS)
        assert clipped["content"].endswith(f"[{MAX_VALUE_CHARS + 20} chars]")
        assert clipped["count"] == 3

    def test_event_name_untouched(self) -> None:
        name = "e" * (MAX_VALUE_CHARS + 1)
        assert _clip_long_values(None, "info", {"event": name})["event"] == name


class TestIngestionContext:
    def test_binds_and_unbinds(self) -> None:
        with ingestion_context("doc-1", "scope-a"):
            assert structlog.contextvars.get_contextvars() == {
                "document_id": "doc-1",
                "scope_id": "scope-a",
            }
        assert structlog.contextvars.get_contextvars() == {}

    async def test_concurrent_ingestions_are_isolated(self) -> None:
        seen: dict[str, dict] = {}

        async def _run(document_id: str) -> None:
            with ingestion_context(document_id, "scope-a"):
                await asyncio.sleep(0)
                seen[document_id] = structlog.contextvars.get_contextvars()

        await asyncio.gather(_run("doc-1"), _run("doc-2"))

        assert seen["doc-1"]["document_id"] == "doc-1"
        assert seen["doc-2"]["document_id"] == "doc-2"
