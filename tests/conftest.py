"""Shared pytest fixtures for the plansearch test suite."""

from __future__ import annotations

import hashlib
import math
import re
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from plansearch.interfaces.embedding_provider import IEmbeddingProvider
from plansearch.interfaces.llm_provider import ILLMProvider
from plansearch.models.document import Document, DocumentStatus, Page
from plansearch.providers.store.sqlite_document_store import SQLiteDocumentStore
from plansearch.utils.errors import EmbeddingError

_WORD_RE = re.compile(r"[a-z0-9]+")


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------


class HashEmbeddingProvider(IEmbeddingProvider):
    """Deterministic bag-of-words embeddings.

    Every lowercase word is hashed into one of ``dimension`` buckets, so
    texts that share words have a positive cosine similarity and unrelated
    texts score near zero.  Any text containing one of ``fail_on`` raises
    ``fail_with``, or :class:`EmbeddingError` when that is not given.
    """

    def __init__(
        self,
        dimension: int = 64,
        fail_on: tuple[str, ...] = (),
        fail_with: Exception | None = None,
    ) -> None:
        self._dimension = dimension
        self._fail_on = fail_on
        self._fail_with = fail_with
        self.calls: list[str] = []

    def vector_for(self, text: str) -> list[float]:
        vector = [0.0] * self._dimension
        for word in _WORD_RE.findall(text.lower()):
            digest = hashlib.md5(word.encode("utf-8")).digest()
            vector[int.from_bytes(digest[:4], "big") % self._dimension] += 1.0
        if not any(vector):
            vector[0] = 1.0
        norm = math.sqrt(sum(v * v for v in vector))
        return [v / norm for v in vector]

    async def embed(self, texts: list[str]) -> list[list[float]]:
        return [await self.embed_single(t) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        self.calls.append(text)
        if any(marker in text for marker in self._fail_on):
            if self._fail_with is not None:
                raise self._fail_with
            raise EmbeddingError(message="simulated embedding outage", provider_name="hash")
        return self.vector_for(text)

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "hash"

    def is_available(self) -> bool:
        return True


def make_mock_llm(reply: str | None = None, vision: bool = False) -> MagicMock:
    """Build a spec'd ILLMProvider mock whose ``complete`` returns *reply*."""
    llm = MagicMock(spec=ILLMProvider)
    llm.complete = AsyncMock(return_value=reply or "")
    llm.vision_extract = AsyncMock(return_value=reply or "")
    llm.supports_vision.return_value = vision
    llm.get_provider_name.return_value = "mock-llm"
    llm.is_available.return_value = True
    return llm


def make_document(**overrides: Any) -> Document:
    defaults: dict[str, Any] = {
        "document_id": "doc-1",
        "scope_id": "scope-a",
        "filename": "A-101.pdf",
        "mime_type": "application/pdf",
        "file_size": 1024,
        "status": DocumentStatus.UPLOADING,
    }
    defaults.update(overrides)
    return Document(**defaults)


def make_page(**overrides: Any) -> Page:
    defaults: dict[str, Any] = {
        "page_id": "page-1",
        "document_id": "doc-1",
        "page_number": 1,
        "text": "FLOOR PLAN\nRoom 101 Lobby",
    }
    defaults.update(overrides)
    return Page(**defaults)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def hash_embedder() -> HashEmbeddingProvider:
    return HashEmbeddingProvider()


@pytest.fixture
def mock_llm() -> MagicMock:
    return make_mock_llm()


@pytest_asyncio.fixture
async def document_store(tmp_path: Path):
    """An opened SQLite store in a temp directory, closed after the test."""
    store = SQLiteDocumentStore(db_path=tmp_path / "plansearch-test.db")
    await store.open()
    yield store
    await store.close()


@pytest.fixture
def sample_spec_text() -> str:
    """Multi-section specification text of a few thousand characters."""
    paragraphs = [
        "SECTION 03 30 00 CAST-IN-PLACE CONCRETE",
        "PART 1 GENERAL. This section covers cast-in-place concrete for footings, "
        "foundation walls, slabs on grade and elevated slabs. Work includes formwork, "
        "reinforcement, placement, finishing and curing of all structural concrete.",
        "1.1 Submittals. The contractor shall submit mix designs for each class of "
        "concrete at least 14 days before placement. Mix designs shall list cement type, "
        "aggregate gradation, admixtures and the water-cement ratio. Test reports from an "
        "independent laboratory shall accompany every mix design.",
        "1.2 Quality Assurance. Concrete shall be tested by an approved agency. One set "
        "of four cylinders shall be cast for every 50 cubic yards placed, or fraction "
        "thereof, for each class of concrete placed in any one day. Slump and air content "
        "shall be measured at the point of discharge.",
        "PART 2 PRODUCTS. Portland cement shall conform to ASTM C150 Type I or II. "
        "Normal weight aggregates shall conform to ASTM C33. Reinforcing bars shall be "
        "deformed billet steel conforming to ASTM A615 Grade 60. Welded wire "
        "reinforcement shall conform to ASTM A1064.",
        "2.1 Concrete Mixes. Footings and foundation walls shall reach 3000 psi at 28 "
        "days. Slabs on grade shall reach 4000 psi at 28 days with a maximum water-cement "
        "ratio of 0.45. Exterior flatwork shall be air entrained to between 5 and 7 "
        "percent total air content.",
        "PART 3 EXECUTION. Place concrete continuously between construction joints. "
        "Consolidate with internal vibrators. Do not add water at the site. Protect "
        "freshly placed concrete from rain, freezing and premature drying for a minimum "
        "of seven days. Finish slabs to a flatness of FF 35 and levelness of FL 25.",
    ]
    return "\n".join(paragraphs)
