"""Document ingestion pipeline.

Components:
    - **IngestionCoordinator** -- owns the document lifecycle and runs
      extract -> normalise -> chunk -> embed -> classify per document.
    - **SemanticChunker** -- fact extraction with a heading-aware sliding
      window fallback.
    - **FactExtractor** -- LLM prompt that rewrites page text as discrete facts.
"""

from plansearch.services.ingestion.chunker import SemanticChunker, split_sections
from plansearch.services.ingestion.coordinator import IngestionCoordinator
from plansearch.services.ingestion.fact_extractor import FactExtractor

__all__ = ["FactExtractor", "IngestionCoordinator", "SemanticChunker", "split_sections"]
