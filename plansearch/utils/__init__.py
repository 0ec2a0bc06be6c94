"""Utility modules for plansearch.

- **errors** -- Exception hierarchy rooted at PlanSearchError; unit-level
  external failures are separated from pipeline-level failures so the
  ingestion coordinator can isolate the former.
- **concurrency** -- Semaphore-throttled ``asyncio.gather`` used for
  bounded per-page parallelism.
- **logging** -- structlog setup with a dual renderer: coloured console
  output in development, structured JSON in production.
- **similarity** -- numpy cosine similarity and stored-vector validation.
- **text_normalizer** -- Whitespace, measurement, code-reference and OCR
  term normalization applied before chunking.
"""

from plansearch.utils.concurrency import throttled_gather
from plansearch.utils.errors import (
    ClassificationError,
    ConfigurationError,
    DocumentNotFoundError,
    DocumentValidationError,
    EmbeddingError,
    ExtractionError,
    InvalidStatusTransition,
    LLMError,
    PipelineFailure,
    PlanSearchError,
    StoreError,
    TransientExternalError,
)
from plansearch.utils.logging import configure_logging, get_logger, ingestion_context
from plansearch.utils.similarity import cosine_similarity, is_valid_vector
from plansearch.utils.text_normalizer import fuzzy_match, preprocess_technical_text

__all__ = [
    "ClassificationError",
    "ConfigurationError",
    "DocumentNotFoundError",
    "DocumentValidationError",
    "EmbeddingError",
    "ExtractionError",
    "InvalidStatusTransition",
    "LLMError",
    "PipelineFailure",
    "PlanSearchError",
    "StoreError",
    "TransientExternalError",
    "configure_logging",
    "cosine_similarity",
    "fuzzy_match",
    "get_logger",
    "ingestion_context",
    "is_valid_vector",
    "preprocess_technical_text",
    "throttled_gather",
]
