"""Custom exception hierarchy for plansearch.

All application exceptions inherit from :class:`PlanSearchError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai", "pymupdf", "sqlite") caused the failure.

The hierarchy is organized by how far an error is allowed to travel:

    PlanSearchError  (base -- catch-all for any plansearch error)
    +-- DocumentValidationError   (rejected synchronously, before ingestion)
    +-- DocumentNotFoundError     (unknown document id)
    +-- TransientExternalError    (unit-level; caught, logged, skipped)
    |   +-- ExtractionError       (one page could not be read)
    |   +-- EmbeddingError        (one embedding call failed)
    |   +-- LLMError              (completion / vision call failed)
    |   +-- ClassificationError   (classification provider failed)
    +-- PipelineFailure           (orchestration-level; document -> failed)
    |   +-- InvalidStatusTransition
    +-- StoreError                (persistence failure or rejected write)
    +-- ConfigurationError        (startup / missing config)

Unit-level errors never escalate past the ingestion coordinator.  Only a
:class:`PipelineFailure` (or an unexpected exception escaping the
orchestration) moves a document into the ``failed`` state.  A pipeline
that completed with some failed units is *degraded*, which is reported
through diagnostic counts rather than an exception.
"""


class PlanSearchError(Exception):
    """Base exception for all plansearch errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[openai_embedding] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Request validation
# ---------------------------------------------------------------------------

class DocumentValidationError(PlanSearchError):
    """Raised when an upload is rejected (bad mime type, missing scope id, empty file)."""

    def __init__(
        self,
        message: str = "Document failed validation",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class DocumentNotFoundError(PlanSearchError):
    """Raised when a document id does not exist in the store."""

    def __init__(
        self,
        message: str = "Document not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Unit-level external failures
# ---------------------------------------------------------------------------

class TransientExternalError(PlanSearchError):
    """Base for network/API failures scoped to a single unit of work.

    The ingestion coordinator catches these per page, per chunk and per
    visual element.  They degrade coverage but never abort a pipeline.
    """

    def __init__(
        self,
        message: str = "External service call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ExtractionError(TransientExternalError):
    """Raised when text or visual elements cannot be extracted from a page or file."""

    def __init__(
        self,
        message: str = "Content extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingError(TransientExternalError):
    """Raised when an embedding API call fails or returns an unusable vector."""

    def __init__(
        self,
        message: str = "Embedding generation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class LLMError(TransientExternalError):
    """Raised when an LLM API call fails or returns an unparseable response."""

    def __init__(
        self,
        message: str = "LLM API call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ClassificationError(TransientExternalError):
    """Raised when the classification provider cannot produce a guess."""

    def __init__(
        self,
        message: str = "Document classification failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Orchestration-level failures
# ---------------------------------------------------------------------------

class PipelineFailure(PlanSearchError):
    """Raised when the ingestion pipeline as a whole cannot continue.

    Any instance escaping :meth:`IngestionCoordinator.ingest` marks the
    document ``failed``.
    """

    def __init__(
        self,
        message: str = "Ingestion pipeline failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class InvalidStatusTransition(PipelineFailure):
    """Raised when a document status change would break the lifecycle order."""

    def __init__(
        self,
        message: str = "Invalid document status transition",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------

class StoreError(PlanSearchError):
    """Raised when the document store rejects a write or cannot be reached."""

    def __init__(
        self,
        message: str = "Document store operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(PlanSearchError):
    """Raised when required configuration is missing or invalid."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
