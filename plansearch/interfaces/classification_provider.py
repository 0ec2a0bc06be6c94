"""Abstract base class for document classification providers.

A classification provider produces an unvalidated category guess from a
document's representative pages.  Enumeration checks, confidence clamping
and heuristic fallback live in
:class:`~plansearch.services.classification.classification_service.ClassificationService`,
so providers only report what their backend said.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from plansearch.models.classification import ClassificationRequest, RawClassification


# Concrete implementations: LLMClassificationProvider
# Located in: plansearch/providers/classification/
class IClassificationProvider(ABC):
    """Contract for category guesses over representative page content."""

    @abstractmethod
    async def classify(self, request: ClassificationRequest) -> RawClassification:
        """Return the backend's guess for *request*.

        Raises
        ------
        plansearch.utils.errors.ClassificationError
            If the backend call fails or its response cannot be parsed.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this classification provider."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider's backend is configured."""
