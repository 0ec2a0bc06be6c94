"""Classification provider implementations.

    - LLMClassificationProvider -- JSON prompt against any ILLMProvider,
                                   vision on the first page image when the
                                   LLM supports it
"""

from plansearch.providers.classification.llm_classification_provider import (
    LLMClassificationProvider,
)

__all__ = ["LLMClassificationProvider"]
