"""Abstract interfaces for every external collaborator.

The core pipeline depends only on these ABCs.  Concrete adapters live in
``plansearch/providers/`` and are selected in ``plansearch/main.py``.

    Interface                 Adapters
    ------------------------  ----------------------------------------------
    IEmbeddingProvider        OpenAIEmbeddingProvider, NomicEmbeddingProvider
    ILLMProvider              AnthropicLLMProvider, OpenAILLMProvider,
                              OllamaLLMProvider
    IExtractionProvider       PDFExtractionProvider,
                              PlainTextExtractionProvider,
                              CompositeExtractionProvider
    IClassificationProvider   LLMClassificationProvider
    IDocumentStore            SQLiteDocumentStore
"""

from plansearch.interfaces.classification_provider import IClassificationProvider
from plansearch.interfaces.document_store import IDocumentStore
from plansearch.interfaces.embedding_provider import IEmbeddingProvider
from plansearch.interfaces.extraction_provider import IExtractionProvider
from plansearch.interfaces.llm_provider import ILLMProvider

__all__ = [
    "IClassificationProvider",
    "IDocumentStore",
    "IEmbeddingProvider",
    "IExtractionProvider",
    "ILLMProvider",
]
