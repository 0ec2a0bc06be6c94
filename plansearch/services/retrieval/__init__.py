"""Embedding persistence and scoped similarity search."""

from plansearch.services.retrieval.embedding_store import EmbeddingStore
from plansearch.services.retrieval.retrieval_service import RetrievalService

__all__ = ["EmbeddingStore", "RetrievalService"]
