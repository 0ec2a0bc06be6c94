"""plansearch: document ingestion and semantic retrieval for construction documents."""

__version__ = "0.1.0"
