"""Document store implementations.

    - SQLiteDocumentStore -- aiosqlite, one connection per handle, JSON
      vectors and metadata, cascading deletes via foreign keys.
"""

from plansearch.providers.store.sqlite_document_store import SQLiteDocumentStore

__all__ = ["SQLiteDocumentStore"]
