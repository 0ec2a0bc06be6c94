"""SQLite-backed document store.

Persists documents, pages, chunks, embeddings and classifications in one
SQLite database using ``aiosqlite`` for async I/O.  A single connection is
held between :meth:`SQLiteDocumentStore.open` and
:meth:`SQLiteDocumentStore.close`; foreign keys are enabled on it so that
deleting a document cascades to everything it owns.

Embedding vectors are stored as JSON arrays and metadata as JSON maps.
They are deliberately not parsed here: the embedding store reads raw rows
and skips malformed ones during its scan.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite
import structlog
from pydantic import TypeAdapter

from plansearch.interfaces.document_store import IDocumentStore
from plansearch.models.classification import Classification, ClassificationRationale
from plansearch.models.document import (
    Chunk,
    Document,
    DocumentStatus,
    Page,
    PageDimensions,
    VisualElement,
    utc_now,
)
from plansearch.models.embedding import ContentType, EmbeddingRecord
from plansearch.utils.errors import DocumentNotFoundError, InvalidStatusTransition, StoreError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/plansearch.db")

_VISUAL_ELEMENTS_ADAPTER = TypeAdapter(list[VisualElement])

_CREATE_TABLES_SQL = [
    """\
CREATE TABLE IF NOT EXISTS documents (
    document_id   TEXT    PRIMARY KEY,
    scope_id      TEXT    NOT NULL,
    filename      TEXT    NOT NULL,
    mime_type     TEXT    NOT NULL,
    file_size     INTEGER NOT NULL DEFAULT 0,
    status        TEXT    NOT NULL,
    error_message TEXT,
    created_at    TEXT    NOT NULL,
    updated_at    TEXT    NOT NULL
);
""",
    """\
CREATE TABLE IF NOT EXISTS pages (
    page_id         TEXT    PRIMARY KEY,
    document_id     TEXT    NOT NULL REFERENCES documents(document_id) ON DELETE CASCADE,
    page_number     INTEGER NOT NULL,
    text            TEXT    NOT NULL DEFAULT '',
    image_ref       TEXT,
    dimensions      TEXT,
    visual_elements TEXT    NOT NULL DEFAULT '[]',
    UNIQUE(document_id, page_number)
);
""",
    """\
CREATE TABLE IF NOT EXISTS chunks (
    chunk_id          TEXT    PRIMARY KEY,
    page_id           TEXT    NOT NULL REFERENCES pages(page_id) ON DELETE CASCADE,
    document_id       TEXT    NOT NULL REFERENCES documents(document_id) ON DELETE CASCADE,
    content           TEXT    NOT NULL,
    sequence          INTEGER NOT NULL,
    extraction_method TEXT    NOT NULL,
    UNIQUE(page_id, sequence)
);
""",
    """\
CREATE TABLE IF NOT EXISTS embeddings (
    seq           INTEGER PRIMARY KEY AUTOINCREMENT,
    embedding_id  TEXT    NOT NULL UNIQUE,
    document_id   TEXT    NOT NULL REFERENCES documents(document_id) ON DELETE CASCADE,
    page_id       TEXT    NOT NULL REFERENCES pages(page_id) ON DELETE CASCADE,
    chunk_id      TEXT    REFERENCES chunks(chunk_id) ON DELETE CASCADE,
    content_type  TEXT    NOT NULL,
    vector        TEXT    NOT NULL,
    bounding_box  TEXT,
    metadata      TEXT    NOT NULL,
    content       TEXT    NOT NULL DEFAULT '',
    created_at    TEXT    NOT NULL
);
""",
    """\
CREATE TABLE IF NOT EXISTS classifications (
    seq               INTEGER PRIMARY KEY AUTOINCREMENT,
    classification_id TEXT    NOT NULL UNIQUE,
    document_id       TEXT    NOT NULL REFERENCES documents(document_id) ON DELETE CASCADE,
    primary_type      TEXT    NOT NULL,
    subtype           TEXT    NOT NULL,
    sheet_number      TEXT,
    discipline_code   TEXT,
    confidence        REAL    NOT NULL,
    rationale         TEXT    NOT NULL,
    created_at        TEXT    NOT NULL
);
""",
]

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_documents_scope ON documents(scope_id);",
    "CREATE INDEX IF NOT EXISTS idx_pages_document ON pages(document_id);",
    "CREATE INDEX IF NOT EXISTS idx_chunks_page ON chunks(page_id);",
    "CREATE INDEX IF NOT EXISTS idx_embeddings_document ON embeddings(document_id);",
    "CREATE INDEX IF NOT EXISTS idx_embeddings_type ON embeddings(content_type);",
    "CREATE INDEX IF NOT EXISTS idx_classifications_document ON classifications(document_id);",
]

_DOCUMENT_COLUMNS = (
    "document_id, scope_id, filename, mime_type, file_size, status, "
    "error_message, created_at, updated_at"
)

_EMBEDDING_COLUMNS = (
    "seq, embedding_id, document_id, page_id, chunk_id, content_type, vector, "
    "bounding_box, metadata, content, created_at"
)


def _allowed_sources(target: DocumentStatus) -> list[str]:
    """Statuses from which *target* may be reached."""
    return [s.value for s in DocumentStatus if s.can_transition_to(target)]


class SQLiteDocumentStore(IDocumentStore):
    """SQLite persistence for the whole ingestion data model.

    Parameters
    ----------
    db_path:
        Database file.  ``":memory:"`` gives a private in-memory database
        that lives until :meth:`close`.
    """

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = str(db_path)
        self._db: aiosqlite.Connection | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Connect, enable foreign keys and create tables and indices."""
        if self._db is not None:
            return
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

        db = await aiosqlite.connect(self._db_path)
        db.row_factory = aiosqlite.Row
        await db.execute("PRAGMA foreign_keys = ON;")
        for table_sql in _CREATE_TABLES_SQL:
            await db.execute(table_sql)
        for idx_sql in _CREATE_INDICES_SQL:
            await db.execute(idx_sql)
        await db.commit()
        self._db = db
        logger.info("document_store_opened", path=self._db_path)

    async def close(self) -> None:
        if self._db is None:
            return
        await self._db.close()
        self._db = None
        logger.info("document_store_closed", path=self._db_path)

    @property
    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise StoreError(
                message="Document store is not open; call open() first",
                provider_name=self.get_provider_name(),
            )
        return self._db

    async def _write(self, sql: str, params: tuple[Any, ...]) -> aiosqlite.Cursor:
        """Execute and commit a single write, mapping SQLite errors to StoreError."""
        try:
            cursor = await self._conn.execute(sql, params)
            await self._conn.commit()
        except sqlite3.IntegrityError as exc:
            raise StoreError(
                message=f"Integrity violation: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except sqlite3.Error as exc:
            raise StoreError(
                message=f"SQLite error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return cursor

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def create_document(self, document: Document) -> Document:
        await self._write(
            f"INSERT INTO documents ({_DOCUMENT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                document.document_id,
                document.scope_id,
                document.filename,
                document.mime_type,
                document.file_size,
                document.status.value,
                document.error_message,
                document.created_at.isoformat(),
                document.updated_at.isoformat(),
            ),
        )
        logger.info(
            "document_created",
            document_id=document.document_id,
            scope_id=document.scope_id,
            filename=document.filename,
        )
        return document

    async def get_document(self, document_id: str) -> Document | None:
        cursor = await self._conn.execute(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE document_id = ?",
            (document_id,),
        )
        row = await cursor.fetchone()
        return self._row_to_document(row) if row else None

    async def list_documents(self, scope_id: str) -> list[Document]:
        cursor = await self._conn.execute(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE scope_id = ? "
            "ORDER BY created_at DESC",
            (scope_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_document(r) for r in rows]

    async def update_document_status(
        self,
        document_id: str,
        status: DocumentStatus,
        error_message: str | None = None,
    ) -> Document:
        sources = _allowed_sources(status)
        placeholders = ", ".join("?" for _ in sources) or "NULL"
        # The status guard is part of the UPDATE so that two concurrent
        # transitions cannot both succeed.
        cursor = await self._write(
            "UPDATE documents SET status = ?, error_message = ?, updated_at = ? "
            f"WHERE document_id = ? AND status IN ({placeholders})",
            (status.value, error_message, utc_now().isoformat(), document_id, *sources),
        )

        if cursor.rowcount == 0:
            current = await self.get_document(document_id)
            if current is None:
                raise self._not_found(document_id)
            raise InvalidStatusTransition(
                message=(
                    f"Document {document_id} cannot move from "
                    f"{current.status.value} to {status.value}"
                ),
                provider_name=self.get_provider_name(),
            )

        updated = await self.get_document(document_id)
        if updated is None:
            # Deleted between the UPDATE and the re-read.
            raise self._not_found(document_id)
        logger.info("document_status_changed", document_id=document_id, status=status.value)
        return updated

    async def delete_document(self, document_id: str) -> bool:
        cursor = await self._write(
            "DELETE FROM documents WHERE document_id = ?", (document_id,)
        )
        deleted = cursor.rowcount > 0
        logger.info("document_deleted", document_id=document_id, deleted=deleted)
        return deleted

    async def get_document_counts(self, document_id: str) -> dict[str, int]:
        cursor = await self._conn.execute(
            "SELECT "
            "(SELECT COUNT(*) FROM pages WHERE document_id = ?) AS pages, "
            "(SELECT COUNT(*) FROM chunks WHERE document_id = ?) AS chunks, "
            "(SELECT COUNT(*) FROM embeddings WHERE document_id = ?) AS embeddings",
            (document_id, document_id, document_id),
        )
        row = await cursor.fetchone()
        return dict(row) if row else {"pages": 0, "chunks": 0, "embeddings": 0}

    # ------------------------------------------------------------------
    # Pages and chunks
    # ------------------------------------------------------------------

    async def add_page(self, page: Page) -> Page:
        await self._write(
            "INSERT INTO pages (page_id, document_id, page_number, text, image_ref, "
            "dimensions, visual_elements) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                page.page_id,
                page.document_id,
                page.page_number,
                page.text,
                page.image_ref,
                page.dimensions.model_dump_json() if page.dimensions else None,
                _VISUAL_ELEMENTS_ADAPTER.dump_json(page.visual_elements).decode("utf-8"),
            ),
        )
        return page

    async def list_pages(self, document_id: str) -> list[Page]:
        cursor = await self._conn.execute(
            "SELECT page_id, document_id, page_number, text, image_ref, dimensions, "
            "visual_elements FROM pages WHERE document_id = ? ORDER BY page_number",
            (document_id,),
        )
        rows = await cursor.fetchall()
        return [
            Page(
                page_id=r["page_id"],
                document_id=r["document_id"],
                page_number=r["page_number"],
                text=r["text"],
                image_ref=r["image_ref"],
                dimensions=(
                    PageDimensions.model_validate_json(r["dimensions"])
                    if r["dimensions"]
                    else None
                ),
                visual_elements=_VISUAL_ELEMENTS_ADAPTER.validate_json(r["visual_elements"]),
            )
            for r in rows
        ]

    async def add_chunk(self, chunk: Chunk) -> Chunk:
        await self._write(
            "INSERT INTO chunks (chunk_id, page_id, document_id, content, sequence, "
            "extraction_method) VALUES (?, ?, ?, ?, ?, ?)",
            (
                chunk.chunk_id,
                chunk.page_id,
                chunk.document_id,
                chunk.content,
                chunk.sequence,
                chunk.extraction_method.value,
            ),
        )
        return chunk

    async def list_chunks(self, page_id: str) -> list[Chunk]:
        cursor = await self._conn.execute(
            "SELECT chunk_id, page_id, document_id, content, sequence, extraction_method "
            "FROM chunks WHERE page_id = ? ORDER BY sequence",
            (page_id,),
        )
        rows = await cursor.fetchall()
        return [Chunk.model_validate(dict(r)) for r in rows]

    # ------------------------------------------------------------------
    # Embeddings
    # ------------------------------------------------------------------

    async def add_embedding(self, record: EmbeddingRecord) -> str:
        await self._write(
            "INSERT INTO embeddings (embedding_id, document_id, page_id, chunk_id, "
            "content_type, vector, bounding_box, metadata, content, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                record.embedding_id,
                record.metadata.document_id,
                record.page_id,
                record.chunk_id,
                record.content_type.value,
                json.dumps(record.vector),
                record.bounding_box.model_dump_json() if record.bounding_box else None,
                record.metadata.model_dump_json(),
                record.content,
                record.created_at.isoformat(),
            ),
        )
        return record.embedding_id

    async def fetch_embedding_rows(
        self, content_type: ContentType | None = None
    ) -> list[dict[str, Any]]:
        if content_type is None:
            cursor = await self._conn.execute(
                f"SELECT {_EMBEDDING_COLUMNS} FROM embeddings ORDER BY seq"
            )
        else:
            cursor = await self._conn.execute(
                f"SELECT {_EMBEDDING_COLUMNS} FROM embeddings WHERE content_type = ? ORDER BY seq",
                (content_type.value,),
            )
        rows = await cursor.fetchall()
        return [dict(r) for r in rows]

    async def count_embeddings_by_type(self, scope_id: str) -> dict[str, int]:
        cursor = await self._conn.execute(
            "SELECT e.content_type AS content_type, COUNT(*) AS total "
            "FROM embeddings e JOIN documents d ON d.document_id = e.document_id "
            "WHERE d.scope_id = ? GROUP BY e.content_type",
            (scope_id,),
        )
        rows = await cursor.fetchall()
        return {r["content_type"]: r["total"] for r in rows}

    # ------------------------------------------------------------------
    # Classifications
    # ------------------------------------------------------------------

    async def add_classification(self, classification: Classification) -> Classification:
        await self._write(
            "INSERT INTO classifications (classification_id, document_id, primary_type, "
            "subtype, sheet_number, discipline_code, confidence, rationale, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                classification.classification_id,
                classification.document_id,
                classification.primary_type.value,
                classification.subtype.value,
                classification.sheet_number,
                classification.discipline_code,
                classification.confidence,
                classification.rationale.model_dump_json(),
                classification.created_at.isoformat(),
            ),
        )
        return classification

    async def get_latest_classification(self, document_id: str) -> Classification | None:
        cursor = await self._conn.execute(
            "SELECT classification_id, document_id, primary_type, subtype, sheet_number, "
            "discipline_code, confidence, rationale, created_at FROM classifications "
            "WHERE document_id = ? ORDER BY seq DESC LIMIT 1",
            (document_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        data = dict(row)
        data["rationale"] = ClassificationRationale.model_validate_json(data["rationale"])
        data["created_at"] = datetime.fromisoformat(data["created_at"])
        return Classification.model_validate(data)

    def get_provider_name(self) -> str:
        return "sqlite_document_store"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _not_found(self, document_id: str) -> DocumentNotFoundError:
        return DocumentNotFoundError(
            message=f"Document {document_id} not found",
            provider_name=self.get_provider_name(),
        )

    @staticmethod
    def _row_to_document(row: aiosqlite.Row) -> Document:
        data = dict(row)
        data["created_at"] = datetime.fromisoformat(data["created_at"])
        data["updated_at"] = datetime.fromisoformat(data["updated_at"])
        return Document.model_validate(data)
