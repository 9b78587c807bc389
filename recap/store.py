"""Recap store — documents and their summaries in one SQLite file.

Tables:
  documents  — one row per submitted piece of content (status, transcript)
  summaries  — at most one row per document (UNIQUE document_id)

The orchestrator only depends on the DocumentStore / SummaryStore
protocols; SqliteStore is the bundled implementation. Every call opens
its own connection and runs in a worker thread, so concurrent
coroutines never share a connection.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional, Protocol

from . import config
from .errors import DocumentNotFound
from .schemas import (
    Document,
    DocumentStatus,
    SourceType,
    Summary,
    SummaryData,
    new_id,
    utc_now,
)

logger = logging.getLogger(__name__)

_DEFAULT_DB_PATH = Path.cwd() / ".recap" / "recap.sqlite3"

_JSON_FIELDS = ("key_points", "overview", "sections", "chat_options")
_SUMMARY_COLUMNS = (
    "id", "document_id", "owner", "content", "key_points", "word_count", "overview",
    "sections", "chat_options", "source_type", "source_url", "source_title",
    "created_at", "updated_at",
)
_DOCUMENT_COLUMNS = (
    "id", "owner", "title", "source_type", "source_location", "status",
    "transcript", "summary_text", "created_at", "updated_at",
)


class DocumentStore(Protocol):
    async def create_document(self, owner: str, title: str, source_type: SourceType,
                              source_location: str) -> Document: ...

    async def get_document(self, document_id: str) -> Document: ...

    async def update_document_status(self, document_id: str, status: DocumentStatus, *,
                                     summary_text: Optional[str] = None,
                                     transcript: Optional[str] = None,
                                     reset: bool = False) -> Document: ...


class SummaryStore(Protocol):
    async def get(self, document_id: str) -> Optional[Summary]: ...

    async def create(self, document_id: str, data: SummaryData) -> Summary: ...

    async def replace(self, document_id: str, data: SummaryData) -> Summary: ...

    async def delete(self, document_id: str) -> bool: ...


class SqliteStore:
    def __init__(self, db_path: str | Path | None = None) -> None:
        self.db_path = Path(db_path) if db_path else _DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    @classmethod
    def from_config(cls) -> "SqliteStore":
        return cls(config.get("RECAP_DB_PATH") or None)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    id TEXT PRIMARY KEY,
                    owner TEXT NOT NULL,
                    title TEXT NOT NULL DEFAULT '',
                    source_type TEXT NOT NULL,
                    source_location TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    transcript TEXT,
                    summary_text TEXT NOT NULL DEFAULT '',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS summaries (
                    id TEXT PRIMARY KEY,
                    document_id TEXT NOT NULL UNIQUE,
                    owner TEXT NOT NULL,
                    content TEXT NOT NULL,
                    key_points TEXT NOT NULL DEFAULT '[]',
                    word_count INTEGER NOT NULL DEFAULT 0,
                    overview TEXT NOT NULL DEFAULT '[]',
                    sections TEXT NOT NULL DEFAULT '[]',
                    chat_options TEXT NOT NULL DEFAULT '[]',
                    source_type TEXT NOT NULL,
                    source_url TEXT NOT NULL DEFAULT '',
                    source_title TEXT NOT NULL DEFAULT '',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_documents_owner ON documents(owner)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_summaries_owner ON summaries(owner)")
            conn.commit()

    # ── Row mapping ───────────────────────────────────────────────

    @staticmethod
    def _summary_from_row(row: sqlite3.Row) -> Summary:
        values: dict[str, Any] = dict(row)
        for name in _JSON_FIELDS:
            values[name] = json.loads(values[name] or "[]")
        return Summary(**values)

    @staticmethod
    def _summary_params(document_id: str, data: SummaryData, summary_id: str, now: str) -> dict[str, Any]:
        values = data.model_dump(mode="json")
        for name in _JSON_FIELDS:
            values[name] = json.dumps(values[name], ensure_ascii=False)
        values.update(id=summary_id, document_id=document_id, created_at=now, updated_at=now)
        return values

    # ── Documents ─────────────────────────────────────────────────

    def _create_document(self, owner: str, title: str, source_type: SourceType,
                         source_location: str) -> Document:
        now = utc_now()
        document = Document(
            id=new_id(), owner=owner, title=title, source_type=source_type,
            source_location=source_location, created_at=now, updated_at=now,
        )
        values = document.model_dump(mode="json")
        with self._connect() as conn:
            conn.execute(
                f"INSERT INTO documents ({', '.join(_DOCUMENT_COLUMNS)}) "
                f"VALUES ({', '.join(':' + c for c in _DOCUMENT_COLUMNS)})",
                values,
            )
            conn.commit()
        logger.info("Created %s document %s for %s", document.source_type.value, document.id, owner)
        return document

    def _get_document(self, document_id: str, conn: Optional[sqlite3.Connection] = None) -> Document:
        if conn is None:
            with self._connect() as own:
                return self._get_document(document_id, own)
        row = conn.execute("SELECT * FROM documents WHERE id = ?", (document_id,)).fetchone()
        if row is None:
            raise DocumentNotFound(f"no document {document_id}")
        return Document(**dict(row))

    def _update_document_status(self, document_id: str, status: DocumentStatus,
                                summary_text: Optional[str], transcript: Optional[str],
                                reset: bool) -> Document:
        status = DocumentStatus(status)
        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            current = self._get_document(document_id, conn)
            if reset or status.rank >= current.status.rank:
                new_status = status
            else:
                logger.debug("Ignoring status regression %s -> %s for %s",
                             current.status.value, status.value, document_id)
                new_status = current.status
            conn.execute(
                """UPDATE documents
                   SET status = ?,
                       summary_text = COALESCE(?, summary_text),
                       transcript = COALESCE(?, transcript),
                       updated_at = ?
                   WHERE id = ?""",
                (new_status.value, summary_text, transcript, utc_now(), document_id),
            )
            if reset and transcript is None:
                conn.execute("UPDATE documents SET transcript = NULL WHERE id = ?", (document_id,))
            conn.commit()
            return self._get_document(document_id, conn)

    def _list_documents(self, owner: str) -> list[Document]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM documents WHERE owner = ? ORDER BY created_at DESC", (owner,)
            ).fetchall()
        return [Document(**dict(r)) for r in rows]

    async def create_document(self, owner: str, title: str, source_type: SourceType,
                              source_location: str) -> Document:
        return await asyncio.to_thread(self._create_document, owner, title,
                                       SourceType(source_type), source_location)

    async def get_document(self, document_id: str) -> Document:
        return await asyncio.to_thread(self._get_document, document_id)

    async def update_document_status(self, document_id: str, status: DocumentStatus, *,
                                     summary_text: Optional[str] = None,
                                     transcript: Optional[str] = None,
                                     reset: bool = False) -> Document:
        return await asyncio.to_thread(self._update_document_status, document_id, status,
                                       summary_text, transcript, reset)

    async def list_documents(self, owner: str) -> list[Document]:
        return await asyncio.to_thread(self._list_documents, owner)

    # ── Summaries ─────────────────────────────────────────────────

    def _get_summary(self, document_id: str) -> Optional[Summary]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM summaries WHERE document_id = ?", (document_id,)).fetchone()
        return self._summary_from_row(row) if row else None

    def _create_summary(self, document_id: str, data: SummaryData) -> Summary:
        params = self._summary_params(document_id, data, new_id(), utc_now())
        with self._connect() as conn:
            cursor = conn.execute(
                f"INSERT INTO summaries ({', '.join(_SUMMARY_COLUMNS)}) "
                f"VALUES ({', '.join(':' + c for c in _SUMMARY_COLUMNS)}) "
                "ON CONFLICT(document_id) DO NOTHING",
                params,
            )
            inserted = cursor.rowcount > 0
            conn.commit()
            row = conn.execute("SELECT * FROM summaries WHERE document_id = ?", (document_id,)).fetchone()
        if not inserted:
            logger.info("Summary already exists for document %s", document_id)
        else:
            logger.info("Saved summary for document %s", document_id)
        return self._summary_from_row(row)

    def _replace_summary(self, document_id: str, data: SummaryData) -> Summary:
        now = utc_now()
        params = self._summary_params(document_id, data, new_id(), now)
        updates = [c for c in _SUMMARY_COLUMNS if c not in ("id", "document_id", "created_at")]
        with self._connect() as conn:
            conn.execute(
                f"INSERT INTO summaries ({', '.join(_SUMMARY_COLUMNS)}) "
                f"VALUES ({', '.join(':' + c for c in _SUMMARY_COLUMNS)}) "
                f"ON CONFLICT(document_id) DO UPDATE SET "
                + ", ".join(f"{c} = excluded.{c}" for c in updates),
                params,
            )
            conn.commit()
            row = conn.execute("SELECT * FROM summaries WHERE document_id = ?", (document_id,)).fetchone()
        logger.info("Replaced summary for document %s", document_id)
        return self._summary_from_row(row)

    def _delete_summary(self, document_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM summaries WHERE document_id = ?", (document_id,))
            deleted = cursor.rowcount > 0
            conn.commit()
        return deleted

    def _list_summaries(self, owner: str) -> list[Summary]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM summaries WHERE owner = ? ORDER BY created_at DESC", (owner,)
            ).fetchall()
        return [self._summary_from_row(r) for r in rows]

    async def get(self, document_id: str) -> Optional[Summary]:
        return await asyncio.to_thread(self._get_summary, document_id)

    async def create(self, document_id: str, data: SummaryData) -> Summary:
        """Idempotent: returns the existing row when the document already has one."""
        return await asyncio.to_thread(self._create_summary, document_id, data)

    async def replace(self, document_id: str, data: SummaryData) -> Summary:
        return await asyncio.to_thread(self._replace_summary, document_id, data)

    async def delete(self, document_id: str) -> bool:
        return await asyncio.to_thread(self._delete_summary, document_id)

    async def list_summaries(self, owner: str) -> list[Summary]:
        return await asyncio.to_thread(self._list_summaries, owner)
