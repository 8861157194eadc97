"""SQLite-backed document store.

One connection per operation; every write runs inside ``BEGIN IMMEDIATE``
so the revision check and the write it guards are a single unit. A partial
unique index keeps at most one published row per (organization, token).
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

from .document_store import ANY, DocumentStore, archive_event, check_supersedes
from .errors import DuplicateDocumentError, StaleDocumentError, StoreError
from .models import (
    DocumentEvent, DocumentStatus, WalkthroughDocument, script_to_list, utc_now_iso,
)

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
  id TEXT PRIMARY KEY,
  organization_id TEXT,
  token TEXT NOT NULL,
  label TEXT NOT NULL DEFAULT '',
  class_code TEXT NOT NULL DEFAULT '',
  version INTEGER,
  status TEXT NOT NULL,
  source TEXT NOT NULL,
  is_default INTEGER NOT NULL DEFAULT 0,
  review_notes TEXT,
  script_json TEXT NOT NULL,
  revision INTEGER NOT NULL,
  duplicated_from TEXT,
  created_by TEXT,
  updated_by TEXT,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS ix_documents_org_status
  ON documents(organization_id, status);

DROP INDEX IF EXISTS ux_documents_published;

CREATE UNIQUE INDEX IF NOT EXISTS ux_documents_published_org
  ON documents(organization_id, token)
  WHERE status = 'published' AND organization_id IS NOT NULL;

CREATE UNIQUE INDEX IF NOT EXISTS ux_documents_published_default
  ON documents(token)
  WHERE status = 'published' AND organization_id IS NULL;

CREATE TABLE IF NOT EXISTS document_events (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  document_id TEXT NOT NULL,
  action TEXT NOT NULL,
  actor_id TEXT,
  role TEXT,
  from_status TEXT,
  to_status TEXT,
  note TEXT,
  at TEXT NOT NULL
);
"""

_COLUMNS = (
    "id", "organization_id", "token", "label", "class_code", "version", "status",
    "source", "is_default", "review_notes", "script_json", "revision",
    "duplicated_from", "created_by", "updated_by", "created_at", "updated_at",
)


def _to_row(doc: WalkthroughDocument) -> Dict[str, Any]:
    return {
        "id": doc.id,
        "organization_id": doc.organization_id,
        "token": doc.token,
        "label": doc.label,
        "class_code": doc.class_code,
        "version": doc.version,
        "status": doc.status.value,
        "source": doc.source.value,
        "is_default": 1 if doc.is_default else 0,
        "review_notes": doc.review_notes,
        "script_json": json.dumps(script_to_list(doc.script), ensure_ascii=False),
        "revision": doc.revision,
        "duplicated_from": doc.duplicated_from,
        "created_by": doc.created_by,
        "updated_by": doc.updated_by,
        "created_at": doc.created_at,
        "updated_at": doc.updated_at,
    }


def _from_row(row: sqlite3.Row) -> WalkthroughDocument:
    data = {k: row[k] for k in row.keys()}
    data["script"] = json.loads(data.pop("script_json"))
    data["is_default"] = bool(data["is_default"])
    return WalkthroughDocument.from_dict(data)


class SqliteDocumentStore(DocumentStore):
    """Manages walkthrough documents in a SQLite database file."""

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        # executescript manages its own commits.
        with self._reader() as conn:
            conn.executescript(SCHEMA)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=10.0, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA busy_timeout = 10000")
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise StoreError(f"Could not open {self.db_path}: {exc}") from exc
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.execute("COMMIT")
        except sqlite3.Error as exc:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            logger.warning("SQLite operation failed: %s", exc)
            raise StoreError(str(exc)) from exc
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    @contextmanager
    def _reader(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise StoreError(f"Could not open {self.db_path}: {exc}") from exc
        try:
            yield conn
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc
        finally:
            conn.close()

    @staticmethod
    def _revision(conn: sqlite3.Connection, document_id: str) -> Optional[int]:
        row = conn.execute("SELECT revision FROM documents WHERE id=?", (document_id,)).fetchone()
        return int(row["revision"]) if row else None

    def _check_revision(self, conn: sqlite3.Connection, document_id: str,
                        expected_revision: int) -> None:
        actual = self._revision(conn, document_id)
        if actual is None:
            raise StoreError(f"Document {document_id} does not exist")
        if actual != expected_revision:
            raise StaleDocumentError(document_id, expected_revision, actual)

    @staticmethod
    def _write(conn: sqlite3.Connection, doc: WalkthroughDocument, insert: bool) -> None:
        row = _to_row(doc)
        if insert:
            placeholders = ",".join("?" for _ in _COLUMNS)
            conn.execute(
                f"INSERT INTO documents({','.join(_COLUMNS)}) VALUES ({placeholders})",
                tuple(row[c] for c in _COLUMNS),
            )
        else:
            assignments = ",".join(f"{c}=?" for c in _COLUMNS if c != "id")
            conn.execute(
                f"UPDATE documents SET {assignments} WHERE id=?",
                tuple(row[c] for c in _COLUMNS if c != "id") + (doc.id,),
            )

    @staticmethod
    def _record(conn: sqlite3.Connection, event: Optional[DocumentEvent]) -> None:
        if event is None:
            return
        conn.execute(
            "INSERT INTO document_events(document_id, action, actor_id, role, from_status, "
            "to_status, note, at) VALUES (?,?,?,?,?,?,?,?)",
            (event.document_id, event.action, event.actor_id, event.role,
             event.from_status, event.to_status, event.note, event.at),
        )

    def get(self, document_id):
        with self._reader() as conn:
            row = conn.execute("SELECT * FROM documents WHERE id=?", (document_id,)).fetchone()
        return _from_row(row) if row else None

    def insert(self, document, event=None):
        stored = WalkthroughDocument.from_dict(document.to_dict())
        stored.revision = 1
        with self._transaction() as conn:
            if self._revision(conn, document.id) is not None:
                raise DuplicateDocumentError(f"Document {document.id} already exists")
            self._write(conn, stored, insert=True)
            self._record(conn, event)
        return stored

    def update(self, document, expected_revision, event=None):
        stored = WalkthroughDocument.from_dict(document.to_dict())
        stored.revision = expected_revision + 1
        with self._transaction() as conn:
            self._check_revision(conn, document.id, expected_revision)
            self._write(conn, stored, insert=False)
            self._record(conn, event)
        return stored

    def delete(self, document_id, expected_revision):
        with self._transaction() as conn:
            if self._revision(conn, document_id) is None:
                return False
            self._check_revision(conn, document_id, expected_revision)
            conn.execute("DELETE FROM documents WHERE id=?", (document_id,))
            return True

    def query(self, organization_id=ANY, status=None, token=None, is_default=None):
        clauses: List[str] = []
        params: List[Any] = []
        if organization_id is not ANY:
            if organization_id is None:
                clauses.append("organization_id IS NULL")
            else:
                clauses.append("organization_id=?")
                params.append(organization_id)
        if status is not None:
            clauses.append("status=?")
            params.append(status.value)
        if token is not None:
            clauses.append("token=?")
            params.append(token)
        if is_default is not None:
            clauses.append("is_default=?")
            params.append(1 if is_default else 0)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._reader() as conn:
            rows = conn.execute(
                f"SELECT * FROM documents{where} ORDER BY updated_at DESC", params
            ).fetchall()
        return [_from_row(r) for r in rows]

    @staticmethod
    def _max_version(conn: sqlite3.Connection, organization_id: Optional[str], token: str) -> int:
        row = conn.execute(
            "SELECT MAX(version) AS v FROM documents "
            "WHERE organization_id IS ? AND token=?",
            (organization_id, token),
        ).fetchone()
        return int(row["v"]) if row and row["v"] is not None else 0

    def max_version(self, organization_id, token):
        with self._reader() as conn:
            return self._max_version(conn, organization_id, token)

    def publish(self, document, expected_revision, event=None):
        stored = WalkthroughDocument.from_dict(document.to_dict())
        stored.status = DocumentStatus.PUBLISHED
        stored.revision = expected_revision + 1
        now = utc_now_iso()
        with self._transaction() as conn:
            self._check_revision(conn, document.id, expected_revision)
            stored.version = self._max_version(conn, document.organization_id, document.token) + 1
            rows = conn.execute(
                "SELECT * FROM documents WHERE organization_id IS ? AND token=? "
                "AND status='published' AND id<>?",
                (document.organization_id, document.token, document.id),
            ).fetchall()
            archived = []
            for row in rows:
                old = _from_row(row)
                check_supersedes(document, old)
                old.status = DocumentStatus.ARCHIVED
                old.updated_at = now
                old.revision += 1
                self._write(conn, old, insert=False)
                self._record(conn, archive_event(old, document, event))
                archived.append(old)
            self._write(conn, stored, insert=False)
            self._record(conn, event)
        return stored, archived

    def events(self, document_id):
        with self._reader() as conn:
            rows = conn.execute(
                "SELECT * FROM document_events WHERE document_id=? ORDER BY id",
                (document_id,),
            ).fetchall()
        return [
            DocumentEvent(
                document_id=r["document_id"], action=r["action"], actor_id=r["actor_id"],
                role=r["role"], from_status=r["from_status"], to_status=r["to_status"],
                note=r["note"], at=r["at"],
            )
            for r in rows
        ]
