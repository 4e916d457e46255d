"""
Embedded document store backed by one SQLite file.

A series database is a single file holding three kinds of JSON documents
(series, bom, group) in one ``documents`` table. The ``type`` column is the
discriminator; the fields the model queries by are copied out of the JSON body
into indexed columns:

- bom_id:   group -> owning BOM
- join_key: group lookup during matrix merge
- project / phase / version: BOM identity (unique per store for BOM documents)

The store is safe to share between threads: every statement runs under one
re-entrant lock, which callers can also hold to make a read-check-write
sequence atomic. A daemon timer compacts the file periodically and ``close``
compacts it once more before releasing the connection.
"""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence
from uuid import uuid4

from ..errors import StoreClosed
from ..schema import BOM, DOCUMENT_TYPES

logger = logging.getLogger(__name__)

INDEXED_FIELDS = ("bom_id", "join_key", "project", "phase", "version")

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS documents (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        id TEXT UNIQUE NOT NULL,
        type TEXT NOT NULL,
        bom_id TEXT,
        join_key TEXT,
        project TEXT,
        phase TEXT,
        version TEXT,
        body TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_documents_type ON documents(type)",
    "CREATE INDEX IF NOT EXISTS idx_documents_bom_id ON documents(bom_id)",
    "CREATE INDEX IF NOT EXISTS idx_documents_join_key ON documents(join_key)",
    f"""
    CREATE UNIQUE INDEX IF NOT EXISTS idx_documents_bom_triple
    ON documents(IFNULL(project, ''), IFNULL(phase, ''), IFNULL(version, ''))
    WHERE type = '{BOM}'
    """,
]


def _column_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


class DocumentStore:
    """
    Typed JSON document collection in one SQLite file.

    Args:
        path: Database file; created when missing
        autocompact_interval: Seconds between background compactions, or None
                              to disable the timer
    """

    def __init__(self, path, autocompact_interval: Optional[float] = 300.0):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.lock = threading.RLock()
        self._conn: Optional[sqlite3.Connection] = sqlite3.connect(
            str(self.path), check_same_thread=False
        )
        self._conn.row_factory = sqlite3.Row
        self._depth = 0
        try:
            self._init_schema()
        except sqlite3.Error:
            self._conn.close()
            self._conn = None
            raise

        self.autocompact_interval = autocompact_interval
        self._timer: Optional[threading.Timer] = None
        self._schedule_compaction()

    def _init_schema(self) -> None:
        with self._conn:
            for statement in _SCHEMA:
                self._conn.execute(statement)

    @property
    def closed(self) -> bool:
        return self._conn is None

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreClosed(f"Document store is closed: {self.path}")
        return self._conn

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Hold the lock and commit (or roll back) once the outermost block exits."""
        with self.lock:
            conn = self._connection()
            self._depth += 1
            try:
                yield
            except BaseException:
                if self._depth == 1:
                    conn.rollback()
                raise
            else:
                if self._depth == 1:
                    conn.commit()
            finally:
                self._depth -= 1

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @staticmethod
    def _where(doc_type: Optional[str], filters: Dict[str, Any]):
        clauses: List[str] = []
        params: List[Any] = []
        if doc_type is not None:
            clauses.append("type = ?")
            params.append(doc_type)
        for field, value in filters.items():
            column = "id" if field == "_id" else field
            if column != "id" and column not in INDEXED_FIELDS:
                raise ValueError(f"Field is not queryable: {field}")
            if isinstance(value, (list, tuple, set, frozenset)):
                values = list(value)
                if not values:
                    clauses.append("0")
                    continue
                clauses.append(f"{column} IN ({', '.join('?' * len(values))})")
                params.extend(_column_value(v) for v in values)
            elif value is None:
                clauses.append(f"{column} IS NULL")
            else:
                clauses.append(f"{column} = ?")
                params.append(_column_value(value))
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, params

    def find(self, doc_type: Optional[str] = None, **filters) -> List[Dict[str, Any]]:
        """Documents of ``doc_type`` whose indexed fields equal ``filters``.

        A list or tuple value matches any of its members. Results come back in
        insertion order.
        """
        where, params = self._where(doc_type, filters)
        with self.lock:
            rows = self._connection().execute(
                f"SELECT body FROM documents{where} ORDER BY seq ASC", params
            ).fetchall()
        return [json.loads(row["body"]) for row in rows]

    def find_one(self, doc_type: Optional[str] = None, **filters) -> Optional[Dict[str, Any]]:
        where, params = self._where(doc_type, filters)
        with self.lock:
            row = self._connection().execute(
                f"SELECT body FROM documents{where} ORDER BY seq ASC LIMIT 1", params
            ).fetchone()
        return json.loads(row["body"]) if row else None

    def find_bom(self, project: Optional[str], phase: Optional[str],
                 version: Optional[str]) -> Optional[Dict[str, Any]]:
        """The BOM document with this identity; blank and absent compare equal."""
        with self.lock:
            row = self._connection().execute(
                "SELECT body FROM documents WHERE type = ?"
                " AND IFNULL(project, '') = ? AND IFNULL(phase, '') = ?"
                " AND IFNULL(version, '') = ?",
                (BOM, project or "", phase or "", version or ""),
            ).fetchone()
        return json.loads(row["body"]) if row else None

    def count(self, doc_type: Optional[str] = None, **filters) -> int:
        where, params = self._where(doc_type, filters)
        with self.lock:
            row = self._connection().execute(
                f"SELECT COUNT(*) AS n FROM documents{where}", params
            ).fetchone()
        return row["n"]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _indexed(self, doc: Dict[str, Any]) -> List[Optional[str]]:
        return [_column_value(doc.get(field)) for field in INDEXED_FIELDS]

    def insert(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a document and return it with its ``_id``.

        Raises:
            ValueError: If the document type is unknown
            sqlite3.IntegrityError: If a BOM with the same identity exists
        """
        doc_type = doc.get("type")
        if doc_type not in DOCUMENT_TYPES:
            raise ValueError(f"Unknown document type: {doc_type}")

        saved = dict(doc)
        saved.setdefault("_id", uuid4().hex)
        with self.transaction():
            self._connection().execute(
                "INSERT INTO documents (id, type, bom_id, join_key, project, phase, version, body)"
                " VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                [saved["_id"], doc_type, *self._indexed(saved), json.dumps(saved, default=str)],
            )
        return saved

    def update(self, doc_id: str, changes: Optional[Dict[str, Any]] = None,
               unset: Iterable[str] = ()) -> Optional[Dict[str, Any]]:
        """Merge ``changes`` into a document and drop the ``unset`` keys.

        Returns:
            The updated document, or None when no document has this id
        """
        with self.transaction():
            conn = self._connection()
            row = conn.execute("SELECT body FROM documents WHERE id = ?", (doc_id,)).fetchone()
            if row is None:
                return None

            doc = json.loads(row["body"])
            doc.update(changes or {})
            for key in unset:
                doc.pop(key, None)
            doc["_id"] = doc_id

            conn.execute(
                "UPDATE documents SET bom_id = ?, join_key = ?, project = ?, phase = ?,"
                " version = ?, body = ? WHERE id = ?",
                [*self._indexed(doc), json.dumps(doc, default=str), doc_id],
            )
        return doc

    def remove(self, doc_type: Optional[str] = None, **filters) -> int:
        """Delete matching documents and return how many were removed."""
        where, params = self._where(doc_type, filters)
        with self.transaction():
            cursor = self._connection().execute(f"DELETE FROM documents{where}", params)
        return cursor.rowcount

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def compact(self) -> None:
        """Rewrite the database file without free pages."""
        with self.lock:
            conn = self._connection()
            if self._depth:
                raise RuntimeError("Cannot compact inside a transaction")
            conn.execute("VACUUM")
        logger.debug(f"Database compaction completed: {self.path}")

    def _schedule_compaction(self) -> None:
        if not self.autocompact_interval or self.closed:
            return
        self._timer = threading.Timer(self.autocompact_interval, self._autocompact)
        self._timer.daemon = True
        self._timer.start()

    def _autocompact(self) -> None:
        with self.lock:
            if self.closed:
                return
            if not self._depth:
                try:
                    self.compact()
                except sqlite3.Error as e:
                    logger.error(f"Database compaction failed: {e}")
            self._schedule_compaction()

    def close(self) -> None:
        """Compact once more and release the connection.

        Raises:
            StoreClosed: If the store is already closed
        """
        with self.lock:
            conn = self._connection()
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            try:
                self.compact()
            finally:
                conn.close()
                self._conn = None
        logger.info(f"Database closed and compacted: {self.path}")

    def __enter__(self) -> "DocumentStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self.closed:
            self.close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"DocumentStore({str(self.path)!r}, {state})"
