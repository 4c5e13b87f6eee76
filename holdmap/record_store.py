# holdmap/record_store.py
"""
Record store for basePictures / problems documents.

Responsibilities:
- RecordStore protocol consumed by the pipelines
- PostgresRecordStore: one psycopg2 connection, JSONB documents, tables
  created on first connect
- InMemoryRecordStore: dict-backed store for local runs and tests

Updates are shallow merges with last-write-wins semantics; there is no
read-modify-write transaction around a pipeline run.
"""

import copy
import json
import threading
from typing import Any, Dict, List, Optional, Protocol

import psycopg2
from psycopg2.extras import RealDictCursor

from .config import DB_HOST, DB_NAME, DB_PASSWORD, DB_PORT, DB_USER, RECORD_STORE
from .logger import console


class RecordStore(Protocol):
    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]: ...

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None: ...

    def update(self, collection: str, doc_id: str, partial: Dict[str, Any]) -> None: ...

    def delete(self, collection: str, doc_id: str) -> None: ...

    def list_children(self, collection: str, doc_id: str, subcollection: str) -> List[Dict[str, Any]]: ...

    def add_child(
        self,
        collection: str,
        doc_id: str,
        subcollection: str,
        child_id: str,
        data: Dict[str, Any],
    ) -> None: ...


class InMemoryRecordStore:
    """Children keep insertion order, which is also their iteration order."""

    def __init__(self):
        self._docs: Dict[tuple, Dict[str, Any]] = {}
        self._children: Dict[tuple, Dict[str, Dict[str, Any]]] = {}

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        doc = self._docs.get((collection, doc_id))
        return copy.deepcopy(doc) if doc is not None else None

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self._docs[(collection, doc_id)] = copy.deepcopy(data)

    def update(self, collection: str, doc_id: str, partial: Dict[str, Any]) -> None:
        doc = self._docs.get((collection, doc_id))
        if doc is None:
            raise KeyError(f"{collection}/{doc_id} does not exist")
        doc.update(copy.deepcopy(partial))

    def delete(self, collection: str, doc_id: str) -> None:
        self._docs.pop((collection, doc_id), None)
        for key in [k for k in self._children if k[:2] == (collection, doc_id)]:
            del self._children[key]

    def list_children(self, collection: str, doc_id: str, subcollection: str) -> List[Dict[str, Any]]:
        children = self._children.get((collection, doc_id, subcollection), {})
        return [copy.deepcopy(child) for child in children.values()]

    def add_child(
        self,
        collection: str,
        doc_id: str,
        subcollection: str,
        child_id: str,
        data: Dict[str, Any],
    ) -> None:
        key = (collection, doc_id, subcollection)
        self._children.setdefault(key, {})[child_id] = copy.deepcopy(data)


class PostgresRecordStore:
    """
    Documents as JSONB rows.

    Connection parameters default to the DB_* environment settings. The
    connection is opened lazily and reopened if it was closed.
    """

    def __init__(
        self,
        host: str = DB_HOST,
        port: int = DB_PORT,
        dbname: str = DB_NAME,
        user: str = DB_USER,
        password: str = DB_PASSWORD,
    ):
        self._params = dict(host=host, port=port, dbname=dbname, user=user, password=password)
        self._conn = None
        # Jobs run in worker threads and share one connection
        self._conn_lock = threading.Lock()

    def _get_connection(self):
        with self._conn_lock:
            if self._conn is not None and not self._conn.closed:
                return self._conn

            conn = psycopg2.connect(**self._params)
            conn.autocommit = True
            self._init_tables(conn)
            self._conn = conn
            console.log("[green]Postgres record store connected[/green]")
            return conn

    def _init_tables(self, conn) -> None:
        with conn.cursor() as cur:
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS records (
                    collection TEXT NOT NULL,
                    doc_id TEXT NOT NULL,
                    data JSONB NOT NULL,
                    updated_at TIMESTAMP DEFAULT NOW(),
                    PRIMARY KEY (collection, doc_id)
                );
                CREATE TABLE IF NOT EXISTS record_children (
                    seq SERIAL PRIMARY KEY,
                    collection TEXT NOT NULL,
                    doc_id TEXT NOT NULL,
                    subcollection TEXT NOT NULL,
                    child_id TEXT NOT NULL,
                    data JSONB NOT NULL,
                    UNIQUE (collection, doc_id, subcollection, child_id)
                );
                """
            )

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        conn = self._get_connection()
        with conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                "SELECT data FROM records WHERE collection = %s AND doc_id = %s",
                (collection, doc_id),
            )
            row = cur.fetchone()
        return row["data"] if row else None

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        conn = self._get_connection()
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO records (collection, doc_id, data)
                VALUES (%s, %s, %s::jsonb)
                ON CONFLICT (collection, doc_id) DO UPDATE
                SET data = EXCLUDED.data, updated_at = NOW()
                """,
                (collection, doc_id, json.dumps(data)),
            )

    def update(self, collection: str, doc_id: str, partial: Dict[str, Any]) -> None:
        conn = self._get_connection()
        with conn.cursor() as cur:
            cur.execute(
                """
                UPDATE records SET data = data || %s::jsonb, updated_at = NOW()
                WHERE collection = %s AND doc_id = %s
                """,
                (json.dumps(partial), collection, doc_id),
            )
            if cur.rowcount == 0:
                raise KeyError(f"{collection}/{doc_id} does not exist")

    def delete(self, collection: str, doc_id: str) -> None:
        conn = self._get_connection()
        with conn.cursor() as cur:
            cur.execute(
                "DELETE FROM record_children WHERE collection = %s AND doc_id = %s",
                (collection, doc_id),
            )
            cur.execute(
                "DELETE FROM records WHERE collection = %s AND doc_id = %s",
                (collection, doc_id),
            )

    def list_children(self, collection: str, doc_id: str, subcollection: str) -> List[Dict[str, Any]]:
        conn = self._get_connection()
        with conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                """
                SELECT data FROM record_children
                WHERE collection = %s AND doc_id = %s AND subcollection = %s
                ORDER BY seq
                """,
                (collection, doc_id, subcollection),
            )
            rows = cur.fetchall()
        return [row["data"] for row in rows]

    def add_child(
        self,
        collection: str,
        doc_id: str,
        subcollection: str,
        child_id: str,
        data: Dict[str, Any],
    ) -> None:
        conn = self._get_connection()
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO record_children (collection, doc_id, subcollection, child_id, data)
                VALUES (%s, %s, %s, %s, %s::jsonb)
                ON CONFLICT (collection, doc_id, subcollection, child_id) DO UPDATE
                SET data = EXCLUDED.data
                """,
                (collection, doc_id, subcollection, child_id, json.dumps(data)),
            )


def make_record_store(backend: str = RECORD_STORE) -> RecordStore:
    if backend == "postgres":
        return PostgresRecordStore()
    if backend == "memory":
        return InMemoryRecordStore()
    raise ValueError(f"unknown RECORD_STORE backend {backend!r}")
