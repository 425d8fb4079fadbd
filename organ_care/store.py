"""Document store over sqlite.

Three named collections hold JSON documents addressed by id. Writes go through
``WriteBatch`` so multi-document changes commit in a single transaction, and
every committed write pushes the full affected collections to subscribers.
"""
import json
import logging
import re
import sqlite3
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .db import connect, get_db_path
from .schema_sql import SCHEMA_SQL

logger = logging.getLogger(__name__)

COLLECTIONS = ("organs", "maintenances", "deletedItems")

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

OnNext = Callable[[List[Dict[str, Any]]], None]
OnError = Callable[[Exception], None]


class StorageError(Exception):
    """A read or write against the document store failed."""


def json_dumps(obj) -> str:
    return json.dumps(obj, ensure_ascii=False)


def _check_collection(collection: str) -> None:
    if collection not in COLLECTIONS:
        raise ValueError(f"Coleção desconhecida: {collection}")


class WriteBatch:
    """Ordered set/delete operations committed all-or-nothing."""

    def __init__(self, store: "DocumentStore"):
        self._store = store
        self._ops: List[Tuple[str, str, str, Optional[Dict[str, Any]]]] = []

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> "WriteBatch":
        _check_collection(collection)
        self._ops.append(("set", collection, doc_id, data))
        return self

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        _check_collection(collection)
        self._ops.append(("delete", collection, doc_id, None))
        return self

    def __len__(self) -> int:
        return len(self._ops)

    def commit(self) -> None:
        self._store._commit(self._ops)


class DocumentStore:
    def __init__(self, db_path: Optional[Union[str, Path]] = None):
        self.db_path = db_path or get_db_path()
        self._subscribers: Dict[str, List[Tuple[OnNext, Optional[OnError]]]] = {c: [] for c in COLLECTIONS}
        self._lock = threading.RLock()

    def ensure_schema(self) -> None:
        with connect(self.db_path) as con:
            con.executescript(SCHEMA_SQL)
            con.commit()

    # ---------------------- Reads ----------------------

    def _read(self, sql: str, params: tuple) -> List[Dict[str, Any]]:
        try:
            with connect(self.db_path) as con:
                rows = con.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e
        return [json.loads(r["data"]) for r in rows]

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        _check_collection(collection)
        docs = self._read("SELECT data FROM documents WHERE collection=? AND id=?", (collection, doc_id))
        return docs[0] if docs else None

    def list(self, collection: str) -> List[Dict[str, Any]]:
        _check_collection(collection)
        return self._read("SELECT data FROM documents WHERE collection=? ORDER BY rowid", (collection,))

    def query(self, collection: str, field: str, value: Any) -> List[Dict[str, Any]]:
        """Documents of ``collection`` whose top-level ``field`` equals ``value``."""
        _check_collection(collection)
        if not _FIELD_RE.match(field):
            raise ValueError(f"Campo inválido: {field}")
        return self._read(
            "SELECT data FROM documents WHERE collection=? AND json_extract(data, ?) = ? ORDER BY rowid",
            (collection, f"$.{field}", value),
        )

    # ---------------------- Writes ----------------------

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self.batch().set(collection, doc_id, data).commit()

    def delete(self, collection: str, doc_id: str) -> None:
        self.batch().delete(collection, doc_id).commit()

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    def _apply(self, cur, op) -> None:
        action, collection, doc_id, data = op
        if action == "set":
            cur.execute(
                """
                INSERT INTO documents(collection, id, data) VALUES (?,?,?)
                ON CONFLICT(collection, id) DO UPDATE SET
                  data=excluded.data,
                  updated_at=datetime('now')
                """,
                (collection, doc_id, json_dumps(data)),
            )
        else:
            cur.execute("DELETE FROM documents WHERE collection=? AND id=?", (collection, doc_id))

    def _commit(self, ops) -> None:
        if not ops:
            return
        with self._lock:
            try:
                with connect(self.db_path) as con:
                    cur = con.cursor()
                    try:
                        for op in ops:
                            self._apply(cur, op)
                        con.commit()
                    except sqlite3.Error:
                        con.rollback()
                        raise
            except sqlite3.Error as e:
                raise StorageError(str(e)) from e
            touched = []
            for _, collection, _, _ in ops:
                if collection not in touched:
                    touched.append(collection)
            for collection in touched:
                self._notify(collection)

    # ---------------------- Subscriptions ----------------------

    def subscribe(self, collection: str, on_next: OnNext, on_error: Optional[OnError] = None) -> Callable[[], None]:
        """Push the full collection now and after every committed write to it.

        Returns a callable that removes the subscription.
        """
        _check_collection(collection)
        entry = (on_next, on_error)
        with self._lock:
            self._subscribers[collection].append(entry)
            self._push(collection, [entry])

        def unsubscribe() -> None:
            with self._lock:
                if entry in self._subscribers[collection]:
                    self._subscribers[collection].remove(entry)

        return unsubscribe

    def _notify(self, collection: str) -> None:
        subscribers = list(self._subscribers[collection])
        if subscribers:
            self._push(collection, subscribers)

    def _push(self, collection: str, subscribers) -> None:
        try:
            docs = self.list(collection)
        except StorageError as e:
            logger.error("Falha ao ler a coleção %s para os assinantes: %s", collection, e)
            for _, on_error in subscribers:
                if on_error is not None:
                    on_error(e)
            return
        for on_next, _ in subscribers:
            on_next(list(docs))
