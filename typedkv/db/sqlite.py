from __future__ import annotations

"""
SQLite backend
==============

The default `KV` backend: one table of BLOB keys and values in a SQLite file
(or in memory). Standard library only.

    CREATE TABLE kv (k BLOB PRIMARY KEY, v BLOB NOT NULL) WITHOUT ROWID

SQLite compares BLOBs with memcmp, so `ORDER BY k` is the byte order the store
pages by. A prefix scan is the range `prefix <= k < prefix_upper_bound(prefix)`
(index friendly) with a `substr` check, which also covers prefixes that have no
upper bound.

Connections are opened in autocommit mode with `check_same_thread=False`; an
RLock per connection serializes statements, and a batch holds it from
`BEGIN IMMEDIATE` until COMMIT/ROLLBACK.

Read-only handles open the file as `mode=ro&immutable=1`, so SQLite neither
locks it nor touches the journal.
"""

import os
import sqlite3
import threading
from contextlib import contextmanager
from urllib.parse import quote
from typing import Any, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from ..errors import DatabaseError, ReadOnly
from .kv import Batch, prefix_upper_bound

DEFAULT_PRAGMAS = {
    "journal_mode": "WAL",
    "synchronous": "NORMAL",
    "temp_store": "MEMORY",
    "cache_size": -64 * 1024,  # KiB when negative
    "foreign_keys": "OFF",
}

PathLike = Union[str, bytes, "os.PathLike[str]", "os.PathLike[bytes]"]

MEMORY = ":memory:"

_SCHEMA = "CREATE TABLE IF NOT EXISTS kv (k BLOB PRIMARY KEY, v BLOB NOT NULL) WITHOUT ROWID"
_UPSERT = "INSERT OR REPLACE INTO kv (k, v) VALUES (?, ?)"
_DELETE = "DELETE FROM kv WHERE k = ?"


@contextmanager
def _sqlite_errors(op: str, key: Optional[bytes] = None):
    try:
        yield
    except sqlite3.Error as e:
        details = {"op": op, "backend": "sqlite"}
        if key is not None:
            details["key"] = bytes(key[:20])
        raise DatabaseError(str(e), **details).with_cause(e) from e


def _range_query(columns: str, prefix: bytes) -> Tuple[str, Sequence[Any]]:
    if not prefix:
        return f"SELECT {columns} FROM kv ORDER BY k", ()
    p = memoryview(prefix)
    hi = prefix_upper_bound(prefix)
    if hi is None:
        return (
            f"SELECT {columns} FROM kv WHERE k >= ? AND substr(k, 1, ?) = ? ORDER BY k",
            (p, len(prefix), p),
        )
    return (
        f"SELECT {columns} FROM kv WHERE k >= ? AND k < ? AND substr(k, 1, ?) = ? ORDER BY k",
        (p, memoryview(hi), len(prefix), p),
    )


def _strip_scheme(path: PathLike) -> str:
    s = os.fsdecode(path)
    if s.startswith("sqlite:///"):
        s = s[len("sqlite:///") :]
    return s or MEMORY


def _connect(
    path: str,
    *,
    pragmas: Optional[Mapping[str, object]],
    create: bool,
    readonly: bool,
) -> sqlite3.Connection:
    target, as_uri = path, False
    if path != MEMORY:
        if readonly:
            target, as_uri = f"file:{quote(path)}?mode=ro&immutable=1", True
        elif os.path.exists(path):
            pass
        elif not create:
            raise DatabaseError(
                "SQLite file not found", retryable=False, path=path, backend="sqlite"
            )
        else:
            os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)

    with _sqlite_errors("open"):
        conn = sqlite3.connect(
            target,
            isolation_level=None,  # autocommit; batches BEGIN explicitly
            check_same_thread=False,
            uri=as_uri,
        )
        if readonly:
            conn.execute("PRAGMA query_only = ON")
        else:
            for name, value in {**DEFAULT_PRAGMAS, **(pragmas or {})}.items():
                conn.execute(f"PRAGMA {name} = {value}")
            conn.execute(_SCHEMA)
    return conn


class SQLiteBatch:
    """Writes inside one IMMEDIATE transaction on the owning KV's connection."""

    __slots__ = ("_kv", "_active")

    def __init__(self, kv: "SQLiteKV") -> None:
        self._kv = kv
        self._active = False

    def __enter__(self) -> "SQLiteBatch":
        if self._active:
            raise RuntimeError("batch already open")
        self._kv._lock.acquire()
        try:
            self._kv._run("batch.begin", None, "BEGIN IMMEDIATE")
        except BaseException:
            self._kv._lock.release()
            raise
        self._active = True
        return self

    def _require_active(self) -> None:
        if not self._active:
            raise RuntimeError("batch not open")

    def put(self, key: bytes, value: bytes) -> None:
        self._require_active()
        self._kv._run("batch.put", key, _UPSERT, (memoryview(key), memoryview(value)))

    def delete(self, key: bytes) -> None:
        self._require_active()
        self._kv._run("batch.delete", key, _DELETE, (memoryview(key),))

    def _finish(self, stmt: str) -> None:
        if not self._active:
            return
        try:
            self._kv._run(f"batch.{stmt.lower()}", None, stmt)
        finally:
            self._active = False
            self._kv._lock.release()

    def commit(self) -> None:
        self._finish("COMMIT")

    def rollback(self) -> None:
        self._finish("ROLLBACK")

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        self._finish("COMMIT" if exc_type is None else "ROLLBACK")
        return None


class SQLiteKV:
    """`KV` over one sqlite3 connection. Build with `open_sqlite_kv`."""

    __slots__ = ("_conn", "_lock", "readonly", "path")

    def __init__(self, conn: sqlite3.Connection, *, readonly: bool = False, path: str = MEMORY) -> None:
        self._conn = conn
        self._lock = threading.RLock()
        self.readonly = readonly
        self.path = path

    def _run(self, op: str, key: Optional[bytes], sql: str, args: Sequence[Any] = ()) -> None:
        with self._lock, _sqlite_errors(op, key):
            self._conn.execute(sql, args)

    def _fetch(self, op: str, key: Optional[bytes], sql: str, args: Sequence[Any]) -> List[tuple]:
        with self._lock, _sqlite_errors(op, key):
            return self._conn.execute(sql, args).fetchall()

    def _write(self, op: str, key: Optional[bytes], sql: str, args: Sequence[Any] = ()) -> None:
        if self.readonly:
            raise ReadOnly(op)
        self._run(op, key, sql, args)

    # reads

    def get(self, key: bytes) -> Optional[bytes]:
        rows = self._fetch("get", key, "SELECT v FROM kv WHERE k = ?", (memoryview(key),))
        return bytes(rows[0][0]) if rows else None

    def has(self, key: bytes) -> bool:
        return bool(self._fetch("has", key, "SELECT 1 FROM kv WHERE k = ?", (memoryview(key),)))

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        sql, args = _range_query("k, v", prefix)
        for k, v in self._fetch("scan", prefix, sql, args):
            yield bytes(k), bytes(v)

    def iter_keys(self, prefix: bytes = b"") -> Iterator[bytes]:
        sql, args = _range_query("k", prefix)
        for (k,) in self._fetch("scan", prefix, sql, args):
            yield bytes(k)

    # writes

    def put(self, key: bytes, value: bytes) -> None:
        self._write("put", key, _UPSERT, (memoryview(key), memoryview(value)))

    def delete(self, key: bytes) -> None:
        self._write("delete", key, _DELETE, (memoryview(key),))

    def clear(self) -> None:
        self._write("clear", None, "DELETE FROM kv")

    def batch(self) -> Batch:
        if self.readonly:
            raise ReadOnly("batch")
        return SQLiteBatch(self)

    def close(self) -> None:
        with self._lock, _sqlite_errors("close"):
            self._conn.close()


def open_sqlite_kv(
    path: PathLike,
    *,
    pragmas: Optional[Mapping[str, object]] = None,
    create: bool = True,
    readonly: bool = False,
) -> SQLiteKV:
    """
    Open a SQLite KV from a file path, ":memory:" or a "sqlite:///" URI.

    `pragmas` override DEFAULT_PRAGMAS (ignored for read-only handles).
    `create=False` refuses to create a missing file; `readonly=True` requires
    an existing file and rejects every write with ReadOnly.
    """
    resolved = _strip_scheme(path)
    conn = _connect(resolved, pragmas=pragmas, create=create, readonly=readonly)
    return SQLiteKV(conn, readonly=readonly, path=resolved)


__all__ = [
    "SQLiteKV",
    "SQLiteBatch",
    "open_sqlite_kv",
    "DEFAULT_PRAGMAS",
]
