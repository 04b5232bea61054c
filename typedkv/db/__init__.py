from __future__ import annotations

"""
typedkv.db
==========

Thin facade for the byte-oriented key–value backends the store sits on.

Backends
--------
- SQLite (default, always available)
- RocksDB (optional; used if python-rocksdb is importable)

URIs
----
- "sqlite:///path/to/store.db"     → SQLite file
- "sqlite:///:memory:"             → in-memory SQLite (tests)
- "rocksdb:///path/to/dir"         → RocksDB (directory), if python-rocksdb is installed
- "memory://"                      → alias of "sqlite:///:memory:"
- Bare path heuristics:
    * endswith(".db"/".sqlite"/".sqlite3") → SQLite file
    * otherwise → RocksDB directory if available, else SQLite file

Example
-------
>>> from typedkv.db import open_kv
>>> kv = open_kv("memory://")
>>> kv.put(b"k", b"hello")
>>> kv.get(b"k")
b'hello'
"""

import os
from typing import Mapping, Optional, Tuple, Union

from ..errors import ConfigError, DependencyMissing
from . import rocksdb as _rocks_backend
from . import sqlite as _sqlite_backend
from .kv import KV, Batch, ReadOnlyKV

_SQLITE_SUFFIXES = (".db", ".sqlite", ".sqlite3")


def prefer_rocks() -> bool:
    """Return True if RocksDB backend is importable."""
    return _rocks_backend.rocks_available()


def parse_uri(uri: Union[str, "os.PathLike[str]"]) -> Tuple[str, str]:
    """
    Parse a DB URI into (backend, path).

    Returns:
        ("sqlite", path) or ("rocksdb", path) or ("memory", "")
    """
    u = os.fspath(uri).strip()
    if u.startswith("sqlite:///"):
        return ("sqlite", u[len("sqlite:///") :] or ":memory:")
    if u.startswith("rocksdb:///"):
        return ("rocksdb", u[len("rocksdb:///") :])
    if u.startswith("memory://") or u == ":memory:":
        return ("memory", "")
    if "://" in u:
        raise ConfigError(f"unsupported DB URI scheme in {u!r}", uri=u)
    if not u:
        raise ConfigError("empty DB path", uri=u)
    if u.lower().endswith(_SQLITE_SUFFIXES):
        return ("sqlite", u)
    if prefer_rocks():
        return ("rocksdb", u)
    return ("sqlite", u)


def open_kv(
    uri: Union[str, "os.PathLike[str]"],
    *,
    create: bool = True,
    readonly: bool = False,
    pragmas: Optional[Mapping[str, object]] = None,
) -> KV:
    """
    Open a KV database by URI or filesystem path. See module docstring for
    supported forms.

    Raises:
        ConfigError for invalid URIs.
        DependencyMissing if RocksDB is requested but not installed.
        DatabaseError if the backend fails to open.
    """
    backend, target = parse_uri(uri)

    if backend == "memory":
        return _sqlite_backend.open_sqlite_kv(":memory:", pragmas=pragmas)

    if backend == "sqlite":
        return _sqlite_backend.open_sqlite_kv(
            target, pragmas=pragmas, create=create, readonly=readonly
        )

    if not prefer_rocks():
        raise DependencyMissing("python-rocksdb", f"requested by {os.fspath(uri)!r}")
    return _rocks_backend.open_rocks_kv(target, create=create, readonly=readonly)


__all__ = [
    "KV",
    "ReadOnlyKV",
    "Batch",
    "open_kv",
    "parse_uri",
    "prefer_rocks",
]
