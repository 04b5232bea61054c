from __future__ import annotations

"""
RocksDB backend (optional)
==========================

Same `KV` surface as the SQLite backend, on python-rocksdb. Installed with
the `rocksdb` extra; without it `open_rocks_kv` raises DependencyMissing and
`typedkv.db.open_kv` keeps bare paths on SQLite.

- Prefix scans seek to the prefix and stop at the first key outside it.
- Batches collect into a `rocksdb.WriteBatch` written on commit.
- Options: LRU block cache, Bloom filter, LZ4. No fixed-length prefix
  extractor, since store prefixes have arbitrary lengths.
- python-rocksdb exceptions share no base class; anything it raises is
  re-raised as DatabaseError.
"""

import os
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Tuple, Union

try:
    import rocksdb  # type: ignore
except ImportError:
    rocksdb = None  # type: ignore

from ..errors import DatabaseError, DependencyMissing, ReadOnly
from .kv import Batch

PathLike = Union[str, bytes, "os.PathLike[str]", "os.PathLike[bytes]"]

INSTALL_HINT = "install librocksdb, then `pip install typedkv[rocksdb]`"

BLOCK_CACHE_BYTES = 64 * 1024 * 1024
BLOOM_BITS_PER_KEY = 10


def rocks_available() -> bool:
    return rocksdb is not None


@contextmanager
def _engine_errors(op: str, key: Optional[bytes] = None):
    try:
        yield
    except (DatabaseError, RuntimeError):
        raise
    except Exception as e:
        details = {"op": op, "backend": "rocksdb"}
        if key is not None:
            details["key"] = bytes(key[:20])
        raise DatabaseError(str(e) or type(e).__name__, **details).with_cause(e) from e


class RocksBatch:
    __slots__ = ("_kv", "_wb")

    def __init__(self, kv: "RocksKV") -> None:
        self._kv = kv
        self._wb: Any = None

    def __enter__(self) -> "RocksBatch":
        if self._wb is not None:
            raise RuntimeError("batch already open")
        self._wb = rocksdb.WriteBatch()
        return self

    def _pending(self) -> Any:
        if self._wb is None:
            raise RuntimeError("batch not open")
        return self._wb

    def put(self, key: bytes, value: bytes) -> None:
        self._pending().put(key, value)

    def delete(self, key: bytes) -> None:
        self._pending().delete(key)

    def commit(self) -> None:
        wb, self._wb = self._wb, None
        if wb is not None:
            with _engine_errors("batch.commit"):
                self._kv._handle().write(wb)

    def rollback(self) -> None:
        self._wb = None

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        if exc_type is None:
            self.commit()
        else:
            self.rollback()
        return None


class RocksKV:
    """A python-rocksdb `DB` behind the `KV` protocol."""

    __slots__ = ("_db", "readonly", "path")

    def __init__(self, db: Any, *, readonly: bool = False, path: str = "") -> None:
        self._db = db
        self.readonly = readonly
        self.path = path

    def _handle(self) -> Any:
        if self._db is None:
            raise DatabaseError("RocksDB handle is closed", retryable=False, backend="rocksdb")
        return self._db

    def _writable(self, op: str) -> Any:
        if self.readonly:
            raise ReadOnly(op)
        return self._handle()

    def get(self, key: bytes) -> Optional[bytes]:
        db = self._handle()
        with _engine_errors("get", key):
            value = db.get(key)
        return None if value is None else bytes(value)

    def has(self, key: bytes) -> bool:
        # key_may_exist() is a Bloom hint only
        return self.get(key) is not None

    def _seek(self, it: Any, prefix: bytes) -> Any:
        if prefix:
            it.seek(prefix)
        else:
            it.seek_to_first()
        return it

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        db = self._handle()
        with _engine_errors("scan", prefix):
            for k, v in self._seek(db.iteritems(), prefix):
                if not k.startswith(prefix):
                    return
                yield bytes(k), bytes(v)

    def iter_keys(self, prefix: bytes = b"") -> Iterator[bytes]:
        db = self._handle()
        with _engine_errors("scan", prefix):
            for k in self._seek(db.iterkeys(), prefix):
                if not k.startswith(prefix):
                    return
                yield bytes(k)

    def put(self, key: bytes, value: bytes) -> None:
        db = self._writable("put")
        with _engine_errors("put", key):
            db.put(key, value)

    def delete(self, key: bytes) -> None:
        db = self._writable("delete")
        with _engine_errors("delete", key):
            db.delete(key)

    def clear(self) -> None:
        self._writable("clear")
        with RocksBatch(self) as b:
            for k in list(self.iter_keys()):
                b.delete(k)

    def batch(self) -> Batch:
        self._writable("batch")
        return RocksBatch(self)

    def close(self) -> None:
        # python-rocksdb closes the DB (and releases its LOCK) when the handle is collected
        self._db = None


def default_options() -> Any:
    opts = rocksdb.Options()
    opts.create_if_missing = True
    opts.max_open_files = 512
    opts.compression = rocksdb.CompressionType.lz4_compression
    opts.table_factory = rocksdb.BlockBasedTableFactory(
        block_cache=rocksdb.LRUCache(BLOCK_CACHE_BYTES),
        filter_policy=rocksdb.BloomFilterPolicy(BLOOM_BITS_PER_KEY),
        whole_key_filtering=True,
    )
    return opts


def open_rocks_kv(
    path: PathLike,
    *,
    create: bool = True,
    readonly: bool = False,
    options: Any = None,
) -> RocksKV:
    """
    Open the RocksDB directory at `path`.

    Raises DependencyMissing without python-rocksdb, DatabaseError when the
    directory is missing (and `create` is False) or the engine refuses it.
    """
    if not rocks_available():
        raise DependencyMissing("python-rocksdb", INSTALL_HINT)

    db_path = os.fsdecode(path)
    if not os.path.isdir(db_path):
        if readonly or not create:
            raise DatabaseError(
                "RocksDB directory not found", retryable=False, path=db_path, backend="rocksdb"
            )
        os.makedirs(db_path, exist_ok=True)

    with _engine_errors("open"):
        db = rocksdb.DB(db_path, options or default_options(), read_only=readonly)
    return RocksKV(db, readonly=readonly, path=db_path)


__all__ = [
    "RocksKV",
    "RocksBatch",
    "open_rocks_kv",
    "rocks_available",
    "default_options",
]
