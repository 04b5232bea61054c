from __future__ import annotations

"""
KV interface
============

What `Store` needs from a storage engine, as structural Protocols. The SQLite
and RocksDB backends satisfy them; so does any object with the same methods
(tests use small doubles).

Rules every backend follows
---------------------------
- Keys and values are `bytes`; keys order by plain byte comparison.
- A missing key is `None` from `get`, never an exception.
- `iter_keys(prefix)` yields keys only, so a caller can filter on keys before
  paying for value reads. `b""` means every key.
- Engine failures are raised as `typedkv.errors.DatabaseError` with the engine
  exception as `cause`; writes on a read-only handle raise `ReadOnly`.

Batches
-------
>>> with kv.batch() as b:
...     b.put(b"user:1", b"...")
...     b.delete(b"user:0")

All writes in the block land together, or none do if the block raises.
"""

from typing import Iterator, Optional, Protocol, Tuple, runtime_checkable


@runtime_checkable
class ReadOnlyKV(Protocol):
    def get(self, key: bytes) -> Optional[bytes]:
        ...

    def has(self, key: bytes) -> bool:
        ...

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        """(key, value) pairs under `prefix`, ascending by key."""
        ...

    def iter_keys(self, prefix: bytes = b"") -> Iterator[bytes]:
        """Keys under `prefix`, ascending."""
        ...

    def close(self) -> None:
        ...


@runtime_checkable
class Batch(Protocol):
    """Atomic group of writes; commits on clean exit, rolls back on error."""

    def put(self, key: bytes, value: bytes) -> None: ...
    def delete(self, key: bytes) -> None: ...
    def commit(self) -> None: ...
    def rollback(self) -> None: ...

    def __enter__(self) -> "Batch": ...
    def __exit__(self, exc_type, exc, tb) -> Optional[bool]: ...


@runtime_checkable
class KV(ReadOnlyKV, Protocol):
    def put(self, key: bytes, value: bytes) -> None:
        """Insert or overwrite."""
        ...

    def delete(self, key: bytes) -> None:
        """No-op when the key is absent."""
        ...

    def clear(self) -> None:
        """Drop every entry."""
        ...

    def batch(self) -> Batch:
        ...


# ---------------------------------------------------------------------------
# Helpers usable with any backend
# ---------------------------------------------------------------------------


def prefix_upper_bound(prefix: bytes) -> Optional[bytes]:
    """
    Smallest key greater than every key starting with `prefix`, for range
    queries of the form `prefix <= k < bound`. None when unbounded (empty
    prefix, or all 0xFF bytes).

    >>> prefix_upper_bound(b"ab\\x01")
    b'ab\\x02'
    >>> prefix_upper_bound(b"a\\xff")
    b'b'
    """
    trimmed = prefix.rstrip(b"\xff")
    if not trimmed:
        return None
    return trimmed[:-1] + bytes([trimmed[-1] + 1])


__all__ = [
    "ReadOnlyKV",
    "KV",
    "Batch",
    "prefix_upper_bound",
]
