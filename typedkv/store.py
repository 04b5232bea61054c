from __future__ import annotations

"""
Store facade
============

Typed convenience operations over a byte-oriented KV backend.

Keys
----
Every keyed operation accepts:

- int   → numeric key, stored as the 6-byte form from `typedkv.key`
- str   → string key, stored as its UTF-8 bytes
- bytes → string key, stored verbatim

Numeric and string keys share one keyspace.

Values
------
`set`/`get`/`scan` go through the configured value codec (msgpack by default)
and decode into a caller-chosen `value_type`. `set_raw`/`get_raw` store and
return bytes verbatim.

Failure model
-------------
Data operations never raise for storage or codec failures. Each failure is
logged (key truncated to 20 bytes, hex) and appended to `Store.errors`, and
the call returns its "nothing happened" result:

- get      → (zero_value(value_type), True)
- get_raw  → None
- exists   → False
- scan     → the entry is skipped (or 0 if the scan itself fails)
- set / set_raw / delete / delete_all → no-op

A value that fails to decode is treated as absent *and deleted*.

Numeric key allocation
----------------------
`allocate_key()` hands out the next free numeric key. The counter starts at
max(existing numeric key) + 1 (0 for a store without numeric keys) and is
guarded by a lock. `delete_all()` resets it to 0.

Example
-------
>>> from typedkv import Store
>>> with Store.open("memory://") as st:
...     k = st.allocate_key()
...     st.set(k, {"name": "ada"})
...     st.get(k, dict)
({'name': 'ada'}, False)
"""

import os
import threading
from collections import deque
from dataclasses import fields, replace
from typing import (Any, Callable, Deque, Iterable, List, Optional, Tuple,
                    Union)

from .config import StoreConfig
from .db import open_kv
from .db.kv import KV
from .encoding import ValueCodec, get_codec, zero_value
from .errors import ConfigError, DeserializationError, NotFound, TypedKVError
from .key import MARKER, MAX_KEY, Key, decode_key, encode_key, is_numeric_key
from .logging import get_logger, with_fields

log = get_logger(__name__)

KeyLike = Union[int, str, bytes, bytearray, memoryview]
KeyFilter = Callable[[str], bool]
Visitor = Callable[[str, Any], Any]

# Keys in log lines are cut to this many bytes.
LOG_KEY_BYTES = 20


def storage_key(key: KeyLike) -> bytes:
    """Map an int/str/bytes key to the bytes stored in the backend."""
    if isinstance(key, bool):
        raise TypeError("bool is not a valid key")
    if isinstance(key, int):
        return encode_key(key)
    if isinstance(key, str):
        return key.encode("utf-8", "surrogateescape")
    if isinstance(key, (bytes, bytearray, memoryview)):
        return bytes(key)
    raise TypeError(f"unsupported key type: {type(key).__name__}")


def key_string(raw: bytes) -> str:
    """Stored key bytes as the str handed to scan filters and visitors."""
    return raw.decode("utf-8", "surrogateescape")


def page_window(count: int, page: int, page_size: int) -> slice:
    """
    Slice selecting page `page` of `page_size` items out of `count`.

    A start below 0 or past the end falls back to 0; an end past the end (or
    before the start) is clamped to `count`.
    """
    begin = page * page_size
    if begin < 0 or begin > count:
        begin = 0
    end = begin + page_size
    if end > count or end < begin:
        end = count
    return slice(begin, end)


def _match_all(_key: str) -> bool:
    return True


class Store:
    """Typed facade over a `typedkv.db.kv.KV` backend."""

    def __init__(
        self,
        kv: KV,
        *,
        codec: Union[str, ValueCodec, None] = None,
        name: str = "",
        error_history: int = StoreConfig.error_history,
    ) -> None:
        if codec is None or isinstance(codec, str):
            codec = get_codec(codec or StoreConfig.codec)
        self._kv = kv
        self._codec: ValueCodec = codec
        self.name = name or str(getattr(kv, "path", "") or "kv")
        self._log = with_fields(log, db=self.name)
        self._errors: Deque[TypedKVError] = deque(maxlen=max(0, error_history))
        self._key_lock = threading.Lock()
        self._next_key = self._recover_next_key()

    @classmethod
    def open(
        cls,
        path_or_uri: Union[str, "os.PathLike[str]", None] = None,
        config: Optional[StoreConfig] = None,
        **overrides: Any,
    ) -> "Store":
        """
        Open a store from a filesystem path / URI plus options.

        `config` defaults to `StoreConfig()`; keyword overrides replace its
        fields. Raises ConfigError or DatabaseError if the backend cannot be
        opened; this is the only Store call that raises for storage errors.
        """
        cfg = config or StoreConfig()
        unknown = sorted(set(overrides) - {f.name for f in fields(StoreConfig)})
        if unknown:
            raise ConfigError("unknown config keys", keys=unknown)
        if path_or_uri is not None:
            overrides["uri"] = os.fspath(path_or_uri)
        try:
            cfg = replace(cfg, **overrides)
            cfg.validate()
        except (TypeError, ValueError) as e:
            raise ConfigError(f"invalid config value: {e}") from e

        kv = open_kv(cfg.uri, create=cfg.create, readonly=cfg.readonly, pragmas=cfg.pragmas)
        store = cls(kv, codec=cfg.codec, name=cfg.uri, error_history=cfg.error_history)
        store._log.debug(
            "store opened",
            extra={"backend": type(kv).__name__, "codec": store.codec.name, "next_key": store.next_key},
        )
        return store

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def kv(self) -> KV:
        return self._kv

    @property
    def codec(self) -> ValueCodec:
        return self._codec

    def close(self) -> None:
        try:
            self._kv.close()
        except TypedKVError as e:
            self._report("close", None, e)

    def __enter__(self) -> "Store":
        return self

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        self.close()
        return None

    def __repr__(self) -> str:
        return f"Store(name={self.name!r}, codec={self._codec.name!r})"

    # ------------------------------------------------------------------
    # Error side channel
    # ------------------------------------------------------------------

    @property
    def errors(self) -> Tuple[TypedKVError, ...]:
        """Most recent swallowed failures, oldest first."""
        return tuple(self._errors)

    @property
    def last_error(self) -> Optional[TypedKVError]:
        return self._errors[-1] if self._errors else None

    def drain_errors(self) -> List[TypedKVError]:
        """Return and forget the recorded failures."""
        out = list(self._errors)
        self._errors.clear()
        return out

    def _report(
        self,
        op: str,
        key: Optional[bytes],
        err: TypedKVError,
        *,
        warn: bool = False,
    ) -> None:
        short = key[:LOG_KEY_BYTES] if key is not None else None
        err = err.with_context(op=op, db=self.name, key=short)
        self._errors.append(err)
        level = self._log.warning if warn else self._log.error
        level("db error", extra={"op": op, "key": short, "err": str(err)})

    # ------------------------------------------------------------------
    # Numeric key allocation
    # ------------------------------------------------------------------

    def _recover_next_key(self) -> int:
        highest = -1
        try:
            for raw in self._kv.iter_keys(MARKER):
                if is_numeric_key(raw):
                    highest = max(highest, decode_key(raw))
        except TypedKVError as e:
            self._report("recover", None, e)
        return highest + 1

    @property
    def next_key(self) -> int:
        """The key the next `allocate_key()` call will return."""
        with self._key_lock:
            return self._next_key

    def allocate_key(self) -> Key:
        """Reserve and return a fresh numeric key. Thread-safe."""
        with self._key_lock:
            k = self._next_key
            if k > MAX_KEY:
                raise OverflowError("numeric keyspace exhausted")
            self._next_key = k + 1
        return Key(k)

    # ------------------------------------------------------------------
    # Basic manipulation
    # ------------------------------------------------------------------

    def exists(self, key: KeyLike) -> bool:
        k = storage_key(key)
        try:
            return self._kv.has(k)
        except TypedKVError as e:
            self._report("exists", k, e)
            return False

    def delete(self, key: KeyLike) -> None:
        k = storage_key(key)
        try:
            self._kv.delete(k)
        except TypedKVError as e:
            self._report("delete", k, e)

    def delete_all(self) -> None:
        """Remove every entry and reset numeric allocation to 0."""
        with self._key_lock:
            self._next_key = 0
        try:
            self._kv.clear()
        except TypedKVError as e:
            self._report("delete_all", None, e)

    # ------------------------------------------------------------------
    # Get
    # ------------------------------------------------------------------

    def get(self, key: KeyLike, value_type: Any = Any) -> Tuple[Any, bool]:
        """
        Fetch and decode the value at `key` into `value_type`.

        Returns (value, not_found). On a miss, a backend failure or a value
        that does not decode, returns (zero_value(value_type), True); the
        undecodable entry is deleted.
        """
        k = storage_key(key)
        try:
            data = self._kv.get(k)
        except TypedKVError as e:
            self._report("get", k, e)
            return zero_value(value_type), True
        if data is None:
            return zero_value(value_type), True

        try:
            return self._codec.decode(data, value_type), False
        except DeserializationError as e:
            self._report("get", k, e)
            self._drop_corrupt(k)
            return zero_value(value_type), True

    def _drop_corrupt(self, k: bytes) -> None:
        try:
            self._kv.delete(k)
        except TypedKVError as e:
            self._report("delete", k, e)

    def get_raw(self, key: KeyLike) -> Optional[bytes]:
        """Stored bytes at `key`, undecoded; None when absent."""
        k = storage_key(key)
        try:
            return self._kv.get(k)
        except TypedKVError as e:
            self._report("get_raw", k, e)
            return None

    # ------------------------------------------------------------------
    # Set
    # ------------------------------------------------------------------

    def set(self, key: KeyLike, value: Any) -> None:
        """Encode `value` with the store codec and write it at `key`."""
        k = storage_key(key)
        try:
            data = self._codec.encode(value)
        except TypedKVError as e:
            self._report("set", k, e)
            return
        self._put(k, data, "set")

    def set_raw(self, key: KeyLike, data: bytes) -> None:
        self._put(storage_key(key), bytes(data), "set_raw")

    def _put(self, k: bytes, data: bytes, op: str) -> None:
        try:
            self._kv.put(k, data)
        except TypedKVError as e:
            self._report(op, k, e)

    # ------------------------------------------------------------------
    # Scan
    # ------------------------------------------------------------------

    def scan(
        self,
        prefix: Union[str, bytes],
        page: int,
        page_size: int,
        filter: Optional[KeyFilter],
        visit: Visitor,
        value_type: Any = Any,
    ) -> int:
        """
        Visit the decoded values of keys under `prefix`.

        `filter(key_str)` picks keys (None picks all); the return value is the
        number of picked keys, whatever the page. With `page_size` != 0 the
        picked keys are sorted bytewise and only the window
        [page*page_size, page*page_size + page_size) is visited (see
        `page_window` for clamping). With `page_size` == 0 every picked key is
        visited in backend order.

        `visit(key_str, value)` is called per entry. Entries that vanish or do
        not decode are logged and skipped.
        """
        p = storage_key(prefix)
        match = filter or _match_all
        entries: Iterable[Tuple[bytes, bytes]]
        picked: List[bytes] = []

        try:
            if page_size == 0:
                # every picked entry is visited; one prefix read, no point gets
                entries = [(k, v) for k, v in self._kv.iter_prefix(p) if match(key_string(k))]
                total = len(entries)
            else:
                picked = [k for k in self._kv.iter_keys(p) if match(key_string(k))]
                total = len(picked)
        except TypedKVError as e:
            self._report("scan", p, e)
            return 0

        if page_size != 0:
            picked.sort()
            entries = self._load(picked[page_window(total, page, page_size)])

        for k, data in entries:
            value = self._decode_for_scan(k, data, value_type)
            if value is not _SKIP:
                visit(key_string(k), value)
        return total

    def _load(self, keys: Iterable[bytes]) -> Iterable[Tuple[bytes, bytes]]:
        for k in keys:
            try:
                data = self._kv.get(k)
            except TypedKVError as e:
                self._report("scan", k, e)
                continue
            if data is None:
                self._report("scan", k, NotFound(key_string(k)))
                continue
            yield k, data

    def _decode_for_scan(self, k: bytes, data: bytes, value_type: Any) -> Any:
        try:
            return self._codec.decode(data, value_type)
        except DeserializationError as e:
            self._report("scan", k, e, warn=True)
            return _SKIP


_SKIP = object()


def open_store(
    path_or_uri: Union[str, "os.PathLike[str]", None] = None,
    config: Optional[StoreConfig] = None,
    **overrides: Any,
) -> Store:
    """Alias of `Store.open`."""
    return Store.open(path_or_uri, config, **overrides)


__all__ = [
    "Store",
    "open_store",
    "storage_key",
    "key_string",
    "page_window",
    "KeyLike",
    "LOG_KEY_BYTES",
]
