"""
typedkv package.

A thin convenience layer over an embedded key–value store: numeric keys
encoded as fixed 6-byte storage keys, typed value serialization, and a paged,
filtered prefix scan.

Modules
-------
- key:      numeric key codec
- store:    the Store facade
- db:       byte-oriented KV backends (SQLite, optional RocksDB)
- encoding: value codecs (msgspec msgpack, cbor2 CBOR) and zero values
- config, errors, logging: ambient plumbing
"""

from __future__ import annotations

from .config import StoreConfig
from .errors import TypedKVError
from .key import Key, decode_key, encode_key, key_from_string, key_to_string
from .store import Store, open_store
from .version import __version__


def get_version() -> str:
    """Return the semantic version string for this package."""
    return __version__


__all__ = [
    "__version__",
    "get_version",
    "Key",
    "encode_key",
    "decode_key",
    "key_to_string",
    "key_from_string",
    "Store",
    "StoreConfig",
    "TypedKVError",
    "open_store",
]
