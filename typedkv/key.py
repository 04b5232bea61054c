from __future__ import annotations

"""
Numeric key codec
=================

Numeric record identifiers are 32-bit unsigned integers. In the store they are
written as a fixed 6-byte key so they can share one keyspace with arbitrary
string keys:

    b"@k" | u32 little-endian

The 2-byte marker tells numeric keys apart from string keys. Nothing stops a
string key from spelling the same six bytes; callers own that namespace.

Decoding is lossy on purpose: anything that is not a well-formed numeric key
(wrong length, wrong marker, None) decodes to 0, which is indistinguishable
from a real key 0. Use `is_numeric_key` when the difference matters.

>>> encode_key(0x12345678)
b'@kxV4\\x12'
>>> decode_key(encode_key(7))
7
>>> key_from_string("nope")
0
"""

from typing import Optional, Union

MARKER = b"@k"
KEY_LEN = len(MARKER) + 4
MAX_KEY = 0xFFFFFFFF

BytesLike = Union[bytes, bytearray, memoryview]


def encode_key(key: int) -> bytes:
    """Marker followed by the key as u32 little-endian."""
    if not (0 <= key <= MAX_KEY):
        raise ValueError(f"key out of u32 range: {key}")
    return MARKER + int(key).to_bytes(4, "little")


def is_numeric_key(data: Optional[BytesLike]) -> bool:
    if data is None or len(data) != KEY_LEN:
        return False
    return bytes(data[: len(MARKER)]) == MARKER


def decode_key(data: Optional[BytesLike]) -> int:
    """Inverse of `encode_key`; foreign or malformed bytes decode to 0."""
    if not is_numeric_key(data):
        return 0
    return int.from_bytes(bytes(data[len(MARKER) :]), "little")  # type: ignore[index]


def key_to_string(key: int) -> str:
    return str(int(key))


def key_from_string(s: str) -> int:
    """
    Parse a base-10 key. Empty, signed, non-decimal and out-of-range input
    all yield 0.
    """
    if not s or not s.isascii() or not s.isdigit():
        return 0
    n = int(s, 10)
    return n if n <= MAX_KEY else 0


class Key(int):
    """A numeric key: an int whose str() is base-10 and .bytes() the storage form."""

    __slots__ = ()

    def __new__(cls, value: int = 0) -> "Key":
        if not (0 <= int(value) <= MAX_KEY):
            raise ValueError(f"key out of u32 range: {value}")
        return super().__new__(cls, value)

    @classmethod
    def from_bytes_key(cls, data: Optional[BytesLike]) -> "Key":
        return cls(decode_key(data))

    @classmethod
    def parse(cls, s: str) -> "Key":
        return cls(key_from_string(s))

    def bytes(self) -> bytes:
        return encode_key(self)

    def __str__(self) -> str:
        return key_to_string(self)

    def __repr__(self) -> str:
        return f"Key({int(self)})"


__all__ = [
    "MARKER",
    "KEY_LEN",
    "MAX_KEY",
    "Key",
    "encode_key",
    "decode_key",
    "is_numeric_key",
    "key_to_string",
    "key_from_string",
]
