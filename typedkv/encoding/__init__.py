"""
typedkv.encoding
================

Pluggable value encoding for the store facade.

A codec turns typed Python values into bytes and back:

- msgpack.py: msgspec MessagePack, typed decoding (default)
- cbor.py:    cbor2 canonical CBOR, typed conversion via msgspec
- zero.py:    zero values for target types (what a miss decodes to)

Raw accessors on the store bypass codecs entirely.
"""

from __future__ import annotations

from typing import Any, Dict, Protocol, runtime_checkable

from ..errors import ConfigError
from .cbor import CborCodec
from .msgpack import MsgpackCodec
from .zero import zero_value


@runtime_checkable
class ValueCodec(Protocol):
    """Reversible byte serialization for arbitrary typed values."""

    name: str

    def encode(self, value: Any) -> bytes:
        """Serialize `value`; raises SerializationError."""
        ...

    def decode(self, data: bytes, value_type: Any = Any) -> Any:
        """Deserialize into `value_type`; raises DeserializationError."""
        ...


_CODECS: Dict[str, ValueCodec] = {
    MsgpackCodec.name: MsgpackCodec(),
    CborCodec.name: CborCodec(),
}

DEFAULT_CODEC = MsgpackCodec.name


def get_codec(name: str) -> ValueCodec:
    """Look up a registered codec by name ("msgpack", "cbor")."""
    try:
        return _CODECS[name.strip().lower()]
    except KeyError:
        raise ConfigError(
            f"unknown value codec {name!r}", available=sorted(_CODECS)
        ) from None


def register_codec(codec: ValueCodec) -> None:
    """Make a custom codec available to `get_codec` and config files."""
    _CODECS[codec.name.strip().lower()] = codec


__all__ = [
    "ValueCodec",
    "MsgpackCodec",
    "CborCodec",
    "DEFAULT_CODEC",
    "get_codec",
    "register_codec",
    "zero_value",
]
