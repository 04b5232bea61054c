from __future__ import annotations

"""
CBOR value codec (cbor2)
========================

Alternative value encoding for stores that are shared with tooling speaking
CBOR. Values are flattened to CBOR-native builtins with
`msgspec.to_builtins` (dataclasses and Structs become maps, bytes stay bytes)
and written with `cbor2` in canonical mode, so equal values give equal bytes.

On read the CBOR payload is loaded with `cbor2` and converted to the caller's
target type with `msgspec.convert`, which applies the same validation rules as
the msgpack codec.
"""

from typing import Any

import cbor2
import msgspec

from ..errors import DeserializationError, SerializationError, wrap

_BUILTIN_TYPES = (bytes, bytearray, memoryview)


class CborCodec:
    """cbor2-backed canonical CBOR codec."""

    name = "cbor"

    def encode(self, value: Any) -> bytes:
        try:
            plain = msgspec.to_builtins(value, builtin_types=_BUILTIN_TYPES)
            return cbor2.dumps(plain, canonical=True)
        except (TypeError, ValueError, OverflowError, cbor2.CBOREncodeError) as e:
            raise wrap(e, as_=SerializationError, codec=self.name, type=type(value).__name__) from e

    def decode(self, data: bytes, value_type: Any = Any) -> Any:
        try:
            obj = cbor2.loads(data)
        except (cbor2.CBORDecodeError, EOFError) as e:
            raise DeserializationError(
                str(e) or "truncated CBOR", codec=self.name
            ).with_cause(e)
        if value_type is Any:
            return obj
        try:
            return msgspec.convert(obj, type=value_type)
        except msgspec.ValidationError as e:
            raise wrap(
                e, as_=DeserializationError, codec=self.name,
                type=getattr(value_type, "__name__", repr(value_type)),
            ) from e


__all__ = ["CborCodec"]
