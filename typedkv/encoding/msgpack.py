from __future__ import annotations

"""
MessagePack value codec (msgspec)
=================================

Default value encoding for `Store.get`/`Store.set`. Values are encoded with
`msgspec.msgpack` and decoded *against the caller's target type*, so a payload
that does not fit the type (wrong shape, missing fields, wrong scalar kinds)
fails validation and is reported as a DeserializationError.

Supported target types are whatever msgspec supports: builtins, containers and
their generics, dataclasses, TypedDict, msgspec.Struct, enums, datetimes, ...
"""

from functools import lru_cache
from typing import Any

import msgspec

from ..errors import DeserializationError, SerializationError, wrap

_ENCODER = msgspec.msgpack.Encoder()


@lru_cache(maxsize=256)
def _decoder(value_type: Any) -> msgspec.msgpack.Decoder:
    # TypeError here means msgspec cannot describe the type; that is a caller bug,
    # not stored-data corruption, so it propagates.
    return msgspec.msgpack.Decoder(value_type)


class MsgpackCodec:
    """msgspec-backed msgpack codec."""

    name = "msgpack"

    def encode(self, value: Any) -> bytes:
        try:
            return _ENCODER.encode(value)
        except (TypeError, ValueError, OverflowError) as e:
            raise wrap(e, as_=SerializationError, codec=self.name, type=type(value).__name__) from e

    def decode(self, data: bytes, value_type: Any = Any) -> Any:
        dec = _decoder(value_type)
        try:
            return dec.decode(data)
        except msgspec.DecodeError as e:
            raise wrap(e, as_=DeserializationError, codec=self.name, type=_type_name(value_type)) from e


def _type_name(tp: Any) -> str:
    return getattr(tp, "__name__", None) or repr(tp)


__all__ = ["MsgpackCodec"]
