from __future__ import annotations

"""
Zero values for target types
============================

`Store.get` and `Store.scan` decode into a caller-chosen type. On a miss (or a
corrupt entry) the caller still receives a value of that type's *zero*:

- Any / Optional[...] / unions / None          -> None
- builtins and concrete containers             -> T()  (0, "", b"", False, [], {} ...)
- list[int], dict[str, X], tuple[...] ...      -> origin()
- dataclasses / msgspec.Struct                 -> T(**{required: zero(field_type)})
- anything that cannot be built without args   -> None

A record whose constructor or `__post_init__` rejects the zeroed fields also
yields None.
"""

import dataclasses
import types
import typing
from typing import Any, Dict, FrozenSet, Optional

import msgspec

_UNION_ORIGINS = {typing.Union, getattr(types, "UnionType", typing.Union)}


def zero_value(value_type: Any) -> Any:
    """Return the zero value for `value_type` (see module docstring)."""
    return _zero(value_type, frozenset())


def _zero(tp: Any, seen: FrozenSet[Any]) -> Any:
    if tp is Any or tp is None or tp is type(None):
        return None

    # NewType("UserId", int) -> zero of int
    supertype = getattr(tp, "__supertype__", None)
    if supertype is not None:
        return _zero(supertype, seen)

    origin = typing.get_origin(tp)
    if origin is typing.Annotated:
        return _zero(typing.get_args(tp)[0], seen)
    if origin in _UNION_ORIGINS:
        return None
    if origin is not None:
        return _construct(origin)

    if not isinstance(tp, type):
        return None
    if tp in seen:
        # self-referential record; the nested field stays empty
        return None
    seen = seen | {tp}

    if issubclass(tp, msgspec.Struct):
        kwargs = {
            f.name: _zero(f.type, seen)
            for f in msgspec.structs.fields(tp)
            if f.required
        }
        return _construct(tp, kwargs)

    if dataclasses.is_dataclass(tp):
        hints = _type_hints(tp)
        kwargs = {}
        for f in dataclasses.fields(tp):
            if not f.init:
                continue
            if f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:
                kwargs[f.name] = _zero(hints.get(f.name, Any), seen)
        return _construct(tp, kwargs)

    return _construct(tp)


def _construct(tp: Any, kwargs: Optional[Dict[str, Any]] = None) -> Optional[Any]:
    try:
        return tp(**(kwargs or {}))
    except Exception:
        # needs arguments, or validation rejects the zeroed fields
        return None


def _type_hints(tp: type) -> Dict[str, Any]:
    try:
        return typing.get_type_hints(tp)
    except NameError:
        # unresolved forward reference; fields fall back to Any
        return {}


__all__ = ["zero_value"]
