"""
typedkv.errors
--------------

Errors raised by backends and codecs, and recorded (not raised) by `Store`.

Every error carries:
- `code`      stable machine code (`ErrorCode`), e.g. "KV/DB"
- `message`   short human text
- `data`      JSON-safe details (op, key as hex, path, backend, ...)
- `retryable` whether the same call may succeed later unchanged
- `cause`     the engine/library exception it wraps, if any

Subclasses only pick a code, a default message and retryability; callers add
details as keyword arguments:

    raise DatabaseError("disk I/O error", op="put", key=b"@k\\x01\\x00\\x00\\x00")

`with_context()` / `with_cause()` return enriched copies so one error object can
be annotated by each layer it passes through.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, Mapping, Optional, Type, TypeVar


class ErrorCode(str, Enum):
    INTERNAL = "KV/INTERNAL"
    DEP_MISSING = "KV/DEPENDENCY_MISSING"
    CONFIG = "KV/CONFIG"
    SERIALIZATION = "KV/SERIALIZATION"
    DESERIALIZATION = "KV/DESERIALIZATION"
    DB = "KV/DB"
    DB_NOT_FOUND = "KV/DB_NOT_FOUND"
    DB_READONLY = "KV/DB_READONLY"


@dataclass(eq=False)
class TypedKVError(Exception):
    """Root error; see the module docstring for the fields."""

    code: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    retryable: bool = False
    cause: Optional[BaseException] = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        Exception.__init__(self, f"{_code_str(self.code)}: {self.message}")

    def with_context(self, **ctx: Any) -> "TypedKVError":
        """Copy with `ctx` merged into `data`."""
        return self._clone(data={**self.data, **_jsonmap(ctx)})

    def with_cause(self, exc: BaseException) -> "TypedKVError":
        return self._clone(cause=exc)

    def _clone(self, **changes: Any) -> "TypedKVError":
        # Bypass the subclasses' narrow constructors.
        new = Exception.__new__(type(self))
        new.code = self.code
        new.message = self.message
        new.data = changes.get("data", dict(self.data))
        new.retryable = self.retryable
        new.cause = changes.get("cause", self.cause)
        new.__post_init__()
        return new

    def to_dict(self, include_cause: bool = False) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "code": _code_str(self.code),
            "message": self.message,
            "data": _jsonmap(self.data),
            "retryable": self.retryable,
        }
        if include_cause and self.cause is not None:
            out["cause"] = {"type": type(self.cause).__name__, "message": str(self.cause)}
        return out

    def __str__(self) -> str:
        s = f"{_code_str(self.code)}: {self.message}"
        if self.data:
            s += " [" + ", ".join(f"{k}={_short(v)}" for k, v in self.data.items()) + "]"
        if self.cause is not None:
            s += f" ({type(self.cause).__name__}: {self.cause})"
        return s


class _CodedError(TypedKVError):
    """Base for concrete errors: code/message/retryable come from the class."""

    CODE: ClassVar[ErrorCode] = ErrorCode.INTERNAL
    DEFAULT_MESSAGE: ClassVar[str] = "internal error"
    RETRYABLE: ClassVar[bool] = False

    def __init__(self, message: str = "", *, retryable: Optional[bool] = None, **data: Any) -> None:
        super().__init__(
            code=self.CODE,
            message=message or self.DEFAULT_MESSAGE,
            data=_jsonmap(data),
            retryable=self.RETRYABLE if retryable is None else retryable,
        )


class InternalError(_CodedError):
    pass


class ConfigError(_CodedError):
    CODE = ErrorCode.CONFIG
    DEFAULT_MESSAGE = "invalid configuration"


class SerializationError(_CodedError):
    CODE = ErrorCode.SERIALIZATION
    DEFAULT_MESSAGE = "serialization failed"


class DeserializationError(_CodedError):
    CODE = ErrorCode.DESERIALIZATION
    DEFAULT_MESSAGE = "deserialization failed"


class DatabaseError(_CodedError):
    CODE = ErrorCode.DB
    DEFAULT_MESSAGE = "database error"
    RETRYABLE = True


class NotFound(DatabaseError):
    CODE = ErrorCode.DB_NOT_FOUND
    RETRYABLE = False

    def __init__(self, key: str, space: str = "kv") -> None:
        super().__init__("not found", key=key, space=space)


class ReadOnly(DatabaseError):
    CODE = ErrorCode.DB_READONLY
    RETRYABLE = False

    def __init__(self, op: str) -> None:
        super().__init__("database is read-only", op=op)


class DependencyMissing(_CodedError):
    CODE = ErrorCode.DEP_MISSING

    def __init__(self, package: str, hint: str = "") -> None:
        msg = f"missing dependency: {package}" + (f" ({hint})" if hint else "")
        super().__init__(msg, package=package, hint=hint)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

E = TypeVar("E", bound=TypedKVError)


def wrap(exc: BaseException, *, as_: Type[E] = InternalError, **ctx: Any) -> E:
    """
    Turn any exception into a typedkv error carrying `ctx`. A TypedKVError is
    only enriched; anything else becomes `as_` with `exc` as its cause.
    """
    if isinstance(exc, TypedKVError):
        return exc.with_context(**ctx)  # type: ignore[return-value]
    err = as_(str(exc) or type(exc).__name__, **ctx)  # type: ignore[call-arg]
    return err.with_cause(exc)  # type: ignore[return-value]


def _code_str(code: Any) -> str:
    return str(getattr(code, "value", code))


def _jsonmap(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: _json_safe(v) for k, v in data.items()}


def _json_safe(v: Any) -> Any:
    if v is None or isinstance(v, (bool, int, float, str)):
        return v
    if isinstance(v, (bytes, bytearray, memoryview)):
        return bytes(v).hex()
    if isinstance(v, dict):
        return {str(k): _json_safe(x) for k, x in v.items()}
    if isinstance(v, (list, tuple, set, frozenset)):
        return [_json_safe(x) for x in v]
    return str(v)


def _short(v: Any, limit: int = 96) -> str:
    s = str(v)
    return s if len(s) <= limit else s[:limit] + "..."


__all__ = [
    "ErrorCode",
    "TypedKVError",
    "InternalError",
    "DependencyMissing",
    "ConfigError",
    "SerializationError",
    "DeserializationError",
    "DatabaseError",
    "NotFound",
    "ReadOnly",
    "wrap",
]
