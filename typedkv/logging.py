"""
typedkv.logging
---------------

Structured logging for the store and its backends, on top of stdlib `logging`.

Every record is rendered with its *fields*: the context-local fields bound with
`bind()` / `trace_scope()`, plus whatever the call site passed in `extra=`.
Bytes (storage keys, mostly) are shown as hex.

Two renderings:
- JSON lines, one object per record (services, log shippers)
- text lines, `ts LEVEL logger: message  k=v k=v`, colored on a TTY

    from typedkv import logging as klog

    klog.configure(level="DEBUG")        # application start; the library never calls it
    log = klog.with_fields(klog.get_logger("app"), db="users")
    with klog.trace_scope():
        log.error("db error", extra={"op": "get", "key": b"@k\\x01\\x00\\x00\\x00"})
"""

from __future__ import annotations

import datetime as _dt
import json
import logging
import os
import sys
import threading
import traceback
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any, Dict, Optional, TextIO, Tuple

FORMAT_ENV = "TYPEDKV_LOG_FORMAT"

# Bound fields rendered first in text lines, in this order.
LEADING_FIELDS = ("trace_id", "db", "component")

_FIELDS: ContextVar[Dict[str, Any]] = ContextVar("typedkv_log_fields", default={})

# Everything a bare LogRecord carries; the rest of record.__dict__ came from `extra`.
_STD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
    "taskName",
}


# ----------------------------
# Context fields
# ----------------------------


def context() -> Dict[str, Any]:
    """Copy of the fields bound in the current context."""
    return dict(_FIELDS.get())


def bind(**fields: Any) -> None:
    _FIELDS.set({**_FIELDS.get(), **{k: _jsonable(v) for k, v in fields.items()}})


def unbind(*keys: str) -> None:
    _FIELDS.set({k: v for k, v in _FIELDS.get().items() if k not in keys})


def clear_context() -> None:
    _FIELDS.set({})


@contextmanager
def trace_scope(trace_id: Optional[str] = None):
    """Bind a trace_id (random if not given) until the block exits."""
    token = _FIELDS.set({**_FIELDS.get(), "trace_id": trace_id or uuid.uuid4().hex[:12]})
    try:
        yield
    finally:
        _FIELDS.reset(token)


# ----------------------------
# Rendering
# ----------------------------


def _jsonable(v: Any) -> Any:
    if v is None or isinstance(v, (bool, int, float, str, list, dict)):
        return v
    if isinstance(v, (bytes, bytearray, memoryview)):
        return bytes(v).hex()
    if isinstance(v, _dt.datetime):
        return (v if v.tzinfo else v.replace(tzinfo=_dt.timezone.utc)).isoformat()
    if is_dataclass(v) and not isinstance(v, type):
        return asdict(v)
    return str(v)


def record_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Bound context fields overlaid with the record's `extra=` fields."""
    out = context()
    for k, v in record.__dict__.items():
        if k not in _STD_ATTRS and not k.startswith("_"):
            out[k] = _jsonable(v)
    return out


def _timestamp(record: logging.LogRecord) -> str:
    ts = _dt.datetime.fromtimestamp(record.created, _dt.timezone.utc)
    return ts.isoformat(timespec="milliseconds")


def _traceback(record: logging.LogRecord) -> Optional[str]:
    if not record.exc_info:
        return None
    return "".join(traceback.format_exception(*record.exc_info)).rstrip()


class JSONFormatter(logging.Formatter):
    """One JSON object per record; fields never shadow the fixed keys."""

    def format(self, record: logging.LogRecord) -> str:
        doc: Dict[str, Any] = {
            "ts": _timestamp(record),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "pid": os.getpid(),
            "tid": threading.get_ident(),
        }
        for k, v in record_fields(record).items():
            doc.setdefault(k, v)
        tb = _traceback(record)
        if tb:
            doc["err"] = tb
        return json.dumps(doc, default=str, separators=(",", ":"))


_COLORS = {
    logging.DEBUG: "\x1b[90m",
    logging.INFO: "\x1b[32m",
    logging.WARNING: "\x1b[33m",
    logging.ERROR: "\x1b[31m",
    logging.CRITICAL: "\x1b[1;35m",
}
_RESET = "\x1b[0m"


class TextFormatter(logging.Formatter):
    """
    2025-01-05T12:34:56.789+00:00 ERROR   typedkv.store: db error  db=users op=get key=406b01000000
    """

    def __init__(self, color: bool = False):
        super().__init__()
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        fields = record_fields(record)
        ordered = [k for k in LEADING_FIELDS if fields.get(k) is not None]
        ordered += [k for k in fields if k not in LEADING_FIELDS]
        tail = " ".join(f"{k}={fields[k]}" for k in ordered)

        level = f"{record.levelname:<7}"
        if self.color:
            level = _COLORS.get(record.levelno, "") + level + _RESET
        line = f"{_timestamp(record)} {level} {record.name}: {record.getMessage()}"
        if tail:
            line += "  " + tail
        tb = _traceback(record)
        return f"{line}\n{tb}" if tb else line


# ----------------------------
# Setup
# ----------------------------


def _is_tty(stream: Any) -> bool:
    try:
        return bool(stream.isatty()) and "NO_COLOR" not in os.environ
    except (AttributeError, ValueError):
        return False


def coerce_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.strip().upper())
    return value if isinstance(value, int) else logging.INFO


def _use_json(json_flag: Optional[bool], stream: Any) -> bool:
    if json_flag is not None:
        return json_flag
    env = os.environ.get(FORMAT_ENV, "").strip().lower()
    if env in ("json", "text"):
        return env == "json"
    return not _is_tty(stream)


def configure(
    *,
    json: Optional[bool] = None,
    level: str | int = "INFO",
    stream: Optional[TextIO] = None,
    file_path: Optional[Path | str] = None,
    propagate_existing: bool = False,
) -> None:
    """
    Install handlers on the root logger.

    json: force JSON (True) or text (False); None picks from TYPEDKV_LOG_FORMAT,
        then JSON unless `stream` is a TTY.
    stream: console stream, stderr by default.
    file_path: also append JSON lines to this file.
    propagate_existing: keep handlers already on the root logger.
    """
    stream = stream or sys.stderr
    lvl = coerce_level(level)
    root = logging.getLogger()
    root.setLevel(lvl)
    if not propagate_existing:
        for h in list(root.handlers):
            root.removeHandler(h)

    console = logging.StreamHandler(stream)
    if _use_json(json, stream):
        console.setFormatter(JSONFormatter())
    else:
        console.setFormatter(TextFormatter(color=_is_tty(stream)))
    handlers = [console]

    if file_path:
        p = Path(file_path).expanduser()
        p.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(p, encoding="utf-8")
        fh.setFormatter(JSONFormatter())
        handlers.append(fh)

    for h in handlers:
        h.setLevel(lvl)
        root.addHandler(h)


def configure_from_config(cfg: Any) -> None:
    """`configure` driven by a `typedkv.config.StoreConfig`."""
    fmt = (cfg.log_format or "").strip().lower()
    configure(json={"json": True, "text": False}.get(fmt), level=cfg.log_level)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name or "typedkv")


class ContextAdapter(logging.LoggerAdapter):
    """Adds constant fields to every call; call-site `extra` overrides them."""

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> Tuple[Any, Dict[str, Any]]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def with_fields(logger: logging.Logger, **fields: Any) -> ContextAdapter:
    return ContextAdapter(logger, {k: _jsonable(v) for k, v in fields.items()})


__all__ = [
    "configure",
    "configure_from_config",
    "get_logger",
    "with_fields",
    "ContextAdapter",
    "JSONFormatter",
    "TextFormatter",
    "record_fields",
    "bind",
    "unbind",
    "clear_context",
    "context",
    "trace_scope",
    "coerce_level",
]
