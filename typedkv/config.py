"""
typedkv configuration loader.

Layered config with clear precedence:
    1) Explicit overrides passed to `load()` (highest)
    2) Environment variables (TYPEDKV_*)
    3) Config file (TOML or JSON)
    4) Built-in defaults (lowest)

Only `load()` reads the environment; `Store` itself takes a ready
`StoreConfig` and never consults env vars.

File shape (TOML):

    uri = "sqlite:///var/lib/app/store.db"
    codec = "msgpack"
    error_history = 64

    [pragmas]
    synchronous = "FULL"

A `[store]` table is also accepted, so the same file can carry other sections.
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

from .encoding import get_codec
from .errors import ConfigError

# -- TOML support (Python 3.11+ has tomllib).
try:  # py311+
    import tomllib as _toml  # type: ignore[attr-defined]
except ImportError:  # py310
    _toml = None  # type: ignore[assignment]


DEFAULT_URI = "memory://"
DEFAULT_CODEC = "msgpack"
DEFAULT_ERROR_HISTORY = 32

_LOG_FORMATS = {"", "json", "text"}


def _parse_bool(v: str) -> bool:
    return v.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    v = os.environ.get(name)
    if v is None or v == "":
        return default
    try:
        return int(v, 0)
    except ValueError as e:
        raise ConfigError(f"{name} must be int, got {v!r}", env=name) from e


# ------------------------------
# Typed configuration model
# ------------------------------


@dataclass
class StoreConfig:
    uri: str = DEFAULT_URI
    codec: str = DEFAULT_CODEC
    create: bool = True
    readonly: bool = False
    pragmas: Dict[str, Any] = field(default_factory=dict)
    error_history: int = DEFAULT_ERROR_HISTORY  # size of Store.errors
    log_level: str = "INFO"
    log_format: str = ""  # "json" | "text" | "" (auto)

    def validate(self) -> None:
        if not isinstance(self.uri, str) or not self.uri.strip():
            raise ConfigError("uri must be a non-empty string", uri=self.uri)
        if isinstance(self.error_history, bool) or not isinstance(self.error_history, int):
            raise ConfigError("error_history must be an int", error_history=repr(self.error_history))
        if self.error_history < 0:
            raise ConfigError("error_history must be >= 0", error_history=self.error_history)
        if not isinstance(self.log_format, str) or self.log_format.strip().lower() not in _LOG_FORMATS:
            raise ConfigError("log_format must be json, text or empty", log_format=self.log_format)
        # Resolve the codec name now so typos fail at load, not at first write.
        get_codec(self.codec)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ------------------------------
# File loader (TOML / JSON)
# ------------------------------


def _load_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError("config file not found", path=str(path))
    suffix = path.suffix.lower()
    with path.open("rb") as f:
        if suffix in {".toml", ".tml"}:
            if not _toml:
                raise ConfigError(
                    "tomllib is unavailable (Python < 3.11). Use a JSON config or upgrade Python.",
                    path=str(path),
                )
            try:
                data = _toml.load(f)
            except _toml.TOMLDecodeError as e:
                raise ConfigError(f"invalid TOML: {e}", path=str(path)) from e
        elif suffix == ".json":
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigError(f"invalid JSON: {e}", path=str(path)) from e
        else:
            raise ConfigError(f"unsupported config format: {suffix}. Use .toml or .json", path=str(path))
    if not isinstance(data, dict):
        raise ConfigError("config root must be a table/object", path=str(path))
    section = data.get("store")
    return dict(section) if isinstance(section, dict) else data


def _merge_dict(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    """Shallow + nested dict merge: values in b override a."""
    out = dict(a)
    for k, v in b.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge_dict(out[k], v)
        else:
            out[k] = v
    return out


def _env_layer() -> Dict[str, Any]:
    env: Dict[str, Any] = {}
    if "TYPEDKV_DB_URI" in os.environ:
        env["uri"] = os.environ["TYPEDKV_DB_URI"].strip()
    if "TYPEDKV_CODEC" in os.environ:
        env["codec"] = os.environ["TYPEDKV_CODEC"].strip()
    if "TYPEDKV_READONLY" in os.environ:
        env["readonly"] = _parse_bool(os.environ["TYPEDKV_READONLY"])
    if "TYPEDKV_ERROR_HISTORY" in os.environ:
        env["error_history"] = _env_int("TYPEDKV_ERROR_HISTORY", DEFAULT_ERROR_HISTORY)
    if "TYPEDKV_LOG_LEVEL" in os.environ:
        env["log_level"] = os.environ["TYPEDKV_LOG_LEVEL"].strip()
    if "TYPEDKV_LOG_FORMAT" in os.environ:
        env["log_format"] = os.environ["TYPEDKV_LOG_FORMAT"].strip()
    return env


# ------------------------------
# Main loader
# ------------------------------


def load(config_file: Optional[str | Path] = None, **overrides: Any) -> StoreConfig:
    """
    Load a store configuration.

    Precedence: overrides > env > file > defaults.

    Parameters
    ----------
    config_file : str | Path | None
        Optional path to a TOML or JSON file with the StoreConfig keys.
    overrides : Any
        Keyword overrides, e.g. load(uri="sqlite:///x.db", pragmas={"synchronous": "FULL"})
    """
    base = StoreConfig().to_dict()

    if config_file:
        base = _merge_dict(base, _load_file(Path(config_file).expanduser()))
    base = _merge_dict(base, _env_layer())
    if overrides:
        base = _merge_dict(base, overrides)

    known = {f.name for f in fields(StoreConfig)}
    unknown = sorted(set(base) - known)
    if unknown:
        raise ConfigError("unknown config keys", keys=unknown)

    try:
        cfg = StoreConfig(
            uri=str(base["uri"]),
            codec=str(base["codec"]),
            create=bool(base["create"]),
            readonly=bool(base["readonly"]),
            pragmas=dict(base["pragmas"] or {}),
            error_history=int(base["error_history"]),
            log_level=str(base["log_level"]),
            log_format=str(base["log_format"] or ""),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid config value: {e}") from e

    cfg.validate()
    return cfg


__all__ = ["StoreConfig", "load", "DEFAULT_URI", "DEFAULT_CODEC"]
