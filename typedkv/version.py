"""
Version helpers for typedkv.

- Exposes __version__ (PEP 440).
- Resolution order:
    1) TYPEDKV_VERSION env var (authoritative override, used by release builds)
    2) installed distribution metadata
    3) DEFAULT_VERSION
"""

from __future__ import annotations

import os
from importlib.metadata import PackageNotFoundError, version as _dist_version

DEFAULT_VERSION = "0.1.0"
DIST_NAME = "typedkv"


def _resolve() -> str:
    override = os.environ.get("TYPEDKV_VERSION", "").strip()
    if override:
        return override
    try:
        return _dist_version(DIST_NAME)
    except PackageNotFoundError:
        return DEFAULT_VERSION


__version__ = _resolve()

__all__ = ["__version__", "DEFAULT_VERSION"]
