"""
Shared pytest fixtures:
- Temporary workspace (per-session & per-test)
- In-memory and file-backed stores
- A KV double whose every operation fails, for the facade's failure paths
- Clean TYPEDKV_* environment and root logger state per test
"""
from __future__ import annotations

import logging
import random
import time
from pathlib import Path
from typing import Iterator, Optional, Tuple

import pytest

from typedkv import Store
from typedkv.db import open_kv
from typedkv.errors import DatabaseError


# ---------- TEMP WORKSPACES ----------

@pytest.fixture(scope="session")
def session_tmp(tmp_path_factory: pytest.TempPathFactory) -> Path:
    """A single temp directory for the whole test session."""
    return tmp_path_factory.mktemp("typedkv-tests")


@pytest.fixture
def workdir(session_tmp: Path) -> Path:
    """Per-test working directory under the session temp."""
    d = session_tmp / f"case-{int(time.time()*1e6)}-{random.randrange(1<<16):04x}"
    d.mkdir(parents=True, exist_ok=True)
    return d


# ---------- ENV / LOGGING HYGIENE ----------

@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "TYPEDKV_DB_URI",
        "TYPEDKV_CODEC",
        "TYPEDKV_READONLY",
        "TYPEDKV_ERROR_HISTORY",
        "TYPEDKV_LOG_LEVEL",
        "TYPEDKV_LOG_FORMAT",
        "TYPEDKV_VERSION",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def restore_root_logger() -> Iterator[logging.Logger]:
    """For tests that call typedkv.logging.configure (which rewires the root logger)."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    try:
        yield root
    finally:
        for h in list(root.handlers):
            if h not in handlers:
                root.removeHandler(h)
                h.close()
        for h in handlers:
            if h not in root.handlers:
                root.addHandler(h)
        root.setLevel(level)


# ---------- STORES ----------

@pytest.fixture
def kv():
    backend = open_kv("memory://")
    yield backend
    backend.close()


@pytest.fixture
def store(kv) -> Iterator[Store]:
    st = Store(kv, name="test")
    yield st
    st.close()


@pytest.fixture
def db_path(workdir: Path) -> Path:
    return workdir / "store.db"


class BrokenKV:
    """KV double that fails every call the way a dead backend would."""

    path = "broken"

    def __init__(self) -> None:
        self.calls = []

    def _fail(self, op: str, key: Optional[bytes] = None):
        self.calls.append((op, key))
        raise DatabaseError("disk I/O error", op=op, backend="broken")

    def get(self, key: bytes) -> Optional[bytes]:
        self._fail("get", key)

    def has(self, key: bytes) -> bool:
        self._fail("has", key)

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        self._fail("scan", prefix)
        yield b"", b""  # pragma: no cover

    def iter_keys(self, prefix: bytes = b"") -> Iterator[bytes]:
        self._fail("scan", prefix)
        yield b""  # pragma: no cover

    def put(self, key: bytes, value: bytes) -> None:
        self._fail("put", key)

    def delete(self, key: bytes) -> None:
        self._fail("delete", key)

    def clear(self) -> None:
        self._fail("clear")

    def batch(self):
        self._fail("batch")

    def close(self) -> None:
        self._fail("close")


@pytest.fixture
def broken_store() -> Store:
    return Store(BrokenKV(), name="broken")
