"""
SQLite KV backend

Goals:
- get/put/has/delete/clear behave per the KV protocol.
- Prefix scans honour byte ordering, including 0xFF edges.
- Batches are atomic (commit on success, rollback on error).
- Engine errors surface as DatabaseError; read-only handles reject writes.
"""
from __future__ import annotations

import pytest

from typedkv.db.kv import KV, prefix_upper_bound
from typedkv.db.sqlite import SQLiteKV, open_sqlite_kv
from typedkv.errors import DatabaseError, ReadOnly


def test_implements_protocol(kv):
    assert isinstance(kv, SQLiteKV)
    assert isinstance(kv, KV)


def test_basic_crud(kv):
    assert kv.get(b"a") is None
    assert not kv.has(b"a")
    kv.put(b"a", b"1")
    kv.put(b"a", b"2")
    assert kv.get(b"a") == b"2"
    assert kv.has(b"a")
    kv.delete(b"a")
    kv.delete(b"a")
    assert kv.get(b"a") is None


def test_empty_value_is_not_missing(kv):
    kv.put(b"e", b"")
    assert kv.get(b"e") == b""
    assert kv.has(b"e")


def test_prefix_scans(kv):
    for k in (b"a", b"ab", b"ab\x00", b"ab\xff", b"ac", b"b", b"\xff", b"\xff\xff\x01"):
        kv.put(k, k)

    assert list(kv.iter_keys(b"ab")) == [b"ab", b"ab\x00", b"ab\xff"]
    assert list(kv.iter_keys(b"\xff")) == [b"\xff", b"\xff\xff\x01"]
    assert list(kv.iter_keys(b"\xff\xff")) == [b"\xff\xff\x01"]
    assert [k for k, _ in kv.iter_prefix(b"a")] == [b"a", b"ab", b"ab\x00", b"ab\xff", b"ac"]
    assert len(list(kv.iter_keys())) == 8


def test_prefix_upper_bound():
    assert prefix_upper_bound(b"ab\x01") == b"ab\x02"
    assert prefix_upper_bound(b"a\xff") == b"b"
    assert prefix_upper_bound(b"\xff\xff") is None
    assert prefix_upper_bound(b"") is None


def test_clear(kv):
    kv.put(b"x", b"1")
    kv.put(b"y", b"2")
    kv.clear()
    assert list(kv.iter_keys()) == []


def test_batch_commit_and_rollback(kv):
    with kv.batch() as b:
        b.put(b"k1", b"v1")
        b.put(b"k2", b"v2")
    assert kv.get(b"k1") == b"v1"

    with pytest.raises(ZeroDivisionError):
        with kv.batch() as b:
            b.put(b"k3", b"v3")
            b.delete(b"k1")
            1 / 0
    assert kv.get(b"k3") is None
    assert kv.get(b"k1") == b"v1"

    with kv.batch() as b:
        b.delete(b"k1")
        b.delete(b"k2")
    assert list(kv.iter_keys(b"k")) == []


def test_file_persistence_and_pragmas(db_path):
    kv = open_sqlite_kv(db_path, pragmas={"synchronous": "FULL"})
    kv.put(b"p", b"1")
    kv.close()

    kv = open_sqlite_kv(f"sqlite:///{db_path}")
    assert kv.get(b"p") == b"1"
    assert kv.path == str(db_path)
    kv.close()


def test_missing_file_without_create(workdir):
    with pytest.raises(DatabaseError) as ei:
        open_sqlite_kv(workdir / "nope.db", create=False)
    assert ei.value.retryable is False


def test_readonly_rejects_writes(db_path):
    rw = open_sqlite_kv(db_path)
    rw.put(b"k", b"v")
    rw.close()

    ro = open_sqlite_kv(db_path, readonly=True)
    assert ro.get(b"k") == b"v"
    for call in (lambda: ro.put(b"k", b"x"), lambda: ro.delete(b"k"), ro.clear, ro.batch):
        with pytest.raises(ReadOnly):
            call()
    ro.close()


@pytest.mark.parametrize("name", ["odd?name.db", "hash#1.db", "pct%41.db"])
def test_readonly_opens_paths_with_uri_characters(workdir, name):
    path = workdir / name
    rw = open_sqlite_kv(path)
    rw.put(b"k", name.encode())
    rw.close()

    ro = open_sqlite_kv(path, readonly=True)
    assert ro.get(b"k") == name.encode()
    ro.close()
    assert sorted(p.name for p in workdir.iterdir() if p.suffix == ".db") == [name]


def test_engine_errors_become_database_error(kv):
    kv.close()
    with pytest.raises(DatabaseError) as ei:
        kv.get(b"k" * 50)
    err = ei.value
    assert err.data["op"] == "get"
    assert err.data["backend"] == "sqlite"
    assert err.data["key"] == (b"k" * 20).hex()
    assert err.cause is not None
