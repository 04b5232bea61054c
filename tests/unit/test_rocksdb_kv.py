"""
RocksDB backend (only when python-rocksdb is installed)
"""
from __future__ import annotations

import pytest

pytest.importorskip("rocksdb")

from typedkv import Store
from typedkv.db.kv import KV
from typedkv.db.rocksdb import RocksKV, open_rocks_kv
from typedkv.errors import ReadOnly


@pytest.fixture
def rkv(workdir):
    kv = open_rocks_kv(workdir / "rocks")
    yield kv
    kv.close()


def test_protocol_and_crud(rkv):
    assert isinstance(rkv, RocksKV)
    assert isinstance(rkv, KV)
    rkv.put(b"a", b"1")
    assert rkv.get(b"a") == b"1"
    assert rkv.has(b"a")
    rkv.delete(b"a")
    assert rkv.get(b"a") is None


def test_prefix_and_clear(rkv):
    for k in (b"p:1", b"p:2", b"q:1"):
        rkv.put(k, k)
    assert list(rkv.iter_keys(b"p:")) == [b"p:1", b"p:2"]
    assert [k for k, _ in rkv.iter_prefix(b"q")] == [b"q:1"]
    rkv.clear()
    assert list(rkv.iter_keys()) == []


def test_batch(rkv):
    with pytest.raises(ValueError):
        with rkv.batch() as b:
            b.put(b"x", b"1")
            raise ValueError("boom")
    assert rkv.get(b"x") is None
    with rkv.batch() as b:
        b.put(b"x", b"1")
    assert rkv.get(b"x") == b"1"


def test_store_over_rocks(workdir):
    with Store.open(f"rocksdb:///{workdir / 'st'}") as st:
        k = st.allocate_key()
        st.set(k, {"v": 1})
        assert st.get(k, dict) == ({"v": 1}, False)


def test_readonly(workdir):
    path = workdir / "ro"
    rw = open_rocks_kv(path)
    rw.put(b"k", b"v")
    rw.close()
    del rw

    ro = open_rocks_kv(path, readonly=True)
    assert ro.get(b"k") == b"v"
    with pytest.raises(ReadOnly):
        ro.put(b"k", b"x")
