"""
Store.scan: prefix selection, filtering, paging

Goals:
- Return value counts every key that passed the prefix and filter,
  independent of the page requested.
- With page_size > 0 keys are visited in bytewise order, one window at a
  time; out-of-range starts fall back to the first page.
- With page_size == 0 every selected key is visited.
- Undecodable entries are skipped (and left in place).
"""
from __future__ import annotations

from typing import Any, List, Tuple

import pytest

from typedkv import Store
from typedkv.errors import DeserializationError
from typedkv.key import encode_key
from typedkv.store import page_window


def _collect(store: Store, *args, **kwargs) -> Tuple[int, List[Tuple[str, Any]]]:
    seen: List[Tuple[str, Any]] = []
    total = store.scan(*args, visit=lambda k, v: seen.append((k, v)), **kwargs)
    return total, seen


@pytest.fixture
def users(store: Store) -> Store:
    # inserted out of order on purpose
    for name in ("c", "a", "e", "b", "d"):
        store.set(f"user:{name}", name.upper())
    store.set("other:x", "X")
    return store


# -----------------------------------------------------------------------------
# Paging
# -----------------------------------------------------------------------------

@pytest.mark.parametrize(
    "page, expected",
    [
        (0, ["user:a", "user:b"]),
        (1, ["user:c", "user:d"]),
        (2, ["user:e"]),
        (3, ["user:a", "user:b"]),   # start past the end -> first page
        (-1, ["user:a", "user:b"]),  # negative start -> first page
    ],
)
def test_pages_are_sorted_windows(users: Store, page, expected):
    total, seen = _collect(users, "user:", page, 2, None, value_type=str)
    assert total == 5
    assert [k for k, _ in seen] == expected
    assert [v for _, v in seen] == [k[-1].upper() for k in expected]


def test_page_size_zero_visits_everything(users: Store):
    total, seen = _collect(users, "user:", 0, 0, None, value_type=str)
    assert total == 5
    assert sorted(k for k, _ in seen) == [f"user:{c}" for c in "abcde"]


def test_empty_prefix_scans_all(users: Store):
    total, seen = _collect(users, "", 0, 0, None)
    assert total == 6
    assert len(seen) == 6


def test_no_matches(users: Store):
    total, seen = _collect(users, "nobody:", 0, 10, None)
    assert (total, seen) == (0, [])


def test_page_larger_than_set(users: Store):
    total, seen = _collect(users, "user:", 0, 100, None, value_type=str)
    assert total == 5
    assert [k for k, _ in seen] == [f"user:{c}" for c in "abcde"]


# -----------------------------------------------------------------------------
# Filtering
# -----------------------------------------------------------------------------

def test_filter_limits_total_and_pages(users: Store):
    keep = {"user:b", "user:d", "user:e"}
    total, seen = _collect(users, "user:", 1, 2, lambda k: k in keep, value_type=str)
    assert total == 3
    assert seen == [("user:e", "E")]


def test_filter_sees_string_keys(users: Store):
    got: List[str] = []

    def f(k: str) -> bool:
        got.append(k)
        return False

    total, seen = _collect(users, "user:", 0, 0, f)
    assert total == 0
    assert seen == []
    assert sorted(got) == [f"user:{c}" for c in "abcde"]


# -----------------------------------------------------------------------------
# Ordering / key forms
# -----------------------------------------------------------------------------

def test_order_is_bytewise(store: Store):
    store.set("k:\u00e9", 1)    # c3 a9
    store.set("k:z", 2)         # 7a
    store.set(b"k:\xff", 3)     # not valid UTF-8
    store.set("k:A", 4)         # 41

    _, seen = _collect(store, "k:", 0, 10, None, value_type=int)
    assert seen == [("k:A", 4), ("k:z", 2), ("k:\u00e9", 1), ("k:\udcff", 3)]


def test_bytes_prefix(store: Store):
    store.set(b"\x00\x01a", 1)
    store.set(b"\x00\x01b", 2)
    store.set(b"\x00\x02a", 3)
    total, seen = _collect(store, b"\x00\x01", 0, 0, None, value_type=int)
    assert total == 2
    assert sorted(v for _, v in seen) == [1, 2]


def test_numeric_keys_scan_under_marker(store: Store):
    for i in range(3):
        store.set(store.allocate_key(), i * 10)
    store.set("plain", 99)

    total, seen = _collect(store, "@k", 0, 10, None, value_type=int)
    assert total == 3
    assert [v for _, v in seen] == [0, 10, 20]
    assert seen[1][0].encode("utf-8", "surrogateescape") == encode_key(1)


# -----------------------------------------------------------------------------
# Failure handling
# -----------------------------------------------------------------------------

def test_corrupt_entry_is_skipped_but_kept(users: Store):
    users.set_raw("user:c", b"\xc1")
    total, seen = _collect(users, "user:", 0, 0, None, value_type=str)
    assert total == 5
    assert sorted(k for k, _ in seen) == ["user:a", "user:b", "user:d", "user:e"]
    assert users.exists("user:c")

    err = users.last_error
    assert isinstance(err, DeserializationError)
    assert err.data["op"] == "scan"


def test_corrupt_entry_counts_toward_page(users: Store):
    users.set_raw("user:a", b"\xc1")
    total, seen = _collect(users, "user:", 0, 2, None, value_type=str)
    assert total == 5
    assert seen == [("user:b", "B")]


def test_mismatched_type_is_skipped(users: Store):
    users.set("user:f", 123)
    _, seen = _collect(users, "user:", 0, 0, None, value_type=str)
    assert "user:f" not in [k for k, _ in seen]
    assert len(seen) == 5


# -----------------------------------------------------------------------------
# page_window
# -----------------------------------------------------------------------------

@pytest.mark.parametrize(
    "count, page, size, expected",
    [
        (5, 0, 2, (0, 2)),
        (5, 2, 2, (4, 5)),
        (5, 3, 2, (0, 2)),
        (5, -1, 2, (0, 2)),
        (0, 0, 2, (0, 0)),
        (4, 2, 2, (4, 4)),   # start == count is a valid, empty window
        (3, 0, 10, (0, 3)),
        (5, 0, -2, (0, 5)),  # negative size: end before start is clamped
    ],
)
def test_page_window(count, page, size, expected):
    w = page_window(count, page, size)
    assert (w.start, w.stop) == expected


class _NoPointReads:
    """Delegates to a real KV but refuses single-key reads."""

    def __init__(self, inner) -> None:
        self._inner = inner

    def get(self, key: bytes):
        raise AssertionError(f"unexpected get({key!r})")

    def __getattr__(self, name):
        return getattr(self._inner, name)


def test_unpaged_scan_reads_values_with_the_prefix_pass(kv):
    seed = Store(kv)
    for c in "abc":
        seed.set(f"n:{c}", c)
    seed.set("m:x", "x")

    st = Store(_NoPointReads(kv))
    total, seen = _collect(st, "n:", 0, 0, lambda k: k != "n:b", value_type=str)
    assert total == 2
    assert sorted(seen) == [("n:a", "a"), ("n:c", "c")]
    assert st.errors == ()
