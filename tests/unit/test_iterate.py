"""
Ordered iteration: batching, direction, prefix and delimiter handling, limits,
and iterator lifetime around the consumer.
"""

from __future__ import annotations

import pytest

from pathkv import CombinedError, IterateOptions, ListItem, after_prefix
from pathkv.kv import collect_items


def _keys(kv, bucket=b"", **opts):
    items = kv.iterate_path(bucket, IterateOptions(**opts), collect_items)
    return [i.key for i in items]


@pytest.fixture(params=[1, 2, 10000], ids=["batch1", "batch2", "default"])
def batched(request, make_client):
    return make_client("memory://", batch_size=request.param)


def _fill(kv, keys, bucket=b""):
    for k in keys:
        kv.put_path(bucket, k, b"v:" + k)


def test_ascending_regardless_of_insert_order(batched):
    _fill(batched, [b"c", b"b", b"a"])
    assert _keys(batched, recurse=True) == [b"a", b"b", b"c"]


def test_values_delivered_with_keys(batched):
    _fill(batched, [b"x", b"y"])
    items = batched.iterate(IterateOptions(recurse=True), collect_items)
    assert items == [ListItem(b"x", b"v:x"), ListItem(b"y", b"v:y")]


def test_reverse(batched):
    _fill(batched, [b"a", b"b", b"c"])
    assert _keys(batched, recurse=True, reverse=True) == [b"c", b"b", b"a"]


def test_first_is_inclusive(batched):
    _fill(batched, [b"a", b"b", b"c", b"d"])
    assert _keys(batched, recurse=True, first=b"b") == [b"b", b"c", b"d"]
    assert _keys(batched, recurse=True, first=b"bb") == [b"c", b"d"]


def test_reverse_first_is_inclusive(batched):
    _fill(batched, [b"a", b"b", b"c", b"d"])
    assert _keys(batched, recurse=True, reverse=True, first=b"c") == [b"c", b"b", b"a"]
    assert _keys(batched, recurse=True, reverse=True, first=b"bb") == [b"b", b"a"]


def test_prefix_restricts_range(batched):
    _fill(batched, [b"admin", b"users/alice", b"users/bob", b"usersx"])
    assert _keys(batched, recurse=True, prefix=b"users/") == [b"users/alice", b"users/bob"]
    assert _keys(batched, recurse=True, prefix=b"users/", reverse=True) == [
        b"users/bob",
        b"users/alice",
    ]


def test_first_before_prefix_starts_at_prefix(batched):
    _fill(batched, [b"a", b"p/1", b"p/2", b"z"])
    assert _keys(batched, recurse=True, prefix=b"p/", first=b"a") == [b"p/1", b"p/2"]


def test_reverse_first_outside_prefix(batched):
    _fill(batched, [b"a", b"p/1", b"p/2", b"z"])
    assert _keys(batched, recurse=True, prefix=b"p/", reverse=True, first=b"zz") == [
        b"p/2",
        b"p/1",
    ]
    assert _keys(batched, recurse=True, prefix=b"p/", reverse=True, first=b"a") == []


def test_prefix_of_all_ff_bytes(batched):
    _fill(batched, [b"\xfe", b"\xff\x01", b"\xff\x02", b"\xff"])
    assert _keys(batched, recurse=True, prefix=b"\xff") == [b"\xff", b"\xff\x01", b"\xff\x02"]


def test_non_recursive_collapses_sub_namespaces(batched):
    _fill(batched, [b"a/1", b"a/2", b"b", b"c/x/y", b"c/z", b"d"])
    items = batched.iterate(IterateOptions(recurse=False), collect_items)
    assert items == [
        ListItem(b"a/", b"", True),
        ListItem(b"b", b"v:b"),
        ListItem(b"c/", b"", True),
        ListItem(b"d", b"v:d"),
    ]


def test_non_recursive_under_prefix(batched):
    _fill(batched, [b"a/1", b"a/2/x", b"a/2/y", b"a/3", b"b/1"])
    items = batched.iterate(IterateOptions(prefix=b"a/"), collect_items)
    assert [(i.key, i.is_prefix) for i in items] == [
        (b"a/1", False),
        (b"a/2/", True),
        (b"a/3", False),
    ]


def test_non_recursive_reverse(batched):
    _fill(batched, [b"a/1", b"a/2", b"b", b"c/1"])
    items = batched.iterate(IterateOptions(reverse=True), collect_items)
    assert [(i.key, i.is_prefix) for i in items] == [
        (b"c/", True),
        (b"b", False),
        (b"a/", True),
    ]


def test_limit(batched):
    _fill(batched, [b"a", b"b", b"c", b"d"])
    assert _keys(batched, recurse=True, limit=2) == [b"a", b"b"]
    assert _keys(batched, recurse=True, reverse=True, limit=3) == [b"d", b"c", b"b"]


def test_buckets_not_mixed(batched):
    _fill(batched, [b"a", b"b"], bucket=b"one")
    _fill(batched, [b"c"], bucket=b"two")
    assert _keys(batched, bucket=b"one", recurse=True) == [b"a", b"b"]
    assert _keys(batched, bucket=b"two", recurse=True) == [b"c"]
    assert _keys(batched, recurse=True) == []


def test_consumer_may_call_back_into_store(make_client):
    kv = make_client("memory://", batch_size=1)
    _fill(kv, [b"a", b"b", b"c"])

    def copy(it):
        n = 0
        for item in it:
            kv.put_path(b"copy", item.key, kv.get(item.key))
            n += 1
        return n

    assert kv.iterate(IterateOptions(recurse=True), copy) == 3
    assert kv.get_path(b"copy", b"b") == b"v:b"


def test_consumer_result_is_returned(kv):
    _fill(kv, [b"a", b"b"])
    assert kv.iterate(IterateOptions(recurse=True), lambda it: sum(1 for _ in it)) == 2


def test_iterator_closed_after_consumer_returns(kv):
    _fill(kv, [b"a"])
    seen = []
    kv.iterate(IterateOptions(), seen.append)
    assert seen[0].closed
    assert list(seen[0]) == []


def test_iterator_closed_when_consumer_raises(kv):
    _fill(kv, [b"a"])
    seen = []

    def boom(it):
        seen.append(it)
        next(it)
        raise RuntimeError("consumer failed")

    with pytest.raises(RuntimeError, match="consumer failed"):
        kv.iterate(IterateOptions(), boom)
    assert seen[0].closed


def test_consumer_and_close_failures_are_combined(kv):
    _fill(kv, [b"a"])

    def close_fails():
        raise OSError("close failed")

    def boom(it):
        it.close = close_fails
        raise RuntimeError("consumer failed")

    with pytest.raises(CombinedError) as ei:
        kv.iterate(IterateOptions(), boom)
    kinds = [type(e) for e in ei.value.errors]
    assert kinds == [RuntimeError, OSError]


def test_negative_limit_rejected():
    with pytest.raises(ValueError):
        IterateOptions(limit=-1)


@pytest.mark.parametrize(
    "prefix, expected",
    [
        (b"", None),
        (b"a", b"b"),
        (b"a/", b"a0"),
        (b"ab\xff", b"ac"),
        (b"\xff\xff", None),
    ],
)
def test_after_prefix(prefix, expected):
    assert after_prefix(prefix) == expected
