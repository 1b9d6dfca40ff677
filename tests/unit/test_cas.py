"""
Compare-and-swap: the four (old, new) shapes, the None / b"" distinction, and
concurrent writers on a file-backed pool.
"""

from __future__ import annotations

import threading

import pytest

from pathkv import KeyNotFound, ValueChanged

# --- (None, None): assert absence ---


def test_absent_to_absent_ok_when_missing(kv):
    kv.compare_and_swap(b"k", None, None)
    with pytest.raises(KeyNotFound):
        kv.get(b"k")


def test_absent_to_absent_fails_when_present(kv):
    kv.put(b"k", b"v")
    with pytest.raises(ValueChanged) as ei:
        kv.compare_and_swap(b"k", None, None)
    assert ei.value.key == b"k"
    assert kv.get(b"k") == b"v"


# --- (None, v): create ---


def test_create_when_missing(kv):
    kv.compare_and_swap(b"k", None, b"v1")
    assert kv.get(b"k") == b"v1"


def test_create_fails_when_present(kv):
    kv.put(b"k", b"v0")
    with pytest.raises(ValueChanged):
        kv.compare_and_swap(b"k", None, b"v1")
    assert kv.get(b"k") == b"v0"


# --- (v, v'): update ---


def test_update_when_matching(kv):
    kv.put(b"k", b"v0")
    kv.compare_and_swap(b"k", b"v0", b"v1")
    assert kv.get(b"k") == b"v1"


def test_update_fails_on_mismatch(kv):
    kv.put(b"k", b"v0")
    with pytest.raises(ValueChanged):
        kv.compare_and_swap(b"k", b"other", b"v1")
    assert kv.get(b"k") == b"v0"


def test_update_missing_key_raises_key_not_found(kv):
    with pytest.raises(KeyNotFound):
        kv.compare_and_swap(b"k", b"v0", b"v1")


def test_update_to_same_value(kv):
    kv.put(b"k", b"v")
    kv.compare_and_swap(b"k", b"v", b"v")
    assert kv.get(b"k") == b"v"


# --- (v, None): delete ---


def test_delete_when_matching(kv):
    kv.put(b"k", b"v0")
    kv.compare_and_swap(b"k", b"v0", None)
    with pytest.raises(KeyNotFound):
        kv.get(b"k")


def test_delete_fails_on_mismatch(kv):
    kv.put(b"k", b"v0")
    with pytest.raises(ValueChanged):
        kv.compare_and_swap(b"k", b"v9", None)
    assert kv.get(b"k") == b"v0"


def test_delete_missing_raises_key_not_found(kv):
    with pytest.raises(KeyNotFound):
        kv.compare_and_swap(b"k", b"v0", None)


# --- empty value vs absence ---


def test_empty_value_is_not_absence(kv):
    kv.put(b"k", b"")
    with pytest.raises(ValueChanged):
        kv.compare_and_swap(b"k", None, b"x")
    kv.compare_and_swap(b"k", b"", b"x")
    assert kv.get(b"k") == b"x"


def test_create_with_empty_value(kv):
    kv.compare_and_swap(b"k", None, b"")
    assert kv.get(b"k") == b""
    kv.compare_and_swap(b"k", b"", None)
    with pytest.raises(KeyNotFound):
        kv.get(b"k")


def test_bucket_scoped(kv):
    kv.put_path(b"b1", b"k", b"v")
    kv.compare_and_swap_path(b"b2", b"k", None, b"other")
    kv.compare_and_swap_path(b"b1", b"k", b"v", b"w")
    assert kv.get_path(b"b1", b"k") == b"w"
    assert kv.get_path(b"b2", b"k") == b"other"


# --- concurrency ---


def _run_threads(n, target):
    errors = []

    def wrapped(i):
        try:
            target(i)
        except Exception as exc:  # asserted empty by the caller
            errors.append(exc)

    threads = [threading.Thread(target=wrapped, args=(i,)) for i in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return errors


def test_only_one_creator_wins(make_client, db_path):
    kv = make_client(db_path, pool_size=8)
    winners = []
    lock = threading.Lock()

    def create(i):
        try:
            kv.compare_and_swap(b"leader", None, b"node-%d" % i)
        except ValueChanged:
            return
        with lock:
            winners.append(i)

    errors = _run_threads(8, create)
    assert errors == []
    assert len(winners) == 1
    assert kv.get(b"leader") == b"node-%d" % winners[0]


def test_concurrent_increments_are_not_lost(make_client, db_path):
    kv = make_client(db_path, pool_size=4, tx_max_attempts=1000)
    kv.put(b"counter", b"0")
    per_thread = 25

    def increment(_):
        for _ in range(per_thread):
            while True:
                cur = kv.get(b"counter")
                try:
                    kv.compare_and_swap(b"counter", cur, str(int(cur) + 1).encode())
                    break
                except ValueChanged:
                    continue

    errors = _run_threads(4, increment)
    assert errors == []
    assert kv.get(b"counter") == str(4 * per_thread).encode()


@pytest.mark.parametrize("begin", ["DEFERRED", "IMMEDIATE"])
def test_only_one_updater_wins(make_client, db_path, begin):
    n = 8
    kv = make_client(db_path, pool_size=n, tx_max_attempts=1000, tx_begin=begin)
    kv.put(b"k", b"v0")
    barrier = threading.Barrier(n)
    outcomes = []
    lock = threading.Lock()

    def update(i):
        barrier.wait()
        try:
            kv.compare_and_swap(b"k", b"v0", b"v1")
            outcome = "ok"
        except ValueChanged:
            outcome = "changed"
        with lock:
            outcomes.append(outcome)

    errors = _run_threads(n, update)
    assert errors == []
    assert outcomes.count("ok") == 1
    assert outcomes.count("changed") == n - 1
    assert kv.get(b"k") == b"v1"
