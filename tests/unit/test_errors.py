from __future__ import annotations

import json

import pytest

from pathkv.errors import (Cancelled, CombinedError, DeadlineExceeded, EmptyKey,
                           KeyNotFound, KVError, KVErrorCode, LimitExceeded,
                           SerializationConflict, TransportError, ValueChanged,
                           combine, wrap)


def test_codes_are_stable_strings():
    assert KVErrorCode.KEY_NOT_FOUND.value == "KV/KEY_NOT_FOUND"
    assert KeyNotFound(b"k").code == KVErrorCode.KEY_NOT_FOUND
    assert ValueChanged(b"k").code == KVErrorCode.VALUE_CHANGED
    assert EmptyKey().code == KVErrorCode.EMPTY_KEY
    assert LimitExceeded(1000, 1001).code == KVErrorCode.LIMIT_EXCEEDED
    assert DeadlineExceeded().code == KVErrorCode.DEADLINE_EXCEEDED


def test_hierarchy():
    assert issubclass(SerializationConflict, TransportError)
    assert issubclass(DeadlineExceeded, Cancelled)
    for cls in (KeyNotFound, ValueChanged, EmptyKey, TransportError, Cancelled):
        assert issubclass(cls, KVError)


def test_only_conflicts_are_retryable():
    assert SerializationConflict().retryable
    assert not TransportError().retryable
    assert not ValueChanged(b"k").retryable
    assert not KeyNotFound(b"k").retryable


def test_to_dict_is_json_serializable():
    err = KeyNotFound(b"\x00\xff", bucket=b"b")
    d = err.to_dict()
    json.dumps(d)
    assert d["code"] == "KV/KEY_NOT_FOUND"
    assert d["data"] == {"key": "00ff", "bucket": "62"}
    assert d["retryable"] is False


def test_to_dict_with_cause():
    err = TransportError("boom", cause=OSError("disk"))
    d = err.to_dict(include_cause=True)
    assert d["cause"] == {"type": "OSError", "message": "disk"}


def test_with_context_returns_enriched_copy():
    err = KeyNotFound(b"k")
    enriched = err.with_context(op="get")
    assert enriched is not err
    assert type(enriched) is KeyNotFound
    assert enriched.data["op"] == "get"
    assert "op" not in err.data
    assert enriched.key == b"k"


def test_with_cause_chains():
    cause = RuntimeError("inner")
    err = Cancelled().with_cause(cause)
    assert err.cause is cause
    assert err.__cause__ is cause


def test_str_includes_code_and_data():
    s = str(LimitExceeded(1000, 1200))
    assert s.startswith("KV/LIMIT_EXCEEDED: limit exceeded")
    assert "got=1200" in s


def test_wrap_plain_exception():
    exc = ValueError("bad")
    err = wrap(exc, op="put")
    assert isinstance(err, TransportError)
    assert err.cause is exc
    assert err.data == {"op": "put"}


def test_wrap_kv_error_keeps_type():
    err = wrap(ValueChanged(b"k"), attempt=2)
    assert isinstance(err, ValueChanged)
    assert err.data["attempt"] == 2


def test_combine():
    a, b = RuntimeError("a"), OSError("b")
    assert combine() is None
    assert combine(None, None) is None
    assert combine(None, a) is a
    both = combine(a, None, b)
    assert isinstance(both, CombinedError)
    assert both.errors == [a, b]
    assert both.cause is a
    assert "RuntimeError: a" in both.message and "OSError: b" in both.message


def test_errors_are_raisable():
    with pytest.raises(KVError) as ei:
        raise ValueChanged(b"k")
    assert ei.value.key == b"k"
