"""
pathkv
======

Ordered byte key-value store on SQLite, with buckets, batched ordered
iteration and serializable compare-and-swap.

>>> from pathkv import open_client
>>> kv = open_client("memory://")
>>> kv.compare_and_swap(b"k", None, b"v1")
>>> kv.get(b"k")
b'v1'
"""

from .context import Context
from .db import Client, open_client
from .errors import (Cancelled, CombinedError, ConfigError, DeadlineExceeded,
                     EmptyKey, KeyNotFound, KVError, KVErrorCode, LimitExceeded,
                     SerializationConflict, TransportError, ValueChanged)
from .kv import KeyValueStore, list_keys
from .types import (DEFAULT_BUCKET, DELIMITER, LOOKUP_LIMIT, IterateOptions,
                    ListItem, after_prefix)
from .version import __version__

__all__ = [
    "__version__",
    "Client",
    "Context",
    "open_client",
    "KeyValueStore",
    "list_keys",
    "IterateOptions",
    "ListItem",
    "after_prefix",
    "DEFAULT_BUCKET",
    "DELIMITER",
    "LOOKUP_LIMIT",
    "KVError",
    "KVErrorCode",
    "EmptyKey",
    "KeyNotFound",
    "ValueChanged",
    "LimitExceeded",
    "TransportError",
    "SerializationConflict",
    "Cancelled",
    "DeadlineExceeded",
    "ConfigError",
    "CombinedError",
]
