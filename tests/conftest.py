"""
Shared pytest fixtures:
- Settings isolated from the developer's environment / .env
- In-memory client (single connection) and file-backed client (pooled)
- A factory for clients with per-test overrides (batch size, retry budget)
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, Iterator, List

import pytest

from pathkv.config import Settings, get_settings
from pathkv.db import Client, open_client


@pytest.fixture(autouse=True, scope="session")
def _isolated_env() -> Iterator[None]:
    """Drop PATHKV_* variables so tests see built-in defaults."""
    mp = pytest.MonkeyPatch()
    for name in list(os.environ):
        if name.startswith("PATHKV_"):
            mp.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    mp.undo()
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def make_client(settings: Settings) -> Iterator[Callable[..., Client]]:
    """
    Build clients with overrides; every client is closed at teardown.

        kv = make_client("memory://", batch_size=1)
    """
    opened: List[Client] = []

    def _make(uri: str = "memory://", **overrides) -> Client:
        kv = open_client(uri, settings=settings, **overrides)
        opened.append(kv)
        return kv

    yield _make
    for kv in opened:
        if not kv.pool.closed:
            kv.close()


@pytest.fixture
def kv(make_client) -> Client:
    """In-memory client with the default batch size."""
    return make_client("memory://")


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    return str(tmp_path / "pathkv.db")


@pytest.fixture
def file_kv(make_client, db_path: str) -> Client:
    """File-backed client with a real connection pool (WAL)."""
    return make_client(db_path, pool_size=4)
