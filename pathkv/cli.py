"""
Command line for a pathkv store.

Commands:
  - migrate   : create the pathdata table if missing
  - put       : set a value
  - get       : print a value
  - delete    : remove a key
  - list      : print keys from a starting key on
  - cas       : compare-and-swap one key
  - dump      : walk a bucket (prefix / recurse / reverse) and print items

Keys and values are UTF-8 text; with --hex they are read and printed as hex.

Usage:
  python -m pathkv --db sqlite:///kv.db put greeting hello
  python -m pathkv --db kv.db --hex get 6772656574696e67
  python -m pathkv --db kv.db dump --prefix users/ --no-recurse
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Optional

import typer

from .config import get_settings
from .db import Client, open_client
from .errors import KVError
from .logging import get_logger, setup_logging
from .types import IterateOptions, ListItem
from .version import __version__

app = typer.Typer(
    name="pathkv",
    add_completion=False,
    no_args_is_help=True,
    help="Inspect and edit a pathkv key-value store.",
)

log = get_logger(__name__)


@dataclass
class CliState:
    db: Optional[str] = None
    bucket: bytes = b""
    hex: bool = False


_state = CliState()


# -------------------- utils --------------------


def _decode(text: str, what: str = "key") -> bytes:
    if not _state.hex:
        return text.encode("utf-8")
    try:
        return bytes.fromhex(text)
    except ValueError:
        raise typer.BadParameter(f"{what} is not valid hex: {text!r}")


def _opt(text: Optional[str], what: str) -> Optional[bytes]:
    return None if text is None else _decode(text, what)


def _show(b: bytes) -> str:
    if _state.hex:
        return b.hex()
    return b.decode("utf-8", errors="backslashreplace")


def _open(**overrides) -> Client:
    return open_client(_state.db, **overrides)


def _fail(err: KVError) -> None:
    log.debug("command_failed", code=err.code.value, error=str(err))
    typer.echo(f"error: {err.code.value}: {err.message}", err=True)
    raise typer.Exit(code=1)


def _version(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


# -------------------- commands --------------------


@app.callback()
def main(
    db: Optional[str] = typer.Option(
        None, "--db", "-d", help="Database URI or path (default: $PATHKV_DB_URI)"
    ),
    bucket: str = typer.Option("", "--bucket", "-b", help="Bucket name (default: the default bucket)"),
    hex_: bool = typer.Option(False, "--hex", help="Keys and values are hex encoded"),
    log_level: str = typer.Option("WARNING", "--log-level", help="DEBUG, INFO, WARNING, ERROR"),
    version: bool = typer.Option(
        False, "--version", callback=_version, is_eager=True, help="Print version and exit"
    ),
):
    """
    Shared options for all subcommands.
    """
    setup_logging(level=log_level.upper(), log_format=get_settings().log_format)
    _state.db = db
    _state.hex = hex_
    _state.bucket = _decode(bucket, "bucket") if bucket else b""


@app.command("migrate")
def migrate():
    """Create the pathdata table if it does not exist."""
    try:
        with _open(create_schema=True) as kv:
            typer.echo(f"schema ready: {kv.pool.path}")
    except KVError as err:
        _fail(err)


@app.command("put")
def put(key: str, value: str):
    """Set KEY to VALUE."""
    try:
        with _open() as kv:
            kv.put_path(_state.bucket, _decode(key), _decode(value, "value"))
    except KVError as err:
        _fail(err)


@app.command("get")
def get(key: str):
    """Print the value stored at KEY."""
    try:
        with _open() as kv:
            typer.echo(_show(kv.get_path(_state.bucket, _decode(key))))
    except KVError as err:
        _fail(err)


@app.command("delete")
def delete(key: str):
    """Remove KEY."""
    try:
        with _open() as kv:
            kv.delete_path(_state.bucket, _decode(key))
    except KVError as err:
        _fail(err)


@app.command("list")
def list_(
    first: str = typer.Option("", "--first", "-f", help="First key (inclusive)"),
    limit: int = typer.Option(0, "--limit", "-n", help="Maximum keys (0 = lookup limit)"),
):
    """Print keys in ascending order, starting at --first."""
    try:
        with _open() as kv:
            for key in kv.list_path(_state.bucket, _decode(first) if first else b"", limit):
                typer.echo(_show(key))
    except KVError as err:
        _fail(err)


@app.command("cas")
def cas(
    key: str,
    old: Optional[str] = typer.Option(None, "--old", help="Expected value (omit: key must be absent)"),
    new: Optional[str] = typer.Option(None, "--new", help="Replacement value (omit: remove the key)"),
):
    """Atomically replace the value of KEY if it still equals --old."""
    try:
        with _open() as kv:
            kv.compare_and_swap_path(
                _state.bucket, _decode(key), _opt(old, "old value"), _opt(new, "new value")
            )
    except KVError as err:
        _fail(err)


@app.command("dump")
def dump(
    prefix: str = typer.Option("", "--prefix", "-p", help="Only keys starting with this prefix"),
    first: str = typer.Option("", "--first", "-f", help="First key (inclusive)"),
    recurse: bool = typer.Option(True, "--recurse/--no-recurse", help="Descend below '/'"),
    reverse: bool = typer.Option(False, "--reverse", "-r", help="Descending order"),
    limit: int = typer.Option(0, "--limit", "-n", help="Maximum items (0 = all)"),
    as_json: bool = typer.Option(False, "--json", help="One JSON object per line"),
):
    """Walk the bucket and print every item."""
    opts = IterateOptions(
        prefix=_decode(prefix, "prefix") if prefix else b"",
        first=_decode(first) if first else b"",
        recurse=recurse,
        reverse=reverse,
        limit=limit,
    )

    def emit(it) -> int:
        n = 0
        for item in it:
            typer.echo(_render(item, as_json))
            n += 1
        return n

    try:
        with _open() as kv:
            kv.iterate_path(_state.bucket, opts, emit)
    except KVError as err:
        _fail(err)


def _render(item: ListItem, as_json: bool) -> str:
    if as_json:
        return json.dumps(
            {
                "key": _show(item.key),
                "value": None if item.is_prefix else _show(item.value),
                "is_prefix": item.is_prefix,
            }
        )
    if item.is_prefix:
        return f"{_show(item.key)}\t<prefix>"
    return f"{_show(item.key)}\t{_show(item.value)}"


if __name__ == "__main__":
    app()
