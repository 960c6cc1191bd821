"""Shared SQLite helpers: WAL mode, row_factory defaults."""

import json
import sqlite3
from pathlib import Path

from errors import StoreUnavailableError


def wal_connect(db_path: str | Path, row_factory: bool = False) -> sqlite3.Connection:
    """Open SQLite connection with WAL journal mode.

    Args:
        db_path: Path to database file.
        row_factory: If True, set conn.row_factory = sqlite3.Row.

    Raises:
        StoreUnavailableError: if the database file cannot be opened.
    """
    try:
        conn = sqlite3.connect(str(db_path), timeout=30.0)
        conn.execute("PRAGMA journal_mode=WAL")
    except sqlite3.OperationalError as e:
        raise StoreUnavailableError(f"Cannot open {db_path}: {e}") from e
    if row_factory:
        conn.row_factory = sqlite3.Row
    return conn


def dump_json(value) -> str:
    """Serialize lists/sets/dicts for TEXT columns."""
    if isinstance(value, set):
        value = sorted(value)
    return json.dumps(value, default=str)


def load_json(raw: str | None, default=None):
    if not raw:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return default
