"""SQLite-backed record store: one JSON payload table per logical table."""

import re
import sqlite3
import threading
import uuid
from datetime import datetime
from pathlib import Path

import structlog

from db import dump_json, load_json, wal_connect
from errors import RecordStoreError

from .base import RecordStore

logger = structlog.get_logger()

_TABLE_NAME = re.compile(r"^[a-z][a-z0-9_]*$")
_FIELD_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class SQLiteRecordStore(RecordStore):
    """Stores each record as JSON in ``<table>(id, data, created_at, updated_at)``."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._tables: set[str] = set()
        self._lock = threading.Lock()
        # Fail fast if the file cannot be opened at all
        wal_connect(self.db_path).close()

    def _ensure_table(self, conn: sqlite3.Connection, table: str) -> None:
        if not _TABLE_NAME.match(table):
            raise RecordStoreError(f"Invalid table name: {table!r}")
        if table in self._tables:
            return
        with self._lock:
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    id TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            self._tables.add(table)

    def get_by_id(self, table: str, record_id: str) -> dict | None:
        try:
            with wal_connect(self.db_path, row_factory=True) as conn:
                self._ensure_table(conn, table)
                row = conn.execute(
                    f"SELECT data FROM {table} WHERE id = ?", (record_id,)
                ).fetchone()
        except sqlite3.Error as e:
            raise RecordStoreError(f"get_by_id({table}, {record_id}) failed: {e}") from e
        return self._row_to_record(row) if row else None

    def upsert(self, table: str, record: dict) -> dict:
        record = dict(record)
        if not record.get("id"):
            record["id"] = uuid.uuid4().hex[:16]
        now = datetime.now().isoformat()

        try:
            with wal_connect(self.db_path, row_factory=True) as conn:
                self._ensure_table(conn, table)
                row = conn.execute(
                    f"SELECT data FROM {table} WHERE id = ?", (record["id"],)
                ).fetchone()
                if row:
                    merged = {**self._row_to_record(row), **record, "updated_at": now}
                    conn.execute(
                        f"UPDATE {table} SET data = ?, updated_at = ? WHERE id = ?",
                        (dump_json(merged), now, record["id"]),
                    )
                else:
                    merged = {"created_at": now, **record, "updated_at": now}
                    conn.execute(
                        f"INSERT INTO {table} (id, data, created_at, updated_at) VALUES (?, ?, ?, ?)",
                        (record["id"], dump_json(merged), merged["created_at"], now),
                    )
        except sqlite3.Error as e:
            raise RecordStoreError(f"upsert({table}) failed: {e}") from e
        return merged

    def query(
        self,
        table: str,
        filter: dict | None = None,
        since: datetime | None = None,
        since_field: str = "created_at",
        order_by: str | None = None,
        descending: bool = True,
        limit: int | None = None,
    ) -> list[dict]:
        sql = f"SELECT data FROM {table} WHERE 1=1"
        params: list = []

        for field, value in (filter or {}).items():
            self._check_field(field)
            if value is None:
                sql += f" AND json_extract(data, '$.{field}') IS NULL"
            elif value is False:
                # Unset booleans count as false
                sql += f" AND COALESCE(json_extract(data, '$.{field}'), 0) = 0"
            else:
                sql += f" AND json_extract(data, '$.{field}') = ?"
                params.append(int(value) if isinstance(value, bool) else value)

        if since is not None:
            self._check_field(since_field)
            sql += f" AND json_extract(data, '$.{since_field}') >= ?"
            params.append(since.isoformat())

        if order_by:
            self._check_field(order_by)
            sql += f" ORDER BY json_extract(data, '$.{order_by}') {'DESC' if descending else 'ASC'}"
        else:
            sql += " ORDER BY rowid"

        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        try:
            with wal_connect(self.db_path, row_factory=True) as conn:
                self._ensure_table(conn, table)
                rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise RecordStoreError(f"query({table}) failed: {e}") from e
        return [self._row_to_record(r) for r in rows]

    def delete(self, table: str, record_id: str) -> bool:
        try:
            with wal_connect(self.db_path) as conn:
                self._ensure_table(conn, table)
                cur = conn.execute(f"DELETE FROM {table} WHERE id = ?", (record_id,))
        except sqlite3.Error as e:
            raise RecordStoreError(f"delete({table}, {record_id}) failed: {e}") from e
        return cur.rowcount > 0

    @staticmethod
    def _check_field(field: str) -> None:
        if not _FIELD_NAME.match(field):
            raise RecordStoreError(f"Invalid field name: {field!r}")

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> dict:
        return load_json(row["data"], default={})
