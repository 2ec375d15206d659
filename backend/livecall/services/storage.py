from __future__ import annotations

import json
import sqlite3
from contextlib import closing
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from livecall.core.config import settings
from livecall.core.errors import CallValidationError
from livecall.core.telemetry import timed_step


MAX_PAGE_SIZE = 100


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class CallRecordStore:
    """Keyed storage of call records: one row per call, input/output JSON blobs."""

    def create(self, call_id: str, input_data: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def update_output(self, call_id: str, output_data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def get(self, call_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def list(self, limit: int, offset: int = 0) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def list_page(self, page: int = 1, limit: int = 10) -> Tuple[List[Dict[str, Any]], bool]:
        """Return one page of records, newest first, and whether more pages exist."""
        if page < 1 or limit < 1 or limit > MAX_PAGE_SIZE:
            raise CallValidationError(
                f"Invalid pagination parameters. Page must be >= 1, limit must be 1-{MAX_PAGE_SIZE}",
                payload={"page": page, "limit": limit},
            )
        offset = (page - 1) * limit
        # One extra row tells us whether another page exists.
        rows = self.list(limit + 1, offset)
        has_more = len(rows) > limit
        return rows[:limit], has_more

    @staticmethod
    def _decode_json(value: Any) -> Optional[Dict[str, Any]]:
        if value is None:
            return None
        if isinstance(value, dict):
            return value
        if isinstance(value, (str, bytes)):
            try:
                parsed = json.loads(value)
            except ValueError:
                return None
            return parsed if isinstance(parsed, dict) else None
        return None

    def _decode_row(self, row: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "call_id": row.get("call_id"),
            "input_data": self._decode_json(row.get("input_data")) or {},
            "output_data": self._decode_json(row.get("output_data")),
            "created_at": row.get("created_at"),
            "updated_at": row.get("updated_at") or row.get("created_at"),
        }


class SqliteCallRecordStore(CallRecordStore):
    """SQLite-backed call record store used locally and in tests."""

    def __init__(self, sqlite_path: str | Path | None = None) -> None:
        self._path = Path(sqlite_path) if sqlite_path is not None else settings.SQLITE_PATH
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with closing(self._connect()) as conn, conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS calls (
                    call_id TEXT PRIMARY KEY,
                    input_data TEXT NOT NULL,
                    output_data TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_calls_created_at ON calls (created_at)")

    def create(self, call_id: str, input_data: Dict[str, Any]) -> Dict[str, Any]:
        with timed_step("storage", "create_call_record", session_id=call_id):
            now = utc_now_iso()
            with closing(self._connect()) as conn, conn:
                conn.execute(
                    "INSERT INTO calls (call_id, input_data, output_data, created_at, updated_at) "
                    "VALUES (?, ?, NULL, ?, ?)",
                    (call_id, json.dumps(input_data, default=str), now, now),
                )
            return {
                "call_id": call_id,
                "input_data": dict(input_data),
                "output_data": None,
                "created_at": now,
                "updated_at": now,
            }

    def update_output(self, call_id: str, output_data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with timed_step("storage", "update_call_output", session_id=call_id):
            with closing(self._connect()) as conn, conn:
                cursor = conn.execute(
                    "UPDATE calls SET output_data = ?, updated_at = ? WHERE call_id = ?",
                    (json.dumps(output_data, default=str), utc_now_iso(), call_id),
                )
                if cursor.rowcount == 0:
                    return None
            return self.get(call_id)

    def get(self, call_id: str) -> Optional[Dict[str, Any]]:
        with timed_step("storage", "get_call_record", session_id=call_id):
            with closing(self._connect()) as conn:
                row = conn.execute("SELECT * FROM calls WHERE call_id = ?", (call_id,)).fetchone()
            if row is None:
                return None
            return self._decode_row(dict(row))

    def list(self, limit: int, offset: int = 0) -> List[Dict[str, Any]]:
        with timed_step("storage", "list_call_records", details={"limit": limit, "offset": offset}):
            with closing(self._connect()) as conn:
                rows = conn.execute(
                    "SELECT * FROM calls ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?",
                    (limit, offset),
                ).fetchall()
            return [self._decode_row(dict(row)) for row in rows]
