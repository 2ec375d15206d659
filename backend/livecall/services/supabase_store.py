from __future__ import annotations

from typing import Any, Dict, List, Optional

from livecall.core.config import settings
from livecall.core.telemetry import timed_step
from livecall.services.storage import CallRecordStore, utc_now_iso


class SupabaseCallRecordStore(CallRecordStore):
    """Supabase-backed call record store (Postgres `calls` table with jsonb columns)."""

    def __init__(self, client: Any = None, *, table: Optional[str] = None) -> None:
        if client is None:
            from supabase import create_client

            # Use service_role key (bypasses RLS) if available, else anon key
            key = settings.SUPABASE_SERVICE_ROLE_KEY or settings.SUPABASE_ANON_KEY
            client = create_client(settings.SUPABASE_URL, key)
        self._client = client
        self._table = table or settings.SUPABASE_CALLS_TABLE

    def create(self, call_id: str, input_data: Dict[str, Any]) -> Dict[str, Any]:
        with timed_step("storage", "create_call_record", session_id=call_id):
            now = utc_now_iso()
            row = {
                "call_id": call_id,
                "input_data": input_data,
                "output_data": None,
                "created_at": now,
                "updated_at": now,
            }
            result = self._client.table(self._table).insert(row).execute()
            rows = result.data or []
            return self._decode_row(rows[0]) if rows else self._decode_row(row)

    def update_output(self, call_id: str, output_data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with timed_step("storage", "update_call_output", session_id=call_id):
            result = (
                self._client.table(self._table)
                .update({"output_data": output_data, "updated_at": utc_now_iso()})
                .eq("call_id", call_id)
                .execute()
            )
            rows = result.data or []
            if not rows:
                return None
            return self._decode_row(rows[0])

    def get(self, call_id: str) -> Optional[Dict[str, Any]]:
        with timed_step("storage", "get_call_record", session_id=call_id):
            result = (
                self._client.table(self._table)
                .select("*")
                .eq("call_id", call_id)
                .limit(1)
                .execute()
            )
            rows = result.data or []
            if not rows:
                return None
            return self._decode_row(rows[0])

    def list(self, limit: int, offset: int = 0) -> List[Dict[str, Any]]:
        with timed_step("storage", "list_call_records", details={"limit": limit, "offset": offset}):
            result = (
                self._client.table(self._table)
                .select("*")
                .order("created_at", desc=True)
                .range(offset, offset + limit - 1)
                .execute()
            )
            return [self._decode_row(row) for row in (result.data or []) if isinstance(row, dict)]
