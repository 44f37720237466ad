import asyncio
import logging
from typing import Any, Dict, Optional
from callbridge.config.environment import config
from callbridge.config.supabase_client import get_supabase_client
from callbridge.core.call_record import CallCompletion, CallRecord, CallStatus
from callbridge.core.call_repository import CallRepository

logger = logging.getLogger(__name__)


class SupabaseCallRepository(CallRepository):
    """
    Call records in the Supabase `calls` table.
    The supabase client is synchronous, so every query runs in a worker thread
    to keep live audio relays on the event loop moving.
    """
    def __init__(self) -> None:
        self._client = get_supabase_client()
        self._table = config.get("calls.table", "calls")

    async def get_by_id(self, call_id: str) -> Optional[CallRecord]:
        try:
            response = await asyncio.to_thread(
                lambda: self._client.table(self._table).select("*").eq("id", call_id).execute()
            )
        except Exception as e:
            logger.error(f"Error fetching call {call_id}: {e}")
            return None

        if not response.data:
            return None
        row = response.data[0]
        return CallRecord(
            id=row["id"],
            status=row.get("status") or CallStatus.INITIATED,
            duration_seconds=row.get("duration_seconds"),
            outcome=row.get("outcome"),
            initiated_at=row["initiated_at"],
            completed_at=row.get("completed_at"),
        )

    async def _update(self, call_id: str, updates: Dict[str, Any]) -> None:
        response = await asyncio.to_thread(
            lambda: self._client.table(self._table).update(updates).eq("id", call_id).execute()
        )
        if not response.data:
            logger.warning(f"⚠️ Call record {call_id} not found, update skipped")

    async def mark_in_progress(self, call_id: str) -> None:
        await self._update(call_id, {"status": CallStatus.IN_PROGRESS.value})
        logger.info(f"💾 Call {call_id} marked in-progress")

    async def mark_finished(self, call_id: str, completion: CallCompletion) -> None:
        updates: Dict[str, Any] = {
            "status": completion.status.value,
            "completed_at": completion.completed_at.isoformat(),
            "outcome": completion.outcome,
        }
        if completion.duration_seconds is not None:
            updates["duration_seconds"] = completion.duration_seconds

        await self._update(call_id, updates)
        logger.info(f"💾 Call {call_id} marked {completion.status.value}")
