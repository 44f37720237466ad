from typing import Dict, Optional
from callbridge.core.call_record import CallCompletion, CallRecord, CallStatus
from callbridge.core.call_repository import CallRepository


class InMemoryCallRepository(CallRepository):
    """
    In-memory implementation of CallRepository for local runs and tests.
    Unknown call ids get a record on first update.
    """
    def __init__(self):
        self._store: Dict[str, CallRecord] = {}

    async def get_by_id(self, call_id: str) -> Optional[CallRecord]:
        return self._store.get(call_id)

    async def mark_in_progress(self, call_id: str) -> None:
        record = self._store.setdefault(call_id, CallRecord(id=call_id))
        record.status = CallStatus.IN_PROGRESS

    async def mark_finished(self, call_id: str, completion: CallCompletion) -> None:
        record = self._store.setdefault(call_id, CallRecord(id=call_id))
        record.status = completion.status
        record.outcome = completion.outcome
        record.completed_at = completion.completed_at
        if completion.duration_seconds is not None:
            record.duration_seconds = completion.duration_seconds
