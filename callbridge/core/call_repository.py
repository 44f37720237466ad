from abc import ABC, abstractmethod
from typing import Optional
from callbridge.core.call_record import CallCompletion, CallRecord


class CallRepository(ABC):
    """
    Interface for reading and advancing call records.
    """
    @abstractmethod
    async def get_by_id(self, call_id: str) -> Optional[CallRecord]:
        """Retrieve a call record by its ID."""
        pass

    @abstractmethod
    async def mark_in_progress(self, call_id: str) -> None:
        """Flag the call as live once its media stream starts."""
        pass

    @abstractmethod
    async def mark_finished(self, call_id: str, completion: CallCompletion) -> None:
        """Store the final status, outcome and duration."""
        pass
