from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class CallStatus(str, Enum):
    INITIATED = "initiated"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"


class CallRecord(BaseModel):
    """
    Row of the `calls` table. Created by the dashboard when a call is placed;
    the bridge and Twilio's status callback only move it forward.
    """
    id: str
    status: CallStatus = CallStatus.INITIATED
    duration_seconds: Optional[int] = None
    outcome: Optional[str] = None
    initiated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None


class CallCompletion(BaseModel):
    """Final state of a call as reported by Twilio's status callback."""
    status: CallStatus
    outcome: str
    duration_seconds: Optional[int] = None
    completed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_twilio_status(cls, call_status: Optional[str], call_duration: Optional[str]) -> "CallCompletion":
        duration = None
        if call_duration:
            try:
                duration = int(call_duration)
            except ValueError:
                duration = None

        if call_status == "completed":
            return cls(
                status=CallStatus.COMPLETED,
                outcome=f"Call completed successfully. Duration: {call_duration or 0}s",
                duration_seconds=duration,
            )
        return cls(
            status=CallStatus.FAILED,
            outcome=f"Call {call_status}",
            duration_seconds=duration,
        )
