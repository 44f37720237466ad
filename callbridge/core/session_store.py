from typing import TYPE_CHECKING, Dict, Optional

if TYPE_CHECKING:
    from callbridge.core.session import CallSession

# StreamSid -> CallSession
sessions: Dict[str, "CallSession"] = {}

def register_session(stream_sid: str, session: "CallSession") -> None:
    sessions[stream_sid] = session

def get_session(stream_sid: str) -> Optional["CallSession"]:
    return sessions.get(stream_sid)

def remove_session(stream_sid: str) -> None:
    if stream_sid in sessions:
        del sessions[stream_sid]

def active_count() -> int:
    return len(sessions)
