import json
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator


class MalformedMessageError(ValueError):
    """Raised when a socket frame can't be parsed into a known message."""


# --- Inbound (Twilio -> bridge) ---

class StartMetadata(BaseModel):
    streamSid: str
    callSid: Optional[str] = None
    accountSid: Optional[str] = None
    customParameters: Dict[str, str] = Field(default_factory=dict)

    @field_validator("customParameters", mode="before")
    @classmethod
    def _stringify_parameters(cls, value: Any) -> Dict[str, str]:
        if not value:
            return {}
        return {str(k): "" if v is None else str(v) for k, v in dict(value).items()}


class MediaMetadata(BaseModel):
    payload: str
    track: Optional[str] = None
    chunk: Optional[str] = None
    timestamp: Optional[str] = None


class ConnectedEvent(BaseModel):
    event: Literal["connected"]
    protocol: Optional[str] = None
    version: Optional[str] = None


class StartEvent(BaseModel):
    event: Literal["start"]
    start: StartMetadata
    streamSid: Optional[str] = None


class MediaEvent(BaseModel):
    event: Literal["media"]
    media: MediaMetadata
    streamSid: Optional[str] = None


class MarkEvent(BaseModel):
    event: Literal["mark"]
    streamSid: Optional[str] = None


class StopEvent(BaseModel):
    event: Literal["stop"]
    streamSid: Optional[str] = None


TelephonyEvent = Annotated[
    Union[ConnectedEvent, StartEvent, MediaEvent, MarkEvent, StopEvent],
    Field(discriminator="event"),
]

TELEPHONY_EVENT_KINDS = frozenset({"connected", "start", "media", "mark", "stop"})

_telephony_adapter = TypeAdapter(TelephonyEvent)


def decode_frame(raw: Union[str, bytes], tag: str) -> Dict[str, Any]:
    """JSON-decodes a text frame and checks it's an object carrying a string `tag`."""
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MalformedMessageError(f"Frame is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedMessageError(f"Frame is not a JSON object: {type(data).__name__}")
    if not isinstance(data.get(tag), str):
        raise MalformedMessageError(f"Frame has no '{tag}' discriminator")
    return data


def parse_telephony_event(raw: Union[str, bytes]) -> Optional[TelephonyEvent]:
    """
    Parses a Twilio Media Stream frame.
    Returns None for event kinds the bridge doesn't act on (e.g. dtmf).
    """
    data = decode_frame(raw, "event")
    if data["event"] not in TELEPHONY_EVENT_KINDS:
        return None
    try:
        return _telephony_adapter.validate_python(data)
    except ValidationError as e:
        raise MalformedMessageError(f"Invalid '{data['event']}' frame: {e}") from e


# --- Outbound (bridge -> Twilio) ---

class OutboundMedia(BaseModel):
    payload: str


class TelephonyMediaMessage(BaseModel):
    event: Literal["media"] = "media"
    streamSid: str
    media: OutboundMedia

    @classmethod
    def for_payload(cls, stream_sid: str, payload: str) -> "TelephonyMediaMessage":
        return cls(streamSid=stream_sid, media=OutboundMedia(payload=payload))


class TelephonyClearMessage(BaseModel):
    """Tells Twilio to drop audio it has buffered but not yet played."""
    event: Literal["clear"] = "clear"
    streamSid: str
