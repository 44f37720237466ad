from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from callbridge.telephony.messages import MalformedMessageError, decode_frame

# Agent output format that already matches Twilio's media stream
TELEPHONY_AUDIO_FORMAT = "ulaw_8000"


# --- Inbound (agent -> bridge) ---

class AudioPayload(BaseModel):
    audio_base_64: Optional[str] = None
    event_id: Optional[int] = None


class AudioMessage(BaseModel):
    type: Literal["audio"]
    audio_event: AudioPayload = Field(default_factory=AudioPayload)


class InitiationMetadata(BaseModel):
    conversation_id: Optional[str] = None
    agent_output_audio_format: Optional[str] = None
    user_input_audio_format: Optional[str] = None


class ConversationInitiationMetadataMessage(BaseModel):
    type: Literal["conversation_initiation_metadata"]
    conversation_initiation_metadata_event: InitiationMetadata = Field(default_factory=InitiationMetadata)


class AgentResponsePayload(BaseModel):
    agent_response: Optional[str] = None


class AgentResponseMessage(BaseModel):
    type: Literal["agent_response"]
    agent_response_event: AgentResponsePayload = Field(default_factory=AgentResponsePayload)


class UserTranscriptPayload(BaseModel):
    user_transcript: Optional[str] = None


class UserTranscriptMessage(BaseModel):
    type: Literal["user_transcript"]
    user_transcription_event: UserTranscriptPayload = Field(default_factory=UserTranscriptPayload)


class InterruptionMessage(BaseModel):
    type: Literal["interruption"]


class PingPayload(BaseModel):
    event_id: Optional[int] = None
    ping_ms: Optional[int] = None


class PingMessage(BaseModel):
    type: Literal["ping"]
    ping_event: PingPayload = Field(default_factory=PingPayload)


class ClientToolCall(BaseModel):
    tool_name: str
    tool_call_id: str
    parameters: Dict[str, Any] = Field(default_factory=dict)


class ClientToolCallMessage(BaseModel):
    type: Literal["client_tool_call"]
    client_tool_call: ClientToolCall


AgentEvent = Annotated[
    Union[
        AudioMessage,
        ConversationInitiationMetadataMessage,
        AgentResponseMessage,
        UserTranscriptMessage,
        InterruptionMessage,
        PingMessage,
        ClientToolCallMessage,
    ],
    Field(discriminator="type"),
]

AGENT_EVENT_KINDS = frozenset({
    "audio",
    "conversation_initiation_metadata",
    "agent_response",
    "user_transcript",
    "interruption",
    "ping",
    "client_tool_call",
})

_agent_adapter = TypeAdapter(AgentEvent)


def parse_agent_event(raw) -> Optional[AgentEvent]:
    """
    Parses a frame from the conversational agent socket.
    Returns None for types the bridge ignores (VAD scores, tentative responses...).
    """
    data = decode_frame(raw, "type")
    if data["type"] not in AGENT_EVENT_KINDS:
        return None
    try:
        return _agent_adapter.validate_python(data)
    except ValidationError as e:
        raise MalformedMessageError(f"Invalid '{data['type']}' frame: {e}") from e


# --- Outbound (bridge -> agent) ---

class PromptOverride(BaseModel):
    prompt: str


class AgentOverride(BaseModel):
    prompt: PromptOverride
    first_message: str


class TtsOverride(BaseModel):
    stability: float
    similarity_boost: float


class ConversationConfigOverride(BaseModel):
    agent: AgentOverride
    tts: Optional[TtsOverride] = None


class ConversationInitiationClientData(BaseModel):
    type: Literal["conversation_initiation_client_data"] = "conversation_initiation_client_data"
    dynamic_variables: Dict[str, str]
    conversation_config_override: ConversationConfigOverride


class UserAudioChunk(BaseModel):
    user_audio_chunk: str


class ClientToolResult(BaseModel):
    type: Literal["client_tool_result"] = "client_tool_result"
    tool_call_id: str
    result: str
    is_error: bool


class PongMessage(BaseModel):
    type: Literal["pong"] = "pong"
    event_id: int

