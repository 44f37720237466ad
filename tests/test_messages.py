import json
import pytest
from callbridge.elevenlabs.messages import (
    AudioMessage,
    ClientToolCallMessage,
    ClientToolResult,
    ConversationInitiationMetadataMessage,
    PingMessage,
    parse_agent_event,
)
from callbridge.telephony.messages import (
    MalformedMessageError,
    MediaEvent,
    StartEvent,
    StopEvent,
    TelephonyClearMessage,
    TelephonyMediaMessage,
    parse_telephony_event,
)

def test_parse_start_event_with_custom_parameters():
    raw = json.dumps({
        "event": "start",
        "sequenceNumber": "1",
        "start": {
            "streamSid": "MZ1",
            "callSid": "CA1",
            "customParameters": {"clientName": "Acme", "amountCents": 1250},
        },
        "streamSid": "MZ1",
    })
    event = parse_telephony_event(raw)
    assert isinstance(event, StartEvent)
    assert event.start.streamSid == "MZ1"
    assert event.start.customParameters == {"clientName": "Acme", "amountCents": "1250"}

def test_parse_media_and_stop():
    media = parse_telephony_event(json.dumps({"event": "media", "media": {"payload": "AAAA", "track": "inbound"}}))
    assert isinstance(media, MediaEvent)
    assert media.media.payload == "AAAA"
    assert isinstance(parse_telephony_event('{"event": "stop", "streamSid": "MZ1"}'), StopEvent)

def test_unknown_telephony_event_is_ignored():
    assert parse_telephony_event('{"event": "dtmf", "dtmf": {"digit": "1"}}') is None

@pytest.mark.parametrize("raw", [
    "not json",
    "[1, 2]",
    '{"no_event": true}',
    '{"event": "media"}',
    '{"event": "start", "start": {}}',
])
def test_malformed_telephony_frames(raw):
    with pytest.raises(MalformedMessageError):
        parse_telephony_event(raw)

def test_outbound_telephony_messages():
    assert TelephonyMediaMessage.for_payload("MZ1", "AAAA").model_dump() == {
        "event": "media", "streamSid": "MZ1", "media": {"payload": "AAAA"},
    }
    assert TelephonyClearMessage(streamSid="MZ1").model_dump() == {"event": "clear", "streamSid": "MZ1"}

def test_parse_agent_events():
    audio = parse_agent_event('{"type": "audio", "audio_event": {"audio_base_64": "AAAA", "event_id": 3}}')
    assert isinstance(audio, AudioMessage)
    assert audio.audio_event.audio_base_64 == "AAAA"

    meta = parse_agent_event(json.dumps({
        "type": "conversation_initiation_metadata",
        "conversation_initiation_metadata_event": {
            "conversation_id": "conv_1",
            "agent_output_audio_format": "ulaw_8000",
            "user_input_audio_format": "ulaw_8000",
        },
    }))
    assert isinstance(meta, ConversationInitiationMetadataMessage)
    assert meta.conversation_initiation_metadata_event.agent_output_audio_format == "ulaw_8000"

    ping = parse_agent_event('{"type": "ping", "ping_event": {"event_id": 7, "ping_ms": 40}}')
    assert isinstance(ping, PingMessage)
    assert ping.ping_event.event_id == 7

def test_parse_client_tool_call():
    event = parse_agent_event(json.dumps({
        "type": "client_tool_call",
        "client_tool_call": {
            "tool_name": "process_payment",
            "tool_call_id": "tc_1",
            "parameters": {"card_number": "4242"},
        },
    }))
    assert isinstance(event, ClientToolCallMessage)
    assert event.client_tool_call.tool_call_id == "tc_1"
    assert event.client_tool_call.parameters == {"card_number": "4242"}

def test_unknown_agent_event_is_ignored():
    assert parse_agent_event('{"type": "vad_score", "vad_score_event": {"vad_score": 0.4}}') is None

def test_malformed_agent_frames():
    with pytest.raises(MalformedMessageError):
        parse_agent_event("{")
    with pytest.raises(MalformedMessageError):
        parse_agent_event('{"type": "client_tool_call"}')

def test_client_tool_result_wire_shape():
    message = ClientToolResult(tool_call_id="tc_1", result="Done.", is_error=False)
    assert json.loads(message.model_dump_json()) == {
        "type": "client_tool_result", "tool_call_id": "tc_1", "result": "Done.", "is_error": False,
    }
