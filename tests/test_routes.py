import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from fastapi.testclient import TestClient
from callbridge.config.environment import config
from callbridge.core.call_record import CallStatus
from callbridge.core.call_repository_inmemory import InMemoryCallRepository
from callbridge.elevenlabs.client import AgentHandshakeError
from callbridge.main import app
from callbridge.telephony.twilio_client import build_stream_twiml, format_amount, media_stream_url

client = TestClient(app)

@pytest.fixture
def repo():
    repository = InMemoryCallRepository()
    with patch("callbridge.telephony.status_callback.get_call_repository", return_value=repository):
        yield repository

def test_health():
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "active_calls": 0}

def test_format_amount():
    assert format_amount(123450) == "€1,234.50"
    assert format_amount(0) == "€0.00"

def test_stream_twiml_carries_parameters():
    url = media_stream_url("https://bridge.example.com")
    assert url == "wss://bridge.example.com/twilio/media-stream"

    twiml = build_stream_twiml(url, {"clientName": "Acme & Sons", "callId": None})
    assert '<Stream url="wss://bridge.example.com/twilio/media-stream">' in twiml
    assert '<Parameter name="clientName" value="Acme &amp; Sons" />' in twiml
    assert '<Parameter name="callId" value="" />' in twiml

def test_start_call_places_twilio_call():
    with patch("callbridge.api.routes.calls.TwilioClientWrapper") as MockTwilio:
        MockTwilio.return_value.place_collection_call.return_value = MagicMock(sid="CA123", status="queued")
        response = client.post("/call/start", json={
            "to": "+353851234567",
            "clientName": "TechCorp Dublin",
            "invoiceNumber": "INV-047",
            "invoiceId": "inv-uuid",
            "amount": 240000,
            "dueDate": "2025-01-31",
            "callId": "call-1",
        })

    assert response.status_code == 200
    assert response.json() == {"success": True, "callSid": "CA123", "status": "queued"}
    kwargs = MockTwilio.return_value.place_collection_call.call_args.kwargs
    assert kwargs["amount_cents"] == 240000
    assert kwargs["call_id"] == "call-1"

def test_start_call_requires_to_and_client_name():
    response = client.post("/call/start", json={"to": "+353851234567"})
    assert response.status_code == 422

def test_start_call_twilio_failure():
    with patch("callbridge.api.routes.calls.TwilioClientWrapper") as MockTwilio:
        MockTwilio.return_value.place_collection_call.side_effect = RuntimeError("Invalid 'To' number")
        response = client.post("/call/start", json={"to": "bad", "clientName": "Acme"})

    assert response.status_code == 500
    assert response.json() == {"error": "Invalid 'To' number"}

def test_status_callback_completed(repo):
    response = client.post(
        "/twilio/status-callback?callId=call-1",
        data={"CallSid": "CA1", "CallStatus": "completed", "CallDuration": "42"},
    )
    assert response.status_code == 200
    assert response.text == "OK"

    record = asyncio.run(repo.get_by_id("call-1"))
    assert record.status == CallStatus.COMPLETED
    assert record.duration_seconds == 42
    assert record.outcome == "Call completed successfully. Duration: 42s"
    assert record.completed_at is not None

def test_status_callback_failed(repo):
    client.post("/twilio/status-callback?callId=call-2", data={"CallStatus": "no-answer"})

    record = asyncio.run(repo.get_by_id("call-2"))
    assert record.status == CallStatus.FAILED
    assert record.outcome == "Call no-answer"
    assert record.duration_seconds is None

def test_status_callback_rejects_bad_signature(repo):
    real_get = config.get

    def fake_get(path, default=None):
        if path == "twilio.validate_signatures":
            return True
        if path == "twilio.auth_token":
            return "secret"
        return real_get(path, default)

    with patch("callbridge.telephony.status_callback.config.get", side_effect=fake_get):
        response = client.post(
            "/twilio/status-callback?callId=call-3",
            data={"CallStatus": "completed"},
            headers={"X-Twilio-Signature": "forged"},
        )

    assert response.status_code == 403
    assert asyncio.run(repo.get_by_id("call-3")) is None

def test_conversation_token():
    with patch("callbridge.api.routes.conversation_token.fetch_conversation_token", new_callable=AsyncMock) as mock_fetch:
        mock_fetch.return_value = "tok_1"
        response = client.post("/elevenlabs/conversation-token", json={"agentId": "agent_1"})

    assert response.status_code == 200
    assert response.json() == {"token": "tok_1"}
    mock_fetch.assert_awaited_once_with("agent_1")

def test_conversation_token_requires_agent_id():
    response = client.post("/elevenlabs/conversation-token", json={})
    assert response.status_code == 400

def test_conversation_token_provider_error():
    with patch("callbridge.api.routes.conversation_token.fetch_conversation_token", new_callable=AsyncMock) as mock_fetch:
        mock_fetch.side_effect = AgentHandshakeError("ElevenLabs API error: 401", status_code=401)
        response = client.post("/elevenlabs/conversation-token", json={"agentId": "agent_1"})

    assert response.status_code == 502
