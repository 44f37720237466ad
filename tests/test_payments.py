import asyncio
import json
import httpx
import pytest
from unittest.mock import AsyncMock, patch
from callbridge.tools.payment_client import PaymentClient, PaymentTransportError
from callbridge.tools.payments import build_payment_request, process_payment_tool
from callbridge.tools.schemas import PaymentRequest, PaymentResponse, ProcessPaymentArgs, ToolContext

CARD = {"card_number": "4242424242424242", "exp_month": 12, "exp_year": 2030, "cvc": "123"}

@pytest.fixture
def mock_context():
    return ToolContext(
        call_id="call-1",
        stream_sid="MZ1",
        client_name="Acme Ltd",
        invoice_id="inv-uuid",
        amount_cents=240000,
        state={},
    )

def test_call_parameters_win_for_invoice_and_client(mock_context):
    args = ProcessPaymentArgs(**CARD, invoice_id="agent-inv", client_name="Someone Else")
    request = build_payment_request(args, mock_context)
    assert request.invoice_id == "inv-uuid"
    assert request.client_name == "Acme Ltd"
    assert request.amount == 240000

def test_agent_amount_wins_and_fallbacks_apply():
    context = ToolContext(call_id="call-2")
    args = ProcessPaymentArgs(**CARD, invoice_id="agent-inv", amount_cents=5000, client_name="Agent Name")
    request = build_payment_request(args, context)
    assert request.invoice_id == "agent-inv"
    assert request.client_name == "Agent Name"
    assert request.amount == 5000

    request = build_payment_request(ProcessPaymentArgs(**CARD), context)
    assert request.amount == 0

@pytest.mark.asyncio
async def test_successful_payment(mock_context):
    with patch("callbridge.tools.payments.payment_client.charge", new_callable=AsyncMock) as mock_charge:
        mock_charge.return_value = PaymentResponse(success=True, message="Paid €2,400.00", payment_intent_id="pi_1")

        result = await process_payment_tool(ProcessPaymentArgs(**CARD), mock_context)

    assert result.success is True
    assert result.data["result"] == "Payment successful! Paid €2,400.00"
    assert mock_context.state["payment_completed"] is True

@pytest.mark.asyncio
async def test_declined_payment(mock_context):
    with patch("callbridge.tools.payments.payment_client.charge", new_callable=AsyncMock) as mock_charge:
        mock_charge.return_value = PaymentResponse(success=False, error="Your card was declined.")

        result = await process_payment_tool(ProcessPaymentArgs(**CARD), mock_context)

    assert result.success is False
    assert result.error.code == "DECLINED"
    assert result.error.message == "Payment failed: Your card was declined."
    assert "payment_completed" not in mock_context.state

@pytest.mark.asyncio
async def test_payment_idempotency(mock_context):
    """Second identical call in the same call returns the cached result without charging again"""
    args = ProcessPaymentArgs(**CARD)

    with patch("callbridge.tools.payments.payment_client.charge", new_callable=AsyncMock) as mock_charge:
        mock_charge.return_value = PaymentResponse(success=True, message="ok")

        res1 = await process_payment_tool(args, mock_context)
        res2 = await process_payment_tool(args, mock_context)

        assert res1.success is True
        assert res2.data == res1.data
        assert mock_charge.call_count == 1

        # A fresh call has its own memo
        other = ToolContext(call_id="call-9", state={})
        await process_payment_tool(args, other)
        assert mock_charge.call_count == 2

@pytest.mark.asyncio
async def test_concurrent_identical_payments_charge_once(mock_context):
    charges = []

    async def slow_charge(request):
        charges.append(request)
        await asyncio.sleep(0.05)
        return PaymentResponse(success=True, message="ok", payment_intent_id="pi_1")

    args = ProcessPaymentArgs(**CARD)
    with patch("callbridge.tools.payments.payment_client.charge", new=slow_charge):
        first, second = await asyncio.gather(
            process_payment_tool(args, mock_context),
            process_payment_tool(ProcessPaymentArgs(**CARD), mock_context),
        )

    assert len(charges) == 1
    assert first.success is True and second.success is True
    assert second.data == first.data

@pytest.mark.asyncio
async def test_declined_payment_is_not_cached(mock_context):
    args = ProcessPaymentArgs(**CARD)
    with patch("callbridge.tools.payments.payment_client.charge", new_callable=AsyncMock) as mock_charge:
        mock_charge.side_effect = [
            PaymentResponse(success=False, error="Your card was declined."),
            PaymentResponse(success=True, message="ok"),
        ]
        declined = await process_payment_tool(args, mock_context)
        retried = await process_payment_tool(args, mock_context)

    assert declined.success is False
    assert retried.success is True
    assert mock_charge.call_count == 2

@pytest.mark.asyncio
async def test_payment_client_posts_json_with_auth_headers():
    seen = []

    def handler(request: httpx.Request):
        seen.append(request)
        return httpx.Response(402, json={"success": False, "error": "Insufficient funds"})

    client = PaymentClient(
        endpoint_url="https://example.supabase.co/functions/v1/process-card-payment",
        anon_key="anon",
        transport=httpx.MockTransport(handler),
    )
    response = await client.charge(PaymentRequest(**CARD, invoice_id="inv-1", amount=100, client_name="Acme"))

    assert response.success is False
    assert response.error == "Insufficient funds"
    assert seen[0].headers["apikey"] == "anon"
    assert seen[0].headers["authorization"] == "Bearer anon"
    assert json.loads(seen[0].content) == {**CARD, "invoice_id": "inv-1", "amount": 100, "client_name": "Acme"}

@pytest.mark.asyncio
async def test_payment_client_non_json_body():
    client = PaymentClient(
        endpoint_url="https://pay.example.com",
        anon_key="anon",
        transport=httpx.MockTransport(lambda request: httpx.Response(502, text="<html>Bad gateway</html>")),
    )
    with pytest.raises(PaymentTransportError):
        await client.charge(PaymentRequest(**CARD))

@pytest.mark.asyncio
async def test_payment_client_transport_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    client = PaymentClient(endpoint_url="https://pay.example.com", transport=httpx.MockTransport(handler))
    with pytest.raises(PaymentTransportError):
        await client.charge(PaymentRequest(**CARD))
