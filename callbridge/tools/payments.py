import logging
from callbridge.tools.schemas import (
    ProcessPaymentArgs,
    PaymentRequest,
    ToolContext,
    ToolResult,
)
from callbridge.tools.payment_client import PaymentClient
from callbridge.tools.idempotency import CallIdempotency

logger = logging.getLogger(__name__)

PROCESS_PAYMENT_TOOL = "process_payment"
PROCESS_PAYMENT_DESCRIPTION = "Charges the caller's card for the outstanding invoice."
PAYMENT_TECHNICAL_FAILURE = "Payment processing failed due to a technical error. Please try again later."

# Shared client; endpoint and key are resolved from config per request
payment_client = PaymentClient()


def build_payment_request(args: ProcessPaymentArgs, context: ToolContext) -> PaymentRequest:
    """Stream parameters win for invoice and client; the agent's amount wins over the stream's."""
    return PaymentRequest(
        card_number=args.card_number,
        exp_month=args.exp_month,
        exp_year=args.exp_year,
        cvc=args.cvc,
        invoice_id=context.invoice_id or args.invoice_id,
        amount=args.amount_cents or context.amount_cents,
        client_name=context.client_name or args.client_name,
    )


async def process_payment_tool(args: ProcessPaymentArgs, context: ToolContext) -> ToolResult:
    """
    Charge the caller's card through the payment endpoint. Idempotent per call.
    Transport failures raise and are reported by the registry as EXECUTION_ERROR.
    """
    args_dict = args.model_dump(exclude_none=True)
    idempotency = CallIdempotency(context)

    # A repeat arriving while the first charge is in flight waits for its outcome
    async with idempotency.lock(PROCESS_PAYMENT_TOOL, args_dict):
        cached = idempotency.lookup(PROCESS_PAYMENT_TOOL, args_dict)
        if cached:
            return cached

        request = build_payment_request(args, context)
        logger.info(f"💳 Charging {request.amount} cents for invoice {request.invoice_id} (call {context.call_id})")
        response = await payment_client.charge(request)

        if not response.success:
            reason = response.error or response.message or "Unknown error"
            return ToolResult.declined_result(f"Payment failed: {reason}")

        result = ToolResult.success_result(
            data={
                "result": f"Payment successful! {response.message or ''}".strip(),
                "payment_intent_id": response.payment_intent_id,
            },
        )
        idempotency.remember(PROCESS_PAYMENT_TOOL, args_dict, result)
        context.state["payment_completed"] = True
        return result
