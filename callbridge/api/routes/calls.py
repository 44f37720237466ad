import logging
from fastapi import APIRouter
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from callbridge.api.models import StartCallRequest, StartCallResponse
from callbridge.telephony.twilio_client import TwilioClientWrapper

router = APIRouter(tags=["calls"])
logger = logging.getLogger(__name__)

@router.post("/call/start", response_model=StartCallResponse)
async def start_call(payload: StartCallRequest):
    """Place an outbound collections call and stream it to the agent."""
    logger.info(f"📤 Starting outbound call to {payload.to} for {payload.clientName} (invoice {payload.invoiceNumber})")

    try:
        client = TwilioClientWrapper()
        # twilio's REST client is blocking
        call = await run_in_threadpool(
            client.place_collection_call,
            to=payload.to,
            client_name=payload.clientName,
            invoice_number=payload.invoiceNumber,
            invoice_id=payload.invoiceId,
            amount_cents=payload.amount,
            due_date=payload.dueDate,
            call_id=payload.callId,
        )
    except Exception as e:
        logger.error(f"❌ make-call error: {e}")
        return JSONResponse(status_code=500, content={"error": str(e)})

    return StartCallResponse(success=True, callSid=call.sid, status=call.status)
