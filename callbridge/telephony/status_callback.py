import logging
from fastapi import APIRouter, Request, Response
from fastapi.responses import PlainTextResponse
from twilio.request_validator import RequestValidator

from callbridge.config.environment import config
from callbridge.core.call_record import CallCompletion
from callbridge.core.calls_repository_factory import get_call_repository

router = APIRouter()
logger = logging.getLogger(__name__)


def signature_is_valid(request: Request, params: dict) -> bool:
    validator = RequestValidator(config.get("twilio.auth_token") or "")
    signature = request.headers.get("X-Twilio-Signature", "")

    # Behind a TLS-terminating proxy Twilio signed the https URL
    url = str(request.url)
    if request.headers.get("X-Forwarded-Proto") == "https" and url.startswith("http://"):
        url = url.replace("http://", "https://", 1)

    return validator.validate(url, params, signature)


@router.post("/status-callback")
async def status_callback(request: Request):
    """
    Called by Twilio when an outbound call ends.
    Stores the final status, duration and outcome on the call record.
    """
    call_id = request.query_params.get("callId")
    form_data = await request.form()
    params = dict(form_data)

    if config.get("twilio.validate_signatures", False) and not signature_is_valid(request, params):
        logger.error(f"❌ Invalid Twilio signature on status callback (call {call_id})")
        return Response(content="Invalid signature", status_code=403)

    call_status = params.get("CallStatus")
    call_duration = params.get("CallDuration")
    logger.info(f"📊 Status callback: call={call_id} status={call_status} duration={call_duration}")

    if call_id:
        completion = CallCompletion.from_twilio_status(call_status, call_duration)
        try:
            await get_call_repository().mark_finished(call_id, completion)
        except Exception as e:
            logger.error(f"❌ Failed to update call {call_id}: {e}")
            return Response(content="Internal error", status_code=500)

    return PlainTextResponse("OK")
