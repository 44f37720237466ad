import logging
from typing import Dict, Optional
from urllib.parse import quote

from twilio.rest import Client
from twilio.twiml.voice_response import Connect, VoiceResponse

from callbridge.config.environment import config

logger = logging.getLogger(__name__)


def media_stream_url(public_url: str) -> str:
    stream_url = public_url.replace("https://", "wss://").replace("http://", "ws://")
    return stream_url.rstrip("/") + "/twilio/media-stream"


def format_amount(amount_cents: int) -> str:
    """Spoken invoice amount, e.g. 123450 -> '€1,234.50'."""
    return f"€{amount_cents / 100:,.2f}"


def build_stream_twiml(stream_url: str, parameters: Dict[str, Optional[str]]) -> str:
    """<Connect><Stream> TwiML; every parameter becomes a customParameter on the start event."""
    resp = VoiceResponse()
    connect = Connect()
    stream = connect.stream(url=stream_url)
    for name, value in parameters.items():
        stream.parameter(name=name, value="" if value is None else str(value))
    resp.append(connect)
    return str(resp)


class TwilioClientWrapper:
    def __init__(self):
        self.client = Client(config.get("twilio.account_sid"), config.get("twilio.auth_token"))
        self.phone_number = config.get("twilio.phone_number")
        self.public_url = config.PUBLIC_URL

    def place_collection_call(
        self,
        to: str,
        client_name: str,
        invoice_number: Optional[str] = None,
        invoice_id: Optional[str] = None,
        amount_cents: int = 0,
        due_date: Optional[str] = None,
        call_id: Optional[str] = None,
    ):
        """Dials the client and streams the call to the bridge. Returns the Twilio call."""
        if not self.public_url:
            raise RuntimeError("PUBLIC_URL not set in config")

        twiml = build_stream_twiml(
            media_stream_url(self.public_url),
            {
                "clientName": client_name,
                "invoiceNumber": invoice_number or "",
                "amount": format_amount(amount_cents),
                "amountCents": str(amount_cents),
                "invoiceId": invoice_id or "",
                "callId": call_id or "",
                "dueDate": due_date or "",
            },
        )
        logger.debug(f"📤 Generated TwiML: {twiml}")

        kwargs = {}
        if call_id:
            kwargs["status_callback"] = f"{self.public_url}/twilio/status-callback?callId={quote(call_id)}"
            kwargs["status_callback_event"] = ["completed"]

        try:
            call = self.client.calls.create(
                to=to,
                from_=self.phone_number,
                twiml=twiml,
                **kwargs,
            )
            logger.info(f"📞 Call initiated: {call.sid} ({call.status}) to {to}")
            return call
        except Exception as e:
            logger.error(f"❌ Failed to make call: {e}")
            raise
