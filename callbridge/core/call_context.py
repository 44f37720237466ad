import logging
from typing import Dict, Optional
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class CallContext(BaseModel):
    """
    Per-call details passed by Twilio as <Stream> custom parameters.
    Raw values are kept as sent (None when missing or empty); the
    spoken fallbacks live in prompt_variables().
    """
    stream_sid: Optional[str] = None
    call_sid: Optional[str] = None
    call_id: Optional[str] = None
    client_name: Optional[str] = None
    invoice_number: Optional[str] = None
    invoice_id: Optional[str] = None
    amount: Optional[str] = None
    amount_cents: Optional[str] = None
    due_date: Optional[str] = None

    @classmethod
    def from_custom_parameters(
        cls,
        params: Dict[str, str],
        stream_sid: Optional[str] = None,
        call_sid: Optional[str] = None,
    ) -> "CallContext":
        def pick(key):
            return params.get(key) or None

        return cls(
            stream_sid=stream_sid,
            call_sid=call_sid,
            call_id=pick("callId"),
            client_name=pick("clientName"),
            invoice_number=pick("invoiceNumber"),
            invoice_id=pick("invoiceId"),
            amount=pick("amount"),
            amount_cents=pick("amountCents"),
            due_date=pick("dueDate"),
        )

    def prompt_variables(self) -> Dict[str, str]:
        """Values substituted into the agent prompt and first message."""
        return {
            "client_name": self.client_name or "the client",
            "invoice_number": self.invoice_number or "on file",
            "amount": self.amount or "an outstanding amount",
            "due_date": self.due_date or "recently",
        }

    def amount_cents_value(self) -> int:
        if not self.amount_cents:
            return 0
        try:
            return int(self.amount_cents.strip())
        except ValueError:
            logger.warning(f"⚠️ Ignoring non-numeric amountCents '{self.amount_cents}'")
            return 0
