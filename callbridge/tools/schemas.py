from typing import Any, Dict, Optional, Union
from pydantic import BaseModel, Field

from callbridge.core.call_context import CallContext


class ToolContext(BaseModel):
    """
    Context passed to every tool execution.
    Contains per-call state.
    """
    call_id: str
    stream_sid: Optional[str] = None
    client_name: Optional[str] = None
    invoice_id: Optional[str] = None
    amount_cents: int = 0
    # Mutable per-call scratch space shared by tools
    state: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_call(cls, call: CallContext) -> "ToolContext":
        return cls(
            call_id=call.call_id or call.stream_sid or "unknown",
            stream_sid=call.stream_sid,
            client_name=call.client_name,
            invoice_id=call.invoice_id,
            amount_cents=call.amount_cents_value(),
        )


class ToolError(BaseModel):
    code: str
    message: str


class ToolResult(BaseModel):
    """
    Standard output envelope for all tools.
    """
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[ToolError] = None

    @classmethod
    def success_result(cls, data: Dict[str, Any]):
        return cls(success=True, data=data)

    @classmethod
    def error_result(cls, code: str, message: str):
        return cls(success=False, error=ToolError(code=code, message=message))

    @classmethod
    def declined_result(cls, message: str):
        """A business-level failure whose message is fit to be spoken to the caller."""
        return cls.error_result(DECLINED, message)


DECLINED = "DECLINED"


# --- Tool Input Models ---

# Card fields arrive as the agent heard them, digits or text, and are forwarded
# unchanged. Missing ones are left for the payment endpoint to reject by name.
CardField = Optional[Union[int, str]]


class ProcessPaymentArgs(BaseModel):
    card_number: CardField = Field(None, description="Card number as read out by the caller.")
    exp_month: CardField = Field(None, description="Card expiry month (1-12).")
    exp_year: CardField = Field(None, description="Card expiry year.")
    cvc: CardField = Field(None, description="Card security code.")
    invoice_id: Optional[str] = Field(None, description="Invoice being paid, if the agent knows it.")
    amount_cents: Optional[int] = Field(None, description="Amount to charge in cents.")
    client_name: Optional[str] = Field(None, description="Paying client's name.")


# --- Payment collaborator wire models ---

class PaymentRequest(BaseModel):
    card_number: CardField = None
    exp_month: CardField = None
    exp_year: CardField = None
    cvc: CardField = None
    invoice_id: Optional[str] = None
    amount: int = 0
    client_name: Optional[str] = None


class PaymentResponse(BaseModel):
    success: bool = False
    message: Optional[str] = None
    error: Optional[str] = None
    payment_intent_id: Optional[str] = None
    status: Optional[str] = None
