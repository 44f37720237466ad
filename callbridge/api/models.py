from pydantic import BaseModel
from typing import Optional

class StartCallRequest(BaseModel):
    to: str
    clientName: str
    invoiceNumber: Optional[str] = None
    invoiceId: Optional[str] = None
    # Cents
    amount: int = 0
    dueDate: Optional[str] = None
    callId: Optional[str] = None

class StartCallResponse(BaseModel):
    success: bool
    callSid: str
    status: str

class ConversationTokenRequest(BaseModel):
    agentId: Optional[str] = None
