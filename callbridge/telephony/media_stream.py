from fastapi import APIRouter, WebSocket
import logging

from callbridge.config.environment import config
from callbridge.core.calls_repository_factory import get_call_repository
from callbridge.core.session import CallSession
from callbridge.tools.registry import ToolRegistry
from callbridge.tools.payments import (
    PAYMENT_TECHNICAL_FAILURE,
    PROCESS_PAYMENT_DESCRIPTION,
    PROCESS_PAYMENT_TOOL,
    process_payment_tool,
)
from callbridge.tools.schemas import ProcessPaymentArgs

router = APIRouter()
logger = logging.getLogger(__name__)


def build_tool_registry() -> ToolRegistry:
    """Client tools the collections agent is allowed to call."""
    tool_registry = ToolRegistry()
    tool_registry.register(
        name=PROCESS_PAYMENT_TOOL,
        description=PROCESS_PAYMENT_DESCRIPTION,
        args_model=ProcessPaymentArgs,
        timeout=float(config.get("payments.timeout_seconds", 30.0)),
        failure_message=PAYMENT_TECHNICAL_FAILURE,
    )(process_payment_tool)
    return tool_registry


@router.websocket("/media-stream")
async def media_stream(websocket: WebSocket):
    """Handle Twilio Media Stream WebSocket and bridge it to the ElevenLabs agent."""
    logger.info("🔌 WS CONNECT /twilio/media-stream")
    await websocket.accept()
    logger.info("✅ WS ACCEPTED")

    session = CallSession(
        websocket,
        tool_registry=build_tool_registry(),
        call_repository=get_call_repository(),
    )
    await session.run()
