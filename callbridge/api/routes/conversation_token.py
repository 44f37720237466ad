import logging
from fastapi import APIRouter
from fastapi.responses import JSONResponse
from callbridge.api.models import ConversationTokenRequest
from callbridge.elevenlabs.client import AgentHandshakeError, fetch_conversation_token

router = APIRouter(tags=["elevenlabs"])
logger = logging.getLogger(__name__)

@router.post("/elevenlabs/conversation-token")
async def conversation_token(payload: ConversationTokenRequest):
    """Token for starting an agent conversation from the browser."""
    if not payload.agentId:
        return JSONResponse(status_code=400, content={"error": "agentId is required"})

    try:
        token = await fetch_conversation_token(payload.agentId)
    except AgentHandshakeError as e:
        return JSONResponse(status_code=502, content={"error": str(e)})
    except Exception as e:
        logger.error(f"❌ Conversation token error: {e}")
        return JSONResponse(status_code=500, content={"error": str(e)})

    return {"token": token}
