import logging
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from callbridge.config.environment import config
from callbridge.core import session_store
from callbridge.utils.logging_setup import setup_logging
from callbridge.telephony.media_stream import router as media_router
from callbridge.telephony.status_callback import router as status_router
from callbridge.api.routes.calls import router as calls_router
from callbridge.api.routes.conversation_token import router as token_router

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)

# Initialize FastAPI
app = FastAPI(title="Collections Call Bridge")

# Dashboard calls /call/start and the token endpoint from the browser
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include Routers
app.include_router(media_router, prefix="/twilio")
app.include_router(status_router, prefix="/twilio")
app.include_router(calls_router)
app.include_router(token_router)

@app.on_event("startup")
async def startup_event():
    logger.info("🚀 Starting Collections Call Bridge...")
    config.validate()
    logger.info(f"🤖 Agent: {config.ELEVENLABS_AGENT_ID}")
    logger.info(f"📞 Twilio Number: {config.get('twilio.phone_number')}")
    logger.info(f"🌍 Public URL: {config.PUBLIC_URL}")

@app.get("/health")
async def health():
    return {"status": "ok", "active_calls": session_store.active_count()}

if __name__ == "__main__":
    uvicorn.run("callbridge.main:app", host="0.0.0.0", port=8000, reload=True)
