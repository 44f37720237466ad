import asyncio
import logging
from typing import AsyncIterator, Optional, Union

import httpx
import websockets
from pydantic import BaseModel
from websockets.exceptions import WebSocketException

from callbridge.config.environment import config
from callbridge.core.call_context import CallContext
from callbridge.elevenlabs.messages import (
    AgentOverride,
    ConversationConfigOverride,
    ConversationInitiationClientData,
    PromptOverride,
    TtsOverride,
)

logger = logging.getLogger(__name__)

DEFAULT_SIGNED_URL_ENDPOINT = "https://api.elevenlabs.io/v1/convai/conversation/get-signed-url"
DEFAULT_TOKEN_ENDPOINT = "https://api.elevenlabs.io/v1/convai/conversation/token"
DEFAULT_FIRST_MESSAGE = (
    "Hi there! Am I speaking with someone from {client_name}? "
    "I'm calling about invoice {invoice_number} for {amount}."
)


class AgentHandshakeError(RuntimeError):
    """Raised when the agent session can't be established. Fatal for the call."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


def _handshake_timeout() -> Optional[float]:
    timeout = config.get("elevenlabs.handshake_timeout_seconds")
    return float(timeout) if timeout else None


class AgentConnector:
    """Owns the socket to the ElevenLabs Conversational AI agent for one call."""

    def __init__(
        self,
        context: CallContext,
        api_key: Optional[str] = None,
        agent_id: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or config.ELEVENLABS_API_KEY
        if not self.api_key:
            raise ValueError("ELEVENLABS_API_KEY not found in environment")

        self.agent_id = agent_id or config.ELEVENLABS_AGENT_ID
        if not self.agent_id:
            raise ValueError("ELEVENLABS_AGENT_ID not configured")

        self.context = context
        self.websocket = None
        self._transport = transport
        self._open = False

    @property
    def is_open(self) -> bool:
        return self.websocket is not None and self._open

    async def fetch_signed_url(self) -> str:
        """One round trip to the provider for a short-lived socket URL."""
        endpoint = config.get("elevenlabs.signed_url_endpoint", DEFAULT_SIGNED_URL_ENDPOINT)
        try:
            async with httpx.AsyncClient(timeout=_handshake_timeout(), transport=self._transport) as client:
                response = await client.get(
                    endpoint,
                    params={"agent_id": self.agent_id},
                    headers={"xi-api-key": self.api_key},
                )
        except httpx.HTTPError as e:
            logger.error(f"❌ Signed URL request failed: {e}")
            raise AgentHandshakeError(f"Signed URL request failed: {e}") from e

        if not response.is_success:
            logger.error(f"❌ Failed to get signed URL: {response.status_code} {response.text}")
            raise AgentHandshakeError(
                f"Failed to get signed URL: HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            signed_url = response.json().get("signed_url")
        except (ValueError, AttributeError):
            signed_url = None
        if not signed_url:
            raise AgentHandshakeError("No signed_url in response", status_code=response.status_code)
        return signed_url

    async def connect(self) -> None:
        """Opens the agent socket and seeds it with the call's context."""
        signed_url = await self.fetch_signed_url()
        logger.info(f"🤖 Connecting to ElevenLabs agent {self.agent_id} (stream {self.context.stream_sid})...")

        opening = websockets.connect(
            signed_url,
            max_size=16 * 1024 * 1024,
            ping_interval=config.get("elevenlabs.ping_interval", 20),
            ping_timeout=config.get("elevenlabs.ping_timeout", 20),
            open_timeout=_handshake_timeout(),
        )
        try:
            self.websocket = await opening
        except (asyncio.TimeoutError, TimeoutError) as e:
            raise AgentHandshakeError("Agent socket open timed out") from e
        except (OSError, WebSocketException) as e:
            raise AgentHandshakeError(f"Agent socket open failed: {e}") from e

        self._open = True
        logger.info("✅ ElevenLabs WebSocket connected")
        try:
            await self.send(self.build_initiation_message())
        except WebSocketException as e:
            self._open = False
            raise AgentHandshakeError(f"Agent closed before initiation: {e}") from e

    def build_initiation_message(self) -> ConversationInitiationClientData:
        variables = self.context.prompt_variables()

        template = config.get_agent_prompt_template()
        if not template:
            raise RuntimeError("agent_prompt.txt not found in callbridge/config/")
        first_message = config.get("elevenlabs.first_message", DEFAULT_FIRST_MESSAGE)

        tts_config = config.get("elevenlabs.tts")
        return ConversationInitiationClientData(
            dynamic_variables=variables,
            conversation_config_override=ConversationConfigOverride(
                agent=AgentOverride(
                    prompt=PromptOverride(prompt=template.format(**variables)),
                    first_message=first_message.format(**variables),
                ),
                tts=TtsOverride(**tts_config) if tts_config else None,
            ),
        )

    async def send(self, message: Union[BaseModel, str]) -> None:
        if not self.is_open:
            raise ConnectionError("Agent socket is not open")
        if isinstance(message, BaseModel):
            message = message.model_dump_json(exclude_none=True)
        await self.websocket.send(message)

    async def messages(self) -> AsyncIterator[Union[str, bytes]]:
        """Yields raw frames until the agent closes the socket."""
        try:
            async for raw in self.websocket:
                yield raw
        finally:
            self._open = False

    async def close(self) -> None:
        self._open = False
        if self.websocket is not None:
            await self.websocket.close()


async def fetch_conversation_token(
    agent_id: str,
    api_key: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """Requests a conversation token for browser-side agent sessions."""
    api_key = api_key or config.ELEVENLABS_API_KEY
    if not api_key:
        raise ValueError("ELEVENLABS_API_KEY is not configured")

    endpoint = config.get("elevenlabs.token_endpoint", DEFAULT_TOKEN_ENDPOINT)
    async with httpx.AsyncClient(timeout=10.0, transport=transport) as client:
        response = await client.get(endpoint, params={"agent_id": agent_id}, headers={"xi-api-key": api_key})

    if not response.is_success:
        logger.error(f"❌ ElevenLabs token error: {response.status_code} {response.text}")
        raise AgentHandshakeError(f"ElevenLabs API error: {response.status_code}", status_code=response.status_code)

    token = response.json().get("token")
    if not token:
        raise AgentHandshakeError("No token in response", status_code=response.status_code)
    return token
