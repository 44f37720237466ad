import asyncio
import contextlib
import logging
import time
from enum import Enum
from typing import Callable, Optional, Set

from fastapi import WebSocket, WebSocketDisconnect
from websockets.exceptions import ConnectionClosed

from callbridge.core import session_store
from callbridge.core.call_context import CallContext
from callbridge.core.call_record import CallCompletion, CallStatus
from callbridge.core.call_repository import CallRepository
from callbridge.elevenlabs.client import AgentConnector
from callbridge.elevenlabs.messages import (
    TELEPHONY_AUDIO_FORMAT,
    AgentResponseMessage,
    AudioMessage,
    ClientToolCallMessage,
    ClientToolResult,
    ConversationInitiationMetadataMessage,
    InterruptionMessage,
    PingMessage,
    PongMessage,
    UserAudioChunk,
    UserTranscriptMessage,
    parse_agent_event,
)
from callbridge.telephony.audio_utils import mulaw_b64_to_pcm16k_b64, pcm16k_b64_to_mulaw_b64
from callbridge.telephony.messages import (
    ConnectedEvent,
    MalformedMessageError,
    MediaEvent,
    StartEvent,
    StopEvent,
    TelephonyClearMessage,
    TelephonyMediaMessage,
    parse_telephony_event,
)
from callbridge.tools.registry import ToolRegistry
from callbridge.tools.relay import ToolCallRelay
from callbridge.tools.schemas import ToolContext

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    AWAITING_START = "awaiting_start"
    CONNECTING_AGENT = "connecting_agent"
    BRIDGING = "bridging"
    CLOSING = "closing"
    CLOSED = "closed"


class CallSession:
    """
    Bridges one Twilio media stream to one ElevenLabs agent conversation.

    The telephony loop runs in run(); the agent loop runs as a background task
    started on the `start` event. Whichever side ends first tears down the other.
    """
    def __init__(
        self,
        websocket: WebSocket,
        connector_factory: Callable[[CallContext], AgentConnector] = AgentConnector,
        tool_registry: Optional[ToolRegistry] = None,
        call_repository: Optional[CallRepository] = None,
    ):
        self.websocket = websocket
        self.connector_factory = connector_factory
        self.tool_registry = tool_registry or ToolRegistry()
        self.call_repository = call_repository

        self.state = SessionState.AWAITING_START
        self.stream_sid: Optional[str] = None
        self.context: Optional[CallContext] = None
        self.agent: Optional[AgentConnector] = None
        self.relay: Optional[ToolCallRelay] = None
        # Flipped off when the agent negotiates ulaw_8000 itself
        self.use_conversion = True
        self.dropped_media_frames = 0
        self.started_at = time.monotonic()

        self._agent_task: Optional[asyncio.Task] = None
        self._tool_tasks: Set[asyncio.Task] = set()
        self._record_tasks: Set[asyncio.Task] = set()

    @property
    def closed(self) -> bool:
        return self.state in (SessionState.CLOSING, SessionState.CLOSED)

    async def run(self) -> None:
        """Reads Twilio frames until stop or disconnect, then closes everything."""
        reason = "telephony stream ended"
        try:
            while not self.closed:
                raw = await self.websocket.receive_text()
                if not await self.handle_telephony_frame(raw):
                    reason = "stop received"
                    break
        except WebSocketDisconnect:
            logger.info(f"📴 Twilio disconnected (stream {self.stream_sid})")
            reason = "telephony disconnected"
        except Exception as e:
            if not self.closed:
                logger.error(f"❌ Media stream error (stream {self.stream_sid}): {e}", exc_info=True)
            reason = f"telephony error: {e}"
        finally:
            await self.close(reason)

    # --- Telephony -> agent ---

    async def handle_telephony_frame(self, raw: str) -> bool:
        """Dispatches one Twilio frame. Returns False once the stream has stopped."""
        try:
            event = parse_telephony_event(raw)
        except MalformedMessageError as e:
            logger.warning(f"⚠️ Dropping malformed Twilio frame: {e}")
            return True

        if isinstance(event, MediaEvent):
            await self._on_media(event)
        elif isinstance(event, StartEvent):
            self._on_start(event)
        elif isinstance(event, StopEvent):
            logger.info(f"🛑 Stream stopped: {self.stream_sid}")
            await self.close("stop received")
            return False
        elif isinstance(event, ConnectedEvent):
            logger.info(f"✅ Twilio connected (protocol {event.protocol}, version {event.version})")
        elif event is not None:
            logger.debug(f"Twilio event: {event.event}")
        return True

    def _on_start(self, event: StartEvent) -> None:
        if self.state != SessionState.AWAITING_START:
            logger.warning(f"⚠️ Duplicate start for stream {self.stream_sid}, ignoring")
            return

        start = event.start
        self.stream_sid = start.streamSid
        self.context = CallContext.from_custom_parameters(
            start.customParameters,
            stream_sid=start.streamSid,
            call_sid=start.callSid,
        )
        logger.info(
            f"🏁 Stream started: {self.stream_sid} call={start.callSid} "
            f"client={self.context.client_name} invoice={self.context.invoice_number}"
        )
        session_store.register_session(self.stream_sid, self)
        self.relay = ToolCallRelay(self.tool_registry, ToolContext.from_call(self.context))

        if self.context.call_id and self.call_repository is not None:
            self._spawn_record_update(self.call_repository.mark_in_progress(self.context.call_id))

        self.state = SessionState.CONNECTING_AGENT
        self._agent_task = asyncio.create_task(self._run_agent())
        self._agent_task.set_name(f"agent:{self.stream_sid}")

    async def _on_media(self, event: MediaEvent) -> None:
        if self.agent is None or not self.agent.is_open:
            self.dropped_media_frames += 1
            return

        payload = event.media.payload
        try:
            if self.use_conversion:
                payload = mulaw_b64_to_pcm16k_b64(payload)
            await self.agent.send(UserAudioChunk(user_audio_chunk=payload))
        except ValueError as e:
            logger.warning(f"⚠️ Dropping undecodable media payload: {e}")
        except (ConnectionClosed, ConnectionError):
            # Agent loop notices the closure and tears the call down
            self.dropped_media_frames += 1

    # --- Agent -> telephony ---

    async def _run_agent(self) -> None:
        reason = "agent disconnected"
        try:
            connector = self.connector_factory(self.context)
            self.agent = connector
            await connector.connect()
        except Exception as e:
            logger.error(f"❌ Agent handshake failed for stream {self.stream_sid}: {e!r}")
            self._record_failure(f"Agent handshake failed: {e}")
            await self.close("agent handshake failed")
            return

        if self.closed:
            await connector.close()
            return

        self.state = SessionState.BRIDGING
        logger.info(f"🔗 Bridging stream {self.stream_sid} to agent")
        try:
            async for raw in connector.messages():
                await self.handle_agent_frame(raw)
        except ConnectionClosed as e:
            logger.info(f"📴 Agent socket closed: {e}")
        except Exception as e:
            logger.error(f"❌ Agent loop error (stream {self.stream_sid}): {e}", exc_info=True)
            reason = f"agent error: {e}"
        await self.close(reason)

    async def handle_agent_frame(self, raw) -> None:
        try:
            event = parse_agent_event(raw)
        except MalformedMessageError as e:
            logger.warning(f"⚠️ Dropping malformed agent frame: {e}")
            return

        if isinstance(event, AudioMessage):
            await self._on_agent_audio(event)
        elif isinstance(event, ConversationInitiationMetadataMessage):
            meta = event.conversation_initiation_metadata_event
            logger.info(
                f"🤖 Conversation {meta.conversation_id} started "
                f"(out={meta.agent_output_audio_format}, in={meta.user_input_audio_format})"
            )
            if meta.agent_output_audio_format == TELEPHONY_AUDIO_FORMAT:
                self.use_conversion = False
                logger.info("🎚️ Agent speaks ulaw_8000, passing audio through unconverted")
        elif isinstance(event, AgentResponseMessage):
            text = event.agent_response_event.agent_response or ""
            logger.info(f"🗣️ Agent: {text[:100]}")
        elif isinstance(event, UserTranscriptMessage):
            logger.info(f"👤 Caller: {event.user_transcription_event.user_transcript}")
        elif isinstance(event, InterruptionMessage):
            if self.stream_sid:
                await self._send_to_telephony(TelephonyClearMessage(streamSid=self.stream_sid))
        elif isinstance(event, PingMessage):
            if event.ping_event.event_id is not None:
                await self._send_to_agent(PongMessage(event_id=event.ping_event.event_id))
        elif isinstance(event, ClientToolCallMessage):
            task = asyncio.create_task(self._run_tool_call(event))
            self._tool_tasks.add(task)
            task.add_done_callback(self._tool_tasks.discard)

    async def _run_tool_call(self, event: ClientToolCallMessage) -> None:
        try:
            await self.relay.handle(event.client_tool_call, self._send_to_agent)
        except (ConnectionClosed, ConnectionError) as e:
            logger.warning(f"⚠️ Agent gone before tool result {event.client_tool_call.tool_call_id} was sent: {e}")

    async def _on_agent_audio(self, event: AudioMessage) -> None:
        payload = event.audio_event.audio_base_64
        if not payload or not self.stream_sid:
            return
        try:
            if self.use_conversion:
                payload = pcm16k_b64_to_mulaw_b64(payload)
        except ValueError as e:
            logger.warning(f"⚠️ Dropping undecodable agent audio: {e}")
            return
        await self._send_to_telephony(TelephonyMediaMessage.for_payload(self.stream_sid, payload))

    async def _send_to_telephony(self, message) -> None:
        await self.websocket.send_json(message.model_dump())

    async def _send_to_agent(self, message) -> None:
        if self.agent is None:
            raise ConnectionError("Agent socket is not open")
        await self.agent.send(message)
        if isinstance(message, ClientToolResult):
            logger.info(f"📨 Tool result sent (id={message.tool_call_id}, is_error={message.is_error})")

    # --- Call records ---

    def _spawn_record_update(self, coro) -> None:
        task = asyncio.create_task(self._guard_record_update(coro))
        self._record_tasks.add(task)
        task.add_done_callback(self._record_tasks.discard)

    async def _guard_record_update(self, coro) -> None:
        try:
            await coro
        except Exception as e:
            logger.error(f"❌ Call record update failed: {e}")

    def _record_failure(self, outcome: str) -> None:
        if self.context and self.context.call_id and self.call_repository is not None:
            completion = CallCompletion(status=CallStatus.FAILED, outcome=outcome)
            self._spawn_record_update(self.call_repository.mark_finished(self.context.call_id, completion))

    # --- Teardown ---

    async def close(self, reason: str = "closed") -> None:
        if self.closed:
            return
        self.state = SessionState.CLOSING
        logger.info(f"🧹 Closing stream {self.stream_sid}: {reason}")

        current = asyncio.current_task()
        pending = [
            task for task in [self._agent_task, *self._tool_tasks]
            if task is not None and task is not current and not task.done()
        ]
        for task in pending:
            task.cancel()

        if self.agent is not None:
            try:
                await self.agent.close()
            except Exception as e:
                logger.debug(f"Agent close: {e}")

        with contextlib.suppress(Exception):
            await self.websocket.close()

        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        if self._record_tasks:
            await asyncio.gather(*list(self._record_tasks), return_exceptions=True)

        if self.stream_sid:
            session_store.remove_session(self.stream_sid)
        self.state = SessionState.CLOSED
        duration = time.monotonic() - self.started_at
        logger.info(
            f"✅ Stream {self.stream_sid} closed after {duration:.1f}s "
            f"({self.dropped_media_frames} media frames dropped)"
        )
