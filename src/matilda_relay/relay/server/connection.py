"""Per-connection lifecycle for the relay gateway.

A RelayConnection walks ``connecting -> active -> closing -> closed``:
validate the query parameters, register the session, open the backend
stream, then pump inbound control/audio messages while a separate task
drains backend events through the dispatcher. Closing is idempotent and
shared by every caller (peer disconnect, sweep, keepalive, errors).
"""

import asyncio
import json
import time
import uuid
from typing import TYPE_CHECKING

import websockets
from websockets.frames import CloseCode

from ...core.config import setup_logging
from ...schemas.responses import ConnectedMessage
from ..backends.base import StreamHandle
from ..dispatcher import DispatchSinks, is_open
from ..exceptions import BackendUnavailableError, DuplicateSessionError, FrameRejected, ValidationError
from ..types import BackendError, ConnectionState, Session, SessionMetadata, TranscriptEvent
from ..validation import ConnectionParams, parse_connection_params, validate_audio_frame
from .internal.messages import close_reason, send_error, send_message

if TYPE_CHECKING:
    from .core import RelayWebSocketServer

logger = setup_logging(__name__)

_STOP_PUMP = object()


def request_path(websocket) -> str:
    request = getattr(websocket, "request", None)
    if request is not None:
        return request.path
    return getattr(websocket, "path", "") or ""


class RelayConnection:
    """One client connection relaying audio for one session."""

    def __init__(self, server: "RelayWebSocketServer", websocket) -> None:
        self.server = server
        self.websocket = websocket
        self.connection_id = str(uuid.uuid4())
        remote = getattr(websocket, "remote_address", None)
        self.client_ip = remote[0] if remote else "unknown"

        self.state = ConnectionState.CONNECTING
        self.params: ConnectionParams | None = None
        self.session: Session | None = None
        self.stream: StreamHandle | None = None
        self.events: asyncio.Queue = asyncio.Queue()

        self._pump_task: asyncio.Task | None = None
        self._keepalive_task: asyncio.Task | None = None
        self._close_task: asyncio.Task | None = None
        self._started = time.monotonic()

    @property
    def config(self):
        return self.server.config

    def _set_state(self, state: ConnectionState) -> None:
        self.state = state
        if self.session is not None:
            self.session.state = state

    async def run(self) -> None:
        """Serve the connection until the peer leaves or it is closed."""
        if not await self.setup():
            return

        try:
            async for message in self.websocket:
                await self.handle_message(message)
        except websockets.exceptions.ConnectionClosed as e:
            logger.debug(f"Connection {self.connection_id} closed abnormally: {e}")
        except Exception as e:
            logger.exception(f"Error handling connection {self.connection_id}: {e}")
        finally:
            await self.close()

    async def setup(self) -> bool:
        """Validate, register and connect. Returns True once active."""
        try:
            self.params = parse_connection_params(
                request_path(self.websocket),
                default_language=self.config.default_language,
                default_model=self.config.default_model,
                allowed_models=self.config.allowed_models,
            )
        except ValidationError as e:
            logger.warning(f"Rejecting connection from {self.client_ip}: {e}")
            await self._refuse(f"Invalid parameters: {e}")
            return False

        params = self.params
        try:
            self.session = await self.server.registry.create(
                params.session,
                SessionMetadata(
                    channel=params.channel,
                    conversation_id=params.conversation,
                    user=params.user,
                    language=params.language,
                    model=params.model,
                    connection_id=self.connection_id,
                ),
                on_expire=self.expire,
            )
            logger.info(
                f"New WebSocket connection: {self.connection_id} (session={params.session}, ip={self.client_ip})"
            )

            backend_error = await self._open_stream()
            self._pump_task = asyncio.create_task(self._pump_events())
            connected = await send_message(
                self.websocket,
                ConnectedMessage(connection_id=self.connection_id, session_id=params.session),
            )
            if not connected:
                await self.close()
                return False
            if backend_error is not None:
                await send_error(self.websocket, "Transcription service unavailable")
        except DuplicateSessionError as e:
            logger.warning(f"Rejecting connection from {self.client_ip}: {e}")
            await self._refuse(str(e))
            return False
        except Exception as e:
            logger.exception(f"Error setting up connection {self.connection_id}: {e}")
            await self.close(CloseCode.INTERNAL_ERROR, "Internal server error")
            return False

        self._set_state(ConnectionState.ACTIVE)
        if self.config.keepalive_interval > 0:
            self._keepalive_task = asyncio.create_task(self._keepalive())
        return True

    async def _refuse(self, reason: str) -> None:
        self.state = ConnectionState.CLOSED
        await self.websocket.close(CloseCode.POLICY_VIOLATION, close_reason(reason))

    async def _open_stream(self) -> BackendUnavailableError | None:
        params = self.params
        try:
            self.stream = await self.server.backend.open(
                params.session,
                params.conversation,
                params.language,
                params.model,
                self.events,
            )
        except BackendUnavailableError as e:
            logger.error(f"Backend unavailable for connection {self.connection_id}: {e}")
            return e
        return None

    async def handle_message(self, message: str | bytes) -> None:
        if isinstance(message, bytes):
            await self.handle_audio(message)
            return

        try:
            data = json.loads(message)
        except json.JSONDecodeError:
            logger.warning(f"Invalid JSON from connection {self.connection_id}")
            await send_error(self.websocket, "Invalid JSON format")
            return
        if not isinstance(data, dict):
            await send_error(self.websocket, "Invalid message format")
            return

        message_type = data.get("type")
        handler = self.server.control_handlers.get(message_type)
        if handler is None:
            logger.warning(f"Unknown message type: {message_type}")
            return

        try:
            await handler(self, data)
        except websockets.exceptions.ConnectionClosed:
            raise
        except Exception as e:
            logger.exception(f"Error handling {message_type} message for {self.connection_id}: {e}")
            await send_error(self.websocket, "Failed to process message")

    async def handle_audio(self, frame: bytes) -> bool:
        """Validate and forward one audio frame.

        Returns:
            True if the frame reached the backend stream

        """
        try:
            size = validate_audio_frame(frame, self.config.min_chunk_bytes, self.config.max_chunk_bytes)
        except FrameRejected as e:
            logger.warning(f"Invalid audio data from {self.connection_id}: {e.reason}")
            return False

        self.session.record_frame(size)

        if self.stream is not None and self.stream.is_connected():
            return await self.stream.send_audio(frame)

        logger.debug(f"Backend stream not ready for {self.connection_id}; dropping frame")
        return False

    async def _pump_events(self) -> None:
        """Consume backend events in order until told to stop."""
        sinks = DispatchSinks(client=self.websocket, notifier=self.server.notifier, channel=self.session.channel)
        while True:
            item = await self.events.get()
            if item is _STOP_PUMP:
                break
            try:
                if isinstance(item, TranscriptEvent):
                    await self.server.dispatcher.dispatch(item, sinks)
                elif isinstance(item, BackendError):
                    logger.error(f"Backend error for connection {self.connection_id}: {item.message}")
                    await send_error(self.websocket, "Transcription service error")
            except Exception as e:
                logger.exception(f"Error relaying backend event for {self.connection_id}: {e}")

    async def _keepalive(self) -> None:
        interval = self.config.keepalive_interval
        timeout = self.config.keepalive_timeout
        while self.state is ConnectionState.ACTIVE:
            await asyncio.sleep(interval)
            if self.state is not ConnectionState.ACTIVE or not is_open(self.websocket):
                break
            try:
                pong_waiter = await self.websocket.ping()
                latency = await asyncio.wait_for(pong_waiter, timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning(f"No pong from {self.connection_id} within {timeout}s")
                if self.config.keepalive_close_on_timeout:
                    # Detach so the close sequence does not cancel this task mid-close.
                    self._keepalive_task = None
                    await self.websocket.close(CloseCode.INTERNAL_ERROR, "Keepalive timeout")
                    break
            except websockets.exceptions.ConnectionClosed:
                break
            else:
                logger.debug(f"Pong received from {self.connection_id} ({latency * 1000:.1f} ms)")

    async def expire(self) -> None:
        """Close callback used by the registry sweep."""
        logger.info(f"Session {self.params.session} expired; closing connection {self.connection_id}")
        await self.close(CloseCode.GOING_AWAY, "Session expired")

    async def close(self, code: int = CloseCode.NORMAL_CLOSURE, reason: str = "") -> None:
        """Tear the connection down. Concurrent callers share one close sequence."""
        if self._close_task is None:
            self._close_task = asyncio.create_task(self._close(code, reason))
        await asyncio.shield(self._close_task)

    async def _close(self, code: int, reason: str) -> None:
        if self.state is ConnectionState.CLOSED:
            return
        self._set_state(ConnectionState.CLOSING)

        keepalive, self._keepalive_task = self._keepalive_task, None
        if keepalive is not None:
            keepalive.cancel()

        try:
            if self.stream is not None:
                await self.stream.close()
        except Exception as e:
            logger.exception(f"Error closing backend stream for {self.connection_id}: {e}")
        finally:
            if self.session is not None:
                await self.server.registry.remove(self.session.session_id, self.session.handle)

        await self._drain_events()

        if is_open(self.websocket):
            await self.websocket.close(code, close_reason(reason))

        self._set_state(ConnectionState.CLOSED)
        session = self.session
        logger.info(
            f"WebSocket connection closed: {self.connection_id} "
            f"(duration={time.monotonic() - self._started:.1f}s, "
            f"chunks={session.audio_chunks_received if session else 0}, "
            f"bytes={session.bytes_received if session else 0})"
        )

    async def _drain_events(self) -> None:
        pump, self._pump_task = self._pump_task, None
        if pump is None:
            return
        self.events.put_nowait(_STOP_PUMP)
        try:
            await asyncio.wait_for(pump, timeout=self.config.event_drain_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Dropped undelivered events for {self.connection_id} after drain timeout")
