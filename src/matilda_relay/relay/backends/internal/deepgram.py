"""Deepgram live transcription over a raw WebSocket.

One ``DeepgramStream`` wraps one ``/v1/listen`` connection. Its receive loop
turns ``Results`` messages into ``TranscriptEvent``s and faults into
``BackendError``s on the connection's event queue. Audio is forwarded only
while the stream is open; nothing is buffered or retried.
"""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING
from urllib.parse import urlencode

import websockets

from ....core.config import setup_logging
from ...exceptions import BackendUnavailableError
from ...types import BackendError, StreamState, TranscriptEvent, TranscriptWord
from ..base import StreamHandle, StreamingBackend

if TYPE_CHECKING:
    from ....core.config import ConfigLoader

logger = setup_logging(__name__)

DEFAULT_URL = "wss://api.deepgram.com/v1/listen"

_INFO_MESSAGES = {"Metadata", "UtteranceEnd", "SpeechStarted"}


def build_listen_query(
    model: str,
    language: str,
    tags: list[str | None],
    endpointing: int | None = 300,
    encoding: str | None = None,
    sample_rate: int | None = None,
) -> str:
    """Build the ``/v1/listen`` query string with the relay's fixed feature flags."""
    params: list[tuple[str, str]] = [
        ("model", model),
        ("language", language),
        ("smart_format", "true"),
        ("interim_results", "true"),
        ("punctuate", "true"),
        ("diarize", "true"),
        ("profanity_filter", "false"),
        ("filler_words", "false"),
        ("multichannel", "false"),
        ("numerals", "true"),
        ("alternatives", "1"),
    ]
    if endpointing:
        params.append(("endpointing", str(endpointing)))
    if encoding:
        params.append(("encoding", encoding))
    if sample_rate:
        params.append(("sample_rate", str(sample_rate)))
    params.extend(("tag", tag) for tag in tags if tag)
    return urlencode(params)


def parse_results_message(data: dict, session_id: str, conversation_id: str | None) -> TranscriptEvent | None:
    """Convert a Deepgram ``Results`` message into a TranscriptEvent.

    Returns None when the top alternative carries no transcript.
    """
    alternatives = (data.get("channel") or {}).get("alternatives") or []
    if not alternatives:
        return None
    best = alternatives[0]
    text = best.get("transcript") or ""
    if not text:
        return None

    channel_index = data.get("channel_index") or [0]
    if isinstance(channel_index, list):
        channel_index = channel_index[0] if channel_index else 0

    return TranscriptEvent(
        text=text,
        session_id=session_id,
        conversation_id=conversation_id,
        confidence=float(best.get("confidence") or 0.0),
        is_final=bool(data.get("is_final", False)),
        words=tuple(TranscriptWord.from_dict(word) for word in best.get("words") or []),
        duration_seconds=float(data.get("duration") or 0.0),
        start_offset_seconds=float(data.get("start") or 0.0),
        channel_index=int(channel_index),
    )


class DeepgramStream(StreamHandle):
    """One live Deepgram stream bound to a relay session."""

    def __init__(
        self,
        session_id: str,
        conversation_id: str | None,
        websocket,
        events: asyncio.Queue,
        close_timeout: float = 5.0,
        keepalive_interval: float = 8.0,
    ) -> None:
        self.session_id = session_id
        self.conversation_id = conversation_id
        self._websocket = websocket
        self._events = events
        self._close_timeout = close_timeout
        self._keepalive_interval = keepalive_interval
        self._state = StreamState.OPENING
        self._closed = asyncio.Event()
        self._receiver: asyncio.Task | None = None
        self._keepalive: asyncio.Task | None = None

    @property
    def state(self) -> StreamState:
        return self._state

    def start(self) -> None:
        """Mark the stream open and start its background tasks."""
        self._state = StreamState.OPEN
        self._receiver = asyncio.create_task(self._receive())
        if self._keepalive_interval > 0:
            self._keepalive = asyncio.create_task(self._send_keepalives())
        logger.info(f"Deepgram connection opened for session: {self.session_id}")

    def _report(self, message: str, detail: str | None = None) -> None:
        self._events.put_nowait(BackendError(message=message, session_id=self.session_id, detail=detail))

    async def send_audio(self, frame: bytes) -> bool:
        if self._state is not StreamState.OPEN:
            logger.debug(f"Dropping {len(frame)} byte frame for session {self.session_id} (state={self._state.value})")
            return False
        try:
            await self._websocket.send(frame)
        except websockets.exceptions.ConnectionClosed as e:
            logger.debug(f"Deepgram stream for {self.session_id} closed while sending audio: {e}")
            return False
        return True

    async def _send_keepalives(self) -> None:
        message = json.dumps({"type": "KeepAlive"})
        while self._state is StreamState.OPEN:
            await asyncio.sleep(self._keepalive_interval)
            if self._state is not StreamState.OPEN:
                break
            try:
                await self._websocket.send(message)
            except websockets.exceptions.ConnectionClosed:
                break

    async def _receive(self) -> None:
        try:
            async for message in self._websocket:
                if isinstance(message, bytes):
                    continue
                self._handle_message(message)
        except websockets.exceptions.ConnectionClosed as e:
            if self._state is StreamState.OPEN:
                logger.error(f"Deepgram connection error for session {self.session_id}: {e}")
                self._report("Backend connection lost", detail=str(e))
        except Exception as e:
            logger.exception(f"Deepgram receive loop failed for session {self.session_id}: {e}")
            self._report("Backend connection lost", detail=str(e))
        finally:
            if self._state is StreamState.OPEN:
                logger.info(f"Deepgram connection closed for session: {self.session_id}")
                self._finish()

    def _handle_message(self, raw: str) -> None:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Undecodable Deepgram message for session {self.session_id}")
            self._report("Malformed backend message")
            return
        if not isinstance(data, dict):
            logger.warning(f"Unexpected Deepgram message shape for session {self.session_id}")
            self._report("Malformed backend message")
            return

        kind = data.get("type")
        if kind == "Results":
            try:
                event = parse_results_message(data, self.session_id, self.conversation_id)
            except (TypeError, ValueError, AttributeError) as e:
                logger.warning(f"Malformed Deepgram results for session {self.session_id}: {e}")
                self._report("Malformed backend message", detail=str(e))
                return
            if event is not None:
                self._events.put_nowait(event)
                logger.debug(f"Transcript received: {event.text}")
        elif kind in _INFO_MESSAGES:
            logger.debug(f"{kind} received for session {self.session_id}")
        elif kind == "Error" or "err_code" in data:
            description = data.get("description") or data.get("err_msg") or "Backend error"
            logger.error(f"Deepgram reported an error for session {self.session_id}: {description}")
            self._report(str(description), detail=data.get("variant") or data.get("err_code"))
        else:
            logger.debug(f"Ignoring Deepgram message type {kind!r}")

    def _finish(self) -> None:
        self._state = StreamState.CLOSED
        if self._keepalive is not None:
            self._keepalive.cancel()
        self._closed.set()

    async def close(self) -> None:
        if self._state in (StreamState.CLOSING, StreamState.CLOSED):
            await self._closed.wait()
            return

        self._state = StreamState.CLOSING
        if self._keepalive is not None:
            self._keepalive.cancel()

        try:
            # Ask Deepgram to flush pending results, then close from its side.
            await self._websocket.send(json.dumps({"type": "CloseStream"}))
            if self._receiver is not None:
                await asyncio.wait_for(asyncio.shield(self._receiver), timeout=self._close_timeout)
        except websockets.exceptions.ConnectionClosed:
            pass
        except asyncio.TimeoutError:
            logger.warning(f"Deepgram did not close stream {self.session_id} within {self._close_timeout}s")
        finally:
            await self._websocket.close()
            if self._receiver is not None and not self._receiver.done():
                self._receiver.cancel()
                try:
                    await self._receiver
                except asyncio.CancelledError:
                    pass
            self._finish()
            logger.info(f"Deepgram stream closed for session: {self.session_id}")


class DeepgramBackend(StreamingBackend):
    """Deepgram live transcription backend."""

    name = "deepgram"

    def __init__(
        self,
        api_key: str,
        url: str = DEFAULT_URL,
        endpointing: int | None = 300,
        encoding: str | None = None,
        sample_rate: int | None = None,
        connect_timeout: float = 10.0,
        close_timeout: float = 5.0,
        keepalive_interval: float = 8.0,
    ) -> None:
        self.api_key = api_key
        self.url = url
        self.endpointing = endpointing
        self.encoding = encoding
        self.sample_rate = sample_rate
        self.connect_timeout = connect_timeout
        self.close_timeout = close_timeout
        self.keepalive_interval = keepalive_interval

    @classmethod
    def from_config(cls, config: ConfigLoader) -> DeepgramBackend:
        return cls(
            api_key=config.deepgram_api_key,
            url=str(config.get("deepgram.url", DEFAULT_URL)),
            endpointing=int(config.get("deepgram.endpointing", 300)) or None,
            encoding=str(config.get("deepgram.encoding", "")) or None,
            sample_rate=int(config.get("deepgram.sample_rate", 0)) or None,
            connect_timeout=float(config.get("deepgram.connect_timeout_s", 10.0)),
            close_timeout=float(config.get("deepgram.close_timeout_s", 5.0)),
            keepalive_interval=float(config.get("deepgram.keepalive_interval_s", 8.0)),
        )

    def listen_url(self, session_id: str, conversation_id: str | None, language: str, model: str) -> str:
        query = build_listen_query(
            model=model,
            language=language,
            tags=[session_id, conversation_id],
            endpointing=self.endpointing,
            encoding=self.encoding,
            sample_rate=self.sample_rate,
        )
        return f"{self.url}?{query}"

    async def open(
        self,
        session_id: str,
        conversation_id: str | None,
        language: str,
        model: str,
        events: asyncio.Queue,
    ) -> DeepgramStream:
        if not self.api_key:
            raise BackendUnavailableError("Deepgram API key is not configured")

        url = self.listen_url(session_id, conversation_id, language, model)
        try:
            websocket = await websockets.connect(
                url,
                additional_headers={"Authorization": f"Token {self.api_key}"},
                open_timeout=self.connect_timeout,
            )
        except (OSError, asyncio.TimeoutError, websockets.exceptions.WebSocketException) as e:
            logger.error(f"Failed to create Deepgram connection for session {session_id}: {e}")
            raise BackendUnavailableError(f"Deepgram rejected stream setup: {e}") from e

        stream = DeepgramStream(
            session_id,
            conversation_id,
            websocket,
            events,
            close_timeout=self.close_timeout,
            keepalive_interval=self.keepalive_interval,
        )
        stream.start()
        return stream
