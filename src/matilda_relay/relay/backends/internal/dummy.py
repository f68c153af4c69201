from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from ...types import StreamState, TranscriptEvent
from ..base import StreamHandle, StreamingBackend

if TYPE_CHECKING:
    from ....core.config import ConfigLoader

# 16 kHz, 16-bit mono
_BYTES_PER_SECOND = 32000

# Recent streams kept for inspection
_MAX_TRACKED_STREAMS = 64


class DummyStream(StreamHandle):
    """Deterministic stream: one interim result per frame, a final result
    every ``final_every_bytes`` and on close."""

    def __init__(
        self,
        session_id: str,
        conversation_id: str | None,
        events: asyncio.Queue,
        text: str,
        final_every_bytes: int,
    ) -> None:
        self.session_id = session_id
        self.conversation_id = conversation_id
        self._events = events
        self._text = text
        self._final_every_bytes = final_every_bytes
        self._state = StreamState.OPEN
        self._pending_bytes = 0
        self._offset_seconds = 0.0
        self.frames_received = 0
        self.bytes_received = 0

    @property
    def state(self) -> StreamState:
        return self._state

    def _emit(self, is_final: bool) -> None:
        duration = self._pending_bytes / _BYTES_PER_SECOND
        self._events.put_nowait(
            TranscriptEvent(
                text=self._text,
                session_id=self.session_id,
                conversation_id=self.conversation_id,
                confidence=1.0,
                is_final=is_final,
                duration_seconds=duration,
                start_offset_seconds=self._offset_seconds,
            )
        )
        if is_final:
            self._offset_seconds += duration
            self._pending_bytes = 0

    async def send_audio(self, frame: bytes) -> bool:
        if self._state is not StreamState.OPEN:
            return False
        self.frames_received += 1
        self.bytes_received += len(frame)
        self._pending_bytes += len(frame)
        self._emit(is_final=self._pending_bytes >= self._final_every_bytes)
        return True

    async def close(self) -> None:
        if self._state in (StreamState.CLOSING, StreamState.CLOSED):
            return
        self._state = StreamState.CLOSING
        if self._pending_bytes:
            self._emit(is_final=True)
        self._state = StreamState.CLOSED


class DummyBackend(StreamingBackend):
    """Deterministic backend for tests and local development.

    Needs no network access and returns a fixed transcription.
    """

    name = "dummy"

    def __init__(self, *, text: str = "Hello world", final_every_bytes: int = 16000) -> None:
        self._text = text
        self._final_every_bytes = max(1, final_every_bytes)
        self.streams: dict[str, DummyStream] = {}

    @classmethod
    def from_config(cls, config: ConfigLoader) -> DummyBackend:
        return cls(
            text=str(config.get("dummy.text", "Hello world")),
            final_every_bytes=int(config.get("dummy.final_every_bytes", 16000)),
        )

    async def open(
        self,
        session_id: str,
        conversation_id: str | None,
        language: str,
        model: str,
        events: asyncio.Queue,
    ) -> DummyStream:
        stream = DummyStream(session_id, conversation_id, events, self._text, self._final_every_bytes)
        self.streams.pop(session_id, None)
        self.streams[session_id] = stream
        while len(self.streams) > _MAX_TRACKED_STREAMS:
            del self.streams[next(iter(self.streams))]
        return stream
