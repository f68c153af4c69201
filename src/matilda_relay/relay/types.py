"""Type definitions for the live transcription relay.

Provides:
- SessionState / ConnectionState / StreamState: lifecycle enums
- Session: one live transcription, indexed by the SessionRegistry
- TranscriptWord / TranscriptEvent: backend results relayed to clients
- BackendError: backend fault event delivered on the connection's queue
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class SessionState(Enum):
    """State of a registered session."""

    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


# Connections walk the same states as the session they own.
ConnectionState = SessionState


class StreamState(Enum):
    """State of one backend stream."""

    OPENING = "opening"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class SessionHandle:
    """Generation-checked reference to a registry slot."""

    index: int
    generation: int


@dataclass(frozen=True)
class SessionMetadata:
    """Caller-supplied attributes of a new session."""

    channel: str
    conversation_id: str | None = None
    user: str | None = None
    language: str = "en-US"
    model: str = "nova-2"
    connection_id: str = ""


@dataclass
class Session:
    """A live transcription session.

    Mutated only by the connection that created it; the registry keeps a
    reference in its index and never writes to it.
    """

    session_id: str
    channel: str
    conversation_id: str | None = None
    user: str | None = None
    language: str = "en-US"
    model: str = "nova-2"
    connection_id: str = ""
    handle: SessionHandle | None = None
    created_at: float = field(default_factory=time.time)
    created_monotonic: float = field(default_factory=time.monotonic)
    last_activity: float = field(default_factory=time.time)
    audio_chunks_received: int = 0
    bytes_received: int = 0
    state: SessionState = SessionState.CONNECTING

    @classmethod
    def from_metadata(cls, session_id: str, metadata: SessionMetadata) -> "Session":
        return cls(
            session_id=session_id,
            channel=metadata.channel,
            conversation_id=metadata.conversation_id,
            user=metadata.user,
            language=metadata.language,
            model=metadata.model,
            connection_id=metadata.connection_id,
        )

    @property
    def age_seconds(self) -> float:
        return time.monotonic() - self.created_monotonic

    def record_frame(self, size: int) -> None:
        """Count one accepted audio frame."""
        self.audio_chunks_received += 1
        self.bytes_received += size
        self.last_activity = time.time()

    def summary(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "session_id": self.session_id,
            "connection_id": self.connection_id,
            "channel": self.channel,
            "conversation_id": self.conversation_id,
            "state": self.state.value,
            "created_at": self.created_at,
            "age_seconds": round(self.age_seconds, 3),
            "last_activity": self.last_activity,
            "audio_chunks_received": self.audio_chunks_received,
            "bytes_received": self.bytes_received,
        }


@dataclass(frozen=True)
class TranscriptWord:
    """A word-level sub-result with timing information."""

    word: str
    start: float
    end: float
    confidence: float = 1.0
    speaker: int | None = None
    punctuated_word: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "TranscriptWord":
        speaker = data.get("speaker")
        return cls(
            word=str(data.get("word", "")),
            start=float(data.get("start", 0.0)),
            end=float(data.get("end", 0.0)),
            confidence=float(data.get("confidence", 1.0)),
            speaker=int(speaker) if speaker is not None else None,
            punctuated_word=data.get("punctuated_word"),
        )

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {
            "word": self.word,
            "start": self.start,
            "end": self.end,
            "confidence": self.confidence,
        }
        if self.speaker is not None:
            payload["speaker"] = self.speaker
        if self.punctuated_word is not None:
            payload["punctuated_word"] = self.punctuated_word
        return payload


@dataclass(frozen=True)
class TranscriptEvent:
    """An interim or final transcript produced by the backend."""

    text: str
    session_id: str
    conversation_id: str | None = None
    confidence: float = 0.0
    is_final: bool = False
    words: tuple[TranscriptWord, ...] = ()
    duration_seconds: float = 0.0
    start_offset_seconds: float = 0.0
    channel_index: int = 0
    timestamp: str = field(default_factory=utc_timestamp)

    def to_dict(self) -> dict:
        """Client wire format for the ``data`` field of a transcript message."""
        return {
            "sessionId": self.session_id,
            "conversationId": self.conversation_id,
            "transcript": self.text,
            "confidence": self.confidence,
            "is_final": self.is_final,
            "duration": self.duration_seconds,
            "start": self.start_offset_seconds,
            "channel": self.channel_index,
            "words": [word.to_dict() for word in self.words],
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class BackendError:
    """A fault reported by (or about) the backend stream."""

    message: str
    session_id: str
    detail: str | None = None
