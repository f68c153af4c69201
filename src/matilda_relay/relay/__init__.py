"""Live transcription relay: sessions, backends, dispatch and the WebSocket server."""

from .dispatcher import DispatchResult, DispatchSinks, ResultDispatcher
from .exceptions import (
    BackendNotAvailableError,
    BackendUnavailableError,
    DispatchFailure,
    DuplicateSessionError,
    FrameRejected,
    RelayError,
    ValidationError,
)
from .notifier import Notifier, SlackNotifier, create_notifier
from .registry import SessionRegistry
from .types import (
    BackendError,
    ConnectionState,
    Session,
    SessionHandle,
    SessionMetadata,
    SessionState,
    StreamState,
    TranscriptEvent,
    TranscriptWord,
)

__all__ = [
    "BackendError",
    "BackendNotAvailableError",
    "BackendUnavailableError",
    "ConnectionState",
    "DispatchFailure",
    "DispatchResult",
    "DispatchSinks",
    "DuplicateSessionError",
    "FrameRejected",
    "Notifier",
    "RelayError",
    "ResultDispatcher",
    "Session",
    "SessionHandle",
    "SessionMetadata",
    "SessionRegistry",
    "SessionState",
    "SlackNotifier",
    "StreamState",
    "TranscriptEvent",
    "TranscriptWord",
    "ValidationError",
    "create_notifier",
]
