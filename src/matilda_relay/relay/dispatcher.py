"""Fan transcript events out to the originating client and the notifier."""

from dataclasses import dataclass
from typing import Any

import websockets
from websockets.protocol import State

from ..core.config import setup_logging
from ..schemas.responses import TranscriptMessage
from .exceptions import DispatchFailure
from .notifier import Notifier
from .types import TranscriptEvent

logger = setup_logging(__name__)


@dataclass
class DispatchSinks:
    """Where one session's transcripts go."""

    client: Any
    notifier: Notifier | None = None
    channel: str | None = None


@dataclass(frozen=True)
class DispatchResult:
    client_delivered: bool = False
    notified: bool = False


def is_open(websocket) -> bool:
    state = getattr(websocket, "state", State.OPEN)
    return state is State.OPEN


class ResultDispatcher:
    """Delivers each transcript to the client and, when final, to the notifier.

    The two deliveries are independent: a closed client connection does not
    prevent the notification and a failed notification never reaches the
    client or the session.
    """

    def should_notify(self, event: TranscriptEvent, sinks: DispatchSinks) -> bool:
        return bool(event.is_final and event.text.strip() and sinks.channel and sinks.notifier is not None)

    async def dispatch(self, event: TranscriptEvent, sinks: DispatchSinks) -> DispatchResult:
        client_delivered = await self._deliver_to_client(event, sinks.client)

        notified = False
        if self.should_notify(event, sinks):
            notified = await self._notify(event, sinks)

        return DispatchResult(client_delivered=client_delivered, notified=notified)

    async def _deliver_to_client(self, event: TranscriptEvent, websocket) -> bool:
        if websocket is None or not is_open(websocket):
            return False
        try:
            await websocket.send(TranscriptMessage(data=event.to_dict()).to_wire())
        except websockets.exceptions.ConnectionClosed:
            logger.debug(f"Client for session {event.session_id} closed before transcript delivery")
            return False
        return True

    async def _notify(self, event: TranscriptEvent, sinks: DispatchSinks) -> bool:
        try:
            await sinks.notifier.notify(sinks.channel, event)
        except DispatchFailure as e:
            logger.error(f"Failed to send transcription to {sinks.channel}: {e}")
            return False
        except Exception as e:
            logger.exception(f"Unexpected notifier error for session {event.session_id}: {e}")
            return False
        return True
