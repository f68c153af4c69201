"""Base classes for streaming speech backends.

A backend opens one stream per session. Streams push ``TranscriptEvent`` and
``BackendError`` items onto a queue owned by the connection, which consumes
them in order; no callbacks run inside the backend's receive loop.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from ..types import StreamState

if TYPE_CHECKING:
    from ...core.config import ConfigLoader


class StreamHandle(ABC):
    """One open backend stream for a single session."""

    session_id: str

    @property
    @abstractmethod
    def state(self) -> StreamState:
        """Current stream state."""

    def is_connected(self) -> bool:
        return self.state is StreamState.OPEN

    @abstractmethod
    async def send_audio(self, frame: bytes) -> bool:
        """Forward one frame if the stream is open; drop it otherwise.

        Returns:
            True if the frame was handed to the backend

        """

    @abstractmethod
    async def close(self) -> None:
        """Request stream shutdown. Safe to call repeatedly."""


class StreamingBackend(ABC):
    """Factory for backend streams."""

    name: str = "base"

    @classmethod
    def from_config(cls, config: ConfigLoader) -> StreamingBackend:
        return cls()

    @abstractmethod
    async def open(
        self,
        session_id: str,
        conversation_id: str | None,
        language: str,
        model: str,
        events: asyncio.Queue,
    ) -> StreamHandle:
        """Open a backend stream for a session.

        Raises:
            BackendUnavailableError: If the backend rejects stream setup

        """

    async def aclose(self) -> None:
        """Release backend-wide resources at process shutdown."""
