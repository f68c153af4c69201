"""Core WebSocket server class for the transcription relay.

RelayWebSocketServer owns no lifecycle of its own: the session registry,
backend, dispatcher and notifier are handed in by the caller, which also
decides when the server starts and shuts down.
"""

import asyncio

from websockets.frames import CloseCode

from ...core.config import ConfigLoader, setup_logging
from ..backends.base import StreamingBackend
from ..dispatcher import ResultDispatcher
from ..notifier import Notifier
from ..registry import SessionRegistry
from .connection import RelayConnection
from .handlers import CONTROL_HANDLERS

logger = setup_logging(__name__)


class RelayWebSocketServer:
    """WebSocket gateway relaying client audio to a streaming backend.

    This server handles:
    - Query-parameter validation and session registration per connection
    - Binary audio frames forwarded to one backend stream per session
    - JSON control messages (start, stop, config)
    - Transcript delivery to the client and final transcripts to the notifier
    """

    def __init__(
        self,
        config: ConfigLoader,
        registry: SessionRegistry,
        backend: StreamingBackend,
        dispatcher: ResultDispatcher | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self.config = config
        self.host = config.websocket_host
        self.port = config.websocket_port

        self.registry = registry
        self.backend = backend
        self.dispatcher = dispatcher or ResultDispatcher()
        self.notifier = notifier

        # connection_id -> RelayConnection
        self.connections: dict[str, RelayConnection] = {}
        self.control_handlers = dict(CONTROL_HANDLERS)

        # Health server runner (set during start_server)
        self._health_runner = None

        logger.debug(f"Initializing relay on ws://{self.host}:{self.port} (backend={self.backend_name})")

    @property
    def backend_name(self) -> str:
        return self.backend.name

    async def handle_client(self, websocket) -> None:
        """Serve one WebSocket client from handshake to close."""
        connection = RelayConnection(self, websocket)
        self.connections[connection.connection_id] = connection
        try:
            await connection.run()
        finally:
            self.connections.pop(connection.connection_id, None)

    async def start_server(self, host: str | None = None, port: int | None = None) -> None:
        from .main import start_server as _start_server

        await _start_server(self, host, port)

    async def shutdown(self) -> None:
        """Close every connection and release shared resources."""
        logger.info(f"Shutting down relay ({len(self.connections)} active connections)")
        await self.registry.stop_sweeper()

        connections = list(self.connections.values())
        if connections:
            results = await asyncio.gather(
                *(connection.close(CloseCode.GOING_AWAY, "Server shutting down") for connection in connections),
                return_exceptions=True,
            )
            for connection, result in zip(connections, results):
                if isinstance(result, Exception):
                    logger.error(f"Error closing connection {connection.connection_id}: {result}")

        await self.backend.aclose()
        if self.notifier is not None:
            await self.notifier.close()
        if self._health_runner is not None:
            await self._health_runner.cleanup()
            self._health_runner = None
