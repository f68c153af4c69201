"""Control message handlers.

Each handler receives the connection the message arrived on and the parsed
JSON payload:
- handle_start: readiness acknowledgement
- handle_stop: closes the backend stream, keeps the client connection open
- handle_config: accepted and logged; no effect on a running session
"""

from typing import TYPE_CHECKING

from ...core.config import setup_logging
from ...schemas.requests import ConfigRequest
from ...schemas.responses import StatusMessage
from .internal.messages import send_message

if TYPE_CHECKING:
    from .connection import RelayConnection

logger = setup_logging(__name__)


async def handle_start(connection: "RelayConnection", data: dict) -> None:
    logger.info(f"Starting transcription for connection {connection.connection_id}")
    await send_message(
        connection.websocket,
        StatusMessage(status="started", message="Transcription started"),
    )


async def handle_stop(connection: "RelayConnection", data: dict) -> None:
    """Close the backend stream; later audio frames are dropped."""
    logger.info(f"Stopping transcription for connection {connection.connection_id}")
    if connection.stream is not None:
        await connection.stream.close()
    await send_message(
        connection.websocket,
        StatusMessage(status="stopped", message="Transcription stopped"),
    )


async def handle_config(connection: "RelayConnection", data: dict) -> None:
    request = ConfigRequest.model_validate(data)
    logger.debug(f"Config update for connection {connection.connection_id}: {request.config}")


CONTROL_HANDLERS = {
    "start": handle_start,
    "stop": handle_stop,
    "config": handle_config,
}
