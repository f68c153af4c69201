"""Helpers for sending server->client messages."""

import websockets

from ....core.config import setup_logging
from ....schemas.responses import ErrorMessage, WireMessage

logger = setup_logging(__name__)

# RFC 6455 limits a close reason to 123 bytes of UTF-8.
MAX_CLOSE_REASON_BYTES = 123


async def send_message(websocket, message: WireMessage) -> bool:
    """Send one JSON message; a closed connection is logged, not raised.

    Returns:
        True if the message was written to the connection

    """
    try:
        await websocket.send(message.to_wire())
    except websockets.exceptions.ConnectionClosed as e:
        logger.warning(f"WebSocket connection closed while sending {message.type}: {e}")
        return False
    return True


async def send_error(websocket, error: str) -> bool:
    """Send an ``error`` message to the client."""
    return await send_message(websocket, ErrorMessage(error=error))


def close_reason(text: str) -> str:
    """Trim a close reason so it fits in a close frame."""
    encoded = text.encode("utf-8")
    if len(encoded) <= MAX_CLOSE_REASON_BYTES:
        return text
    return encoded[:MAX_CLOSE_REASON_BYTES].decode("utf-8", errors="ignore")
