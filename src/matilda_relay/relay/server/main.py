"""Main entry point and server startup for the relay.

This module provides:
- build_server: Wire config, registry, backend, dispatcher and notifier
- start_server: Async method to start the WebSocket and health servers
- main: Console entry point (``matilda-relay``)
"""

import argparse
import asyncio
import sys
from typing import TYPE_CHECKING

import websockets

from ...core.config import ConfigLoader, get_config, set_log_level, setup_logging
from ..backends import get_available_backends, get_backend_class
from ..dispatcher import ResultDispatcher
from ..exceptions import BackendNotAvailableError
from ..notifier import create_notifier
from ..registry import SessionRegistry
from .internal.health import start_health_server

if TYPE_CHECKING:
    from .core import RelayWebSocketServer

logger = setup_logging(__name__)


def build_server(config: ConfigLoader, backend_name: str | None = None) -> "RelayWebSocketServer":
    """Assemble a server from configuration.

    Raises:
        BackendNotAvailableError: If the backend name is unknown

    """
    from .core import RelayWebSocketServer

    backend_class = get_backend_class(backend_name or config.transcription_backend)
    backend = backend_class.from_config(config)
    logger.debug(f"Using transcription backend: {backend.name}")

    return RelayWebSocketServer(
        config,
        registry=SessionRegistry(),
        backend=backend,
        dispatcher=ResultDispatcher(),
        notifier=create_notifier(config),
    )


async def start_server(
    server: "RelayWebSocketServer",
    host: str | None = None,
    port: int | None = None,
) -> None:
    """Start the WebSocket server and run until cancelled.

    Args:
        server: The RelayWebSocketServer instance
        host: Host to bind to (optional, uses server default)
        port: Port to bind to (optional, uses server default)
    """
    config = server.config
    server_host = host or server.host
    server_port = port or server.port

    server.registry.start_sweeper(config.sweep_interval, config.max_idle)

    try:
        if config.health_enabled:
            health_port = server_port + config.health_port_offset
            try:
                server._health_runner = await start_health_server(server, server_host, health_port)
            except OSError as e:
                logger.warning(f"Health server disabled, could not bind port {health_port}: {e}")

        logger.info(f"Starting WebSocket server on ws://{server_host}:{server_port}")
        logger.info(f"Backend: {server.backend_name}")
        logger.info(f"Notifications: {'enabled' if server.notifier is not None else 'disabled'}")

        async with websockets.serve(
            server.handle_client,
            server_host,
            server_port,
            # Liveness probing is done per connection by the keepalive task.
            ping_interval=None,
            max_size=config.max_message_bytes,
        ):
            logger.info("Transcription relay is ready for connections!")
            await asyncio.Future()
    finally:
        await server.shutdown()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="matilda-relay",
        description="WebSocket gateway relaying live audio to a streaming transcription backend",
    )
    parser.add_argument("--config", help="Path to a TOML config file with a [relay] table")
    parser.add_argument("--host", help="Host to bind the WebSocket server to")
    parser.add_argument("--port", type=int, help="Port for the WebSocket server")
    parser.add_argument("--backend", choices=get_available_backends(), help="Streaming backend to use")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Override RELAY_LOG_LEVEL",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Main function to start the server."""
    args = parse_args(argv)
    if args.log_level:
        set_log_level(args.log_level)
    config = ConfigLoader(args.config) if args.config else get_config()

    try:
        server = build_server(config, args.backend)
    except BackendNotAvailableError as e:
        logger.error(f"Failed to initialize backend: {e}")
        sys.exit(1)

    try:
        asyncio.run(server.start_server(args.host, args.port))
    except KeyboardInterrupt:
        logger.info("Server shutdown requested")
    except Exception as e:
        logger.exception(f"Server error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
