"""Health check server for the relay.

This module provides HTTP endpoints for service monitoring:
- health_handler: liveness summary
- status_handler: per-session registry statistics
- start_health_server: start the HTTP server
"""

import time
from typing import TYPE_CHECKING

from aiohttp import web

from ....core.config import setup_logging

if TYPE_CHECKING:
    from ..core import RelayWebSocketServer

logger = setup_logging(__name__)


def _summary(server: "RelayWebSocketServer") -> dict:
    return {
        "service": "relay",
        "backend": server.backend_name,
        "notifications_enabled": server.notifier is not None,
        "connected_clients": len(server.connections),
        "active_sessions": len(server.registry),
        "timestamp": time.time(),
    }


async def health_handler(server: "RelayWebSocketServer", request: web.Request) -> web.Response:
    """HTTP health check endpoint for service monitoring."""
    return web.json_response({"status": "healthy", **_summary(server)})


async def status_handler(server: "RelayWebSocketServer", request: web.Request) -> web.Response:
    """Detailed status including every active session."""
    return web.json_response({"status": "healthy", **_summary(server), "sessions": server.registry.stats()})


async def start_health_server(
    server: "RelayWebSocketServer",
    host: str,
    port: int,
) -> web.AppRunner:
    """Start HTTP health check server.

    Args:
        server: The RelayWebSocketServer instance
        host: Host to bind to
        port: Port to bind to

    Returns:
        The aiohttp AppRunner instance

    """
    app = web.Application()
    # Create closures to pass server to handlers
    app.router.add_get("/health", lambda req: health_handler(server, req))
    app.router.add_get("/status", lambda req: status_handler(server, req))
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info(f"HTTP health endpoint available at http://{host}:{port}/health")
    return runner
