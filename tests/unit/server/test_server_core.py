import asyncio
import importlib

import pytest
from websockets.frames import CloseCode

from matilda_relay.core.config import ConfigLoader
from matilda_relay.relay.backends.internal.dummy import DummyBackend
from matilda_relay.relay.server.main import build_server, parse_args

main_module = importlib.import_module("matilda_relay.relay.server.main")


class _HoldingWebSocket:
    """Client that stays connected until the server closes it."""

    def __init__(self, make_websocket):
        self._inner = make_websocket()
        self._closed = asyncio.Event()

    def __getattr__(self, name):
        return getattr(self._inner, name)

    async def close(self, code=1000, reason=""):
        await self._inner.close(code, reason)
        self._closed.set()

    def __aiter__(self):
        return self

    async def __anext__(self):
        await self._closed.wait()
        raise StopAsyncIteration


@pytest.mark.asyncio
async def test_handle_client_tracks_connection(relay_server, make_websocket):
    websocket = make_websocket(incoming=[b"\x01" * 320])

    await relay_server.handle_client(websocket)

    assert relay_server.connections == {}
    assert len(relay_server.registry) == 0
    assert websocket.messages()[0]["type"] == "connected"


@pytest.mark.asyncio
async def test_shutdown_closes_connections_and_resources(relay_server, notifier, make_websocket):
    websocket = _HoldingWebSocket(make_websocket)
    task = asyncio.create_task(relay_server.handle_client(websocket))
    for _ in range(50):
        if relay_server.connections:
            break
        await asyncio.sleep(0.01)

    await relay_server.shutdown()
    await asyncio.wait_for(task, timeout=1.0)

    assert websocket.close_calls == [(CloseCode.GOING_AWAY, "Server shutting down")]
    assert relay_server.connections == {}
    assert notifier.closed is True


def test_build_server_uses_backend_override(tmp_path, monkeypatch):
    monkeypatch.delenv("SLACK_BOT_TOKEN", raising=False)
    config = ConfigLoader(tmp_path / "missing.toml")

    server = build_server(config, "dummy")

    assert isinstance(server.backend, DummyBackend)
    assert server.backend_name == "dummy"
    assert server.notifier is None


def test_parse_args():
    args = parse_args(["--host", "127.0.0.1", "--port", "4000", "--backend", "dummy", "--log-level", "debug"])

    assert args.host == "127.0.0.1"
    assert args.port == 4000
    assert args.backend == "dummy"
    assert args.log_level == "DEBUG"
    assert args.config is None


def test_main_exits_on_unknown_backend(monkeypatch, tmp_path):
    monkeypatch.setenv("RELAY_BACKEND", "whisper")
    monkeypatch.setattr(main_module, "get_config", lambda: ConfigLoader(tmp_path / "missing.toml"))

    with pytest.raises(SystemExit) as exc_info:
        main_module.main([])

    assert exc_info.value.code == 1
