"""
Shared pytest configuration for relay tests.

Routes log files to a throwaway directory and provides fake collaborators
(client WebSocket, notifier) so connection logic runs without a network.
"""

import json
import os
import tempfile
from types import SimpleNamespace

# Log sinks are created on first import of the package
os.environ.setdefault("MATILDA_RELAY_LOG_DIR", tempfile.mkdtemp(prefix="matilda-relay-tests-"))

import pytest
from websockets.exceptions import ConnectionClosedOK
from websockets.protocol import State

from matilda_relay.core.config import ConfigLoader
from matilda_relay.relay.backends.internal.dummy import DummyBackend
from matilda_relay.relay.dispatcher import ResultDispatcher
from matilda_relay.relay.exceptions import DispatchFailure
from matilda_relay.relay.notifier import Notifier
from matilda_relay.relay.registry import SessionRegistry
from matilda_relay.relay.server.core import RelayWebSocketServer


class FakeWebSocket:
    """Stand-in for a server-side websockets connection."""

    def __init__(self, path="/?channel=general&session=s-1", incoming=()):
        self.request = SimpleNamespace(path=path)
        self.remote_address = ("127.0.0.1", 9999)
        self.state = State.OPEN
        self.sent = []
        self.close_calls = []
        self._incoming = list(incoming)

    async def send(self, message):
        if self.state is not State.OPEN:
            raise ConnectionClosedOK(None, None)
        self.sent.append(message)

    async def close(self, code=1000, reason=""):
        self.close_calls.append((code, reason))
        self.state = State.CLOSED

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._incoming or self.state is not State.OPEN:
            raise StopAsyncIteration
        return self._incoming.pop(0)

    def messages(self):
        return [json.loads(message) for message in self.sent]

    def messages_of(self, message_type):
        return [message for message in self.messages() if message["type"] == message_type]


class RecordingNotifier(Notifier):
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []
        self.closed = False

    async def notify(self, channel, event):
        self.calls.append((channel, event))
        if self.fail:
            raise DispatchFailure("chat service down")

    async def close(self):
        self.closed = True


@pytest.fixture
def relay_config(tmp_path):
    return ConfigLoader(
        tmp_path / "missing.toml",
        overrides={
            "server": {"keepalive": {"interval_s": 0}},
            "sessions": {"event_drain_timeout_s": 1.0},
        },
    )


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def dummy_backend():
    return DummyBackend(text="hello there", final_every_bytes=1000)


@pytest.fixture
def relay_server(relay_config, dummy_backend, notifier):
    return RelayWebSocketServer(
        relay_config,
        registry=SessionRegistry(),
        backend=dummy_backend,
        dispatcher=ResultDispatcher(),
        notifier=notifier,
    )


@pytest.fixture
def make_websocket():
    return FakeWebSocket
