from types import SimpleNamespace
from unittest.mock import AsyncMock

import pydantic
import pytest

from matilda_relay.relay.server.handlers import CONTROL_HANDLERS, handle_config, handle_start, handle_stop


def _connection(websocket, stream=None):
    return SimpleNamespace(connection_id="conn-1", websocket=websocket, stream=stream)


def test_control_message_types():
    assert set(CONTROL_HANDLERS) == {"start", "stop", "config"}


@pytest.mark.asyncio
async def test_start_acknowledges(make_websocket):
    websocket = make_websocket()

    await handle_start(_connection(websocket), {"type": "start"})

    assert websocket.messages() == [{"type": "status", "status": "started", "message": "Transcription started"}]


@pytest.mark.asyncio
async def test_stop_closes_stream_but_not_client(make_websocket):
    websocket = make_websocket()
    stream = SimpleNamespace(close=AsyncMock())

    await handle_stop(_connection(websocket, stream), {"type": "stop"})

    stream.close.assert_awaited_once()
    assert websocket.close_calls == []
    assert websocket.messages() == [{"type": "status", "status": "stopped", "message": "Transcription stopped"}]


@pytest.mark.asyncio
async def test_stop_without_stream_still_acknowledges(make_websocket):
    websocket = make_websocket()

    await handle_stop(_connection(websocket), {"type": "stop"})

    assert websocket.messages()[0]["status"] == "stopped"


@pytest.mark.asyncio
async def test_config_is_accepted_without_reply(make_websocket):
    websocket = make_websocket()

    await handle_config(_connection(websocket), {"type": "config", "config": {"punctuate": False}})

    assert websocket.sent == []


@pytest.mark.asyncio
async def test_config_with_wrong_shape_is_rejected(make_websocket):
    with pytest.raises(pydantic.ValidationError):
        await handle_config(_connection(make_websocket()), {"type": "config", "config": "loud"})
