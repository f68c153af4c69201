import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from websockets.protocol import State

from matilda_relay.relay.dispatcher import DispatchSinks, ResultDispatcher
from matilda_relay.relay.types import TranscriptEvent


def _event(text="hello", is_final=True):
    return TranscriptEvent(text=text, session_id="s-1", conversation_id="c-1", confidence=0.9, is_final=is_final)


@pytest.mark.asyncio
async def test_final_transcript_goes_to_client_and_notifier(make_websocket, notifier):
    websocket = make_websocket()
    dispatcher = ResultDispatcher()

    result = await dispatcher.dispatch(_event(), DispatchSinks(client=websocket, notifier=notifier, channel="#ops"))

    assert result.client_delivered is True
    assert result.notified is True
    message = json.loads(websocket.sent[0])
    assert message["type"] == "transcript"
    assert message["data"]["sessionId"] == "s-1"
    assert message["data"]["transcript"] == "hello"
    assert notifier.calls[0][0] == "#ops"


@pytest.mark.asyncio
async def test_interim_transcript_is_not_notified(make_websocket, notifier):
    websocket = make_websocket()

    result = await ResultDispatcher().dispatch(
        _event(is_final=False), DispatchSinks(client=websocket, notifier=notifier, channel="#ops")
    )

    assert result.client_delivered is True
    assert result.notified is False
    assert notifier.calls == []


@pytest.mark.asyncio
async def test_blank_final_transcript_is_not_notified(make_websocket, notifier):
    result = await ResultDispatcher().dispatch(
        _event(text="   "), DispatchSinks(client=make_websocket(), notifier=notifier, channel="#ops")
    )

    assert result.notified is False
    assert notifier.calls == []


@pytest.mark.asyncio
async def test_missing_channel_or_notifier_skips_notification(make_websocket, notifier):
    dispatcher = ResultDispatcher()

    no_channel = await dispatcher.dispatch(_event(), DispatchSinks(client=make_websocket(), notifier=notifier))
    no_notifier = await dispatcher.dispatch(_event(), DispatchSinks(client=make_websocket(), channel="#ops"))

    assert no_channel.notified is False
    assert no_notifier.notified is False


@pytest.mark.asyncio
async def test_closed_client_still_notifies(make_websocket, notifier):
    websocket = make_websocket()
    websocket.state = State.CLOSED

    result = await ResultDispatcher().dispatch(
        _event(), DispatchSinks(client=websocket, notifier=notifier, channel="#ops")
    )

    assert result.client_delivered is False
    assert result.notified is True
    assert websocket.sent == []


@pytest.mark.asyncio
async def test_notifier_failure_does_not_raise(make_websocket, notifier):
    notifier.fail = True
    websocket = make_websocket()

    result = await ResultDispatcher().dispatch(
        _event(), DispatchSinks(client=websocket, notifier=notifier, channel="#ops")
    )

    assert result.client_delivered is True
    assert result.notified is False
    assert len(notifier.calls) == 1


@pytest.mark.asyncio
async def test_unexpected_notifier_error_is_absorbed(make_websocket):
    notifier = SimpleNamespace(notify=AsyncMock(side_effect=RuntimeError("boom")))

    result = await ResultDispatcher().dispatch(
        _event(), DispatchSinks(client=make_websocket(), notifier=notifier, channel="#ops")
    )

    assert result.notified is False
    notifier.notify.assert_awaited_once()
