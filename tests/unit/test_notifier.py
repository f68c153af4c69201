import aiohttp
import pytest

from matilda_relay.core.config import ConfigLoader
from matilda_relay.relay.exceptions import DispatchFailure
from matilda_relay.relay.notifier import SlackNotifier, create_notifier, format_slack_message
from matilda_relay.relay.types import TranscriptEvent


class _FakeResponse:
    def __init__(self, status=200, body=None):
        self.status = status
        self._body = body if body is not None else {"ok": True}

    async def json(self, content_type=None):
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class _FakeSession:
    def __init__(self, response=None, error=None):
        self.closed = False
        self.posts = []
        self._response = response or _FakeResponse()
        self._error = error

    def post(self, url, json=None):
        self.posts.append((url, json))
        if self._error is not None:
            raise self._error
        return self._response

    async def close(self):
        self.closed = True


def _event(**overrides):
    values = {
        "text": "ship it",
        "session_id": "s-1",
        "conversation_id": "c-1",
        "confidence": 0.876,
        "is_final": True,
        "duration_seconds": 2.5,
    }
    values.update(overrides)
    return TranscriptEvent(**values)


def test_format_slack_message():
    payload = format_slack_message("#ops", _event())

    assert payload["channel"] == "#ops"
    assert payload["text"] == "🎤 *Live Transcription*\nship it"
    context = payload["blocks"][1]["elements"][0]["text"]
    assert context == "Confidence: 88% | Session: s-1 | Conversation: c-1 | Duration: 2.50s"


def test_format_slack_message_without_conversation():
    payload = format_slack_message("#ops", _event(conversation_id=None))

    assert "Conversation" not in payload["blocks"][1]["elements"][0]["text"]


@pytest.mark.asyncio
async def test_slack_notifier_posts_payload():
    notifier = SlackNotifier("xoxb-token", api_url="https://slack.test/api/chat.postMessage")
    session = _FakeSession()
    notifier._session = session

    await notifier.notify("#ops", _event())

    url, payload = session.posts[0]
    assert url == "https://slack.test/api/chat.postMessage"
    assert payload["channel"] == "#ops"


@pytest.mark.asyncio
async def test_slack_http_error_raises_dispatch_failure():
    notifier = SlackNotifier("xoxb-token")
    notifier._session = _FakeSession(response=_FakeResponse(status=500))

    with pytest.raises(DispatchFailure, match="HTTP 500"):
        await notifier.notify("#ops", _event())


@pytest.mark.asyncio
async def test_slack_api_rejection_raises_dispatch_failure():
    notifier = SlackNotifier("xoxb-token")
    notifier._session = _FakeSession(response=_FakeResponse(body={"ok": False, "error": "channel_not_found"}))

    with pytest.raises(DispatchFailure, match="channel_not_found"):
        await notifier.notify("#ops", _event())


@pytest.mark.asyncio
async def test_slack_client_error_raises_dispatch_failure():
    notifier = SlackNotifier("xoxb-token")
    notifier._session = _FakeSession(error=aiohttp.ClientConnectionError("refused"))

    with pytest.raises(DispatchFailure, match="request failed"):
        await notifier.notify("#ops", _event())


@pytest.mark.asyncio
async def test_close_releases_session():
    notifier = SlackNotifier("xoxb-token")
    session = _FakeSession()
    notifier._session = session

    await notifier.close()

    assert session.closed is True
    assert notifier._session is None


def test_create_notifier_requires_token(tmp_path, monkeypatch):
    monkeypatch.delenv("SLACK_BOT_TOKEN", raising=False)

    assert create_notifier(ConfigLoader(tmp_path / "missing.toml")) is None

    configured = ConfigLoader(tmp_path / "missing.toml", overrides={"slack": {"bot_token": "xoxb-1"}})
    assert isinstance(create_notifier(configured), SlackNotifier)
