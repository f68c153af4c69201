"""Notification collaborator for final transcripts.

The relay only needs ``notify(channel, event)``; ``SlackNotifier`` is the
thin chat adapter used in production.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import aiohttp

from ..core.config import setup_logging
from .exceptions import DispatchFailure
from .types import TranscriptEvent

if TYPE_CHECKING:
    from ..core.config import ConfigLoader

logger = setup_logging(__name__)

SLACK_POST_MESSAGE_URL = "https://slack.com/api/chat.postMessage"


class Notifier(ABC):
    """Delivers final transcripts to a chat destination."""

    @abstractmethod
    async def notify(self, channel: str, event: TranscriptEvent) -> None:
        """Deliver one final transcript.

        Raises:
            DispatchFailure: If the destination cannot be reached

        """

    async def close(self) -> None:
        """Release network resources."""


def format_slack_message(channel: str, event: TranscriptEvent) -> dict:
    """Build the chat.postMessage payload for a final transcript."""
    headline = f"🎤 *Live Transcription*\n{event.text}"
    context = f"Confidence: {round(event.confidence * 100)}% | Session: {event.session_id}"
    if event.conversation_id:
        context += f" | Conversation: {event.conversation_id}"
    context += f" | Duration: {event.duration_seconds:.2f}s"
    return {
        "channel": channel,
        "text": headline,
        "blocks": [
            {"type": "section", "text": {"type": "mrkdwn", "text": headline}},
            {"type": "context", "elements": [{"type": "mrkdwn", "text": context}]},
        ],
    }


class SlackNotifier(Notifier):
    """Posts final transcripts to Slack through the Web API."""

    def __init__(self, bot_token: str, api_url: str = SLACK_POST_MESSAGE_URL, timeout: float = 10.0) -> None:
        self.api_url = api_url
        self._bot_token = bot_token
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                headers={"Authorization": f"Bearer {self._bot_token}"},
            )
        return self._session

    async def notify(self, channel: str, event: TranscriptEvent) -> None:
        payload = format_slack_message(channel, event)
        try:
            async with self._get_session().post(self.api_url, json=payload) as response:
                if response.status >= 400:
                    raise DispatchFailure(f"Slack returned HTTP {response.status}")
                body = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise DispatchFailure(f"Slack request failed: {e}") from e
        except TimeoutError as e:
            raise DispatchFailure("Slack request timed out") from e

        if not body.get("ok", False):
            raise DispatchFailure(f"Slack rejected message: {body.get('error', 'unknown error')}")
        logger.debug(f"Transcript for session {event.session_id} posted to {channel}")

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None


def create_notifier(config: ConfigLoader) -> Notifier | None:
    """Build the configured notifier, or None when no Slack token is set."""
    token = config.slack_bot_token
    if not token:
        logger.info("Slack bot token not configured; transcript notifications disabled")
        return None
    return SlackNotifier(token, api_url=config.slack_api_url, timeout=config.slack_timeout)
