"""Validation of connection parameters and audio frames."""

import re
from collections.abc import Iterable
from dataclasses import dataclass
from urllib.parse import parse_qs, urlsplit

from ..core.config import setup_logging
from .exceptions import FrameRejected, ValidationError

logger = setup_logging(__name__)

CHANNEL_PATTERN = re.compile(r"^[#@]?[A-Za-z0-9_-]+$")
LANGUAGE_PATTERN = re.compile(r"^[a-z]{2}(-[A-Z]{2})?$")

DEFAULT_MODELS = ("nova-2", "nova", "enhanced", "base")
DEFAULT_MIN_CHUNK_BYTES = 160
DEFAULT_MAX_CHUNK_BYTES = 8192

# Per-parameter truncation limits
_MAX_LENGTHS = {
    "channel": 100,
    "session": 100,
    "conversation": 100,
    "user": 100,
    "language": 10,
    "model": 50,
}


@dataclass(frozen=True)
class ConnectionParams:
    """Validated query parameters of one streaming connection."""

    channel: str
    session: str
    conversation: str | None = None
    user: str | None = None
    language: str = "en-US"
    model: str = "nova-2"


_HTML_ESCAPES = str.maketrans({"<": "&lt;", ">": "&gt;", '"': "&quot;", "'": "&#x27;", "/": "&#x2F;"})
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def sanitize_param(value: str | None, max_length: int) -> str:
    """Trim and truncate a query value, escape HTML and drop control characters."""
    if not value:
        return ""
    escaped = value.strip()[:max_length].translate(_HTML_ESCAPES)
    return _CONTROL_CHARS.sub("", escaped)


def _first_values(query: str) -> dict[str, str]:
    parsed = parse_qs(query, keep_blank_values=True)
    return {key: values[0] for key, values in parsed.items() if values}


def parse_connection_params(
    path: str,
    default_language: str = "en-US",
    default_model: str = "nova-2",
    allowed_models: Iterable[str] = DEFAULT_MODELS,
) -> ConnectionParams:
    """Parse and validate the query string of a connection request path.

    Args:
        path: Request path including the query string (``/?channel=...``)
        default_language: Language used when none is given
        default_model: Model used when none is given
        allowed_models: Enumeration of accepted model names

    Returns:
        ConnectionParams with defaults applied

    Raises:
        ValidationError: With every problem found, not just the first

    """
    raw = _first_values(urlsplit(path).query)
    params = {name: sanitize_param(raw.get(name), limit) for name, limit in _MAX_LENGTHS.items()}

    errors = []
    if not params["channel"]:
        errors.append("channel parameter is required")
    elif not CHANNEL_PATTERN.match(params["channel"]):
        errors.append("invalid channel format")

    if not params["session"]:
        errors.append("session parameter is required")

    if params["language"] and not LANGUAGE_PATTERN.match(params["language"]):
        errors.append("invalid language format")

    if params["model"] and params["model"] not in tuple(allowed_models):
        errors.append("invalid model specified")

    if errors:
        raise ValidationError(errors)

    return ConnectionParams(
        channel=params["channel"],
        session=params["session"],
        conversation=params["conversation"] or None,
        user=params["user"] or None,
        language=params["language"] or default_language,
        model=params["model"] or default_model,
    )


def validate_audio_frame(
    frame: bytes,
    min_size: int = DEFAULT_MIN_CHUNK_BYTES,
    max_size: int = DEFAULT_MAX_CHUNK_BYTES,
) -> int:
    """Check an audio frame against the configured size bounds (inclusive).

    Returns:
        The frame length

    Raises:
        FrameRejected: If the frame is empty, too small or too large

    """
    size = len(frame)
    if size == 0:
        raise FrameRejected(size, "Empty audio chunk")
    if size > max_size:
        raise FrameRejected(size, f"Chunk too large: {size} bytes (max: {max_size})")
    if size < min_size:
        raise FrameRejected(size, f"Chunk too small: {size} bytes (min: {min_size})")

    silent = frame.count(0)
    if silent / size > 0.95:
        logger.debug(f"High silence ratio in audio chunk ({silent}/{size} zero bytes)")

    return size
