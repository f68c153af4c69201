"""Relay configuration.

Values come from three layers, later ones winning: the built-in defaults
below, the ``[relay]`` table of a TOML file, and explicit overrides passed by
the caller. A handful of deployment settings (secrets, bind address, backend
choice) can additionally be forced through environment variables.
"""

import os
from pathlib import Path
from typing import Any

import tomllib

DEFAULT_CONFIG: dict[str, Any] = {
    "server": {
        "websocket": {
            "host": "0.0.0.0",
            "port": 3000,
            "max_message_kb": 64,
        },
        "health": {"enabled": True, "port_offset": 1},
        "keepalive": {"interval_s": 30.0, "timeout_s": 10.0, "close_on_timeout": False},
    },
    "sessions": {
        "sweep_interval_s": 60.0,
        "max_idle_s": 1800.0,
        "event_drain_timeout_s": 5.0,
    },
    "audio": {"min_chunk_bytes": 160, "max_chunk_bytes": 8192},
    "transcription": {
        "backend": "deepgram",
        "default_language": "en-US",
        "default_model": "nova-2",
        "models": ["nova-2", "nova", "enhanced", "base"],
    },
    "deepgram": {
        "url": "wss://api.deepgram.com/v1/listen",
        "api_key": "",
        "endpointing": 300,
        "encoding": "",
        "sample_rate": 0,
        "connect_timeout_s": 10.0,
        "close_timeout_s": 5.0,
        "keepalive_interval_s": 8.0,
    },
    "dummy": {"text": "Hello world", "final_every_bytes": 16000},
    "slack": {
        "bot_token": "",
        "api_url": "https://slack.com/api/chat.postMessage",
        "timeout_s": 10.0,
    },
}


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return ``base`` updated recursively with ``override``; inputs are not mutated."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def default_config_path() -> Path:
    env_path = os.environ.get("MATILDA_RELAY_CONFIG")
    if env_path:
        return Path(env_path)
    return Path.home() / ".matilda" / "relay.toml"


def read_relay_table(path: Path) -> dict[str, Any]:
    """Load the ``[relay]`` table of a TOML file; a missing file yields {}."""
    if not path.is_file():
        return {}
    with path.open("rb") as f:
        return tomllib.load(f).get("relay", {})


class ConfigLoader:
    """Layered relay configuration with typed accessors."""

    def __init__(self, config_path: str | Path | None = None, overrides: dict[str, Any] | None = None) -> None:
        path = Path(config_path) if config_path is not None else default_config_path()
        self.config_file = str(path)
        self._config = deep_merge(DEFAULT_CONFIG, read_relay_table(path))
        if overrides:
            self._config = deep_merge(self._config, overrides)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Look up a dotted key such as ``server.websocket.port``."""
        node: Any = self._config
        for part in key_path.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def _env_or(self, env_name: str, key_path: str, default: Any) -> Any:
        value = os.environ.get(env_name)
        if value:
            return value
        return self.get(key_path, default)

    # WebSocket server
    @property
    def websocket_host(self) -> str:
        return str(self._env_or("RELAY_HOST", "server.websocket.host", "0.0.0.0"))

    @property
    def websocket_port(self) -> int:
        env_port = os.environ.get("RELAY_PORT", "")
        if env_port.isdigit():
            return int(env_port)
        return int(self.get("server.websocket.port", 3000))

    @property
    def max_message_bytes(self) -> int:
        return int(self.get("server.websocket.max_message_kb", 64)) * 1024

    @property
    def health_enabled(self) -> bool:
        return bool(self.get("server.health.enabled", True))

    @property
    def health_port_offset(self) -> int:
        return int(self.get("server.health.port_offset", 1))

    # Keepalive probe
    @property
    def keepalive_interval(self) -> float:
        return float(self.get("server.keepalive.interval_s", 30.0))

    @property
    def keepalive_timeout(self) -> float:
        return float(self.get("server.keepalive.timeout_s", 10.0))

    @property
    def keepalive_close_on_timeout(self) -> bool:
        return bool(self.get("server.keepalive.close_on_timeout", False))

    # Session lifecycle
    @property
    def sweep_interval(self) -> float:
        return float(self.get("sessions.sweep_interval_s", 60.0))

    @property
    def max_idle(self) -> float:
        return float(self.get("sessions.max_idle_s", 1800.0))

    @property
    def event_drain_timeout(self) -> float:
        return float(self.get("sessions.event_drain_timeout_s", 5.0))

    # Audio frame bounds
    @property
    def min_chunk_bytes(self) -> int:
        return int(self.get("audio.min_chunk_bytes", 160))

    @property
    def max_chunk_bytes(self) -> int:
        return int(self.get("audio.max_chunk_bytes", 8192))

    # Transcription
    @property
    def transcription_backend(self) -> str:
        """Streaming backend name; RELAY_BACKEND wins over the file."""
        return str(self._env_or("RELAY_BACKEND", "transcription.backend", "deepgram"))

    @property
    def default_language(self) -> str:
        return str(self.get("transcription.default_language", "en-US"))

    @property
    def default_model(self) -> str:
        return str(self.get("transcription.default_model", "nova-2"))

    @property
    def allowed_models(self) -> tuple[str, ...]:
        return tuple(str(model) for model in self.get("transcription.models", []))

    @property
    def deepgram_api_key(self) -> str:
        """Deepgram key: DEEPGRAM_API_KEY wins over the config file."""
        return str(self._env_or("DEEPGRAM_API_KEY", "deepgram.api_key", ""))

    # Notifications
    @property
    def slack_bot_token(self) -> str:
        return str(self._env_or("SLACK_BOT_TOKEN", "slack.bot_token", ""))

    @property
    def slack_api_url(self) -> str:
        return str(self.get("slack.api_url", "https://slack.com/api/chat.postMessage"))

    @property
    def slack_timeout(self) -> float:
        return float(self.get("slack.timeout_s", 10.0))


_config_loader: ConfigLoader | None = None


def get_config() -> ConfigLoader:
    """Process-wide loader built from the default config path on first use."""
    global _config_loader
    if _config_loader is None:
        _config_loader = ConfigLoader()
    return _config_loader


# Modules import their logger from here alongside the config
from .logging import get_logger, set_log_level, setup_logging  # noqa: E402, F401
