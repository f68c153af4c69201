"""Matilda Relay - live audio to streaming transcription gateway."""

from importlib import metadata
from importlib import import_module
from pathlib import Path
import tomllib
from typing import TYPE_CHECKING


def _get_version() -> str:
    try:
        return metadata.version("matilda-relay")
    except metadata.PackageNotFoundError:
        pass

    try:
        pyproject_path = Path(__file__).resolve().parents[2] / "pyproject.toml"
        with open(pyproject_path, "rb") as f:
            data = tomllib.load(f)
        return str(data["project"]["version"])
    except (OSError, KeyError, tomllib.TOMLDecodeError):
        return "unknown"


__version__ = _get_version()

if TYPE_CHECKING:
    from .core.config import ConfigLoader, get_config
    from .relay.backends import get_available_backends, get_backend_class
    from .relay.registry import SessionRegistry
    from .relay.server import RelayWebSocketServer, build_server

_LAZY_EXPORTS = {
    "ConfigLoader": (".core.config", "ConfigLoader"),
    "get_config": (".core.config", "get_config"),
    "SessionRegistry": (".relay.registry", "SessionRegistry"),
    "RelayWebSocketServer": (".relay.server", "RelayWebSocketServer"),
    "build_server": (".relay.server", "build_server"),
    "get_backend_class": (".relay.backends", "get_backend_class"),
    "get_available_backends": (".relay.backends", "get_available_backends"),
}


def __getattr__(name):
    if name in {"core", "relay", "schemas"}:
        module = import_module(f".{name}", __name__)
        globals()[name] = module
        return module

    if name not in _LAZY_EXPORTS:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

    module_name, attr_name = _LAZY_EXPORTS[name]
    module = import_module(module_name, __name__)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value


__all__ = [
    "ConfigLoader",
    "get_config",
    "SessionRegistry",
    "RelayWebSocketServer",
    "build_server",
    "get_backend_class",
    "get_available_backends",
]
