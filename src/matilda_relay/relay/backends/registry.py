"""Backend registry.

Keep backend selection centralized here so the gateway and entry point never
import concrete backends directly.
"""

from __future__ import annotations

from ..exceptions import BackendNotAvailableError
from .base import StreamingBackend


def get_available_backends() -> list[str]:
    """Return list of available backend names."""
    return ["deepgram", "dummy"]


def get_backend_info() -> dict[str, dict]:
    """Return detailed info about all backends."""
    return {
        "deepgram": {
            "available": True,
            "description": "Deepgram live transcription over WebSocket",
            "models": "nova-2, nova, enhanced, base",
            "requires": "DEEPGRAM_API_KEY",
        },
        "dummy": {
            "available": True,
            "description": "Deterministic test backend (no network access)",
            "models": "N/A",
            "requires": "Nothing",
        },
    }


def get_backend_class(backend_name: str) -> type[StreamingBackend]:
    """Factory function to get the backend class based on name."""
    if backend_name == "deepgram":
        from .internal.deepgram import DeepgramBackend

        return DeepgramBackend

    if backend_name == "dummy":
        from .internal.dummy import DummyBackend

        return DummyBackend

    available = get_available_backends()
    raise BackendNotAvailableError(
        f"Unknown backend: '{backend_name}'\n"
        f"Available backends: {', '.join(available)}\n"
        f"  - 'deepgram' (default): Deepgram live streaming (requires DEEPGRAM_API_KEY)\n"
        f"  - 'dummy': Deterministic test backend (no network)\n"
        f'Check your relay config: [relay.transcription] backend = "{available[0]}"'
    )
