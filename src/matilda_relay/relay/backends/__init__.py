"""
Streaming transcription backends.

Supported backends:
- deepgram: Deepgram live transcription (default)
- dummy: Deterministic local backend for tests and development
"""

from .base import StreamHandle, StreamingBackend
from .registry import get_available_backends, get_backend_class, get_backend_info

__all__ = [
    "StreamHandle",
    "StreamingBackend",
    "get_available_backends",
    "get_backend_class",
    "get_backend_info",
]
