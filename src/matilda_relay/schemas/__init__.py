from .requests import BaseMessage, ConfigRequest
from .responses import ConnectedMessage, ErrorMessage, StatusMessage, TranscriptMessage, WireMessage

__all__ = [
    "BaseMessage",
    "ConfigRequest",
    "ConnectedMessage",
    "ErrorMessage",
    "StatusMessage",
    "TranscriptMessage",
    "WireMessage",
]
