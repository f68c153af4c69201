"""Core package exports."""

from .config import ConfigLoader, get_config
from .logging import get_logger, set_log_level, setup_logging

__all__ = ["ConfigLoader", "get_config", "get_logger", "set_log_level", "setup_logging"]
