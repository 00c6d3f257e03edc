"""Configuration module for the Parley server."""

from .defaults import get_default_config
from .logging_config import get_logging_config
from .settings import Settings, settings

__all__ = [
    "settings",
    "Settings",
    "get_default_config",
    "get_logging_config",
]
