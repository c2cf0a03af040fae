"""Configuration module -- exports Settings and load_config."""

from kbchat.config.loader import load_config
from kbchat.config.settings import Settings

__all__ = ["Settings", "load_config"]
