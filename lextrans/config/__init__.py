"""Configuration module -- exports Settings and load_config."""

from lextrans.config.loader import load_config
from lextrans.config.settings import Settings

__all__ = ["Settings", "load_config"]
