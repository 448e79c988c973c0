"""
Storage Layer.

This package handles configuration files and the read-only metadata database.
"""

from .config_manager import ConfigManager
from .metadata_cache import MetadataCache

__all__ = ["ConfigManager", "MetadataCache"]
