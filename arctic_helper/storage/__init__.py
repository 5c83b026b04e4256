"""
Storage Layer.

This package handles all data persistence: the settings file, the cached
catalog document with its ETag, and the TTL cache for LoRA metadata.
"""

from .cache import CacheManager
from .catalog_store import CatalogStore
from .config_manager import ConfigManager

__all__ = ["CacheManager", "CatalogStore", "ConfigManager"]
