"""
Container configuration cache.
"""

from .config_cache import CacheEntry, ContainerConfigCache

__all__ = ["CacheEntry", "ContainerConfigCache"]
