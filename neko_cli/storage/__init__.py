"""
Storage Layer.

This package handles all data persistence: track records, playlists and
their display order, the transient artwork cache, and the configuration file.
"""

from .cache import ArtworkCache
from .config_manager import ConfigManager
from .library import LibraryStore
from .playlists import PlaylistStore

__all__ = ["ArtworkCache", "ConfigManager", "LibraryStore", "PlaylistStore"]
