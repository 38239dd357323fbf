"""
Data Models Layer.

This package contains the Pydantic models and the download state type that
define the core data structures used throughout the application.
"""

from .config import LibraryConfig
from .state import (
    DOWNLOADED,
    NOT_DOWNLOADED,
    Downloaded,
    Downloading,
    DownloadState,
    Failed,
    NotDownloaded,
)
from .track import LyricLine, Playlist, TrackRecord

__all__ = [
    "DOWNLOADED",
    "NOT_DOWNLOADED",
    "DownloadState",
    "Downloaded",
    "Downloading",
    "Failed",
    "LibraryConfig",
    "LyricLine",
    "NotDownloaded",
    "Playlist",
    "TrackRecord",
]
