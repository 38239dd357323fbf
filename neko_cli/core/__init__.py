"""
Core application engine.

The `DownloadEngine` runs each download as an ordered pipeline of stages and
publishes progress through the `DownloadStateTracker`. `LocalImporter` brings
existing files into the library, and `PlaybackSyncLoop` follows a player's
position through a track's lyrics.
"""

from .download_engine import DownloadEngine
from .importer import LocalImporter
from .playback_sync import ClockPlayer, NowPlaying, PlaybackSyncLoop, SyncSnapshot
from .state_tracker import DownloadStateTracker

__all__ = [
    "ClockPlayer",
    "DownloadEngine",
    "DownloadStateTracker",
    "LocalImporter",
    "NowPlaying",
    "PlaybackSyncLoop",
    "SyncSnapshot",
]
