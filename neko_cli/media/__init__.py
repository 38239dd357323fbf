"""
Media Processing Layer.

This package is responsible for all media file operations, including
downloading, metadata tagging, and playlist cover composition.
"""

from .cover import compose_cover
from .downloader import Downloader
from .tagger import TagData, Tagger

__all__ = ["Downloader", "TagData", "Tagger", "compose_cover"]
