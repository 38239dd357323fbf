"""
Lyrics Layer.

This package parses time-coded lyric text and resolves a track's lyric
locator (local sidecar file or remote URL) into parsed lines.
"""

from .loader import load_lyrics
from .parser import current_line_index, parse, parse_file

__all__ = ["current_line_index", "load_lyrics", "parse", "parse_file"]
