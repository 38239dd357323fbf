"""
neko-cli: a local music library with a recoverable download pipeline and
synchronized time-coded lyrics.
"""

__version__ = "0.4.0"
