"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class NekoCliError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(NekoCliError):
    """Raised for issues related to configuration loading or validation."""


class StoreError(NekoCliError):
    """Raised when the library or playlist store cannot persist a document."""


class TrackNotFoundError(NekoCliError):
    """Raised when a track identifier has no record in the library."""


class PlaylistNotFoundError(NekoCliError):
    """Raised when a playlist identifier has no document in the store."""


class DownloadError(NekoCliError):
    """Base class for permanent download failures."""


class MissingLocatorError(DownloadError):
    """Raised when a track carries no resolvable remote audio locator."""


class TooManyRedirectsError(DownloadError):
    """Raised when a redirect chain exceeds the configured hop limit."""


class HttpStatusError(DownloadError):
    """Raised when the final response of a request is not a 2xx status."""

    def __init__(self, status: int, url: str):
        super().__init__(f"Server returned HTTP {status} for {url}")
        self.status = status
        self.url = url


class UnexpectedContentError(DownloadError):
    """
    Raised when the server answers with a text/HTML document instead of media,
    which usually means an error page was served with a 200 status.
    """


class EmptyDownloadError(DownloadError):
    """Raised when a completed download produced zero bytes."""


class LocalImportError(NekoCliError):
    """Raised when a local audio or lyric file cannot be imported."""
