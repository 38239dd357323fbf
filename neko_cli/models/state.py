"""
The download lifecycle of a track, expressed as a closed set of frozen
dataclasses. Consumers branch with `isinstance` and must handle all four.
"""

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class NotDownloaded:
    """No local copy and no download in flight."""


@dataclass(frozen=True)
class Downloading:
    """A download is streaming; progress is a fraction in [0, 1]."""

    progress: float = 0.0

    def __post_init__(self):
        if not 0.0 <= self.progress <= 1.0:
            raise ValueError(f"Progress must be within [0, 1], got {self.progress}")


@dataclass(frozen=True)
class Downloaded:
    """The track is committed to the local library."""


@dataclass(frozen=True)
class Failed:
    """The last download attempt failed; `reason` is shown to the user."""

    reason: str


DownloadState = Union[NotDownloaded, Downloading, Downloaded, Failed]

NOT_DOWNLOADED = NotDownloaded()
DOWNLOADED = Downloaded()


def is_terminal(state: DownloadState) -> bool:
    """A terminal state only changes when a caller starts a new download."""
    if isinstance(state, Downloading):
        return False
    if isinstance(state, (NotDownloaded, Downloaded, Failed)):
        return True
    raise TypeError(f"Unknown download state: {state!r}")

