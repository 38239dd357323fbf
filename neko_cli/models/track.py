"""
Pydantic models for persisted library documents, plus the parsed lyric line.
"""

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field, field_validator

LOCAL_PLATFORM = "local"


class TrackRecord(BaseModel):
    """
    A persisted description of one song: metadata plus locators.

    A locator is either a remote URL or a local file path. Records are frozen;
    the download engine replaces locators with `model_copy(update=...)`, which
    keeps the identifier untouched.
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str = Field(min_length=1)
    title: str
    artist: str
    album: str | None = None
    platform: str = LOCAL_PLATFORM
    audio_locator: str | None = None
    cover_locator: str | None = None
    lyric_locator: str | None = None

    @field_validator("audio_locator", "cover_locator", "lyric_locator", "album")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        """Treats empty strings the same as a missing value."""
        if v is not None and not v.strip():
            return None
        return v


class Playlist(BaseModel):
    """A named, ordered list of track identifiers."""

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(min_length=1)
    name: str
    track_ids: list[str] = Field(default_factory=list)
    cover_locator: str | None = None

    @field_validator("track_ids")
    @classmethod
    def dedupe_track_ids(cls, v: list[str]) -> list[str]:
        """Removes duplicate identifiers, keeping the first occurrence."""
        return list(dict.fromkeys(v))


@dataclass(frozen=True)
class LyricLine:
    """One timed caption: milliseconds from track start and its text."""

    time: int
    text: str
    translation: str | None = None
