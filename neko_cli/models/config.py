"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Extensions the downloader accepts as a hint from the remote URL.
AUDIO_EXTENSIONS = ("mp3", "flac", "m4a", "mp4", "aac", "ogg", "opus", "wav")


class LibraryConfig(BaseModel):
    """A validated configuration model for the application."""

    model_config = ConfigDict(validate_assignment=True, str_strip_whitespace=True)

    # Storage
    library_dir: Path

    # Download Settings
    max_workers: int = 4
    chunk_size: int = 65536
    max_redirects: int = 10
    connect_timeout: float = 15.0
    read_timeout: float = 60.0
    default_extension: str = "mp3"
    artwork_required: bool = False

    # Playback & Presentation
    sync_interval_ms: int = 50
    playlist_cover_size: int = 500
    cache_max_age_days: int = 1

    # Internal fields not loaded from INI file
    config_path: str = Field("", repr=False)

    @field_validator("library_dir")
    @classmethod
    def expand_library_dir(cls, v: Path) -> Path:
        """Expands '~' so every derived directory is absolute-ish."""
        return Path(v).expanduser()

    @field_validator("max_workers")
    @classmethod
    def validate_workers(cls, v: int) -> int:
        """Ensures a reasonable number of workers."""
        if v < 1 or v > 32:
            raise ValueError("Max workers must be between 1 and 32.")
        return v

    @field_validator("chunk_size")
    @classmethod
    def validate_chunk_size(cls, v: int) -> int:
        if v < 4096:
            raise ValueError("Chunk size must be at least 4096 bytes.")
        return v

    @field_validator("max_redirects")
    @classmethod
    def validate_redirects(cls, v: int) -> int:
        if v < 0 or v > 50:
            raise ValueError("Max redirects must be between 0 and 50.")
        return v

    @field_validator("default_extension")
    @classmethod
    def validate_extension(cls, v: str) -> str:
        v = v.lstrip(".").lower()
        if v not in AUDIO_EXTENSIONS:
            raise ValueError(
                f"Default extension must be one of: {', '.join(AUDIO_EXTENSIONS)}."
            )
        return v

    @field_validator("sync_interval_ms")
    @classmethod
    def validate_sync_interval(cls, v: int) -> int:
        if v < 10 or v > 1000:
            raise ValueError("Sync interval must be between 10 and 1000 ms.")
        return v

    @field_validator("playlist_cover_size")
    @classmethod
    def validate_cover_size(cls, v: int) -> int:
        if v < 64 or v > 2000:
            raise ValueError("Playlist cover size must be between 64 and 2000 px.")
        return v

    @model_validator(mode="after")
    def validate_timeouts(self) -> "LibraryConfig":
        """Both network timeouts must be positive."""
        if self.connect_timeout <= 0 or self.read_timeout <= 0:
            raise ValueError("Network timeouts must be greater than zero.")
        return self

    @property
    def tracks_dir(self) -> Path:
        return self.library_dir / "tracks"

    @property
    def playlists_dir(self) -> Path:
        return self.library_dir / "playlists"

    @property
    def music_dir(self) -> Path:
        return self.library_dir / "music"

    @property
    def covers_dir(self) -> Path:
        return self.library_dir / "covers"

    @property
    def cache_dir(self) -> Path:
        return self.library_dir / "cache"

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path"}
        return {key for key in cls.model_fields if key not in internal_fields}
