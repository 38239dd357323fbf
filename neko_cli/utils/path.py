"""
Utilities for handling file paths, locators, and destination names.
"""

import os
import tempfile
from contextlib import suppress
from pathlib import Path
from urllib.parse import unquote, urlparse

from pathvalidate import sanitize_filename

from neko_cli.models.config import AUDIO_EXTENSIONS


def create_dir(directory_path: Path) -> None:
    """Creates a directory if it does not already exist."""
    directory_path.mkdir(parents=True, exist_ok=True)


def is_remote(locator: str | None) -> bool:
    """True when the locator is an http(s) URL."""
    if not locator:
        return False
    return urlparse(locator).scheme.lower() in ("http", "https")


def locator_to_path(locator: str) -> Path:
    """
    Converts a local locator to a path. Accepts plain paths as well as
    `file://` URIs.
    """
    parsed = urlparse(locator)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    return Path(locator).expanduser()


def extension_hint(url: str) -> str | None:
    """Returns the audio extension suggested by a URL's path, if any."""
    suffix = Path(unquote(urlparse(url).path)).suffix.lstrip(".").lower()
    return suffix if suffix in AUDIO_EXTENSIONS else None


def safe_component(value: str) -> str:
    """Replaces filesystem-illegal characters with underscores."""
    return sanitize_filename(value, replacement_text="_").strip()


def track_file_base(title: str, artist: str, track_id: str) -> str:
    """
    Builds the base name shared by a track's audio file and its sidecars:
    "<title> - <artist>", or an identifier-based name when nothing survives
    sanitization.
    """
    safe_title = safe_component(title)
    safe_artist = safe_component(artist)
    if safe_title and safe_artist:
        base = f"{safe_title} - {safe_artist}"
    else:
        base = safe_title or safe_artist
    base = sanitize_filename(base).strip()
    return base or f"track_{safe_component(track_id) or 'unknown'}"


def is_within(path: Path, directory: Path) -> bool:
    """True when `path` resolves to a location inside `directory`."""
    try:
        path.resolve().relative_to(directory.resolve())
        return True
    except ValueError:
        return False


def write_atomic(path: Path, data: bytes | str) -> None:
    """
    Replaces `path` with `data` in one step: the content is written to a
    unique temporary file in the same directory and then renamed over it.
    """
    payload = data.encode("utf-8") if isinstance(data, str) else data
    fd, temp_name = tempfile.mkstemp(
        dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(payload)
        os.replace(temp_name, path)
    except BaseException:
        with suppress(OSError):
            os.remove(temp_name)
        raise
