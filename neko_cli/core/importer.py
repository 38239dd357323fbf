"""
Adds audio files that already exist on disk to the library, and attaches
external lyric files to library tracks.
"""

import asyncio
import hashlib
import logging
from pathlib import Path

from rich.markup import escape

from neko_cli.exceptions import LocalImportError, TrackNotFoundError
from neko_cli.lyrics import parse
from neko_cli.media import Tagger
from neko_cli.models.config import LibraryConfig
from neko_cli.models.state import DOWNLOADED
from neko_cli.models.track import LOCAL_PLATFORM, TrackRecord
from neko_cli.storage import LibraryStore
from neko_cli.utils.path import (
    create_dir,
    is_remote,
    is_within,
    locator_to_path,
    track_file_base,
    write_atomic,
)

from .state_tracker import DownloadStateTracker

log = logging.getLogger(__name__)

UNKNOWN = "Unknown"


def local_track_id(path: Path) -> str:
    """A stable identifier for a local file, so re-importing it is an update."""
    digest = hashlib.sha1(str(path.resolve()).encode("utf-8")).hexdigest()  # noqa: S324
    return f"local-{digest[:16]}"


class LocalImporter:
    """Creates library records for local files without any network access."""

    def __init__(
        self,
        config: LibraryConfig,
        store: LibraryStore,
        tracker: DownloadStateTracker,
        tagger: Tagger | None = None,
    ):
        self.config = config
        self.store = store
        self.tracker = tracker
        self.tagger = tagger or Tagger()

    async def import_file(
        self,
        path: Path,
        title: str | None = None,
        artist: str | None = None,
        album: str | None = None,
    ) -> TrackRecord:
        """
        Records a local audio file in the library. Explicit metadata wins over
        embedded tags; the title falls back to the file name. A sibling `.lrc`
        file becomes the lyric locator.

        Raises:
            LocalImportError: If the path is not a readable file.
        """
        record = await asyncio.to_thread(
            self._build_record, Path(path).expanduser(), title, artist, album
        )
        await asyncio.to_thread(self.store.put, record)
        self.tracker.set(record.id, DOWNLOADED)
        log.info(
            f"[green]✓ Imported:[/] {escape(record.artist)} - {escape(record.title)}"
        )
        return record

    def _build_record(
        self, path: Path, title: str | None, artist: str | None, album: str | None
    ) -> TrackRecord:
        if not path.is_file():
            raise LocalImportError(f"'{path}' is not a file.")

        tags = self.tagger.read_tags(path)
        sidecar = path.with_suffix(".lrc")
        return TrackRecord(
            id=local_track_id(path),
            title=title or tags["title"] or path.stem,
            artist=artist or tags["artist"] or UNKNOWN,
            album=album or tags["album"],
            platform=LOCAL_PLATFORM,
            audio_locator=str(path.resolve()),
            lyric_locator=str(sidecar.resolve()) if sidecar.is_file() else None,
        )

    async def import_lyrics(self, track_id: str, lrc_path: Path) -> TrackRecord:
        """
        Copies an external lyric file to the track's sidecar path in the music
        area and points the record at it.

        Raises:
            TrackNotFoundError: If the track is not in the library.
            LocalImportError: If the lyric file cannot be read or written.
        """
        record = await asyncio.to_thread(self.store.get, track_id)
        if record is None:
            raise TrackNotFoundError(f"No track with id '{track_id}' in the library")

        sidecar = self.sidecar_path(record)
        await asyncio.to_thread(self._copy_lyrics, Path(lrc_path).expanduser(), sidecar)

        updated = record.model_copy(update={"lyric_locator": str(sidecar)})
        await asyncio.to_thread(self.store.put, updated)
        log.info(f"[green]✓ Lyrics attached to:[/] {escape(record.title)}")
        return updated

    def sidecar_path(self, record: TrackRecord) -> Path:
        """
        Next to the audio file when it lives in the music area, otherwise a
        "<title> - <artist>.lrc" file there.
        """
        if record.audio_locator and not is_remote(record.audio_locator):
            audio_path = locator_to_path(record.audio_locator)
            if is_within(audio_path, self.config.music_dir):
                return audio_path.with_suffix(".lrc")
        base = track_file_base(record.title, record.artist, record.id)
        return self.config.music_dir / f"{base}.lrc"

    @staticmethod
    def _copy_lyrics(source: Path, destination: Path) -> None:
        try:
            text = source.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise LocalImportError(f"Could not read lyric file '{source}': {e}") from e
        if not parse(text):
            log.warning(f"[yellow]'{source.name}' contains no timed lyric lines.[/]")
        try:
            create_dir(destination.parent)
            write_atomic(destination, text)
        except OSError as e:
            raise LocalImportError(f"Could not write lyric file '{destination}': {e}") from e
