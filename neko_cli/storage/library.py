"""
Manages the directory of track records: one JSON document per track, keyed by
the track identifier.
"""

import logging
from pathlib import Path
from urllib.parse import quote

from pydantic import ValidationError

from neko_cli.exceptions import StoreError
from neko_cli.models.track import TrackRecord
from neko_cli.utils.path import create_dir, write_atomic

log = logging.getLogger(__name__)


def identifier_to_filename(identifier: str, suffix: str) -> str:
    """Maps an opaque identifier to a reversible, filesystem-safe file name."""
    return f"{quote(identifier, safe='')}{suffix}"


class LibraryStore:
    """
    The sole writer of track records.

    Every record lives in its own file, so a failed write can only affect the
    record being written. A process should construct one instance and share it.
    """

    def __init__(self, tracks_dir: Path, covers_dir: Path):
        self.tracks_dir = tracks_dir
        self.track_covers_dir = covers_dir / "tracks"
        create_dir(self.tracks_dir)
        create_dir(self.track_covers_dir)

    def _record_path(self, identifier: str) -> Path:
        return self.tracks_dir / identifier_to_filename(identifier, ".json")

    def cover_cache_path(self, identifier: str) -> Path:
        """Where artwork extracted from a track's audio file is cached."""
        return self.track_covers_dir / identifier_to_filename(identifier, ".jpg")

    def _load(self, path: Path) -> TrackRecord | None:
        try:
            return TrackRecord.model_validate_json(path.read_bytes())
        except (ValidationError, OSError, ValueError) as e:
            log.warning(f"[yellow]Skipping unreadable track record '{path.name}':[/] {e}")
            return None

    def list_tracks(self) -> list[TrackRecord]:
        """Returns every readable record, sorted by title. Never raises."""
        try:
            paths = sorted(self.tracks_dir.glob("*.json"))
        except OSError as e:
            log.error(f"Could not scan track directory '{self.tracks_dir}': {e}")
            return []
        records = [record for path in paths if (record := self._load(path))]
        return sorted(records, key=lambda r: (r.title.casefold(), r.id))

    def get(self, identifier: str) -> TrackRecord | None:
        """Returns the record for an identifier, or None if absent or corrupt."""
        path = self._record_path(identifier)
        if not path.is_file():
            return None
        return self._load(path)

    def exists(self, identifier: str) -> bool:
        return self._record_path(identifier).is_file()

    def put(self, record: TrackRecord) -> None:
        """
        Inserts or replaces the record for `record.id`.

        Raises:
            StoreError: If the document could not be written.
        """
        path = self._record_path(record.id)
        try:
            write_atomic(path, record.model_dump_json(indent=2))
        except OSError as e:
            raise StoreError(f"Could not save track record '{record.id}': {e}") from e
        log.debug(f"Saved track record '{record.id}' ({record.title}).")

    def delete(self, identifier: str) -> bool:
        """
        Removes the record and its cached cover. Missing files are not an
        error. Returns True if a record was removed.
        """
        removed = False
        record_path = self._record_path(identifier)
        try:
            record_path.unlink()
            removed = True
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StoreError(f"Could not delete track record '{identifier}': {e}") from e

        try:
            self.cover_cache_path(identifier).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StoreError(f"Could not delete cached cover of '{identifier}': {e}") from e
        return removed
