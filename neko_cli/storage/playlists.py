"""
Manages playlist documents, their user-chosen display order, and the
composite cover regenerated whenever a playlist's membership changes.
"""

import json
import logging
import uuid
from collections.abc import Iterable
from contextlib import suppress
from pathlib import Path

from pydantic import ValidationError

from neko_cli.exceptions import PlaylistNotFoundError, StoreError
from neko_cli.media.cover import MAX_CELLS, compose_cover
from neko_cli.media.tagger import Tagger
from neko_cli.models.track import Playlist, TrackRecord
from neko_cli.storage.library import LibraryStore, identifier_to_filename
from neko_cli.utils.path import create_dir, is_remote, locator_to_path, write_atomic

log = logging.getLogger(__name__)

ORDER_FILE_NAME = "order.json"


class PlaylistStore:
    """
    The sole writer of playlist documents.

    Each playlist is stored as `<id>.json`; the display order is a separate
    `order.json` list of identifiers that is always rewritten as a whole.
    """

    def __init__(
        self,
        playlists_dir: Path,
        covers_dir: Path,
        library: LibraryStore,
        tagger: Tagger | None = None,
        cover_size: int = 500,
    ):
        self.playlists_dir = playlists_dir
        self.playlist_covers_dir = covers_dir / "playlists"
        self.library = library
        self.tagger = tagger or Tagger()
        self.cover_size = cover_size
        self.order_path = playlists_dir / ORDER_FILE_NAME
        create_dir(self.playlists_dir)
        create_dir(self.playlist_covers_dir)

    # --- Paths & persistence ---

    def _playlist_path(self, playlist_id: str) -> Path:
        return self.playlists_dir / identifier_to_filename(playlist_id, ".json")

    def _cover_path(self, playlist_id: str) -> Path:
        return self.playlist_covers_dir / identifier_to_filename(playlist_id, ".jpg")

    def _save(self, playlist: Playlist) -> None:
        try:
            write_atomic(
                self._playlist_path(playlist.id), playlist.model_dump_json(indent=2)
            )
        except OSError as e:
            raise StoreError(f"Could not save playlist '{playlist.name}': {e}") from e

    def _load_order(self) -> list[str]:
        if not self.order_path.is_file():
            return []
        try:
            data = json.loads(self.order_path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            log.warning(f"[yellow]Ignoring unreadable playlist order file:[/] {e}")
            return []
        if not isinstance(data, list):
            return []
        return [str(item) for item in data]

    def _save_order(self, playlist_ids: list[str]) -> None:
        try:
            write_atomic(self.order_path, json.dumps(playlist_ids, indent=2))
        except OSError as e:
            raise StoreError(f"Could not save playlist order: {e}") from e

    # --- Queries ---

    def list_playlists(self) -> list[Playlist]:
        """
        Returns all readable playlists in the saved display order. Playlists
        missing from the order follow, alphabetically; without an order file
        everything is alphabetical.
        """
        playlists = []
        for path in self.playlists_dir.glob("*.json"):
            if path.name == ORDER_FILE_NAME:
                continue
            try:
                playlists.append(Playlist.model_validate_json(path.read_bytes()))
            except (ValidationError, OSError, ValueError) as e:
                log.warning(f"[yellow]Skipping unreadable playlist '{path.name}':[/] {e}")

        by_name = sorted(playlists, key=lambda p: (p.name.casefold(), p.id))
        order = {pid: index for index, pid in enumerate(self._load_order())}
        if not order:
            return by_name
        return sorted(by_name, key=lambda p: order.get(p.id, len(order)))

    def get_playlist(self, playlist_id: str) -> Playlist:
        path = self._playlist_path(playlist_id)
        try:
            return Playlist.model_validate_json(path.read_bytes())
        except FileNotFoundError:
            raise PlaylistNotFoundError(f"No playlist with id '{playlist_id}'") from None
        except (ValidationError, OSError, ValueError) as e:
            raise StoreError(f"Playlist '{playlist_id}' is unreadable: {e}") from e

    # --- Mutations ---

    def create_playlist(self, name: str, track_ids: Iterable[str] = ()) -> Playlist:
        playlist = Playlist(id=str(uuid.uuid4()), name=name, track_ids=list(track_ids))
        if playlist.track_ids:
            playlist = self.regenerate_cover(playlist)
        self._save(playlist)
        log.info(f"Created playlist '{name}' with {len(playlist.track_ids)} tracks.")
        return playlist

    def rename_playlist(self, playlist_id: str, new_name: str) -> Playlist:
        playlist = self.get_playlist(playlist_id).model_copy(update={"name": new_name})
        self._save(playlist)
        return playlist

    def delete_playlist(self, playlist_id: str) -> None:
        try:
            self._playlist_path(playlist_id).unlink()
        except FileNotFoundError:
            raise PlaylistNotFoundError(f"No playlist with id '{playlist_id}'") from None
        with suppress(FileNotFoundError):
            self._cover_path(playlist_id).unlink()
        order = self._load_order()
        if playlist_id in order:
            self._save_order([pid for pid in order if pid != playlist_id])

    def add_tracks(self, playlist_id: str, track_ids: Iterable[str]) -> Playlist:
        playlist = self.get_playlist(playlist_id)
        return self._set_members(playlist, playlist.track_ids + list(track_ids))

    def remove_track(self, playlist_id: str, track_id: str) -> Playlist:
        playlist = self.get_playlist(playlist_id)
        return self._set_members(
            playlist, [tid for tid in playlist.track_ids if tid != track_id]
        )

    def reorder_tracks(self, playlist_id: str, track_ids: Iterable[str]) -> Playlist:
        """Replaces the member order of a playlist."""
        return self._set_members(self.get_playlist(playlist_id), list(track_ids))

    def reorder(self, playlist_ids: Iterable[str]) -> None:
        """Persists the user-chosen display order of playlists."""
        self._save_order(list(dict.fromkeys(playlist_ids)))

    def remove_track_everywhere(self, track_id: str) -> int:
        """Drops a track from every playlist; returns how many were changed."""
        changed = 0
        for playlist in self.list_playlists():
            if track_id in playlist.track_ids:
                self.remove_track(playlist.id, track_id)
                changed += 1
        return changed

    def _set_members(self, playlist: Playlist, track_ids: list[str]) -> Playlist:
        updated = playlist.model_copy(update={"track_ids": list(dict.fromkeys(track_ids))})
        updated = self.regenerate_cover(updated)
        self._save(updated)
        return updated

    # --- Cover generation ---

    def regenerate_cover(self, playlist: Playlist) -> Playlist:
        """
        Rebuilds the composite cover from the first four member tracks and
        returns the playlist with its cover locator updated. Best-effort: a
        failure is logged and the previous locator is kept.
        """
        cover_path = self._cover_path(playlist.id)
        members = [
            record
            for record in (self.library.get(tid) for tid in playlist.track_ids)
            if record is not None
        ][:MAX_CELLS]

        if not members:
            with suppress(FileNotFoundError):
                cover_path.unlink()
            return playlist.model_copy(update={"cover_locator": None})

        try:
            artworks = [self._artwork_for(record) for record in members]
            write_atomic(cover_path, compose_cover(artworks, self.cover_size))
        except (OSError, ValueError) as e:
            log.warning(f"[yellow]Could not regenerate cover for '{playlist.name}':[/] {e}")
            return playlist
        return playlist.model_copy(update={"cover_locator": str(cover_path)})

    def _artwork_for(self, record: TrackRecord) -> bytes | None:
        """
        Cached extracted cover first, then embedded artwork from the audio
        file (cached for next time). None means placeholder.
        """
        cached = self.library.cover_cache_path(record.id)
        try:
            if cached.is_file():
                return cached.read_bytes()
            if not record.audio_locator or is_remote(record.audio_locator):
                return None
            audio_path = locator_to_path(record.audio_locator)
            if not audio_path.is_file():
                return None
            artwork = self.tagger.extract_artwork(audio_path)
            if artwork:
                write_atomic(cached, artwork)
            return artwork
        except Exception as e:
            log.warning(f"Artwork unavailable for '{record.title}', using placeholder: {e}")
            return None
