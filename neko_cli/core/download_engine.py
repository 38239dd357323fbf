"""
Orchestrates downloading a track into the local library as an ordered
pipeline of stages, and removing a track and its owned files again.
"""

import asyncio
import logging
import os
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path

import aiohttp
from rich.markup import escape

from neko_cli.exceptions import (
    DownloadError,
    MissingLocatorError,
    StoreError,
    TrackNotFoundError,
)
from neko_cli.media import Downloader, TagData, Tagger
from neko_cli.models.config import LibraryConfig
from neko_cli.models.state import DOWNLOADED, Downloading, DownloadState, Failed
from neko_cli.models.track import TrackRecord
from neko_cli.storage import ArtworkCache, LibraryStore, PlaylistStore
from neko_cli.utils.path import (
    create_dir,
    extension_hint,
    is_remote,
    is_within,
    locator_to_path,
    track_file_base,
    write_atomic,
)

from .state_tracker import DownloadStateTracker

log = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".part"
LYRIC_SUFFIX = ".lrc"
CANCELLED_REASON = "Download cancelled"


@dataclass
class DownloadJob:
    """What the stages of one download have produced so far."""

    track: TrackRecord
    destination: Path
    partial_path: Path
    artwork: bytes | None = None
    lyric_text: str | None = None
    lyric_locator: str | None = None
    written_sidecar: Path | None = None
    placed: bool = False
    commit: asyncio.Future | None = None

    @property
    def display_name(self) -> str:
        return f"{escape(self.track.artist)} - {escape(self.track.title)}"


class DownloadEngine:
    """
    The only component that performs outbound network calls and mutates the
    state tracker on behalf of a download.

    Concurrent downloads are bounded by `max_workers`. One engine per process.
    """

    def __init__(
        self,
        config: LibraryConfig,
        store: LibraryStore,
        tracker: DownloadStateTracker,
        downloader: Downloader | None = None,
        tagger: Tagger | None = None,
        cache: ArtworkCache | None = None,
        playlists: PlaylistStore | None = None,
    ):
        self.config = config
        self.store = store
        self.tracker = tracker
        self.downloader = downloader or Downloader.from_config(config)
        self.tagger = tagger or Tagger()
        self.cache = cache or ArtworkCache(config.cache_dir, config.cache_max_age_days)
        self.playlists = playlists
        self.semaphore = asyncio.Semaphore(config.max_workers)
        self._tasks: dict[str, asyncio.Task] = {}

    # --- Public API ---

    def start_download(self, track: TrackRecord) -> asyncio.Task:
        """
        Validates the track, publishes Downloading(0.0) and schedules the
        pipeline in the background. Must be called from a running event loop.

        Raises:
            MissingLocatorError: If the track has no remote audio locator. No
            state transition happens in that case.
        """
        if not is_remote(track.audio_locator):
            raise MissingLocatorError(
                f"Track '{track.title}' has no remote audio locator to download."
            )

        self.tracker.set(track.id, Downloading(0.0))
        task = asyncio.create_task(self._run(track), name=f"download-{track.id}")
        self._tasks[track.id] = task
        task.add_done_callback(lambda t: self._forget(track.id, t))
        return task

    async def download(self, track: TrackRecord) -> DownloadState:
        """Downloads a track and returns its terminal state."""
        return await self.start_download(track)

    async def shutdown(self) -> None:
        """Cancels every in-flight download and waits for their cleanup."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self.downloader.close()

    async def __aenter__(self) -> "DownloadEngine":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.shutdown()

    def _forget(self, track_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(track_id) is task:
            del self._tasks[track_id]

    # --- Pipeline ---

    async def _run(self, track: TrackRecord) -> DownloadState:
        job: DownloadJob | None = None
        try:
            async with self.semaphore:
                job = self._prepare(track)
                await self._stream_audio(job)
                await self._fetch_artwork(job)
                await self._fetch_lyrics(job)
                await self._embed_tags(job)
                await self._commit(job)
        except asyncio.CancelledError:
            await self._rollback_commit(job)
            self._discard(job)
            self.tracker.set(track.id, Failed(CANCELLED_REASON))
            log.info(f"[yellow]○ Cancelled:[/] {escape(track.title)}")
            raise
        except (DownloadError, StoreError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            return self._fail(track, job, self._describe_failure(e))
        except Exception as e:
            log.error(
                f"[red]Unexpected error while downloading '{escape(track.title)}': {e}[/red]",
                exc_info=log.getEffectiveLevel() == logging.DEBUG,
            )
            return self._fail(track, job, str(e) or type(e).__name__)

        self.tracker.set(track.id, DOWNLOADED)
        log.info(f"  [green]✓ Downloaded:[/] {job.display_name}")
        return DOWNLOADED

    def _prepare(self, track: TrackRecord) -> DownloadJob:
        """Resolves the destination inside the music area."""
        create_dir(self.config.music_dir)
        extension = extension_hint(track.audio_locator) or self.config.default_extension
        base = track_file_base(track.title, track.artist, track.id)
        destination = self.config.music_dir / f"{base}.{extension}"
        partial_path = destination.with_name(destination.name + PARTIAL_SUFFIX)
        log.debug(f"Destination for '{track.id}': {destination}")
        return DownloadJob(track=track, destination=destination, partial_path=partial_path)

    async def _stream_audio(self, job: DownloadJob) -> None:
        """Streams the audio to a partial file and moves it into place."""
        track_id = job.track.id
        last_progress = 0.0

        def on_progress(received: int, total: int | None) -> None:
            nonlocal last_progress
            if not total:
                return
            progress = min(1.0, received / total)
            if progress > last_progress:
                last_progress = progress
                self.tracker.set(track_id, Downloading(progress))

        await self.downloader.download_file(
            job.track.audio_locator, job.partial_path, on_progress
        )
        await asyncio.to_thread(os.replace, job.partial_path, job.destination)
        job.placed = True

    async def _fetch_artwork(self, job: DownloadJob) -> None:
        """
        Fetches cover art through the transient cache. Best-effort unless the
        configuration requires artwork.
        """
        locator = job.track.cover_locator
        if not locator:
            return
        try:
            if is_remote(locator):
                artwork = await asyncio.to_thread(self.cache.get, locator)
                if artwork is None:
                    artwork = await self.downloader.fetch_bytes(locator)
                    await asyncio.to_thread(self.cache.put, locator, artwork)
            else:
                artwork = await asyncio.to_thread(locator_to_path(locator).read_bytes)
            job.artwork = artwork or None
        except (DownloadError, aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            if self.config.artwork_required:
                raise DownloadError(f"Cover art could not be fetched: {e}") from e
            log.warning(
                f"[yellow]Cover art unavailable for {job.display_name}; "
                f"continuing without it:[/] {e}"
            )

    async def _fetch_lyrics(self, job: DownloadJob) -> None:
        """
        A remote lyric file is saved as a sidecar next to the audio; a local one
        is left where it is. Either way its text is kept for embedding.
        """
        locator = job.track.lyric_locator
        if not locator:
            return
        try:
            if is_remote(locator):
                text = await self.downloader.fetch_text(locator)
                sidecar = job.destination.with_suffix(LYRIC_SUFFIX)
                await asyncio.to_thread(write_atomic, sidecar, text)
                job.written_sidecar = sidecar
                job.lyric_locator = str(sidecar)
            else:
                job.lyric_locator = locator
                text = await asyncio.to_thread(
                    locator_to_path(locator).read_text, encoding="utf-8", errors="replace"
                )
            job.lyric_text = text or None
        except (DownloadError, aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            log.warning(f"[yellow]Lyrics unavailable for {job.display_name}:[/] {e}")

    async def _embed_tags(self, job: DownloadJob) -> None:
        """Tagging failures are logged by the tagger and never fatal."""
        tags = TagData(
            title=job.track.title,
            artist=job.track.artist,
            album=job.track.album,
            artwork=job.artwork,
            lyrics=job.lyric_text,
        )
        await asyncio.to_thread(self.tagger.tag_file, job.destination, tags)

    async def _commit(self, job: DownloadJob) -> None:
        record = job.track.model_copy(
            update={
                "audio_locator": str(job.destination),
                "cover_locator": None,
                "lyric_locator": job.lyric_locator,
            }
        )
        # The worker thread outlives a cancelled task; _rollback_commit undoes it.
        job.commit = asyncio.ensure_future(asyncio.to_thread(self.store.put, record))
        await asyncio.shield(job.commit)

    async def _rollback_commit(self, job: DownloadJob | None) -> None:
        """Waits for an interrupted record write, then removes the record."""
        if job is None or job.commit is None:
            return
        try:
            await job.commit
        except StoreError:
            return
        try:
            await asyncio.to_thread(self.store.delete, job.track.id)
        except StoreError as e:
            log.error(f"Could not roll back record for '{job.track.id}': {e}")

    # --- Failure handling ---

    @staticmethod
    def _describe_failure(error: Exception) -> str:
        if isinstance(error, asyncio.TimeoutError):
            return "Connection timed out"
        if isinstance(error, aiohttp.ClientError):
            return f"Network error: {error}" if str(error) else "Network error"
        return str(error)

    def _fail(self, track: TrackRecord, job: DownloadJob | None, reason: str) -> Failed:
        self._discard(job)
        state = Failed(reason)
        self.tracker.set(track.id, state)
        log.error(f"  [red]✗ Failed:[/] {escape(track.title)} ({escape(reason)})")
        return state

    @staticmethod
    def _discard(job: DownloadJob | None) -> None:
        """Removes every file the download produced."""
        if job is None:
            return
        destination = job.destination if job.placed else None
        for path in (job.partial_path, destination, job.written_sidecar):
            if path is None:
                continue
            try:
                os.remove(path)
            except FileNotFoundError:
                pass
            except OSError as e:
                log.warning(f"Could not remove partial file '{path}': {e}")

    # --- Removal ---

    async def remove_track(self, track_id: str) -> TrackRecord:
        """
        Deletes a track's record, its files inside the music area, its state
        and its playlist memberships.

        Raises:
            TrackNotFoundError: If no record exists for `track_id`.
        """
        task = self._tasks.get(track_id)
        if task is not None:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

        record = await asyncio.to_thread(self.store.get, track_id)
        if record is None:
            raise TrackNotFoundError(f"No track with id '{track_id}' in the library")

        await asyncio.to_thread(self.store.delete, track_id)
        await asyncio.to_thread(self._remove_owned_files, record)
        self.tracker.remove(track_id)
        if self.playlists is not None:
            changed = await asyncio.to_thread(
                self.playlists.remove_track_everywhere, track_id
            )
            if changed:
                log.info(f"Removed '{escape(record.title)}' from {changed} playlist(s).")
        log.info(f"[green]✓ Removed:[/] {escape(record.artist)} - {escape(record.title)}")
        return record

    def _remove_owned_files(self, record: TrackRecord) -> None:
        music_dir = self.config.music_dir
        for locator in (record.audio_locator, record.lyric_locator):
            if not locator or is_remote(locator):
                continue
            path = locator_to_path(locator)
            if not is_within(path, music_dir):
                log.debug(f"Leaving user-managed file in place: {path}")
                continue
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                raise StoreError(f"Could not delete '{path}': {e}") from e
