"""
Keeps the current lyric line in step with an external player's position.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass
from typing import Protocol

from neko_cli.lyrics import current_line_index, load_lyrics
from neko_cli.media import Downloader
from neko_cli.models.track import LyricLine, TrackRecord

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class NowPlaying:
    """The side-channel metadata the loop needs about the playing item."""

    track_id: str
    lyric_locator: str | None = None

    @classmethod
    def from_record(cls, record: TrackRecord) -> "NowPlaying":
        return cls(track_id=record.id, lyric_locator=record.lyric_locator)


class Player(Protocol):
    """The read-only surface of a playback engine. Times are milliseconds."""

    @property
    def current_position(self) -> int: ...

    @property
    def duration(self) -> int: ...

    @property
    def now_playing(self) -> NowPlaying | None: ...


@dataclass(frozen=True)
class SyncSnapshot:
    """What subscribers see after each tick."""

    track_id: str | None
    position: int
    duration: int
    lines: tuple[LyricLine, ...]
    index: int

    @property
    def current_line(self) -> LyricLine | None:
        return self.lines[self.index] if self.index >= 0 else None


SyncListener = Callable[[SyncSnapshot], None]


class PlaybackSyncLoop:
    """
    Polls the player at a fixed interval, reloads lyrics when the active track
    changes, and publishes the index of the current line (-1 before the first).

    The loop lives as long as the session that owns it: use it as an async
    context manager, or pair `start()` with `stop()`.
    """

    def __init__(
        self,
        player: Player,
        downloader: Downloader | None = None,
        interval_ms: int = 50,
    ):
        self.player = player
        self.downloader = downloader
        self.interval = interval_ms / 1000
        self._active_id: str | None = None
        self._lines: tuple[LyricLine, ...] = ()
        self._index = -1
        self._listeners: list[SyncListener] = []
        self._task: asyncio.Task | None = None
        self._load_task: asyncio.Task | None = None

    @property
    def lines(self) -> tuple[LyricLine, ...]:
        return self._lines

    @property
    def current_index(self) -> int:
        return self._index

    def subscribe(self, listener: SyncListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # --- Lifecycle ---

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="playback-sync")
            log.debug(f"Playback sync started ({self.interval * 1000:.0f} ms interval).")

    async def stop(self) -> None:
        for task in (self._task, self._load_task):
            if task and not task.done():
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task
        self._task = None
        self._load_task = None
        log.debug("Playback sync stopped.")

    async def __aenter__(self) -> "PlaybackSyncLoop":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    async def _run(self) -> None:
        while True:
            try:
                self.tick()
            except Exception as e:
                log.warning(
                    f"Playback sync tick failed: {e}",
                    exc_info=log.getEffectiveLevel() == logging.DEBUG,
                )
            await asyncio.sleep(self.interval)

    # --- Synchronization ---

    def tick(self) -> SyncSnapshot:
        """
        Runs one observation of the player and notifies listeners. Must be
        called from a running event loop.
        """
        now_playing = self.player.now_playing
        track_id = now_playing.track_id if now_playing else None
        if track_id != self._active_id:
            self._switch_track(now_playing)

        position = self.player.current_position
        self._index = current_line_index(self._lines, position)
        snapshot = SyncSnapshot(
            track_id=track_id,
            position=position,
            duration=self.player.duration,
            lines=self._lines,
            index=self._index,
        )
        for listener in list(self._listeners):
            listener(snapshot)
        return snapshot

    async def wait_for_lyrics(self) -> tuple[LyricLine, ...]:
        """Waits for the lyric load started by the last track change."""
        if self._load_task is not None:
            with suppress(asyncio.CancelledError):
                await self._load_task
        return self._lines

    def _switch_track(self, now_playing: NowPlaying | None) -> None:
        if self._load_task and not self._load_task.done():
            self._load_task.cancel()
        self._active_id = now_playing.track_id if now_playing else None
        self._lines = ()
        self._index = -1
        self._load_task = None
        if now_playing is not None:
            log.debug(f"Active track changed to '{now_playing.track_id}'.")
            self._load_task = asyncio.create_task(self._load(now_playing))

    async def _load(self, now_playing: NowPlaying) -> None:
        lines = await load_lyrics(now_playing.lyric_locator, self.downloader)
        if self._active_id == now_playing.track_id:
            self._lines = tuple(lines)
            log.debug(f"Loaded {len(lines)} lyric lines for '{now_playing.track_id}'.")


class ClockPlayer:
    """
    A stand-in player whose position is driven by a monotonic clock, for
    following lyrics without a real playback engine.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._now_playing: NowPlaying | None = None
        self._duration = 0
        self._offset_ms = 0
        self._started_at: float | None = None

    def play(self, record: TrackRecord, duration_ms: int = 0, start_ms: int = 0) -> None:
        self._now_playing = NowPlaying.from_record(record)
        self._duration = max(0, duration_ms)
        self._offset_ms = max(0, start_ms)
        self._started_at = self._clock()

    def pause(self) -> None:
        self._offset_ms = self.current_position
        self._started_at = None

    def resume(self) -> None:
        if self._now_playing is not None and self._started_at is None:
            self._started_at = self._clock()

    def seek(self, position_ms: int) -> None:
        self._offset_ms = max(0, position_ms)
        if self._started_at is not None:
            self._started_at = self._clock()

    def stop(self) -> None:
        self._now_playing = None
        self._duration = 0
        self._offset_ms = 0
        self._started_at = None

    @property
    def is_playing(self) -> bool:
        return self._started_at is not None

    @property
    def finished(self) -> bool:
        return bool(self._duration) and self.current_position >= self._duration

    @property
    def current_position(self) -> int:
        position = self._offset_ms
        if self._started_at is not None:
            position += int((self._clock() - self._started_at) * 1000)
        if self._duration:
            position = min(position, self._duration)
        return position

    @property
    def duration(self) -> int:
        return self._duration

    @property
    def now_playing(self) -> NowPlaying | None:
        return self._now_playing
