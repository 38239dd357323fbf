"""
A file-based cache with a time-to-live (TTL) for transient artwork fetched
during downloads.
"""

import asyncio
import hashlib
import logging
import time
from contextlib import suppress
from pathlib import Path

from neko_cli.utils.path import create_dir, write_atomic

log = logging.getLogger(__name__)

CACHE_SUFFIX = ".img"


class ArtworkCache:
    """
    Manages the transient artwork area with TTL expiry and periodic cleanup.
    Entries are keyed by their source locator.
    """

    def __init__(self, cache_dir_path: Path, max_age_days: int = 1):
        """
        Initializes the cache.

        Args:
            cache_dir_path: The library's transient cache directory.
            max_age_days: The maximum age of an entry in days before it expires.
        """
        self.cache_dir = cache_dir_path / "artwork"
        create_dir(self.cache_dir)
        self.max_age_seconds = max_age_days * 86400
        self._cleanup_task: asyncio.Task | None = None

    async def start_background_cleanup(self, interval: float = 3600):
        """Starts the periodic background cleanup task."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._cleanup_loop(interval))
            log.debug("Started artwork cache cleanup task.")

    async def _cleanup_loop(self, interval: float):
        """Runs the cleanup logic periodically in the background."""
        while True:
            try:
                await asyncio.to_thread(self.cleanup_expired_entries)
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                log.debug("Artwork cache cleanup task cancelled.")
                break
            except Exception as e:
                log.warning(f"Error in artwork cache cleanup loop: {e}")
                await asyncio.sleep(interval)

    async def stop_background_cleanup(self):
        """Stops the background cleanup task gracefully."""
        if self._cleanup_task and not self._cleanup_task.done():
            self._cleanup_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._cleanup_task
            log.debug("Stopped artwork cache cleanup task.")

    def path_for(self, key: str) -> Path:
        """Generates a safe filename for a given source locator."""
        hashed_key = hashlib.md5(key.encode("utf-8")).hexdigest()  # noqa: S324
        return self.cache_dir / f"{hashed_key}{CACHE_SUFFIX}"

    def _is_expired(self, path: Path, now: float) -> bool:
        return now - path.stat().st_mtime > self.max_age_seconds

    def cleanup_expired_entries(self) -> int:
        """Scans the cache directory and removes expired files."""
        now = time.time()
        cleaned_count = 0
        for cache_file in self.cache_dir.glob(f"*{CACHE_SUFFIX}"):
            try:
                if self._is_expired(cache_file, now):
                    cache_file.unlink()
                    cleaned_count += 1
            except OSError as e:
                log.warning(
                    f"Failed to remove expired cache file {cache_file.name}: {e}"
                )
        if cleaned_count > 0:
            log.debug(f"Artwork cache cleanup: removed {cleaned_count} expired entries.")
        return cleaned_count

    def get(self, key: str) -> bytes | None:
        """Returns cached bytes, or None if the entry is missing or expired."""
        cache_path = self.path_for(key)
        if not cache_path.is_file():
            return None
        try:
            if self._is_expired(cache_path, time.time()):
                cache_path.unlink()
                return None
            return cache_path.read_bytes()
        except OSError as e:
            log.debug(f"Cache read failed for '{key}': {e}")
            return None

    def put(self, key: str, data: bytes) -> Path | None:
        """Stores bytes for a key; returns the cached path, or None on failure."""
        cache_path = self.path_for(key)
        try:
            write_atomic(cache_path, data)
            return cache_path
        except OSError as e:
            log.warning(f"Cache write failed for '{key}': {e}")
            return None

    def clear(self) -> bool:
        """Removes all items from the cache."""
        log.info("Clearing all cached artwork...")
        try:
            for cache_file in self.cache_dir.glob(f"*{CACHE_SUFFIX}"):
                cache_file.unlink()
            return True
        except OSError as e:
            log.error(f"Failed to clear cache: {e}")
            return False
