"""
Resolves a lyric locator into parsed lines.
"""

import asyncio
import logging

import aiohttp

from neko_cli.exceptions import DownloadError
from neko_cli.media.downloader import Downloader
from neko_cli.models.track import LyricLine
from neko_cli.utils.path import is_remote, locator_to_path

from .parser import parse, parse_file

log = logging.getLogger(__name__)


async def load_lyrics(
    locator: str | None, downloader: Downloader | None = None
) -> list[LyricLine]:
    """
    Remote URLs are fetched, local paths are read off the event loop, and an
    absent locator yields no lines. Failures are logged and yield no lines.
    """
    if not locator:
        return []

    if is_remote(locator):
        if downloader is None:
            log.warning(f"Cannot fetch remote lyrics without a downloader: {locator}")
            return []
        try:
            return parse(await downloader.fetch_text(locator))
        except (DownloadError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.warning(f"[yellow]Could not fetch lyrics from {locator}:[/] {e}")
            return []

    return await asyncio.to_thread(parse_file, locator_to_path(locator))
