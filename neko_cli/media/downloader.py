"""
Handles the low-level fetching of remote resources over HTTP with manual,
bounded redirect resolution and chunked streaming with progress reporting.
"""

import asyncio
import logging
import os
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from pathlib import Path
from urllib.parse import urljoin

import aiofiles
import aiohttp

from neko_cli.exceptions import (
    EmptyDownloadError,
    HttpStatusError,
    TooManyRedirectsError,
    UnexpectedContentError,
)
from neko_cli.models.config import LibraryConfig

log = logging.getLogger(__name__)

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})
DOCUMENT_CONTENT_TYPES = ("text/html", "application/xhtml+xml")

ProgressCallback = Callable[[int, int | None], None]


def is_document_content_type(content_type: str | None) -> bool:
    """True for content types that signal an HTML page rather than media."""
    if not content_type:
        return False
    return content_type.split(";", 1)[0].strip().lower() in DOCUMENT_CONTENT_TYPES


class Downloader:
    """
    A downloader owning one aiohttp session for the lifetime of the process.

    Redirects are disabled at the transport level and followed here, so the
    hop limit and relative `Location` handling are under our control.
    """

    def __init__(
        self,
        max_redirects: int = 10,
        chunk_size: int = 65536,
        connect_timeout: float = 15.0,
        read_timeout: float = 60.0,
        max_workers: int = 4,
    ):
        self.max_redirects = max_redirects
        self.chunk_size = chunk_size
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.max_workers = max_workers
        self._session: aiohttp.ClientSession | None = None
        self._session_lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: LibraryConfig) -> "Downloader":
        """A downloader using the library's network settings."""
        return cls(
            max_redirects=config.max_redirects,
            chunk_size=config.chunk_size,
            connect_timeout=config.connect_timeout,
            read_timeout=config.read_timeout,
            max_workers=config.max_workers,
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        """Gets or creates the shared ClientSession."""
        async with self._session_lock:
            if self._session and not self._session.closed:
                return self._session

            connector = aiohttp.TCPConnector(
                limit=self.max_workers * 2,
                limit_per_host=self.max_workers,
                ttl_dns_cache=600,
                keepalive_timeout=30,
                enable_cleanup_closed=True,
            )
            timeout = aiohttp.ClientTimeout(
                total=None,
                sock_connect=self.connect_timeout,
                sock_read=self.read_timeout,
            )
            # Identity encoding keeps Content-Length equal to the bytes we stream.
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=timeout,
                headers={"Accept-Encoding": "identity"},
            )
            log.debug(f"Created download session with limit_per_host={self.max_workers}")
            return self._session

    async def close(self) -> None:
        """Closes the shared session."""
        async with self._session_lock:
            if self._session and not self._session.closed:
                await self._session.close()
                log.debug("Downloader session closed.")
            self._session = None

    async def __aenter__(self) -> "Downloader":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def resolve_redirects(self, url: str) -> aiohttp.ClientResponse:
        """
        Issues GET requests, following up to `max_redirects` redirect hops.

        Returns the first non-redirect response, which the caller must release.
        Raises TooManyRedirectsError when the chain is longer than the limit.
        """
        session = await self._get_session()
        current_url = url
        for hop in range(self.max_redirects + 1):
            response = await session.get(current_url, allow_redirects=False)
            location = response.headers.get("Location")
            if response.status not in REDIRECT_STATUSES or not location:
                return response
            response.release()
            next_url = urljoin(str(response.url), location)
            log.debug(f"Redirect {hop + 1}: {current_url} -> {next_url}")
            current_url = next_url

        raise TooManyRedirectsError(
            f"Exceeded {self.max_redirects} redirects while fetching {url}"
        )

    @asynccontextmanager
    async def open(
        self, url: str, reject_documents: bool = True
    ) -> AsyncIterator[aiohttp.ClientResponse]:
        """
        Opens a validated response: 2xx status and, unless disabled, not an
        HTML document.
        """
        response = await self.resolve_redirects(url)
        try:
            if not 200 <= response.status < 300:
                raise HttpStatusError(response.status, str(response.url))
            if reject_documents and is_document_content_type(
                response.headers.get("Content-Type")
            ):
                raise UnexpectedContentError(
                    f"Expected media but received '{response.content_type}' "
                    f"from {response.url}"
                )
            yield response
        finally:
            response.release()

    async def download_file(
        self,
        url: str,
        destination_path: Path,
        on_progress: ProgressCallback | None = None,
    ) -> int:
        """
        Streams a remote file to `destination_path` in fixed-size chunks.

        `on_progress(received, total)` is called after every chunk; `total` is
        None when the server sent no Content-Length. Returns the byte count.
        The caller owns cleanup of `destination_path` on failure.
        """
        async with self.open(url) as response:
            total = response.content_length
            received = 0
            async with aiofiles.open(destination_path, "wb") as f:
                async for chunk in response.content.iter_chunked(self.chunk_size):
                    await f.write(chunk)
                    received += len(chunk)
                    if on_progress:
                        on_progress(received, total)

        if received == 0:
            raise EmptyDownloadError(
                f"Server sent an empty body for '{os.path.basename(destination_path)}'"
            )
        return received

    async def fetch_bytes(self, url: str) -> bytes:
        """Fetches a small binary resource (e.g. cover art) into memory."""
        async with self.open(url) as response:
            return await response.read()

    async def fetch_text(self, url: str) -> str:
        """Fetches a text resource (e.g. a lyric file)."""
        async with self.open(url, reject_documents=False) as response:
            raw = await response.read()
            return raw.decode(response.charset or "utf-8", errors="replace")
