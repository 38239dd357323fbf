"""Test configuration and fixtures"""

import asyncio
from io import BytesIO
from pathlib import Path

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer
from PIL import Image

from neko_cli.core import DownloadEngine, DownloadStateTracker
from neko_cli.models import LibraryConfig, TrackRecord
from neko_cli.storage import ArtworkCache, LibraryStore, PlaylistStore

AUDIO_BODY = bytes(range(256)) * 256  # 64 KiB
LRC_TEXT = "[00:01.00]Hello\n[00:01.00]你好\n[00:03.50]World\n"


def make_jpeg(color=(200, 30, 30), size=(64, 64)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color).save(buffer, format="JPEG")
    return buffer.getvalue()


def build_media_app() -> web.Application:
    """A small media host with redirect chains and misbehaving endpoints."""

    async def audio(request):
        return web.Response(body=AUDIO_BODY, content_type="audio/mpeg")

    async def redirect_chain(request):
        remaining = int(request.match_info["count"])
        if remaining == 0:
            return await audio(request)
        # Relative Location, resolved against the previous URL
        return web.Response(status=301, headers={"Location": f"{remaining - 1}"})

    async def loop(request):
        return web.Response(status=302, headers={"Location": "/loop"})

    async def empty(request):
        return web.Response(body=b"", content_type="audio/mpeg")

    async def html(request):
        return web.Response(text="<html>Not found</html>", content_type="text/html")

    async def missing(request):
        return web.Response(status=404, text="gone")

    async def cover(request):
        return web.Response(body=make_jpeg(), content_type="image/jpeg")

    async def lyrics(request):
        return web.Response(text=LRC_TEXT, content_type="text/plain")

    async def slow(request):
        response = web.StreamResponse(headers={"Content-Type": "audio/mpeg"})
        response.content_length = len(AUDIO_BODY)
        await response.prepare(request)
        await response.write(AUDIO_BODY[:4096])
        await asyncio.sleep(1)
        try:
            await response.write(AUDIO_BODY[4096:])
        except ConnectionError:
            pass
        return response

    async def chunked(request):
        response = web.StreamResponse(headers={"Content-Type": "audio/mpeg"})
        response.enable_chunked_encoding()
        await response.prepare(request)
        for start in range(0, len(AUDIO_BODY), 8192):
            await response.write(AUDIO_BODY[start : start + 8192])
        await response.write_eof()
        return response

    app = web.Application()
    app.router.add_get("/audio/song.mp3", audio)
    app.router.add_get("/r/{count}", redirect_chain)
    app.router.add_get("/loop", loop)
    app.router.add_get("/empty.mp3", empty)
    app.router.add_get("/page.mp3", html)
    app.router.add_get("/missing", missing)
    app.router.add_get("/cover.jpg", cover)
    app.router.add_get("/lyrics.lrc", lyrics)
    app.router.add_get("/slow.mp3", slow)
    app.router.add_get("/chunked.mp3", chunked)
    return app


@pytest.fixture
async def media_server():
    """Local HTTP server; use `media_server.make_url(path)`."""
    server = TestServer(build_media_app())
    await server.start_server()
    yield server
    await server.close()


@pytest.fixture
def config(tmp_path: Path) -> LibraryConfig:
    return LibraryConfig(library_dir=tmp_path / "library", chunk_size=4096, max_workers=2)


@pytest.fixture
def store(config: LibraryConfig) -> LibraryStore:
    return LibraryStore(config.tracks_dir, config.covers_dir)


@pytest.fixture
def playlists(config: LibraryConfig, store: LibraryStore) -> PlaylistStore:
    return PlaylistStore(config.playlists_dir, config.covers_dir, store, cover_size=200)


@pytest.fixture
def tracker() -> DownloadStateTracker:
    return DownloadStateTracker()


@pytest.fixture
async def engine(config, store, tracker, playlists):
    engine = DownloadEngine(
        config,
        store,
        tracker,
        cache=ArtworkCache(config.cache_dir),
        playlists=playlists,
    )
    yield engine
    await engine.shutdown()


@pytest.fixture
def make_track():
    """Factory for track records with sensible defaults."""

    def _make(track_id="t1", title="Song", artist="Artist", **kwargs) -> TrackRecord:
        return TrackRecord(id=track_id, title=title, artist=artist, **kwargs)

    return _make
