"""Tests for the download pipeline and track removal"""

import asyncio
import threading
import time

import pytest

from neko_cli.exceptions import MissingLocatorError, StoreError, TrackNotFoundError
from neko_cli.models import DOWNLOADED, Downloading, Failed

from .conftest import AUDIO_BODY, LRC_TEXT


def music_files(config):
    if not config.music_dir.exists():
        return []
    return sorted(p.name for p in config.music_dir.iterdir())


async def wait_for_progress(tracker, track_id, timeout=5.0):
    async def _poll():
        while True:
            state = tracker.get(track_id)
            if isinstance(state, Downloading) and state.progress > 0:
                return
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout)


class TestDownload:
    async def test_redirected_download_is_committed(
        self, engine, config, store, tracker, media_server, make_track
    ):
        track = make_track(audio_locator=str(media_server.make_url("/r/2")))
        state = await engine.download(track)

        assert state == DOWNLOADED
        assert tracker.get("t1") == DOWNLOADED
        destination = config.music_dir / "Song - Artist.mp3"
        # Tagging may prepend an ID3 header; the payload itself is intact.
        assert destination.read_bytes().endswith(AUDIO_BODY)

        record = store.get("t1")
        assert record.audio_locator == str(destination)
        assert record.cover_locator is None
        assert record.lyric_locator is None

    async def test_extension_taken_from_url(self, engine, config, media_server, make_track):
        track = make_track(title="A/B", audio_locator=str(media_server.make_url("/audio/song.mp3")))
        assert await engine.download(track) == DOWNLOADED
        assert music_files(config) == ["A_B - Artist.mp3"]

    async def test_downloading_published_before_return(self, engine, tracker, media_server, make_track):
        track = make_track(audio_locator=str(media_server.make_url("/audio/song.mp3")))
        task = engine.start_download(track)
        assert tracker.get("t1") == Downloading(0.0)
        assert await task == DOWNLOADED

    async def test_progress_is_monotonic(self, engine, tracker, media_server, make_track):
        seen = []
        tracker.subscribe(lambda states: seen.append(states.get("t1")))
        track = make_track(audio_locator=str(media_server.make_url("/audio/song.mp3")))
        await engine.download(track)

        progress = [s.progress for s in seen if isinstance(s, Downloading)]
        assert len(progress) > 2
        assert progress == sorted(progress)
        assert all(0.0 <= p <= 1.0 for p in progress)
        assert progress[-1] == 1.0
        assert seen[-1] == DOWNLOADED

    async def test_unknown_length_skips_progress(self, engine, tracker, media_server, make_track):
        seen = []
        tracker.subscribe(lambda states: seen.append(states.get("t1")))
        track = make_track(audio_locator=str(media_server.make_url("/chunked.mp3")))

        assert await engine.download(track) == DOWNLOADED
        assert seen == [Downloading(0.0), DOWNLOADED]

    async def test_downloader_follows_config(self, engine, config):
        assert engine.downloader.max_redirects == config.max_redirects
        assert engine.downloader.chunk_size == config.chunk_size

    async def test_too_many_redirects(self, engine, config, store, tracker, media_server, make_track):
        track = make_track(audio_locator=str(media_server.make_url("/r/11")))
        state = await engine.download(track)

        assert isinstance(state, Failed)
        assert "redirect" in state.reason.lower()
        assert tracker.get("t1") == state
        assert music_files(config) == []
        assert store.get("t1") is None

    async def test_empty_body_fails_and_cleans_up(self, engine, config, store, media_server, make_track):
        track = make_track(audio_locator=str(media_server.make_url("/empty.mp3")))
        state = await engine.download(track)

        assert isinstance(state, Failed)
        assert music_files(config) == []
        assert store.get("t1") is None

    async def test_html_page_fails(self, engine, config, media_server, make_track):
        track = make_track(audio_locator=str(media_server.make_url("/page.mp3")))
        state = await engine.download(track)

        assert isinstance(state, Failed)
        assert "text/html" in state.reason
        assert music_files(config) == []

    async def test_http_error_fails(self, engine, media_server, make_track):
        track = make_track(audio_locator=str(media_server.make_url("/missing")))
        state = await engine.download(track)
        assert isinstance(state, Failed)
        assert "404" in state.reason

    async def test_missing_locator_raises_without_state(self, engine, tracker, make_track):
        with pytest.raises(MissingLocatorError):
            engine.start_download(make_track(audio_locator=None))
        with pytest.raises(MissingLocatorError):
            engine.start_download(make_track(audio_locator="/local/file.mp3"))
        assert tracker.get("t1") is None


class TestSideResources:
    async def test_cover_failure_is_not_fatal(self, engine, store, media_server, make_track):
        track = make_track(
            audio_locator=str(media_server.make_url("/audio/song.mp3")),
            cover_locator=str(media_server.make_url("/missing")),
        )
        assert await engine.download(track) == DOWNLOADED
        assert store.get("t1") is not None

    async def test_cover_failure_fatal_when_required(
        self, engine, config, store, media_server, make_track
    ):
        config.artwork_required = True
        track = make_track(
            audio_locator=str(media_server.make_url("/audio/song.mp3")),
            cover_locator=str(media_server.make_url("/missing")),
        )
        state = await engine.download(track)

        assert isinstance(state, Failed)
        assert music_files(config) == []
        assert store.get("t1") is None

    async def test_cover_is_cached_and_embedded(self, engine, config, media_server, make_track):
        cover_url = str(media_server.make_url("/cover.jpg"))
        track = make_track(
            audio_locator=str(media_server.make_url("/audio/song.mp3")),
            cover_locator=cover_url,
        )
        assert await engine.download(track) == DOWNLOADED
        assert engine.cache.get(cover_url) is not None
        artwork = engine.tagger.extract_artwork(config.music_dir / "Song - Artist.mp3")
        assert artwork == engine.cache.get(cover_url)

    async def test_remote_lyrics_saved_as_sidecar(self, engine, config, store, media_server, make_track):
        track = make_track(
            audio_locator=str(media_server.make_url("/audio/song.mp3")),
            lyric_locator=str(media_server.make_url("/lyrics.lrc")),
        )
        assert await engine.download(track) == DOWNLOADED

        sidecar = config.music_dir / "Song - Artist.lrc"
        assert sidecar.read_text(encoding="utf-8") == LRC_TEXT
        assert store.get("t1").lyric_locator == str(sidecar)

    async def test_local_lyrics_left_in_place(self, engine, store, media_server, make_track, tmp_path):
        lrc = tmp_path / "mine.lrc"
        lrc.write_text(LRC_TEXT, encoding="utf-8")
        track = make_track(
            audio_locator=str(media_server.make_url("/audio/song.mp3")),
            lyric_locator=str(lrc),
        )
        assert await engine.download(track) == DOWNLOADED
        assert store.get("t1").lyric_locator == str(lrc)
        assert lrc.read_text(encoding="utf-8") == LRC_TEXT

    async def test_lyric_failure_is_not_fatal(self, engine, store, media_server, make_track):
        track = make_track(
            audio_locator=str(media_server.make_url("/audio/song.mp3")),
            lyric_locator=str(media_server.make_url("/missing")),
        )
        assert await engine.download(track) == DOWNLOADED
        assert store.get("t1").lyric_locator is None


class TestCancellation:
    async def test_cancel_marks_failed_and_removes_partial(
        self, engine, config, store, tracker, media_server, make_track
    ):
        track = make_track(audio_locator=str(media_server.make_url("/slow.mp3")))
        task = engine.start_download(track)
        await wait_for_progress(tracker, "t1")

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert tracker.get("t1") == Failed("Download cancelled")
        assert music_files(config) == []
        assert store.get("t1") is None

    async def test_shutdown_cancels_in_flight(self, engine, config, tracker, media_server, make_track):
        track = make_track(audio_locator=str(media_server.make_url("/slow.mp3")))
        engine.start_download(track)
        await wait_for_progress(tracker, "t1")

        await engine.shutdown()

        assert isinstance(tracker.get("t1"), Failed)
        assert music_files(config) == []


    async def test_cancel_during_commit_leaves_no_record(
        self, engine, config, store, tracker, media_server, make_track, monkeypatch
    ):
        entered = threading.Event()
        real_put = store.put

        def slow_put(record):
            entered.set()
            time.sleep(0.3)
            real_put(record)

        monkeypatch.setattr(store, "put", slow_put)
        task = engine.start_download(
            make_track(audio_locator=str(media_server.make_url("/audio/song.mp3")))
        )
        assert await asyncio.to_thread(entered.wait, 5)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert tracker.get("t1") == Failed("Download cancelled")
        assert store.get("t1") is None
        assert music_files(config) == []


class TestRemoveTrack:
    async def test_removes_files_record_state_and_memberships(
        self, engine, config, store, tracker, playlists, media_server, make_track
    ):
        track = make_track(
            audio_locator=str(media_server.make_url("/audio/song.mp3")),
            lyric_locator=str(media_server.make_url("/lyrics.lrc")),
        )
        await engine.download(track)
        playlist = playlists.create_playlist("Mix", ["t1"])

        await engine.remove_track("t1")

        assert music_files(config) == []
        assert store.get("t1") is None
        assert tracker.get("t1") is None
        assert playlists.get_playlist(playlist.id).track_ids == []

    async def test_files_outside_music_area_are_kept(self, engine, store, make_track, tmp_path):
        audio = tmp_path / "user.mp3"
        audio.write_bytes(b"audio")
        store.put(make_track(audio_locator=str(audio)))

        await engine.remove_track("t1")

        assert audio.exists()
        assert store.get("t1") is None

    async def test_record_removed_before_files(
        self, engine, config, store, media_server, make_track, monkeypatch
    ):
        track = make_track(audio_locator=str(media_server.make_url("/audio/song.mp3")))
        await engine.download(track)

        def failing_delete(track_id):
            raise StoreError("read-only library")

        monkeypatch.setattr(store, "delete", failing_delete)
        with pytest.raises(StoreError):
            await engine.remove_track("t1")

        assert music_files(config) == ["Song - Artist.mp3"]
        assert store.get("t1") is not None

    async def test_unknown_track(self, engine):
        with pytest.raises(TrackNotFoundError):
            await engine.remove_track("nope")
