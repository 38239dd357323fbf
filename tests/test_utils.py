"""Tests for path and formatting helpers"""

from neko_cli.utils.formatting import format_duration, format_timestamp
from neko_cli.utils.path import (
    extension_hint,
    is_remote,
    is_within,
    locator_to_path,
    track_file_base,
    write_atomic,
)


def test_track_file_base():
    assert track_file_base("Song", "Artist", "id") == "Song - Artist"
    assert track_file_base("A/B", "C", "id") == "A_B - C"
    assert track_file_base("Song", "  ", "id") == "Song"
    assert track_file_base(" ", "", "x/y") == "track_x_y"


def test_extension_hint():
    assert extension_hint("https://host/path/song.FLAC?token=1") == "flac"
    assert extension_hint("https://host/stream") is None
    assert extension_hint("https://host/page.html") is None


def test_is_remote():
    assert is_remote("https://host/a.mp3")
    assert is_remote("HTTP://host/a.mp3")
    assert not is_remote("/music/a.mp3")
    assert not is_remote("file:///music/a.mp3")
    assert not is_remote(None)


def test_locator_to_path():
    assert str(locator_to_path("file:///music/a%20b.mp3")) == "/music/a b.mp3"
    assert str(locator_to_path("/music/a.mp3")) == "/music/a.mp3"


def test_is_within(tmp_path):
    inside = tmp_path / "music" / "a.mp3"
    assert is_within(inside, tmp_path / "music")
    assert not is_within(tmp_path / "other" / "a.mp3", tmp_path / "music")
    assert not is_within(tmp_path / "music" / ".." / "a.mp3", tmp_path / "music")


def test_write_atomic_replaces_content(tmp_path):
    target = tmp_path / "doc.json"
    write_atomic(target, "first")
    write_atomic(target, b"second")
    assert target.read_bytes() == b"second"
    assert [p.name for p in tmp_path.iterdir()] == ["doc.json"]


def test_format_timestamp():
    assert format_timestamp(62345) == "01:02.34"
    assert format_timestamp(0) == "00:00.00"
    assert format_timestamp(-5) == "00:00.00"


def test_format_duration():
    assert format_duration(3725) == "1h 2m 5s"
    assert format_duration(60) == "1m"
    assert format_duration(0) == "0s"
