"""Tests for cover composition and tag embedding"""

from io import BytesIO

import pytest
from PIL import Image

from neko_cli.media import Tagger
from neko_cli.media.cover import PLACEHOLDER_COLOR, compose_cover
from neko_cli.media.tagger import TagData, guess_image_mime

from .conftest import make_jpeg


def open_rgb(data: bytes) -> Image.Image:
    return Image.open(BytesIO(data)).convert("RGB")


def close_to(pixel, expected, tolerance=12):
    return all(abs(a - b) < tolerance for a, b in zip(pixel, expected))


class TestComposeCover:
    def test_single_artwork_fills_image(self):
        cover = open_rgb(compose_cover([make_jpeg(color=(0, 200, 0))], size=120))
        assert cover.size == (120, 120)
        assert close_to(cover.getpixel((5, 5)), (0, 200, 0), tolerance=20)
        assert close_to(cover.getpixel((115, 115)), (0, 200, 0), tolerance=20)

    def test_four_cells(self):
        colors = [(250, 0, 0), (0, 250, 0), (0, 0, 250), (250, 250, 0)]
        cover = open_rgb(compose_cover([make_jpeg(color=c) for c in colors], size=200))
        points = [(50, 50), (150, 50), (50, 150), (150, 150)]
        for point, color in zip(points, colors):
            assert close_to(cover.getpixel(point), color, tolerance=30)

    def test_unreadable_artwork_becomes_placeholder(self):
        cover = open_rgb(compose_cover([b"not an image", None], size=100))
        assert close_to(cover.getpixel((25, 25)), PLACEHOLDER_COLOR)
        assert close_to(cover.getpixel((75, 25)), PLACEHOLDER_COLOR)

    def test_extra_artworks_ignored(self):
        data = compose_cover([make_jpeg()] * 6, size=100)
        assert open_rgb(data).size == (100, 100)


class TestTagger:
    @pytest.fixture
    def mp3_file(self, tmp_path):
        path = tmp_path / "song.mp3"
        path.write_bytes(b"\x00" * 2048)
        return path

    def test_mime_sniffing(self):
        assert guess_image_mime(b"\x89PNG\r\n\x1a\nrest") == "image/png"
        assert guess_image_mime(make_jpeg()) == "image/jpeg"

    def test_mp3_round_trip(self, mp3_file):
        tagger = Tagger()
        artwork = make_jpeg()
        ok = tagger.tag_file(
            mp3_file,
            TagData(title="Song", artist="Artist", album="Album", artwork=artwork, lyrics="la"),
        )

        assert ok is True
        assert tagger.extract_artwork(mp3_file) == artwork
        assert tagger.read_tags(mp3_file) == {"title": "Song", "artist": "Artist", "album": "Album"}
        assert mp3_file.read_bytes().endswith(b"\x00" * 2048)

    def test_untagged_file(self, mp3_file):
        tagger = Tagger()
        assert tagger.extract_artwork(mp3_file) is None
        assert tagger.read_tags(mp3_file) == {"title": None, "artist": None, "album": None}

    def test_unknown_container_is_not_tagged(self, tmp_path):
        path = tmp_path / "song.xyz"
        path.write_bytes(b"data")
        assert Tagger().tag_file(path, TagData(title="t", artist="a")) is False
        assert path.read_bytes() == b"data"

    def test_corrupt_flac_reports_failure(self, tmp_path):
        path = tmp_path / "song.flac"
        path.write_bytes(b"not flac")
        assert Tagger().tag_file(path, TagData(title="t", artist="a")) is False

    def test_duration_of_unrecognized_file(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("hello", encoding="utf-8")
        assert Tagger().read_duration(path) is None
