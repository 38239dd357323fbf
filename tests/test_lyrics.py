"""Tests for the timed-lyric parser and lyric source resolution"""

from neko_cli.lyrics import current_line_index, load_lyrics, parse, parse_file
from neko_cli.media import Downloader
from neko_cli.models import LyricLine


class TestParse:
    def test_same_timestamp_becomes_translation(self):
        lines = parse("[00:01.00]Hello\n[00:01.00]你好\n")
        assert lines == [LyricLine(time=1000, text="Hello", translation="你好")]

    def test_multiple_tags_share_text(self):
        lines = parse("[00:10.50][00:20.50]Same line\n")
        assert lines == [
            LyricLine(time=10500, text="Same line"),
            LyricLine(time=20500, text="Same line"),
        ]

    def test_three_digit_fraction_is_milliseconds(self):
        assert parse("[01:02.345]x")[0].time == 62345

    def test_output_sorted_without_duplicate_times(self):
        text = "[00:05.00]c\n[00:01.00]a\n[00:03.00]b\n[00:01.00]a2\n[00:01.00]a3\n"
        lines = parse(text)
        times = [line.time for line in lines]
        assert times == sorted(set(times)) == [1000, 3000, 5000]
        assert lines[0].translation == "a2\na3"

    def test_unrecognized_lines_are_skipped(self):
        text = "[ar:Someone]\n[ti:Title]\nplain text\n[1:02.00]bad minutes\n[00:02]no fraction\n[00:04.00]ok\n"
        assert parse(text) == [LyricLine(time=4000, text="ok")]

    def test_empty_caption_is_skipped(self):
        assert parse("[00:01.00]\n[00:02.00]   \n") == []

    def test_bom_and_crlf(self):
        lines = parse("\ufeff[00:01.00]first\r\n[00:02.00]second\r\n")
        assert [line.text for line in lines] == ["first", "second"]

    def test_empty_input(self):
        assert parse("") == []


class TestCurrentLineIndex:
    def test_before_first_line(self):
        lines = parse("[00:01.00]a\n[00:02.00]b\n")
        assert current_line_index(lines, 500) == -1

    def test_exact_and_between(self):
        lines = parse("[00:01.00]a\n[00:02.00]b\n[00:03.00]c\n")
        assert current_line_index(lines, 1000) == 0
        assert current_line_index(lines, 2500) == 1
        assert current_line_index(lines, 99999) == 2

    def test_no_lines(self):
        assert current_line_index([], 1000) == -1


class TestLoadLyrics:
    def test_parse_file_missing(self, tmp_path):
        assert parse_file(tmp_path / "nope.lrc") == []

    async def test_absent_locator(self):
        assert await load_lyrics(None) == []

    async def test_local_path(self, tmp_path):
        path = tmp_path / "song.lrc"
        path.write_text("[00:01.00]Hello\n", encoding="utf-8")
        lines = await load_lyrics(str(path))
        assert lines == [LyricLine(time=1000, text="Hello")]

    async def test_remote_url(self, media_server):
        async with Downloader() as downloader:
            lines = await load_lyrics(str(media_server.make_url("/lyrics.lrc")), downloader)
        assert [line.time for line in lines] == [1000, 3500]
        assert lines[0].translation == "你好"

    async def test_remote_failure_yields_nothing(self, media_server):
        async with Downloader() as downloader:
            lines = await load_lyrics(str(media_server.make_url("/missing")), downloader)
        assert lines == []
