"""
Parser for the timed-lyric text format.

Each line may start with one or more `[mm:ss.xx]` / `[mm:ss.xxx]` tags; the
text after the last tag is attached to every timestamp on the line. Captions
sharing a timestamp are merged: the first is the primary text, the rest become
the translation.
"""

import bisect
import logging
import re
from collections.abc import Sequence
from pathlib import Path

from neko_cli.models.track import LyricLine

log = logging.getLogger(__name__)

# Anything shaped like a time tag at the current position. Only tags with the
# exact digit counts are recognized; the others are consumed and ignored.
_LEADING_TAG = re.compile(r"\s*\[(\d+):(\d+)(?:\.(\d+))?\]")


def _tag_to_millis(minutes: str, seconds: str, fraction: str | None) -> int | None:
    if len(minutes) != 2 or len(seconds) != 2:
        return None
    if fraction is None or len(fraction) not in (2, 3):
        return None
    millis = int(fraction) * 10 if len(fraction) == 2 else int(fraction)
    return int(minutes) * 60000 + int(seconds) * 1000 + millis


def _scan_line(line: str) -> tuple[list[int], str]:
    """Returns the recognized timestamps of a line and its trailing text."""
    timestamps: list[int] = []
    pos = 0
    while match := _LEADING_TAG.match(line, pos):
        millis = _tag_to_millis(*match.groups())
        if millis is not None:
            timestamps.append(millis)
        pos = match.end()
    return timestamps, line[pos:].strip()


def parse(text: str) -> list[LyricLine]:
    """
    Converts raw timed-lyric text into lines sorted by timestamp, with at most
    one line per timestamp. Never raises; unrecognized lines are skipped.
    """
    if not text:
        return []

    grouped: dict[int, list[str]] = {}
    for raw_line in text.lstrip("\ufeff").splitlines():
        timestamps, caption = _scan_line(raw_line)
        if not timestamps or not caption:
            continue
        for millis in timestamps:
            grouped.setdefault(millis, []).append(caption)

    lines = []
    for millis in sorted(grouped):
        captions = grouped[millis]
        translation = "\n".join(captions[1:]) if len(captions) > 1 else None
        lines.append(LyricLine(time=millis, text=captions[0], translation=translation))
    return lines


def parse_file(path: Path) -> list[LyricLine]:
    """Parses a lyric file; a missing or unreadable file yields no lines."""
    try:
        return parse(path.read_text(encoding="utf-8", errors="replace"))
    except OSError as e:
        log.debug(f"Could not read lyric file '{path}': {e}")
        return []


def current_line_index(lines: Sequence[LyricLine], position_ms: int) -> int:
    """Index of the last line whose timestamp is <= position, or -1."""
    times = [line.time for line in lines]
    return bisect.bisect_right(times, position_ms) - 1
