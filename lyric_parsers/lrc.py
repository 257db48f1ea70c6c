"""LRC parser: line-level timing, one synthetic word per line"""

import re
from typing import List, Tuple

from models import LyricFormat, LyricLine, Word
from logging_config import get_logger
from .base import LyricParser

logger = get_logger(__name__)

# [mm:ss], [mm:ss.xx], [mm:ss.xxx] and the [mm:ss:xx] variant
TIME_TAG = re.compile(r'\[(\d+):(\d{1,2})(?:[.:](\d{1,3}))?\]')
OFFSET_TAG = re.compile(r'^\[offset:\s*([+-]?\d+)\s*\]$', re.IGNORECASE)

DEFAULT_LAST_LINE_DURATION_MS = 5000


def parse_timestamp(minutes: str, seconds: str, fraction: str = None) -> int:
    """Convert the captured parts of an LRC tag to milliseconds."""
    ms = int(minutes) * 60_000 + int(seconds) * 1000
    if fraction:
        # "5" -> 500ms, "50" -> 500ms, "500" -> 500ms
        ms += int(fraction.ljust(3, "0")[:3])
    return ms


class LrcParser(LyricParser):
    format = LyricFormat.LRC

    def __init__(self, last_line_duration_ms: int = DEFAULT_LAST_LINE_DURATION_MS):
        self.last_line_duration_ms = max(0, int(last_line_duration_ms))
        self._offset_ms = 0

    def parse(self, text):
        self._offset_ms = 0
        return super().parse(text)

    def _parse_line(self, line: str) -> List[LyricLine]:
        offset_match = OFFSET_TAG.match(line)
        if offset_match:
            # Positive offset means lyrics should appear earlier
            self._offset_ms = int(offset_match.group(1))
            return []

        stamps, text = self._split_tags(line)
        if not stamps:
            # Metadata tag ([ar:], [ti:]...) or untimed text
            return []

        return [
            LyricLine(start_time=stamp, end_time=stamp, words=self._line_words(text, stamp))
            for stamp in stamps
        ]

    def _split_tags(self, line: str) -> Tuple[List[int], str]:
        stamps = []
        pos = 0
        # Several leading tags share the same text: [00:12.00][01:30.00]chorus
        while True:
            match = TIME_TAG.match(line, pos)
            if not match:
                break
            stamp = parse_timestamp(*match.groups()) - self._offset_ms
            stamps.append(max(0, stamp))
            pos = match.end()
        return stamps, line[pos:].strip()

    @staticmethod
    def _line_words(text: str, stamp: int) -> List[Word]:
        if not text:
            return []
        return [Word(text=text, start_time=stamp, end_time=stamp)]

    def _merge_duplicate(self, kept: LyricLine, duplicate: LyricLine) -> None:
        # Some LRC files embed the translation as a second line with the same tag
        if not kept.words:
            kept.words = duplicate.words
        elif duplicate.words and not kept.translated_lyric:
            kept.translated_lyric = duplicate.text

    def _finalize(self, lines: List[LyricLine]) -> List[LyricLine]:
        result = super()._finalize(lines)
        # Line-level grammar has no explicit end: a line lasts until the next one
        for current, following in zip(result, result[1:]):
            current.end_time = following.start_time
        if result:
            result[-1].end_time = result[-1].start_time + self.last_line_duration_ms
        for line in result:
            for word in line.words:
                word.start_time = line.start_time
                word.end_time = line.end_time
        return result
