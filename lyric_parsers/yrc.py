"""
NetEase YRC parser: word-level timing.

Input format:
    [16240,3600](16240,270,0)We (16510,210,0)were (16720,570,0)both

Where:
- [16240,3600] = line start (ms), line duration (ms)
- (16240,270,0) = word start (ms, ABSOLUTE), word duration (ms), flag
- the word text follows its timing group
"""

import re
from typing import List

from models import LyricFormat, LyricLine, Word
from .base import LyricParser

LINE_HEADER = re.compile(r'^\[(\d+),(\d+)\](.*)$')
WORD_PATTERN = re.compile(r'\((\d+),(\d+)(?:,-?\d+)?\)([^(]*)')


class YrcParser(LyricParser):
    format = LyricFormat.YRC

    def _parse_line(self, line: str) -> List[LyricLine]:
        # JSON credit lines ({"t":0,"c":[...]}) and [ch:0] carry no timing
        header = LINE_HEADER.match(line)
        if not header:
            return []

        line_start = int(header.group(1))
        content = header.group(3)

        words = []
        for word_start, word_duration, text in WORD_PATTERN.findall(content):
            if not text:
                continue
            start = int(word_start)
            words.append(Word(text=text, start_time=start, end_time=start + int(word_duration)))

        if not words:
            raise ValueError("line has a header but no timed words")

        # Line end is the last word's end, not the header duration
        return [LyricLine(start_time=line_start, end_time=words[-1].end_time, words=words)]
