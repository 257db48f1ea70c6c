"""
QQ Music QRC parser: syllable-level karaoke timing.

Input format (text precedes its timing group):
    [1000,2400]Hel(1000,300)lo(1300,400) (1700,0)world(1700,1700)

The decrypted payload is often still wrapped in XML:
    <Lyric_1 LyricType="1" LyricContent="[1000,2400]..."/>
"""

import html
import re
from typing import List

from models import LyricFormat, LyricLine, Word
from .base import LyricParser

LINE_HEADER = re.compile(r'^\[(\d+),(\d+)\](.*)$')
WORD_PATTERN = re.compile(r'([^()]*)\((\d+),(\d+)\)')
XML_CONTENT = re.compile(r'LyricContent="(.*?)"\s*/?>', re.DOTALL)


class QrcParser(LyricParser):
    format = LyricFormat.QRC

    def _preprocess(self, text: str) -> str:
        text = super()._preprocess(text)
        match = XML_CONTENT.search(text)
        if match:
            return html.unescape(match.group(1))
        return text

    def _parse_line(self, line: str) -> List[LyricLine]:
        header = LINE_HEADER.match(line)
        if not header:
            # [ti:], [ar:] and other metadata
            return []

        line_start = int(header.group(1))
        words = []
        for text, word_start, word_duration in WORD_PATTERN.findall(header.group(3)):
            if not text:
                continue
            start = int(word_start)
            words.append(Word(text=text, start_time=start, end_time=start + int(word_duration)))

        if not words:
            raise ValueError("line has a header but no timed syllables")

        return [LyricLine(start_time=line_start, end_time=words[-1].end_time, words=words)]
