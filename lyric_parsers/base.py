"""
Base Parser Class
All lyric timing grammars must inherit from this base class.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from models import LyricFormat, LyricLine
from logging_config import get_logger

logger = get_logger(__name__)


class LyricParser(ABC):
    """Base class for all lyric format parsers.

    Subclasses turn one raw source line into zero or more LyricLine objects;
    the base class handles splitting, skipping malformed entries and
    normalizing the result so every grammar yields the same invariants:

    - lines are ordered by start time with no two lines sharing a start
    - words inside a line are ordered and never overlap
    - a line's bounds contain all of its words
    """

    format: LyricFormat

    def parse(self, text: Optional[str]) -> List[LyricLine]:
        """
        Parse a whole lyric document.

        Args:
            text (str): Raw lyric text in this parser's grammar

        Returns:
            List[LyricLine]: Normalized lines; empty if nothing could be parsed
        """
        if not text or not text.strip():
            return []

        lines: List[LyricLine] = []
        skipped = 0
        for raw_line in self._preprocess(text).splitlines():
            raw_line = raw_line.strip()
            if not raw_line:
                continue
            try:
                parsed = self._parse_line(raw_line)
            except (ValueError, IndexError) as e:
                skipped += 1
                logger.debug(f"{self.format.value.upper()} - Skipping malformed line {raw_line[:40]!r}: {e}")
                continue
            if parsed:
                lines.extend(parsed)

        if skipped:
            logger.debug(f"{self.format.value.upper()} - Skipped {skipped} malformed line(s)")

        return self._finalize(lines)

    def _preprocess(self, text: str) -> str:
        """Hook for grammars that wrap their content (XML, BOM...)"""
        return text.lstrip("\ufeff")

    @abstractmethod
    def _parse_line(self, line: str) -> List[LyricLine]:
        """
        Parse one stripped, non-empty source line.

        Returns an empty list for metadata/unrecognized lines. May raise
        ValueError/IndexError for malformed entries; those are skipped.
        """
        pass

    def _finalize(self, lines: List[LyricLine]) -> List[LyricLine]:
        # Word timing can pull a line start earlier, so bounds settle before ordering
        for line in lines:
            self._normalize_words(line)
        # sorted() is stable, so ties keep source order
        ordered = sorted(lines, key=lambda line: line.start_time)
        result: List[LyricLine] = []
        for line in ordered:
            if result and result[-1].start_time == line.start_time:
                self._merge_duplicate(result[-1], line)
                continue
            result.append(line)
        return result

    def _merge_duplicate(self, kept: LyricLine, duplicate: LyricLine) -> None:
        """Two lines start at the same instant; the later one is dropped by default."""
        logger.debug(f"{self.format.value.upper()} - Dropping duplicate line at {duplicate.start_time}ms")

    @staticmethod
    def _normalize_words(line: LyricLine) -> None:
        words = sorted(line.words, key=lambda w: w.start_time)
        for current, following in zip(words, words[1:]):
            if current.end_time > following.start_time:
                current.end_time = following.start_time
        for word in words:
            if word.end_time < word.start_time:
                word.end_time = word.start_time
        line.words = words

        if words:
            line.start_time = min(line.start_time, words[0].start_time)
            line.end_time = max(line.end_time, words[-1].end_time)
        if line.end_time < line.start_time:
            line.end_time = line.start_time

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} format='{self.format.value}'>"
