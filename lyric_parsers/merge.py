"""
Combines a base lyric parse with its optional karaoke overlay and translation.

Everything here is pure: inputs are never mutated and the same LyricSource
plus LyricSettings always produce the same lines.
"""
import copy
from typing import List, Optional

from models import (
    KARAOKE_FORMAT_BY_SOURCE,
    LyricFormat,
    LyricLine,
    LyricSettings,
    LyricSource,
)
from logging_config import get_logger
from .lrc import LrcParser
from .qrc import QrcParser
from .yrc import YrcParser

logger = get_logger(__name__)

# Grammars whose lines carry real per-word timing
WORD_LEVEL_FORMATS = {LyricFormat.YRC, LyricFormat.QRC}


def get_parser(fmt: LyricFormat, last_line_duration_ms: Optional[int] = None):
    """Return a parser instance for the given grammar."""
    if fmt is LyricFormat.LRC:
        if last_line_duration_ms is None:
            return LrcParser()
        return LrcParser(last_line_duration_ms)
    if fmt is LyricFormat.YRC:
        return YrcParser()
    if fmt is LyricFormat.QRC:
        return QrcParser()
    raise ValueError(f"Unsupported lyric format: {fmt!r}")


def parse_lyrics(text: str, fmt: LyricFormat, last_line_duration_ms: Optional[int] = None) -> List[LyricLine]:
    return get_parser(fmt, last_line_duration_ms).parse(text)


def merge_karaoke(base: List[LyricLine], overlay: List[LyricLine]) -> List[LyricLine]:
    """
    Attach overlay word timing to base lines by line index.

    A line whose overlay word count differs from its own keeps its base
    timing and gets no karaoke words; other lines are unaffected.
    """
    merged = copy.deepcopy(base)
    mismatched = 0
    for index, line in enumerate(merged):
        if index >= len(overlay):
            line.karaoke_words = None
            continue
        overlay_words = overlay[index].words
        if line.words and len(overlay_words) == len(line.words):
            line.karaoke_words = copy.deepcopy(overlay_words)
        else:
            line.karaoke_words = None
            mismatched += 1

    if mismatched:
        logger.debug(f"Karaoke overlay: dropped timing for {mismatched} line(s) with mismatched word counts")
    if len(overlay) != len(base):
        logger.debug(f"Karaoke overlay has {len(overlay)} lines, base has {len(base)}")
    return merged


def merge_translation(base: List[LyricLine], translated: List[LyricLine]) -> List[LyricLine]:
    """
    Pair translated lines with base lines in order.

    Blank base lines (instrumental gaps) are not counted. Surplus
    translation lines are ignored; base lines without a partner keep an
    empty translation.
    """
    merged = copy.deepcopy(base)
    sung_lines = [line for line in merged if line.text.strip()]
    for line, translation in zip(sung_lines, translated):
        line.translated_lyric = translation.text.strip()
    if len(sung_lines) != len(translated):
        logger.debug(f"Translation has {len(translated)} lines for {len(sung_lines)} lyric lines")
    return merged


def _karaoke_format(source: LyricSource) -> Optional[LyricFormat]:
    if source.karaoke_format is not None:
        return source.karaoke_format
    return KARAOKE_FORMAT_BY_SOURCE.get(source.source.lower())


def build_lyric_lines(source: LyricSource, settings: LyricSettings) -> List[LyricLine]:
    """
    Parse a LyricSource into the lines published to the display.

    Returns an empty list when nothing usable is present; the caller decides
    how to present "no lyric available".
    """
    lines: List[LyricLine] = []
    if source.has_lyric and source.text.strip():
        lines = parse_lyrics(source.text, source.format, settings.last_line_duration_ms)

    if settings.karaoke_enabled and source.has_karaoke and source.karaoke.strip():
        karaoke_format = _karaoke_format(source)
        if karaoke_format is None:
            logger.warning(f"No karaoke grammar known for lyric source '{source.source}', ignoring karaoke lyric")
        else:
            overlay = parse_lyrics(source.karaoke, karaoke_format)
            if overlay and (not lines or source.format not in WORD_LEVEL_FORMATS):
                # Line-level lines have nothing to overlay; use the karaoke parse itself
                lines = overlay
            elif overlay:
                lines = merge_karaoke(lines, overlay)
            else:
                logger.info(f"Karaoke lyric ({karaoke_format.value}) could not be parsed, keeping base timing")

    if lines and source.has_translation and source.translation.strip():
        translated = parse_lyrics(source.translation, LyricFormat.LRC, settings.last_line_duration_ms)
        # Blank translation lines carry no text to pair
        translated = [line for line in translated if line.text.strip()]
        if translated:
            lines = merge_translation(lines, translated)

    if not settings.show_translation:
        for line in lines:
            line.translated_lyric = ""

    return lines
