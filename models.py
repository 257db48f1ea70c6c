"""
Shared data structures for the synchronization engine.

All times are integer milliseconds. SongInfo and LyricSource are frozen
snapshots; LyricLine/Word are plain dataclasses because the merge step
fills in translation and karaoke fields after parsing.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


@dataclass(frozen=True)
class SongInfo:
    """Song metadata, replaced wholesale on every Track event"""
    title: str = ""
    author: str = ""
    album: str = ""
    cover: str = ""
    duration: int = 0


@dataclass
class Word:
    text: str
    start_time: int
    end_time: float
    obscene: bool = False


@dataclass
class LyricLine:
    start_time: int
    end_time: float
    words: List[Word] = field(default_factory=list)
    translated_lyric: str = ""
    # Sub-word timing from a karaoke overlay, one entry per word when present
    karaoke_words: Optional[List[Word]] = None

    @property
    def text(self) -> str:
        return "".join(w.text for w in self.words)


class LyricFormat(str, Enum):
    LRC = "lrc"  # [mm:ss.xx]line
    YRC = "yrc"  # [start,dur](start,dur,0)word
    QRC = "qrc"  # [start,dur]word(start,dur)

    @classmethod
    def from_value(cls, value) -> Optional["LyricFormat"]:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


# Lyric provider name -> grammar used by its karaoke text
KARAOKE_FORMAT_BY_SOURCE = {
    "netease": LyricFormat.YRC,
    "qq": LyricFormat.QRC,
}


@dataclass(frozen=True)
class LyricSource:
    """Raw lyric payload as received; discarded once parsed"""
    text: str = ""
    format: LyricFormat = LyricFormat.LRC
    translation: str = ""
    karaoke: str = ""
    karaoke_format: Optional[LyricFormat] = None
    source: str = ""
    has_lyric: bool = False
    has_translation: bool = False
    has_karaoke: bool = False


@dataclass(frozen=True)
class LyricSettings:
    """Read-only view of the user's lyric toggles"""
    show_translation: bool = True
    karaoke_enabled: bool = True
    show_title_when_no_lyric: bool = False
    no_lyric_text: str = "Instrumental, enjoy the music"
    time_offset_ms: int = 0
    last_line_duration_ms: int = 5000

    @classmethod
    def from_config(cls, lyrics_config: dict) -> "LyricSettings":
        defaults = cls()
        return cls(
            show_translation=bool(lyrics_config.get("show_translation", defaults.show_translation)),
            karaoke_enabled=bool(lyrics_config.get("karaoke_enabled", defaults.karaoke_enabled)),
            show_title_when_no_lyric=bool(lyrics_config.get("show_title_when_no_lyric", defaults.show_title_when_no_lyric)),
            no_lyric_text=str(lyrics_config.get("no_lyric_text", defaults.no_lyric_text)),
            time_offset_ms=int(lyrics_config.get("time_offset_ms", defaults.time_offset_ms)),
            last_line_duration_ms=int(lyrics_config.get("last_line_duration_ms", defaults.last_line_duration_ms)),
        )


@dataclass(frozen=True)
class PlayerState:
    is_paused: bool = False
    progress: int = 0


class ConnectionStatus(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"
    RECONNECTING = "reconnecting"


@dataclass(frozen=True)
class ConnectionState:
    status: ConnectionStatus = ConnectionStatus.CONNECTING
    retry_count: int = 0
    # Monotonic deadline of the next attempt, None unless reconnecting
    next_retry_at: Optional[float] = None

    @property
    def is_connected(self) -> bool:
        return self.status is ConnectionStatus.OPEN


def placeholder_line(text: str) -> LyricLine:
    """Single line spanning the whole track, used when no lyric is available."""
    return LyricLine(
        start_time=0,
        end_time=math.inf,
        words=[Word(text=text, start_time=0, end_time=math.inf)],
    )
