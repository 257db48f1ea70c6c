"""
Message decoder for the player channel.

Each frame is a JSON object ``{"event": <type>, "data": {...}}``. Frames are
decoded independently; anything that cannot be classified becomes an
UnknownEvent instead of raising, so one bad frame never affects the session.
"""
from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union

from models import (
    KARAOKE_FORMAT_BY_SOURCE,
    LyricFormat,
    LyricSource,
    SongInfo,
)
from logging_config import get_logger

logger = get_logger(__name__)


class EventKind(str, Enum):
    SONG_METADATA = "song_metadata"
    LYRIC_PAYLOAD = "lyric_payload"
    PLAYER_STATE = "player_state"
    PROGRESS_TICK = "progress_tick"
    CONNECTION = "connection"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class SongMetadataEvent:
    song: SongInfo
    kind: EventKind = EventKind.SONG_METADATA


@dataclass(frozen=True)
class LyricPayloadEvent:
    source: LyricSource
    kind: EventKind = EventKind.LYRIC_PAYLOAD


@dataclass(frozen=True)
class PlayerStateEvent:
    is_paused: bool
    kind: EventKind = EventKind.PLAYER_STATE


@dataclass(frozen=True)
class ProgressTickEvent:
    progress: int
    # None when the tick does not say; the last known paused flag applies
    is_paused: Optional[bool] = None
    # Track restarted from zero (PlayerProgressReplay)
    replay: bool = False
    kind: EventKind = EventKind.PROGRESS_TICK


@dataclass(frozen=True)
class ConnectionEvent:
    name: str
    data: Dict[str, Any] = field(default_factory=dict)
    kind: EventKind = EventKind.CONNECTION


@dataclass(frozen=True)
class UnknownEvent:
    reason: str
    event_type: Optional[str] = None
    kind: EventKind = EventKind.UNKNOWN


CONNECTION_EVENT_TYPES = {"Connected", "Disconnected", "DeviceChanged", "Ping"}


class FrameError(ValueError):
    """A frame is well-formed JSON but its fields are unusable."""


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _as_ms(value: Any, name: str) -> int:
    if value is None:
        return 0
    # bool is an int subclass and never a valid time
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise FrameError(f"'{name}' must be a number, got {type(value).__name__}")
    if not math.isfinite(value):
        raise FrameError(f"'{name}' must be finite")
    return max(0, int(value))


def _as_flag(value: Any, name: str) -> bool:
    if not isinstance(value, bool):
        raise FrameError(f"'{name}' must be a boolean, got {type(value).__name__}")
    return value


def _optional_flag(data: dict, name: str, default: Optional[bool]) -> Optional[bool]:
    value = data.get(name)
    return default if value is None else _as_flag(value, name)


class MessageDecoder:
    """Classifies raw channel frames into typed events."""

    def __init__(self):
        self.stats = {"decoded": 0, "unknown": 0}

    def decode(self, frame: Union[str, bytes, bytearray]) -> Any:
        event = self._decode(frame)
        if event.kind is EventKind.UNKNOWN:
            self.stats["unknown"] += 1
            logger.debug(f"Dropping frame ({event.reason})")
        else:
            self.stats["decoded"] += 1
        return event

    def _decode(self, frame) -> Any:
        if isinstance(frame, (bytes, bytearray)):
            try:
                frame = bytes(frame).decode("utf-8")
            except UnicodeDecodeError:
                return UnknownEvent("binary frame is not valid UTF-8")
        if not isinstance(frame, str):
            return UnknownEvent(f"unsupported frame type {type(frame).__name__}")

        try:
            message = json.loads(frame)
        except json.JSONDecodeError as e:
            return UnknownEvent(f"invalid JSON: {e.msg}")
        except (ValueError, RecursionError) as e:
            # Oversized integer literals, pathological nesting
            return UnknownEvent(f"undecodable JSON: {type(e).__name__}")

        if not isinstance(message, dict):
            return UnknownEvent("frame is not a JSON object")

        event_type = message.get("event")
        if not isinstance(event_type, str):
            return UnknownEvent("missing event type")

        data = message.get("data")
        if data is None:
            data = {}
        if not isinstance(data, dict):
            return UnknownEvent("'data' is not an object", event_type)

        handler = self._handlers.get(event_type)
        if handler is None:
            if event_type in CONNECTION_EVENT_TYPES:
                return ConnectionEvent(event_type, data)
            return UnknownEvent("unknown event type", event_type)

        try:
            return handler(self, data)
        except FrameError as e:
            return UnknownEvent(str(e), event_type)
        except (ValueError, TypeError, OverflowError, RecursionError) as e:
            return UnknownEvent(f"unusable fields: {type(e).__name__}", event_type)

    def _track(self, data: dict) -> SongMetadataEvent:
        return SongMetadataEvent(SongInfo(
            title=_as_text(data.get("title")),
            author=_as_text(data.get("author")),
            album=_as_text(data.get("album")),
            cover=_as_text(data.get("cover")),
            duration=_as_ms(data.get("duration"), "duration"),
        ))

    def _lyric(self, data: dict) -> LyricPayloadEvent:
        lrc = _as_text(data.get("lrc"))
        translation = _as_text(data.get("translatedLyric"))
        karaoke = _as_text(data.get("karaokeLyric"))
        source_name = _as_text(data.get("source"))

        fmt = LyricFormat.from_value(data.get("format")) if data.get("format") else LyricFormat.LRC
        if fmt is None:
            raise FrameError(f"unsupported lyric format {data.get('format')!r}")

        karaoke_format = None
        if data.get("karaokeFormat"):
            karaoke_format = LyricFormat.from_value(data.get("karaokeFormat"))
        if karaoke_format is None:
            karaoke_format = KARAOKE_FORMAT_BY_SOURCE.get(source_name.lower())

        return LyricPayloadEvent(LyricSource(
            text=lrc,
            format=fmt,
            translation=translation,
            karaoke=karaoke,
            karaoke_format=karaoke_format,
            source=source_name,
            has_lyric=_optional_flag(data, "hasLyric", bool(lrc)),
            has_translation=_optional_flag(data, "hasTranslatedLyric", bool(translation)),
            has_karaoke=_optional_flag(data, "hasKaraokeLyric", bool(karaoke)),
        ))

    def _pause_state(self, data: dict) -> PlayerStateEvent:
        return PlayerStateEvent(_as_flag(data.get("isPaused"), "isPaused"))

    def _progress(self, data: dict) -> ProgressTickEvent:
        return ProgressTickEvent(
            progress=_as_ms(data.get("progress"), "progress"),
            is_paused=_optional_flag(data, "isPaused", None),
        )

    def _replay(self, data: dict) -> ProgressTickEvent:
        return ProgressTickEvent(progress=0, replay=True)

    _handlers = {
        "Track": _track,
        "Lyric": _lyric,
        "PlayerPauseState": _pause_state,
        "PlayerProgress": _progress,
        "PlayerProgressReplay": _replay,
    }
