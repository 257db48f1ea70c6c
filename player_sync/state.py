"""
Published player state.

One StateStore per client. The PlayerService pipeline is its only writer;
renderers read through the getters or subscribe to change notifications.
Everything runs on one event loop, so no locking is needed: each setter
replaces a whole field and readers always see a consistent value.
"""
from __future__ import annotations

from dataclasses import asdict, replace
from typing import Any, Callable, Dict, Iterable, Optional, Sequence, Tuple

from benedict import benedict

from models import ConnectionState, LyricLine, PlayerState, SongInfo
from logging_config import get_logger

logger = get_logger(__name__)

# Field names passed to subscribers
SONG = "song"
LYRIC_LINES = "lyric_lines"
PLAYER = "player"
CONNECTION = "connection"
ALL_FIELDS = frozenset({SONG, LYRIC_LINES, PLAYER, CONNECTION})

Subscriber = Callable[[str, Any], None]


class StateStore:
    def __init__(self):
        self._song = SongInfo()
        self._lyric_lines: Tuple[LyricLine, ...] = ()
        self._has_lyric = False
        self._player = PlayerState()
        self._connection = ConnectionState()
        self._subscribers: Dict[int, Tuple[Subscriber, frozenset]] = {}
        self._next_token = 0

    # ==========================================
    # Readers
    # ==========================================

    def get_song_info(self) -> SongInfo:
        return self._song

    def get_lyric_lines(self) -> Tuple[LyricLine, ...]:
        return self._lyric_lines

    def has_lyric(self) -> bool:
        return self._has_lyric

    def get_player_state(self) -> PlayerState:
        return self._player

    def get_connection_state(self) -> ConnectionState:
        return self._connection

    def is_connected(self) -> bool:
        return self._connection.is_connected

    def snapshot(self) -> Dict[str, Any]:
        """Plain-dict copy of everything published."""
        return {
            SONG: asdict(self._song),
            LYRIC_LINES: [asdict(line) for line in self._lyric_lines],
            "has_lyric": self._has_lyric,
            PLAYER: asdict(self._player),
            CONNECTION: {
                "status": self._connection.status.value,
                "retry_count": self._connection.retry_count,
                "next_retry_at": self._connection.next_retry_at,
                "is_connected": self._connection.is_connected,
            },
        }

    def get_attribute(self, attribute: str) -> Any:
        """
        Read one published value in js notation, e.g. ``song.title`` or
        ``player.progress``.

        Raises:
            KeyError: the path does not exist
        """
        state = benedict(self.snapshot(), keypath_separator=".")
        return state[attribute]

    # ==========================================
    # Writers (pipeline only)
    # ==========================================

    def set_song_info(self, song: SongInfo) -> None:
        if song == self._song:
            return
        self._song = song
        self._notify(SONG, song)

    def set_lyric_lines(self, lines: Sequence[LyricLine], has_lyric: bool) -> None:
        self._lyric_lines = tuple(lines)
        self._has_lyric = has_lyric
        self._notify(LYRIC_LINES, self._lyric_lines)

    def set_paused(self, is_paused: bool) -> None:
        if is_paused == self._player.is_paused:
            return
        self._player = replace(self._player, is_paused=is_paused)
        self._notify(PLAYER, self._player)

    def set_progress(self, progress_ms: float) -> None:
        progress = max(0, int(round(progress_ms)))
        if progress == self._player.progress:
            return
        self._player = replace(self._player, progress=progress)
        self._notify(PLAYER, self._player)

    def set_connection_state(self, connection: ConnectionState) -> None:
        if connection == self._connection:
            return
        self._connection = connection
        self._notify(CONNECTION, connection)

    # ==========================================
    # Change notification
    # ==========================================

    def subscribe(self, callback: Subscriber, fields: Optional[Iterable[str]] = None) -> Callable[[], None]:
        """
        Register ``callback(field, value)`` for changes.

        Args:
            callback: Called synchronously after each matching write
            fields: Field names to watch (default: all)

        Returns:
            A function that removes the subscription.
        """
        watched = ALL_FIELDS if fields is None else frozenset(fields)
        unknown = watched - ALL_FIELDS
        if unknown:
            raise ValueError(f"Unknown state fields: {sorted(unknown)}")

        token = self._next_token
        self._next_token += 1
        self._subscribers[token] = (callback, watched)

        def unsubscribe() -> None:
            self._subscribers.pop(token, None)

        return unsubscribe

    def _notify(self, field_name: str, value: Any) -> None:
        for callback, watched in list(self._subscribers.values()):
            if field_name not in watched:
                continue
            try:
                callback(field_name, value)
            except Exception as e:
                # A broken renderer must not stop the pipeline
                logger.error(f"State subscriber failed on '{field_name}': {e}", exc_info=True)

    def __repr__(self) -> str:
        return (f"<StateStore song='{self._song.title}' lines={len(self._lyric_lines)} "
                f"progress={self._player.progress} paused={self._player.is_paused} "
                f"connection={self._connection.status.value}>")
