"""
Player synchronization engine.

    timer.py      - Pausable monotonic millisecond clock
    decoder.py    - Channel frame classification
    reconciler.py - Tick + clock fusion into published progress
    connection.py - WebSocket lifecycle with reconnect backoff
    state.py      - Published state with subscribe/notify
    service.py    - The pipeline tying them together
"""
from .timer import Timer
from .decoder import (
    ConnectionEvent,
    EventKind,
    LyricPayloadEvent,
    MessageDecoder,
    PlayerStateEvent,
    ProgressTickEvent,
    SongMetadataEvent,
    UnknownEvent,
)
from .state import StateStore
from .reconciler import ProgressReconciler
from .connection import ChannelClosed, ConnectionManager
from .service import PlayerService

__all__ = [
    "Timer",
    "ConnectionEvent",
    "EventKind",
    "LyricPayloadEvent",
    "MessageDecoder",
    "PlayerStateEvent",
    "ProgressTickEvent",
    "SongMetadataEvent",
    "UnknownEvent",
    "StateStore",
    "ProgressReconciler",
    "ChannelClosed",
    "ConnectionManager",
    "PlayerService",
]
