"""
Player service: wires the connection, decoder, lyric parsing, progress
reconciler and state store into one pipeline.

    ConnectionManager --frames--> queue --> MessageDecoder --> handlers
                                                 |-- Track    -> StateStore.song, clock reset
                                                 |-- Lyric    -> build_lyric_lines -> StateStore.lyric_lines
                                                 |-- Pause    -> ProgressReconciler.on_pause_state
                                                 |-- Progress -> ProgressReconciler.on_progress_tick
    refresh loop -> ProgressReconciler.refresh() -> StateStore.progress (every frame)

Frames are handled strictly in receipt order by a single consumer task.
"""
from __future__ import annotations

import asyncio
from typing import Any, Optional

from config import CONNECTION, LYRICS, PROGRESS
from lyric_parsers import build_lyric_lines
from models import LyricSettings, LyricSource, placeholder_line
from logging_config import get_logger
from .connection import ConnectionManager, Connector
from .cover import fetch_cover_base64
from .decoder import (
    ConnectionEvent,
    EventKind,
    LyricPayloadEvent,
    MessageDecoder,
    PlayerStateEvent,
    ProgressTickEvent,
    SongMetadataEvent,
)
from .helpers import cancel_tasks, create_tracked_task
from .reconciler import ProgressReconciler
from .state import StateStore
from .timer import Timer

logger = get_logger(__name__)


class PlayerService:
    def __init__(
        self,
        url: Optional[str] = None,
        settings: Optional[LyricSettings] = None,
        store: Optional[StateStore] = None,
        timer: Optional[Timer] = None,
        connector: Optional[Connector] = None,
        compensation_ms: Optional[int] = None,
        refresh_interval: Optional[float] = None,
        http_base: Optional[str] = None,
        **connection_options: Any,
    ):
        """
        Args:
            url: Channel endpoint (default: connection.url)
            settings: Lyric toggles (default: built from the lyrics.* config)
            store: Store to publish into (a new one if omitted)
            timer: Clock for progress extrapolation (a new one if omitted)
            connector: Channel factory, see ConnectionManager
            compensation_ms: Forward offset per progress tick (default: progress.compensation_ms)
            refresh_interval: Display-refresh cadence in seconds
            http_base: Base URL for the cover conversion endpoint
            **connection_options: Extra ConnectionManager keyword arguments
        """
        self.settings = settings or LyricSettings.from_config(LYRICS)
        self.store = store or StateStore()
        self.timer = timer or Timer()
        self.decoder = MessageDecoder()
        self.reconciler = ProgressReconciler(
            self.timer,
            self.store,
            compensation_ms=PROGRESS["compensation_ms"] if compensation_ms is None else compensation_ms,
            jitter_tolerance_ms=PROGRESS["jitter_tolerance_ms"],
            time_offset_ms=self.settings.time_offset_ms,
        )
        self.refresh_interval = refresh_interval or PROGRESS["refresh_interval"]
        self.http_base = http_base or CONNECTION["http_base"]

        self.frames: asyncio.Queue = asyncio.Queue(maxsize=CONNECTION["queue_size"])
        reconnect = CONNECTION["reconnect"]
        options = {
            "initial_delay": reconnect["initial_delay"],
            "multiplier": reconnect["multiplier"],
            "max_delay": reconnect["max_delay"],
            "connect_timeout": CONNECTION["connect_timeout"],
            "heartbeat": CONNECTION["heartbeat"],
        }
        options.update(connection_options)
        self.connection = ConnectionManager(
            url or CONNECTION["url"],
            self.frames,
            connector=connector,
            on_state_change=self.store.set_connection_state,
            **options,
        )

        self._lyric_source: Optional[LyricSource] = None
        self._connection_task: Optional[asyncio.Task] = None
        self._consumer_task: Optional[asyncio.Task] = None
        self._refresh_task: Optional[asyncio.Task] = None
        self._running = False
        self._stopped = False

    # ==========================================
    # Lifecycle
    # ==========================================

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._stopped = False
        self._publish_no_lyric()
        self._consumer_task = create_tracked_task(self._consume(), name="player-frames")
        self._refresh_task = create_tracked_task(self.reconciler.run(self.refresh_interval), name="player-refresh")
        self._connection_task = create_tracked_task(self.connection.run(), name="player-connection")
        logger.info("Player service started")

    async def stop(self) -> None:
        """Tear down: cancel backoff, stop refreshing, close the channel."""
        if not self._running:
            return
        self._running = False
        self._stopped = True
        await self.connection.close()
        await cancel_tasks(self._connection_task, self._refresh_task, self._consumer_task)
        self._connection_task = self._refresh_task = self._consumer_task = None
        self.timer.pause()
        logger.info("Player service stopped")

    async def __aenter__(self) -> "PlayerService":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    # ==========================================
    # Frame pipeline
    # ==========================================

    async def _consume(self) -> None:
        while True:
            frame = await self.frames.get()
            try:
                await self.handle_frame(frame)
            finally:
                self.frames.task_done()

    async def handle_frame(self, frame) -> None:
        """Decode and apply one frame. Never raises for bad input."""
        event = None
        try:
            event = self.decoder.decode(frame)
            await self.apply_event(event)
        except Exception as e:
            kind = event.kind.value if event is not None else "undecoded"
            logger.error(f"Failed to apply {kind} event: {e}", exc_info=True)

    async def apply_event(self, event) -> None:
        if isinstance(event, SongMetadataEvent):
            self._on_track(event)
        elif isinstance(event, LyricPayloadEvent):
            self._on_lyric(event)
        elif isinstance(event, PlayerStateEvent):
            self.reconciler.on_pause_state(event.is_paused)
        elif isinstance(event, ProgressTickEvent):
            self.reconciler.on_progress_tick(event)
        elif isinstance(event, ConnectionEvent):
            await self._on_connection_event(event)
        elif event.kind is EventKind.UNKNOWN:
            if event.event_type:
                logger.debug(f"Unknown player event type: {event.event_type}")

    def _on_track(self, event: SongMetadataEvent) -> None:
        song = event.song
        logger.info(f"Track: {song.author} - {song.title}")
        self.store.set_song_info(song)
        self.reconciler.on_track_change()
        if not self.store.has_lyric():
            # Placeholder may show "author - title"
            self._publish_no_lyric()

    def _on_lyric(self, event: LyricPayloadEvent) -> None:
        self._lyric_source = event.source
        self._publish_lyrics()

    async def _on_connection_event(self, event: ConnectionEvent) -> None:
        if event.name == "Ping":
            await self.connection.send_json({"event": "Pong"})
        else:
            logger.info(f"Player reported {event.name}: {event.data}")

    # ==========================================
    # Lyrics
    # ==========================================

    def update_settings(self, settings: LyricSettings) -> None:
        """Apply new lyric toggles and re-parse the last received lyric."""
        self.settings = settings
        self.reconciler.time_offset_ms = settings.time_offset_ms
        self._publish_lyrics()

    def _publish_lyrics(self) -> None:
        if self._lyric_source is None:
            self._publish_no_lyric()
            return

        lines = build_lyric_lines(self._lyric_source, self.settings)
        if self._stopped:
            # Torn down while parsing; drop the result
            return
        if not lines:
            logger.info(f"No usable lyric from '{self._lyric_source.source or 'unknown'}'")
            self._publish_no_lyric()
            return

        logger.info(f"Loaded {len(lines)} lyric lines from '{self._lyric_source.source or 'unknown'}'")
        self.store.set_lyric_lines(lines, has_lyric=True)

    def _publish_no_lyric(self) -> None:
        self.store.set_lyric_lines([placeholder_line(self.no_lyric_text())], has_lyric=False)

    def no_lyric_text(self) -> str:
        song = self.store.get_song_info()
        if self.settings.show_title_when_no_lyric and song.author and song.title:
            return f"{song.author} - {song.title}"
        return self.settings.no_lyric_text

    # ==========================================
    # Display helpers
    # ==========================================

    def display_time(self) -> int:
        return self.reconciler.display_time()

    def current_line_index(self) -> int:
        """Index of the line active at display_time(), or -1 before the first line."""
        position = self.display_time()
        index = -1
        for i, line in enumerate(self.store.get_lyric_lines()):
            if line.start_time > position:
                break
            index = i
        return index

    async def fetch_cover(self) -> Optional[str]:
        """Base64 cover of the current song, via the player's HTTP API."""
        return await fetch_cover_base64(self.http_base, self.store.get_song_info().cover)
