"""
Channel lifecycle for the player WebSocket.

State machine:
    CONNECTING -> OPEN -> CLOSED -> RECONNECTING -> CONNECTING ...

There is no terminal state: failures are retried forever with capped
exponential backoff until the owner calls close(). Raw frames are handed
to the pipeline through an asyncio.Queue; decoding happens downstream so a
bad frame can never tear the connection down.
"""
from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Awaitable, Callable, Optional, Union

import aiohttp

from models import ConnectionState, ConnectionStatus
from logging_config import get_logger

logger = get_logger(__name__)

Frame = Union[str, bytes]

# Log first few attempts at INFO, later ones only every Nth time
LOUD_ATTEMPTS = 3
LOG_EVERY_NTH_ATTEMPT = 5


class ChannelClosed(Exception):
    """The remote end closed the channel or it failed mid-session."""


class AiohttpChannel:
    """A connected WebSocket plus the session that owns it."""

    def __init__(self, session: aiohttp.ClientSession, ws: aiohttp.ClientWebSocketResponse):
        self._session = session
        self._ws = ws

    async def receive(self) -> Frame:
        """Next text/binary frame; raises ChannelClosed when the channel ends."""
        while True:
            msg = await self._ws.receive()
            if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                return msg.data
            if msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSING, aiohttp.WSMsgType.CLOSED):
                raise ChannelClosed(f"closed by remote (code {self._ws.close_code})")
            if msg.type == aiohttp.WSMsgType.ERROR:
                raise ChannelClosed(f"protocol error: {self._ws.exception()}")
            # PING/PONG are answered by aiohttp itself

    async def send_str(self, data: str) -> None:
        await self._ws.send_str(data)

    async def close(self) -> None:
        try:
            if not self._ws.closed:
                await self._ws.close()
        finally:
            await self._session.close()


async def open_aiohttp_channel(url: str, timeout: float, heartbeat: Optional[float]) -> AiohttpChannel:
    """Default connector: open a WebSocket with aiohttp."""
    session = aiohttp.ClientSession()
    try:
        ws = await asyncio.wait_for(session.ws_connect(url, heartbeat=heartbeat), timeout=timeout)
    except BaseException:
        await session.close()
        raise
    return AiohttpChannel(session, ws)


Connector = Callable[[str, float, Optional[float]], Awaitable[Any]]

CONNECT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError, ChannelClosed)


class ConnectionManager:
    def __init__(
        self,
        url: str,
        frames: asyncio.Queue,
        connector: Optional[Connector] = None,
        initial_delay: float = 2.0,
        multiplier: float = 2.0,
        max_delay: float = 60.0,
        connect_timeout: float = 5.0,
        heartbeat: Optional[float] = 30.0,
        on_state_change: Optional[Callable[[ConnectionState], None]] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Args:
            url: ws:// or wss:// endpoint
            frames: Queue receiving every raw frame while OPEN
            connector: Coroutine opening a channel (defaults to aiohttp)
            initial_delay: First reconnect delay in seconds
            multiplier: Delay growth per consecutive failure
            max_delay: Reconnect delay cap in seconds
            connect_timeout: Handshake timeout in seconds
            heartbeat: WebSocket ping interval, None to disable
            on_state_change: Called with every new ConnectionState
            clock: Monotonic clock (seconds) for retry deadlines
            sleep: Awaitable sleep used for backoff (injectable for tests)
        """
        if not url.startswith(("ws://", "wss://")):
            raise ValueError(f"Channel URL must use ws:// or wss://, got {url!r}")
        if initial_delay <= 0:
            raise ValueError("initial_delay must be positive")
        if multiplier < 1:
            raise ValueError("multiplier must be >= 1")

        self.url = url
        self.frames = frames
        self.initial_delay = initial_delay
        self.multiplier = multiplier
        self.max_delay = max(max_delay, initial_delay)
        self.connect_timeout = connect_timeout
        self.heartbeat = heartbeat
        self._connector = connector or open_aiohttp_channel
        self._on_state_change = on_state_change
        self._clock = clock
        self._sleep = sleep

        self._state = ConnectionState()
        self._channel = None
        self._closing = False
        self._attempts = 0  # consecutive attempts since the last OPEN

    @property
    def state(self) -> ConnectionState:
        return self._state

    def next_delay(self, retry_count: int) -> float:
        """Backoff before retry number ``retry_count`` (1-based)."""
        exponent = max(0, retry_count - 1)
        delay = self.initial_delay
        for _ in range(exponent):
            delay *= self.multiplier
            if delay >= self.max_delay:
                return self.max_delay
        return min(delay, self.max_delay)

    async def run(self) -> None:
        """Connect, pump frames and reconnect until close() or cancellation."""
        try:
            while not self._closing:
                self._set_state(ConnectionStatus.CONNECTING)
                channel = await self._connect()
                if channel is None:
                    if self._closing:
                        break
                    self._set_state(ConnectionStatus.CLOSED)
                    await self._backoff()
                    continue

                self._channel = channel
                self._attempts = 0
                self._set_state(ConnectionStatus.OPEN, retry_count=0)
                logger.info(f"Connected to player channel {self.url}")

                try:
                    await self._pump(channel)
                except ChannelClosed as e:
                    logger.info(f"Player channel closed: {e}")
                except (aiohttp.ClientError, OSError) as e:
                    logger.warning(f"Player channel error: {e}")
                except Exception as e:
                    logger.warning(f"Player channel failed: {e}", exc_info=True)
                finally:
                    await self._close_channel()

                if self._closing:
                    break
                self._set_state(ConnectionStatus.CLOSED)
                await self._backoff()
        finally:
            await self._close_channel()
            self._set_state(ConnectionStatus.CLOSED)

    async def send_json(self, payload: dict) -> bool:
        """Send one JSON frame; returns False when not connected or the send fails."""
        channel = self._channel
        if channel is None or self._state.status is not ConnectionStatus.OPEN:
            return False
        try:
            await channel.send_str(json.dumps(payload))
            return True
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
            logger.debug(f"Failed to send frame: {e}")
            return False

    async def close(self) -> None:
        """Stop reconnecting and close the current channel."""
        self._closing = True
        await self._close_channel()

    async def _connect(self):
        self._attempts += 1
        if self._attempts == 1:
            logger.info(f"Connecting to player channel: {self.url}")
        else:
            logger.debug(f"Reconnecting to player channel (attempt {self._attempts})")
        try:
            return await self._connector(self.url, self.connect_timeout, self.heartbeat)
        except CONNECT_ERRORS as e:
            if self._attempts <= LOUD_ATTEMPTS or self._attempts % LOG_EVERY_NTH_ATTEMPT == 0:
                logger.warning(f"Player channel connection failed (attempt {self._attempts}): {e or type(e).__name__}")
            return None

    async def _pump(self, channel) -> None:
        while not self._closing:
            frame = await channel.receive()
            await self.frames.put(frame)

    async def _backoff(self) -> None:
        retry_count = self._state.retry_count + 1
        delay = self.next_delay(retry_count)
        self._set_state(
            ConnectionStatus.RECONNECTING,
            retry_count=retry_count,
            next_retry_at=self._clock() + delay,
        )
        if retry_count <= LOUD_ATTEMPTS:
            logger.info(f"Reconnecting in {delay:.1f}s (retry {retry_count})")
        await self._sleep(delay)

    async def _close_channel(self) -> None:
        channel, self._channel = self._channel, None
        if channel is None:
            return
        try:
            await channel.close()
        except (aiohttp.ClientError, OSError, RuntimeError) as e:
            logger.debug(f"Error while closing channel: {e}")

    def _set_state(self, status: ConnectionStatus, retry_count: Optional[int] = None,
                   next_retry_at: Optional[float] = None) -> None:
        if retry_count is None:
            retry_count = self._state.retry_count
        new_state = ConnectionState(status=status, retry_count=retry_count, next_retry_at=next_retry_at)
        if new_state == self._state:
            return
        self._state = new_state
        logger.debug(f"Connection state -> {status.value} (retries: {retry_count})")
        if self._on_state_change is not None:
            try:
                self._on_state_change(new_state)
            except Exception as e:
                logger.error(f"Connection state listener failed: {e}", exc_info=True)
