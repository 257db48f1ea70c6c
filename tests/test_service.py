"""Tests for the PlayerService pipeline"""
import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest

from models import ConnectionStatus, LyricSettings
from player_sync.connection import ChannelClosed
from player_sync.service import PlayerService

LRC = "[00:01.00]first\n[00:03.00]second\n[00:06.00]third"
TRANSLATION = "[00:01.00]一\n[00:03.00]二\n[00:06.00]三"


def frame(event, data=None):
    return json.dumps({"event": event, "data": data})


class FakeChannel:
    def __init__(self, frames=()):
        self._frames = list(frames)
        self.sent = []
        self.closed = False

    async def receive(self):
        if self._frames:
            return self._frames.pop(0)
        await asyncio.Event().wait()
        raise ChannelClosed("unreachable")

    async def send_str(self, data):
        self.sent.append(data)

    async def close(self):
        self.closed = True


async def wait_until(predicate, attempts=200):
    for _ in range(attempts):
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return predicate()


@pytest.fixture
def service(timer):
    return PlayerService(url="ws://player.test/api/ws/lyric", settings=LyricSettings(), timer=timer)


async def test_malformed_frames_do_not_disturb_session(timer):
    frames = [
        "garbage",
        '{"event": ',
        frame("SomethingNew", {"x": 1}),
        frame("Track", {"title": "T", "author": "A", "duration": 200000}),
    ]
    channel = FakeChannel(frames)
    calls = []

    async def connector(url, timeout, heartbeat):
        calls.append(url)
        return channel

    service = PlayerService(
        url="ws://player.test/api/ws/lyric",
        settings=LyricSettings(),
        timer=timer,
        connector=connector,
        refresh_interval=0.005,
    )
    async with service:
        assert await wait_until(lambda: service.store.get_song_info().title == "T")
        assert service.store.is_connected()
        assert len(calls) == 1

    assert service.decoder.stats == {"decoded": 1, "unknown": 3}
    assert channel.closed
    assert service.store.get_connection_state().status is ConnectionStatus.CLOSED
    # Published state survives the disconnect
    assert service.store.get_song_info().title == "T"


async def test_start_publishes_placeholder(service):
    async def never_connects(url, timeout, heartbeat):
        raise OSError("refused")

    service.connection._connector = never_connects
    await service.start()
    try:
        lines = service.store.get_lyric_lines()
        assert len(lines) == 1
        assert lines[0].text == LyricSettings().no_lyric_text
        assert not service.store.has_lyric()
    finally:
        await service.stop()


async def test_lyric_event_publishes_parsed_lines(service):
    await service.handle_frame(frame("Lyric", {"lrc": LRC, "translatedLyric": TRANSLATION, "source": "netease"}))

    lines = service.store.get_lyric_lines()
    assert [line.text for line in lines] == ["first", "second", "third"]
    assert [line.translated_lyric for line in lines] == ["一", "二", "三"]
    assert service.store.has_lyric()


async def test_empty_lyric_falls_back_to_placeholder(service):
    await service.handle_frame(frame("Lyric", {"lrc": "", "hasLyric": False}))

    lines = service.store.get_lyric_lines()
    assert [line.text for line in lines] == [LyricSettings().no_lyric_text]
    assert lines[0].end_time == float("inf")
    assert not service.store.has_lyric()


async def test_placeholder_can_show_title(timer):
    service = PlayerService(
        url="ws://player.test", settings=LyricSettings(show_title_when_no_lyric=True), timer=timer,
    )
    await service.handle_frame(frame("Track", {"title": "Song", "author": "Artist"}))
    assert service.store.get_lyric_lines()[0].text == "Artist - Song"


async def test_track_change_restarts_progress(service, clock):
    await service.handle_frame(frame("PlayerProgress", {"progress": 60000, "isPaused": False}))
    assert service.store.get_player_state().progress == 60140

    await service.handle_frame(frame("Track", {"title": "Next"}))

    assert service.store.get_player_state().progress == 0
    clock.advance(100)
    assert service.reconciler.refresh() == 100


async def test_pause_and_progress_frames(service, clock):
    await service.handle_frame(frame("PlayerProgress", {"progress": 10000, "isPaused": False}))
    clock.advance(200)
    assert service.reconciler.refresh() == 10340

    await service.handle_frame(frame("PlayerPauseState", {"isPaused": True}))
    clock.advance(500)
    assert service.reconciler.refresh() == 10340


async def test_replay_frame(service, clock):
    await service.handle_frame(frame("PlayerProgress", {"progress": 90000, "isPaused": False}))
    await service.handle_frame(frame("PlayerProgressReplay"))
    assert service.store.get_player_state().progress == 0


async def test_update_settings_reparses_last_lyric(service):
    await service.handle_frame(frame("Lyric", {"lrc": LRC, "translatedLyric": TRANSLATION}))

    service.update_settings(LyricSettings(show_translation=False, time_offset_ms=300))

    assert all(line.translated_lyric == "" for line in service.store.get_lyric_lines())
    assert service.reconciler.time_offset_ms == 300


async def test_ping_is_answered(service):
    service.connection.send_json = AsyncMock(return_value=True)

    await service.handle_frame(frame("Ping"))

    service.connection.send_json.assert_awaited_once_with({"event": "Pong"})


async def test_handler_errors_are_contained(service):
    with patch.object(service.reconciler, "on_progress_tick", side_effect=RuntimeError("boom")):
        await service.handle_frame(frame("PlayerProgress", {"progress": 1}))

    # Next frame is processed normally
    await service.handle_frame(frame("Track", {"title": "Still alive"}))
    assert service.store.get_song_info().title == "Still alive"


async def test_lyrics_dropped_after_stop(service):
    async def never_connects(url, timeout, heartbeat):
        raise OSError("refused")

    service.connection._connector = never_connects
    await service.start()
    await service.stop()

    await service.handle_frame(frame("Lyric", {"lrc": LRC}))

    assert not service.store.has_lyric()


@pytest.mark.parametrize("progress, offset, expected", [
    (0, 0, -1),
    (1000, 0, 0),
    (2999, 0, 0),
    (3000, 0, 1),
    (9000, 0, 2),
    (2800, 300, 1),
])
async def test_current_line_index(timer, progress, offset, expected):
    service = PlayerService(url="ws://player.test", settings=LyricSettings(time_offset_ms=offset), timer=timer)
    await service.handle_frame(frame("Lyric", {"lrc": LRC}))
    service.store.set_progress(progress)
    assert service.current_line_index() == expected


async def test_fetch_cover_uses_current_song(service):
    await service.handle_frame(frame("Track", {"title": "T", "cover": "http://img/cover.jpg"}))

    with patch("player_sync.service.fetch_cover_base64", AsyncMock(return_value="aGk=")) as fetch:
        assert await service.fetch_cover() == "aGk="

    fetch.assert_awaited_once_with(service.http_base, "http://img/cover.jpg")


@pytest.mark.parametrize("raw", [
    '{"event": "PlayerProgress", "data": {"progress": ' + "1" * 5000 + "}}",
    "[" * 100000,
])
async def test_oversized_frame_does_not_stop_handling(service, raw):
    await service.handle_frame(raw)

    await service.handle_frame(frame("Track", {"title": "After"}))
    assert service.store.get_song_info().title == "After"


async def test_consumer_survives_decoder_failure(timer):
    channel = FakeChannel([
        "[" * 100000,
        frame("Track", {"title": "First"}),
        frame("Track", {"title": "Second"}),
    ])

    async def connector(url, timeout, heartbeat):
        return channel

    service = PlayerService(
        url="ws://player.test/api/ws/lyric",
        settings=LyricSettings(),
        timer=timer,
        connector=connector,
        refresh_interval=0.005,
    )
    original = service.decoder.decode
    failures = []

    def flaky_decode(raw):
        if not failures:
            failures.append(raw)
            raise RuntimeError("decoder bug")
        return original(raw)

    service.decoder.decode = flaky_decode
    async with service:
        assert await wait_until(lambda: service.store.get_song_info().title == "Second")
    assert len(failures) == 1
