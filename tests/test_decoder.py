"""Tests for channel frame decoding"""
import json

import pytest

from models import LyricFormat, SongInfo
from player_sync.decoder import (
    ConnectionEvent,
    EventKind,
    LyricPayloadEvent,
    MessageDecoder,
    PlayerStateEvent,
    ProgressTickEvent,
    SongMetadataEvent,
    UnknownEvent,
)


def frame(event, data=None):
    return json.dumps({"event": event, "data": data})


@pytest.fixture
def decoder():
    return MessageDecoder()


def test_track_event(decoder):
    event = decoder.decode(frame("Track", {
        "title": "Song", "author": "Artist", "album": "Album",
        "cover": "http://img/1.jpg", "duration": 215000, "extra": "ignored",
    }))

    assert isinstance(event, SongMetadataEvent)
    assert event.kind is EventKind.SONG_METADATA
    assert event.song == SongInfo("Song", "Artist", "Album", "http://img/1.jpg", 215000)


def test_track_missing_fields_default_empty(decoder):
    event = decoder.decode(frame("Track", {"title": "Only title"}))
    assert event.song == SongInfo(title="Only title")


def test_track_with_bad_duration_is_unknown(decoder):
    event = decoder.decode(frame("Track", {"title": "x", "duration": "long"}))
    assert isinstance(event, UnknownEvent)
    assert event.event_type == "Track"


def test_lyric_event(decoder):
    event = decoder.decode(frame("Lyric", {
        "lrc": "[00:01.00]hi", "translatedLyric": "[00:01.00]你好",
        "karaokeLyric": "[1000,500](1000,500,0)hi", "source": "netease",
        "hasLyric": True, "hasTranslatedLyric": True, "hasKaraokeLyric": True,
    }))

    assert isinstance(event, LyricPayloadEvent)
    source = event.source
    assert source.text == "[00:01.00]hi"
    assert source.format is LyricFormat.LRC
    assert source.karaoke_format is LyricFormat.YRC
    assert source.has_lyric and source.has_translation and source.has_karaoke


def test_lyric_flags_default_to_content_presence(decoder):
    event = decoder.decode(frame("Lyric", {"lrc": "[00:01.00]hi", "source": "qq"}))
    source = event.source
    assert source.has_lyric
    assert not source.has_translation
    assert not source.has_karaoke
    assert source.karaoke_format is LyricFormat.QRC


def test_lyric_explicit_formats(decoder):
    event = decoder.decode(frame("Lyric", {
        "lrc": "[1000,500](1000,500,0)hi", "format": "YRC", "karaokeFormat": "qrc",
    }))
    assert event.source.format is LyricFormat.YRC
    assert event.source.karaoke_format is LyricFormat.QRC


def test_lyric_unsupported_format_is_unknown(decoder):
    event = decoder.decode(frame("Lyric", {"lrc": "x", "format": "ttml"}))
    assert isinstance(event, UnknownEvent)


def test_pause_state_event(decoder):
    assert decoder.decode(frame("PlayerPauseState", {"isPaused": True})) == PlayerStateEvent(True)
    assert decoder.decode(frame("PlayerPauseState", {"isPaused": False})) == PlayerStateEvent(False)


@pytest.mark.parametrize("data", [{}, {"isPaused": "yes"}, {"isPaused": 1}])
def test_pause_state_requires_boolean(decoder, data):
    assert isinstance(decoder.decode(frame("PlayerPauseState", data)), UnknownEvent)


def test_progress_event(decoder):
    event = decoder.decode(frame("PlayerProgress", {"progress": 10000, "isPaused": False}))
    assert event == ProgressTickEvent(progress=10000, is_paused=False)

    event = decoder.decode(frame("PlayerProgress", {"progress": 1234.9}))
    assert event == ProgressTickEvent(progress=1234, is_paused=None)


def test_progress_negative_is_clamped(decoder):
    assert decoder.decode(frame("PlayerProgress", {"progress": -50})).progress == 0


@pytest.mark.parametrize("progress", ["100", True, [1], {"ms": 1}])
def test_progress_non_numeric_is_unknown(decoder, progress):
    assert isinstance(decoder.decode(frame("PlayerProgress", {"progress": progress})), UnknownEvent)


def test_progress_non_finite_is_unknown(decoder):
    # json.dumps writes Infinity, which json.loads accepts
    assert isinstance(decoder.decode(frame("PlayerProgress", {"progress": float("inf")})), UnknownEvent)


def test_replay_event(decoder):
    event = decoder.decode(frame("PlayerProgressReplay"))
    assert event == ProgressTickEvent(progress=0, replay=True)


@pytest.mark.parametrize("name", ["Connected", "Disconnected", "DeviceChanged", "Ping"])
def test_connection_events(decoder, name):
    event = decoder.decode(frame(name, {"device": "pc"}))
    assert isinstance(event, ConnectionEvent)
    assert event.name == name


@pytest.mark.parametrize("raw", [
    "not json",
    "",
    "[1, 2, 3]",
    '"just a string"',
    '{"data": {}}',
    '{"event": 42}',
    '{"event": "Track", "data": [1]}',
    b"\xff\xfe\x00",
])
def test_malformed_frames_are_unknown(decoder, raw):
    event = decoder.decode(raw)
    assert isinstance(event, UnknownEvent)
    assert event.kind is EventKind.UNKNOWN


def test_unknown_event_type_is_preserved(decoder):
    event = decoder.decode(frame("Lyrics2"))
    assert isinstance(event, UnknownEvent)
    assert event.event_type == "Lyrics2"


def test_bytes_frame_is_decoded(decoder):
    event = decoder.decode(frame("PlayerPauseState", {"isPaused": True}).encode("utf-8"))
    assert event == PlayerStateEvent(True)


def test_unsupported_frame_type(decoder):
    assert isinstance(decoder.decode(12345), UnknownEvent)


def test_stats_count_every_frame(decoder):
    decoder.decode(frame("PlayerProgressReplay"))
    decoder.decode("garbage")
    decoder.decode("more garbage")
    assert decoder.stats == {"decoded": 1, "unknown": 2}


def test_decoder_is_stateless_between_frames(decoder):
    decoder.decode("garbage")
    first = decoder.decode(frame("PlayerProgress", {"progress": 5}))
    second = MessageDecoder().decode(frame("PlayerProgress", {"progress": 5}))
    assert first == second


@pytest.mark.parametrize("raw", [
    # Integer literal past the interpreter's digit limit
    '{"event": "PlayerProgress", "data": {"progress": ' + "1" * 5000 + "}}",
    "[" * 100000,
    '{"event": "Track", "data": ' + '{"a": ' * 50000 + "1" + "}" * 50000 + "}",
])
def test_oversized_frames_are_unknown(decoder, raw):
    event = decoder.decode(raw)
    assert isinstance(event, UnknownEvent)
    assert decoder.stats["unknown"] == 1


@pytest.mark.parametrize("key", ["hasLyric", "hasTranslatedLyric", "hasKaraokeLyric"])
@pytest.mark.parametrize("value", ["false", 0, 1, [True]])
def test_lyric_flags_require_boolean(decoder, key, value):
    event = decoder.decode(frame("Lyric", {"lrc": "[00:01.00]hi", key: value}))
    assert isinstance(event, UnknownEvent)
    assert event.event_type == "Lyric"


def test_lyric_flags_explicit_false_is_honoured(decoder):
    event = decoder.decode(frame("Lyric", {
        "lrc": "[00:01.00]hi", "translatedLyric": "[00:01.00]你好",
        "hasLyric": False, "hasTranslatedLyric": False, "hasKaraokeLyric": None,
    }))
    assert not event.source.has_lyric
    assert not event.source.has_translation
    assert not event.source.has_karaoke
