"""Tests for progress reconciliation against the extrapolating timer"""
import asyncio

import pytest

from player_sync.decoder import ProgressTickEvent
from player_sync.reconciler import ProgressReconciler


def test_tick_applies_compensation_and_extrapolates(reconciler, timer, store, clock):
    reconciler.on_progress_tick(ProgressTickEvent(progress=10000, is_paused=False))

    assert timer.get_time() == 10140
    assert timer.is_running
    assert store.get_player_state().progress == 10140

    clock.advance(200)
    assert reconciler.refresh() == 10340
    assert store.get_player_state().progress == 10340


def test_pause_freezes_progress(reconciler, timer, store, clock):
    reconciler.on_progress_tick(ProgressTickEvent(progress=10000, is_paused=False))
    clock.advance(100)
    reconciler.on_pause_state(True)
    frozen = store.get_player_state().progress

    clock.advance(500)
    reconciler.refresh()

    assert frozen == 10240
    assert store.get_player_state().progress == frozen
    assert store.get_player_state().is_paused


def test_resume_continues_from_frozen_value(reconciler, store, clock):
    reconciler.on_progress_tick(ProgressTickEvent(progress=0, is_paused=False))
    reconciler.on_pause_state(True)
    clock.advance(1000)
    reconciler.on_pause_state(False)
    clock.advance(60)
    assert reconciler.refresh() == 200


def test_paused_tick_sets_time_without_running(reconciler, timer, store, clock):
    reconciler.on_progress_tick(ProgressTickEvent(progress=5000, is_paused=True))
    clock.advance(1000)

    assert not timer.is_running
    assert reconciler.refresh() == 5140
    assert store.get_player_state().is_paused


def test_tick_without_pause_flag_keeps_last_known_state(reconciler, timer, store):
    store.set_paused(True)
    reconciler.on_progress_tick(ProgressTickEvent(progress=1000))
    assert not timer.is_running
    assert store.get_player_state().is_paused


def test_every_tick_realigns_even_backwards(reconciler, store, clock):
    reconciler.on_progress_tick(ProgressTickEvent(progress=10000, is_paused=False))
    clock.advance(300)
    reconciler.on_progress_tick(ProgressTickEvent(progress=10050, is_paused=False))
    assert store.get_player_state().progress == 10190


def test_jitter_tolerance_ignores_slightly_late_ticks(timer, store, clock):
    reconciler = ProgressReconciler(timer, store, compensation_ms=140, jitter_tolerance_ms=100)
    reconciler.on_progress_tick(ProgressTickEvent(progress=10000, is_paused=False))
    clock.advance(300)

    # 10360 < 10440 by 80ms: within tolerance, clock keeps running
    reconciler.on_progress_tick(ProgressTickEvent(progress=10220, is_paused=False))
    assert timer.get_time() == 10440

    # A seek backwards is far outside the tolerance
    reconciler.on_progress_tick(ProgressTickEvent(progress=2000, is_paused=False))
    assert timer.get_time() == 2140


def test_replay_restarts_from_zero(reconciler, timer, store, clock):
    reconciler.on_progress_tick(ProgressTickEvent(progress=90000, is_paused=False))
    reconciler.on_progress_tick(ProgressTickEvent(progress=0, replay=True))

    assert store.get_player_state().progress == 0
    assert timer.is_running
    clock.advance(50)
    assert reconciler.refresh() == 50


def test_track_change_resets_but_stays_paused(reconciler, timer, store):
    reconciler.on_progress_tick(ProgressTickEvent(progress=90000, is_paused=True))
    reconciler.on_track_change()

    assert store.get_player_state().progress == 0
    assert not timer.is_running


@pytest.mark.parametrize("offset, progress, expected", [
    (0, 1000, 1000),
    (300, 1000, 1300),
    (-300, 1000, 700),
    (-1500, 1000, 0),
])
def test_display_time_applies_offset(timer, store, offset, progress, expected):
    reconciler = ProgressReconciler(timer, store, time_offset_ms=offset)
    store.set_progress(progress)
    assert reconciler.display_time() == expected


async def test_run_loop_publishes_until_cancelled(reconciler, timer, store, clock):
    reconciler.on_progress_tick(ProgressTickEvent(progress=0, is_paused=False))
    task = asyncio.create_task(reconciler.run(interval=0.001))
    clock.advance(500)
    await asyncio.sleep(0.02)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert store.get_player_state().progress == 640
