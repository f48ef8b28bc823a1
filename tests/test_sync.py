from __future__ import annotations

import asyncio

import pytest

from chapterplay.config import SyncPolicy
from chapterplay.errors import ErrorJournal
from chapterplay.events import SYNC_CORRECTED
from chapterplay.models.mode import PresentationMode
from chapterplay.models.stream import StreamId
from chapterplay.playback.sync import SyncMonitor


@pytest.fixture
def journal() -> ErrorJournal:
    return ErrorJournal()


@pytest.fixture
def monitor(modes, coordinator, bus, journal) -> SyncMonitor:
    return SyncMonitor(modes, coordinator, bus=bus, journal=journal)


@pytest.fixture
def loaded(modes, primary, secondary) -> None:
    primary.load("chapter.mp3")
    secondary.load("chapter-360.mp4")
    modes.set_track_capabilities(True)
    modes.apply_mute_policy()


def test_drift_above_threshold_moves_slave_to_master(monitor, recorder, loaded, primary_element, secondary_element) -> None:
    primary_element.start_playing(position=10.0)
    secondary_element.start_playing(position=9.5)

    corrected = monitor.tick()

    assert corrected == pytest.approx(0.5)
    assert secondary_element.position == 10.0
    assert primary_element.position == 10.0
    assert recorder.named(SYNC_CORRECTED) == [{"drift_seconds": pytest.approx(0.5)}]


def test_small_drift_is_left_alone(monitor, recorder, loaded, primary_element, secondary_element) -> None:
    primary_element.start_playing(position=10.0)
    secondary_element.start_playing(position=9.8)

    assert monitor.tick() is None
    assert secondary_element.position == 9.8
    assert recorder.named(SYNC_CORRECTED) == []


def test_presentation_mode_corrects_the_audio_stream(monitor, modes, loaded, primary_element, secondary_element) -> None:
    modes.switch_mode(PresentationMode.PRESENTATION)
    secondary_element.start_playing(position=30.0)
    primary_element.start_playing(position=31.0)

    monitor.tick()

    assert primary_element.position == 30.0
    assert secondary_element.position == 30.0


def test_correction_near_end_of_stream_is_deferred(
    monitor, journal, recorder, loaded, primary_element, secondary_element
) -> None:
    primary_element.duration = 10.0
    primary_element.start_playing(position=9.8)
    secondary_element.start_playing(position=9.0)

    assert monitor.tick() is None

    assert secondary_element.position == 9.0
    assert recorder.named(SYNC_CORRECTED) == []
    (record,) = journal.records
    assert record.kind == "SyncDriftError"


def test_shorter_slave_duration_also_limits_correction(monitor, loaded, primary_element, secondary_element) -> None:
    secondary_element.duration = 20.0
    primary_element.start_playing(position=19.8)
    secondary_element.start_playing(position=18.0)

    assert monitor.tick() is None
    assert secondary_element.position == 18.0


def test_tick_skipped_when_both_paused(monitor, loaded, primary_element, secondary_element) -> None:
    primary_element.position = 10.0
    secondary_element.position = 2.0

    assert monitor.tick() is None
    assert secondary_element.position == 2.0


def test_tick_skipped_without_secondary(monitor, modes, primary_element, secondary_element) -> None:
    modes.set_track_capabilities(False)
    primary_element.start_playing(position=10.0)
    secondary_element.position = 2.0

    assert monitor.tick() is None
    assert secondary_element.position == 2.0


def test_seek_suppresses_one_tick(monitor, loaded, primary_element, secondary_element) -> None:
    primary_element.start_playing()
    secondary_element.start_playing()

    monitor.seek(25.0)
    assert primary_element.position == secondary_element.position == 25.0

    secondary_element.position = 24.0
    assert monitor.tick() is None
    assert monitor.tick() == pytest.approx(1.0)
    assert secondary_element.position == 25.0


def test_no_correction_while_seeking(monitor, loaded, primary_element, secondary_element) -> None:
    primary_element.start_playing(position=10.0)
    secondary_element.start_playing(position=5.0)

    monitor.begin_seeking()
    assert monitor.tick() is None

    monitor.end_seeking()
    assert monitor.tick() == pytest.approx(5.0)


@pytest.mark.asyncio
async def test_seeking_watchdog_clears_flag(modes, coordinator, bus) -> None:
    monitor = SyncMonitor(modes, coordinator, bus=bus, policy=SyncPolicy(seeking_watchdog_seconds=0.05))

    monitor.begin_seeking()
    assert monitor.seeking
    await asyncio.sleep(0.1)

    assert not monitor.seeking


@pytest.mark.asyncio
async def test_paused_slave_follows_playing_master(monitor, coordinator, loaded, primary, secondary, primary_element) -> None:
    primary_element.start_playing(position=3.0)
    secondary.muted = False

    monitor.tick()
    await monitor.pending_resume

    assert secondary.is_playing
    assert secondary.muted
    assert not primary.muted
    assert coordinator.started == [(StreamId.SECONDARY, False, True)]


@pytest.mark.asyncio
async def test_failed_slave_resume_does_not_raise(monitor, loaded, primary_element, secondary_element) -> None:
    primary_element.start_playing()
    secondary_element.play_error = RuntimeError("NotAllowedError")

    monitor.tick()
    await monitor.pending_resume

    assert secondary_element.paused
    assert monitor.pending_resume.exception() is None


def test_playing_slave_follows_paused_master(monitor, loaded, secondary_element) -> None:
    secondary_element.start_playing()

    monitor.tick()

    assert secondary_element.paused


@pytest.mark.asyncio
async def test_poll_loop_runs_until_stopped(modes, coordinator, bus, recorder, loaded, primary_element, secondary_element) -> None:
    monitor = SyncMonitor(modes, coordinator, bus=bus, policy=SyncPolicy(poll_interval_ms=10))
    primary_element.start_playing(position=8.0)
    secondary_element.start_playing(position=6.0)

    monitor.start()
    assert monitor.running
    await asyncio.sleep(0.05)
    await monitor.stop()

    assert not monitor.running
    assert secondary_element.position == 8.0
    assert len(recorder.named(SYNC_CORRECTED)) == 1


@pytest.mark.asyncio
async def test_cancelled_slave_resume_never_plays(monitor, loaded, primary_element, secondary_element) -> None:
    primary_element.start_playing()
    monitor.tick()

    assert monitor.cancel_resume()
    await asyncio.sleep(0.01)

    assert secondary_element.paused
    assert monitor.pending_resume is None
    assert not monitor.cancel_resume()
