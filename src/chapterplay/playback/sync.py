"""Sync monitor: keeps the slave stream within the drift threshold of the master."""

from __future__ import annotations

import asyncio
import logging
import math
from contextlib import suppress

from chapterplay.config import SyncPolicy
from chapterplay.errors import ErrorJournal, SyncDriftError
from chapterplay.events import SYNC_CORRECTED, EventBus
from chapterplay.models.stream import StreamHandle
from chapterplay.playback._tasks import BackgroundTasks
from chapterplay.playback.attempts import AttemptState, PlaybackAttemptCoordinator
from chapterplay.playback.mode import ModeController

logger = logging.getLogger(__name__)


class SyncMonitor:
    """Poll both streams, correct drift and mirror the master's play state.

    Every tick recomputes drift from the current positions, so a repeated or
    overlapping correction is harmless.
    """

    def __init__(
        self,
        modes: ModeController,
        coordinator: PlaybackAttemptCoordinator,
        *,
        bus: EventBus,
        policy: SyncPolicy | None = None,
        journal: ErrorJournal | None = None,
    ) -> None:
        self._modes = modes
        self._coordinator = coordinator
        self._bus = bus
        self._policy = policy or SyncPolicy()
        self._journal = journal
        self._seeking = False
        self._skip_next_tick = False
        self._task: asyncio.Task | None = None
        self._watchdog: asyncio.TimerHandle | None = None
        self._tasks = BackgroundTasks()
        self.pending_resume: asyncio.Task | None = None

    @property
    def policy(self) -> SyncPolicy:
        return self._policy

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def seeking(self) -> bool:
        return self._seeking

    def start(self) -> None:
        """Start the polling loop on the running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="sync-monitor")
        logger.debug("Sync monitor started (every %d ms)", self._policy.poll_interval_ms)

    async def stop(self) -> None:
        """Stop polling and drop pending slave resumes."""
        self._cancel_watchdog()
        if self._task is not None:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        await self._tasks.close()
        logger.debug("Sync monitor stopped")

    async def _run(self) -> None:
        interval = self._policy.poll_interval_ms / 1000.0
        while True:
            await asyncio.sleep(interval)
            try:
                self.tick()
            except Exception:  # noqa: BLE001
                logger.exception("Sync tick failed; retrying on the next tick")

    def begin_seeking(self) -> None:
        """Suppress corrections while the user scrubs."""
        self._seeking = True
        self._cancel_watchdog()
        with suppress(RuntimeError):
            loop = asyncio.get_running_loop()
            self._watchdog = loop.call_later(
                self._policy.seeking_watchdog_seconds, self._seeking_timed_out
            )

    def end_seeking(self) -> None:
        self._seeking = False
        self._cancel_watchdog()

    def _seeking_timed_out(self) -> None:
        self._watchdog = None
        if self._seeking:
            logger.warning(
                "Seeking not finished after %.1fs; resuming sync",
                self._policy.seeking_watchdog_seconds,
            )
            self._seeking = False

    def _cancel_watchdog(self) -> None:
        if self._watchdog is not None:
            self._watchdog.cancel()
            self._watchdog = None

    def cancel_resume(self) -> bool:
        """Drop a slave resume that has not finished yet."""
        task = self.pending_resume
        self.pending_resume = None
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def seek(self, position: float) -> None:
        """Move both streams to ``position`` and skip correction for one tick."""
        for stream in self._modes.streams:
            stream.position = position
        self._skip_next_tick = True

    def tick(self) -> float | None:
        """Run one sync pass; return the corrected drift, if a correction was made."""
        if self._seeking:
            return None
        if self._skip_next_tick:
            self._skip_next_tick = False
            return None
        if not self._modes.state.has_secondary:
            return None

        master, slave = self._modes.master, self._modes.slave
        if master.paused and slave.paused:
            return None

        corrected = self._correct_drift(master, slave)
        self._mirror_play_state(master, slave)
        return corrected

    def _correct_drift(self, master: StreamHandle, slave: StreamHandle) -> float | None:
        drift = abs(master.position - slave.position)
        if drift <= self._policy.drift_threshold_seconds:
            return None

        target = master.position
        limit = self._correction_limit(master, slave)
        if limit is not None and target > limit:
            error = SyncDriftError(drift, target, limit)
            if self._journal is not None:
                self._journal.record(error, level=logging.WARNING)
            else:
                logger.warning("%s", error)
            return None

        logger.debug("Streams drifted by %.2fs; moving %s to %.2fs", drift, slave.id.value, target)
        slave.position = target
        self._bus.emit(SYNC_CORRECTED, drift_seconds=drift)
        return drift

    def _correction_limit(self, master: StreamHandle, slave: StreamHandle) -> float | None:
        durations = [d for d in (master.duration, slave.duration) if math.isfinite(d) and d > 0]
        if not durations:
            return None
        return min(durations) - self._policy.end_of_stream_guard_seconds

    def _mirror_play_state(self, master: StreamHandle, slave: StreamHandle) -> None:
        if master.is_playing and slave.paused:
            if not slave.has_source:
                return
            if self.pending_resume is not None and not self.pending_resume.done():
                return
            self._modes.enforce_mute_policy()
            logger.debug("Master playing; starting %s stream muted", slave.id.value)
            self.pending_resume = self._tasks.spawn(self._resume_slave(slave), name="slave-resume")
        elif master.paused and slave.is_playing:
            logger.debug("Master paused; pausing %s stream", slave.id.value)
            slave.pause()
            self._modes.enforce_mute_policy()

    async def _resume_slave(self, slave: StreamHandle) -> None:
        attempt = await self._coordinator.start(slave, silent=True)
        if attempt.state is not AttemptState.SUCCEEDED:
            reasons = "; ".join(failure.reason for failure in attempt.failures) or attempt.state.value
            logger.warning("Could not start %s stream (%s); retrying next tick", slave.id.value, reasons)
