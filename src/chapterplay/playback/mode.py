"""Mode controller: owns the presentation mode and the single-audible-stream rule."""

from __future__ import annotations

import asyncio
import logging

from chapterplay.errors import NoSecondaryStreamError
from chapterplay.events import MODE_CHANGED, PLAYBACK_STATE_CHANGED, EventBus
from chapterplay.models.mode import ModeState, PresentationMode
from chapterplay.models.stream import StreamHandle, StreamId
from chapterplay.playback._tasks import BackgroundTasks
from chapterplay.playback.attempts import AttemptState, PlaybackAttempt, PlaybackAttemptCoordinator

logger = logging.getLogger(__name__)


class ModeController:
    """Switch between audio-only and presentation mode.

    Exactly one stream is unmuted outside of a switch: the master.
    """

    def __init__(
        self,
        primary: StreamHandle,
        secondary: StreamHandle,
        *,
        bus: EventBus,
        coordinator: PlaybackAttemptCoordinator,
        state: ModeState | None = None,
    ) -> None:
        if primary.id is not StreamId.PRIMARY or secondary.id is not StreamId.SECONDARY:
            raise ValueError("streams must be passed as (primary, secondary)")
        self._streams = {StreamId.PRIMARY: primary, StreamId.SECONDARY: secondary}
        self._bus = bus
        self._coordinator = coordinator
        self.state = state or ModeState()
        self._first_play = True
        self._tasks = BackgroundTasks()
        self.pending_resume: asyncio.Task | None = None

    @property
    def mode(self) -> PresentationMode:
        return self.state.mode

    @property
    def master(self) -> StreamHandle:
        return self._streams[self.state.master_id]

    @property
    def slave(self) -> StreamHandle:
        return self._streams[self.state.slave_id]

    def stream(self, stream_id: StreamId) -> StreamHandle:
        return self._streams[stream_id]

    @property
    def streams(self) -> tuple[StreamHandle, StreamHandle]:
        return self._streams[StreamId.PRIMARY], self._streams[StreamId.SECONDARY]

    def set_track_capabilities(self, has_secondary: bool) -> None:
        """Record whether the current track has a secondary stream.

        Presentation mode falls back to audio-only for tracks without one.
        """
        self.state.has_secondary = has_secondary
        if not has_secondary and self.state.mode is PresentationMode.PRESENTATION:
            logger.info("Track has no secondary stream; forcing audio-only mode")
            self.state.mode = PresentationMode.AUDIO_ONLY
            self._emit_mode_changed()

    def switch_mode(self, target: PresentationMode) -> None:
        """Switch to ``target``, resuming the new master if the old one was playing."""
        target = PresentationMode(target)
        if target is self.state.mode:
            return
        if target is PresentationMode.PRESENTATION and not self.state.has_secondary:
            raise NoSecondaryStreamError("Current track has no secondary stream")

        previous_master = self.master
        was_playing = previous_master.is_playing
        carried_position = previous_master.position

        for stream in self.streams:
            stream.pause()
        self._coordinator.cancel(previous_master.id)

        self.state.mode = target
        self.apply_mute_policy()
        new_master = self.master
        if new_master is not previous_master:
            new_master.position = carried_position

        logger.info(
            "Switched to %s mode (master: %s, was playing: %s)",
            target.value,
            new_master.id.value,
            was_playing,
        )
        self._emit_mode_changed()

        if was_playing:
            self.pending_resume = self._tasks.spawn(
                self._resume(new_master), name="mode-switch-resume"
            )

    async def _resume(self, stream: StreamHandle) -> None:
        if stream is not self.master:
            return
        attempt = await self.start_master()
        if attempt.state is AttemptState.EXHAUSTED:
            logger.info("Resume after mode switch was blocked; waiting for an explicit play")
        elif attempt.state is AttemptState.ABANDONED:
            logger.debug("Resume after mode switch was abandoned")

    async def start_master(self, direct_gesture: bool = False) -> PlaybackAttempt:
        """Start the current master through the coordinator.

        Announces ``is_playing`` on success; the finished attempt is returned
        either way.
        """
        self.prepare_play()
        attempt = await self._coordinator.start(self.master, direct_gesture=direct_gesture)
        if attempt.state is AttemptState.SUCCEEDED:
            self.note_playback_started()
            self._bus.emit(PLAYBACK_STATE_CHANGED, is_playing=True)
        return attempt

    def apply_mute_policy(self) -> None:
        """Unmute the master and mute the other stream, unconditionally."""
        self.master.muted = False
        self.slave.muted = True

    def enforce_mute_policy(self) -> None:
        """Correct mute flags only where they break the single-audible rule."""
        master, slave = self.master, self.slave
        if master.muted:
            master.muted = False
        if not slave.muted:
            logger.debug("%s stream was audible as slave; muting", slave.id.value)
            slave.muted = True

    def prepare_play(self) -> None:
        """Set mute flags before a play.

        Until the first successful play neither flag is trusted, so both are
        assigned explicitly; afterwards only violations are corrected.
        """
        if self._first_play:
            logger.debug("No successful play yet; assigning mute flags explicitly")
            self.apply_mute_policy()
        else:
            self.enforce_mute_policy()

    def note_playback_started(self) -> None:
        self._first_play = False

    @property
    def first_play_pending(self) -> bool:
        return self._first_play

    def cancel_resume(self) -> bool:
        """Drop a resume scheduled by a mode switch; return True if one was pending."""
        task = self.pending_resume
        self.pending_resume = None
        if task is None or task.done():
            return False
        task.cancel()
        logger.debug("Cancelled pending resume after mode switch")
        return True

    async def close(self) -> None:
        await self._tasks.close()

    def _emit_mode_changed(self) -> None:
        self._bus.emit(MODE_CHANGED, mode=self.state.mode, master_id=self.state.master_id)
