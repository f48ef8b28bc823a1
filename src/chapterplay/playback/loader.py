"""Track load sequencer: assigns sources, preloads and optionally starts playback."""

from __future__ import annotations

import asyncio
import logging

from chapterplay.config import AttemptPolicy
from chapterplay.device import DeviceProfile
from chapterplay.errors import AutoplayBlockedError, MediaError
from chapterplay.events import TRACK_LOADING_STARTED, TRACK_READY, EventBus
from chapterplay.models.stream import ReadyState, StreamHandle, StreamId
from chapterplay.models.track import Track
from chapterplay.playback._tasks import BackgroundTasks
from chapterplay.playback.attempts import AttemptState, PlaybackAttemptCoordinator
from chapterplay.playback.mode import ModeController

logger = logging.getLogger(__name__)


class TrackLoadSequencer:
    """Load tracks into the two streams.

    Each call to :meth:`load_track` starts a new generation; readiness
    watchers and autoplay retries belonging to an older generation are
    cancelled or ignored.
    """

    def __init__(
        self,
        modes: ModeController,
        coordinator: PlaybackAttemptCoordinator,
        *,
        bus: EventBus,
        device: DeviceProfile | None = None,
        policy: AttemptPolicy | None = None,
    ) -> None:
        self._modes = modes
        self._coordinator = coordinator
        self._bus = bus
        self._device = device or DeviceProfile()
        self._policy = policy or AttemptPolicy()
        self._tasks = BackgroundTasks()
        self._generation = 0
        self._track: Track | None = None
        self._audio_preloaded = False
        self._secondary_preloaded = False
        self._autoplay_state: AttemptState | None = None
        self._autoplay_cancelled = False

    @property
    def current_track(self) -> Track | None:
        return self._track

    @property
    def is_audio_preloaded(self) -> bool:
        return self._audio_preloaded

    @property
    def is_secondary_preloaded(self) -> bool:
        return self._secondary_preloaded

    async def load_track(
        self,
        track: Track,
        auto_play: bool = False,
        *,
        direct_gesture: bool = False,
    ) -> None:
        """Load ``track`` into both streams.

        With ``auto_play`` the master is started once the sources are
        assigned; :class:`AutoplayBlockedError` is raised if every strategy
        fails and no newer track has been loaded in the meantime.
        """
        self._generation += 1
        generation = self._generation
        self._tasks.cancel_all()
        self._modes.cancel_resume()

        primary, secondary = self._modes.streams
        for stream in (primary, secondary):
            stream.pause()
        self._coordinator.cancel(StreamId.PRIMARY)
        self._coordinator.cancel(StreamId.SECONDARY)

        self._track = track
        self._audio_preloaded = False
        self._secondary_preloaded = False
        self._autoplay_state = None
        self._autoplay_cancelled = False
        logger.info("Loading track %r (secondary: %s)", track.title or track.primary_src, track.has_secondary())
        self._bus.emit(TRACK_LOADING_STARTED, track=track)

        primary.load(track.primary_src)
        self._tasks.spawn(self._watch_preload(primary), name="primary-preload")

        if not track.has_secondary():
            secondary.clear()
        elif self._device.is_mobile:
            secondary.clear()
            self._tasks.spawn(
                self._load_secondary_after_primary(track.secondary_src), name="secondary-deferred-load"
            )
        else:
            secondary.load(track.secondary_src)
            self._tasks.spawn(self._watch_preload(secondary), name="secondary-preload")

        self._modes.set_track_capabilities(track.has_secondary())
        self._modes.apply_mute_policy()
        self._tasks.spawn(self._watch_ready(track, generation, auto_play, direct_gesture), name="track-ready")

        if not auto_play:
            return

        delay = self._policy.autoplay_delay_for(self._device)
        if delay > 0:
            logger.debug("Waiting %.1fs before autoplay on mobile", delay)
            await asyncio.sleep(delay)
            if generation != self._generation or self._autoplay_cancelled:
                return

        attempt = await self._modes.start_master(direct_gesture)
        if generation != self._generation:
            return
        self._autoplay_state = attempt.state
        if attempt.state is AttemptState.EXHAUSTED:
            raise AutoplayBlockedError(attempt.failures)

    async def _load_secondary_after_primary(self, source: str | None) -> None:
        primary, secondary = self._modes.streams
        try:
            await primary.wait_for(ReadyState.CAN_PLAY_THROUGH)
        except MediaError as exc:
            logger.debug("Primary failed to load, secondary stays unloaded: %s", exc)
            return
        logger.debug("Primary ready; loading secondary stream")
        secondary.load(source)
        await self._watch_preload(secondary)

    async def _watch_preload(self, stream: StreamHandle) -> None:
        try:
            await stream.wait_for(ReadyState.CAN_PLAY_THROUGH)
        except MediaError as exc:
            # Journaled by the player through the stream's error callback.
            logger.debug("Preloading %s stream failed: %s", stream.id.value, exc)
            return
        if stream.id is StreamId.PRIMARY:
            self._audio_preloaded = True
        else:
            self._secondary_preloaded = True
        logger.debug("%s stream preloaded", stream.id.value)

    async def _watch_ready(
        self,
        track: Track,
        generation: int,
        auto_play: bool,
        direct_gesture: bool,
    ) -> None:
        while True:
            master = self._modes.master
            try:
                await master.wait_for(ReadyState.CAN_PLAY_THROUGH)
            except MediaError as exc:
                logger.debug("Track %r never became ready: %s", track.title, exc)
                return
            if master is self._modes.master:
                break
            logger.debug("Master changed while loading; waiting for %s stream", self._modes.master.id.value)
        if generation != self._generation:
            return

        logger.info("Track %r ready", track.title or track.primary_src)
        self._bus.emit(TRACK_READY, track=track)

        if (
            auto_play
            and not self._autoplay_cancelled
            and self._autoplay_state is AttemptState.EXHAUSTED
            and self._modes.master.paused
        ):
            logger.info("Autoplay was blocked before the track was ready; retrying once")
            attempt = await self._modes.start_master(direct_gesture)
            if generation == self._generation:
                self._autoplay_state = attempt.state

    def cancel_autoplay(self) -> None:
        """Stop a pending autoplay of the current track from starting later."""
        self._autoplay_cancelled = True

    async def close(self) -> None:
        await self._tasks.close()
