"""High level player wiring the mode controller, sync monitor, coordinator and loader."""

from __future__ import annotations

import logging
import math
from typing import Any, Sequence

from chapterplay.config import PlayerSettings
from chapterplay.device import PermissionGate, UserGesture
from chapterplay.errors import (
    AutoplayBlockedError,
    ErrorJournal,
    ErrorRecord,
    MediaError,
    PermissionDeniedError,
    PlaybackError,
)
from chapterplay.events import (
    CAPABILITY_DEGRADED,
    MEDIA_ERROR,
    PLAYBACK_STATE_CHANGED,
    PLAYER_ERROR,
    TRACK_ENDED,
    EventBus,
)
from chapterplay.models.mode import PresentationMode
from chapterplay.models.stream import MediaElement, StreamHandle, StreamId
from chapterplay.models.track import Track
from chapterplay.playback.attempts import AttemptState, PlaybackAttempt, PlaybackAttemptCoordinator
from chapterplay.playback.loader import TrackLoadSequencer
from chapterplay.playback.mode import ModeController
from chapterplay.playback.strategies import NamedStrategy, UnlockPlatform
from chapterplay.playback.sync import SyncMonitor

logger = logging.getLogger(__name__)

DEFAULT_SKIP_SECONDS = 10.0


class ChapterPlayer:
    """Play a chapter's audio and optional 360° video as one synchronized unit.

    The host supplies two media elements and, optionally, an unlock platform
    and a permission gate. :meth:`start` must be awaited inside the running
    event loop before playback so the sync monitor can poll.
    """

    def __init__(
        self,
        primary_element: MediaElement,
        secondary_element: MediaElement,
        *,
        settings: PlayerSettings | None = None,
        bus: EventBus | None = None,
        unlock_platform: UnlockPlatform | None = None,
        strategies: Sequence[NamedStrategy] | None = None,
        permission_gate: PermissionGate | None = None,
    ) -> None:
        self.settings = settings or PlayerSettings()
        self.bus = bus or EventBus()
        self.journal = ErrorJournal(context_provider=self._error_context, on_record=self._publish_error)
        self._permission_gate = permission_gate
        self._resume_on_visible = False

        self.primary = StreamHandle(StreamId.PRIMARY, primary_element)
        self.secondary = StreamHandle(StreamId.SECONDARY, secondary_element)
        for handle in (self.primary, self.secondary):
            handle.on_ended(self._handle_ended)
            handle.on_error(self._handle_media_error)

        device = self.settings.device
        self.coordinator = PlaybackAttemptCoordinator(
            bus=self.bus,
            strategies=strategies,
            platform=unlock_platform,
            device=device,
            policy=self.settings.attempts,
        )
        self.modes = ModeController(self.primary, self.secondary, bus=self.bus, coordinator=self.coordinator)
        self.sync = SyncMonitor(
            self.modes,
            self.coordinator,
            bus=self.bus,
            policy=self.settings.sync,
            journal=self.journal,
        )
        self.loader = TrackLoadSequencer(
            self.modes,
            self.coordinator,
            bus=self.bus,
            device=device,
            policy=self.settings.attempts,
        )

    @property
    def mode(self) -> PresentationMode:
        return self.modes.mode

    @property
    def current_track(self) -> Track | None:
        return self.loader.current_track

    @property
    def is_playing(self) -> bool:
        return self.modes.master.is_playing

    @property
    def position(self) -> float:
        return self.modes.master.position

    @property
    def duration(self) -> float:
        return self.modes.master.duration

    async def start(self) -> None:
        self.sync.start()

    async def close(self) -> None:
        """Stop polling, abandon attempts and pause both streams."""
        await self.sync.stop()
        self.coordinator.cancel_all()
        await self.loader.close()
        await self.modes.close()
        for stream in self.modes.streams:
            stream.pause()
        logger.info("Player closed")

    async def load_track(
        self,
        track: Track,
        auto_play: bool = False,
        *,
        direct_gesture: bool | UserGesture | None = False,
    ) -> None:
        self.sync.cancel_resume()
        await self.loader.load_track(track, auto_play, direct_gesture=self._is_direct(direct_gesture))

    def switch_mode(self, mode: PresentationMode | str) -> None:
        self.modes.switch_mode(PresentationMode(mode))

    async def enter_presentation(self) -> None:
        """Switch to presentation mode, asking for device permissions on mobile.

        A refused permission is not fatal: the mode still changes and
        ``capability-degraded`` is emitted.
        """
        if self.settings.device.is_mobile and self._permission_gate is not None:
            try:
                await self._permission_gate()
            except PermissionDeniedError as exc:
                self.journal.record(exc, level=logging.WARNING)
                self.bus.emit(CAPABILITY_DEGRADED, reason=str(exc) or "permission denied")
        self.switch_mode(PresentationMode.PRESENTATION)

    async def play(self, direct_gesture: bool | UserGesture | None = False) -> PlaybackAttempt:
        """Start the master stream; raise :class:`AutoplayBlockedError` if nothing works.

        ``direct_gesture`` is either a flag or the last :class:`UserGesture`,
        which counts as direct only while it is fresh.
        """
        if self.current_track is None:
            raise PlaybackError("No track loaded")
        attempt = await self.modes.start_master(self._is_direct(direct_gesture))
        if attempt.state is AttemptState.EXHAUSTED:
            raise AutoplayBlockedError(attempt.failures)
        return attempt

    def pause(self) -> None:
        self.loader.cancel_autoplay()
        self.modes.cancel_resume()
        self.sync.cancel_resume()
        self.coordinator.cancel_all()
        for stream in self.modes.streams:
            stream.pause()
        self.bus.emit(PLAYBACK_STATE_CHANGED, is_playing=False)

    async def toggle_play_pause(self, direct_gesture: bool | UserGesture | None = True) -> None:
        master = self.modes.master
        if master.is_playing or self.coordinator.state_for(master.id) is AttemptState.ATTEMPTING:
            self.pause()
        else:
            await self.play(direct_gesture)

    def seek(self, position: float) -> None:
        duration = self.duration
        position = max(0.0, float(position))
        if math.isfinite(duration) and duration > 0:
            position = min(position, duration)
        self.sync.seek(position)

    def skip(self, seconds: float = DEFAULT_SKIP_SECONDS) -> None:
        self.seek(self.position + seconds)

    def begin_seeking(self) -> None:
        self.sync.begin_seeking()

    def end_seeking(self) -> None:
        self.sync.end_seeking()

    async def handle_visibility_change(self, hidden: bool) -> None:
        """Pause while the host is hidden and resume when it comes back."""
        if hidden:
            self._resume_on_visible = self.is_playing
            if self._resume_on_visible:
                logger.info("Host hidden; pausing playback")
                self.pause()
            return
        if not self._resume_on_visible:
            return
        self._resume_on_visible = False
        try:
            await self.play()
        except AutoplayBlockedError as exc:
            self.journal.record(exc, level=logging.WARNING)

    def _is_direct(self, gesture: bool | UserGesture | None) -> bool:
        if isinstance(gesture, UserGesture):
            return self.settings.attempts.is_direct(gesture)
        return bool(gesture)

    def _handle_ended(self, stream: StreamHandle) -> None:
        if stream is not self.modes.master:
            return
        self.modes.slave.pause()
        self.bus.emit(TRACK_ENDED, track=self.current_track)
        self.bus.emit(PLAYBACK_STATE_CHANGED, is_playing=False)

    def _handle_media_error(self, stream: StreamHandle, error: MediaError) -> None:
        self.journal.record(error, stream_id=stream.id.value, source=stream.source)
        self.bus.emit(MEDIA_ERROR, stream_id=stream.id, error=error)

    def _error_context(self) -> dict[str, Any]:
        track = self.current_track
        return {
            "mode": self.modes.mode.value,
            "is_mobile": self.settings.device.is_mobile,
            "track": track.title if track is not None else None,
        }

    def _publish_error(self, record: ErrorRecord) -> None:
        self.bus.emit(PLAYER_ERROR, record=record)
