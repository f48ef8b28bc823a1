"""Shared pytest fixtures and fakes."""

from __future__ import annotations

import asyncio
from functools import partial
from typing import Any

import pytest

from chapterplay import events as event_names
from chapterplay.config import AttemptPolicy
from chapterplay.errors import MediaError
from chapterplay.events import EventBus
from chapterplay.models.stream import MediaListener, ReadyState, StreamHandle, StreamId
from chapterplay.playback.attempts import PlaybackAttemptCoordinator
from chapterplay.playback.mode import ModeController

SAMPLE_RATE = 22_050
BYTES_PER_FRAME = 2  # simulate mono, 16-bit samples

ALL_EVENTS = (
    event_names.MODE_CHANGED,
    event_names.SYNC_CORRECTED,
    event_names.PLAYBACK_ATTEMPT_EXHAUSTED,
    event_names.TRACK_LOADING_STARTED,
    event_names.TRACK_READY,
    event_names.PLAYBACK_STATE_CHANGED,
    event_names.TRACK_ENDED,
    event_names.MEDIA_ERROR,
    event_names.PLAYER_ERROR,
    event_names.CAPABILITY_DEGRADED,
)


class FakeElement:
    """In-memory media element; records play/pause calls on a shared timeline."""

    def __init__(
        self,
        name: str,
        timeline: list[tuple[str, str]] | None = None,
        *,
        duration: float | None = 60.0,
        auto_ready: bool = True,
    ) -> None:
        self.name = name
        self.timeline = timeline if timeline is not None else []
        self.position = 0.0
        self.muted = False
        self.duration = duration
        self.auto_ready = auto_ready
        self.source: str | None = None
        self.ready_state = ReadyState.EMPTY
        self.play_error: BaseException | None = None
        self.play_delay = 0.0
        self.play_calls = 0
        self._paused = True
        self._listener: MediaListener | None = None

    @property
    def paused(self) -> bool:
        return self._paused

    def set_listener(self, listener: MediaListener | None) -> None:
        self._listener = listener

    def load(self, source: str | None) -> None:
        self.source = source
        self.position = 0.0
        self._paused = True
        self.timeline.append((self.name, "load"))
        if source is None:
            self.report_ready(ReadyState.EMPTY)
        elif self.auto_ready:
            self.report_ready(ReadyState.CAN_PLAY_THROUGH)
        else:
            self.ready_state = ReadyState.LOADING

    async def play(self) -> None:
        self.play_calls += 1
        self.timeline.append((self.name, "play-requested"))
        if self.play_delay:
            await asyncio.sleep(self.play_delay)
        if self.play_error is not None:
            raise self.play_error
        self._paused = False
        self.timeline.append((self.name, "play"))

    def pause(self) -> None:
        self._paused = True
        self.timeline.append((self.name, "pause"))

    def start_playing(self, position: float | None = None) -> None:
        """Put the element into the playing state without going through play()."""
        self._paused = False
        if position is not None:
            self.position = position

    def report_ready(self, state: ReadyState) -> None:
        self.ready_state = state
        if self._listener is not None:
            self._listener.ready_state_changed(state)

    def report_error(self, error: MediaError) -> None:
        if self._listener is not None:
            self._listener.failed(error)

    def report_ended(self) -> None:
        self._paused = True
        if self._listener is not None:
            self._listener.ended()


class EventRecorder:
    def __init__(self, bus: EventBus) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []
        for name in ALL_EVENTS:
            bus.subscribe(name, partial(self._record, name))

    def _record(self, name: str, payload: dict[str, Any]) -> None:
        self.events.append((name, payload))

    def named(self, name: str) -> list[dict[str, Any]]:
        return [payload for event, payload in self.events if event == name]


class RecordingCoordinator(PlaybackAttemptCoordinator):
    """Coordinator that remembers every start request."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.started: list[tuple[StreamId, bool, bool]] = []

    async def start(self, stream, direct_gesture=False, **kwargs):
        self.started.append((stream.id, direct_gesture, kwargs.get("silent", False)))
        return await super().start(stream, direct_gesture, **kwargs)


class FakeSound:
    def __init__(self, identifier: str, length: float, raw: bytes) -> None:
        self.identifier = identifier
        self.volume = 1.0
        self._length = length
        self._raw = raw

    def set_volume(self, volume: float) -> None:
        self.volume = volume

    def get_length(self) -> float:
        return self._length

    def get_raw(self) -> bytes:
        return self._raw


class FakeChannel:
    def __init__(self, mixer: "FakeMixer") -> None:
        self._mixer = mixer
        self._busy = False
        self.volume = 1.0
        self.played: list[FakeSound] = []
        self.stopped = 0
        self._start_time_ms: float = 0.0
        self.current_sound: FakeSound | None = None

    def play(self, sound: FakeSound, loops: int = 0, maxtime: int = 0, fade_ms: int = 0) -> None:
        self._busy = True
        self.current_sound = sound
        self.played.append(sound)
        self._start_time_ms = self._mixer.current_time_ms

    def stop(self) -> None:
        self.stopped += 1
        self._busy = False
        self.current_sound = None

    def get_busy(self) -> bool:
        if not self._busy or not self.current_sound:
            return False
        elapsed = max(0.0, (self._mixer.current_time_ms - self._start_time_ms) / 1000.0)
        playing = elapsed < self.current_sound.get_length()
        if not playing:
            self._busy = False
            self.current_sound = None
        return playing

    def set_volume(self, volume: float) -> None:
        self.volume = volume


class FakeMixer:
    def __init__(self) -> None:
        self._init = False
        self.channels = [FakeChannel(self)]
        self.sounds: list[FakeSound] = []
        self.length_map: dict[str, float] = {}
        self.missing: set[str] = set()
        self.no_free_channel = False
        self.current_time_ms: float = 0.0

    def get_init(self):
        if not self._init:
            return None
        return SAMPLE_RATE, -16, 1

    def init(self) -> None:
        self._init = True

    def Sound(self, *args, **kwargs) -> FakeSound:  # noqa: N802 - mirrors pygame API
        if "buffer" in kwargs:
            raw = bytes(kwargs["buffer"])
            length = len(raw) / (BYTES_PER_FRAME * SAMPLE_RATE)
            sound = FakeSound("<buffer>", length, raw)
        else:
            path = args[0]
            if path in self.missing:
                raise FileNotFoundError(path)
            length = self.length_map.get(path, 1.0)
            frame_count = int(length * SAMPLE_RATE)
            raw = b"x" * max(1, frame_count * BYTES_PER_FRAME)
            sound = FakeSound(path, length, raw)
        self.sounds.append(sound)
        return sound

    def find_channel(self) -> FakeChannel | None:
        if self.no_free_channel:
            return None
        return self.channels[0]

    def Channel(self, index: int) -> FakeChannel:  # noqa: N802 - mirrors pygame API
        return self.channels[index]

    def quit(self) -> None:
        self._init = False

    def tick(self, milliseconds: float) -> None:
        self.current_time_ms += milliseconds


@pytest.fixture
def timeline() -> list[tuple[str, str]]:
    return []


@pytest.fixture
def primary_element(timeline) -> FakeElement:
    return FakeElement("primary", timeline)


@pytest.fixture
def secondary_element(timeline) -> FakeElement:
    return FakeElement("secondary", timeline)


@pytest.fixture
def primary(primary_element) -> StreamHandle:
    return StreamHandle(StreamId.PRIMARY, primary_element)


@pytest.fixture
def secondary(secondary_element) -> StreamHandle:
    return StreamHandle(StreamId.SECONDARY, secondary_element)


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def recorder(bus) -> EventRecorder:
    return EventRecorder(bus)


@pytest.fixture
def fast_policy() -> AttemptPolicy:
    return AttemptPolicy(
        timeout_per_strategy_ms=50,
        mobile_timeout_per_strategy_ms=50,
        mobile_autoplay_delay_ms=10,
    )


@pytest.fixture
def coordinator(bus, fast_policy) -> RecordingCoordinator:
    return RecordingCoordinator(bus=bus, policy=fast_policy)


@pytest.fixture
def modes(primary, secondary, bus, coordinator) -> ModeController:
    return ModeController(primary, secondary, bus=bus, coordinator=coordinator)


@pytest.fixture
def fake_mixer() -> FakeMixer:
    return FakeMixer()


@pytest.fixture
def record_events():
    return EventRecorder
