"""Stream identity, readiness and the handle wrapping one platform media element."""

from __future__ import annotations

import asyncio
import logging
import math
from enum import Enum, IntEnum
from typing import Callable, Protocol

from chapterplay.errors import MediaError

logger = logging.getLogger(__name__)


class StreamId(str, Enum):
    """Stable identity of a stream; the master/slave role is separate."""

    PRIMARY = "primary"
    SECONDARY = "secondary"


class ReadyState(IntEnum):
    EMPTY = 0
    LOADING = 1
    CAN_PLAY = 2
    CAN_PLAY_THROUGH = 3


class MediaListener(Protocol):
    def ready_state_changed(self, state: ReadyState) -> None: ...

    def ended(self) -> None: ...

    def failed(self, error: MediaError) -> None: ...


class MediaElement(Protocol):
    """Platform primitives for one stream.

    ``load`` must reset ``ready_state`` synchronously; progress after that is
    reported through the listener. ``play`` may be slow or raise when the
    platform refuses to start playback.
    """

    position: float
    muted: bool

    @property
    def duration(self) -> float: ...

    @property
    def paused(self) -> bool: ...

    @property
    def ready_state(self) -> ReadyState: ...

    def set_listener(self, listener: MediaListener | None) -> None: ...

    def load(self, source: str | None) -> None: ...

    async def play(self) -> None: ...

    def pause(self) -> None: ...


StreamCallback = Callable[["StreamHandle"], None]
StreamErrorCallback = Callable[["StreamHandle", MediaError], None]


class StreamHandle:
    """Thin wrapper around one media element, tracking source and readiness."""

    def __init__(self, stream_id: StreamId, element: MediaElement) -> None:
        self.id = stream_id
        self._element = element
        self._source: str | None = None
        self._ready_state = ReadyState.EMPTY
        self._waiters: list[tuple[ReadyState, asyncio.Future[None]]] = []
        self._ended_callbacks: list[StreamCallback] = []
        self._error_callbacks: list[StreamErrorCallback] = []
        self.last_error: MediaError | None = None
        element.set_listener(self)

    @property
    def element(self) -> MediaElement:
        return self._element

    @property
    def source(self) -> str | None:
        return self._source

    @property
    def has_source(self) -> bool:
        return self._source is not None

    @property
    def position(self) -> float:
        return self._element.position

    @position.setter
    def position(self, value: float) -> None:
        self._element.position = max(0.0, float(value))

    @property
    def duration(self) -> float:
        duration = self._element.duration
        return math.nan if duration is None else float(duration)

    @property
    def paused(self) -> bool:
        return self._element.paused

    @property
    def is_playing(self) -> bool:
        return not self._element.paused

    @property
    def muted(self) -> bool:
        return self._element.muted

    @muted.setter
    def muted(self, value: bool) -> None:
        self._element.muted = bool(value)

    @property
    def ready_state(self) -> ReadyState:
        return self._ready_state

    def load(self, source: str | None) -> None:
        """Assign a new source (or none) and start loading it."""
        self._source = source
        self.last_error = None
        self._ready_state = ReadyState.EMPTY if source is None else ReadyState.LOADING
        logger.debug("Loading %s stream: %s", self.id.value, source)
        self._element.load(source)

    def clear(self) -> None:
        self.load(None)

    async def play(self) -> None:
        await self._element.play()

    def pause(self) -> None:
        self._element.pause()

    async def wait_for(self, state: ReadyState) -> None:
        """Wait until the stream reports at least ``state``.

        Raises the stream's ``MediaError`` if loading fails first.
        """
        if self._ready_state >= state:
            return
        if self.last_error is not None:
            raise self.last_error
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append((state, future))
        try:
            await future
        finally:
            self._waiters = [(s, f) for s, f in self._waiters if f is not future]

    def on_ended(self, callback: StreamCallback) -> None:
        self._ended_callbacks.append(callback)

    def on_error(self, callback: StreamErrorCallback) -> None:
        self._error_callbacks.append(callback)

    # MediaListener

    def ready_state_changed(self, state: ReadyState) -> None:
        self._ready_state = ReadyState(state)
        for wanted, future in list(self._waiters):
            if self._ready_state >= wanted and not future.done():
                future.set_result(None)

    def ended(self) -> None:
        logger.debug("%s stream ended", self.id.value)
        for callback in list(self._ended_callbacks):
            callback(self)

    def failed(self, error: MediaError) -> None:
        self.last_error = error
        for _, future in list(self._waiters):
            if not future.done():
                future.set_exception(error)
        for callback in list(self._error_callbacks):
            callback(self, error)

    def __repr__(self) -> str:
        return (
            f"StreamHandle({self.id.value}, source={self._source!r}, "
            f"ready={self._ready_state.name}, paused={self.paused}, muted={self.muted})"
        )
