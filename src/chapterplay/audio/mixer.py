"""Media element backed by pygame.mixer for locally stored chapter audio."""

from __future__ import annotations

import logging
import math
import time
from pathlib import Path
from typing import Callable

import pygame

from chapterplay.errors import MediaError, media_error_from_code
from chapterplay.models.stream import MediaListener, ReadyState

logger = logging.getLogger(__name__)

MEDIA_ERR_NETWORK = 2
MEDIA_ERR_SRC_NOT_SUPPORTED = 4


class MixerElement:
    """Play one audio source through a pygame mixer channel.

    The whole file is decoded into memory on :meth:`load`, so the element is
    ready to play through as soon as loading returns. Seeking restarts the
    channel on a slice of the raw sample buffer.
    """

    def __init__(
        self,
        *,
        mixer: pygame.mixer = pygame.mixer,
        time_provider: Callable[[], float] | None = None,
    ) -> None:
        self._mixer = mixer
        if not self._mixer.get_init():
            self._mixer.init()

        init_info = self._mixer.get_init()
        if init_info:
            frequency, format_bits, channels = init_info
            self._sample_rate: int | None = frequency
            bytes_per_sample = max(1, abs(format_bits) // 8)
            self._bytes_per_frame: int | None = bytes_per_sample * max(1, channels)
        else:
            self._sample_rate = None
            self._bytes_per_frame = None

        self._listener: MediaListener | None = None
        self._source: str | None = None
        self._sound: pygame.mixer.Sound | None = None
        self._raw: bytes | None = None
        self._length: float | None = None
        self._ready_state = ReadyState.EMPTY
        self._channel: pygame.mixer.Channel | None = None
        self._start_timestamp: float | None = None
        self._offset = 0.0
        self._paused = True
        self._muted = False
        self._clock: Callable[[], float] = time_provider or time.monotonic

    def set_listener(self, listener: MediaListener | None) -> None:
        self._listener = listener

    @property
    def source(self) -> str | None:
        return self._source

    @property
    def ready_state(self) -> ReadyState:
        return self._ready_state

    @property
    def duration(self) -> float:
        return self._length if self._length is not None else math.nan

    @property
    def paused(self) -> bool:
        self._check_finished()
        return self._paused

    @property
    def muted(self) -> bool:
        return self._muted

    @muted.setter
    def muted(self, value: bool) -> None:
        self._muted = bool(value)
        if self._channel is not None:
            self._channel.set_volume(0.0 if self._muted else 1.0)

    @property
    def position(self) -> float:
        self._check_finished()
        if self._paused or self._start_timestamp is None:
            return self._offset
        position = self._offset + max(0.0, self._clock() - self._start_timestamp)
        if self._length:
            position = min(position, self._length)
        return position

    @position.setter
    def position(self, value: float) -> None:
        value = max(0.0, float(value))
        if self._length:
            value = min(value, self._length)
        if self._paused or self._sound is None:
            self._offset = value
            return
        self._start(value)

    def load(self, source: str | None) -> None:
        """Decode ``source`` into memory, reporting progress to the listener."""
        self._stop_channel()
        self._source = source
        self._sound = None
        self._raw = None
        self._length = None
        self._offset = 0.0
        self._paused = True
        if source is None:
            self._set_ready_state(ReadyState.EMPTY)
            return

        self._set_ready_state(ReadyState.LOADING)
        try:
            sound = self._mixer.Sound(Path(source).as_posix())
        except FileNotFoundError:
            self._fail(media_error_from_code(MEDIA_ERR_NETWORK, source=source))
            return
        except pygame.error as exc:
            logger.debug("pygame could not decode %s: %s", source, exc)
            self._fail(media_error_from_code(MEDIA_ERR_SRC_NOT_SUPPORTED, source=source))
            return

        self._sound = sound
        try:
            self._length = float(sound.get_length())
        except (AttributeError, TypeError):
            self._length = None
        try:
            raw = sound.get_raw()
        except (AttributeError, pygame.error):
            raw = None
        self._raw = raw or None
        logger.debug("Loaded %s (%.2fs)", source, self._length or 0.0)
        self._set_ready_state(ReadyState.CAN_PLAY_THROUGH)

    async def play(self) -> None:
        if self._sound is None:
            raise media_error_from_code(MEDIA_ERR_SRC_NOT_SUPPORTED, source=self._source)
        if not self.paused:
            return
        start = self._offset
        if self._length and start >= self._length:
            start = 0.0
        self._paused = False
        self._start(start)

    def pause(self) -> None:
        if self.paused:
            return
        self._offset = self.position
        self._stop_channel()
        self._paused = True

    def close(self) -> None:
        self.pause()
        self._stop_channel()

    def supports_seeking(self) -> bool:
        return self._raw is not None and self._sample_rate is not None and self._bytes_per_frame is not None

    def _start(self, start: float) -> None:
        sound, actual_start = self._prepare_sound(start)
        if sound is None:
            self._stop_channel()
            self._offset = actual_start
            if not self._paused:
                self._finish()
            return

        channel = self._channel or self._mixer.find_channel()
        if channel is None:
            channel = self._mixer.Channel(0)
        channel.play(sound)
        channel.set_volume(0.0 if self._muted else 1.0)
        self._channel = channel
        self._offset = actual_start
        self._start_timestamp = self._clock()

    def _prepare_sound(self, start: float) -> tuple[pygame.mixer.Sound | None, float]:
        base_sound = self._sound
        if start <= 0.0 or not self.supports_seeking():
            return base_sound, 0.0

        raw = self._raw
        offset_frames = int(start * self._sample_rate)
        aligned_offset = offset_frames * self._bytes_per_frame
        if aligned_offset >= len(raw):
            return None, self._length or start

        try:
            sound = self._mixer.Sound(buffer=raw[aligned_offset:])
        except (TypeError, pygame.error):
            return base_sound, 0.0

        actual_start = aligned_offset / (self._bytes_per_frame * self._sample_rate)
        if self._length:
            actual_start = min(actual_start, self._length)
        return sound, actual_start

    def _check_finished(self) -> None:
        if self._paused or self._start_timestamp is None or self._channel is None:
            return
        if self._channel.get_busy():
            return
        self._finish()

    def _finish(self) -> None:
        self._offset = self._length or self._offset
        self._channel = None
        self._start_timestamp = None
        self._paused = True
        logger.debug("Reached the end of %s", self._source)
        if self._listener is not None:
            self._listener.ended()

    def _stop_channel(self) -> None:
        if self._channel is not None and self._channel.get_busy():
            self._channel.stop()
        self._channel = None
        self._start_timestamp = None

    def _set_ready_state(self, state: ReadyState) -> None:
        self._ready_state = state
        if self._listener is not None:
            self._listener.ready_state_changed(state)

    def _fail(self, error: MediaError) -> None:
        logger.warning("Could not load %s: %s", self._source, error)
        self._ready_state = ReadyState.EMPTY
        if self._listener is not None:
            self._listener.failed(error)
