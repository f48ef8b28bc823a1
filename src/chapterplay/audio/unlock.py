"""Unlock primitives built on pygame: silent mixer buffers and posted input events."""

from __future__ import annotations

import asyncio
import logging

import pygame

logger = logging.getLogger(__name__)


class MixerUnlockPlatform:
    """Implements :class:`chapterplay.playback.strategies.UnlockPlatform` with pygame."""

    def __init__(
        self,
        *,
        mixer: pygame.mixer = pygame.mixer,
        events: pygame.event = pygame.event,
        display: pygame.display = pygame.display,
    ) -> None:
        self._mixer = mixer
        self._events = events
        self._display = display

    async def play_silent_clip(self, *, volume: float, seconds: float) -> None:
        """Play ``seconds`` of silence at ``volume`` on a free channel."""
        sound = self._silence(seconds)
        sound.set_volume(max(0.0, min(volume, 1.0)))
        channel = self._free_channel()
        channel.play(sound)
        try:
            await asyncio.sleep(seconds)
        finally:
            channel.stop()

    async def open_audio_context(self) -> None:
        """Make sure the mixer is open and push a single silent frame through it."""
        if not self._mixer.get_init():
            logger.debug("Opening the audio mixer")
            self._mixer.init()
        self._free_channel().play(self._silence(0.0))

    async def synthesize_gesture(self) -> None:
        """Post a click and a tap to the event queue of the host window."""
        if not self._display.get_init():
            raise RuntimeError("No display to deliver a synthesized gesture to")
        for event_type in (pygame.MOUSEBUTTONDOWN, pygame.MOUSEBUTTONUP):
            self._events.post(self._events.Event(event_type, pos=(0, 0), button=1))
        for event_type in (pygame.FINGERDOWN, pygame.FINGERUP):
            self._events.post(
                self._events.Event(event_type, touch_id=0, finger_id=0, x=0.0, y=0.0, dx=0.0, dy=0.0)
            )

    def _silence(self, seconds: float) -> pygame.mixer.Sound:
        init_info = self._mixer.get_init()
        if not init_info:
            raise RuntimeError("Audio mixer is not initialised")
        frequency, format_bits, channels = init_info
        bytes_per_frame = max(1, abs(format_bits) // 8) * max(1, channels)
        frames = max(1, int(seconds * frequency))
        return self._mixer.Sound(buffer=bytes(frames * bytes_per_frame))

    def _free_channel(self) -> pygame.mixer.Channel:
        channel = self._mixer.find_channel()
        if channel is None:
            raise RuntimeError("No free mixer channel for the unlock sound")
        return channel
