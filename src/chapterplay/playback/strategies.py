"""Unlock strategies tried in order to get past autoplay restrictions.

Every strategy has the same shape, ``(stream) -> Awaitable[None]``: it resolves
once ``stream`` is playing and raises otherwise. Strategies other than
``DirectPlay`` perform a platform unlock step first and then retry ``play()``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol

from chapterplay.device import DeviceProfile
from chapterplay.models.stream import StreamHandle

logger = logging.getLogger(__name__)

DIRECT_PLAY = "DirectPlay"
PLATFORM_UNLOCK = "PlatformUnlock"
AUDIO_CONTEXT_UNLOCK = "AudioContextUnlock"
GESTURE_SIMULATION = "GestureSimulation"
SILENT_BUFFER_PLAYBACK = "SilentBufferPlayback"

PLATFORM_UNLOCK_VOLUME = 0.01
SILENT_BUFFER_VOLUME = 0.1
SILENT_CLIP_SECONDS = 0.1

UnlockStrategy = Callable[[StreamHandle], Awaitable[None]]


class UnlockPlatform(Protocol):
    """Platform tricks the unlock strategies are built from."""

    async def play_silent_clip(self, *, volume: float, seconds: float) -> None: ...

    async def open_audio_context(self) -> None: ...

    async def synthesize_gesture(self) -> None: ...


class PassiveUnlockPlatform:
    """Platform without unlock tricks; strategies reduce to plain retries."""

    async def play_silent_clip(self, *, volume: float, seconds: float) -> None:
        return None

    async def open_audio_context(self) -> None:
        return None

    async def synthesize_gesture(self) -> None:
        return None


@dataclass(slots=True, frozen=True)
class NamedStrategy:
    name: str
    run: UnlockStrategy


async def direct_play(stream: StreamHandle) -> None:
    await stream.play()


def platform_unlock(platform: UnlockPlatform, device: DeviceProfile) -> UnlockStrategy:
    """Play a near-silent clip through a temporary element on iOS, then retry."""

    async def run(stream: StreamHandle) -> None:
        if device.is_ios:
            logger.debug("Unlocking iOS audio with a near-silent clip")
            await platform.play_silent_clip(volume=PLATFORM_UNLOCK_VOLUME, seconds=SILENT_CLIP_SECONDS)
        await stream.play()

    return run


def audio_context_unlock(platform: UnlockPlatform) -> UnlockStrategy:
    async def run(stream: StreamHandle) -> None:
        await platform.open_audio_context()
        await stream.play()

    return run


def gesture_simulation(platform: UnlockPlatform) -> UnlockStrategy:
    async def run(stream: StreamHandle) -> None:
        await platform.synthesize_gesture()
        await stream.play()

    return run


def silent_buffer_playback(platform: UnlockPlatform) -> UnlockStrategy:
    async def run(stream: StreamHandle) -> None:
        await platform.play_silent_clip(volume=SILENT_BUFFER_VOLUME, seconds=SILENT_CLIP_SECONDS)
        await stream.play()

    return run


def build_chain(platform: UnlockPlatform, device: DeviceProfile) -> list[NamedStrategy]:
    """Return the full fallback chain in attempt order."""
    return [
        NamedStrategy(DIRECT_PLAY, direct_play),
        NamedStrategy(PLATFORM_UNLOCK, platform_unlock(platform, device)),
        NamedStrategy(AUDIO_CONTEXT_UNLOCK, audio_context_unlock(platform)),
        NamedStrategy(GESTURE_SIMULATION, gesture_simulation(platform)),
        NamedStrategy(SILENT_BUFFER_PLAYBACK, silent_buffer_playback(platform)),
        NamedStrategy(DIRECT_PLAY, direct_play),
    ]
