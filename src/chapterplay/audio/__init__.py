"""pygame-backed platform layer for chapterplay."""

from .mixer import MixerElement
from .unlock import MixerUnlockPlatform

__all__ = ["MixerElement", "MixerUnlockPlatform"]
