"""Playback core: mode control, synchronization, unlock attempts and track loading."""

from .attempts import AttemptState, PlaybackAttempt, PlaybackAttemptCoordinator
from .loader import TrackLoadSequencer
from .mode import ModeController
from .player import ChapterPlayer
from .strategies import NamedStrategy, PassiveUnlockPlatform, UnlockPlatform, UnlockStrategy, build_chain
from .sync import SyncMonitor

__all__ = [
    "AttemptState",
    "ChapterPlayer",
    "ModeController",
    "NamedStrategy",
    "PassiveUnlockPlatform",
    "PlaybackAttempt",
    "PlaybackAttemptCoordinator",
    "SyncMonitor",
    "TrackLoadSequencer",
    "UnlockPlatform",
    "UnlockStrategy",
    "build_chain",
]
