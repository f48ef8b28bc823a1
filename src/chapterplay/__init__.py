"""Synchronized dual-stream chapter playback."""

from .config import AttemptPolicy, PlayerSettings, SyncPolicy
from .device import DeviceProfile, UserGesture
from .errors import (
    AutoplayBlockedError,
    MediaDecodeError,
    MediaError,
    MediaNetworkError,
    NoSecondaryStreamError,
    PermissionDeniedError,
    PlaybackError,
    SyncDriftError,
)
from .events import EventBus
from .models import PresentationMode, ReadyState, StreamId, Track
from .playback import ChapterPlayer

__all__ = [
    "AttemptPolicy",
    "AutoplayBlockedError",
    "ChapterPlayer",
    "DeviceProfile",
    "EventBus",
    "MediaDecodeError",
    "MediaError",
    "MediaNetworkError",
    "NoSecondaryStreamError",
    "PermissionDeniedError",
    "PlaybackError",
    "PlayerSettings",
    "PresentationMode",
    "ReadyState",
    "StreamId",
    "SyncDriftError",
    "SyncPolicy",
    "Track",
    "UserGesture",
]

__version__ = "0.1.0"
