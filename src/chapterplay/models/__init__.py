"""Data structures shared across the player."""

from .mode import ModeState, PresentationMode
from .stream import MediaElement, MediaListener, ReadyState, StreamHandle, StreamId
from .track import Track

__all__ = [
    "MediaElement",
    "MediaListener",
    "ModeState",
    "PresentationMode",
    "ReadyState",
    "StreamHandle",
    "StreamId",
    "Track",
]
