"""Device capabilities and user-gesture signals supplied by the host."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Awaitable, Callable

DEFAULT_GESTURE_WINDOW_SECONDS = 3.0

# Awaited before presentation mode on mobile; raises PermissionDeniedError on refusal.
PermissionGate = Callable[[], Awaitable[None]]


@dataclass(slots=True, frozen=True)
class DeviceProfile:
    """What the device-detection collaborator knows about the current device."""

    is_mobile: bool = False
    is_ios: bool = False


@dataclass(slots=True, frozen=True)
class UserGesture:
    """Timestamp of the last direct user interaction, owned by the caller."""

    timestamp: float

    @classmethod
    def now(cls, clock: Callable[[], float] = time.monotonic) -> "UserGesture":
        return cls(timestamp=clock())

    def is_fresh(
        self,
        now: float | None = None,
        *,
        window: float = DEFAULT_GESTURE_WINDOW_SECONDS,
    ) -> bool:
        """Return True while the gesture is recent enough to count as direct."""
        current = time.monotonic() if now is None else now
        return 0.0 <= current - self.timestamp <= window
