"""Tunable policies for synchronization and playback attempts."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Mapping

from chapterplay.device import DEFAULT_GESTURE_WINDOW_SECONDS, DeviceProfile, UserGesture


@dataclass(slots=True, frozen=True)
class SyncPolicy:
    """Drift correction constants for the sync monitor."""

    drift_threshold_seconds: float = 0.3
    poll_interval_ms: int = 1000
    end_of_stream_guard_seconds: float = 0.5
    seeking_watchdog_seconds: float = 5.0

    def __post_init__(self) -> None:
        if self.drift_threshold_seconds <= 0:
            raise ValueError("drift_threshold_seconds must be positive")
        if self.poll_interval_ms <= 0:
            raise ValueError("poll_interval_ms must be positive")
        if self.end_of_stream_guard_seconds < 0:
            raise ValueError("end_of_stream_guard_seconds must not be negative")


@dataclass(slots=True, frozen=True)
class AttemptPolicy:
    """Timing of the playback-attempt strategy chain."""

    timeout_per_strategy_ms: int = 2000
    mobile_timeout_per_strategy_ms: int = 3000
    mobile_autoplay_delay_ms: int = 1500
    gesture_freshness_seconds: float = DEFAULT_GESTURE_WINDOW_SECONDS

    def __post_init__(self) -> None:
        if self.timeout_per_strategy_ms <= 0 or self.mobile_timeout_per_strategy_ms <= 0:
            raise ValueError("strategy timeouts must be positive")
        if self.mobile_autoplay_delay_ms < 0:
            raise ValueError("mobile_autoplay_delay_ms must not be negative")
        if self.gesture_freshness_seconds < 0:
            raise ValueError("gesture_freshness_seconds must not be negative")

    def is_direct(self, gesture: UserGesture | None, now: float | None = None) -> bool:
        """Whether ``gesture`` is recent enough to count as a direct user action."""
        if gesture is None:
            return False
        return gesture.is_fresh(now, window=self.gesture_freshness_seconds)

    def timeout_for(self, device: DeviceProfile) -> int:
        """Per-strategy timeout in milliseconds for ``device``."""
        if device.is_mobile:
            return self.mobile_timeout_per_strategy_ms
        return self.timeout_per_strategy_ms

    def autoplay_delay_for(self, device: DeviceProfile) -> float:
        """Seconds to wait before an autoplay attempt after a track load."""
        return self.mobile_autoplay_delay_ms / 1000.0 if device.is_mobile else 0.0


@dataclass(slots=True, frozen=True)
class PlayerSettings:
    """Everything the player needs to know about its environment."""

    sync: SyncPolicy = field(default_factory=SyncPolicy)
    attempts: AttemptPolicy = field(default_factory=AttemptPolicy)
    device: DeviceProfile = field(default_factory=DeviceProfile)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PlayerSettings":
        """Build settings from nested plain dicts, e.g. a parsed config file.

        >>> PlayerSettings.from_mapping({"device": {"is_mobile": True}}).device.is_mobile
        True
        """
        sections = {"sync": SyncPolicy, "attempts": AttemptPolicy, "device": DeviceProfile}
        unknown = set(data) - set(sections)
        if unknown:
            raise ValueError(f"Unknown settings section(s): {', '.join(sorted(unknown))}")

        values: dict[str, Any] = {}
        for name, section_type in sections.items():
            section = data.get(name)
            if section is None:
                continue
            allowed = {f.name for f in fields(section_type)}
            extra = set(section) - allowed
            if extra:
                raise ValueError(f"Unknown {name} setting(s): {', '.join(sorted(extra))}")
            values[name] = section_type(**section)
        return cls(**values)
