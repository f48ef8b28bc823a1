"""Error taxonomy and the bounded error journal."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

logger = logging.getLogger(__name__)

MEDIA_ERROR_MESSAGES = {
    1: "The fetching process for the media resource was aborted by the user agent.",
    2: "A network error occurred while fetching the media resource.",
    3: "An error occurred while decoding the media resource.",
    4: "The media resource is not supported.",
}


class PlaybackError(Exception):
    """Base class for every error raised by chapterplay."""


class MediaError(PlaybackError):
    """A failure reported by the platform media stream itself."""

    def __init__(self, message: str, *, code: int | None = None, source: str | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.source = source


class MediaDecodeError(MediaError):
    """The stream could not be decoded or its format is unsupported."""


class MediaNetworkError(MediaError):
    """Fetching the stream failed or was aborted."""


class NoSecondaryStreamError(PlaybackError):
    """Presentation mode was requested for a track without a secondary source."""


class SyncDriftError(PlaybackError):
    """Drift correction was deferred because it would seek past the end of a stream."""

    def __init__(self, drift_seconds: float, target: float, limit: float) -> None:
        super().__init__(
            f"Drift of {drift_seconds:.2f}s left uncorrected: target {target:.2f}s "
            f"is beyond the {limit:.2f}s end-of-stream guard"
        )
        self.drift_seconds = drift_seconds
        self.target = target
        self.limit = limit


@dataclass(slots=True, frozen=True)
class StrategyFailure:
    """Why a single unlock strategy did not start playback."""

    name: str
    reason: str

    def as_dict(self) -> dict[str, str]:
        return {"name": self.name, "reason": self.reason}


class AutoplayBlockedError(PlaybackError):
    """Every unlock strategy failed to start playback."""

    def __init__(self, failures: Iterable[StrategyFailure]) -> None:
        self.failures = list(failures)
        tried = ", ".join(failure.name for failure in self.failures) or "none"
        super().__init__(f"Autoplay blocked after {len(self.failures)} attempts ({tried})")


class PermissionDeniedError(PlaybackError):
    """The device motion/orientation permission was refused."""


def media_error_from_code(code: int | None, *, source: str | None = None) -> MediaError:
    """Map a platform media error code to the matching exception."""
    message = MEDIA_ERROR_MESSAGES.get(code or 0, "An unknown error occurred.")
    if code in (1, 2):
        return MediaNetworkError(message, code=code, source=source)
    if code in (3, 4):
        return MediaDecodeError(message, code=code, source=source)
    return MediaError(message, code=code, source=source)


@dataclass(slots=True, frozen=True)
class ErrorRecord:
    """One journaled error with the player context at the time it happened."""

    timestamp: datetime
    kind: str
    message: str
    context: dict[str, Any] = field(default_factory=dict)


class ErrorJournal:
    """Keep the most recent errors for diagnostics and log each one."""

    def __init__(
        self,
        *,
        max_records: int = 50,
        context_provider: Callable[[], dict[str, Any]] | None = None,
        on_record: Callable[[ErrorRecord], None] | None = None,
    ) -> None:
        if max_records < 1:
            raise ValueError("max_records must be >= 1")
        self._records: deque[ErrorRecord] = deque(maxlen=max_records)
        self._context_provider = context_provider
        self._on_record = on_record

    def record(self, error: BaseException | str, *, level: int = logging.ERROR, **context: Any) -> ErrorRecord:
        """Store an error, log it at ``level`` and notify the subscriber."""
        merged: dict[str, Any] = {}
        if self._context_provider is not None:
            merged.update(self._context_provider())
        merged.update(context)

        kind = type(error).__name__ if isinstance(error, BaseException) else "message"
        entry = ErrorRecord(
            timestamp=datetime.now(timezone.utc),
            kind=kind,
            message=str(error),
            context=merged,
        )
        self._records.append(entry)
        logger.log(level, "Player error [%s]: %s (%s)", kind, entry.message, merged)
        if self._on_record is not None:
            self._on_record(entry)
        return entry

    @property
    def records(self) -> list[ErrorRecord]:
        return list(self._records)

    def clear(self) -> None:
        self._records.clear()
        logger.debug("Error journal cleared")

    def __len__(self) -> int:
        return len(self._records)
