"""Data structures representing chapter tracks."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class Track:
    """One chapter: an audio source and an optional 360° video source."""

    primary_src: str
    secondary_src: str | None = None
    title: str = ""
    artwork_ref: str | None = None

    def __post_init__(self) -> None:
        if not self.primary_src:
            raise ValueError("Track requires a primary source")

    def has_secondary(self) -> bool:
        """Return True when a non-blank secondary source is available."""
        return bool(self.secondary_src and self.secondary_src.strip())
