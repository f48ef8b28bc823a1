"""Presentation mode and the master/slave role assignment it implies."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from chapterplay.models.stream import StreamId


class PresentationMode(str, Enum):
    AUDIO_ONLY = "audio-only"
    PRESENTATION = "presentation"


@dataclass(slots=True)
class ModeState:
    """Current mode; mutated only by the mode controller."""

    mode: PresentationMode = PresentationMode.AUDIO_ONLY
    has_secondary: bool = False

    @property
    def master_id(self) -> StreamId:
        if self.mode is PresentationMode.PRESENTATION and self.has_secondary:
            return StreamId.SECONDARY
        return StreamId.PRIMARY

    @property
    def slave_id(self) -> StreamId:
        if self.master_id is StreamId.PRIMARY:
            return StreamId.SECONDARY
        return StreamId.PRIMARY
