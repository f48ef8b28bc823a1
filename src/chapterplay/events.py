"""Fire-and-forget event bus for collaborators observing the player."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

MODE_CHANGED = "mode-changed"
SYNC_CORRECTED = "sync-corrected"
PLAYBACK_ATTEMPT_EXHAUSTED = "playback-attempt-exhausted"
TRACK_LOADING_STARTED = "track-loading-started"
TRACK_READY = "track-ready"
PLAYBACK_STATE_CHANGED = "playback-state-changed"
TRACK_ENDED = "track-ended"
MEDIA_ERROR = "media-error"
PLAYER_ERROR = "player-error"
CAPABILITY_DEGRADED = "capability-degraded"

Listener = Callable[[dict[str, Any]], None]


class EventBus:
    """Dispatch named events with a payload dict to subscribed listeners.

    Emitters never see listener failures: an exception raised by one listener
    is logged and the remaining listeners still run.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def subscribe(self, name: str, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for ``name`` and return a function that removes it."""
        self._listeners[name].append(listener)

        def unsubscribe() -> None:
            self.unsubscribe(name, listener)

        return unsubscribe

    def unsubscribe(self, name: str, listener: Listener) -> None:
        listeners = self._listeners.get(name)
        if listeners and listener in listeners:
            listeners.remove(listener)

    def emit(self, name: str, **payload: Any) -> None:
        logger.debug("Event %s %s", name, payload)
        for listener in list(self._listeners.get(name, ())):
            try:
                listener(payload)
            except Exception:  # noqa: BLE001
                logger.exception("Listener for %s failed", name)

    def listener_count(self, name: str) -> int:
        return len(self._listeners.get(name, ()))
