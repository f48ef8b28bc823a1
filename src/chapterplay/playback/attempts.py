"""Playback-attempt coordinator: a bounded, ordered retry of unlock strategies.

An attempt moves ``IDLE -> ATTEMPTING -> SUCCEEDED | EXHAUSTED``. Strategies
run one at a time with a per-strategy timeout. A strategy that times out is
recorded as failed but left running; if it resolves before the chain ends it
still counts as the first success. Whatever resolves first wins, the success
callback fires once, and every other in-flight strategy is cancelled.

A new ``start()`` for the same stream, or ``cancel()``, moves the running
attempt to ``ABANDONED``: its awaiter gets the attempt back with no callbacks.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Sequence

from chapterplay.config import AttemptPolicy
from chapterplay.device import DeviceProfile
from chapterplay.errors import AutoplayBlockedError, StrategyFailure
from chapterplay.events import PLAYBACK_ATTEMPT_EXHAUSTED, EventBus
from chapterplay.models.stream import StreamHandle, StreamId
from chapterplay.playback.strategies import (
    DIRECT_PLAY,
    NamedStrategy,
    PassiveUnlockPlatform,
    UnlockPlatform,
    build_chain,
    direct_play,
)

logger = logging.getLogger(__name__)

SuccessCallback = Callable[["PlaybackAttempt"], None]
FailureCallback = Callable[[AutoplayBlockedError], None]


class AttemptState(str, Enum):
    IDLE = "idle"
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"
    ABANDONED = "abandoned"


@dataclass(eq=False)
class PlaybackAttempt:
    """One play-start request and its diagnostics."""

    stream_id: StreamId
    strategies: list[NamedStrategy]
    direct_gesture: bool = False
    timeout_per_strategy_ms: int = 2000
    silent: bool = False
    cursor: int = 0
    has_succeeded: bool = False
    state: AttemptState = AttemptState.IDLE
    winner: str | None = None
    failures: list[StrategyFailure] = field(default_factory=list)
    _abandoned: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def strategy_names(self) -> list[str]:
        return [strategy.name for strategy in self.strategies]

    @property
    def is_finished(self) -> bool:
        return self.state not in (AttemptState.IDLE, AttemptState.ATTEMPTING)

    def abandon(self) -> bool:
        """Stop the attempt; return False if it had already finished."""
        if self.is_finished:
            return False
        self.state = AttemptState.ABANDONED
        self._abandoned.set()
        return True


class PlaybackAttemptCoordinator:
    """Start playback on a stream by walking the unlock strategy chain."""

    def __init__(
        self,
        *,
        bus: EventBus,
        strategies: Sequence[NamedStrategy] | None = None,
        platform: UnlockPlatform | None = None,
        device: DeviceProfile | None = None,
        policy: AttemptPolicy | None = None,
    ) -> None:
        self._bus = bus
        device = device or DeviceProfile()
        policy = policy or AttemptPolicy()
        if strategies is None:
            strategies = build_chain(platform or PassiveUnlockPlatform(), device)
        if not strategies:
            raise ValueError("at least one unlock strategy is required")
        self._chain = list(strategies)
        self._timeout_ms = policy.timeout_for(device)
        self._attempts: dict[StreamId, PlaybackAttempt] = {}

    @property
    def chain(self) -> list[NamedStrategy]:
        return list(self._chain)

    @property
    def timeout_ms(self) -> int:
        return self._timeout_ms

    def current(self, stream_id: StreamId) -> PlaybackAttempt | None:
        """Latest attempt for ``stream_id``, finished or not."""
        return self._attempts.get(stream_id)

    def state_for(self, stream_id: StreamId) -> AttemptState:
        attempt = self._attempts.get(stream_id)
        return attempt.state if attempt is not None else AttemptState.IDLE

    def cancel(self, stream_id: StreamId) -> bool:
        """Abandon the in-flight attempt for ``stream_id``, if any."""
        attempt = self._attempts.get(stream_id)
        if attempt is None or not attempt.abandon():
            return False
        logger.info("Abandoned playback attempt on %s stream", stream_id.value)
        return True

    def cancel_all(self) -> None:
        for stream_id in list(self._attempts):
            self.cancel(stream_id)

    def _plan(self, direct_gesture: bool, silent: bool) -> list[NamedStrategy]:
        if silent:
            return [NamedStrategy(DIRECT_PLAY, direct_play)]
        plan = list(self._chain)
        if direct_gesture:
            plan.insert(0, NamedStrategy(DIRECT_PLAY, direct_play))
        return plan

    async def start(
        self,
        stream: StreamHandle,
        direct_gesture: bool = False,
        *,
        on_success: SuccessCallback | None = None,
        on_failure: FailureCallback | None = None,
        silent: bool = False,
    ) -> PlaybackAttempt:
        """Try to start ``stream`` and return the finished attempt.

        ``silent`` attempts (muted slave resumes) make a single direct try and
        do not announce exhaustion on the bus.
        """
        previous = self._attempts.get(stream.id)
        if previous is not None and previous.abandon():
            logger.info("Superseding in-flight playback attempt on %s stream", stream.id.value)

        attempt = PlaybackAttempt(
            stream_id=stream.id,
            strategies=self._plan(direct_gesture, silent),
            direct_gesture=direct_gesture,
            timeout_per_strategy_ms=self._timeout_ms,
            silent=silent,
        )
        self._attempts[stream.id] = attempt
        attempt.state = AttemptState.ATTEMPTING
        logger.debug(
            "Starting %s playback attempt on %s stream: %s",
            "direct-gesture" if direct_gesture else "fallback",
            stream.id.value,
            ", ".join(attempt.strategy_names),
        )

        await self._run(attempt, stream)

        if attempt.state is AttemptState.SUCCEEDED:
            logger.info("Playback started on %s stream via %s", stream.id.value, attempt.winner)
            if on_success is not None:
                on_success(attempt)
        elif attempt.state is AttemptState.EXHAUSTED:
            error = AutoplayBlockedError(attempt.failures)
            if silent:
                logger.debug("Silent start of %s stream failed: %s", stream.id.value, error)
            else:
                logger.warning("%s", error)
                self._bus.emit(
                    PLAYBACK_ATTEMPT_EXHAUSTED,
                    strategies_tried=[failure.as_dict() for failure in attempt.failures],
                )
            if on_failure is not None:
                on_failure(error)
        return attempt

    async def _run(self, attempt: PlaybackAttempt, stream: StreamHandle) -> None:
        in_flight: dict[asyncio.Task, str] = {}
        abandoned = asyncio.ensure_future(attempt._abandoned.wait())
        try:
            while attempt.cursor < len(attempt.strategies):
                strategy = attempt.strategies[attempt.cursor]
                task = asyncio.ensure_future(strategy.run(stream))
                in_flight[task] = strategy.name
                if await self._await_strategy(attempt, task, in_flight, abandoned):
                    return
                attempt.cursor += 1
            attempt.state = AttemptState.EXHAUSTED
        except asyncio.CancelledError:
            attempt.abandon()
            raise
        finally:
            abandoned.cancel()
            for task in in_flight:
                task.cancel()

    async def _await_strategy(
        self,
        attempt: PlaybackAttempt,
        current: asyncio.Task,
        in_flight: dict[asyncio.Task, str],
        abandoned: asyncio.Future,
    ) -> bool:
        """Wait for ``current`` to settle; return True once the attempt is over."""
        loop = asyncio.get_running_loop()
        timeout = attempt.timeout_per_strategy_ms / 1000.0
        deadline = loop.time() + timeout
        name = in_flight[current]

        while True:
            remaining = deadline - loop.time()
            if remaining > 0:
                done, _ = await asyncio.wait(
                    [*in_flight, abandoned],
                    timeout=remaining,
                    return_when=asyncio.FIRST_COMPLETED,
                )
            else:
                done = set()
            if attempt.state is AttemptState.ABANDONED:
                return True
            if not done:
                reason = f"timed out after {attempt.timeout_per_strategy_ms} ms"
                attempt.failures.append(StrategyFailure(name, reason))
                logger.warning("%s on %s stream %s", name, attempt.stream_id.value, reason)
                return False

            settled = [task for task in in_flight if task in done]
            for task in settled:
                if not task.cancelled() and task.exception() is None:
                    self._succeed(attempt, in_flight[task])
                    del in_flight[task]
                    return True

            current_failed = False
            for task in settled:
                task_name = in_flight.pop(task)
                reason = _failure_reason(task)
                if task is current:
                    attempt.failures.append(StrategyFailure(task_name, reason))
                    logger.warning("%s on %s stream failed: %s", task_name, attempt.stream_id.value, reason)
                    current_failed = True
                else:
                    logger.debug("Timed-out %s settled late with failure: %s", task_name, reason)
            if current_failed:
                return False

    @staticmethod
    def _succeed(attempt: PlaybackAttempt, name: str) -> None:
        if attempt.has_succeeded:
            return
        attempt.has_succeeded = True
        attempt.winner = name
        attempt.state = AttemptState.SUCCEEDED


def _failure_reason(task: asyncio.Task) -> str:
    if task.cancelled():
        return "cancelled"
    exc = task.exception()
    message = str(exc)
    return f"{type(exc).__name__}: {message}" if message else type(exc).__name__
