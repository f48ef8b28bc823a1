from __future__ import annotations

import asyncio
import math

import pytest

from chapterplay.errors import MediaDecodeError
from chapterplay.models.stream import ReadyState, StreamHandle, StreamId


def test_load_resets_ready_state_mirror(primary, primary_element) -> None:
    primary.load("chapter-1.mp3")
    assert primary.ready_state is ReadyState.CAN_PLAY_THROUGH

    primary_element.auto_ready = False
    primary.load("chapter-2.mp3")

    assert primary.source == "chapter-2.mp3"
    assert primary.ready_state is ReadyState.LOADING


def test_clear_drops_source(primary) -> None:
    primary.load("chapter-1.mp3")
    primary.clear()

    assert not primary.has_source
    assert primary.ready_state is ReadyState.EMPTY


def test_position_is_clamped_at_zero(primary, primary_element) -> None:
    primary.position = -3.0
    assert primary_element.position == 0.0


def test_unknown_duration_is_nan(primary_element) -> None:
    primary_element.duration = None
    handle = StreamHandle(StreamId.PRIMARY, primary_element)
    assert math.isnan(handle.duration)


@pytest.mark.asyncio
async def test_wait_for_resolves_when_element_reports_ready(primary, primary_element) -> None:
    primary_element.auto_ready = False
    primary.load("chapter-1.mp3")

    waiter = asyncio.create_task(primary.wait_for(ReadyState.CAN_PLAY_THROUGH))
    await asyncio.sleep(0)
    assert not waiter.done()

    primary_element.report_ready(ReadyState.CAN_PLAY)
    await asyncio.sleep(0)
    assert not waiter.done()

    primary_element.report_ready(ReadyState.CAN_PLAY_THROUGH)
    await asyncio.wait_for(waiter, 1)


@pytest.mark.asyncio
async def test_wait_for_raises_media_error(primary, primary_element) -> None:
    primary_element.auto_ready = False
    primary.load("broken.mp3")
    errors = []
    primary.on_error(lambda handle, error: errors.append((handle.id, error)))

    waiter = asyncio.create_task(primary.wait_for(ReadyState.CAN_PLAY_THROUGH))
    await asyncio.sleep(0)
    failure = MediaDecodeError("cannot decode", code=3, source="broken.mp3")
    primary_element.report_error(failure)

    with pytest.raises(MediaDecodeError):
        await waiter
    assert errors == [(StreamId.PRIMARY, failure)]

    # A later waiter fails fast instead of hanging.
    with pytest.raises(MediaDecodeError):
        await primary.wait_for(ReadyState.CAN_PLAY)


def test_ended_callbacks_receive_the_handle(primary, primary_element) -> None:
    ended = []
    primary.on_ended(ended.append)

    primary_element.report_ended()

    assert ended == [primary]
