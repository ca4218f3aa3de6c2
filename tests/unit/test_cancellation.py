"""Cancellation token tests."""

from __future__ import annotations

import asyncio

import pytest

from parley.cancellation import CancellationToken
from parley.errors import ErrorKind, RequestAborted

pytestmark = pytest.mark.unit


def test_cancel_is_idempotent() -> None:
    token = CancellationToken()
    assert token.cancelled is False
    token.cancel()
    token.cancel()
    assert token.cancelled is True
    with pytest.raises(RequestAborted):
        token.raise_if_cancelled()


@pytest.mark.asyncio
async def test_race_returns_result_when_operation_wins() -> None:
    token = CancellationToken()

    async def work() -> int:
        return 42

    assert await token.race(work()) == 42


@pytest.mark.asyncio
async def test_race_cancels_pending_read_when_token_fires() -> None:
    token = CancellationToken()
    started = asyncio.Event()
    cancelled = asyncio.Event()

    async def slow_read() -> None:
        started.set()
        try:
            await asyncio.sleep(60)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    async def abort_soon() -> None:
        await started.wait()
        token.cancel()

    aborter = asyncio.create_task(abort_soon())
    with pytest.raises(RequestAborted) as exc:
        await token.race(slow_read())
    await aborter

    assert exc.value.kind is ErrorKind.ABORTED
    assert cancelled.is_set()


@pytest.mark.asyncio
async def test_race_on_cancelled_token_raises_immediately() -> None:
    token = CancellationToken()
    token.cancel()

    async def never() -> None:
        raise AssertionError("should not run")

    coro = never()
    with pytest.raises(RequestAborted):
        await token.race(coro)
    coro.close()


@pytest.mark.asyncio
async def test_race_propagates_operation_errors() -> None:
    token = CancellationToken()

    async def failing() -> None:
        raise ValueError("boom")

    with pytest.raises(ValueError, match="boom"):
        await token.race(failing())


@pytest.mark.asyncio
async def test_iterate_yields_until_exhausted() -> None:
    token = CancellationToken()

    async def source():
        for i in range(3):
            yield i

    assert [i async for i in token.iterate(source())] == [0, 1, 2]


@pytest.mark.asyncio
async def test_iterate_stops_reading_after_cancel() -> None:
    token = CancellationToken()
    reads: list[int] = []

    async def source():
        for i in range(5):
            reads.append(i)
            yield i

    seen: list[int] = []
    with pytest.raises(RequestAborted):
        async for item in token.iterate(source()):
            seen.append(item)
            if item == 1:
                token.cancel()

    assert seen == [0, 1]
    assert reads == [0, 1]
