"""Tests for CancellationToken."""

import asyncio

import pytest

from delve_x402.cancellation import CancellationToken
from delve_x402.errors import FetchCancelled


@pytest.mark.asyncio
async def test_run_returns_result():
    token = CancellationToken()

    async def work():
        return 42

    assert await token.run(work()) == 42
    assert token.cancelled is False


@pytest.mark.asyncio
async def test_run_propagates_errors():
    token = CancellationToken()

    async def work():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError, match="boom"):
        await token.run(work())


@pytest.mark.asyncio
async def test_cancel_aborts_running_work():
    token = CancellationToken()
    started = asyncio.Event()
    aborted = asyncio.Event()

    async def work():
        started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            aborted.set()
            raise

    running = asyncio.create_task(token.run(work()))
    await started.wait()
    token.cancel()

    with pytest.raises(FetchCancelled):
        await running
    assert aborted.is_set()


@pytest.mark.asyncio
async def test_outer_cancellation_cancels_work():
    token = CancellationToken()
    started = asyncio.Event()
    aborted = asyncio.Event()

    async def work():
        started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            aborted.set()
            raise

    running = asyncio.create_task(token.run(work()))
    await started.wait()
    running.cancel()

    with pytest.raises(asyncio.CancelledError):
        await running
    await asyncio.sleep(0)
    assert aborted.is_set()
    assert token.cancelled is False


def test_raise_if_cancelled():
    token = CancellationToken()
    token.raise_if_cancelled()

    token.cancel()
    token.cancel()

    assert token.cancelled is True
    with pytest.raises(FetchCancelled):
        token.raise_if_cancelled()
