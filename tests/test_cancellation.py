import asyncio

import pytest

from runner.cancellation import CancellationToken, ensure_token
from runner.errors import RunCancelledError


@pytest.mark.asyncio
async def test_sleep_returns_after_delay():
    token = CancellationToken()

    await token.sleep(10)
    await token.sleep(0)

    assert not token.cancelled


@pytest.mark.asyncio
async def test_sleep_is_interrupted_by_cancel():
    token = CancellationToken()
    loop = asyncio.get_running_loop()
    loop.call_later(0.01, token.cancel)

    started = loop.time()
    with pytest.raises(RunCancelledError):
        await token.sleep(5000)

    assert loop.time() - started < 1


@pytest.mark.asyncio
async def test_guard_returns_result():
    token = CancellationToken()

    async def answer():
        return 42

    assert await token.guard(answer()) == 42


@pytest.mark.asyncio
async def test_guard_abandons_pending_work_on_cancel():
    token = CancellationToken()
    state = {"cancelled": False}

    async def slow():
        try:
            await asyncio.sleep(5)
        except asyncio.CancelledError:
            state["cancelled"] = True
            raise

    asyncio.get_running_loop().call_later(0.01, token.cancel)
    with pytest.raises(RunCancelledError):
        await token.guard(slow())

    assert state["cancelled"] is True


@pytest.mark.asyncio
async def test_guard_refuses_to_start_once_cancelled():
    token = CancellationToken()
    token.cancel()

    async def never():
        raise AssertionError("should not run")

    with pytest.raises(RunCancelledError):
        await token.guard(never())
    with pytest.raises(RunCancelledError):
        token.raise_if_cancelled()


@pytest.mark.asyncio
async def test_guard_propagates_errors():
    token = CancellationToken()

    async def broken():
        raise ValueError("boom")

    with pytest.raises(ValueError):
        await token.guard(broken())


def test_ensure_token_keeps_existing():
    token = CancellationToken()

    assert ensure_token(token) is token
    assert isinstance(ensure_token(None), CancellationToken)
