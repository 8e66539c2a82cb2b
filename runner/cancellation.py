"""Cooperative cancellation shared by executors and the recorder."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Optional, TypeVar

from .errors import RunCancelledError

T = TypeVar("T")


class CancellationToken:
    """Cancellation signal that is checked between operations and races every wait."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelledError()

    async def sleep(self, delay_ms: int) -> None:
        """Sleep ``delay_ms`` milliseconds unless cancelled first."""

        self.raise_if_cancelled()
        if delay_ms <= 0:
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay_ms / 1000)
        except asyncio.TimeoutError:
            return
        raise RunCancelledError()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` but abandon it with :class:`RunCancelledError` on cancellation."""

        if self._event.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise RunCancelledError()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            task.cancel()
            raise
        finally:
            waiter.cancel()
        if task in done:
            return task.result()
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise RunCancelledError()


def ensure_token(token: Optional[CancellationToken]) -> CancellationToken:
    return token if token is not None else CancellationToken()


__all__ = ["CancellationToken", "ensure_token"]
