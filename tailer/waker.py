"""
Wakers — pluggable policies deciding when an idle stream reads again.

A stream that has nothing to read parks on ``waker.wake()`` instead of
sleeping a fixed amount, so the caller picks the polling strategy:

  - ``TimedWaker``  — release every waiter on a shared periodic tick
  - ``ManualWaker`` — release waiters when told to (filesystem events, tests)

One waker is normally shared by every stream of a supervisor.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable

from config.settings import get_settings

logger = logging.getLogger(__name__)


class Waker(ABC):
    """Scheduling primitive an idle stream blocks on between read attempts."""

    @abstractmethod
    def wake(self) -> Awaitable[None]:
        """Return an awaitable that completes when the caller should read again.

        Called once per idle cycle; the caller may cancel the awaitable if
        it is woken by something else first.
        """
        ...


class _FutureWaker(Waker):
    """Keeps the futures handed out by ``wake()`` and releases them in bulk."""

    def __init__(self) -> None:
        self._waiters: list[asyncio.Future[None]] = []

    def wake(self) -> asyncio.Future[None]:
        fut: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        self._on_register()
        return fut

    @property
    def sleepers(self) -> int:
        """Number of callers currently parked on this waker."""
        return sum(1 for fut in self._waiters if not fut.done())

    def _release(self) -> int:
        waiters, self._waiters = self._waiters, []
        released = 0
        for fut in waiters:
            if not fut.done():
                fut.set_result(None)
                released += 1
        return released

    def _on_register(self) -> None:
        pass


class TimedWaker(_FutureWaker):
    """Wakes all parked streams together every ``interval`` seconds.

    The timer only runs while somebody is waiting, so an idle waker costs
    nothing.
    """

    def __init__(self, interval: float | None = None) -> None:
        super().__init__()
        self._interval = interval if interval is not None else get_settings().WAKE_INTERVAL
        self._handle: asyncio.TimerHandle | None = None

    @property
    def interval(self) -> float:
        return self._interval

    def _on_register(self) -> None:
        if self._handle is None:
            loop = asyncio.get_running_loop()
            self._handle = loop.call_later(self._interval, self._tick)

    def _tick(self) -> None:
        self._handle = None
        released = self._release()
        logger.debug("TimedWaker: tick released %d stream(s)", released)


class ManualWaker(_FutureWaker):
    """Wakes parked streams only when asked to.

    ``awaken(n)`` first waits for ``n`` streams to park, which lets a caller
    know every stream has drained its source before releasing them.

    Usage::

        waker = ManualWaker()
        ...
        await waker.awaken(1)   # returns once one stream was idle and is released
    """

    def __init__(self) -> None:
        super().__init__()
        self._parked = asyncio.Event()

    def wake_all(self) -> int:
        """Release every parked stream. Returns how many were released."""
        return self._release()

    async def awaken(self, sleepers: int = 1) -> int:
        """Wait until at least ``sleepers`` streams are parked, then release them."""
        while self.sleepers < sleepers:
            self._parked.clear()
            await self._parked.wait()
        return self.wake_all()

    def _on_register(self) -> None:
        self._parked.set()
