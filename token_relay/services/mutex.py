import asyncio
from collections import deque
from typing import Callable

Release = Callable[[], None]


class Mutex:
    """FIFO-fair exclusive lock for coroutines.

    ``acquire()`` returns a release callable once the caller holds the lock.
    An uncontended acquire never suspends. ``release`` hands the lock straight
    to the oldest waiter, so the lock is never observably free while anyone
    is queued. Not re-entrant.
    """

    def __init__(self) -> None:
        self._locked = False
        self._waiters: deque[asyncio.Future] = deque()
        self._held: Release | None = None

    def locked(self) -> bool:
        return self._locked

    @property
    def waiters(self) -> int:
        return len(self._waiters)

    async def acquire(self) -> Release:
        if not self._locked:
            self._locked = True
            return self._make_release()

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Ownership was handed over just before the cancellation landed.
                self._release()
            else:
                self._discard(waiter)
            raise
        return self._make_release()

    def _make_release(self) -> Release:
        released = False

        def release() -> None:
            nonlocal released
            if released:
                raise RuntimeError("Mutex release called twice")
            released = True
            self._release()

        return release

    def _release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        self._locked = False

    def _discard(self, waiter: asyncio.Future) -> None:
        if waiter in self._waiters:
            self._waiters.remove(waiter)

    async def __aenter__(self) -> Release:
        self._held = await self.acquire()
        return self._held

    async def __aexit__(self, exc_type, exc, tb) -> None:
        release, self._held = self._held, None
        release()
