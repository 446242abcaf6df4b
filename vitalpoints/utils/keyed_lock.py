"""Per-key asyncio locks for serializing work on one user's points account"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

logger = logging.getLogger(__name__)


def _abandon(lock: asyncio.Lock, acquiring: asyncio.Future) -> None:
    """Give up on a pending acquire without leaving the lock held"""
    if not acquiring.done():
        # Lock.acquire hands the lock on to the next waiter when cancelled
        acquiring.cancel()
    elif not acquiring.cancelled() and acquiring.exception() is None:
        # Granted in the same loop iteration the wait gave up
        lock.release()


async def _acquire(lock: asyncio.Lock, timeout: Optional[float]) -> None:
    if timeout is None:
        await lock.acquire()
        return

    # asyncio.wait does not cancel on timeout, so whether the lock was
    # granted is always read from the task itself
    acquiring = asyncio.ensure_future(lock.acquire())
    try:
        done, _ = await asyncio.wait({acquiring}, timeout=timeout)
    except BaseException:
        _abandon(lock, acquiring)
        raise

    if not done:
        _abandon(lock, acquiring)
        raise asyncio.TimeoutError()
    acquiring.result()


class KeyedLock:
    """
    One asyncio.Lock per key, created on demand

    Entries are dropped once no task holds or waits on them, so the map
    only ever contains keys with in-flight work. A waiter that times out
    or is cancelled never ends up owning the lock.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str, timeout: Optional[float] = None) -> AsyncGenerator[None, None]:
        """
        Acquire the lock for key

        Raises:
            asyncio.TimeoutError: If not acquired within timeout seconds
        """
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            await _acquire(lock, timeout)
            try:
                yield
            finally:
                lock.release()
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
