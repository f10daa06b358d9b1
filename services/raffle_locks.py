"""Per-raffle locks shared by every service that changes a raffle."""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Dict

from utils.exceptions import ConcurrencyConflictError

class RaffleLocks:
    """In-process mutual exclusion for state changes on one raffle.

    Approvals, rejections, draws and cancellations of the same raffle run
    one at a time. Waiting is bounded by ``max_wait``. A lock is dropped as
    soon as nobody holds or waits for it, so the registry only tracks
    raffles with work in flight.
    """

    def __init__(self, max_wait: float = 5.0):
        self.max_wait = max_wait
        self._locks: Dict[int, asyncio.Lock] = {}
        self._users: Dict[int, int] = {}
        self.logger = logging.getLogger(__name__)

    def __len__(self) -> int:
        return len(self._locks)

    def is_locked(self, raffle_id: int) -> bool:
        lock = self._locks.get(raffle_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, raffle_id: int, action: str = "update"):
        """Hold the raffle's lock for the duration of the block.

        Raises:
            ConcurrencyConflictError: If the lock is not free within max_wait
        """
        lock = self._locks.setdefault(raffle_id, asyncio.Lock())
        self._users[raffle_id] = self._users.get(raffle_id, 0) + 1
        try:
            if not await self._acquire(lock):
                self.logger.warning(
                    f"Gave up waiting {self.max_wait}s to run {action}",
                    extra={'raffle_id': raffle_id}
                )
                raise ConcurrencyConflictError(
                    f"Raffle {raffle_id} is busy with another operation, try the {action} again"
                )
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[raffle_id] -= 1
            if not self._users[raffle_id]:
                del self._users[raffle_id]
                del self._locks[raffle_id]

    async def _acquire(self, lock: asyncio.Lock) -> bool:
        waiter = asyncio.ensure_future(lock.acquire())
        try:
            done, _ = await asyncio.wait({waiter}, timeout=self.max_wait)
        except asyncio.CancelledError:
            self._abandon(lock, waiter)
            raise
        if done:
            return True
        self._abandon(lock, waiter)
        return False

    @staticmethod
    def _abandon(lock: asyncio.Lock, waiter: asyncio.Future) -> None:
        # An acquire that finished in the meantime owns the lock
        if waiter.done() and not waiter.cancelled():
            lock.release()
        else:
            waiter.cancel()
