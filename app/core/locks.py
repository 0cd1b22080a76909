"""
Per venue-day slot locks serializing booking creation and reschedule
"""

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import date
from typing import Dict, List, Optional, Tuple

from app.config import settings
from app.core.exceptions import LockAcquisitionError, ExternalServiceError
from app.core.metrics import SLOT_LOCK_WAIT
from app.core.redis import redis_manager

logger = logging.getLogger(__name__)


def slot_key(venue_id, event_date: date) -> str:
    """Lock resource name for one venue on one calendar day"""
    return f"slot:{venue_id}:{event_date.isoformat()}"


class SlotLockManager:
    """
    Mutual exclusion over venue-days.

    The "redis" backend holds the lock across every API process through the
    RedisManager Lua scripts; "local" uses asyncio locks and only protects a
    single process. Multiple resources are always taken in sorted order.
    """

    def __init__(self, backend: Optional[str] = None):
        self._backend = backend
        self._local: Dict[str, Tuple[asyncio.Lock, int]] = {}
        self.logger = logging.getLogger(__name__)

    @property
    def backend(self) -> str:
        return self._backend or settings.BOOKING_LOCK_BACKEND

    @asynccontextmanager
    async def hold(self, *resources: str):
        keys = sorted(set(resources))
        held: List[Tuple[str, Optional[str]]] = []
        try:
            with SLOT_LOCK_WAIT.time():
                for key in keys:
                    token = await self._acquire(key)
                    held.append((key, token))
            yield
        finally:
            for key, token in reversed(held):
                await self._release(key, token)

    async def _acquire(self, key: str) -> Optional[str]:
        if self.backend == "local":
            await self._acquire_local(key)
            return None
        return await self._acquire_redis(key)

    async def _release(self, key: str, token: Optional[str]):
        if self.backend == "local":
            self._release_local(key)
        else:
            await redis_manager.release_lock(key, token)

    async def _acquire_redis(self, key: str) -> str:
        token = str(uuid.uuid4())
        deadline = time.monotonic() + settings.BOOKING_LOCK_WAIT_SECONDS
        delay = 0.05
        while True:
            try:
                acquired = await redis_manager.acquire_lock(
                    key, identifier=token, ttl=settings.BOOKING_LOCK_TTL_SECONDS
                )
            except Exception as e:
                self.logger.error(f"Lock backend unavailable for {key}: {e}")
                raise ExternalServiceError("redis", "Booking lock service is unavailable, please retry")
            if acquired:
                return token
            if time.monotonic() >= deadline:
                self.logger.warning(f"Timed out waiting for lock {key}")
                raise LockAcquisitionError(key)
            await asyncio.sleep(delay)
            delay = min(delay * 2, 0.5)

    async def _acquire_local(self, key: str):
        lock, waiters = self._local.get(key, (asyncio.Lock(), 0))
        self._local[key] = (lock, waiters + 1)
        try:
            await asyncio.wait_for(lock.acquire(), timeout=settings.BOOKING_LOCK_WAIT_SECONDS)
        except asyncio.TimeoutError:
            self._drop_local_ref(key)
            self.logger.warning(f"Timed out waiting for lock {key}")
            raise LockAcquisitionError(key)
        except BaseException:
            self._drop_local_ref(key)
            raise

    def _release_local(self, key: str):
        lock, _ = self._local[key]
        lock.release()
        self._drop_local_ref(key)

    def _drop_local_ref(self, key: str):
        lock, waiters = self._local[key]
        if waiters <= 1:
            del self._local[key]
        else:
            self._local[key] = (lock, waiters - 1)


# Create global slot lock manager
slot_locks = SlotLockManager()
