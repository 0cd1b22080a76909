"""
Redis configuration and connection management
"""

import redis.asyncio as redis
from typing import Optional, Any
import json
import logging
import asyncio
import time
import uuid

from app.config import settings

logger = logging.getLogger(__name__)

# Global Redis client
redis_client: Optional[redis.Redis] = None


async def init_redis():
    """
    Initialize Redis connection
    """
    global redis_client
    try:
        redis_client = redis.from_url(
            settings.REDIS_URL,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            decode_responses=True
        )
        await redis_client.ping()
        logger.info("Redis connection established")
    except Exception as e:
        logger.error(f"Failed to connect to Redis: {e}")
        raise


async def close_redis():
    """
    Close Redis connection
    """
    global redis_client
    if redis_client:
        await redis_client.close()
        redis_client = None
        logger.info("Redis connection closed")


async def get_redis() -> redis.Redis:
    """
    Get Redis client
    """
    if not redis_client:
        await init_redis()
    return redis_client


class CircuitBreakerOpen(Exception):
    """Raised instead of calling Redis while the breaker is open"""


class CircuitBreaker:
    """
    Circuit breaker for Redis operations
    """
    def __init__(self, failure_threshold=5, recovery_timeout=60, half_open_max_calls=3):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.half_open_max_calls = half_open_max_calls

        self.failure_count = 0
        self.last_failure_time = None
        self.state = "CLOSED"  # CLOSED, OPEN, HALF_OPEN
        self.half_open_calls = 0

        self._lock = asyncio.Lock()

    async def is_open(self) -> bool:
        async with self._lock:
            if self.state == "OPEN":
                if time.time() - self.last_failure_time >= self.recovery_timeout:
                    self.state = "HALF_OPEN"
                    self.half_open_calls = 0
                    return False
                return True
            return False

    async def record_success(self):
        async with self._lock:
            self.failure_count = 0
            self.half_open_calls = 0
            self.state = "CLOSED"

    async def record_failure(self):
        async with self._lock:
            self.failure_count += 1
            self.last_failure_time = time.time()
            self.half_open_calls = 0

            if self.state == "HALF_OPEN" or self.failure_count >= self.failure_threshold:
                self.state = "OPEN"

    async def call(self, func, *args, **kwargs):
        if await self.is_open():
            raise CircuitBreakerOpen("Circuit breaker is open")

        async with self._lock:
            if self.state == "HALF_OPEN":
                if self.half_open_calls >= self.half_open_max_calls:
                    raise CircuitBreakerOpen("Half-open call limit exceeded")
                self.half_open_calls += 1

        try:
            result = await func(*args, **kwargs)
            await self.record_success()
            return result
        except Exception:
            await self.record_failure()
            raise


# Lua script for atomic lock acquisition with metadata
ACQUIRE_LOCK_SCRIPT = """
local lock_key = KEYS[1]
local lock_value = ARGV[1]
local ttl = tonumber(ARGV[2])
local timestamp = ARGV[3]

if redis.call("set", lock_key, lock_value, "NX", "EX", ttl) then
    local meta_key = lock_key .. ":meta"
    redis.call("hset", meta_key, "owner", lock_value, "acquired_at", timestamp, "ttl", ttl)
    redis.call("expire", meta_key, ttl)
    return lock_value
else
    return nil
end
"""

# Only the owner may release; metadata goes with the lock
RELEASE_LOCK_SCRIPT = """
local lock_key = KEYS[1]
local identifier = ARGV[1]
local meta_key = lock_key .. ":meta"

if redis.call("get", lock_key) == identifier then
    redis.call("del", lock_key)
    redis.call("del", meta_key)
    return 1
else
    return 0
end
"""


class RedisManager:
    """
    Redis manager with circuit breaker, slot locks and token revocation storage
    """

    def __init__(self):
        self.client: Optional[redis.Redis] = None
        self.circuit_breaker = CircuitBreaker()
        self.logger = logging.getLogger(__name__)

    async def get_client(self) -> redis.Redis:
        """Get Redis client with health check and circuit breaker"""
        if not self.client:
            self.client = await get_redis()

        try:
            await self.circuit_breaker.call(self.client.ping)
        except CircuitBreakerOpen:
            raise
        except Exception as e:
            self.logger.warning(f"Redis connection unhealthy, attempting reconnect: {e}")
            try:
                await asyncio.wait_for(self.client.close(), timeout=1.0)
            except asyncio.TimeoutError:
                self.logger.warning("Redis connection close timed out")
            except Exception as close_error:
                self.logger.debug(f"Ignoring error while closing Redis client: {close_error}")

            self.client = await get_redis()
            await self.circuit_breaker.call(self.client.ping)

        return self.client

    async def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[int] = None
    ) -> bool:
        """Set value with optional TTL"""
        client = await self.get_client()
        if not isinstance(value, str):
            value = json.dumps(value)

        if ttl:
            return await client.setex(key, ttl, value)
        return await client.set(key, value)

    async def exists(self, key: str) -> bool:
        """Check if key exists"""
        client = await self.get_client()
        return await client.exists(key) > 0

    async def acquire_lock(
        self,
        resource: str,
        identifier: Optional[str] = None,
        ttl: int = 30
    ) -> Optional[str]:
        """
        Acquire a distributed lock using atomic Lua script

        Args:
            resource: Resource to lock (e.g., "slot:<venue_id>:2026-11-01")
            identifier: Unique identifier for lock owner
            ttl: Time to live in seconds

        Returns:
            Lock identifier if successful, None otherwise
        """
        client = await self.get_client()
        lock_key = f"lock:{resource}"
        lock_value = identifier or str(uuid.uuid4())

        timestamp = str(int(time.time()))
        result = await self.circuit_breaker.call(
            client.eval, ACQUIRE_LOCK_SCRIPT, 1, lock_key, lock_value, ttl, timestamp
        )

        if result:
            self.logger.debug(f"Lock acquired for {resource} with identifier {lock_value}")
            return result.decode() if isinstance(result, bytes) else result
        return None

    async def release_lock(
        self,
        resource: str,
        identifier: str
    ) -> bool:
        """
        Release a distributed lock using atomic Lua script

        Returns:
            True if lock was released, False otherwise
        """
        lock_key = f"lock:{resource}"

        try:
            client = await self.get_client()
            result = await client.eval(RELEASE_LOCK_SCRIPT, 1, lock_key, identifier)
            released = result == 1

            if released:
                self.logger.debug(f"Lock released for {resource}")
            else:
                self.logger.warning(f"Failed to release lock for {resource} - wrong identifier or lock expired")

            return released
        except Exception as e:
            # The TTL reclaims the lock eventually
            self.logger.error(f"Error releasing lock for {resource}: {e}")
            return False


# Create global Redis manager
redis_manager = RedisManager()
