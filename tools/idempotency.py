import threading
import time
from typing import Optional

import redis
from loguru import logger


class Idem:
    """In-flight guard keyed by lead id.

    Backed by Redis (``SET NX EX``) when a URL is configured so webhook and
    cron processes share one view; otherwise an in-process set. Markers expire
    after ``ttl`` seconds so a crashed worker cannot block a lead forever.
    """

    def __init__(self, redis_url: Optional[str] = None, prefix: str = "routing"):
        self.prefix = prefix
        self.r = None
        self._memory_keys = {}
        self._lock = threading.Lock()

        if not redis_url:
            logger.info("No REDIS_URL configured, using in-process in-flight guard")
            return

        try:
            self.r = redis.from_url(redis_url)
            # Test connection
            self.r.ping()
            logger.info("Redis connection established successfully")
        except Exception as e:
            logger.error(f"Redis connection failed: {e}")
            # Fallback to in-memory storage (single process only)
            self.r = None

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    def acquire(self, key: str, ttl: int = 300) -> bool:
        """
        Mark key as in flight.

        Args:
            key: Lead id
            ttl: Seconds before the marker expires on its own

        Returns:
            True if the marker was set, False if the key is already in flight
        """
        if not key:
            logger.warning("Empty key provided to in-flight guard")
            return False

        if self.r:
            try:
                result = self.r.set(name=self._key(key), value=int(time.time()), ex=ttl, nx=True)
                return result is True
            except Exception as e:
                # Fail open; the database claim still serializes routing
                logger.error(f"In-flight check failed: {e}")
                return True

        now = time.monotonic()
        with self._lock:
            expires = self._memory_keys.get(key)
            if expires is not None and expires > now:
                return False
            self._memory_keys[key] = now + ttl
            return True

    def release(self, key: str) -> None:
        if self.r:
            try:
                self.r.delete(self._key(key))
            except Exception as e:
                logger.error(f"Failed to release in-flight marker {key}: {e}")
            return

        with self._lock:
            self._memory_keys.pop(key, None)

    def in_flight(self, key: str) -> bool:
        if self.r:
            try:
                return bool(self.r.exists(self._key(key)))
            except Exception as e:
                logger.error(f"In-flight lookup failed: {e}")
                return False

        with self._lock:
            expires = self._memory_keys.get(key)
            return expires is not None and expires > time.monotonic()
