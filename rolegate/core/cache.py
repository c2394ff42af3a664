from __future__ import annotations

# redis caching manager system
import json
import logging
import time
from threading import Lock
from typing import Any, Dict, Optional, Tuple

from redis import Connection, ConnectionPool, Redis, SSLConnection

from rolegate.core.config import settings

logger = logging.getLogger(__name__)


class HybridCacheManager:
    """Hybrid cache manager with Redis + in-memory fallback.

    Values are stored as JSON. Every entry carries its own TTL in seconds
    (``None`` means no expiry). When Redis is configured but unreachable the
    manager falls back to the in-memory dict and only probes Redis again after
    ``recheck_interval`` seconds.
    """

    def __init__(
        self,
        redis_host: Optional[str] = None,
        redis_port: Optional[int] = None,
        max_connections: Optional[int] = None,
        use_ssl: bool = False,
        max_memory_size: Optional[int] = None,
        recheck_interval: Optional[int] = None,
    ):
        self.memory_cache: Dict[str, Tuple[bytes, Optional[float]]] = {}
        self._memory_cache_size = 0
        self._memory_lock = Lock()
        self._max_memory_size = max_memory_size or settings.MEMORY_CACHE_MAX_SIZE
        self._recheck_interval = (
            recheck_interval if recheck_interval is not None else settings.REDIS_RECHECK_INTERVAL
        )
        self._last_redis_check: Optional[float] = None
        self.redis_available = False
        if redis_host is None or redis_host.strip() == "":
            self.pool = None
            return
        self.pool = ConnectionPool(
            host=redis_host,
            port=redis_port or 6379,
            socket_connect_timeout=0.05,
            socket_timeout=5,
            retry_on_timeout=False,
            max_connections=max_connections or 10,
            connection_class=SSLConnection if use_ssl else Connection,
        )

    @classmethod
    def from_settings(cls) -> "HybridCacheManager":
        return cls(
            redis_host=settings.REDIS_HOST,
            redis_port=settings.REDIS_PORT,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            use_ssl=bool(settings.REDIS_SSL),
        )

    def redis_connect(self) -> Optional[Redis]:
        """Connect to Redis, with a cooldown when unavailable"""
        # If Redis is not configured, skip
        if self.pool is None:
            return None

        # If Redis was available, try immediately
        if self.redis_available:
            try:
                rc = Redis(connection_pool=self.pool)
                if rc.ping():
                    return rc
                self.redis_available = False
                self._last_redis_check = time.time()
            except Exception as exc:
                logger.warning("redis went away, using memory cache: %s", exc)
                self.redis_available = False
                self._last_redis_check = time.time()
            return None

        # If Redis is unavailable, only check again after the cooldown
        now = time.time()
        if self._last_redis_check is not None:
            if now - self._last_redis_check < self._recheck_interval:
                return None

        self._last_redis_check = now
        try:
            rc = Redis(connection_pool=self.pool)
            if rc.ping():
                self.redis_available = True
                return rc
        except Exception as exc:
            logger.info("redis not reachable: %s", exc)

        return None

    def get(self, key: str) -> Optional[Any]:
        """Get cached value, deserializing from JSON"""
        result = self._get_redis(key)
        if result is None:
            result = self._get_memory(key)
        if result is None:
            return None
        try:
            return json.loads(result)
        except json.JSONDecodeError:
            return None

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        """Set cached value, serializing to JSON"""
        try:
            data = json.dumps(value, default=str).encode("utf-8")
        except (TypeError, ValueError) as e:
            logger.error("failed to serialize cache value for %s: %s", key, e)
            return False

        if ttl_seconds is not None:
            ttl_seconds = max(int(ttl_seconds), 0)

        if self._set_redis(key, data, ttl_seconds):
            return True

        self._set_memory(key, data, ttl_seconds)
        return True

    def delete(self, key: str) -> None:
        """Remove a key from both tiers"""
        rc = self.redis_connect()
        if rc is not None:
            try:
                rc.delete(key)
            except Exception as exc:
                logger.warning("redis delete failed for %s: %s", key, exc)
            finally:
                rc.close()
        with self._memory_lock:
            cached = self.memory_cache.pop(key, None)
            if cached is not None:
                self._memory_cache_size -= len(cached[0])

    def _set_redis(self, key: str, data: bytes, ttl_seconds: Optional[int]) -> bool:
        rc = self.redis_connect()
        if rc is None:
            return False
        try:
            if ttl_seconds is not None and ttl_seconds > 0:
                rc.set(key, data, ex=ttl_seconds)
            else:
                rc.set(key, data)
            return True
        except Exception:
            return False
        finally:
            rc.close()

    def _get_redis(self, key: str) -> Optional[bytes]:
        rc = self.redis_connect()
        if rc is None:
            return None
        try:
            result = rc.get(key)
            if result is not None and result != b"":
                return result
            return None
        except Exception:
            return None
        finally:
            rc.close()

    def _set_memory(self, key: str, data: bytes, ttl_seconds: Optional[int]) -> None:
        """Set memory cache with a size limit, evicting expired entries first"""
        expires_at = None if ttl_seconds is None else time.time() + ttl_seconds
        data_size = len(data)

        with self._memory_lock:
            if key in self.memory_cache:
                old_data, _ = self.memory_cache.pop(key)
                self._memory_cache_size -= len(old_data)

            while (self._memory_cache_size + data_size > self._max_memory_size and
                   self.memory_cache):
                now = time.time()
                expired_keys = [
                    k for k, (_, exp) in self.memory_cache.items()
                    if exp is not None and exp <= now
                ]

                if expired_keys:
                    for k in expired_keys:
                        old_data, _ = self.memory_cache.pop(k)
                        self._memory_cache_size -= len(old_data)
                else:
                    # no expired entries, drop the one closest to expiring
                    oldest_key = min(
                        self.memory_cache.keys(),
                        key=lambda k: self.memory_cache[k][1] or float("inf")
                    )
                    old_data, _ = self.memory_cache.pop(oldest_key)
                    self._memory_cache_size -= len(old_data)

            self.memory_cache[key] = (data, expires_at)
            self._memory_cache_size += data_size

    def _get_memory(self, key: str) -> Optional[bytes]:
        """Get from memory cache, removing expired entries"""
        now = time.time()
        with self._memory_lock:
            cached = self.memory_cache.get(key)
            if cached is None:
                return None
            value, expires_at = cached
            if expires_at is not None and expires_at <= now:
                self.memory_cache.pop(key, None)
                self._memory_cache_size -= len(value)
                return None
            return value
