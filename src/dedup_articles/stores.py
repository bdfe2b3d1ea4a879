"""Key-value stores backing fingerprint reservations.

Every mutating operation is atomic on its own; callers never combine a read
and a write into a check-then-act sequence.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Protocol

import redis

from common.errors import DedupError, ErrorKind

logger = logging.getLogger(__name__)


class CacheStore(Protocol):
    def set_if_absent(self, key: str, value: str, ttl: float | None) -> bool: ...

    def compare_and_swap(self, key: str, expected: str, new: str, ttl: float | None = None) -> bool: ...

    def compare_and_delete(self, key: str, expected: str) -> bool: ...

    def delete(self, key: str) -> None: ...

    def get(self, key: str) -> str | None: ...

    def ping(self) -> bool: ...


class MemoryStore:
    """In-process store with TTL support, guarded by a single lock.

    Used for local runs and tests; reservations do not survive the process.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._data: dict[str, tuple[str, float | None]] = {}

    def _live_value(self, key: str) -> str | None:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    def _expiry(self, ttl: float | None) -> float | None:
        return self._clock() + ttl if ttl else None

    def set_if_absent(self, key: str, value: str, ttl: float | None) -> bool:
        with self._lock:
            if self._live_value(key) is not None:
                return False
            self._data[key] = (value, self._expiry(ttl))
            return True

    def compare_and_swap(self, key: str, expected: str, new: str, ttl: float | None = None) -> bool:
        with self._lock:
            if self._live_value(key) != expected:
                return False
            self._data[key] = (new, self._expiry(ttl))
            return True

    def compare_and_delete(self, key: str, expected: str) -> bool:
        with self._lock:
            if self._live_value(key) != expected:
                return False
            del self._data[key]
            return True

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._live_value(key)

    def ping(self) -> bool:
        return True


# KEYS[1]=key ARGV[1]=expected ARGV[2]=new ARGV[3]=ttl in ms (0 = no expiry)
_CAS_SCRIPT = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
  if tonumber(ARGV[3]) > 0 then
    redis.call('SET', KEYS[1], ARGV[2], 'PX', ARGV[3])
  else
    redis.call('SET', KEYS[1], ARGV[2])
  end
  return 1
end
return 0
"""

# KEYS[1]=key ARGV[1]=expected
_CAD_SCRIPT = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
  return redis.call('DEL', KEYS[1])
end
return 0
"""


def _ttl_ms(ttl: float | None) -> int | None:
    return int(ttl * 1000) if ttl else None


@contextmanager
def _redis_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except redis.exceptions.AuthenticationError as e:
        raise DedupError(f"redis {operation} rejected credentials: {e}", ErrorKind.TERMINAL_SYSTEM) from e
    except redis.exceptions.RedisError as e:
        raise DedupError(f"redis {operation} failed: {e}", ErrorKind.TRANSIENT_EXTERNAL) from e


class RedisStore:
    """Store backed by Redis; CAS and compare-and-delete run as Lua scripts."""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client
        self._cas = client.register_script(_CAS_SCRIPT)
        self._cad = client.register_script(_CAD_SCRIPT)

    @classmethod
    def from_url(cls, url: str) -> RedisStore:
        return cls(redis.Redis.from_url(url, decode_responses=True))

    def set_if_absent(self, key: str, value: str, ttl: float | None) -> bool:
        with _redis_errors("SET NX"):
            return bool(self._client.set(key, value, nx=True, px=_ttl_ms(ttl)))

    def compare_and_swap(self, key: str, expected: str, new: str, ttl: float | None = None) -> bool:
        with _redis_errors("compare-and-swap"):
            return bool(self._cas(keys=[key], args=[expected, new, _ttl_ms(ttl) or 0]))

    def compare_and_delete(self, key: str, expected: str) -> bool:
        with _redis_errors("compare-and-delete"):
            return bool(self._cad(keys=[key], args=[expected]))

    def delete(self, key: str) -> None:
        with _redis_errors("DEL"):
            self._client.delete(key)

    def get(self, key: str) -> str | None:
        with _redis_errors("GET"):
            return self._client.get(key)

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.exceptions.RedisError as e:
            logger.error("Redis ping failed: %s", e)
            return False
