"""
Request deduplication cache for network producers.

Collapses concurrent identical requests into one producer call, serves fresh
successes from memory, and replays recent failures for a cooldown that
depends on the failure class. Cancellation is never cached.
"""

import threading
import time
from concurrent.futures import CancelledError, Future
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Hashable, Optional, TypeVar

from config import CacheConfig
from logger import get_logger
from recognition.errors import Aborted, UpstreamRateLimited, UpstreamServerError

logger = get_logger("netcache")

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass(frozen=True)
class CacheEntry:
    """One resolved value or one failure, stamped with its completion time."""
    key: Any
    timestamp_ms: float
    ttl_ms: float
    data: Any = None
    error: Optional[BaseException] = None


def _status_of(error: BaseException) -> int:
    status = getattr(error, "status", None)
    if status is None:
        response = getattr(error, "response", None)
        status = getattr(response, "status_code", None)
    try:
        return int(status or 0)
    except (TypeError, ValueError):
        return 0


def cooldown_for(error: BaseException) -> int:
    """
    Cooldown in ms for a failed producer call.

    Rate-limit failures back off longest, server failures less, anything
    else briefly.
    """
    if isinstance(error, UpstreamRateLimited):
        return CacheConfig.RATE_LIMIT_COOLDOWN_MS
    if isinstance(error, UpstreamServerError):
        return CacheConfig.SERVER_ERROR_COOLDOWN_MS

    status = _status_of(error)
    if status == 429:
        return CacheConfig.RATE_LIMIT_COOLDOWN_MS
    if status >= 500:
        return CacheConfig.SERVER_ERROR_COOLDOWN_MS
    return CacheConfig.OTHER_COOLDOWN_MS


def is_abort(error: BaseException) -> bool:
    return isinstance(error, (Aborted, CancelledError))


class RequestDeduplicationCache(Generic[K, V]):
    """
    Keyed cache around a producer function.

    State lives in three maps (in-flight, resolved, failed) guarded by one
    lock; the check-then-insert in request() happens under that lock.
    """

    def __init__(
        self,
        clock: Optional[Callable[[], float]] = None,
        default_ttl_ms: float = CacheConfig.DEFAULT_TTL_MS
    ):
        """
        Args:
            clock: Returns the current time in milliseconds (monotonic by default)
            default_ttl_ms: TTL used when request() is called without one
        """
        self._clock = clock or (lambda: time.monotonic() * 1000.0)
        self.default_ttl_ms = default_ttl_ms
        self._lock = threading.Lock()
        self._inflight: Dict[K, Future] = {}
        self._resolved: Dict[K, CacheEntry] = {}
        self._failed: Dict[K, CacheEntry] = {}

    def request(self, key: K, producer: Callable[[], V], ttl_ms: Optional[float] = None) -> V:
        """
        Return the value for key, calling producer at most once per window.

        Args:
            key: Cache key
            producer: Zero-argument callable doing the actual work
            ttl_ms: How long a success stays fresh

        Returns:
            The produced (or cached) value

        Raises:
            Whatever the producer raised, live or replayed from the failure cache
        """
        ttl_ms = self.default_ttl_ms if ttl_ms is None else ttl_ms
        now = self._clock()

        with self._lock:
            resolved = self._resolved.get(key)
            if resolved is not None and now - resolved.timestamp_ms < ttl_ms:
                return resolved.data

            failed = self._failed.get(key)
            if failed is not None and now - failed.timestamp_ms < failed.ttl_ms:
                logger.debug(f"Replaying cached failure for {key!r}")
                raise failed.error

            future = self._inflight.get(key)
            owner = future is None
            if owner:
                future = Future()
                future.set_running_or_notify_cancel()
                self._inflight[key] = future

        if not owner:
            logger.debug(f"Joining in-flight request for {key!r}")
            return future.result()

        try:
            data = producer()
        except BaseException as e:
            # Joiners get the same error, including interrupts
            self._record_failure(key, e)
            future.set_exception(e)
            raise

        with self._lock:
            self._resolved[key] = CacheEntry(
                key=key, timestamp_ms=self._clock(), ttl_ms=ttl_ms, data=data
            )
            self._failed.pop(key, None)
            self._inflight.pop(key, None)
        future.set_result(data)
        return data

    def _record_failure(self, key: K, error: BaseException) -> None:
        """Release the key; only ordinary failures start a cooldown."""
        with self._lock:
            self._inflight.pop(key, None)
            if not isinstance(error, Exception) or is_abort(error):
                return
            cooldown = cooldown_for(error)
            self._failed[key] = CacheEntry(
                key=key, timestamp_ms=self._clock(), ttl_ms=cooldown, error=error
            )
        logger.warning(f"Request {key!r} failed, cooling down {cooldown} ms: {error}")

    def peek(self, key: K) -> Optional[CacheEntry]:
        """Resolved entry for key regardless of freshness."""
        with self._lock:
            return self._resolved.get(key)

    def failure(self, key: K) -> Optional[CacheEntry]:
        with self._lock:
            return self._failed.get(key)

    def is_inflight(self, key: K) -> bool:
        with self._lock:
            return key in self._inflight

    def invalidate(self, key: K) -> None:
        """Forget cached success and failure for key (in-flight work continues)."""
        with self._lock:
            self._resolved.pop(key, None)
            self._failed.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._resolved.clear()
            self._failed.clear()
