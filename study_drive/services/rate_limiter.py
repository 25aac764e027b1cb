"""
Fixed-window rate limiting for drive operations

The limiter is an explicitly constructed object owned by the application
lifespan (``app.state.rate_limiter``); it is not a module-level singleton.

Known limitation: counters live in process memory, so each worker process
enforces its own window. Deployments running several instances behind a load
balancer need a shared counter store (e.g. Redis INCR + EXPIRE) to enforce a
global limit.
"""
import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitRule:
    """Rate limit configuration"""
    max: int           # Maximum requests per window
    window_ms: int     # Window length in milliseconds


# Operation catalog
RATE_LIMITS: dict[str, RateLimitRule] = {
    "fileUpload": RateLimitRule(max=50, window_ms=60_000),
    "folderCreate": RateLimitRule(max=20, window_ms=60_000),
    "fileDelete": RateLimitRule(max=50, window_ms=60_000),
    "apiCall": RateLimitRule(max=100, window_ms=60_000),
    "search": RateLimitRule(max=30, window_ms=60_000),
}


@dataclass
class RateLimitEntry:
    count: int
    reset_at_ms: float


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a single check"""
    allowed: bool
    remaining: int
    reset_at: datetime


def _wall_clock_ms() -> float:
    return time.time() * 1000


class RateLimiter:
    """
    Per (actor, operation) fixed-window counter.

    A window starts on the first request for a key (or the first request after
    the previous window expired) and lasts ``window_ms``. Requests are allowed
    while the post-increment count is <= max; a rejected request does not
    consume a slot.
    """

    def __init__(
        self,
        rules: Optional[dict[str, RateLimitRule]] = None,
        clock: Callable[[], float] = _wall_clock_ms,
        sweep_interval: float = 300.0
    ):
        self.rules = dict(rules or RATE_LIMITS)
        self._clock = clock
        self._entries: dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()
        self._sweep_interval = sweep_interval
        self._sweeper: Optional[asyncio.Task] = None

    @staticmethod
    def _key(actor_id: str, operation: str) -> str:
        return f"{actor_id}:{operation}"

    def check(self, actor_id: str, operation: str) -> RateLimitResult:
        """Count one request for (actor, operation) and report whether it is allowed"""
        rule = self.rules.get(operation)
        if rule is None:
            raise ValueError(f"Unknown rate-limited operation: {operation}")

        key = self._key(actor_id, operation)
        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)

            # Start a fresh window
            if entry is None or now > entry.reset_at_ms:
                entry = RateLimitEntry(count=0, reset_at_ms=now + rule.window_ms)
                self._entries[key] = entry

            reset_at = datetime.fromtimestamp(entry.reset_at_ms / 1000, tz=timezone.utc)

            if entry.count >= rule.max:
                logger.warning(f"⛔ Rate limit hit: {key} ({rule.max}/{rule.window_ms}ms)")
                return RateLimitResult(allowed=False, remaining=0, reset_at=reset_at)

            entry.count += 1
            return RateLimitResult(
                allowed=True,
                remaining=rule.max - entry.count,
                reset_at=reset_at
            )

    def reset(self, actor_id: str, operation: str) -> None:
        """Forget the window for one key"""
        with self._lock:
            self._entries.pop(self._key(actor_id, operation), None)

    def sweep(self) -> int:
        """Drop entries whose window has expired; returns the number removed"""
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if now > entry.reset_at_ms]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug(f"🧹 Swept {len(expired)} expired rate-limit entries")
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            self.sweep()

    def start(self) -> None:
        """Start the periodic sweep on the running event loop"""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever())
            logger.info(f"⏱️  Rate limiter sweep every {self._sweep_interval}s")

    async def stop(self) -> None:
        """Cancel the sweep task and clear all counters"""
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
        with self._lock:
            self._entries.clear()
