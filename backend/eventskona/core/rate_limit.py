from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol

from fastapi import Request

from eventskona.core.config import settings


@dataclass(frozen=True)
class RateLimitConfig:
    window_ms: int  # Time window in milliseconds
    max: int  # Max requests per window


RATE_LIMITS: Dict[str, RateLimitConfig] = {
    "auth": RateLimitConfig(window_ms=15 * 60 * 1000, max=5),
    "general": RateLimitConfig(window_ms=60 * 1000, max=100),
    "upload": RateLimitConfig(window_ms=60 * 1000, max=10),
    "webhook": RateLimitConfig(window_ms=60 * 1000, max=200),
}


@dataclass
class RateLimitEntry:
    count: int
    reset_at: int  # epoch milliseconds


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: int
    retry_after: int  # seconds


class RateLimitStore(Protocol):
    def hit(self, key: str, now_ms: int, config: RateLimitConfig) -> RateLimitResult: ...

    def sweep(self, now_ms: int) -> int: ...

    def clear(self) -> None: ...


class MemoryRateLimitStore:
    """Fixed-window counters kept in a dict.

    State is per-process: it resets on restart and is not shared between
    server instances, so the effective limit scales with instance count.
    The lock covers the background sweep running on the scheduler thread.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()

    def hit(self, key: str, now_ms: int, config: RateLimitConfig) -> RateLimitResult:
        with self._lock:
            entry = self._entries.get(key)

            if entry is None or entry.reset_at <= now_ms:
                reset_at = now_ms + config.window_ms
                self._entries[key] = RateLimitEntry(count=1, reset_at=reset_at)
                return RateLimitResult(True, config.max - 1, reset_at, 0)

            if entry.count >= config.max:
                retry_after = math.ceil((entry.reset_at - now_ms) / 1000)
                return RateLimitResult(False, 0, entry.reset_at, retry_after)

            entry.count += 1
            return RateLimitResult(True, config.max - entry.count, entry.reset_at, 0)

    def sweep(self, now_ms: int) -> int:
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.reset_at <= now_ms]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def _now_ms() -> int:
    return int(time.time() * 1000)


class RateLimiter:
    def __init__(self, store: Optional[RateLimitStore] = None, clock: Callable[[], int] = _now_ms) -> None:
        self.store = store if store is not None else MemoryRateLimitStore()
        self.clock = clock

    def check(self, identifier: str, config: RateLimitConfig) -> RateLimitResult:
        return self.store.hit(identifier, self.clock(), config)

    def sweep(self) -> int:
        """Drop expired windows; returns how many were removed"""
        return self.store.sweep(self.clock())

    def reset(self) -> None:
        self.store.clear()


# Process-wide default used by the route dependencies and the scheduler
rate_limiter = RateLimiter()


def check_rate_limit(identifier: str, config: RateLimitConfig) -> RateLimitResult:
    return rate_limiter.check(identifier, config)


def get_client_ip(request: Request) -> str:
    """
    Client address used as the rate-limit key.

    Forwarding headers are client-controlled unless a proxy rewrites them,
    so they are only read when TRUST_PROXY_HEADERS is on.
    """
    if settings.TRUST_PROXY_HEADERS:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip
    if request.client and request.client.host:
        return request.client.host
    return "unknown"
