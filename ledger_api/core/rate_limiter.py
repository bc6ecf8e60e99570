"""Per-client request throttling for the unauthenticated endpoints (login, register)."""
from __future__ import annotations

import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, Iterable, Tuple

from fastapi import HTTPException, Request, status

from ledger_api.core.config import get_settings

# how often idle keys are swept out of memory
SWEEP_INTERVAL_SECONDS = 30.0


class RateLimiter:
    """Sliding-window hit log per key, kept in process memory."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._hits: Dict[str, Tuple[Deque[float], float]] = {}
        self._lock = threading.Lock()
        self._next_sweep = clock() + SWEEP_INTERVAL_SECONDS

    def __len__(self) -> int:
        with self._lock:
            return len(self._hits)

    def hit(self, key: str, limit: int, window_seconds: float) -> float:
        """
        Record one hit for ``key``.

        Returns 0 when the hit is allowed, otherwise the seconds until the
        oldest hit in the window expires.
        """
        now = self._clock()
        with self._lock:
            if now >= self._next_sweep:
                self._sweep(now)
            stamps, _ = self._hits.get(key, (None, window_seconds))
            if stamps is None:
                stamps = deque()
                self._hits[key] = (stamps, window_seconds)
            while stamps and stamps[0] <= now - window_seconds:
                stamps.popleft()
            if len(stamps) >= limit:
                return max(stamps[0] + window_seconds - now, 0.001)
            stamps.append(now)
            return 0.0

    def _sweep(self, now: float) -> None:
        stale = [key for key, (stamps, window) in self._hits.items() if not stamps or stamps[-1] <= now - window]
        for key in stale:
            del self._hits[key]
        self._next_sweep = now + SWEEP_INTERVAL_SECONDS

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


_limiter = RateLimiter()


def client_ip(request: Request, trusted_proxies: Iterable[str] = ()) -> str:
    """
    Address used as the throttling key.

    ``X-Forwarded-For`` is honored only when the connecting peer is one of
    ``trusted_proxies``; the rightmost hop not added by a trusted proxy wins.
    """
    trusted = set(trusted_proxies)
    peer = request.client.host if request.client and request.client.host else "unknown"
    if peer not in trusted:
        return peer
    forwarded = request.headers.get("x-forwarded-for", "")
    hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
    for hop in reversed(hops):
        if hop not in trusted:
            return hop
    return peer


def rate_limit_ip(request: Request, scope: str, *, limit: int, window_seconds: int) -> None:
    key = f"{scope}:{client_ip(request, get_settings().trusted_proxies)}"
    retry_after = _limiter.hit(key, limit, window_seconds)
    if retry_after:
        raise HTTPException(
            status.HTTP_429_TOO_MANY_REQUESTS,
            "Too many requests, try again shortly",
            headers={"Retry-After": str(int(retry_after) + 1)},
        )


def reset_rate_limits() -> None:
    _limiter.reset()
