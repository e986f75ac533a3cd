"""In-memory rate limiter guarding the email and AI endpoints."""

from __future__ import annotations

import threading
import time
from collections import defaultdict, deque

from fastapi import HTTPException, Request


class InMemoryRateLimiter:
    """Sliding-window limiter per key (client address + route).

    Keys with no hits inside the window are swept every `PRUNE_EVERY`
    calls so the table stays bounded by the set of recent callers.
    """

    PRUNE_EVERY = 256

    def __init__(self):
        self._hits = defaultdict(deque)
        self._lock = threading.Lock()
        self._calls = 0

    def allow(self, key: str, max_requests: int, window_seconds: int) -> tuple[bool, int]:
        now = time.monotonic()
        retry_after = 0
        with self._lock:
            self._calls += 1
            if self._calls % self.PRUNE_EVERY == 0:
                self._prune_locked(now - window_seconds)
            q = self._hits[key]
            cutoff = now - window_seconds
            while q and q[0] < cutoff:
                q.popleft()
            if len(q) >= max_requests:
                retry_after = max(1, int(window_seconds - (now - q[0])))
                return False, retry_after
            q.append(now)
        return True, retry_after

    def prune(self, window_seconds: int = 60) -> int:
        """Drop keys whose last hit is older than the window; returns how many."""
        with self._lock:
            return self._prune_locked(time.monotonic() - window_seconds)

    def _prune_locked(self, cutoff: float) -> int:
        stale = [key for key, q in self._hits.items() if not q or q[-1] < cutoff]
        for key in stale:
            del self._hits[key]
        return len(stale)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
            self._calls = 0

    def enforce(self, request: Request, max_per_min: int, window_seconds: int = 60) -> None:
        """Raise 429 with `Retry-After` once the caller exceeds the budget."""
        key = f"{request.client.host if request.client else 'unknown'}:{request.url.path}"
        allowed, retry_after = self.allow(key, max_per_min, window_seconds)
        if not allowed:
            raise HTTPException(
                status_code=429,
                detail=f"rate limit exceeded; retry after {retry_after}s",
                headers={"Retry-After": str(retry_after)},
            )


limiter = InMemoryRateLimiter()
