"""In-memory sliding window rate limiter for the pairing endpoint."""

from __future__ import annotations

import time


class PairingRateLimiter:
    """Sliding window rate limiter keyed by client IP.

    Every pairing request makes the backend open a fresh upstream
    connection, so callers are capped per window. ``max_requests=0``
    turns the limiter off.
    """

    def __init__(
        self,
        max_requests: int = 60,
        window_seconds: int = 60,
    ) -> None:
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._hits: dict[str, list[float]] = {}
        self._last_sweep = 0.0

    @property
    def enabled(self) -> bool:
        return self._max_requests > 0

    def check(self, client_ip: str) -> bool:
        """Return True and record the hit if ``client_ip`` is under its limit."""
        if not self.enabled:
            return True

        now = time.time()
        cutoff = now - self._window_seconds
        if now - self._last_sweep >= self._window_seconds:
            self._sweep(cutoff)
            self._last_sweep = now

        recent = [t for t in self._hits.get(client_ip, []) if t > cutoff]

        if len(recent) >= self._max_requests:
            self._hits[client_ip] = recent
            return False

        recent.append(now)
        self._hits[client_ip] = recent
        return True

    def _sweep(self, cutoff: float) -> None:
        """Forget clients whose newest hit has left the window."""
        stale = [ip for ip, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for ip in stale:
            del self._hits[ip]

    def tracked_clients(self) -> int:
        return len(self._hits)
