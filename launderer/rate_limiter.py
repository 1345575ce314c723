"""
Fixed-window, in-memory request throttling for /api/ traffic.

The payment webhook is exempt: Stripe controls that request rate and may burst
during settlement.
"""

import logging
import time
from threading import Lock

from fastapi import Request
from fastapi.responses import JSONResponse

from launderer import config

logger = logging.getLogger(__name__)


class FixedWindowRateLimiter:
    def __init__(self, limit: int, window_seconds: int):
        self.limit = limit
        self.window_seconds = window_seconds
        # {key: {"count": int, "reset_time": float}}
        self._windows: dict[str, dict] = {}
        self._lock = Lock()

    def hit(self, key: str) -> tuple[bool, int]:
        """Count one request for key. Returns (is_allowed, seconds_until_reset)."""
        now = time.monotonic()
        with self._lock:
            window = self._windows.get(key)
            if window is None or now >= window["reset_time"]:
                window = {"count": 0, "reset_time": now + self.window_seconds}
                self._windows[key] = window
                self._cleanup(now)
            window["count"] += 1
            retry_after = max(0, int(window["reset_time"] - now))
            return window["count"] <= self.limit, retry_after

    def reset(self):
        with self._lock:
            self._windows.clear()

    def _cleanup(self, now: float):
        expired = [key for key, window in self._windows.items() if now >= window["reset_time"]]
        for key in expired:
            del self._windows[key]


limiter = FixedWindowRateLimiter(config.RATE_LIMIT_MAX_REQUESTS, config.RATE_LIMIT_WINDOW_SECONDS)


def is_throttled_path(path: str) -> bool:
    return path.startswith("/api/") and path != config.WEBHOOK_PATH


async def rate_limit_middleware(request: Request, call_next):
    if not config.RATE_LIMIT_ENABLED or not is_throttled_path(request.url.path):
        return await call_next(request)

    client_ip = request.client.host if request.client else "unknown"
    allowed, retry_after = limiter.hit(client_ip)
    if not allowed:
        logger.warning(f"Rate limit exceeded for {client_ip} on {request.url.path}")
        return JSONResponse(
            status_code=429,
            content={"error": "Too many requests, please try again later."},
            headers={"Retry-After": str(retry_after)},
        )
    return await call_next(request)
