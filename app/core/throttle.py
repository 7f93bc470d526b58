from __future__ import annotations

import threading
import time
from typing import Callable


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


class RequestThrottle:
    """Sliding-window request counter per key.

    Best effort: two concurrent calls for the same key may both pass the check
    before either records its timestamp.
    """

    def __init__(self, limit: int = 10, window_ms: int = 60_000, clock_ms: Callable[[], float] = _monotonic_ms):
        self.limit = limit
        self.window_ms = window_ms
        self._clock_ms = clock_ms
        self._buckets: dict[str, list[float]] = {}
        self._last_sweep_ms: float | None = None
        self._lock = threading.Lock()

    def allow(self, key: str) -> bool:
        now = self._clock_ms()
        with self._lock:
            self._sweep(now)
            recent = [stamp for stamp in self._buckets.get(key, []) if now - stamp < self.window_ms]
            if len(recent) >= self.limit:
                self._buckets[key] = recent
                return False
            recent.append(now)
            self._buckets[key] = recent
            return True

    def _sweep(self, now: float) -> None:
        # Drops keys whose newest stamp has left the window, at most once per window.
        if self._last_sweep_ms is not None and now - self._last_sweep_ms < self.window_ms:
            return
        self._last_sweep_ms = now
        expired = [key for key, stamps in self._buckets.items() if not stamps or now - stamps[-1] >= self.window_ms]
        for key in expired:
            del self._buckets[key]

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()
            self._last_sweep_ms = None
