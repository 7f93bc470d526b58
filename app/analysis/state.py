from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Callable, Sequence

from app.schemas.analysis import AnalysisResult

CACHE_LIMIT = 100


def make_cache_key(document_id: str, keywords: Sequence[str], model: str) -> str:
    normalized = sorted(keyword.strip().lower() for keyword in keywords)
    return f"{document_id}|{';'.join(normalized)}|{model}"


class RemoteStateStore:
    """Per-model cooldowns and the remote result cache, scoped to one application."""

    def __init__(
        self,
        cooldown_seconds: float = 60,
        cache_ttl_seconds: float = 3600,
        cache_limit: int = CACHE_LIMIT,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cooldown_seconds = cooldown_seconds
        self.cache_ttl_seconds = cache_ttl_seconds
        self.cache_limit = cache_limit
        self._clock = clock
        self._cooldowns: dict[str, float] = {}
        self._cache: OrderedDict[str, tuple[AnalysisResult, float]] = OrderedDict()
        self._lock = threading.Lock()

    def start_cooldown(self, model: str) -> None:
        with self._lock:
            self._cooldowns[model] = self._clock() + self.cooldown_seconds

    def cooldown_remaining(self, model: str) -> float:
        with self._lock:
            resume_at = self._cooldowns.get(model, 0.0)
        return max(0.0, resume_at - self._clock())

    def is_cooling_down(self, model: str) -> bool:
        return self.cooldown_remaining(model) > 0

    def get_cached(self, key: str) -> AnalysisResult | None:
        with self._lock:
            entry = self._cache.pop(key, None)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at < self._clock():
                return None
            self._cache[key] = entry
            return value

    def set_cached(self, key: str, value: AnalysisResult) -> None:
        if self.cache_ttl_seconds <= 0:
            return
        with self._lock:
            self._cache.pop(key, None)
            while len(self._cache) >= self.cache_limit:
                self._cache.popitem(last=False)
            self._cache[key] = (value, self._clock() + self.cache_ttl_seconds)

    def reset(self) -> None:
        with self._lock:
            self._cooldowns.clear()
            self._cache.clear()
