from __future__ import annotations
import logging
import time
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class TTLCache:
    """Keyed cache with a per-instance clock and explicit invalidation."""

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}

    def get_or_load(self, key: str, loader: Callable[[], Any]) -> Any:
        now = self._clock()
        hit = self._entries.get(key)
        if hit is not None and now - hit[0] < self.ttl:
            return hit[1]
        value = loader()
        self._entries[key] = (now, value)
        logger.debug("cache loaded %s", key)
        return value

    def invalidate(self, key: Optional[str] = None) -> None:
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def __contains__(self, key: str) -> bool:
        hit = self._entries.get(key)
        return hit is not None and self._clock() - hit[0] < self.ttl
