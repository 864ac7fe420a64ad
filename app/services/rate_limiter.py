"""Per-caller cooldown for synchronous copy requests."""

import time
from typing import Callable, Optional
from cachetools import TTLCache
from app.config import settings
from app.exceptions import RateLimitError


class RateLimiter:
    """Rejects a caller's request when it follows the previous one too closely."""

    def __init__(
        self,
        window_seconds: Optional[float] = None,
        ttl_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window_seconds = (
            window_seconds if window_seconds is not None else settings.rate_limit_window_seconds
        )
        self._clock = clock
        # Caller identity -> time of last accepted request
        self._last_execution: TTLCache = TTLCache(
            maxsize=10000,
            ttl=ttl_seconds or settings.rate_limit_cache_ttl_seconds,
        )

    def check(self, caller: str) -> None:
        """Record a request from the caller.

        Raises:
            RateLimitError: If the caller's previous request is within the window
        """
        now = self._clock()
        key = f"lastExecution_{caller}"
        last_execution = self._last_execution.get(key)

        if last_execution is not None and now - last_execution < self.window_seconds:
            raise RateLimitError("Rate limit exceeded. Please wait a moment and try again.")

        self._last_execution[key] = now
