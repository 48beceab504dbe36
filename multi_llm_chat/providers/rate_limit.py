"""
Per-adapter admission control over rolling 60-second windows.
"""
import asyncio
import math
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .errors import RateLimitError
from .types import RateLimitConfig

WINDOW_SECONDS = 60.0


@dataclass
class _Bucket:
    count: int = 0
    reset_at: float = 0.0

    def roll(self, now: float) -> None:
        if now >= self.reset_at:
            self.count = 0
            self.reset_at = now + WINDOW_SECONDS


class RateLimiter:
    """
    Request/token counters for one adapter.

    Windows reset lazily on the first check after expiry. A rejected call
    leaves both counters untouched.
    """

    def __init__(
        self,
        provider_id: str,
        config: Optional[RateLimitConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.provider_id = provider_id
        self.config = config or RateLimitConfig()
        self._clock = clock
        self._lock = asyncio.Lock()
        self.requests = _Bucket()
        self.tokens = _Bucket()

    async def acquire(self, estimated_tokens: int = 0) -> None:
        """Admit one call costing ``estimated_tokens`` or raise RateLimitError."""
        async with self._lock:
            now = self._clock()
            self.requests.roll(now)
            self.tokens.roll(now)

            rpm = self.config.requests_per_minute
            if rpm and self.requests.count + 1 > rpm:
                raise RateLimitError(
                    self.provider_id,
                    f"Request rate limit exceeded ({rpm} requests/minute)",
                    self._seconds_until(self.requests.reset_at, now),
                )

            tpm = self.config.tokens_per_minute
            if tpm and self.tokens.count + estimated_tokens > tpm:
                raise RateLimitError(
                    self.provider_id,
                    f"Token rate limit exceeded ({tpm} tokens/minute)",
                    self._seconds_until(self.tokens.reset_at, now),
                )

            self.requests.count += 1
            self.tokens.count += estimated_tokens

    @staticmethod
    def _seconds_until(reset_at: float, now: float) -> int:
        return max(0, math.ceil(reset_at - now))
