import asyncio
import time
from typing import Awaitable, Callable, Mapping, Optional

from loguru import logger

from event_pipeline.core.errors import ConfigurationError

RATE_LIMIT_HEADER = "x-rate-limit"
RATE_LIMIT_WINDOW_SECONDS = 60


class RateLimiter:
    """Paces outbound requests at the rate advertised by the server.

    One instance is shared by every request of a run. The rate is unknown
    until the first response arrives: whichever caller completes a request
    first initializes the limiter from the ``x-rate-limit`` header (requests
    per 60 seconds). Later calls to ``initialize_from`` are no-ops, so the
    rate never changes once set.

    Permits are handed out smoothly: the first ``acquire`` returns at once
    and each following one is scheduled ``1 / permits_per_second`` after the
    previous reservation.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self._clock = clock
        self._sleep = sleep
        self._init_lock = asyncio.Lock()
        self._permits_per_second: Optional[float] = None
        self._next_free: float = 0.0
        self._metrics = {
            'permits_acquired': 0,
            'total_wait_time': 0.0
        }

    @property
    def initialized(self) -> bool:
        return self._permits_per_second is not None

    @property
    def permits_per_second(self) -> Optional[float]:
        return self._permits_per_second

    async def initialize_from(self, headers: Mapping[str, str]) -> bool:
        """Initialize the rate from response headers, first caller wins.

        Args:
            headers: Response headers of a completed request

        Returns:
            True if this call initialized the limiter, False if it already was

        Raises:
            ConfigurationError: If the rate limit header is missing or invalid
        """
        if self.initialized:
            return False

        async with self._init_lock:
            if self.initialized:
                return False

            raw = headers.get(RATE_LIMIT_HEADER)
            try:
                limit = float(raw)
            except (TypeError, ValueError):
                raise ConfigurationError(
                    f"Response is missing a valid '{RATE_LIMIT_HEADER}' header: {raw!r}"
                )
            if limit <= 0:
                raise ConfigurationError(
                    f"Response '{RATE_LIMIT_HEADER}' header must be positive: {raw!r}"
                )

            self._permits_per_second = limit / RATE_LIMIT_WINDOW_SECONDS
            logger.info(f"Permits per second {self._permits_per_second}")
            return True

    async def acquire(self) -> float:
        """Wait for one permit.

        Returns:
            Seconds spent waiting
        """
        if not self.initialized:
            raise RuntimeError("Rate limiter used before initialization")

        # Reservation happens without awaiting, so concurrent callers queue up
        now = self._clock()
        wait = max(0.0, self._next_free - now)
        self._next_free = max(now, self._next_free) + 1.0 / self._permits_per_second

        self._metrics['permits_acquired'] += 1
        self._metrics['total_wait_time'] += wait
        if wait > 0:
            await self._sleep(wait)
        return wait

    def get_metrics(self):
        """Get rate limiter metrics."""
        metrics = self._metrics.copy()
        metrics['permits_per_second'] = self._permits_per_second
        return metrics
