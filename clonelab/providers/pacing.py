"""
Provider call pacing.

Successive provider calls from one process are separated by a minimum
interval, measured start to start.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional

import structlog

logger = structlog.get_logger(__name__)


class ProviderCallPacer:
    """
    Enforces a minimum delay between provider calls.

    Usage:
        pacer = ProviderCallPacer(1.5)
        await pacer.acquire()
        await client.post(...)
    """

    def __init__(
        self,
        min_interval_s: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.min_interval_s = min_interval_s
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_call: Optional[float] = None

    async def acquire(self) -> float:
        """Wait until the next call may start. Returns the delay applied."""
        async with self._lock:
            delay = 0.0
            if self._last_call is not None:
                delay = self._last_call + self.min_interval_s - self._clock()
                if delay > 0:
                    logger.debug("provider_call_paced", delay_s=round(delay, 3))
                    await self._sleep(delay)
                else:
                    delay = 0.0
            self._last_call = self._clock()
            return delay
