import math
import random
import time
from browser_tools.logger import get_logger

logger = get_logger("Throttle")

DEFAULT_PER_MINUTE = 30
JITTER_MS = 120


class Throttle:
    """Per-target pacing: every request waits at least 60s / requests-per-minute."""

    def __init__(self, rate_limits=None, default_per_minute=DEFAULT_PER_MINUTE, jitter_ms=JITTER_MS, sleep=time.sleep):
        self.rate_limits = dict(rate_limits or {})
        self.default_per_minute = default_per_minute
        self.jitter_ms = jitter_ms
        self._sleep = sleep

    def limit_for(self, target_key):
        limit = self.rate_limits.get(target_key) or self.rate_limits.get("global") or self.default_per_minute
        return max(float(limit), 0.001)

    def interval_ms(self, target_key="global"):
        return math.ceil(60000 / self.limit_for(target_key))

    def throttle(self, target_key="global"):
        """Sleeps ``interval + jitter`` milliseconds and returns the slept amount."""
        wait_ms = self.interval_ms(target_key) + random.uniform(0, self.jitter_ms)
        logger.debug(f"[{target_key}] throttling for {wait_ms:.0f}ms")
        self._sleep(wait_ms / 1000)
        return wait_ms
