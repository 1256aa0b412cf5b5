"""
Client-side pacing for the GitHub GraphQL rate limit.

Every response carries a rateLimit block. Once fewer than 10 requests remain,
requests are spread evenly over the time left until the reset; at zero we
wait for the reset itself.
"""

import asyncio
import logging
import math

from ..domain.git_types import RateLimitInfo, utc_now

logger = logging.getLogger(__name__)

COMFORTABLE_REMAINING = 100
LOW_REMAINING = 10


class RateLimiter:
    def __init__(self):
        self.rate_limit_info: RateLimitInfo | None = None
        self.request_count = 0

    def update(self, info: RateLimitInfo) -> None:
        self.rate_limit_info = info
        self.request_count += 1
        logger.debug(
            f"Rate limit updated: {info.remaining}/{info.limit} remaining, "
            f"resets at {info.reset_at.isoformat()} (request #{self.request_count})"
        )

    def _ms_until_reset(self) -> int:
        if not self.rate_limit_info:
            return 0
        return int((self.rate_limit_info.reset_at - utc_now()).total_seconds() * 1000)

    def get_delay_ms(self) -> int:
        """How long to wait before the next request, in milliseconds."""
        if not self.rate_limit_info:
            return 0

        remaining = self.rate_limit_info.remaining
        if remaining > COMFORTABLE_REMAINING:
            return 0

        ms_until_reset = self._ms_until_reset()
        if ms_until_reset <= 0:
            return 0

        if remaining > 0:
            if remaining <= LOW_REMAINING:
                delay = math.floor(ms_until_reset / (remaining + 1))
                logger.warning(f"Rate limit running low ({remaining} left), adding {delay}ms delay")
                return delay
            return 0

        logger.warning(f"Rate limit exceeded, waiting {ms_until_reset}ms until reset")
        return ms_until_reset

    async def wait_if_needed(self) -> None:
        delay = self.get_delay_ms()
        if delay > 0:
            logger.info(f"Waiting {delay}ms before next request due to rate limit")
            await asyncio.sleep(delay / 1000)

    def is_exhausted(self) -> bool:
        return self.rate_limit_info is not None and self.rate_limit_info.remaining == 0

    def remaining_percentage(self) -> float:
        if not self.rate_limit_info:
            return 100.0
        return self.rate_limit_info.remaining / self.rate_limit_info.limit * 100

    def time_until_reset_ms(self) -> int:
        return max(0, self._ms_until_reset())

    def reset(self) -> None:
        self.rate_limit_info = None
        self.request_count = 0
        logger.debug("Rate limiter reset")

    def status_message(self) -> str:
        if not self.rate_limit_info:
            return "No rate limit information available"
        info = self.rate_limit_info
        minutes = math.ceil(self.time_until_reset_ms() / 1000 / 60)
        return (
            f"Rate limit: {info.remaining}/{info.limit} requests remaining "
            f"({self.remaining_percentage():.1f}%), resets in {minutes} minutes"
        )
