import logging
import math
from dataclasses import dataclass
from typing import Optional

from redis.exceptions import RedisError

from security.errors import StoreUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining_points: int
    retry_after_seconds: Optional[int] = None


def _ceil_seconds(ms: int) -> int:
    # Round up so a block with time left never reports zero
    return max(int(math.ceil(ms / 1000.0)), 1)


class RateLimiter:
    """
    Fixed-window quota per identifier, backed by Redis.

    Each identifier gets `points` per `duration` seconds. Exhausting the quota
    sets a separate block flag living `block_duration` seconds; while it exists
    every consume is rejected, whatever the window says.

    Keys:
      <prefix>:<identifier>        consumed points, TTL = window
      <prefix>:block:<identifier>  block flag, TTL = block duration
    """

    def __init__(self, client, points: int = 5, duration: int = 900,
                 block_duration: int = 86400, key_prefix: str = "login_attempt"):
        if points < 1:
            raise ValueError("points must be positive")
        self.client = client
        self.points = points
        self.duration = duration
        self.block_duration = block_duration
        self.key_prefix = key_prefix

    def _points_key(self, identifier: str) -> str:
        return f"{self.key_prefix}:{identifier}"

    def _block_key(self, identifier: str) -> str:
        return f"{self.key_prefix}:block:{identifier}"

    def consume(self, identifier: str) -> RateLimitResult:
        """
        Spend one point for `identifier`.

        The count comes from a single INCR so concurrent callers each see a
        distinct post-increment value; only `points` of them can be allowed.
        """
        points_key = self._points_key(identifier)
        block_key = self._block_key(identifier)

        try:
            block_ttl = self.client.pttl(block_key)
            if block_ttl and block_ttl > 0:
                return RateLimitResult(False, 0, _ceil_seconds(block_ttl))

            pipe = self.client.pipeline(transaction=True)
            pipe.set(points_key, 0, px=self.duration * 1000, nx=True)
            pipe.incr(points_key)
            pipe.pttl(points_key)
            _, consumed, window_ttl = pipe.execute()

            if window_ttl is None or window_ttl < 0:
                # Counter without expiry (written by someone else); re-arm the window
                self.client.pexpire(points_key, self.duration * 1000)

            consumed = int(consumed)
            if consumed <= self.points:
                return RateLimitResult(True, self.points - consumed)

            # Quota exhausted: block dominates the window
            block_ms = self.block_duration * 1000
            pipe = self.client.pipeline(transaction=True)
            pipe.set(block_key, 1, px=block_ms, nx=True)
            pipe.pexpire(points_key, block_ms)
            pipe.pttl(block_key)
            _, _, block_ttl = pipe.execute()
        except RedisError as exc:
            logger.warning("rate limiter consume failed for %s: %s", identifier, exc)
            raise StoreUnavailable("rate limiter store unavailable") from exc

        logger.info("rate limit exhausted for %s, blocked for %ss", identifier, self.block_duration)
        return RateLimitResult(False, 0, _ceil_seconds(block_ttl if block_ttl and block_ttl > 0 else block_ms))

    def penalize_now(self, identifier: str) -> None:
        """Block `identifier` immediately, as if its quota had just run out."""
        block_ms = self.block_duration * 1000
        try:
            pipe = self.client.pipeline(transaction=True)
            pipe.set(self._points_key(identifier), self.points, px=block_ms)
            pipe.set(self._block_key(identifier), 1, px=block_ms)
            pipe.execute()
        except RedisError as exc:
            logger.warning("rate limiter penalty failed for %s: %s", identifier, exc)
            raise StoreUnavailable("rate limiter store unavailable") from exc

    def reset(self, identifier: str) -> None:
        """Drop the counter and any block for `identifier` in one command."""
        try:
            self.client.delete(self._points_key(identifier), self._block_key(identifier))
        except RedisError as exc:
            logger.warning("rate limiter reset failed for %s: %s", identifier, exc)
            raise StoreUnavailable("rate limiter store unavailable") from exc
