"""Per-actor rate limiting for stamping and enhancement.

Two quota classes are enforced independently for every actor key:

- ``hourly-stamp``: the window resets 3600 seconds after the first call
  in the window.
- ``daily-enhance``: the window resets at the next local midnight.

Windows expire lazily: an entry is replaced on the first call after its
``reset_at``. The window table is bounded and evicts the oldest window
when full. State lives in process memory, so limits are only enforced
per process; running several instances requires a shared store.

Example:
    >>> limiter = RateLimiter(default_policies(stamp_hourly_limit=10,
    ...                                        enhance_daily_limit=3))
    >>> decision = limiter.check("user-1", QuotaClass.HOURLY_STAMP)
    >>> decision.allowed
    True
"""

from __future__ import annotations

import collections
import dataclasses
import datetime
import enum
import functools
import logging
import threading
from typing import TYPE_CHECKING

from globestamp.core import config

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

logger = logging.getLogger(__name__)


class QuotaClass(str, enum.Enum):
    """Independent rate-limit policies."""

    DAILY_ENHANCE = "daily-enhance"
    HOURLY_STAMP = "hourly-stamp"


class ResetRule(str, enum.Enum):
    HOURLY = "hourly"
    DAILY = "daily"


@dataclasses.dataclass(frozen=True)
class QuotaPolicy:
    """Cap and reset rule for one quota class."""

    limit: int
    reset: ResetRule

    def next_reset(self, now: datetime.datetime) -> datetime.datetime:
        if self.reset is ResetRule.HOURLY:
            return now + datetime.timedelta(hours=1)
        tomorrow = now.date() + datetime.timedelta(days=1)
        return datetime.datetime.combine(
            tomorrow, datetime.time.min, tzinfo=now.tzinfo
        )


@dataclasses.dataclass
class RateLimitEntry:
    count: int
    reset_at: datetime.datetime


@dataclasses.dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a rate-limit check.

    Attributes:
        allowed: Whether the call may proceed.
        retry_after: Seconds until the window resets (0 when allowed).
        remaining: Calls left in the current window after this one.
    """

    allowed: bool
    retry_after: float = 0.0
    remaining: int = 0


def default_policies(
    stamp_hourly_limit: int = 10,
    enhance_daily_limit: int = 3,
) -> dict[QuotaClass, QuotaPolicy]:
    return {
        QuotaClass.HOURLY_STAMP: QuotaPolicy(stamp_hourly_limit, ResetRule.HOURLY),
        QuotaClass.DAILY_ENHANCE: QuotaPolicy(enhance_daily_limit, ResetRule.DAILY),
    }


def _local_now() -> datetime.datetime:
    return datetime.datetime.now()


class RateLimiter:
    """In-memory fixed-window counter keyed by (actor key, quota class).

    Check-and-increment is atomic under an internal lock, so one instance
    may be shared by requests running on several threads.
    """

    def __init__(
        self,
        policies: Mapping[QuotaClass, QuotaPolicy] | None = None,
        clock: Callable[[], datetime.datetime] = _local_now,
        max_entries: int = 10_000,
    ) -> None:
        """Initialize the limiter.

        Args:
            policies: Policy for each quota class. Defaults to 10 stamps per
                hour and 3 enhancements per day.
            clock: Returns the current time. Daily windows reset at midnight
                of the clock's timezone (local time by default).
            max_entries: Maximum number of windows kept in memory. The
                oldest window is evicted when a new one would exceed it.
        """
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._policies = dict(policies or default_policies())
        self._clock = clock
        self._max_entries = max_entries
        self._entries: collections.OrderedDict[
            tuple[str, QuotaClass], RateLimitEntry
        ] = collections.OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def policy(self, quota_class: QuotaClass) -> QuotaPolicy:
        return self._policies[quota_class]

    def check(self, actor_key: str, quota_class: QuotaClass) -> RateLimitDecision:
        """Consume one unit of quota if available.

        Args:
            actor_key: Opaque identifier of the caller.
            quota_class: Quota class to charge.

        Returns:
            RateLimitDecision; when denied, ``retry_after`` holds the seconds
            remaining until the window resets.
        """
        policy = self._policies[quota_class]
        key = (actor_key, quota_class)
        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)
            if entry is None or now > entry.reset_at:
                self._store(key, RateLimitEntry(1, policy.next_reset(now)))
                return RateLimitDecision(True, 0.0, policy.limit - 1)

            if entry.count >= policy.limit:
                retry_after = (entry.reset_at - now).total_seconds()
                logger.info(
                    "Rate limit reached for %s (%s), retry in %.0fs",
                    actor_key,
                    quota_class.value,
                    retry_after,
                )
                return RateLimitDecision(False, retry_after, 0)

            entry.count += 1
            return RateLimitDecision(True, 0.0, policy.limit - entry.count)

    def _store(self, key: tuple[str, QuotaClass], entry: RateLimitEntry) -> None:
        self._entries.pop(key, None)
        while len(self._entries) >= self._max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted rate-limit window for %s", evicted)
        self._entries[key] = entry


@functools.lru_cache
def get_rate_limiter() -> RateLimiter:
    """Return the process-wide rate limiter built from settings."""
    settings = config.get_settings()
    return RateLimiter(
        default_policies(
            stamp_hourly_limit=settings.stamp_hourly_limit,
            enhance_daily_limit=settings.enhance_daily_limit,
        ),
        max_entries=settings.rate_limit_max_entries,
    )
