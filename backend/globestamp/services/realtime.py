"""Realtime fan-out of committed inserts to live subscribers.

The ``RealtimeBus`` delivers every record published on a table to each
open subscription on that table. Repositories publish after an insert is
committed, so subscribers observe inserts in commit order. Delivery is
at-least-once from a consumer's point of view; consumers that need exact
views must deduplicate on record id themselves.

The feed classes implement the consumer-side view rules:

- ``ActivityFeed`` keeps the newest N activity records, most recent first.
- ``RegionalDrawingFeed`` keeps only drawings whose center falls inside a
  lat/long rectangle. Rectangles crossing the antimeridian
  (``west > east``) match nothing east of ``west`` or west of ``east``;
  they are not split at ±180°.

Example:
    Consume activity inside a coroutine:
        >>> bus = RealtimeBus()
        >>> feed = ActivityFeed(limit=50)
        >>> with bus.subscribe(ACTIVITY_TABLE) as subscription:
        ...     feed.apply(await subscription.get())
"""

from __future__ import annotations

import asyncio
import collections
import functools
import logging
import threading
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    import types
    from collections.abc import Iterable

    from globestamp.db import models

logger = logging.getLogger(__name__)

DRAWINGS_TABLE = "drawings"
ACTIVITY_TABLE = "activity"
DEFAULT_QUEUE_SIZE = 1000


class Subscription:
    """An open subscription to one table.

    Records are buffered in an asyncio queue bound to the event loop that
    opened the subscription. Close it explicitly or use it as a context
    manager.
    """

    def __init__(self, bus: RealtimeBus, table: str, maxsize: int) -> None:
        self.bus = bus
        self.table = table
        self.closed = False
        self._loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=maxsize)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: types.TracebackType | None,
    ) -> None:
        self.close()

    async def get(self) -> Any:
        """Wait for the next record published on the table."""
        return await self._queue.get()

    def get_nowait(self) -> Any:
        return self._queue.get_nowait()

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.bus._unsubscribe(self)

    def _deliver(self, record: Any) -> None:
        if self.closed:
            return
        if self._queue.full():
            self._queue.get_nowait()
            logger.warning(
                "Subscriber queue for %s full, dropped oldest record", self.table
            )
        self._queue.put_nowait(record)

    def _push(self, record: Any) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._deliver(record)
        elif not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._deliver, record)


class RealtimeBus:
    """In-process publish/subscribe keyed by table name."""

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self._queue_size = queue_size
        self._subscribers: dict[str, set[Subscription]] = collections.defaultdict(
            set
        )
        self._lock = threading.Lock()

    def subscribe(self, table: str) -> Subscription:
        """Open a subscription. Must be called from a running event loop."""
        subscription = Subscription(self, table, self._queue_size)
        with self._lock:
            self._subscribers[table].add(subscription)
        logger.debug("Opened subscription on %s", table)
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscribers[subscription.table].discard(subscription)
        logger.debug("Closed subscription on %s", subscription.table)

    def subscriber_count(self, table: str) -> int:
        with self._lock:
            return len(self._subscribers[table])

    def publish(self, table: str, record: Any) -> int:
        """Deliver a committed record to every open subscription on ``table``.

        Returns:
            Number of subscriptions the record was handed to.
        """
        with self._lock:
            targets = list(self._subscribers[table])
        for subscription in targets:
            subscription._push(record)
        return len(targets)


@functools.lru_cache
def get_bus() -> RealtimeBus:
    """Return the process-wide realtime bus."""
    return RealtimeBus()


def in_bounds(latitude: float, longitude: float, bounds: models.Bounds) -> bool:
    """Check whether a point lies in ``[south, north] x [west, east]``."""
    return (
        bounds.south <= latitude <= bounds.north
        and bounds.west <= longitude <= bounds.east
    )


class ActivityFeed:
    """Bounded, most-recent-first view of the activity stream."""

    def __init__(self, limit: int = 50) -> None:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self.limit = limit
        self._items: collections.deque[models.Activity] = collections.deque(
            maxlen=limit
        )

    @property
    def items(self) -> list[models.Activity]:
        return list(self._items)

    def bootstrap(self, records: Iterable[models.Activity]) -> None:
        """Replace the view with the newest records, given newest first."""
        self._items.clear()
        for record in records:
            if len(self._items) == self.limit:
                break
            self._items.append(record)

    def apply(self, record: models.Activity) -> list[models.Activity]:
        """Prepend a live insert and truncate to ``limit``."""
        self._items.appendleft(record)
        return self.items


class RegionalDrawingFeed:
    """Live drawing inserts filtered to a region."""

    def __init__(self, bounds: models.Bounds) -> None:
        self.bounds = bounds
        self.drawings: list[models.Drawing] = []
        if bounds.crosses_antimeridian:
            logger.info(
                "Regional filter crosses the antimeridian; "
                "only exact [west, east] matches are delivered"
            )

    def matches(self, drawing: models.Drawing) -> bool:
        return in_bounds(drawing.latitude, drawing.longitude, self.bounds)

    def apply(self, drawing: models.Drawing) -> bool:
        """Prepend the drawing if it falls within the region.

        Returns:
            True if the drawing was accepted into the view.
        """
        if not self.matches(drawing):
            return False
        self.drawings.insert(0, drawing)
        return True
