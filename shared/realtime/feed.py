"""
In-process insert notifications, filtered per subscriber.

Repositories publish a row after its insert commits; subscribers receive every
row of the table whose fields equal their filter. Delivery is at-least-once from
the subscriber's point of view: consumers must tolerate seeing a row they
already hold (see ``ChatHandle.merge``).
"""
import asyncio
from collections import defaultdict
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

_CLOSED = object()


class Subscription:
    def __init__(self, feed: "ChangeFeed", table: str, filter: dict[str, Any]):
        self.table = table
        self.filter = dict(filter)
        self._feed = feed
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def matches(self, row: Any) -> bool:
        return all(getattr(row, field, None) == value for field, value in self.filter.items())

    def deliver(self, row: Any):
        if not self.closed:
            self._queue.put_nowait(row)

    def close(self):
        """Stop receiving. Rows still queued are dropped."""
        if self.closed:
            return
        self.closed = True
        self._feed._remove(self)
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self.closed and self._queue.empty():
            raise StopAsyncIteration
        row = await self._queue.get()
        if row is _CLOSED or self.closed:
            raise StopAsyncIteration
        return row


class ChangeFeed:
    def __init__(self):
        self._subscribers: dict[str, list[Subscription]] = defaultdict(list)

    def subscribe(self, table: str, filter: dict[str, Any]) -> Subscription:
        subscription = Subscription(self, table, filter)
        self._subscribers[table].append(subscription)
        logger.debug("feed_subscribed", table=table, filter=subscription.filter)
        return subscription

    def publish(self, table: str, row: Any) -> int:
        """Fan a freshly inserted row out to matching subscribers. Returns the delivery count."""
        delivered = 0
        for subscription in list(self._subscribers.get(table, ())):
            if subscription.matches(row):
                subscription.deliver(row)
                delivered += 1
        return delivered

    def subscriber_count(self, table: str) -> int:
        return len(self._subscribers.get(table, ()))

    def _remove(self, subscription: Subscription):
        subscribers = self._subscribers.get(subscription.table)
        if subscribers and subscription in subscribers:
            subscribers.remove(subscription)


# Process-wide feed shared by the repositories and the chat channel
change_feed = ChangeFeed()
