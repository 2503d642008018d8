"""
In-process row-change notifications for the order tables.

Services publish an event once their transaction has committed; subscribers
(live order views, streaming endpoints) drain their own queue.
"""
import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional

from app.logger import logger
from app.utils.clock import utcnow

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"
ALL_EVENTS = frozenset({INSERT, UPDATE, DELETE})

ORDERS_TABLE = "orders"
ORDER_LINES_TABLE = "order_lines"


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event_type: str
    row_id: int
    occurred_at: datetime = field(default_factory=utcnow)


class Subscription:
    def __init__(self, feed: "ChangeFeed", tables: Iterable[str], events: Iterable[str]):
        self._feed = feed
        self.tables = frozenset(tables)
        self.events = frozenset(events)
        self._queue: "queue.Queue[ChangeEvent]" = queue.Queue()
        self.closed = False

    def matches(self, event: ChangeEvent) -> bool:
        return event.table in self.tables and event.event_type in self.events

    def deliver(self, event: ChangeEvent):
        self._queue.put(event)

    def get(self, timeout: Optional[float] = None) -> Optional[ChangeEvent]:
        """Block up to ``timeout`` seconds for the next event; None on timeout."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> List[ChangeEvent]:
        out = []
        while True:
            try:
                out.append(self._queue.get_nowait())
            except queue.Empty:
                return out

    def close(self):
        if not self.closed:
            self._feed.unsubscribe(self)
            self.closed = True


class ChangeFeed:
    def __init__(self):
        self._lock = threading.Lock()
        self._subscriptions: List[Subscription] = []

    def subscribe(self, tables, events=ALL_EVENTS) -> Subscription:
        if isinstance(tables, str):
            tables = [tables]
        sub = Subscription(self, tables, events)
        with self._lock:
            self._subscriptions.append(sub)
        return sub

    def unsubscribe(self, sub: Subscription):
        with self._lock:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

    def publish(self, event: ChangeEvent) -> int:
        with self._lock:
            targets = [s for s in self._subscriptions if s.matches(event)]
        for sub in targets:
            sub.deliver(event)
        logger.debug(
            "change {} {}#{} -> {} subscriber(s)",
            event.event_type,
            event.table,
            event.row_id,
            len(targets),
        )
        return len(targets)

    def publish_many(self, events: Iterable[ChangeEvent]) -> int:
        return sum(self.publish(e) for e in events)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)


# process-wide feed used by the API and the scheduler
change_feed = ChangeFeed()
