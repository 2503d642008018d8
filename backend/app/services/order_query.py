from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from app.errors import NotFound
from app.identity import Actor, require_actor
from app.models.order import Order, OrderStatus
from app.realtime.change_feed import (
    ORDER_LINES_TABLE,
    ORDERS_TABLE,
    ChangeFeed,
    Subscription,
    change_feed,
)
from app.repositories.canteen_repo import CanteenRepository
from app.repositories.order_repo import OrderRepository
from app.utils.clock import utcnow


@dataclass
class OrderStats:
    total_orders: int
    today_orders: int
    pending_orders: int
    total_revenue: Decimal
    pending_approvals: Optional[int] = None


class OrderQueryService:
    def __init__(self, db: Session):
        self.db = db
        self.orders = OrderRepository(db)
        self.canteens = CanteenRepository(db)

    def list_orders(self, actor: Optional[Actor]) -> List[Order]:
        """Orders visible to ``actor``, newest first, with lines and canteen loaded."""
        actor = require_actor(actor)
        if actor.is_admin:
            return self.orders.list_scoped()
        if actor.is_staff:
            return self.orders.list_scoped(canteen_ids=self.canteens.ids_owned_by(actor.id))
        return self.orders.list_scoped(customer_id=actor.id)

    def get_order(self, actor: Optional[Actor], order_id: int) -> Order:
        actor = require_actor(actor)
        order = self.orders.get_with_context(order_id)
        if order is None or not self._visible(actor, order):
            raise NotFound(f"Order {order_id} not found")
        return order

    def _visible(self, actor: Actor, order: Order) -> bool:
        if actor.is_admin:
            return True
        if actor.is_staff:
            return order.canteen_id in self.canteens.ids_owned_by(actor.id)
        return order.customer_id == actor.id

    def stats(self, actor: Optional[Actor], now: Optional[datetime] = None) -> OrderStats:
        actor = require_actor(actor)
        orders = self.list_orders(actor)
        today = (now or utcnow()).date()
        stats = OrderStats(
            total_orders=len(orders),
            today_orders=sum(1 for o in orders if o.created_at.date() == today),
            pending_orders=sum(1 for o in orders if o.status == OrderStatus.PENDING.value),
            total_revenue=sum(
                (o.total_amount for o in orders if o.status == OrderStatus.COMPLETED.value),
                Decimal("0"),
            ),
        )
        if actor.is_admin:
            stats.pending_approvals = self.canteens.count_pending()
        return stats


class LiveOrderView:
    """
    A role-scoped order list kept current from the change feed.

    Any insert, update or delete on orders or order lines triggers a full
    re-read through OrderQueryService.
    """

    def __init__(self, db: Session, actor: Actor, feed: ChangeFeed = None):
        self.db = db
        self.actor = actor
        self.query = OrderQueryService(db)
        self.feed = feed or change_feed
        self.subscription: Subscription = self.feed.subscribe([ORDERS_TABLE, ORDER_LINES_TABLE])
        self.orders: List[Order] = []
        self.refresh_count = 0
        self.refresh()

    def refresh(self) -> List[Order]:
        # end the previous read so the next one sees committed changes
        self.db.expire_all()
        self.db.rollback()
        self.orders = self.query.list_orders(self.actor)
        self.refresh_count += 1
        return self.orders

    def poll(self, timeout: Optional[float] = None) -> bool:
        """
        Wait up to ``timeout`` seconds for change events (None: do not wait).
        Re-reads once if any arrived and reports whether it did.
        """
        events = self.subscription.drain()
        if not events and timeout:
            first = self.subscription.get(timeout=timeout)
            if first is not None:
                events = [first] + self.subscription.drain()
        if not events:
            return False
        self.refresh()
        return True

    def close(self):
        self.subscription.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
