from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.errors import (
    Forbidden,
    IllegalTransition,
    NotFound,
    PersistenceFailure,
    StaleTransition,
)
from app.identity import Actor, require_actor
from app.logger import logger
from app.models.order import Order, OrderStatus
from app.realtime.change_feed import ORDERS_TABLE, UPDATE, ChangeEvent, ChangeFeed, change_feed
from app.repositories.canteen_repo import CanteenRepository
from app.repositories.order_repo import OrderRepository
from app.utils.clock import utcnow
from app.utils.transactions import smart_transaction

ALLOWED_TRANSITIONS: dict[OrderStatus, list[OrderStatus]] = {
    OrderStatus.PENDING: [OrderStatus.PREPARING, OrderStatus.CANCELLED],
    OrderStatus.PREPARING: [OrderStatus.READY_FOR_PICKUP, OrderStatus.CANCELLED],
    OrderStatus.READY_FOR_PICKUP: [OrderStatus.COMPLETED],
    OrderStatus.COMPLETED: [],
    OrderStatus.CANCELLED: [],
}

TERMINAL_STATUSES = frozenset(s for s, nxt in ALLOWED_TRANSITIONS.items() if not nxt)


def _as_status(value) -> Optional[OrderStatus]:
    try:
        return OrderStatus(value)
    except ValueError:
        return None


def allowed_next(current) -> List[OrderStatus]:
    status = _as_status(current)
    if status is None:
        return []
    return list(ALLOWED_TRANSITIONS.get(status, []))


def can_transition(current, new) -> bool:
    target = _as_status(new)
    return target is not None and target in allowed_next(current)


class OrderStatusService:
    def __init__(self, db: Session, feed: ChangeFeed = None):
        self.db = db
        self.feed = feed or change_feed
        self.orders = OrderRepository(db)
        self.canteens = CanteenRepository(db)

    def _now(self) -> datetime:
        return utcnow()

    def _authorize(self, actor: Actor, order: Order, new_status: Optional[OrderStatus]):
        if actor.is_admin:
            return
        if actor.is_staff:
            if order.canteen_id not in self.canteens.ids_owned_by(actor.id):
                raise Forbidden("This order belongs to another canteen")
            return
        # customers: cancel their own pending orders only
        if order.customer_id != actor.id:
            raise Forbidden("This order belongs to another customer")
        if new_status != OrderStatus.CANCELLED or order.status != OrderStatus.PENDING.value:
            raise Forbidden("Customers can only cancel pending orders")

    def update_status(self, actor: Optional[Actor], order_id: int, new_status) -> Order:
        actor = require_actor(actor)
        order = self.orders.get(order_id)
        if not order:
            raise NotFound(f"Order {order_id} not found")

        target = _as_status(new_status)
        current = order.status
        # outsiders get Forbidden before any transition detail
        self._authorize(actor, order, target)
        if target is None or not can_transition(current, target):
            raise IllegalTransition(current, str(getattr(target, "value", new_status)))

        try:
            with smart_transaction(self.db):
                written = self.orders.set_status_if(
                    order_id, current, target.value, self._now()
                )
        except SQLAlchemyError as e:
            logger.exception("status update failed for order {}", order_id)
            raise PersistenceFailure() from e
        if written == 0:
            logger.warning(
                "order {} moved away from {} before {} could apply", order_id, current, target.value
            )
            raise StaleTransition(order_id, current)

        logger.info(
            "order #{} {} -> {} by {} ({})",
            order.order_number, current, target.value, actor.id, actor.role.value,
        )
        self.feed.publish(ChangeEvent(ORDERS_TABLE, UPDATE, order_id))
        self.db.refresh(order)
        return order

    def cancel_order(self, actor: Optional[Actor], order_id: int) -> Order:
        return self.update_status(actor, order_id, OrderStatus.CANCELLED)
