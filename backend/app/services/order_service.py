from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.errors import EmptyCart, PersistenceFailure
from app.identity import Actor, require_actor
from app.logger import logger
from app.models.order import Order, OrderStatus
from app.realtime.change_feed import (
    INSERT,
    ORDER_LINES_TABLE,
    ORDERS_TABLE,
    ChangeEvent,
    ChangeFeed,
    change_feed,
)
from app.repositories.order_repo import OrderRepository
from app.services.cart_service import CartDraft, CartDraftItem
from app.utils.clock import utcnow
from app.utils.transactions import smart_transaction


@dataclass
class GroupFailure:
    canteen_id: int
    canteen_name: str
    reason: str


@dataclass
class SubmissionResult:
    orders: List[Order] = field(default_factory=list)
    failures: List[GroupFailure] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failures

    @property
    def message(self) -> str:
        if self.complete:
            return "Order placed successfully!"
        failed = ", ".join(f.canteen_name for f in self.failures)
        return f"Some orders could not be placed ({failed}). Those items are still in your cart."


class OrderService:
    def __init__(self, db: Session, feed: ChangeFeed = None):
        self.db = db
        self.feed = feed or change_feed
        self.orders = OrderRepository(db)

    def _now(self) -> datetime:
        return utcnow()

    def place_canteen_order(
        self,
        customer_id: str,
        canteen_id: int,
        items: List[CartDraftItem],
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Order:
        """
        Persist one order and its lines for a single canteen.

        Header and lines are written in one transaction: if any line fails the
        order row is rolled back with it.
        """
        now = now or self._now()
        total = sum((it.unit_price * it.quantity for it in items), Decimal("0"))
        with smart_transaction(self.db):
            order = self.orders.insert_order(
                customer_id=customer_id,
                canteen_id=canteen_id,
                order_number=self.orders.next_order_number(),
                total_amount=total,
                status=OrderStatus.PENDING.value,
                notes=notes if notes is not None else settings.DEFAULT_ORDER_NOTES,
                estimated_pickup_time=now + timedelta(minutes=settings.PICKUP_ESTIMATE_MINUTES),
                created_at=now,
            )
            lines = self.orders.insert_lines(
                order.id,
                [
                    {
                        "menu_item_id": it.item_id,
                        "quantity": it.quantity,
                        "unit_price": it.unit_price,
                    }
                    for it in items
                ],
            )
            line_ids = [l.id for l in lines]
        self.feed.publish(ChangeEvent(ORDERS_TABLE, INSERT, order.id))
        self.feed.publish_many(ChangeEvent(ORDER_LINES_TABLE, INSERT, lid) for lid in line_ids)
        return order

    def submit_cart(
        self,
        actor: Optional[Actor],
        draft: CartDraft,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> SubmissionResult:
        """
        Turn a cart draft into one order per canteen it spans.

        Each canteen group succeeds or fails on its own. Items of groups that
        were placed leave the draft; items of failed groups stay for a retry.
        Raises PersistenceFailure when no group could be placed.
        """
        actor = require_actor(actor)
        if draft.is_empty:
            raise EmptyCart()

        now = now or self._now()
        result = SubmissionResult()
        for canteen_id, items in draft.groups_by_canteen().items():
            try:
                order = self.place_canteen_order(actor.id, canteen_id, items, notes=notes, now=now)
            except SQLAlchemyError as e:
                logger.exception("order for canteen {} failed for {}", canteen_id, actor.id)
                result.failures.append(
                    GroupFailure(canteen_id, items[0].canteen_name, type(e).__name__)
                )
                continue
            logger.info(
                "order #{} placed by {} at canteen {} ({} line(s), total {})",
                order.order_number, actor.id, canteen_id, len(items), order.total_amount,
            )
            result.orders.append(order)
            for it in items:
                draft.remove_item(it.item_id)

        if not result.orders:
            raise PersistenceFailure("Failed to place order. Please try again.")
        if result.complete:
            draft.clear()
        return result
