from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy import func, update
from sqlalchemy.orm import Session, joinedload, selectinload

from app.models.order import Order, OrderLine, OrderNumberSequence

SEQUENCE_ROW_ID = 1


class OrderRepository:
    def __init__(self, db: Session):
        self.db = db

    def _with_context(self, query):
        return query.options(
            joinedload(Order.canteen),
            selectinload(Order.lines).joinedload(OrderLine.menu_item),
        ).populate_existing()

    def ensure_sequence(self) -> OrderNumberSequence:
        seq = self.db.get(OrderNumberSequence, SEQUENCE_ROW_ID)
        if seq is None:
            # start after any order numbers already issued
            current = self.db.query(func.max(Order.order_number)).scalar() or 0
            seq = OrderNumberSequence(id=SEQUENCE_ROW_ID, last_value=current)
            self.db.add(seq)
            self.db.flush()
        return seq

    def next_order_number(self) -> int:
        """Atomically bump the counter; must run inside the caller's transaction."""
        result = self.db.execute(
            update(OrderNumberSequence)
            .where(OrderNumberSequence.id == SEQUENCE_ROW_ID)
            .values(last_value=OrderNumberSequence.last_value + 1)
        )
        if result.rowcount == 0:
            self.ensure_sequence()
            return self.next_order_number()
        return (
            self.db.query(OrderNumberSequence.last_value)
            .filter(OrderNumberSequence.id == SEQUENCE_ROW_ID)
            .scalar()
        )

    def insert_order(
        self,
        customer_id: str,
        canteen_id: int,
        order_number: int,
        total_amount: Decimal,
        status: str,
        notes: Optional[str],
        estimated_pickup_time: datetime,
        created_at: datetime,
    ) -> Order:
        order = Order(
            order_number=order_number,
            customer_id=customer_id,
            canteen_id=canteen_id,
            total_amount=total_amount,
            status=status,
            notes=notes,
            estimated_pickup_time=estimated_pickup_time,
            created_at=created_at,
            status_changed_at=created_at,
        )
        self.db.add(order)
        self.db.flush()
        return order

    def insert_lines(self, order_id: int, lines: Sequence[dict]) -> List[OrderLine]:
        rows = [
            OrderLine(
                order_id=order_id,
                menu_item_id=l["menu_item_id"],
                quantity=l["quantity"],
                unit_price=l["unit_price"],
            )
            for l in lines
        ]
        self.db.add_all(rows)
        self.db.flush()
        return rows

    def get(self, order_id: int) -> Optional[Order]:
        # always re-read: status may have been moved by another session
        return (
            self.db.query(Order)
            .filter(Order.id == order_id)
            .populate_existing()
            .first()
        )

    def get_with_context(self, order_id: int) -> Optional[Order]:
        return (
            self._with_context(self.db.query(Order))
            .filter(Order.id == order_id)
            .first()
        )

    def set_status_if(
        self, order_id: int, expected: str, new: str, changed_at: datetime
    ) -> int:
        """Compare-and-set on status. Returns the number of rows written (0 or 1)."""
        return (
            self.db.query(Order)
            .filter(Order.id == order_id, Order.status == expected)
            .update(
                {Order.status: new, Order.status_changed_at: changed_at},
                synchronize_session=False,
            )
        )

    def ids_due_for_advance(
        self, status: str, cutoff: datetime, clock_column: str = "created_at"
    ) -> List[int]:
        column = getattr(Order, clock_column)
        rows = (
            self.db.query(Order.id)
            .filter(Order.status == status, column < cutoff)
            .order_by(Order.id)
            .all()
        )
        return [r[0] for r in rows]

    def advance_many(
        self, ids: Sequence[int], expected: str, new: str, changed_at: datetime
    ) -> int:
        if not ids:
            return 0
        return (
            self.db.query(Order)
            .filter(Order.id.in_(list(ids)), Order.status == expected)
            .update(
                {Order.status: new, Order.status_changed_at: changed_at},
                synchronize_session=False,
            )
        )

    def list_scoped(
        self,
        customer_id: Optional[str] = None,
        canteen_ids: Optional[Sequence[int]] = None,
    ) -> List[Order]:
        """
        Orders newest first with canteen and line context loaded.

        customer_id restricts to one customer; canteen_ids restricts to a set of
        canteens (an empty set yields nothing). Both None means unscoped.
        """
        query = self._with_context(self.db.query(Order))
        if customer_id is not None:
            query = query.filter(Order.customer_id == customer_id)
        if canteen_ids is not None:
            if not canteen_ids:
                return []
            query = query.filter(Order.canteen_id.in_(list(canteen_ids)))
        return query.order_by(Order.created_at.desc(), Order.id.desc()).all()
