import enum

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from app.db import Base
from app.utils.clock import utcnow


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PREPARING = "preparing"
    READY_FOR_PICKUP = "ready_for_pickup"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Order(Base):
    __tablename__ = "orders"
    id = Column(Integer, primary_key=True, autoincrement=True)
    order_number = Column(Integer, unique=True, nullable=False, index=True)
    customer_id = Column(String(64), nullable=False, index=True)
    canteen_id = Column(Integer, ForeignKey("canteens.id"), nullable=False, index=True)
    total_amount = Column(Numeric(10, 2), nullable=False)
    status = Column(
        String(32), nullable=False, default=OrderStatus.PENDING.value, index=True
    )
    notes = Column(Text, nullable=True)
    estimated_pickup_time = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    status_changed_at = Column(DateTime, default=utcnow, nullable=False)

    lines = relationship(
        "OrderLine",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderLine.id",
    )
    canteen = relationship("Canteen")


class OrderLine(Base):
    __tablename__ = "order_lines"
    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    menu_item_id = Column(Integer, ForeignKey("menu_items.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)

    order = relationship("Order", back_populates="lines")
    menu_item = relationship("MenuItem")


class OrderNumberSequence(Base):
    """Single-row counter backing human-facing order numbers."""

    __tablename__ = "order_number_sequence"
    id = Column(Integer, primary_key=True)
    last_value = Column(Integer, nullable=False, default=0)
