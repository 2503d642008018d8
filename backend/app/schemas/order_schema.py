from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.order import OrderStatus


class MenuItemRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    name: str
    description: Optional[str] = None


class CanteenRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    name: str
    location: str


class OrderLineOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    menu_item_id: int
    quantity: int
    unit_price: Decimal
    menu_item: Optional[MenuItemRef] = None


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    order_number: int
    customer_id: str
    canteen_id: int
    status: OrderStatus
    total_amount: Decimal
    notes: Optional[str] = None
    estimated_pickup_time: Optional[datetime] = None
    created_at: datetime
    status_changed_at: datetime
    canteen: Optional[CanteenRef] = None
    lines: List[OrderLineOut] = Field(default_factory=list)
    allowed_next: List[OrderStatus] = Field(default_factory=list)


class StatusUpdateIn(BaseModel):
    status: OrderStatus


class OrderStatsOut(BaseModel):
    total_orders: int
    today_orders: int
    pending_orders: int
    total_revenue: Decimal
    pending_approvals: Optional[int] = None


class CartItemIn(BaseModel):
    menu_item_id: int


class CartQuantityIn(BaseModel):
    quantity: int


class CheckoutIn(BaseModel):
    notes: Optional[str] = None
