from typing import List, Optional

from sqlalchemy.orm import Session

from app.models.menu_item import MenuItem
from app.models.order import OrderLine


class MenuRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, item_id: int) -> Optional[MenuItem]:
        return self.db.query(MenuItem).filter(MenuItem.id == item_id).first()

    def list_for_canteen(
        self, canteen_id: int, include_unavailable: bool = False
    ) -> List[MenuItem]:
        query = self.db.query(MenuItem).filter(MenuItem.canteen_id == canteen_id)
        if not include_unavailable:
            query = query.filter(MenuItem.is_available == True)  # noqa: E712
        return query.order_by(MenuItem.category, MenuItem.name).all()

    def add(self, canteen_id: int, **fields) -> MenuItem:
        item = MenuItem(canteen_id=canteen_id, **fields)
        self.db.add(item)
        self.db.flush()
        return item

    def update(self, item: MenuItem, **fields) -> MenuItem:
        for name, value in fields.items():
            setattr(item, name, value)
        self.db.flush()
        return item

    def is_referenced_by_orders(self, item_id: int) -> bool:
        return (
            self.db.query(OrderLine.id).filter(OrderLine.menu_item_id == item_id).first()
            is not None
        )

    def delete(self, item: MenuItem):
        self.db.delete(item)
        self.db.flush()
