from sqlalchemy import (
    Boolean,
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


class MenuItem(Base):
    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    canteen_id = Column(
        Integer, ForeignKey("canteens.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    category = Column(String(64), nullable=True)
    is_vegetarian = Column(Boolean, default=False, nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)
    preparation_time = Column(Integer, default=15, nullable=False)  # minutes
    image_url = Column(String(512), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    canteen = relationship("Canteen", back_populates="menu_items")

    def __repr__(self):
        return f"<MenuItem id={self.id} name={self.name} price={self.price}>"
