from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.orm import relationship

from app.db import Base
from app.utils.clock import utcnow


class Canteen(Base):
    __tablename__ = "canteens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String(255), nullable=False)
    opening_hours = Column(String(128), nullable=True)
    image_url = Column(String(512), nullable=True)
    is_approved = Column(Boolean, default=False, nullable=False)
    staff_user_id = Column(String(64), nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    menu_items = relationship(
        "MenuItem", back_populates="canteen", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Canteen id={self.id} name={self.name} approved={self.is_approved}>"
