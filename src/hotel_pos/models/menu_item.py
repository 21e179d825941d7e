from sqlalchemy import Column, Integer, String, Numeric, Boolean, DateTime, func
from sqlalchemy.orm import relationship
from ..db.base import Base


class MenuItem(Base):
    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True, index=True)
    hotel_id = Column(String(64), nullable=False, index=True)
    name = Column(String(128), nullable=False)
    category = Column(String(64), nullable=True)  # еда, напитки, комбо и т.д.
    price = Column(Numeric(10, 2), nullable=False)
    requires_kitchen = Column(Boolean, default=True, nullable=False)
    is_combo = Column(Boolean, default=False, nullable=False)  # комбо всегда идёт через кухню
    is_available = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # связь с OrderItem
    order_items = relationship("OrderItem", back_populates="menu_item")

    @property
    def goes_to_kitchen(self) -> bool:
        return bool(self.requires_kitchen or self.is_combo)
