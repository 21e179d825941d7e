import enum
from sqlalchemy import Column, Integer, Numeric, String, DateTime, ForeignKey, Enum as SAEnum, func
from sqlalchemy.orm import relationship
from ..db.base import Base


class FulfillmentKindEnum(str, enum.Enum):
    kitchen = "kitchen"
    direct = "direct"
    combo = "combo"


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    menu_item_id = Column(Integer, ForeignKey("menu_items.id"), nullable=True)
    item_name = Column(String(128), nullable=True)  # название на момент заказа
    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Numeric(10, 2), nullable=False)  # цена за единицу, фиксируется на момент заказа
    fulfillment_kind = Column(
        SAEnum(FulfillmentKindEnum, name="fulfillment_kind"),
        nullable=False,
        default=FulfillmentKindEnum.kitchen,
    )
    notes = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # связи
    order = relationship("Order", back_populates="items")
    menu_item = relationship("MenuItem", back_populates="order_items")

    @property
    def line_total(self):
        return self.price * self.quantity

    @property
    def display_name(self) -> str:
        return self.item_name or f"Item #{self.menu_item_id}"
