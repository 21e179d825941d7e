import enum
from decimal import Decimal
from typing import List

from sqlalchemy import (
    Column, Integer, String, Numeric, Boolean, DateTime, ForeignKey, Enum as SAEnum, func,
)
from sqlalchemy.orm import relationship
from ..db.base import Base
from ..config import settings
from ..services import ledger_codec


class OrderStatusEnum(str, enum.Enum):
    pending = "pending"
    preparing = "preparing"
    served = "served"
    paid = "paid"
    cleared = "cleared"


class OrderFulfillmentEnum(str, enum.Enum):
    kitchen = "kitchen"
    direct = "direct"


ZERO = Decimal("0")


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(Integer, nullable=True, index=True)
    hotel_id = Column(String(64), nullable=False, index=True)
    status = Column(SAEnum(OrderStatusEnum, name="order_status"), nullable=False, default=OrderStatusEnum.pending)
    fulfillment = Column(
        SAEnum(OrderFulfillmentEnum, name="order_fulfillment"),
        nullable=False,
        default=OrderFulfillmentEnum.kitchen,
    )

    total_amount = Column(Numeric(10, 2), nullable=False, default=ZERO)
    amount_paid = Column(Numeric(10, 2), nullable=False, default=ZERO)
    payment_method = Column(String(255), nullable=True)  # см. services/ledger_codec.py
    is_debt = Column(Boolean, nullable=False, default=False)
    debtor_name = Column(String(255), nullable=True)

    waiter_id = Column(Integer, ForeignKey("employees.id"), nullable=True)
    chef_id = Column(Integer, ForeignKey("employees.id"), nullable=True)
    linked_order_id = Column(Integer, ForeignKey("orders.id"), nullable=True, index=True)

    table_number = Column(String(32), nullable=True)
    notes = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    closed_at = Column(DateTime(timezone=True), nullable=True)

    # счётчик версий: конкурентная запись ловится при коммите (StaleDataError)
    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    # связи
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")

    # --- производные величины ---

    @property
    def order_code(self) -> str:
        return f"{settings.ORDER_CODE_PREFIX}{self.order_number or self.id}"

    @property
    def balance(self) -> Decimal:
        return Decimal(self.total_amount or 0) - Decimal(self.amount_paid or 0)

    @property
    def payments(self) -> List[ledger_codec.PaymentEntry]:
        return ledger_codec.decode_payments(self.payment_method, Decimal(self.amount_paid or 0))

    @property
    def debtors(self) -> List[ledger_codec.DebtorEntry]:
        if not self.is_debt:
            return []
        return ledger_codec.decode_debtors(self.debtor_name, self.balance)

    @property
    def paid_total(self) -> Decimal:
        return Decimal(self.amount_paid or 0)

    @property
    def debt_total(self) -> Decimal:
        return ledger_codec.total(self.debtors)

    @property
    def items_total(self) -> Decimal:
        return sum((Decimal(i.price) * i.quantity for i in self.items), ZERO)

    @property
    def is_fully_settled(self) -> bool:
        return self.balance == 0 and not self.is_debt

    def invariant_violations(self, check_items: bool = True) -> List[str]:
        """Список нарушенных инвариантов записи (пустой, если всё в порядке)."""
        problems = []
        total = Decimal(self.total_amount or 0)
        paid = Decimal(self.amount_paid or 0)

        if paid < 0 or paid > total:
            problems.append(f"amount_paid {paid} outside 0..{total}")
        if self.is_debt:
            if total - paid <= 0:
                problems.append("is_debt set on an order with no balance")
            if not (self.debtor_name or "").strip():
                problems.append("is_debt set without a debtor name")
        if self.status == OrderStatusEnum.paid and (paid != total or self.is_debt):
            problems.append("paid order is not fully settled")
        if check_items and self.items and self.items_total != total:
            problems.append(f"items sum {self.items_total} != total {total}")
        return problems
