from pydantic import BaseModel, Field, conint
from typing import List, Literal, Optional
from datetime import datetime
from decimal import Decimal


class OrderItemRead(BaseModel):
    id: int
    menu_item_id: Optional[int] = None
    item_name: str
    quantity: int
    price: Decimal
    fulfillment_kind: str
    line_total: Decimal

    @classmethod
    def from_orm_with_name(cls, item):
        return cls(
            id=item.id,
            menu_item_id=item.menu_item_id,
            item_name=item.display_name,
            quantity=item.quantity,
            price=item.price,
            fulfillment_kind=_value(item.fulfillment_kind),
            line_total=item.line_total,
        )

    class Config:
        from_attributes = True


class PaymentEntryRead(BaseModel):
    method: str
    amount: Decimal


class DebtorEntryRead(BaseModel):
    name: str
    amount: Decimal


class OrderRead(BaseModel):
    id: int
    order_number: Optional[int] = None
    order_code: str
    hotel_id: str
    status: str
    fulfillment: str
    total_amount: Decimal
    amount_paid: Decimal
    balance: Decimal
    payment_method: Optional[str] = None
    payments: List[PaymentEntryRead] = []
    is_debt: bool
    debtor_name: Optional[str] = None
    debtors: List[DebtorEntryRead] = []
    waiter_id: Optional[int] = None
    chef_id: Optional[int] = None
    linked_order_id: Optional[int] = None
    table_number: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    items: List[OrderItemRead] = []
    count_items: int

    @classmethod
    def from_orm_with_name(cls, order):
        return cls(
            id=order.id,
            order_number=order.order_number,
            order_code=order.order_code,
            hotel_id=order.hotel_id,
            status=_value(order.status),
            fulfillment=_value(order.fulfillment),
            total_amount=order.total_amount,
            amount_paid=order.amount_paid,
            balance=order.balance,
            payment_method=order.payment_method,
            payments=[PaymentEntryRead(method=p.method, amount=p.amount) for p in order.payments],
            is_debt=order.is_debt,
            debtor_name=order.debtor_name,
            debtors=[DebtorEntryRead(name=d.name, amount=d.amount) for d in order.debtors],
            waiter_id=order.waiter_id,
            chef_id=order.chef_id,
            linked_order_id=order.linked_order_id,
            table_number=order.table_number,
            notes=order.notes,
            created_at=order.created_at,
            closed_at=order.closed_at,
            items=[OrderItemRead.from_orm_with_name(i) for i in order.items],
            count_items=sum(i.quantity for i in order.items),
        )

    class Config:
        from_attributes = True


def _value(enum_or_str):
    return enum_or_str.value if hasattr(enum_or_str, "value") else enum_or_str


# --- корзина ---

class CartLine(BaseModel):
    menu_item_id: int
    quantity: conint(ge=0)
    notes: Optional[str] = None


class CartCreate(BaseModel):
    waiter_id: Optional[int] = None
    table_number: Optional[str] = None
    notes: Optional[str] = None
    items: List[CartLine]


class SplitOrderRead(BaseModel):
    kitchen_order: Optional[OrderRead] = None
    direct_order: Optional[OrderRead] = None


# --- оплата ---

PaymentMethod = Literal["cash", "mpesa", "kcb"]


class Contribution(BaseModel):
    method: Literal["cash", "mpesa", "kcb", "debt"]
    amount: Decimal = Field(ge=0, decimal_places=2)


class PaymentSubmission(BaseModel):
    contributions: List[Contribution]
    debtor_name: Optional[str] = None

    class Config:
        extra = "forbid"


class PaymentAllocation(BaseModel):
    method: PaymentMethod
    amount: Decimal = Field(ge=0, decimal_places=2)


class DebtorAllocation(BaseModel):
    name: str = ""
    amount: Decimal = Field(ge=0, decimal_places=2)


class Redistribution(BaseModel):
    payments: List[PaymentAllocation] = []
    debtors: List[DebtorAllocation] = []

    class Config:
        extra = "forbid"


class ReceiptRead(BaseModel):
    order_codes: List[str]
    orders: List[OrderRead]
    items: List[OrderItemRead]
    total_amount: Decimal
    amount_paid: Decimal
    vat_amount: Decimal
    pre_vat_amount: Decimal
    payments: List[PaymentEntryRead]
    issued_at: datetime


class ReconciliationRead(BaseModel):
    order: OrderRead
    settled: bool
    receipt: Optional[ReceiptRead] = None


class PaymentBreakdownRead(BaseModel):
    count_orders: int
    total_revenue: Decimal
    cash: Decimal
    mpesa: Decimal
    kcb: Decimal
    unattributed: Decimal = Decimal("0")
    debt: Decimal
    pending: Decimal
