from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy.ext.asyncio import AsyncSession

from hotel_pos.config import settings
from hotel_pos.crud.order import get_order_by_id
from hotel_pos.exceptions import ValidationError
from hotel_pos.models import Order, OrderStatusEnum
from hotel_pos.schemas.order import OrderItemRead, OrderRead, PaymentEntryRead, ReceiptRead
from hotel_pos.services import ledger_codec

CENT = Decimal("0.01")

SETTLED_STATUSES = (OrderStatusEnum.paid, OrderStatusEnum.cleared)


def vat_included(total: Decimal, rate: Decimal) -> Decimal:
    """НДС, уже включённый в сумму: total * rate / (1 + rate)."""
    return (total * rate / (1 + rate)).quantize(CENT, rounding=ROUND_HALF_UP)


async def build_receipt(db: AsyncSession, order: Order) -> ReceiptRead:
    """
    Общий чек по закрытому заказу и его связанной половине,
    если та тоже уже оплачена. Только данные, рендеринг не здесь.
    """
    if order.status not in SETTLED_STATUSES:
        raise ValidationError(f"Order {order.order_code} is not paid yet")

    orders = [order]
    if order.linked_order_id is not None:
        sibling = await get_order_by_id(db, order.linked_order_id, hotel_id=order.hotel_id, fresh=True)
        if sibling is not None and sibling.status in SETTLED_STATUSES:
            orders.append(sibling)

    total = sum((Decimal(o.total_amount) for o in orders), Decimal("0"))
    paid = sum((Decimal(o.amount_paid) for o in orders), Decimal("0"))
    payments = ledger_codec.merge_by_method(p for o in orders for p in o.payments)
    vat = vat_included(total, settings.VAT_RATE)

    return ReceiptRead(
        order_codes=[o.order_code for o in orders],
        orders=[OrderRead.from_orm_with_name(o) for o in orders],
        items=[OrderItemRead.from_orm_with_name(i) for o in orders for i in o.items],
        total_amount=total,
        amount_paid=paid,
        vat_amount=vat,
        pre_vat_amount=total - vat,
        payments=[PaymentEntryRead(method=p.method, amount=p.amount) for p in payments],
        issued_at=datetime.now(timezone.utc),
    )
