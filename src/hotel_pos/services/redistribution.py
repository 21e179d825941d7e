import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from hotel_pos.config import settings
from hotel_pos.context import ActorContext
from hotel_pos.events import OrderEvent, emit_order_event, ORDER_PAID, ORDER_REDISTRIBUTED
from hotel_pos.exceptions import ValidationError
from hotel_pos.models import Order, OrderStatusEnum
from hotel_pos.schemas.order import Redistribution
from hotel_pos.services import ledger_codec
from hotel_pos.services.ledger_codec import DebtorEntry, PaymentEntry
from hotel_pos.services.persistence import commit_order_changes, load_order
from hotel_pos.services.state_machine import ensure_order_invariants

logger = logging.getLogger(__name__)

REDISTRIBUTABLE_STATUSES = (OrderStatusEnum.served, OrderStatusEnum.paid)


def _created_today(order: Order) -> bool:
    created_at = order.created_at
    if created_at is None:
        return False
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return created_at.astimezone(timezone.utc).date() == datetime.now(timezone.utc).date()


class RedistributionEngine:
    """
    Переписывает распределение уже проведённой оплаты по способам и должникам.
    Сумма заказа не меняется: новое распределение обязано совпасть с ней точно.
    Старые строки не дописываются, а заменяются целиком.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def redistribute(self, ctx: ActorContext, order_id: int, allocation: Redistribution) -> Order:
        payments = [
            PaymentEntry(method=p.method, amount=p.amount)
            for p in allocation.payments
            if p.amount > 0
        ]
        debtors = []
        for d in allocation.debtors:
            if d.amount <= 0:
                continue
            name = d.name.strip()
            if not name:
                raise ValidationError("All debtors must have names")
            if ledger_codec.has_reserved_chars(name):
                raise ValidationError(f"Debtor name {name!r} must not contain ',' or ':'")
            debtors.append(DebtorEntry(name=name, amount=d.amount))

        order = await load_order(self.db, ctx, order_id)
        code = order.order_code

        if order.status not in REDISTRIBUTABLE_STATUSES:
            raise ValidationError(f"Order {code} cannot be redistributed in status {order.status.value}")
        if order.amount_paid <= 0 and not order.is_debt:
            raise ValidationError(f"Order {code} has no payment to redistribute")
        if settings.REDISTRIBUTION_SAME_DAY_ONLY and not _created_today(order):
            raise ValidationError(f"Order {code} can only be redistributed on the day it was placed")

        paid = ledger_codec.total(payments)
        debt = ledger_codec.total(debtors)
        total = Decimal(order.total_amount)
        if paid + debt != total:
            raise ValidationError(
                f"Allocation {ledger_codec.format_amount(paid + debt)} must equal the order total "
                f"{ledger_codec.format_amount(total)}"
            )

        was_paid = order.status == OrderStatusEnum.paid

        order.payment_method = ledger_codec.encode_payments(ledger_codec.merge_by_method(payments))
        order.amount_paid = paid
        order.debtor_name = ledger_codec.encode_debtors(debtors)
        order.is_debt = debt > 0

        if paid == total:
            order.status = OrderStatusEnum.paid
            if order.closed_at is None:
                order.closed_at = datetime.now(timezone.utc)
        else:
            # заказ с долгом не может оставаться оплаченным
            order.status = OrderStatusEnum.served
            order.closed_at = None

        ensure_order_invariants(order, check_items=False)
        await commit_order_changes(self.db, code)

        order = await load_order(self.db, ctx, order_id)
        promoted = order.status == OrderStatusEnum.paid and not was_paid
        logger.info(
            f"Order {code} redistributed: payments={order.payment_method}, "
            f"debtors={order.debtor_name}, status={order.status.value}"
        )
        await emit_order_event(OrderEvent(
            event_type=ORDER_REDISTRIBUTED,
            order_id=order.id,
            hotel_id=ctx.hotel_id,
            actor_id=ctx.actor_id,
            metadata={
                "payments": [{"method": p.method, "amount": str(p.amount)} for p in payments],
                "debtors": [{"name": d.name, "amount": str(d.amount)} for d in debtors],
                "status": order.status.value,
            },
        ))
        if promoted:
            await emit_order_event(OrderEvent(
                event_type=ORDER_PAID,
                order_id=order.id,
                hotel_id=ctx.hotel_id,
                actor_id=ctx.actor_id,
            ))
        return order
