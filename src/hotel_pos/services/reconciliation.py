"""
Приём оплаты по поданному заказу.

Одна оплата может состоять из нескольких способов (cash / mpesa / kcb)
и части в долг на конкретного человека. Все проверки выполняются до записи:
при любой ошибке заказ не меняется.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from hotel_pos.context import ActorContext
from hotel_pos.events import (
    OrderEvent,
    emit_order_event,
    ORDER_PAID,
    ORDER_PAYMENT_RECORDED,
    ORDER_RECEIPT,
)
from hotel_pos.exceptions import ValidationError
from hotel_pos.models import Order, OrderStatusEnum
from hotel_pos.schemas.order import PaymentSubmission, ReceiptRead
from hotel_pos.services import ledger_codec
from hotel_pos.services.ledger_codec import DebtorEntry, PaymentEntry
from hotel_pos.services.persistence import commit_order_changes, load_order
from hotel_pos.services.receipts import build_receipt
from hotel_pos.services.state_machine import apply_settlement_status, ensure_order_invariants

logger = logging.getLogger(__name__)

DEBT = "debt"
ZERO = Decimal("0")


@dataclass
class ReconciliationResult:
    order: Order
    settled: bool
    receipt: Optional[ReceiptRead] = None


def _reduce_debtors(debtors: List[DebtorEntry], amount: Decimal) -> List[DebtorEntry]:
    """Гасит долги в порядке записи (старые первыми) на сумму amount."""
    remaining = []
    for debtor in debtors:
        if amount >= debtor.amount:
            amount -= debtor.amount
            continue
        remaining.append(DebtorEntry(name=debtor.name, amount=debtor.amount - amount))
        amount = ZERO
    return remaining


def _cap_debtors(debtors: List[DebtorEntry], limit: Decimal) -> List[DebtorEntry]:
    # сумма долгов не может быть больше остатка заказа
    capped = []
    for debtor in debtors:
        if limit <= 0:
            break
        amount = min(debtor.amount, limit)
        capped.append(DebtorEntry(name=debtor.name, amount=amount))
        limit -= amount
    return capped


class PaymentReconciliationEngine:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def reconcile(
        self,
        ctx: ActorContext,
        order_id: int,
        submission: PaymentSubmission,
    ) -> ReconciliationResult:
        cash_entries = ledger_codec.merge_by_method(
            PaymentEntry(method=c.method, amount=c.amount)
            for c in submission.contributions
            if c.method != DEBT and c.amount > 0
        )
        cash_sum = ledger_codec.total(cash_entries)
        debt_sum = sum((c.amount for c in submission.contributions if c.method == DEBT), ZERO)
        grand_total = cash_sum + debt_sum

        if grand_total <= 0:
            raise ValidationError("Enter payment amount")

        debtor_name = (submission.debtor_name or "").strip()
        if debt_sum > 0:
            if not debtor_name:
                raise ValidationError("Debtor name is required for the debt part")
            if ledger_codec.has_reserved_chars(debtor_name):
                raise ValidationError("Debtor name must not contain ',' or ':'")

        # баланс проверяем только по свежему чтению
        order = await load_order(self.db, ctx, order_id)
        code = order.order_code

        if order.status != OrderStatusEnum.served:
            raise ValidationError(f"Order {code} is not awaiting payment (status {order.status.value})")
        balance = order.balance
        if balance <= 0:
            raise ValidationError(f"Order {code} has nothing left to pay")
        if grand_total > balance:
            raise ValidationError(
                f"Payment {ledger_codec.format_amount(grand_total)} exceeds the balance "
                f"{ledger_codec.format_amount(balance)} of order {code}"
            )

        # старые имена могли содержать "," или ":"; в новом формате они недопустимы
        debtors = [
            DebtorEntry(name=ledger_codec.clean_name(d.name), amount=d.amount)
            for d in order.debtors
        ]
        attributed = ledger_codec.total(debtors)
        unattributed = max(balance - attributed, ZERO)

        # наличные сначала закрывают часть остатка без должника, потом старые долги
        if cash_sum > unattributed:
            debtors = _reduce_debtors(debtors, cash_sum - unattributed)

        if debt_sum > 0:
            free = max(unattributed - cash_sum, ZERO)
            if debt_sum > free:
                raise ValidationError(
                    f"Only {ledger_codec.format_amount(free)} of order {code} "
                    f"is not yet assigned to a debtor"
                )
            debtors = debtors + [DebtorEntry(name=debtor_name, amount=debt_sum)]

        new_paid = Decimal(order.amount_paid) + cash_sum
        debtors = _cap_debtors(debtors, Decimal(order.total_amount) - new_paid)

        if cash_entries:
            order.payment_method = ledger_codec.append_payments(
                order.payment_method, Decimal(order.amount_paid), cash_entries
            )
        order.amount_paid = new_paid
        order.debtor_name = ledger_codec.encode_debtors(debtors)
        order.is_debt = ledger_codec.total(debtors) > 0

        settled = apply_settlement_status(order)
        ensure_order_invariants(order, check_items=False)
        await commit_order_changes(self.db, code)

        order = await load_order(self.db, ctx, order_id)
        receipt = await build_receipt(self.db, order) if settled else None

        logger.info(
            f"Payment {ledger_codec.format_amount(grand_total)} recorded on order {code} "
            f"(paid {order.amount_paid} of {order.total_amount}, debt={order.is_debt})"
        )
        await emit_order_event(OrderEvent(
            event_type=ORDER_PAYMENT_RECORDED,
            order_id=order.id,
            hotel_id=ctx.hotel_id,
            actor_id=ctx.actor_id,
            metadata={
                "payments": [
                    {"method": e.method, "amount": str(e.amount)} for e in cash_entries
                ],
                "debt": str(debt_sum),
                "debtor_name": debtor_name or None,
                "balance": str(order.balance),
            },
        ))
        if settled:
            logger.info(f"Order {code} fully paid")
            await emit_order_event(OrderEvent(
                event_type=ORDER_PAID,
                order_id=order.id,
                hotel_id=ctx.hotel_id,
                actor_id=ctx.actor_id,
            ))
            await emit_order_event(OrderEvent(
                event_type=ORDER_RECEIPT,
                order_id=order.id,
                hotel_id=ctx.hotel_id,
                actor_id=ctx.actor_id,
                metadata={"order_codes": receipt.order_codes, "total_amount": str(receipt.total_amount)},
            ))

        return ReconciliationResult(order=order, settled=settled, receipt=receipt)
