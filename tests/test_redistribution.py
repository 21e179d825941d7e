from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
import pytest_asyncio

from hotel_pos.config import settings
from hotel_pos.crud.order import get_order_by_id
from hotel_pos.exceptions import ValidationError
from hotel_pos.models import OrderStatusEnum
from hotel_pos.schemas.order import (
    Contribution,
    DebtorAllocation,
    PaymentAllocation,
    PaymentSubmission,
    Redistribution,
)
from hotel_pos.services.ledger_codec import DebtorEntry, PaymentEntry
from hotel_pos.services.order_links import SplitOrderLinker
from hotel_pos.services.reconciliation import PaymentReconciliationEngine
from hotel_pos.services.redistribution import RedistributionEngine


def allocation(payments=(), debtors=()):
    return Redistribution(
        payments=[PaymentAllocation(method=m, amount=Decimal(str(a))) for m, a in payments],
        debtors=[DebtorAllocation(name=n, amount=Decimal(str(a))) for n, a in debtors],
    )


@pytest_asyncio.fixture
async def paid_order(db, menu, waiter_ctx, make_cart):
    """Прямой заказ на 1200, полностью оплаченный наличными."""
    result = await SplitOrderLinker(db).place_cart(
        waiter_ctx, make_cart((menu["soda"], 2), (menu["water"], 3))
    )
    order = result.direct_order
    await PaymentReconciliationEngine(db).reconcile(
        waiter_ctx,
        order.id,
        PaymentSubmission(contributions=[Contribution(method="cash", amount=Decimal("1200"))]),
    )
    return await get_order_by_id(db, order.id, fresh=True)


@pytest.mark.asyncio
async def test_redistribution_into_methods_and_debt(db, paid_order, waiter_ctx):
    order = await RedistributionEngine(db).redistribute(
        waiter_ctx,
        paid_order.id,
        allocation(payments=[("cash", 700), ("mpesa", 300)], debtors=[("Jane", 200)]),
    )

    assert order.amount_paid == Decimal("1000")
    assert order.is_debt is True
    assert order.debtors == [DebtorEntry("Jane", Decimal("200"))]
    assert order.payments == [PaymentEntry("cash", Decimal("700")), PaymentEntry("mpesa", Decimal("300"))]
    # долг вернул заказ в served
    assert order.status == OrderStatusEnum.served
    assert order.closed_at is None


@pytest.mark.asyncio
async def test_short_allocation_is_rejected_without_write(db, paid_order, waiter_ctx):
    with pytest.raises(ValidationError):
        await RedistributionEngine(db).redistribute(
            waiter_ctx,
            paid_order.id,
            allocation(payments=[("cash", 600), ("mpesa", 300)], debtors=[("Jane", 200)]),
        )

    order = await get_order_by_id(db, paid_order.id, fresh=True)
    assert order.payment_method == "cash:1200"
    assert order.amount_paid == Decimal("1200")
    assert order.status == OrderStatusEnum.paid


@pytest.mark.asyncio
async def test_redistribution_replaces_history(db, paid_order, waiter_ctx):
    order = await RedistributionEngine(db).redistribute(
        waiter_ctx,
        paid_order.id,
        allocation(payments=[("kcb", 1200), ("cash", 0)], debtors=[("", 0)]),
    )
    assert order.payment_method == "kcb:1200"
    assert order.debtor_name is None
    assert order.status == OrderStatusEnum.paid


@pytest.mark.asyncio
async def test_debt_back_to_paid(db, paid_order, waiter_ctx):
    engine = RedistributionEngine(db)
    await engine.redistribute(waiter_ctx, paid_order.id, allocation(payments=[("cash", 1000)], debtors=[("Jane", 200)]))

    order = await engine.redistribute(waiter_ctx, paid_order.id, allocation(payments=[("cash", 1200)]))
    assert order.status == OrderStatusEnum.paid
    assert order.is_debt is False
    assert order.closed_at is not None


@pytest.mark.asyncio
async def test_debtors_need_names(db, paid_order, waiter_ctx):
    engine = RedistributionEngine(db)
    with pytest.raises(ValidationError):
        await engine.redistribute(waiter_ctx, paid_order.id, allocation(payments=[("cash", 1000)], debtors=[("  ", 200)]))
    with pytest.raises(ValidationError):
        await engine.redistribute(waiter_ctx, paid_order.id, allocation(payments=[("cash", 1000)], debtors=[("Jane:2", 200)]))


@pytest.mark.asyncio
async def test_order_without_payment_history_is_rejected(db, menu, waiter_ctx, make_cart):
    result = await SplitOrderLinker(db).place_cart(waiter_ctx, make_cart((menu["soda"], 1)))
    with pytest.raises(ValidationError):
        await RedistributionEngine(db).redistribute(
            waiter_ctx, result.direct_order.id, allocation(payments=[("cash", 300)])
        )


@pytest.mark.asyncio
async def test_only_same_day_orders(db, paid_order, waiter_ctx, monkeypatch):
    order = await get_order_by_id(db, paid_order.id, fresh=True)
    order.created_at = datetime.now(timezone.utc) - timedelta(days=2)
    await db.commit()

    with pytest.raises(ValidationError):
        await RedistributionEngine(db).redistribute(waiter_ctx, paid_order.id, allocation(payments=[("mpesa", 1200)]))

    monkeypatch.setattr(settings, "REDISTRIBUTION_SAME_DAY_ONLY", False)
    order = await RedistributionEngine(db).redistribute(waiter_ctx, paid_order.id, allocation(payments=[("mpesa", 1200)]))
    assert order.payment_method == "mpesa:1200"
