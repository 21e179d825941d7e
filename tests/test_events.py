from decimal import Decimal

import pytest

from hotel_pos import events
from hotel_pos.events import OrderEvent, emit_order_event, register_event_handler, unregister_event_handler
from hotel_pos.schemas.order import Contribution, PaymentSubmission
from hotel_pos.services.order_links import SplitOrderLinker
from hotel_pos.services.reconciliation import PaymentReconciliationEngine
from hotel_pos.services.state_machine import OrderStateMachine


@pytest.fixture
def received():
    """Собирает все события, отправленные во время теста."""
    seen = []

    async def collect(event):
        seen.append(event)

    for event_type in events.order_event_handlers:
        register_event_handler(event_type, collect)
    yield seen
    for event_type in events.order_event_handlers:
        unregister_event_handler(event_type, collect)


def test_unknown_event_type_is_rejected():
    with pytest.raises(ValueError):
        register_event_handler("order.teleported", lambda event: None)


@pytest.mark.asyncio
async def test_failing_handler_does_not_break_emit(received):
    calls = []

    def broken(event):
        raise RuntimeError("terminal offline")

    def sync_handler(event):
        calls.append(event.order_id)

    register_event_handler(events.ORDER_SERVED, broken)
    register_event_handler(events.ORDER_SERVED, sync_handler)
    try:
        await emit_order_event(OrderEvent(event_type=events.ORDER_SERVED, order_id=7, hotel_id="eh-main"))
    finally:
        unregister_event_handler(events.ORDER_SERVED, broken)
        unregister_event_handler(events.ORDER_SERVED, sync_handler)

    assert calls == [7]
    assert [e.order_id for e in received] == [7]


def test_event_to_dict():
    event = OrderEvent(event_type=events.ORDER_PAID, order_id=3, hotel_id="eh-main", actor_id=1)
    data = event.to_dict()
    assert data["event_type"] == "order.paid"
    assert data["order_id"] == 3
    assert data["metadata"] == {}


@pytest.mark.asyncio
async def test_lifecycle_emits_events_after_commit(db, menu, waiter_ctx, chef_ctx, make_cart, received):
    result = await SplitOrderLinker(db).place_cart(waiter_ctx, make_cart((menu["burger"], 1)))
    order_id = result.kitchen_order.id

    machine = OrderStateMachine(db)
    await machine.accept(chef_ctx, order_id)
    await machine.mark_served(chef_ctx, order_id)
    await PaymentReconciliationEngine(db).reconcile(
        waiter_ctx,
        order_id,
        PaymentSubmission(contributions=[Contribution(method="cash", amount=Decimal("500"))]),
    )

    assert [e.event_type for e in received] == [
        events.ORDER_CREATED,
        events.ORDER_ACCEPTED,
        events.ORDER_SERVED,
        events.ORDER_PAYMENT_RECORDED,
        events.ORDER_PAID,
        events.ORDER_RECEIPT,
    ]
    assert all(e.order_id == order_id for e in received)


@pytest.mark.asyncio
async def test_cascade_emits_deleted_per_order(db, menu, waiter_ctx, make_cart, received):
    result = await SplitOrderLinker(db).place_cart(
        waiter_ctx, make_cart((menu["burger"], 1), (menu["soda"], 1))
    )
    received.clear()

    await OrderStateMachine(db).cancel(waiter_ctx, result.kitchen_order.id)

    assert [e.event_type for e in received] == [events.ORDER_DELETED, events.ORDER_DELETED]
    assert {e.order_id for e in received} == {result.kitchen_order.id, result.direct_order.id}
    assert received[0].metadata["reason"] == "cancelled"
