from decimal import Decimal

import pytest

from hotel_pos.crud.order import get_order_by_id
from hotel_pos.exceptions import ConflictError, EmptyCartError, ValidationError
from hotel_pos.models import FulfillmentKindEnum, OrderFulfillmentEnum, OrderStatusEnum
from hotel_pos.services.order_links import SplitOrderLinker


@pytest.mark.asyncio
async def test_mixed_cart_creates_two_linked_orders(db, menu, waiter_ctx, make_cart):
    result = await SplitOrderLinker(db).place_cart(
        waiter_ctx, make_cart((menu["burger"], 1), (menu["soda"], 1), table_number="7")
    )

    kitchen, direct = result.kitchen_order, result.direct_order
    assert kitchen.status == OrderStatusEnum.pending
    assert kitchen.fulfillment == OrderFulfillmentEnum.kitchen
    assert kitchen.total_amount == Decimal("500")
    assert kitchen.chef_id is None

    assert direct.status == OrderStatusEnum.served
    assert direct.fulfillment == OrderFulfillmentEnum.direct
    assert direct.total_amount == Decimal("300")

    assert kitchen.linked_order_id == direct.id
    assert direct.linked_order_id == kitchen.id
    assert kitchen.order_number == kitchen.id
    assert kitchen.order_code == f"EH{kitchen.id}"
    assert kitchen.table_number == "7"
    assert kitchen.waiter_id == waiter_ctx.actor_id


@pytest.mark.asyncio
async def test_single_side_cart_is_unlinked(db, menu, waiter_ctx, make_cart):
    result = await SplitOrderLinker(db).place_cart(waiter_ctx, make_cart((menu["tea"], 2)))

    assert result.kitchen_order is None
    order = result.direct_order
    assert order.linked_order_id is None
    assert order.total_amount == Decimal("300")
    assert [(i.item_name, i.quantity, i.price) for i in order.items] == [("Tea", 2, Decimal("150"))]


@pytest.mark.asyncio
async def test_combo_goes_to_kitchen_tagged_combo(db, menu, waiter_ctx, make_cart):
    result = await SplitOrderLinker(db).place_cart(waiter_ctx, make_cart((menu["combo"], 1)))

    assert result.direct_order is None
    assert result.kitchen_order.items[0].fulfillment_kind == FulfillmentKindEnum.combo


@pytest.mark.asyncio
async def test_zero_quantity_lines_are_dropped(db, menu, waiter_ctx, make_cart):
    result = await SplitOrderLinker(db).place_cart(
        waiter_ctx, make_cart((menu["burger"], 2), (menu["soda"], 0))
    )
    assert result.direct_order is None
    assert result.kitchen_order.total_amount == Decimal("1000")


@pytest.mark.asyncio
async def test_empty_cart_is_rejected(db, menu, waiter_ctx, make_cart):
    with pytest.raises(EmptyCartError):
        await SplitOrderLinker(db).place_cart(waiter_ctx, make_cart((menu["soda"], 0)))
    with pytest.raises(EmptyCartError):
        await SplitOrderLinker(db).place_cart(waiter_ctx, make_cart())


@pytest.mark.asyncio
async def test_unknown_or_unavailable_menu_item_is_rejected(db, menu, waiter_ctx, make_cart):
    with pytest.raises(ValidationError):
        await SplitOrderLinker(db).place_cart(waiter_ctx, make_cart((9999, 1)))
    with pytest.raises(ValidationError):
        await SplitOrderLinker(db).place_cart(waiter_ctx, make_cart((menu["fish"], 1)))


@pytest.mark.asyncio
async def test_resolve_link_group(db, menu, waiter_ctx, make_cart):
    linker = SplitOrderLinker(db)
    result = await linker.place_cart(waiter_ctx, make_cart((menu["burger"], 1), (menu["soda"], 1)))

    group = await linker.resolve_link_group(waiter_ctx, result.kitchen_order.id)
    assert group == {result.kitchen_order.id, result.direct_order.id}


@pytest.mark.asyncio
async def test_complete_link_repairs_half_written_pair(db, menu, waiter_ctx, make_cart):
    linker = SplitOrderLinker(db)
    result = await linker.place_cart(waiter_ctx, make_cart((menu["burger"], 1), (menu["soda"], 1)))
    kitchen_id, direct_id = result.kitchen_order.id, result.direct_order.id

    direct = await get_order_by_id(db, direct_id, fresh=True)
    direct.linked_order_id = None
    await db.commit()

    await linker.complete_link(waiter_ctx, kitchen_id)

    direct = await get_order_by_id(db, direct_id, fresh=True)
    assert direct.linked_order_id == kitchen_id


@pytest.mark.asyncio
async def test_complete_link_refuses_pair_pointing_elsewhere(db, menu, waiter_ctx, make_cart):
    linker = SplitOrderLinker(db)
    first = await linker.place_cart(waiter_ctx, make_cart((menu["burger"], 1), (menu["soda"], 1)))
    other = await linker.place_cart(waiter_ctx, make_cart((menu["tea"], 1)))

    direct = await get_order_by_id(db, first.direct_order.id, fresh=True)
    direct.linked_order_id = other.direct_order.id
    await db.commit()

    with pytest.raises(ConflictError):
        await linker.complete_link(waiter_ctx, first.kitchen_order.id)
