"""
Создание заказа из корзины официанта.

Корзина делится на кухонную часть (блюда и комбо) и прямую (напитки и всё,
что подаётся сразу). Если обе части непустые, создаются два заказа,
ссылающиеся друг на друга через linked_order_id.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hotel_pos.context import ActorContext
from hotel_pos.crud.menu import get_menu_items_by_ids
from hotel_pos.crud.order import get_link_group_ids, get_order_by_id
from hotel_pos.events import OrderEvent, emit_order_event, ORDER_CREATED
from hotel_pos.exceptions import ConflictError, EmptyCartError, ValidationError
from hotel_pos.models import (
    FulfillmentKindEnum,
    Order,
    OrderFulfillmentEnum,
    OrderItem,
    OrderStatusEnum,
)
from hotel_pos.schemas.order import CartCreate
from hotel_pos.services.persistence import commit_order_changes, load_order

logger = logging.getLogger(__name__)


@dataclass
class SplitOrderResult:
    kitchen_order: Optional[Order] = None
    direct_order: Optional[Order] = None

    @property
    def orders(self) -> List[Order]:
        return [o for o in (self.kitchen_order, self.direct_order) if o is not None]


def _build_order(ctx: ActorContext, cart: CartCreate, waiter_id, fulfillment, items) -> Order:
    if fulfillment == OrderFulfillmentEnum.kitchen:
        status = OrderStatusEnum.pending
    else:
        status = OrderStatusEnum.served

    return Order(
        hotel_id=ctx.hotel_id,
        status=status,
        fulfillment=fulfillment,
        total_amount=sum((i.price * i.quantity for i in items), Decimal("0")),
        amount_paid=Decimal("0"),
        is_debt=False,
        waiter_id=waiter_id,
        table_number=cart.table_number,
        notes=cart.notes,
        items=items,
    )


class SplitOrderLinker:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def place_cart(self, ctx: ActorContext, cart: CartCreate) -> SplitOrderResult:
        """
        Создаёт один или два заказа из корзины.
        Обе записи и обе ссылки пишутся в одной транзакции: половинчатой пары
        после сбоя не остаётся.
        """
        lines = [line for line in cart.items if line.quantity > 0]
        if not lines:
            raise EmptyCartError()

        menu = await get_menu_items_by_ids(self.db, ctx.hotel_id, [line.menu_item_id for line in lines])

        kitchen_items = []
        direct_items = []
        for line in lines:
            menu_item = menu.get(line.menu_item_id)
            if menu_item is None:
                raise ValidationError(f"Menu item {line.menu_item_id} not found")
            if not menu_item.is_available:
                raise ValidationError(f"{menu_item.name} is not available")

            if menu_item.is_combo:
                kind = FulfillmentKindEnum.combo
            elif menu_item.requires_kitchen:
                kind = FulfillmentKindEnum.kitchen
            else:
                kind = FulfillmentKindEnum.direct

            item = OrderItem(
                menu_item_id=menu_item.id,
                item_name=menu_item.name,
                quantity=line.quantity,
                price=Decimal(menu_item.price),
                fulfillment_kind=kind,
                notes=line.notes,
            )
            if menu_item.goes_to_kitchen:
                kitchen_items.append(item)
            else:
                direct_items.append(item)

        waiter_id = cart.waiter_id or ctx.actor_id
        kitchen_order = None
        direct_order = None
        if kitchen_items:
            kitchen_order = _build_order(ctx, cart, waiter_id, OrderFulfillmentEnum.kitchen, kitchen_items)
        if direct_items:
            direct_order = _build_order(ctx, cart, waiter_id, OrderFulfillmentEnum.direct, direct_items)

        created = [o for o in (kitchen_order, direct_order) if o is not None]
        try:
            self.db.add_all(created)
            await self.db.flush()

            # номер заказа = id строки
            for order in created:
                order.order_number = order.id
            if kitchen_order is not None and direct_order is not None:
                kitchen_order.linked_order_id = direct_order.id
                direct_order.linked_order_id = kitchen_order.id

            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Database error while placing cart for hotel {ctx.hotel_id}: {str(e)}")
            raise

        created_ids = [o.id for o in created]

        # загружаем заказы обратно вместе с позициями
        result = SplitOrderResult()
        if kitchen_order is not None:
            result.kitchen_order = await load_order(self.db, ctx, kitchen_order.id)
        if direct_order is not None:
            result.direct_order = await load_order(self.db, ctx, direct_order.id)

        logger.info(
            f"Cart placed for hotel {ctx.hotel_id}: "
            f"{', '.join(o.order_code for o in result.orders)}"
        )
        for order in result.orders:
            await emit_order_event(OrderEvent(
                event_type=ORDER_CREATED,
                order_id=order.id,
                hotel_id=ctx.hotel_id,
                actor_id=ctx.actor_id,
                metadata={
                    "fulfillment": order.fulfillment.value,
                    "total_amount": str(order.total_amount),
                    "linked_order_id": order.linked_order_id,
                    "group": created_ids,
                },
            ))
        return result

    async def resolve_link_group(self, ctx: ActorContext, order_id: int) -> Set[int]:
        await load_order(self.db, ctx, order_id)
        return await get_link_group_ids(self.db, order_id)

    async def complete_link(self, ctx: ActorContext, order_id: int) -> Order:
        """
        Дописывает недостающую обратную ссылку пары (старые данные или
        прерванная запись). Если вторая сторона уже ссылается на другой
        заказ, это ConflictError.
        """
        order = await load_order(self.db, ctx, order_id)

        if order.linked_order_id is not None:
            other = await get_order_by_id(self.db, order.linked_order_id, hotel_id=ctx.hotel_id, fresh=True)
            if other is None:
                return order
            if other.linked_order_id == order.id:
                return order
            if other.linked_order_id is not None:
                raise ConflictError(
                    f"Order {other.order_code} is already linked to another order"
                )
            code = other.order_code
            other.linked_order_id = order.id
            await commit_order_changes(self.db, code)
            logger.info(f"Restored link {code} -> {order.order_code}")
            return await load_order(self.db, ctx, order_id)

        group = await get_link_group_ids(self.db, order_id)
        group.discard(order_id)
        if not group:
            return order
        if len(group) > 1:
            raise ConflictError(f"Order {order.order_code} is referenced by several orders")

        other_id = group.pop()
        code = order.order_code
        order.linked_order_id = other_id
        await commit_order_changes(self.db, code)
        logger.info(f"Restored link {code} -> order {other_id}")
        return await load_order(self.db, ctx, order_id)
