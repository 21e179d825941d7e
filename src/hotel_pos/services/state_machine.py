"""
Машина состояний заказа.

    pending -> preparing -> served -> paid -> cleared
    pending -> (удалён)     отказ кухни, отмена, удаление последней позиции

Прямые заказы (без кухни) рождаются сразу в served.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from hotel_pos.config import settings
from hotel_pos.context import ActorContext
from hotel_pos.crud.order import (
    claim_pending_order,
    delete_order_group,
    get_link_group_ids,
    get_order_by_id,
    get_orders_by_ids,
)
from hotel_pos.events import (
    OrderEvent,
    emit_order_event,
    ORDER_ACCEPTED,
    ORDER_ARCHIVED,
    ORDER_DELETED,
    ORDER_ITEM_REMOVED,
    ORDER_SERVED,
)
from hotel_pos.exceptions import (
    ConflictError,
    GroupInProgressError,
    InvalidTransitionError,
    InvariantViolation,
    OrderNotFoundError,
    ValidationError,
)
from hotel_pos.models import Order, OrderStatusEnum, OrderFulfillmentEnum
from hotel_pos.services.persistence import commit_order_changes, load_order

logger = logging.getLogger(__name__)

TRANSITIONS = {
    OrderStatusEnum.pending: {OrderStatusEnum.preparing},
    OrderStatusEnum.preparing: {OrderStatusEnum.served},
    OrderStatusEnum.served: {OrderStatusEnum.paid},
    OrderStatusEnum.paid: {OrderStatusEnum.cleared},
    OrderStatusEnum.cleared: set(),
}


def can_transition(current, target) -> bool:
    return OrderStatusEnum(target) in TRANSITIONS[OrderStatusEnum(current)]


def ensure_transition(current, target):
    if not can_transition(current, target):
        raise InvalidTransitionError(
            f"Cannot move order from {OrderStatusEnum(current).value} to {OrderStatusEnum(target).value}"
        )


def is_at_initial_status(order: Order) -> bool:
    """
    Заказ ещё не тронут: кухонный ждёт повара,
    прямой подан, но по нему ничего не оплачено и нет долга.
    """
    if order.fulfillment == OrderFulfillmentEnum.direct:
        return (
            order.status == OrderStatusEnum.served
            and order.amount_paid == 0
            and not order.is_debt
        )
    return order.status == OrderStatusEnum.pending and order.chef_id is None


def ensure_order_invariants(order: Order, check_items: bool = True):
    problems = order.invariant_violations(check_items=check_items)
    if problems:
        logger.error(f"Order {order.order_code} would break invariants: {problems}")
        raise InvariantViolation(f"Order {order.order_code} is inconsistent: {'; '.join(problems)}")


def apply_settlement_status(order: Order) -> bool:
    """served -> paid, если оплачено полностью и долга не осталось."""
    if order.status != OrderStatusEnum.served or not order.is_fully_settled:
        return False
    ensure_transition(order.status, OrderStatusEnum.paid)
    order.status = OrderStatusEnum.paid
    order.closed_at = datetime.now(timezone.utc)
    return True


class OrderStateMachine:
    """Переходы статусов заказа и каскадное удаление связанных заказов."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def accept(self, ctx: ActorContext, order_id: int) -> Order:
        """
        Повар берёт заказ. Запись условная (chef_id IS NULL), поэтому из
        нескольких одновременных попыток проходит ровно одна; остальные
        получают ConflictError и должны перечитать очередь.
        """
        if ctx.actor_id is None:
            raise ValidationError("Chef id is required to accept an order")

        claimed = await claim_pending_order(self.db, ctx.hotel_id, order_id, ctx.actor_id)
        if not claimed:
            order = await get_order_by_id(self.db, order_id, hotel_id=ctx.hotel_id, fresh=True)
            if order is None:
                raise OrderNotFoundError(f"Order {order_id} not found")
            logger.warning(
                f"Chef {ctx.actor_id} lost the race for order {order.order_code} "
                f"(status={order.status.value}, chef_id={order.chef_id})"
            )
            raise ConflictError(f"Order {order.order_code} is no longer available")

        order = await load_order(self.db, ctx, order_id)
        logger.info(f"Order {order.order_code} accepted by chef {ctx.actor_id}")
        await emit_order_event(OrderEvent(
            event_type=ORDER_ACCEPTED,
            order_id=order.id,
            hotel_id=ctx.hotel_id,
            actor_id=ctx.actor_id,
            metadata={"chef_id": ctx.actor_id},
        ))
        return order

    async def mark_served(self, ctx: ActorContext, order_id: int) -> Order:
        order = await load_order(self.db, ctx, order_id)
        ensure_transition(order.status, OrderStatusEnum.served)

        code = order.order_code
        order.status = OrderStatusEnum.served
        await commit_order_changes(self.db, code)

        order = await load_order(self.db, ctx, order_id)
        logger.info(f"Order {code} served")
        await emit_order_event(OrderEvent(
            event_type=ORDER_SERVED,
            order_id=order.id,
            hotel_id=ctx.hotel_id,
            actor_id=ctx.actor_id,
        ))
        return order

    async def archive(self, ctx: ActorContext, order_id: int) -> Order:
        """Административная архивация закрытого заказа (paid -> cleared)."""
        order = await load_order(self.db, ctx, order_id)
        ensure_transition(order.status, OrderStatusEnum.cleared)

        code = order.order_code
        order.status = OrderStatusEnum.cleared
        await commit_order_changes(self.db, code)

        order = await load_order(self.db, ctx, order_id)
        await emit_order_event(OrderEvent(
            event_type=ORDER_ARCHIVED,
            order_id=order.id,
            hotel_id=ctx.hotel_id,
            actor_id=ctx.actor_id,
        ))
        return order

    async def decline(self, ctx: ActorContext, order_id: int) -> List[int]:
        """Кухня отказывается от заказа: удаляется вся группа связанных заказов."""
        return await self._delete_group(ctx, order_id, reason="declined")

    async def cancel(self, ctx: ActorContext, order_id: int) -> List[int]:
        return await self._delete_group(ctx, order_id, reason="cancelled")

    async def remove_item(self, ctx: ActorContext, order_id: int, item_id: int) -> Optional[Order]:
        """
        Убирает позицию из ещё не принятого заказа и уменьшает сумму.
        Если позиция последняя, заказ удаляется вместе со связанной группой
        и возвращается None.
        """
        order = await load_order(self.db, ctx, order_id)
        if order.status != OrderStatusEnum.pending:
            raise InvalidTransitionError(f"Order {order.order_code} was already accepted by the kitchen")

        item = next((i for i in order.items if i.id == item_id), None)
        if item is None:
            raise OrderNotFoundError(f"Item {item_id} not found in order {order.order_code}")

        if len(order.items) == 1:
            await self._delete_group(ctx, order_id, reason="last item removed")
            return None

        code = order.order_code
        order.total_amount = order.total_amount - item.price * item.quantity
        order.items.remove(item)
        ensure_order_invariants(order)
        await commit_order_changes(self.db, code)

        order = await load_order(self.db, ctx, order_id)
        logger.info(f"Item {item_id} removed from order {code}, new total {order.total_amount}")
        await emit_order_event(OrderEvent(
            event_type=ORDER_ITEM_REMOVED,
            order_id=order.id,
            hotel_id=ctx.hotel_id,
            actor_id=ctx.actor_id,
            metadata={"item_id": item_id, "total_amount": str(order.total_amount)},
        ))
        return order

    async def _delete_group(self, ctx: ActorContext, order_id: int, reason: str) -> List[int]:
        order = await load_order(self.db, ctx, order_id)
        if order.status != OrderStatusEnum.pending:
            raise GroupInProgressError(f"Order {order.order_code} is already in progress")

        ids = await get_link_group_ids(self.db, order_id)
        group = await get_orders_by_ids(self.db, ids)

        blocked = [o for o in group if not is_at_initial_status(o)]
        if blocked:
            codes = ", ".join(o.order_code for o in blocked)
            logger.warning(f"Refusing to delete order {order.order_code}: linked orders in progress ({codes})")
            raise GroupInProgressError(f"A linked part of this order is already in progress ({codes})")

        group_ids = sorted(o.id for o in group)
        codes = [o.order_code for o in group]
        await delete_order_group(self.db, group_ids, atomic=settings.ATOMIC_CASCADE_DELETE)
        logger.info(f"Order group {codes} deleted ({reason})")

        for deleted_id in group_ids:
            await emit_order_event(OrderEvent(
                event_type=ORDER_DELETED,
                order_id=deleted_id,
                hotel_id=ctx.hotel_id,
                actor_id=ctx.actor_id,
                metadata={"reason": reason, "group": group_ids},
            ))
        return group_ids
