from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from hotel_pos.context import ActorContext, get_actor_context
from hotel_pos.crud.order import (
    get_chef_orders,
    get_debt_orders,
    get_kitchen_queue,
    get_orders,
    get_orders_awaiting_payment,
    get_payment_breakdown,
)
from hotel_pos.db.deps import get_async_session
from hotel_pos.schemas.order import (
    CartCreate,
    OrderRead,
    PaymentBreakdownRead,
    PaymentSubmission,
    ReceiptRead,
    ReconciliationRead,
    Redistribution,
    SplitOrderRead,
)
from hotel_pos.services.order_links import SplitOrderLinker
from hotel_pos.services.persistence import load_order
from hotel_pos.services.receipts import build_receipt
from hotel_pos.services.reconciliation import PaymentReconciliationEngine
from hotel_pos.services.redistribution import RedistributionEngine
from hotel_pos.services.state_machine import OrderStateMachine


router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("/", response_model=SplitOrderRead, status_code=201)
async def place_cart_endpoint(
    cart: CartCreate,
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Создаёт заказ из корзины.
    Если в корзине есть и кухонные, и прямые позиции, создаются два связанных заказа.
    """
    result = await SplitOrderLinker(db).place_cart(ctx, cart)
    return SplitOrderRead(
        kitchen_order=OrderRead.from_orm_with_name(result.kitchen_order) if result.kitchen_order else None,
        direct_order=OrderRead.from_orm_with_name(result.direct_order) if result.direct_order else None,
    )


@router.get("/", response_model=List[OrderRead])
async def list_orders(
    status: Optional[str] = Query(None, description="Фильтр по статусу"),
    date_from: Optional[datetime] = Query(None, description="Начальная дата"),
    date_to: Optional[datetime] = Query(None, description="Конечная дата"),
    limit: Optional[int] = Query(None, description="Количество записей для вывода"),
    offset: Optional[int] = Query(None, description="Смещение для пагинации"),
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Возвращает список заказов гостиницы.
    Поддерживает фильтрацию по статусу и диапазону дат и пагинацию.
    """
    orders = await get_orders(
        db, ctx.hotel_id, status=status, date_from=date_from, date_to=date_to, limit=limit, offset=offset
    )
    return [OrderRead.from_orm_with_name(o) for o in orders]


@router.get("/kitchen-queue", response_model=List[OrderRead])
async def kitchen_queue(
    chef_id: Optional[int] = Query(None, description="Заказы, которые готовит этот повар"),
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Очередь кухни: новые заказы без повара (старые первыми).
    С chef_id возвращает заказы, которые этот повар уже готовит.
    """
    if chef_id is not None:
        orders = await get_chef_orders(db, ctx.hotel_id, chef_id)
    else:
        orders = await get_kitchen_queue(db, ctx.hotel_id)
    return [OrderRead.from_orm_with_name(o) for o in orders]


@router.get("/debts", response_model=List[OrderRead])
async def debt_orders(
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_async_session),
):
    orders = await get_debt_orders(db, ctx.hotel_id)
    return [OrderRead.from_orm_with_name(o) for o in orders]


@router.get("/awaiting-payment", response_model=List[OrderRead])
async def awaiting_payment(
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_async_session),
):
    """Поданные заказы с неоплаченным остатком."""
    orders = await get_orders_awaiting_payment(db, ctx.hotel_id)
    return [OrderRead.from_orm_with_name(o) for o in orders]


@router.get("/summary/payments", response_model=PaymentBreakdownRead)
async def payments_summary(
    date_from: Optional[datetime] = Query(None, description="Начальная дата (ISO)"),
    date_to: Optional[datetime] = Query(None, description="Конечная дата (ISO)"),
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Сводка по способам оплаты:
    - cash / mpesa / kcb
    - долг по должникам
    - неоплаченный остаток
    """
    return await get_payment_breakdown(db, ctx.hotel_id, date_from=date_from, date_to=date_to)


@router.get("/{order_id}", response_model=OrderRead)
async def get_order(
    order_id: int = Path(..., description="ID заказа"),
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_async_session),
):
    order = await load_order(db, ctx, order_id)
    return OrderRead.from_orm_with_name(order)


@router.get("/{order_id}/receipt", response_model=ReceiptRead)
async def get_receipt(
    order_id: int = Path(..., description="ID заказа"),
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_async_session),
):
    """Данные чека по оплаченному заказу (и его связанной половине)."""
    order = await load_order(db, ctx, order_id)
    return await build_receipt(db, order)


@router.post("/{order_id}/accept", response_model=OrderRead)
async def accept_order(
    order_id: int,
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_async_session),
):
    """Повар берёт заказ. X-Actor-Id обязателен; проигравший гонку получает 409."""
    order = await OrderStateMachine(db).accept(ctx, order_id)
    return OrderRead.from_orm_with_name(order)


@router.post("/{order_id}/serve", response_model=OrderRead)
async def serve_order(
    order_id: int,
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_async_session),
):
    order = await OrderStateMachine(db).mark_served(ctx, order_id)
    return OrderRead.from_orm_with_name(order)


@router.post("/{order_id}/decline")
async def decline_order(
    order_id: int,
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_async_session),
):
    """Отказ кухни: удаляет заказ вместе со связанным."""
    deleted = await OrderStateMachine(db).decline(ctx, order_id)
    return {"deleted": deleted}


@router.post("/{order_id}/archive", response_model=OrderRead)
async def archive_order(
    order_id: int,
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_async_session),
):
    order = await OrderStateMachine(db).archive(ctx, order_id)
    return OrderRead.from_orm_with_name(order)


@router.delete("/{order_id}", status_code=204)
async def cancel_order(
    order_id: int,
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Отменяет заказ, пока его не взяла кухня.
    """
    await OrderStateMachine(db).cancel(ctx, order_id)
    return Response(status_code=204)


@router.delete("/{order_id}/items/{item_id}")
async def remove_order_item(
    order_id: int,
    item_id: int,
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Убирает позицию из заказа.
    Если позиция была последней, заказ удаляется вместе со связанным и возвращается 204.
    """
    order = await OrderStateMachine(db).remove_item(ctx, order_id, item_id)
    if order is None:
        return Response(status_code=204)
    return OrderRead.from_orm_with_name(order)


@router.post("/{order_id}/payments", response_model=ReconciliationRead)
async def record_payment(
    order_id: int,
    submission: PaymentSubmission,
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Принимает оплату: несколько способов сразу и, при необходимости, часть в долг.
    При полной оплате заказ закрывается и в ответе приходит чек.
    """
    result = await PaymentReconciliationEngine(db).reconcile(ctx, order_id, submission)
    return ReconciliationRead(
        order=OrderRead.from_orm_with_name(result.order),
        settled=result.settled,
        receipt=result.receipt,
    )


@router.put("/{order_id}/allocation", response_model=OrderRead)
async def redistribute_payment(
    order_id: int,
    allocation: Redistribution,
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Перераспределяет проведённую оплату по способам и должникам.
    Сумма распределения должна точно совпасть с суммой заказа.
    """
    order = await RedistributionEngine(db).redistribute(ctx, order_id, allocation)
    return OrderRead.from_orm_with_name(order)
