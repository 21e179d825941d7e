import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Set

from sqlalchemy import select, update, delete, and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hotel_pos.exceptions import GroupInProgressError, PartialCascadeFailure
from hotel_pos.models import Order, OrderItem, OrderStatusEnum, OrderFulfillmentEnum
from hotel_pos.services import ledger_codec

logger = logging.getLogger(__name__)


async def get_orders(
    db: AsyncSession,
    hotel_id: str,
    status: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> List[Order]:
    """
    Возвращает список заказов гостиницы с опциональной фильтрацией по статусу и дате.
    Подгружаем items. Сортируем по created_at (новые первыми).
    """
    stmt = (
        select(Order)
        .where(Order.hotel_id == hotel_id)
        .options(selectinload(Order.items))
        .order_by(Order.created_at.desc(), Order.id.desc())
    )

    if status:
        stmt = stmt.where(Order.status == status)
    if date_from:
        stmt = stmt.where(Order.created_at >= date_from)
    if date_to:
        stmt = stmt.where(Order.created_at <= date_to)
    if limit:
        stmt = stmt.limit(limit)
    if offset:
        stmt = stmt.offset(offset)

    result = await db.execute(stmt)
    return result.scalars().unique().all()


async def get_order_by_id(
    db: AsyncSession,
    order_id: int,
    hotel_id: Optional[str] = None,
    fresh: bool = False,
) -> Optional[Order]:
    """
    Возвращает заказ по ID с подгруженными items.
    fresh=True перечитывает строку из базы поверх identity map:
    баланс перед проверкой оплаты должен быть свежим, а не закешированным.
    """
    stmt = (
        select(Order)
        .where(Order.id == order_id)
        .options(selectinload(Order.items))
    )
    if hotel_id is not None:
        stmt = stmt.where(Order.hotel_id == hotel_id)
    if fresh:
        stmt = stmt.execution_options(populate_existing=True)

    result = await db.execute(stmt)
    return result.scalars().unique().first()


async def get_orders_by_ids(db: AsyncSession, order_ids: Iterable[int]) -> List[Order]:
    ids = set(order_ids)
    if not ids:
        return []
    stmt = (
        select(Order)
        .where(Order.id.in_(ids))
        .options(selectinload(Order.items))
        .order_by(Order.id)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return result.scalars().unique().all()


async def get_kitchen_queue(db: AsyncSession, hotel_id: str) -> List[Order]:
    """Новые заказы, которые ещё не взял ни один повар (старые первыми)."""
    stmt = (
        select(Order)
        .where(Order.hotel_id == hotel_id)
        .where(Order.status == OrderStatusEnum.pending)
        .where(Order.chef_id.is_(None))
        .options(selectinload(Order.items))
        .order_by(Order.created_at.asc(), Order.id.asc())
    )
    result = await db.execute(stmt)
    return result.scalars().unique().all()


async def get_chef_orders(db: AsyncSession, hotel_id: str, chef_id: int) -> List[Order]:
    """Заказы, которые готовит конкретный повар."""
    stmt = (
        select(Order)
        .where(Order.hotel_id == hotel_id)
        .where(Order.status == OrderStatusEnum.preparing)
        .where(Order.chef_id == chef_id)
        .options(selectinload(Order.items))
        .order_by(Order.created_at.asc(), Order.id.asc())
    )
    result = await db.execute(stmt)
    return result.scalars().unique().all()


async def get_orders_awaiting_payment(db: AsyncSession, hotel_id: str) -> List[Order]:
    """Поданные заказы, по которым ещё есть остаток."""
    stmt = (
        select(Order)
        .where(Order.hotel_id == hotel_id)
        .where(Order.status == OrderStatusEnum.served)
        .where(Order.amount_paid < Order.total_amount)
        .options(selectinload(Order.items))
        .order_by(Order.created_at.asc(), Order.id.asc())
    )
    result = await db.execute(stmt)
    return result.scalars().unique().all()


async def get_debt_orders(db: AsyncSession, hotel_id: str) -> List[Order]:
    stmt = (
        select(Order)
        .where(Order.hotel_id == hotel_id)
        .where(Order.is_debt.is_(True))
        .options(selectinload(Order.items))
        .order_by(Order.created_at.desc(), Order.id.desc())
    )
    result = await db.execute(stmt)
    return result.scalars().unique().all()


async def get_link_group_ids(db: AsyncSession, order_id: int) -> Set[int]:
    """
    Группа связанных заказов: сам заказ, заказ, на который он ссылается,
    и все заказы, которые ссылаются на него.
    """
    ids = {order_id}

    result = await db.execute(select(Order.linked_order_id).where(Order.id == order_id))
    linked_id = result.scalar_one_or_none()
    if linked_id is not None:
        ids.add(linked_id)

    result = await db.execute(select(Order.id).where(Order.linked_order_id == order_id))
    ids.update(result.scalars().all())
    return ids


async def claim_pending_order(db: AsyncSession, hotel_id: str, order_id: int, chef_id: int) -> int:
    """
    Условная запись "повар взял заказ": проходит только если chef_id ещё пуст.
    Возвращает количество изменённых строк (0 = гонку выиграл кто-то другой).
    """
    stmt = (
        update(Order)
        .where(Order.id == order_id)
        .where(Order.hotel_id == hotel_id)
        .where(Order.status == OrderStatusEnum.pending)
        .where(Order.chef_id.is_(None))
        .values(
            status=OrderStatusEnum.preparing,
            chef_id=chef_id,
            version=Order.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    await db.commit()
    return result.rowcount


def initial_status_clause():
    """SQL-условие "заказ ещё в начальном статусе" (см. state_machine.is_at_initial_status)."""
    return or_(
        and_(
            Order.fulfillment == OrderFulfillmentEnum.kitchen,
            Order.status == OrderStatusEnum.pending,
            Order.chef_id.is_(None),
        ),
        and_(
            Order.fulfillment == OrderFulfillmentEnum.direct,
            Order.status == OrderStatusEnum.served,
            Order.amount_paid == 0,
            Order.is_debt.is_(False),
        ),
    )


async def _delete_items(db: AsyncSession, order_ids: List[int]):
    await db.execute(
        delete(OrderItem)
        .where(OrderItem.order_id.in_(order_ids))
        .execution_options(synchronize_session=False)
    )


async def _delete_orders(db: AsyncSession, order_ids: List[int]) -> int:
    # повторная проверка статусов прямо в DELETE: между чтением и удалением заказ могли взять
    result = await db.execute(
        delete(Order)
        .where(Order.id.in_(order_ids))
        .where(initial_status_clause())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def delete_order_group(db: AsyncSession, order_ids: Iterable[int], atomic: bool = True):
    """
    Удаляет позиции и заказы группы.

    atomic=True: всё в одной транзакции, при ошибке откат и исключение наружу.
    atomic=False: позиции и заказы коммитятся отдельно; если упало после
    первого коммита, бросаем PartialCascadeFailure. Автоматической
    компенсации нет.
    """
    ids = sorted(set(order_ids))

    if atomic:
        try:
            await _delete_items(db, ids)
            deleted = await _delete_orders(db, ids)
            if deleted != len(ids):
                await db.rollback()
                raise GroupInProgressError(
                    "A linked part of this order changed status before it could be removed"
                )
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Database error during cascade delete of orders {ids}: {str(e)}")
            raise
        return

    try:
        await _delete_items(db, ids)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Database error deleting items of orders {ids}: {str(e)}")
        raise

    try:
        deleted = await _delete_orders(db, ids)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.critical(f"Cascade delete left orders {ids} without items: {str(e)}")
        raise PartialCascadeFailure(
            f"Items of orders {ids} were deleted but the orders were not; manual cleanup required",
            order_ids=ids,
            items_deleted=True,
        ) from e

    if deleted != len(ids):
        logger.critical(f"Cascade delete removed {deleted} of {len(ids)} orders in group {ids}")
        raise PartialCascadeFailure(
            f"Only {deleted} of {len(ids)} orders in group {ids} were deleted; manual cleanup required",
            order_ids=ids,
            items_deleted=True,
        )


async def get_payment_breakdown(
    db: AsyncSession,
    hotel_id: str,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> dict:
    """
    Сводка по способам оплаты за период:
    - суммы по cash / mpesa / kcb (старый формат тоже учитывается)
    - долг по именованным должникам
    - неоплаченный остаток поданных заказов без долга
    """
    stmt = (
        select(Order)
        .where(Order.hotel_id == hotel_id)
        .where(Order.status.in_([OrderStatusEnum.served, OrderStatusEnum.paid, OrderStatusEnum.cleared]))
    )
    if date_from:
        stmt = stmt.where(Order.created_at >= date_from)
    if date_to:
        stmt = stmt.where(Order.created_at <= date_to)

    result = await db.execute(stmt)
    orders = result.scalars().all()

    entries = []
    debt = Decimal("0")
    pending = Decimal("0")
    revenue = Decimal("0")
    for order in orders:
        entries.extend(order.payments)
        revenue += order.paid_total
        if order.is_debt:
            debt += order.balance
        elif order.status == OrderStatusEnum.served:
            pending += order.balance

    by_method = ledger_codec.summarize_by_method(entries)

    return {
        "count_orders": len(orders),
        "total_revenue": revenue,
        "cash": by_method[ledger_codec.CASH],
        "mpesa": by_method[ledger_codec.MPESA],
        "kcb": by_method[ledger_codec.KCB],
        "unattributed": by_method.get(ledger_codec.UNATTRIBUTED, Decimal("0")),
        "debt": debt,
        "pending": pending,
    }
