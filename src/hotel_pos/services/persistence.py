import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from hotel_pos.context import ActorContext
from hotel_pos.crud.order import get_order_by_id
from hotel_pos.exceptions import ConflictError, OrderNotFoundError
from hotel_pos.models import Order

logger = logging.getLogger(__name__)


async def load_order(db: AsyncSession, ctx: ActorContext, order_id: int) -> Order:
    """Свежее чтение заказа гостиницы; нет заказа - OrderNotFoundError."""
    order = await get_order_by_id(db, order_id, hotel_id=ctx.hotel_id, fresh=True)
    if order is None:
        raise OrderNotFoundError(f"Order {order_id} not found")
    return order


async def commit_order_changes(db: AsyncSession, order_code: str):
    """
    Коммит изменений заказа под счётчиком версий.
    Если строку успел поменять другой терминал, получаем ConflictError.
    """
    try:
        await db.commit()
    except StaleDataError:
        await db.rollback()
        logger.warning(f"Concurrent update detected on order {order_code}")
        raise ConflictError(
            f"Order {order_code} was changed by another terminal; reload it and try again"
        )
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Database error while saving order {order_code}: {str(e)}")
        raise
