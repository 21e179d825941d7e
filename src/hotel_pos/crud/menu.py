from typing import Dict, Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hotel_pos.models import MenuItem


async def get_menu_items_by_ids(
    db: AsyncSession,
    hotel_id: str,
    menu_item_ids: Iterable[int],
) -> Dict[int, MenuItem]:
    """
    Возвращает позиции меню гостиницы по id: {id: MenuItem}.
    Отсутствующие id просто не попадают в словарь.
    """
    ids = set(menu_item_ids)
    if not ids:
        return {}

    stmt = (
        select(MenuItem)
        .where(MenuItem.id.in_(ids))
        .where(MenuItem.hotel_id == hotel_id)
    )
    result = await db.execute(stmt)
    return {item.id: item for item in result.scalars().all()}
