from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession

from hotel_pos.db.session import AsyncSessionLocal


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Использовать в Depends(get_async_session)
    Пример: async def endpoint(db: AsyncSession = Depends(get_async_session))
    """
    async with AsyncSessionLocal() as session:
        yield session
