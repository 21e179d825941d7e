import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./hotel_pos_test.db")

from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from hotel_pos.context import ActorContext
from hotel_pos.db.base import Base
from hotel_pos.db.deps import get_async_session
from hotel_pos.main import app
from hotel_pos.models import Employee, MenuItem, StaffRoleEnum
from hotel_pos.schemas.order import CartCreate, CartLine

HOTEL = "eh-main"


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Свежая SQLite-база на каждый тест."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/test.db")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def staff(db):
    waiter = Employee(hotel_id=HOTEL, name="Mary", role=StaffRoleEnum.waiter)
    chef_a = Employee(hotel_id=HOTEL, name="Otieno", role=StaffRoleEnum.chef)
    chef_b = Employee(hotel_id=HOTEL, name="Wanjiru", role=StaffRoleEnum.chef)
    db.add_all([waiter, chef_a, chef_b])
    await db.commit()
    return {"waiter": waiter.id, "chef_a": chef_a.id, "chef_b": chef_b.id}


@pytest_asyncio.fixture
async def menu(db):
    items = {
        "burger": MenuItem(hotel_id=HOTEL, name="Beef Burger", category="food", price=Decimal("500"), requires_kitchen=True),
        "soda": MenuItem(hotel_id=HOTEL, name="Soda", category="drinks", price=Decimal("300"), requires_kitchen=False),
        "tea": MenuItem(hotel_id=HOTEL, name="Tea", category="drinks", price=Decimal("150"), requires_kitchen=False),
        "water": MenuItem(hotel_id=HOTEL, name="Water 1L", category="drinks", price=Decimal("200"), requires_kitchen=False),
        "combo": MenuItem(
            hotel_id=HOTEL, name="Lunch Combo", category="combo", price=Decimal("800"),
            requires_kitchen=False, is_combo=True,
        ),
        "fish": MenuItem(
            hotel_id=HOTEL, name="Tilapia", category="food", price=Decimal("1200"),
            requires_kitchen=True, is_available=False,
        ),
    }
    db.add_all(items.values())
    await db.commit()
    return {key: item.id for key, item in items.items()}


@pytest.fixture
def waiter_ctx(staff):
    return ActorContext(hotel_id=HOTEL, actor_id=staff["waiter"])


@pytest.fixture
def chef_ctx(staff):
    return ActorContext(hotel_id=HOTEL, actor_id=staff["chef_a"])


@pytest.fixture
def make_cart():
    def _make(*lines, **kwargs):
        return CartCreate(
            items=[CartLine(menu_item_id=menu_item_id, quantity=quantity) for menu_item_id, quantity in lines],
            **kwargs,
        )
    return _make


@pytest_asyncio.fixture
async def client(session_factory):
    """HTTP-клиент приложения с тестовой базой вместо рабочей."""
    async def override_get_async_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_async_session] = override_get_async_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
