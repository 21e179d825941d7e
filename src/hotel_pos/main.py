import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .api import health
from .config import settings
from .exceptions import register_exception_handlers
from hotel_pos.api.routes.orders import router as orders_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Application started")
    yield
    logger.info("Application stopped")


app = FastAPI(title="Hotel POS", lifespan=lifespan)

register_exception_handlers(app)

# Подключаем роуты
app.include_router(health.router)
app.include_router(orders_router)
