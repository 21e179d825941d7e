from decimal import Decimal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str
    SQL_ECHO: bool = False
    LOG_LEVEL: str = "INFO"

    ORDER_CODE_PREFIX: str = "EH"
    DEFAULT_HOTEL_ID: str = "default"
    VAT_RATE: Decimal = Decimal("0.16")  # НДС уже включён в цены меню

    # False только для хранилищ без транзакций: позиции и заказы удаляются двумя коммитами
    ATOMIC_CASCADE_DELETE: bool = True
    REDISTRIBUTION_SAME_DAY_ONLY: bool = True

    class Config:
        env_file = ".env"

settings = Settings()
