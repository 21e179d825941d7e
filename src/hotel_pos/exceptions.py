"""
Ошибки ядра заказов и их отображение в HTTP-ответы.

Сервисы бросают эти исключения, не зная ничего про HTTP;
register_exception_handlers() переводит их в единый JSON-ответ.
"""

import logging
from typing import Iterable, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class OrderError(Exception):
    """Базовая ошибка ядра заказов"""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "ORDER_ERROR"

    def __init__(self, detail: str, error_code: Optional[str] = None):
        super().__init__(detail)
        self.detail = detail
        if error_code:
            self.error_code = error_code


class ValidationError(OrderError):
    """Некорректный ввод; ничего не записано"""

    error_code = "VALIDATION_ERROR"


class EmptyCartError(ValidationError):
    error_code = "EMPTY_CART"

    def __init__(self, detail: str = "Cart has no items"):
        super().__init__(detail)


class InvalidTransitionError(ValidationError):
    error_code = "INVALID_TRANSITION"


class OrderNotFoundError(OrderError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"


class ConflictError(OrderError):
    """Гонка проиграна: заказ уже изменён другим терминалом"""

    status_code = status.HTTP_409_CONFLICT
    error_code = "CONFLICT"


class GroupInProgressError(OrderError):
    """Связанный заказ уже ушёл дальше начального статуса"""

    status_code = status.HTTP_409_CONFLICT
    error_code = "GROUP_IN_PROGRESS"


class PartialCascadeFailure(OrderError):
    """
    Каскадное удаление оборвалось на середине.
    Данные в неконсистентном состоянии, нужна ручная чистка.
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = "PARTIAL_CASCADE_FAILURE"

    def __init__(self, detail: str, order_ids: Iterable[int] = (), items_deleted: bool = False):
        super().__init__(detail)
        self.order_ids = sorted(order_ids)
        self.items_deleted = items_deleted


class InvariantViolation(OrderError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = "INVARIANT_VIOLATION"


async def handle_order_error(request: Request, exc: OrderError) -> JSONResponse:
    if isinstance(exc, PartialCascadeFailure):
        logger.critical(
            f"Partial cascade at {request.url.path}: {exc.detail} (orders={exc.order_ids})"
        )
    elif exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} at {request.url.path}: {exc.detail}")
    else:
        logger.warning(f"{type(exc).__name__} at {request.url.path}: {exc.detail}")

    content = {
        "detail": exc.detail,
        "error_code": exc.error_code,
        "path": str(request.url.path),
    }
    if isinstance(exc, PartialCascadeFailure):
        content["order_ids"] = exc.order_ids
        content["items_deleted"] = exc.items_deleted

    return JSONResponse(status_code=exc.status_code, content=content)


def register_exception_handlers(app):
    """Регистрирует обработчики ошибок ядра в приложении FastAPI"""
    app.add_exception_handler(OrderError, handle_order_error)
