"""
События изменения заказов.

Списки на терминалах подписываются сюда вместо того, чтобы перечитывать
статусы по каждому push-уведомлению базы. События отправляются только
после успешного коммита.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
import asyncio
import logging

logger = logging.getLogger(__name__)

ORDER_CREATED = "order.created"
ORDER_ACCEPTED = "order.accepted"
ORDER_SERVED = "order.served"
ORDER_ITEM_REMOVED = "order.item_removed"
ORDER_DELETED = "order.deleted"
ORDER_PAYMENT_RECORDED = "order.payment_recorded"
ORDER_PAID = "order.paid"
ORDER_RECEIPT = "order.receipt"
ORDER_REDISTRIBUTED = "order.redistributed"
ORDER_ARCHIVED = "order.archived"


@dataclass
class OrderEvent:
    event_type: str
    order_id: int
    hotel_id: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    actor_id: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type,
            "order_id": self.order_id,
            "hotel_id": self.hotel_id,
            "timestamp": self.timestamp.isoformat(),
            "actor_id": self.actor_id,
            "metadata": self.metadata,
        }


# Реестр обработчиков
order_event_handlers: Dict[str, List[Callable]] = {
    ORDER_CREATED: [],
    ORDER_ACCEPTED: [],
    ORDER_SERVED: [],
    ORDER_ITEM_REMOVED: [],
    ORDER_DELETED: [],
    ORDER_PAYMENT_RECORDED: [],
    ORDER_PAID: [],
    ORDER_RECEIPT: [],
    ORDER_REDISTRIBUTED: [],
    ORDER_ARCHIVED: [],
}


def register_event_handler(event_type: str, handler: Callable):
    if event_type not in order_event_handlers:
        raise ValueError(f"Unknown event type: {event_type}")

    order_event_handlers[event_type].append(handler)
    logger.info(f"Registered handler {handler.__name__} for {event_type}")


def unregister_event_handler(event_type: str, handler: Callable):
    if event_type in order_event_handlers and handler in order_event_handlers[event_type]:
        order_event_handlers[event_type].remove(handler)


async def emit_order_event(event: OrderEvent):
    """
    Отправляет событие всем обработчикам.
    Ошибка обработчика логируется и не ломает операцию, которая его вызвала.
    """
    handlers = list(order_event_handlers.get(event.event_type, []))

    if not handlers:
        logger.debug(f"No handlers registered for {event.event_type}")
        return

    logger.debug(f"Emitting {event.event_type} for order {event.order_id}")

    tasks = []
    for handler in handlers:
        if asyncio.iscoroutinefunction(handler):
            tasks.append(handler(event))
        else:
            tasks.append(asyncio.to_thread(handler, event))

    results = await asyncio.gather(*tasks, return_exceptions=True)
    for handler, result in zip(handlers, results):
        if isinstance(result, Exception):
            logger.error(f"Handler {handler.__name__} failed for {event.event_type}: {result}")
