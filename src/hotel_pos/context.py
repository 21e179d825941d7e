from dataclasses import dataclass
from typing import Optional

from fastapi import Header

from hotel_pos.config import settings


@dataclass(frozen=True)
class ActorContext:
    """Кто и в какой гостинице выполняет операцию. Передаётся в каждый вызов ядра явно."""

    hotel_id: str
    actor_id: Optional[int] = None


async def get_actor_context(
    x_hotel_id: Optional[str] = Header(None),
    x_actor_id: Optional[int] = Header(None),
) -> ActorContext:
    return ActorContext(
        hotel_id=x_hotel_id or settings.DEFAULT_HOTEL_ID,
        actor_id=x_actor_id,
    )
