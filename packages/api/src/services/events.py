# This project was developed with assistance from AI tools.
"""Domain events for the notification layer.

The orchestrator publishes a ``RequestEvent`` after every committed
transition. Delivery is in-process fan-out to registered subscribers;
the notification layer registers its own handler at startup.

Design principle: publishing happens after commit and never raises. A
failing subscriber is logged (with traceback) and the remaining
subscribers still run.
"""

import inspect
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from db.enums import RequestStatus, RequestType
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class RequestEvent(BaseModel):
    request_id: int
    request_type: RequestType
    action: str
    from_status: RequestStatus | None
    to_status: RequestStatus
    level: int
    actor_id: str
    timestamp: datetime


Subscriber = Callable[[RequestEvent], Awaitable[None] | None]

_subscribers: list[Subscriber] = []


def subscribe(handler: Subscriber) -> None:
    if handler not in _subscribers:
        _subscribers.append(handler)


def unsubscribe(handler: Subscriber) -> None:
    if handler in _subscribers:
        _subscribers.remove(handler)


def clear_subscribers() -> None:
    _subscribers.clear()


async def publish(event: RequestEvent) -> None:
    """Deliver ``event`` to every subscriber; failures are logged, not raised."""
    for handler in list(_subscribers):
        try:
            result = handler(event)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.warning(
                "Event subscriber %r failed for request %s (%s -> %s)",
                handler,
                event.request_id,
                event.from_status,
                event.to_status,
                exc_info=True,
            )


def log_event(event: RequestEvent) -> None:
    """Default subscriber: structured log line per transition."""
    logger.info(
        "request.%s id=%s type=%s %s->%s level=%s actor=%s",
        event.action,
        event.request_id,
        event.request_type.value,
        event.from_status.value if event.from_status else None,
        event.to_status.value,
        event.level,
        event.actor_id,
    )
