import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TicketChanged:
    ticket_id: int
    action: str
    previous_status: Optional[str]
    new_status: str
    actor_id: str
    occurred_at: datetime


Subscriber = Callable[[TicketChanged], None]


class EventBus:
    """
    In-process fan-out of ticket change events. Subscribers run synchronously
    after the change is committed; a failing subscriber never affects the
    publisher or the other subscribers.
    """

    def __init__(self):
        self._subscribers: List[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        self._subscribers.append(subscriber)

        def unsubscribe():
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe

    def publish(self, event: TicketChanged) -> None:
        for subscriber in list(self._subscribers):
            try:
                subscriber(event)
            except Exception:
                logger.exception("Event subscriber failed. ticket=%s action=%s", event.ticket_id, event.action)


event_bus = EventBus()
