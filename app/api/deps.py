from fastapi import Depends, Header
from sqlalchemy.orm import Session
from app.core.accounts import NotificationInbox, UserAdministration
from app.core.clock import SystemClock
from app.core.config import settings
from app.core.db import get_db
from app.core.events import event_bus
from app.core.labels import LabelCatalog
from app.core.lifecycle import TicketLifecycle
from app.core.store import TicketStore

system_clock = SystemClock()


def get_clock():
    return system_clock


def get_event_bus():
    return event_bus


def get_store(db: Session = Depends(get_db)) -> TicketStore:
    return TicketStore(db)


def get_lifecycle(
    store: TicketStore = Depends(get_store),
    clock=Depends(get_clock),
    events=Depends(get_event_bus),
) -> TicketLifecycle:
    return TicketLifecycle(store, clock=clock, events=events, config=settings)


def get_user_admin(
    store: TicketStore = Depends(get_store),
    clock=Depends(get_clock),
    events=Depends(get_event_bus),
) -> UserAdministration:
    return UserAdministration(store, clock=clock, events=events)


def get_labels(store: TicketStore = Depends(get_store)) -> LabelCatalog:
    return LabelCatalog(store)


def get_inbox(store: TicketStore = Depends(get_store)) -> NotificationInbox:
    return NotificationInbox(store)


def get_actor_id(x_actor_id: str = Header(..., alias="X-Actor-Id", description="ID of the user performing the request.")) -> str:
    return x_actor_id
