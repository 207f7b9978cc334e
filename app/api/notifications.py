from typing import List
from fastapi import APIRouter, Depends
from app.api.deps import get_actor_id, get_inbox
from app.core.accounts import NotificationInbox
from app.schemas.ticket import NotificationResponse

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=List[NotificationResponse])
def list_notifications(
    unread_only: bool = False,
    actor_id: str = Depends(get_actor_id),
    inbox: NotificationInbox = Depends(get_inbox),
):
    """
    The acting user's notifications, newest first.
    """
    return inbox.for_user(actor_id, unread_only)


@router.post("/read-all")
def mark_all_read(actor_id: str = Depends(get_actor_id), inbox: NotificationInbox = Depends(get_inbox)):
    return {"updated": inbox.mark_all_read(actor_id)}


@router.post("/{notification_id}/read", response_model=NotificationResponse)
def mark_read(
    notification_id: str,
    actor_id: str = Depends(get_actor_id),
    inbox: NotificationInbox = Depends(get_inbox),
):
    return inbox.mark_read(notification_id, actor_id)
