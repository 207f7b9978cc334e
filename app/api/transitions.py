from typing import List
from fastapi import APIRouter, Depends
from app.api.deps import get_actor_id, get_lifecycle
from app.api.tickets import ticket_detail
from app.core.lifecycle import TicketLifecycle, allowed_actions
from app.schemas.ticket import TicketDetailResponse, TransitionAction, TransitionRequest

router = APIRouter(prefix="/tickets/{ticket_id}/transitions", tags=["Lifecycle"])


@router.get("", response_model=List[str])
def list_allowed_transitions(
    ticket_id: int,
    actor_id: str = Depends(get_actor_id),
    lifecycle: TicketLifecycle = Depends(get_lifecycle),
):
    """
    Transitions the acting user may perform on the ticket right now.
    """
    ticket = lifecycle.store.get_ticket(ticket_id)
    caps = lifecycle.roles.role_of(actor_id, ticket.project_id)
    return allowed_actions(caps, ticket)


@router.post("/{action}", response_model=TicketDetailResponse)
def apply_transition(
    ticket_id: int,
    action: TransitionAction,
    request: TransitionRequest,
    actor_id: str = Depends(get_actor_id),
    lifecycle: TicketLifecycle = Depends(get_lifecycle),
):
    """
    Apply a lifecycle transition. The status change and its system comment
    are committed together; notifications are best-effort.
    Rejections: 403 wrong role, 409 wrong state or stale version,
    422 missing commentary or reference, 404 unknown ticket/user.
    """
    ticket = lifecycle.perform(
        action.value,
        ticket_id,
        actor_id,
        comment=request.comment,
        rejection_reason=request.rejection_reason,
        duplicate_of=request.duplicate_of,
        assignee_id=request.assignee_id,
        priority=request.priority,
        expected_version=request.expected_version,
    )
    return ticket_detail(ticket, lifecycle)
