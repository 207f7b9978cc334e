from typing import List
from fastapi import APIRouter, Depends
from app.api.deps import get_actor_id, get_labels, get_lifecycle
from app.core.labels import LabelCatalog
from app.core.lifecycle import TicketLifecycle
from app.models.ticket import Ticket
from app.schemas.project import LabelResponse
from app.schemas.ticket import (
    CommentCreate,
    CommentResponse,
    SlaResponse,
    TicketDetailResponse,
    TicketDetailsUpdate,
    TicketLabelAttach,
    TicketResponse,
    UserSummary,
)

router = APIRouter(prefix="/tickets", tags=["Tickets"])


def ticket_detail(ticket: Ticket, lifecycle: TicketLifecycle) -> TicketDetailResponse:
    sla = lifecycle.sla_for(ticket)
    assignee = lifecycle.store.get_profile(ticket.assigned_to) if ticket.assigned_to else None
    creator = lifecycle.store.get_profile(ticket.created_by)
    return TicketDetailResponse(
        **TicketResponse.model_validate(ticket).model_dump(),
        sla=SlaResponse(
            state=sla.state,
            label=sla.label,
            deadline=sla.deadline,
            remaining_seconds=sla.remaining_seconds,
        ),
        assignee=UserSummary.model_validate(assignee) if assignee else None,
        creator=UserSummary.model_validate(creator) if creator else None,
        labels=[LabelResponse.model_validate(label) for label in lifecycle.store.list_ticket_labels(ticket.id)],
    )


@router.get("/{ticket_id}", response_model=TicketDetailResponse)
def get_ticket(ticket_id: int, lifecycle: TicketLifecycle = Depends(get_lifecycle)):
    """
    Retrieve a ticket with its SLA state and the assignee/reporter summaries.
    Deactivated users are still shown, flagged with is_active=false.
    """
    ticket = lifecycle.store.get_ticket(ticket_id)
    return ticket_detail(ticket, lifecycle)


@router.patch("/{ticket_id}", response_model=TicketDetailResponse)
def edit_ticket_details(
    ticket_id: int,
    update_data: TicketDetailsUpdate,
    actor_id: str = Depends(get_actor_id),
    lifecycle: TicketLifecycle = Depends(get_lifecycle),
):
    """
    Edit title, description or report link. Status, assignee and priority
    only change through /tickets/{id}/transitions.
    """
    ticket = lifecycle.edit_details(
        ticket_id,
        actor_id,
        title=update_data.title,
        description=update_data.description,
        report_link=update_data.report_link,
    )
    return ticket_detail(ticket, lifecycle)


@router.get("/{ticket_id}/assignable", response_model=List[UserSummary])
def get_assignable_users(ticket_id: int, lifecycle: TicketLifecycle = Depends(get_lifecycle)):
    return lifecycle.assignable_users(ticket_id)


@router.get("/{ticket_id}/comments", response_model=List[CommentResponse])
def get_comments(ticket_id: int, lifecycle: TicketLifecycle = Depends(get_lifecycle)):
    lifecycle.store.get_ticket(ticket_id)
    return lifecycle.store.list_comments(ticket_id)


@router.post("/{ticket_id}/comments", response_model=CommentResponse, status_code=201)
def add_comment(
    ticket_id: int,
    comment_in: CommentCreate,
    actor_id: str = Depends(get_actor_id),
    lifecycle: TicketLifecycle = Depends(get_lifecycle),
):
    return lifecycle.add_comment(ticket_id, actor_id, comment_in.body)


@router.get("/{ticket_id}/labels", response_model=List[LabelResponse])
def get_ticket_labels(ticket_id: int, labels: LabelCatalog = Depends(get_labels)):
    return labels.for_ticket(ticket_id)


@router.post("/{ticket_id}/labels", response_model=List[LabelResponse], status_code=201)
def attach_label(
    ticket_id: int,
    label_in: TicketLabelAttach,
    actor_id: str = Depends(get_actor_id),
    labels: LabelCatalog = Depends(get_labels),
):
    """
    Attach a project label. Attaching one that is already present is a no-op.
    """
    return labels.attach(ticket_id, label_in.label_id, actor_id)


@router.delete("/{ticket_id}/labels/{label_id}", response_model=List[LabelResponse])
def detach_label(
    ticket_id: int,
    label_id: str,
    actor_id: str = Depends(get_actor_id),
    labels: LabelCatalog = Depends(get_labels),
):
    return labels.detach(ticket_id, label_id, actor_id)
