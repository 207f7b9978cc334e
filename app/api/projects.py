from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from app.api.deps import get_actor_id, get_labels, get_lifecycle, get_store
from app.core.errors import PermissionDenied, ValidationFailed, require_text
from app.core.labels import LabelCatalog
from app.core.lifecycle import TicketLifecycle
from app.core.roles import RoleResolver
from app.core.store import TicketStore
from app.models.project import GlobalSettings, Project, ProjectMember
from app.schemas.project import (
    LabelCreate,
    LabelResponse,
    MemberCreate,
    MemberResponse,
    MemberRole,
    ProjectCreate,
    ProjectResponse,
    ProjectSla,
    Role,
)
from app.schemas.ticket import MoveRequest, TicketCreate, TicketResponse

router = APIRouter(prefix="/projects", tags=["Projects"])
settings_router = APIRouter(prefix="/settings", tags=["Settings"])


def _require_project_po(store: TicketStore, actor_id: str, project_id: str):
    caps = RoleResolver(store).role_of(actor_id, project_id)
    if not caps.is_po:
        raise PermissionDenied("Only a PO of this project may do this", actor_id=actor_id, project_id=project_id)
    return caps


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
def create_project(
    project_in: ProjectCreate,
    owner_id: Optional[str] = Query(None, description="Initial PO of the project; defaults to the actor."),
    actor_id: str = Depends(get_actor_id),
    store: TicketStore = Depends(get_store),
):
    """
    Create a project. Only global POs and admins may create projects; the
    chosen owner (default: the actor) becomes its first PO member.
    """
    caps = RoleResolver(store).role_of(actor_id)
    if not (caps.is_admin or caps.is_po):
        raise PermissionDenied("Only POs and admins may create projects", actor_id=actor_id)
    owner = store.require_profile(owner_id or actor_id)
    if not owner.is_active or owner.role not in (Role.ADMIN.value, Role.PO.value):
        raise ValidationFailed("Project owner must be an active PO or admin", field="owner_id")
    name = require_text(project_in.name, "name")
    if store.db.query(Project.id).filter(Project.slug == project_in.slug).first() is not None:
        raise ValidationFailed("Slug already in use", field="slug")

    with store.atomic():
        project = Project(**dict(project_in.model_dump(), name=name), created_by=actor_id)
        store.db.add(project)
        store.db.flush()
        store.db.add(ProjectMember(project_id=project.id, user_id=owner.id, role=MemberRole.PO.value))
    return project


@router.get("/{project_id}", response_model=ProjectResponse)
def get_project(project_id: str, store: TicketStore = Depends(get_store)):
    return store.get_project(project_id)


@router.put("/{project_id}/sla", response_model=ProjectResponse)
def update_project_sla(
    project_id: str,
    sla_in: ProjectSla,
    actor_id: str = Depends(get_actor_id),
    store: TicketStore = Depends(get_store),
):
    """
    Set or clear per-priority SLA overrides. Only affects tickets created
    (or re-prioritised) afterwards.
    """
    project = store.get_project(project_id)
    _require_project_po(store, actor_id, project.id)
    with store.atomic():
        for key, value in sla_in.model_dump().items():
            setattr(project, key, value)
    return project


@router.get("/{project_id}/members", response_model=List[MemberResponse])
def list_members(project_id: str, store: TicketStore = Depends(get_store)):
    store.get_project(project_id)
    return store.list_project_members(project_id)


@router.post("/{project_id}/members", response_model=MemberResponse, status_code=status.HTTP_201_CREATED)
def add_member(
    project_id: str,
    member_in: MemberCreate,
    actor_id: str = Depends(get_actor_id),
    store: TicketStore = Depends(get_store),
):
    project = store.get_project(project_id)
    _require_project_po(store, actor_id, project.id)
    user = store.require_profile(member_in.user_id)
    if not user.is_active:
        raise ValidationFailed("Deactivated users cannot join projects", field="user_id")
    if store.get_membership(project.id, user.id) is not None:
        raise ValidationFailed("User is already a member", field="user_id")
    with store.atomic():
        member = ProjectMember(project_id=project.id, user_id=user.id, role=member_in.role.value)
        store.db.add(member)
    return member


@router.delete("/{project_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_member(
    project_id: str,
    user_id: str,
    actor_id: str = Depends(get_actor_id),
    store: TicketStore = Depends(get_store),
):
    project = store.get_project(project_id)
    _require_project_po(store, actor_id, project.id)
    member = store.get_membership(project.id, user_id)
    if member is None:
        raise ValidationFailed("User is not a member", field="user_id")
    with store.atomic():
        store.db.delete(member)


@router.get("/{project_id}/labels", response_model=List[LabelResponse])
def list_labels(project_id: str, labels: LabelCatalog = Depends(get_labels)):
    return labels.for_project(project_id)


@router.post("/{project_id}/labels", response_model=LabelResponse, status_code=status.HTTP_201_CREATED)
def create_label(
    project_id: str,
    label_in: LabelCreate,
    actor_id: str = Depends(get_actor_id),
    labels: LabelCatalog = Depends(get_labels),
):
    return labels.create_label(project_id, actor_id, label_in.name, label_in.color)


@router.delete("/{project_id}/labels/{label_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_label(
    project_id: str,
    label_id: str,
    actor_id: str = Depends(get_actor_id),
    labels: LabelCatalog = Depends(get_labels),
):
    """
    Delete a label; it is detached from every ticket that carried it.
    """
    labels.delete_label(project_id, label_id, actor_id)

@router.get("/{project_id}/tickets", response_model=List[TicketResponse])
def list_project_tickets(project_id: str, lifecycle: TicketLifecycle = Depends(get_lifecycle)):
    """
    Tickets in manual order: sort_order ascending, newest first on ties.
    """
    return lifecycle.list_project_tickets(project_id)


@router.post("/{project_id}/tickets", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
def create_ticket(
    project_id: str,
    ticket_in: TicketCreate,
    actor_id: str = Depends(get_actor_id),
    lifecycle: TicketLifecycle = Depends(get_lifecycle),
):
    """
    Create a ticket with its SLA deadline computed from the priority
    (project override, else global setting, else default). It starts OPEN,
    or IN_PROGRESS when a PO names an assignee.
    """
    return lifecycle.create_ticket(
        project_id,
        actor_id,
        title=ticket_in.title,
        description=ticket_in.description,
        priority=ticket_in.priority,
        assignee_id=ticket_in.assigned_to,
        report_link=ticket_in.report_link,
        label_ids=ticket_in.label_ids,
    )


@router.post("/{project_id}/tickets/move", response_model=List[TicketResponse])
def move_ticket(
    project_id: str,
    move_in: MoveRequest,
    actor_id: str = Depends(get_actor_id),
    lifecycle: TicketLifecycle = Depends(get_lifecycle),
):
    return lifecycle.move_ticket(project_id, actor_id, move_in.ticket_id, move_in.direction, move_in.visible_ids)


@settings_router.put("/sla", response_model=ProjectSla)
def update_global_sla(
    sla_in: ProjectSla,
    actor_id: str = Depends(get_actor_id),
    store: TicketStore = Depends(get_store),
):
    """
    Update the organisation-wide SLA hours. Admin only; unset fields keep
    their current value.
    """
    caps = RoleResolver(store).role_of(actor_id)
    if not caps.is_admin:
        raise PermissionDenied("Only admins may change global settings", actor_id=actor_id)
    with store.atomic():
        row = store.get_global_settings()
        if row is None:
            row = GlobalSettings()
            store.db.add(row)
        for key, value in sla_in.model_dump(exclude_none=True).items():
            setattr(row, key, value)
    return ProjectSla(
        sla_p0_hours=row.sla_p0_hours,
        sla_p1_hours=row.sla_p1_hours,
        sla_p2_hours=row.sla_p2_hours,
        sla_p3_hours=row.sla_p3_hours,
    )
