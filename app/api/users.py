from typing import List
from fastapi import APIRouter, Depends, status
from app.api.deps import get_actor_id, get_store, get_user_admin
from app.core.accounts import UserAdministration, active_assignments
from app.core.store import TicketStore
from app.schemas.project import RoleUpdate, UserCreate, UserResponse
from app.schemas.ticket import ReassignmentTaskResponse, TicketResponse

router = APIRouter(prefix="/users", tags=["Users"])


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(user_in: UserCreate, admin: UserAdministration = Depends(get_user_admin)):
    """
    Register a user. New users start as developers; an admin promotes them.
    """
    return admin.create_user(user_in.email, user_in.full_name)


@router.get("/{user_id}", response_model=UserResponse)
def get_user(user_id: str, store: TicketStore = Depends(get_store)):
    return store.require_profile(user_id)


@router.put("/{user_id}/role", response_model=UserResponse)
def change_role(
    user_id: str,
    role_in: RoleUpdate,
    actor_id: str = Depends(get_actor_id),
    admin: UserAdministration = Depends(get_user_admin),
):
    return admin.change_role(user_id, actor_id, role_in.role)


@router.get("/{user_id}/active-tickets", response_model=List[TicketResponse])
def get_active_assignments(user_id: str, store: TicketStore = Depends(get_store)):
    """
    Tickets that deactivating this user would flag for reassignment.
    """
    store.require_profile(user_id)
    return active_assignments(store, user_id)


@router.post("/{user_id}/deactivate", response_model=List[ReassignmentTaskResponse])
def deactivate_user(
    user_id: str,
    actor_id: str = Depends(get_actor_id),
    admin: UserAdministration = Depends(get_user_admin),
):
    """
    Deactivate a user. Every open, in-progress, blocked or testing ticket
    they hold gets a system comment, and each PO of the ticket's project
    gets a reassignment task and a reassignment_needed notification.
    Returns the reassignment tasks created.
    """
    return admin.deactivate_user(user_id, actor_id)


@router.post("/{user_id}/reactivate", response_model=UserResponse)
def reactivate_user(
    user_id: str,
    role_in: RoleUpdate,
    actor_id: str = Depends(get_actor_id),
    admin: UserAdministration = Depends(get_user_admin),
):
    return admin.reactivate_user(user_id, actor_id, role_in.role)


@router.get("/{user_id}/reassignment-tasks", response_model=List[ReassignmentTaskResponse])
def get_reassignment_tasks(
    user_id: str,
    include_completed: bool = False,
    admin: UserAdministration = Depends(get_user_admin),
):
    return admin.reassignment_tasks(user_id, include_completed)
