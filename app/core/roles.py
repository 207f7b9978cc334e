from dataclasses import dataclass
from typing import Optional
from app.core.errors import NotFound
from app.schemas.project import MemberRole, Role


@dataclass(frozen=True)
class Capabilities:
    """
    Effective permissions of one user on one project: the union of global
    admin rights, global PO rights and the project-scoped membership role.
    Deactivated users resolve to no capabilities at all.
    """
    user_id: str
    is_active: bool
    is_admin: bool
    is_po: bool
    is_developer: bool

    def is_assignee(self, ticket) -> bool:
        return self.is_active and ticket.assigned_to is not None and ticket.assigned_to == self.user_id


class RoleResolver:
    def __init__(self, store):
        self.store = store

    def role_of(self, user_id: str, project_id: Optional[str] = None) -> Capabilities:
        profile = self.store.get_profile(user_id)
        if profile is None:
            raise NotFound("User does not exist", user_id=user_id)
        if not profile.is_active:
            return Capabilities(user_id=user_id, is_active=False, is_admin=False, is_po=False, is_developer=False)

        member_role = None
        if project_id is not None:
            membership = self.store.get_membership(project_id, user_id)
            member_role = membership.role if membership else None

        is_admin = profile.role == Role.ADMIN.value
        return Capabilities(
            user_id=user_id,
            is_active=True,
            is_admin=is_admin,
            is_po=is_admin or profile.role == Role.PO.value or member_role == MemberRole.PO.value,
            is_developer=is_admin or member_role == MemberRole.DEVELOPER.value,
        )
