import logging
from typing import List, Optional
from app.core.clock import SystemClock
from app.core.errors import InvalidStateTransition, PermissionDenied, ValidationFailed, require_text
from app.core.events import EventBus, TicketChanged, event_bus
from app.core.lifecycle import ACTIVE_STATUSES, project_owner_ids
from app.core.roles import RoleResolver
from app.models.project import Profile
from app.models.ticket import Notification, ReassignmentTask, Ticket
from app.schemas.project import Role
from app.schemas.ticket import NotificationType

logger = logging.getLogger(__name__)


class UserAdministration:
    """
    Admin-only operations on user accounts, including the reassignment
    cascade that follows a deactivation.
    """

    def __init__(self, store, roles: Optional[RoleResolver] = None, clock=None, events: Optional[EventBus] = None):
        self.store = store
        self.roles = roles or RoleResolver(store)
        self.clock = clock or SystemClock()
        self.events = events if events is not None else event_bus

    def create_user(self, email: Optional[str], full_name: str = "") -> Profile:
        email = require_text(email, "email").lower()
        if self.store.find_profile_by_email(email) is not None:
            raise ValidationFailed("Email already registered", field="email")
        with self.store.atomic():
            profile = self.store.insert_profile(
                email=email, full_name=(full_name or "").strip(), role=Role.DEVELOPER.value, created_at=self.clock.now()
            )
        logger.info("User created. user=%s", profile.id)
        return profile

    def change_role(self, user_id: str, actor_id: str, role) -> Profile:
        self._require_admin(actor_id)
        role = self._coerce_role(role)
        profile = self.store.require_profile(user_id)
        with self.store.atomic():
            profile.role = role
        logger.info("Role changed. user=%s role=%s actor=%s", user_id, role, actor_id)
        return profile

    def reactivate_user(self, user_id: str, actor_id: str, role=Role.DEVELOPER.value) -> Profile:
        self._require_admin(actor_id)
        role = self._coerce_role(role)
        profile = self.store.require_profile(user_id)
        if profile.is_active:
            raise InvalidStateTransition("User is already active", user_id=user_id)
        with self.store.atomic():
            profile.is_active = True
            profile.deactivated_at = None
            profile.deactivated_by = None
            profile.role = role
        logger.info("User reactivated. user=%s role=%s actor=%s", user_id, role, actor_id)
        return profile

    def deactivate_user(self, user_id: str, actor_id: str) -> List[ReassignmentTask]:
        """
        Deactivate a user and flag every active ticket they hold for
        reassignment. The tickets' own status and assignee stay as they are;
        reassigning is a later, explicit PO action.

        The profile change and one system comment per ticket commit together.
        Reassignment tasks and ``reassignment_needed`` notifications, one per
        (ticket, project PO) pair, are written best-effort afterwards.
        """
        admin = self._require_admin(actor_id)
        if user_id == admin.id:
            raise ValidationFailed("Admins cannot deactivate themselves", field="user_id")
        profile = self.store.require_profile(user_id)
        if not profile.is_active:
            raise InvalidStateTransition("User is already deactivated", user_id=user_id)

        now = self.clock.now()
        tickets = self.store.list_assigned_tickets(profile.id, sorted(ACTIVE_STATUSES))
        name = profile.display_name
        with self.store.atomic():
            profile.is_active = False
            profile.deactivated_at = now
            profile.deactivated_by = admin.id
            for ticket in tickets:
                self.store.insert_comment(
                    ticket.id,
                    admin.id,
                    f"{name} was deactivated. This ticket needs to be reassigned by the project owner.",
                    is_system=True,
                    created_at=now,
                )
        logger.info("User deactivated. user=%s actor=%s active_tickets=%d", profile.id, admin.id, len(tickets))

        for ticket in tickets:
            owners: List[str] = []
            with self.store.best_effort(f"resolve project owners for ticket {ticket.id}"):
                owners = [po for po in project_owner_ids(self.store, ticket.project_id) if po != profile.id]
            if not owners:
                logger.warning("No project owner to reassign ticket. ticket=%s project=%s", ticket.id, ticket.project_id)
            for owner_id in owners:
                with self.store.best_effort(f"reassignment task for ticket {ticket.id} owner {owner_id}"):
                    self.store.insert_reassignment_task(ticket.id, owner_id, profile.id)
                with self.store.best_effort(f"reassignment notification for ticket {ticket.id} owner {owner_id}"):
                    self.store.insert_notification(
                        owner_id,
                        ticket.id,
                        NotificationType.REASSIGNMENT_NEEDED.value,
                        f'User {name} was deactivated. Ticket #{ticket.id} "{ticket.title}" needs to be reassigned.',
                    )
            self.events.publish(
                TicketChanged(
                    ticket_id=ticket.id,
                    action="reassignment_needed",
                    previous_status=ticket.status,
                    new_status=ticket.status,
                    actor_id=admin.id,
                    occurred_at=now,
                )
            )
        return self.store.list_reassignment_tasks_for_user(profile.id)

    def reassignment_tasks(self, owner_id: str, include_completed: bool = False) -> List[ReassignmentTask]:
        self.store.require_profile(owner_id)
        return self.store.list_reassignment_tasks_for_owner(owner_id, include_completed)

    def _require_admin(self, actor_id: str) -> Profile:
        actor = self.store.require_profile(actor_id)
        caps = self.roles.role_of(actor.id)
        if not caps.is_admin:
            raise PermissionDenied("Only admins may manage users", actor_id=actor_id)
        return actor

    @staticmethod
    def _coerce_role(role) -> str:
        try:
            return Role(role).value
        except ValueError:
            raise ValidationFailed(f"{role!r} is not a valid role", field="role")


class NotificationInbox:
    """Read state of a user's notifications; only the recipient may change it."""

    def __init__(self, store):
        self.store = store

    def for_user(self, user_id: str, unread_only: bool = False) -> List[Notification]:
        self.store.require_profile(user_id)
        return self.store.list_notifications(user_id, unread_only)

    def mark_read(self, notification_id: str, actor_id: str) -> Notification:
        notification = self.store.get_notification(notification_id)
        if notification.user_id != actor_id:
            raise PermissionDenied("Only the recipient may change read state", notification_id=notification_id)
        with self.store.atomic():
            notification.is_read = True
        return notification

    def mark_all_read(self, actor_id: str) -> int:
        unread = self.store.list_notifications(actor_id, unread_only=True)
        with self.store.atomic():
            for notification in unread:
                notification.is_read = True
        return len(unread)


def active_assignments(store, user_id: str) -> List[Ticket]:
    """Tickets a deactivation would flag for reassignment."""
    return store.list_assigned_tickets(user_id, sorted(ACTIVE_STATUSES))
