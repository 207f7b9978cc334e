import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, FrozenSet, List, Optional
from app.core.clock import SystemClock
from app.core.config import settings as default_settings
from app.core.errors import (
    ConcurrentModification,
    InvalidStateTransition,
    NotFound,
    PermissionDenied,
    ValidationFailed,
    require_text,
)
from app.core.events import EventBus, TicketChanged, event_bus
from app.core.labels import LabelCatalog
from app.core.roles import Capabilities, RoleResolver
from app.core.sla import compute_deadline, paused_interval, sla_hours, sla_status
from app.models.project import Profile
from app.models.ticket import Ticket, TicketComment
from app.schemas.project import MemberRole, Role
from app.schemas.ticket import (
    PRIORITY_LABELS,
    REJECTION_LABELS,
    NotificationType,
    RejectionReason,
    TicketPriority,
    TicketStatus,
)

logger = logging.getLogger(__name__)

OPEN = TicketStatus.OPEN.value
IN_PROGRESS = TicketStatus.IN_PROGRESS.value
BLOCKED = TicketStatus.BLOCKED.value
TESTING = TicketStatus.TESTING.value
RESOLVED = TicketStatus.RESOLVED.value
CANCELLED = TicketStatus.CANCELLED.value
DUPLICATE = TicketStatus.DUPLICATE.value

ALL_STATUSES = frozenset(s.value for s in TicketStatus)
CLOSED_STATUSES = frozenset({RESOLVED, CANCELLED, DUPLICATE})
ACTIVE_STATUSES = frozenset({OPEN, IN_PROGRESS, BLOCKED, TESTING})

STATUS_LABELS = {
    OPEN: "Open",
    IN_PROGRESS: "In Progress",
    BLOCKED: "Blocked",
    TESTING: "Testing",
    RESOLVED: "Resolved",
    CANCELLED: "Cancelled",
    DUPLICATE: "Duplicate",
}

# Who may attempt a transition.
DEVELOPER = "developer"
ASSIGNEE = "assignee"
ASSIGNEE_OR_UNASSIGNED = "assignee_or_unassigned"
PO = "po"


@dataclass(frozen=True)
class Transition:
    action: str
    guard: str
    allowed_from: FrozenSet[str]
    requires_unassigned: bool = False


TRANSITIONS: Dict[str, Transition] = {
    t.action: t
    for t in (
        Transition("claim", DEVELOPER, frozenset({OPEN}), requires_unassigned=True),
        Transition("unclaim", ASSIGNEE, frozenset({IN_PROGRESS})),
        Transition("mark_testing", ASSIGNEE, frozenset({IN_PROGRESS})),
        Transition("request_cancellation", ASSIGNEE_OR_UNASSIGNED, frozenset({OPEN, IN_PROGRESS})),
        Transition("assign", PO, ALL_STATUSES - {CANCELLED, DUPLICATE}),
        Transition("edit_priority", PO, ALL_STATUSES),
        Transition("edit_details", PO, ALL_STATUSES),
        Transition("block", PO, ALL_STATUSES - {BLOCKED, RESOLVED, CANCELLED, DUPLICATE}),
        Transition("unblock", PO, frozenset({BLOCKED})),
        Transition("resolve", PO, ALL_STATUSES - CLOSED_STATUSES),
        Transition("cancel", PO, ALL_STATUSES - {CANCELLED, DUPLICATE}),
        Transition("mark_duplicate", PO, ALL_STATUSES - {CANCELLED, DUPLICATE}),
        Transition("reopen", PO, CLOSED_STATUSES),
    )
}


def check_transition(transition: Transition, caps: Capabilities, ticket: Ticket) -> None:
    """
    The single guard every lifecycle operation goes through: role first,
    then the ticket's current state.
    """
    if transition.guard == DEVELOPER:
        allowed = caps.is_developer
    elif transition.guard == ASSIGNEE:
        allowed = caps.is_assignee(ticket)
    elif transition.guard == ASSIGNEE_OR_UNASSIGNED:
        allowed = caps.is_assignee(ticket) or (ticket.assigned_to is None and caps.is_developer)
    elif transition.guard == PO:
        allowed = caps.is_po
    else:
        raise ValueError(f"Unknown guard {transition.guard!r}")

    if not allowed:
        raise PermissionDenied(
            f"Actor may not {transition.action} this ticket",
            action=transition.action,
            actor_id=caps.user_id,
            ticket_id=ticket.id,
        )

    if ticket.status not in transition.allowed_from:
        raise InvalidStateTransition(
            f"Cannot {transition.action} a ticket that is {ticket.status}",
            action=transition.action,
            current_state=ticket.status,
        )
    if transition.requires_unassigned and ticket.assigned_to is not None:
        raise InvalidStateTransition(
            f"Cannot {transition.action} a ticket that is already assigned",
            action=transition.action,
            current_state=ticket.status,
        )


def allowed_actions(caps: Capabilities, ticket: Ticket) -> List[str]:
    """Actions the given capabilities may currently perform on the ticket."""
    actions = []
    for action, transition in TRANSITIONS.items():
        try:
            check_transition(transition, caps, ticket)
        except (PermissionDenied, InvalidStateTransition):
            continue
        actions.append(action)
    return actions


def _coerce(enum_cls, value, field: str) -> str:
    if value is None:
        raise ValidationFailed(f"{field} is required", field=field)
    try:
        return enum_cls(value).value
    except ValueError:
        raise ValidationFailed(f"{value!r} is not a valid {field}", field=field)


class TicketLifecycle:
    """
    Owns the ticket status field and everything that moves with it.

    Each operation runs in two stages. The core stage applies the ticket
    fields and exactly one system comment in a single commit; if anything in
    it fails the ticket is left untouched. The fan-out stage then writes
    notifications best-effort and publishes a TicketChanged event.
    """

    def __init__(self, store, roles: Optional[RoleResolver] = None, clock=None, events: Optional[EventBus] = None, config=None):
        self.store = store
        self.roles = roles or RoleResolver(store)
        self.clock = clock or SystemClock()
        self.events = events if events is not None else event_bus
        self.config = config or default_settings

    # Transitions

    def claim(self, ticket_id: int, actor_id: str, expected_version: Optional[int] = None) -> Ticket:
        ticket, actor, _ = self._prepare("claim", ticket_id, actor_id, expected_version)
        fields = {"assigned_to": actor.id, "status": IN_PROGRESS}
        return self._apply(ticket, actor, "claim", fields, f"{actor.display_name} claimed this ticket")

    def unclaim(self, ticket_id: int, actor_id: str, reason: Optional[str], expected_version: Optional[int] = None) -> Ticket:
        ticket, actor, _ = self._prepare("unclaim", ticket_id, actor_id, expected_version)
        reason = require_text(reason, "reason")
        fields = {"assigned_to": None, "status": OPEN}
        self._apply(ticket, actor, "unclaim", fields, f'{actor.display_name} returned this ticket to pool: "{reason}"', publish=False)
        self._notify_project_owners(
            ticket,
            NotificationType.UNASSIGNED,
            f'{actor.display_name} returned ticket #{ticket.id} to pool: "{reason}"',
            exclude=actor.id,
        )
        return self._published(ticket, actor, "unclaim", IN_PROGRESS)

    def mark_testing(self, ticket_id: int, actor_id: str, expected_version: Optional[int] = None) -> Ticket:
        ticket, actor, _ = self._prepare("mark_testing", ticket_id, actor_id, expected_version)
        return self._apply(
            ticket, actor, "mark_testing", {"status": TESTING},
            f"{actor.display_name} marked this ticket as ready for testing",
        )

    def request_cancellation(
        self,
        ticket_id: int,
        actor_id: str,
        rejection_reason,
        comment: Optional[str],
        duplicate_of: Optional[int] = None,
        expected_version: Optional[int] = None,
    ) -> Ticket:
        ticket, actor, _ = self._prepare("request_cancellation", ticket_id, actor_id, expected_version)
        reason = _coerce(RejectionReason, rejection_reason, "rejection_reason")
        comment = require_text(comment, "comment")
        dup_note = ""
        if reason == RejectionReason.DUPLICATE.value and duplicate_of is not None:
            self._check_duplicate_target(ticket, duplicate_of)
            dup_note = f" (duplicate of #{duplicate_of})"

        label = REJECTION_LABELS[reason]
        previous = ticket.status
        fields = {
            "status": BLOCKED,
            "assigned_to": None,
            "rejection_reason": reason,
            "blocked_at": self.clock.now(),
        }
        self._apply(
            ticket, actor, "request_cancellation", fields,
            f'{actor.display_name} requested cancellation. Reason: {label}{dup_note}. Comment: "{comment}"',
            publish=False,
        )
        self._notify_project_owners(
            ticket,
            NotificationType.CANCELLATION_REQUESTED,
            f'{actor.display_name} requested cancellation of ticket #{ticket.id}: {label}{dup_note}. "{comment}"',
            exclude=actor.id,
        )
        return self._published(ticket, actor, "request_cancellation", previous)

    def assign(self, ticket_id: int, actor_id: str, assignee_id: Optional[str], expected_version: Optional[int] = None) -> Ticket:
        ticket, actor, _ = self._prepare("assign", ticket_id, actor_id, expected_version)
        if not assignee_id:
            raise ValidationFailed("assignee_id is required", field="assignee_id")
        assignee = self.store.require_profile(assignee_id)
        if assignee.id not in {p.id for p in self.assignable_pool(ticket.project_id)}:
            raise ValidationFailed(
                "User is not assignable on this project",
                field="assignee_id",
                user_id=assignee.id,
                is_active=assignee.is_active,
            )

        previous_assignee = ticket.assigned_to
        previous = ticket.status
        fields = {
            "assigned_to": assignee.id,
            "status": IN_PROGRESS if ticket.status == OPEN else ticket.status,
        }
        now = self.clock.now()
        for task in self.store.list_open_reassignment_tasks(ticket.id):
            task.is_completed = True
            task.completed_at = now
        self._apply(
            ticket, actor, "assign", fields,
            f"{actor.display_name} assigned this ticket to {assignee.display_name}",
            publish=False,
        )

        title = ticket.title
        if assignee.id != actor.id:
            self._notify(assignee.id, ticket.id, NotificationType.ASSIGNED, f"You were assigned to ticket #{ticket.id}: {title}")
        if previous_assignee and previous_assignee != assignee.id:
            self._notify(previous_assignee, ticket.id, NotificationType.UNASSIGNED, f"You were unassigned from ticket #{ticket.id}: {title}")
        return self._published(ticket, actor, "assign", previous)

    def edit_priority(self, ticket_id: int, actor_id: str, priority, expected_version: Optional[int] = None) -> Ticket:
        ticket, actor, _ = self._prepare("edit_priority", ticket_id, actor_id, expected_version)
        priority = _coerce(TicketPriority, priority, "priority")
        fields = {"priority": priority}
        if ticket.blocked_at is not None:
            # Deadline stays frozen while blocked.
            fields["sla_recompute_pending"] = True
        elif ticket.created_at is not None:
            fields["sla_deadline"] = self._deadline_for(ticket, priority, ticket.sla_paused_seconds)
        return self._apply(
            ticket, actor, "edit_priority", fields,
            f"{actor.display_name} changed priority to {PRIORITY_LABELS[priority]}",
        )

    def block(self, ticket_id: int, actor_id: str, comment: Optional[str], expected_version: Optional[int] = None) -> Ticket:
        ticket, actor, _ = self._prepare("block", ticket_id, actor_id, expected_version)
        comment = require_text(comment, "comment")
        fields = {"status": BLOCKED, "blocked_at": self.clock.now()}
        return self._apply(
            ticket, actor, "block", fields,
            f'{actor.display_name} marked this ticket as blocked: "{comment}"',
        )

    def unblock(self, ticket_id: int, actor_id: str, expected_version: Optional[int] = None) -> Ticket:
        ticket, actor, _ = self._prepare("unblock", ticket_id, actor_id, expected_version)
        new_status = IN_PROGRESS if ticket.assigned_to else OPEN
        fields = self._leave_blocked(ticket)
        fields.update({"status": new_status, "rejection_reason": None})
        self._apply(ticket, actor, "unblock", fields, f"{actor.display_name} unblocked this ticket", publish=False)
        if ticket.assigned_to:
            self._notify(
                ticket.assigned_to, ticket.id, NotificationType.STATUS_CHANGED,
                f"Ticket #{ticket.id} was unblocked and is now {STATUS_LABELS[new_status]}",
            )
        return self._published(ticket, actor, "unblock", BLOCKED)

    def resolve(self, ticket_id: int, actor_id: str, comment: Optional[str] = None, expected_version: Optional[int] = None) -> Ticket:
        ticket, actor, _ = self._prepare("resolve", ticket_id, actor_id, expected_version)
        note = (comment or "").strip()
        fields = self._leave_blocked(ticket)
        fields["status"] = RESOLVED
        body = f"{actor.display_name} resolved this ticket"
        if note:
            body += f': "{note}"'
        return self._apply(ticket, actor, "resolve", fields, body)

    def cancel(self, ticket_id: int, actor_id: str, comment: Optional[str], expected_version: Optional[int] = None) -> Ticket:
        ticket, actor, _ = self._prepare("cancel", ticket_id, actor_id, expected_version)
        comment = require_text(comment, "comment")
        fields = self._leave_blocked(ticket)
        fields.update({"status": CANCELLED, "assigned_to": None})
        return self._apply(
            ticket, actor, "cancel", fields,
            f'{actor.display_name} cancelled this ticket: "{comment}"',
        )

    def mark_duplicate(
        self,
        ticket_id: int,
        actor_id: str,
        duplicate_of: Optional[int],
        comment: Optional[str],
        expected_version: Optional[int] = None,
    ) -> Ticket:
        ticket, actor, _ = self._prepare("mark_duplicate", ticket_id, actor_id, expected_version)
        if duplicate_of is None:
            raise ValidationFailed("duplicate_of is required", field="duplicate_of")
        comment = require_text(comment, "comment")
        self._check_duplicate_target(ticket, duplicate_of)
        fields = self._leave_blocked(ticket)
        fields.update({"status": DUPLICATE, "duplicate_of": duplicate_of, "assigned_to": None})
        return self._apply(
            ticket, actor, "mark_duplicate", fields,
            f'{actor.display_name} marked this as duplicate of #{duplicate_of}: "{comment}"',
        )

    def reopen(self, ticket_id: int, actor_id: str, comment: Optional[str], expected_version: Optional[int] = None) -> Ticket:
        ticket, actor, _ = self._prepare("reopen", ticket_id, actor_id, expected_version)
        comment = require_text(comment, "comment")
        fields = {
            "status": OPEN,
            "assigned_to": None,
            "duplicate_of": None,
            "rejection_reason": None,
            "blocked_at": None,
        }
        return self._apply(
            ticket, actor, "reopen", fields,
            f'{actor.display_name} reopened this ticket: "{comment}"',
        )

    def perform(self, action: str, ticket_id: int, actor_id: str, **inputs) -> Ticket:
        """Dispatch a transition by name with the inputs it understands."""
        expected_version = inputs.get("expected_version")
        comment = inputs.get("comment")
        if action == "claim":
            return self.claim(ticket_id, actor_id, expected_version)
        if action == "unclaim":
            return self.unclaim(ticket_id, actor_id, comment, expected_version)
        if action == "mark_testing":
            return self.mark_testing(ticket_id, actor_id, expected_version)
        if action == "request_cancellation":
            return self.request_cancellation(
                ticket_id, actor_id, inputs.get("rejection_reason"), comment,
                inputs.get("duplicate_of"), expected_version,
            )
        if action == "assign":
            return self.assign(ticket_id, actor_id, inputs.get("assignee_id"), expected_version)
        if action == "edit_priority":
            return self.edit_priority(ticket_id, actor_id, inputs.get("priority"), expected_version)
        if action == "block":
            return self.block(ticket_id, actor_id, comment, expected_version)
        if action == "unblock":
            return self.unblock(ticket_id, actor_id, expected_version)
        if action == "resolve":
            return self.resolve(ticket_id, actor_id, comment, expected_version)
        if action == "cancel":
            return self.cancel(ticket_id, actor_id, comment, expected_version)
        if action == "mark_duplicate":
            return self.mark_duplicate(ticket_id, actor_id, inputs.get("duplicate_of"), comment, expected_version)
        if action == "reopen":
            return self.reopen(ticket_id, actor_id, comment, expected_version)
        raise ValidationFailed(f"Unknown action {action!r}", field="action")

    # Ticket creation and editing

    def create_ticket(
        self,
        project_id: str,
        actor_id: str,
        title: Optional[str],
        description: str = "",
        priority=TicketPriority.P2_MEDIUM.value,
        assignee_id: Optional[str] = None,
        report_link: Optional[str] = None,
        label_ids: Optional[List[str]] = None,
    ) -> Ticket:
        project = self.store.get_project(project_id)
        actor = self.store.require_profile(actor_id)
        caps = self.roles.role_of(actor_id, project.id)
        if not (caps.is_po or caps.is_developer):
            raise PermissionDenied("Only project members may create tickets", actor_id=actor_id, project_id=project.id)
        title = require_text(title, "title")
        priority = _coerce(TicketPriority, priority, "priority")

        assignee = None
        if assignee_id:
            if not caps.is_po:
                raise PermissionDenied("Only a PO may set the initial assignee", actor_id=actor_id)
            assignee = self.store.require_profile(assignee_id)
            if assignee.id not in {p.id for p in self.assignable_pool(project.id)}:
                raise ValidationFailed("User is not assignable on this project", field="assignee_id", user_id=assignee.id)
        label_ids = LabelCatalog(self.store, self.roles).validate_for_project(project.id, label_ids)

        now = self.clock.now()
        max_sort = self.store.max_sort_order(project.id)
        hours = self._sla_hours(priority, project.id)
        with self.store.atomic():
            ticket = self.store.insert_ticket(
                project_id=project.id,
                title=title,
                description=description or "",
                priority=priority,
                status=IN_PROGRESS if assignee else OPEN,
                assigned_to=assignee.id if assignee else None,
                created_by=actor.id,
                sort_order=0 if max_sort is None else max_sort + 1,
                report_link=(report_link or "").strip() or None,
                sla_deadline=compute_deadline(now, hours),
                sla_paused_seconds=0,
                created_at=now,
                updated_at=now,
            )
            self.store.insert_comment(ticket.id, actor.id, f"{actor.display_name} created this ticket", is_system=True, created_at=now)
            for label_id in label_ids:
                self.store.insert_ticket_label(ticket.id, label_id)
        logger.info("Ticket created. ticket=%s project=%s actor=%s priority=%s", ticket.id, project.id, actor.id, priority)

        if assignee and assignee.id != actor.id:
            self._notify(assignee.id, ticket.id, NotificationType.ASSIGNED, f"You were assigned to ticket #{ticket.id}: {title}")
        return self._published(ticket, actor, "create", None)

    def edit_details(
        self,
        ticket_id: int,
        actor_id: str,
        title: Optional[str] = None,
        description: Optional[str] = None,
        report_link: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Ticket:
        ticket, actor, _ = self._prepare("edit_details", ticket_id, actor_id, expected_version)
        fields = {}
        if title is not None:
            fields["title"] = require_text(title, "title")
        if description is not None:
            fields["description"] = description
        if report_link is not None:
            fields["report_link"] = report_link.strip() or None
        if not fields:
            raise ValidationFailed("Nothing to edit", field="title")
        return self._apply(ticket, actor, "edit_details", fields, f"{actor.display_name} edited ticket details")

    def add_comment(self, ticket_id: int, actor_id: str, body: Optional[str]) -> TicketComment:
        ticket = self.store.get_ticket(ticket_id)
        actor = self.store.require_profile(actor_id)
        if not actor.is_active:
            raise PermissionDenied("Deactivated users cannot comment", actor_id=actor_id)
        body = require_text(body, "body")
        with self.store.atomic():
            comment = self.store.insert_comment(ticket.id, actor.id, body, is_system=False, created_at=self.clock.now())
        if ticket.assigned_to and ticket.assigned_to != actor.id:
            self._notify(
                ticket.assigned_to, ticket.id, NotificationType.COMMENTED,
                f"{actor.display_name} commented on ticket #{ticket.id}: {ticket.title}",
            )
        return comment

    # Ordering

    def list_project_tickets(self, project_id: str) -> List[Ticket]:
        self.store.get_project(project_id)
        return self.store.list_project_tickets(project_id)

    def move_ticket(self, project_id: str, actor_id: str, ticket_id: int, direction: str, visible_ids: List[int]) -> List[Ticket]:
        """
        Swap a ticket's sort_order with its neighbour in the caller's current
        (possibly filtered) view. Moving past either end is a no-op.
        """
        project = self.store.get_project(project_id)
        caps = self.roles.role_of(actor_id, project.id)
        if not caps.is_po:
            raise PermissionDenied("Only a PO may reorder tickets", actor_id=actor_id, project_id=project.id)
        if direction not in ("up", "down"):
            raise ValidationFailed("direction must be 'up' or 'down'", field="direction")
        if ticket_id not in visible_ids:
            raise ValidationFailed("Ticket is not in the visible list", field="visible_ids", ticket_id=ticket_id)

        idx = visible_ids.index(ticket_id)
        swap_idx = idx - 1 if direction == "up" else idx + 1
        if swap_idx < 0 or swap_idx >= len(visible_ids):
            return self.store.list_project_tickets(project.id)

        current = self.store.get_ticket(ticket_id)
        neighbour = self.store.get_ticket(visible_ids[swap_idx])
        if current.project_id != project.id or neighbour.project_id != project.id:
            raise ValidationFailed("Tickets belong to a different project", field="visible_ids")

        with self.store.atomic():
            current_order, neighbour_order = current.sort_order, neighbour.sort_order
            self.store.update_ticket(current.id, {"sort_order": neighbour_order})
            self.store.update_ticket(neighbour.id, {"sort_order": current_order})
        logger.info("Ticket moved. ticket=%s direction=%s swapped_with=%s", current.id, direction, neighbour.id)
        return self.store.list_project_tickets(project.id)

    # Assignment pool and SLA

    def assignable_pool(self, project_id: str) -> List[Profile]:
        """
        Active admins, active POs and active developer members of the project,
        in that order and without duplicates.
        """
        pool: List[Profile] = []
        seen = set()
        candidates = list(self.store.list_users_by_role(Role.ADMIN.value))
        candidates += self.store.list_users_by_role(Role.PO.value)
        for member in self.store.list_project_members(project_id, role=MemberRole.DEVELOPER.value):
            profile = self.store.get_profile(member.user_id)
            if profile is not None:
                candidates.append(profile)
        for profile in candidates:
            if profile.is_active and profile.id not in seen:
                seen.add(profile.id)
                pool.append(profile)
        return pool

    def assignable_users(self, ticket_id: int) -> List[Profile]:
        ticket = self.store.get_ticket(ticket_id)
        return self.assignable_pool(ticket.project_id)

    def sla_for(self, ticket: Ticket, now: Optional[datetime] = None):
        return sla_status(ticket.sla_deadline, ticket.blocked_at, now or self.clock.now())

    def _sla_hours(self, priority: str, project_id: str) -> float:
        project = self.store.get_project(project_id)
        return sla_hours(priority, project, self.store.get_global_settings(), self.config.default_sla_hours())

    def _leave_blocked(self, ticket: Ticket) -> dict:
        if ticket.blocked_at is None:
            return {}
        paused = paused_interval(ticket.blocked_at, self.clock.now())
        paused_seconds = (ticket.sla_paused_seconds or 0) + int(paused.total_seconds())
        fields = {"blocked_at": None, "sla_paused_seconds": paused_seconds}
        if ticket.sla_recompute_pending and ticket.created_at is not None:
            fields["sla_deadline"] = self._deadline_for(ticket, ticket.priority, paused_seconds)
            fields["sla_recompute_pending"] = False
        elif self.config.SLA_EXTEND_ON_UNBLOCK and ticket.sla_deadline is not None:
            fields["sla_deadline"] = ticket.sla_deadline + paused
        return fields

    def _deadline_for(self, ticket: Ticket, priority: str, paused_seconds: int) -> datetime:
        """Deadline for a priority, counting blocked time only when unblocking extends the SLA."""
        hours = self._sla_hours(priority, ticket.project_id)
        extension = paused_seconds if self.config.SLA_EXTEND_ON_UNBLOCK else 0
        return compute_deadline(ticket.created_at, hours, extension)

    # Internals

    def _prepare(self, action: str, ticket_id: int, actor_id: str, expected_version: Optional[int]):
        ticket = self.store.get_ticket(ticket_id)
        actor = self.store.require_profile(actor_id)
        caps = self.roles.role_of(actor.id, ticket.project_id)
        try:
            check_transition(TRANSITIONS[action], caps, ticket)
        except (PermissionDenied, InvalidStateTransition) as exc:
            logger.info("Transition rejected. ticket=%s action=%s actor=%s reason=%s", ticket.id, action, actor.id, exc.reason)
            raise
        if expected_version is not None and ticket.version != expected_version:
            raise ConcurrentModification(
                "Ticket has changed since it was loaded",
                ticket_id=ticket.id,
                expected_version=expected_version,
                current_version=ticket.version,
            )
        return ticket, actor, caps

    def _check_duplicate_target(self, ticket: Ticket, duplicate_of: int) -> None:
        if duplicate_of == ticket.id:
            raise ValidationFailed("A ticket cannot duplicate itself", field="duplicate_of")
        if not self.store.ticket_exists(duplicate_of):
            raise NotFound("Original ticket not found", ticket_id=duplicate_of)

    def _apply(self, ticket: Ticket, actor: Profile, action: str, fields: dict, comment: str, publish: bool = True) -> Ticket:
        previous = ticket.status
        now = self.clock.now()
        with self.store.atomic():
            self.store.update_ticket(ticket.id, dict(fields, updated_at=now))
            self.store.insert_comment(ticket.id, actor.id, comment, is_system=True, created_at=now)
        logger.info(
            "Transition applied. ticket=%s action=%s actor=%s %s -> %s",
            ticket.id, action, actor.id, previous, ticket.status,
        )
        if publish:
            return self._published(ticket, actor, action, previous)
        return ticket

    def _published(self, ticket: Ticket, actor: Profile, action: str, previous: Optional[str]) -> Ticket:
        self.events.publish(
            TicketChanged(
                ticket_id=ticket.id,
                action=action,
                previous_status=previous,
                new_status=ticket.status,
                actor_id=actor.id,
                occurred_at=self.clock.now(),
            )
        )
        return ticket

    def _notify(self, user_id: str, ticket_id: int, type: NotificationType, message: str) -> None:
        with self.store.best_effort(f"{type.value} notification to {user_id} for ticket {ticket_id}"):
            self.store.insert_notification(user_id, ticket_id, type.value, message)

    def _notify_project_owners(self, ticket: Ticket, type: NotificationType, message: str, exclude: Optional[str] = None) -> None:
        recipients: List[str] = []
        with self.store.best_effort(f"resolve project owners for ticket {ticket.id}"):
            recipients = project_owner_ids(self.store, ticket.project_id, include_admins=True)
        for user_id in recipients:
            if user_id != exclude:
                self._notify(user_id, ticket.id, type, message)


def project_owner_ids(store, project_id: str, include_admins: bool = False) -> List[str]:
    """Active PO members of a project, optionally followed by active global admins."""
    ids: List[str] = []
    for member in store.list_project_members(project_id, role=MemberRole.PO.value):
        profile = store.get_profile(member.user_id)
        if profile is not None and profile.is_active and profile.id not in ids:
            ids.append(profile.id)
    if include_admins:
        for admin in store.list_users_by_role(Role.ADMIN.value):
            if admin.id not in ids:
                ids.append(admin.id)
    return ids
