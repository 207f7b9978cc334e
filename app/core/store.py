import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from app.core.errors import ConcurrentModification, NotFound
from app.models.project import GlobalSettings, Label, Profile, Project, ProjectMember
from app.models.ticket import Notification, ReassignmentTask, Ticket, TicketComment, TicketLabel

logger = logging.getLogger(__name__)


class TicketStore:
    """
    Data store the lifecycle engine reads and writes through.

    Writes only stage rows in the session. ``atomic`` commits whatever was
    staged as one unit; ``best_effort`` commits a side effect on its own and
    logs instead of raising when it fails.
    """

    def __init__(self, db: Session):
        self.db = db

    # Reads

    def get_ticket(self, ticket_id: int) -> Ticket:
        ticket = self.db.get(Ticket, ticket_id)
        if ticket is None:
            raise NotFound("Ticket not found", ticket_id=ticket_id)
        return ticket

    def ticket_exists(self, ticket_id: int) -> bool:
        return self.db.query(Ticket.id).filter(Ticket.id == ticket_id).first() is not None

    def get_profile(self, user_id: str) -> Optional[Profile]:
        return self.db.get(Profile, user_id)

    def require_profile(self, user_id: str) -> Profile:
        profile = self.get_profile(user_id)
        if profile is None:
            raise NotFound("User not found", user_id=user_id)
        return profile

    def find_profile_by_email(self, email: str) -> Optional[Profile]:
        return self.db.query(Profile).filter(Profile.email == email).first()

    def get_project(self, project_id: str) -> Project:
        project = self.db.get(Project, project_id)
        if project is None:
            raise NotFound("Project not found", project_id=project_id)
        return project

    def get_global_settings(self) -> Optional[GlobalSettings]:
        return self.db.query(GlobalSettings).first()

    def get_membership(self, project_id: str, user_id: str) -> Optional[ProjectMember]:
        return (
            self.db.query(ProjectMember)
            .filter(ProjectMember.project_id == project_id, ProjectMember.user_id == user_id)
            .first()
        )

    def list_project_members(self, project_id: str, role: Optional[str] = None) -> List[ProjectMember]:
        query = self.db.query(ProjectMember).filter(ProjectMember.project_id == project_id)
        if role is not None:
            query = query.filter(ProjectMember.role == role)
        return query.order_by(ProjectMember.joined_at).all()

    def list_users_by_role(self, role: str, active_only: bool = True) -> List[Profile]:
        query = self.db.query(Profile).filter(Profile.role == role)
        if active_only:
            query = query.filter(Profile.is_active.is_(True))
        return query.order_by(Profile.full_name).all()

    def list_project_tickets(self, project_id: str) -> List[Ticket]:
        return (
            self.db.query(Ticket)
            .filter(Ticket.project_id == project_id)
            .order_by(Ticket.sort_order.asc(), Ticket.created_at.desc())
            .all()
        )

    def list_assigned_tickets(self, user_id: str, statuses: List[str]) -> List[Ticket]:
        return (
            self.db.query(Ticket)
            .filter(Ticket.assigned_to == user_id, Ticket.status.in_(statuses))
            .order_by(Ticket.id)
            .all()
        )

    def max_sort_order(self, project_id: str) -> Optional[int]:
        return self.db.query(func.max(Ticket.sort_order)).filter(Ticket.project_id == project_id).scalar()

    def list_comments(self, ticket_id: int) -> List[TicketComment]:
        return (
            self.db.query(TicketComment)
            .filter(TicketComment.ticket_id == ticket_id)
            .order_by(TicketComment.created_at, TicketComment.id)
            .all()
        )

    def get_notification(self, notification_id: str) -> Notification:
        notification = self.db.get(Notification, notification_id)
        if notification is None:
            raise NotFound("Notification not found", notification_id=notification_id)
        return notification

    def list_notifications(self, user_id: str, unread_only: bool = False) -> List[Notification]:
        query = self.db.query(Notification).filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.is_read.is_(False))
        return query.order_by(Notification.created_at.desc()).all()

    def list_open_reassignment_tasks(self, ticket_id: int) -> List[ReassignmentTask]:
        return (
            self.db.query(ReassignmentTask)
            .filter(ReassignmentTask.ticket_id == ticket_id, ReassignmentTask.is_completed.is_(False))
            .all()
        )

    def list_reassignment_tasks_for_user(self, deactivated_user_id: str) -> List[ReassignmentTask]:
        return (
            self.db.query(ReassignmentTask)
            .filter(ReassignmentTask.deactivated_user_id == deactivated_user_id, ReassignmentTask.is_completed.is_(False))
            .order_by(ReassignmentTask.ticket_id)
            .all()
        )

    def list_reassignment_tasks_for_owner(self, owner_id: str, include_completed: bool = False) -> List[ReassignmentTask]:
        query = self.db.query(ReassignmentTask).filter(ReassignmentTask.project_owner_id == owner_id)
        if not include_completed:
            query = query.filter(ReassignmentTask.is_completed.is_(False))
        return query.order_by(ReassignmentTask.created_at.desc()).all()

    def get_label(self, label_id: str) -> Label:
        label = self.db.get(Label, label_id)
        if label is None:
            raise NotFound("Label not found", label_id=label_id)
        return label

    def find_label_by_name(self, project_id: str, name: str) -> Optional[Label]:
        return self.db.query(Label).filter(Label.project_id == project_id, Label.name == name).first()

    def list_labels(self, project_id: str) -> List[Label]:
        return self.db.query(Label).filter(Label.project_id == project_id).order_by(Label.name).all()

    def list_ticket_labels(self, ticket_id: int) -> List[Label]:
        return (
            self.db.query(Label)
            .join(TicketLabel, TicketLabel.label_id == Label.id)
            .filter(TicketLabel.ticket_id == ticket_id)
            .order_by(Label.name)
            .all()
        )

    def get_ticket_label(self, ticket_id: int, label_id: str) -> Optional[TicketLabel]:
        return (
            self.db.query(TicketLabel)
            .filter(TicketLabel.ticket_id == ticket_id, TicketLabel.label_id == label_id)
            .first()
        )

    # Writes

    def insert_label(self, project_id: str, name: str, color: str) -> Label:
        label = Label(project_id=project_id, name=name, color=color)
        self.db.add(label)
        return label

    def delete_label(self, label: Label) -> None:
        # SQLite does not enforce the cascade unless foreign keys are switched on.
        self.db.query(TicketLabel).filter(TicketLabel.label_id == label.id).delete(synchronize_session=False)
        self.db.delete(label)

    def insert_ticket_label(self, ticket_id: int, label_id: str) -> TicketLabel:
        link = TicketLabel(ticket_id=ticket_id, label_id=label_id)
        self.db.add(link)
        return link

    def delete_ticket_label(self, link: TicketLabel) -> None:
        self.db.delete(link)

    def insert_profile(self, **fields: Any) -> Profile:
        profile = Profile(**fields)
        self.db.add(profile)
        self.db.flush()
        return profile

    def insert_ticket(self, **fields: Any) -> Ticket:
        ticket = Ticket(**fields)
        self.db.add(ticket)
        self.db.flush()
        return ticket

    def update_ticket(self, ticket_id: int, fields: Dict[str, Any]) -> Ticket:
        ticket = self.get_ticket(ticket_id)
        for key, value in fields.items():
            setattr(ticket, key, value)
        return ticket

    def insert_comment(self, ticket_id: int, author_id: str, body: str, is_system: bool, created_at: Optional[datetime] = None) -> TicketComment:
        comment = TicketComment(
            ticket_id=ticket_id,
            author_id=author_id,
            body=body,
            is_system_generated=is_system,
        )
        if created_at is not None:
            comment.created_at = created_at
        self.db.add(comment)
        return comment

    def insert_notification(self, user_id: str, ticket_id: Optional[int], type: str, message: str) -> Notification:
        notification = Notification(user_id=user_id, ticket_id=ticket_id, type=type, message=message)
        self.db.add(notification)
        return notification

    def insert_reassignment_task(self, ticket_id: int, po_id: str, deactivated_user_id: str) -> ReassignmentTask:
        task = ReassignmentTask(
            ticket_id=ticket_id,
            project_owner_id=po_id,
            deactivated_user_id=deactivated_user_id,
        )
        self.db.add(task)
        return task

    # Transaction boundaries

    @contextmanager
    def atomic(self):
        """
        Commit everything staged inside the block as one unit, or nothing.
        A version conflict on a ticket row surfaces as ConcurrentModification.
        """
        try:
            yield
            self.db.commit()
        except StaleDataError as exc:
            self.db.rollback()
            raise ConcurrentModification("Ticket was modified by someone else; reload and retry") from exc
        except Exception:
            self.db.rollback()
            raise

    @contextmanager
    def best_effort(self, description: str):
        """
        Run and commit a side effect on its own. Failures are logged and
        swallowed; nothing already committed is touched.
        """
        try:
            yield
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception("Side effect failed and was skipped: %s", description)

