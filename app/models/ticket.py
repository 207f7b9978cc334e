from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Text, UniqueConstraint
from app.core.clock import utcnow
from app.core.db import Base
from app.models.project import _uuid


class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    priority = Column(String(20), nullable=False, default="p2_medium")
    status = Column(String(20), nullable=False, default="open", index=True)
    assigned_to = Column(String(36), ForeignKey("profiles.id"), nullable=True, index=True)
    created_by = Column(String(36), ForeignKey("profiles.id"), nullable=False)
    sort_order = Column(Integer, nullable=False, default=0)
    duplicate_of = Column(Integer, ForeignKey("tickets.id"), nullable=True)
    rejection_reason = Column(String(30), nullable=True)
    report_link = Column(Text, nullable=True)

    # SLA bookkeeping
    sla_deadline = Column(DateTime, nullable=True)
    blocked_at = Column(DateTime, nullable=True)
    sla_paused_seconds = Column(Integer, nullable=False, default=0)
    # Set when the priority changed while blocked; the deadline is recomputed on leaving BLOCKED.
    sla_recompute_pending = Column(Boolean, nullable=False, default=False)

    version = Column(Integer, nullable=False)

    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version}


class TicketComment(Base):
    """
    Append-only log entry on a ticket. System comments are the audit trail
    of lifecycle transitions and are never mutated or deleted.
    """
    __tablename__ = "ticket_comments"

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(Integer, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id = Column(String(36), ForeignKey("profiles.id"), nullable=False)
    body = Column(Text, nullable=False)
    is_system_generated = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow, index=True)


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    ticket_id = Column(Integer, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=True)
    type = Column(String(40), nullable=False)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow, index=True)


class ReassignmentTask(Base):
    __tablename__ = "reassignment_tasks"

    id = Column(String(36), primary_key=True, default=_uuid)
    ticket_id = Column(Integer, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    project_owner_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    deactivated_user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False)
    is_completed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow)
    completed_at = Column(DateTime, nullable=True)


class TicketLabel(Base):
    __tablename__ = "ticket_labels"
    __table_args__ = (UniqueConstraint("ticket_id", "label_id", name="uq_ticket_label"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    ticket_id = Column(Integer, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    label_id = Column(String(36), ForeignKey("labels.id", ondelete="CASCADE"), nullable=False, index=True)
