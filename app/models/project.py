import uuid
from sqlalchemy import Column, String, Float, Boolean, DateTime, ForeignKey, Text, UniqueConstraint
from app.core.clock import utcnow
from app.core.db import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), nullable=False, unique=True, index=True)
    full_name = Column(String(255), nullable=False, default="")
    role = Column(String(20), nullable=False, default="developer", index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    deactivated_at = Column(DateTime, nullable=True)
    deactivated_by = Column(String(36), ForeignKey("profiles.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow)

    @property
    def display_name(self) -> str:
        return self.full_name or self.email


class GlobalSettings(Base):
    """
    Single-row table holding the organisation-wide SLA hours per priority.
    """
    __tablename__ = "global_settings"

    id = Column(String(36), primary_key=True, default=_uuid)
    sla_p0_hours = Column(Float, nullable=False, default=4)
    sla_p1_hours = Column(Float, nullable=False, default=24)
    sla_p2_hours = Column(Float, nullable=False, default=168)
    sla_p3_hours = Column(Float, nullable=False, default=720)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class Project(Base):
    __tablename__ = "projects"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=False, default="")
    created_by = Column(String(36), ForeignKey("profiles.id"), nullable=False)
    created_at = Column(DateTime, default=utcnow)

    # Per-priority overrides; null falls back to the global settings.
    sla_p0_hours = Column(Float, nullable=True)
    sla_p1_hours = Column(Float, nullable=True)
    sla_p2_hours = Column(Float, nullable=True)
    sla_p3_hours = Column(Float, nullable=True)


class ProjectMember(Base):
    __tablename__ = "project_members"
    __table_args__ = (UniqueConstraint("project_id", "user_id", name="uq_project_member"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(20), nullable=False, default="developer")
    joined_at = Column(DateTime, default=utcnow)


class Label(Base):
    __tablename__ = "labels"
    __table_args__ = (UniqueConstraint("project_id", "name", name="uq_project_label"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    color = Column(String(7), nullable=False, default="#64748b")
    created_at = Column(DateTime, default=utcnow)
