from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    ADMIN = "admin"
    PO = "po"
    DEVELOPER = "developer"


class MemberRole(str, Enum):
    PO = "po"
    DEVELOPER = "developer"


class UserCreate(BaseModel):
    email: str = Field(..., description="Unique login email.")
    full_name: str = Field("", description="Display name.")


class UserResponse(BaseModel):
    id: str
    email: str
    full_name: str
    role: Role
    is_active: bool
    deactivated_at: Optional[datetime] = None
    deactivated_by: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RoleUpdate(BaseModel):
    role: Role


class ProjectSla(BaseModel):
    sla_p0_hours: Optional[float] = Field(None, gt=0)
    sla_p1_hours: Optional[float] = Field(None, gt=0)
    sla_p2_hours: Optional[float] = Field(None, gt=0)
    sla_p3_hours: Optional[float] = Field(None, gt=0)


class ProjectCreate(ProjectSla):
    name: str
    slug: str = Field(..., pattern="^[a-z0-9-]+$")
    description: str = ""


class ProjectResponse(ProjectCreate):
    id: str
    created_by: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MemberCreate(BaseModel):
    user_id: str
    role: MemberRole = MemberRole.DEVELOPER


class MemberResponse(BaseModel):
    id: str
    project_id: str
    user_id: str
    role: MemberRole
    joined_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LabelCreate(BaseModel):
    name: str
    color: str = Field("#64748b", pattern="^#[0-9a-fA-F]{6}$")


class LabelResponse(BaseModel):
    id: str
    project_id: str
    name: str
    color: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
