from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime
from enum import Enum
from app.schemas.project import LabelResponse


class TicketStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    TESTING = "testing"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"
    DUPLICATE = "duplicate"


class TicketPriority(str, Enum):
    P0_CRITICAL = "p0_critical"
    P1_HIGH = "p1_high"
    P2_MEDIUM = "p2_medium"
    P3_LOW = "p3_low"


class RejectionReason(str, Enum):
    NOT_A_BUG = "not_a_bug"
    CANNOT_REPRODUCE = "cannot_reproduce"
    DUPLICATE = "duplicate"
    OTHER = "other"


class NotificationType(str, Enum):
    ASSIGNED = "assigned"
    UNASSIGNED = "unassigned"
    STATUS_CHANGED = "status_changed"
    COMMENTED = "commented"
    CANCELLATION_REQUESTED = "cancellation_requested"
    REASSIGNMENT_NEEDED = "reassignment_needed"


class TransitionAction(str, Enum):
    CLAIM = "claim"
    UNCLAIM = "unclaim"
    MARK_TESTING = "mark_testing"
    REQUEST_CANCELLATION = "request_cancellation"
    ASSIGN = "assign"
    EDIT_PRIORITY = "edit_priority"
    BLOCK = "block"
    UNBLOCK = "unblock"
    RESOLVE = "resolve"
    CANCEL = "cancel"
    MARK_DUPLICATE = "mark_duplicate"
    REOPEN = "reopen"


PRIORITY_LABELS = {
    TicketPriority.P0_CRITICAL.value: "P0 - Critical",
    TicketPriority.P1_HIGH.value: "P1 - High",
    TicketPriority.P2_MEDIUM.value: "P2 - Medium",
    TicketPriority.P3_LOW.value: "P3 - Low",
}

REJECTION_LABELS = {
    RejectionReason.NOT_A_BUG.value: "Not a Bug",
    RejectionReason.CANNOT_REPRODUCE.value: "Cannot Reproduce",
    RejectionReason.DUPLICATE.value: "Duplicate",
    RejectionReason.OTHER.value: "Other",
}


class UserSummary(BaseModel):
    id: str
    email: str
    full_name: str
    is_active: bool = Field(..., description="False marks a deactivated user in historical records.")

    model_config = ConfigDict(from_attributes=True)


class SlaResponse(BaseModel):
    state: str = Field(..., description="One of none, on_track, overdue, paused.")
    label: str = Field(..., description="Human readable remaining time, 'Paused' or 'Overdue'.")
    deadline: Optional[datetime] = None
    remaining_seconds: Optional[int] = None


class TicketCreate(BaseModel):
    title: str = Field(..., description="Short summary of the ticket.")
    description: str = Field("", description="Free text description.")
    priority: TicketPriority = Field(TicketPriority.P2_MEDIUM, description="Drives the SLA deadline.")
    assigned_to: Optional[str] = Field(None, description="Optional initial assignee from the assignable pool.")
    report_link: Optional[str] = Field(None, description="Optional link to an external report.")
    label_ids: List[str] = Field(default_factory=list, description="Project labels to attach at creation.")


class TicketDetailsUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    report_link: Optional[str] = None


class TicketResponse(BaseModel):
    id: int
    project_id: str
    title: str
    description: str
    priority: TicketPriority
    status: TicketStatus
    assigned_to: Optional[str] = None
    created_by: str
    sort_order: int
    duplicate_of: Optional[int] = None
    rejection_reason: Optional[RejectionReason] = None
    report_link: Optional[str] = None
    sla_deadline: Optional[datetime] = None
    blocked_at: Optional[datetime] = None
    sla_paused_seconds: int = 0
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TicketDetailResponse(TicketResponse):
    sla: SlaResponse
    assignee: Optional[UserSummary] = None
    creator: Optional[UserSummary] = None
    labels: List[LabelResponse] = []


class TransitionRequest(BaseModel):
    """
    Inputs for a lifecycle transition. Which fields are required depends on the action.
    """
    comment: Optional[str] = Field(None, description="Operator commentary; required for most transitions.")
    rejection_reason: Optional[RejectionReason] = Field(None, description="Required for request_cancellation.")
    duplicate_of: Optional[int] = Field(None, description="Original ticket id for mark_duplicate / request_cancellation.")
    assignee_id: Optional[str] = Field(None, description="Target user for assign.")
    priority: Optional[TicketPriority] = Field(None, description="New priority for edit_priority.")
    expected_version: Optional[int] = Field(None, description="Reject the transition if the ticket has moved on.")


class MoveRequest(BaseModel):
    ticket_id: int
    direction: str = Field(..., pattern="^(up|down)$")
    visible_ids: List[int] = Field(..., description="Ticket ids in the caller's current filtered order.")


class TicketLabelAttach(BaseModel):
    label_id: str


class CommentCreate(BaseModel):
    body: str


class CommentResponse(BaseModel):
    id: int
    ticket_id: int
    author_id: str
    body: str
    is_system_generated: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NotificationResponse(BaseModel):
    id: str
    user_id: str
    ticket_id: Optional[int] = None
    type: NotificationType
    message: str
    is_read: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ReassignmentTaskResponse(BaseModel):
    id: str
    ticket_id: int
    project_owner_id: str
    deactivated_user_id: str
    is_completed: bool
    created_at: datetime
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
