"""
SLA deadline computation and the paused/overdue display state.

A ticket's deadline is fixed at creation from its priority. While the ticket
is blocked the clock is considered frozen: the status reports ``paused`` no
matter how far past the deadline ``now`` is.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional

_PRIORITY_COLUMNS = {
    "p0_critical": "sla_p0_hours",
    "p1_high": "sla_p1_hours",
    "p2_medium": "sla_p2_hours",
    "p3_low": "sla_p3_hours",
}

NONE = "none"
ON_TRACK = "on_track"
OVERDUE = "overdue"
PAUSED = "paused"


@dataclass(frozen=True)
class SlaStatus:
    state: str
    label: str
    deadline: Optional[datetime] = None
    remaining: Optional[timedelta] = None

    @property
    def remaining_seconds(self) -> Optional[int]:
        if self.remaining is None:
            return None
        return int(self.remaining.total_seconds())


def sla_hours(priority: str, project=None, global_settings=None, defaults: Optional[Dict[str, float]] = None) -> float:
    """
    Resolve the SLA hours for a priority: project override first, then the
    global settings row, then the configured defaults.
    """
    column = _PRIORITY_COLUMNS.get(priority)
    if column is None:
        raise ValueError(f"Unknown priority {priority!r}")
    for source in (project, global_settings):
        if source is not None:
            hours = getattr(source, column, None)
            if hours is not None:
                return float(hours)
    if defaults and priority in defaults:
        return float(defaults[priority])
    raise ValueError(f"No SLA hours configured for {priority!r}")


def compute_deadline(created_at: datetime, hours: float, paused_seconds: int = 0) -> datetime:
    return created_at + timedelta(hours=hours, seconds=paused_seconds or 0)


def paused_interval(blocked_at: Optional[datetime], now: datetime) -> timedelta:
    if blocked_at is None or now <= blocked_at:
        return timedelta(0)
    return now - blocked_at


def format_remaining(remaining: timedelta) -> str:
    total_minutes = int(remaining.total_seconds() // 60)
    days, rest = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(rest, 60)
    if days > 0:
        return f"{days}d {hours}h"
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def sla_status(deadline: Optional[datetime], blocked_at: Optional[datetime], now: datetime) -> SlaStatus:
    if deadline is None:
        return SlaStatus(state=NONE, label="No SLA")
    if blocked_at is not None:
        # Frozen at the moment the ticket was blocked.
        return SlaStatus(state=PAUSED, label="Paused", deadline=deadline, remaining=deadline - blocked_at)
    remaining = deadline - now
    if remaining <= timedelta(0):
        return SlaStatus(state=OVERDUE, label="Overdue", deadline=deadline, remaining=remaining)
    return SlaStatus(state=ON_TRACK, label=format_remaining(remaining), deadline=deadline, remaining=remaining)
