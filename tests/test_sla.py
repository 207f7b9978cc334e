from datetime import datetime, timedelta
import pytest
from app.core.config import Settings
from app.core.lifecycle import TicketLifecycle
from app.core.sla import (
    NONE,
    ON_TRACK,
    OVERDUE,
    PAUSED,
    compute_deadline,
    format_remaining,
    paused_interval,
    sla_hours,
    sla_status,
)
from app.models.project import GlobalSettings, Project

START = datetime(2026, 1, 5, 9, 0, 0)


def test_p1_ticket_gets_24_hour_deadline(new_ticket):
    ticket = new_ticket(priority="p1_high")
    assert ticket.sla_deadline == START + timedelta(hours=24)


@pytest.mark.parametrize(
    "priority, hours",
    [("p0_critical", 4), ("p1_high", 24), ("p2_medium", 168), ("p3_low", 720)],
)
def test_default_hours_per_priority(new_ticket, priority, hours):
    ticket = new_ticket(priority=priority)
    assert ticket.sla_deadline - ticket.created_at == timedelta(hours=hours)


def test_blocked_ticket_reports_paused_past_deadline(lifecycle, new_ticket, clock, world):
    ticket = new_ticket(priority="p1_high")
    clock.advance(hours=2)
    lifecycle.block(ticket.id, world.po1, "waiting on vendor")

    clock.advance(hours=28)
    status = lifecycle.sla_for(ticket)

    assert status.state == PAUSED
    assert status.label == "Paused"
    assert status.remaining == timedelta(hours=22)


def test_unblock_extends_deadline_by_paused_time(lifecycle, new_ticket, clock, world):
    ticket = new_ticket(priority="p1_high")
    clock.advance(hours=2)
    lifecycle.block(ticket.id, world.po1, "waiting on vendor")
    clock.advance(hours=28)

    unblocked = lifecycle.unblock(ticket.id, world.po1)

    assert unblocked.sla_deadline == START + timedelta(hours=52)
    assert unblocked.sla_paused_seconds == 28 * 3600
    status = lifecycle.sla_for(unblocked)
    assert status.state == ON_TRACK
    assert status.label == "22h 0m"


def test_unblock_without_extension_keeps_deadline(store, clock, bus, new_ticket, world):
    ticket = new_ticket(priority="p1_high")
    strict = TicketLifecycle(store, clock=clock, events=bus, config=Settings(SLA_EXTEND_ON_UNBLOCK=False))
    strict.block(ticket.id, world.po1, "waiting")
    clock.advance(hours=30)

    unblocked = strict.unblock(ticket.id, world.po1)

    assert unblocked.sla_deadline == START + timedelta(hours=24)
    assert strict.sla_for(unblocked).state == OVERDUE


def test_resolving_blocked_ticket_accumulates_pause(lifecycle, new_ticket, clock, world):
    ticket = new_ticket(priority="p0_critical")
    lifecycle.block(ticket.id, world.po1, "waiting")
    clock.advance(hours=3)

    resolved = lifecycle.resolve(ticket.id, world.po1)

    assert resolved.sla_paused_seconds == 3 * 3600
    assert resolved.blocked_at is None


def test_overdue_when_past_deadline(lifecycle, new_ticket, clock):
    ticket = new_ticket(priority="p0_critical")
    clock.advance(hours=4, minutes=1)
    status = lifecycle.sla_for(ticket)
    assert status.state == OVERDUE
    assert status.label == "Overdue"
    assert status.remaining_seconds == -60


def test_project_override_beats_global_settings(lifecycle, db_session, world):
    db_session.add(GlobalSettings(sla_p1_hours=12))
    project = db_session.get(Project, world.alpha)
    project.sla_p1_hours = 8
    db_session.commit()

    alpha_ticket = lifecycle.create_ticket(world.alpha, world.po1, title="Alpha outage", priority="p1_high")
    beta_ticket = lifecycle.create_ticket(world.beta, world.po2, title="Beta outage", priority="p1_high")

    assert alpha_ticket.sla_deadline == START + timedelta(hours=8)
    assert beta_ticket.sla_deadline == START + timedelta(hours=12)


def test_edit_priority_recomputes_deadline(lifecycle, new_ticket, clock, world):
    ticket = new_ticket(priority="p3_low")
    clock.advance(hours=1)

    updated = lifecycle.edit_priority(ticket.id, world.po1, "p0_critical")

    assert updated.sla_deadline == START + timedelta(hours=4)


def test_edit_priority_keeps_accumulated_pause(lifecycle, new_ticket, clock, world):
    ticket = new_ticket(priority="p3_low")
    lifecycle.block(ticket.id, world.po1, "waiting")
    clock.advance(hours=5)
    lifecycle.unblock(ticket.id, world.po1)

    updated = lifecycle.edit_priority(ticket.id, world.po1, "p1_high")

    assert updated.sla_deadline == START + timedelta(hours=29)


def test_edit_priority_while_blocked_keeps_deadline_frozen(lifecycle, new_ticket, clock, world):
    ticket = new_ticket(priority="p1_high")
    lifecycle.block(ticket.id, world.po1, "waiting")
    clock.advance(hours=1)

    edited = lifecycle.edit_priority(ticket.id, world.po1, "p3_low")

    assert edited.priority == "p3_low"
    assert edited.sla_deadline == START + timedelta(hours=24)
    assert edited.sla_recompute_pending is True
    assert lifecycle.sla_for(edited).state == PAUSED

    clock.advance(hours=9)
    unblocked = lifecycle.unblock(ticket.id, world.po1)

    assert unblocked.sla_deadline == START + timedelta(hours=720 + 10)
    assert unblocked.sla_paused_seconds == 10 * 3600
    assert unblocked.sla_recompute_pending is False


def test_priority_edited_while_blocked_applies_when_resolved(lifecycle, new_ticket, clock, world):
    ticket = new_ticket(priority="p3_low")
    lifecycle.block(ticket.id, world.po1, "waiting")
    clock.advance(hours=2)
    lifecycle.edit_priority(ticket.id, world.po1, "p0_critical")

    resolved = lifecycle.resolve(ticket.id, world.po1)

    assert resolved.sla_deadline == START + timedelta(hours=4 + 2)
    assert resolved.sla_recompute_pending is False


def test_edit_priority_after_unblock_without_extension(store, clock, bus, new_ticket, world):
    ticket = new_ticket(priority="p1_high")
    strict = TicketLifecycle(store, clock=clock, events=bus, config=Settings(SLA_EXTEND_ON_UNBLOCK=False))
    strict.block(ticket.id, world.po1, "waiting")
    clock.advance(hours=10)
    strict.unblock(ticket.id, world.po1)

    same = strict.edit_priority(ticket.id, world.po1, "p1_high")
    assert same.sla_paused_seconds == 10 * 3600
    assert same.sla_deadline == START + timedelta(hours=24)

    lowered = strict.edit_priority(ticket.id, world.po1, "p2_medium")
    assert lowered.sla_deadline == START + timedelta(hours=168)


def test_priority_edited_while_blocked_without_extension(store, clock, bus, new_ticket, world):
    ticket = new_ticket(priority="p2_medium")
    strict = TicketLifecycle(store, clock=clock, events=bus, config=Settings(SLA_EXTEND_ON_UNBLOCK=False))
    strict.block(ticket.id, world.po1, "waiting")
    clock.advance(hours=6)
    strict.edit_priority(ticket.id, world.po1, "p0_critical")

    unblocked = strict.unblock(ticket.id, world.po1)

    assert unblocked.sla_deadline == START + timedelta(hours=4)
    assert strict.sla_for(unblocked).state == OVERDUE


def test_sla_hours_resolution_order():
    class Row:
        sla_p0_hours = None
        sla_p1_hours = 6

    defaults = {"p0_critical": 4, "p1_high": 24}
    assert sla_hours("p1_high", Row(), None, defaults) == 6
    assert sla_hours("p0_critical", Row(), None, defaults) == 4
    with pytest.raises(ValueError):
        sla_hours("p9", None, None, defaults)
    with pytest.raises(ValueError):
        sla_hours("p3_low", None, None, defaults)


def test_compute_deadline_and_paused_interval():
    assert compute_deadline(START, 24, paused_seconds=3600) == START + timedelta(hours=25)
    assert paused_interval(None, START) == timedelta(0)
    assert paused_interval(START + timedelta(hours=1), START) == timedelta(0)
    assert paused_interval(START, START + timedelta(minutes=90)) == timedelta(minutes=90)


@pytest.mark.parametrize(
    "remaining, label",
    [
        (timedelta(days=2, hours=4, minutes=30), "2d 4h"),
        (timedelta(hours=3, minutes=15), "3h 15m"),
        (timedelta(minutes=12, seconds=40), "12m"),
    ],
)
def test_format_remaining(remaining, label):
    assert format_remaining(remaining) == label


def test_no_deadline_means_no_sla():
    status = sla_status(None, None, START)
    assert status.state == NONE
    assert status.label == "No SLA"
    assert status.remaining_seconds is None
