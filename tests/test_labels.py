import pytest
from app.core.errors import NotFound, PermissionDenied, ValidationFailed
from app.core.labels import DEFAULT_LABEL_COLOR, LabelCatalog
from app.models.ticket import TicketComment, TicketLabel


@pytest.fixture
def labels(store):
    return LabelCatalog(store)


def test_po_creates_project_label(labels, world):
    label = labels.create_label(world.alpha, world.po1, "  frontend ")

    assert label.name == "frontend"
    assert label.color == DEFAULT_LABEL_COLOR
    assert [l.id for l in labels.for_project(world.alpha)] == [label.id]
    assert labels.for_project(world.beta) == []


def test_only_po_manages_labels(labels, world):
    with pytest.raises(PermissionDenied):
        labels.create_label(world.alpha, world.dev1, "backend")
    with pytest.raises(PermissionDenied):
        labels.create_label(world.alpha, world.po2, "backend")

    label = labels.create_label(world.alpha, world.admin, "backend")
    with pytest.raises(PermissionDenied):
        labels.delete_label(world.alpha, label.id, world.dev2)


def test_label_names_are_unique_per_project(labels, world):
    labels.create_label(world.alpha, world.po1, "ux")
    with pytest.raises(ValidationFailed):
        labels.create_label(world.alpha, world.po1, "ux")
    with pytest.raises(ValidationFailed):
        labels.create_label(world.alpha, world.po1, "   ")

    assert labels.create_label(world.beta, world.po2, "ux").project_id == world.beta


def test_po_and_assignee_attach_labels(labels, lifecycle, new_ticket, db_session, world):
    ui = labels.create_label(world.alpha, world.po1, "ui")
    api = labels.create_label(world.alpha, world.po1, "api")
    ticket = new_ticket()
    comments_before = db_session.query(TicketComment).filter_by(ticket_id=ticket.id).count()

    assert [l.name for l in labels.attach(ticket.id, ui.id, world.po1)] == ["ui"]
    with pytest.raises(PermissionDenied):
        labels.attach(ticket.id, api.id, world.dev1)

    lifecycle.claim(ticket.id, world.dev1)
    assert [l.name for l in labels.attach(ticket.id, api.id, world.dev1)] == ["api", "ui"]
    with pytest.raises(PermissionDenied):
        labels.detach(ticket.id, ui.id, world.dev2)

    assert db_session.query(TicketComment).filter_by(ticket_id=ticket.id).count() == comments_before + 1


def test_attach_is_idempotent(labels, new_ticket, db_session, world):
    ui = labels.create_label(world.alpha, world.po1, "ui")
    ticket = new_ticket()

    labels.attach(ticket.id, ui.id, world.po1)
    labels.attach(ticket.id, ui.id, world.po1)

    assert db_session.query(TicketLabel).filter_by(ticket_id=ticket.id).count() == 1


def test_label_from_another_project_is_rejected(labels, new_ticket, world):
    beta_label = labels.create_label(world.beta, world.po2, "infra")
    ticket = new_ticket()

    with pytest.raises(ValidationFailed):
        labels.attach(ticket.id, beta_label.id, world.po1)
    with pytest.raises(NotFound):
        labels.attach(ticket.id, "no-such-label", world.po1)


def test_detach_requires_attached_label(labels, new_ticket, world):
    ui = labels.create_label(world.alpha, world.po1, "ui")
    ticket = new_ticket()

    with pytest.raises(NotFound):
        labels.detach(ticket.id, ui.id, world.po1)

    labels.attach(ticket.id, ui.id, world.po1)
    assert labels.detach(ticket.id, ui.id, world.po1) == []


def test_deleting_label_detaches_it_everywhere(labels, new_ticket, db_session, world):
    ui = labels.create_label(world.alpha, world.po1, "ui")
    first, second = new_ticket(title="First"), new_ticket(title="Second")
    labels.attach(first.id, ui.id, world.po1)
    labels.attach(second.id, ui.id, world.po1)

    labels.delete_label(world.alpha, ui.id, world.po1)

    assert db_session.query(TicketLabel).count() == 0
    assert labels.for_ticket(first.id) == []
    with pytest.raises(NotFound):
        labels.delete_label(world.alpha, ui.id, world.po1)


def test_labels_attached_at_creation(labels, lifecycle, db_session, world):
    ui = labels.create_label(world.alpha, world.po1, "ui")
    api = labels.create_label(world.alpha, world.po1, "api")

    ticket = lifecycle.create_ticket(
        world.alpha, world.po1, title="Broken search", priority="p1_high", label_ids=[ui.id, api.id, ui.id],
    )

    assert [l.name for l in labels.for_ticket(ticket.id)] == ["api", "ui"]


def test_creation_with_foreign_label_creates_nothing(labels, lifecycle, db_session, world):
    beta_label = labels.create_label(world.beta, world.po2, "infra")

    with pytest.raises(ValidationFailed):
        lifecycle.create_ticket(world.alpha, world.po1, title="Broken search", label_ids=[beta_label.id])

    assert lifecycle.list_project_tickets(world.alpha) == []
