import pytest
from app.core.errors import PermissionDenied, ValidationFailed


@pytest.fixture
def three(new_ticket):
    return [new_ticket(title=f"Ticket {n}") for n in range(3)]


def ids(tickets):
    return [t.id for t in tickets]


def test_new_tickets_go_to_the_bottom(lifecycle, three, new_ticket, world):
    assert [t.sort_order for t in three] == [0, 1, 2]
    assert ids(lifecycle.list_project_tickets(world.alpha)) == ids(three)

    other = new_ticket(project=world.beta, actor=world.po2)
    assert other.sort_order == 0


def test_move_up_swaps_with_neighbour(lifecycle, three, world):
    a, b, c = ids(three)
    ordered = lifecycle.move_ticket(world.alpha, world.po1, c, "up", [a, b, c])
    assert ids(ordered) == [a, c, b]

    ordered = lifecycle.move_ticket(world.alpha, world.po1, a, "down", ids(ordered))
    assert ids(ordered) == [c, a, b]


def test_move_past_either_end_is_noop(lifecycle, three, world):
    a, b, c = ids(three)
    assert ids(lifecycle.move_ticket(world.alpha, world.po1, a, "up", [a, b, c])) == [a, b, c]
    assert ids(lifecycle.move_ticket(world.alpha, world.po1, c, "down", [a, b, c])) == [a, b, c]


def test_move_within_filtered_view(lifecycle, three, world):
    a, b, c = ids(three)
    ordered = lifecycle.move_ticket(world.alpha, world.po1, c, "up", [a, c])
    assert ids(ordered) == [c, b, a]


def test_move_rejections(lifecycle, three, world):
    a, b, c = ids(three)
    with pytest.raises(PermissionDenied):
        lifecycle.move_ticket(world.alpha, world.dev1, b, "up", [a, b, c])
    with pytest.raises(ValidationFailed):
        lifecycle.move_ticket(world.alpha, world.po1, b, "sideways", [a, b, c])
    with pytest.raises(ValidationFailed):
        lifecycle.move_ticket(world.alpha, world.po1, b, "up", [a, c])


def test_move_does_not_touch_status_or_comments(lifecycle, store, three, world):
    a, b, c = ids(three)
    before = [len(store.list_comments(t)) for t in (a, b, c)]
    lifecycle.move_ticket(world.alpha, world.po1, b, "up", [a, b, c])
    assert [len(store.list_comments(t)) for t in (a, b, c)] == before
    assert {t.status for t in lifecycle.list_project_tickets(world.alpha)} == {"open"}
