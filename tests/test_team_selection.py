import pytest

from kickbook.app import crud
from kickbook.app.errors import ErrorKind, ServiceError
from kickbook.app.models import PlayerBooking, PB_CANCELED, PB_CONFIRMED
from kickbook.app.services import team_selection

from .conftest import make_user, make_team, make_booking


def _register(db, booking, player, status=PB_CONFIRMED):
    db.add(PlayerBooking(player_id=player.id, booking_id=booking.id, status=status))
    db.commit()


def test_snake_draft_order():
    team_a, team_b = team_selection.snake_draft(list(range(8)), 4)
    assert team_a == [0, 3, 4, 7]
    assert team_b == [1, 2, 5, 6]


def test_snake_draft_drops_extras():
    team_a, team_b = team_selection.snake_draft(list(range(7)), 3)
    assert len(team_a) == len(team_b) == 3


@pytest.mark.parametrize("fmt, n", [("5-a-side", 5), ("7-a-side", 7), ("11-a-side", 11)])
def test_players_per_side(fmt, n):
    assert team_selection.players_per_side(fmt) == n


def test_balanced_teams_by_skill(db):
    team = make_team(db)
    booking = make_booking(db, team)
    history = make_booking(db, team, title="Last week")

    players = []
    for goals in (9, 1, 5, 3):
        p = make_user(db, team=team)
        crud.create_player_stats(db, history.id, p.id, goals=goals)
        _register(db, booking, p)
        players.append(p)
    benched = make_user(db, team=team)
    _register(db, booking, benched, status=PB_CANCELED)

    result = team_selection.generate_balanced_teams(db, booking.id)

    # ranked 9, 5, 3, 1 -> A gets 9 and 1, B gets 5 and 3
    assert [p["score"] for p in result["team_a"]] == [9, 1]
    assert [p["score"] for p in result["team_b"]] == [5, 3]
    picked = {p["id"] for side in result.values() for p in side}
    assert benched.id not in picked


def test_balanced_teams_needs_players(db):
    team = make_team(db)
    booking = make_booking(db, team)

    with pytest.raises(ServiceError) as exc:
        team_selection.generate_balanced_teams(db, booking.id)
    assert exc.value.kind == ErrorKind.POLICY_VIOLATION


def test_balanced_teams_unknown_booking(db):
    with pytest.raises(ServiceError) as exc:
        team_selection.generate_balanced_teams(db, 31337)
    assert exc.value.kind == ErrorKind.NOT_FOUND
