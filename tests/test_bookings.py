from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from kickbook.app import crud
from kickbook.app.errors import ErrorKind, ServiceError
from kickbook.app.models import Notification, PB_CANCELED, PB_CONFIRMED
from kickbook.app.services import bookings as booking_service
from kickbook.app.services import cancellation

from .conftest import NOW, make_user, make_team, make_booking


def test_join_takes_slot_and_charges(db):
    team = make_team(db)
    player = make_user(db, credits=15, team=team)
    booking = make_booking(db, team, cost=10, slots=10)

    pb = booking_service.join_booking(db, player, booking.id, now=NOW)

    assert pb.status == PB_CONFIRMED
    db.refresh(booking)
    db.refresh(player)
    assert booking.available_slots == 9
    assert player.credits == 5
    confirmations = db.query(Notification).filter_by(user_id=player.id, type="booking_confirmation").count()
    assert confirmations == 1


def test_join_without_credits_rolls_back_slot(db):
    team = make_team(db)
    player = make_user(db, credits=3, team=team)
    booking = make_booking(db, team, cost=10, slots=10)

    with pytest.raises(ServiceError) as exc:
        booking_service.join_booking(db, player, booking.id, now=NOW)

    assert exc.value.kind == ErrorKind.INSUFFICIENT_BALANCE
    db.refresh(booking)
    assert booking.available_slots == 10
    assert crud.get_player_booking(db, booking.id, player.id) is None


def test_join_full_booking(db):
    team = make_team(db)
    first = make_user(db, credits=10, team=team)
    second = make_user(db, credits=10, team=team)
    booking = make_booking(db, team, cost=1, slots=1)

    booking_service.join_booking(db, first, booking.id, now=NOW)
    with pytest.raises(ServiceError) as exc:
        booking_service.join_booking(db, second, booking.id, now=NOW)
    assert exc.value.kind == ErrorKind.POLICY_VIOLATION


def test_join_twice(db):
    team = make_team(db)
    player = make_user(db, credits=30, team=team)
    booking = make_booking(db, team)

    booking_service.join_booking(db, player, booking.id, now=NOW)
    with pytest.raises(ServiceError):
        booking_service.join_booking(db, player, booking.id, now=NOW)


def test_join_other_team(db):
    team = make_team(db)
    other = make_team(db, name="Rivals")
    outsider = make_user(db, credits=30, team=other)
    booking = make_booking(db, team)

    with pytest.raises(ServiceError) as exc:
        booking_service.join_booking(db, outsider, booking.id, now=NOW)
    assert exc.value.kind == ErrorKind.UNAUTHORIZED


def test_join_started_match(db):
    team = make_team(db)
    player = make_user(db, credits=30, team=team)
    booking = make_booking(db, team, start=NOW - timedelta(minutes=5))

    with pytest.raises(ServiceError):
        booking_service.join_booking(db, player, booking.id, now=NOW)


def test_rejoin_after_cancel_reuses_row(db):
    team = make_team(db)
    player = make_user(db, credits=30, team=team)
    booking = make_booking(db, team, start=NOW + timedelta(hours=30))

    first = booking_service.join_booking(db, player, booking.id, now=NOW)
    cancellation.process_cancellation(db, player.id, booking.id, now=NOW)
    again = booking_service.join_booking(db, player, booking.id, now=NOW)

    assert again.id == first.id
    assert again.status == PB_CONFIRMED
    assert again.amount_paid == 10
    assert again.canceled_at is None
    # the earlier withdrawal still counts this month
    assert cancellation.count_self_cancellations(db, player.id, NOW) == 1


def test_concurrent_rejoin_charges_once(db, monkeypatch):
    team = make_team(db)
    player = make_user(db, credits=30, team=team)
    booking = make_booking(db, team, start=NOW + timedelta(hours=30), cost=10)
    pb = booking_service.join_booking(db, player, booking.id, now=NOW)
    cancellation.process_cancellation(db, player.id, booking.id, now=NOW)

    # both requests read the canceled registration before either writes
    stale = SimpleNamespace(id=pb.id, status=PB_CANCELED)
    monkeypatch.setattr(booking_service.crud, "get_player_booking", lambda *args: stale)

    booking_service.join_booking(db, player, booking.id, now=NOW)
    with pytest.raises(ServiceError) as exc:
        booking_service.join_booking(db, player, booking.id, now=NOW)

    assert exc.value.kind == ErrorKind.POLICY_VIOLATION
    db.refresh(player)
    db.refresh(booking)
    assert player.credits == 20
    assert booking.available_slots == booking.total_slots - 1


@pytest.mark.parametrize(
    "fmt, slots, ok",
    [
        ("5-a-side", 15, True),
        ("5-a-side", 16, False),
        ("11-a-side", 30, True),
        ("futsal", 10, False),
    ],
)
def test_validate_booking_fields(fmt, slots, ok):
    start = datetime(2030, 1, 1, 18)
    if ok:
        booking_service.validate_booking_fields(fmt, start, start + timedelta(hours=1), slots)
    else:
        with pytest.raises(ServiceError):
            booking_service.validate_booking_fields(fmt, start, start + timedelta(hours=1), slots)


def test_end_before_start_rejected():
    start = datetime(2030, 1, 1, 18)
    with pytest.raises(ServiceError):
        booking_service.validate_booking_fields("7-a-side", start, start - timedelta(hours=1), 10)
