from datetime import datetime, timedelta

import pytest

from kickbook.app import crud
from kickbook.app.errors import ErrorKind, ServiceError
from kickbook.app.models import (
    CreditTransaction, Notification, PlayerBooking,
    BOOKING_CANCELED, PB_CANCELED, PB_CONFIRMED, TX_REFUND,
)
from kickbook.app.services import bookings as booking_service
from kickbook.app.services import cancellation
from kickbook.app.services import credits as ledger

from .conftest import NOW, make_user, make_team, make_booking


def _joined(db, team, player, hours_out, cost=10):
    booking = make_booking(db, team, start=NOW + timedelta(hours=hours_out), cost=cost)
    booking_service.join_booking(db, player, booking.id, now=NOW)
    return booking


@pytest.mark.parametrize(
    "cost, hours, expected",
    [
        (10, 30, 10),   # early: full refund
        (10, 24, 10),   # deadline is inclusive
        (10, 10, 5),    # late: half
        (5, 10, 3),     # 2.5 rounds half up
        (0, 48, 0),
    ],
)
def test_refund_tiers(cost, hours, expected):
    assert cancellation.calculate_refund_amount(cost, hours) == expected


def test_cancel_early_refunds_in_full(db):
    team = make_team(db)
    player = make_user(db, credits=20, team=team)
    booking = _joined(db, team, player, hours_out=30)

    result = cancellation.process_cancellation(db, player.id, booking.id, reason="injured", now=NOW)

    assert result.success
    assert result.refund_amount == 10
    assert result.message == "Cancellation successful. 10 credits have been refunded."
    db.refresh(player)
    db.refresh(booking)
    assert player.credits == 20
    assert booking.available_slots == booking.total_slots

    pb = crud.get_player_booking(db, booking.id, player.id)
    assert pb.status == PB_CANCELED
    assert pb.canceled_by == player.id
    assert pb.cancellation_reason == "injured"
    assert pb.refund_amount == 10
    assert player.credits == ledger.ledger_balance(db, player.id)


def test_cancel_late_refunds_half(db):
    team = make_team(db)
    player = make_user(db, credits=20, team=team)
    booking = _joined(db, team, player, hours_out=10)

    result = cancellation.process_cancellation(db, player.id, booking.id, now=NOW)

    assert result.success and result.refund_amount == 5
    db.refresh(player)
    assert player.credits == 15
    refunds = db.query(CreditTransaction).filter_by(user_id=player.id, type=TX_REFUND).all()
    assert [t.amount for t in refunds] == [5]


def test_cancel_too_close_to_kickoff(db):
    team = make_team(db)
    player = make_user(db, credits=20, team=team)
    booking = _joined(db, team, player, hours_out=5)

    result = cancellation.process_cancellation(db, player.id, booking.id, now=NOW)

    assert not result.success
    assert result.error_kind == ErrorKind.POLICY_VIOLATION.value
    assert "6 hours" in result.message
    assert crud.get_player_booking(db, booking.id, player.id).status == PB_CONFIRMED
    db.refresh(player)
    assert player.credits == 10


def test_team_policy_override_applies(db):
    team = make_team(db, cancellation_policy={"min_hours_before_for_cancellation": 2, "refund_percent": 20})
    player = make_user(db, credits=20, team=team)
    booking = _joined(db, team, player, hours_out=5)

    result = cancellation.process_cancellation(db, player.id, booking.id, now=NOW)

    assert result.success and result.refund_amount == 2


def test_not_registered(db):
    team = make_team(db)
    player = make_user(db, team=team)
    booking = make_booking(db, team)

    result = cancellation.can_cancel(db, player.id, booking.id, now=NOW)

    assert not result.success
    assert result.error_kind == ErrorKind.NOT_FOUND.value


def test_missing_booking(db):
    result = cancellation.can_cancel(db, 1, 98765, now=NOW)
    assert result.error_kind == ErrorKind.NOT_FOUND.value


def test_can_cancel_changes_nothing(db):
    team = make_team(db)
    player = make_user(db, credits=20, team=team)
    booking = _joined(db, team, player, hours_out=30)
    tx_before = db.query(CreditTransaction).count()

    result = cancellation.can_cancel(db, player.id, booking.id, now=NOW)
    again = cancellation.can_cancel(db, player.id, booking.id, now=NOW)

    assert result.success and result.status == "approved" and result.refund_amount == 10
    assert again == result
    assert db.query(CreditTransaction).count() == tx_before
    assert crud.get_player_booking(db, booking.id, player.id).status == PB_CONFIRMED


def test_second_cancel_is_rejected(db):
    team = make_team(db)
    player = make_user(db, credits=20, team=team)
    booking = _joined(db, team, player, hours_out=30)

    assert cancellation.process_cancellation(db, player.id, booking.id, now=NOW).success
    again = cancellation.process_cancellation(db, player.id, booking.id, now=NOW)

    assert not again.success
    refunds = db.query(CreditTransaction).filter_by(user_id=player.id, type=TX_REFUND).count()
    assert refunds == 1


def test_monthly_limit(db):
    team = make_team(db)
    player = make_user(db, credits=50, team=team)

    for _ in range(2):
        booking = _joined(db, team, player, hours_out=30)
        assert cancellation.process_cancellation(db, player.id, booking.id, now=NOW).success

    third = _joined(db, team, player, hours_out=30)
    result = cancellation.process_cancellation(db, player.id, third.id, now=NOW)

    assert not result.success
    assert result.error_kind == ErrorKind.POLICY_VIOLATION.value
    assert "limit of 2" in result.message
    assert cancellation.count_self_cancellations(db, player.id, NOW) == 2


def test_cancel_sends_notification(db):
    team = make_team(db)
    player = make_user(db, credits=20, team=team)
    booking = _joined(db, team, player, hours_out=30)

    cancellation.process_cancellation(db, player.id, booking.id, now=NOW)

    types = [n.type for n in db.query(Notification).filter_by(user_id=player.id).all()]
    assert "cancellation" in types


# ---- whole match ----

def test_owner_cancels_whole_match(db):
    team = make_team(db)
    owner = team.owner
    p1 = make_user(db, credits=20, team=team)
    p2 = make_user(db, credits=20, team=team)
    booking = make_booking(db, team, start=NOW + timedelta(hours=3), cost=10)
    booking_service.join_booking(db, p1, booking.id, now=NOW)
    booking_service.join_booking(db, p2, booking.id, now=NOW)

    result = cancellation.cancel_entire_booking(db, owner.id, booking.id, "pitch flooded", now=NOW)

    assert result.success
    assert result.refund_amount == 20
    db.refresh(booking)
    assert booking.status == BOOKING_CANCELED
    assert booking.available_slots == booking.total_slots - 2
    assert booking.cancel_reason == "pitch flooded"
    for p in (p1, p2):
        db.refresh(p)
        assert p.credits == 20
        pb = crud.get_player_booking(db, booking.id, p.id)
        assert pb.status == PB_CANCELED
        assert pb.canceled_by == owner.id
        assert pb.cancellation_reason == "Team owner canceled: pitch flooded"
        assert p.credits == ledger.ledger_balance(db, p.id)

    # owner-initiated cancellations don't count against the players' monthly limit
    assert cancellation.count_self_cancellations(db, p1.id, NOW) == 0
    notified = db.query(Notification).filter_by(booking_id=booking.id, type="cancellation").count()
    assert notified == 2


def test_whole_match_skips_players_who_already_left(db):
    team = make_team(db)
    p1 = make_user(db, credits=20, team=team)
    p2 = make_user(db, credits=20, team=team)
    booking = make_booking(db, team, start=NOW + timedelta(hours=30), cost=10)
    booking_service.join_booking(db, p1, booking.id, now=NOW)
    booking_service.join_booking(db, p2, booking.id, now=NOW)
    cancellation.process_cancellation(db, p1.id, booking.id, now=NOW)

    result = cancellation.cancel_entire_booking(db, team.owner_id, booking.id, "no ref", now=NOW)

    assert result.refund_amount == 10
    db.refresh(p1)
    assert p1.credits == 20
    assert p1.credits == ledger.ledger_balance(db, p1.id)


def test_only_owner_can_cancel_whole_match(db):
    team = make_team(db)
    player = make_user(db, team=team)
    booking = make_booking(db, team)

    result = cancellation.cancel_entire_booking(db, player.id, booking.id, "bored", now=NOW)

    assert not result.success
    assert result.error_kind == ErrorKind.UNAUTHORIZED.value


def test_whole_match_cannot_be_canceled_twice(db):
    team = make_team(db)
    booking = make_booking(db, team)

    assert cancellation.cancel_entire_booking(db, team.owner_id, booking.id, "rain", now=NOW).success
    again = cancellation.cancel_entire_booking(db, team.owner_id, booking.id, "rain", now=NOW)

    assert not again.success
    assert again.error_kind == ErrorKind.POLICY_VIOLATION.value


# ---- policy editing ----

def test_owner_edits_policy(db):
    team = make_team(db)
    policy = cancellation.update_team_policy(db, team.owner, team, {"max_cancellations_per_month": 5})
    assert policy.max_cancellations_per_month == 5
    assert policy.refund_percent == 50


def test_locked_policy_needs_admin(db):
    team = make_team(db, cancellation_policy={"allow_team_owner_override": False})
    admin = make_user(db, role="admin")

    with pytest.raises(ServiceError) as exc:
        cancellation.update_team_policy(db, team.owner, team, {"refund_percent": 80})
    assert exc.value.kind == ErrorKind.UNAUTHORIZED

    policy = cancellation.update_team_policy(db, admin, team, {"refund_percent": 80})
    assert policy.refund_percent == 80


def test_rejoining_does_not_reset_monthly_limit(db):
    team = make_team(db)
    player = make_user(db, credits=50, team=team)
    booking = make_booking(db, team, start=NOW + timedelta(hours=30), cost=10)

    accepted = []
    for _ in range(3):
        booking_service.join_booking(db, player, booking.id, now=NOW)
        accepted.append(cancellation.process_cancellation(db, player.id, booking.id, now=NOW).success)

    assert accepted == [True, True, False]
    assert cancellation.count_self_cancellations(db, player.id, NOW) == 2
    db.refresh(player)
    assert player.credits == 40
    assert crud.get_player_booking(db, booking.id, player.id).status == PB_CONFIRMED


@pytest.mark.parametrize("hours_ago", [0, 1, 3])
def test_started_or_finished_match_cannot_be_canceled(db, hours_ago):
    team = make_team(db)
    player = make_user(db, team=team)
    booking = make_booking(db, team, start=NOW - timedelta(hours=hours_ago))
    db.add(PlayerBooking(player_id=player.id, booking_id=booking.id, status=PB_CONFIRMED, amount_paid=10))
    db.commit()

    result = cancellation.process_cancellation(db, player.id, booking.id, now=NOW)

    assert not result.success
    assert result.error_kind == ErrorKind.POLICY_VIOLATION.value
    assert "already started" in result.message
    assert db.query(CreditTransaction).filter_by(user_id=player.id, type=TX_REFUND).count() == 0


def test_month_bounds_roll_over_the_year():
    assert cancellation._month_bounds(datetime(2030, 12, 31, 23, 59)) == (
        datetime(2030, 12, 1), datetime(2031, 1, 1),
    )
    assert cancellation._month_bounds(datetime(2031, 1, 1)) == (
        datetime(2031, 1, 1), datetime(2031, 2, 1),
    )


def test_last_months_cancellations_do_not_count(db):
    team = make_team(db, cancellation_policy={"max_cancellations_per_month": 1})
    player = make_user(db, credits=30, team=team)
    december = datetime(2030, 12, 30, 12)
    january = datetime(2031, 1, 1, 9)

    old = make_booking(db, team, start=datetime(2031, 1, 3, 19))
    booking_service.join_booking(db, player, old.id, now=december)
    assert cancellation.process_cancellation(db, player.id, old.id, now=december).success
    assert cancellation.count_self_cancellations(db, player.id, datetime(2030, 12, 31, 23, 59)) == 1
    assert cancellation.count_self_cancellations(db, player.id, january) == 0

    new = make_booking(db, team, start=datetime(2031, 1, 5, 19))
    booking_service.join_booking(db, player, new.id, now=january)
    assert cancellation.process_cancellation(db, player.id, new.id, now=january).success


def test_refunds_follow_what_was_paid_after_a_price_change(db):
    team = make_team(db)
    early = make_user(db, credits=20, team=team)
    leaver = make_user(db, credits=20, team=team)
    booking = make_booking(db, team, start=NOW + timedelta(hours=30), cost=10)
    booking_service.join_booking(db, early, booking.id, now=NOW)
    booking_service.join_booking(db, leaver, booking.id, now=NOW)

    crud.update_booking(db, booking.id, credit_cost=100)

    check = cancellation.can_cancel(db, leaver.id, booking.id, now=NOW)
    assert check.refund_amount == 10
    assert cancellation.process_cancellation(db, leaver.id, booking.id, now=NOW).refund_amount == 10

    result = cancellation.cancel_entire_booking(db, team.owner_id, booking.id, "venue shut", now=NOW)

    assert result.refund_amount == 10
    for p in (early, leaver):
        db.refresh(p)
        assert p.credits == 20
