import pytest

from kickbook.app.errors import ErrorKind, LedgerError
from kickbook.app.models import (
    CreditTransaction, TX_ADMIN_ADJUSTMENT, TX_BOOKING, TX_BOOKING_PAYMENT,
    TX_COMPLETED, TX_FAILED, TX_PENDING,
)
from kickbook.app.services import credits as ledger

from .conftest import make_user, make_team, make_booking


def _balanced(db, *users):
    for u in users:
        db.refresh(u)
        assert u.credits == ledger.ledger_balance(db, u.id), f"user {u.id} out of sync"


def test_add_credits_logs_transaction(db):
    user = make_user(db)
    updated = ledger.add_credits(db, user.id, 25, TX_ADMIN_ADJUSTMENT, description="welcome")

    assert updated.credits == 25
    txs = ledger.get_transactions_by_user(db, user.id)
    assert [(t.amount, t.type, t.status) for t in txs] == [(25, TX_ADMIN_ADJUSTMENT, TX_COMPLETED)]
    _balanced(db, user)


def test_add_credits_unknown_user(db):
    with pytest.raises(LedgerError) as exc:
        ledger.add_credits(db, 9999, 5, TX_ADMIN_ADJUSTMENT)
    assert exc.value.kind == ErrorKind.NOT_FOUND


@pytest.mark.parametrize("amount", [0, -5, True])
def test_rejects_non_positive_amounts(db, amount):
    user = make_user(db)
    with pytest.raises(LedgerError) as exc:
        ledger.add_credits(db, user.id, amount, TX_ADMIN_ADJUSTMENT)
    assert exc.value.kind == ErrorKind.INVALID_AMOUNT
    assert ledger.get_transactions_by_user(db, user.id) == []


def test_use_credits_pays_team_owner(db):
    team = make_team(db)
    owner = team.owner
    player = make_user(db, credits=30, team=team)
    booking = make_booking(db, team, cost=10)

    assert ledger.use_credits(db, player.id, 10, booking.id) is True

    db.refresh(player)
    db.refresh(owner)
    assert player.credits == 20
    assert owner.credits == 10

    debit = [t for t in ledger.get_transactions_by_user(db, player.id) if t.type == TX_BOOKING]
    assert len(debit) == 1 and debit[0].amount == -10 and debit[0].booking_id == booking.id

    received = ledger.get_transactions_by_team_owner(db, owner.id)
    assert [(t.amount, t.type) for t in received] == [(10, TX_BOOKING_PAYMENT)]
    _balanced(db, player, owner)


def test_use_credits_insufficient_balance_changes_nothing(db):
    team = make_team(db)
    player = make_user(db, credits=5, team=team)
    booking = make_booking(db, team, cost=10)
    before = db.query(CreditTransaction).count()

    assert ledger.use_credits(db, player.id, 10, booking.id) is False

    db.refresh(player)
    assert player.credits == 5
    assert db.query(CreditTransaction).count() == before
    _balanced(db, player, team.owner)


def test_use_credits_unknown_booking(db):
    player = make_user(db, credits=5)
    with pytest.raises(LedgerError) as exc:
        ledger.use_credits(db, player.id, 1, 424242)
    assert exc.value.kind == ErrorKind.NOT_FOUND


def test_pending_purchase_does_not_touch_balance(db):
    user = make_user(db)
    tx = ledger.create_pending_purchase(db, user.id, 50)

    assert tx.status == TX_PENDING
    assert ledger.get_user_credits(db, user.id) == 0
    _balanced(db, user)


def test_purchase_completed_twice_credits_once(db):
    user = make_user(db)
    tx = ledger.create_pending_purchase(db, user.id, 50)

    ledger.complete_purchase(db, tx.id)
    again = ledger.complete_purchase(db, tx.id)

    assert again.status == TX_COMPLETED
    assert ledger.get_user_credits(db, user.id) == 50
    _balanced(db, user)


def test_failed_purchase_cannot_complete(db):
    user = make_user(db)
    tx = ledger.create_pending_purchase(db, user.id, 40)

    assert ledger.fail_purchase(db, tx.id).status == TX_FAILED
    assert ledger.complete_purchase(db, tx.id).status == TX_FAILED
    assert ledger.get_user_credits(db, user.id) == 0
    _balanced(db, user)


def test_completed_purchase_cannot_fail(db):
    user = make_user(db)
    tx = ledger.create_pending_purchase(db, user.id, 40)
    ledger.complete_purchase(db, tx.id)

    assert ledger.fail_purchase(db, tx.id).status == TX_COMPLETED
    assert ledger.get_user_credits(db, user.id) == 40


def test_find_purchase_by_reference(db):
    user = make_user(db)
    tx = ledger.create_pending_purchase(db, user.id, 10)
    ledger.attach_purchase_reference(db, tx.id, "cs_test_123")

    found = ledger.find_purchase_by_reference(db, "cs_test_123")
    assert found is not None and found.id == tx.id
    assert ledger.find_purchase_by_reference(db, "cs_missing") is None
