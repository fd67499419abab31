# kickbook/app/services/credits.py
"""
Credit ledger.

`User.credits` is a running balance of the user's *completed* transactions.
Every writer here changes the balance and the ledger in the same database
transaction, and balance changes are single conditional UPDATE statements
(never read-then-write), so concurrent requests cannot overdraw a user or
complete a purchase twice.

Each public writer takes `commit=True`. Callers composing a bigger unit of
work (cancellations) pass `commit=False` and commit once themselves.
"""
from __future__ import annotations

from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..errors import ErrorKind, LedgerError
from ..models import (
    User, Booking, Team, CreditTransaction,
    TX_COMPLETED, TX_PENDING, TX_FAILED, TX_BOOKING, TX_BOOKING_PAYMENT, TX_PURCHASE,
)
from ..util import utcnow
from ..utils.logger import setup_logger

logger = setup_logger(__name__)


def _require_positive(amount: int) -> None:
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        raise LedgerError(ErrorKind.INVALID_AMOUNT, f"Amount must be a positive integer, got {amount!r}")


def _increment_balance(db: Session, user_id: int, delta: int, floor: Optional[int] = None) -> bool:
    """
    credits += delta as one statement. With `floor`, only applies when
    credits >= floor. Returns whether a row was updated.
    """
    q = db.query(User).filter(User.id == user_id)
    if floor is not None:
        q = q.filter(User.credits >= floor)
    updated = q.update({User.credits: User.credits + delta}, synchronize_session=False)
    return updated == 1


def _append(db: Session, user_id: int, amount: int, tx_type: str, *,
            status: str = TX_COMPLETED, booking_id: Optional[int] = None,
            description: Optional[str] = None, team_owner_id: Optional[int] = None,
            external_ref: Optional[str] = None) -> CreditTransaction:
    tx = CreditTransaction(
        user_id=user_id,
        amount=amount,
        type=tx_type,
        booking_id=booking_id,
        description=description,
        team_owner_id=team_owner_id,
        status=status,
        external_ref=external_ref,
        created_at=utcnow(),
    )
    db.add(tx)
    db.flush()
    return tx


def _finish(db: Session, commit: bool) -> None:
    if commit:
        db.commit()
    else:
        db.flush()


def _fresh_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    db.refresh(user)
    return user


# ============================================================
# Reads
# ============================================================

def get_user_credits(db: Session, user_id: int) -> int:
    """Denormalised balance; 0 for an unknown user."""
    credits = db.query(User.credits).filter(User.id == user_id).scalar()
    return int(credits or 0)


def ledger_balance(db: Session, user_id: int) -> int:
    """Sum of the user's completed transactions: what `User.credits` must equal."""
    total = (
        db.query(func.coalesce(func.sum(CreditTransaction.amount), 0))
        .filter(CreditTransaction.user_id == user_id, CreditTransaction.status == TX_COMPLETED)
        .scalar()
    )
    return int(total or 0)


def get_transactions_by_user(db: Session, user_id: int) -> list[CreditTransaction]:
    return (
        db.query(CreditTransaction)
        .filter(CreditTransaction.user_id == user_id)
        .order_by(CreditTransaction.created_at, CreditTransaction.id)
        .all()
    )


def get_transactions_by_team_owner(db: Session, team_owner_id: int) -> list[CreditTransaction]:
    return (
        db.query(CreditTransaction)
        .filter(CreditTransaction.team_owner_id == team_owner_id)
        .order_by(CreditTransaction.created_at, CreditTransaction.id)
        .all()
    )


# ============================================================
# Writers
# ============================================================

def add_credits(db: Session, user_id: int, amount: int, tx_type: str,
                description: Optional[str] = None, team_owner_id: Optional[int] = None,
                booking_id: Optional[int] = None, commit: bool = True) -> User:
    """
    Credit `amount` to the user and log a completed transaction of `tx_type`.
    """
    _require_positive(amount)
    try:
        if not _increment_balance(db, user_id, amount):
            raise LedgerError(ErrorKind.NOT_FOUND, f"User with ID {user_id} not found")
        _append(
            db, user_id, amount, tx_type,
            booking_id=booking_id,
            description=description or f"Credit adjustment: {tx_type}",
            team_owner_id=team_owner_id,
        )
        _finish(db, commit)
    except Exception:
        if commit:
            db.rollback()
        raise

    logger.info("[credits] +%s (%s) -> user %s", amount, tx_type, user_id)
    return _fresh_user(db, user_id)


def use_credits(db: Session, user_id: int, amount: int, booking_id: int,
                description: Optional[str] = None, commit: bool = True) -> bool:
    """
    Spend `amount` on a booking and pass it through to the team owner.

    Returns False, touching nothing, when the balance is insufficient.
    The player debit, the owner credit and both ledger rows commit together.
    """
    _require_positive(amount)

    if db.get(User, user_id) is None:
        raise LedgerError(ErrorKind.NOT_FOUND, f"User with ID {user_id} not found")

    booking = db.get(Booking, booking_id)
    if booking is None:
        raise LedgerError(ErrorKind.NOT_FOUND, f"Booking with ID {booking_id} not found")
    team = db.get(Team, booking.team_id)
    if team is None:
        raise LedgerError(ErrorKind.NOT_FOUND, f"Team with ID {booking.team_id} not found")

    try:
        if not _increment_balance(db, user_id, -amount, floor=amount):
            if commit:
                db.rollback()
            logger.info("[credits] insufficient balance: user %s needs %s", user_id, amount)
            return False

        _append(
            db, user_id, -amount, TX_BOOKING,
            booking_id=booking_id,
            description=description or f"Booking payment: ID {booking_id}",
        )

        if not _increment_balance(db, team.owner_id, amount):
            raise LedgerError(ErrorKind.NOT_FOUND, f"Team owner {team.owner_id} not found")
        _append(
            db, team.owner_id, amount, TX_BOOKING_PAYMENT,
            booking_id=booking_id,
            description=f"Payment for booking ID {booking_id}",
            team_owner_id=team.owner_id,
        )
        _finish(db, commit)
    except Exception:
        if commit:
            db.rollback()
        raise

    logger.info("[credits] user %s paid %s for booking %s (owner %s)", user_id, amount, booking_id, team.owner_id)
    return True


# ============================================================
# Purchases (external payment confirmation)
# ============================================================

def create_pending_purchase(db: Session, user_id: int, amount: int,
                            description: Optional[str] = None,
                            external_ref: Optional[str] = None) -> CreditTransaction:
    """Log a purchase awaiting payment. The balance is untouched until completion."""
    _require_positive(amount)
    if db.get(User, user_id) is None:
        raise LedgerError(ErrorKind.NOT_FOUND, f"User with ID {user_id} not found")

    tx = _append(
        db, user_id, amount, TX_PURCHASE,
        status=TX_PENDING,
        description=description or f"Purchase of {amount} credits",
        external_ref=external_ref,
    )
    db.commit()
    db.refresh(tx)
    return tx


def attach_purchase_reference(db: Session, tx_id: int, external_ref: str) -> None:
    db.query(CreditTransaction).filter(
        CreditTransaction.id == tx_id,
        CreditTransaction.status == TX_PENDING,
    ).update({CreditTransaction.external_ref: external_ref}, synchronize_session=False)
    db.commit()


def _transition(db: Session, tx_id: int, to_status: str) -> bool:
    updated = (
        db.query(CreditTransaction)
        .filter(
            CreditTransaction.id == tx_id,
            CreditTransaction.type == TX_PURCHASE,
            CreditTransaction.status == TX_PENDING,
        )
        .update({CreditTransaction.status: to_status}, synchronize_session=False)
    )
    return updated == 1


def complete_purchase(db: Session, tx_id: int) -> Optional[CreditTransaction]:
    """
    pending -> completed and credit the balance, once.
    A repeated confirmation (webhook retry) is a no-op.
    """
    tx = db.get(CreditTransaction, tx_id)
    if tx is None:
        raise LedgerError(ErrorKind.NOT_FOUND, f"Transaction {tx_id} not found")

    try:
        if not _transition(db, tx_id, TX_COMPLETED):
            db.rollback()
            logger.info("[credits] purchase %s already settled, ignoring", tx_id)
            db.refresh(tx)
            return tx
        if not _increment_balance(db, tx.user_id, tx.amount):
            raise LedgerError(ErrorKind.NOT_FOUND, f"User with ID {tx.user_id} not found")
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(tx)
    logger.info("[credits] purchase %s completed: +%s -> user %s", tx_id, tx.amount, tx.user_id)
    return tx


def fail_purchase(db: Session, tx_id: int) -> Optional[CreditTransaction]:
    tx = db.get(CreditTransaction, tx_id)
    if tx is None:
        raise LedgerError(ErrorKind.NOT_FOUND, f"Transaction {tx_id} not found")
    changed = _transition(db, tx_id, TX_FAILED)
    db.commit()
    db.refresh(tx)
    if changed:
        logger.info("[credits] purchase %s failed", tx_id)
    return tx


def find_purchase_by_reference(db: Session, external_ref: str) -> Optional[CreditTransaction]:
    return (
        db.query(CreditTransaction)
        .filter(CreditTransaction.external_ref == external_ref)
        .one_or_none()
    )
