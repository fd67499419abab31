# kickbook/app/services/cancellation.py
"""
Booking cancellation and refund policy.

Player cancellations are tiered by how far ahead of kick-off they happen and
capped per calendar month. A team owner (or admin) calling off the whole match
refunds every registrant what they paid.

Public functions return a `CancellationResult` instead of raising; the routers
map `error_kind` to an HTTP status.
"""
from __future__ import annotations

from dataclasses import dataclass, asdict, fields
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from .. import crud
from ..db import atomic
from ..errors import ErrorKind, ServiceError
from ..models import (
    Booking, Cancellation, PlayerBooking, Team, User,
    BOOKING_ACTIVE, BOOKING_CANCELED, PB_CANCELED, TX_REFUND,
)
from ..schemas import CancellationResult
from ..util import utcnow, to_naive_utc, hours_between, round_half_up
from ..utils.logger import setup_logger
from . import credits as ledger
from . import notifications

logger = setup_logger(__name__)


@dataclass
class CancellationPolicy:
    max_cancellations_per_month: int = 2
    min_hours_before_for_cancellation: float = 6
    refund_percent: int = 50            # regular refund, 0-100
    refund_deadline_hours: float = 24   # at or beyond this many hours out, the early refund applies
    early_refund_percent: int = 100
    allow_team_owner_override: bool = True

    @classmethod
    def from_override(cls, override: Optional[dict]) -> "CancellationPolicy":
        """Defaults, with any known non-null keys of `override` laid on top."""
        policy = cls()
        if not override:
            return policy
        known = {f.name for f in fields(cls)}
        for key, value in override.items():
            if key in known and value is not None:
                setattr(policy, key, value)
        return policy

    def as_dict(self) -> dict:
        return asdict(self)


DEFAULT_POLICY = CancellationPolicy()


def resolve_policy(team: Optional[Team]) -> CancellationPolicy:
    if team is None:
        return CancellationPolicy()
    return CancellationPolicy.from_override(team.cancellation_policy)


def update_team_policy(db: Session, actor: User, team: Team, changes: dict) -> CancellationPolicy:
    """
    Merge `changes` into the team's stored override.

    The owner may edit while the current policy allows owner overrides;
    otherwise only a platform admin can.
    """
    current = resolve_policy(team)
    is_owner = team.owner_id == actor.id
    if not actor.is_admin:
        if not is_owner:
            raise ServiceError(ErrorKind.UNAUTHORIZED, "Only the team owner can change the cancellation policy")
        if not current.allow_team_owner_override:
            raise ServiceError(ErrorKind.UNAUTHORIZED, "This team's cancellation policy is locked by an administrator")

    stored = dict(team.cancellation_policy or {})
    stored.update({k: v for k, v in changes.items() if v is not None})
    team.cancellation_policy = stored
    db.commit()
    db.refresh(team)
    logger.info("[cancel] policy for team %s updated by user %s: %s", team.id, actor.id, stored)
    return resolve_policy(team)


def calculate_refund_amount(cost: int, hours_before: float,
                            policy: CancellationPolicy = DEFAULT_POLICY) -> int:
    if hours_before >= policy.refund_deadline_hours:
        pct = policy.early_refund_percent
    else:
        pct = policy.refund_percent
    return round_half_up(pct / 100 * cost)


def _month_bounds(now: datetime) -> tuple[datetime, datetime]:
    start = datetime(now.year, now.month, 1)
    if now.month == 12:
        end = datetime(now.year + 1, 1, 1)
    else:
        end = datetime(now.year, now.month + 1, 1)
    return start, end


def count_self_cancellations(db: Session, user_id: int, now: datetime) -> int:
    """Cancellations the player made themselves during `now`'s calendar month."""
    start, end = _month_bounds(now)
    return (
        db.query(func.count(Cancellation.id))
        .filter(
            Cancellation.player_id == user_id,
            Cancellation.canceled_by == user_id,
            Cancellation.created_at >= start,
            Cancellation.created_at < end,
        )
        .scalar()
        or 0
    )


def _fail(kind: ErrorKind, message: str) -> CancellationResult:
    return CancellationResult(success=False, message=message, error_kind=kind.value)


# ============================================================
# Player cancellation
# ============================================================

def can_cancel(db: Session, user_id: int, booking_id: int,
               now: Optional[datetime] = None) -> CancellationResult:
    """
    Decide whether `user_id` may drop out of `booking_id` right now and what
    they would get back. Reads only.
    """
    now = to_naive_utc(now) if now else utcnow()

    booking = crud.get_booking(db, booking_id)
    if not booking:
        return _fail(ErrorKind.NOT_FOUND, "Booking not found")
    if booking.status == BOOKING_CANCELED:
        return _fail(ErrorKind.POLICY_VIOLATION, "This match has already been canceled")

    pb = crud.get_player_booking(db, booking_id, user_id)
    if not pb or pb.status == PB_CANCELED:
        return _fail(ErrorKind.NOT_FOUND, "You are not registered for this match")

    team = crud.get_team(db, booking.team_id)
    if not team:
        return _fail(ErrorKind.NOT_FOUND, "Team not found")
    policy = resolve_policy(team)

    hours_before = hours_between(now, booking.start_time)
    if hours_before <= 0:
        return _fail(ErrorKind.POLICY_VIOLATION, "This match has already started")

    if hours_before < policy.min_hours_before_for_cancellation:
        return _fail(
            ErrorKind.POLICY_VIOLATION,
            f"Cancellations must be made at least {policy.min_hours_before_for_cancellation:g} hours before the match",
        )

    used = count_self_cancellations(db, user_id, now)
    if used >= policy.max_cancellations_per_month:
        return _fail(
            ErrorKind.POLICY_VIOLATION,
            f"You have reached your limit of {policy.max_cancellations_per_month} cancellations this month",
        )

    refund = calculate_refund_amount(pb.amount_paid or 0, hours_before, policy)
    return CancellationResult(
        success=True,
        message="Cancellation approved",
        refund_amount=refund,
        status="approved",
    )


def process_cancellation(db: Session, user_id: int, booking_id: int,
                         reason: Optional[str] = None,
                         now: Optional[datetime] = None) -> CancellationResult:
    now = to_naive_utc(now) if now else utcnow()

    check = can_cancel(db, user_id, booking_id, now=now)
    if not check.success:
        return check

    refund = check.refund_amount or 0
    reason = reason or "User canceled"

    try:
        with atomic(db):
            # guarded transition: a concurrent request for the same
            # registration updates zero rows and is turned away
            moved = (
                db.query(PlayerBooking)
                .filter(
                    PlayerBooking.booking_id == booking_id,
                    PlayerBooking.player_id == user_id,
                    PlayerBooking.status != PB_CANCELED,
                )
                .update(
                    {
                        PlayerBooking.status: PB_CANCELED,
                        PlayerBooking.cancellation_reason: reason,
                        PlayerBooking.refund_amount: refund,
                        PlayerBooking.canceled_at: now,
                        PlayerBooking.canceled_by: user_id,
                    },
                    synchronize_session=False,
                )
            )
            if moved != 1:
                raise ServiceError(ErrorKind.POLICY_VIOLATION, "This registration has already been canceled")
            db.add(Cancellation(
                player_id=user_id, booking_id=booking_id, canceled_by=user_id,
                refund_amount=refund, reason=reason, created_at=now,
            ))

            if refund > 0:
                ledger.add_credits(
                    db, user_id, refund, TX_REFUND,
                    description=f"Refund for canceling booking #{booking_id}: {reason}",
                    booking_id=booking_id,
                    commit=False,
                )

            db.query(Booking).filter(
                Booking.id == booking_id,
                Booking.available_slots < Booking.total_slots,
            ).update({Booking.available_slots: Booking.available_slots + 1}, synchronize_session=False)
    except ServiceError as e:
        return _fail(e.kind, e.message)
    except Exception:
        logger.exception("[cancel] processing failed for user %s booking %s", user_id, booking_id)
        return CancellationResult(success=False, message="An error occurred processing your cancellation")

    db.expire_all()
    logger.info("[cancel] user %s left booking %s, refund %s", user_id, booking_id, refund)

    booking = crud.get_booking(db, booking_id)
    notifications.send_cancellation_notification(db, user_id, booking, refund)

    if refund > 0:
        message = f"Cancellation successful. {refund} credits have been refunded."
    else:
        message = "Cancellation successful. No refund was issued."
    return CancellationResult(success=True, message=message, refund_amount=refund, status="completed")


# ============================================================
# Whole-match cancellation
# ============================================================

def cancel_entire_booking(db: Session, actor_id: int, booking_id: int, reason: str,
                          now: Optional[datetime] = None) -> CancellationResult:
    now = to_naive_utc(now) if now else utcnow()

    booking = crud.get_booking(db, booking_id)
    if not booking:
        return _fail(ErrorKind.NOT_FOUND, "Booking not found")
    team = crud.get_team(db, booking.team_id)
    if not team:
        return _fail(ErrorKind.NOT_FOUND, "Team not found")
    actor = crud.get_user(db, actor_id)
    if not actor:
        return _fail(ErrorKind.NOT_FOUND, "User not found")

    if team.owner_id != actor.id and not actor.is_admin:
        return _fail(ErrorKind.UNAUTHORIZED, "Only team owners or administrators can cancel entire bookings")
    if booking.status == BOOKING_CANCELED:
        return _fail(ErrorKind.POLICY_VIOLATION, "This match has already been canceled")

    refunded_total = 0
    refunded_players = 0

    try:
        with atomic(db):
            moved = (
                db.query(Booking)
                .filter(Booking.id == booking_id, Booking.status == BOOKING_ACTIVE)
                .update(
                    {Booking.status: BOOKING_CANCELED, Booking.cancel_reason: reason},
                    synchronize_session=False,
                )
            )
            if moved != 1:
                raise ServiceError(ErrorKind.POLICY_VIOLATION, "This match has already been canceled")

            open_pbs = (
                db.query(PlayerBooking.id, PlayerBooking.player_id, PlayerBooking.amount_paid)
                .filter(PlayerBooking.booking_id == booking_id, PlayerBooking.status != PB_CANCELED)
                .all()
            )
            for pb_id, player_id, paid in open_pbs:
                refund = paid or 0
                updated = (
                    db.query(PlayerBooking)
                    .filter(PlayerBooking.id == pb_id, PlayerBooking.status != PB_CANCELED)
                    .update(
                        {
                            PlayerBooking.status: PB_CANCELED,
                            PlayerBooking.cancellation_reason: f"Team owner canceled: {reason}",
                            PlayerBooking.refund_amount: refund,
                            PlayerBooking.canceled_at: now,
                            PlayerBooking.canceled_by: actor.id,
                        },
                        synchronize_session=False,
                    )
                )
                if updated != 1:
                    continue
                db.add(Cancellation(
                    player_id=player_id, booking_id=booking_id, canceled_by=actor.id,
                    refund_amount=refund, reason=f"Team owner canceled: {reason}", created_at=now,
                ))
                if refund > 0:
                    ledger.add_credits(
                        db, player_id, refund, TX_REFUND,
                        description=f"Refund for match cancellation by team owner: {reason}",
                        booking_id=booking_id,
                        commit=False,
                    )
                    refunded_total += refund
                refunded_players += 1
    except ServiceError as e:
        return _fail(e.kind, e.message)
    except Exception:
        logger.exception("[cancel] canceling booking %s failed", booking_id)
        return CancellationResult(success=False, message="An error occurred canceling the booking")

    db.expire_all()
    logger.info(
        "[cancel] booking %s canceled by user %s: %s players refunded %s credits",
        booking_id, actor.id, refunded_players, refunded_total,
    )
    notifications.send_match_canceled_notification(db, booking_id)

    return CancellationResult(
        success=True,
        message="Booking successfully canceled and all players refunded",
        refund_amount=refunded_total,
        status="completed",
    )
