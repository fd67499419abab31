# kickbook/app/services/bookings.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import crud
from ..db import atomic
from ..errors import ErrorKind, ServiceError
from ..models import (
    Booking, PlayerBooking, User,
    BOOKING_ACTIVE, MATCH_FORMATS, PLAYER_LIMITS, PB_CANCELED, PB_CONFIRMED,
)
from ..util import utcnow, to_naive_utc
from ..utils.logger import setup_logger
from . import credits as ledger
from . import notifications, whatsapp

logger = setup_logger(__name__)


def validate_booking_fields(fmt: str, start_time: datetime, end_time: datetime, total_slots: int) -> None:
    if fmt not in MATCH_FORMATS:
        raise ServiceError(ErrorKind.POLICY_VIOLATION, f"Unknown format {fmt!r}, expected one of {', '.join(MATCH_FORMATS)}")
    if to_naive_utc(end_time) <= to_naive_utc(start_time):
        raise ServiceError(ErrorKind.POLICY_VIOLATION, "End time must be after start time")
    limit = PLAYER_LIMITS[fmt]
    if total_slots > limit:
        raise ServiceError(ErrorKind.POLICY_VIOLATION, f"A {fmt} booking takes at most {limit} players")


def join_booking(db: Session, player: User, booking_id: int,
                 now: Optional[datetime] = None) -> PlayerBooking:
    """
    Register `player` for a booking: take a slot and pay its credit cost to
    the team owner, in one transaction. A player who canceled earlier may
    rejoin; their registration row is reactivated and charged again.
    """
    now = to_naive_utc(now) if now else utcnow()

    booking = crud.get_booking(db, booking_id)
    if not booking:
        raise ServiceError(ErrorKind.NOT_FOUND, "Booking not found")
    if player.team_id != booking.team_id:
        raise ServiceError(ErrorKind.UNAUTHORIZED, "Not authorized to join this booking")
    if booking.status != BOOKING_ACTIVE:
        raise ServiceError(ErrorKind.POLICY_VIOLATION, "This match has been canceled")
    if booking.start_time <= now:
        raise ServiceError(ErrorKind.POLICY_VIOLATION, "This match has already started")

    existing = crud.get_player_booking(db, booking_id, player.id)
    if existing and existing.status != PB_CANCELED:
        raise ServiceError(ErrorKind.POLICY_VIOLATION, "Player already joined this booking")

    cost = booking.credit_cost or 0

    try:
        with atomic(db):
            if existing:
                # another request may have reactivated this row since it was read
                reactivated = (
                    db.query(PlayerBooking)
                    .filter(PlayerBooking.id == existing.id, PlayerBooking.status == PB_CANCELED)
                    .update(
                        {
                            PlayerBooking.status: PB_CONFIRMED,
                            PlayerBooking.amount_paid: cost,
                            PlayerBooking.cancellation_reason: None,
                            PlayerBooking.refund_amount: None,
                            PlayerBooking.canceled_at: None,
                            PlayerBooking.canceled_by: None,
                        },
                        synchronize_session=False,
                    )
                )
                if reactivated != 1:
                    raise ServiceError(ErrorKind.POLICY_VIOLATION, "Player already joined this booking")
                pb_id = existing.id
            else:
                pb = PlayerBooking(
                    player_id=player.id, booking_id=booking_id, status=PB_CONFIRMED,
                    amount_paid=cost, created_at=now,
                )
                db.add(pb)
                db.flush()
                pb_id = pb.id

            took_slot = (
                db.query(Booking)
                .filter(Booking.id == booking_id, Booking.available_slots > 0)
                .update({Booking.available_slots: Booking.available_slots - 1}, synchronize_session=False)
            )
            if took_slot != 1:
                raise ServiceError(ErrorKind.POLICY_VIOLATION, "No available slots for this booking")

            if cost > 0:
                paid = ledger.use_credits(
                    db, player.id, cost, booking_id,
                    description=f"Booking payment: {booking.title}",
                    commit=False,
                )
                if not paid:
                    raise ServiceError(
                        ErrorKind.INSUFFICIENT_BALANCE,
                        f"Insufficient credits: this match costs {cost} credits",
                    )
    except IntegrityError:
        # uq_player_booking: a concurrent first join won
        raise ServiceError(ErrorKind.POLICY_VIOLATION, "Player already joined this booking")

    db.expire_all()
    pb = db.get(PlayerBooking, pb_id)
    booking = crud.get_booking(db, booking_id)
    logger.info("[bookings] player %s joined booking %s (paid %s)", player.id, booking_id, cost)

    notifications.send_booking_confirmation(db, player.id, booking)
    team = crud.get_team(db, booking.team_id)
    try:
        whatsapp.notify_team_about_booking(db, booking, player, team)
    except Exception:
        logger.exception("[bookings] owner WhatsApp notice failed for booking %s", booking_id)
    return pb
