# kickbook/app/services/notifications.py
"""
In-app notifications.

Every sender here is best-effort: failures are logged and swallowed so that
a notification problem never undoes the write that triggered it.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from .. import crud
from ..models import (
    Booking, Notification, PlayerBooking, User,
    PB_CONFIRMED, PB_CANCELED,
)
from ..util import utcnow
from ..utils.logger import setup_logger

logger = setup_logger(__name__)

MATCH_REMINDER = "match_reminder"
BOOKING_CONFIRMATION = "booking_confirmation"
CANCELLATION = "cancellation"
TEAM_UPDATE = "team_update"
CREDIT_PURCHASE = "credit_purchase"
CREDIT_REFUND = "credit_refund"
WEATHER_ALERT = "weather_alert"
ACHIEVEMENT = "achievement"

NOTIFICATION_TYPES = (
    MATCH_REMINDER,
    BOOKING_CONFIRMATION,
    CANCELLATION,
    TEAM_UPDATE,
    CREDIT_PURCHASE,
    CREDIT_REFUND,
    WEATHER_ALERT,
    ACHIEVEMENT,
)


def _fmt_date(dt: datetime) -> str:
    # e.g. "Saturday, 14 June 2025"
    return f"{dt.strftime('%A')}, {dt.day} {dt.strftime('%B %Y')}"


def _fmt_time(dt: datetime) -> str:
    return dt.strftime("%H:%M")


def is_enabled(user: User, ntype: str) -> bool:
    prefs = user.notification_settings or {}
    return prefs.get(f"{ntype}_enabled") is not False


def send_notification(db: Session, user_id: int, title: str, message: str, ntype: str,
                      booking_id: Optional[int] = None) -> Optional[Notification]:
    """
    Store a notification unless the user has switched that type off.
    Returns the row, or None when skipped or failed.
    """
    try:
        user = crud.get_user(db, user_id)
        if not user:
            logger.warning("[notify] user %s not found, dropping %s", user_id, ntype)
            return None
        if not is_enabled(user, ntype):
            logger.debug("[notify] %s disabled for user %s", ntype, user_id)
            return None
        return crud.create_notification(db, user_id, title, message, ntype, booking_id=booking_id)
    except Exception:
        logger.exception("[notify] failed to send %s to user %s", ntype, user_id)
        db.rollback()
        return None


# ---- typed senders ----

def send_booking_confirmation(db: Session, user_id: int, booking: Booking):
    return send_notification(
        db, user_id,
        "Booking Confirmed",
        f"Your booking for {booking.title} on {_fmt_date(booking.start_time)} has been confirmed.",
        BOOKING_CONFIRMATION,
        booking.id,
    )


def send_match_reminder(db: Session, user_id: int, booking: Booking):
    return send_notification(
        db, user_id,
        "Upcoming Match Reminder",
        f"You have a match tomorrow: {booking.title} at {booking.location}, "
        f"starting at {_fmt_time(booking.start_time)}.",
        MATCH_REMINDER,
        booking.id,
    )


def send_cancellation_notification(db: Session, user_id: int, booking: Booking, refund_amount: int):
    if refund_amount > 0:
        tail = f"{refund_amount} credits have been refunded to your account."
    else:
        tail = "No refund was issued."
    return send_notification(
        db, user_id,
        "Booking Cancelled",
        f"Your booking for {booking.title} has been cancelled. {tail}",
        CANCELLATION,
        booking.id,
    )


def send_weather_alert(db: Session, user_id: int, booking: Booking, description: str):
    return send_notification(
        db, user_id,
        "Weather Alert",
        f"Weather alert for your booking {booking.title}: {description}. "
        "Please check the forecast and plan accordingly.",
        WEATHER_ALERT,
        booking.id,
    )


def send_credit_purchase_confirmation(db: Session, user_id: int, amount: int):
    return send_notification(
        db, user_id,
        "Credits Purchased",
        f"Your purchase of {amount} credits has been confirmed.",
        CREDIT_PURCHASE,
    )


def send_achievement_unlocked(db: Session, user_id: int, title: str, description: str):
    return send_notification(
        db, user_id,
        "Achievement Unlocked",
        f"You earned \"{title}\": {description}",
        ACHIEVEMENT,
    )


def send_team_update(db: Session, team_id: int, title: str, message: str) -> int:
    sent = 0
    for member in crud.get_team_members(db, team_id):
        if send_notification(db, member.id, title, message, TEAM_UPDATE):
            sent += 1
    return sent


# ---- fan-out ----

def send_match_canceled_notification(db: Session, booking_id: int) -> int:
    """
    Tell every registrant the match is off. Players who had already
    withdrawn themselves are left alone.
    """
    booking = crud.get_booking(db, booking_id)
    if not booking:
        return 0

    sent = 0
    for pb in crud.get_player_bookings_by_booking(db, booking_id):
        if pb.status != PB_CANCELED or pb.canceled_by == pb.player_id:
            continue
        if send_cancellation_notification(db, pb.player_id, booking, pb.refund_amount or 0):
            sent += 1
    logger.info("[notify] match %s canceled, %s players notified", booking_id, sent)
    return sent


def _already_reminded(db: Session, user_id: int, booking_id: int) -> bool:
    return (
        db.query(Notification.id)
        .filter(
            Notification.user_id == user_id,
            Notification.booking_id == booking_id,
            Notification.type == MATCH_REMINDER,
        )
        .first()
        is not None
    )


def send_match_reminders_batch(db: Session, now: Optional[datetime] = None) -> dict:
    """
    Remind confirmed players of every active booking that starts tomorrow
    (UTC calendar day). Safe to run hourly: a player is reminded once per booking.
    """
    now = now or utcnow()
    day_start = datetime(now.year, now.month, now.day) + timedelta(days=1)
    day_end = day_start + timedelta(days=1)

    try:
        bookings = crud.get_bookings_between(db, day_start, day_end, active_only=True)
        reminded = 0
        for booking in bookings:
            pbs = (
                db.query(PlayerBooking)
                .filter(PlayerBooking.booking_id == booking.id, PlayerBooking.status == PB_CONFIRMED)
                .all()
            )
            for pb in pbs:
                if _already_reminded(db, pb.player_id, booking.id):
                    continue
                if send_match_reminder(db, pb.player_id, booking):
                    reminded += 1
        logger.info("[notify] reminders: %s bookings tomorrow, %s players reminded", len(bookings), reminded)
        return {"sent": len(bookings), "reminded": reminded}
    except Exception:
        logger.exception("[notify] match reminder batch failed")
        db.rollback()
        return {"error": "Failed to send reminders"}
