# kickbook/app/routers/bookings.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from .. import crud
from ..db import get_db
from ..deps.current_user import current_user, ensure_team_manager, ensure_team_member
from ..errors import ErrorKind, ServiceError, http_status_for
from ..models import Booking, User, PB_CANCELED
from ..schemas import (
    BookingIn, BookingUpdate, BookingOut, PlayerBookingOut,
    CancelIn, CancelAllIn, CancellationResult,
)
from ..services import bookings as booking_service
from ..services import calendar, cancellation, team_selection, weather
from ..utils.logger import setup_logger

logger = setup_logger(__name__)

router = APIRouter(prefix="/bookings", tags=["bookings"])


# ============================================================
# Helpers
# ============================================================

def _booking_or_404(db: Session, booking_id: int) -> Booking:
    booking = crud.get_booking(db, booking_id)
    if not booking:
        raise HTTPException(404, "Booking not found")
    return booking


def _member_booking(db: Session, user: User, booking_id: int) -> Booking:
    booking = _booking_or_404(db, booking_id)
    ensure_team_member(user, booking.team)
    return booking


def _managed_booking(db: Session, user: User, booking_id: int) -> Booking:
    booking = _booking_or_404(db, booking_id)
    ensure_team_manager(user, booking.team)
    return booking


def _raise_for(result: CancellationResult) -> CancellationResult:
    if result.success:
        return result
    kind = ErrorKind(result.error_kind) if result.error_kind else None
    raise HTTPException(status_code=http_status_for(kind), detail=result.message)


# ============================================================
# Bookings CRUD
# ============================================================

@router.get("", response_model=list[BookingOut])
def list_bookings(user: User = Depends(current_user), db: Session = Depends(get_db)):
    if not user.team_id:
        raise HTTPException(400, "User not associated with a team")
    return crud.get_bookings_by_team(db, user.team_id)


@router.post("", response_model=BookingOut, status_code=201)
def create_booking(payload: BookingIn, user: User = Depends(current_user), db: Session = Depends(get_db)):
    if not user.team_id:
        raise HTTPException(400, "User not associated with a team")
    team = crud.get_team(db, user.team_id)
    if team.owner_id != user.id and not user.is_admin and not team.allow_player_booking_management:
        raise HTTPException(403, "Only the team owner can create bookings")

    try:
        booking_service.validate_booking_fields(
            payload.format, payload.start_time, payload.end_time, payload.total_slots
        )
    except ServiceError as e:
        raise e.to_http()

    booking = crud.create_booking(db, team.id, **payload.model_dump())
    logger.info("[bookings] team %s: created booking %s", team.id, booking.id)
    return booking


@router.get("/{booking_id}", response_model=BookingOut)
def get_booking(booking_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)):
    return _member_booking(db, user, booking_id)


@router.put("/{booking_id}", response_model=BookingOut)
def update_booking(booking_id: int, payload: BookingUpdate, user: User = Depends(current_user),
                   db: Session = Depends(get_db)):
    booking = _managed_booking(db, user, booking_id)
    # an explicit null leaves the field unchanged
    fields = payload.model_dump(exclude_unset=True, exclude_none=True)

    try:
        booking_service.validate_booking_fields(
            fields.get("format", booking.format),
            fields.get("start_time", booking.start_time),
            fields.get("end_time", booking.end_time),
            booking.total_slots,
        )
    except ServiceError as e:
        raise e.to_http()
    return crud.update_booking(db, booking.id, **fields)


@router.delete("/{booking_id}")
def delete_booking(booking_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)):
    booking = _managed_booking(db, user, booking_id)
    active = [pb for pb in booking.player_bookings if pb.status != PB_CANCELED]
    if active:
        raise HTTPException(400, "Booking has registered players; cancel it instead so they are refunded")
    crud.delete_booking(db, booking.id)
    return {"message": "Booking deleted successfully"}


# ============================================================
# Players
# ============================================================

@router.get("/{booking_id}/players", response_model=list[PlayerBookingOut])
def booking_players(booking_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)):
    _member_booking(db, user, booking_id)
    return crud.get_player_bookings_by_booking(db, booking_id)


@router.post("/{booking_id}/players", response_model=PlayerBookingOut, status_code=201)
def join_booking(booking_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)):
    try:
        return booking_service.join_booking(db, user, booking_id)
    except ServiceError as e:
        raise e.to_http()


@router.delete("/{booking_id}/players/{player_id}")
def remove_player(booking_id: int, player_id: int, user: User = Depends(current_user),
                  db: Session = Depends(get_db)):
    """Owner/admin removal. Players leaving on their own go through /cancel."""
    _managed_booking(db, user, booking_id)
    pb = crud.get_player_booking(db, booking_id, player_id)
    if not pb:
        raise HTTPException(404, "Player booking not found")
    crud.remove_player_from_booking(db, pb)
    logger.info("[bookings] user %s removed player %s from booking %s", user.id, player_id, booking_id)
    return {"message": "Player removed from booking successfully"}


# ============================================================
# Cancellation
# ============================================================

@router.get("/{booking_id}/cancel/check", response_model=CancellationResult)
def check_cancellation(booking_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)):
    return _raise_for(cancellation.can_cancel(db, user.id, booking_id))


@router.post("/{booking_id}/cancel", response_model=CancellationResult)
def cancel_my_booking(booking_id: int, payload: CancelIn | None = None,
                      user: User = Depends(current_user), db: Session = Depends(get_db)):
    reason = payload.reason if payload else None
    return _raise_for(cancellation.process_cancellation(db, user.id, booking_id, reason=reason))


@router.post("/{booking_id}/cancel-all", response_model=CancellationResult)
def cancel_whole_booking(booking_id: int, payload: CancelAllIn, user: User = Depends(current_user),
                         db: Session = Depends(get_db)):
    return _raise_for(cancellation.cancel_entire_booking(db, user.id, booking_id, payload.reason))


# ============================================================
# Extras: weather, team sheet, calendar file
# ============================================================

@router.get("/{booking_id}/weather")
def booking_weather(booking_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)):
    _member_booking(db, user, booking_id)
    return weather.get_weather_for_booking(db, booking_id)


@router.post("/{booking_id}/teams")
def generate_teams(booking_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)):
    _managed_booking(db, user, booking_id)
    try:
        return team_selection.generate_balanced_teams(db, booking_id)
    except ServiceError as e:
        raise e.to_http()


@router.get("/{booking_id}/ical")
def booking_ical(booking_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)):
    booking = _member_booking(db, user, booking_id)
    body = calendar.generate_ical_event(booking, booking.team)
    return Response(
        content=body,
        media_type="text/calendar",
        headers={"Content-Disposition": f'attachment; filename="booking-{booking.id}.ics"'},
    )
