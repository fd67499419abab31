# kickbook/app/services/calendar.py
"""
Calendar integrations: Google Calendar over its REST API (OAuth2 code flow)
and plain iCalendar export for everything else.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import urlencode

import requests
from sqlalchemy.orm import Session

from .. import crud
from ..errors import ErrorKind, ServiceError, ExternalServiceError
from ..models import Booking, CalendarIntegration, Team, BOOKING_ACTIVE, BOOKING_CANCELED
from ..settings import settings
from ..util import utcnow
from ..utils.logger import setup_logger

logger = setup_logger(__name__)

GOOGLE = "google"

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_EVENTS_URL = "https://www.googleapis.com/calendar/v3/calendars/primary/events"
GOOGLE_SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
]
TIMEOUT = 10

PRODID = "-//KickBook//Football Team Manager//EN"
ORGANIZER_EMAIL = "noreply@kickbook.app"


def _require_google():
    if not settings.GOOGLE_CLIENT_ID or not settings.GOOGLE_CLIENT_SECRET:
        raise ExternalServiceError("Google Calendar is not configured on server")


# ============================================================
# Google OAuth
# ============================================================

def get_google_auth_url(state: Optional[str] = None) -> str:
    _require_google()
    params = {
        "client_id": settings.GOOGLE_CLIENT_ID,
        "redirect_uri": settings.GOOGLE_REDIRECT_URI,
        "response_type": "code",
        "scope": " ".join(GOOGLE_SCOPES),
        "access_type": "offline",
        "prompt": "consent",  # always hand back a refresh token
    }
    if state:
        params["state"] = state
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


def _token_request(data: dict) -> dict:
    try:
        r = requests.post(GOOGLE_TOKEN_URL, data=data, timeout=TIMEOUT)
    except requests.RequestException as e:
        raise ExternalServiceError(f"Google token request failed: {e}") from e
    if r.status_code != 200:
        logger.warning("[calendar] token endpoint %s: %s", r.status_code, r.text[:300])
        raise ExternalServiceError("Failed to get authorization tokens from Google")
    return r.json()


def exchange_google_code(code: str) -> dict:
    """code -> {access_token, refresh_token, expires_at}"""
    _require_google()
    payload = _token_request({
        "code": code,
        "client_id": settings.GOOGLE_CLIENT_ID,
        "client_secret": settings.GOOGLE_CLIENT_SECRET,
        "redirect_uri": settings.GOOGLE_REDIRECT_URI,
        "grant_type": "authorization_code",
    })
    return {
        "access_token": payload["access_token"],
        "refresh_token": payload.get("refresh_token"),
        "expires_at": utcnow() + timedelta(seconds=int(payload.get("expires_in", 3600))),
    }


def connect_google(db: Session, user_id: int, code: str) -> CalendarIntegration:
    tokens = exchange_google_code(code)
    ci = crud.upsert_calendar_integration(
        db, user_id, GOOGLE,
        access_token=tokens["access_token"],
        refresh_token=tokens["refresh_token"],
        token_expiry=tokens["expires_at"],
    )
    logger.info("[calendar] google connected for user %s", user_id)
    return ci


def _ensure_fresh_token(db: Session, ci: CalendarIntegration) -> str:
    if ci.token_expiry and ci.token_expiry > utcnow() + timedelta(minutes=1):
        return ci.access_token
    if not ci.refresh_token:
        raise ExternalServiceError("Google authorization expired, please reconnect your calendar")

    _require_google()
    payload = _token_request({
        "refresh_token": ci.refresh_token,
        "client_id": settings.GOOGLE_CLIENT_ID,
        "client_secret": settings.GOOGLE_CLIENT_SECRET,
        "grant_type": "refresh_token",
    })
    ci.access_token = payload["access_token"]
    ci.token_expiry = utcnow() + timedelta(seconds=int(payload.get("expires_in", 3600)))
    db.commit()
    return ci.access_token


# ============================================================
# Google events
# ============================================================

def _rfc3339(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def booking_event_body(booking: Booking, team: Team) -> dict:
    return {
        "id": f"kickbook{booking.id}",  # base32hex-safe, keeps re-syncs idempotent
        "summary": booking.title,
        "description": f"{booking.format} match for team {team.name}",
        "location": booking.location,
        "start": {"dateTime": _rfc3339(booking.start_time), "timeZone": "UTC"},
        "end": {"dateTime": _rfc3339(booking.end_time), "timeZone": "UTC"},
        "source": {"title": "KickBook", "url": f"{settings.APP_URL}/bookings?id={booking.id}"},
    }


def create_google_event(access_token: str, booking: Booking, team: Team) -> str:
    headers = {"Authorization": f"Bearer {access_token}"}
    body = booking_event_body(booking, team)
    try:
        r = requests.post(GOOGLE_EVENTS_URL, json=body, headers=headers, timeout=TIMEOUT)
        if r.status_code == 409:
            # already synced: update in place
            r = requests.put(f"{GOOGLE_EVENTS_URL}/{body['id']}", json=body, headers=headers, timeout=TIMEOUT)
    except requests.RequestException as e:
        raise ExternalServiceError(f"Google Calendar request failed: {e}") from e
    if r.status_code not in (200, 201):
        logger.warning("[calendar] event for booking %s -> %s: %s", booking.id, r.status_code, r.text[:300])
        raise ExternalServiceError("Failed to create Google Calendar event")
    return r.json().get("id", body["id"])


def sync_user_calendar(db: Session, user_id: int, provider: str = GOOGLE,
                       now: Optional[datetime] = None) -> int:
    """
    Push the user's team's future active bookings to their calendar.
    Returns the number of events synced.
    """
    now = now or utcnow()
    user = crud.get_user(db, user_id)
    if not user:
        raise ServiceError(ErrorKind.NOT_FOUND, f"User with ID {user_id} not found")
    if provider != GOOGLE:
        raise ServiceError(ErrorKind.POLICY_VIOLATION, f"Unsupported calendar provider: {provider}")

    ci = crud.get_calendar_integration(db, user_id, provider)
    if not ci:
        raise ServiceError(ErrorKind.NOT_FOUND, f"No {provider} calendar integration found")
    if not user.team_id:
        raise ServiceError(ErrorKind.POLICY_VIOLATION, "You are not a member of a team")
    team = crud.get_team(db, user.team_id)
    if not team:
        raise ServiceError(ErrorKind.NOT_FOUND, f"Team with ID {user.team_id} not found")

    token = _ensure_fresh_token(db, ci)
    future = [
        b for b in crud.get_bookings_by_team(db, team.id)
        if b.start_time > now and b.status == BOOKING_ACTIVE
    ]

    synced = 0
    for booking in future:
        create_google_event(token, booking, team)
        synced += 1

    ci.last_synced_at = utcnow()
    db.commit()
    logger.info("[calendar] synced %s bookings to %s for user %s", synced, provider, user_id)
    return synced


# ============================================================
# iCalendar
# ============================================================

def _ics_escape(text: str) -> str:
    return (
        (text or "")
        .replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
    )


def _ics_fold(line: str) -> str:
    # content lines are limited to 75 octets; continuation lines start with a space
    raw = line.encode("utf-8")
    if len(raw) <= 75:
        return line
    parts, chunk = [], b""
    for ch in line:
        b = ch.encode("utf-8")
        limit = 75 if not parts else 74
        if len(chunk) + len(b) > limit:
            parts.append(chunk.decode("utf-8"))
            chunk = b""
        chunk += b
    parts.append(chunk.decode("utf-8"))
    return "\r\n ".join(parts)


def _ics_dt(dt: datetime) -> str:
    return dt.strftime("%Y%m%dT%H%M%SZ")


def generate_ical_event(booking: Booking, team: Team) -> str:
    status = "CANCELLED" if booking.status == BOOKING_CANCELED else "CONFIRMED"
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
        "X-WR-CALNAME:Football Team Manager",
        "BEGIN:VEVENT",
        f"UID:booking-{booking.id}@kickbook",
        f"DTSTAMP:{_ics_dt(utcnow())}",
        f"DTSTART:{_ics_dt(booking.start_time)}",
        f"DTEND:{_ics_dt(booking.end_time)}",
        f"SUMMARY:{_ics_escape(booking.title)}",
        f"DESCRIPTION:{_ics_escape(f'{booking.format} match for team {team.name}')}",
        f"LOCATION:{_ics_escape(booking.location)}",
        f"URL:{settings.APP_URL}/bookings?id={booking.id}",
        f"STATUS:{status}",
        f"ORGANIZER;CN=Football Team Manager:mailto:{ORGANIZER_EMAIL}",
        "END:VEVENT",
        "END:VCALENDAR",
    ]
    return "\r\n".join(_ics_fold(l) for l in lines) + "\r\n"
