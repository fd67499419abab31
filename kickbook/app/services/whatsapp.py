# kickbook/app/services/whatsapp.py
"""
WhatsApp Cloud API messages.

All senders return True/False and never raise. Without WHATSAPP_API_KEY the
message is logged and skipped.
"""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

import requests
from sqlalchemy.orm import Session

from .. import crud
from ..models import Booking, Team, User
from ..settings import settings
from ..utils.logger import setup_logger

logger = setup_logger(__name__)

TIMEOUT = 10


def is_configured() -> bool:
    return bool(settings.WHATSAPP_API_KEY and settings.WHATSAPP_PHONE_NUMBER_ID)


def _normalize_phone(phone: str) -> str:
    # Cloud API wants digits only, country code first
    return "".join(ch for ch in phone if ch.isdigit())


def _post(payload: dict) -> bool:
    to = payload.get("to")
    if not is_configured():
        logger.info("[whatsapp] not configured, skipping %s message to %s", payload.get("type"), to)
        return False

    url = f"{settings.WHATSAPP_BASE_URL}/{settings.WHATSAPP_PHONE_NUMBER_ID}/messages"
    headers = {
        "Authorization": f"Bearer {settings.WHATSAPP_API_KEY}",
        "Content-Type": "application/json",
    }
    try:
        r = requests.post(url, json=payload, headers=headers, timeout=TIMEOUT)
        if r.status_code not in (200, 201):
            logger.warning("[whatsapp] send to %s failed: %s %s", to, r.status_code, r.text[:300])
            return False
        return True
    except requests.RequestException as e:
        logger.warning("[whatsapp] exception sending to %s: %s", to, e)
        return False


def send_text_message(to: str, text: str) -> bool:
    if not to:
        return False
    return _post({
        "messaging_product": "whatsapp",
        "to": _normalize_phone(to),
        "type": "text",
        "text": {"preview_url": False, "body": text},
    })


def send_template_message(to: str, name: str, params: Iterable[str], language: str = "en") -> bool:
    if not to:
        return False
    return _post({
        "messaging_product": "whatsapp",
        "to": _normalize_phone(to),
        "type": "template",
        "template": {
            "name": name,
            "language": {"code": language},
            "components": [
                {"type": "body", "parameters": [{"type": "text", "text": str(p)} for p in params]},
            ],
        },
    })


def _owner_phone(db: Session, team: Team) -> Optional[str]:
    owner = crud.get_user(db, team.owner_id)
    if not owner:
        logger.warning("[whatsapp] owner %s of team %s not found", team.owner_id, team.id)
        return None
    if not owner.phone:
        logger.info("[whatsapp] owner of team %s has no phone number", team.id)
        return None
    return owner.phone


def _date(dt: datetime) -> str:
    return dt.strftime("%d/%m/%Y")


def _time(dt: datetime) -> str:
    return dt.strftime("%H:%M")


def notify_team_about_booking(db: Session, booking: Booking, player: User, team: Team) -> bool:
    """Tell the team owner a player signed up."""
    phone = _owner_phone(db, team)
    if not phone:
        return False
    return send_template_message(
        phone,
        "booking_notification",
        [
            player.name,
            booking.title,
            _date(booking.start_time),
            f"{_time(booking.start_time)} - {_time(booking.end_time)}",
            booking.format,
            team.name,
        ],
    )


def send_team_selection(db: Session, booking: Booking, team: Team,
                        team_a: list[User], team_b: list[User]) -> bool:
    phone = _owner_phone(db, team)
    if not phone:
        return False
    text = (
        f"🏆 TEAM SELECTION: {booking.title} - {_date(booking.start_time)} "
        f"{_time(booking.start_time)} ({booking.format})\n\n"
        f"Team A: {', '.join(p.name for p in team_a)}\n\n"
        f"Team B: {', '.join(p.name for p in team_b)}\n\n"
        f"Location: {booking.location}"
    )
    return send_text_message(phone, text)


def send_team_message(db: Session, team: Team, text: str) -> int:
    """Broadcast a text to every member with a phone number. Returns the number delivered."""
    delivered = 0
    for member in crud.get_team_members(db, team.id):
        if member.phone and send_text_message(member.phone, f"[{team.name}] {text}"):
            delivered += 1
    logger.info("[whatsapp] team %s broadcast delivered to %s members", team.id, delivered)
    return delivered
