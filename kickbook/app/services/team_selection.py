# kickbook/app/services/team_selection.py
from __future__ import annotations

from sqlalchemy.orm import Session

from .. import crud
from ..errors import ErrorKind, ServiceError
from ..models import User, PB_CONFIRMED
from ..utils.logger import setup_logger
from . import whatsapp

logger = setup_logger(__name__)


def players_per_side(match_format: str) -> int:
    if "11" in match_format:
        return 11
    if "7" in match_format:
        return 7
    return 5


def skill_score(db: Session, player_id: int) -> int:
    """Career goals + assists."""
    return sum(
        (s.goals or 0) + (s.assists or 0)
        for s in crud.get_player_stats_by_player(db, player_id)
    )


def snake_draft(ranked: list, per_side: int) -> tuple[list, list]:
    """
    Best player to A, next two to B, next two to A, ...
    Only the top `per_side * 2` players are picked.
    """
    team_a, team_b = [], []
    for i, player in enumerate(ranked[: per_side * 2]):
        if i % 4 in (0, 3):
            team_a.append(player)
        else:
            team_b.append(player)
    return team_a, team_b


def generate_balanced_teams(db: Session, booking_id: int) -> dict:
    booking = crud.get_booking(db, booking_id)
    if not booking:
        raise ServiceError(ErrorKind.NOT_FOUND, f"Booking with ID {booking_id} not found")
    team = crud.get_team(db, booking.team_id)
    if not team:
        raise ServiceError(ErrorKind.NOT_FOUND, f"Team with ID {booking.team_id} not found")

    players: list[User] = [
        pb.player for pb in crud.get_player_bookings_by_booking(db, booking_id)
        if pb.status == PB_CONFIRMED and pb.player is not None
    ]
    if not players:
        raise ServiceError(ErrorKind.POLICY_VIOLATION, "No players registered for this booking")

    scores = {p.id: skill_score(db, p.id) for p in players}
    # stable sort: equal scores keep registration order
    ranked = sorted(players, key=lambda p: scores[p.id], reverse=True)

    per_side = players_per_side(booking.format)
    if len(ranked) < per_side * 2:
        per_side = len(ranked) // 2

    team_a, team_b = snake_draft(ranked, per_side)
    logger.info(
        "[teams] booking %s: %s players -> %s v %s", booking_id, len(players), len(team_a), len(team_b)
    )

    try:
        whatsapp.send_team_selection(db, booking, team, team_a, team_b)
    except Exception:
        logger.exception("[teams] team sheet message failed for booking %s", booking_id)

    return {
        "team_a": [{"id": p.id, "name": p.name, "score": scores[p.id]} for p in team_a],
        "team_b": [{"id": p.id, "name": p.name, "score": scores[p.id]} for p in team_b],
    }
