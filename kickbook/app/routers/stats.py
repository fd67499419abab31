# kickbook/app/routers/stats.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .. import crud
from ..db import get_db
from ..deps.current_user import current_user, ensure_team_manager, ensure_team_member
from ..models import User
from ..schemas import MatchStatsIn, MatchStatsOut, PlayerStatsIn, PlayerStatsOut, AchievementOut
from ..services import achievements

router = APIRouter(tags=["stats"])


def _booking(db: Session, booking_id: int):
    booking = crud.get_booking(db, booking_id)
    if not booking:
        raise HTTPException(404, "Booking not found")
    return booking


def _player(db: Session, player_id: int) -> User:
    player = crud.get_user(db, player_id)
    if not player:
        raise HTTPException(404, "Player not found")
    return player


def _can_view_player(user: User, player: User) -> bool:
    return user.id == player.id or user.is_admin or (user.team_id is not None and user.team_id == player.team_id)


# ---- Match stats ----

@router.get("/bookings/{booking_id}/stats")
def get_match_stats(booking_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)):
    booking = _booking(db, booking_id)
    ensure_team_member(user, booking.team)
    ms = crud.get_match_stats_by_booking(db, booking_id)
    if not ms:
        return {"booking_id": booking_id}
    return MatchStatsOut.model_validate(ms)


@router.post("/bookings/{booking_id}/stats", response_model=MatchStatsOut, status_code=201)
def create_match_stats(booking_id: int, payload: MatchStatsIn, user: User = Depends(current_user),
                       db: Session = Depends(get_db)):
    booking = _booking(db, booking_id)
    ensure_team_manager(user, booking.team)
    if crud.get_match_stats_by_booking(db, booking_id):
        raise HTTPException(400, "Stats already exist for this booking")

    ms = crud.create_match_stats(db, booking_id, payload.team_score, payload.opponent_score)
    # a result can unlock Winner / Clean Sheet for players already on the sheet
    achievements.evaluate_booking_players(db, booking_id)
    return ms


@router.put("/bookings/{booking_id}/stats", response_model=MatchStatsOut)
def update_match_stats(booking_id: int, payload: MatchStatsIn, user: User = Depends(current_user),
                       db: Session = Depends(get_db)):
    booking = _booking(db, booking_id)
    ensure_team_manager(user, booking.team)
    ms = crud.get_match_stats_by_booking(db, booking_id)
    if not ms:
        raise HTTPException(404, "Stats not found for this booking")

    ms = crud.update_match_stats(db, ms, **payload.model_dump())
    achievements.evaluate_booking_players(db, booking_id)
    return ms


# ---- Player stats ----

@router.get("/bookings/{booking_id}/players/{player_id}/stats")
def get_player_match_stats(booking_id: int, player_id: int, user: User = Depends(current_user),
                           db: Session = Depends(get_db)):
    booking = _booking(db, booking_id)
    ensure_team_member(user, booking.team)
    ps = crud.get_player_stats_row(db, booking_id, player_id)
    if not ps:
        return {"player_id": player_id, "booking_id": booking_id}
    return PlayerStatsOut.model_validate(ps)


@router.post("/bookings/{booking_id}/player-stats", response_model=PlayerStatsOut, status_code=201)
def record_player_stats(booking_id: int, payload: PlayerStatsIn, user: User = Depends(current_user),
                        db: Session = Depends(get_db)):
    """Create or update one player's line for a match, then re-check achievements."""
    booking = _booking(db, booking_id)
    ensure_team_manager(user, booking.team)
    player = _player(db, payload.player_id)
    if player.team_id != booking.team_id:
        raise HTTPException(404, "Player not found in team")

    fields = payload.model_dump(exclude={"player_id"})
    ps = crud.get_player_stats_row(db, booking_id, player.id)
    if ps:
        ps = crud.update_player_stats(db, ps, **fields)
    else:
        ps = crud.create_player_stats(db, booking_id, player.id, **fields)

    achievements.evaluate_player_achievements(db, player.id)
    return ps


# ---- Player summaries ----

@router.get("/players/{player_id}/stats")
def player_summary(player_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)):
    player = _player(db, player_id)
    if not _can_view_player(user, player):
        raise HTTPException(403, "Not authorized to view stats for this player")

    rows = crud.get_player_stats_by_player(db, player_id)
    summary = {
        "total_goals": sum(r.goals or 0 for r in rows),
        "total_assists": sum(r.assists or 0 for r in rows),
        "total_yellow_cards": sum(r.yellow_cards or 0 for r in rows),
        "total_red_cards": sum(r.red_cards or 0 for r in rows),
        "total_matches": len(rows),
        "matches_with_goals": sum(1 for r in rows if (r.goals or 0) > 0),
        "matches_with_assists": sum(1 for r in rows if (r.assists or 0) > 0),
        "matches_with_cards": sum(1 for r in rows if (r.yellow_cards or 0) > 0 or (r.red_cards or 0) > 0),
    }
    return {
        "player": {"id": player.id, "name": player.name, "email": player.email, "role": player.role},
        "summary": summary,
        "stats": [PlayerStatsOut.model_validate(r) for r in rows],
    }


@router.get("/achievements", response_model=list[AchievementOut])
def list_achievements(user: User = Depends(current_user), db: Session = Depends(get_db)):
    return crud.get_achievements(db)


@router.get("/players/{player_id}/achievements")
def player_achievements(player_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)):
    player = _player(db, player_id)
    if not _can_view_player(user, player):
        raise HTTPException(403, "Not authorized to view achievements for this player")
    return [
        {
            "achievement": AchievementOut.model_validate(pa.achievement),
            "earned_at": pa.earned_at,
        }
        for pa in crud.get_player_achievements(db, player_id)
    ]
