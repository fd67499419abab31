# kickbook/app/services/achievements.py
from __future__ import annotations

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import crud
from ..models import Achievement, MatchStats, PlayerAchievement, PlayerStats
from ..seed import (
    FIRST_GOAL, GOAL_MACHINE, HAT_TRICK_HERO, PLAYMAKER, TEAM_PLAYER, WINNER, CLEAN_SHEET,
)
from ..utils.logger import setup_logger
from . import notifications

logger = setup_logger(__name__)


def earned_titles(stats: list[PlayerStats], matches: list[MatchStats]) -> set[str]:
    """Titles a player qualifies for given their full stats history."""
    if not stats:
        return set()

    total_goals = sum(s.goals or 0 for s in stats)
    total_assists = sum(s.assists or 0 for s in stats)

    titles = set()
    if total_goals > 0:
        titles.add(FIRST_GOAL)
    if total_goals >= 10:
        titles.add(GOAL_MACHINE)
    if any((s.goals or 0) >= 3 for s in stats):
        titles.add(HAT_TRICK_HERO)
    if total_assists >= 5:
        titles.add(PLAYMAKER)
    if len(stats) >= 10:
        titles.add(TEAM_PLAYER)
    if any(m.is_win for m in matches):
        titles.add(WINNER)
    if any((m.opponent_score or 0) == 0 for m in matches):
        titles.add(CLEAN_SHEET)
    return titles


def _award(db: Session, player_id: int, achievement: Achievement) -> bool:
    already = (
        db.query(PlayerAchievement.id)
        .filter_by(player_id=player_id, achievement_id=achievement.id)
        .first()
    )
    if already:
        return False
    db.add(PlayerAchievement(player_id=player_id, achievement_id=achievement.id))
    try:
        db.commit()
    except IntegrityError:
        # lost a race with a concurrent evaluation
        db.rollback()
        return False
    return True


def evaluate_player_achievements(db: Session, player_id: int) -> list[str]:
    """
    Recompute achievements from the player's stats and award the missing ones.
    Returns the newly unlocked titles. Never raises.
    """
    try:
        stats = crud.get_player_stats_by_player(db, player_id)
        booking_ids = [s.booking_id for s in stats]
        matches = []
        if booking_ids:
            matches = db.query(MatchStats).filter(MatchStats.booking_id.in_(booking_ids)).all()

        wanted = earned_titles(stats, matches)
        if not wanted:
            return []

        catalog = {a.title: a for a in crud.get_achievements(db)}
        unlocked = []
        for title in sorted(wanted):
            achievement = catalog.get(title)
            if achievement is None:
                logger.warning("[achievements] %r missing from catalog", title)
                continue
            if _award(db, player_id, achievement):
                unlocked.append(title)
                notifications.send_achievement_unlocked(db, player_id, title, achievement.description)

        if unlocked:
            logger.info("[achievements] player %s unlocked %s", player_id, unlocked)
        return unlocked
    except Exception:
        logger.exception("[achievements] evaluation failed for player %s", player_id)
        db.rollback()
        return []


def evaluate_booking_players(db: Session, booking_id: int) -> dict[int, list[str]]:
    """Re-evaluate everyone with stats on a booking (after the match result changes)."""
    out = {}
    for ps in crud.get_player_stats_by_booking(db, booking_id):
        unlocked = evaluate_player_achievements(db, ps.player_id)
        if unlocked:
            out[ps.player_id] = unlocked
    return out
