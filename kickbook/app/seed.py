# kickbook/app/seed.py
from sqlalchemy.orm import Session

from .models import Achievement
from .utils.logger import setup_logger

logger = setup_logger(__name__)

FIRST_GOAL = "First Goal"
GOAL_MACHINE = "Goal Machine"
HAT_TRICK_HERO = "Hat-trick Hero"
PLAYMAKER = "Playmaker"
TEAM_PLAYER = "Team Player"
WINNER = "Winner"
CLEAN_SHEET = "Clean Sheet"

ACHIEVEMENT_CATALOG = [
    {"title": FIRST_GOAL, "description": "Score your first goal", "icon": "sports_score", "points": 10},
    {"title": GOAL_MACHINE, "description": "Score 10 goals", "icon": "local_fire_department", "points": 40},
    {"title": HAT_TRICK_HERO, "description": "Score three goals in one match", "icon": "stars", "points": 30},
    {"title": PLAYMAKER, "description": "Make 5 assists", "icon": "handshake", "points": 20},
    {"title": TEAM_PLAYER, "description": "Participate in 10 matches", "icon": "groups", "points": 25},
    {"title": WINNER, "description": "Win a match", "icon": "emoji_events", "points": 15},
    {"title": CLEAN_SHEET, "description": "Complete a match without conceding a goal", "icon": "shield", "points": 15},
]


def seed_achievements(db: Session) -> int:
    """Insert catalog rows that are missing. Returns how many were added."""
    existing = {t for (t,) in db.query(Achievement.title).all()}
    added = 0
    for row in ACHIEVEMENT_CATALOG:
        if row["title"] in existing:
            continue
        db.add(Achievement(**row))
        added += 1
    if added:
        db.commit()
        logger.info("Seeded %s achievements", added)
    return added


if __name__ == "__main__":
    from .db import SessionLocal

    with SessionLocal() as db:
        seed_achievements(db)
