from sqlalchemy.orm import Session

from . import models
from .util import utcnow, generate_code, hash_password, to_naive_utc

# -------- Users --------
def get_user(db: Session, user_id: int):
    return db.get(models.User, user_id)

def get_user_by_username(db: Session, username: str):
    return db.query(models.User).filter(models.User.username == username).first()

def get_user_by_email(db: Session, email: str):
    return db.query(models.User).filter(models.User.email == email).first()

def create_user(db: Session, username: str, password: str, email: str, name: str,
                role: str = models.ROLE_PLAYER, team_id: int | None = None,
                phone: str | None = None, referred_by: int | None = None):
    u = models.User(
        username=username,
        password_hash=hash_password(password),
        email=email.lower(),
        name=name,
        role=role,
        team_id=team_id,
        phone=phone,
        referral_code=generate_code(8),
        referred_by=referred_by,
        credits=0,
    )
    db.add(u)
    db.commit()
    db.refresh(u)
    return u

# credits are deliberately not updatable here: the ledger owns them
_USER_FIELDS = {"name", "email", "phone", "role", "team_id", "is_active", "notification_settings"}

def update_user(db: Session, user_id: int, **fields):
    u = get_user(db, user_id)
    if not u:
        return None
    for k, v in fields.items():
        if k in _USER_FIELDS:
            setattr(u, k, v)
    db.commit()
    db.refresh(u)
    return u

def update_user_stripe_info(db: Session, user_id: int, customer_id: str, subscription_id: str | None):
    u = get_user(db, user_id)
    if not u:
        return None
    u.stripe_customer_id = customer_id
    u.stripe_subscription_id = subscription_id
    db.commit()
    return u

def get_team_members(db: Session, team_id: int):
    return db.query(models.User).filter(models.User.team_id == team_id).order_by(models.User.name).all()

# -------- Teams --------
def get_team(db: Session, team_id: int):
    return db.get(models.Team, team_id)

def get_teams_by_owner(db: Session, owner_id: int):
    return db.query(models.Team).filter(models.Team.owner_id == owner_id).all()

def get_team_by_invitation_code(db: Session, code: str):
    return db.query(models.Team).filter(models.Team.invitation_code == code).first()

def create_team(db: Session, owner: models.User, name: str, **fields):
    t = models.Team(name=name, owner_id=owner.id, invitation_code=generate_code(10), **fields)
    db.add(t)
    db.flush()
    owner.team_id = t.id
    db.commit()
    db.refresh(t)
    return t

def update_team(db: Session, team_id: int, **fields):
    t = get_team(db, team_id)
    if not t:
        return None
    for k, v in fields.items():
        setattr(t, k, v)
    db.commit()
    db.refresh(t)
    return t

# -------- Bookings --------
def get_booking(db: Session, booking_id: int):
    return db.get(models.Booking, booking_id)

def get_bookings_by_team(db: Session, team_id: int):
    return (
        db.query(models.Booking)
        .filter(models.Booking.team_id == team_id)
        .order_by(models.Booking.start_time)
        .all()
    )

def get_all_bookings(db: Session):
    return db.query(models.Booking).order_by(models.Booking.start_time).all()

def get_bookings_between(db: Session, start, end, active_only: bool = True):
    q = db.query(models.Booking).filter(
        models.Booking.start_time >= start,
        models.Booking.start_time < end,
    )
    if active_only:
        q = q.filter(models.Booking.status == models.BOOKING_ACTIVE)
    return q.order_by(models.Booking.start_time).all()

def create_booking(db: Session, team_id: int, **fields):
    for k in ("start_time", "end_time"):
        if fields.get(k) is not None:
            fields[k] = to_naive_utc(fields[k])
    if "available_slots" not in fields or fields["available_slots"] is None:
        fields["available_slots"] = fields["total_slots"]
    b = models.Booking(team_id=team_id, **fields)
    db.add(b)
    db.commit()
    db.refresh(b)
    return b

# status, slots and weather have their own writers
_BOOKING_FIELDS = {"title", "location", "format", "start_time", "end_time", "is_recurring", "credit_cost"}

def update_booking(db: Session, booking_id: int, **fields):
    b = get_booking(db, booking_id)
    if not b:
        return None
    for k, v in fields.items():
        if k in _BOOKING_FIELDS:
            if k in ("start_time", "end_time") and v is not None:
                v = to_naive_utc(v)
            setattr(b, k, v)
    db.commit()
    db.refresh(b)
    return b

def set_booking_weather(db: Session, booking_id: int, weather: dict):
    b = get_booking(db, booking_id)
    if not b:
        return None
    b.weather_data = weather
    db.commit()
    return b

def delete_booking(db: Session, booking_id: int) -> bool:
    b = get_booking(db, booking_id)
    if not b:
        return False
    db.delete(b)
    db.commit()
    return True

# -------- Player bookings --------
def get_player_booking(db: Session, booking_id: int, player_id: int):
    return (
        db.query(models.PlayerBooking)
        .filter_by(booking_id=booking_id, player_id=player_id)
        .one_or_none()
    )

def get_player_bookings_by_booking(db: Session, booking_id: int):
    return db.query(models.PlayerBooking).filter(models.PlayerBooking.booking_id == booking_id).all()

def get_player_bookings_by_player(db: Session, player_id: int):
    return db.query(models.PlayerBooking).filter(models.PlayerBooking.player_id == player_id).all()

def remove_player_from_booking(db: Session, pb: models.PlayerBooking):
    """
    Admin removal: hard delete and give the slot back, no refund bookkeeping.
    """
    booking = pb.booking
    was_active = pb.status != models.PB_CANCELED
    db.delete(pb)
    if was_active and booking.available_slots < booking.total_slots:
        booking.available_slots = booking.available_slots + 1
    db.commit()

# -------- Match stats --------
def get_match_stats_by_booking(db: Session, booking_id: int):
    return db.query(models.MatchStats).filter(models.MatchStats.booking_id == booking_id).one_or_none()

def create_match_stats(db: Session, booking_id: int, team_score: int, opponent_score: int):
    ms = models.MatchStats(booking_id=booking_id, team_score=team_score, opponent_score=opponent_score)
    ms.set_result()
    db.add(ms)
    db.commit()
    db.refresh(ms)
    return ms

def update_match_stats(db: Session, ms: models.MatchStats, **fields):
    for k, v in fields.items():
        if v is not None and k in ("team_score", "opponent_score"):
            setattr(ms, k, v)
    ms.set_result()
    db.commit()
    db.refresh(ms)
    return ms

# -------- Player stats --------
def get_player_stats_by_player(db: Session, player_id: int):
    return db.query(models.PlayerStats).filter(models.PlayerStats.player_id == player_id).all()

def get_player_stats_by_booking(db: Session, booking_id: int):
    return db.query(models.PlayerStats).filter(models.PlayerStats.booking_id == booking_id).all()

def get_player_stats_row(db: Session, booking_id: int, player_id: int):
    return (
        db.query(models.PlayerStats)
        .filter_by(booking_id=booking_id, player_id=player_id)
        .one_or_none()
    )

_STAT_FIELDS = {"goals", "assists", "yellow_cards", "red_cards", "minutes_played", "is_injured"}

def create_player_stats(db: Session, booking_id: int, player_id: int, **fields):
    ps = models.PlayerStats(
        booking_id=booking_id,
        player_id=player_id,
        **{k: v for k, v in fields.items() if k in _STAT_FIELDS and v is not None},
    )
    db.add(ps)
    db.commit()
    db.refresh(ps)
    return ps

def update_player_stats(db: Session, ps: models.PlayerStats, **fields):
    for k, v in fields.items():
        if k in _STAT_FIELDS and v is not None:
            setattr(ps, k, v)
    db.commit()
    db.refresh(ps)
    return ps

# -------- Achievements --------
def get_achievements(db: Session):
    return db.query(models.Achievement).order_by(models.Achievement.id).all()

def get_player_achievements(db: Session, player_id: int):
    return (
        db.query(models.PlayerAchievement)
        .filter(models.PlayerAchievement.player_id == player_id)
        .order_by(models.PlayerAchievement.earned_at)
        .all()
    )

# -------- Notifications --------
def get_notifications(db: Session, user_id: int, unread_only: bool = False):
    q = db.query(models.Notification).filter(models.Notification.user_id == user_id)
    if unread_only:
        q = q.filter(models.Notification.is_read.is_(False))
    return q.order_by(models.Notification.created_at.desc(), models.Notification.id.desc()).all()

def create_notification(db: Session, user_id: int, title: str, message: str, type: str,
                        booking_id: int | None = None):
    n = models.Notification(
        user_id=user_id, title=title, message=message, type=type,
        booking_id=booking_id, is_read=False, created_at=utcnow(),
    )
    db.add(n)
    db.commit()
    db.refresh(n)
    return n

def mark_notification_read(db: Session, user_id: int, notification_id: int) -> bool:
    n = (
        db.query(models.Notification)
        .filter_by(id=notification_id, user_id=user_id)
        .one_or_none()
    )
    if not n:
        return False
    n.is_read = True
    db.commit()
    return True

def mark_all_notifications_read(db: Session, user_id: int) -> int:
    count = (
        db.query(models.Notification)
        .filter(models.Notification.user_id == user_id, models.Notification.is_read.is_(False))
        .update({models.Notification.is_read: True}, synchronize_session=False)
    )
    db.commit()
    return count

def delete_notification(db: Session, user_id: int, notification_id: int) -> bool:
    n = (
        db.query(models.Notification)
        .filter_by(id=notification_id, user_id=user_id)
        .one_or_none()
    )
    if not n:
        return False
    db.delete(n)
    db.commit()
    return True

# -------- Calendar integrations --------
def get_calendar_integration(db: Session, user_id: int, provider: str):
    return (
        db.query(models.CalendarIntegration)
        .filter_by(user_id=user_id, provider=provider)
        .one_or_none()
    )

def upsert_calendar_integration(db: Session, user_id: int, provider: str, access_token: str,
                                refresh_token: str | None, token_expiry):
    ci = get_calendar_integration(db, user_id, provider)
    if ci:
        ci.access_token = access_token
        if refresh_token:
            ci.refresh_token = refresh_token
        ci.token_expiry = token_expiry
    else:
        ci = models.CalendarIntegration(
            user_id=user_id,
            provider=provider,
            access_token=access_token,
            refresh_token=refresh_token,
            token_expiry=token_expiry,
        )
        db.add(ci)
    db.commit()
    db.refresh(ci)
    return ci

def delete_calendar_integration(db: Session, user_id: int, provider: str) -> bool:
    ci = get_calendar_integration(db, user_id, provider)
    if not ci:
        return False
    db.delete(ci)
    db.commit()
    return True
