from sqlalchemy import (
    Column, BigInteger, Integer, String, Text, DateTime, ForeignKey,
    UniqueConstraint, Index, Boolean, JSON, CheckConstraint
)
from sqlalchemy.orm import relationship

from .db import Base
from .util import utcnow

# BIGINT ids in Postgres, rowid aliases in SQLite
ID = BigInteger().with_variant(Integer, "sqlite")

ROLE_ADMIN = "admin"
ROLE_PLAYER = "player"

BOOKING_ACTIVE = "active"
BOOKING_CANCELED = "canceled"

PB_CONFIRMED = "confirmed"
PB_PENDING = "pending"
PB_CANCELED = "canceled"
PB_REFUNDED = "refunded"

TX_PENDING = "pending"
TX_COMPLETED = "completed"
TX_FAILED = "failed"

# Credit transaction types
TX_PURCHASE = "purchase"
TX_BOOKING = "booking"
TX_BOOKING_PAYMENT = "booking_payment"
TX_REFUND = "refund"
TX_REFERRAL_BONUS = "referral_bonus"
TX_ADMIN_ADJUSTMENT = "admin_adjustment"

MATCH_FORMATS = ("5-a-side", "7-a-side", "11-a-side")

# Format name: max players
PLAYER_LIMITS = {
    "5-a-side": 15,
    "7-a-side": 18,
    "11-a-side": 30,
}


class User(Base):
    __tablename__ = "users"

    id = Column(ID, primary_key=True)
    username = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    role = Column(String, nullable=False, default=ROLE_PLAYER)  # admin | player
    team_id = Column(
        ID,
        ForeignKey("teams.id", ondelete="SET NULL", use_alter=True, name="fk_users_team_id"),
        nullable=True,
        index=True,
    )
    is_active = Column(Boolean, nullable=False, default=True)

    # denormalised running balance of completed credit transactions
    credits = Column(Integer, nullable=False, default=0, server_default="0")

    referral_code = Column(String, nullable=True)
    referred_by = Column(ID, nullable=True)

    stripe_customer_id = Column(String, nullable=True)
    stripe_subscription_id = Column(String, nullable=True)

    notification_settings = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    team = relationship("Team", foreign_keys=[team_id], back_populates="members")

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def as_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "team_id": self.team_id,
            "is_active": self.is_active,
            "credits": self.credits or 0,
            "referral_code": self.referral_code,
        }


class Team(Base):
    __tablename__ = "teams"

    id = Column(ID, primary_key=True)
    name = Column(String, nullable=False)
    owner_id = Column(ID, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    subscription = Column(String, default="basic")  # basic | pro | enterprise
    allow_player_registration = Column(Boolean, default=True)
    allow_player_booking_management = Column(Boolean, default=False)
    invitation_code = Column(String, unique=True, index=True)
    credit_value = Column(Integer, default=7)  # value of one credit, in £
    cancellation_policy = Column(JSON, nullable=True)  # partial override of the default policy
    created_at = Column(DateTime, default=utcnow, nullable=False)

    owner = relationship("User", foreign_keys=[owner_id])
    members = relationship("User", foreign_keys="User.team_id", back_populates="team")
    bookings = relationship("Booking", back_populates="team", cascade="all, delete-orphan")


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(ID, primary_key=True)
    team_id = Column(ID, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    location = Column(String, nullable=False)
    format = Column(String, nullable=False)  # 5-a-side, 7-a-side, 11-a-side
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False)
    total_slots = Column(Integer, nullable=False)
    available_slots = Column(Integer, nullable=False)
    is_recurring = Column(Boolean, default=False)
    credit_cost = Column(Integer, nullable=False, default=1)  # credits per player
    status = Column(String, nullable=False, default=BOOKING_ACTIVE, index=True)
    cancel_reason = Column(Text, nullable=True)
    weather_data = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    team = relationship("Team", back_populates="bookings")
    player_bookings = relationship("PlayerBooking", back_populates="booking", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("available_slots >= 0", name="ck_bookings_slots_non_negative"),
    )


class PlayerBooking(Base):
    __tablename__ = "player_bookings"

    id = Column(ID, primary_key=True)
    player_id = Column(ID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    booking_id = Column(ID, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String, nullable=False, default=PB_CONFIRMED)  # confirmed, pending, canceled, refunded
    cancellation_reason = Column(Text, nullable=True)
    amount_paid = Column(Integer, nullable=False, default=0)  # credits charged on (re)joining
    refund_amount = Column(Integer, nullable=True)
    canceled_at = Column(DateTime, nullable=True, index=True)
    canceled_by = Column(ID, nullable=True)  # actor who canceled; equals player_id for self-cancellations
    created_at = Column(DateTime, default=utcnow, nullable=False)

    booking = relationship("Booking", back_populates="player_bookings")
    player = relationship("User")

    __table_args__ = (
        UniqueConstraint("player_id", "booking_id", name="uq_player_booking"),
    )


class Cancellation(Base):
    """
    One row per withdrawal, never updated. Registration rows are reused when a
    player rejoins, so the monthly limit is counted here.
    """
    __tablename__ = "cancellations"

    id = Column(ID, primary_key=True)
    player_id = Column(ID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    booking_id = Column(ID, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    canceled_by = Column(ID, nullable=False)  # equals player_id for self-cancellations
    refund_amount = Column(Integer, nullable=False, default=0)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_cancellations_player_created", "player_id", "created_at"),
    )


class MatchStats(Base):
    __tablename__ = "match_stats"

    id = Column(ID, primary_key=True)
    booking_id = Column(ID, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, unique=True)
    team_score = Column(Integer, default=0)
    opponent_score = Column(Integer, default=0)
    is_win = Column(Boolean, default=False)
    is_draw = Column(Boolean, default=False)
    is_loss = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def set_result(self):
        ts = self.team_score or 0
        os_ = self.opponent_score or 0
        self.is_win = ts > os_
        self.is_draw = ts == os_
        self.is_loss = ts < os_


class PlayerStats(Base):
    __tablename__ = "player_stats"

    id = Column(ID, primary_key=True)
    player_id = Column(ID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    booking_id = Column(ID, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    goals = Column(Integer, default=0)
    assists = Column(Integer, default=0)
    yellow_cards = Column(Integer, default=0)
    red_cards = Column(Integer, default=0)
    minutes_played = Column(Integer, default=0)
    is_injured = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("player_id", "booking_id", name="uq_player_stats_row"),
    )


class Achievement(Base):
    __tablename__ = "achievements"

    id = Column(ID, primary_key=True)
    title = Column(String, nullable=False, unique=True)
    description = Column(Text, nullable=False)
    icon = Column(String, nullable=False)
    points = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class PlayerAchievement(Base):
    __tablename__ = "player_achievements"

    id = Column(ID, primary_key=True)
    player_id = Column(ID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    achievement_id = Column(ID, ForeignKey("achievements.id", ondelete="CASCADE"), nullable=False)
    earned_at = Column(DateTime, default=utcnow, nullable=False)

    achievement = relationship("Achievement")

    __table_args__ = (
        UniqueConstraint("player_id", "achievement_id", name="uq_player_achievement"),
    )


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(ID, primary_key=True)
    user_id = Column(ID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String, nullable=False)  # booking_confirmation, match_reminder, cancellation, ...
    booking_id = Column(ID, ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    __table_args__ = (
        Index("ix_notifications_user_unread", "user_id", "is_read"),
    )


class CreditTransaction(Base):
    """
    Append-only ledger row. Positive amount = credit in, negative = debit.
    The only permitted update is a purchase moving pending -> completed|failed.
    """
    __tablename__ = "credit_transactions"

    id = Column(ID, primary_key=True)
    user_id = Column(ID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    type = Column(String, nullable=False, index=True)
    booking_id = Column(ID, ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True, index=True)
    description = Column(Text, nullable=True)
    team_owner_id = Column(ID, nullable=True, index=True)  # beneficiary owner for booking payments
    status = Column(String, nullable=False, default=TX_COMPLETED, index=True)
    external_ref = Column(String, nullable=True, unique=True)  # Stripe checkout session id
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    __table_args__ = (
        Index("ix_credit_tx_user_status", "user_id", "status"),
    )

    def as_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "amount": self.amount,
            "type": self.type,
            "booking_id": self.booking_id,
            "description": self.description,
            "team_owner_id": self.team_owner_id,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class CalendarIntegration(Base):
    __tablename__ = "calendar_integrations"

    id = Column(ID, primary_key=True)
    user_id = Column(ID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    provider = Column(String, nullable=False)  # google
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=True)
    token_expiry = Column(DateTime, nullable=True)
    last_synced_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="uq_calendar_user_provider"),
    )
