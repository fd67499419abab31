# kickbook/app/schemas.py
from datetime import datetime
from pydantic import BaseModel, Field

# ---- Auth / users ----
class RegisterIn(BaseModel):
    username: str = Field(min_length=3)
    password: str = Field(min_length=6)
    email: str
    name: str
    phone: str | None = None
    invitation_code: str | None = None   # join a team on sign-up
    referral_code: str | None = None

class LoginIn(BaseModel):
    username: str
    password: str

class UserOut(BaseModel):
    id: int
    username: str
    email: str
    name: str
    role: str
    team_id: int | None = None
    phone: str | None = None
    credits: int = 0
    referral_code: str | None = None

    class Config:
        from_attributes = True  # pydantic v2

class NotificationSettingsIn(BaseModel):
    # {"match_reminder_enabled": false, ...}
    settings: dict[str, bool]

# ---- Teams ----
class CancellationPolicyIn(BaseModel):
    # every field optional: stored as a partial override of the defaults
    max_cancellations_per_month: int | None = Field(default=None, ge=0)
    min_hours_before_for_cancellation: float | None = Field(default=None, ge=0)
    refund_percent: int | None = Field(default=None, ge=0, le=100)
    refund_deadline_hours: float | None = Field(default=None, ge=0)
    early_refund_percent: int | None = Field(default=None, ge=0, le=100)
    allow_team_owner_override: bool | None = None

class TeamIn(BaseModel):
    name: str
    allow_player_registration: bool = True
    allow_player_booking_management: bool = False
    credit_value: int = 7

class TeamUpdate(BaseModel):
    name: str | None = None
    allow_player_registration: bool | None = None
    allow_player_booking_management: bool | None = None
    credit_value: int | None = None
    cancellation_policy: CancellationPolicyIn | None = None

class TeamOut(BaseModel):
    id: int
    name: str
    owner_id: int
    subscription: str | None = None
    allow_player_registration: bool | None = None
    allow_player_booking_management: bool | None = None
    invitation_code: str | None = None
    credit_value: int | None = None
    cancellation_policy: dict | None = None

    class Config:
        from_attributes = True

class JoinTeamIn(BaseModel):
    invitation_code: str

class AddMemberIn(BaseModel):
    email: str
    name: str
    phone: str | None = None

# ---- Bookings ----
class BookingIn(BaseModel):
    title: str
    location: str
    format: str          # "5-a-side" | "7-a-side" | "11-a-side"
    start_time: datetime
    end_time: datetime
    total_slots: int = Field(gt=0)
    is_recurring: bool = False
    credit_cost: int = Field(default=1, ge=0)

class BookingUpdate(BaseModel):
    title: str | None = None
    location: str | None = None
    format: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    is_recurring: bool | None = None
    credit_cost: int | None = Field(default=None, ge=0)

class BookingOut(BaseModel):
    id: int
    team_id: int
    title: str
    location: str
    format: str
    start_time: datetime
    end_time: datetime
    total_slots: int
    available_slots: int
    is_recurring: bool | None = None
    credit_cost: int
    status: str
    cancel_reason: str | None = None
    weather_data: dict | None = None

    class Config:
        from_attributes = True

class PlayerBookingOut(BaseModel):
    id: int
    player_id: int
    booking_id: int
    status: str
    amount_paid: int = 0
    cancellation_reason: str | None = None
    refund_amount: int | None = None
    canceled_at: datetime | None = None
    canceled_by: int | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True

class CancelIn(BaseModel):
    reason: str | None = None

class CancelAllIn(BaseModel):
    reason: str

class CancellationResult(BaseModel):
    success: bool
    message: str
    refund_amount: int | None = None
    status: str | None = None
    error_kind: str | None = None

# ---- Stats ----
class MatchStatsIn(BaseModel):
    team_score: int = Field(ge=0)
    opponent_score: int = Field(ge=0)

class MatchStatsOut(BaseModel):
    id: int
    booking_id: int
    team_score: int
    opponent_score: int
    is_win: bool
    is_draw: bool
    is_loss: bool

    class Config:
        from_attributes = True

class PlayerStatsIn(BaseModel):
    player_id: int
    goals: int | None = Field(default=None, ge=0)
    assists: int | None = Field(default=None, ge=0)
    yellow_cards: int | None = Field(default=None, ge=0)
    red_cards: int | None = Field(default=None, ge=0)
    minutes_played: int | None = Field(default=None, ge=0)
    is_injured: bool | None = None

class PlayerStatsOut(BaseModel):
    id: int
    player_id: int
    booking_id: int
    goals: int
    assists: int
    yellow_cards: int
    red_cards: int
    minutes_played: int
    is_injured: bool

    class Config:
        from_attributes = True

class AchievementOut(BaseModel):
    id: int
    title: str
    description: str
    icon: str
    points: int

    class Config:
        from_attributes = True

# ---- Credits ----
class CreditPurchaseIn(BaseModel):
    amount: int

class CreditUseIn(BaseModel):
    amount: int
    booking_id: int
    description: str | None = None

class CreditAdjustIn(BaseModel):
    user_id: int
    amount: int
    description: str | None = None

class CreditTransactionOut(BaseModel):
    id: int
    user_id: int
    amount: int
    type: str
    booking_id: int | None = None
    description: str | None = None
    team_owner_id: int | None = None
    status: str
    created_at: datetime

    class Config:
        from_attributes = True

# ---- Notifications ----
class NotificationOut(BaseModel):
    id: int
    title: str
    message: str
    type: str
    booking_id: int | None = None
    is_read: bool
    created_at: datetime

    class Config:
        from_attributes = True

# ---- Messaging ----
class WhatsAppMessageIn(BaseModel):
    message: str
