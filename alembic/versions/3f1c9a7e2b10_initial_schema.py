"""initial schema: users, teams, bookings, stats, credits, notifications

Revision ID: 3f1c9a7e2b10
Revises:
Create Date: 2026-10-17 10:12:41.118203
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "3f1c9a7e2b10"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # --- users (team FK added once teams exists) ---
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("username", sa.String(), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("phone", sa.String(), nullable=True),
        sa.Column("role", sa.String(), nullable=False, server_default="player"),
        sa.Column("team_id", sa.BigInteger(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("credits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("referral_code", sa.String(), nullable=True),
        sa.Column("referred_by", sa.BigInteger(), nullable=True),
        sa.Column("stripe_customer_id", sa.String(), nullable=True),
        sa.Column("stripe_subscription_id", sa.String(), nullable=True),
        sa.Column("notification_settings", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_team_id", "users", ["team_id"])

    # --- teams ---
    op.create_table(
        "teams",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("owner_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("subscription", sa.String(), nullable=True, server_default="basic"),
        sa.Column("allow_player_registration", sa.Boolean(), nullable=True, server_default=sa.true()),
        sa.Column("allow_player_booking_management", sa.Boolean(), nullable=True, server_default=sa.false()),
        sa.Column("invitation_code", sa.String(), nullable=True),
        sa.Column("credit_value", sa.Integer(), nullable=True, server_default="7"),
        sa.Column("cancellation_policy", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_teams_owner_id", "teams", ["owner_id"])
    op.create_index("ix_teams_invitation_code", "teams", ["invitation_code"], unique=True)
    op.create_foreign_key("fk_users_team_id", "users", "teams", ["team_id"], ["id"], ondelete="SET NULL")

    # --- bookings ---
    op.create_table(
        "bookings",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("team_id", sa.BigInteger(), sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("location", sa.String(), nullable=False),
        sa.Column("format", sa.String(), nullable=False),
        sa.Column("start_time", sa.DateTime(), nullable=False),
        sa.Column("end_time", sa.DateTime(), nullable=False),
        sa.Column("total_slots", sa.Integer(), nullable=False),
        sa.Column("available_slots", sa.Integer(), nullable=False),
        sa.Column("is_recurring", sa.Boolean(), nullable=True, server_default=sa.false()),
        sa.Column("credit_cost", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("status", sa.String(), nullable=False, server_default="active"),
        sa.Column("cancel_reason", sa.Text(), nullable=True),
        sa.Column("weather_data", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("available_slots >= 0", name="ck_bookings_slots_non_negative"),
    )
    op.create_index("ix_bookings_team_id", "bookings", ["team_id"])
    op.create_index("ix_bookings_start_time", "bookings", ["start_time"])
    op.create_index("ix_bookings_status", "bookings", ["status"])

    # --- player_bookings ---
    op.create_table(
        "player_bookings",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("player_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("booking_id", sa.BigInteger(), sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="confirmed"),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("amount_paid", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("refund_amount", sa.Integer(), nullable=True),
        sa.Column("canceled_at", sa.DateTime(), nullable=True),
        sa.Column("canceled_by", sa.BigInteger(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("player_id", "booking_id", name="uq_player_booking"),
    )
    op.create_index("ix_player_bookings_player_id", "player_bookings", ["player_id"])
    op.create_index("ix_player_bookings_booking_id", "player_bookings", ["booking_id"])
    op.create_index("ix_player_bookings_canceled_at", "player_bookings", ["canceled_at"])

    # --- cancellations (append-only) ---
    op.create_table(
        "cancellations",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("player_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("booking_id", sa.BigInteger(), sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("canceled_by", sa.BigInteger(), nullable=False),
        sa.Column("refund_amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_cancellations_booking_id", "cancellations", ["booking_id"])
    op.create_index("ix_cancellations_player_created", "cancellations", ["player_id", "created_at"])

    # --- match_stats / player_stats ---
    op.create_table(
        "match_stats",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("booking_id", sa.BigInteger(), sa.ForeignKey("bookings.id", ondelete="CASCADE"),
                  nullable=False, unique=True),
        sa.Column("team_score", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("opponent_score", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("is_win", sa.Boolean(), nullable=True, server_default=sa.false()),
        sa.Column("is_draw", sa.Boolean(), nullable=True, server_default=sa.false()),
        sa.Column("is_loss", sa.Boolean(), nullable=True, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        "player_stats",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("player_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("booking_id", sa.BigInteger(), sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("goals", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("assists", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("yellow_cards", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("red_cards", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("minutes_played", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("is_injured", sa.Boolean(), nullable=True, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("player_id", "booking_id", name="uq_player_stats_row"),
    )
    op.create_index("ix_player_stats_player_id", "player_stats", ["player_id"])
    op.create_index("ix_player_stats_booking_id", "player_stats", ["booking_id"])

    # --- achievements ---
    op.create_table(
        "achievements",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("title", sa.String(), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("icon", sa.String(), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        "player_achievements",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("player_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("achievement_id", sa.BigInteger(), sa.ForeignKey("achievements.id", ondelete="CASCADE"),
                  nullable=False),
        sa.Column("earned_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("player_id", "achievement_id", name="uq_player_achievement"),
    )
    op.create_index("ix_player_achievements_player_id", "player_achievements", ["player_id"])

    # --- notifications ---
    op.create_table(
        "notifications",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("booking_id", sa.BigInteger(), sa.ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"])
    op.create_index("ix_notifications_user_unread", "notifications", ["user_id", "is_read"])

    # --- credit_transactions ---
    op.create_table(
        "credit_transactions",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("booking_id", sa.BigInteger(), sa.ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("team_owner_id", sa.BigInteger(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="completed"),
        sa.Column("external_ref", sa.String(), nullable=True, unique=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_credit_transactions_user_id", "credit_transactions", ["user_id"])
    op.create_index("ix_credit_transactions_type", "credit_transactions", ["type"])
    op.create_index("ix_credit_transactions_booking_id", "credit_transactions", ["booking_id"])
    op.create_index("ix_credit_transactions_team_owner_id", "credit_transactions", ["team_owner_id"])
    op.create_index("ix_credit_transactions_status", "credit_transactions", ["status"])
    op.create_index("ix_credit_transactions_created_at", "credit_transactions", ["created_at"])
    op.create_index("ix_credit_tx_user_status", "credit_transactions", ["user_id", "status"])

    # --- calendar_integrations ---
    op.create_table(
        "calendar_integrations",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("provider", sa.String(), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("token_expiry", sa.DateTime(), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "provider", name="uq_calendar_user_provider"),
    )
    op.create_index("ix_calendar_integrations_user_id", "calendar_integrations", ["user_id"])


def downgrade() -> None:
    op.drop_table("calendar_integrations")
    op.drop_table("credit_transactions")
    op.drop_table("notifications")
    op.drop_table("player_achievements")
    op.drop_table("achievements")
    op.drop_table("player_stats")
    op.drop_table("match_stats")
    op.drop_table("cancellations")
    op.drop_table("player_bookings")
    op.drop_table("bookings")
    op.drop_constraint("fk_users_team_id", "users", type_="foreignkey")
    op.drop_table("teams")
    op.drop_table("users")
