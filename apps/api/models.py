from sqlalchemy import Column, Integer, Boolean, CheckConstraint, Float, Date, DateTime, ForeignKey, Text, Index, UniqueConstraint, JSON
from sqlalchemy import Uuid as UUID
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from core.database import Base
import uuid

# JSONB on Postgres, plain JSON elsewhere (sqlite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")

TIERS = ("free", "pro", "elite")
PAID_TIERS = ("pro", "elite")


class User(Base):
    __tablename__ = "app_user"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    email = Column(Text, unique=True, nullable=True)
    password_hash = Column(Text, nullable=True)
    role = Column(Text, default="user", nullable=False)  # 'user', 'admin', 'owner'

    # --- PROFILE ---
    username = Column(Text, nullable=True)
    gym = Column(Text, nullable=True)
    goal = Column(Text, nullable=True)
    # Preset avatar index and uploaded picture url are mutually exclusive
    avatar = Column(Integer, nullable=True)
    profile_picture = Column(Text, nullable=True)
    best_lifts = Column(JSONType, nullable=False, default=dict)
    stats = Column(JSONType, nullable=False, default=dict)

    # --- ENTITLEMENTS ---
    tier = Column(Text, default="free", nullable=False)  # free | pro | elite
    stripe_customer_id = Column(Text, nullable=True, index=True)
    # Stripe Connect Express account for plan creators receiving payouts
    stripe_account_id = Column(Text, nullable=True)

    expo_push_token = Column(Text, nullable=True)

    # --- MODERATION ---
    is_blocked = Column(Boolean, default=False, nullable=False)
    flagged = Column(Boolean, default=False, nullable=False)
    flag_reason = Column(Text, nullable=True)

    @property
    def has_paid_tier(self) -> bool:
        return self.tier in PAID_TIERS

    __table_args__ = (
        CheckConstraint("tier IN ('free', 'pro', 'elite')", name="ck_app_user_tier"),
    )


class ProgressPhoto(Base):
    __tablename__ = "progress_photo"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False, index=True)
    image_url = Column(Text, nullable=False)
    view = Column(Text, nullable=True)  # front | side | back
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Plan(Base):
    """
    Marketplace workout/meal plan published by a creator.

    `tier` is the minimum subscription tier the plan targets; `sales` and
    `rating` feed the admin "top plans" view.
    """

    __tablename__ = "plan"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    creator_id = Column(UUID(as_uuid=True), ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=False)
    type = Column(Text, nullable=False)  # workout | meal
    duration_weeks = Column(Integer, nullable=False)
    level = Column(Text, nullable=False)
    price = Column(Float, nullable=False, default=0.0)
    tags = Column(JSONType, nullable=False, default=list)
    schedule = Column(JSONType, nullable=False, default=list)
    media_url = Column(Text, nullable=True)
    tier = Column(Text, default="free", nullable=False)
    is_public = Column(Boolean, default=True, nullable=False)
    featured = Column(Boolean, default=False, nullable=False)
    sales = Column(Integer, default=0, nullable=False)
    rating = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    creator = relationship("User")

    __table_args__ = (
        CheckConstraint("price >= 0 AND price <= 500", name="ck_plan_price_range"),
        Index("ix_plan_public_created", "is_public", "created_at"),
    )


class UserPlan(Base):
    """A plan in a user's personal library (purchased, copied, or built by hand)."""

    __tablename__ = "user_plan"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False, index=True)
    plan_id = Column(UUID(as_uuid=True), ForeignKey("plan.id", ondelete="SET NULL"), nullable=True)
    name = Column(Text, nullable=False)
    type = Column(Text, nullable=True)
    source = Column(Text, nullable=False, default="manual")  # purchase | manual | ai | upload
    level = Column(Text, nullable=True)
    duration_weeks = Column(Integer, nullable=True)
    schedule = Column(JSONType, nullable=True)
    exercises = Column(JSONType, nullable=True)
    is_completed = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class MealPlan(Base):
    """Daily calorie and macro targets with the meals that hit them."""

    __tablename__ = "meal_plan"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False, index=True)
    goal = Column(Text, nullable=False)
    calories = Column(Integer, nullable=False)
    macros = Column(JSONType, nullable=False)  # {"protein": g, "carbs": g, "fat": g}
    meals = Column(JSONType, nullable=False, default=list)
    preferences = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)


class XPRecord(Base):
    """Spendable XP balance plus the workout streak for one user."""

    __tablename__ = "xp_record"

    user_id = Column(UUID(as_uuid=True), ForeignKey("app_user.id", ondelete="CASCADE"), primary_key=True)
    xp = Column(Integer, default=0, nullable=False)
    streak = Column(Integer, default=0, nullable=False)
    last_workout_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("xp >= 0", name="ck_xp_record_non_negative"),
    )


class XPTransaction(Base):
    """Append-only XP ledger. Every balance change writes exactly one row."""

    __tablename__ = "xp_transaction"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    reason = Column(Text, nullable=False)  # workout | challenge_entry | challenge_win | challenge_refund | daily_challenge
    challenge_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    balance_after = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)


class WorkoutLog(Base):
    __tablename__ = "workout_log"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False, index=True)
    exercises = Column(JSONType, nullable=False, default=list)
    volume = Column(Float, nullable=False, default=0.0)  # sum of sets * reps * weight (kg)
    pr_count = Column(Integer, nullable=False, default=0)
    is_challenge = Column(Boolean, nullable=False, default=False)
    xp_earned = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)


class WeeklySummary(Base):
    __tablename__ = "weekly_summary"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False, index=True)
    week_start = Column(Date, nullable=False)
    workouts_completed = Column(Integer, nullable=False, default=0)
    total_volume = Column(Float, nullable=False, default=0.0)
    total_xp = Column(Integer, nullable=False, default=0)
    streak = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "week_start", name="uq_weekly_summary_user_week"),
    )


class DailyChallenge(Base):
    """The current tier-based daily challenge for a user (one row per user)."""

    __tablename__ = "daily_challenge"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False, unique=True)
    kind = Column(Text, nullable=False)  # reps | volume
    exercise = Column(Text, nullable=True)
    target = Column(Integer, nullable=False)
    xp_reward = Column(Integer, nullable=False)
    due_at = Column(DateTime(timezone=True), nullable=False)
    completed = Column(Boolean, default=False, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class WagerChallenge(Base):
    """
    Peer wager challenge.

    Lifecycle: pending -> active -> resolved | no_winner | unresolved.

    `participants` keeps join order (creator first); resolution scans it in
    order and the first AI-verified submitter wins. Every write bumps
    `version`, so concurrent accept/submit/resolve attempts on a stale row
    fail at flush instead of overwriting each other.
    """

    __tablename__ = "wager_challenge"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    creator_id = Column(UUID(as_uuid=True), ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(Text, nullable=False, default="reps")
    exercise = Column(Text, nullable=False)
    rules = Column(Text, nullable=True)
    gym = Column(Text, nullable=True)
    wager_xp = Column(Integer, nullable=False)
    xp_pot = Column(Integer, nullable=False, default=0)
    winner_takes_all = Column(Boolean, nullable=False, default=True)

    participants = Column(JSONType, nullable=False, default=list)  # [user_id str], join order
    opponents = Column(JSONType, nullable=False, default=list)  # invited user ids

    status = Column(Text, nullable=False, default="pending", index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    winner_id = Column(UUID(as_uuid=True), nullable=True)
    winning_details = Column(JSONType, nullable=True)

    flagged = Column(Boolean, nullable=False, default=False, index=True)
    removed = Column(Boolean, nullable=False, default=False)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    submissions = relationship(
        "WagerSubmission",
        back_populates="challenge",
        cascade="all, delete-orphan",
        order_by="WagerSubmission.submitted_at",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'active', 'resolved', 'no_winner', 'unresolved')",
            name="ck_wager_challenge_status",
        ),
    )


class WagerSubmission(Base):
    __tablename__ = "wager_submission"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    challenge_id = Column(UUID(as_uuid=True), ForeignKey("wager_challenge.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False)
    video_url = Column(Text, nullable=False)
    notes = Column(Text, nullable=True)
    verdict = Column(Text, nullable=True)  # pass | fail | flagged (None when AI not run)
    verified_by_ai = Column(Boolean, nullable=False, default=False)
    feedback = Column(Text, nullable=True)
    submitted_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    challenge = relationship("WagerChallenge", back_populates="submissions")

    __table_args__ = (
        UniqueConstraint("challenge_id", "user_id", name="uq_wager_submission_user"),
    )


class WagerVote(Base):
    __tablename__ = "wager_vote"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    challenge_id = Column(UUID(as_uuid=True), ForeignKey("wager_challenge.id", ondelete="CASCADE"), nullable=False, index=True)
    voter_id = Column(UUID(as_uuid=True), ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False)
    voted_for_id = Column(UUID(as_uuid=True), ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("challenge_id", "voter_id", name="uq_wager_vote_voter"),
    )


class BattleStats(Base):
    __tablename__ = "battle_stats"

    user_id = Column(UUID(as_uuid=True), ForeignKey("app_user.id", ondelete="CASCADE"), primary_key=True)
    wins = Column(Integer, default=0, nullable=False)
    losses = Column(Integer, default=0, nullable=False)
    current_streak = Column(Integer, default=0, nullable=False)
    best_streak = Column(Integer, default=0, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class LeaderboardEntry(Base):
    __tablename__ = "leaderboard_entry"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False, index=True)
    exercise = Column(Text, nullable=False)  # normalized lower-case
    weight = Column(Float, nullable=False)
    reps = Column(Integer, nullable=False)
    gym = Column(Text, nullable=False)
    location = Column(JSONType, nullable=True)  # {"lat": float, "lng": float}
    video_url = Column(Text, nullable=False)
    tier = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    user = relationship("User", lazy="joined")

    __table_args__ = (
        CheckConstraint("weight > 0", name="ck_leaderboard_weight_positive"),
        CheckConstraint("reps > 0", name="ck_leaderboard_reps_positive"),
        Index("ix_leaderboard_exercise_weight", "exercise", "weight"),
    )


class Gym(Base):
    __tablename__ = "gym"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id = Column(UUID(as_uuid=True), ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(Text, nullable=False)
    location = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    image = Column(Text, nullable=True)
    features = Column(JSONType, nullable=False, default=list)
    member_count = Column(Integer, nullable=False, default=0)
    pricing = Column(JSONType, nullable=True)
    offers = Column(JSONType, nullable=True)
    website = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class GymFeedPost(Base):
    __tablename__ = "gym_feed_post"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    gym_id = Column(UUID(as_uuid=True), ForeignKey("gym.id", ondelete="CASCADE"), nullable=False, index=True)
    owner_id = Column(UUID(as_uuid=True), ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False)
    image_url = Column(Text, nullable=True)
    text = Column(Text, nullable=True)
    offer = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class PartnerSlot(Base):
    """An open training time at a gym that other users can join."""

    __tablename__ = "partner_slot"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False, index=True)
    username = Column(Text, nullable=False, default="REPZ User")
    gym_id = Column(Text, nullable=False, index=True)
    gym_name = Column(Text, nullable=True)
    time_slot = Column(Text, nullable=False)  # "HH:MM", 24h
    participants = Column(JSONType, nullable=False, default=list)  # [user_id str]
    note = Column(Text, nullable=True)
    avatar = Column(Text, nullable=True)
    tier = Column(Text, nullable=False, default="free")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class FormAnalysis(Base):
    __tablename__ = "form_analysis"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False, index=True)
    exercise_type = Column(Text, nullable=False)
    results = Column(JSONType, nullable=False, default=list)  # per-frame feedback
    verdict = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class PurchaseRecord(Base):
    """One-off marketplace plan purchase, written from the Stripe webhook."""

    __tablename__ = "purchase_record"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False, index=True)
    plan_id = Column(UUID(as_uuid=True), ForeignKey("plan.id", ondelete="SET NULL"), nullable=True)
    plan_name = Column(Text, nullable=True)
    creator_id = Column(UUID(as_uuid=True), nullable=True)
    amount_paid = Column(Integer, nullable=False)  # minor units (pence/cents)
    currency = Column(Text, nullable=False, default="gbp")
    stripe_session_id = Column(Text, nullable=False, unique=True)
    stripe_payment_intent_id = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)


class Subscription(Base):
    """
    Stripe subscription mirror.

    Stripe is the billing source of truth; this table stores a minimal, queryable
    mirror for entitlement decisions and admin/support visibility.
    """

    __tablename__ = "subscriptions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)

    stripe_customer_id = Column(Text, nullable=True, index=True)
    stripe_subscription_id = Column(Text, nullable=True, index=True)
    stripe_price_id = Column(Text, nullable=True)

    status = Column(Text, nullable=True, index=True)  # active|trialing|past_due|canceled|...
    tier = Column(Text, nullable=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    cancel_at_period_end = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class StripeEvent(Base):
    """
    Processed Stripe events (idempotency guard).

    Stripe retries webhook deliveries; storing event ids makes webhook handling safe.
    """

    __tablename__ = "stripe_events"

    event_id = Column(Text, primary_key=True)  # evt_*
    event_type = Column(Text, nullable=False, index=True)
    stripe_created = Column(Integer, nullable=True)

    received_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class RevenueCatEvent(Base):
    """Processed RevenueCat webhook events (idempotency guard)."""

    __tablename__ = "revenuecat_events"

    event_id = Column(Text, primary_key=True)
    event_type = Column(Text, nullable=False)
    app_user_id = Column(Text, nullable=True)

    received_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class AdminAuditEvent(Base):
    """
    Append-only audit log for admin moderation actions.

    - write-only from the application (no update/delete in code paths)
    - bounded payload (no secrets; minimal PII)
    """

    __tablename__ = "admin_audit_event"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    actor_user_id = Column(UUID(as_uuid=True), ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False, index=True)
    action = Column(Text, nullable=False, index=True)  # e.g. challenge.remove | user.ban | plan.feature

    target_user_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    target_id = Column(Text, nullable=True)  # challenge / plan id
    reason = Column(Text, nullable=True)

    ip_address = Column(Text, nullable=True)
    user_agent = Column(Text, nullable=True)

    payload = Column(JSONType, nullable=False, default=dict)
