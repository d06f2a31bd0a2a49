from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime, date
from uuid import UUID
from typing import Any, Optional, List, Dict, Literal

from models import TIERS


def _normalize_tier(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    tier = value.strip().lower()
    if tier not in TIERS:
        raise ValueError("tier must be one of Free, Pro, Elite")
    return tier


# --- Users ---

class UserResponse(BaseModel):
    id: UUID
    created_at: datetime
    email: Optional[str] = None
    role: str
    username: Optional[str] = None
    gym: Optional[str] = None
    goal: Optional[str] = None
    tier: str
    avatar: Optional[int] = None
    profile_picture: Optional[str] = None
    best_lifts: Dict[str, Any] = Field(default_factory=dict)
    stats: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(from_attributes=True)


class UserProfileUpdate(BaseModel):
    """Self-service profile fields. Tier changes only via billing."""
    username: Optional[str] = Field(default=None, min_length=1, max_length=40)
    gym: Optional[str] = None
    goal: Optional[str] = None
    avatar: Optional[int] = Field(default=None, ge=0)
    profile_picture: Optional[str] = None
    best_lifts: Optional[Dict[str, Any]] = None
    stats: Optional[Dict[str, Any]] = None


class ProgressPhotoCreate(BaseModel):
    image_url: str = Field(min_length=1)
    view: Optional[Literal["front", "side", "back"]] = None


class ProgressPhotoResponse(BaseModel):
    id: UUID
    user_id: UUID
    image_url: str
    view: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PushTokenUpdate(BaseModel):
    token: str = Field(min_length=1)


class UserReport(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


# --- Marketplace plans ---

class PlanCreate(BaseModel):
    title: str = Field(min_length=1, max_length=120)
    description: str = Field(min_length=1)
    type: Literal["workout", "meal"]
    duration_weeks: int = Field(ge=1, le=52)
    level: str = Field(min_length=1)
    price: float = Field(ge=0, le=500)
    tags: List[str] = Field(min_length=1)
    schedule: List[Dict[str, Any]] = Field(min_length=1)
    media_url: Optional[str] = None
    tier: str = "free"
    is_public: bool = True

    @field_validator("tier")
    @classmethod
    def normalize_tier(cls, value: Optional[str]) -> Optional[str]:
        return _normalize_tier(value)


class PlanUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=120)
    description: Optional[str] = None
    duration_weeks: Optional[int] = Field(default=None, ge=1, le=52)
    level: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0, le=500)
    tags: Optional[List[str]] = None
    schedule: Optional[List[Dict[str, Any]]] = None
    media_url: Optional[str] = None
    tier: Optional[str] = None
    is_public: Optional[bool] = None

    @field_validator("tier")
    @classmethod
    def normalize_tier(cls, value: Optional[str]) -> Optional[str]:
        return _normalize_tier(value)


class PlanResponse(BaseModel):
    id: UUID
    creator_id: UUID
    title: str
    description: str
    type: str
    duration_weeks: int
    level: str
    price: float
    tags: List[str]
    schedule: List[Dict[str, Any]]
    media_url: Optional[str] = None
    tier: str
    is_public: bool
    featured: bool
    sales: int
    rating: Optional[float] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# --- User plan library ---

class UserPlanFromPlan(BaseModel):
    plan_id: UUID


class CustomPlanCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    type: Optional[str] = None
    exercises: List[Any] = Field(min_length=1)
    source: Literal["manual", "ai", "upload"] = "manual"


class UserPlanResponse(BaseModel):
    id: UUID
    user_id: UUID
    plan_id: Optional[UUID] = None
    name: str
    type: Optional[str] = None
    source: str
    level: Optional[str] = None
    duration_weeks: Optional[int] = None
    schedule: Optional[Any] = None
    exercises: Optional[Any] = None
    is_completed: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class WorkoutGenerateRequest(BaseModel):
    goal: str = Field(min_length=1, max_length=120)
    available_days: int = Field(ge=1, le=7)
    preferred_split: str = Field(min_length=1, max_length=120)
    experience_level: str = Field(min_length=1, max_length=60)
    injuries: str = Field(default="", max_length=500)
    equipment: str = Field(default="", max_length=500)


# --- Meal plans ---

class MacroTargets(BaseModel):
    protein: float = Field(ge=0)
    carbs: float = Field(ge=0)
    fat: float = Field(ge=0)


class MealPlanCreate(BaseModel):
    goal: str = Field(min_length=1, max_length=120)
    calories: int = Field(gt=0)
    macros: MacroTargets
    meals: List[Dict[str, Any]] = Field(default_factory=list)
    preferences: str = Field(default="", max_length=500)


class MealPlanResponse(BaseModel):
    id: UUID
    user_id: UUID
    goal: str
    calories: int
    macros: Dict[str, Any]
    meals: List[Any]
    preferences: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MealGenerateRequest(BaseModel):
    goal: str = Field(min_length=1, max_length=120)
    calories: int = Field(gt=0)
    protein: int = Field(gt=0)
    carbs: int = Field(gt=0)
    fat: int = Field(gt=0)
    dietary_preferences: str = Field(default="", max_length=500)
    meals_per_day: int = Field(default=4, ge=1, le=8)


class GeneratedMeal(BaseModel):
    name: str
    description: str = ""
    calories: float = 0
    macros: Dict[str, float] = Field(default_factory=dict)


class MealGenerateResponse(BaseModel):
    meals: List[GeneratedMeal]
    model: str


# --- XP / workouts ---

class WorkoutExercise(BaseModel):
    name: str = Field(min_length=1)
    sets: int = Field(ge=1)
    reps: int = Field(ge=1)
    weight: float = Field(default=0, ge=0)


class WorkoutLogCreate(BaseModel):
    exercises: List[WorkoutExercise] = Field(min_length=1)
    pr_count: int = Field(default=0, ge=0)
    is_challenge: bool = False


class WorkoutXPResponse(BaseModel):
    xp_earned: int
    breakdown: Dict[str, int]
    volume: float
    xp_total: int
    streak: int
    is_new_day: bool


class WorkoutLogResponse(BaseModel):
    id: UUID
    exercises: List[Any]
    volume: float
    pr_count: int
    is_challenge: bool
    xp_earned: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class XPStatusResponse(BaseModel):
    user_id: UUID
    xp: int
    streak: int
    last_workout_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class XPTransactionResponse(BaseModel):
    id: UUID
    amount: int
    reason: str
    challenge_id: Optional[UUID] = None
    balance_after: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class WeeklySummaryResponse(BaseModel):
    user_id: UUID
    week_start: date
    workouts_completed: int
    total_volume: float
    total_xp: int
    streak: int

    model_config = ConfigDict(from_attributes=True)


class DailyChallengeResponse(BaseModel):
    id: UUID
    kind: str
    exercise: Optional[str] = None
    target: int
    xp_reward: int
    due_at: datetime
    completed: bool
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# --- Wager challenges ---

class WagerCreate(BaseModel):
    exercise: str = Field(min_length=1)
    wager_xp: int
    opponents: List[UUID] = Field(min_length=1)
    rules: Optional[str] = None
    type: str = "reps"
    duration_hours: Optional[int] = Field(default=None, ge=1, le=24 * 14)
    winner_takes_all: bool = True
    gym: Optional[str] = None


class WagerSubmit(BaseModel):
    video_url: str = Field(min_length=1)
    notes: Optional[str] = Field(default=None, max_length=1000)


class WagerVoteRequest(BaseModel):
    voted_for: UUID


class WagerSubmissionResponse(BaseModel):
    user_id: UUID
    video_url: str
    notes: Optional[str] = None
    verdict: Optional[str] = None
    verified_by_ai: bool
    feedback: Optional[str] = None
    submitted_at: datetime

    model_config = ConfigDict(from_attributes=True)


class WagerResponse(BaseModel):
    id: UUID
    creator_id: UUID
    type: str
    exercise: str
    rules: Optional[str] = None
    gym: Optional[str] = None
    wager_xp: int
    xp_pot: int
    winner_takes_all: bool
    participants: List[str]
    opponents: List[str]
    status: str
    expires_at: datetime
    resolved_at: Optional[datetime] = None
    winner_id: Optional[UUID] = None
    winning_details: Optional[Dict[str, Any]] = None
    flagged: bool
    removed: bool
    version: int
    created_at: datetime
    submissions: List[WagerSubmissionResponse] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class BattleStatsResponse(BaseModel):
    user_id: UUID
    wins: int = 0
    losses: int = 0
    current_streak: int = 0
    best_streak: int = 0


class VoteTallyResponse(BaseModel):
    challenge_id: UUID
    votes: Dict[str, int]
    total: int


# --- Gyms & feed ---

class GymCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    location: str = Field(min_length=1)
    description: Optional[str] = None
    image: Optional[str] = None
    features: List[str] = Field(default_factory=list)
    member_count: int = Field(default=0, ge=0)
    pricing: Optional[Dict[str, Any]] = None
    offers: Optional[List[Any]] = None
    website: Optional[str] = None


class GymUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    location: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    features: Optional[List[str]] = None
    member_count: Optional[int] = Field(default=None, ge=0)
    pricing: Optional[Dict[str, Any]] = None
    offers: Optional[List[Any]] = None
    website: Optional[str] = None


class GymResponse(BaseModel):
    id: UUID
    owner_id: UUID
    name: str
    location: str
    description: Optional[str] = None
    image: Optional[str] = None
    features: List[str]
    member_count: int
    pricing: Optional[Dict[str, Any]] = None
    offers: Optional[List[Any]] = None
    website: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class GymFeedPostCreate(BaseModel):
    gym_id: UUID
    text: Optional[str] = Field(default=None, max_length=500)
    image_url: Optional[str] = None
    offer: Optional[str] = None


class GymFeedPostResponse(BaseModel):
    id: UUID
    gym_id: UUID
    owner_id: UUID
    text: Optional[str] = None
    image_url: Optional[str] = None
    offer: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# --- Leaderboard ---

class LeaderboardSubmit(BaseModel):
    exercise: str = Field(min_length=1)
    weight: float = Field(gt=0)
    reps: int = Field(gt=0)
    gym: str = Field(min_length=1)
    video_url: str = Field(min_length=1)
    tier: str
    lat: Optional[float] = None
    lng: Optional[float] = None

    @field_validator("tier")
    @classmethod
    def normalize_tier(cls, value: Optional[str]) -> Optional[str]:
        return _normalize_tier(value)


class LeaderboardEntryResponse(BaseModel):
    id: UUID
    user_id: UUID
    username: Optional[str] = None
    exercise: str
    weight: float
    reps: int
    gym: str
    tier: str
    video_url: str
    location: Optional[Dict[str, float]] = None
    created_at: datetime


class LeaderboardResponse(BaseModel):
    exercise: str
    scope: str
    gym: Optional[str] = None
    entries: List[LeaderboardEntryResponse]
    user_rank: Optional[int] = None
    user_best: Optional[LeaderboardEntryResponse] = None


# --- Partner finder ---

TIME_SLOT_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class PartnerSlotCreate(BaseModel):
    gym_id: str = Field(min_length=1)
    gym_name: Optional[str] = None
    time_slot: str = Field(pattern=TIME_SLOT_PATTERN)
    note: Optional[str] = Field(default=None, max_length=280)
    avatar: Optional[str] = None


class PartnerSlotResponse(BaseModel):
    id: UUID
    user_id: UUID
    username: str
    gym_id: str
    gym_name: Optional[str] = None
    time_slot: str
    participants: List[str]
    note: Optional[str] = None
    avatar: Optional[str] = None
    tier: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# --- Form analysis ---

class FormAnalysisResponse(BaseModel):
    id: UUID
    exercise_type: str
    verdict: str
    results: List[Dict[str, Any]]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# --- Notifications ---

class NotificationSend(BaseModel):
    user_id: UUID
    title: str = Field(min_length=1, max_length=120)
    body: str = Field(min_length=1, max_length=1000)
    data: Optional[Dict[str, Any]] = None


class ChallengeMessageNotification(BaseModel):
    challenge_id: UUID
    message: str = Field(min_length=1, max_length=1000)


# --- AI chat ---

class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str = Field(min_length=1)


class ChatRequest(BaseModel):
    messages: List[ChatMessage] = Field(min_length=1, max_length=50)
    model: Optional[str] = None


class ChatResponse(BaseModel):
    reply: str
    model: str


# --- Billing ---

class SubscriptionCheckoutRequest(BaseModel):
    price_id: str = Field(min_length=1)


class PurchaseHistoryItem(BaseModel):
    id: UUID
    plan_id: Optional[UUID] = None
    plan_name: Optional[str] = None
    creator_id: Optional[UUID] = None
    amount_paid: int
    amount_display: str
    currency: str
    created_at: datetime


# --- Admin ---

class ModerateChallengeRequest(BaseModel):
    action: Literal["approve", "remove"]
    reason: Optional[str] = Field(default=None, max_length=500)


class SettleChallengeRequest(BaseModel):
    """No `winner_id` refunds every stake."""
    winner_id: Optional[UUID] = None
    reason: Optional[str] = Field(default=None, max_length=500)


class BanUserRequest(BaseModel):
    ban: bool
    reason: Optional[str] = Field(default=None, max_length=500)


class ModeratedUserResponse(UserResponse):
    flagged: bool
    flag_reason: Optional[str] = None
    is_blocked: bool
