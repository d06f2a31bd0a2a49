"""
AI Workout & Meal Planner

Pro/Elite feature. Builds a coaching prompt from the user's goal and
constraints, sends it through the OpenAI chat proxy and turns the reply
into structured data:

- workouts: "Day N - Label" headers followed by "- Exercise: 4x8" lines,
  saved to the caller's plan library as an `ai` plan
- meals: a JSON array of meals, with a fallback for "Meal N:" text blocks;
  returned for review and saved separately through /v1/meals
"""

from typing import Dict, List, Optional
import json
import logging
import re

from sqlalchemy.orm import Session

from core.exceptions import ForbiddenError, UpstreamError
from models import PAID_TIERS, User, UserPlan
from schemas import MealGenerateRequest, WorkoutGenerateRequest
from services import openai_chat

logger = logging.getLogger(__name__)

WORKOUT_UPGRADE_MESSAGE = "Upgrade required to access the AI workout generator."
MEAL_UPGRADE_MESSAGE = "Upgrade required to access meal planner."

DAY_SPLIT = re.compile(r"\n(?=Day \d+)")
DAY_HEADER = re.compile(r"^Day \d+", re.IGNORECASE)
MEAL_SPLIT = re.compile(r"Meal \d+:")
MACRO_LINE = re.compile(
    r"(\d+)\s*kcal\s*\|\s*(\d+)\s*g Protein\s*\|\s*(\d+)\s*g Carbs\s*\|\s*(\d+)\s*g Fat",
    re.IGNORECASE,
)
CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")

WORKOUT_PROMPT = """You are an elite personal trainer creating a precise, safe, goal-specific 1-week gym workout plan.

=== USER PROFILE ===
- Goal: {goal}
- Experience: {experience_level}
- Available Days: {available_days}
- Preferred Split: {preferred_split}
- Injuries: {injuries}
- Equipment: {equipment}{gym_note}

=== INSTRUCTIONS ===
- Label each day clearly (e.g. Push, Pull, Full Body)
- 3-5 exercises per day, with clear Sets x Reps
- Include supersets or finishers only when appropriate
- No warmups, cooldowns or explanations

=== OUTPUT FORMAT ===
Day 1 - Push
- Barbell Bench Press: 4x8
- Dumbbell Shoulder Press: 3x10
- Cable Triceps Pushdown: 3x12
"""

MEAL_PROMPT = """You are a certified performance nutritionist designing a personalized meal plan.
Your output MUST be a JSON array with one object per meal. Each object has:
- "name": string, a clear and enticing meal name
- "description": string, the ingredients as a bullet list
- "calories": number, calories for this meal
- "macros": object with "protein", "carbs" and "fat" in grams for this meal
Return only the JSON array, with no text before or after it.

=== USER PROFILE ===
- Goal: {goal}
- Daily Calories: {calories} kcal
- Macros: {protein}g Protein / {carbs}g Carbs / {fat}g Fat
- Dietary Preferences: {dietary_preferences}
- Meals Per Day: {meals_per_day}

=== TASK ===
Design {meals_per_day} practical meals from familiar whole-food ingredients.
Split calories and macros as evenly as possible across meals and respect the
dietary preferences. No brand names.
"""


def _require_paid_tier(user: User, message: str) -> None:
    if user.tier not in PAID_TIERS:
        raise ForbiddenError(message)


def build_workout_prompt(payload: WorkoutGenerateRequest, gym: Optional[str] = None) -> str:
    gym_note = ""
    if gym and gym.strip():
        gym_note = f"\n\n=== GYM CONTEXT ===\nThis user trains at: {gym.strip()}. Consider its equipment and style."
    return WORKOUT_PROMPT.format(
        goal=payload.goal.strip(),
        experience_level=payload.experience_level.strip(),
        available_days=payload.available_days,
        preferred_split=payload.preferred_split.strip(),
        injuries=payload.injuries.strip() or "None",
        equipment=payload.equipment.strip() or "Standard gym machines & free weights",
        gym_note=gym_note,
    )


def parse_workout_plan(text: str) -> List[Dict]:
    """Split a "Day N" plan into [{"day": header, "exercises": [{"name", "details"}]}]."""
    days = []
    for block in DAY_SPLIT.split((text or "").strip()):
        block = block.strip()
        if not DAY_HEADER.match(block):
            continue
        header, *lines = block.splitlines()
        exercises = []
        for line in lines:
            name, sep, details = line.partition(":")
            name = name.strip().lstrip("-•* ").strip()
            details = details.strip()
            if sep and name and details:
                exercises.append({"name": name, "details": details})
        days.append({"day": header.strip(), "exercises": exercises})
    return days


def generate_workout_plan(db: Session, user: User, payload: WorkoutGenerateRequest) -> UserPlan:
    _require_paid_tier(user, WORKOUT_UPGRADE_MESSAGE)

    prompt = build_workout_prompt(payload, gym=user.gym)
    result = openai_chat.generate_chat_completion([{"role": "user", "content": prompt}])

    schedule = parse_workout_plan(result["reply"])
    if not schedule:
        logger.warning("AI workout reply had no day blocks", extra={"extra_fields": {"user_id": str(user.id)}})
        raise UpstreamError("AI did not return a workout plan")

    user_plan = UserPlan(
        user_id=user.id,
        name=f"{payload.goal.strip()} - {payload.preferred_split.strip()}",
        type="workout",
        source="ai",
        level=payload.experience_level.strip(),
        duration_weeks=1,
        schedule=schedule,
    )
    db.add(user_plan)
    db.commit()
    db.refresh(user_plan)

    logger.info(
        "AI workout plan generated",
        extra={"extra_fields": {"user_id": str(user.id), "days": len(schedule), "model": result["model"]}},
    )
    return user_plan


def build_meal_prompt(payload: MealGenerateRequest) -> str:
    return MEAL_PROMPT.format(
        goal=payload.goal.strip(),
        calories=payload.calories,
        protein=payload.protein,
        carbs=payload.carbs,
        fat=payload.fat,
        dietary_preferences=payload.dietary_preferences.strip() or "None",
        meals_per_day=payload.meals_per_day,
    )


def _normalize_macros(macros: Dict) -> Dict[str, float]:
    return {
        "protein": float(macros.get("protein") or 0),
        "carbs": float(macros.get("carbs") or 0),
        "fat": float(macros.get("fat", macros.get("fats")) or 0),
    }


def _meals_from_json(text: str) -> Optional[List[Dict]]:
    try:
        data = json.loads(CODE_FENCE.sub("", text.strip()))
    except ValueError:
        return None
    if not isinstance(data, list) or not data:
        return None
    if any(not isinstance(m, dict) or not m.get("name") or not isinstance(m.get("macros"), dict) for m in data):
        return None

    return [
        {
            "name": str(m["name"]).strip(),
            "description": str(m.get("description") or "").strip(),
            "calories": float(m.get("calories") or 0),
            "macros": _normalize_macros(m["macros"]),
        }
        for m in data
    ]


def _meals_from_text(text: str) -> List[Dict]:
    meals = []
    for block in MEAL_SPLIT.split(text):
        lines = [line.strip() for line in block.strip().splitlines() if line.strip()]
        if not lines:
            continue

        description = []
        calories, protein, carbs, fat = 0, 0, 0, 0
        for line in lines[1:]:
            if "Macros:" in line:
                match = MACRO_LINE.search(line)
                if match:
                    calories, protein, carbs, fat = (int(g) for g in match.groups())
            elif "Ingredients:" in line or line.startswith(("•", "-")):
                description.append(line.lstrip("• ").strip())

        meals.append({
            "name": lines[0],
            "description": "\n".join(description),
            "calories": float(calories),
            "macros": {"protein": float(protein), "carbs": float(carbs), "fat": float(fat)},
        })
    return meals


def parse_meal_plan(text: str) -> List[Dict]:
    """JSON array first; "Meal N:" text blocks when the model ignored the format."""
    text = text or ""
    meals = _meals_from_json(text)
    if meals is None:
        start = text.find("Meal ")
        meals = _meals_from_text(text[start:]) if start >= 0 else []
    return meals


def generate_meal_plan(user: User, payload: MealGenerateRequest) -> Dict:
    _require_paid_tier(user, MEAL_UPGRADE_MESSAGE)

    result = openai_chat.generate_chat_completion([{"role": "user", "content": build_meal_prompt(payload)}])
    meals = parse_meal_plan(result["reply"])
    if not meals:
        logger.warning("AI meal reply could not be parsed", extra={"extra_fields": {"user_id": str(user.id)}})
        raise UpstreamError("Could not parse meal plan from AI response")

    logger.info(
        "AI meal plan generated",
        extra={"extra_fields": {"user_id": str(user.id), "meals": len(meals), "model": result["model"]}},
    )
    return {"meals": meals, "model": result["model"]}
