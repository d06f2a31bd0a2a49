"""
AI workout and meal planning, plus saved meal plans.

The OpenAI client is replaced with a canned reply per test.
"""
import json
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from core.config import settings
from models import MealPlan, UserPlan
from services import openai_chat
from services.ai_planner import parse_meal_plan, parse_workout_plan


WORKOUT_REPLY = """Here is your plan.
Day 1 - Push
- Barbell Bench Press: 4x8
- Dumbbell Shoulder Press: 3x10
Day 2 - Pull
- Deadlift: 3x5
- Lat Pulldown: 3x12
"""

JSON_MEALS = [
    {
        "name": "Morning Power Oatmeal",
        "description": "- oats\n- whey",
        "calories": 400,
        "macros": {"protein": 30, "carbs": 45, "fats": 12},
    },
    {
        "name": "Grilled Chicken Salad",
        "description": "- chicken\n- greens",
        "calories": 450,
        "macros": {"protein": 45, "carbs": 10, "fat": 25},
    },
]

TEXT_MEALS = """Meal 1: Sunrise Scramble
• Ingredients: eggs, spinach, toast
• Macros: 450 kcal | 32g Protein | 30g Carbs | 20g Fat
Meal 2: Salmon Bowl
• Ingredients: salmon, rice
• Macros: 600 kcal | 40g Protein | 60g Carbs | 18g Fat
"""


class _FakeCompletions:
    def __init__(self):
        self.reply = ""
        self.error = None
        self.messages = None

    def create(self, model, messages):
        self.messages = messages
        if self.error:
            raise self.error
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=self.reply))])


@pytest.fixture
def fake_openai(monkeypatch):
    completions = _FakeCompletions()
    monkeypatch.setattr(settings, "OPENAI_API_KEY", "sk-test")
    monkeypatch.setattr(openai_chat, "OpenAI", lambda **kwargs: SimpleNamespace(chat=SimpleNamespace(completions=completions)))
    return completions


WORKOUT_REQUEST = {
    "goal": "Strength",
    "available_days": 2,
    "preferred_split": "Push/Pull",
    "experience_level": "Intermediate",
    "injuries": "Knee pain",
}

MEAL_REQUEST = {"goal": "Muscle Gain", "calories": 2800, "protein": 180, "carbs": 300, "fat": 80, "meals_per_day": 2}


class TestParsers:
    def test_workout_days_and_exercises(self):
        days = parse_workout_plan(WORKOUT_REPLY)
        assert [d["day"] for d in days] == ["Day 1 - Push", "Day 2 - Pull"]
        assert days[0]["exercises"] == [
            {"name": "Barbell Bench Press", "details": "4x8"},
            {"name": "Dumbbell Shoulder Press", "details": "3x10"},
        ]

    def test_workout_without_days(self):
        assert parse_workout_plan("Rest and recover this week.") == []

    def test_meals_from_json(self):
        meals = parse_meal_plan(json.dumps(JSON_MEALS))
        assert [m["name"] for m in meals] == ["Morning Power Oatmeal", "Grilled Chicken Salad"]
        assert meals[0]["macros"] == {"protein": 30.0, "carbs": 45.0, "fat": 12.0}
        assert meals[1]["macros"]["fat"] == 25.0

    def test_meals_from_fenced_json(self):
        meals = parse_meal_plan("```json\n" + json.dumps(JSON_MEALS) + "\n```")
        assert len(meals) == 2

    def test_meals_from_text_blocks(self):
        meals = parse_meal_plan("Enjoy!\n" + TEXT_MEALS)
        assert [m["name"] for m in meals] == ["Sunrise Scramble", "Salmon Bowl"]
        assert meals[0]["calories"] == 450
        assert meals[1]["macros"] == {"protein": 40.0, "carbs": 60.0, "fat": 18.0}
        assert "eggs" in meals[0]["description"]

    def test_meals_unparseable(self):
        assert parse_meal_plan("Sorry, I can't help with that.") == []


class TestWorkoutGeneration:
    def test_paid_user_gets_saved_ai_plan(self, client, make_user, auth_headers, db_session, fake_openai):
        fake_openai.reply = WORKOUT_REPLY
        user = make_user(tier="pro", gym="Iron Temple")

        resp = client.post("/v1/user-plans/generate", json=WORKOUT_REQUEST, headers=auth_headers(user))
        assert resp.status_code == 201
        data = resp.json()
        assert data["source"] == "ai"
        assert data["name"] == "Strength - Push/Pull"
        assert data["level"] == "Intermediate"
        assert len(data["schedule"]) == 2
        assert data["schedule"][1]["exercises"][0] == {"name": "Deadlift", "details": "3x5"}

        prompt = fake_openai.messages[0]["content"]
        assert "Injuries: Knee pain" in prompt
        assert "Iron Temple" in prompt

        db_session.expire_all()
        assert db_session.query(UserPlan).filter(UserPlan.user_id == user.id).count() == 1

    def test_free_tier_blocked(self, client, make_user, auth_headers, fake_openai):
        resp = client.post("/v1/user-plans/generate", json=WORKOUT_REQUEST, headers=auth_headers(make_user()))
        assert resp.status_code == 403
        assert fake_openai.messages is None

    def test_reply_without_plan_is_502(self, client, make_user, auth_headers, db_session, fake_openai):
        fake_openai.reply = "I need more information."
        resp = client.post("/v1/user-plans/generate", json=WORKOUT_REQUEST, headers=auth_headers(make_user(tier="elite")))
        assert resp.status_code == 502
        assert db_session.query(UserPlan).count() == 0

    def test_ai_not_configured(self, client, make_user, auth_headers):
        resp = client.post("/v1/user-plans/generate", json=WORKOUT_REQUEST, headers=auth_headers(make_user(tier="pro")))
        assert resp.status_code == 503


class TestMealGeneration:
    def test_paid_user_gets_meals(self, client, make_user, auth_headers, db_session, fake_openai):
        fake_openai.reply = json.dumps(JSON_MEALS)
        resp = client.post("/v1/meals/generate", json=MEAL_REQUEST, headers=auth_headers(make_user(tier="elite")))
        assert resp.status_code == 200
        data = resp.json()
        assert data["model"] == "gpt-4"
        assert [m["name"] for m in data["meals"]] == ["Morning Power Oatmeal", "Grilled Chicken Salad"]

        prompt = fake_openai.messages[0]["content"]
        assert "Macros: 180g Protein / 300g Carbs / 80g Fat" in prompt
        assert "Meals Per Day: 2" in prompt
        assert "Dietary Preferences: None" in prompt

        # Generation alone stores nothing
        assert db_session.query(MealPlan).count() == 0

    def test_free_tier_blocked(self, client, make_user, auth_headers, fake_openai):
        resp = client.post("/v1/meals/generate", json=MEAL_REQUEST, headers=auth_headers(make_user()))
        assert resp.status_code == 403
        assert resp.json()["detail"] == "Upgrade required to access meal planner."

    def test_unparseable_reply_is_502(self, client, make_user, auth_headers, fake_openai):
        fake_openai.reply = "Eat well!"
        resp = client.post("/v1/meals/generate", json=MEAL_REQUEST, headers=auth_headers(make_user(tier="pro")))
        assert resp.status_code == 502

    @pytest.mark.parametrize("field", ["calories", "protein", "carbs", "fat"])
    def test_targets_must_be_positive(self, client, make_user, auth_headers, fake_openai, field):
        body = {**MEAL_REQUEST, field: 0}
        resp = client.post("/v1/meals/generate", json=body, headers=auth_headers(make_user(tier="pro")))
        assert resp.status_code == 422


class TestSavedMealPlans:
    def test_save_meal_plan(self, client, make_user, auth_headers, db_session):
        user = make_user()
        body = {
            "goal": "Fat Loss",
            "calories": 2000,
            "macros": {"protein": 160, "carbs": 180, "fat": 60},
            "meals": [{"name": "Greek Yogurt Bowl", "calories": 350}],
            "preferences": " Vegetarian ",
        }
        resp = client.post("/v1/meals", json=body, headers=auth_headers(user))
        assert resp.status_code == 201
        data = resp.json()
        assert data["user_id"] == str(user.id)
        assert data["macros"] == {"protein": 160, "carbs": 180, "fat": 60}
        assert data["preferences"] == "Vegetarian"
        assert data["meals"][0]["name"] == "Greek Yogurt Bowl"

        db_session.expire_all()
        assert db_session.query(MealPlan).filter(MealPlan.user_id == user.id).count() == 1

    def test_macros_required(self, client, make_user, auth_headers):
        body = {"goal": "Fat Loss", "calories": 2000, "macros": {"protein": 160}, "meals": []}
        resp = client.post("/v1/meals", json=body, headers=auth_headers(make_user()))
        assert resp.status_code == 422

    def test_list_newest_first_with_limit(self, client, make_user, auth_headers, db_session):
        user = make_user()
        other = make_user()
        now = datetime.now(timezone.utc)
        for days_ago, goal in ((2, "Cut"), (0, "Maintain"), (5, "Bulk")):
            db_session.add(MealPlan(
                user_id=user.id, goal=goal, calories=2200, meals=[],
                macros={"protein": 150, "carbs": 220, "fat": 70},
                created_at=now - timedelta(days=days_ago),
            ))
        db_session.add(MealPlan(user_id=other.id, goal="Other", calories=1800, meals=[], macros={}))
        db_session.commit()
        headers = auth_headers(user)

        plans = client.get("/v1/meals", headers=headers).json()
        assert [p["goal"] for p in plans] == ["Maintain", "Cut", "Bulk"]

        limited = client.get("/v1/meals", params={"limit": 2}, headers=headers).json()
        assert [p["goal"] for p in limited] == ["Maintain", "Cut"]
