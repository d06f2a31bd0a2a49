import random
from datetime import timedelta

import pytest

from models import DailyChallenge, User, XPRecord
from services import daily_challenge
from services.time_utils import utcnow


class TestChallengeFields:
    def test_free_tier_gets_push_ups(self):
        fields = daily_challenge.build_challenge_fields("free")
        assert fields == {"kind": "reps", "exercise": "Push-ups", "target": 30, "xp_reward": 60}

    @pytest.mark.parametrize("tier,minimum", [("pro", 2000), ("elite", 3000)])
    def test_paid_tiers_get_volume_targets(self, tier, minimum):
        for seed in range(20):
            fields = daily_challenge.build_challenge_fields(tier, rng=random.Random(seed))
            assert fields["kind"] == "volume"
            assert minimum <= fields["target"] < minimum + 5000
            assert fields["xp_reward"] == fields["target"] // 20


def test_generate_replaces_previous(client, make_user, auth_headers, db_session):
    user = make_user(tier="elite")
    headers = auth_headers(user)

    first = client.post("/v1/daily-challenge", headers=headers)
    assert first.status_code == 200
    assert first.json()["kind"] == "volume"
    second = client.post("/v1/daily-challenge", headers=headers).json()

    db_session.expire_all()
    assert db_session.query(DailyChallenge).filter(DailyChallenge.user_id == user.id).count() == 1
    assert client.get("/v1/daily-challenge", headers=headers).json()["id"] == second["id"]


def test_get_without_challenge_is_null(client, make_user, auth_headers):
    assert client.get("/v1/daily-challenge", headers=auth_headers(make_user())).json() is None


def test_complete_awards_xp_once(client, make_user, auth_headers, db_session):
    user = make_user(xp=10)
    headers = auth_headers(user)
    client.post("/v1/daily-challenge", headers=headers)

    resp = client.post("/v1/daily-challenge/complete", headers=headers)
    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["xp_awarded"] == 60
    assert data["xp_total"] == 70
    assert data["challenge"]["completed"] is True

    again = client.post("/v1/daily-challenge/complete", headers=headers)
    assert again.status_code == 400

    db_session.expire_all()
    assert db_session.get(XPRecord, user.id).xp == 70


def test_complete_without_challenge(client, make_user, auth_headers):
    assert client.post("/v1/daily-challenge/complete", headers=auth_headers(make_user())).status_code == 404


def test_expired_challenge_cannot_be_completed(client, make_user, auth_headers, db_session):
    user = make_user()
    db_session.add(DailyChallenge(
        user_id=user.id,
        kind="reps",
        exercise="Push-ups",
        target=30,
        xp_reward=60,
        due_at=utcnow() - timedelta(minutes=5),
    ))
    db_session.commit()

    resp = client.post("/v1/daily-challenge/complete", headers=auth_headers(user))
    assert resp.status_code == 400


def test_generate_for_all_users_skips_blocked(db_session, make_user):
    make_user()
    make_user(tier="pro")
    make_user(is_blocked=True)

    counts = daily_challenge.generate_for_all_users(db_session)
    assert counts == {"generated": 2, "failed": 0}
    blocked_ids = [u.id for u in db_session.query(User).filter(User.is_blocked.is_(True))]
    assert db_session.query(DailyChallenge).filter(DailyChallenge.user_id.in_(blocked_ids)).count() == 0
