from datetime import timedelta

import pytest

from models import AdminAuditEvent, Plan, User, WagerChallenge
from services.time_utils import utcnow


@pytest.fixture
def admin(make_user):
    return make_user(role="admin", username="mod")


def _challenge(db_session, creator, *, flagged=True):
    challenge = WagerChallenge(
        creator_id=creator.id,
        exercise="Squat",
        wager_xp=100,
        xp_pot=100,
        participants=[str(creator.id)],
        opponents=[],
        status="pending",
        expires_at=utcnow() + timedelta(hours=48),
        flagged=flagged,
    )
    db_session.add(challenge)
    db_session.commit()
    return challenge


def _plan(db_session, creator, title, *, sales=0, rating=None, is_public=True):
    plan = Plan(
        creator_id=creator.id, title=title, description="d", type="workout",
        duration_weeks=4, level="any", price=10, tags=["t"], schedule=[{}],
        sales=sales, rating=rating, is_public=is_public,
    )
    db_session.add(plan)
    db_session.commit()
    return plan


def test_admin_routes_require_admin_role(client, make_user, auth_headers):
    user = make_user()
    assert client.get("/v1/admin/", headers=auth_headers(user)).status_code == 403
    assert client.get("/v1/admin/challenges/flagged", headers=auth_headers(user)).status_code == 403
    assert client.get("/v1/admin/", headers={}).status_code == 401


def test_owner_role_is_admin(client, make_user, auth_headers):
    resp = client.get("/v1/admin/", headers=auth_headers(make_user(role="owner")))
    assert resp.json() == {"status": "ok", "role": "owner"}


def test_flagged_challenges_listed(client, admin, auth_headers, make_user, db_session):
    creator = make_user()
    flagged = _challenge(db_session, creator)
    _challenge(db_session, creator, flagged=False)

    items = client.get("/v1/admin/challenges/flagged", headers=auth_headers(admin)).json()
    assert [c["id"] for c in items] == [str(flagged.id)]


def test_remove_challenge_hides_it_and_audits(client, admin, auth_headers, make_user, db_session):
    creator = make_user()
    challenge = _challenge(db_session, creator)

    resp = client.post(
        f"/v1/admin/challenges/{challenge.id}/moderate",
        json={"action": "remove", "reason": "Edited video"},
        headers=auth_headers(admin),
    )
    assert resp.status_code == 200
    assert resp.json()["removed"] is True
    assert resp.json()["flagged"] is False

    assert client.get("/v1/admin/challenges/flagged", headers=auth_headers(admin)).json() == []
    assert client.get(f"/v1/wagers/{challenge.id}", headers=auth_headers(creator)).status_code == 404

    db_session.expire_all()
    event = db_session.query(AdminAuditEvent).one()
    assert event.action == "challenge.remove"
    assert event.actor_user_id == admin.id
    assert event.target_user_id == creator.id
    assert event.target_id == str(challenge.id)
    assert event.reason == "Edited video"


def test_approve_challenge_clears_flag(client, admin, auth_headers, make_user, db_session):
    challenge = _challenge(db_session, make_user())
    resp = client.post(
        f"/v1/admin/challenges/{challenge.id}/moderate",
        json={"action": "approve"},
        headers=auth_headers(admin),
    )
    assert resp.json()["flagged"] is False
    assert resp.json()["removed"] is False

    db_session.expire_all()
    assert db_session.query(AdminAuditEvent).one().action == "challenge.approve"


def test_unknown_moderation_action(client, admin, auth_headers, make_user, db_session):
    challenge = _challenge(db_session, make_user())
    resp = client.post(
        f"/v1/admin/challenges/{challenge.id}/moderate",
        json={"action": "delete"},
        headers=auth_headers(admin),
    )
    assert resp.status_code == 422


def test_report_then_ban_flow(client, admin, auth_headers, make_user, db_session):
    reporter = make_user()
    target = make_user()

    resp = client.post(f"/v1/users/{target.id}/report", json={"reason": "Spam"}, headers=auth_headers(reporter))
    assert resp.status_code == 200

    reported = client.get("/v1/admin/users/reported", headers=auth_headers(admin)).json()
    assert [u["id"] for u in reported] == [str(target.id)]
    assert reported[0]["flag_reason"] == "Spam"

    resp = client.post(
        f"/v1/admin/users/{target.id}/ban",
        json={"ban": True, "reason": "Spam"},
        headers=auth_headers(admin),
    )
    assert resp.status_code == 200
    assert resp.json()["is_blocked"] is True
    assert resp.json()["flagged"] is False

    # Banned accounts can no longer use their token
    assert client.get("/v1/auth/me", headers=auth_headers(target)).status_code == 403

    resp = client.post(f"/v1/admin/users/{target.id}/ban", json={"ban": False}, headers=auth_headers(admin))
    assert resp.json()["is_blocked"] is False

    db_session.expire_all()
    actions = sorted(e.action for e in db_session.query(AdminAuditEvent).all())
    assert actions == ["user.ban", "user.unban"]
    assert db_session.get(User, target.id).is_blocked is False


def test_admin_cannot_ban_self(client, admin, auth_headers):
    resp = client.post(f"/v1/admin/users/{admin.id}/ban", json={"ban": True}, headers=auth_headers(admin))
    assert resp.status_code == 400


def test_top_plans(client, admin, auth_headers, make_user, db_session):
    creator = make_user()
    _plan(db_session, creator, "Bestseller", sales=40, rating=4.0)
    _plan(db_session, creator, "Loved", sales=1, rating=4.9)
    _plan(db_session, creator, "Meh", sales=2, rating=3.0)
    _plan(db_session, creator, "Hidden", sales=100, is_public=False)

    titles = [p["title"] for p in client.get("/v1/admin/plans/top", headers=auth_headers(admin)).json()]
    assert titles == ["Bestseller", "Loved"]


def test_feature_plan_audits(client, admin, auth_headers, make_user, db_session):
    plan = _plan(db_session, make_user(), "Featured")
    resp = client.post(f"/v1/admin/plans/{plan.id}/feature", headers=auth_headers(admin))
    assert resp.status_code == 200
    assert resp.json()["featured"] is True

    db_session.expire_all()
    event = db_session.query(AdminAuditEvent).one()
    assert event.action == "plan.feature"
    assert event.target_id == str(plan.id)
