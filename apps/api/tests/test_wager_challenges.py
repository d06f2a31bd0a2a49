"""
Wager challenges: staking, acceptance, submissions, resolution and votes.

Video verification is stubbed: evaluate_video_url is replaced per test so
no clip is downloaded and no pose model runs.
"""
from datetime import timedelta
from uuid import UUID, uuid4

import pytest

from core.database import SessionLocal, engine
from core.exceptions import ConflictError
from main import app
from models import AdminAuditEvent, BattleStats, WagerChallenge, XPRecord, XPTransaction
from schemas import WagerCreate
from services import wager_service
from services.form_analysis import get_optional_form_analyzer
from services.time_utils import utcnow


@pytest.fixture(autouse=True)
def _no_pose_backend():
    app.dependency_overrides[get_optional_form_analyzer] = lambda: None
    yield
    app.dependency_overrides.pop(get_optional_form_analyzer, None)


@pytest.fixture
def verdicts(monkeypatch):
    """Map video_url -> verdict for paid-tier submissions."""
    table = {}
    monkeypatch.setattr(wager_service, "evaluate_video_url", lambda url, analyzer: table.get(url, "fail"))
    return table


@pytest.fixture
def creator(make_user):
    return make_user(tier="pro", xp=500, username="creator")


@pytest.fixture
def opponent(make_user):
    return make_user(tier="free", xp=300, username="opponent")


def _xp(db_session, user) -> int:
    db_session.expire_all()
    return db_session.get(XPRecord, user.id).xp


def _create(client, auth_headers, creator, opponents, **overrides):
    body = {
        "exercise": "Push-ups",
        "wager_xp": 100,
        "opponents": [str(o.id) for o in opponents],
        **overrides,
    }
    return client.post("/v1/wagers", json=body, headers=auth_headers(creator))


def _expire(db_session, challenge_id):
    db_session.expire_all()
    challenge = db_session.get(WagerChallenge, UUID(str(challenge_id)))
    challenge.expires_at = utcnow() - timedelta(minutes=1)
    db_session.commit()


@pytest.fixture
def active_challenge(client, auth_headers, creator, opponent):
    created = _create(client, auth_headers, creator, [opponent]).json()
    resp = client.post(f"/v1/wagers/{created['id']}/accept", headers=auth_headers(opponent))
    assert resp.status_code == 200
    return resp.json()


class TestCreateChallenge:
    def test_create_stakes_creator_xp(self, client, auth_headers, db_session, creator, opponent):
        resp = _create(client, auth_headers, creator, [opponent])
        assert resp.status_code == 201
        data = resp.json()
        assert data["status"] == "pending"
        assert data["xp_pot"] == 100
        assert data["participants"] == [str(creator.id)]
        assert data["opponents"] == [str(opponent.id)]
        assert _xp(db_session, creator) == 400

        tx = db_session.query(XPTransaction).filter(XPTransaction.user_id == creator.id).one()
        assert tx.amount == -100
        assert tx.reason == "challenge_entry"
        assert str(tx.challenge_id) == data["id"]

    def test_default_expiry_is_48_hours(self, client, auth_headers, creator, opponent):
        from datetime import datetime

        before = utcnow()
        data = _create(client, auth_headers, creator, [opponent]).json()
        expires = datetime.fromisoformat(data["expires_at"])
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=before.tzinfo)
        assert timedelta(hours=47, minutes=59) < expires - before < timedelta(hours=48, minutes=1)

    @pytest.mark.parametrize("stake", [49, 501, 0])
    def test_stake_out_of_range_rejected(self, client, auth_headers, db_session, creator, opponent, stake):
        resp = _create(client, auth_headers, creator, [opponent], wager_xp=stake)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Wager must be between 50 and 500 XP"
        assert _xp(db_session, creator) == 500

    @pytest.mark.parametrize("stake", [50, 500])
    def test_stake_bounds_accepted(self, client, auth_headers, creator, opponent, stake):
        resp = _create(client, auth_headers, creator, [opponent], wager_xp=stake)
        assert resp.status_code == 201
        assert resp.json()["xp_pot"] == stake

    def test_insufficient_xp_creates_nothing(self, client, auth_headers, db_session, make_user, opponent):
        poor = make_user(xp=60)
        resp = _create(client, auth_headers, poor, [opponent], wager_xp=100)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Insufficient XP"

        db_session.expire_all()
        assert db_session.query(WagerChallenge).count() == 0
        assert _xp(db_session, poor) == 60

    def test_self_only_opponent_rejected(self, client, auth_headers, creator):
        resp = _create(client, auth_headers, creator, [creator])
        assert resp.status_code == 400

    def test_unknown_opponent_is_404(self, client, auth_headers, creator):
        body = {"exercise": "Squat", "wager_xp": 100, "opponents": [str(uuid4())]}
        resp = client.post("/v1/wagers", json=body, headers=auth_headers(creator))
        assert resp.status_code == 404

    def test_list_includes_invited_challenges(self, client, auth_headers, creator, opponent, make_user):
        _create(client, auth_headers, creator, [opponent])
        outsider = make_user(xp=0)

        assert len(client.get("/v1/wagers", headers=auth_headers(opponent)).json()) == 1
        assert len(client.get("/v1/wagers", headers=auth_headers(creator)).json()) == 1
        assert client.get("/v1/wagers", headers=auth_headers(outsider)).json() == []


class TestAcceptChallenge:
    def test_accept_activates_and_grows_pot(self, db_session, creator, opponent, active_challenge):
        assert active_challenge["status"] == "active"
        assert active_challenge["xp_pot"] == 200
        assert active_challenge["participants"] == [str(creator.id), str(opponent.id)]
        assert _xp(db_session, opponent) == 200

    def test_uninvited_user_cannot_accept(self, client, auth_headers, creator, opponent, make_user):
        created = _create(client, auth_headers, creator, [opponent]).json()
        outsider = make_user(xp=500)
        resp = client.post(f"/v1/wagers/{created['id']}/accept", headers=auth_headers(outsider))
        assert resp.status_code == 403

    def test_accept_twice_rejected(self, client, auth_headers, opponent, active_challenge):
        resp = client.post(f"/v1/wagers/{active_challenge['id']}/accept", headers=auth_headers(opponent))
        assert resp.status_code == 400

    def test_accept_without_enough_xp(self, client, auth_headers, db_session, creator, make_user):
        broke = make_user(xp=20)
        created = _create(client, auth_headers, creator, [broke]).json()

        resp = client.post(f"/v1/wagers/{created['id']}/accept", headers=auth_headers(broke))
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Insufficient XP"

        db_session.expire_all()
        challenge = db_session.get(WagerChallenge, UUID(created["id"]))
        assert challenge.status == "pending"
        assert challenge.xp_pot == 100
        assert _xp(db_session, broke) == 20

    def test_expired_challenge_cannot_be_accepted(self, client, auth_headers, db_session, creator, opponent):
        created = _create(client, auth_headers, creator, [opponent]).json()
        _expire(db_session, created["id"])
        resp = client.post(f"/v1/wagers/{created['id']}/accept", headers=auth_headers(opponent))
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Challenge is no longer open"


class TestSubmitResult:
    def test_free_tier_gets_no_ai_verdict(self, client, auth_headers, opponent, active_challenge):
        resp = client.post(
            f"/v1/wagers/{active_challenge['id']}/submit",
            json={"video_url": "https://cdn.test/opp.mp4"},
            headers=auth_headers(opponent),
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["verdict"] is None
        assert data["verified_by_ai"] is False
        assert data["feedback"] == "AI analysis requires Pro or Elite tier."

    def test_paid_tier_pass_is_verified(self, client, auth_headers, creator, active_challenge, verdicts):
        verdicts["https://cdn.test/creator.mp4"] = "pass"
        resp = client.post(
            f"/v1/wagers/{active_challenge['id']}/submit",
            json={"video_url": "https://cdn.test/creator.mp4", "notes": "30 clean reps"},
            headers=auth_headers(creator),
        )
        data = resp.json()
        assert data["verdict"] == "pass"
        assert data["verified_by_ai"] is True
        assert data["feedback"] == "Form verified by AI."

    def test_flagged_verdict_flags_challenge(self, client, auth_headers, db_session, creator, active_challenge, verdicts):
        verdicts["https://cdn.test/blurry.mp4"] = "flagged"
        resp = client.post(
            f"/v1/wagers/{active_challenge['id']}/submit",
            json={"video_url": "https://cdn.test/blurry.mp4"},
            headers=auth_headers(creator),
        )
        assert resp.json()["verified_by_ai"] is False

        db_session.expire_all()
        assert db_session.get(WagerChallenge, UUID(active_challenge["id"])).flagged is True

    def test_resubmission_replaces_previous(self, client, auth_headers, creator, active_challenge, verdicts):
        verdicts["https://cdn.test/second.mp4"] = "pass"
        path = f"/v1/wagers/{active_challenge['id']}/submit"
        client.post(path, json={"video_url": "https://cdn.test/first.mp4"}, headers=auth_headers(creator))
        client.post(path, json={"video_url": "https://cdn.test/second.mp4"}, headers=auth_headers(creator))

        challenge = client.get(f"/v1/wagers/{active_challenge['id']}", headers=auth_headers(creator)).json()
        assert len(challenge["submissions"]) == 1
        assert challenge["submissions"][0]["video_url"] == "https://cdn.test/second.mp4"

    def test_non_participant_cannot_submit(self, client, auth_headers, make_user, active_challenge):
        outsider = make_user()
        resp = client.post(
            f"/v1/wagers/{active_challenge['id']}/submit",
            json={"video_url": "https://cdn.test/x.mp4"},
            headers=auth_headers(outsider),
        )
        assert resp.status_code == 403

    def test_cannot_submit_after_expiry(self, client, auth_headers, db_session, opponent, active_challenge):
        _expire(db_session, active_challenge["id"])
        resp = client.post(
            f"/v1/wagers/{active_challenge['id']}/submit",
            json={"video_url": "https://cdn.test/late.mp4"},
            headers=auth_headers(opponent),
        )
        assert resp.status_code == 400


class TestResolveChallenge:
    def _submit(self, client, auth_headers, challenge_id, user, url):
        resp = client.post(
            f"/v1/wagers/{challenge_id}/submit",
            json={"video_url": url},
            headers=auth_headers(user),
        )
        assert resp.status_code == 200

    def test_verified_submitter_takes_pot(
        self, client, auth_headers, db_session, creator, opponent, active_challenge, verdicts
    ):
        cid = active_challenge["id"]
        verdicts["https://cdn.test/win.mp4"] = "pass"
        self._submit(client, auth_headers, cid, creator, "https://cdn.test/win.mp4")
        self._submit(client, auth_headers, cid, opponent, "https://cdn.test/opp.mp4")
        _expire(db_session, cid)

        resp = client.post(f"/v1/wagers/{cid}/resolve", headers=auth_headers(opponent))
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "resolved"
        assert data["winner_id"] == str(creator.id)
        assert data["xp_pot"] == 0
        assert data["winning_details"]["video_url"] == "https://cdn.test/win.mp4"
        assert data["winning_details"]["verified_by_ai"] is True

        assert _xp(db_session, creator) == 600
        assert _xp(db_session, opponent) == 200

        winner_stats = db_session.get(BattleStats, creator.id)
        loser_stats = db_session.get(BattleStats, opponent.id)
        assert (winner_stats.wins, winner_stats.current_streak, winner_stats.best_streak) == (1, 1, 1)
        assert (loser_stats.losses, loser_stats.current_streak) == (1, 0)

        stats = client.get(f"/v1/wagers/battle-stats/{creator.id}", headers=auth_headers(creator)).json()
        assert stats["wins"] == 1

    def test_no_submissions_refunds_everyone(self, client, auth_headers, db_session, creator, opponent, active_challenge):
        cid = active_challenge["id"]
        _expire(db_session, cid)

        data = client.post(f"/v1/wagers/{cid}/resolve", headers=auth_headers(creator)).json()
        assert data["status"] == "no_winner"
        assert data["winner_id"] is None
        assert data["xp_pot"] == 0
        assert _xp(db_session, creator) == 500
        assert _xp(db_session, opponent) == 300

        refunds = db_session.query(XPTransaction).filter(XPTransaction.reason == "challenge_refund").count()
        assert refunds == 2

    def test_unverified_submissions_leave_pot_held(
        self, client, auth_headers, db_session, opponent, active_challenge
    ):
        cid = active_challenge["id"]
        self._submit(client, auth_headers, cid, opponent, "https://cdn.test/opp.mp4")
        _expire(db_session, cid)

        data = client.post(f"/v1/wagers/{cid}/resolve", headers=auth_headers(opponent)).json()
        assert data["status"] == "unresolved"
        assert data["xp_pot"] == 200
        assert data["winner_id"] is None

    def test_split_pot_between_verified_submitters(
        self, client, auth_headers, db_session, make_user, verdicts
    ):
        a = make_user(tier="elite", xp=500)
        b = make_user(tier="pro", xp=500)
        created = _create(client, auth_headers, a, [b], winner_takes_all=False, wager_xp=75).json()
        cid = created["id"]
        client.post(f"/v1/wagers/{cid}/accept", headers=auth_headers(b))

        verdicts["https://cdn.test/a.mp4"] = "pass"
        verdicts["https://cdn.test/b.mp4"] = "pass"
        self._submit(client, auth_headers, cid, b, "https://cdn.test/b.mp4")
        self._submit(client, auth_headers, cid, a, "https://cdn.test/a.mp4")
        _expire(db_session, cid)

        data = client.post(f"/v1/wagers/{cid}/resolve", headers=auth_headers(a)).json()
        # Join order decides the winner, not submission order
        assert data["winner_id"] == str(a.id)
        assert _xp(db_session, a) == 500
        assert _xp(db_session, b) == 500

    def test_cannot_resolve_before_expiry(self, client, auth_headers, creator, active_challenge):
        resp = client.post(f"/v1/wagers/{active_challenge['id']}/resolve", headers=auth_headers(creator))
        assert resp.status_code == 400

    def test_second_resolve_conflicts(self, client, auth_headers, db_session, creator, active_challenge):
        cid = active_challenge["id"]
        _expire(db_session, cid)
        assert client.post(f"/v1/wagers/{cid}/resolve", headers=auth_headers(creator)).status_code == 200

        resp = client.post(f"/v1/wagers/{cid}/resolve", headers=auth_headers(creator))
        assert resp.status_code == 409
        assert _xp(db_session, creator) == 500

    def test_outsider_cannot_resolve(self, client, auth_headers, db_session, make_user, active_challenge):
        _expire(db_session, active_challenge["id"])
        outsider = make_user()
        resp = client.post(f"/v1/wagers/{active_challenge['id']}/resolve", headers=auth_headers(outsider))
        assert resp.status_code == 403

    def test_admin_can_resolve(self, client, auth_headers, db_session, make_user, active_challenge):
        _expire(db_session, active_challenge["id"])
        admin = make_user(role="admin")
        resp = client.post(f"/v1/wagers/{active_challenge['id']}/resolve", headers=auth_headers(admin))
        assert resp.status_code == 200


def test_resolve_expired_challenges_sweep(db_session, make_user):
    creator = make_user(xp=500)
    opponent = make_user(xp=500)
    short = wager_service.create_challenge(
        db_session, creator, WagerCreate(exercise="Squat", wager_xp=50, opponents=[opponent.id], duration_hours=1)
    )
    long = wager_service.create_challenge(
        db_session, creator, WagerCreate(exercise="Bench", wager_xp=50, opponents=[opponent.id], duration_hours=72)
    )

    counts = wager_service.resolve_expired_challenges(db_session, now=utcnow() + timedelta(hours=2))
    assert counts == {"checked": 1, "resolved": 1, "failed": 0}

    db_session.expire_all()
    assert db_session.get(WagerChallenge, short.id).status == "no_winner"
    assert db_session.get(WagerChallenge, long.id).status == "pending"
    assert db_session.get(XPRecord, creator.id).xp == 450


class TestVotes:
    def test_vote_and_tally(self, client, auth_headers, creator, opponent, active_challenge):
        cid = active_challenge["id"]
        resp = client.post(f"/v1/wagers/{cid}/vote", json={"voted_for": str(opponent.id)}, headers=auth_headers(creator))
        assert resp.status_code == 200
        assert resp.json()["votes"] == {str(opponent.id): 1}
        assert resp.json()["total"] == 1

        tally = client.get(f"/v1/wagers/{cid}/votes", headers=auth_headers(opponent)).json()
        assert tally["total"] == 1

    def test_duplicate_vote_conflicts(self, client, auth_headers, creator, opponent, active_challenge):
        path = f"/v1/wagers/{active_challenge['id']}/vote"
        client.post(path, json={"voted_for": str(opponent.id)}, headers=auth_headers(creator))
        resp = client.post(path, json={"voted_for": str(opponent.id)}, headers=auth_headers(creator))
        assert resp.status_code == 409

    def test_self_vote_rejected(self, client, auth_headers, creator, active_challenge):
        resp = client.post(
            f"/v1/wagers/{active_challenge['id']}/vote",
            json={"voted_for": str(creator.id)},
            headers=auth_headers(creator),
        )
        assert resp.status_code == 400

    def test_outsider_cannot_vote(self, client, auth_headers, make_user, opponent, active_challenge):
        outsider = make_user()
        resp = client.post(
            f"/v1/wagers/{active_challenge['id']}/vote",
            json={"voted_for": str(opponent.id)},
            headers=auth_headers(outsider),
        )
        assert resp.status_code == 403

    def test_vote_for_non_participant_rejected(self, client, auth_headers, make_user, creator, active_challenge):
        bystander = make_user()
        resp = client.post(
            f"/v1/wagers/{active_challenge['id']}/vote",
            json={"voted_for": str(bystander.id)},
            headers=auth_headers(creator),
        )
        assert resp.status_code == 400

    def test_voting_closed_after_resolution(self, client, auth_headers, db_session, creator, opponent, active_challenge):
        cid = active_challenge["id"]
        _expire(db_session, cid)
        client.post(f"/v1/wagers/{cid}/resolve", headers=auth_headers(creator))

        resp = client.post(f"/v1/wagers/{cid}/vote", json={"voted_for": str(opponent.id)}, headers=auth_headers(creator))
        assert resp.status_code == 400


@pytest.fixture
def unresolved_challenge(client, auth_headers, db_session, opponent, active_challenge):
    """Opponent (free tier, no AI verdict) submitted; resolution held the pot."""
    cid = active_challenge["id"]
    client.post(f"/v1/wagers/{cid}/submit", json={"video_url": "https://cdn.test/opp.mp4"}, headers=auth_headers(opponent))
    _expire(db_session, cid)
    data = client.post(f"/v1/wagers/{cid}/resolve", headers=auth_headers(opponent)).json()
    assert data["status"] == "unresolved"
    return data


@pytest.fixture
def admin(make_user):
    return make_user(role="admin", username="mod")


class TestAdminSettlement:
    def test_remove_open_challenge_refunds_stakes(
        self, client, auth_headers, db_session, admin, creator, opponent, active_challenge
    ):
        cid = active_challenge["id"]
        resp = client.post(
            f"/v1/admin/challenges/{cid}/moderate",
            json={"action": "remove", "reason": "Spam"},
            headers=auth_headers(admin),
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["removed"] is True
        assert data["status"] == "no_winner"
        assert data["xp_pot"] == 0

        assert _xp(db_session, creator) == 500
        assert _xp(db_session, opponent) == 300
        refunds = db_session.query(XPTransaction).filter(XPTransaction.reason == "challenge_refund").count()
        assert refunds == 2

        # Removed challenges are never picked up by the sweep
        counts = wager_service.resolve_expired_challenges(db_session, now=utcnow() + timedelta(hours=49))
        assert counts["checked"] == 0

    def test_remove_unresolved_challenge_refunds_stakes(
        self, client, auth_headers, db_session, admin, creator, opponent, unresolved_challenge
    ):
        resp = client.post(
            f"/v1/admin/challenges/{unresolved_challenge['id']}/moderate",
            json={"action": "remove"},
            headers=auth_headers(admin),
        )
        assert resp.json()["xp_pot"] == 0
        assert _xp(db_session, creator) == 500
        assert _xp(db_session, opponent) == 300

    def test_removing_twice_refunds_once(self, client, auth_headers, db_session, admin, creator, active_challenge):
        path = f"/v1/admin/challenges/{active_challenge['id']}/moderate"
        client.post(path, json={"action": "remove"}, headers=auth_headers(admin))
        assert client.post(path, json={"action": "remove"}, headers=auth_headers(admin)).status_code == 200
        assert _xp(db_session, creator) == 500

    def test_remove_settled_challenge_leaves_balances(
        self, client, auth_headers, db_session, admin, creator, opponent, active_challenge
    ):
        cid = active_challenge["id"]
        _expire(db_session, cid)
        client.post(f"/v1/wagers/{cid}/resolve", headers=auth_headers(creator))

        client.post(f"/v1/admin/challenges/{cid}/moderate", json={"action": "remove"}, headers=auth_headers(admin))
        assert _xp(db_session, creator) == 500
        assert _xp(db_session, opponent) == 300
        refunds = db_session.query(XPTransaction).filter(XPTransaction.reason == "challenge_refund").count()
        assert refunds == 2

    def test_settle_without_winner_refunds(
        self, client, auth_headers, db_session, admin, creator, opponent, unresolved_challenge
    ):
        cid = unresolved_challenge["id"]
        resp = client.post(
            f"/v1/admin/challenges/{cid}/settle",
            json={"reason": "Both videos unclear"},
            headers=auth_headers(admin),
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "no_winner"
        assert data["xp_pot"] == 0
        assert data["winner_id"] is None
        assert _xp(db_session, creator) == 500
        assert _xp(db_session, opponent) == 300

        event = db_session.query(AdminAuditEvent).one()
        assert event.action == "challenge.settle"
        assert event.target_id == cid
        assert event.reason == "Both videos unclear"

    def test_settle_awards_pot_to_chosen_participant(
        self, client, auth_headers, db_session, admin, creator, opponent, unresolved_challenge
    ):
        cid = unresolved_challenge["id"]
        resp = client.post(
            f"/v1/admin/challenges/{cid}/settle",
            json={"winner_id": str(opponent.id)},
            headers=auth_headers(admin),
        )
        data = resp.json()
        assert data["status"] == "resolved"
        assert data["winner_id"] == str(opponent.id)
        assert data["xp_pot"] == 0
        assert data["winning_details"]["video_url"] == "https://cdn.test/opp.mp4"

        assert _xp(db_session, opponent) == 400
        assert _xp(db_session, creator) == 400
        assert db_session.get(BattleStats, opponent.id).wins == 1
        assert db_session.get(BattleStats, creator.id).losses == 1

    def test_settle_only_unresolved(self, client, auth_headers, admin, active_challenge):
        resp = client.post(f"/v1/admin/challenges/{active_challenge['id']}/settle", json={}, headers=auth_headers(admin))
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Only unresolved challenges can be settled"

    def test_settle_winner_must_be_participant(
        self, client, auth_headers, db_session, admin, make_user, creator, unresolved_challenge
    ):
        resp = client.post(
            f"/v1/admin/challenges/{unresolved_challenge['id']}/settle",
            json={"winner_id": str(make_user().id)},
            headers=auth_headers(admin),
        )
        assert resp.status_code == 400

        db_session.expire_all()
        challenge = db_session.get(WagerChallenge, UUID(unresolved_challenge["id"]))
        assert challenge.status == "unresolved"
        assert challenge.xp_pot == 200

    def test_settle_requires_admin(self, client, auth_headers, creator, unresolved_challenge):
        resp = client.post(f"/v1/admin/challenges/{unresolved_challenge['id']}/settle", json={}, headers=auth_headers(creator))
        assert resp.status_code == 403


@pytest.fixture
def foreign_keys_enforced(db_session):
    """SQLite only enforces FOREIGN KEY and ON DELETE CASCADE when switched on."""
    db_session.commit()
    with engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA foreign_keys=ON")
    yield
    db_session.rollback()
    with engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA foreign_keys=OFF")


class TestDeletedParticipants:
    def test_sweep_refunds_remaining_participants(
        self, db_session, creator, opponent, active_challenge, foreign_keys_enforced
    ):
        opponent_id = opponent.id
        db_session.delete(opponent)
        db_session.commit()

        counts = wager_service.resolve_expired_challenges(db_session, now=utcnow() + timedelta(hours=49))
        assert counts == {"checked": 1, "resolved": 1, "failed": 0}

        db_session.expire_all()
        challenge = db_session.get(WagerChallenge, UUID(active_challenge["id"]))
        assert challenge.status == "no_winner"
        assert challenge.xp_pot == 0
        assert _xp(db_session, creator) == 500
        assert db_session.get(XPRecord, opponent_id) is None

    def test_sweep_pays_winner_when_opponent_deleted(
        self, client, auth_headers, db_session, creator, opponent, active_challenge, verdicts, foreign_keys_enforced
    ):
        cid = active_challenge["id"]
        verdicts["https://cdn.test/win.mp4"] = "pass"
        resp = client.post(f"/v1/wagers/{cid}/submit", json={"video_url": "https://cdn.test/win.mp4"}, headers=auth_headers(creator))
        assert resp.status_code == 200

        opponent_id = opponent.id
        db_session.delete(opponent)
        db_session.commit()

        counts = wager_service.resolve_expired_challenges(db_session, now=utcnow() + timedelta(hours=49))
        assert counts["resolved"] == 1

        db_session.expire_all()
        assert db_session.get(WagerChallenge, UUID(cid)).winner_id == creator.id
        assert _xp(db_session, creator) == 600
        assert db_session.get(BattleStats, creator.id).wins == 1
        assert db_session.get(BattleStats, opponent_id) is None


def test_stale_version_on_accept_conflicts(db_session, creator, opponent, monkeypatch):
    challenge = wager_service.create_challenge(
        db_session, creator, WagerCreate(exercise="Squat", wager_xp=100, opponents=[opponent.id])
    )
    real_adjust_xp = wager_service.adjust_xp

    def adjust_after_concurrent_edit(db, *args, **kwargs):
        # Another writer commits between our locked read and our write
        with SessionLocal() as other:
            other.query(WagerChallenge).filter(WagerChallenge.id == challenge.id).update(
                {WagerChallenge.version: WagerChallenge.version + 1}, synchronize_session=False
            )
            other.commit()
        return real_adjust_xp(db, *args, **kwargs)

    monkeypatch.setattr(wager_service, "adjust_xp", adjust_after_concurrent_edit)

    with pytest.raises(ConflictError) as exc_info:
        wager_service.accept_challenge(db_session, opponent, challenge.id)
    assert exc_info.value.status_code == 409

    db_session.expire_all()
    refreshed = db_session.get(WagerChallenge, challenge.id)
    assert refreshed.participants == [str(creator.id)]
    assert refreshed.xp_pot == 100
    assert refreshed.status == "pending"
    assert _xp(db_session, opponent) == 300
    assert db_session.query(XPTransaction).filter(XPTransaction.user_id == opponent.id).count() == 0
