import hashlib
import hmac
import json

import pytest

from core.config import settings
from core.security import verify_hmac_sha1
from models import RevenueCatEvent, User
from services.revenuecat_service import tier_for_entitlements


SECRET = "rc_webhook_secret"


def _sign(body: bytes, secret: str = SECRET) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha1).hexdigest()


@pytest.fixture
def rc_secret(monkeypatch):
    monkeypatch.setattr(settings, "REVENUECAT_WEBHOOK_SECRET", SECRET)


def _post(client, payload, signature=None):
    body = json.dumps(payload).encode("utf-8")
    headers = {"Content-Type": "application/json"}
    headers["X-RevenueCat-Signature"] = signature if signature is not None else _sign(body)
    return client.post("/v1/billing/webhooks/revenuecat", content=body, headers=headers)


def test_verify_hmac_sha1():
    body = b'{"event": {}}'
    assert verify_hmac_sha1(body, _sign(body), SECRET) is True
    assert verify_hmac_sha1(body, _sign(body).upper(), SECRET) is True
    assert verify_hmac_sha1(body, _sign(b"other"), SECRET) is False
    assert verify_hmac_sha1(body, None, SECRET) is False
    assert verify_hmac_sha1(body, "", SECRET) is False


@pytest.mark.parametrize(
    "entitlements,tier",
    [
        (["pro_access"], "pro"),
        (["elite_access"], "elite"),
        (["pro_access", "elite_access"], "elite"),
        (["something_else"], None),
        ([], None),
    ],
)
def test_tier_for_entitlements(entitlements, tier):
    assert tier_for_entitlements(entitlements) == tier


def test_webhook_unconfigured_is_503(client):
    resp = client.post("/v1/billing/webhooks/revenuecat", content=b"{}")
    assert resp.status_code == 503


def test_webhook_rejects_bad_signature(client, rc_secret, make_user, db_session):
    user = make_user()
    payload = {"event": {"id": "rc_1", "app_user_id": str(user.id), "entitlement_ids": ["elite_access"]}}

    resp = _post(client, payload, signature="deadbeef")
    assert resp.status_code == 401

    db_session.expire_all()
    assert db_session.get(User, user.id).tier == "free"


def test_webhook_rejects_invalid_json(client, rc_secret):
    body = b"not json"
    resp = client.post(
        "/v1/billing/webhooks/revenuecat",
        content=body,
        headers={"X-RevenueCat-Signature": _sign(body)},
    )
    assert resp.status_code == 400


def test_webhook_sets_tier_and_is_idempotent(client, rc_secret, make_user, db_session):
    user = make_user()
    payload = {
        "event": {
            "id": "rc_evt_1",
            "type": "INITIAL_PURCHASE",
            "app_user_id": str(user.id),
            "entitlement_ids": ["elite_access"],
        }
    }

    resp = _post(client, payload)
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "tier": "elite"}

    again = _post(client, payload)
    assert again.status_code == 200
    assert again.json()["idempotent"] is True

    db_session.expire_all()
    assert db_session.get(User, user.id).tier == "elite"
    assert db_session.query(RevenueCatEvent).count() == 1


def test_single_entitlement_id_field(client, rc_secret, make_user, db_session):
    user = make_user()
    payload = {"event": {"id": "rc_evt_2", "app_user_id": str(user.id), "entitlement_id": "pro_access"}}

    assert _post(client, payload).json()["tier"] == "pro"


def test_no_matching_entitlement_leaves_tier(client, rc_secret, make_user, db_session):
    user = make_user(tier="pro")
    payload = {"event": {"id": "rc_evt_3", "app_user_id": str(user.id), "entitlement_ids": ["legacy"]}}

    resp = _post(client, payload)
    assert resp.status_code == 200
    assert "no update performed" in resp.json()["message"]

    db_session.expire_all()
    assert db_session.get(User, user.id).tier == "pro"


def test_missing_app_user_id(client, rc_secret):
    resp = _post(client, {"event": {"id": "rc_evt_4", "entitlement_ids": ["pro_access"]}})
    assert resp.status_code == 400


def test_unknown_user_is_acknowledged(client, rc_secret):
    payload = {"event": {"id": "rc_evt_5", "app_user_id": "$RCAnonymousID:abc", "entitlement_ids": ["pro_access"]}}
    resp = _post(client, payload)
    assert resp.status_code == 200
    assert resp.json()["matched_user"] is False


def test_entitlements_lookup_requires_api_key(client, make_user, auth_headers):
    user = make_user()
    resp = client.get(f"/v1/users/{user.id}/entitlements", headers=auth_headers(user))
    assert resp.status_code == 503


def test_entitlements_lookup(client, make_user, auth_headers, monkeypatch):
    from services import revenuecat_service

    class _Resp:
        def raise_for_status(self):
            return None

        def json(self):
            return {"subscriber": {"entitlements": {"pro_access": {"expires_date": None}}}}

    monkeypatch.setattr(settings, "REVENUECAT_API_KEY", "rc_api_key")
    monkeypatch.setattr(revenuecat_service.requests, "get", lambda *a, **kw: _Resp())

    user = make_user()
    resp = client.get(f"/v1/users/{user.id}/entitlements", headers=auth_headers(user))
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "access": {"pro": True, "elite": False}}

    other = make_user()
    assert client.get(f"/v1/users/{user.id}/entitlements", headers=auth_headers(other)).status_code == 403
