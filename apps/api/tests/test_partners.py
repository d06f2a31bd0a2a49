from uuid import UUID

from models import PartnerSlot


def _slot(client, headers, time_slot="18:00", gym_id="gym-1", **extra):
    body = {"gym_id": gym_id, "gym_name": "Iron Temple", "time_slot": time_slot, **extra}
    return client.post("/v1/partners/slots", json=body, headers=headers)


def test_create_slot_adds_creator_as_participant(client, make_user, auth_headers):
    user = make_user(username="sam", tier="pro")
    resp = _slot(client, auth_headers(user), note="Leg day")
    assert resp.status_code == 201
    data = resp.json()
    assert data["participants"] == [str(user.id)]
    assert data["username"] == "sam"
    assert data["tier"] == "pro"
    assert data["note"] == "Leg day"


def test_username_falls_back_to_default(client, make_user, auth_headers):
    user = make_user(username=None)
    assert _slot(client, auth_headers(user)).json()["username"] == "REPZ User"


def test_time_slot_must_be_24h(client, make_user, auth_headers):
    headers = auth_headers(make_user())
    assert _slot(client, headers, time_slot="25:00").status_code == 422
    assert _slot(client, headers, time_slot="6pm").status_code == 422


def test_list_slots_sorted_by_time(client, make_user, auth_headers):
    headers = auth_headers(make_user())
    _slot(client, headers, "19:30")
    _slot(client, headers, "07:00")
    _slot(client, headers, "12:00", gym_id="gym-2")

    slots = client.get("/v1/partners/slots", params={"gym_id": "gym-1"}, headers=headers).json()
    assert [s["time_slot"] for s in slots] == ["07:00", "19:30"]


def test_join_and_duplicate_join(client, make_user, auth_headers):
    owner = make_user()
    partner = make_user()
    slot_id = _slot(client, auth_headers(owner)).json()["id"]

    resp = client.post(f"/v1/partners/slots/{slot_id}/join", headers=auth_headers(partner))
    assert resp.status_code == 200
    assert resp.json()["participants"] == [str(owner.id), str(partner.id)]

    again = client.post(f"/v1/partners/slots/{slot_id}/join", headers=auth_headers(partner))
    assert again.status_code == 409


def test_join_missing_slot(client, make_user, auth_headers):
    resp = client.post(
        "/v1/partners/slots/00000000-0000-0000-0000-000000000000/join",
        headers=auth_headers(make_user()),
    )
    assert resp.status_code == 404


def test_leave_keeps_slot_until_last_participant(client, make_user, auth_headers, db_session):
    owner = make_user()
    partner = make_user()
    slot_id = _slot(client, auth_headers(owner)).json()["id"]
    client.post(f"/v1/partners/slots/{slot_id}/join", headers=auth_headers(partner))

    resp = client.post(f"/v1/partners/slots/{slot_id}/leave", headers=auth_headers(owner))
    assert resp.json() == {"success": True, "slot_deleted": False}

    resp = client.post(f"/v1/partners/slots/{slot_id}/leave", headers=auth_headers(partner))
    assert resp.json() == {"success": True, "slot_deleted": True}

    db_session.expire_all()
    assert db_session.get(PartnerSlot, UUID(slot_id)) is None


def test_leave_when_not_a_participant(client, make_user, auth_headers):
    slot_id = _slot(client, auth_headers(make_user())).json()["id"]
    resp = client.post(f"/v1/partners/slots/{slot_id}/leave", headers=auth_headers(make_user()))
    assert resp.status_code == 400


def test_matches_within_an_hour_excluding_own(client, make_user, auth_headers):
    me = make_user()
    other = make_user()
    joined = make_user()

    _slot(client, auth_headers(me), "18:00")
    _slot(client, auth_headers(other), "17:15")
    _slot(client, auth_headers(other), "19:45")
    _slot(client, auth_headers(other), "20:00")
    _slot(client, auth_headers(other), "18:00", gym_id="gym-2")
    already_in = _slot(client, auth_headers(joined), "18:30").json()["id"]
    client.post(f"/v1/partners/slots/{already_in}/join", headers=auth_headers(me))

    resp = client.get(
        "/v1/partners/matches",
        params={"gym_id": "gym-1", "time_slot": "18:00"},
        headers=auth_headers(me),
    )
    assert resp.status_code == 200
    assert sorted(s["time_slot"] for s in resp.json()) == ["17:15", "19:45"]
