from models import ProgressPhoto, User


def test_own_profile_includes_email(client, make_user, auth_headers):
    user = make_user(email="me@example.com")
    data = client.get(f"/v1/users/{user.id}", headers=auth_headers(user)).json()
    assert data["email"] == "me@example.com"
    assert data["profile_picture"] == ""


def test_other_profiles_hide_email(client, make_user, auth_headers):
    user = make_user(email="hidden@example.com", gym="Iron Temple")
    viewer = make_user()
    data = client.get(f"/v1/users/{user.id}", headers=auth_headers(viewer)).json()
    assert data["email"] is None
    assert data["gym"] == "Iron Temple"

    admin = make_user(role="admin")
    assert client.get(f"/v1/users/{user.id}", headers=auth_headers(admin)).json()["email"] == "hidden@example.com"


def test_update_profile_trims_text(client, make_user, auth_headers):
    user = make_user()
    resp = client.put(
        f"/v1/users/{user.id}",
        json={"username": "  lifter ", "goal": "Bulk", "best_lifts": {"squat": 180}},
        headers=auth_headers(user),
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["username"] == "lifter"
    assert data["goal"] == "Bulk"
    assert data["best_lifts"] == {"squat": 180}


def test_blank_username_rejected(client, make_user, auth_headers, db_session):
    user = make_user(username="keeper")
    resp = client.put(f"/v1/users/{user.id}", json={"username": "   "}, headers=auth_headers(user))
    assert resp.status_code == 422
    assert resp.json()["detail"] == "Username cannot be empty"

    db_session.expire_all()
    assert db_session.get(User, user.id).username == "keeper"


def test_avatar_and_picture_are_exclusive(client, make_user, auth_headers, db_session):
    user = make_user()
    headers = auth_headers(user)

    client.put(f"/v1/users/{user.id}", json={"avatar": 3}, headers=headers)
    data = client.put(f"/v1/users/{user.id}", json={"profile_picture": "https://cdn.test/me.jpg"}, headers=headers).json()
    assert data["profile_picture"] == "https://cdn.test/me.jpg"
    assert data["avatar"] is None

    data = client.put(f"/v1/users/{user.id}", json={"avatar": 5}, headers=headers).json()
    assert data["avatar"] == 5
    assert data["profile_picture"] == ""


def test_profile_update_cannot_change_tier(client, make_user, auth_headers, db_session):
    user = make_user()
    client.put(f"/v1/users/{user.id}", json={"tier": "elite", "role": "admin"}, headers=auth_headers(user))

    db_session.expire_all()
    refreshed = db_session.get(User, user.id)
    assert refreshed.tier == "free"
    assert refreshed.role == "user"


def test_cannot_edit_someone_else(client, make_user, auth_headers):
    user = make_user()
    other = make_user()
    resp = client.put(f"/v1/users/{user.id}", json={"username": "hacked"}, headers=auth_headers(other))
    assert resp.status_code == 403


def test_delete_account(client, make_user, auth_headers, db_session):
    user = make_user()
    user_id = user.id
    headers = auth_headers(user)
    resp = client.delete(f"/v1/users/{user_id}", headers=headers)
    assert resp.status_code == 200

    db_session.expire_all()
    assert db_session.get(User, user_id) is None
    assert client.get("/v1/auth/me", headers=headers).status_code == 401


def test_progress_photos(client, make_user, auth_headers, db_session):
    user = make_user()
    headers = auth_headers(user)

    resp = client.post(
        f"/v1/users/{user.id}/progress-photos",
        json={"image_url": "https://cdn.test/front.jpg", "view": "front"},
        headers=headers,
    )
    assert resp.status_code == 201

    photos = client.get(f"/v1/users/{user.id}/progress-photos", headers=headers).json()
    assert [p["view"] for p in photos] == ["front"]

    stranger = make_user()
    assert client.get(f"/v1/users/{user.id}/progress-photos", headers=auth_headers(stranger)).status_code == 403
    assert db_session.query(ProgressPhoto).count() == 1


def test_progress_photo_view_must_be_known(client, make_user, auth_headers):
    user = make_user()
    resp = client.post(
        f"/v1/users/{user.id}/progress-photos",
        json={"image_url": "https://cdn.test/x.jpg", "view": "top"},
        headers=auth_headers(user),
    )
    assert resp.status_code == 422


def test_report_user(client, make_user, auth_headers, db_session):
    reporter = make_user()
    target = make_user()
    resp = client.post(f"/v1/users/{target.id}/report", json={"reason": "Fake lifts"}, headers=auth_headers(reporter))
    assert resp.status_code == 200

    db_session.expire_all()
    refreshed = db_session.get(User, target.id)
    assert refreshed.flagged is True
    assert refreshed.flag_reason == "Fake lifts"


def test_cannot_report_self(client, make_user, auth_headers):
    user = make_user()
    resp = client.post(f"/v1/users/{user.id}/report", json={}, headers=auth_headers(user))
    assert resp.status_code == 400


def test_missing_user(client, make_user, auth_headers):
    resp = client.get("/v1/users/00000000-0000-0000-0000-000000000000", headers=auth_headers(make_user()))
    assert resp.status_code == 404
