from conftest import PASSWORD, create_user


def register(client, email="new@example.com", password=PASSWORD):
    return client.post("/register", json={"email": email, "password": password, "full_name": "New Person"})


def login(client, email="new@example.com", password=PASSWORD):
    return client.post("/login", json={"email": email, "password": password})


def test_register_and_login(client):
    r = register(client)
    assert r.status_code == 201
    assert r.json()["role"] == "customer"

    r = login(client)
    assert r.status_code == 200
    body = r.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["email"] == "new@example.com"

    me = client.get("/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.status_code == 200
    assert me.json()["full_name"] == "New Person"


def test_register_duplicate_email_is_case_insensitive(client):
    assert register(client).status_code == 201
    r = register(client, email="NEW@example.com")
    assert r.status_code == 400
    assert r.json()["detail"] == "Email already registered"


def test_login_wrong_password(client):
    register(client)
    r = login(client, password="wrong-password")
    assert r.status_code == 401


def test_logout_invalidates_token(client):
    register(client)
    token = login(client).json()["access_token"]
    headers = {"Authorization": f"Bearer {token}"}

    assert client.post("/logout", headers=headers).status_code == 204
    assert client.get("/me", headers=headers).status_code == 401

    # A fresh login works again
    new_token = login(client).json()["access_token"]
    assert client.get("/me", headers={"Authorization": f"Bearer {new_token}"}).status_code == 200


def test_missing_token_is_rejected(client):
    assert client.get("/me").status_code in (401, 403)


def test_profile_update_keeps_session(client, customer):
    _, headers = customer
    r = client.put("/me", json={"email": "renamed@example.com", "phone": "555-0101"}, headers=headers)
    assert r.status_code == 200
    assert r.json()["email"] == "renamed@example.com"
    assert client.get("/me", headers=headers).status_code == 200


def test_profile_update_rejects_taken_email(client, customer):
    create_user(email="other@example.com")
    _, headers = customer
    r = client.put("/me", json={"email": "other@example.com"}, headers=headers)
    assert r.status_code == 400


def test_avatar_upload(client, customer):
    user_id, headers = customer
    files = {"file": ("me.png", b"\x89PNG fake", "image/png")}
    r = client.post("/me/avatar", files=files, headers=headers)
    assert r.status_code == 200
    assert r.json()["avatar_url"].endswith(f"/uploads/user-avatars/avatar-{user_id}.png")


def test_avatar_upload_rejects_non_images(client, customer):
    _, headers = customer
    files = {"file": ("notes.txt", b"hello", "text/plain")}
    assert client.post("/me/avatar", files=files, headers=headers).status_code == 400


def test_non_admin_cannot_reach_back_office(client, customer):
    _, headers = customer
    r = client.get("/admin/users", headers=headers)
    assert r.status_code == 403
    assert client.get("/logs", headers=headers).status_code == 403
