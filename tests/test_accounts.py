import asyncio

import jwt

import auth
from config import settings
from database import MeterReading, Notification, SessionLocal, User
from tests.conftest import make_account, make_reading, role_id


def _new_user(**overrides):
    body = {
        "username": "ana",
        "password": "tubig-2026",
        "role_id": role_id("consumer"),
        "purok": "Purok 1",
    }
    body.update(overrides)
    return body


def test_create_user(client):
    response = client.post("/api/users", json=_new_user())

    assert response.status_code == 201
    user = response.json()["user"]
    assert user["username"] == "ana"
    assert user["purok"] == "Purok 1"
    assert user["role"] == {"name": "consumer"}
    assert "password" not in user
    with SessionLocal() as db:
        stored = db.get(User, user["id"])
        assert stored.password != "tubig-2026"


def test_duplicate_username_conflicts(client):
    assert client.post("/api/users", json=_new_user()).status_code == 201

    response = client.post("/api/users", json=_new_user(password="other"))

    assert response.status_code == 409
    assert response.json() == {"success": False, "message": "Username already exists"}
    with SessionLocal() as db:
        assert db.query(User).filter(User.username == "ana").count() == 1


def test_create_user_requires_fields(client):
    response = client.post("/api/users", json={"username": "ana"})
    assert response.status_code == 400
    assert response.json()["message"] == "Missing required fields: username, password, role_id"


def test_create_user_with_unknown_role(client):
    response = client.post("/api/users", json=_new_user(role_id=77))
    assert response.status_code == 404


def test_list_users_sorted_by_username(client):
    make_account(username="zeny")
    make_account(username="ben", role="admin")

    users = client.get("/api/users").json()

    assert [(u["username"], u["role"]["name"]) for u in users] == [
        ("ben", "admin"),
        ("zeny", "consumer"),
    ]


def test_get_user(client, account_id):
    response = client.get(f"/api/users/{account_id}")
    assert response.status_code == 200
    assert response.json()["username"] == "juan"

    missing = client.get("/api/users/999")
    assert missing.status_code == 404
    assert missing.json()["message"] == "User not found"


def test_update_user_rehashes_password(client, account_id):
    response = client.put(
        f"/api/users/{account_id}",
        json={"password": "new-secret", "purok": None, "role_id": role_id("admin")},
    )

    assert response.status_code == 200
    user = response.json()["user"]
    assert user["username"] == "juan"
    assert user["purok"] is None
    assert user["role"]["name"] == "admin"

    old = client.post("/api/login", json={"username": "juan", "password": "secret123"})
    new = client.post("/api/login", json={"username": "juan", "password": "new-secret"})
    assert old.status_code == 401
    assert new.status_code == 200


def test_update_keeps_omitted_fields(client, account_id):
    response = client.put(f"/api/users/{account_id}", json={"username": "juan.d"})

    user = response.json()["user"]
    assert user["username"] == "juan.d"
    assert user["purok"] == "Purok 3"


def test_update_to_taken_username_conflicts(client, account_id):
    make_account(username="rosa")

    response = client.put(f"/api/users/{account_id}", json={"username": "rosa"})

    assert response.status_code == 409
    assert client.get(f"/api/users/{account_id}").json()["username"] == "juan"


def test_update_missing_user(client):
    assert client.put("/api/users/999", json={"purok": "x"}).status_code == 404


def test_delete_user_removes_their_records(client, account_id):
    reading_id = make_reading(account_id)
    client.post(
        "/api/bills",
        json={
            "user_id": account_id,
            "meter_reading_id": reading_id,
            "amount_due": 10,
            "due_date": "2026-12-01",
        },
    )

    response = client.delete(f"/api/users/{account_id}")

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "User deleted successfully"}
    assert client.get(f"/api/users/{account_id}").status_code == 404
    with SessionLocal() as db:
        assert db.query(MeterReading).count() == 0
        assert db.query(Notification).count() == 0
    assert client.delete(f"/api/users/{account_id}").status_code == 404


def test_login_returns_token_and_public_fields(client, account_id):
    response = client.post("/api/login", json={"username": "juan", "password": "secret123"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["user"] == {
        "id": account_id,
        "username": "juan",
        "role": "consumer",
        "purok": "Purok 3",
    }
    claims = jwt.decode(
        body["token"], settings.jwt_secret, algorithms=[settings.jwt_algorithm]
    )
    assert claims["userId"] == account_id
    assert claims["username"] == "juan"
    assert claims["role"] == "consumer"
    assert "exp" in claims


def test_login_rejects_bad_credentials(client, account_id):
    wrong = client.post("/api/login", json={"username": "juan", "password": "nope"})
    unknown = client.post("/api/login", json={"username": "ghost", "password": "nope"})
    assert wrong.status_code == 401
    assert unknown.status_code == 401
    assert wrong.json()["message"] == "Invalid credentials"


def test_login_requires_fields(client):
    response = client.post("/api/login", json={"username": "juan"})
    assert response.status_code == 400


def _on_event_loop():
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


def test_password_work_runs_in_worker_threads(client, account_id, monkeypatch):
    seen = []
    real_hash, real_verify = auth.hash_password, auth.verify_password

    def tracking_hash(password):
        seen.append(("hash", _on_event_loop()))
        return real_hash(password)

    def tracking_verify(plain, hashed):
        seen.append(("verify", _on_event_loop()))
        return real_verify(plain, hashed)

    monkeypatch.setattr(auth, "hash_password", tracking_hash)
    monkeypatch.setattr(auth, "verify_password", tracking_verify)

    client.post("/api/users", json=_new_user(username="carmen"))
    client.put(f"/api/users/{account_id}", json={"password": "changed-1"})
    client.post("/api/login", json={"username": "juan", "password": "changed-1"})

    assert seen == [("hash", False), ("hash", False), ("verify", False)]
