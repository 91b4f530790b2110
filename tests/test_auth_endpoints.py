from __future__ import annotations

import unittest
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from fastapi.testclient import TestClient

from hrportal.db import get_db
from hrportal.main import app
from hrportal.models import AuditLog, User, UserRole, UserSession
from hrportal.security import hash_password, register_login_failure, require_user, reset_login_attempts
from hrportal.settings import get_settings


def _override_get_db(fake_db):
    def _override() -> Generator[object, None, None]:
        yield fake_db

    return _override


class _FakeAuditDB:
    def __init__(self, user: User | None = None):
        self.user = user
        self.rows: list[object] = []

    def get(self, model, pk):  # type: ignore[no-untyped-def]
        if model is User and self.user is not None and pk == self.user.id:
            return self.user
        return None

    def add(self, obj: object) -> None:
        self.rows.append(obj)

    def commit(self) -> None:
        return

    def rollback(self) -> None:
        return


def _user(*, is_active: bool = True) -> User:
    return User(
        id=12,
        username="elif",
        email="elif@example.com",
        full_name="Elif Yilmaz",
        password_hash=hash_password("correct-horse"),
        role=UserRole.EMPLOYEE,
        is_active=is_active,
    )


def _session(user: User) -> UserSession:
    now = datetime.now(timezone.utc)
    return UserSession(
        id=3,
        jti="login-jti",
        user_id=user.id,
        created_at=now,
        expires_at=now + timedelta(hours=24),
        last_seen_at=now,
    )


class AuthEndpointTests(unittest.TestCase):
    def setUp(self) -> None:
        reset_login_attempts()

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        reset_login_attempts()

    def test_login_success_sets_session_cookie(self) -> None:
        user = _user()
        fake_db = _FakeAuditDB(user)
        app.dependency_overrides[get_db] = _override_get_db(fake_db)
        client = TestClient(app)

        with (
            patch("hrportal.routers.auth.get_user_by_username", return_value=user),
            patch("hrportal.routers.auth.open_session", return_value=_session(user)),
        ):
            response = client.post("/api/login", json={"username": "elif", "password": "correct-horse"})

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["user"]["id"], 12)
        self.assertEqual(body["user"]["role"], "employee")
        self.assertTrue(body["token"])
        self.assertIn(get_settings().session_cookie_name, response.cookies)
        actions = [row.action for row in fake_db.rows if isinstance(row, AuditLog)]
        self.assertEqual(actions, ["LOGIN_SUCCESS"])

    def test_login_with_wrong_password_is_unauthorized(self) -> None:
        fake_db = _FakeAuditDB()
        app.dependency_overrides[get_db] = _override_get_db(fake_db)
        client = TestClient(app)

        with patch("hrportal.routers.auth.get_user_by_username", return_value=_user()):
            response = client.post("/api/login", json={"username": "elif", "password": "wrong-password"})

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error"]["code"], "INVALID_CREDENTIALS")
        audit = fake_db.rows[0]
        self.assertIsInstance(audit, AuditLog)
        self.assertFalse(audit.success)

    def test_inactive_user_cannot_login(self) -> None:
        app.dependency_overrides[get_db] = _override_get_db(_FakeAuditDB())
        client = TestClient(app)

        with patch("hrportal.routers.auth.get_user_by_username", return_value=_user(is_active=False)):
            response = client.post("/api/login", json={"username": "elif", "password": "correct-horse"})

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["error"]["code"], "USER_INACTIVE")

    def test_login_is_throttled_after_repeated_failures(self) -> None:
        app.dependency_overrides[get_db] = _override_get_db(_FakeAuditDB())
        client = TestClient(app)
        for _ in range(10):
            register_login_failure("testclient")

        response = client.post("/api/login", json={"username": "elif", "password": "correct-horse"})

        self.assertEqual(response.status_code, 429)
        self.assertEqual(response.json()["error"]["code"], "TOO_MANY_ATTEMPTS")

    def test_current_user_requires_session(self) -> None:
        app.dependency_overrides[get_db] = _override_get_db(_FakeAuditDB())
        client = TestClient(app)

        response = client.get("/api/user")

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error"]["code"], "UNAUTHORIZED")
        self.assertTrue(response.json()["error"]["request_id"])

    def test_current_user_returns_profile(self) -> None:
        user = _user()
        app.dependency_overrides[require_user] = lambda: user
        client = TestClient(app)

        response = client.get("/api/user")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["username"], "elif")
        self.assertNotIn("password_hash", response.json())

    def test_logout_without_token_still_clears_cookie(self) -> None:
        app.dependency_overrides[get_db] = _override_get_db(_FakeAuditDB())
        client = TestClient(app)

        response = client.post("/api/logout")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"ok": True})


if __name__ == "__main__":
    unittest.main()
