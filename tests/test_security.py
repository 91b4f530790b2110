from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from jose import jwt

from hrportal.errors import ApiError
from hrportal.models import User, UserRole, UserSession
from hrportal.security import (
    authenticate_session_token,
    create_session_token,
    decode_session_token,
    ensure_login_attempt_allowed,
    ensure_self_or_roles,
    register_login_failure,
    register_login_success,
    reset_login_attempts,
    verify_password,
)
from hrportal.settings import get_settings


def _session(user_id: int = 5, jti: str = "jti-test", minutes: int = 60) -> UserSession:
    now = datetime.now(timezone.utc)
    return UserSession(
        id=1,
        jti=jti,
        user_id=user_id,
        created_at=now,
        expires_at=now + timedelta(minutes=minutes),
        last_seen_at=now,
    )


class _FakeUserDB:
    def __init__(self, user: User | None):
        self.user = user
        self.commits = 0

    def get(self, model, pk):  # type: ignore[no-untyped-def]
        if model is User and self.user is not None and pk == self.user.id:
            return self.user
        return None

    def commit(self) -> None:
        self.commits += 1


class SessionTokenTests(unittest.TestCase):
    def test_token_round_trip_carries_session_claims(self) -> None:
        session = _session()

        token = create_session_token(session)
        claims = decode_session_token(token)

        self.assertEqual(claims["sub"], "5")
        self.assertEqual(claims["jti"], "jti-test")
        self.assertEqual(claims["typ"], "session")

    def test_wrong_token_type_is_rejected(self) -> None:
        settings = get_settings()
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {
                "sub": "5",
                "jti": "abc",
                "iss": settings.session_issuer,
                "aud": settings.session_audience,
                "iat": int(now.timestamp()),
                "exp": int((now + timedelta(minutes=5)).timestamp()),
                "typ": "refresh",
            },
            settings.session_secret,
            algorithm="HS256",
        )

        with self.assertRaises(ApiError) as ctx:
            decode_session_token(token)
        self.assertEqual(ctx.exception.code, "UNAUTHORIZED")

    def test_token_signed_with_other_secret_is_rejected(self) -> None:
        settings = get_settings()
        session = _session()
        token = jwt.encode(
            {
                "sub": "5",
                "jti": session.jti,
                "iss": settings.session_issuer,
                "aud": settings.session_audience,
                "iat": int(session.created_at.timestamp()),
                "exp": int(session.expires_at.timestamp()),
                "typ": "session",
            },
            "another-secret",
            algorithm="HS256",
        )

        with self.assertRaises(ApiError) as ctx:
            decode_session_token(token)
        self.assertEqual(ctx.exception.status_code, 401)

    def test_revoked_session_is_expired(self) -> None:
        session = _session()
        token = create_session_token(session)
        fake_db = _FakeUserDB(User(id=5, username="ayse", role=UserRole.EMPLOYEE, is_active=True))

        with patch("hrportal.security.resolve_session", return_value=None):
            with self.assertRaises(ApiError) as ctx:
                authenticate_session_token(fake_db, token)  # type: ignore[arg-type]
        self.assertEqual(ctx.exception.code, "SESSION_EXPIRED")

    def test_inactive_user_is_forbidden(self) -> None:
        session = _session()
        token = create_session_token(session)
        fake_db = _FakeUserDB(User(id=5, username="ayse", role=UserRole.EMPLOYEE, is_active=False))

        with patch("hrportal.security.resolve_session", return_value=session):
            with self.assertRaises(ApiError) as ctx:
                authenticate_session_token(fake_db, token)  # type: ignore[arg-type]
        self.assertEqual(ctx.exception.code, "USER_INACTIVE")
        self.assertEqual(ctx.exception.status_code, 403)

    def test_active_session_refreshes_last_seen(self) -> None:
        session = _session()
        session.last_seen_at = datetime.now(timezone.utc) - timedelta(minutes=10)
        token = create_session_token(session)
        user = User(id=5, username="ayse", role=UserRole.EMPLOYEE, is_active=True)
        fake_db = _FakeUserDB(user)

        with patch("hrportal.security.resolve_session", return_value=session):
            resolved = authenticate_session_token(fake_db, token)  # type: ignore[arg-type]

        self.assertIs(resolved, user)
        self.assertEqual(fake_db.commits, 1)


class LoginThrottleTests(unittest.TestCase):
    def setUp(self) -> None:
        reset_login_attempts()

    def tearDown(self) -> None:
        reset_login_attempts()

    def test_blocks_after_repeated_failures(self) -> None:
        for _ in range(10):
            register_login_failure("10.0.0.1")

        with self.assertRaises(ApiError) as ctx:
            ensure_login_attempt_allowed("10.0.0.1")
        self.assertEqual(ctx.exception.status_code, 429)
        ensure_login_attempt_allowed("10.0.0.2")

    def test_success_clears_failures(self) -> None:
        for _ in range(10):
            register_login_failure("10.0.0.1")
        register_login_success("10.0.0.1")

        ensure_login_attempt_allowed("10.0.0.1")


class PasswordAndRoleTests(unittest.TestCase):
    def test_malformed_hash_fails_verification(self) -> None:
        self.assertFalse(verify_password("secret123", "not-a-bcrypt-hash"))

    def test_self_or_staff_access(self) -> None:
        employee = User(id=1, username="emp", role=UserRole.EMPLOYEE, is_active=True)
        hr_user = User(id=2, username="hr", role=UserRole.HR, is_active=True)

        ensure_self_or_roles(employee, 1)
        ensure_self_or_roles(hr_user, 1)
        with self.assertRaises(ApiError) as ctx:
            ensure_self_or_roles(employee, 2)
        self.assertEqual(ctx.exception.code, "FORBIDDEN")


if __name__ == "__main__":
    unittest.main()
