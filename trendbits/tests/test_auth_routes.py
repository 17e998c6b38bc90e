import unittest
from datetime import datetime, timedelta, timezone

import jwt
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

import trendbits.routes.auth as auth_routes
from trendbits.extensions import db
from trendbits.models import User
from trendbits.services.tokens import reset_token_digest
from trendbits.tests.helpers import drop_database, make_test_app, reset_tables


class _DroppedFirstCommit:
    """Makes the first ``db.session.commit`` fail as if the server went away."""

    def __init__(self):
        self.calls = 0

    def __enter__(self):
        real_commit = db.session.commit

        def _commit():
            self.calls += 1
            if self.calls == 1:
                raise OperationalError(
                    "COMMIT",
                    {},
                    Exception("server closed the connection unexpectedly"),
                    connection_invalidated=True,
                )
            return real_commit()

        db.session.commit = _commit
        return self

    def __exit__(self, *exc):
        del db.session.commit
        return False


class AuthRouteTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.app, _fake_ai, cls.db_path = make_test_app()

    @classmethod
    def tearDownClass(cls) -> None:
        drop_database(cls.app, cls.db_path)

    def setUp(self) -> None:
        reset_tables(self.app)
        self.client = self.app.test_client()

    def _register(self, email="a@x.com", password="pw123456", **extra):
        return self.client.post(
            "/api/auth/register", json={"email": email, "password": password, **extra}
        )

    def _login(self, email="a@x.com", password="pw123456") -> str:
        res = self.client.post("/api/auth/login", json={"email": email, "password": password})
        self.assertEqual(res.status_code, 200)
        return res.get_json()["data"]["access_token"]

    def _auth(self, token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    def test_register_login_profile_and_short_username(self):
        res = self._register()
        self.assertEqual(res.status_code, 201)
        body = res.get_json()
        self.assertEqual(body["status"], "success")
        user_id = body["data"]["id"]
        self.assertTrue(user_id)
        self.assertEqual(body["data"]["email"], "a@x.com")
        self.assertNotIn("password", body["data"])

        res = self.client.post("/api/auth/login", json={"email": "a@x.com", "password": "pw123456"})
        self.assertEqual(res.status_code, 200)
        data = res.get_json()["data"]
        self.assertEqual(data["token_type"], "Bearer")
        self.assertEqual(data["expires_in"], 7 * 24 * 3600)
        token = data["access_token"]

        res = self.client.get("/api/auth/profile", headers=self._auth(token))
        self.assertEqual(res.status_code, 200)
        profile = res.get_json()["data"]
        self.assertEqual(profile["email"], "a@x.com")
        self.assertEqual(profile["id"], user_id)

        res = self.client.put(
            "/api/auth/profile/username", json={"username": "ab"}, headers=self._auth(token)
        )
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json()["status"], "error")

    def test_duplicate_email_is_case_and_whitespace_insensitive(self):
        self.assertEqual(self._register(email="a@x.com").status_code, 201)
        res = self._register(email="  A@X.COM ")
        self.assertEqual(res.status_code, 409)
        self.assertEqual(res.get_json()["title"], "User Already Exists")
        with self.app.app_context():
            count = len(db.session.execute(select(User)).scalars().all())
        self.assertEqual(count, 1)

    def test_register_validation(self):
        self.assertEqual(self.client.post("/api/auth/register", json={}).status_code, 400)
        self.assertEqual(self._register(email="not-an-email").status_code, 400)
        self.assertEqual(self._register(password="short").status_code, 400)
        self.assertEqual(self._register(password="x" * 73).status_code, 400)
        res = self.client.post("/api/auth/register", data="nope", content_type="text/plain")
        self.assertEqual(res.status_code, 400)

    def test_register_with_taken_username_conflicts(self):
        self.assertEqual(self._register(email="a@x.com", username="trendy").status_code, 201)
        res = self._register(email="b@x.com", username="trendy")
        self.assertEqual(res.status_code, 409)

    def test_login_rejects_bad_credentials(self):
        self._register()
        res = self.client.post("/api/auth/login", json={"email": "a@x.com", "password": "wrongpass1"})
        self.assertEqual(res.status_code, 401)
        res = self.client.post("/api/auth/login", json={"email": "b@x.com", "password": "pw123456"})
        self.assertEqual(res.status_code, 401)
        self.assertEqual(res.get_json()["title"], "Invalid Credentials")

    def test_login_normalizes_email(self):
        self._register()
        self._login(email="  A@x.COM")

    def test_validate_echoes_claims(self):
        self._register()
        token = self._login()
        res = self.client.get("/api/auth/validate", headers=self._auth(token))
        self.assertEqual(res.status_code, 200)
        data = res.get_json()["data"]
        self.assertEqual(data["email"], "a@x.com")
        self.assertIn("exp", data)

    def test_missing_expired_and_invalid_tokens(self):
        res = self.client.get("/api/auth/profile")
        self.assertEqual(res.status_code, 401)
        self.assertEqual(res.get_json()["title"], "Authentication Required")

        past = datetime.now(timezone.utc) - timedelta(days=10)
        expired = jwt.encode(
            {"user_id": "u", "email": "a@x.com", "iat": past, "exp": past + timedelta(days=7)},
            "test-jwt-secret",
            algorithm="HS256",
        )
        res = self.client.get("/api/auth/profile", headers=self._auth(expired))
        self.assertEqual(res.status_code, 401)
        self.assertEqual(res.get_json()["title"], "Session Expired")

        res = self.client.get("/api/auth/profile", headers=self._auth("not.a.jwt"))
        self.assertEqual(res.status_code, 401)
        self.assertEqual(res.get_json()["title"], "Invalid Session")

    def test_token_for_deleted_user_is_rejected(self):
        self._register()
        token = self._login()
        reset_tables(self.app)
        res = self.client.get("/api/auth/profile", headers=self._auth(token))
        self.assertEqual(res.status_code, 401)

    def test_update_username(self):
        self._register(email="a@x.com")
        self._register(email="b@x.com", username="taken_name")
        token = self._login()

        res = self.client.put(
            "/api/auth/profile/username", json={"username": "  trend.fan "}, headers=self._auth(token)
        )
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["data"]["username"], "trend.fan")

        res = self.client.put(
            "/api/auth/profile/username", json={"username": "taken_name"}, headers=self._auth(token)
        )
        self.assertEqual(res.status_code, 409)

        res = self.client.put(
            "/api/auth/profile/username", json={"username": "x" * 31}, headers=self._auth(token)
        )
        self.assertEqual(res.status_code, 400)

        res = self.client.put(
            "/api/auth/profile/username", json={"username": "trend.fan"}, headers=self._auth(token)
        )
        self.assertEqual(res.status_code, 200)


    def test_username_update_survives_dropped_connection(self):
        self._register()
        token = self._login()

        with _DroppedFirstCommit() as dropped:
            res = self.client.put(
                "/api/auth/profile/username", json={"username": "newname"}, headers=self._auth(token)
            )
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["data"]["username"], "newname")
        self.assertEqual(dropped.calls, 2)
        with self.app.app_context():
            stored = db.session.execute(select(User.username)).scalar_one()
        self.assertEqual(stored, "newname")

class PasswordResetTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.app, _fake_ai, cls.db_path = make_test_app()

    @classmethod
    def tearDownClass(cls) -> None:
        drop_database(cls.app, cls.db_path)

    def setUp(self) -> None:
        reset_tables(self.app)
        self.client = self.app.test_client()
        res = self.client.post(
            "/api/auth/register", json={"email": "reset@x.com", "password": "pw123456"}
        )
        self.assertEqual(res.status_code, 201)

    def _request_reset(self) -> str:
        captured: dict[str, str] = {}
        original_send = auth_routes.send_password_reset_email
        auth_routes.send_password_reset_email = lambda *, to_email, token: captured.setdefault(
            "token", token
        )
        try:
            res = self.client.post(
                "/api/auth/request-reset-password", json={"email": " Reset@X.com"}
            )
            self.assertEqual(res.status_code, 200)
        finally:
            auth_routes.send_password_reset_email = original_send
        token = captured.get("token")
        self.assertIsInstance(token, str)
        return token

    def test_reset_token_is_single_use(self):
        token = self._request_reset()

        res = self.client.get("/api/auth/verify-reset-token", query_string={"token": token})
        self.assertEqual(res.status_code, 200)
        self.assertTrue(res.get_json()["data"]["valid"])

        res = self.client.post(
            "/api/auth/reset-password", json={"token": token, "password": "newpass123"}
        )
        self.assertEqual(res.status_code, 200)

        res = self.client.post(
            "/api/auth/reset-password", json={"token": token, "password": "another123"}
        )
        self.assertEqual(res.status_code, 400)

        res = self.client.get("/api/auth/verify-reset-token", query_string={"token": token})
        self.assertEqual(res.status_code, 400)

        res = self.client.post(
            "/api/auth/login", json={"email": "reset@x.com", "password": "newpass123"}
        )
        self.assertEqual(res.status_code, 200)

        with self.app.app_context():
            user = db.session.execute(select(User)).scalar_one()
            self.assertIsNone(user.reset_token)
            self.assertIsNone(user.reset_token_expires)

    def test_reset_token_is_stored_after_dropped_connection(self):
        with _DroppedFirstCommit() as dropped:
            token = self._request_reset()
        self.assertEqual(dropped.calls, 2)

        res = self.client.get("/api/auth/verify-reset-token", query_string={"token": token})
        self.assertEqual(res.status_code, 200)
        with self.app.app_context():
            stored = db.session.execute(select(User.reset_token)).scalar_one()
            self.assertEqual(stored, reset_token_digest(token))

    def test_only_digest_is_stored(self):
        token = self._request_reset()
        with self.app.app_context():
            user = db.session.execute(select(User)).scalar_one()
            self.assertIsNotNone(user.reset_token)
            self.assertNotEqual(user.reset_token, token)
            self.assertIsNotNone(user.reset_token_expires)

    def test_expired_token_is_rejected(self):
        token = self._request_reset()
        with self.app.app_context():
            user = db.session.execute(select(User)).scalar_one()
            user.reset_token_expires = user.reset_token_expires - timedelta(hours=2)
            db.session.commit()
        res = self.client.post(
            "/api/auth/reset-password", json={"token": token, "password": "newpass123"}
        )
        self.assertEqual(res.status_code, 400)

    def test_unknown_email_is_not_found(self):
        res = self.client.post(
            "/api/auth/request-reset-password", json={"email": "nobody@x.com"}
        )
        self.assertEqual(res.status_code, 404)

    def test_verify_requires_token(self):
        res = self.client.get("/api/auth/verify-reset-token")
        self.assertEqual(res.status_code, 400)
        res = self.client.get("/api/auth/verify-reset-token", query_string={"token": "bogus"})
        self.assertEqual(res.status_code, 400)

    def test_email_is_skipped_while_testing(self):
        res = self.client.post(
            "/api/auth/request-reset-password", json={"email": "reset@x.com"}
        )
        self.assertEqual(res.status_code, 200)


if __name__ == "__main__":
    unittest.main()
