import unittest
from datetime import datetime, timedelta, timezone

import jwt

from trendbits.errors import ServiceNotConfiguredError
from trendbits.models.auth import utcnow
from trendbits.services.passwords import hash_password, verify_password
from trendbits.services.tokens import (
    TokenExpiredError,
    TokenInvalidError,
    generate_access_token,
    generate_reset_token,
    reset_token_digest,
    verify_access_token,
)
from trendbits.tests.helpers import drop_database, make_test_app


class PasswordTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.app, _fake_ai, cls.db_path = make_test_app()

    @classmethod
    def tearDownClass(cls) -> None:
        drop_database(cls.app, cls.db_path)

    def test_hash_then_verify_round_trip(self):
        with self.app.app_context():
            hashed = hash_password("correct horse")
            self.assertTrue(verify_password("correct horse", hashed))
            self.assertFalse(verify_password("correct horsE", hashed))

    def test_same_password_hashes_differently(self):
        with self.app.app_context():
            self.assertNotEqual(hash_password("pw123456"), hash_password("pw123456"))

    def test_hash_uses_configured_rounds(self):
        with self.app.app_context():
            hashed = hash_password("pw123456")
        self.assertTrue(hashed.startswith("$2b$04$"))

    def test_empty_inputs_raise(self):
        with self.app.app_context():
            with self.assertRaises(ValueError):
                hash_password("   ")
            hashed = hash_password("pw123456")
            with self.assertRaises(ValueError):
                verify_password("", hashed)
            with self.assertRaises(ValueError):
                verify_password("pw123456", "")

    def test_overlong_password_never_matches(self):
        with self.app.app_context():
            hashed = hash_password("a" * 72)
            self.assertFalse(verify_password("a" * 73, hashed))

    def test_malformed_hash_does_not_match(self):
        self.assertFalse(verify_password("pw123456", "not-a-bcrypt-hash"))


class AccessTokenTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.app, _fake_ai, cls.db_path = make_test_app()

    @classmethod
    def tearDownClass(cls) -> None:
        drop_database(cls.app, cls.db_path)

    def test_round_trip_carries_identity_claims(self):
        with self.app.app_context():
            token = generate_access_token("user-1", "a@x.com")
            claims = verify_access_token(token)
        self.assertEqual(claims["user_id"], "user-1")
        self.assertEqual(claims["email"], "a@x.com")
        self.assertEqual(claims["exp"] - claims["iat"], 7 * 24 * 3600)

    def test_expired_token_is_distinguished(self):
        past = datetime.now(timezone.utc) - timedelta(days=8)
        token = jwt.encode(
            {
                "user_id": "user-1",
                "email": "a@x.com",
                "iat": past,
                "exp": past + timedelta(days=7),
            },
            "test-jwt-secret",
            algorithm="HS256",
        )
        with self.app.app_context():
            with self.assertRaises(TokenExpiredError):
                verify_access_token(token)

    def test_wrong_signature_is_invalid(self):
        token = jwt.encode(
            {
                "user_id": "user-1",
                "email": "a@x.com",
                "iat": datetime.now(timezone.utc),
                "exp": datetime.now(timezone.utc) + timedelta(days=1),
            },
            "some-other-secret",
            algorithm="HS256",
        )
        with self.app.app_context():
            with self.assertRaises(TokenInvalidError):
                verify_access_token(token)
            with self.assertRaises(TokenInvalidError):
                verify_access_token("garbage")

    def test_missing_secret_is_configuration_error(self):
        app, _fake_ai, path = make_test_app({"JWT_SECRET": ""})
        try:
            with app.app_context():
                with self.assertRaises(ServiceNotConfiguredError):
                    generate_access_token("user-1", "a@x.com")
        finally:
            drop_database(app, path)


class ResetTokenTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.app, _fake_ai, cls.db_path = make_test_app()

    @classmethod
    def tearDownClass(cls) -> None:
        drop_database(cls.app, cls.db_path)

    def test_expiry_follows_configured_minutes(self):
        now = utcnow()
        with self.app.app_context():
            token, expires_at = generate_reset_token(now=now)
        self.assertEqual(expires_at - now, timedelta(minutes=60))
        self.assertGreaterEqual(len(token), 32)

    def test_tokens_are_unique_and_digest_is_stable(self):
        with self.app.app_context():
            first, _ = generate_reset_token()
            second, _ = generate_reset_token()
            self.assertNotEqual(first, second)
            self.assertEqual(reset_token_digest(first), reset_token_digest(first))
            self.assertNotEqual(reset_token_digest(first), first)


if __name__ == "__main__":
    unittest.main()
