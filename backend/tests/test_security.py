"""
Notarium Backend — Password and Token Unit Tests
==================================================

What we test:
    ✅ bcrypt hashes verify, wrong passwords and malformed hashes do not
    ✅ Tokens round-trip their claims; tampered, foreign and expired ones fail
    ✅ Shared-secret comparison
"""

from datetime import timedelta
from unittest.mock import patch

from jose import jwt

from notarium.clock import utcnow
from notarium.config import settings
from notarium.security import (
    create_access_token,
    decode_access_token,
    hash_password,
    secrets_match,
    verify_password,
)


class TestPasswords:

    def test_hash_verifies(self):
        hashed = hash_password("s3cret-pass")
        assert hashed != "s3cret-pass"
        assert verify_password("s3cret-pass", hashed)

    def test_wrong_password_fails(self):
        assert not verify_password("other", hash_password("s3cret-pass"))

    def test_malformed_hash_is_mismatch(self):
        assert not verify_password("anything", "not-a-bcrypt-hash")

    def test_long_passwords_are_accepted(self):
        long_password = "x" * 200
        assert verify_password(long_password, hash_password(long_password))

    def test_secrets_match(self):
        assert secrets_match("admin-pass", "admin-pass")
        assert not secrets_match("admin-pass", "admin-pas")


class TestTokens:

    def test_round_trip(self):
        claims = decode_access_token(create_access_token(42, "ani@example.com", "student"))
        assert claims["sub"] == 42
        assert claims["email"] == "ani@example.com"
        assert claims["role"] == "student"

    def test_garbage_token(self):
        assert decode_access_token("not.a.token") is None

    def test_token_signed_with_other_key(self):
        token = jwt.encode(
            {"sub": "1", "exp": utcnow() + timedelta(hours=1)},
            "some-other-secret",
            algorithm=settings.jwt_algorithm,
        )
        assert decode_access_token(token) is None

    def test_expired_token(self):
        with patch.object(settings, "jwt_expire_minutes", -5):
            token = create_access_token(1, "ani@example.com", "student")
        assert decode_access_token(token) is None

    def test_non_numeric_subject(self):
        token = jwt.encode(
            {"sub": "abc", "exp": utcnow() + timedelta(hours=1)},
            settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
        )
        assert decode_access_token(token) is None
