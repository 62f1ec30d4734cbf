"""
Notarium Backend — Password Hashing and Access Tokens
=======================================================

What:  bcrypt password hashing and JWT (HS256) access tokens.
Who:   AuthService issues tokens; the auth dependencies decode them.

Token claims:
    sub:   user id (string, per the JWT convention)
    email: for logging and the client's convenience
    role:  "student" | "admin"
    exp:   issue time + jwt_expire_minutes (24h by default)

Nothing secret goes into the token; role is re-read from the database on
every request, so a demoted admin loses access immediately.
"""

import hmac
from datetime import timedelta
from typing import Any, Dict, Optional

import bcrypt
from jose import JWTError, jwt

from notarium.clock import utcnow
from notarium.config import settings

# bcrypt only looks at the first 72 bytes; newer releases refuse longer input
BCRYPT_MAX_BYTES = 72


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(_password_bytes(password), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Constant-time check; a malformed stored hash counts as a mismatch."""
    try:
        return bcrypt.checkpw(_password_bytes(password), password_hash.encode("utf-8"))
    except ValueError:
        return False


def secrets_match(given: str, expected: str) -> bool:
    """Constant-time comparison for shared secrets (the admin password)."""
    return hmac.compare_digest(given.encode("utf-8"), expected.encode("utf-8"))


def create_access_token(user_id: int, email: str, role: str) -> str:
    expire = utcnow() + timedelta(minutes=settings.jwt_expire_minutes)
    payload = {
        "sub": str(user_id),
        "email": email,
        "role": role,
        "exp": expire,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and validate a JWT access token.

    Returns the claims if valid (signature, expiry and an integer `sub`),
    None otherwise.
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
        payload["sub"] = int(payload["sub"])
        return payload
    except (JWTError, KeyError, TypeError, ValueError):
        return None
