# app/core/security.py
"""
Password hashing (Argon2id), session tokens (JWT) and the admin key check.
"""
import hmac
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHash, VerifyMismatchError
from jose import JWTError, jwt

from app.core.config import settings

password_hasher = PasswordHasher(time_cost=2, memory_cost=65536, parallelism=1, hash_len=32, salt_len=16)

# verified against when the email is unknown so both login branches cost the same
_TIMING_DUMMY_HASH = password_hasher.hash("timing-equalizer")


def get_password_hash(password: str) -> str:
    return password_hasher.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return password_hasher.verify(hashed_password, plain_password)
    except (VerifyMismatchError, InvalidHash):
        return False


def burn_password_check(plain_password: str) -> None:
    """Spend the time of a real verification, result discarded."""
    verify_password(plain_password, _TIMING_DUMMY_HASH)


def create_access_token(subject: str, expires_in: Optional[timedelta] = None) -> str:
    """Signed session token whose ``sub`` is the visitor's email."""
    issued = datetime.utcnow()
    lifetime = expires_in or timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    claims = {"sub": subject, "iat": issued, "exp": issued + lifetime}
    return jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Claims of a valid token; None when the signature or expiry check fails."""
    try:
        return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None


def api_key_matches(provided: Optional[str], expected: str) -> bool:
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))
