"""
auth/tokens.py -- JWT issuance and password login.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       user_id, email and expiry. Verification returns None on any failure --
       the route layer turns that into a 401.

  Passwords: PBKDF2-HMAC-SHA512 credential blobs from auth/credentials.py.
       authenticate_user() always runs the KDF, even for unknown emails,
       against a dummy credential encoded with the current settings. Response
       time then does not reveal whether an email is registered.

  Rehash on login: a successful login whose stored blob was written with
       other salt/hash/iteration parameters is re-encoded with the current
       ones. The plaintext is only available at login, so this is the one
       place an upgrade can happen.

Layer rule: no imports from api/ or ledger/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import TYPE_CHECKING

from jose import JWTError, jwt

from auth import credentials
from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("pocketbook.auth")

_ALGORITHM = "HS256"

COOKIE_NAME = "jwt"


@lru_cache(maxsize=1)
def _dummy_credential() -> bytes:
    """Credential used to equalize login timing for unknown emails.

    Built on first use with the current credential settings, so its KDF
    cost matches real records written by this deployment.
    """
    return credentials.encode("pocketbook_timing_dummy")


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(user_id: int, email: str, expire_seconds: int = 0) -> str:
    """Encode a signed JWT with user identity.

    expire_seconds of 0 (default) uses Settings.token_expire_seconds.
    """
    settings = get_settings()
    duration = expire_seconds if expire_seconds > 0 else settings.token_expire_seconds
    expire = datetime.now(timezone.utc) + timedelta(seconds=duration)
    payload = {
        "sub": email,
        "user_id": user_id,
        "exp": expire,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure."""
    try:
        payload = jwt.decode(token, get_settings().secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if "user_id" not in payload:
        return None
    return payload


# ---------------------------------------------------------------------------
# Password login
# ---------------------------------------------------------------------------


def check_password(user: User, password: str) -> bool:
    """Verify password against the user's stored credential.

    A malformed stored credential is logged and reported as a failed check.
    It never authenticates, and the caller still sees a plain login failure
    rather than a 500, but the corruption is visible in the logs.
    """
    if user.password is None:
        credentials.verify(password, _dummy_credential())
        return False
    try:
        return credentials.verify(password, user.password)
    except credentials.MalformedCredential:
        logger.error("Stored credential for user id=%s is malformed", user.id)
        return False


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Authenticate an email/password login with timing equalization.

    Returns the User on success, None on any failure.
    """
    user = store.get_by_email(email)
    if user is None:
        # Equalize timing -- do NOT return before running the KDF.
        credentials.verify(password, _dummy_credential())
        return None
    if not check_password(user, password):
        return None
    if credentials.needs_rehash(user.password):
        store.set_password(user.id, credentials.encode(password))
        logger.info("Upgraded credential parameters for user id=%d", user.id)
    store.update_last_login(user.id)
    return user


# ---------------------------------------------------------------------------
# Cookie helper
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, expire_seconds: int = 0) -> None:
    """Write the JWT as an httpOnly cookie on the response.

    httponly=True keeps it away from JS; samesite="lax" blocks cross-site
    POSTs; secure follows SECURE_COOKIES; max_age matches the JWT expiry.
    """
    settings = get_settings()
    duration = expire_seconds if expire_seconds > 0 else settings.token_expire_seconds
    response.set_cookie(
        COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
        max_age=duration,
    )
