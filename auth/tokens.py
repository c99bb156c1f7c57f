"""
auth/tokens.py -- JWT access/refresh tokens, password hashing, cookie helpers.

Security design decisions:
  Access token: python-jose HS256 signed with ACCESS_TOKEN_SECRET. Carries
       user_id, email, full_name, role and a short expiry. Verification returns
       None on any failure -- the gate turns that into a 401.

  Refresh token: HS256 signed with REFRESH_TOKEN_SECRET (a different key, so
       the two token kinds are never interchangeable). Carries user_id, role and
       a random jti. The last issued refresh token is stored on the account row;
       rotation only succeeds when the presented string equals the stored one,
       so every refresh token is single-use and logout revokes it.

  role claim: ids are unique per role table only, so each token names the
       role it was issued for and the role gates refuse foreign roles.

  Passwords: bcrypt directly, limited to 72 bytes of UTF-8 (password_fits).
       _DUMMY_HASH enables timing equalization in authenticate() so response
       time does not reveal whether a username exists.

Layer rule: no imports from api/ or academy/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.models import ROLES, Account
from core.config import get_settings

if TYPE_CHECKING:
    from auth.store import UserStore

logger = logging.getLogger("campusdesk.auth")

_settings = get_settings()

_ALGORITHM = "HS256"

# bcrypt's input limit, in bytes of UTF-8, not characters.
MAX_PASSWORD_BYTES = 72


def access_cookie(role: str) -> str:
    """Cookie name of role's access token. Each role has its own pair."""
    return f"{role}_access_token"


def refresh_cookie(role: str) -> str:
    return f"{role}_refresh_token"


class RefreshTokenError(Exception):
    """Raised when a refresh token cannot be rotated. str(exc) is client-safe."""


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def password_fits(plain: str) -> bool:
    """True if the UTF-8 encoding of plain is within bcrypt's input limit."""
    return len(plain.encode("utf-8")) <= MAX_PASSWORD_BYTES


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt refuses input longer than MAX_PASSWORD_BYTES (ValueError), so
    callers taking passwords from clients check password_fits() first.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("campusdesk_timing_dummy")


def authenticate(store: UserStore, role: str, username: str, password: str) -> Account | None:
    """Check a username/password login for one role with timing equalization.

    Always runs bcrypt whether or not the account exists. Returns the account
    on success, None on any failure.
    """
    account = store.get_by_username(role, username)
    if account is None or not account.hashed_password:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, account.hashed_password):
        return None
    return account


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(account: Account, expire_seconds: int = 0) -> str:
    """Encode a signed access token for account.

    expire_seconds overrides Settings.access_token_expire_seconds when > 0.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.access_token_expire_seconds
    payload = {
        "sub": str(account.id),
        "user_id": account.id,
        "email": account.email,
        "full_name": account.full_name,
        "role": account.role,
        "type": "access",
    }
    return _encode(payload, _settings.access_token_secret, duration)


def create_refresh_token(account: Account) -> str:
    """Encode a signed refresh token. The jti keeps every issued token unique."""
    payload = {
        "sub": str(account.id),
        "user_id": account.id,
        "role": account.role,
        "type": "refresh",
        "jti": secrets.token_hex(16),
    }
    return _encode(payload, _settings.refresh_token_secret, _settings.refresh_token_expire_seconds)


def _encode(payload: dict, secret: str, duration: int) -> str:
    payload = dict(payload, exp=datetime.now(timezone.utc) + timedelta(seconds=duration))
    return jwt.encode(payload, secret, algorithm=_ALGORITHM)


def _decode(token: str, secret: str, token_type: str) -> dict | None:
    try:
        payload = jwt.decode(token, secret, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != token_type or payload.get("role") not in ROLES:
        return None
    if not isinstance(payload.get("user_id"), int):
        return None
    return payload


def decode_access_token(token: str) -> dict | None:
    """Decode and verify an access token. Returns the payload or None on any failure."""
    return _decode(token, _settings.access_token_secret, "access")


def decode_refresh_token(token: str) -> dict | None:
    """Decode and verify a refresh token. Returns the payload or None on any failure."""
    return _decode(token, _settings.refresh_token_secret, "refresh")


# ---------------------------------------------------------------------------
# Issue / rotate
# ---------------------------------------------------------------------------


def issue_tokens(store: UserStore, account: Account) -> TokenPair:
    """Mint an access + refresh pair and persist the refresh token.

    Persisting replaces any previous refresh token, which revokes it.
    """
    pair = TokenPair(
        access_token=create_access_token(account),
        refresh_token=create_refresh_token(account),
    )
    store.set_refresh_token(account.role, account.id, pair.refresh_token)
    return pair


def rotate_refresh_token(store: UserStore, role: str, incoming: str | None) -> tuple[Account, TokenPair]:
    """Validate incoming against the stored token and re-issue both tokens.

    Raises RefreshTokenError when the token is absent, fails signature or
    expiry checks, was issued for another role, names an unknown account, or
    does not match the stored token (already rotated or logged out).
    """
    if not incoming:
        raise RefreshTokenError("Unauthorized request")
    payload = decode_refresh_token(incoming)
    if payload is None or payload["role"] != role:
        raise RefreshTokenError("Invalid refresh token")
    account = store.get(role, payload["user_id"])
    if account is None:
        raise RefreshTokenError("Invalid refresh token")
    if not account.refresh_token or not secrets.compare_digest(incoming, account.refresh_token):
        logger.warning("Rejected stale refresh token for %s id=%s", role, account.id)
        raise RefreshTokenError("Refresh token is expired or used")
    return account, issue_tokens(store, account)


def revoke_refresh_token(store: UserStore, account: Account) -> None:
    store.set_refresh_token(account.role, account.id, None)


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_auth_cookies(response, role: str, pair: TokenPair) -> None:
    """Write both tokens as httpOnly cookies whose max_age matches the JWT expiry.

    The names carry the role, so a browser logged in as a student and as a
    teacher keeps two independent sessions. secure is only set when
    SECURE_COOKIES=true (production behind HTTPS).
    """
    response.set_cookie(
        access_cookie(role),
        value=pair.access_token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=_settings.access_token_expire_seconds,
    )
    response.set_cookie(
        refresh_cookie(role),
        value=pair.refresh_token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=_settings.refresh_token_expire_seconds,
    )


def clear_auth_cookies(response, role: str) -> None:
    response.delete_cookie(access_cookie(role))
    response.delete_cookie(refresh_cookie(role))
