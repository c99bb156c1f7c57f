"""
api/routes/v1/common.py -- Account flows shared by the admin, teacher and student routers.

The three roles expose the same account lifecycle (login, logout, refresh,
profile picture, profile edit). Only the role name, the store table and the
response projection differ, so the flows live here once and each router wraps
them in thin, role-specific endpoints.

Also home to the small helpers every router uses: api_error() for the
structured HTTPException detail, require_fields() for the "present and
non-blank" check on multipart forms, check_password() for the bcrypt byte
limit, and upload_profile()/discard_profile() for the media store.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import HTTPException, Request, Response, UploadFile
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import IntegrityError

from api.models import AuthData, Envelope, LoginRequest, ProfileUpdate, RefreshRequest, TokenData, envelope
from api.populate import Populator
from auth.models import Account
from auth.store import UserStore
from auth.tokens import (
    MAX_PASSWORD_BYTES,
    RefreshTokenError,
    authenticate,
    clear_auth_cookies,
    issue_tokens,
    password_fits,
    refresh_cookie,
    revoke_refresh_token,
    rotate_refresh_token,
    set_auth_cookies,
)
from core.config import get_settings
from core.media import MediaStore

logger = logging.getLogger("campusdesk.api.accounts")

_settings = get_settings()

_FIELD_LABELS = {"username": "Username", "email": "Email", "cnic": "CNIC"}


def api_error(status_code: int, code: str, message: str) -> HTTPException:
    """Build the HTTPException every handler raises; main.py turns detail into the envelope."""
    return HTTPException(status_code=status_code, detail={"code": code, "message": message})


def require_fields(**fields: Optional[str]) -> None:
    """Raise 400 if any field is missing or blank."""
    if any(value is None or not str(value).strip() for value in fields.values()):
        raise api_error(400, "missing_fields", "All fields are required.")


def ensure_unique(store: UserStore, role: str, exclude_id: Optional[int] = None, **candidates: str) -> None:
    """Raise 409 when another account of role already uses one of the candidate values."""
    taken = store.find_conflict(role, exclude_id=exclude_id, **candidates)
    if taken is not None:
        raise api_error(409, "conflict", f"{_FIELD_LABELS.get(taken, taken)} already exists.")


def check_password(password: str) -> None:
    """Raise 400 if password is longer than bcrypt accepts.

    The limit is in bytes, so a form's max_length in characters is not enough
    for non-ASCII input. Registration calls this before uploading anything.
    """
    if not password_fits(password):
        raise api_error(400, "invalid_password", f"Password must be at most {MAX_PASSWORD_BYTES} bytes.")


async def discard_profile(request: Request, url: str) -> None:
    """Delete an uploaded image whose account was never created."""
    media: MediaStore = request.app.state.media
    if not await run_in_threadpool(media.delete, url):
        logger.warning("Could not delete orphaned profile image %s", url)


async def upload_profile(request: Request, profile: UploadFile) -> str:
    """Send an uploaded image to the media store and return its URL.

    Rejects non-image content types and files above max_upload_bytes before
    contacting the store. A store failure is a 400, not a 500: the image is
    the client's input.
    """
    if not (profile.content_type or "").startswith("image/"):
        raise api_error(400, "invalid_profile", "Profile must be an image file.")
    content = await profile.read()
    if not content:
        raise api_error(400, "invalid_profile", "Profile image is required.")
    if len(content) > _settings.max_upload_bytes:
        raise api_error(400, "invalid_profile", "Profile image is too large.")
    media: MediaStore = request.app.state.media
    url = await run_in_threadpool(media.upload, content, profile.filename or "profile")
    if not url:
        raise api_error(400, "upload_failed", "Profile image upload failed.")
    return url


# ---------------------------------------------------------------------------
# Account flows
# ---------------------------------------------------------------------------


def login_flow(request: Request, response: Response, role: str, body: LoginRequest, pop: Populator) -> Envelope:
    """Password login for one role.

    authenticate() runs bcrypt even for unknown usernames, and the error is
    the same for a wrong username and a wrong password.
    """
    user_store: UserStore = request.app.state.user_store
    account = authenticate(user_store, role, body.username, body.password)
    response.headers["Cache-Control"] = "no-store"
    if account is None:
        logger.info("Failed %s login for username=%r", role, body.username)
        raise api_error(401, "bad_credentials", "Invalid username or password.")
    pair = issue_tokens(user_store, account)
    set_auth_cookies(response, role, pair)
    data = AuthData(user=pop.account(account), access_token=pair.access_token, refresh_token=pair.refresh_token)
    return envelope(data, f"{role.capitalize()} logged in successfully")


def logout_flow(request: Request, response: Response, account: Account) -> Envelope:
    revoke_refresh_token(request.app.state.user_store, account)
    clear_auth_cookies(response, account.role)
    return envelope({}, f"{account.role.capitalize()} logged out successfully")


def refresh_flow(request: Request, response: Response, role: str, body: Optional[RefreshRequest]) -> Envelope:
    """Rotate the refresh token presented by cookie, JSON body or Bearer header."""
    incoming = request.cookies.get(refresh_cookie(role)) or (body.refresh_token if body else None)
    if not incoming:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            incoming = auth_header[7:]
    try:
        _, pair = rotate_refresh_token(request.app.state.user_store, role, incoming)
    except RefreshTokenError as e:
        raise api_error(401, "invalid_refresh_token", str(e)) from None
    set_auth_cookies(response, role, pair)
    response.headers["Cache-Control"] = "no-store"
    data = TokenData(access_token=pair.access_token, refresh_token=pair.refresh_token)
    return envelope(data, "Access token refreshed")


async def replace_profile_picture(request: Request, account: Account, profile: UploadFile) -> Account:
    """Upload a new profile image, store its URL, then delete the previous image."""
    url = await upload_profile(request, profile)
    user_store: UserStore = request.app.state.user_store
    user_store.update(account.role, account.id, profile=url)
    if account.profile:
        media: MediaStore = request.app.state.media
        await run_in_threadpool(media.delete, account.profile)
    return user_store.get(account.role, account.id)


def update_profile(request: Request, account: Account, body: ProfileUpdate) -> Account:
    """Apply a profile edit after checking uniqueness against the role's other accounts."""
    user_store: UserStore = request.app.state.user_store
    fields = body.model_dump()
    unique = {k: fields[k] for k in ("username", "email", "cnic") if k in fields}
    ensure_unique(user_store, account.role, exclude_id=account.id, **unique)
    try:
        user_store.update(account.role, account.id, **fields)
    except IntegrityError:
        raise api_error(409, "conflict", "Username or email already exists.") from None
    return user_store.get(account.role, account.id)
