"""
auth/dependencies.py -- FastAPI Depends() gates, one per role.

Every gate follows the same contract:
  1. Read the access token from the role's own "<role>_access_token" cookie,
     falling back to an "Authorization: Bearer <token>" header.
  2. Verify signature, expiry and that the token was issued for this role.
  3. Load the account from that role's table.
  4. Attach it to request.state.<role> and return it, or raise HTTP 401.

Cookies are per role, so a session cookie left by one role never shadows the
credentials sent for another.

The three gates differ only in the role name, so they are built by one
factory (role_gate) rather than written out three times.

Layer rule: no imports from api/ or academy/. fastapi is allowed because
this module is part of the dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import HTTPException, Request

from auth.models import ADMIN, STUDENT, TEACHER, Account, Admin, Student, Teacher
from auth.tokens import access_cookie, decode_access_token


def extract_access_token(request: Request, role: str) -> str | None:
    token: str | None = request.cookies.get(access_cookie(role))
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
    return token or None


def try_get_account(request: Request, role: str) -> Account | None:
    """Authenticate the request for role. Returns None on any failure; never raises."""
    token = extract_access_token(request, role)
    if not token:
        return None
    payload = decode_access_token(token)
    if payload is None or payload["role"] != role:
        return None
    return request.app.state.user_store.get(role, payload["user_id"])


def role_gate(role: str) -> Callable[[Request], Account]:
    """Build a dependency that requires a valid access token for role."""

    def gate(request: Request) -> Account:
        account = try_get_account(request, role)
        if account is None:
            raise HTTPException(
                status_code=401,
                detail={"code": "unauthorized", "message": "Invalid or missing access token."},
            )
        setattr(request.state, role, account)
        return account

    gate.__name__ = f"require_{role}"
    return gate


require_admin: Callable[[Request], Admin] = role_gate(ADMIN)
require_teacher: Callable[[Request], Teacher] = role_gate(TEACHER)
require_student: Callable[[Request], Student] = role_gate(STUDENT)
