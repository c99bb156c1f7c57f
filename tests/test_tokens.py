"""
tests/test_tokens.py -- Unit tests for auth/tokens.py.

Covers:
  - bcrypt hash / verify, including malformed hashes and the 72-byte limit
  - authenticate(): success, wrong password, unknown username, wrong role
  - access and refresh tokens: claims, role, and that the two kinds never
    verify as each other
  - rotate_refresh_token(): rotation succeeds once; the rotated-out token,
    a revoked token, a missing token and a token for another role all fail
  - cookie names differ per role
"""

from __future__ import annotations

import pytest

from auth.models import ADMIN, STUDENT, TEACHER, Admin, Teacher
from auth.store import UserStore
from auth.tokens import (
    RefreshTokenError,
    access_cookie,
    authenticate,
    create_access_token,
    create_refresh_token,
    decode_access_token,
    decode_refresh_token,
    hash_password,
    issue_tokens,
    password_fits,
    refresh_cookie,
    revoke_refresh_token,
    rotate_refresh_token,
    verify_password,
)
from core.database import create_db_engine


@pytest.fixture(scope="module")
def store():
    engine = create_db_engine("sqlite:///file:campusdesk_unit_tokens?mode=memory&cache=shared&uri=true")
    user_store = UserStore(engine)
    yield user_store
    engine.dispose()


@pytest.fixture(scope="module")
def admin(store: UserStore) -> Admin:
    admin_id = store.create_admin(
        Admin(
            full_name="Token Admin",
            username="tokadmin",
            email="tok@campusdesk.test",
            phone_number="0300",
            gender="male",
            city_id=1,
            campus_id=1,
            hashed_password=hash_password("s3cretpass"),
        )
    )
    return store.get(ADMIN, admin_id)


class TestPasswords:
    def test_hash_then_verify(self) -> None:
        hashed = hash_password("correct horse")
        assert hashed != "correct horse"
        assert verify_password("correct horse", hashed)
        assert not verify_password("wrong horse", hashed)

    def test_malformed_hash_is_false_not_error(self) -> None:
        assert verify_password("anything", "not-a-bcrypt-hash") is False

    def test_password_limit_counts_bytes(self) -> None:
        assert password_fits("a" * 72)
        assert password_fits("\u00e9" * 36)
        assert not password_fits("\u00e9" * 40)
        assert not password_fits("a" * 73)


def test_cookie_names_are_per_role() -> None:
    names = {access_cookie(role) for role in (ADMIN, TEACHER, STUDENT)}
    names |= {refresh_cookie(role) for role in (ADMIN, TEACHER, STUDENT)}
    assert len(names) == 6
    assert access_cookie(TEACHER) == "teacher_access_token"


class TestAuthenticate:
    def test_valid_credentials(self, store: UserStore, admin: Admin) -> None:
        account = authenticate(store, ADMIN, "tokadmin", "s3cretpass")
        assert account is not None and account.id == admin.id

    def test_wrong_password(self, store: UserStore, admin: Admin) -> None:
        assert authenticate(store, ADMIN, "tokadmin", "nope") is None

    def test_unknown_username(self, store: UserStore) -> None:
        assert authenticate(store, ADMIN, "ghost", "s3cretpass") is None

    def test_username_of_another_role(self, store: UserStore, admin: Admin) -> None:
        """Each role has its own table: an admin username is unknown to the teacher login."""
        assert authenticate(store, TEACHER, "tokadmin", "s3cretpass") is None


class TestTokenClaims:
    def test_access_token_carries_identity_and_role(self, admin: Admin) -> None:
        payload = decode_access_token(create_access_token(admin))
        assert payload is not None
        assert payload["user_id"] == admin.id
        assert payload["email"] == admin.email
        assert payload["full_name"] == admin.full_name
        assert payload["role"] == ADMIN

    def test_refresh_token_is_not_an_access_token(self, admin: Admin) -> None:
        refresh = create_refresh_token(admin)
        assert decode_access_token(refresh) is None
        assert decode_refresh_token(refresh) is not None

    def test_access_token_is_not_a_refresh_token(self, admin: Admin) -> None:
        assert decode_refresh_token(create_access_token(admin)) is None

    def test_refresh_tokens_are_unique(self, admin: Admin) -> None:
        """Two refresh tokens minted in the same second still differ (random jti)."""
        assert create_refresh_token(admin) != create_refresh_token(admin)

    def test_garbage_token(self) -> None:
        assert decode_access_token("not.a.jwt") is None


class TestRotation:
    def test_rotation_succeeds_once(self, store: UserStore, admin: Admin) -> None:
        first = issue_tokens(store, admin)
        account, second = rotate_refresh_token(store, ADMIN, first.refresh_token)
        assert account.id == admin.id
        assert second.refresh_token != first.refresh_token
        assert store.get(ADMIN, admin.id).refresh_token == second.refresh_token

        with pytest.raises(RefreshTokenError, match="expired or used"):
            rotate_refresh_token(store, ADMIN, first.refresh_token)

    def test_revoked_token_fails(self, store: UserStore, admin: Admin) -> None:
        pair = issue_tokens(store, admin)
        revoke_refresh_token(store, store.get(ADMIN, admin.id))
        with pytest.raises(RefreshTokenError, match="expired or used"):
            rotate_refresh_token(store, ADMIN, pair.refresh_token)

    def test_missing_token(self, store: UserStore) -> None:
        with pytest.raises(RefreshTokenError, match="Unauthorized request"):
            rotate_refresh_token(store, ADMIN, None)

    def test_token_for_another_role(self, store: UserStore, admin: Admin) -> None:
        pair = issue_tokens(store, admin)
        with pytest.raises(RefreshTokenError, match="Invalid refresh token"):
            rotate_refresh_token(store, STUDENT, pair.refresh_token)

    def test_token_for_deleted_account(self, store: UserStore) -> None:
        teacher_id = store.create_teacher(
            Teacher(
                full_name="Gone",
                username="gone",
                email="gone@campusdesk.test",
                phone_number="0300",
                gender="male",
                city_id=1,
                course_id=1,
                hashed_password=hash_password("whatever1"),
            )
        )
        pair = issue_tokens(store, store.get(TEACHER, teacher_id))
        store.delete(TEACHER, teacher_id)
        with pytest.raises(RefreshTokenError, match="Invalid refresh token"):
            rotate_refresh_token(store, TEACHER, pair.refresh_token)
