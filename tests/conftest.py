"""
tests/conftest.py -- Shared test fixtures for campusdesk integration tests.

This module provides:
  - make_engine(): a named shared-memory SQLite engine per test module
  - FakeMedia: in-process stand-in for the Cloudinary MediaStore
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - campus: module-scoped CampusContext with a TestClient, both stores, the
    fake media store and a seeded verified admin in one city and campus

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

The DEBUG env var must be set before any auth module import so get_settings()
auto-generates the token secrets in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import itertools
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Optional

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate the token secrets in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from academy.models import Campus, City, Classroom
from academy.store import AcademyStore
from api.main import app
from auth.models import ADMIN, Admin, Student, Teacher
from auth.store import UserStore
from auth.tokens import create_access_token, hash_password
from core.database import create_db_engine

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64

ADMIN_USERNAME = "rootadmin"
ADMIN_PASSWORD = "rootpass123"


def make_engine(name: str) -> Engine:
    """Engine on a named shared-memory SQLite database."""
    return create_db_engine(f"sqlite:///file:campusdesk_{name}?mode=memory&cache=shared&uri=true")


class FakeMedia:
    """Records uploads and deletes instead of calling Cloudinary.

    Set fail=True to make the next uploads report failure (upload returns None).
    """

    def __init__(self) -> None:
        self.uploaded: list[str] = []
        self.deleted: list[str] = []
        self.fail = False
        self._seq = itertools.count(1)

    @property
    def enabled(self) -> bool:
        return True

    def upload(self, content: bytes, filename: str) -> Optional[str]:
        if self.fail:
            return None
        url = f"https://res.cloudinary.com/demo/image/upload/v1/campusdesk/profile_{next(self._seq)}.png"
        self.uploaded.append(url)
        return url

    def delete(self, url: str) -> bool:
        self.deleted.append(url)
        return True


@dataclass
class CampusContext:
    """Everything a route test needs: the client, the stores and the seeded admin."""

    client: TestClient
    user_store: UserStore
    academy: AcademyStore
    media: FakeMedia
    admin_id: int
    admin_token: str
    city_id: int
    campus_id: int
    _seq: itertools.count = field(default_factory=lambda: itertools.count(1))

    admin_username = ADMIN_USERNAME
    admin_password = ADMIN_PASSWORD

    def unique(self, prefix: str) -> str:
        """Return prefix plus a per-module counter, for usernames, keys and names."""
        return f"{prefix}{next(self._seq)}"

    @staticmethod
    def profile(name: str = "avatar.png", content_type: str = "image/png") -> dict:
        """multipart files= payload carrying a small PNG as the profile image."""
        return {"profile": (name, PNG_BYTES, content_type)}

    @property
    def admin_headers(self) -> dict:
        return {"Authorization": f"Bearer {self.admin_token}"}

    def token_for(self, role: str, account_id: int) -> str:
        return create_access_token(self.user_store.get(role, account_id), expire_seconds=3600)

    def headers_for(self, role: str, account_id: int) -> dict:
        return {"Authorization": f"Bearer {self.token_for(role, account_id)}"}

    def login(self, role: str, username: str, password: str) -> dict:
        """Log in through the API and return the response body.

        Cookies set by the response are dropped so they cannot leak into the
        next request and authenticate it as this account.
        """
        resp = self.client.post(f"/api/{role}/login", json={"username": username, "password": password})
        self.client.cookies.clear()
        assert resp.status_code == 200, f"Login failed: {resp.status_code} {resp.text}"
        return resp.json()

    # Direct store helpers for arranging state without going through the API.

    def add_course(self, name: Optional[str] = None) -> int:
        course, _ = self.academy.add_course_membership(
            name or self.unique("Course "), self.city_id, self.campus_id, self.admin_id
        )
        return course.id

    def add_teacher(self, course_id: int, password: str = "teachpass123") -> tuple[int, str]:
        """Create an unverified teacher. Returns (id, username)."""
        username = self.unique("teacher")
        teacher_id = self.user_store.create_teacher(
            Teacher(
                full_name=f"Teacher {username}",
                username=username,
                email=f"{username}@campusdesk.test",
                phone_number="03110000000",
                gender="male",
                city_id=self.city_id,
                course_id=course_id,
                campus_ids=[self.campus_id],
                hashed_password=hash_password(password),
            )
        )
        return teacher_id, username

    def add_student(self, course_id: int, password: str = "studpass123") -> tuple[int, str]:
        """Create a student who is not enrolled anywhere. Returns (id, username)."""
        username = self.unique("student")
        student_id = self.user_store.create_student(
            Student(
                full_name=f"Student {username}",
                father_name="Father",
                username=username,
                email=f"{username}@campusdesk.test",
                phone_number="03220000000",
                cnic=f"42101-{next(self._seq):07d}-1",
                gender="female",
                address="House 1, Block 2",
                last_qualification="Intermediate",
                dob="2004-05-06",
                city_id=self.city_id,
                campus_id=self.campus_id,
                course_id=course_id,
                hashed_password=hash_password(password),
            )
        )
        return student_id, username

    def add_class(self, teacher_id: int, course_id: int) -> tuple[int, str]:
        """Create a class through the store. Returns (id, enrollment_key)."""
        key = self.unique("KEY-")
        class_id = self.academy.create_class(
            Classroom(
                name=self.unique("Class "),
                batch="10",
                enrollment_key=key,
                teacher_id=teacher_id,
                city_id=self.city_id,
                campus_id=self.campus_id,
                course_id=course_id,
                created_by=self.admin_id,
            )
        )
        return class_id, key


def _seed(user_store: UserStore, academy: AcademyStore) -> tuple[int, int, int]:
    """Create one city, one campus and a verified admin. Returns (admin_id, city_id, campus_id)."""
    city_id = academy.create_city(City(city_name="Karachi"))
    campus_id = academy.create_campus(Campus(name="Gulshan", city_id=city_id))
    admin_id = user_store.create_admin(
        Admin(
            full_name="Root Admin",
            username=ADMIN_USERNAME,
            email="root@campusdesk.test",
            phone_number="03000000000",
            gender="female",
            city_id=city_id,
            campus_id=campus_id,
            hashed_password=hash_password(ADMIN_PASSWORD),
            is_verified=True,
        )
    )
    return admin_id, city_id, campus_id


def _patch_lifespan(engine: Engine, user_store: UserStore, academy: AcademyStore, media: FakeMedia):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state so TestClient routes see the
    isolated test DB, and swaps in FakeMedia to prevent real network calls.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.engine = engine
        app.state.user_store = user_store
        app.state.academy = academy
        app.state.media = media
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient and one database per test module
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def campus(request) -> Generator[CampusContext, None, None]:
    """Yield a CampusContext backed by a fresh in-memory database.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers. Rate limiting is switched off: tests log in far
    more often than the login limit allows.
    """
    engine = make_engine(request.module.__name__.rsplit(".", 1)[-1])
    user_store = UserStore(engine)
    academy = AcademyStore(engine)
    media = FakeMedia()
    admin_id, city_id, campus_id = _seed(user_store, academy)
    token = create_access_token(user_store.get(ADMIN, admin_id), expire_seconds=3600)

    app.router.lifespan_context = _patch_lifespan(engine, user_store, academy, media)
    app.state.limiter.enabled = False

    with TestClient(app, raise_server_exceptions=True) as client:
        yield CampusContext(
            client=client,
            user_store=user_store,
            academy=academy,
            media=media,
            admin_id=admin_id,
            admin_token=token,
            city_id=city_id,
            campus_id=campus_id,
        )

    app.state.limiter.enabled = True
    engine.dispose()
