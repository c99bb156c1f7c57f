"""
auth/models.py -- Domain dataclasses for the three account roles.

Pattern: Data class (pure data container, zero logic). Stores and routes do
the work. Each role lives in its own table, so ids are only unique per role;
`role` is carried on every instance so token and gate code can tell them apart.

Reference fields (city_id, campus_id, ...) hold raw ids. Resolving them to
named objects is the route layer's job (see api/populate.py).

Layer rule: no imports from api/ or academy/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

ADMIN = "admin"
TEACHER = "teacher"
STUDENT = "student"
ROLES = (ADMIN, TEACHER, STUDENT)


@dataclass
class Admin:
    """A back-office account. created_by is None only for the bootstrap admin."""

    full_name: str
    username: str
    email: str
    phone_number: str
    gender: str
    city_id: int
    campus_id: int
    id: int | None = None
    hashed_password: str | None = None
    profile: str | None = None  # media URL
    is_verified: bool = False
    refresh_token: str | None = None
    created_by: int | None = None
    updated_by: int | None = None
    created_at: str | None = None
    updated_at: str | None = None
    role: str = ADMIN


@dataclass
class Teacher:
    """An instructor.

    campus_ids starts with the registration campus and grows whenever the
    teacher is assigned a class on another campus. class_ids mirrors the
    classes the teacher instructs (the original "instructorOfClass" list).
    """

    full_name: str
    username: str
    email: str
    phone_number: str
    gender: str
    city_id: int
    course_id: int
    id: int | None = None
    hashed_password: str | None = None
    profile: str | None = None
    is_verified: bool = False
    refresh_token: str | None = None
    campus_ids: list[int] = field(default_factory=list)
    class_ids: list[int] = field(default_factory=list)
    created_by: int | None = None
    updated_by: int | None = None
    created_at: str | None = None
    updated_at: str | None = None
    role: str = TEACHER


@dataclass
class Student:
    """A learner. enrolled_in_class stays None until the student joins a class."""

    full_name: str
    father_name: str
    username: str
    email: str
    phone_number: str
    cnic: str
    gender: str
    address: str
    last_qualification: str
    dob: str
    city_id: int
    campus_id: int
    course_id: int
    id: int | None = None
    hashed_password: str | None = None
    profile: str | None = None
    is_verified: bool = False
    refresh_token: str | None = None
    enrolled_in_class: int | None = None
    updated_by: int | None = None
    created_at: str | None = None
    updated_at: str | None = None
    role: str = STUDENT


Account = Union[Admin, Teacher, Student]
