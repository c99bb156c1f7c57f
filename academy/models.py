"""
academy/models.py -- Domain dataclasses for the academic hierarchy.

city -> campus -> course -> class -> assignment / quiz

These are pure data containers with zero logic. Membership rules (which
campuses a course may list, what a class creation does to its teacher) live
in academy/store.py.

id is None before the record is written to the database.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


@dataclass
class City:
    city_name: str
    created_by: Optional[int] = None  # -> admins.id
    id: Optional[int] = None
    created_at: str = ""


@dataclass
class Campus:
    name: str
    city_id: int
    created_by: Optional[int] = None
    id: Optional[int] = None
    created_at: str = ""


@dataclass
class Course:
    """A course offered in a set of cities and campuses.

    Both lists are denormalized memberships. Invariant: every campus in
    campus_ids belongs to a city in city_ids.
    """

    name: str
    created_by: Optional[int] = None
    city_ids: list[int] = field(default_factory=list)
    campus_ids: list[int] = field(default_factory=list)
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""


class MembershipChange(str, Enum):
    """Outcome of AcademyStore.add_course_membership()."""

    created = "created"  # new course with one city and one campus
    campus_added = "campus_added"  # city already linked, campus appended
    city_added = "city_added"  # city and campus both appended
    unchanged = "unchanged"  # pair already linked, nothing written


@dataclass
class Classroom:
    """A class: one teacher, one course on one campus, joined by enrollment key."""

    name: str
    batch: str
    enrollment_key: str
    teacher_id: int
    city_id: int
    campus_id: int
    course_id: int
    created_by: Optional[int] = None
    updated_by: Optional[int] = None
    student_ids: list[int] = field(default_factory=list)
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Submission:
    student_id: int
    link: str
    submission_date: str = ""
    marks: Optional[float] = None


@dataclass
class Assignment:
    title: str
    description: str
    class_id: int
    created_by: int  # -> teachers.id
    due_date: Optional[str] = None
    submissions: list[Submission] = field(default_factory=list)
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Quiz:
    """A quiz attached to a class. questions is an opaque list of dicts."""

    title: str
    description: str
    class_id: int
    created_by: int
    questions: list[dict] = field(default_factory=list)
    id: Optional[int] = None
    created_at: str = ""
