"""
academy/store.py -- SQLAlchemy Core persistence for the academic hierarchy.

Pattern: Repository + Data Mapper (same as auth/store.py). AcademyStore is
the repository; the _row_to_* functions are the mappers.

The id arrays of the document model are link tables here:
  course_cities / course_campuses -- a course's city and campus memberships
  class_students                  -- class members
  assignment_submissions          -- one submission per (assignment, student)

Multi-step writes run in a single engine.begin() transaction so a failure
half-way leaves nothing behind:
  add_course_membership()  -- find-or-create the course, extend memberships
  remove_course_campus()   -- drop a campus and, if it was the last one of its
                              city, the city as well
  remove_course_city()     -- drop a city and all of its campuses
  create_class()           -- insert the class, link it and its campus to the
                              teacher, mark the teacher verified
  enroll_student()         -- add the member row and stamp the student

Existence of referenced ids is validated by the caller (route layer) before
any of these run; the store does not re-check it.

Layer rule: may import auth.store table objects for cross-aggregate writes.
Must not import from api/.
"""

from __future__ import annotations

import json
from typing import Optional

from sqlalchemy import (
    Column,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    delete,
    func,
    select,
)
from sqlalchemy.engine import Connection, Engine

from academy.models import (
    Assignment,
    Campus,
    City,
    Classroom,
    Course,
    MembershipChange,
    Quiz,
    Submission,
)
from auth.store import students, teacher_campuses, teacher_classes, teachers
from core.database import now_iso

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

cities = Table(
    "cities",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("city_name", String(100), nullable=False, unique=True),
    Column("created_by", Integer),
    Column("created_at", String(32), nullable=False),
)

campuses = Table(
    "campuses",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("city_id", Integer, nullable=False, index=True),
    Column("created_by", Integer),
    Column("created_at", String(32), nullable=False),
    UniqueConstraint("city_id", "name"),
)

courses = Table(
    "courses",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False, unique=True),
    Column("created_by", Integer),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

course_cities = Table(
    "course_cities",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("course_id", Integer, nullable=False, index=True),
    Column("city_id", Integer, nullable=False),
    UniqueConstraint("course_id", "city_id"),
)

course_campuses = Table(
    "course_campuses",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("course_id", Integer, nullable=False, index=True),
    Column("campus_id", Integer, nullable=False),
    UniqueConstraint("course_id", "campus_id"),
)

classes = Table(
    "classes",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("batch", String(50), nullable=False),
    Column("enrollment_key", String(100), nullable=False, unique=True),
    Column("teacher_id", Integer, nullable=False, index=True),
    Column("city_id", Integer, nullable=False),
    Column("campus_id", Integer, nullable=False),
    Column("course_id", Integer, nullable=False, index=True),
    Column("created_by", Integer),
    Column("updated_by", Integer),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

class_students = Table(
    "class_students",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("class_id", Integer, nullable=False, index=True),
    Column("student_id", Integer, nullable=False, index=True),
    UniqueConstraint("class_id", "student_id"),
)

assignments = Table(
    "assignments",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", String(255), nullable=False),
    Column("description", Text, nullable=False),
    Column("class_id", Integer, nullable=False, index=True),
    Column("created_by", Integer, nullable=False, index=True),
    Column("due_date", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

assignment_submissions = Table(
    "assignment_submissions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("assignment_id", Integer, nullable=False, index=True),
    Column("student_id", Integer, nullable=False, index=True),
    Column("link", Text, nullable=False),
    Column("submission_date", String(32), nullable=False),
    Column("marks", Float),
    UniqueConstraint("assignment_id", "student_id"),
)

quizzes = Table(
    "quizzes",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", String(255), nullable=False),
    Column("description", Text, nullable=False),
    Column("class_id", Integer, nullable=False, index=True),
    Column("created_by", Integer, nullable=False, index=True),
    Column("questions", Text, nullable=False),  # JSON array
    Column("created_at", String(32), nullable=False),
)

_CLASS_UPDATABLE = {"name", "batch", "enrollment_key", "teacher_id", "city_id", "campus_id", "course_id", "updated_by"}
_ASSIGNMENT_UPDATABLE = {"title", "description", "due_date"}


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AcademyStore:
    """Repository for cities, campuses, courses, classes, assignments and quizzes.

    Usage:
        store = AcademyStore(engine)
        city_id = store.create_city(City(city_name="Karachi", created_by=1))
        campus_id = store.create_campus(Campus(name="Gulshan", city_id=city_id))
        course, change = store.add_course_membership("Web Dev", city_id, campus_id, created_by=1)
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Cities
    # ------------------------------------------------------------------

    def create_city(self, city: City) -> int:
        """Insert a city. Raises IntegrityError if the name is taken."""
        with self.engine.begin() as conn:
            result = conn.execute(
                cities.insert().values(city_name=city.city_name, created_by=city.created_by, created_at=now_iso())
            )
            return result.inserted_primary_key[0]

    def get_city(self, city_id: int) -> Optional[City]:
        with self.engine.connect() as conn:
            row = conn.execute(cities.select().where(cities.c.id == city_id)).fetchone()
        return _row_to_city(row) if row is not None else None

    def list_cities(self) -> list[City]:
        with self.engine.connect() as conn:
            rows = conn.execute(cities.select().order_by(cities.c.city_name)).fetchall()
        return [_row_to_city(r) for r in rows]

    def get_cities(self, ids: list[int]) -> dict[int, City]:
        """Batch lookup used by the populate layer. Unknown ids are simply absent."""
        if not ids:
            return {}
        with self.engine.connect() as conn:
            rows = conn.execute(cities.select().where(cities.c.id.in_(set(ids)))).fetchall()
        return {r.id: _row_to_city(r) for r in rows}

    # ------------------------------------------------------------------
    # Campuses
    # ------------------------------------------------------------------

    def create_campus(self, campus: Campus) -> int:
        """Insert a campus. Raises IntegrityError if the city already has that name."""
        with self.engine.begin() as conn:
            result = conn.execute(
                campuses.insert().values(
                    name=campus.name,
                    city_id=campus.city_id,
                    created_by=campus.created_by,
                    created_at=now_iso(),
                )
            )
            return result.inserted_primary_key[0]

    def get_campus(self, campus_id: int) -> Optional[Campus]:
        with self.engine.connect() as conn:
            row = conn.execute(campuses.select().where(campuses.c.id == campus_id)).fetchone()
        return _row_to_campus(row) if row is not None else None

    def list_campuses(self, city_id: Optional[int] = None) -> list[Campus]:
        stmt = campuses.select().order_by(campuses.c.id)
        if city_id is not None:
            stmt = stmt.where(campuses.c.city_id == city_id)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_campus(r) for r in rows]

    def get_campuses(self, ids: list[int]) -> dict[int, Campus]:
        if not ids:
            return {}
        with self.engine.connect() as conn:
            rows = conn.execute(campuses.select().where(campuses.c.id.in_(set(ids)))).fetchall()
        return {r.id: _row_to_campus(r) for r in rows}

    # ------------------------------------------------------------------
    # Courses
    # ------------------------------------------------------------------

    def get_course(self, course_id: int) -> Optional[Course]:
        with self.engine.connect() as conn:
            return _load_course(conn, courses.c.id == course_id)

    def get_course_by_name(self, name: str) -> Optional[Course]:
        with self.engine.connect() as conn:
            return _load_course(conn, courses.c.name == name)

    def list_courses(self) -> list[Course]:
        with self.engine.connect() as conn:
            rows = conn.execute(courses.select().order_by(courses.c.id)).fetchall()
            return [_row_to_course(conn, r) for r in rows]

    def get_courses(self, ids: list[int]) -> dict[int, Course]:
        if not ids:
            return {}
        with self.engine.connect() as conn:
            rows = conn.execute(courses.select().where(courses.c.id.in_(set(ids)))).fetchall()
            return {r.id: _row_to_course(conn, r) for r in rows}

    def add_course_membership(
        self, name: str, city_id: int, campus_id: int, created_by: Optional[int]
    ) -> tuple[Course, MembershipChange]:
        """Offer the course called name at (city_id, campus_id).

        - No course with that name: create it with [city_id] and [campus_id].
        - Course exists and already lists the city: append the campus.
        - Course exists without the city: append both city and campus.
        - Both already listed: write nothing (idempotent).

        The caller guarantees campus_id belongs to city_id, which keeps the
        campus list a subset of the listed cities' campuses.
        """
        with self.engine.begin() as conn:
            existing = _load_course(conn, courses.c.name == name)
            if existing is None:
                now = now_iso()
                course_id = conn.execute(
                    courses.insert().values(name=name, created_by=created_by, created_at=now, updated_at=now)
                ).inserted_primary_key[0]
                conn.execute(course_cities.insert().values(course_id=course_id, city_id=city_id))
                conn.execute(course_campuses.insert().values(course_id=course_id, campus_id=campus_id))
                change = MembershipChange.created
            else:
                course_id = existing.id
                city_linked = city_id in existing.city_ids
                campus_linked = campus_id in existing.campus_ids
                if city_linked and campus_linked:
                    return existing, MembershipChange.unchanged
                if not city_linked:
                    conn.execute(course_cities.insert().values(course_id=course_id, city_id=city_id))
                    change = MembershipChange.city_added
                else:
                    change = MembershipChange.campus_added
                if not campus_linked:
                    conn.execute(course_campuses.insert().values(course_id=course_id, campus_id=campus_id))
                _touch_course(conn, course_id)
            return _load_course(conn, courses.c.id == course_id), change

    def rename_course(self, course_id: int, name: str) -> bool:
        """Rename a course. Raises IntegrityError if the name is taken."""
        with self.engine.begin() as conn:
            result = conn.execute(
                courses.update().where(courses.c.id == course_id).values(name=name, updated_at=now_iso())
            )
        return result.rowcount > 0

    def remove_course_campus(self, course_id: int, campus: Campus) -> bool:
        """Unlink campus from a course. Returns False if it was not linked.

        When campus is the course's last campus in its city, the city link is
        removed as well so the course never lists a city it has no campus in.
        """
        with self.engine.begin() as conn:
            course = _load_course(conn, courses.c.id == course_id)
            if course is None or campus.id not in course.campus_ids:
                return False
            same_city = conn.execute(
                select(func.count())
                .select_from(course_campuses.join(campuses, campuses.c.id == course_campuses.c.campus_id))
                .where((course_campuses.c.course_id == course_id) & (campuses.c.city_id == campus.city_id))
            ).scalar()
            conn.execute(
                delete(course_campuses).where(
                    (course_campuses.c.course_id == course_id) & (course_campuses.c.campus_id == campus.id)
                )
            )
            if same_city == 1:
                conn.execute(
                    delete(course_cities).where(
                        (course_cities.c.course_id == course_id) & (course_cities.c.city_id == campus.city_id)
                    )
                )
            _touch_course(conn, course_id)
        return True

    def remove_course_city(self, course_id: int, city_id: int) -> bool:
        """Unlink a city and every campus of that city from a course.

        Returns False if the course does not list the city.
        """
        with self.engine.begin() as conn:
            course = _load_course(conn, courses.c.id == course_id)
            if course is None or city_id not in course.city_ids:
                return False
            city_campus_ids = select(campuses.c.id).where(campuses.c.city_id == city_id)
            conn.execute(
                delete(course_campuses).where(
                    (course_campuses.c.course_id == course_id) & course_campuses.c.campus_id.in_(city_campus_ids)
                )
            )
            conn.execute(
                delete(course_cities).where((course_cities.c.course_id == course_id) & (course_cities.c.city_id == city_id))
            )
            _touch_course(conn, course_id)
        return True

    def delete_course(self, course_id: int) -> bool:
        """Delete a course and its membership links. Callers check for classes first."""
        with self.engine.begin() as conn:
            result = conn.execute(courses.delete().where(courses.c.id == course_id))
            conn.execute(delete(course_cities).where(course_cities.c.course_id == course_id))
            conn.execute(delete(course_campuses).where(course_campuses.c.course_id == course_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Classes
    # ------------------------------------------------------------------

    def create_class(self, classroom: Classroom) -> int:
        """Insert a class and assign it to its teacher in one transaction.

        Side effects on the teacher: the class joins its class list, the
        campus joins its campus list (once), and the teacher becomes verified.
        Raises IntegrityError if the enrollment key is taken.
        """
        now = now_iso()
        with self.engine.begin() as conn:
            class_id = conn.execute(
                classes.insert().values(
                    name=classroom.name,
                    batch=classroom.batch,
                    enrollment_key=classroom.enrollment_key,
                    teacher_id=classroom.teacher_id,
                    city_id=classroom.city_id,
                    campus_id=classroom.campus_id,
                    course_id=classroom.course_id,
                    created_by=classroom.created_by,
                    updated_by=classroom.updated_by,
                    created_at=now,
                    updated_at=now,
                )
            ).inserted_primary_key[0]
            _assign_teacher(conn, classroom.teacher_id, class_id, classroom.campus_id)
        return class_id

    def get_class(self, class_id: int) -> Optional[Classroom]:
        with self.engine.connect() as conn:
            row = conn.execute(classes.select().where(classes.c.id == class_id)).fetchone()
            return _row_to_class(conn, row) if row is not None else None

    def get_class_by_key(self, enrollment_key: str) -> Optional[Classroom]:
        with self.engine.connect() as conn:
            row = conn.execute(classes.select().where(classes.c.enrollment_key == enrollment_key)).fetchone()
            return _row_to_class(conn, row) if row is not None else None

    def list_classes(self, teacher_id: Optional[int] = None, course_id: Optional[int] = None) -> list[Classroom]:
        stmt = classes.select().order_by(classes.c.id)
        if teacher_id is not None:
            stmt = stmt.where(classes.c.teacher_id == teacher_id)
        if course_id is not None:
            stmt = stmt.where(classes.c.course_id == course_id)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
            return [_row_to_class(conn, r) for r in rows]

    def get_classes(self, ids: list[int]) -> dict[int, Classroom]:
        if not ids:
            return {}
        with self.engine.connect() as conn:
            rows = conn.execute(classes.select().where(classes.c.id.in_(set(ids)))).fetchall()
            return {r.id: _row_to_class(conn, r) for r in rows}

    def update_class(self, class_id: int, **fields) -> bool:
        """Update class fields. Returns False if the class does not exist.

        Changing teacher_id moves the class from the old teacher's class list
        to the new teacher's (with the same side effects as create_class).
        Raises IntegrityError if the new enrollment key is taken.
        """
        unknown = set(fields) - _CLASS_UPDATABLE
        if unknown:
            raise ValueError(f"Fields not updatable on a class: {sorted(unknown)!r}")
        with self.engine.begin() as conn:
            row = conn.execute(classes.select().where(classes.c.id == class_id)).fetchone()
            if row is None:
                return False
            conn.execute(classes.update().where(classes.c.id == class_id).values(**fields, updated_at=now_iso()))
            new_teacher = fields.get("teacher_id", row.teacher_id)
            new_campus = fields.get("campus_id", row.campus_id)
            if new_teacher != row.teacher_id or new_campus != row.campus_id:
                conn.execute(
                    delete(teacher_classes).where(
                        (teacher_classes.c.teacher_id == row.teacher_id) & (teacher_classes.c.class_id == class_id)
                    )
                )
                _assign_teacher(conn, new_teacher, class_id, new_campus)
        return True

    def delete_class(self, class_id: int) -> bool:
        """Delete a class with its links, assignments, submissions and quizzes.

        Callers must refuse the delete while students are enrolled; their
        enrolled_in_class would otherwise dangle.
        """
        with self.engine.begin() as conn:
            result = conn.execute(classes.delete().where(classes.c.id == class_id))
            conn.execute(delete(teacher_classes).where(teacher_classes.c.class_id == class_id))
            conn.execute(delete(class_students).where(class_students.c.class_id == class_id))
            assignment_ids = select(assignments.c.id).where(assignments.c.class_id == class_id)
            conn.execute(delete(assignment_submissions).where(assignment_submissions.c.assignment_id.in_(assignment_ids)))
            conn.execute(delete(assignments).where(assignments.c.class_id == class_id))
            conn.execute(delete(quizzes).where(quizzes.c.class_id == class_id))
        return result.rowcount > 0

    def enroll_student(self, class_id: int, student_id: int) -> None:
        """Add student_id to the class members and stamp students.enrolled_in_class."""
        with self.engine.begin() as conn:
            conn.execute(class_students.insert().values(class_id=class_id, student_id=student_id))
            conn.execute(
                students.update()
                .where(students.c.id == student_id)
                .values(enrolled_in_class=class_id, updated_at=now_iso())
            )

    # ------------------------------------------------------------------
    # Assignments
    # ------------------------------------------------------------------

    def create_assignment(self, assignment: Assignment) -> int:
        now = now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                assignments.insert().values(
                    title=assignment.title,
                    description=assignment.description,
                    class_id=assignment.class_id,
                    created_by=assignment.created_by,
                    due_date=assignment.due_date,
                    created_at=now,
                    updated_at=now,
                )
            )
            return result.inserted_primary_key[0]

    def get_assignment(self, assignment_id: int) -> Optional[Assignment]:
        with self.engine.connect() as conn:
            row = conn.execute(assignments.select().where(assignments.c.id == assignment_id)).fetchone()
            return _row_to_assignment(conn, row) if row is not None else None

    def list_assignments(self, teacher_id: Optional[int] = None, class_id: Optional[int] = None) -> list[Assignment]:
        """Return assignments newest first, filtered by author and/or class."""
        stmt = assignments.select().order_by(assignments.c.id.desc())
        if teacher_id is not None:
            stmt = stmt.where(assignments.c.created_by == teacher_id)
        if class_id is not None:
            stmt = stmt.where(assignments.c.class_id == class_id)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
            return [_row_to_assignment(conn, r) for r in rows]

    def count_assignments(self, class_id: int) -> int:
        with self.engine.connect() as conn:
            total = conn.execute(
                select(func.count()).select_from(assignments).where(assignments.c.class_id == class_id)
            ).scalar()
        return total or 0

    def update_assignment(self, assignment_id: int, **fields) -> bool:
        unknown = set(fields) - _ASSIGNMENT_UPDATABLE
        if unknown:
            raise ValueError(f"Fields not updatable on an assignment: {sorted(unknown)!r}")
        with self.engine.begin() as conn:
            result = conn.execute(
                assignments.update().where(assignments.c.id == assignment_id).values(**fields, updated_at=now_iso())
            )
        return result.rowcount > 0

    def delete_assignment(self, assignment_id: int) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(assignments.delete().where(assignments.c.id == assignment_id))
            conn.execute(delete(assignment_submissions).where(assignment_submissions.c.assignment_id == assignment_id))
        return result.rowcount > 0

    def submit_assignment(self, assignment_id: int, student_id: int, link: str) -> bool:
        """Record a submission. Returns False if the student already submitted."""
        with self.engine.begin() as conn:
            exists = conn.execute(
                select(assignment_submissions.c.id).where(
                    (assignment_submissions.c.assignment_id == assignment_id)
                    & (assignment_submissions.c.student_id == student_id)
                )
            ).first()
            if exists is not None:
                return False
            conn.execute(
                assignment_submissions.insert().values(
                    assignment_id=assignment_id,
                    student_id=student_id,
                    link=link,
                    submission_date=now_iso(),
                )
            )
        return True

    def assign_marks(self, assignment_id: int, student_id: int, marks: float) -> bool:
        """Set marks on a submission. Returns False if there is no such submission."""
        with self.engine.begin() as conn:
            result = conn.execute(
                assignment_submissions.update()
                .where(
                    (assignment_submissions.c.assignment_id == assignment_id)
                    & (assignment_submissions.c.student_id == student_id)
                )
                .values(marks=marks)
            )
        return result.rowcount > 0

    def submissions_for_student(self, class_id: int, student_id: int) -> list[tuple[Assignment, Submission]]:
        """Return (assignment, submission) pairs for one student in one class, oldest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(assignments, assignment_submissions.c.link, assignment_submissions.c.marks,
                       assignment_submissions.c.submission_date, assignment_submissions.c.student_id)
                .join(assignment_submissions, assignment_submissions.c.assignment_id == assignments.c.id)
                .where((assignments.c.class_id == class_id) & (assignment_submissions.c.student_id == student_id))
                .order_by(assignments.c.id)
            ).fetchall()
        return [
            (
                _row_to_assignment(None, r),
                Submission(student_id=r.student_id, link=r.link, marks=r.marks, submission_date=r.submission_date),
            )
            for r in rows
        ]

    # ------------------------------------------------------------------
    # Quizzes
    # ------------------------------------------------------------------

    def create_quiz(self, quiz: Quiz) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(
                quizzes.insert().values(
                    title=quiz.title,
                    description=quiz.description,
                    class_id=quiz.class_id,
                    created_by=quiz.created_by,
                    questions=json.dumps(quiz.questions),
                    created_at=now_iso(),
                )
            )
            return result.inserted_primary_key[0]

    def get_quiz(self, quiz_id: int) -> Optional[Quiz]:
        with self.engine.connect() as conn:
            row = conn.execute(quizzes.select().where(quizzes.c.id == quiz_id)).fetchone()
        return _row_to_quiz(row) if row is not None else None

    def list_quizzes(self, teacher_id: Optional[int] = None, class_id: Optional[int] = None) -> list[Quiz]:
        stmt = quizzes.select().order_by(quizzes.c.id.desc())
        if teacher_id is not None:
            stmt = stmt.where(quizzes.c.created_by == teacher_id)
        if class_id is not None:
            stmt = stmt.where(quizzes.c.class_id == class_id)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_quiz(r) for r in rows]

    def delete_quiz(self, quiz_id: int) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(quizzes.delete().where(quizzes.c.id == quiz_id))
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Transaction helpers (run on a caller-owned connection)
# ---------------------------------------------------------------------------


def _touch_course(conn: Connection, course_id: int) -> None:
    conn.execute(courses.update().where(courses.c.id == course_id).values(updated_at=now_iso()))


def _assign_teacher(conn: Connection, teacher_id: int, class_id: int, campus_id: int) -> None:
    """Link class and campus to the teacher and mark the teacher verified."""
    conn.execute(teacher_classes.insert().values(teacher_id=teacher_id, class_id=class_id))
    has_campus = conn.execute(
        select(teacher_campuses.c.id).where(
            (teacher_campuses.c.teacher_id == teacher_id) & (teacher_campuses.c.campus_id == campus_id)
        )
    ).first()
    if has_campus is None:
        conn.execute(teacher_campuses.insert().values(teacher_id=teacher_id, campus_id=campus_id))
    conn.execute(teachers.update().where(teachers.c.id == teacher_id).values(is_verified=True, updated_at=now_iso()))


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_city(row) -> City:
    return City(id=row.id, city_name=row.city_name, created_by=row.created_by, created_at=row.created_at)


def _row_to_campus(row) -> Campus:
    return Campus(
        id=row.id,
        name=row.name,
        city_id=row.city_id,
        created_by=row.created_by,
        created_at=row.created_at,
    )


def _load_course(conn: Connection, where) -> Optional[Course]:
    row = conn.execute(courses.select().where(where)).fetchone()
    return _row_to_course(conn, row) if row is not None else None


def _row_to_course(conn: Connection, row) -> Course:
    city_ids = conn.execute(
        select(course_cities.c.city_id).where(course_cities.c.course_id == row.id).order_by(course_cities.c.id)
    ).scalars().all()
    campus_ids = conn.execute(
        select(course_campuses.c.campus_id).where(course_campuses.c.course_id == row.id).order_by(course_campuses.c.id)
    ).scalars().all()
    return Course(
        id=row.id,
        name=row.name,
        created_by=row.created_by,
        city_ids=list(city_ids),
        campus_ids=list(campus_ids),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_class(conn: Connection, row) -> Classroom:
    student_ids = conn.execute(
        select(class_students.c.student_id).where(class_students.c.class_id == row.id).order_by(class_students.c.id)
    ).scalars().all()
    return Classroom(
        id=row.id,
        name=row.name,
        batch=row.batch,
        enrollment_key=row.enrollment_key,
        teacher_id=row.teacher_id,
        city_id=row.city_id,
        campus_id=row.campus_id,
        course_id=row.course_id,
        created_by=row.created_by,
        updated_by=row.updated_by,
        student_ids=list(student_ids),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_assignment(conn: Optional[Connection], row) -> Assignment:
    """Map an assignments row. Submissions are loaded only when conn is given."""
    submissions: list[Submission] = []
    if conn is not None:
        sub_rows = conn.execute(
            assignment_submissions.select()
            .where(assignment_submissions.c.assignment_id == row.id)
            .order_by(assignment_submissions.c.id)
        ).fetchall()
        submissions = [
            Submission(student_id=s.student_id, link=s.link, submission_date=s.submission_date, marks=s.marks)
            for s in sub_rows
        ]
    return Assignment(
        id=row.id,
        title=row.title,
        description=row.description,
        class_id=row.class_id,
        created_by=row.created_by,
        due_date=row.due_date,
        submissions=submissions,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_quiz(row) -> Quiz:
    return Quiz(
        id=row.id,
        title=row.title,
        description=row.description,
        class_id=row.class_id,
        created_by=row.created_by,
        questions=json.loads(row.questions or "[]"),
        created_at=row.created_at,
    )
