"""
auth/store.py -- SQLAlchemy Core persistence layer for the credential store.

Pattern: Repository + Data Mapper. UserStore is the repository; the _row_to_*
functions are the mappers. Route and dependency code never touches SQL.

One table per role (admins, teachers, students). Most operations take the
role name and dispatch to the right table, so the three roles share one code
path for lookups, refresh-token bookkeeping, updates and deletes.

The teacher's campus list and class list are link tables rather than array
columns. Class assignment writes to them from academy/store.py inside the
class-creation transaction, which is why the table objects are public.

Security:
  All queries use bound parameters. No f-strings in SQL.
  username/email (and cnic for students) carry UNIQUE constraints; the route
  layer pre-checks for a friendly message and still maps IntegrityError to 409
  for the race where two requests pass the pre-check together.

Layer rule: no imports from api/ or academy/.
"""

from __future__ import annotations

from sqlalchemy import Boolean, Column, Integer, MetaData, String, Table, Text, UniqueConstraint, delete, select
from sqlalchemy.engine import Engine

from auth.models import ADMIN, STUDENT, TEACHER, Account, Admin, Student, Teacher
from core.database import now_iso

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()


def _account_columns() -> list[Column]:
    """Columns shared by every role table (fresh Column objects per table)."""
    return [
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("full_name", String(255), nullable=False),
        Column("username", String(100), nullable=False, unique=True),
        Column("email", String(255), nullable=False, unique=True),
        Column("hashed_password", Text, nullable=False),
        Column("profile", Text),
        Column("phone_number", String(30), nullable=False),
        Column("gender", String(20), nullable=False),
        Column("is_verified", Boolean, nullable=False, default=False),
        Column("refresh_token", Text),
        Column("updated_by", Integer),  # -> admins.id
        Column("created_at", String(32), nullable=False),
        Column("updated_at", String(32), nullable=False),
    ]


admins = Table(
    "admins",
    metadata,
    *_account_columns(),
    Column("city_id", Integer, nullable=False),
    Column("campus_id", Integer, nullable=False),
    Column("created_by", Integer),  # NULL only for the bootstrap admin
)

teachers = Table(
    "teachers",
    metadata,
    *_account_columns(),
    Column("city_id", Integer, nullable=False),
    Column("course_id", Integer, nullable=False),
    Column("created_by", Integer),
)

students = Table(
    "students",
    metadata,
    *_account_columns(),
    Column("father_name", String(255), nullable=False),
    Column("cnic", String(30), nullable=False, unique=True),
    Column("address", Text, nullable=False),
    Column("last_qualification", String(255), nullable=False),
    Column("dob", String(32), nullable=False),
    Column("city_id", Integer, nullable=False),
    Column("campus_id", Integer, nullable=False),
    Column("course_id", Integer, nullable=False),
    Column("enrolled_in_class", Integer),
)

teacher_campuses = Table(
    "teacher_campuses",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("teacher_id", Integer, nullable=False, index=True),
    Column("campus_id", Integer, nullable=False),
    UniqueConstraint("teacher_id", "campus_id"),
)

teacher_classes = Table(
    "teacher_classes",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("teacher_id", Integer, nullable=False, index=True),
    Column("class_id", Integer, nullable=False),
    UniqueConstraint("teacher_id", "class_id"),
)

_TABLES: dict[str, Table] = {ADMIN: admins, TEACHER: teachers, STUDENT: students}

# Columns a caller may change through update(). Anything else (id, password
# hash, refresh token, timestamps) has a dedicated method.
_UPDATABLE: dict[str, set[str]] = {
    ADMIN: {"full_name", "username", "email", "phone_number", "gender", "profile", "is_verified",
            "city_id", "campus_id", "updated_by"},
    TEACHER: {"full_name", "username", "email", "phone_number", "gender", "profile", "is_verified",
              "city_id", "course_id", "updated_by"},
    STUDENT: {"full_name", "father_name", "username", "email", "phone_number", "cnic", "gender", "address",
              "last_qualification", "dob", "profile", "is_verified", "updated_by"},
}


def _table(role: str) -> Table:
    try:
        return _TABLES[role]
    except KeyError:
        raise ValueError(f"Unknown role: {role!r}") from None


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for Admin, Teacher and Student accounts.

    Usage:
        store = UserStore(create_db_engine("sqlite:///campusdesk.db"))
        admin_id = store.create_admin(Admin(...))
        admin = store.get(ADMIN, admin_id)
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Inserts
    # ------------------------------------------------------------------

    def create_admin(self, admin: Admin) -> int:
        """Insert a new admin and return its id. Raises IntegrityError on duplicates."""
        return self._insert(
            admins,
            _common_values(admin)
            | {"city_id": admin.city_id, "campus_id": admin.campus_id, "created_by": admin.created_by},
        )

    def create_teacher(self, teacher: Teacher) -> int:
        """Insert a new teacher together with its initial campus links."""
        values = _common_values(teacher) | {
            "city_id": teacher.city_id,
            "course_id": teacher.course_id,
            "created_by": teacher.created_by,
        }
        with self.engine.begin() as conn:
            teacher_id = conn.execute(teachers.insert().values(**values)).inserted_primary_key[0]
            for campus_id in dict.fromkeys(teacher.campus_ids):
                conn.execute(teacher_campuses.insert().values(teacher_id=teacher_id, campus_id=campus_id))
        return teacher_id

    def create_student(self, student: Student) -> int:
        return self._insert(
            students,
            _common_values(student)
            | {
                "father_name": student.father_name,
                "cnic": student.cnic,
                "address": student.address,
                "last_qualification": student.last_qualification,
                "dob": student.dob,
                "city_id": student.city_id,
                "campus_id": student.campus_id,
                "course_id": student.course_id,
                "enrolled_in_class": student.enrolled_in_class,
            },
        )

    def _insert(self, table: Table, values: dict) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(table.insert().values(**values))
            return result.inserted_primary_key[0]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_admins(self) -> bool:
        """Return True if at least one admin exists. Used by the bootstrap command."""
        with self.engine.connect() as conn:
            row = conn.execute(select(admins.c.id).limit(1)).first()
        return row is not None

    def get(self, role: str, account_id: int) -> Account | None:
        """Look up an account by primary key. Returns None if not found."""
        table = _table(role)
        with self.engine.connect() as conn:
            row = conn.execute(table.select().where(table.c.id == account_id)).fetchone()
            if row is None:
                return None
            return self._map(conn, role, row)

    def get_by_username(self, role: str, username: str) -> Account | None:
        """Look up an account by exact username (case-sensitive)."""
        table = _table(role)
        with self.engine.connect() as conn:
            row = conn.execute(table.select().where(table.c.username == username)).fetchone()
            if row is None:
                return None
            return self._map(conn, role, row)

    def find_conflict(self, role: str, exclude_id: int | None = None, **candidates: str) -> str | None:
        """Return the first unique field already used by another account.

        candidates maps column name to proposed value, e.g.
        find_conflict(STUDENT, username="ali", email="a@x.io", cnic="123").
        exclude_id skips the caller's own row (profile edits).
        """
        table = _table(role)
        with self.engine.connect() as conn:
            for column, value in candidates.items():
                stmt = select(table.c.id).where(table.c[column] == value)
                if exclude_id is not None:
                    stmt = stmt.where(table.c.id != exclude_id)
                if conn.execute(stmt.limit(1)).first() is not None:
                    return column
        return None

    def list_accounts(self, role: str) -> list[Account]:
        """Return every account of a role in creation order."""
        table = _table(role)
        with self.engine.connect() as conn:
            rows = conn.execute(table.select().order_by(table.c.id)).fetchall()
            return [self._map(conn, role, r) for r in rows]

    def list_teachers(self, course_id: int | None = None) -> list[Teacher]:
        """Return teachers, optionally only those registered for course_id."""
        stmt = teachers.select().order_by(teachers.c.id)
        if course_id is not None:
            stmt = stmt.where(teachers.c.course_id == course_id)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
            return [self._map(conn, TEACHER, r) for r in rows]

    def get_many(self, role: str, ids: list[int]) -> list[Account]:
        """Return the accounts whose ids are in ids, preserving the order of ids."""
        if not ids:
            return []
        table = _table(role)
        with self.engine.connect() as conn:
            rows = conn.execute(table.select().where(table.c.id.in_(ids))).fetchall()
            by_id = {r.id: self._map(conn, role, r) for r in rows}
        return [by_id[i] for i in ids if i in by_id]

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def update(self, role: str, account_id: int, **fields) -> bool:
        """Update mutable profile fields. Returns False if the account does not exist.

        Unknown fields raise ValueError -- fail fast rather than silently
        dropping a typo. Raises IntegrityError on a unique-column collision.
        """
        unknown = set(fields) - _UPDATABLE[role]
        if unknown:
            raise ValueError(f"Fields not updatable for {role}: {sorted(unknown)!r}")
        table = _table(role)
        with self.engine.begin() as conn:
            result = conn.execute(
                table.update().where(table.c.id == account_id).values(**fields, updated_at=now_iso())
            )
        return result.rowcount > 0

    def set_refresh_token(self, role: str, account_id: int, token: str | None) -> None:
        """Persist the single active refresh token (None logs the account out)."""
        table = _table(role)
        with self.engine.begin() as conn:
            conn.execute(table.update().where(table.c.id == account_id).values(refresh_token=token))

    # ------------------------------------------------------------------
    # Deletes
    # ------------------------------------------------------------------

    def delete(self, role: str, account_id: int) -> bool:
        """Permanently delete an account. Returns False if not found.

        Referential checks (enrolled students, teachers with classes) are the
        caller's responsibility. A teacher's link rows go with the teacher.
        """
        table = _table(role)
        with self.engine.begin() as conn:
            result = conn.execute(table.delete().where(table.c.id == account_id))
            if role == TEACHER:
                conn.execute(delete(teacher_campuses).where(teacher_campuses.c.teacher_id == account_id))
                conn.execute(delete(teacher_classes).where(teacher_classes.c.teacher_id == account_id))
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    def _map(self, conn, role: str, row) -> Account:
        if role == ADMIN:
            return _row_to_admin(row)
        if role == STUDENT:
            return _row_to_student(row)
        campus_ids = conn.execute(
            select(teacher_campuses.c.campus_id)
            .where(teacher_campuses.c.teacher_id == row.id)
            .order_by(teacher_campuses.c.id)
        ).scalars().all()
        class_ids = conn.execute(
            select(teacher_classes.c.class_id)
            .where(teacher_classes.c.teacher_id == row.id)
            .order_by(teacher_classes.c.id)
        ).scalars().all()
        return _row_to_teacher(row, list(campus_ids), list(class_ids))


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _common_values(account: Account) -> dict:
    now = now_iso()
    return {
        "full_name": account.full_name,
        "username": account.username,
        "email": account.email,
        "hashed_password": account.hashed_password,
        "profile": account.profile,
        "phone_number": account.phone_number,
        "gender": account.gender,
        "is_verified": account.is_verified,
        "updated_by": account.updated_by,
        "created_at": now,
        "updated_at": now,
    }


def _row_to_admin(row) -> Admin:
    return Admin(
        id=row.id,
        full_name=row.full_name,
        username=row.username,
        email=row.email,
        hashed_password=row.hashed_password,
        profile=row.profile,
        phone_number=row.phone_number,
        gender=row.gender,
        is_verified=bool(row.is_verified),
        refresh_token=row.refresh_token,
        city_id=row.city_id,
        campus_id=row.campus_id,
        created_by=row.created_by,
        updated_by=row.updated_by,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_teacher(row, campus_ids: list[int], class_ids: list[int]) -> Teacher:
    return Teacher(
        id=row.id,
        full_name=row.full_name,
        username=row.username,
        email=row.email,
        hashed_password=row.hashed_password,
        profile=row.profile,
        phone_number=row.phone_number,
        gender=row.gender,
        is_verified=bool(row.is_verified),
        refresh_token=row.refresh_token,
        city_id=row.city_id,
        course_id=row.course_id,
        campus_ids=campus_ids,
        class_ids=class_ids,
        created_by=row.created_by,
        updated_by=row.updated_by,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_student(row) -> Student:
    return Student(
        id=row.id,
        full_name=row.full_name,
        father_name=row.father_name,
        username=row.username,
        email=row.email,
        hashed_password=row.hashed_password,
        profile=row.profile,
        phone_number=row.phone_number,
        cnic=row.cnic,
        gender=row.gender,
        address=row.address,
        last_qualification=row.last_qualification,
        dob=row.dob,
        is_verified=bool(row.is_verified),
        refresh_token=row.refresh_token,
        city_id=row.city_id,
        campus_id=row.campus_id,
        course_id=row.course_id,
        enrolled_in_class=row.enrolled_in_class,
        updated_by=row.updated_by,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
