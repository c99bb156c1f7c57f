"""
api/populate.py -- Resolve referenced ids into the projections the API returns.

The stores hand back dataclasses holding raw ids (city_id, created_by,
campus_ids, ...). Every response, however, shows those references "populated"
with a fixed set of selected fields: a city as {id, cityName}, an admin in
createdBy as {id, fullName, email, phoneNumber, gender, city, campus}, and so
on. Populator does that mapping.

One Populator is built per request (see get_populator) and memoises every
lookup it makes, so a list of fifty classes in the same city reads that city
once. The list projections (courses, classrooms, teachers, ...) go further:
they batch-load every reference the whole list needs up front through the
stores' get_cities/get_campuses/get_courses/get_classes and get_many, one
query per kind.

Layer rule: api/ only. Reads from both stores, never writes.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from academy.models import Assignment, Campus, City, Classroom, Course, Quiz, Submission
from academy.store import AcademyStore
from api.models import (
    AdminOut,
    AdminRef,
    AssignmentOut,
    CampusOut,
    CampusRef,
    CityOut,
    CityRef,
    ClassOut,
    ClassRef,
    ClassRoster,
    CourseOut,
    CourseRef,
    EnrolledClassRef,
    QuizOut,
    StudentAssignmentOut,
    StudentBrief,
    StudentClassOut,
    StudentOut,
    SubmissionOut,
    TeacherBrief,
    TeacherOut,
    TeacherRef,
)
from auth.models import ADMIN, STUDENT, TEACHER, Account, Admin, Student, Teacher
from auth.store import UserStore


class Populator:
    """Per-request join helper over UserStore and AcademyStore."""

    def __init__(self, users: UserStore, academy: AcademyStore) -> None:
        self.users = users
        self.academy = academy
        self._cities: dict[int, Optional[City]] = {}
        self._campuses: dict[int, Optional[Campus]] = {}
        self._courses: dict[int, Optional[Course]] = {}
        self._classes: dict[int, Optional[Classroom]] = {}
        self._accounts: dict[tuple[str, int], Optional[Account]] = {}

    # ------------------------------------------------------------------
    # Memoised lookups
    # ------------------------------------------------------------------

    def _city(self, city_id: Optional[int]) -> Optional[City]:
        if city_id is None:
            return None
        if city_id not in self._cities:
            self._cities[city_id] = self.academy.get_city(city_id)
        return self._cities[city_id]

    def _campus(self, campus_id: Optional[int]) -> Optional[Campus]:
        if campus_id is None:
            return None
        if campus_id not in self._campuses:
            self._campuses[campus_id] = self.academy.get_campus(campus_id)
        return self._campuses[campus_id]

    def _course(self, course_id: Optional[int]) -> Optional[Course]:
        if course_id is None:
            return None
        if course_id not in self._courses:
            self._courses[course_id] = self.academy.get_course(course_id)
        return self._courses[course_id]

    def _class(self, class_id: Optional[int]) -> Optional[Classroom]:
        if class_id is None:
            return None
        if class_id not in self._classes:
            self._classes[class_id] = self.academy.get_class(class_id)
        return self._classes[class_id]

    def _account(self, role: str, account_id: Optional[int]) -> Optional[Account]:
        if account_id is None:
            return None
        key = (role, account_id)
        if key not in self._accounts:
            self._accounts[key] = self.users.get(role, account_id)
        return self._accounts[key]

    # ------------------------------------------------------------------
    # Batch prefetch
    # ------------------------------------------------------------------

    def prefetch(self, cities=(), campuses=(), courses=(), classes=()) -> None:
        """Load every id not yet memoised with one query per kind.

        Ids that do not resolve are memoised as None, so the per-item
        projections that follow never go back to the store for them.
        """
        self._fill(self._cities, cities, self.academy.get_cities)
        self._fill(self._campuses, campuses, self.academy.get_campuses)
        self._fill(self._courses, courses, self.academy.get_courses)
        self._fill(self._classes, classes, self.academy.get_classes)

    def prefetch_accounts(self, role: str, ids) -> list[Account]:
        """Batch-load accounts of role; returns the ones that exist."""
        missing = sorted({i for i in ids if i is not None and (role, i) not in self._accounts})
        if missing:
            found = {a.id: a for a in self.users.get_many(role, missing)}
            for i in missing:
                self._accounts[(role, i)] = found.get(i)
        return [a for a in (self._accounts.get((role, i)) for i in ids if i is not None) if a is not None]

    @staticmethod
    def _fill(memo: dict, ids, load) -> None:
        missing = sorted({i for i in ids if i is not None and i not in memo})
        if not missing:
            return
        found = load(missing)
        for i in missing:
            memo[i] = found.get(i)

    # ------------------------------------------------------------------
    # References
    # ------------------------------------------------------------------

    def city_ref(self, city_id: Optional[int]) -> Optional[CityRef]:
        city = self._city(city_id)
        return CityRef(id=city.id, city_name=city.city_name) if city else None

    def campus_ref(self, campus_id: Optional[int]) -> Optional[CampusRef]:
        campus = self._campus(campus_id)
        return CampusRef(id=campus.id, name=campus.name) if campus else None

    def course_ref(self, course_id: Optional[int]) -> Optional[CourseRef]:
        course = self._course(course_id)
        return CourseRef(id=course.id, name=course.name) if course else None

    def class_ref(self, class_id: Optional[int]) -> Optional[ClassRef]:
        classroom = self._class(class_id)
        return ClassRef(id=classroom.id, name=classroom.name, batch=classroom.batch) if classroom else None

    def teacher_ref(self, teacher_id: Optional[int]) -> Optional[TeacherRef]:
        teacher = self._account(TEACHER, teacher_id)
        return TeacherRef(id=teacher.id, full_name=teacher.full_name) if teacher else None

    def admin_ref(self, admin_id: Optional[int]) -> Optional[AdminRef]:
        admin = self._account(ADMIN, admin_id)
        if admin is None:
            return None
        return AdminRef(
            id=admin.id,
            full_name=admin.full_name,
            email=admin.email,
            phone_number=admin.phone_number,
            gender=admin.gender,
            city=self.city_ref(admin.city_id),
            campus=self.campus_ref(admin.campus_id),
        )

    def _refs(self, factory, ids: list[int]) -> list:
        return [ref for ref in (factory(i) for i in ids) if ref is not None]

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def account(self, account: Account):
        """Dispatch on role. Used by the shared account flows."""
        if isinstance(account, Admin):
            return self.admin(account)
        if isinstance(account, Teacher):
            return self.teacher(account)
        return self.student(account)

    def admin(self, admin: Admin) -> AdminOut:
        return AdminOut(
            id=admin.id,
            full_name=admin.full_name,
            username=admin.username,
            email=admin.email,
            profile=admin.profile,
            role=admin.role,
            phone_number=admin.phone_number,
            gender=admin.gender,
            city=self.city_ref(admin.city_id),
            campus=self.campus_ref(admin.campus_id),
            is_verified=admin.is_verified,
            created_by=self.admin_ref(admin.created_by),
            updated_by=self.admin_ref(admin.updated_by),
            created_at=admin.created_at,
            updated_at=admin.updated_at,
        )

    def teacher(self, teacher: Teacher) -> TeacherOut:
        return TeacherOut(
            id=teacher.id,
            full_name=teacher.full_name,
            username=teacher.username,
            email=teacher.email,
            profile=teacher.profile,
            role=teacher.role,
            phone_number=teacher.phone_number,
            gender=teacher.gender,
            city=self.city_ref(teacher.city_id),
            course=self.course_ref(teacher.course_id),
            campuses=self._refs(self.campus_ref, teacher.campus_ids),
            instructor_of_class=self._refs(self.class_ref, teacher.class_ids),
            is_verified=teacher.is_verified,
            created_at=teacher.created_at,
            updated_at=teacher.updated_at,
        )

    def student(self, student: Student) -> StudentOut:
        enrolled = None
        classroom = self._class(student.enrolled_in_class)
        if classroom is not None:
            enrolled = EnrolledClassRef(
                id=classroom.id,
                name=classroom.name,
                batch=classroom.batch,
                teacher=self.teacher_ref(classroom.teacher_id),
            )
        return StudentOut(
            id=student.id,
            full_name=student.full_name,
            father_name=student.father_name,
            username=student.username,
            email=student.email,
            profile=student.profile,
            role=student.role,
            phone_number=student.phone_number,
            cnic=student.cnic,
            gender=student.gender,
            address=student.address,
            last_qualification=student.last_qualification,
            dob=student.dob,
            city=self.city_ref(student.city_id),
            campus=self.campus_ref(student.campus_id),
            course=self.course_ref(student.course_id),
            enrolled_in_class=enrolled,
            is_verified=student.is_verified,
            created_at=student.created_at,
            updated_at=student.updated_at,
        )

    @staticmethod
    def student_brief(student: Student) -> StudentBrief:
        return StudentBrief(
            id=student.id,
            full_name=student.full_name,
            father_name=student.father_name,
            email=student.email,
            phone_number=student.phone_number,
            cnic=student.cnic,
            address=student.address,
            profile=student.profile,
        )

    # ------------------------------------------------------------------
    # Hierarchy
    # ------------------------------------------------------------------

    @staticmethod
    def city(city: City) -> CityOut:
        return CityOut(id=city.id, city_name=city.city_name, created_by=city.created_by, created_at=city.created_at)

    def campus(self, campus: Campus) -> CampusOut:
        return CampusOut(
            id=campus.id,
            name=campus.name,
            city=self.city_ref(campus.city_id),
            created_by=campus.created_by,
            created_at=campus.created_at,
        )

    def course(self, course: Course) -> CourseOut:
        return CourseOut(
            id=course.id,
            name=course.name,
            cities=self._refs(self.city_ref, course.city_ids),
            campuses=self._refs(self.campus_ref, course.campus_ids),
            created_by=self.admin_ref(course.created_by),
            created_at=course.created_at,
            updated_at=course.updated_at,
        )

    def classroom(self, classroom: Classroom) -> ClassOut:
        teacher = self._account(TEACHER, classroom.teacher_id)
        teacher_brief = None
        if teacher is not None:
            teacher_brief = TeacherBrief(
                id=teacher.id,
                full_name=teacher.full_name,
                email=teacher.email,
                phone_number=teacher.phone_number,
                gender=teacher.gender,
                city=self.city_ref(teacher.city_id),
            )
        return ClassOut(
            id=classroom.id,
            name=classroom.name,
            batch=classroom.batch,
            enrollment_key=classroom.enrollment_key,
            city=self.city_ref(classroom.city_id),
            campus=self.campus_ref(classroom.campus_id),
            course=self.course_ref(classroom.course_id),
            teacher=teacher_brief,
            created_by=self.admin_ref(classroom.created_by),
            updated_by=self.admin_ref(classroom.updated_by),
            students=list(classroom.student_ids),
            created_at=classroom.created_at,
            updated_at=classroom.updated_at,
        )

    def roster(self, classroom: Classroom) -> ClassRoster:
        members = self.users.get_many(STUDENT, classroom.student_ids)
        return ClassRoster(
            id=classroom.id,
            name=classroom.name,
            batch=classroom.batch,
            enrollment_key=classroom.enrollment_key,
            students=[self.student_brief(s) for s in members],
        )

    # ------------------------------------------------------------------
    # Lists
    #
    # Each list projection prefetches every reference its items need, then
    # maps item by item against the memo.
    # ------------------------------------------------------------------

    def admins(self, items: list[Admin]) -> list[AdminOut]:
        refs = self.prefetch_accounts(ADMIN, [a.created_by for a in items] + [a.updated_by for a in items])
        everyone = list(items) + refs
        self.prefetch(cities=[a.city_id for a in everyone], campuses=[a.campus_id for a in everyone])
        return [self.admin(a) for a in items]

    def teachers(self, items: list[Teacher]) -> list[TeacherOut]:
        self.prefetch(
            cities=[t.city_id for t in items],
            campuses=[i for t in items for i in t.campus_ids],
            courses=[t.course_id for t in items],
            classes=[i for t in items for i in t.class_ids],
        )
        return [self.teacher(t) for t in items]

    def students(self, items: list[Student]) -> list[StudentOut]:
        self.prefetch(
            cities=[s.city_id for s in items],
            campuses=[s.campus_id for s in items],
            courses=[s.course_id for s in items],
            classes=[s.enrolled_in_class for s in items],
        )
        enrolled = [self._classes.get(s.enrolled_in_class) for s in items if s.enrolled_in_class is not None]
        self.prefetch_accounts(TEACHER, [c.teacher_id for c in enrolled if c is not None])
        return [self.student(s) for s in items]

    def campuses(self, items: list[Campus]) -> list[CampusOut]:
        self.prefetch(cities=[c.city_id for c in items])
        return [self.campus(c) for c in items]

    def courses(self, items: list[Course]) -> list[CourseOut]:
        creators = self.prefetch_accounts(ADMIN, [c.created_by for c in items])
        self.prefetch(
            cities=[i for c in items for i in c.city_ids] + [a.city_id for a in creators],
            campuses=[i for c in items for i in c.campus_ids] + [a.campus_id for a in creators],
        )
        return [self.course(c) for c in items]

    def classrooms(self, items: list[Classroom]) -> list[ClassOut]:
        teachers = self.prefetch_accounts(TEACHER, [c.teacher_id for c in items])
        admins = self.prefetch_accounts(ADMIN, [c.created_by for c in items] + [c.updated_by for c in items])
        self.prefetch(
            cities=[c.city_id for c in items] + [t.city_id for t in teachers] + [a.city_id for a in admins],
            campuses=[c.campus_id for c in items] + [a.campus_id for a in admins],
            courses=[c.course_id for c in items],
        )
        return [self.classroom(c) for c in items]

    # ------------------------------------------------------------------
    # Coursework
    # ------------------------------------------------------------------

    @staticmethod
    def submission(sub: Submission) -> SubmissionOut:
        return SubmissionOut(
            student_id=sub.student_id,
            link=sub.link,
            marks=sub.marks,
            submission_date=sub.submission_date,
        )

    def assignment(self, assignment: Assignment) -> AssignmentOut:
        return AssignmentOut(
            id=assignment.id,
            title=assignment.title,
            description=assignment.description,
            due_date=assignment.due_date,
            class_id=assignment.class_id,
            created_by=assignment.created_by,
            submissions=[self.submission(s) for s in assignment.submissions],
            created_at=assignment.created_at,
            updated_at=assignment.updated_at,
        )

    @staticmethod
    def quiz(quiz: Quiz) -> QuizOut:
        return QuizOut(
            id=quiz.id,
            title=quiz.title,
            description=quiz.description,
            class_id=quiz.class_id,
            created_by=quiz.created_by,
            questions=quiz.questions,
            created_at=quiz.created_at,
        )

    def student_class(self, classroom: Classroom, student_id: int) -> StudentClassOut:
        """The enrolled class as one student sees it."""
        assignments = []
        for a in self.academy.list_assignments(class_id=classroom.id):
            own = next((s for s in a.submissions if s.student_id == student_id), None)
            assignments.append(
                StudentAssignmentOut(
                    id=a.id,
                    title=a.title,
                    description=a.description,
                    due_date=a.due_date,
                    submission=self.submission(own) if own else None,
                )
            )
        return StudentClassOut(
            id=classroom.id,
            name=classroom.name,
            batch=classroom.batch,
            course=self.course_ref(classroom.course_id),
            campus=self.campus_ref(classroom.campus_id),
            teacher=self.teacher_ref(classroom.teacher_id),
            assignments=assignments,
            quizzes=[self.quiz(q) for q in self.academy.list_quizzes(class_id=classroom.id)],
        )


def get_populator(request: Request) -> Populator:
    """FastAPI dependency: a fresh Populator bound to the app's stores."""
    return Populator(request.app.state.user_store, request.app.state.academy)
