"""
api/routes/v1/teacher.py -- Teacher REST endpoints: account, classes, assignments, quizzes.

Routes (prefix /api/teacher):
  POST   /register                            -- public registration (multipart)
  POST   /login  /logout  /refresh-token      -- see common.py
  GET    /me
  PATCH  /profile-picture
  PUT    /profile
  GET    /classes                             -- classes this teacher instructs
  GET    /classes/{id}/students               -- roster of an owned class
  GET    /classes/{id}/students/{sid}/performance
  POST   /assignments       GET /assignments?classId=
  PUT    /assignments/{id}  DELETE /assignments/{id}
  GET    /assignments/{id}/submitted
  GET    /assignments/{id}/not-submitted
  PATCH  /assignments/{id}/marks
  POST   /quizzes           GET /quizzes?classId=
  DELETE /quizzes/{id}

Ownership: a teacher only sees and changes classes they instruct and the
assignments and quizzes they created. Anything else is a 403, not a 404, so
the response does not depend on whose class it is beyond "not yours".
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, Response, UploadFile
from sqlalchemy.exc import IntegrityError

from academy.models import Assignment, Classroom, Quiz
from academy.store import AcademyStore
from api.limiter import limiter
from api.models import (
    AssignmentCreate,
    AssignmentOut,
    AssignmentUpdate,
    AuthData,
    ClassOut,
    ClassRoster,
    Envelope,
    LoginRequest,
    MarksAssign,
    PerformanceOut,
    PerformanceRow,
    ProfileUpdate,
    QuizCreate,
    QuizOut,
    RefreshRequest,
    StudentBrief,
    SubmittedRow,
    TeacherOut,
    TokenData,
    envelope,
)
from api.populate import Populator, get_populator
from api.routes.v1.common import (
    api_error,
    check_password,
    discard_profile,
    ensure_unique,
    login_flow,
    logout_flow,
    refresh_flow,
    replace_profile_picture,
    require_fields,
    update_profile,
    upload_profile,
)
from auth.dependencies import require_teacher
from auth.models import STUDENT, TEACHER, Teacher
from auth.store import UserStore
from auth.tokens import hash_password
from core.config import get_settings

logger = logging.getLogger("campusdesk.api.teacher")

_settings = get_settings()

router = APIRouter()


def _owned_class(academy: AcademyStore, class_id: int, teacher: Teacher) -> Classroom:
    classroom = academy.get_class(class_id)
    if classroom is None:
        raise api_error(404, "not_found", "Class not found.")
    if classroom.teacher_id != teacher.id:
        raise api_error(403, "forbidden", "You do not teach this class.")
    return classroom


def _owned_assignment(academy: AcademyStore, assignment_id: int, teacher: Teacher) -> Assignment:
    assignment = academy.get_assignment(assignment_id)
    if assignment is None:
        raise api_error(404, "not_found", "Assignment not found.")
    if assignment.created_by != teacher.id:
        raise api_error(403, "forbidden", "You did not create this assignment.")
    return assignment


# ---------------------------------------------------------------------------
# Account
# ---------------------------------------------------------------------------


@router.post("/register", response_model=Envelope[TeacherOut], status_code=201)
async def register_teacher(
    request: Request,
    full_name: str = Form(alias="fullName"),
    username: str = Form(max_length=100),
    email: str = Form(max_length=255),
    password: str = Form(max_length=72),
    phone_number: str = Form(alias="phoneNumber"),
    gender: str = Form(),
    city_id: int = Form(alias="cityId"),
    campus_id: int = Form(alias="campusId"),
    course_id: int = Form(alias="courseId"),
    profile: UploadFile = File(),
    pop: Populator = Depends(get_populator),
) -> Envelope:
    """Public registration. The account stays unverified until an admin
    verifies it or assigns it a class."""
    require_fields(full_name=full_name, username=username, email=email, password=password,
                   phone_number=phone_number, gender=gender)
    check_password(password)
    user_store: UserStore = request.app.state.user_store
    academy: AcademyStore = request.app.state.academy
    ensure_unique(user_store, TEACHER, username=username.strip(), email=email.strip())
    if academy.get_city(city_id) is None:
        raise api_error(404, "not_found", "City not found.")
    campus = academy.get_campus(campus_id)
    if campus is None or campus.city_id != city_id:
        raise api_error(400, "campus_not_in_city", "Campus does not belong to the given city.")
    if academy.get_course(course_id) is None:
        raise api_error(404, "not_found", "Course not found.")

    url = await upload_profile(request, profile)
    teacher = Teacher(
        full_name=full_name.strip(),
        username=username.strip(),
        email=email.strip(),
        phone_number=phone_number.strip(),
        gender=gender.strip(),
        city_id=city_id,
        course_id=course_id,
        campus_ids=[campus_id],
        hashed_password=hash_password(password),
        profile=url,
    )
    try:
        teacher_id = user_store.create_teacher(teacher)
    except IntegrityError:
        await discard_profile(request, url)
        raise api_error(409, "conflict", "Username or email already exists.") from None
    logger.info("Teacher id=%d registered", teacher_id)
    return envelope(pop.teacher(user_store.get(TEACHER, teacher_id)), "Teacher registered successfully", 201)


@limiter.limit(_settings.login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/login", response_model=Envelope[AuthData[TeacherOut]])
def login(
    request: Request, response: Response, body: LoginRequest, pop: Populator = Depends(get_populator)
) -> Envelope:
    return login_flow(request, response, TEACHER, body, pop)


@router.post("/logout", response_model=Envelope[dict])
def logout(request: Request, response: Response, teacher: Teacher = Depends(require_teacher)) -> Envelope:
    return logout_flow(request, response, teacher)


@router.get("/me", response_model=Envelope[TeacherOut])
def me(teacher: Teacher = Depends(require_teacher), pop: Populator = Depends(get_populator)) -> Envelope:
    return envelope(pop.teacher(teacher), "Teacher fetched successfully")


@router.post("/refresh-token", response_model=Envelope[TokenData])
def refresh_token(request: Request, response: Response, body: Optional[RefreshRequest] = None) -> Envelope:
    return refresh_flow(request, response, TEACHER, body)


@router.patch("/profile-picture", response_model=Envelope[TeacherOut])
async def update_profile_picture(
    request: Request,
    profile: UploadFile = File(),
    teacher: Teacher = Depends(require_teacher),
    pop: Populator = Depends(get_populator),
) -> Envelope:
    updated = await replace_profile_picture(request, teacher, profile)
    return envelope(pop.teacher(updated), "Profile picture updated successfully")


@router.put("/profile", response_model=Envelope[TeacherOut])
def edit_profile(
    request: Request,
    body: ProfileUpdate,
    teacher: Teacher = Depends(require_teacher),
    pop: Populator = Depends(get_populator),
) -> Envelope:
    return envelope(pop.teacher(update_profile(request, teacher, body)), "Profile updated successfully")


# ---------------------------------------------------------------------------
# Classes
# ---------------------------------------------------------------------------


@router.get("/classes", response_model=Envelope[list[ClassOut]])
def my_classes(
    request: Request, teacher: Teacher = Depends(require_teacher), pop: Populator = Depends(get_populator)
) -> Envelope:
    academy: AcademyStore = request.app.state.academy
    classes = academy.list_classes(teacher_id=teacher.id)
    return envelope(pop.classrooms(classes), "Classes fetched successfully")


@router.get("/classes/{class_id}/students", response_model=Envelope[ClassRoster])
def class_students(
    class_id: int,
    request: Request,
    teacher: Teacher = Depends(require_teacher),
    pop: Populator = Depends(get_populator),
) -> Envelope:
    classroom = _owned_class(request.app.state.academy, class_id, teacher)
    return envelope(pop.roster(classroom), "Students fetched successfully")


@router.get("/classes/{class_id}/students/{student_id}/performance", response_model=Envelope[PerformanceOut])
def student_performance(
    class_id: int,
    student_id: int,
    request: Request,
    teacher: Teacher = Depends(require_teacher),
) -> Envelope:
    """Submission record of one student across the class's assignments."""
    academy: AcademyStore = request.app.state.academy
    classroom = _owned_class(academy, class_id, teacher)
    if student_id not in classroom.student_ids:
        raise api_error(404, "not_found", "Student is not enrolled in this class.")
    student = request.app.state.user_store.get(STUDENT, student_id)
    if student is None:
        raise api_error(404, "not_found", "Student not found.")
    pairs = academy.submissions_for_student(class_id, student_id)
    rows = [
        PerformanceRow(
            assignment_id=a.id,
            title=a.title,
            description=a.description,
            marks=s.marks,
            link=s.link,
            submission_date=s.submission_date,
        )
        for a, s in pairs
    ]
    data = PerformanceOut(
        total_assignments=academy.count_assignments(class_id),
        submitted_assignments_count=len(rows),
        student_info=Populator.student_brief(student),
        submitted_assignments=rows,
    )
    return envelope(data, "Student performance fetched successfully")


# ---------------------------------------------------------------------------
# Assignments
# ---------------------------------------------------------------------------


@router.post("/assignments", response_model=Envelope[AssignmentOut], status_code=201)
def create_assignment(
    request: Request,
    body: AssignmentCreate,
    teacher: Teacher = Depends(require_teacher),
    pop: Populator = Depends(get_populator),
) -> Envelope:
    academy: AcademyStore = request.app.state.academy
    _owned_class(academy, body.class_id, teacher)
    assignment_id = academy.create_assignment(
        Assignment(
            title=body.title,
            description=body.description,
            class_id=body.class_id,
            created_by=teacher.id,
            due_date=body.due_date,
        )
    )
    return envelope(pop.assignment(academy.get_assignment(assignment_id)), "Assignment created successfully", 201)


@router.get("/assignments", response_model=Envelope[list[AssignmentOut]])
def my_assignments(
    request: Request,
    class_id: Optional[int] = Query(default=None, alias="classId"),
    teacher: Teacher = Depends(require_teacher),
    pop: Populator = Depends(get_populator),
) -> Envelope:
    academy: AcademyStore = request.app.state.academy
    assignments = academy.list_assignments(teacher_id=teacher.id, class_id=class_id)
    return envelope([pop.assignment(a) for a in assignments], "Assignments fetched successfully")


@router.put("/assignments/{assignment_id}", response_model=Envelope[AssignmentOut])
def edit_assignment(
    assignment_id: int,
    request: Request,
    body: AssignmentUpdate,
    teacher: Teacher = Depends(require_teacher),
    pop: Populator = Depends(get_populator),
) -> Envelope:
    academy: AcademyStore = request.app.state.academy
    _owned_assignment(academy, assignment_id, teacher)
    fields = body.model_dump(exclude_none=True)
    if not fields:
        raise api_error(400, "missing_fields", "Nothing to update.")
    academy.update_assignment(assignment_id, **fields)
    return envelope(pop.assignment(academy.get_assignment(assignment_id)), "Assignment updated successfully")


@router.delete("/assignments/{assignment_id}", response_model=Envelope[dict])
def delete_assignment(assignment_id: int, request: Request, teacher: Teacher = Depends(require_teacher)) -> Envelope:
    academy: AcademyStore = request.app.state.academy
    _owned_assignment(academy, assignment_id, teacher)
    academy.delete_assignment(assignment_id)
    return envelope({}, "Assignment deleted successfully")


@router.get("/assignments/{assignment_id}/submitted", response_model=Envelope[list[SubmittedRow]])
def submitted_students(
    assignment_id: int, request: Request, teacher: Teacher = Depends(require_teacher)
) -> Envelope:
    assignment = _owned_assignment(request.app.state.academy, assignment_id, teacher)
    user_store: UserStore = request.app.state.user_store
    by_id = {s.id: s for s in user_store.get_many(STUDENT, [sub.student_id for sub in assignment.submissions])}
    rows = [
        SubmittedRow(
            student=Populator.student_brief(by_id[sub.student_id]),
            link=sub.link,
            marks=sub.marks,
            submission_date=sub.submission_date,
        )
        for sub in assignment.submissions
        if sub.student_id in by_id
    ]
    return envelope(rows, "Submitted students fetched successfully")


@router.get("/assignments/{assignment_id}/not-submitted", response_model=Envelope[list[StudentBrief]])
def not_submitted_students(
    assignment_id: int, request: Request, teacher: Teacher = Depends(require_teacher)
) -> Envelope:
    academy: AcademyStore = request.app.state.academy
    assignment = _owned_assignment(academy, assignment_id, teacher)
    classroom = academy.get_class(assignment.class_id)
    submitted = {sub.student_id for sub in assignment.submissions}
    pending = [sid for sid in (classroom.student_ids if classroom else []) if sid not in submitted]
    students = request.app.state.user_store.get_many(STUDENT, pending)
    return envelope([Populator.student_brief(s) for s in students], "Pending students fetched successfully")


@router.patch("/assignments/{assignment_id}/marks", response_model=Envelope[AssignmentOut])
def assign_marks(
    assignment_id: int,
    request: Request,
    body: MarksAssign,
    teacher: Teacher = Depends(require_teacher),
    pop: Populator = Depends(get_populator),
) -> Envelope:
    academy: AcademyStore = request.app.state.academy
    _owned_assignment(academy, assignment_id, teacher)
    if not academy.assign_marks(assignment_id, body.student_id, body.marks):
        raise api_error(404, "not_found", "Submission not found.")
    return envelope(pop.assignment(academy.get_assignment(assignment_id)), "Marks assigned successfully")


# ---------------------------------------------------------------------------
# Quizzes
# ---------------------------------------------------------------------------


@router.post("/quizzes", response_model=Envelope[QuizOut], status_code=201)
def create_quiz(request: Request, body: QuizCreate, teacher: Teacher = Depends(require_teacher)) -> Envelope:
    academy: AcademyStore = request.app.state.academy
    _owned_class(academy, body.class_id, teacher)
    quiz_id = academy.create_quiz(
        Quiz(
            title=body.title,
            description=body.description,
            class_id=body.class_id,
            created_by=teacher.id,
            questions=body.questions,
        )
    )
    return envelope(Populator.quiz(academy.get_quiz(quiz_id)), "Quiz created successfully", 201)


@router.get("/quizzes", response_model=Envelope[list[QuizOut]])
def my_quizzes(
    request: Request,
    class_id: Optional[int] = Query(default=None, alias="classId"),
    teacher: Teacher = Depends(require_teacher),
) -> Envelope:
    academy: AcademyStore = request.app.state.academy
    quizzes = academy.list_quizzes(teacher_id=teacher.id, class_id=class_id)
    return envelope([Populator.quiz(q) for q in quizzes], "Quizzes fetched successfully")


@router.delete("/quizzes/{quiz_id}", response_model=Envelope[dict])
def delete_quiz(quiz_id: int, request: Request, teacher: Teacher = Depends(require_teacher)) -> Envelope:
    academy: AcademyStore = request.app.state.academy
    quiz = academy.get_quiz(quiz_id)
    if quiz is None:
        raise api_error(404, "not_found", "Quiz not found.")
    if quiz.created_by != teacher.id:
        raise api_error(403, "forbidden", "You did not create this quiz.")
    academy.delete_quiz(quiz_id)
    return envelope({}, "Quiz deleted successfully")
