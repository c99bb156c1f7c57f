"""
api/routes/v1/student.py -- Student REST endpoints: account, enrolment, coursework.

Routes (prefix /api/student):
  POST /register                      -- public registration (multipart); logs the student in
  POST /login  /logout  /refresh-token
  GET  /me
  PATCH /profile-picture
  PUT  /profile
  POST /enroll                        -- join a class by enrollment key
  GET  /class                         -- own class with assignments and quizzes
  POST /assignments/{id}/submit       -- submit a link for an assignment

A student belongs to at most one class. Enrolment writes the class member
row and the student's enrolled_in_class in one transaction (AcademyStore).
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, Response, UploadFile
from sqlalchemy.exc import IntegrityError

from academy.store import AcademyStore
from api.limiter import limiter
from api.models import (
    AuthData,
    EnrollRequest,
    Envelope,
    LoginRequest,
    RefreshRequest,
    StudentAssignmentOut,
    StudentClassOut,
    StudentOut,
    StudentProfileUpdate,
    SubmissionCreate,
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
from auth.dependencies import require_student
from auth.models import STUDENT, Student
from auth.store import UserStore
from auth.tokens import hash_password, issue_tokens, set_auth_cookies
from core.config import get_settings

logger = logging.getLogger("campusdesk.api.student")

_settings = get_settings()

router = APIRouter()


# ---------------------------------------------------------------------------
# Account
# ---------------------------------------------------------------------------


@router.post("/register", response_model=Envelope[AuthData[StudentOut]], status_code=201)
async def register_student(
    request: Request,
    response: Response,
    full_name: str = Form(alias="fullName"),
    father_name: str = Form(alias="fatherName"),
    username: str = Form(max_length=100),
    email: str = Form(max_length=255),
    password: str = Form(max_length=72),
    phone_number: str = Form(alias="phoneNumber"),
    cnic: str = Form(max_length=30),
    gender: str = Form(),
    address: str = Form(),
    last_qualification: str = Form(alias="lastQualification"),
    dob: str = Form(),
    city_id: int = Form(alias="cityId"),
    campus_id: int = Form(alias="campusId"),
    course_id: int = Form(alias="courseId"),
    profile: UploadFile = File(),
    pop: Populator = Depends(get_populator),
) -> Envelope:
    """Public registration. The new student is logged in straight away."""
    require_fields(full_name=full_name, father_name=father_name, username=username, email=email,
                   password=password, phone_number=phone_number, cnic=cnic, gender=gender,
                   address=address, last_qualification=last_qualification, dob=dob)
    check_password(password)
    user_store: UserStore = request.app.state.user_store
    academy: AcademyStore = request.app.state.academy
    ensure_unique(user_store, STUDENT, username=username.strip(), email=email.strip(), cnic=cnic.strip())
    if academy.get_city(city_id) is None:
        raise api_error(404, "not_found", "City not found.")
    campus = academy.get_campus(campus_id)
    if campus is None or campus.city_id != city_id:
        raise api_error(400, "campus_not_in_city", "Campus does not belong to the given city.")
    course = academy.get_course(course_id)
    if course is None:
        raise api_error(404, "not_found", "Course not found.")
    if campus_id not in course.campus_ids:
        raise api_error(400, "course_not_offered", "Course is not offered at this campus.")

    url = await upload_profile(request, profile)
    student = Student(
        full_name=full_name.strip(),
        father_name=father_name.strip(),
        username=username.strip(),
        email=email.strip(),
        phone_number=phone_number.strip(),
        cnic=cnic.strip(),
        gender=gender.strip(),
        address=address.strip(),
        last_qualification=last_qualification.strip(),
        dob=dob.strip(),
        city_id=city_id,
        campus_id=campus_id,
        course_id=course_id,
        hashed_password=hash_password(password),
        profile=url,
    )
    try:
        student_id = user_store.create_student(student)
    except IntegrityError:
        await discard_profile(request, url)
        raise api_error(409, "conflict", "Username, email or CNIC already exists.") from None
    created = user_store.get(STUDENT, student_id)
    pair = issue_tokens(user_store, created)
    set_auth_cookies(response, STUDENT, pair)
    logger.info("Student id=%d registered", student_id)
    data = AuthData(user=pop.student(created), access_token=pair.access_token, refresh_token=pair.refresh_token)
    return envelope(data, "Student registered successfully", 201)


@limiter.limit(_settings.login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/login", response_model=Envelope[AuthData[StudentOut]])
def login(
    request: Request, response: Response, body: LoginRequest, pop: Populator = Depends(get_populator)
) -> Envelope:
    return login_flow(request, response, STUDENT, body, pop)


@router.post("/logout", response_model=Envelope[dict])
def logout(request: Request, response: Response, student: Student = Depends(require_student)) -> Envelope:
    return logout_flow(request, response, student)


@router.get("/me", response_model=Envelope[StudentOut])
def me(student: Student = Depends(require_student), pop: Populator = Depends(get_populator)) -> Envelope:
    return envelope(pop.student(student), "Student fetched successfully")


@router.post("/refresh-token", response_model=Envelope[TokenData])
def refresh_token(request: Request, response: Response, body: Optional[RefreshRequest] = None) -> Envelope:
    return refresh_flow(request, response, STUDENT, body)


@router.patch("/profile-picture", response_model=Envelope[StudentOut])
async def update_profile_picture(
    request: Request,
    profile: UploadFile = File(),
    student: Student = Depends(require_student),
    pop: Populator = Depends(get_populator),
) -> Envelope:
    updated = await replace_profile_picture(request, student, profile)
    return envelope(pop.student(updated), "Profile picture updated successfully")


@router.put("/profile", response_model=Envelope[StudentOut])
def edit_profile(
    request: Request,
    body: StudentProfileUpdate,
    student: Student = Depends(require_student),
    pop: Populator = Depends(get_populator),
) -> Envelope:
    return envelope(pop.student(update_profile(request, student, body)), "Profile updated successfully")


# ---------------------------------------------------------------------------
# Enrolment and coursework
# ---------------------------------------------------------------------------


@router.post("/enroll", response_model=Envelope[StudentOut])
def enroll(
    request: Request,
    body: EnrollRequest,
    student: Student = Depends(require_student),
    pop: Populator = Depends(get_populator),
) -> Envelope:
    if student.enrolled_in_class is not None:
        raise api_error(409, "already_enrolled", "You are already enrolled in a class.")
    academy: AcademyStore = request.app.state.academy
    classroom = academy.get_class_by_key(body.enrollment_key)
    if classroom is None:
        raise api_error(404, "not_found", "Invalid enrollment key.")
    try:
        academy.enroll_student(classroom.id, student.id)
    except IntegrityError:
        raise api_error(409, "already_enrolled", "You are already enrolled in this class.") from None
    logger.info("Student id=%d enrolled in class id=%d", student.id, classroom.id)
    return envelope(pop.student(request.app.state.user_store.get(STUDENT, student.id)), "Enrolled successfully")


@router.get("/class", response_model=Envelope[StudentClassOut])
def my_class(
    request: Request, student: Student = Depends(require_student), pop: Populator = Depends(get_populator)
) -> Envelope:
    if student.enrolled_in_class is None:
        raise api_error(404, "not_enrolled", "You are not enrolled in any class.")
    classroom = request.app.state.academy.get_class(student.enrolled_in_class)
    if classroom is None:
        raise api_error(404, "not_found", "Class not found.")
    return envelope(pop.student_class(classroom, student.id), "Class fetched successfully")


@router.post("/assignments/{assignment_id}/submit", response_model=Envelope[StudentAssignmentOut], status_code=201)
def submit_assignment(
    assignment_id: int,
    request: Request,
    body: SubmissionCreate,
    student: Student = Depends(require_student),
) -> Envelope:
    academy: AcademyStore = request.app.state.academy
    assignment = academy.get_assignment(assignment_id)
    if assignment is None:
        raise api_error(404, "not_found", "Assignment not found.")
    classroom = academy.get_class(assignment.class_id)
    if classroom is None or student.id not in classroom.student_ids:
        raise api_error(403, "forbidden", "You are not a member of this assignment's class.")
    if not academy.submit_assignment(assignment_id, student.id, body.link):
        raise api_error(409, "already_submitted", "Assignment already submitted.")
    updated = academy.get_assignment(assignment_id)
    own = next(s for s in updated.submissions if s.student_id == student.id)
    data = StudentAssignmentOut(
        id=updated.id,
        title=updated.title,
        description=updated.description,
        due_date=updated.due_date,
        submission=Populator.submission(own),
    )
    return envelope(data, "Assignment submitted successfully", 201)
