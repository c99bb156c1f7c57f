"""
api/routes/v1/admin.py -- Admin REST endpoints: accounts and the academic hierarchy.

Routes (prefix /api/admin):
  POST   /register                          -- create an admin (admin only, multipart)
  POST   /login                             -- password login; sets token cookies
  POST   /logout                            -- revoke refresh token, clear cookies
  GET    /me                                -- current admin
  POST   /refresh-token                     -- rotate the refresh token
  PATCH  /profile-picture                   -- replace profile image (multipart)
  PUT    /profile                           -- edit own details
  GET    /admins                            -- list admins
  PUT    /admins/{id}                       -- edit city / campus / verification
  DELETE /admins/{id}                       -- delete another admin
  POST   /cities            GET /cities
  POST   /campuses          GET /campuses?cityId=
  POST   /courses                           -- add a (city, campus) membership
  GET    /courses
  PUT    /courses/{id}                      -- rename
  DELETE /courses/{id}                      -- refused while classes use it
  DELETE /courses/{id}/cities/{cityId}      -- unlink city and its campuses
  DELETE /courses/{id}/campuses/{campusId}  -- unlink campus (and city if last)
  POST   /classes           GET /classes
  PUT    /classes/{id}
  DELETE /classes/{id}                      -- refused while students are enrolled
  GET    /teachers?courseId=
  PATCH  /teachers/{id}/verification
  DELETE /teachers/{id}                     -- refused while teaching a class
  GET    /students
  PATCH  /students/{id}/verification
  DELETE /students/{id}                     -- refused while enrolled

Auth policy: everything except /login and /refresh-token requires an admin
access token (require_admin). There is no public admin registration; the
first admin comes from `python main.py bootstrap`.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, Response, UploadFile
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import IntegrityError

from academy.models import Campus, City, Classroom, MembershipChange
from academy.store import AcademyStore
from api.limiter import limiter
from api.models import (
    AdminEdit,
    AdminOut,
    AuthData,
    CampusCreate,
    CampusOut,
    CityCreate,
    CityOut,
    ClassCreate,
    ClassOut,
    ClassUpdate,
    CourseCreate,
    CourseOut,
    CourseRename,
    Envelope,
    LoginRequest,
    ProfileUpdate,
    RefreshRequest,
    StudentOut,
    TeacherOut,
    TokenData,
    VerificationUpdate,
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
from auth.dependencies import require_admin
from auth.models import ADMIN, STUDENT, TEACHER, Admin
from auth.store import UserStore
from auth.tokens import hash_password
from core.config import get_settings

logger = logging.getLogger("campusdesk.api.admin")

_settings = get_settings()

router = APIRouter()


def _campus_in_city(academy: AcademyStore, city_id: int, campus_id: int) -> Campus:
    """Resolve city and campus ids, requiring the campus to belong to the city."""
    if academy.get_city(city_id) is None:
        raise api_error(404, "not_found", "City not found.")
    campus = academy.get_campus(campus_id)
    if campus is None:
        raise api_error(404, "not_found", "Campus not found.")
    if campus.city_id != city_id:
        raise api_error(400, "campus_not_in_city", "Campus does not belong to the given city.")
    return campus


# ---------------------------------------------------------------------------
# Account
# ---------------------------------------------------------------------------


@router.post("/register", response_model=Envelope[AdminOut], status_code=201)
async def register_admin(
    request: Request,
    full_name: str = Form(alias="fullName"),
    username: str = Form(max_length=100),
    email: str = Form(max_length=255),
    password: str = Form(max_length=72),
    phone_number: str = Form(alias="phoneNumber"),
    gender: str = Form(),
    city_id: int = Form(alias="cityId"),
    campus_id: int = Form(alias="campusId"),
    profile: UploadFile = File(),
    current_admin: Admin = Depends(require_admin),
    pop: Populator = Depends(get_populator),
) -> Envelope:
    """Create a new, unverified admin. createdBy is the calling admin."""
    require_fields(full_name=full_name, username=username, email=email, password=password,
                   phone_number=phone_number, gender=gender)
    check_password(password)
    user_store: UserStore = request.app.state.user_store
    ensure_unique(user_store, ADMIN, username=username.strip(), email=email.strip())
    _campus_in_city(request.app.state.academy, city_id, campus_id)

    url = await upload_profile(request, profile)
    admin = Admin(
        full_name=full_name.strip(),
        username=username.strip(),
        email=email.strip(),
        phone_number=phone_number.strip(),
        gender=gender.strip(),
        city_id=city_id,
        campus_id=campus_id,
        hashed_password=hash_password(password),
        profile=url,
        created_by=current_admin.id,
    )
    try:
        admin_id = user_store.create_admin(admin)
    except IntegrityError:
        await discard_profile(request, url)
        raise api_error(409, "conflict", "Username or email already exists.") from None
    logger.info("Admin id=%d registered by admin id=%d", admin_id, current_admin.id)
    return envelope(pop.admin(user_store.get(ADMIN, admin_id)), "Admin registered successfully", 201)


@limiter.limit(_settings.login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/login", response_model=Envelope[AuthData[AdminOut]])
def login(
    request: Request, response: Response, body: LoginRequest, pop: Populator = Depends(get_populator)
) -> Envelope:
    return login_flow(request, response, ADMIN, body, pop)


@router.post("/logout", response_model=Envelope[dict])
def logout(request: Request, response: Response, admin: Admin = Depends(require_admin)) -> Envelope:
    return logout_flow(request, response, admin)


@router.get("/me", response_model=Envelope[AdminOut])
def me(admin: Admin = Depends(require_admin), pop: Populator = Depends(get_populator)) -> Envelope:
    return envelope(pop.admin(admin), "Admin fetched successfully")


@router.post("/refresh-token", response_model=Envelope[TokenData])
def refresh_token(request: Request, response: Response, body: Optional[RefreshRequest] = None) -> Envelope:
    return refresh_flow(request, response, ADMIN, body)


@router.patch("/profile-picture", response_model=Envelope[AdminOut])
async def update_profile_picture(
    request: Request,
    profile: UploadFile = File(),
    admin: Admin = Depends(require_admin),
    pop: Populator = Depends(get_populator),
) -> Envelope:
    updated = await replace_profile_picture(request, admin, profile)
    return envelope(pop.admin(updated), "Profile picture updated successfully")


@router.put("/profile", response_model=Envelope[AdminOut])
def edit_profile(
    request: Request,
    body: ProfileUpdate,
    admin: Admin = Depends(require_admin),
    pop: Populator = Depends(get_populator),
) -> Envelope:
    return envelope(pop.admin(update_profile(request, admin, body)), "Profile updated successfully")


# ---------------------------------------------------------------------------
# Admins
# ---------------------------------------------------------------------------


@router.get("/admins", response_model=Envelope[list[AdminOut]])
def list_admins(
    request: Request, _: Admin = Depends(require_admin), pop: Populator = Depends(get_populator)
) -> Envelope:
    user_store: UserStore = request.app.state.user_store
    return envelope(pop.admins(user_store.list_accounts(ADMIN)), "Admins fetched successfully")


@router.put("/admins/{admin_id}", response_model=Envelope[AdminOut])
def edit_admin(
    admin_id: int,
    request: Request,
    body: AdminEdit,
    current: Admin = Depends(require_admin),
    pop: Populator = Depends(get_populator),
) -> Envelope:
    """Move an admin to another city/campus and/or change verification.

    Only a verified admin may grant verification. An unverified admin who
    sends isVerified leaves the target unverified, whatever value was sent.
    """
    user_store: UserStore = request.app.state.user_store
    target = user_store.get(ADMIN, admin_id)
    if target is None:
        raise api_error(404, "not_found", "Admin not found.")
    city_id = body.city_id if body.city_id is not None else target.city_id
    campus_id = body.campus_id if body.campus_id is not None else target.campus_id
    _campus_in_city(request.app.state.academy, city_id, campus_id)

    fields: dict = {"city_id": city_id, "campus_id": campus_id, "updated_by": current.id}
    if body.is_verified is not None:
        fields["is_verified"] = body.is_verified if current.is_verified else False
    user_store.update(ADMIN, admin_id, **fields)
    return envelope(pop.admin(user_store.get(ADMIN, admin_id)), "Admin updated successfully")


@router.delete("/admins/{admin_id}", response_model=Envelope[dict])
async def delete_admin(admin_id: int, request: Request, current: Admin = Depends(require_admin)) -> Envelope:
    if admin_id == current.id:
        raise api_error(400, "self_delete", "You cannot delete your own account.")
    user_store: UserStore = request.app.state.user_store
    target = user_store.get(ADMIN, admin_id)
    if target is None:
        raise api_error(404, "not_found", "Admin not found.")
    user_store.delete(ADMIN, admin_id)
    if target.profile:
        await run_in_threadpool(request.app.state.media.delete, target.profile)
    logger.info("Admin id=%d deleted by admin id=%d", admin_id, current.id)
    return envelope({}, "Admin deleted successfully")


# ---------------------------------------------------------------------------
# Cities and campuses
# ---------------------------------------------------------------------------


@router.post("/cities", response_model=Envelope[CityOut], status_code=201)
def add_city(request: Request, body: CityCreate, admin: Admin = Depends(require_admin)) -> Envelope:
    academy: AcademyStore = request.app.state.academy
    try:
        city_id = academy.create_city(City(city_name=body.city_name, created_by=admin.id))
    except IntegrityError:
        raise api_error(409, "conflict", "City already exists.") from None
    return envelope(Populator.city(academy.get_city(city_id)), "City added successfully", 201)


@router.get("/cities", response_model=Envelope[list[CityOut]])
def list_cities(request: Request, _: Admin = Depends(require_admin)) -> Envelope:
    academy: AcademyStore = request.app.state.academy
    return envelope([Populator.city(c) for c in academy.list_cities()], "Cities fetched successfully")


@router.post("/campuses", response_model=Envelope[CampusOut], status_code=201)
def add_campus(
    request: Request,
    body: CampusCreate,
    admin: Admin = Depends(require_admin),
    pop: Populator = Depends(get_populator),
) -> Envelope:
    academy: AcademyStore = request.app.state.academy
    if academy.get_city(body.city_id) is None:
        raise api_error(404, "not_found", "City not found.")
    try:
        campus_id = academy.create_campus(Campus(name=body.name, city_id=body.city_id, created_by=admin.id))
    except IntegrityError:
        raise api_error(409, "conflict", "Campus already exists in this city.") from None
    return envelope(pop.campus(academy.get_campus(campus_id)), "Campus added successfully", 201)


@router.get("/campuses", response_model=Envelope[list[CampusOut]])
def list_campuses(
    request: Request,
    city_id: Optional[int] = Query(default=None, alias="cityId"),
    _: Admin = Depends(require_admin),
    pop: Populator = Depends(get_populator),
) -> Envelope:
    academy: AcademyStore = request.app.state.academy
    return envelope(pop.campuses(academy.list_campuses(city_id)), "Campuses fetched successfully")


# ---------------------------------------------------------------------------
# Courses
# ---------------------------------------------------------------------------


@router.post("/courses", response_model=Envelope[CourseOut])
def add_course(
    request: Request,
    response: Response,
    body: CourseCreate,
    admin: Admin = Depends(require_admin),
    pop: Populator = Depends(get_populator),
) -> Envelope:
    """Offer a course at a (city, campus) pair.

    201 when a new course is created, 200 when an existing course gains the
    city and/or campus, and 200 with the course unchanged when the pair is
    already linked.
    """
    academy: AcademyStore = request.app.state.academy
    _campus_in_city(academy, body.city_id, body.campus_id)
    try:
        course, change = academy.add_course_membership(body.name, body.city_id, body.campus_id, admin.id)
    except IntegrityError:
        raise api_error(409, "conflict", "Course was created concurrently; retry the request.") from None
    messages = {
        MembershipChange.created: "Course added successfully",
        MembershipChange.city_added: "City and campus added to course",
        MembershipChange.campus_added: "Campus added to course",
        MembershipChange.unchanged: "Course already offered at this campus",
    }
    status_code = 201 if change is MembershipChange.created else 200
    response.status_code = status_code
    return envelope(pop.course(course), messages[change], status_code)


@router.get("/courses", response_model=Envelope[list[CourseOut]])
def list_courses(
    request: Request, _: Admin = Depends(require_admin), pop: Populator = Depends(get_populator)
) -> Envelope:
    academy: AcademyStore = request.app.state.academy
    return envelope(pop.courses(academy.list_courses()), "Courses fetched successfully")


@router.put("/courses/{course_id}", response_model=Envelope[CourseOut])
def rename_course(
    course_id: int,
    request: Request,
    body: CourseRename,
    _: Admin = Depends(require_admin),
    pop: Populator = Depends(get_populator),
) -> Envelope:
    academy: AcademyStore = request.app.state.academy
    if academy.get_course(course_id) is None:
        raise api_error(404, "not_found", "Course not found.")
    existing = academy.get_course_by_name(body.name)
    if existing is not None and existing.id != course_id:
        raise api_error(409, "conflict", "Course name already exists.")
    try:
        academy.rename_course(course_id, body.name)
    except IntegrityError:
        raise api_error(409, "conflict", "Course name already exists.") from None
    return envelope(pop.course(academy.get_course(course_id)), "Course updated successfully")


@router.delete("/courses/{course_id}", response_model=Envelope[dict])
def delete_course(course_id: int, request: Request, _: Admin = Depends(require_admin)) -> Envelope:
    academy: AcademyStore = request.app.state.academy
    if academy.get_course(course_id) is None:
        raise api_error(404, "not_found", "Course not found.")
    if academy.list_classes(course_id=course_id):
        raise api_error(409, "in_use", "Course has classes; delete them first.")
    academy.delete_course(course_id)
    return envelope({}, "Course deleted successfully")


@router.delete("/courses/{course_id}/cities/{city_id}", response_model=Envelope[CourseOut])
def remove_course_city(
    course_id: int,
    city_id: int,
    request: Request,
    _: Admin = Depends(require_admin),
    pop: Populator = Depends(get_populator),
) -> Envelope:
    academy: AcademyStore = request.app.state.academy
    if academy.get_course(course_id) is None:
        raise api_error(404, "not_found", "Course not found.")
    if not academy.remove_course_city(course_id, city_id):
        raise api_error(404, "not_found", "City is not linked to this course.")
    return envelope(pop.course(academy.get_course(course_id)), "City removed from course")


@router.delete("/courses/{course_id}/campuses/{campus_id}", response_model=Envelope[CourseOut])
def remove_course_campus(
    course_id: int,
    campus_id: int,
    request: Request,
    _: Admin = Depends(require_admin),
    pop: Populator = Depends(get_populator),
) -> Envelope:
    academy: AcademyStore = request.app.state.academy
    if academy.get_course(course_id) is None:
        raise api_error(404, "not_found", "Course not found.")
    campus = academy.get_campus(campus_id)
    if campus is None or not academy.remove_course_campus(course_id, campus):
        raise api_error(404, "not_found", "Campus is not linked to this course.")
    return envelope(pop.course(academy.get_course(course_id)), "Campus removed from course")


# ---------------------------------------------------------------------------
# Classes
# ---------------------------------------------------------------------------


def _check_class_refs(request: Request, teacher_id: int, city_id: int, campus_id: int, course_id: int) -> None:
    """Every id a class points at must exist, and the course must be offered on the campus."""
    if request.app.state.user_store.get(TEACHER, teacher_id) is None:
        raise api_error(404, "not_found", "Teacher not found.")
    academy: AcademyStore = request.app.state.academy
    _campus_in_city(academy, city_id, campus_id)
    course = academy.get_course(course_id)
    if course is None:
        raise api_error(404, "not_found", "Course not found.")
    if campus_id not in course.campus_ids:
        raise api_error(400, "course_not_offered", "Course is not offered at this campus.")


@router.post("/classes", response_model=Envelope[ClassOut], status_code=201)
def create_class(
    request: Request,
    body: ClassCreate,
    admin: Admin = Depends(require_admin),
    pop: Populator = Depends(get_populator),
) -> Envelope:
    """Create a class and hand it to its teacher.

    The teacher gains the class and its campus, and becomes verified, in the
    same transaction as the insert.
    """
    _check_class_refs(request, body.teacher_id, body.city_id, body.campus_id, body.course_id)
    academy: AcademyStore = request.app.state.academy
    if academy.get_class_by_key(body.enrollment_key) is not None:
        raise api_error(409, "conflict", "Enrollment key already exists.")
    classroom = Classroom(**body.model_dump(), created_by=admin.id, updated_by=admin.id)
    try:
        class_id = academy.create_class(classroom)
    except IntegrityError:
        raise api_error(409, "conflict", "Enrollment key already exists.") from None
    logger.info("Class id=%d created for teacher id=%d", class_id, body.teacher_id)
    return envelope(pop.classroom(academy.get_class(class_id)), "Class created successfully", 201)


@router.get("/classes", response_model=Envelope[list[ClassOut]])
def list_classes(
    request: Request, _: Admin = Depends(require_admin), pop: Populator = Depends(get_populator)
) -> Envelope:
    academy: AcademyStore = request.app.state.academy
    return envelope(pop.classrooms(academy.list_classes()), "Classes fetched successfully")


@router.put("/classes/{class_id}", response_model=Envelope[ClassOut])
def edit_class(
    class_id: int,
    request: Request,
    body: ClassUpdate,
    admin: Admin = Depends(require_admin),
    pop: Populator = Depends(get_populator),
) -> Envelope:
    academy: AcademyStore = request.app.state.academy
    current = academy.get_class(class_id)
    if current is None:
        raise api_error(404, "not_found", "Class not found.")
    fields = body.model_dump(exclude_none=True)
    if not fields:
        raise api_error(400, "missing_fields", "Nothing to update.")
    refs = ("teacher_id", "city_id", "campus_id", "course_id")
    if any(k in fields for k in refs):
        _check_class_refs(request, **{k: fields.get(k, getattr(current, k)) for k in refs})
    key = fields.get("enrollment_key")
    if key is not None:
        holder = academy.get_class_by_key(key)
        if holder is not None and holder.id != class_id:
            raise api_error(409, "conflict", "Enrollment key already exists.")
    try:
        academy.update_class(class_id, **fields, updated_by=admin.id)
    except IntegrityError:
        raise api_error(409, "conflict", "Enrollment key already exists.") from None
    return envelope(pop.classroom(academy.get_class(class_id)), "Class updated successfully")


@router.delete("/classes/{class_id}", response_model=Envelope[dict])
def delete_class(class_id: int, request: Request, _: Admin = Depends(require_admin)) -> Envelope:
    academy: AcademyStore = request.app.state.academy
    classroom = academy.get_class(class_id)
    if classroom is None:
        raise api_error(404, "not_found", "Class not found.")
    if classroom.student_ids:
        raise api_error(409, "in_use", "Class has enrolled students.")
    academy.delete_class(class_id)
    return envelope({}, "Class deleted successfully")


# ---------------------------------------------------------------------------
# Teachers
# ---------------------------------------------------------------------------


@router.get("/teachers", response_model=Envelope[list[TeacherOut]])
def list_teachers(
    request: Request,
    course_id: Optional[int] = Query(default=None, alias="courseId"),
    _: Admin = Depends(require_admin),
    pop: Populator = Depends(get_populator),
) -> Envelope:
    user_store: UserStore = request.app.state.user_store
    teachers = user_store.list_teachers(course_id)
    return envelope(pop.teachers(teachers), "Teachers fetched successfully")


@router.patch("/teachers/{teacher_id}/verification", response_model=Envelope[TeacherOut])
def verify_teacher(
    teacher_id: int,
    request: Request,
    body: VerificationUpdate,
    admin: Admin = Depends(require_admin),
    pop: Populator = Depends(get_populator),
) -> Envelope:
    user_store: UserStore = request.app.state.user_store
    if not user_store.update(TEACHER, teacher_id, is_verified=body.is_verified, updated_by=admin.id):
        raise api_error(404, "not_found", "Teacher not found.")
    return envelope(pop.teacher(user_store.get(TEACHER, teacher_id)), "Teacher verification updated")


@router.delete("/teachers/{teacher_id}", response_model=Envelope[dict])
async def delete_teacher(teacher_id: int, request: Request, _: Admin = Depends(require_admin)) -> Envelope:
    user_store: UserStore = request.app.state.user_store
    teacher = user_store.get(TEACHER, teacher_id)
    if teacher is None:
        raise api_error(404, "not_found", "Teacher not found.")
    if teacher.class_ids:
        raise api_error(409, "in_use", "Teacher is assigned to classes.")
    user_store.delete(TEACHER, teacher_id)
    if teacher.profile:
        await run_in_threadpool(request.app.state.media.delete, teacher.profile)
    return envelope({}, "Teacher deleted successfully")


# ---------------------------------------------------------------------------
# Students
# ---------------------------------------------------------------------------


@router.get("/students", response_model=Envelope[list[StudentOut]])
def list_students(
    request: Request, _: Admin = Depends(require_admin), pop: Populator = Depends(get_populator)
) -> Envelope:
    user_store: UserStore = request.app.state.user_store
    return envelope(pop.students(user_store.list_accounts(STUDENT)), "Students fetched successfully")


@router.patch("/students/{student_id}/verification", response_model=Envelope[StudentOut])
def verify_student(
    student_id: int,
    request: Request,
    body: VerificationUpdate,
    admin: Admin = Depends(require_admin),
    pop: Populator = Depends(get_populator),
) -> Envelope:
    user_store: UserStore = request.app.state.user_store
    if not user_store.update(STUDENT, student_id, is_verified=body.is_verified, updated_by=admin.id):
        raise api_error(404, "not_found", "Student not found.")
    return envelope(pop.student(user_store.get(STUDENT, student_id)), "Student verification updated")


@router.delete("/students/{student_id}", response_model=Envelope[dict])
async def delete_student(student_id: int, request: Request, _: Admin = Depends(require_admin)) -> Envelope:
    user_store: UserStore = request.app.state.user_store
    student = user_store.get(STUDENT, student_id)
    if student is None:
        raise api_error(404, "not_found", "Student not found.")
    if student.enrolled_in_class is not None:
        raise api_error(409, "in_use", "Student is enrolled in a class.")
    user_store.delete(STUDENT, student_id)
    if student.profile:
        await run_in_threadpool(request.app.state.media.delete, student.profile)
    return envelope({}, "Student deleted successfully")
