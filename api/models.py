"""
API request and response models for campusdesk REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py and
academy/models.py, which own the internal domain representation. Route
handlers (via api/populate.py) map between the two.

Wire format: every JSON key is camelCase (fullName, enrollmentKey, ...).
Models use snake_case attributes with a camelCase alias generator and accept
either spelling on input.

Every response is wrapped in Envelope: {statusCode, data, message, success}.
"""

from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class ApiModel(BaseModel):
    """Base for all wire models: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RequestModel(ApiModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


class Envelope(ApiModel, Generic[T]):
    """Uniform success wrapper."""

    status_code: int
    data: Optional[T] = None
    message: str
    success: bool = True


class ErrorEnvelope(ApiModel):
    """Uniform failure wrapper. error is a machine-readable code."""

    status_code: int
    data: None = None
    message: str
    success: bool = False
    error: str
    detail: Optional[Any] = None


def envelope(data: Any, message: str, status_code: int = 200) -> Envelope:
    return Envelope(status_code=status_code, data=data, message=message)


# ---------------------------------------------------------------------------
# Auth requests
# ---------------------------------------------------------------------------

_Required = Field(min_length=1, max_length=255)


class LoginRequest(RequestModel):
    username: str = _Required
    password: str = Field(min_length=1, max_length=72)


class RefreshRequest(RequestModel):
    refresh_token: Optional[str] = None


class ProfileUpdate(RequestModel):
    """Request body for PUT /profile (admin and teacher)."""

    full_name: str = _Required
    email: str = _Required
    phone_number: str = Field(min_length=1, max_length=30)
    gender: str = Field(min_length=1, max_length=20)
    username: str = Field(min_length=1, max_length=100)


class StudentProfileUpdate(ProfileUpdate):
    father_name: str = _Required
    last_qualification: str = _Required
    cnic: str = Field(min_length=1, max_length=30)
    address: str = Field(min_length=1, max_length=1000)
    dob: str = Field(min_length=1, max_length=32)


# ---------------------------------------------------------------------------
# Admin requests
# ---------------------------------------------------------------------------


class AdminEdit(RequestModel):
    """Request body for PUT /api/admin/admins/{id}."""

    city_id: Optional[int] = None
    campus_id: Optional[int] = None
    is_verified: Optional[bool] = None


class VerificationUpdate(RequestModel):
    is_verified: bool


class CityCreate(RequestModel):
    city_name: str = Field(min_length=1, max_length=100)


class CampusCreate(RequestModel):
    name: str = _Required
    city_id: int


class CourseCreate(RequestModel):
    name: str = _Required
    city_id: int
    campus_id: int


class CourseRename(RequestModel):
    name: str = _Required


class ClassCreate(RequestModel):
    name: str = _Required
    enrollment_key: str = Field(min_length=1, max_length=100)
    batch: str = Field(min_length=1, max_length=50)
    teacher_id: int
    city_id: int
    campus_id: int
    course_id: int


class ClassUpdate(RequestModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    enrollment_key: Optional[str] = Field(default=None, min_length=1, max_length=100)
    batch: Optional[str] = Field(default=None, min_length=1, max_length=50)
    teacher_id: Optional[int] = None
    city_id: Optional[int] = None
    campus_id: Optional[int] = None
    course_id: Optional[int] = None


# ---------------------------------------------------------------------------
# Teacher / student requests
# ---------------------------------------------------------------------------


class AssignmentCreate(RequestModel):
    title: str = _Required
    description: str = Field(min_length=1, max_length=5000)
    class_id: int
    due_date: Optional[str] = Field(default=None, max_length=32)


class AssignmentUpdate(RequestModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, min_length=1, max_length=5000)
    due_date: Optional[str] = Field(default=None, max_length=32)


class MarksAssign(RequestModel):
    student_id: int
    marks: float = Field(ge=0)


class SubmissionCreate(RequestModel):
    link: str = Field(min_length=1, max_length=2000)


class EnrollRequest(RequestModel):
    enrollment_key: str = Field(min_length=1, max_length=100)


class QuizCreate(RequestModel):
    title: str = _Required
    description: str = Field(default="", max_length=5000)
    class_id: int
    questions: list[dict] = Field(default_factory=list, max_length=200)


# ---------------------------------------------------------------------------
# Populated references (the "select" projections of a join)
# ---------------------------------------------------------------------------


class CityRef(ApiModel):
    id: int
    city_name: str


class CampusRef(ApiModel):
    id: int
    name: str


class CourseRef(ApiModel):
    id: int
    name: str


class TeacherRef(ApiModel):
    id: int
    full_name: str


class ClassRef(ApiModel):
    id: int
    name: str
    batch: str


class EnrolledClassRef(ClassRef):
    teacher: Optional[TeacherRef] = None


class AdminRef(ApiModel):
    """createdBy / updatedBy projection."""

    id: int
    full_name: str
    email: str
    phone_number: str
    gender: str
    city: Optional[CityRef] = None
    campus: Optional[CampusRef] = None


class TeacherBrief(ApiModel):
    id: int
    full_name: str
    email: str
    phone_number: str
    gender: str
    city: Optional[CityRef] = None


class StudentBrief(ApiModel):
    id: int
    full_name: str
    father_name: str
    email: str
    phone_number: str
    cnic: str
    address: str
    profile: Optional[str] = None


# ---------------------------------------------------------------------------
# Account responses
# ---------------------------------------------------------------------------


class AdminOut(ApiModel):
    id: int
    full_name: str
    username: str
    email: str
    profile: Optional[str]
    role: str
    phone_number: str
    gender: str
    city: Optional[CityRef] = None
    campus: Optional[CampusRef] = None
    is_verified: bool
    created_by: Optional[AdminRef] = None
    updated_by: Optional[AdminRef] = None
    created_at: str
    updated_at: str


class TeacherOut(ApiModel):
    id: int
    full_name: str
    username: str
    email: str
    profile: Optional[str]
    role: str
    phone_number: str
    gender: str
    city: Optional[CityRef] = None
    course: Optional[CourseRef] = None
    campuses: list[CampusRef] = Field(default_factory=list)
    instructor_of_class: list[ClassRef] = Field(default_factory=list)
    is_verified: bool
    created_at: str
    updated_at: str


class StudentOut(ApiModel):
    id: int
    full_name: str
    father_name: str
    username: str
    email: str
    profile: Optional[str]
    role: str
    phone_number: str
    cnic: str
    gender: str
    address: str
    last_qualification: str
    dob: str
    city: Optional[CityRef] = None
    campus: Optional[CampusRef] = None
    course: Optional[CourseRef] = None
    enrolled_in_class: Optional[EnrolledClassRef] = None
    is_verified: bool
    created_at: str
    updated_at: str


class TokenData(ApiModel):
    access_token: str
    refresh_token: str


class AuthData(TokenData, Generic[T]):
    """Login / student registration payload: the account plus its token pair."""

    user: T


# ---------------------------------------------------------------------------
# Hierarchy responses
# ---------------------------------------------------------------------------


class CityOut(ApiModel):
    id: int
    city_name: str
    created_by: Optional[int] = None
    created_at: str


class CampusOut(ApiModel):
    id: int
    name: str
    city: Optional[CityRef] = None
    created_by: Optional[int] = None
    created_at: str


class CourseOut(ApiModel):
    id: int
    name: str
    cities: list[CityRef] = Field(default_factory=list)
    campuses: list[CampusRef] = Field(default_factory=list)
    created_by: Optional[AdminRef] = None
    created_at: str
    updated_at: str


class ClassOut(ApiModel):
    id: int
    name: str
    batch: str
    enrollment_key: str
    city: Optional[CityRef] = None
    campus: Optional[CampusRef] = None
    course: Optional[CourseRef] = None
    teacher: Optional[TeacherBrief] = None
    created_by: Optional[AdminRef] = None
    updated_by: Optional[AdminRef] = None
    students: list[int] = Field(default_factory=list)
    created_at: str
    updated_at: str


class ClassRoster(ApiModel):
    id: int
    name: str
    batch: str
    enrollment_key: str
    students: list[StudentBrief] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Assignment / quiz responses
# ---------------------------------------------------------------------------


class SubmissionOut(ApiModel):
    student_id: int
    link: str
    marks: Optional[float] = None
    submission_date: str


class AssignmentOut(ApiModel):
    id: int
    title: str
    description: str
    due_date: Optional[str] = None
    class_id: int
    created_by: int
    submissions: list[SubmissionOut] = Field(default_factory=list)
    created_at: str
    updated_at: str


class SubmittedRow(ApiModel):
    """One row of GET /assignments/{id}/submitted."""

    student: StudentBrief
    link: str
    marks: Optional[float] = None
    submission_date: str


class PerformanceRow(ApiModel):
    assignment_id: int
    title: str
    description: str
    marks: Optional[float] = None
    link: str
    submission_date: str


class PerformanceOut(ApiModel):
    total_assignments: int
    submitted_assignments_count: int
    student_info: StudentBrief
    submitted_assignments: list[PerformanceRow] = Field(default_factory=list)


class QuizOut(ApiModel):
    id: int
    title: str
    description: str
    class_id: int
    created_by: int
    questions: list[dict] = Field(default_factory=list)
    created_at: str


class StudentAssignmentOut(ApiModel):
    """An assignment as its student sees it: only their own submission."""

    id: int
    title: str
    description: str
    due_date: Optional[str] = None
    submission: Optional[SubmissionOut] = None


class StudentClassOut(ApiModel):
    id: int
    name: str
    batch: str
    course: Optional[CourseRef] = None
    campus: Optional[CampusRef] = None
    teacher: Optional[TeacherRef] = None
    assignments: list[StudentAssignmentOut] = Field(default_factory=list)
    quizzes: list[QuizOut] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
