"""
tests/test_teacher_routes.py -- Integration tests for /api/teacher.

Coverage:
  - Public registration: 201 unverified, campus outside city 400, unknown course 404,
    over-long password 400 before any upload, insert conflict 409 deletes the image
  - Account: login, /me, refresh rotation (reuse of the old token is 401), logout,
    per-role cookies
  - Profile picture replacement deletes the previous image
  - Ownership: another teacher's class, assignment or quiz is 403
  - Assignments: create, edit, submitted / not-submitted split, marks
  - Performance report for one student

Fixtures used (from conftest.py):
  - campus: CampusContext with a seeded verified admin in Karachi / Gulshan
"""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from academy.models import Campus
from auth.models import STUDENT, TEACHER
from auth.tokens import access_cookie
from conftest import CampusContext


def _teacher_form(ctx: CampusContext, username: str, course_id: int, campus_id: int | None = None) -> dict:
    return {
        "fullName": "New Teacher",
        "username": username,
        "email": f"{username}@campusdesk.test",
        "password": "teachpass123",
        "phoneNumber": "03110001111",
        "gender": "female",
        "cityId": str(ctx.city_id),
        "campusId": str(campus_id or ctx.campus_id),
        "courseId": str(course_id),
    }


def _setup_class(ctx: CampusContext) -> tuple[int, int, dict]:
    """A course with a teacher and one class. Returns (teacher_id, class_id, teacher headers)."""
    course_id = ctx.add_course()
    teacher_id, _ = ctx.add_teacher(course_id)
    class_id, _ = ctx.add_class(teacher_id, course_id)
    return teacher_id, class_id, ctx.headers_for(TEACHER, teacher_id)


def _create_assignment(ctx: CampusContext, class_id: int, headers: dict, title: str = "Homework") -> dict:
    resp = ctx.client.post(
        "/api/teacher/assignments",
        json={"title": title, "description": "Build a page", "classId": class_id, "dueDate": "2026-12-01"},
        headers=headers,
    )
    assert resp.status_code == 201, f"Expected 201, got {resp.status_code}: {resp.text}"
    return resp.json()["data"]


class TestTeacherRegistration:
    def test_register_is_public_and_unverified(self, campus: CampusContext) -> None:
        course_id = campus.add_course()
        username = campus.unique("tnew")
        resp = campus.client.post(
            "/api/teacher/register", data=_teacher_form(campus, username, course_id), files=campus.profile()
        )
        assert resp.status_code == 201, f"Expected 201, got {resp.status_code}: {resp.text}"
        data = resp.json()["data"]
        assert data["isVerified"] is False
        assert data["course"]["id"] == course_id
        assert [c["id"] for c in data["campuses"]] == [campus.campus_id]
        assert data["instructorOfClass"] == []

    def test_duplicate_email(self, campus: CampusContext) -> None:
        course_id = campus.add_course()
        _, existing = campus.add_teacher(course_id)
        form = _teacher_form(campus, campus.unique("tnew"), course_id)
        form["email"] = f"{existing}@campusdesk.test"
        resp = campus.client.post("/api/teacher/register", data=form, files=campus.profile())
        assert resp.status_code == 409, f"Expected 409, got {resp.status_code}: {resp.text}"
        assert resp.json()["message"] == "Email already exists."

    def test_campus_outside_city(self, campus: CampusContext) -> None:
        course_id = campus.add_course()
        form = _teacher_form(campus, campus.unique("tnew"), course_id, campus_id=9999)
        resp = campus.client.post("/api/teacher/register", data=form, files=campus.profile())
        assert resp.status_code == 400, f"Expected 400, got {resp.status_code}: {resp.text}"

    def test_unknown_course(self, campus: CampusContext) -> None:
        form = _teacher_form(campus, campus.unique("tnew"), 9999)
        resp = campus.client.post("/api/teacher/register", data=form, files=campus.profile())
        assert resp.status_code == 404, f"Expected 404, got {resp.status_code}: {resp.text}"

    def test_password_over_72_bytes_rejected_before_upload(self, campus: CampusContext) -> None:
        """Forty two-byte characters pass the form's character cap but exceed bcrypt's 72 bytes."""
        form = _teacher_form(campus, campus.unique("tnew"), campus.add_course())
        form["password"] = "\u00e9" * 40
        uploads = len(campus.media.uploaded)
        resp = campus.client.post("/api/teacher/register", data=form, files=campus.profile())
        assert resp.status_code == 400, f"Expected 400, got {resp.status_code}: {resp.text}"
        assert resp.json()["error"] == "invalid_password"
        assert len(campus.media.uploaded) == uploads

    def test_insert_conflict_discards_uploaded_image(self, campus: CampusContext, monkeypatch) -> None:
        """A unique-constraint failure at insert time still answers 409 and leaves no image behind."""

        def collide(teacher):
            raise IntegrityError("INSERT INTO teachers", {}, Exception("UNIQUE constraint failed"))

        monkeypatch.setattr(campus.user_store, "create_teacher", collide)
        form = _teacher_form(campus, campus.unique("tnew"), campus.add_course())
        resp = campus.client.post("/api/teacher/register", data=form, files=campus.profile())
        assert resp.status_code == 409, f"Expected 409, got {resp.status_code}: {resp.text}"
        assert campus.media.uploaded[-1] in campus.media.deleted


class TestTeacherAccount:
    def test_login_and_me(self, campus: CampusContext) -> None:
        teacher_id, username = campus.add_teacher(campus.add_course())
        body = campus.login(TEACHER, username, "teachpass123")
        assert body["data"]["user"]["id"] == teacher_id
        token = body["data"]["accessToken"]
        resp = campus.client.get("/api/teacher/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"
        assert resp.json()["data"]["username"] == username

    def test_login_sets_cookies(self, campus: CampusContext) -> None:
        _, username = campus.add_teacher(campus.add_course())
        resp = campus.client.post("/api/teacher/login", json={"username": username, "password": "teachpass123"})
        cookies = dict(resp.cookies)
        campus.client.cookies.clear()
        assert resp.status_code == 200
        assert resp.headers["cache-control"] == "no-store"
        assert "teacher_access_token" in cookies and "teacher_refresh_token" in cookies

    def test_other_roles_cookie_does_not_shadow_bearer(self, campus: CampusContext) -> None:
        """A student session cookie left in the client does not block a teacher token."""
        course_id = campus.add_course()
        student_id, _ = campus.add_student(course_id)
        teacher_id, _ = campus.add_teacher(course_id)
        campus.client.cookies.set(access_cookie(STUDENT), campus.token_for(STUDENT, student_id))
        try:
            as_teacher = campus.client.get("/api/teacher/me", headers=campus.headers_for(TEACHER, teacher_id))
            as_student = campus.client.get("/api/student/me")
        finally:
            campus.client.cookies.clear()
        assert as_teacher.status_code == 200, f"Expected 200, got {as_teacher.status_code}: {as_teacher.text}"
        assert as_teacher.json()["data"]["id"] == teacher_id
        assert as_student.status_code == 200, f"Expected 200, got {as_student.status_code}: {as_student.text}"
        assert as_student.json()["data"]["id"] == student_id

    def test_wrong_password(self, campus: CampusContext) -> None:
        _, username = campus.add_teacher(campus.add_course())
        resp = campus.client.post("/api/teacher/login", json={"username": username, "password": "wrongpass"})
        assert resp.status_code == 401, f"Expected 401, got {resp.status_code}"
        assert resp.json()["error"] == "bad_credentials"

    def test_refresh_rotation(self, campus: CampusContext) -> None:
        """A refresh token works once; presenting it again is refused."""
        _, username = campus.add_teacher(campus.add_course())
        old = campus.login(TEACHER, username, "teachpass123")["data"]["refreshToken"]

        resp = campus.client.post("/api/teacher/refresh-token", json={"refreshToken": old})
        campus.client.cookies.clear()
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"
        new = resp.json()["data"]["refreshToken"]
        assert new != old

        reused = campus.client.post("/api/teacher/refresh-token", json={"refreshToken": old})
        assert reused.status_code == 401, f"Expected 401, got {reused.status_code}"
        assert reused.json()["error"] == "invalid_refresh_token"

    def test_refresh_without_token(self, campus: CampusContext) -> None:
        resp = campus.client.post("/api/teacher/refresh-token")
        assert resp.status_code == 401
        assert resp.json()["message"] == "Unauthorized request"

    def test_logout_revokes_refresh(self, campus: CampusContext) -> None:
        teacher_id, username = campus.add_teacher(campus.add_course())
        data = campus.login(TEACHER, username, "teachpass123")["data"]
        resp = campus.client.post(
            "/api/teacher/logout", headers={"Authorization": f"Bearer {data['accessToken']}"}
        )
        campus.client.cookies.clear()
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"
        assert campus.user_store.get(TEACHER, teacher_id).refresh_token is None

        resp = campus.client.post("/api/teacher/refresh-token", json={"refreshToken": data["refreshToken"]})
        assert resp.status_code == 401

    def test_profile_picture_replaces_old_image(self, campus: CampusContext) -> None:
        teacher_id, _ = campus.add_teacher(campus.add_course())
        headers = campus.headers_for(TEACHER, teacher_id)
        first = campus.client.patch("/api/teacher/profile-picture", files=campus.profile(), headers=headers)
        assert first.status_code == 200, f"Expected 200, got {first.status_code}: {first.text}"
        old_url = first.json()["data"]["profile"]

        second = campus.client.patch("/api/teacher/profile-picture", files=campus.profile(), headers=headers)
        assert second.status_code == 200
        assert second.json()["data"]["profile"] != old_url
        assert old_url in campus.media.deleted

    def test_profile_edit_conflict(self, campus: CampusContext) -> None:
        course_id = campus.add_course()
        teacher_id, username = campus.add_teacher(course_id)
        _, other = campus.add_teacher(course_id)
        body = {
            "fullName": "Renamed",
            "email": f"{username}@campusdesk.test",
            "phoneNumber": "0311",
            "gender": "male",
            "username": other,
        }
        headers = campus.headers_for(TEACHER, teacher_id)
        resp = campus.client.put("/api/teacher/profile", json=body, headers=headers)
        assert resp.status_code == 409, f"Expected 409, got {resp.status_code}: {resp.text}"

        body["username"] = username
        resp = campus.client.put("/api/teacher/profile", json=body, headers=headers)
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"
        assert resp.json()["data"]["fullName"] == "Renamed"


class TestOwnership:
    def test_other_teachers_class_is_forbidden(self, campus: CampusContext) -> None:
        _, class_id, _ = _setup_class(campus)
        _, _, stranger = _setup_class(campus)
        resp = campus.client.get(f"/api/teacher/classes/{class_id}/students", headers=stranger)
        assert resp.status_code == 403, f"Expected 403, got {resp.status_code}"

        resp = campus.client.post(
            "/api/teacher/assignments",
            json={"title": "Sneaky", "description": "x", "classId": class_id},
            headers=stranger,
        )
        assert resp.status_code == 403, f"Expected 403, got {resp.status_code}"

    def test_other_teachers_assignment_is_forbidden(self, campus: CampusContext) -> None:
        _, class_id, owner = _setup_class(campus)
        _, _, stranger = _setup_class(campus)
        assignment = _create_assignment(campus, class_id, owner)
        resp = campus.client.delete(f"/api/teacher/assignments/{assignment['id']}", headers=stranger)
        assert resp.status_code == 403, f"Expected 403, got {resp.status_code}"

    def test_other_teachers_quiz_is_forbidden(self, campus: CampusContext) -> None:
        _, class_id, owner = _setup_class(campus)
        _, _, stranger = _setup_class(campus)
        resp = campus.client.post(
            "/api/teacher/quizzes",
            json={"title": "Quiz 1", "classId": class_id, "questions": [{"q": "1+1", "a": "2"}]},
            headers=owner,
        )
        assert resp.status_code == 201, f"Expected 201, got {resp.status_code}: {resp.text}"
        quiz_id = resp.json()["data"]["id"]
        assert campus.client.delete(f"/api/teacher/quizzes/{quiz_id}", headers=stranger).status_code == 403
        assert campus.client.delete(f"/api/teacher/quizzes/{quiz_id}", headers=owner).status_code == 200

    def test_missing_class_is_404(self, campus: CampusContext) -> None:
        _, _, headers = _setup_class(campus)
        resp = campus.client.get("/api/teacher/classes/9999/students", headers=headers)
        assert resp.status_code == 404


class TestAssignments:
    def test_my_classes(self, campus: CampusContext) -> None:
        _, class_id, headers = _setup_class(campus)
        resp = campus.client.get("/api/teacher/classes", headers=headers)
        assert resp.status_code == 200
        assert [c["id"] for c in resp.json()["data"]] == [class_id]

    def test_edit_assignment(self, campus: CampusContext) -> None:
        _, class_id, headers = _setup_class(campus)
        assignment = _create_assignment(campus, class_id, headers)
        resp = campus.client.put(
            f"/api/teacher/assignments/{assignment['id']}", json={"title": "Homework 2"}, headers=headers
        )
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"
        assert resp.json()["data"]["title"] == "Homework 2"
        assert resp.json()["data"]["description"] == "Build a page"

        listed = campus.client.get(f"/api/teacher/assignments?classId={class_id}", headers=headers)
        assert [a["id"] for a in listed.json()["data"]] == [assignment["id"]]

    def test_submission_split_and_marks(self, campus: CampusContext) -> None:
        course_id = campus.add_course()
        teacher_id, _ = campus.add_teacher(course_id)
        class_id, _ = campus.add_class(teacher_id, course_id)
        headers = campus.headers_for(TEACHER, teacher_id)
        done, _ = campus.add_student(course_id)
        pending, _ = campus.add_student(course_id)
        campus.academy.enroll_student(class_id, done)
        campus.academy.enroll_student(class_id, pending)
        assignment = _create_assignment(campus, class_id, headers)
        campus.academy.submit_assignment(assignment["id"], done, "https://github.com/x/hw")

        submitted = campus.client.get(f"/api/teacher/assignments/{assignment['id']}/submitted", headers=headers)
        assert submitted.status_code == 200, f"Expected 200, got {submitted.status_code}: {submitted.text}"
        rows = submitted.json()["data"]
        assert [r["student"]["id"] for r in rows] == [done]
        assert rows[0]["link"] == "https://github.com/x/hw"

        not_submitted = campus.client.get(
            f"/api/teacher/assignments/{assignment['id']}/not-submitted", headers=headers
        )
        assert [s["id"] for s in not_submitted.json()["data"]] == [pending]

        marks = campus.client.patch(
            f"/api/teacher/assignments/{assignment['id']}/marks",
            json={"studentId": done, "marks": 9},
            headers=headers,
        )
        assert marks.status_code == 200, f"Expected 200, got {marks.status_code}: {marks.text}"
        assert marks.json()["data"]["submissions"][0]["marks"] == 9

        no_submission = campus.client.patch(
            f"/api/teacher/assignments/{assignment['id']}/marks",
            json={"studentId": pending, "marks": 5},
            headers=headers,
        )
        assert no_submission.status_code == 404

        negative = campus.client.patch(
            f"/api/teacher/assignments/{assignment['id']}/marks",
            json={"studentId": done, "marks": -1},
            headers=headers,
        )
        assert negative.status_code == 400

    def test_performance(self, campus: CampusContext) -> None:
        course_id = campus.add_course()
        teacher_id, _ = campus.add_teacher(course_id)
        class_id, _ = campus.add_class(teacher_id, course_id)
        headers = campus.headers_for(TEACHER, teacher_id)
        student_id, _ = campus.add_student(course_id)
        outsider, _ = campus.add_student(course_id)
        campus.academy.enroll_student(class_id, student_id)
        first = _create_assignment(campus, class_id, headers, "One")
        _create_assignment(campus, class_id, headers, "Two")
        campus.academy.submit_assignment(first["id"], student_id, "https://github.com/x/one")
        campus.academy.assign_marks(first["id"], student_id, 7)

        resp = campus.client.get(
            f"/api/teacher/classes/{class_id}/students/{student_id}/performance", headers=headers
        )
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"
        data = resp.json()["data"]
        assert data["totalAssignments"] == 2
        assert data["submittedAssignmentsCount"] == 1
        assert data["studentInfo"]["id"] == student_id
        assert data["submittedAssignments"][0]["title"] == "One"
        assert data["submittedAssignments"][0]["marks"] == 7

        resp = campus.client.get(
            f"/api/teacher/classes/{class_id}/students/{outsider}/performance", headers=headers
        )
        assert resp.status_code == 404

    def test_roster(self, campus: CampusContext) -> None:
        course_id = campus.add_course()
        teacher_id, _ = campus.add_teacher(course_id)
        class_id, key = campus.add_class(teacher_id, course_id)
        student_id, _ = campus.add_student(course_id)
        campus.academy.enroll_student(class_id, student_id)
        resp = campus.client.get(
            f"/api/teacher/classes/{class_id}/students", headers=campus.headers_for(TEACHER, teacher_id)
        )
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["enrollmentKey"] == key
        assert [s["id"] for s in data["students"]] == [student_id]
        assert data["students"][0]["cnic"] == campus.user_store.get(STUDENT, student_id).cnic

    def test_quizzes_listed_per_class(self, campus: CampusContext) -> None:
        _, class_id, headers = _setup_class(campus)
        campus.client.post("/api/teacher/quizzes", json={"title": "A", "classId": class_id}, headers=headers)
        resp = campus.client.get(f"/api/teacher/quizzes?classId={class_id}", headers=headers)
        assert resp.status_code == 200
        assert [q["title"] for q in resp.json()["data"]] == ["A"]


def test_teacher_registration_on_second_campus(campus: CampusContext) -> None:
    """A teacher may register on any campus of the city, whether or not the course is offered there."""
    extra = campus.academy.create_campus(Campus(name=campus.unique("Korangi "), city_id=campus.city_id))
    form = _teacher_form(campus, campus.unique("tnew"), campus.add_course(), campus_id=extra)
    resp = campus.client.post("/api/teacher/register", data=form, files=campus.profile())
    assert resp.status_code == 201, f"Expected 201, got {resp.status_code}: {resp.text}"
    assert [c["id"] for c in resp.json()["data"]["campuses"]] == [extra]
