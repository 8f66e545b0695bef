import uuid

import pytest

from app import models, notify
from app.errors import Conflict, Forbidden, InvalidTransition, ValidationFailed
from app.services import enrollment_pipeline
from app.tests.conftest import OPEN_WINDOW, auth_for, make_course, make_degree, make_user, utc

COURSES = ["CS301", "CS302", "CS303", "CS304", "CS305", "CS306"]
YEAR = "2024-2025"


@pytest.fixture
def setup(db):
    faculty = make_user(db)
    hod = make_user(db, hod=True)
    degree = make_degree(
        db,
        faculty,
        status="active",
        courses_per_semester={
            "3": {"count": "5", **OPEN_WINDOW},
            "4": {"count": 0, **OPEN_WINDOW},
            "5": {"count": 2, "enrollment_start": "2025-01-01", "enrollment_end": "2025-01-15"},
        },
    )
    for code in COURSES:
        make_course(db, faculty, code=code, semester=3)
    make_course(db, faculty, code="CS401", semester=4)
    make_course(db, faculty, code="CS501", semester=5)
    make_course(db, faculty, code="CS502", semester=5)
    make_course(db, faculty, code="CS399", semester=3, status="draft")
    student = make_user(db, user_type="student", degree_id=degree.id, first_name="Sam")
    return {"faculty": faculty, "hod": hod, "degree": degree, "student": student}


def _draft(db, student, codes, semester=3, year=YEAR, **kwargs):
    return enrollment_pipeline.save_draft(
        db, auth_for(student), academic_year=year, semester=semester, course_codes=codes, **kwargs
    )


def test_save_draft_normalizes_and_upserts(db, setup):
    first = _draft(db, setup["student"], ["cs302", " CS301 ", "CS302"])
    assert first.course_codes == ["CS301", "CS302"]
    second = _draft(db, setup["student"], ["CS301", "CS302", "CS303"])
    assert second.id == first.id
    assert second.status == "draft"
    rows = db.query(models.EnrollmentRequest).filter_by(student_id=setup["student"].id).all()
    assert len(rows) == 1
    assert rows[0].course_codes == ["CS301", "CS302", "CS303"]


def test_save_draft_allows_partial_selection(db, setup):
    request = _draft(db, setup["student"], ["CS301"])
    assert request.course_codes == ["CS301"]


def test_save_draft_rejects_unknown_or_inactive_codes(db, setup):
    with pytest.raises(ValidationFailed) as excinfo:
        _draft(db, setup["student"], ["CS301", "CS399", "MATH101"])
    assert excinfo.value.context["unknown_codes"] == ["CS399", "MATH101"]


@pytest.mark.parametrize("year,semester", [("2024", 3), ("2024-2026", 3), ("24-25", 3), (YEAR, 0), (YEAR, 11)])
def test_save_draft_validates_term(db, setup, year, semester):
    with pytest.raises(ValidationFailed):
        _draft(db, setup["student"], ["CS301"], semester=semester, year=year)


def test_save_draft_outside_window_fails_regardless_of_quota(db, setup):
    with pytest.raises(ValidationFailed) as excinfo:
        _draft(db, setup["student"], ["CS501", "CS502"], semester=5, now=utc(2025, 1, 20))
    context = excinfo.value.context
    assert context["enrollment_start"].startswith("2025-01-01")
    assert context["enrollment_end"].startswith("2025-01-15")
    assert db.query(models.EnrollmentRequest).count() == 0


def test_only_students_save_drafts(db, setup):
    with pytest.raises(Forbidden):
        _draft(db, setup["faculty"], ["CS301"])


def test_submit_requires_exact_quota(db, setup):
    request = _draft(db, setup["student"], COURSES[:4])
    with pytest.raises(ValidationFailed) as excinfo:
        enrollment_pipeline.submit(db, auth_for(setup["student"]), request.id)
    assert excinfo.value.context == {"required": 5, "selected": 4}
    db.refresh(request)
    assert request.status == "draft"


def test_submit_with_no_quota_needs_at_least_one(db, setup):
    empty = _draft(db, setup["student"], [], semester=4)
    with pytest.raises(ValidationFailed):
        enrollment_pipeline.submit(db, auth_for(setup["student"]), empty.id)
    _draft(db, setup["student"], ["CS401"], semester=4)
    submitted = enrollment_pipeline.submit(db, auth_for(setup["student"]), empty.id)
    assert submitted.status == "pending_hod_approval"


def test_submit_moves_to_pending_and_notifies(db, setup):
    request = _draft(db, setup["student"], COURSES[:5])
    enrollment_pipeline.submit(db, auth_for(setup["student"]), request.id)
    db.refresh(request)
    assert request.status == "pending_hod_approval"
    assert request.submitted_at is not None
    assert any(to == setup["hod"].email for to, _, _ in notify.EMAIL_OUTBOX)

    with pytest.raises(InvalidTransition):
        enrollment_pipeline.submit(db, auth_for(setup["student"]), request.id)
    with pytest.raises(InvalidTransition):
        _draft(db, setup["student"], COURSES[:5])


def test_submit_someone_elses_request_is_forbidden(db, setup):
    request = _draft(db, setup["student"], COURSES[:5])
    other = make_user(db, user_type="student", degree_id=setup["degree"].id)
    with pytest.raises(Forbidden):
        enrollment_pipeline.submit(db, auth_for(other), request.id)


def test_single_open_request_per_term(db, setup):
    request = _draft(db, setup["student"], COURSES[:5])
    enrollment_pipeline.submit(db, auth_for(setup["student"]), request.id)
    stray = models.EnrollmentRequest(
        student_id=setup["student"].id,
        academic_year=YEAR,
        semester=3,
        course_codes=COURSES[1:],
        status="draft",
    )
    db.add(stray)
    db.commit()

    with pytest.raises(Conflict):
        enrollment_pipeline.submit(db, auth_for(setup["student"]), stray.id)
    open_rows = (
        db.query(models.EnrollmentRequest)
        .filter(models.EnrollmentRequest.status.notin_(["draft", "rejected"]))
        .all()
    )
    assert len(open_rows) == 1


def test_hod_decision_only_touches_own_department(db, setup):
    cs_requests = []
    for _ in range(2):
        student = make_user(db, user_type="student", degree_id=setup["degree"].id)
        request = _draft(db, student, COURSES[:5])
        enrollment_pipeline.submit(db, auth_for(student), request.id)
        cs_requests.append(request.id)

    ee_faculty = make_user(db, department_code="EE")
    ee_degree = make_degree(
        db,
        ee_faculty,
        code="EE-BSC",
        department_code="EE",
        status="active",
        courses_per_semester={"3": {"count": 1, **OPEN_WINDOW}},
    )
    make_course(db, ee_faculty, code="EE301", degree_code="EE-BSC", department_code="EE")
    ee_student = make_user(db, user_type="student", department_code="EE", degree_id=ee_degree.id)
    ee_request = _draft(db, ee_student, ["EE301"])
    enrollment_pipeline.submit(db, auth_for(ee_student), ee_request.id)

    result = enrollment_pipeline.hod_decision(
        db, auth_for(setup["hod"]), [*cs_requests, ee_request.id, uuid.uuid4()], "approve"
    )

    assert result.processed == 2
    assert result.requested == 4
    assert set(result.processed_ids) == set(cs_requests)
    db.refresh(ee_request)
    assert ee_request.status == "pending_hod_approval"
    for request_id in cs_requests:
        request = db.get(models.EnrollmentRequest, request_id)
        assert request.status == "approved"
        assert request.hod_approved_by == setup["hod"].id


def test_hod_reject_returns_to_draft_for_resubmission(db, setup):
    request = _draft(db, setup["student"], COURSES[:5])
    enrollment_pipeline.submit(db, auth_for(setup["student"]), request.id)

    with pytest.raises(ValidationFailed):
        enrollment_pipeline.hod_decision(db, auth_for(setup["hod"]), [request.id], "reject", "  ")
    result = enrollment_pipeline.hod_decision(
        db, auth_for(setup["hod"]), [request.id], "reject", "Swap CS305 for CS306"
    )
    assert result.processed == 1

    db.refresh(request)
    assert request.status == "draft"
    assert request.rejection_reason == "Swap CS305 for CS306"
    assert request.hod_approved_by == setup["hod"].id
    message = db.query(models.Message).filter_by(entity_id=request.id).one()
    assert message.body == "Swap CS305 for CS306"

    _draft(db, setup["student"], ["CS301", "CS302", "CS303", "CS304", "CS306"])
    enrollment_pipeline.submit(db, auth_for(setup["student"]), request.id)
    db.refresh(request)
    assert request.status == "pending_hod_approval"
    assert request.rejection_reason is None
    assert request.hod_approved_by is None
    assert request.hod_approved_at is None


def test_hod_decision_requires_hod(db, setup):
    with pytest.raises(Forbidden):
        enrollment_pipeline.hod_decision(db, auth_for(setup["faculty"]), [uuid.uuid4()], "approve")
    with pytest.raises(ValidationFailed):
        enrollment_pipeline.hod_decision(db, auth_for(setup["hod"]), [], "approve")
    with pytest.raises(ValidationFailed):
        enrollment_pipeline.hod_decision(db, auth_for(setup["hod"]), [uuid.uuid4()], "escalate")


def test_legacy_rejected_row_is_reopened(db, setup):
    legacy = models.EnrollmentRequest(
        student_id=setup["student"].id,
        academic_year=YEAR,
        semester=3,
        course_codes=["CS301"],
        status="rejected",
        rejection_reason="Old workflow",
    )
    db.add(legacy)
    db.commit()

    request = _draft(db, setup["student"], ["CS302"])
    assert request.id == legacy.id
    assert request.status == "draft"
    assert enrollment_pipeline.get_draft(db, auth_for(setup["student"]), YEAR, 3).id == legacy.id


def test_pending_for_hod_groups_by_student_and_term(db, setup):
    request = _draft(db, setup["student"], COURSES[:5])
    enrollment_pipeline.submit(db, auth_for(setup["student"]), request.id)

    groups = enrollment_pipeline.pending_for_hod(db, auth_for(setup["hod"]))
    assert len(groups) == 1
    assert groups[0]["student"]["name"] == setup["student"].full_name
    assert [row.id for row in groups[0]["requests"]] == [request.id]
    assert enrollment_pipeline.pending_for_hod(db, auth_for(setup["hod"]), semester=4) == []


def test_degree_offering_lists_active_courses(db, setup):
    offering = enrollment_pipeline.degree_offering(db, auth_for(setup["student"]), 3)
    assert offering.required_count == 5
    assert offering.window_open is True
    assert [course.code for course in offering.courses] == COURSES


def test_list_requests_returns_own_history_newest_first(db, setup):
    older = _draft(db, setup["student"], ["CS301"], year="2023-2024")
    newer = _draft(db, setup["student"], ["CS401"], semester=4)
    other = make_user(db, user_type="student", degree_id=setup["degree"].id)
    _draft(db, other, ["CS302"])

    history = enrollment_pipeline.list_requests(db, auth_for(setup["student"]))
    assert [row.id for row in history] == [newer.id, older.id]
    filtered = enrollment_pipeline.list_requests(db, auth_for(setup["student"]), "2023-2024")
    assert [row.id for row in filtered] == [older.id]
    with pytest.raises(Forbidden):
        enrollment_pipeline.list_requests(db, auth_for(setup["faculty"]))
