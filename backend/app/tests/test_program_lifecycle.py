import pytest

from app import audit, models, notify
from app.errors import Forbidden, InvalidTransition, ValidationFailed
from app.services import program_lifecycle, version_family
from app.tests.conftest import auth_for, make_degree, make_user


@pytest.fixture
def people(db):
    return {
        "creator": make_user(db, first_name="Ada"),
        "hod": make_user(db, hod=True, first_name="Grace", email="hod-cs@example.edu"),
        "other_hod": make_user(db, department_code="EE", hod=True),
        "stranger": make_user(db),
        "admin": make_user(db, user_type="admin", department_code=None),
    }


def _pending(db, people, **kwargs):
    degree = make_degree(db, people["creator"], **kwargs)
    return program_lifecycle.submit(db, auth_for(people["creator"]), degree)


def test_submit_moves_draft_to_pending_and_notifies_hod(db, people):
    degree = make_degree(db, people["creator"])
    program_lifecycle.submit(db, auth_for(people["creator"]), degree, note="Ready for review")

    db.refresh(degree)
    assert degree.status == "pending_approval"
    assert degree.submitted_at is not None
    assert degree.rejection_reason is None
    actions = [row.action for row in db.query(models.AuditLog).filter_by(entity_id=degree.id)]
    assert actions == ["submit"]
    message = db.query(models.Message).filter_by(entity_id=degree.id).one()
    assert message.body == "Ready for review"
    assert any(to == "hod-cs@example.edu" for to, _, _ in notify.EMAIL_OUTBOX)


def test_submit_requires_author(db, people):
    degree = make_degree(db, people["creator"])
    with pytest.raises(Forbidden):
        program_lifecycle.submit(db, auth_for(people["stranger"]), degree)
    db.refresh(degree)
    assert degree.status == "draft"


def test_admin_can_submit(db, people):
    degree = make_degree(db, people["creator"])
    program_lifecycle.submit(db, auth_for(people["admin"]), degree)
    assert degree.status == "pending_approval"


def test_submit_twice_is_invalid_transition(db, people):
    degree = _pending(db, people)
    with pytest.raises(InvalidTransition) as excinfo:
        program_lifecycle.submit(db, auth_for(people["creator"]), degree)
    assert excinfo.value.context["current_status"] == "pending_approval"


def test_approve_by_matching_hod(db, people):
    degree = _pending(db, people)
    program_lifecycle.approve(db, auth_for(people["hod"]), degree)

    db.refresh(degree)
    assert degree.status == "approved"
    assert degree.approved_by == people["hod"].id
    assert degree.approved_at is not None
    bodies = [row.body for row in db.query(models.Message).filter_by(entity_id=degree.id)]
    assert bodies == ["Approved by HOD"]


def test_second_approve_fails_invalid_transition(db, people):
    degree = _pending(db, people)
    program_lifecycle.approve(db, auth_for(people["hod"]), degree)
    with pytest.raises(InvalidTransition) as excinfo:
        program_lifecycle.approve(db, auth_for(people["hod"]), degree)
    assert excinfo.value.context == {"current_status": "approved", "required_status": "pending_approval"}


@pytest.mark.parametrize("actor", ["other_hod", "stranger", "creator", "admin"])
def test_approve_requires_hod_of_department(db, people, actor):
    degree = _pending(db, people)
    with pytest.raises(Forbidden):
        program_lifecycle.approve(db, auth_for(people[actor]), degree)
    db.refresh(degree)
    assert degree.status == "pending_approval"


@pytest.mark.parametrize("reason", ["", "too short", "x" * 501, "   short    "])
def test_reject_validates_reason_length(db, people, reason):
    degree = _pending(db, people)
    with pytest.raises(ValidationFailed) as excinfo:
        program_lifecycle.reject(db, auth_for(people["hod"]), degree, reason)
    assert excinfo.value.context["min_length"] == 10
    assert excinfo.value.context["max_length"] == 500


def test_reject_returns_to_draft_with_reason(db, people):
    degree = _pending(db, people)
    program_lifecycle.reject(db, auth_for(people["hod"]), degree, "  Please add learning outcomes  ")

    db.refresh(degree)
    assert degree.status == "draft"
    assert degree.rejection_reason == "Please add learning outcomes"
    assert degree.submitted_at is None
    assert degree.approved_by is None
    assert degree.approved_at is None
    message = db.query(models.Message).filter_by(entity_id=degree.id).one()
    assert message.body == "Change requested: Please add learning outcomes"


def test_reject_submit_round_trip_clears_reason(db, people):
    degree = _pending(db, people)
    for cycle in range(3):
        program_lifecycle.reject(db, auth_for(people["hod"]), degree, f"Revision round {cycle} needed")
        assert degree.status == "draft"
        program_lifecycle.submit(db, auth_for(people["creator"]), degree)

    db.refresh(degree)
    assert degree.status == "pending_approval"
    assert degree.rejection_reason is None


def test_publish_requires_approved(db, people):
    degree = make_degree(db, people["creator"])
    with pytest.raises(InvalidTransition) as excinfo:
        program_lifecycle.publish(db, auth_for(people["creator"]), degree)
    assert "submitted and approved" in excinfo.value.detail


def test_publish_forbidden_outside_department(db, people):
    degree = _pending(db, people)
    program_lifecycle.approve(db, auth_for(people["hod"]), degree)
    outsider = make_user(db, department_code="EE")
    with pytest.raises(Forbidden):
        program_lifecycle.publish(db, auth_for(outsider), degree)


def test_publish_archives_previous_active_version(db, people):
    v1 = make_degree(db, people["creator"], status="active")
    v2 = version_family.create_version(db, auth_for(people["creator"]), v1)
    program_lifecycle.submit(db, auth_for(people["creator"]), v2)
    program_lifecycle.approve(db, auth_for(people["hod"]), v2)

    program_lifecycle.publish(db, auth_for(people["stranger"]), v2)

    db.refresh(v1)
    db.refresh(v2)
    assert v2.status == "active"
    assert v1.status == "archived"
    assert (v1.code, v1.version) == ("CS-BSC", 1)
    family = db.query(models.Degree).filter(models.Degree.code == "CS-BSC").all()
    assert sum(member.status == "active" for member in family) == 1
    assert [row.action for row in db.query(models.AuditLog).filter_by(entity_id=v1.id)] == ["archive"]


def test_notifier_failure_keeps_transition(db, people):
    class ExplodingNotifier:
        def notify(self, event, payload):
            raise RuntimeError("smtp down")

    degree = make_degree(db, people["creator"])
    program_lifecycle.submit(db, auth_for(people["creator"]), degree, notifier=ExplodingNotifier())
    db.refresh(degree)
    assert degree.status == "pending_approval"


def test_failed_publish_leaves_previous_version_active(db, people, monkeypatch):
    v1 = make_degree(db, people["creator"], status="active")
    v2 = version_family.create_version(db, auth_for(people["creator"]), v1)
    program_lifecycle.submit(db, auth_for(people["creator"]), v2)
    program_lifecycle.approve(db, auth_for(people["hod"]), v2)

    real_record = audit.record

    def failing_record(db, entity_type, entity_id, action, *args, **kwargs):
        if action == "publish":
            raise RuntimeError("ledger unavailable")
        return real_record(db, entity_type, entity_id, action, *args, **kwargs)

    monkeypatch.setattr(audit, "record", failing_record)
    with pytest.raises(RuntimeError):
        program_lifecycle.publish(db, auth_for(people["creator"]), v2)

    db.refresh(v1)
    db.refresh(v2)
    assert v1.status == "active"
    assert v2.status == "approved"
    assert db.query(models.AuditLog).filter_by(entity_id=v1.id, action="archive").count() == 0
