import smtplib

from app import notify
from app.config import get_settings
from app.services import program_lifecycle
from app.tests.conftest import auth_for, make_degree, make_user


def test_submit_notifies_department_heads(db):
    creator = make_user(db)
    hod = make_user(db, hod=True)
    degree = make_degree(db, creator)

    program_lifecycle.submit(db, auth_for(creator), degree)

    assert [entry[0] for entry in notify.EMAIL_OUTBOX] == [hod.email]
    assert "CS-BSC" in notify.EMAIL_OUTBOX[0][1]


def test_unknown_event_sends_nothing():
    notifier = notify.Notifier(get_settings())
    assert notifier.notify("program.unknown", {"recipients": ["a@example.edu"]}) == 0
    assert notify.EMAIL_OUTBOX == []


def test_missing_template_fields_are_tolerated():
    notifier = notify.Notifier(get_settings())
    assert notifier.notify("program.approved", {"recipients": ["a@example.edu"]}) == 0


def test_delivery_failures_do_not_raise(monkeypatch):
    def broken(*args, **kwargs):
        raise smtplib.SMTPException("relay down")

    monkeypatch.setattr(notify, "send_email", broken)
    notifier = notify.Notifier(get_settings())
    sent = notifier.notify(
        "enrollment.approved",
        {"recipients": ["a@example.edu", "b@example.edu"], "academic_year": "2025-2026", "semester": 3},
    )
    assert sent == 0


def test_failing_notifier_does_not_undo_transition(db):
    class ExplodingNotifier:
        def notify(self, event, payload):
            raise RuntimeError("transport unavailable")

    creator = make_user(db)
    make_user(db, hod=True)
    degree = make_degree(db, creator)

    program_lifecycle.submit(db, auth_for(creator), degree, notifier=ExplodingNotifier())
    db.refresh(degree)
    assert degree.status == "pending_approval"
