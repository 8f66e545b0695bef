import uuid

import pytest

from app import audit, eventlog
from app.errors import ValidationFailed
from app.services import program_lifecycle, timeline
from app.tests.conftest import auth_for, make_degree, make_user, utc


def test_empty_history_is_empty_list(db):
    response = timeline.build_timeline(db, "degree", uuid.uuid4())
    assert response.events == []


def test_unknown_entity_type_is_rejected(db):
    with pytest.raises(ValidationFailed):
        timeline.build_timeline(db, "department", uuid.uuid4())


def test_merges_streams_in_time_order_with_names(db):
    creator = make_user(db, first_name="Ada", last_name="Lovelace")
    hod = make_user(db, hod=True, first_name="Grace", last_name="Hopper")
    degree = make_degree(db, creator)

    program_lifecycle.submit(db, auth_for(creator), degree, note="First draft", now=utc(2025, 3, 1, 9))
    program_lifecycle.reject(db, auth_for(hod), degree, "Add elective options", now=utc(2025, 3, 2, 9))
    program_lifecycle.submit(db, auth_for(creator), degree, now=utc(2025, 3, 3, 9))
    program_lifecycle.approve(db, auth_for(hod), degree, now=utc(2025, 3, 4, 9))

    events = timeline.build_timeline(db, "degree", degree.id).events

    assert [(event.kind, event.action) for event in events] == [
        ("audit", "submit"),
        ("message", "message"),
        ("audit", "reject"),
        ("message", "message"),
        ("audit", "submit"),
        ("audit", "approve"),
        ("message", "message"),
    ]
    assert events[1].text == "First draft"
    assert events[3].text == "Change requested: Add elective options"
    assert events[0].actor.name == "Ada Lovelace"
    assert events[2].actor.name == "Grace Hopper"
    timestamps = [event.timestamp for event in events]
    assert timestamps == sorted(timestamps)


def test_equal_timestamps_keep_log_order(db):
    author = make_user(db)
    entity_id = uuid.uuid4()
    moment = utc(2025, 5, 1, 12)
    eventlog.record_message(db, "course", entity_id, author.id, "note one", now=moment)
    audit.record(db, "course", entity_id, "update", author.id, "first edit", now=moment)
    eventlog.record_message(db, "course", entity_id, author.id, "note two", now=moment)
    audit.record(db, "course", entity_id, "update", author.id, "second edit", now=moment)
    db.commit()

    events = timeline.build_timeline(db, "course", entity_id).events
    assert [event.text for event in events] == ["first edit", "second edit", "note one", "note two"]


def test_unknown_actor_keeps_id_without_name(db):
    entity_id = uuid.uuid4()
    ghost = uuid.uuid4()
    audit.record(db, "enrollment", entity_id, "save_draft", ghost, "Draft saved", now=utc(2025, 1, 1))
    db.commit()

    [event] = timeline.build_timeline(db, "enrollment", entity_id).events
    assert event.actor.id == ghost
    assert event.actor.name is None
