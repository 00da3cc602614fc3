from __future__ import annotations

import logging

import pytest
from sqlalchemy.exc import SQLAlchemyError

from carehub.apps.audit import models, services


def test_log_event_records_snapshot(db_session, org):
    company = org.company()
    actor = org.person("Ada")

    event = services.log_event(
        db_session,
        company_id=company.id,
        actor_person_id=actor.id,
        entity_type="training_course",
        entity_id="course-1",
        action="course_create",
        after={"name": "Fire Safety"},
        metadata={"module": "training"},
    )
    db_session.commit()

    assert event is not None
    stored = db_session.get(models.AuditEvent, event.id)
    assert stored.after == {"name": "Fire Safety"}
    assert stored.metadata_json == {"module": "training"}
    assert stored.actor_person_id == actor.id
    assert stored.company_id == company.id


def test_failed_audit_write_does_not_break_caller(db_session, org, caplog):
    company = org.company()

    with caplog.at_level(logging.WARNING, logger="carehub.apps.audit.services"):
        event = services.log_event(
            db_session,
            company_id=None,
            actor_person_id=None,
            entity_type="training_record",
            entity_id="r1",
            action="record_create",
        )
    db_session.commit()

    assert event is None
    assert "Failed to log audit event" in caplog.text
    assert db_session.query(models.AuditEvent).count() == 0
    assert company.id is not None


def test_critical_audit_failure_is_raised(db_session, org):
    org.company()

    with pytest.raises(SQLAlchemyError):
        services.log_event(
            db_session,
            company_id=None,
            actor_person_id=None,
            entity_type="training_record",
            entity_id="r1",
            action="record_delete",
            critical=True,
        )
