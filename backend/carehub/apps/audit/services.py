from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models, schemas

logger = logging.getLogger(__name__)


def create_audit_event(
    db: Session,
    *,
    company_id: str,
    data: schemas.AuditEventCreate,
) -> models.AuditEvent:
    event = models.AuditEvent(
        company_id=company_id,
        entity_type=data.entity_type,
        entity_id=data.entity_id,
        action=data.action,
        actor_person_id=data.actor_person_id,
        before=data.before,
        after=data.after,
        metadata_json=data.metadata,
    )
    if data.occurred_at is not None:
        event.occurred_at = data.occurred_at
    db.add(event)
    db.flush()
    return event


def log_event(
    db: Session,
    *,
    company_id: str,
    actor_person_id: Optional[str],
    entity_type: str,
    entity_id: str,
    action: str,
    before: Optional[dict] = None,
    after: Optional[dict] = None,
    metadata: Optional[dict] = None,
    critical: bool = False,
) -> Optional[models.AuditEvent]:
    """
    Best-effort audit event logger.
    - For critical actions, raise on failure.
    - For everything else, log a warning and continue.

    The insert runs in a savepoint so a failed audit write never poisons
    the caller's transaction.
    """
    try:
        with db.begin_nested():
            return create_audit_event(
                db,
                company_id=company_id,
                data=schemas.AuditEventCreate(
                    entity_type=entity_type,
                    entity_id=str(entity_id),
                    action=action,
                    actor_person_id=actor_person_id,
                    before=before,
                    after=after,
                    metadata=metadata,
                ),
            )
    except SQLAlchemyError:
        logger.warning(
            "Failed to log audit event",
            extra={
                "company_id": company_id,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "action": action,
                "critical": critical,
            },
        )
        if critical:
            raise
        return None
