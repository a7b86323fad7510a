"""Audit trail for validation runs: who submitted or read which run, and when."""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from fhir_validator.models.validation import AuditLog, ValidationRun

logger = logging.getLogger(__name__)

RUN_RESOURCE = "ValidationRun"


def log_action(
    db: Session,
    *,
    actor: str,
    action: str,
    run: ValidationRun,
    detail: dict[str, Any] | None = None,
) -> AuditLog:
    """Write an immutable audit entry for an action on ``run``."""
    entry = AuditLog(
        actor=actor,
        action=action,
        resource_type=RUN_RESOURCE,
        resource_id=run.id,
        detail={
            "profile": run.profile_url,
            "subject": run.resource_type,
            "status": run.status,
            **(detail or {}),
        },
    )
    db.add(entry)
    db.flush()
    logger.info("AUDIT: %s %s %s/%s", actor, action, RUN_RESOURCE, run.id)
    return entry


def audit_trail(db: Session, run_id: UUID) -> list[AuditLog]:
    """Entries for one run, oldest first."""
    statement = (
        select(AuditLog)
        .where(AuditLog.resource_type == RUN_RESOURCE, AuditLog.resource_id == run_id)
        .order_by(AuditLog.timestamp, AuditLog.id)
    )
    return list(db.scalars(statement))
