"""
Persistence for validation runs.

- The submitted resource is PHI and only stored encrypted
- Reports are stored as JSON so a run can be re-read without re-validating
- Audit trail for every create and read
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, Text, Uuid

from fhir_validator.models.database import Base


def _now():
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Validation Run – one validate call, local or remote
# ---------------------------------------------------------------------------
class ValidationRun(Base):
    __tablename__ = "validation_runs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    resource_type = Column(String(64), nullable=False, comment="FHIR resource type, e.g. Patient")
    profile_url = Column(String(512), nullable=False)
    profile_version = Column(String(64), nullable=True)
    mode = Column(String(16), nullable=False, default="local", comment="local | remote")
    status = Column(String(16), nullable=False, comment="valid | invalid")
    error_count = Column(Integer, nullable=False, default=0)
    warning_count = Column(Integer, nullable=False, default=0)
    information_count = Column(Integer, nullable=False, default=0)
    report = Column(JSON, nullable=False, comment="Serialized issue report")
    encrypted_resource = Column(Text, nullable=False, comment="Fernet-encrypted resource JSON")
    created_at = Column(DateTime, default=_now, nullable=False)

    __table_args__ = (
        Index("ix_validation_runs_profile", "profile_url"),
        Index("ix_validation_runs_created", "created_at"),
    )


# ---------------------------------------------------------------------------
# Audit Log – immutable compliance trail
# ---------------------------------------------------------------------------
class AuditLog(Base):
    __tablename__ = "audit_log"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    actor = Column(String(128), nullable=False, comment="User or service identity")
    action = Column(String(64), nullable=False, comment="create | read")
    resource_type = Column(String(64), nullable=False)
    resource_id = Column(Uuid, nullable=False)
    detail = Column(JSON, comment="Context for the action")
    timestamp = Column(DateTime, default=_now, nullable=False)

    __table_args__ = (Index("ix_audit_timestamp", "timestamp"),)
