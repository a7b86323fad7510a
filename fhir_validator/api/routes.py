"""
FastAPI routes – the service's HTTP surface.

- Validation engine, profile registry and validator factory arrive via Depends
- Domain errors map to HTTP status codes here and nowhere else
- Every stored run is audited; submitted resources are stored encrypted
"""

from __future__ import annotations

import logging
from typing import Any, Callable
from uuid import UUID

from fastapi import APIRouter, Body, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.orm import Session

from fhir_validator.config import settings
from fhir_validator.models.database import get_db
from fhir_validator.models.validation import ValidationRun
from fhir_validator.pipeline.bulk import build_bulk_validation_pipeline
from fhir_validator.schemas.api import (
    AuditEntry,
    BatchResult,
    BatchValidationRequest,
    BatchValidationResponse,
    HealthResponse,
    ProfileSummary,
    ReportModel,
    RunResponse,
    TaskSummary,
    ValidationRequest,
    ValidationResponse,
)
from fhir_validator.services.audit import audit_trail, log_action
from fhir_validator.services.encryption import EncryptionService
from fhir_validator.services.profiles import ProfileRegistry, build_default_registry
from fhir_validator.services.validation import build_validator, validate_against_profile
from fhir_validator.validation.constraints import ConstraintSet
from fhir_validator.validation.engine import Validator
from fhir_validator.validation.errors import (
    MalformedRecordError,
    ProfileNotFoundError,
    ProfileParseError,
    ProfileSchemaMismatchError,
    RemoteValidationError,
)
from fhir_validator.validation.remote import RemoteValidator

logger = logging.getLogger(__name__)

router = APIRouter()

_registry: ProfileRegistry | None = None
_encryption: EncryptionService | None = None


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_registry() -> ProfileRegistry:
    global _registry
    if _registry is None:
        _registry = build_default_registry(settings.PROFILE_DIR)
    return _registry


def get_encryption() -> EncryptionService:
    global _encryption
    if _encryption is None:
        _encryption = EncryptionService(settings.PHI_ENCRYPTION_KEY or None)
    return _encryption


def get_validator_factory() -> Callable[[str], Validator]:
    return build_validator


def _lookup(registry: ProfileRegistry, url: str, version: str | None) -> ConstraintSet:
    try:
        return registry.get(url, version)
    except ProfileNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@router.get("/health", response_model=HealthResponse)
def health_check(
    db: Session = Depends(get_db),
    registry: ProfileRegistry = Depends(get_registry),
):
    """Basic health endpoint – verifies DB connectivity."""
    try:
        db.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception:
        logger.exception("Database health check failed")
        db_status = "disconnected"
    return HealthResponse(
        status="healthy",
        environment=settings.ENVIRONMENT,
        database=db_status,
        profiles=len(registry.all()),
    )


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------

@router.get("/profiles", response_model=list[ProfileSummary])
def list_profiles(registry: ProfileRegistry = Depends(get_registry)):
    return [ProfileSummary.from_constraint_set(c) for c in registry.all()]


@router.post("/profiles", response_model=ProfileSummary, status_code=201)
def register_profile(
    definition: dict[str, Any] = Body(...),
    registry: ProfileRegistry = Depends(get_registry),
):
    """Register a raw profile definition or a StructureDefinition."""
    try:
        constraint_set = registry.register_definition(definition)
    except ProfileParseError as exc:
        raise HTTPException(status_code=422, detail={"message": str(exc), "errors": exc.errors}) from exc
    return ProfileSummary.from_constraint_set(constraint_set)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

@router.post("/validate", response_model=ValidationResponse)
def validate_resource(
    request: ValidationRequest,
    db: Session = Depends(get_db),
    registry: ProfileRegistry = Depends(get_registry),
    encryption: EncryptionService = Depends(get_encryption),
    validator_factory: Callable[[str], Validator] = Depends(get_validator_factory),
):
    """Validate one resource against a registered profile and store the run."""
    constraint_set = _lookup(registry, request.profile_url, request.profile_version)

    try:
        validator = validator_factory(request.mode)
    except RemoteValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    try:
        report = validate_against_profile(request.resource, constraint_set, validator)
    except MalformedRecordError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except ProfileSchemaMismatchError as exc:
        raise HTTPException(
            status_code=409,
            detail={"message": str(exc), "constraintId": exc.constraint_id},
        ) from exc
    except RemoteValidationError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    finally:
        if isinstance(validator, RemoteValidator):
            validator.close()

    counts = report.counts()
    run = ValidationRun(
        resource_type=request.resource.get("resourceType") or constraint_set.resource_type,
        profile_url=constraint_set.url,
        profile_version=constraint_set.version,
        mode=request.mode,
        status="invalid" if report.has_errors else "valid",
        error_count=counts["error"],
        warning_count=counts["warning"],
        information_count=counts["information"],
        report=report.to_dict(),
        encrypted_resource=encryption.encrypt_resource(request.resource),
    )
    db.add(run)
    db.flush()
    log_action(db, actor="api_user", action="create", run=run, detail={"mode": request.mode})
    db.commit()

    return ValidationResponse(
        run_id=run.id,
        profile_url=constraint_set.url,
        profile_version=constraint_set.version,
        mode=request.mode,
        report=ReportModel.from_report(report),
    )


@router.post("/validate/batch", response_model=BatchValidationResponse)
def validate_batch(
    request: BatchValidationRequest,
    registry: ProfileRegistry = Depends(get_registry),
    validator_factory: Callable[[str], Validator] = Depends(get_validator_factory),
):
    """Run a batch of resources through the bulk validation pipeline."""
    constraint_set = _lookup(registry, request.profile_url, request.profile_version)

    pipeline = build_bulk_validation_pipeline()
    summary = pipeline.run(
        initial_context={
            "resources": request.resources,
            "constraint_set": constraint_set,
            "validator": validator_factory("local"),
        }
    )

    return BatchValidationResponse(
        pipeline=summary["pipeline"],
        status=summary["status"],
        tasks={name: TaskSummary(**info) for name, info in summary["tasks"].items()},
        record_counts=summary["record_counts"],
        issue_totals=pipeline.result("summarize").get("issue_totals", {}),
        results=[
            BatchResult(index=r["index"], report=ReportModel.from_report(r["report"]))
            for r in pipeline.result("validate").get("results", [])
        ],
        rejected=pipeline.result("parse").get("rejected", []),
        mismatched=pipeline.result("validate").get("mismatched", []),
    )


# ---------------------------------------------------------------------------
# Stored runs (audited)
# ---------------------------------------------------------------------------

def _get_run(db: Session, run_id: UUID) -> ValidationRun:
    run = db.get(ValidationRun, run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Validation run not found")
    return run


@router.get("/runs/{run_id}", response_model=RunResponse)
def get_run(
    run_id: UUID,
    include_resource: bool = False,
    db: Session = Depends(get_db),
    encryption: EncryptionService = Depends(get_encryption),
):
    """Retrieve a stored run; the resource is decrypted only on request."""
    run = _get_run(db, run_id)
    log_action(
        db,
        actor="api_user",
        action="read",
        run=run,
        detail={"include_resource": include_resource},
    )
    db.commit()

    return RunResponse(
        id=run.id,
        resource_type=run.resource_type,
        profile_url=run.profile_url,
        profile_version=run.profile_version,
        mode=run.mode,
        status=run.status,
        created_at=run.created_at,
        report=run.report,
        resource=encryption.decrypt_resource(run.encrypted_resource) if include_resource else None,
    )


@router.get("/runs/{run_id}/audit", response_model=list[AuditEntry])
def get_run_audit(run_id: UUID, db: Session = Depends(get_db)):
    run = _get_run(db, run_id)
    return [
        AuditEntry(actor=e.actor, action=e.action, timestamp=e.timestamp, detail=e.detail)
        for e in audit_trail(db, run.id)
    ]
