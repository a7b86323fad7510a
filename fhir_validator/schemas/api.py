"""Pydantic models for API request/response serialization."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from fhir_validator.validation.constraints import ConstraintSet
from fhir_validator.validation.issues import IssueReport


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------

class ProfileSummary(_CamelModel):
    url: str
    version: str | None = None
    name: str | None = None
    resource_type: str | None = Field(None, alias="resourceType")
    constraint_count: int = Field(..., alias="constraintCount")

    @classmethod
    def from_constraint_set(cls, constraint_set: ConstraintSet) -> ProfileSummary:
        return cls(
            url=constraint_set.url,
            version=constraint_set.version,
            name=constraint_set.name,
            resource_type=constraint_set.resource_type,
            constraint_count=len(constraint_set),
        )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class ValidationRequest(_CamelModel):
    """One resource to check against a registered profile."""
    resource: dict[str, Any]
    profile_url: str = Field(..., alias="profileUrl", min_length=1)
    profile_version: str | None = Field(None, alias="profileVersion")
    mode: Literal["local", "remote"] = "local"


class IssueModel(_CamelModel):
    severity: str
    message: str
    constraint_id: str = Field(..., alias="constraintId")
    path: str


class ReportModel(BaseModel):
    valid: bool
    counts: dict[str, int]
    issues: list[IssueModel]

    @classmethod
    def from_report(cls, report: IssueReport) -> ReportModel:
        return cls.model_validate(report.to_dict())


class ValidationResponse(_CamelModel):
    run_id: UUID = Field(..., alias="runId")
    profile_url: str = Field(..., alias="profileUrl")
    profile_version: str | None = Field(None, alias="profileVersion")
    mode: str
    report: ReportModel


class BatchValidationRequest(_CamelModel):
    """Batch of resources to validate against one profile."""
    resources: list[dict[str, Any]] = Field(..., min_length=1, max_length=1000)
    profile_url: str = Field(..., alias="profileUrl", min_length=1)
    profile_version: str | None = Field(None, alias="profileVersion")


class TaskSummary(BaseModel):
    status: str
    duration_ms: float | None = None
    error: str | None = None


class BatchResult(BaseModel):
    index: int
    report: ReportModel


class BatchValidationResponse(BaseModel):
    pipeline: str
    status: str
    tasks: dict[str, TaskSummary]
    record_counts: dict[str, int] = {}
    issue_totals: dict[str, int] = {}
    results: list[BatchResult] = []
    rejected: list[dict[str, Any]] = []
    mismatched: list[dict[str, Any]] = []


# ---------------------------------------------------------------------------
# Stored runs
# ---------------------------------------------------------------------------

class RunResponse(BaseModel):
    id: UUID
    resource_type: str
    profile_url: str
    profile_version: str | None
    mode: str
    status: str
    created_at: datetime
    report: dict[str, Any]
    resource: dict[str, Any] | None = None


class AuditEntry(BaseModel):
    actor: str
    action: str
    timestamp: datetime
    detail: dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

class HealthResponse(BaseModel):
    status: str = "healthy"
    environment: str
    database: str = "connected"
    profiles: int = 0
