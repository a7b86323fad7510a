"""
Validation service.

Demonstrates:
- Profile-driven validation of FHIR resources
- Collecting all findings rather than failing on the first one
- Local and remote validators behind one interface
"""

from __future__ import annotations

from typing import Any

from fhir_validator.config import settings
from fhir_validator.validation.constraints import ConstraintSet
from fhir_validator.validation.engine import ValidationEngine, Validator
from fhir_validator.validation.errors import RemoteValidationError
from fhir_validator.validation.issues import IssueReport
from fhir_validator.validation.record import Record
from fhir_validator.validation.remote import RemoteValidator


def validate_against_profile(
    resource: dict[str, Any],
    constraint_set: ConstraintSet,
    validator: Validator | None = None,
) -> IssueReport:
    """
    Validate a raw resource against a compiled profile.
    Returns the issue report (no error-severity issues = valid).
    """
    record = Record.from_dict(resource, resource_type=constraint_set.resource_type)
    validator = validator or ValidationEngine(max_workers=settings.VALIDATION_WORKERS)
    return validator.validate(record, constraint_set)


def build_validator(mode: str = "local") -> Validator:
    """Validator for the requested mode, configured from settings."""
    if mode == "remote":
        if not settings.REMOTE_VALIDATION_URL:
            raise RemoteValidationError("Remote validation is not configured (REMOTE_VALIDATION_URL)")
        return RemoteValidator(settings.REMOTE_VALIDATION_URL, timeout=settings.REMOTE_TIMEOUT)
    return ValidationEngine(max_workers=settings.VALIDATION_WORKERS)
