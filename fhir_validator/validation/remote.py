"""
Remote validation through a FHIR server's ``$validate`` operation.

Interchangeable with ValidationEngine: same ``validate(record,
constraint_set)`` contract, same IssueReport out. Only the profile URL is
sent; the server applies its own copy of the profile.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from fhir_validator.validation.constraints import ConstraintSet
from fhir_validator.validation.errors import RemoteValidationError
from fhir_validator.validation.issues import Issue, IssueReport, Severity, aggregate
from fhir_validator.validation.record import Record

logger = logging.getLogger(__name__)

_SEVERITY = {
    "fatal": Severity.ERROR,
    "error": Severity.ERROR,
    "warning": Severity.WARNING,
    "information": Severity.INFORMATION,
}


class RemoteValidator:
    """Delegates validation to ``{base_url}/{resourceType}/$validate``."""

    def __init__(
        self,
        base_url: str,
        client: httpx.Client | None = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout)

    def validate(self, record: Record, constraint_set: ConstraintSet) -> IssueReport:
        url = f"{self.base_url}/{record.resource_type}/$validate"
        profile = constraint_set.url
        if constraint_set.version:
            profile = f"{profile}|{constraint_set.version}"
        logger.info("Remote $validate of %s against %s", record.resource_type, profile)

        try:
            response = self._client.post(
                url,
                params={"profile": profile},
                json=record.to_python(),
                headers={"Accept": "application/fhir+json", "Content-Type": "application/fhir+json"},
            )
        except httpx.HTTPError as exc:
            raise RemoteValidationError(f"$validate request to {url} failed: {exc}") from exc

        try:
            outcome = response.json()
        except ValueError as exc:
            raise RemoteValidationError(
                f"$validate returned HTTP {response.status_code} with a non-JSON body"
            ) from exc
        if not isinstance(outcome, dict) or outcome.get("resourceType") != "OperationOutcome":
            raise RemoteValidationError(
                f"$validate returned HTTP {response.status_code} without an OperationOutcome"
            )
        entries = outcome.get("issue") or []
        if not isinstance(entries, list) or not all(isinstance(entry, dict) for entry in entries):
            raise RemoteValidationError(
                f"$validate returned HTTP {response.status_code} with malformed OperationOutcome issues"
            )
        return aggregate(_issue(entry) for entry in entries)

    def close(self) -> None:
        self._client.close()


def _issue(entry: dict[str, Any]) -> Issue:
    locations = entry.get("expression") or entry.get("location") or []
    details = (entry.get("details") or {}).get("text")
    return Issue(
        severity=_SEVERITY.get(entry.get("severity"), Severity.ERROR),
        message=entry.get("diagnostics") or details or entry.get("code", "unknown"),
        constraint_id=f"remote:{entry.get('code', 'unknown')}",
        path=locations[0] if locations else "",
    )
