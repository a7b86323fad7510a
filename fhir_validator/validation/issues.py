"""Validation findings and their aggregation into a report."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFORMATION = "information"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.ERROR: 0, Severity.WARNING: 1, Severity.INFORMATION: 2}


@dataclass(frozen=True)
class Issue:
    """A single finding, tied to the constraint and the location that produced it."""

    severity: Severity
    message: str
    constraint_id: str
    path: str

    def to_dict(self) -> dict[str, str]:
        return {
            "severity": self.severity.value,
            "message": self.message,
            "constraintId": self.constraint_id,
            "path": self.path,
        }


@dataclass(frozen=True)
class IssueReport:
    """Issues ordered by severity; within a severity, in evaluation order."""

    issues: tuple[Issue, ...] = ()

    def __iter__(self):
        return iter(self.issues)

    def __len__(self) -> int:
        return len(self.issues)

    @property
    def has_errors(self) -> bool:
        return any(issue.severity is Severity.ERROR for issue in self.issues)

    def counts(self) -> dict[str, int]:
        counter = Counter(issue.severity for issue in self.issues)
        return {severity.value: counter.get(severity, 0) for severity in Severity}

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": not self.has_errors,
            "counts": self.counts(),
            "issues": [issue.to_dict() for issue in self.issues],
        }

    def to_operation_outcome(self) -> dict[str, Any]:
        """Render as a FHIR R4 OperationOutcome resource."""
        if not self.issues:
            return {
                "resourceType": "OperationOutcome",
                "issue": [
                    {
                        "severity": "information",
                        "code": "informational",
                        "diagnostics": "All OK",
                    }
                ],
            }
        return {
            "resourceType": "OperationOutcome",
            "issue": [
                {
                    "severity": issue.severity.value,
                    "code": "invariant" if issue.severity is not Severity.INFORMATION else "informational",
                    "diagnostics": issue.message,
                    "expression": [issue.path],
                    "details": {"text": issue.constraint_id},
                }
                for issue in self.issues
            ],
        }


def aggregate(issues: Iterable[Issue]) -> IssueReport:
    """
    Build a report from issues in evaluation order.

    Exact duplicates are dropped; the same constraint failing at different
    paths is kept once per path. ``sorted`` is stable, so evaluation order
    survives within each severity tier.
    """
    seen: set[Issue] = set()
    unique = []
    for issue in issues:
        if issue in seen:
            continue
        seen.add(issue)
        unique.append(issue)
    return IssueReport(tuple(sorted(unique, key=lambda issue: issue.severity.rank)))
