"""
Local validation engine.

Evaluates every constraint of a profile against a record and returns the
aggregated issue report. Constraints are independent of each other, so they
may be spread over a thread pool; results are gathered back in load order
before aggregation, which keeps the report identical to a sequential run.
"""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Any, Callable, Protocol

from fhir_validator.validation.constraints import Constraint, ConstraintKind, ConstraintSet
from fhir_validator.validation.errors import InvalidPathError, ProfileSchemaMismatchError
from fhir_validator.validation.fhirpath import EvaluationError
from fhir_validator.validation.issues import Issue, IssueReport, aggregate
from fhir_validator.validation.record import Record, RecordNode

logger = logging.getLogger(__name__)


class Validator(Protocol):
    """Anything that can turn a record and a profile into an issue report."""

    def validate(self, record: Record, constraint_set: ConstraintSet) -> IssueReport:
        ...


# ---------------------------------------------------------------------------
# FHIR primitive lexical rules
# ---------------------------------------------------------------------------

_YEAR = r"([0-9]([0-9]([0-9][1-9]|[1-9]0)|[1-9]00)|[1-9]000)"
_MONTH = r"(0[1-9]|1[0-2])"
_DAY = r"(0[1-9]|[1-2][0-9]|3[0-1])"
_TIME = r"([01][0-9]|2[0-3]):[0-5][0-9]:([0-5][0-9]|60)(\.[0-9]+)?"
_ZONE = r"(Z|(\+|-)((0[0-9]|1[0-3]):[0-5][0-9]|14:00))"

_PATTERNS = {
    "date": re.compile(rf"{_YEAR}(-{_MONTH}(-{_DAY})?)?"),
    "dateTime": re.compile(rf"{_YEAR}(-{_MONTH}(-{_DAY}(T{_TIME}{_ZONE})?)?)?"),
    "instant": re.compile(rf"{_YEAR}-{_MONTH}-{_DAY}T{_TIME}{_ZONE}"),
    "time": re.compile(_TIME),
    "code": re.compile(r"[^\s]+( [^\s]+)*"),
    "id": re.compile(r"[A-Za-z0-9\-\.]{1,64}"),
    "uri": re.compile(r"\S*"),
    "url": re.compile(r"\S*"),
    "canonical": re.compile(r"\S*"),
}


def _is_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


_PRIMITIVE_RULES: dict[str, Callable[[Any], bool]] = {
    "boolean": lambda v: isinstance(v, bool),
    "integer": _is_integer,
    "positiveInt": lambda v: _is_integer(v) and v > 0,
    "unsignedInt": lambda v: _is_integer(v) and v >= 0,
    "decimal": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "string": lambda v: isinstance(v, str) and v != "",
    "markdown": lambda v: isinstance(v, str) and v != "",
    "xhtml": lambda v: isinstance(v, str) and v.lstrip().startswith("<div"),
}


def conforms_to_primitive(type_name: str, value: Any) -> bool:
    """Whether ``value`` is a lexically valid FHIR ``type_name``."""
    if type_name in _PATTERNS:
        return isinstance(value, str) and _PATTERNS[type_name].fullmatch(value) is not None
    rule = _PRIMITIVE_RULES.get(type_name)
    return rule(value) if rule else False


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class ValidationEngine:
    """
    Evaluates constraint sets locally.

    Usage:
        engine = ValidationEngine()
        report = engine.validate(Record.from_dict(resource), constraint_set)
    """

    def __init__(self, max_workers: int = 1):
        self.max_workers = max(1, max_workers)
        self._checks: dict[ConstraintKind, Callable[[Constraint, list[RecordNode], Record], list[Issue]]] = {
            ConstraintKind.REQUIRED: self._check_required,
            ConstraintKind.CARDINALITY: self._check_cardinality,
            ConstraintKind.TYPE: self._check_type,
            ConstraintKind.VALUE_SET: self._check_value_set,
            ConstraintKind.INVARIANT: self._check_invariant,
        }

    def validate(self, record: Record, constraint_set: ConstraintSet) -> IssueReport:
        """
        Validate ``record`` against every constraint in ``constraint_set``.

        Raises ProfileSchemaMismatchError if the profile targets another
        resource type or any constraint addresses a field the record's
        resource type does not have; every other failure is reported as an
        issue.
        """
        constraints = constraint_set.constraints
        expected = constraint_set.resource_type
        if expected and expected != record.resource_type:
            constraint_id = constraints[0].id if constraints else constraint_set.url
            cause = InvalidPathError(expected, expected, record.resource_type)
            logger.error(
                "Profile %s targets %s, not %s", constraint_set.url, expected, record.resource_type
            )
            raise ProfileSchemaMismatchError(constraint_id, cause)

        evaluate = partial(self._evaluate, record)
        if self.max_workers > 1 and len(constraints) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                results = list(pool.map(evaluate, constraints))
        else:
            results = [evaluate(constraint) for constraint in constraints]

        report = aggregate(issue for issues in results for issue in issues)
        logger.info(
            "Validated %s against %s|%s: %s",
            record.resource_type,
            constraint_set.url,
            constraint_set.version,
            report.counts(),
        )
        return report

    def _evaluate(self, record: Record, constraint: Constraint) -> list[Issue]:
        try:
            nodes = record.resolve(constraint.path)
            return self._checks[constraint.kind](constraint, nodes, record)
        except InvalidPathError as exc:
            logger.error("Constraint '%s' does not apply to %s: %s", constraint.id, record.resource_type, exc)
            raise ProfileSchemaMismatchError(constraint.id, exc) from exc

    # -- kind-specific checks ---------------------------------------------

    @staticmethod
    def _issue(constraint: Constraint, path: str, default_message: str) -> Issue:
        return Issue(
            severity=constraint.severity,
            message=constraint.message or default_message,
            constraint_id=constraint.id,
            path=path,
        )

    @staticmethod
    def _location(node: RecordNode, record: Record) -> str:
        return node.path or record.resource_type

    def _check_required(self, constraint, nodes, record):
        if nodes:
            return []
        path = constraint.path.text or record.resource_type
        return [self._issue(constraint, path, f"Element '{path}' is required but was not found")]

    def _check_cardinality(self, constraint, nodes, record):
        count = len(nodes)
        too_few = count < constraint.min
        too_many = constraint.max is not None and count > constraint.max
        if not (too_few or too_many):
            return []
        path = constraint.path.text or record.resource_type
        upper = "*" if constraint.max is None else constraint.max
        return [
            self._issue(
                constraint,
                path,
                f"Element '{path}' occurs {count} time(s); expected {constraint.min}..{upper}",
            )
        ]

    def _check_type(self, constraint, nodes, record):
        issues = []
        expected = constraint.type_name
        for node in nodes:
            if node.is_primitive:
                if conforms_to_primitive(expected, node.value):
                    continue
                message = f"Value {node.value!r} at '{node.path}' is not a valid {expected}"
            else:
                if node.type_name == expected:
                    continue
                message = f"Element at '{self._location(node, record)}' is a {node.type_name}, expected {expected}"
            issues.append(self._issue(constraint, self._location(node, record), message))
        return issues

    def _check_value_set(self, constraint, nodes, record):
        issues = []
        bound_to = constraint.value_set_url or "{" + ", ".join(
            sorted(member.code for member in constraint.value_set)
        ) + "}"
        for node in nodes:
            location = self._location(node, record)
            codes = _codes_of(node)
            if codes is None:
                issues.append(
                    self._issue(
                        constraint,
                        location,
                        f"Element at '{location}' of type {node.type_name} cannot be bound to a value set",
                    )
                )
                continue
            if any(constraint.allows(code, system) for code, system in codes):
                continue
            shown = ", ".join(repr(code) for code, _ in codes) or "no code"
            issues.append(
                self._issue(
                    constraint,
                    location,
                    f"Value {shown} at '{location}' is not in the value set {bound_to}",
                )
            )
        return issues

    def _check_invariant(self, constraint, nodes, record):
        constraint.expression.check_members(
            record.schema,
            record.resolver.type_of(constraint.path, record.resource_type),
            record.resource_type,
            constraint.path.text,
        )
        issues = []
        label = constraint.human or constraint.expression.text
        for node in nodes:
            location = self._location(node, record)
            try:
                outcome = constraint.expression.check(node, record)
            except EvaluationError as exc:
                issues.append(
                    self._issue(
                        constraint,
                        location,
                        f"Constraint {constraint.id} could not be evaluated: {exc}",
                    )
                )
                continue
            if outcome is False:
                issues.append(
                    self._issue(constraint, location, f"Constraint failed: {constraint.id}: {label}")
                )
        return issues


def _codes_of(node: RecordNode) -> list[tuple[Any, str | None]] | None:
    """(code, system) pairs carried by a node, or None if it cannot hold codes."""
    if node.is_primitive:
        return [(node.value, None)]
    if node.type_name == "Coding":
        return _coding(node)
    if node.type_name == "CodeableConcept":
        codings = node.child("coding")
        if codings is None:
            return []
        return [pair for coding in codings.children for pair in _coding(coding)]
    return None


def _coding(node: RecordNode) -> list[tuple[Any, str | None]]:
    code = node.child("code")
    if code is None:
        return []
    system = node.child("system")
    return [(code.value, system.value if system else None)]
