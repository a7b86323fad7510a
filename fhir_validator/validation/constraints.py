"""
Profile constraint sets.

A raw profile definition (see ``schemas.profiles``) is checked against its
JSON Schema, then every constraint is compiled: paths are parsed, type names
and value-set bindings resolved, invariant expressions compiled. Loading
reports every problem it finds, not just the first one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Mapping, Sequence

import jsonschema

from fhir_validator.schemas.fhir import VALUE_SETS
from fhir_validator.schemas.profiles import PROFILE_DEFINITION_SCHEMA
from fhir_validator.validation.errors import ProfileParseError
from fhir_validator.validation.fhirpath import Expression, compile_expression
from fhir_validator.validation.issues import Severity
from fhir_validator.validation.paths import PathExpression, parse_path
from fhir_validator.validation.schema import DEFAULT_SCHEMA, ResourceSchema

logger = logging.getLogger(__name__)

_definition_validator = jsonschema.Draft7Validator(PROFILE_DEFINITION_SCHEMA)


class ConstraintKind(str, Enum):
    REQUIRED = "required"
    CARDINALITY = "cardinality"
    TYPE = "type"
    VALUE_SET = "valueSet"
    INVARIANT = "invariant"


@dataclass(frozen=True)
class ValueSetMember:
    code: str
    system: str | None = None


@dataclass(frozen=True)
class Constraint:
    """A single checkable rule attached to a path."""

    id: str
    path: PathExpression
    kind: ConstraintKind
    severity: Severity = Severity.ERROR
    message: str | None = None
    min: int | None = None
    max: int | None = None  # None means unbounded
    type_name: str | None = None
    value_set: frozenset[ValueSetMember] = field(default_factory=frozenset)
    value_set_url: str | None = None
    expression: Expression | None = None
    human: str | None = None

    def allows(self, code: Any, system: str | None = None) -> bool:
        """Whether a code (and optionally its system) is in the bound value set."""
        for member in self.value_set:
            if member.code != code:
                continue
            if member.system is None or system is None or member.system == system:
                return True
        return False


@dataclass(frozen=True)
class ConstraintSet:
    """The compiled, immutable form of one profile version."""

    url: str
    version: str | None
    constraints: tuple[Constraint, ...]
    name: str | None = None
    resource_type: str | None = None

    def __iter__(self) -> Iterator[Constraint]:
        return iter(self.constraints)

    def __len__(self) -> int:
        return len(self.constraints)

    @property
    def key(self) -> tuple[str, str | None]:
        return (self.url, self.version)

    @classmethod
    def load(
        cls,
        raw: Any,
        value_sets: Mapping[str, Sequence[Any]] | None = None,
        schema: ResourceSchema | None = None,
    ) -> ConstraintSet:
        return load_constraint_set(raw, value_sets=value_sets, schema=schema)


def load_constraint_set(
    raw: Any,
    value_sets: Mapping[str, Sequence[Any]] | None = None,
    schema: ResourceSchema | None = None,
) -> ConstraintSet:
    """
    Compile a raw profile definition.

    ``value_sets`` maps canonical URLs to code lists for ``valueSetUrl``
    bindings; it defaults to the built-in FHIR value sets.
    Raises ProfileParseError carrying every problem found.
    """
    if not isinstance(raw, dict):
        raise ProfileParseError("Profile definition must be a JSON object")

    errors = [_format_schema_error(error) for error in _definition_validator.iter_errors(raw)]
    if errors:
        raise ProfileParseError(f"Invalid profile definition ({len(errors)} errors)", errors)

    schema = schema or DEFAULT_SCHEMA
    value_sets = VALUE_SETS if value_sets is None else value_sets

    problems: list[str] = []
    resource_type = raw.get("resourceType")
    if resource_type and not schema.is_resource(resource_type):
        problems.append(f"resourceType: unknown resource type '{resource_type}'")

    constraints: list[Constraint] = []
    seen_ids: set[str] = set()
    for index, entry in enumerate(raw["constraints"]):
        try:
            constraint = _compile_constraint(entry, value_sets, schema)
        except ValueError as exc:
            problems.append(f"constraints/{index}: {exc}")
            continue
        if constraint.id in seen_ids:
            problems.append(f"constraints/{index}: duplicate constraint id '{constraint.id}'")
            continue
        seen_ids.add(constraint.id)
        constraints.append(constraint)

    if problems:
        raise ProfileParseError(
            f"Invalid profile definition {raw['url']} ({len(problems)} errors)", problems
        )

    constraint_set = ConstraintSet(
        url=raw["url"],
        version=raw.get("version"),
        constraints=tuple(constraints),
        name=raw.get("name"),
        resource_type=resource_type,
    )
    logger.info(
        "Loaded profile %s|%s with %d constraints",
        constraint_set.url,
        constraint_set.version,
        len(constraint_set),
    )
    return constraint_set


def _format_schema_error(error: jsonschema.ValidationError) -> str:
    location = "/".join(str(part) for part in error.absolute_path)
    return f"{location}: {error.message}" if location else error.message


def _compile_constraint(
    entry: dict[str, Any],
    value_sets: Mapping[str, Sequence[Any]],
    schema: ResourceSchema,
) -> Constraint:
    kind = ConstraintKind(entry["kind"])
    path = parse_path(entry["path"])
    options: dict[str, Any] = {}

    if kind is ConstraintKind.CARDINALITY:
        minimum = entry.get("min", 0)
        maximum = entry.get("max", "*")
        maximum = None if maximum == "*" else maximum
        if maximum is not None and minimum > maximum:
            raise ValueError(f"min ({minimum}) is greater than max ({maximum})")
        options.update(min=minimum, max=maximum)

    elif kind is ConstraintKind.TYPE:
        if not schema.knows_type(entry["type"]):
            raise ValueError(f"unknown type '{entry['type']}'")
        options["type_name"] = entry["type"]

    elif kind is ConstraintKind.VALUE_SET:
        url = entry.get("valueSetUrl")
        if url:
            canonical = url.split("|", 1)[0]
            if canonical not in value_sets:
                raise ValueError(f"unknown value set '{url}'")
            members = value_sets[canonical]
            options["value_set_url"] = canonical
        else:
            members = entry["valueSet"]
        options["value_set"] = frozenset(_member(item) for item in members)

    elif kind is ConstraintKind.INVARIANT:
        options["expression"] = compile_expression(entry["expression"])
        options["human"] = entry.get("human")

    return Constraint(
        id=entry.get("id") or f"{kind.value}:{path}",
        path=path,
        kind=kind,
        severity=Severity(entry.get("severity", "error")),
        message=entry.get("message"),
        **options,
    )


def _member(item: Any) -> ValueSetMember:
    if isinstance(item, ValueSetMember):
        return item
    if isinstance(item, dict):
        return ValueSetMember(code=item["code"], system=item.get("system"))
    return ValueSetMember(code=item)
