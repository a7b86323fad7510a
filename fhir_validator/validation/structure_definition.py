"""
Import FHIR StructureDefinition resources as constraint sets.

Only what the engine can check is carried over: element cardinality,
single primitive types, required/extensible bindings to known value sets and
the profile's own FHIRPath invariants. Slices and choice elements are
skipped.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from fhir_validator.schemas.fhir import VALUE_SETS
from fhir_validator.validation.constraints import ConstraintSet, load_constraint_set
from fhir_validator.validation.errors import ProfileParseError
from fhir_validator.validation.schema import DEFAULT_SCHEMA, ResourceSchema

logger = logging.getLogger(__name__)

_BINDING_SEVERITY = {"required": "error", "extensible": "warning"}


def load_structure_definition(
    definition: Any,
    value_sets: Mapping[str, Sequence[Any]] | None = None,
    schema: ResourceSchema | None = None,
) -> ConstraintSet:
    """Convert a StructureDefinition (differential, else snapshot) to a ConstraintSet."""
    if not isinstance(definition, dict) or definition.get("resourceType") != "StructureDefinition":
        raise ProfileParseError("Expected a StructureDefinition resource")
    url = definition.get("url")
    if not url:
        raise ProfileParseError("StructureDefinition has no url")

    schema = schema or DEFAULT_SCHEMA
    value_sets = VALUE_SETS if value_sets is None else value_sets
    elements = (definition.get("differential") or {}).get("element") or (
        definition.get("snapshot") or {}
    ).get("element") or []

    constraints: list[dict[str, Any]] = []
    for element in elements:
        path = element.get("path")
        if not path:
            raise ProfileParseError(f"Element without a path in {url}")
        element_id = element.get("id", path)
        if ":" in element_id:
            logger.warning("Skipping slice %s in %s", element_id, url)
            continue
        if "[x]" in path:
            logger.warning("Skipping choice element %s in %s", path, url)
            continue

        if "." in path:
            constraints.extend(_cardinality(element, path))
            constraints.extend(_type(element, path, schema))
            constraints.extend(_binding(element, path, value_sets, url))
        constraints.extend(_invariants(element, path, url))

    raw: dict[str, Any] = {"url": url, "constraints": constraints}
    for source, target in (("version", "version"), ("name", "name"), ("type", "resourceType")):
        if definition.get(source):
            raw[target] = definition[source]
    return load_constraint_set(raw, value_sets=value_sets, schema=schema)


def _cardinality(element: dict[str, Any], path: str) -> list[dict[str, Any]]:
    if "min" not in element and "max" not in element:
        return []
    minimum = element.get("min", 0)
    maximum = element.get("max", "*")
    if maximum != "*":
        try:
            maximum = int(maximum)
        except (TypeError, ValueError):
            raise ProfileParseError(f"Invalid max '{maximum}' on {path}") from None
    if minimum == 0 and maximum == "*":
        return []
    if minimum == 1 and maximum == "*":
        return [{"path": path, "kind": "required"}]
    return [{"path": path, "kind": "cardinality", "min": minimum, "max": maximum}]


def _type(element: dict[str, Any], path: str, schema: ResourceSchema) -> list[dict[str, Any]]:
    types = element.get("type") or []
    if len(types) != 1:
        return []
    code = types[0].get("code")
    if not code or not schema.is_primitive(code):
        return []
    return [{"path": path, "kind": "type", "type": code}]


def _binding(
    element: dict[str, Any],
    path: str,
    value_sets: Mapping[str, Sequence[Any]],
    url: str,
) -> list[dict[str, Any]]:
    binding = element.get("binding") or {}
    severity = _BINDING_SEVERITY.get(binding.get("strength"))
    value_set = binding.get("valueSet")
    if not severity or not value_set:
        return []
    canonical = value_set.split("|", 1)[0]
    if canonical not in value_sets:
        logger.warning("Skipping binding of %s in %s: value set %s is not available", path, url, value_set)
        return []
    return [{"path": path, "kind": "valueSet", "valueSetUrl": canonical, "severity": severity}]


def _invariants(element: dict[str, Any], path: str, url: str) -> list[dict[str, Any]]:
    invariants = []
    for constraint in element.get("constraint") or []:
        source = constraint.get("source")
        if source and source != url:
            # inherited from a base definition
            continue
        if not constraint.get("expression"):
            logger.warning("Skipping constraint %s on %s: no expression", constraint.get("key"), path)
            continue
        entry = {
            "path": path,
            "kind": "invariant",
            "expression": constraint["expression"],
            "severity": "error" if constraint.get("severity", "error") == "error" else "warning",
        }
        if constraint.get("key"):
            entry["id"] = constraint["key"]
        if constraint.get("human"):
            entry["human"] = constraint["human"]
        invariants.append(entry)
    return invariants
