"""Tests for loading profile definitions into constraint sets."""

import dataclasses

import pytest

from fhir_validator.schemas.profiles import AU_PATIENT_PROFILE
from fhir_validator.validation.constraints import ConstraintKind, ConstraintSet
from fhir_validator.validation.errors import ProfileParseError
from fhir_validator.validation.issues import Severity

URL = "http://example.org/fhir/StructureDefinition/test-patient"


def _definition(*constraints, **extra):
    definition = {"url": URL, "version": "1.0.0", "constraints": list(constraints)}
    definition.update(extra)
    return definition


def test_load_builtin_profile():
    constraint_set = ConstraintSet.load(AU_PATIENT_PROFILE)

    assert constraint_set.url == "http://hl7.org.au/fhir/StructureDefinition/au-patient"
    assert constraint_set.version == "4.1.0"
    assert constraint_set.resource_type == "Patient"
    assert len(constraint_set) == len(AU_PATIENT_PROFILE["constraints"])
    assert constraint_set.constraints[0].id == "au-patient-name"
    assert constraint_set.constraints[0].kind is ConstraintKind.REQUIRED


def test_load_order_is_preserved():
    constraint_set = ConstraintSet.load(
        _definition(
            {"path": "name", "kind": "required"},
            {"path": "gender", "kind": "valueSet", "valueSet": ["male", "female"]},
            {"path": "birthDate", "kind": "type", "type": "date"},
        )
    )
    assert [c.kind for c in constraint_set] == [
        ConstraintKind.REQUIRED,
        ConstraintKind.VALUE_SET,
        ConstraintKind.TYPE,
    ]


def test_defaults():
    constraint = ConstraintSet.load(_definition({"path": "name", "kind": "required"})).constraints[0]
    assert constraint.id == "required:name"
    assert constraint.severity is Severity.ERROR
    assert constraint.message is None


def test_cardinality_bounds():
    constraints = ConstraintSet.load(
        _definition(
            {"path": "name", "kind": "cardinality", "min": 1, "max": "*"},
            {"path": "birthDate", "kind": "cardinality", "max": 1},
        )
    ).constraints
    assert (constraints[0].min, constraints[0].max) == (1, None)
    assert (constraints[1].min, constraints[1].max) == (0, 1)


def test_value_set_by_url_resolves_builtin_codes():
    constraint = ConstraintSet.load(
        _definition(
            {
                "path": "gender",
                "kind": "valueSet",
                "valueSetUrl": "http://hl7.org/fhir/ValueSet/administrative-gender|4.0.1",
            }
        )
    ).constraints[0]
    assert constraint.value_set_url == "http://hl7.org/fhir/ValueSet/administrative-gender"
    assert constraint.allows("unknown")
    assert not constraint.allows("unknown-x")


def test_value_set_members_with_system():
    system = "http://terminology.hl7.org/CodeSystem/v3-MaritalStatus"
    constraint = ConstraintSet.load(
        _definition(
            {"path": "maritalStatus", "kind": "valueSet", "valueSet": [{"system": system, "code": "M"}]}
        )
    ).constraints[0]
    assert constraint.allows("M", system)
    assert constraint.allows("M")
    assert not constraint.allows("M", "http://example.org/other")


def test_custom_value_sets_mapping():
    constraint_set = ConstraintSet.load(
        _definition({"path": "gender", "kind": "valueSet", "valueSetUrl": "urn:test:vs"}),
        value_sets={"urn:test:vs": ["male"]},
    )
    assert constraint_set.constraints[0].allows("male")


def test_constraint_set_is_immutable():
    constraint_set = ConstraintSet.load(_definition({"path": "name", "kind": "required"}))
    assert isinstance(constraint_set.constraints, tuple)
    with pytest.raises(dataclasses.FrozenInstanceError):
        constraint_set.url = "http://example.org/other"


def test_non_object_definition():
    with pytest.raises(ProfileParseError, match="JSON object"):
        ConstraintSet.load(["not", "a", "profile"])


def test_structural_errors_are_all_reported():
    with pytest.raises(ProfileParseError) as exc:
        ConstraintSet.load(
            {
                "constraints": [
                    {"path": "name", "kind": "mandatory"},
                    {"path": "gender", "kind": "valueSet"},
                ]
            }
        )
    errors = exc.value.errors
    assert any("'url' is a required property" in e for e in errors)
    assert any(e.startswith("constraints/0/kind") for e in errors)
    assert len(errors) >= 3


@pytest.mark.parametrize(
    "constraint",
    [
        {"path": "name", "kind": "cardinality"},
        {"path": "birthDate", "kind": "type"},
        {"path": "name", "kind": "invariant"},
        {"path": "gender", "kind": "valueSet", "valueSet": ["a"], "valueSetUrl": "urn:x"},
        {"path": "name", "kind": "required", "severity": "fatal"},
        {"path": "name", "kind": "required", "colour": "red"},
    ],
)
def test_kind_specific_requirements(constraint):
    with pytest.raises(ProfileParseError):
        ConstraintSet.load(_definition(constraint))


@pytest.mark.parametrize(
    "constraint, message",
    [
        ({"path": "name..given", "kind": "required"}, "Invalid path segment"),
        ({"path": "name", "kind": "cardinality", "min": 2, "max": 1}, "greater than max"),
        ({"path": "birthDate", "kind": "type", "type": "timestamp"}, "unknown type"),
        ({"path": "gender", "kind": "valueSet", "valueSetUrl": "urn:missing"}, "unknown value set"),
        ({"path": "name", "kind": "invariant", "expression": "family.shout()"}, "Unknown function"),
        ({"path": "name", "kind": "invariant", "expression": "family = "}, "Invalid FHIRPath"),
    ],
)
def test_compile_errors(constraint, message):
    with pytest.raises(ProfileParseError) as exc:
        ConstraintSet.load(_definition(constraint))
    assert exc.value.errors[0].startswith("constraints/0: ")
    assert message in exc.value.errors[0]


def test_duplicate_ids_rejected():
    with pytest.raises(ProfileParseError) as exc:
        ConstraintSet.load(
            _definition(
                {"id": "c1", "path": "name", "kind": "required"},
                {"id": "c1", "path": "gender", "kind": "required"},
            )
        )
    assert "duplicate constraint id 'c1'" in exc.value.errors[0]


def test_unknown_resource_type_rejected():
    with pytest.raises(ProfileParseError) as exc:
        ConstraintSet.load(_definition(resourceType="Spaceship"))
    assert "unknown resource type" in exc.value.errors[0]
