"""Tests for building record trees from raw resources."""

import pytest

from fhir_validator.validation.errors import MalformedRecordError
from fhir_validator.validation.record import NodeKind, Record


def _make_patient(**overrides):
    resource = {
        "resourceType": "Patient",
        "id": "pat-1",
        "name": [{"family": "Citizen", "given": ["Jane", "Mary"]}],
        "gender": "female",
        "birthDate": "1990-01-15",
    }
    resource.update(overrides)
    return resource


def test_builds_typed_tree():
    record = Record.from_dict(_make_patient())

    assert record.resource_type == "Patient"
    name = record.root.child("name")
    assert name.kind is NodeKind.REPEATED
    assert name.type_name == "HumanName"
    assert name.children[0].kind is NodeKind.COMPOSITE
    given = name.children[0].child("given")
    assert given.children[1].path == "name[0].given[1]"
    assert given.children[1].value == "Mary"
    assert record.root.child("gender").kind is NodeKind.PRIMITIVE


def test_get_returns_values():
    record = Record.from_dict(_make_patient())
    assert record.get("name.given") == ["Jane", "Mary"]
    assert record.get("gender") == ["female"]
    assert record.get("name") == [{"family": "Citizen", "given": ["Jane", "Mary"]}]


def test_get_on_absent_optional_field_is_empty():
    record = Record.from_dict(_make_patient())
    assert record.get("telecom") == []
    assert record.get("address.city") == []
    assert record.get("contact.name.family") == []


def test_resource_type_fallback():
    """Input without resourceType can still be built when the caller names the type."""
    record = Record.from_dict({"name": []}, resource_type="Patient")
    assert record.resource_type == "Patient"
    assert record.get("name") == []


def test_null_fields_are_absent():
    record = Record.from_dict(_make_patient(gender=None))
    assert record.get("gender") == []


def test_to_python_reproduces_input():
    resource = _make_patient(telecom=[{"system": "phone", "value": "0491 570 156"}])
    assert Record.from_dict(resource).to_python() == resource


def test_scalar_where_list_expected():
    with pytest.raises(MalformedRecordError, match="expected a list of HumanName") as exc:
        Record.from_dict(_make_patient(name="Jane Citizen"))
    assert exc.value.path == "name"


def test_list_where_single_value_expected():
    with pytest.raises(MalformedRecordError, match="expected a single code"):
        Record.from_dict(_make_patient(gender=["female"]))


def test_object_where_primitive_expected():
    with pytest.raises(MalformedRecordError, match="expected a date value"):
        Record.from_dict(_make_patient(birthDate={"year": 1990}))


def test_primitive_where_object_expected():
    with pytest.raises(MalformedRecordError, match="expected an object of type HumanName") as exc:
        Record.from_dict(_make_patient(name=["Jane"]))
    assert exc.value.path == "name[0]"


def test_unknown_field_rejected():
    with pytest.raises(MalformedRecordError, match="'nickname' is not an element of Patient"):
        Record.from_dict(_make_patient(nickname="JJ"))


def test_null_inside_list_rejected():
    with pytest.raises(MalformedRecordError, match="null is not allowed"):
        Record.from_dict(_make_patient(name=[None]))


def test_unknown_resource_type_rejected():
    with pytest.raises(MalformedRecordError, match="unknown resource type 'Spaceship'"):
        Record.from_dict({"resourceType": "Spaceship"})


def test_missing_resource_type_rejected():
    with pytest.raises(MalformedRecordError, match="resourceType is missing"):
        Record.from_dict({"gender": "female"})


def test_non_object_resource_rejected():
    with pytest.raises(MalformedRecordError, match="must be an object"):
        Record.from_dict(["Patient"])
