"""Tests for the profile registry."""

import json

import pytest

from fhir_validator.services.profiles import ProfileRegistry, build_default_registry
from fhir_validator.validation.errors import ProfileNotFoundError, ProfileParseError

URL = "http://example.org/fhir/StructureDefinition/test-patient"


def _definition(version, *paths):
    return {
        "url": URL,
        "version": version,
        "resourceType": "Patient",
        "constraints": [{"path": path, "kind": "required"} for path in paths],
    }


def test_default_registry_has_builtin_profiles():
    registry = build_default_registry()
    urls = [profile.url for profile in registry.all()]
    assert "http://hl7.org.au/fhir/StructureDefinition/au-patient" in urls
    assert "http://hl7.org/fhir/StructureDefinition/vitalsigns" in urls


def test_lookup_by_version_and_latest():
    registry = ProfileRegistry()
    registry.register_definition(_definition("1.0.0", "name"))
    registry.register_definition(_definition("2.0.0", "name", "gender"))

    assert len(registry.get(URL, "1.0.0")) == 1
    assert len(registry.get(URL, "2.0.0")) == 2
    assert registry.get(URL).version == "2.0.0"
    assert [p.version for p in registry.all()] == ["1.0.0", "2.0.0"]


def test_unknown_profile():
    registry = ProfileRegistry()
    registry.register_definition(_definition("1.0.0", "name"))

    with pytest.raises(ProfileNotFoundError):
        registry.get("http://example.org/fhir/StructureDefinition/other")
    with pytest.raises(ProfileNotFoundError):
        registry.get(URL, "9.9.9")


def test_register_structure_definition():
    registry = ProfileRegistry()
    constraint_set = registry.register_definition(
        {
            "resourceType": "StructureDefinition",
            "url": URL,
            "version": "3.0.0",
            "type": "Patient",
            "differential": {"element": [{"path": "Patient.name", "min": 1}]},
        }
    )
    assert registry.get(URL, "3.0.0") is constraint_set
    assert constraint_set.constraints[0].id == "required:Patient.name"


def test_invalid_definition_is_not_registered():
    registry = ProfileRegistry()
    with pytest.raises(ProfileParseError):
        registry.register_definition({"url": URL})
    assert registry.all() == []


def test_load_directory(tmp_path):
    (tmp_path / "a.json").write_text(json.dumps(_definition("1.0.0", "name")))
    (tmp_path / "b.json").write_text(json.dumps(_definition("1.1.0", "gender")))
    (tmp_path / "notes.txt").write_text("ignored")

    registry = build_default_registry(str(tmp_path))

    assert registry.get(URL).version == "1.1.0"
    assert len(registry.all()) == 4


def test_load_directory_with_invalid_json(tmp_path):
    (tmp_path / "broken.json").write_text("{not json")
    with pytest.raises(ProfileParseError, match="broken.json"):
        ProfileRegistry().load_directory(tmp_path)
