"""
Profile definition format and the built-in profiles.

PROFILE_DEFINITION_SCHEMA is the JSON Schema contract every raw profile
definition must meet before it is compiled into a constraint set.
"""

PROFILE_DEFINITION_SCHEMA: dict = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "Profile constraint definition",
    "type": "object",
    "required": ["url", "constraints"],
    "properties": {
        "url": {"type": "string", "minLength": 1},
        "version": {"type": "string", "minLength": 1},
        "name": {"type": "string"},
        "resourceType": {"type": "string", "pattern": "^[A-Z][A-Za-z]+$"},
        "constraints": {
            "type": "array",
            "items": {"$ref": "#/definitions/constraint"},
        },
    },
    "additionalProperties": False,
    "definitions": {
        "constraint": {
            "type": "object",
            "required": ["path", "kind"],
            "properties": {
                "id": {"type": "string", "minLength": 1},
                "path": {"type": "string"},
                "kind": {
                    "type": "string",
                    "enum": ["required", "cardinality", "type", "valueSet", "invariant"],
                },
                "severity": {
                    "type": "string",
                    "enum": ["error", "warning", "information"],
                },
                "message": {"type": "string"},
                "min": {"type": "integer", "minimum": 0},
                "max": {
                    "oneOf": [
                        {"type": "integer", "minimum": 0},
                        {"type": "string", "const": "*"},
                    ]
                },
                "type": {"type": "string", "minLength": 1},
                "valueSet": {
                    "type": "array",
                    "minItems": 1,
                    "items": {
                        "oneOf": [
                            {"type": "string", "minLength": 1},
                            {
                                "type": "object",
                                "required": ["code"],
                                "properties": {
                                    "system": {"type": "string"},
                                    "code": {"type": "string", "minLength": 1},
                                },
                                "additionalProperties": False,
                            },
                        ]
                    },
                },
                "valueSetUrl": {"type": "string", "minLength": 1},
                "expression": {"type": "string", "minLength": 1},
                "human": {"type": "string"},
            },
            "additionalProperties": False,
            "allOf": [
                {
                    "if": {"properties": {"kind": {"const": "cardinality"}}},
                    "then": {"anyOf": [{"required": ["min"]}, {"required": ["max"]}]},
                },
                {
                    "if": {"properties": {"kind": {"const": "type"}}},
                    "then": {"required": ["type"]},
                },
                {
                    "if": {"properties": {"kind": {"const": "valueSet"}}},
                    "then": {
                        "oneOf": [{"required": ["valueSet"]}, {"required": ["valueSetUrl"]}]
                    },
                },
                {
                    "if": {"properties": {"kind": {"const": "invariant"}}},
                    "then": {"required": ["expression"]},
                },
            ],
        }
    },
}


# ---------------------------------------------------------------------------
# Built-in profiles
# ---------------------------------------------------------------------------

AU_PATIENT_PROFILE: dict = {
    "url": "http://hl7.org.au/fhir/StructureDefinition/au-patient",
    "version": "4.1.0",
    "name": "AUBasePatient",
    "resourceType": "Patient",
    "constraints": [
        {
            "id": "au-patient-name",
            "path": "Patient.name",
            "kind": "required",
            "message": "An Australian patient must have at least one name",
        },
        {"path": "Patient.name.use", "kind": "valueSet", "valueSetUrl": "http://hl7.org/fhir/ValueSet/name-use"},
        {
            "id": "au-patient-gender",
            "path": "Patient.gender",
            "kind": "valueSet",
            "valueSetUrl": "http://hl7.org/fhir/ValueSet/administrative-gender",
        },
        {"path": "Patient.birthDate", "kind": "type", "type": "date"},
        {"path": "Patient.birthDate", "kind": "cardinality", "min": 0, "max": 1},
        {
            "path": "Patient.telecom.system",
            "kind": "valueSet",
            "valueSetUrl": "http://hl7.org/fhir/ValueSet/contact-point-system",
        },
        {
            "path": "Patient.identifier",
            "kind": "cardinality",
            "min": 1,
            "max": "*",
            "severity": "warning",
            "message": "Patients should carry an IHI, Medicare or DVA identifier",
        },
        {
            "id": "inv-pat-0",
            "path": "Patient.identifier",
            "kind": "invariant",
            "expression": "system.exists() and value.exists()",
            "human": "Identifiers shall have both a system and a value",
        },
        {
            "id": "inv-pat-1",
            "path": "Patient.address",
            "kind": "invariant",
            "expression": "line.exists() or city.exists() or postalCode.exists() or text.exists()",
            "human": "An address shall contain at least a line, city, postcode or text",
            "severity": "warning",
        },
        {
            "id": "inv-pat-2",
            "path": "Patient",
            "kind": "invariant",
            "expression": "deceasedBoolean.exists().not() or deceasedDateTime.exists().not()",
            "human": "Deceased shall be either a flag or a date, not both",
        },
    ],
}


VITALS_OBSERVATION_PROFILE: dict = {
    "url": "http://hl7.org/fhir/StructureDefinition/vitalsigns",
    "version": "4.0.1",
    "name": "observation-vitalsigns",
    "resourceType": "Observation",
    "constraints": [
        {
            "path": "Observation.status",
            "kind": "required",
        },
        {
            "path": "Observation.status",
            "kind": "valueSet",
            "valueSetUrl": "http://hl7.org/fhir/ValueSet/observation-status",
        },
        {"path": "Observation.category", "kind": "cardinality", "min": 1, "max": "*"},
        {"path": "Observation.code", "kind": "required"},
        {"path": "Observation.subject", "kind": "required"},
        {
            "id": "vs-1",
            "path": "Observation",
            "kind": "invariant",
            "expression": "effectiveDateTime.exists() or effectivePeriod.exists()",
            "human": "If there is no effective time, the observation must have a period",
        },
        {
            "id": "vs-2",
            "path": "Observation",
            "kind": "invariant",
            "expression": (
                "component.exists() or hasMember.exists() or valueQuantity.exists()"
                " or valueCodeableConcept.exists() or valueString.exists()"
                " or dataAbsentReason.exists()"
            ),
            "human": "Without components or members, a value or a data absent reason must be present",
        },
        {
            "id": "vs-3",
            "path": "Observation.valueQuantity",
            "kind": "invariant",
            "expression": "value.exists() and unit.exists()",
            "human": "A quantity value requires a value and a unit",
        },
    ],
}

BUILTIN_PROFILES: list[dict] = [AU_PATIENT_PROFILE, VITALS_OBSERVATION_PROFILE]
