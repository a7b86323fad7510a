"""
FHIR R4 structure definitions used to build and navigate records.

A pragmatic subset – real FHIR structures are enormous; this captures the
Patient and Observation resources plus the datatypes they reference.

Each element maps a field name to ``(type_name, repeated)``.
"""

PRIMITIVE_TYPES: frozenset[str] = frozenset(
    {
        "boolean",
        "integer",
        "positiveInt",
        "unsignedInt",
        "decimal",
        "string",
        "markdown",
        "code",
        "id",
        "uri",
        "url",
        "canonical",
        "date",
        "dateTime",
        "instant",
        "time",
        "xhtml",
    }
)


# ---------------------------------------------------------------------------
# Complex datatypes
# ---------------------------------------------------------------------------

DATATYPE_DEFINITIONS: dict[str, dict[str, tuple[str, bool]]] = {
    "Extension": {
        "id": ("string", False),
        "extension": ("Extension", True),
        "url": ("uri", False),
        "valueString": ("string", False),
        "valueCode": ("code", False),
        "valueBoolean": ("boolean", False),
        "valueCoding": ("Coding", False),
        "valueCodeableConcept": ("CodeableConcept", False),
    },
    "Meta": {
        "versionId": ("id", False),
        "lastUpdated": ("instant", False),
        "source": ("uri", False),
        "profile": ("canonical", True),
        "tag": ("Coding", True),
    },
    "Narrative": {
        "status": ("code", False),
        "div": ("xhtml", False),
    },
    "Coding": {
        "system": ("uri", False),
        "version": ("string", False),
        "code": ("code", False),
        "display": ("string", False),
        "userSelected": ("boolean", False),
    },
    "CodeableConcept": {
        "coding": ("Coding", True),
        "text": ("string", False),
    },
    "Period": {
        "start": ("dateTime", False),
        "end": ("dateTime", False),
    },
    "Reference": {
        "reference": ("string", False),
        "type": ("uri", False),
        "identifier": ("Identifier", False),
        "display": ("string", False),
    },
    "Identifier": {
        "extension": ("Extension", True),
        "use": ("code", False),
        "type": ("CodeableConcept", False),
        "system": ("uri", False),
        "value": ("string", False),
        "period": ("Period", False),
        "assigner": ("Reference", False),
    },
    "HumanName": {
        "extension": ("Extension", True),
        "use": ("code", False),
        "text": ("string", False),
        "family": ("string", False),
        "given": ("string", True),
        "prefix": ("string", True),
        "suffix": ("string", True),
        "period": ("Period", False),
    },
    "ContactPoint": {
        "system": ("code", False),
        "value": ("string", False),
        "use": ("code", False),
        "rank": ("positiveInt", False),
        "period": ("Period", False),
    },
    "Address": {
        "extension": ("Extension", True),
        "use": ("code", False),
        "type": ("code", False),
        "text": ("string", False),
        "line": ("string", True),
        "city": ("string", False),
        "district": ("string", False),
        "state": ("string", False),
        "postalCode": ("string", False),
        "country": ("string", False),
        "period": ("Period", False),
    },
    "Quantity": {
        "value": ("decimal", False),
        "comparator": ("code", False),
        "unit": ("string", False),
        "system": ("uri", False),
        "code": ("code", False),
    },
    # Backbone elements are named <Resource><Element>
    "PatientContact": {
        "relationship": ("CodeableConcept", True),
        "name": ("HumanName", False),
        "telecom": ("ContactPoint", True),
        "address": ("Address", False),
        "gender": ("code", False),
        "period": ("Period", False),
    },
    "PatientCommunication": {
        "language": ("CodeableConcept", False),
        "preferred": ("boolean", False),
    },
    "ObservationReferenceRange": {
        "low": ("Quantity", False),
        "high": ("Quantity", False),
        "type": ("CodeableConcept", False),
        "text": ("string", False),
    },
    "ObservationComponent": {
        "code": ("CodeableConcept", False),
        "valueQuantity": ("Quantity", False),
        "valueCodeableConcept": ("CodeableConcept", False),
        "valueString": ("string", False),
        "dataAbsentReason": ("CodeableConcept", False),
        "interpretation": ("CodeableConcept", True),
    },
}


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------

_RESOURCE_BASE: dict[str, tuple[str, bool]] = {
    "resourceType": ("code", False),
    "id": ("id", False),
    "meta": ("Meta", False),
    "implicitRules": ("uri", False),
    "language": ("code", False),
    "text": ("Narrative", False),
    "extension": ("Extension", True),
    "modifierExtension": ("Extension", True),
}

RESOURCE_DEFINITIONS: dict[str, dict[str, tuple[str, bool]]] = {
    "Patient": {
        **_RESOURCE_BASE,
        "identifier": ("Identifier", True),
        "active": ("boolean", False),
        "name": ("HumanName", True),
        "telecom": ("ContactPoint", True),
        "gender": ("code", False),
        "birthDate": ("date", False),
        "deceasedBoolean": ("boolean", False),
        "deceasedDateTime": ("dateTime", False),
        "address": ("Address", True),
        "maritalStatus": ("CodeableConcept", False),
        "multipleBirthBoolean": ("boolean", False),
        "multipleBirthInteger": ("integer", False),
        "contact": ("PatientContact", True),
        "communication": ("PatientCommunication", True),
        "generalPractitioner": ("Reference", True),
        "managingOrganization": ("Reference", False),
    },
    "Observation": {
        **_RESOURCE_BASE,
        "identifier": ("Identifier", True),
        "basedOn": ("Reference", True),
        "status": ("code", False),
        "category": ("CodeableConcept", True),
        "code": ("CodeableConcept", False),
        "subject": ("Reference", False),
        "encounter": ("Reference", False),
        "effectiveDateTime": ("dateTime", False),
        "effectivePeriod": ("Period", False),
        "issued": ("instant", False),
        "performer": ("Reference", True),
        "valueQuantity": ("Quantity", False),
        "valueCodeableConcept": ("CodeableConcept", False),
        "valueString": ("string", False),
        "valueBoolean": ("boolean", False),
        "valueInteger": ("integer", False),
        "dataAbsentReason": ("CodeableConcept", False),
        "interpretation": ("CodeableConcept", True),
        "note": ("string", True),
        "bodySite": ("CodeableConcept", False),
        "method": ("CodeableConcept", False),
        "referenceRange": ("ObservationReferenceRange", True),
        "hasMember": ("Reference", True),
        "component": ("ObservationComponent", True),
    },
}


# ---------------------------------------------------------------------------
# Value sets (codes only, keyed by canonical URL)
# ---------------------------------------------------------------------------

VALUE_SETS: dict[str, list[str]] = {
    "http://hl7.org/fhir/ValueSet/administrative-gender": [
        "male",
        "female",
        "other",
        "unknown",
    ],
    "http://hl7.org/fhir/ValueSet/name-use": [
        "usual",
        "official",
        "temp",
        "nickname",
        "anonymous",
        "old",
        "maiden",
    ],
    "http://hl7.org/fhir/ValueSet/identifier-use": [
        "usual",
        "official",
        "temp",
        "secondary",
        "old",
    ],
    "http://hl7.org/fhir/ValueSet/contact-point-system": [
        "phone",
        "fax",
        "email",
        "pager",
        "url",
        "sms",
        "other",
    ],
    "http://hl7.org/fhir/ValueSet/contact-point-use": [
        "home",
        "work",
        "temp",
        "old",
        "mobile",
    ],
    "http://hl7.org/fhir/ValueSet/address-use": [
        "home",
        "work",
        "temp",
        "old",
        "billing",
    ],
    "http://hl7.org/fhir/ValueSet/address-type": ["postal", "physical", "both"],
    "http://hl7.org/fhir/ValueSet/observation-status": [
        "registered",
        "preliminary",
        "final",
        "amended",
        "corrected",
        "cancelled",
        "entered-in-error",
        "unknown",
    ],
}
