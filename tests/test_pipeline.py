"""Tests for the bulk validation pipeline – no database required."""

from fhir_validator.pipeline.bulk import build_bulk_validation_pipeline
from fhir_validator.schemas.profiles import AU_PATIENT_PROFILE
from fhir_validator.validation.constraints import ConstraintSet
from fhir_validator.validation.issues import IssueReport

PROFILE = ConstraintSet.load(AU_PATIENT_PROFILE)


def _make_patient(gender="female", name=None):
    return {
        "resourceType": "Patient",
        "identifier": [{"system": "http://ns.electronichealth.net.au/id/medicare-number", "value": "2950156481"}],
        "name": name if name is not None else [{"family": "Citizen", "given": ["Jane"]}],
        "gender": gender,
        "birthDate": "1990-01-15",
    }


def test_conforming_batch():
    """A clean patient flows through all four stages."""
    pipeline = build_bulk_validation_pipeline()
    result = pipeline.run({"resources": [_make_patient()], "constraint_set": PROFILE})

    assert result["status"] == "completed"
    assert result["record_counts"]["validated_count"] == 1
    assert pipeline.result("summarize")["conforming_count"] == 1
    assert pipeline.result("summarize")["issue_totals"] == {"error": 0, "warning": 0, "information": 0}


def test_mixed_batch():
    """Malformed, mismatched and nonconforming resources are each accounted for."""
    resources = [
        _make_patient(),
        _make_patient(name="Jane Citizen"),  # malformed: name must be a list
        {"resourceType": "Observation", "status": "final"},  # profile targets Patient
        _make_patient(gender="unknown-x"),
    ]
    pipeline = build_bulk_validation_pipeline()
    result = pipeline.run({"resources": resources, "constraint_set": PROFILE})

    assert result["status"] == "completed"
    assert result["record_counts"]["extract_count"] == 4
    assert result["record_counts"]["parsed_count"] == 3
    assert pipeline.result("parse")["rejected"][0]["index"] == 1

    assert result["record_counts"]["validated_count"] == 2
    mismatched = pipeline.result("validate")["mismatched"]
    assert [entry["index"] for entry in mismatched] == [2]
    assert mismatched[0]["constraint_id"] == "au-patient-name"

    summary = pipeline.result("summarize")
    assert summary["conforming_count"] == 1
    assert summary["nonconforming_count"] == 1
    assert summary["issue_totals"]["error"] == 1


def test_custom_validator_is_used():
    class RecordingValidator:
        def __init__(self):
            self.seen = []

        def validate(self, record, constraint_set):
            self.seen.append((record.resource_type, constraint_set.url))
            return IssueReport()

    validator = RecordingValidator()
    pipeline = build_bulk_validation_pipeline()
    pipeline.run({"resources": [_make_patient()], "constraint_set": PROFILE, "validator": validator})

    assert validator.seen == [("Patient", PROFILE.url)]
    assert pipeline.result("summarize")["conforming_count"] == 1


def test_missing_profile_fails_parse():
    pipeline = build_bulk_validation_pipeline()
    result = pipeline.run({"resources": [_make_patient()]})

    assert result["status"] == "failed"
    assert result["tasks"]["parse"]["status"] == "failed"
    assert result["tasks"]["summarize"]["status"] == "skipped"
