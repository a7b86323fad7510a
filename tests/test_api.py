"""Tests for the HTTP API – in-memory SQLite, no network."""

import uuid

import httpx
import pytest
from cryptography.fernet import Fernet
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fhir_validator.api.routes import get_encryption, get_registry, get_validator_factory
from fhir_validator.config import settings
from fhir_validator.main import app
from fhir_validator.models.database import Base, get_db
from fhir_validator.services.encryption import EncryptionService
from fhir_validator.services.profiles import build_default_registry
from fhir_validator.services.validation import build_validator
from fhir_validator.validation.engine import ValidationEngine
from fhir_validator.validation.remote import RemoteValidator

AU_PATIENT = "http://hl7.org.au/fhir/StructureDefinition/au-patient"

REMOTE_OUTCOME = {
    "resourceType": "OperationOutcome",
    "issue": [
        {
            "severity": "error",
            "code": "invariant",
            "diagnostics": "Rule au-ihi-1 failed",
            "expression": ["Patient.identifier[0]"],
        }
    ],
}


def _make_patient(**overrides):
    resource = {
        "resourceType": "Patient",
        "identifier": [{"system": "http://ns.electronichealth.net.au/id/hi/ihi/1.0", "value": "8003608833357361"}],
        "name": [{"family": "Citizen", "given": ["Jane"]}],
        "gender": "female",
        "birthDate": "1990-01-15",
    }
    resource.update(overrides)
    return resource


def _remote_handler(request):
    return httpx.Response(200, json=REMOTE_OUTCOME)


@pytest.fixture
def client():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    def override_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    registry = build_default_registry()
    encryption = EncryptionService(Fernet.generate_key().decode())

    def factory(mode):
        if mode == "remote":
            http_client = httpx.Client(transport=httpx.MockTransport(_remote_handler))
            return RemoteValidator("https://fhir.example.org/r4", client=http_client)
        return ValidationEngine()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_encryption] = lambda: encryption
    app.dependency_overrides[get_validator_factory] = lambda: factory
    yield TestClient(app)
    app.dependency_overrides.clear()
    engine.dispose()


def _validate(client, resource, **extra):
    return client.post("/api/v1/validate", json={"resource": resource, "profileUrl": AU_PATIENT, **extra})


def test_health(client):
    response = client.get("/api/v1/health")
    assert response.status_code == 200
    body = response.json()
    assert body["database"] == "connected"
    assert body["profiles"] == 2


def test_list_profiles(client):
    response = client.get("/api/v1/profiles")
    assert response.status_code == 200
    profiles = {p["url"]: p for p in response.json()}
    assert profiles[AU_PATIENT]["resourceType"] == "Patient"
    assert profiles[AU_PATIENT]["constraintCount"] == 10


def test_register_profile(client):
    definition = {
        "url": "http://example.org/fhir/StructureDefinition/needs-phone",
        "version": "1.0.0",
        "resourceType": "Patient",
        "constraints": [{"id": "phone", "path": "telecom", "kind": "required"}],
    }
    response = client.post("/api/v1/profiles", json=definition)
    assert response.status_code == 201
    assert response.json()["constraintCount"] == 1

    response = client.post(
        "/api/v1/validate",
        json={"resource": _make_patient(), "profileUrl": definition["url"]},
    )
    assert response.json()["report"]["issues"][0]["constraintId"] == "phone"


def test_register_invalid_profile(client):
    response = client.post("/api/v1/profiles", json={"constraints": [{"path": "name"}]})
    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["errors"]
    assert "Invalid profile definition" in detail["message"]


def test_validate_conforming_resource(client):
    response = _validate(client, _make_patient())
    assert response.status_code == 200
    body = response.json()
    assert body["profileVersion"] == "4.1.0"
    assert body["mode"] == "local"
    assert body["report"]["valid"] is True
    assert body["report"]["issues"] == []
    uuid.UUID(body["runId"])


def test_validate_reports_issues(client):
    response = _validate(client, _make_patient(gender="unknown-x", name=[]))
    report = response.json()["report"]
    assert response.status_code == 200
    assert report["valid"] is False
    assert report["counts"]["error"] == 2
    assert [i["constraintId"] for i in report["issues"]] == ["au-patient-name", "au-patient-gender"]


def test_validate_unknown_profile(client):
    response = client.post(
        "/api/v1/validate",
        json={"resource": _make_patient(), "profileUrl": "http://example.org/unknown"},
    )
    assert response.status_code == 404


def test_validate_malformed_resource(client):
    response = _validate(client, _make_patient(name="Jane Citizen"))
    assert response.status_code == 422
    assert "expected a list of HumanName" in response.json()["detail"]


def test_validate_profile_mismatch(client):
    response = _validate(client, {"resourceType": "Observation", "status": "final"})
    assert response.status_code == 409
    assert response.json()["detail"]["constraintId"] == "au-patient-name"


def test_validate_remote(client):
    response = _validate(client, _make_patient(), mode="remote")
    assert response.status_code == 200
    issues = response.json()["report"]["issues"]
    assert issues[0]["constraintId"] == "remote:invariant"
    assert issues[0]["path"] == "Patient.identifier[0]"


def test_validate_remote_unreachable(client):
    def unreachable(request):
        raise httpx.ConnectError("connection refused", request=request)

    def factory(mode):
        return RemoteValidator(
            "https://fhir.example.org/r4",
            client=httpx.Client(transport=httpx.MockTransport(unreachable)),
        )

    app.dependency_overrides[get_validator_factory] = lambda: factory
    response = _validate(client, _make_patient(), mode="remote")
    assert response.status_code == 502


def test_validate_remote_not_configured(client, monkeypatch):
    monkeypatch.setattr(settings, "REMOTE_VALIDATION_URL", "")
    app.dependency_overrides[get_validator_factory] = lambda: build_validator
    response = _validate(client, _make_patient(), mode="remote")
    assert response.status_code == 400


def test_stored_run_and_audit_trail(client):
    resource = _make_patient()
    run_id = _validate(client, resource).json()["runId"]

    response = client.get(f"/api/v1/runs/{run_id}")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "valid"
    assert body["profile_url"] == AU_PATIENT
    assert body["resource"] is None

    response = client.get(f"/api/v1/runs/{run_id}", params={"include_resource": True})
    assert response.json()["resource"] == resource

    trail = client.get(f"/api/v1/runs/{run_id}/audit").json()
    assert [entry["action"] for entry in trail] == ["create", "read", "read"]
    assert trail[0]["detail"]["profile"] == AU_PATIENT
    assert trail[2]["detail"]["include_resource"] is True


def test_unknown_run(client):
    response = client.get(f"/api/v1/runs/{uuid.uuid4()}")
    assert response.status_code == 404


def test_batch_validation(client):
    resources = [
        _make_patient(),
        _make_patient(name="Jane Citizen"),
        {"resourceType": "Observation", "status": "final"},
        _make_patient(gender="unknown-x"),
    ]
    response = client.post("/api/v1/validate/batch", json={"resources": resources, "profileUrl": AU_PATIENT})
    assert response.status_code == 200
    body = response.json()

    assert body["status"] == "completed"
    assert body["record_counts"]["validated_count"] == 2
    assert body["issue_totals"]["error"] == 1
    assert [r["index"] for r in body["results"]] == [0, 3]
    assert body["rejected"][0]["index"] == 1
    assert body["mismatched"][0]["index"] == 2


def test_batch_requires_resources(client):
    response = client.post("/api/v1/validate/batch", json={"resources": [], "profileUrl": AU_PATIENT})
    assert response.status_code == 422
