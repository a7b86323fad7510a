"""
Bulk validation pipeline: Extract -> Parse -> Validate -> Summarize.

- Malformed resources are rejected at parse and never reach the validator
- A resource the profile does not apply to is reported, not fatal for the batch
- The summary counts issues per severity and conforming resources
"""

from __future__ import annotations

import logging
from typing import Any

from fhir_validator.pipeline.dag import DAG
from fhir_validator.validation.engine import ValidationEngine
from fhir_validator.validation.errors import MalformedRecordError, ProfileSchemaMismatchError
from fhir_validator.validation.record import Record

logger = logging.getLogger(__name__)


def extract(context: dict[str, Any]) -> dict[str, Any]:
    """Accept raw resources from the request payload."""
    resources = context.get("resources", [])
    logger.info("Extracted %d resources", len(resources))
    return {"extracted_resources": resources, "extract_count": len(resources)}


def parse(context: dict[str, Any]) -> dict[str, Any]:
    """Build record trees; resources that break their own schema are rejected."""
    constraint_set = context["constraint_set"]
    records, rejected = [], []

    for index, resource in enumerate(context.get("extracted_resources", [])):
        try:
            records.append((index, Record.from_dict(resource, constraint_set.resource_type)))
        except MalformedRecordError as exc:
            rejected.append({"index": index, "error": str(exc)})

    logger.info("Parse: %d records, %d rejected", len(records), len(rejected))
    return {"records": records, "rejected": rejected, "parsed_count": len(records)}


def validate(context: dict[str, Any]) -> dict[str, Any]:
    """Run the validator over every parsed record."""
    constraint_set = context["constraint_set"]
    validator = context.get("validator") or ValidationEngine()
    results, mismatched = [], []

    for index, record in context.get("records", []):
        try:
            report = validator.validate(record, constraint_set)
        except ProfileSchemaMismatchError as exc:
            mismatched.append({"index": index, "constraint_id": exc.constraint_id, "error": str(exc)})
            continue
        results.append({"index": index, "resource_type": record.resource_type, "report": report})

    logger.info("Validation: %d validated, %d mismatched", len(results), len(mismatched))
    return {"results": results, "mismatched": mismatched, "validated_count": len(results)}


def summarize(context: dict[str, Any]) -> dict[str, Any]:
    """Totals across the batch."""
    results = context.get("results", [])
    totals = {"error": 0, "warning": 0, "information": 0}
    conforming = 0
    for result in results:
        for severity, count in result["report"].counts().items():
            totals[severity] += count
        if not result["report"].has_errors:
            conforming += 1

    logger.info("Summary: %d of %d validated resources conform", conforming, len(results))
    return {
        "issue_totals": totals,
        "conforming_count": conforming,
        "nonconforming_count": len(results) - conforming,
    }


def build_bulk_validation_pipeline() -> DAG:
    """Construct the bulk validation DAG."""
    dag = DAG("bulk_validation")
    dag.add_task("extract", extract)
    dag.add_task("parse", parse, depends_on=["extract"])
    dag.add_task("validate", validate, depends_on=["parse"])
    dag.add_task("summarize", summarize, depends_on=["validate"])
    return dag
