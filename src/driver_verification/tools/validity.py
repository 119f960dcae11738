# -*- coding: utf-8 -*-
"""
Document validity.

Two entry points:
- classify(): a driver's stored expiry / check-due dates -> DocumentValiditySnapshot.
  A missing date is never valid.
- validate_record(): fills the validation outputs of a freshly extracted
  driving record (issues, confidence, is_valid, age_in_days).

Both read the freshness threshold from the same UnderwritingPolicy the
decision engine uses.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional

from driver_verification.models import (
    Confidence,
    DocumentStatus,
    DocumentValiditySnapshot,
    DrivingRecordExtract,
    PersistedDriverFields,
)
from driver_verification.tools.dates import days_since
from driver_verification.tools.extract import CHECK_CODE_LAYOUT, license_fragment_matches
from driver_verification.tools.policy import UnderwritingPolicy, load_policy

LOGGER = logging.getLogger(__name__)

DOMESTIC_RECORD = "domestic-record"
PASSPORT = "passport"


def _status(due: Optional[date], today: date, kind: Optional[str] = None) -> DocumentStatus:
    return DocumentStatus(
        valid=due is not None and due > today,
        expiry_or_check_due_date=due,
        kind=kind,
    )


# ------------------------------ Snapshot --------------------------------------

def classify(
    today: date,
    record: PersistedDriverFields,
    policy: Optional[UnderwritingPolicy] = None,
) -> DocumentValiditySnapshot:
    policy = policy or load_policy()
    domestic = policy.is_domestic_authority(record.license_issued_by)

    if domestic:
        fourth = _status(record.dvla_valid_until, today, DOMESTIC_RECORD)
    else:
        fourth = _status(record.passport_valid_until, today, PASSPORT)

    snapshot = DocumentValiditySnapshot(
        license=_status(record.license_next_check_due, today),
        proof_of_address1=_status(record.poa1_valid_until, today),
        proof_of_address2=_status(record.poa2_valid_until, today),
        driving_record_or_passport=fourth,
        is_domestic_license_holder=domestic,
    )

    issues: List[str] = []
    for label, status in (
        ("license", snapshot.license),
        ("proofOfAddress1", snapshot.proof_of_address1),
        ("proofOfAddress2", snapshot.proof_of_address2),
        ("drivingRecordOrPassport", snapshot.driving_record_or_passport),
    ):
        if status.expiry_or_check_due_date is None:
            issues.append(f"No stored date for {label}")
        elif not status.valid:
            issues.append(f"{label} expired on {status.expiry_or_check_due_date.isoformat()}")

    if domestic and record.dvla_generated_on is not None:
        age = days_since(record.dvla_generated_on, today)
        if age > policy.max_document_age_days:
            issues.append(
                f"Driving record generated {age} days ago (limit {policy.max_document_age_days})"
            )

    snapshot.issues = issues
    LOGGER.info(
        "Document validity for %s: allValid=%s domestic=%s issues=%d",
        record.email or "<unknown>",
        snapshot.all_valid,
        domestic,
        len(issues),
    )
    return snapshot


# ------------------------------ Driving record --------------------------------

def _confidence(record: DrivingRecordExtract, is_valid: bool, issues: List[str]) -> Confidence:
    if not record.holder_name and not record.verification_code:
        return Confidence.FAILED
    if not is_valid:
        return Confidence.LOW
    if issues:
        return Confidence.MEDIUM
    return Confidence.HIGH


def validate_record(
    record: DrivingRecordExtract,
    today: date,
    expected_license: Optional[str] = None,
    policy: Optional[UnderwritingPolicy] = None,
) -> DrivingRecordExtract:
    """Return a copy of `record` with issues, confidence, is_valid and age_in_days set."""
    policy = policy or load_policy()
    limit = policy.max_document_age_days
    issues: List[str] = []

    if not record.holder_name:
        issues.append("Driver name not found")

    if not record.verification_code:
        issues.append("Check code not found")
    elif not CHECK_CODE_LAYOUT.match(record.verification_code):
        issues.append("Invalid check code format")

    age = days_since(record.generated_on, today)
    if record.generated_on is None:
        issues.append("Date summary generated not found")
    elif age > limit:
        issues.append(f"Driving record is older than {limit} days")

    if not record.license_identifier:
        issues.append("License number not found")
    elif expected_license and not license_fragment_matches(record.license_identifier, expected_license):
        issues.append("License number mismatch")

    is_valid = bool(record.holder_name and record.verification_code and age <= limit)
    confidence = _confidence(record, is_valid, issues)

    if not is_valid:
        LOGGER.warning("Driving record failed validation: %s", "; ".join(issues))
    return record.model_copy(
        update={
            "issues": issues,
            "is_valid": is_valid,
            "age_in_days": age,
            "confidence": confidence,
        }
    )
