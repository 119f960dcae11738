from datetime import date, timedelta

import pytest

from driver_verification.models import Confidence, DrivingRecordExtract, PersistedDriverFields
from driver_verification.tools.extract import extract
from driver_verification.tools.validity import DOMESTIC_RECORD, PASSPORT, classify, validate_record

TODAY = date(2025, 8, 1)
FUTURE = TODAY + timedelta(days=60)
PAST = TODAY - timedelta(days=1)


def _driver(**overrides) -> PersistedDriverFields:
    fields = dict(
        email="driver@example.com",
        license_issued_by="DVLA",
        license_next_check_due=FUTURE,
        poa1_valid_until=FUTURE,
        poa2_valid_until=FUTURE,
        dvla_valid_until=FUTURE,
        passport_valid_until=None,
    )
    fields.update(overrides)
    return PersistedDriverFields(**fields)


# -------- classify --------
def test_all_documents_current(policy):
    snapshot = classify(TODAY, _driver(), policy)
    assert snapshot.all_valid is True
    assert snapshot.is_domestic_license_holder is True
    assert snapshot.driving_record_or_passport.kind == DOMESTIC_RECORD
    assert snapshot.issues == []


@pytest.mark.parametrize("field", [
    "license_next_check_due", "poa1_valid_until", "poa2_valid_until", "dvla_valid_until",
])
def test_missing_date_is_never_valid(policy, field):
    snapshot = classify(TODAY, _driver(**{field: None}), policy)
    assert snapshot.all_valid is False
    assert any(issue.startswith("No stored date") for issue in snapshot.issues)


def test_date_equal_to_today_is_expired(policy):
    snapshot = classify(TODAY, _driver(poa1_valid_until=TODAY), policy)
    assert snapshot.proof_of_address1.valid is False


def test_past_date_is_expired_with_issue(policy):
    snapshot = classify(TODAY, _driver(license_next_check_due=PAST), policy)
    assert snapshot.license.valid is False
    assert snapshot.license.expiry_or_check_due_date == PAST
    assert "license expired on 2025-07-31" in snapshot.issues


def test_non_domestic_issuer_uses_passport(policy):
    driver = _driver(license_issued_by="RDW", nationality="British", passport_valid_until=FUTURE, dvla_valid_until=None)
    snapshot = classify(TODAY, driver, policy)
    assert snapshot.is_domestic_license_holder is False
    assert snapshot.driving_record_or_passport.kind == PASSPORT
    assert snapshot.all_valid is True


def test_nationality_does_not_decide_domestic_status(policy):
    driver = _driver(license_issued_by="DVLA", nationality="Polish")
    assert classify(TODAY, driver, policy).is_domestic_license_holder is True


def test_issuer_match_is_case_insensitive(policy):
    assert classify(TODAY, _driver(license_issued_by=" dvla "), policy).is_domestic_license_holder is True


def test_stale_driving_record_is_flagged_even_if_current(policy):
    driver = _driver(dvla_generated_on=TODAY - timedelta(days=45))
    snapshot = classify(TODAY, driver, policy)
    assert snapshot.driving_record_or_passport.valid is True
    assert any("generated 45 days ago" in issue for issue in snapshot.issues)


def test_board_strings_are_coerced(policy):
    driver = PersistedDriverFields(
        license_issued_by="DVLA",
        license_next_check_due="2025-12-01",
        poa1_valid_until="01/10/2025",
        poa2_valid_until="not a date",
        dvla_valid_until="",
    )
    snapshot = classify(TODAY, driver, policy)
    assert snapshot.license.valid is True
    assert snapshot.proof_of_address1.expiry_or_check_due_date == date(2025, 10, 1)
    assert snapshot.proof_of_address2.valid is False
    assert snapshot.driving_record_or_passport.valid is False


def test_snapshot_serialises_camel_case(policy):
    data = classify(TODAY, _driver(), policy).model_dump(by_alias=True, mode="json")
    assert data["allValid"] is True
    assert data["proofOfAddress1"]["expiryOrCheckDueDate"] == FUTURE.isoformat()
    assert "drivingRecordOrPassport" in data


# -------- validate_record --------
def test_validate_sample_record(record_text, today, policy):
    record = validate_record(extract(record_text), today, policy=policy)
    assert record.is_valid is True
    assert record.age_in_days == 12
    assert record.confidence is Confidence.HIGH
    assert record.issues == []


def test_stale_record_is_invalid(record_text, policy):
    record = validate_record(extract(record_text), date(2025, 9, 1), policy=policy)
    assert record.is_valid is False
    assert record.age_in_days == 43
    assert "Driving record is older than 30 days" in record.issues
    assert record.confidence is Confidence.LOW


def test_missing_generation_date_uses_sentinel_age(today, policy):
    record = validate_record(
        DrivingRecordExtract(holder_name="JOHN SMITH", verification_code="Ab Cd Ef Gh"), today, policy=policy
    )
    assert record.age_in_days == 999
    assert record.is_valid is False


def test_nothing_found_fails(today, policy):
    record = validate_record(extract("blurry nonsense"), today, policy=policy)
    assert record.is_valid is False
    assert record.confidence is Confidence.FAILED
    assert "Driver name not found" in record.issues
    assert "Check code not found" in record.issues


def test_unspaced_check_code_is_flagged(today, policy):
    record = DrivingRecordExtract(
        holder_name="JOHN SMITH",
        verification_code="AbCdEfGh",
        generated_on=today,
        license_identifier="162JD9GA",
    )
    checked = validate_record(record, today, policy=policy)
    assert "Invalid check code format" in checked.issues
    assert checked.is_valid is True
    assert checked.confidence is Confidence.MEDIUM


def test_license_mismatch_is_an_issue_not_a_failure(record_text, today, policy):
    checked = validate_record(extract(record_text), today, expected_license="MORGA753116SM9IJ", policy=policy)
    assert "License number mismatch" in checked.issues
    assert checked.is_valid is True

    matching = validate_record(extract(record_text), today, expected_license="SMITH712162JD9GA", policy=policy)
    assert "License number mismatch" not in matching.issues


@pytest.mark.parametrize("junk", ["15", "3", "15 March", "Pending", "N/A"])
def test_board_value_without_a_year_is_never_valid(policy, junk):
    snapshot = classify(TODAY, _driver(poa1_valid_until=junk), policy)
    assert snapshot.proof_of_address1.expiry_or_check_due_date is None
    assert snapshot.proof_of_address1.valid is False
    assert snapshot.all_valid is False
