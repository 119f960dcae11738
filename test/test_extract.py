from datetime import date

import pytest

from driver_verification.tools.extract import (
    GENERATED_ON_PATTERNS,
    HOLDER_NAME_PATTERNS,
    LICENSE_FRAGMENT_PATTERNS,
    _first_match,
    extract,
    extract_categories,
    extract_poa,
    license_fragment_matches,
)


# -------- Full record --------
def test_extract_sample_record(record_text):
    record = extract(record_text)
    assert record.license_identifier == "162JD9GA"
    assert record.holder_name == "JOHN ALAN SMITH"
    assert record.verification_code == "Ab Cd Ef Gh"
    assert record.generated_on == date(2025, 7, 20)
    assert record.driving_status == "Current full licence"
    assert record.categories == ["B", "BE", "AM"]
    assert [e.code for e in record.endorsements] == ["SP30"]
    assert record.endorsements[0].offence_date == date(2025, 3, 14)
    assert record.total_points == 3
    assert record.points_stated is False
    # validation outputs are untouched by extraction
    assert record.issues == []
    assert record.confidence is None


def test_extract_never_raises_on_empty_text():
    record = extract("")
    assert record.license_identifier is None
    assert record.holder_name is None
    assert record.verification_code is None
    assert record.generated_on is None
    assert record.endorsements == []
    assert record.total_points == 0


def test_extract_rejects_non_string():
    with pytest.raises(TypeError):
        extract(None)


def test_duplicate_code_scenario_counts_three_points():
    text = "You have 1 offence: SP30\nOffence details\nSP30 Offence date: 2 May 2025\n"
    record = extract(text)
    assert len(record.endorsements) == 1
    assert record.total_points == 3


def test_stated_total_takes_precedence_over_sum():
    text = "SP30 Penalty points: 3\nTotal penalty points: 6\n"
    record = extract(text)
    assert record.total_points == 6
    assert record.points_stated is True


def test_total_is_sum_when_not_stated():
    text = "SP30 Penalty points: 3\nCU80 Penalty points: 3\nIN10 Penalty points: 6\n"
    record = extract(text)
    assert record.total_points == sum(e.points for e in record.endorsements) == 12


def test_raw_text_is_kept_but_not_serialised(record_text):
    record = extract(record_text)
    assert record.raw_text == record_text
    assert "rawText" not in record.model_dump(by_alias=True)


# -------- Pattern tables --------
@pytest.mark.parametrize("text,expected", [
    ("Driving licence number XXXXXXXX162JD9GA", "162JD9GA"),
    ("licence number: XXXXXXXX16SM9IJ", "16SM9IJ"),
    ("ref XXXXXXXXAB12CD", "AB12CD"),
    ("Licence MORGA753116SM9IJ issued", "116SM9IJ"),
    ("nothing to see", None),
])
def test_license_fragment_patterns(text, expected):
    assert _first_match(text, LICENSE_FRAGMENT_PATTERNS) == expected


@pytest.mark.parametrize("text,expected", [
    ("Driver's full name: JANE DOE-SMITH\n", "JANE DOE-SMITH"),
    ("Full name: Mary Anne Jones\nDate of birth", "Mary Anne Jones"),
    # too short to be a name
    ("Full name: AL B\n", None),
    ("DVLA\nPETER JAMES PARKER\nAddress", "PETER JAMES PARKER"),
    ("DRIVING LICENCE\nPETER JAMES PARKER\n", "PETER JAMES PARKER"),
    ("VIEW DRIVING RECORD\nPENALTY POINTS\n", None),
])
def test_holder_name_patterns(text, expected):
    assert _first_match(text, HOLDER_NAME_PATTERNS) == expected


@pytest.mark.parametrize("text,expected", [
    ("Date summary generated: 3 january 2025", date(2025, 1, 3)),
    ("Date summary generated 14 July 2025 09:15", date(2025, 7, 14)),
    ("Record generated on: 2025-06-30", date(2025, 6, 30)),
    ("Date summary generated: 31 Foo 2025", None),
])
def test_generated_on_patterns(text, expected):
    assert _first_match(text, GENERATED_ON_PATTERNS) == expected


def test_categories_keep_only_licence_shaped_tokens():
    assert extract_categories("Categories: B, C1E, D1, AM, XYZ") == ["B", "C1E", "D1", "AM"]
    assert extract_categories("no list") == []


# -------- Fragment matching --------
@pytest.mark.parametrize("fragment,known,expected", [
    ("162JD9GA", "SMITH712162JD9GA", True),
    ("162jd9ga", "smith 712162 jd9ga", True),
    ("162JD9GA", "MORGA753116SM9IJ", False),
    ("9GA", "SMITH712162JD9GA", False),
    (None, "SMITH712162JD9GA", False),
])
def test_license_fragment_matches(fragment, known, expected):
    assert license_fragment_matches(fragment, known) is expected


# -------- Proof of address --------
def test_extract_poa_bill(poa_texts):
    bill, _ = poa_texts
    doc = extract_poa(bill)
    assert doc.provider_name == "British Gas"
    assert doc.document_type == "utility_bill"
    assert doc.document_date == date(2025, 7, 15)
    assert doc.account_number == "12345678"
    assert doc.address == "12 High Street, Leeds, LS1 4AP"


def test_extract_poa_statement(poa_texts):
    _, statement = poa_texts
    doc = extract_poa(statement)
    assert doc.provider_name == "Barclays"
    assert doc.document_type == "bank_statement"
    assert doc.document_date == date(2025, 7, 2)
    assert doc.account_number == "87654321"


def test_extract_poa_missing_fields_are_none():
    doc = extract_poa("illegible scan")
    assert doc.provider_name is None
    assert doc.document_date is None
    assert doc.address is None
    assert doc.account_number is None
