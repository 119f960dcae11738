# -*- coding: utf-8 -*-
"""
Field extraction from OCR'd driving-record and proof-of-address text.

Design
------
- Each field has an ordered table of (pattern, extractor) pairs; the first
  pattern whose extractor returns a value wins. New document layouts are added
  by appending rows, not by touching control flow.
- Extraction never raises for missing data: an absent field is None / empty.
  Only non-string input is rejected (TypeError).
- The licence number is masked on the document ("XXXXXXXX162JD9GA"), so only a
  trailing fragment is kept. Compare it with license_fragment_matches().
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, List, Optional, Sequence, Tuple

from driver_verification.models import DrivingRecordExtract, PoaDocument
from driver_verification.tools.dates import DATE_TOKEN, parse_record_date
from driver_verification.tools.endorsements import extract_endorsements, sum_points

LOGGER = logging.getLogger(__name__)

# An extractor turns a match into a field value, or None to try the next match.
Extractor = Callable[[re.Match], Any]
PatternTable = Sequence[Tuple[re.Pattern, Extractor]]

MIN_FRAGMENT_LENGTH: int = 6

# ------------------------------ Generic helpers -------------------------------

def _group(index: int = 1) -> Extractor:
    def extractor(match: re.Match) -> Optional[str]:
        value = (match.group(index) or "").strip()
        return value or None
    return extractor


def _first_match(text: str, table: PatternTable) -> Any:
    for pattern, extractor in table:
        for match in pattern.finditer(text):
            value = extractor(match)
            if value is not None:
                return value
    return None


def _require_text(text: object) -> str:
    if not isinstance(text, str):
        raise TypeError(f"expected OCR text as str, got {type(text).__name__}")
    return text


# ------------------------------ Driving record --------------------------------

def _last_eight(match: re.Match) -> Optional[str]:
    return match.group(1)[-8:]


LICENSE_FRAGMENT_PATTERNS: PatternTable = (
    (re.compile(r"Driving licence number[:\s]+X{8}([A-Z0-9]{6,8})", re.IGNORECASE), _group()),
    (re.compile(r"licen[cs]e number[:\s]+X{8}([A-Z0-9]{6,8})", re.IGNORECASE), _group()),
    (re.compile(r"X{8}([A-Z0-9]{6,8})"), _group()),
    # Unmasked 16-character licence number; keep the same trailing fragment.
    (re.compile(r"\b([A-Z9]{5}\d{6}[A-Z9]{2}\d[A-Z]{2})\b"), _last_eight),
)


def _plausible_name(match: re.Match) -> Optional[str]:
    name = " ".join(match.group(1).split())
    if 5 < len(name) < 50:
        return name
    return None


# Words that only appear in document headings, never in a holder's name.
_HEADING_WORDS = frozenset({
    "DVLA", "DRIVING", "DRIVER", "LICENCE", "LICENSE", "RECORD", "SUMMARY", "VIEW",
    "PENALTY", "POINTS", "ENDORSEMENTS", "ENDORSEMENT", "OFFENCES", "CATEGORIES",
    "VEHICLE", "VEHICLES", "CHECK", "CODE", "DETAILS", "STATUS", "PROVISIONAL", "FULL",
    "CURRENT", "VALID", "ENTITLEMENT", "PERSONAL", "INFORMATION", "AGENCY", "STANDARDS",
})


def _unlabelled_name(match: re.Match) -> Optional[str]:
    if _HEADING_WORDS.intersection(match.group(1).split()):
        return None
    return _plausible_name(match)


HOLDER_NAME_PATTERNS: PatternTable = (
    (re.compile(r"Driver'?s full name[:\s]+([A-Za-z][A-Za-z' \-]+?)[ \t]*(?:\n|Date|$)", re.IGNORECASE), _plausible_name),
    (re.compile(r"full name[:\s]+([A-Za-z][A-Za-z' \-]+?)[ \t]*(?:\n|Date|$)", re.IGNORECASE), _plausible_name),
    (re.compile(r"^([A-Z]{2,}[ \t]+[A-Z]{2,}(?:[ \t]+[A-Z]{2,})?)[ \t]*$", re.MULTILINE), _unlabelled_name),
)

CHECK_CODE_LAYOUT = re.compile(r"^[A-Za-z0-9]{2}( [A-Za-z0-9]{2}){3}$")

VERIFICATION_CODE_PATTERNS: PatternTable = (
    (
        re.compile(
            r"check code[:\s]*([A-Za-z0-9]{2}\s+[A-Za-z0-9]{2}\s+[A-Za-z0-9]{2}\s+[A-Za-z0-9]{2})\b",
            re.IGNORECASE,
        ),
        lambda m: " ".join(m.group(1).split()),
    ),
    (re.compile(r"check code[:\s]*([A-Za-z0-9]{8})\b", re.IGNORECASE), _group()),
)


def _record_date(match: re.Match):
    return parse_record_date(match.group(1))


GENERATED_ON_PATTERNS: PatternTable = (
    (
        re.compile(r"Date summary generated[:\s]+(\d{1,2}\s+[A-Za-z]+\s+\d{4}(?:\s+\d{1,2}:\d{2})?)", re.IGNORECASE),
        _record_date,
    ),
    (re.compile(r"(?:summary|record)\s+generated(?:\s+on)?[:\s]+(%s)" % DATE_TOKEN, re.IGNORECASE), _record_date),
)


def _points(match: re.Match) -> Optional[int]:
    return int(match.group(1))


TOTAL_POINTS_PATTERNS: PatternTable = (
    (re.compile(r"total\s+(?:penalty\s+)?points?[:\s]+(\d{1,2})\b", re.IGNORECASE), _points),
    (re.compile(r"you\s+have\s+(\d{1,2})\s+(?:penalty\s+)?points?\b", re.IGNORECASE), _points),
)

_CATEGORY_TOKEN = re.compile(r"^(?:AM|[A-Z][0-9]?E?)$")
_CATEGORIES_RE = re.compile(r"(?i:categor(?:y|ies))[:\s]+([A-Z0-9+, ]+)")

DRIVING_STATUS_PATTERNS: PatternTable = (
    (re.compile(r"current\s+full\s+licen[cs]e", re.IGNORECASE), lambda m: "Current full licence"),
    (re.compile(r"provisional\s+licen[cs]e", re.IGNORECASE), lambda m: "Provisional licence"),
)


def extract_categories(text: str) -> List[str]:
    match = _CATEGORIES_RE.search(text)
    if not match:
        return []
    categories: List[str] = []
    for token in re.split(r"[,\s+]+", match.group(1)):
        if _CATEGORY_TOKEN.match(token) and token not in categories:
            categories.append(token)
    return categories


def extract(text: str) -> DrivingRecordExtract:
    """
    Parse driving-record OCR text into a DrivingRecordExtract.

    Validation outputs (issues, confidence, is_valid, age_in_days) are left at
    their defaults; see validity.validate_record().
    """
    text = _require_text(text)

    endorsements = extract_endorsements(text)
    stated_total = _first_match(text, TOTAL_POINTS_PATTERNS)
    total_points = stated_total if stated_total is not None else sum_points(endorsements)

    record = DrivingRecordExtract(
        license_identifier=_first_match(text, LICENSE_FRAGMENT_PATTERNS),
        holder_name=_first_match(text, HOLDER_NAME_PATTERNS),
        verification_code=_first_match(text, VERIFICATION_CODE_PATTERNS),
        generated_on=_first_match(text, GENERATED_ON_PATTERNS),
        endorsements=endorsements,
        total_points=total_points,
        points_stated=stated_total is not None,
        categories=extract_categories(text),
        driving_status=_first_match(text, DRIVING_STATUS_PATTERNS),
        raw_text=text,
    )
    LOGGER.info(
        "Extracted driving record: fragment=%s code=%s generated=%s endorsements=%d points=%d",
        record.license_identifier,
        "yes" if record.verification_code else "no",
        record.generated_on,
        len(record.endorsements),
        record.total_points,
    )
    return record


def license_fragment_matches(fragment: Optional[str], known_identifier: Optional[str]) -> bool:
    """Compare trailing characters only; both sides may be masked or partial."""
    a = re.sub(r"[^A-Z0-9]", "", (fragment or "").upper())
    b = re.sub(r"[^A-Z0-9]", "", (known_identifier or "").upper())
    n = min(len(a), len(b))
    if n < MIN_FRAGMENT_LENGTH:
        return False
    return a[-n:] == b[-n:]


# ------------------------------ Proof of address ------------------------------

KNOWN_PROVIDERS = (
    "British Gas", "EDF Energy", "Scottish Power", "Thames Water", "Octopus Energy",
    "HSBC", "Barclays", "Lloyds", "NatWest", "Santander", "Nationwide",
)

_PROVIDER_RE = re.compile(r"(?:bill from|statement from|from)[:\s]+([A-Z][A-Za-z &]+?)[ \t]*(?:\n|Account|$)", re.IGNORECASE)

DOCUMENT_TYPE_KEYWORDS: Sequence[Tuple[str, str]] = (
    (r"council\s+tax", "council_tax"),
    (r"bank\s+statement|statement\s+of\s+account|sort\s+code", "bank_statement"),
    (r"\b(?:gas|electricity|energy|water|broadband)\b|\bbill\b", "utility_bill"),
)

POA_DATE_PATTERNS: PatternTable = (
    (
        re.compile(r"(?:statement date|bill date|issue date|dated?)[:\s]+(%s)" % DATE_TOKEN, re.IGNORECASE),
        _record_date,
    ),
    (re.compile(r"(\d{1,2}\s+[A-Za-z]{3,9}\s+\d{4})"), _record_date),
)

ACCOUNT_PATTERNS: PatternTable = (
    (re.compile(r"account(?:\s+(?:number|no\.?))?[:\s]+(\*{0,4}\d{4,})", re.IGNORECASE), _group()),
    (re.compile(r"customer(?:\s+(?:number|reference))?[:\s]+(\*{0,4}\d{4,})", re.IGNORECASE), _group()),
)

POSTCODE_RE = re.compile(r"\b([A-Z]{1,2}\d[A-Z\d]?)\s*(\d[A-Z]{2})\b")
_ADDRESS_START_RE = re.compile(r"^\d+[A-Za-z]?\s+[A-Za-z]")
_MAX_ADDRESS_LINES = 6


def _provider(text: str) -> Optional[str]:
    lowered = text.lower()
    for provider in KNOWN_PROVIDERS:
        if provider.lower() in lowered:
            return provider
    match = _PROVIDER_RE.search(text)
    return match.group(1).strip() if match else None


def _document_type(text: str) -> Optional[str]:
    for pattern, kind in DOCUMENT_TYPE_KEYWORDS:
        if re.search(pattern, text, re.IGNORECASE):
            return kind
    return None


def _address(text: str) -> Optional[str]:
    """Lines from a house-number line down to the postcode line."""
    collected: List[str] = []
    for raw in text.split("\n"):
        line = raw.strip()
        if _ADDRESS_START_RE.match(line):
            collected = [line]
        elif collected and len(line) > 2:
            collected.append(line)
        else:
            continue
        if POSTCODE_RE.search(line.upper()):
            return ", ".join(collected)
        if len(collected) > _MAX_ADDRESS_LINES:
            collected = []
    return None


def extract_poa(text: str) -> PoaDocument:
    text = _require_text(text)
    document = PoaDocument(
        document_type=_document_type(text),
        provider_name=_provider(text),
        document_date=_first_match(text, POA_DATE_PATTERNS),
        address=_address(text),
        account_number=_first_match(text, ACCOUNT_PATTERNS),
    )
    LOGGER.info(
        "Extracted proof of address: type=%s provider=%s date=%s",
        document.document_type,
        document.provider_name,
        document.document_date,
    )
    return document
