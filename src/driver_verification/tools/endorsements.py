# -*- coding: utf-8 -*-
"""
Endorsement extraction for driving-record summaries.

The same offence is usually printed twice on a summary: once in the narrative
("You have 1 endorsement: SP30") and once in the detail table. Endorsements are
therefore de-duplicated by code; the first match wins and later matches for the
same code can only fill in a missing offence date.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional

from driver_verification.models import Endorsement
from driver_verification.tools.dates import DATE_TOKEN, parse_record_date

LOGGER = logging.getLogger(__name__)

# ------------------------------ Constants ------------------------------------

ENDORSEMENT_PREFIXES = ("SP", "MS", "CU", "IN", "DR", "BA", "DD", "UT", "TT")
DEFAULT_POINTS: int = 3
MAX_POINTS: int = 11

# Vendor table; codes with a range use the lower bound.
ENDORSEMENT_POINTS: Dict[str, int] = {
    "SP10": 3, "SP20": 3, "SP30": 3, "SP40": 3, "SP50": 3,
    "MS30": 3, "MS50": 3, "MS90": 6,
    "CU10": 3, "CU20": 3, "CU30": 3, "CU80": 3,
    "IN10": 6, "IN20": 6,
    "DR10": 3, "DR20": 6, "DR30": 6,
    "BA10": 6, "BA30": 6,
    "DD40": 3, "DD80": 3,
    "UT50": 8,
    "TT99": 0,
}

ENDORSEMENT_DESCRIPTIONS: Dict[str, str] = {
    "SP30": "Exceeding statutory speed limit on a public road",
    "SP50": "Exceeding speed limit on a motorway",
    "MS90": "Failure to give information as to identity of driver",
    "CU80": "Breach of requirements as to control of the vehicle",
    "IN10": "Using a vehicle uninsured against third party risks",
    "DR10": "Driving or attempting to drive with alcohol level above limit",
    "BA10": "Driving while disqualified by order of court",
    "DD40": "Dangerous driving",
    "TT99": "Disqualification under totting up procedure",
}

# A following inward code ("BA10 0AB") makes it a postcode district, not an offence.
_CODE_RE = re.compile(r"\b((?:%s)\d{2})\b(?!\s?\d[A-Z]{2}\b)" % "|".join(ENDORSEMENT_PREFIXES))
_EXPLICIT_POINTS_RES = (
    re.compile(r"penalty\s+points?[:\s]*(\d{1,2})\b", re.IGNORECASE),
    re.compile(r"\b(\d{1,2})\s+(?:penalty\s+)?points?\b", re.IGNORECASE),
)
_OFFENCE_DATE_RES = (
    re.compile(r"offen[cs]e\s+date[:\s]+(%s)" % DATE_TOKEN, re.IGNORECASE),
    re.compile(r"(%s)" % DATE_TOKEN),
)
_WINDOW_MAX_LINES = 4
# Summary lines ("Total penalty points: 9") must not be read as one offence's points.
_WINDOW_STOP_RE = re.compile(r"\btotal\b|\byou\s+have\b", re.IGNORECASE)


# ------------------------------ Helpers --------------------------------------

def default_points_for(code: str) -> int:
    return ENDORSEMENT_POINTS.get(code, DEFAULT_POINTS)


def description_for(code: str) -> str:
    return ENDORSEMENT_DESCRIPTIONS.get(code, "Traffic offence")


def _window(text: str, start: int, end: int) -> str:
    """Text following a code, up to the next code and at most a few lines."""
    lines = text[start:end].split("\n")
    window = "\n".join(lines[:_WINDOW_MAX_LINES])
    stop = _WINDOW_STOP_RE.search(window)
    return window[: stop.start()] if stop else window


def _explicit_points(window: str) -> Optional[int]:
    for pattern in _EXPLICIT_POINTS_RES:
        match = pattern.search(window)
        if match:
            points = int(match.group(1))
            if 0 <= points <= MAX_POINTS:
                return points
    return None


def _offence_date(window: str):
    for pattern in _OFFENCE_DATE_RES:
        match = pattern.search(window)
        if match:
            parsed = parse_record_date(match.group(1))
            if parsed is not None:
                return parsed
    return None


# ------------------------------ Extraction -----------------------------------

def extract_endorsements(text: str) -> List[Endorsement]:
    """Return endorsements in extraction order, at most one per code."""
    if not isinstance(text, str):
        raise TypeError("text must be str")

    matches = list(_CODE_RE.finditer(text))
    by_code: Dict[str, Endorsement] = {}
    ordered: List[str] = []

    for index, match in enumerate(matches):
        code = match.group(1).upper()
        next_start = matches[index + 1].start() if index + 1 < len(matches) else len(text)
        window = _window(text, match.end(), next_start)
        offence_date = _offence_date(window)

        existing = by_code.get(code)
        if existing is not None:
            if existing.offence_date is None and offence_date is not None:
                by_code[code] = existing.model_copy(update={"offence_date": offence_date})
            LOGGER.debug("Skipping repeated endorsement %s", code)
            continue

        points = _explicit_points(window)
        if points is None:
            points = default_points_for(code)
        by_code[code] = Endorsement(
            code=code,
            points=points,
            description=description_for(code),
            offence_date=offence_date,
        )
        ordered.append(code)
        LOGGER.info("Found endorsement %s (%d points)", code, points)

    return [by_code[code] for code in ordered]


def sum_points(endorsements: List[Endorsement]) -> int:
    return sum(e.points for e in endorsements)
