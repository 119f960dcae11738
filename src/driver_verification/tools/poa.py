# -*- coding: utf-8 -*-
"""
Proof-of-address cross validation.

Two POA documents are accepted together only when both are readable, they
come from different providers or are different document types, both are
recent, both carry the licence address and they are not the same account.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Dict, Optional

from driver_verification.models import PoaDocument, PoaValidation
from driver_verification.tools.dates import days_since
from driver_verification.tools.extract import POSTCODE_RE
from driver_verification.tools.policy import UnderwritingPolicy, load_policy

LOGGER = logging.getLogger(__name__)


def poa_valid_until(document_date: Optional[date], policy: Optional[UnderwritingPolicy] = None) -> Optional[date]:
    """Date stored on the driver record; the classifier treats the POA as valid before it."""
    if document_date is None:
        return None
    policy = policy or load_policy()
    return document_date + timedelta(days=policy.poa_max_age_days)


def postcode_of(address: Optional[str]) -> Optional[str]:
    if not address:
        return None
    match = POSTCODE_RE.search(address.upper())
    if not match:
        return None
    return match.group(1) + match.group(2)


def _normalise_account(value: Optional[str]) -> str:
    return (value or "").replace("*", "").replace(" ", "")


def _readable(document: PoaDocument) -> bool:
    return bool(document.provider_name and document.document_date and document.address)


def _same(a: Optional[str], b: Optional[str]) -> bool:
    return (a or "").strip().lower() == (b or "").strip().lower()


def cross_validate_poa(
    poa1: PoaDocument,
    poa2: PoaDocument,
    license_address: Optional[str],
    today: date,
    policy: Optional[UnderwritingPolicy] = None,
) -> PoaValidation:
    policy = policy or load_policy()
    issues = []

    both_valid = _readable(poa1) and _readable(poa2)
    if not both_valid:
        issues.append("One or both POA documents are unreadable")

    different_types = not _same(poa1.document_type, poa2.document_type)
    different_providers = not _same(poa1.provider_name, poa2.provider_name)
    if not (different_types or different_providers):
        issues.append("POA documents must be from different providers or different document types")

    limit = policy.poa_max_age_days
    both_recent = all(
        days_since(d.document_date, today) <= limit for d in (poa1, poa2)
    )
    if not both_recent:
        issues.append(f"One or both POA documents are older than {limit} days")

    license_postcode = postcode_of(license_address)
    addresses_match = license_postcode is not None and all(
        postcode_of(d.address) == license_postcode for d in (poa1, poa2)
    )
    if not addresses_match:
        issues.append("POA addresses do not match license address")

    account1 = _normalise_account(poa1.account_number)
    distinct_accounts = not (account1 and account1 == _normalise_account(poa2.account_number))
    if not distinct_accounts:
        issues.append("POA documents appear to be identical - same account number detected")

    compliance: Dict[str, bool] = {
        "bothValid": both_valid,
        "differentTypes": different_types,
        "differentProviders": different_providers,
        "bothRecent": both_recent,
        "addressesMatch": addresses_match,
        "distinctAccounts": distinct_accounts,
    }
    approved = (
        both_valid
        and (different_types or different_providers)
        and both_recent
        and addresses_match
        and distinct_accounts
    )
    LOGGER.info("POA cross validation: approved=%s issues=%d", approved, len(issues))
    return PoaValidation(approved=approved, issues=issues, compliance=compliance)
