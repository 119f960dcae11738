# -*- coding: utf-8 -*-
"""
Routing state machine: (validity snapshot, step just completed) -> next step.

Design
------
- Pure function of its two inputs; calling it again with the same inputs
  yields the same step, so clients can poll and retry freely.
- Rows are evaluated top to bottom; the first row whose marker and condition
  both hold wins. A recognised marker whose conditions all fail, or an
  unrecognised marker, falls through to the fallback row (logged at WARNING
  for unrecognised markers, never raised).
- Marker names used by older clients are accepted through STEP_ALIASES.
"""

from __future__ import annotations

import logging
from typing import Dict, List, NamedTuple, Optional, Sequence, Union

from driver_verification.models import (
    CompletedStep,
    DocumentValiditySnapshot,
    RoutingResult,
    RoutingStep,
)

LOGGER = logging.getLogger(__name__)

STEP_ALIASES: Dict[str, CompletedStep] = {
    "insurance-complete": CompletedStep.INSURANCE_QUESTIONNAIRE,
    "idenfy-complete": CompletedStep.KYC_COMPLETE,
    "poa-validation-complete": CompletedStep.POA_VALIDATION_COMPLETE,
    "dvla-complete": CompletedStep.DOMESTIC_RECORD_CHECK_COMPLETE,
    "passport-complete": CompletedStep.PASSPORT_CHECK_COMPLETE,
}


class _Route(NamedTuple):
    step: RoutingStep
    reason: str
    missing: Sequence[str] = ()


def normalize_step(marker: Union[str, CompletedStep, None]) -> Optional[CompletedStep]:
    """Canonical CompletedStep for a caller marker, or None if it is not recognised."""
    if marker is None:
        return None
    if isinstance(marker, CompletedStep):
        return marker
    key = marker.strip().lower()
    if key in STEP_ALIASES:
        return STEP_ALIASES[key]
    try:
        return CompletedStep(key)
    except ValueError:
        return None


def _missing_core(snapshot: DocumentValiditySnapshot) -> List[str]:
    missing = []
    if not snapshot.license.valid:
        missing.append("license")
    if not snapshot.proof_of_address1.valid:
        missing.append("proofOfAddress1")
    if not snapshot.proof_of_address2.valid:
        missing.append("proofOfAddress2")
    return missing


def _fourth_document_route(snapshot: DocumentValiditySnapshot, context: str) -> _Route:
    if snapshot.is_domestic_license_holder:
        return _Route(RoutingStep.DOMESTIC_RECORD_CHECK, f"Domestic licence holder needs a driving record check {context}")
    return _Route(RoutingStep.PASSPORT_CHECK, f"Non-domestic licence holder needs passport verification {context}")


def _fallback(snapshot: DocumentValiditySnapshot) -> _Route:
    missing = _missing_core(snapshot)
    if len(missing) == 3:
        return _Route(RoutingStep.FULL_VERIFICATION, "Licence and both proofs of address expired or missing", missing)
    if missing:
        return _Route(RoutingStep.SELECTIVE_VERIFICATION, f"Need to upload: {', '.join(missing)}", missing)
    return _Route(RoutingStep.SIGNATURE, "Licence and proofs of address are valid")


def _after_insurance(snapshot: DocumentValiditySnapshot) -> Optional[_Route]:
    missing = _missing_core(snapshot)
    if not missing and not snapshot.driving_record_or_passport.valid:
        return _fourth_document_route(snapshot, "after the insurance questionnaire")
    if len(missing) == 3:
        return _Route(RoutingStep.FULL_VERIFICATION, "First verification or all identity documents expired", missing)
    if missing:
        return _Route(RoutingStep.SELECTIVE_VERIFICATION, f"Need to upload: {', '.join(missing)}", missing)
    return None


def _after_kyc(snapshot: DocumentValiditySnapshot) -> Optional[_Route]:
    if not snapshot.proof_of_address1.valid or not snapshot.proof_of_address2.valid:
        missing = [name for name in _missing_core(snapshot) if name != "license"]
        return _Route(RoutingStep.PROOF_OF_ADDRESS_VALIDATION, "Proofs of address need validation and date extraction", missing)
    if not snapshot.driving_record_or_passport.valid:
        return _fourth_document_route(snapshot, "after identity verification")
    return None


def _after_poa(snapshot: DocumentValiditySnapshot) -> Optional[_Route]:
    if not snapshot.driving_record_or_passport.valid:
        return _fourth_document_route(snapshot, "after proof-of-address validation")
    return None


def _evaluate(snapshot: DocumentValiditySnapshot, marker: Union[str, CompletedStep, None]) -> _Route:
    if snapshot.all_valid:
        return _Route(RoutingStep.SIGNATURE, "All documents are valid and up to date")

    step = normalize_step(marker)
    found: Optional[_Route] = None
    if step is CompletedStep.INSURANCE_QUESTIONNAIRE:
        found = _after_insurance(snapshot)
    elif step in (CompletedStep.KYC_COMPLETE, CompletedStep.PROCESSING_HUB):
        found = _after_kyc(snapshot)
    elif step is CompletedStep.POA_VALIDATION_COMPLETE:
        found = _after_poa(snapshot)
    elif step in (CompletedStep.DOMESTIC_RECORD_CHECK_COMPLETE, CompletedStep.PASSPORT_CHECK_COMPLETE):
        found = _Route(RoutingStep.SIGNATURE, f"{step.value.replace('-complete', '')} complete, ready for signature")
    elif marker is not None:
        LOGGER.warning("Unrecognised step marker %r; recomputing from document validity", marker)

    return found or _fallback(snapshot)


# ------------------------------ Public API ------------------------------------

def next_step(
    snapshot: DocumentValiditySnapshot,
    just_completed: Union[str, CompletedStep, None] = None,
) -> RoutingStep:
    return _evaluate(snapshot, just_completed).step


def route(
    snapshot: DocumentValiditySnapshot,
    just_completed: Union[str, CompletedStep, None] = None,
) -> RoutingResult:
    """next_step() plus the reason, the documents still missing and the analysed snapshot."""
    decided = _evaluate(snapshot, just_completed)
    LOGGER.info("Next step after %r: %s (%s)", just_completed, decided.step.value, decided.reason)
    return RoutingResult(
        next_step=decided.step,
        reason=decided.reason,
        missing_documents=list(decided.missing),
        document_status=snapshot,
    )
