# -*- coding: utf-8 -*-
"""
Underwriting decision engine.

Design
------
- decide() is deterministic: the record, the policy and `today` fully
  determine the result. The first matching rule wins:
    1. record not validated / too old         -> referred
    2. serious offence code or ban keyword    -> referred (overrides points)
    3. points tiers                           -> approved / referred / declined
  followed by the recent-offence excess adjustment on approved results only.
- The outcome is a single enum, so "approved and under review" cannot occur.
- Every threshold and amount comes from UnderwritingPolicy (YAML).
"""

from __future__ import annotations

import logging
import re
from datetime import date
from typing import List, Optional

from driver_verification.models import (
    DecisionOutcome,
    DrivingRecordExtract,
    Endorsement,
    RiskTier,
    UnderwritingDecision,
)
from driver_verification.tools.dates import months_before
from driver_verification.tools.policy import UnderwritingPolicy, load_policy

LOGGER = logging.getLogger(__name__)


def _approved(tier: RiskTier, reason: str, excess: int = 0) -> UnderwritingDecision:
    return UnderwritingDecision(outcome=DecisionOutcome.APPROVED, risk_tier=tier, excess=excess, reasons=[reason])


def _referred(reason: str, tier: RiskTier = RiskTier.STANDARD) -> UnderwritingDecision:
    return UnderwritingDecision(outcome=DecisionOutcome.REFERRED, risk_tier=tier, reasons=[reason])


def _declined(reason: str) -> UnderwritingDecision:
    return UnderwritingDecision(outcome=DecisionOutcome.DECLINED, risk_tier=RiskTier.HIGH, reasons=[reason])


# ------------------------------ Rule helpers ----------------------------------

def serious_offences(record: DrivingRecordExtract, policy: UnderwritingPolicy) -> List[str]:
    """Serious endorsement codes plus any ban keyword found in the raw text."""
    found = [e.code for e in record.endorsements if policy.is_serious(e.code)]
    for keyword in policy.ban_keywords:
        match = re.search(keyword, record.raw_text or "", re.IGNORECASE)
        if match:
            found.append(f"'{match.group(0)}'")
    return found


def _single_family(endorsements: List[Endorsement]) -> bool:
    return len({e.code[:2] for e in endorsements}) == 1


def _medium_tier(record: DrivingRecordExtract, policy: UnderwritingPolicy) -> UnderwritingDecision:
    points = record.total_points
    endorsements = record.endorsements
    if not endorsements:
        return _referred(f"{points} points with no itemised endorsements - requires review")
    if not _single_family(endorsements):
        return _referred(f"Mixed offences with {points} points - requires review")
    if points == policy.medium_max_points and len(endorsements) == 1:
        code = endorsements[0].code
        if code not in policy.moderate_offence_codes:
            return _referred(f"Single {points}-point offence {code} - requires review")
    return _approved(
        RiskTier.MEDIUM,
        f"{points} points from {endorsements[0].code[:2]} offences only - approved with excess",
        excess=policy.medium_excess,
    )


def _high_tier(record: DrivingRecordExtract, policy: UnderwritingPolicy) -> UnderwritingDecision:
    points = record.total_points
    endorsements = record.endorsements
    if len(endorsements) == policy.high_offence_count and all(
        e.points == policy.high_points_per_offence for e in endorsements
    ):
        return _approved(
            RiskTier.HIGH,
            f"{points} points from {len(endorsements)} separate offences - approved with excess",
            excess=policy.high_excess,
        )
    return _referred(f"{points} points not from separate minor offences - requires review", RiskTier.HIGH)


def _points_tier(record: DrivingRecordExtract, policy: UnderwritingPolicy) -> UnderwritingDecision:
    points = record.total_points
    if points <= policy.clean_max_points:
        return _approved(RiskTier.LOW, "Clean licence - no points")
    if points <= policy.minor_max_points:
        return _approved(RiskTier.STANDARD, "Minor points - standard approval")
    if points <= policy.medium_max_points:
        return _medium_tier(record, policy)
    if points < policy.high_points:
        return _referred(f"{points} points - requires review", RiskTier.HIGH)
    if points == policy.high_points:
        return _high_tier(record, policy)
    return _declined(f"{points} points - exceeds insurance limits")


def _apply_recent_offence(
    decision: UnderwritingDecision,
    record: DrivingRecordExtract,
    policy: UnderwritingPolicy,
    today: date,
) -> UnderwritingDecision:
    cutoff = months_before(today, policy.recent_offence_months)
    recent = [
        e.code for e in record.endorsements
        if e.offence_date is not None and cutoff <= e.offence_date <= today
    ]
    if not recent:
        return decision
    return decision.model_copy(
        update={
            "excess": max(decision.excess, policy.recent_offence_min_excess),
            "reasons": decision.reasons + [
                f"Offence within the last {policy.recent_offence_months} months ({', '.join(recent)}) - "
                f"minimum excess {policy.recent_offence_min_excess} applies"
            ],
        }
    )


# ------------------------------ Public API ------------------------------------

def decide(
    record: DrivingRecordExtract,
    policy: Optional[UnderwritingPolicy] = None,
    today: Optional[date] = None,
) -> UnderwritingDecision:
    policy = policy or load_policy()
    today = today or date.today()

    if not record.is_valid or record.age_in_days > policy.max_document_age_days:
        decision = _referred("Driving record could not be validated")
    else:
        serious = serious_offences(record, policy)
        if serious:
            decision = _referred(
                f"Serious driving offence detected ({', '.join(serious)}) - requires underwriter review",
                RiskTier.HIGH,
            )
        else:
            decision = _points_tier(record, policy)

    if decision.outcome is DecisionOutcome.APPROVED:
        decision = _apply_recent_offence(decision, record, policy, today)

    LOGGER.info(
        "Underwriting decision: %s tier=%s excess=%d points=%d",
        decision.outcome.value,
        decision.risk_tier.value,
        decision.excess,
        record.total_points,
    )
    return decision
