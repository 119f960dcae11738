# -*- coding: utf-8 -*-
"""
Webhook completion detection.

The KYC vendor writes its results to the driver record asynchronously. A
caller polls the record and hands the first and latest copies to
detect_webhook_completion(); only the allow-listed fields count as evidence
that the webhook has landed.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional, Sequence

from driver_verification.models import (
    PersistedDriverFields,
    WebhookCompleted,
    WebhookPending,
    WebhookState,
)
from driver_verification.tools.policy import UnderwritingPolicy
from driver_verification.tools.validity import classify

LOGGER = logging.getLogger(__name__)

# Fields the KYC webhook writes when it completes.
DEFAULT_COMPLETION_FIELDS: Sequence[str] = (
    "license_next_check_due",
    "poa1_valid_until",
    "poa2_valid_until",
    "kyc_check_date",
    "license_ending",
    "license_issued_by",
)


def changed_fields(
    initial: PersistedDriverFields,
    current: PersistedDriverFields,
    completion_fields: Sequence[str],
) -> List[str]:
    unknown = [f for f in completion_fields if f not in PersistedDriverFields.model_fields]
    if unknown:
        raise ValueError(f"Unknown driver fields in completion allow-list: {unknown}")
    return [
        field
        for field in completion_fields
        if getattr(current, field) is not None and getattr(current, field) != getattr(initial, field)
    ]


def detect_webhook_completion(
    initial: PersistedDriverFields,
    current: PersistedDriverFields,
    completion_fields: Sequence[str] = DEFAULT_COMPLETION_FIELDS,
    today: Optional[date] = None,
    policy: Optional[UnderwritingPolicy] = None,
) -> WebhookState:
    changed = changed_fields(initial, current, completion_fields)
    if not changed:
        LOGGER.debug("Webhook pending for %s", current.email or "<unknown>")
        return WebhookPending()

    LOGGER.info("Webhook completed for %s: %s changed", current.email or "<unknown>", ", ".join(changed))
    snapshot = classify(today or date.today(), current, policy)
    return WebhookCompleted(changed_fields=changed, snapshot=snapshot)
