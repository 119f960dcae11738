from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from dateutil import parser as date_parser
from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel

_NO_YEAR = datetime(1, 1, 1)


def coerce_date(value: Any) -> Optional[date]:
    """Lenient date coercion for board values; anything unparsable becomes None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    try:
        parsed = date_parser.parse(text, dayfirst=True, default=_NO_YEAR)
    except (ValueError, OverflowError):
        return None
    # a bare day or "15 March" must not borrow the current year
    if parsed.year == _NO_YEAR.year:
        return None
    return parsed.date()


class _Record(BaseModel):
    # camelCase on the wire, snake_case in Python
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    FAILED = "failed"


class RiskTier(str, Enum):
    LOW = "low"
    STANDARD = "standard"
    MEDIUM = "medium"
    HIGH = "high"


class DecisionOutcome(str, Enum):
    APPROVED = "approved"
    REFERRED = "referred"   # manual underwriter review
    DECLINED = "declined"


class RoutingStep(str, Enum):
    FULL_VERIFICATION = "full-verification"
    SELECTIVE_VERIFICATION = "selective-verification"
    PROOF_OF_ADDRESS_VALIDATION = "proof-of-address-validation"
    DOMESTIC_RECORD_CHECK = "domestic-record-check"
    PASSPORT_CHECK = "passport-check"
    SIGNATURE = "signature"


class CompletedStep(str, Enum):
    INSURANCE_QUESTIONNAIRE = "insurance-questionnaire"
    KYC_COMPLETE = "kyc-complete"
    PROCESSING_HUB = "processing-hub"
    POA_VALIDATION_COMPLETE = "proof-of-address-validation-complete"
    DOMESTIC_RECORD_CHECK_COMPLETE = "domestic-record-check-complete"
    PASSPORT_CHECK_COMPLETE = "passport-check-complete"


# ------------------------------ Driving record --------------------------------

class Endorsement(_Record):
    code: str
    points: int
    description: str = "Traffic offence"
    offence_date: Optional[date] = None


class DrivingRecordExtract(_Record):
    # Trailing fragment only; the leading characters are masked on the document.
    license_identifier: Optional[str] = None
    holder_name: Optional[str] = None
    verification_code: Optional[str] = None
    generated_on: Optional[date] = None
    age_in_days: int = 999
    endorsements: List[Endorsement] = Field(default_factory=list)
    total_points: int = 0
    points_stated: bool = False
    categories: List[str] = Field(default_factory=list)
    driving_status: Optional[str] = None
    is_valid: bool = False
    issues: List[str] = Field(default_factory=list)
    confidence: Optional[Confidence] = None
    raw_text: str = Field(default="", exclude=True, repr=False)


# ------------------------------ Driver documents ------------------------------

class PersistedDriverFields(_Record):
    """Flat driver record as stored on the board; dates arrive as loose strings."""

    email: Optional[str] = None
    license_issued_by: Optional[str] = None
    nationality: Optional[str] = None
    license_ending: Optional[str] = None
    license_next_check_due: Optional[date] = None
    poa1_valid_until: Optional[date] = None
    poa2_valid_until: Optional[date] = None
    dvla_valid_until: Optional[date] = None
    dvla_generated_on: Optional[date] = None
    passport_valid_until: Optional[date] = None
    kyc_check_date: Optional[date] = None

    @field_validator(
        "license_next_check_due",
        "poa1_valid_until",
        "poa2_valid_until",
        "dvla_valid_until",
        "dvla_generated_on",
        "passport_valid_until",
        "kyc_check_date",
        mode="before",
    )
    @classmethod
    def _lenient_date(cls, value: Any) -> Optional[date]:
        return coerce_date(value)

    @field_validator("license_issued_by", "nationality", "email", "license_ending", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None


class DocumentStatus(_Record):
    valid: bool = False
    expiry_or_check_due_date: Optional[date] = None
    kind: Optional[str] = None   # domestic-record | passport (fourth document only)


class DocumentValiditySnapshot(_Record):
    license: DocumentStatus = Field(default_factory=DocumentStatus)
    proof_of_address1: DocumentStatus = Field(default_factory=DocumentStatus)
    proof_of_address2: DocumentStatus = Field(default_factory=DocumentStatus)
    driving_record_or_passport: DocumentStatus = Field(default_factory=DocumentStatus)
    is_domestic_license_holder: bool = False
    issues: List[str] = Field(default_factory=list)

    @computed_field(alias="allValid")  # type: ignore[misc]
    @property
    def all_valid(self) -> bool:
        return (
            self.license.valid
            and self.proof_of_address1.valid
            and self.proof_of_address2.valid
            and self.driving_record_or_passport.valid
        )


# ------------------------------ Decisions -------------------------------------

class UnderwritingDecision(_Record):
    outcome: DecisionOutcome
    excess: int = 0
    risk_tier: RiskTier = RiskTier.STANDARD
    reasons: List[str] = Field(default_factory=list)

    @computed_field  # type: ignore[misc]
    @property
    def approved(self) -> bool:
        return self.outcome is DecisionOutcome.APPROVED

    @computed_field(alias="manualReview")  # type: ignore[misc]
    @property
    def manual_review(self) -> bool:
        return self.outcome is DecisionOutcome.REFERRED


class RoutingResult(_Record):
    next_step: RoutingStep
    reason: str
    missing_documents: List[str] = Field(default_factory=list)
    document_status: Optional[DocumentValiditySnapshot] = None


# ------------------------------ Proof of address ------------------------------

class PoaDocument(_Record):
    document_type: Optional[str] = None   # utility_bill | bank_statement | council_tax | ...
    provider_name: Optional[str] = None
    document_date: Optional[date] = None
    address: Optional[str] = None
    account_number: Optional[str] = None

    @field_validator("document_date", mode="before")
    @classmethod
    def _lenient_date(cls, value: Any) -> Optional[date]:
        return coerce_date(value)


class PoaValidation(_Record):
    approved: bool
    issues: List[str] = Field(default_factory=list)
    compliance: Dict[str, bool] = Field(default_factory=dict)


# ------------------------------ Webhook polling -------------------------------

class WebhookPending(_Record):
    status: Literal["pending"] = "pending"


class WebhookCompleted(_Record):
    status: Literal["completed"] = "completed"
    changed_fields: List[str] = Field(default_factory=list)
    snapshot: DocumentValiditySnapshot


WebhookState = Annotated[Union[WebhookPending, WebhookCompleted], Field(discriminator="status")]
