import logging
from datetime import date
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from driver_verification.models import PersistedDriverFields, PoaDocument
from driver_verification.tools.board import BoardClient, BoardError
from driver_verification.tools.emails_decision import default_limiter, send_decision_email
from driver_verification.tools.extract import extract, extract_poa
from driver_verification.tools.ocr import average_confidence, lines_from_blocks, sanitize_ocr_text
from driver_verification.tools.poa import cross_validate_poa, poa_valid_until
from driver_verification.tools.policy import load_policy
from driver_verification.tools.routing import route
from driver_verification.tools.underwriting import decide
from driver_verification.tools.validity import classify, validate_record
from driver_verification.tools.webhook import DEFAULT_COMPLETION_FIELDS, detect_webhook_completion

LOGGER = logging.getLogger(__name__)

# Load environment variables
load_dotenv()

app = FastAPI(title="Driver Verification API")

_EMAIL_LIMITER = default_limiter()


class _Request(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DrivingRecordInput(_Request):
    text: Optional[str] = None
    blocks: Optional[Dict[str, Any]] = None   # vendor OCR response
    expected_license: Optional[str] = None
    notify_email: Optional[str] = None
    driver_name: Optional[str] = None
    today: Optional[date] = None


class NextStepInput(_Request):
    email: Optional[str] = None
    current_step: Optional[str] = None
    driver: Optional[PersistedDriverFields] = None
    today: Optional[date] = None


class PoaInput(_Request):
    poa1_text: Optional[str] = None
    poa2_text: Optional[str] = None
    poa1: Optional[PoaDocument] = None
    poa2: Optional[PoaDocument] = None
    license_address: Optional[str] = None
    today: Optional[date] = None


class WebhookInput(_Request):
    email: Optional[str] = None
    initial: PersistedDriverFields
    current: Optional[PersistedDriverFields] = None
    completion_fields: List[str] = Field(default_factory=lambda: list(DEFAULT_COMPLETION_FIELDS))
    today: Optional[date] = None


def get_board_client() -> Optional[BoardClient]:
    try:
        return BoardClient.from_env()
    except BoardError as exc:
        LOGGER.warning("Board client unavailable: %s", exc)
        return None


def _dump(model: BaseModel) -> Dict[str, Any]:
    return model.model_dump(by_alias=True, mode="json")


def _lookup_driver(email: Optional[str], board: Optional[BoardClient]) -> PersistedDriverFields:
    if not email:
        raise HTTPException(status_code=400, detail="email or driver record is required")
    if board is None:
        raise HTTPException(status_code=502, detail="Board client is not configured")
    try:
        driver = board.find_driver(email)
    except BoardError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    if driver is None:
        raise HTTPException(status_code=404, detail=f"Driver not found: {email}")
    return driver


@app.get("/ping")
def ping():
    return {"pong": True}


@app.post("/driving-record")
def driving_record(payload: DrivingRecordInput):
    """OCR text (or vendor blocks) -> extracted record, validation and underwriting decision."""
    if payload.text is None and payload.blocks is None:
        raise HTTPException(status_code=400, detail="text or blocks is required")

    raw = payload.text if payload.text is not None else lines_from_blocks(payload.blocks or {})
    try:
        text = sanitize_ocr_text(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    today = payload.today or date.today()
    policy = load_policy()
    record = validate_record(extract(text), today, payload.expected_license, policy)
    decision = decide(record, policy, today)

    response: Dict[str, Any] = {
        "record": _dump(record),
        "decision": _dump(decision),
        "ocrConfidence": average_confidence(payload.blocks) if payload.blocks else None,
    }
    if payload.notify_email:
        response["email"] = send_decision_email(
            decision, payload.notify_email, payload.driver_name, limiter=_EMAIL_LIMITER
        )
    return response


@app.post("/next-step")
def next_step(payload: NextStepInput, board: Optional[BoardClient] = Depends(get_board_client)):
    driver = payload.driver or _lookup_driver(payload.email, board)
    snapshot = classify(payload.today or date.today(), driver)
    result = route(snapshot, payload.current_step)
    return {"email": payload.email or driver.email, "currentStep": payload.current_step, **_dump(result)}


@app.post("/poa/validate")
def validate_poa(payload: PoaInput):
    poa1 = payload.poa1 or (extract_poa(payload.poa1_text) if payload.poa1_text else None)
    poa2 = payload.poa2 or (extract_poa(payload.poa2_text) if payload.poa2_text else None)
    if poa1 is None or poa2 is None:
        raise HTTPException(status_code=400, detail="two proof-of-address documents are required")

    policy = load_policy()
    validation = cross_validate_poa(poa1, poa2, payload.license_address, payload.today or date.today(), policy)
    valid_until = [poa_valid_until(d.document_date, policy) for d in (poa1, poa2)]
    return {
        "poa1": _dump(poa1),
        "poa2": _dump(poa2),
        "validation": _dump(validation),
        "poa1ValidUntil": valid_until[0].isoformat() if valid_until[0] else None,
        "poa2ValidUntil": valid_until[1].isoformat() if valid_until[1] else None,
    }


@app.post("/webhook-status")
def webhook_status(payload: WebhookInput, board: Optional[BoardClient] = Depends(get_board_client)):
    current = payload.current or _lookup_driver(payload.email, board)
    try:
        state = detect_webhook_completion(
            payload.initial, current, payload.completion_fields, payload.today or date.today()
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return _dump(state)
