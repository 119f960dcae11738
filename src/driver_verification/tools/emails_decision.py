# src/driver_verification/tools/emails_decision.py

import logging
import os
import smtplib
from datetime import datetime, timezone
from email.mime.text import MIMEText
from typing import List, Optional, Tuple

# --- PDF generation (ReportLab/Platypus) ---
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from driver_verification.models import DecisionOutcome, UnderwritingDecision
from driver_verification.tools.ratelimit import FixedWindowRateLimiter, RateLimiter

LOGGER = logging.getLogger(__name__)

MISSING_SMTP_CONFIG = "email-stub:missing-smtp-config"
RATE_LIMITED = "email-rate-limited"

# ------------------ helpers ------------------

def _compose_subject_body(decision: UnderwritingDecision) -> Tuple[str, str]:
    subject = f"Driver verification decision: {decision.outcome.value}"
    lines = [f"Decision: {decision.outcome.value}", f"Risk tier: {decision.risk_tier.value}"]
    if decision.excess:
        lines.append(f"Excess: £{decision.excess}")
    lines.extend(f"Reason: {reason}" for reason in decision.reasons)
    return subject, "\n".join(lines)


def _pdf_path(folder: str, outcome: str) -> str:
    ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
    os.makedirs(folder, exist_ok=True)
    return os.path.join(folder, f"driver_decision_{outcome}_{ts}.pdf")


def _decision_paragraphs(decision: UnderwritingDecision, driver_name: Optional[str]) -> List[str]:
    name = driver_name or "Driver"
    if decision.outcome is DecisionOutcome.APPROVED:
        body = "We're pleased to confirm that your driving record has been approved for insurance cover."
        if decision.excess:
            body += f" An excess of £{decision.excess} applies to your cover."
    elif decision.outcome is DecisionOutcome.REFERRED:
        body = (
            "Your driving record has been passed to our underwriters for a brief manual review. "
            "We'll be in touch once the review is complete."
        )
    else:
        body = (
            "We regret that we are unable to offer insurance cover based on the driving record provided."
        )
    details = "Summary: " + ("; ".join(decision.reasons) or "No additional details were provided.")
    closing = "If you have any questions, please reply to this message or contact our support team."
    return [f"Dear {name},", body, details, closing, "Sincerely,\nDriver Onboarding Team"]


def _summary_rows(subject: str, to: Optional[str], decision: UnderwritingDecision) -> List[List[str]]:
    rows = [
        ["Recipient", to or "(no recipient)"],
        ["Subject", subject],
        ["Outcome", decision.outcome.value.capitalize()],
        ["Risk tier", decision.risk_tier.value],
    ]
    if decision.excess:
        rows.append(["Excess", f"£{decision.excess}"])
    return rows


def _write_pdf_email(
    pdf_file: str,
    subject: str,
    to: Optional[str],
    decision: UnderwritingDecision,
    driver_name: Optional[str],
) -> str:
    """Render the decision letter as a one-page PDF; returns the pdf-saved marker."""
    styles = getSampleStyleSheet()
    body = ParagraphStyle(name="Letter", parent=styles["BodyText"], fontSize=11, leading=15, spaceAfter=6)
    note = ParagraphStyle(name="Note", parent=body, fontSize=8, textColor=colors.grey)

    summary = Table(_summary_rows(subject, to, decision), colWidths=[30*mm, 130*mm], hAlign="LEFT")
    summary.setStyle(TableStyle([
        ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
        ("GRID", (0, 0), (-1, -1), 0.25, colors.lightgrey),
    ]))

    issued = datetime.now(timezone.utc).strftime("%d %B %Y")
    story = [
        Paragraph("Driver verification decision", styles["Title"]),
        Paragraph(f"Issued {issued}", note),
        Spacer(1, 6*mm),
        summary,
        Spacer(1, 6*mm),
    ]
    story.extend(
        Paragraph(text.replace("\n", "<br/>"), body)
        for text in _decision_paragraphs(decision, driver_name)
    )
    story.append(Paragraph("Copy of the decision email, generated automatically.", note))

    SimpleDocTemplate(pdf_file, pagesize=A4, leftMargin=20*mm, rightMargin=20*mm).build(story)
    return f"email-stub:pdf-saved -> {pdf_file}"

# ------------------ email sending ------------------

def _send_via_smtp(to: str, subject: str, body: str) -> str:
    host = os.getenv("SMTP_HOST")
    port = int(os.getenv("SMTP_PORT", "587"))
    user = os.getenv("SMTP_USER")
    pwd  = os.getenv("SMTP_PASSWORD")
    sender = os.getenv("SMTP_SENDER", user or "no-reply@example.com")

    if not (host and user and pwd and to):
        LOGGER.warning("SMTP selected but configuration is incomplete; email not sent")
        return MISSING_SMTP_CONFIG

    msg = MIMEText(body, "plain", "utf-8")
    msg["Subject"] = subject
    msg["From"] = sender
    msg["To"]   = to

    with smtplib.SMTP(host, port, timeout=10) as s:
        s.starttls()
        s.login(user, pwd)
        s.sendmail(sender, [to], msg.as_string())

    LOGGER.info("Decision email sent to %s", to)
    return "smtp-sent"


def default_limiter() -> FixedWindowRateLimiter:
    """Limiter sized from EMAIL_RATE_LIMIT / EMAIL_RATE_WINDOW_SECONDS."""
    return FixedWindowRateLimiter(
        limit=int(os.getenv("EMAIL_RATE_LIMIT", "5")),
        window_seconds=float(os.getenv("EMAIL_RATE_WINDOW_SECONDS", "3600")),
    )

# ------------------ public API ------------------

def send_decision_email(
    decision: UnderwritingDecision,
    to: Optional[str] = None,
    driver_name: Optional[str] = None,
    limiter: Optional[RateLimiter] = None,
    pdf_dir: Optional[str] = None,
) -> str:
    """
    Send the underwriting decision to the driver and ALWAYS save a PDF copy.

    - EMAIL_PROVIDER=smtp with SMTP_* set sends via SMTP; otherwise a stub marker.
    - When `limiter` refuses the recipient nothing is sent or written and
      "email-rate-limited" is returned.
    - PDF copies go to `pdf_dir`, else EMAIL_PDF_DIR, else data/email/.
    """
    recipient = to or os.getenv("DEFAULT_TO", "")
    if limiter is not None and not limiter.allow(recipient or "<none>"):
        return RATE_LIMITED

    subject, body = _compose_subject_body(decision)

    provider = (os.getenv("EMAIL_PROVIDER") or "").lower().strip()
    smtp_result = None
    if provider == "smtp":
        smtp_result = _send_via_smtp(recipient, subject, body)

    folder = pdf_dir or os.getenv("EMAIL_PDF_DIR") or os.path.join("data", "email")
    pdf_file = _pdf_path(folder, decision.outcome.value)
    pdf_result = _write_pdf_email(pdf_file, subject, recipient or None, decision, driver_name)

    return (smtp_result or "email-stub") + " | " + pdf_result
