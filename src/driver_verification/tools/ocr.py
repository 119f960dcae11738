"""
Text extraction adapter.

The hosted OCR vendor returns a block list ({"Blocks": [{"BlockType": "LINE",
"Text": ..., "Confidence": ...}, ...]}); lines_from_blocks() flattens it into
newline-separated text for the field extractor. ocr_image() is a local
Tesseract pass over an image or the first page of a PDF for offline use.
"""

import logging
import mimetypes
import os
import re
import tempfile
from typing import Any, Dict

import cv2
import fitz  # PyMuPDF
import numpy as np
import pytesseract
from PIL import Image

LOGGER = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {"image/jpeg", "image/png", "image/tiff", "application/pdf"}
MAX_FILE_SIZE_MB = 10

SUSPICIOUS_PATTERNS = [
    r"<script.*?>", r"</script>",
    r"(?i)os\.system", r"(?i)subprocess\.",
    r"(?i)\beval\(", r"(?i)rm\s+-rf",
    r"(?i)curl\s+http", r"(?i)wget\s+http",
]


# ------------------ vendor response ------------------

def lines_from_blocks(response: Dict[str, Any]) -> str:
    blocks = (response or {}).get("Blocks") or []
    return "\n".join(b.get("Text", "") for b in blocks if b.get("BlockType") == "LINE")


def average_confidence(response: Dict[str, Any]) -> int:
    """Rounded mean confidence over all blocks that report one; 0 when none do."""
    blocks = (response or {}).get("Blocks") or []
    confidences = [b["Confidence"] for b in blocks if b.get("Confidence") is not None]
    if not confidences:
        return 0
    return round(sum(confidences) / len(confidences))


def sanitize_ocr_text(text: str) -> str:
    """
    Reject script-like content and strip control characters.
    Line breaks are kept because the extractor works line by line.
    """
    for pattern in SUSPICIOUS_PATTERNS:
        if re.search(pattern, text):
            raise ValueError(f"Malicious content detected: pattern '{pattern}'")

    sanitized = text.replace("\r\n", "\n").replace("\r", "\n")
    sanitized = re.sub(r"[\x00-\x09\x0B-\x1F\x7F]", " ", sanitized)
    sanitized = re.sub(r"[ ]+", " ", sanitized)
    sanitized = "\n".join(line.strip() for line in sanitized.split("\n"))
    return sanitized.strip()


# ------------------ local tesseract ------------------

def _detect_mime(path: str) -> str:
    mime, _ = mimetypes.guess_type(path)
    return mime or "application/octet-stream"


def _preprocess_for_ocr(img_bgr) -> str:
    """Grayscale + Otsu binarisation, then Tesseract."""
    gray = cv2.cvtColor(img_bgr, cv2.COLOR_BGR2GRAY)
    _, bw = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY | cv2.THRESH_OTSU)

    # pytesseract is more reliable with a file than with an array
    with tempfile.NamedTemporaryFile(suffix=".png", delete=False) as tmp:
        temp_path = tmp.name
    try:
        cv2.imwrite(temp_path, bw)
        with Image.open(temp_path) as image:
            return pytesseract.image_to_string(image)
    finally:
        try:
            os.remove(temp_path)
        except OSError:
            LOGGER.debug("Could not remove temp file %s", temp_path)


def _render_pdf_first_page_to_bgr(pdf_path: str):
    with fitz.open(pdf_path) as doc:
        if doc.page_count == 0:
            raise ValueError("PDF has no pages.")
        page = doc.load_page(0)
        # 2x raster for better OCR
        pix = page.get_pixmap(matrix=fitz.Matrix(2, 2), alpha=False)  # type: ignore[attr-defined]
        img = np.frombuffer(pix.samples, dtype=np.uint8).reshape(pix.height, pix.width, pix.n)
    return cv2.cvtColor(img, cv2.COLOR_RGB2BGR)


def ocr_image(path: str) -> Dict[str, Any]:
    """
    OCR a local image or PDF (first page) after size and type checks.
    Raises FileNotFoundError / ValueError for unusable input.
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"File not found: {path}")

    file_size_mb = os.path.getsize(path) / (1024 * 1024)
    if file_size_mb > MAX_FILE_SIZE_MB:
        raise ValueError(f"File too large ({file_size_mb:.2f} MB). Limit is {MAX_FILE_SIZE_MB} MB.")

    mime_type = _detect_mime(path)
    if mime_type not in ALLOWED_MIME_TYPES:
        raise ValueError(f"Unsupported file type: {mime_type}")

    if mime_type == "application/pdf":
        img_bgr = _render_pdf_first_page_to_bgr(path)
    else:
        img_bgr = cv2.imread(path)
        if img_bgr is None:
            raise ValueError("Unable to read image (possibly corrupted or unsupported).")

    text = sanitize_ocr_text(_preprocess_for_ocr(img_bgr))
    LOGGER.info("OCR of %s produced %d characters", path, len(text))
    return {
        "text": text,
        "mime_type": mime_type,
        "file_size_mb": round(file_size_mb, 2),
        "status": "success",
    }
