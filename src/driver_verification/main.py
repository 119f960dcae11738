import argparse
import json
import logging
import os
import sys
from datetime import date
from pathlib import Path

from driver_verification.tools.extract import extract
from driver_verification.tools.ocr import ocr_image, sanitize_ocr_text
from driver_verification.tools.policy import load_policy
from driver_verification.tools.underwriting import decide
from driver_verification.tools.validity import validate_record

_IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".tif", ".tiff", ".pdf"}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="driver-verification",
        description="Extract, validate and underwrite a driving-record document.",
    )
    parser.add_argument("document", help="OCR text file, or an image/PDF to OCR locally")
    parser.add_argument("--expected-license", help="known licence number (trailing fragment compared)")
    parser.add_argument("--today", type=date.fromisoformat, help="evaluation date, YYYY-MM-DD")
    parser.add_argument("--policy", help="underwriting policy YAML (default: shipped policy)")
    return parser


def _read_text(path: Path) -> str:
    if path.suffix.lower() in _IMAGE_SUFFIXES:
        return ocr_image(str(path))["text"]
    return sanitize_ocr_text(path.read_text(encoding="utf-8"))


def run(argv=None) -> int:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    args = _build_parser().parse_args(argv)

    today = args.today or date.today()
    try:
        policy = load_policy(args.policy)
        text = _read_text(Path(args.document))
    except (OSError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    record = validate_record(extract(text), today, args.expected_license, policy)
    decision = decide(record, policy, today)
    print(json.dumps(
        {
            "record": record.model_dump(by_alias=True, mode="json"),
            "decision": decision.model_dump(by_alias=True, mode="json"),
        },
        indent=2,
    ))
    return 0


if __name__ == "__main__":
    sys.exit(run())
