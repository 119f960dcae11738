# -*- coding: utf-8 -*-
"""
Underwriting policy loader (YAML-driven).

- Policy knobs live in YAML; the shipped default is config/underwriting.yaml.
  Location can be overridden with env UNDERWRITING_POLICY_FILE.
- The YAML is validated against a strict JSON Schema (unknown keys rejected)
  before it is turned into an UnderwritingPolicy model.
- Loaded files are cached per path and hot-reloaded when their mtime changes.
- Knobs omitted from the YAML fall back to the model defaults below.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from jsonschema import ValidationError as SchemaError
from jsonschema import validate as json_validate
from pydantic import BaseModel, Field

# ------------------------------ Logger ---------------------------------------

LOGGER = logging.getLogger(__name__)

# ------------------------------ Constants & Cache -----------------------------

# Freshness threshold shared by the validity classifier and the decision engine.
MAX_DOCUMENT_AGE_DAYS: int = 30
POA_MAX_AGE_DAYS: int = 90

POLICY_FILE_ENV: str = "UNDERWRITING_POLICY_FILE"
_DEFAULT_POLICY_FILE: Path = Path(__file__).resolve().parents[1] / "config" / "underwriting.yaml"

# path -> {"policy": UnderwritingPolicy, "mtime": float}
_POLICY_CACHE: Dict[str, Dict[str, Any]] = {}


class PolicyError(ValueError):
    """Raised when a policy file is missing, unreadable or fails the schema."""


class UnderwritingPolicy(BaseModel):
    max_document_age_days: int = MAX_DOCUMENT_AGE_DAYS
    poa_max_age_days: int = POA_MAX_AGE_DAYS
    recent_offence_months: int = 12

    serious_offence_codes: List[str] = Field(default_factory=lambda: ["MS90", "IN10", "TT99"])
    serious_offence_prefixes: List[str] = Field(default_factory=lambda: ["DR", "DD", "BA"])
    ban_keywords: List[str] = Field(
        default_factory=lambda: [
            r"(?<!not )\bdisqualified\b",
            r"(?<!no )\bdisqualification\b",
            r"\bdriving ban\b",
            r"\bbanned from driving\b",
        ]
    )
    moderate_offence_codes: List[str] = Field(
        default_factory=lambda: ["SP30", "SP50", "SP40", "SP20", "CU80"]
    )

    clean_max_points: int = 0
    minor_max_points: int = 3
    medium_max_points: int = 6
    high_points: int = 9
    high_points_per_offence: int = 3
    high_offence_count: int = 3

    medium_excess: int = 500
    high_excess: int = 1000
    recent_offence_min_excess: int = 250

    domestic_license_authorities: List[str] = Field(default_factory=lambda: ["DVLA"])

    def is_serious(self, code: str) -> bool:
        code = (code or "").upper()
        return code in self.serious_offence_codes or any(
            code.startswith(prefix) for prefix in self.serious_offence_prefixes
        )

    def is_domestic_authority(self, issuer: Optional[str]) -> bool:
        if not issuer:
            return False
        wanted = {a.strip().upper() for a in self.domestic_license_authorities}
        return issuer.strip().upper() in wanted


# ------------------------------ Schema ---------------------------------------

_INT = {"type": "integer", "minimum": 0}
_CODES = {"type": "array", "items": {"type": "string", "pattern": r"^[A-Z]{2}(\d{2})?$"}}
_STRINGS = {"type": "array", "items": {"type": "string", "minLength": 1}}

POLICY_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "max_document_age_days": _INT,
        "poa_max_age_days": _INT,
        "recent_offence_months": _INT,
        "serious_offence_codes": _CODES,
        "serious_offence_prefixes": {"type": "array", "items": {"type": "string", "pattern": r"^[A-Z]{2}$"}},
        "ban_keywords": _STRINGS,
        "moderate_offence_codes": _CODES,
        "clean_max_points": _INT,
        "minor_max_points": _INT,
        "medium_max_points": _INT,
        "high_points": _INT,
        "high_points_per_offence": _INT,
        "high_offence_count": _INT,
        "medium_excess": _INT,
        "high_excess": _INT,
        "recent_offence_min_excess": _INT,
        "domestic_license_authorities": _STRINGS,
    },
    "additionalProperties": False,
}


# ------------------------------ Loading --------------------------------------

def _resolve_path(path: Optional[os.PathLike[str] | str]) -> Path:
    if path:
        return Path(path)
    env_value = os.getenv(POLICY_FILE_ENV)
    if env_value:
        return Path(env_value)
    return _DEFAULT_POLICY_FILE


def _file_mtime(path: Path) -> Optional[float]:
    try:
        return path.stat().st_mtime
    except OSError as exc:
        LOGGER.warning("Failed to stat policy file %s: %s", path, exc)
        return None


def _read_policy(path: Path) -> UnderwritingPolicy:
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as exc:
        raise PolicyError(f"Policy file not readable: {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise PolicyError(f"Policy file is not valid YAML: {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise PolicyError(f"Policy file must hold a mapping: {path}")
    try:
        json_validate(instance=data, schema=POLICY_SCHEMA)
    except SchemaError as exc:
        raise PolicyError(f"Policy file {path} failed schema: {str(exc).splitlines()[0]}") from exc
    return UnderwritingPolicy(**data)


def load_policy(path: Optional[os.PathLike[str] | str] = None) -> UnderwritingPolicy:
    """
    Cached load with hot-reload on mtime change (no restart needed).
    """
    resolved = _resolve_path(path)
    if not resolved.exists():
        raise PolicyError(f"Policy file not found: {resolved}")

    key = str(resolved.resolve())
    mtime = _file_mtime(resolved)
    cached = _POLICY_CACHE.get(key)
    if cached is not None and cached.get("mtime") == mtime:
        return cached["policy"]

    policy = _read_policy(resolved)
    _POLICY_CACHE[key] = {"policy": policy, "mtime": mtime}
    LOGGER.info("Loaded underwriting policy from %s", resolved)
    return policy


def clear_policy_cache() -> None:
    _POLICY_CACHE.clear()
