"""Canonical JSON and hashing utilities."""

import hashlib
import json
import re
from datetime import datetime
from decimal import Decimal
from typing import Any


def _canonical_value(obj: Any) -> Any:
    """Convert value for canonical representation."""
    if obj is None:
        return None
    if isinstance(obj, bool):
        return obj
    if isinstance(obj, (int, float, Decimal)):
        return float(obj) if isinstance(obj, (float, Decimal)) else int(obj)
    if isinstance(obj, dict):
        return {str(k): _canonical_value(v) for k, v in sorted(obj.items())}
    if isinstance(obj, (list, tuple)):
        return [_canonical_value(v) for v in obj]
    if isinstance(obj, str):
        return obj
    if isinstance(obj, datetime):
        return obj.isoformat()
    return str(obj)


def canonical_json(obj: Any) -> str:
    """Produce canonical JSON string (sorted keys, consistent formatting)."""
    canonical = _canonical_value(obj)
    return json.dumps(canonical, sort_keys=True, separators=(",", ":"))


def config_hash(config: dict) -> str:
    """SHA256 of a governance configuration's canonical JSON."""
    return hashlib.sha256(canonical_json(config).encode()).hexdigest()


def _code_slug(code: str) -> str:
    slug = re.sub(r"[^A-Z0-9]+", "-", code.upper()).strip("-")
    return slug[:24] or "TRN"


def certificate_id(training_code: str, user_id: str, disambiguator: str) -> str:
    """
    Deterministic certificate id: training code slug plus a digest of
    (training code, user, disambiguator). The same inputs always yield
    the same id, so regeneration never mints a second one.
    """
    digest = hashlib.sha256(
        canonical_json([training_code, user_id, disambiguator]).encode()
    ).hexdigest()
    return f"CERT-{_code_slug(training_code)}-{digest[:12].upper()}"
