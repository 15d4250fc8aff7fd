"""
Record helpers: prioritized field lookup, phone/owner normalisation and
zero-safe numeric conversion shared by every analyzer.

All functions are pure and never raise on malformed input; they fall back
to a documented default instead.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Sequence

OWNER_SENTINEL = "--"

_NON_DIGITS = re.compile(r"\D")


def first_present(record: Any, keys: Sequence[str], default: Any = None) -> Any:
    """Return the first value under ``keys`` that is not None or an empty string."""
    if not isinstance(record, Mapping):
        return default
    for key in keys:
        value = record.get(key)
        if value is not None and value != "":
            return value
    return default


def to_num(value: Any, default: float = 0.0) -> float:
    """Convert to a finite float, or return ``default``."""
    if value is None or isinstance(value, bool):
        return default
    try:
        num = float(value)
    except (TypeError, ValueError):
        return default
    return num if math.isfinite(num) else default


def normalize_phone(raw: Any) -> Optional[str]:
    """Canonical PhoneKey: the rightmost 10 digits of ``raw``, or None."""
    if raw is None:
        return None
    digits = _NON_DIGITS.sub("", str(raw))
    return digits[-10:] or None


def display_text(value: Any) -> str:
    """Render a CRM field value as a trimmed display string.

    Lists are joined with ", " (multi-select picklists) and lookup objects
    contribute their ``name``.
    """
    if value is None:
        return ""
    if isinstance(value, Mapping):
        return display_text(value.get("name"))
    if isinstance(value, (list, tuple)):
        return ", ".join(display_text(v) for v in value if v).strip()
    return str(value).strip()


def owner_name(record: Any, keys: Sequence[str] = ("Owner",), default: str = OWNER_SENTINEL) -> str:
    """Owner display name from a nested ``{"name": ...}`` lookup or a plain string."""
    owner = first_present(record, keys)
    if isinstance(owner, Mapping):
        name = owner.get("name")
        return str(name).strip() if name else default
    if isinstance(owner, str) and owner.strip():
        return owner.strip()
    return default


def lookup_id(record: Any, keys: Sequence[str]) -> Optional[str]:
    """Id of the first lookup field (``{"id": ...}``) present on a record."""
    if not isinstance(record, Mapping):
        return None
    for key in keys:
        ref = record.get(key)
        if isinstance(ref, Mapping) and ref.get("id"):
            return str(ref["id"])
    return None


def parse_ts(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into a timezone-aware datetime.

    Naive values are taken as UTC. Anything unparseable yields None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def contains_any(text: str, keywords: Iterable[str]) -> bool:
    """True when ``text`` (lower-cased) contains any of ``keywords``."""
    lowered = (text or "").lower()
    return any(k and k.lower() in lowered for k in keywords)


def safe_div(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Zero-safe division."""
    if not denominator:
        return default
    return numerator / denominator


def percent(count: float, total: float) -> float:
    """``100 * count / total`` rounded to one decimal; 0 when total is 0."""
    if not total:
        return 0.0
    return round(100.0 * count / total, 1)
