"""
Entity projection: raw CRM records -> canonical, immutable shapes.

Raw records carry many alternate spellings for the same field; the
candidate lists come from ``EngineConfig.fields`` and are resolved with
``first_present``. Missing values become documented defaults ("" for
text, 0 for numbers, None for timestamps) so downstream analyzers never
branch on record shape.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from analytics.config import EngineConfig, FieldAliases
from analytics.lib.errors import InputContractError
from analytics.records import (
    contains_any,
    display_text,
    first_present,
    lookup_id,
    normalize_phone,
    owner_name,
    parse_ts,
    to_num,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CanonicalLead:
    id: Optional[str]
    name: str
    phone: Optional[str]
    normalized_phone: Optional[str]
    owner: str
    lead_status: str
    lead_sub_status: str
    created_raw: Optional[str]
    modified_raw: Optional[str]
    created_at: Optional[datetime]
    modified_at: Optional[datetime]
    called: bool
    match_name: str = ""
    raw: Mapping = field(default_factory=lambda: MappingProxyType({}), repr=False, compare=False)

    def to_row(self) -> Dict[str, Any]:
        """Display row used by ``latestLeadsToday``."""
        return {
            "name": self.name,
            "phone": self.phone,
            "owner": self.owner,
            "leadStatus": self.lead_status or "--",
            "leadSubStatus": self.lead_sub_status or "--",
            "createdTime": self.created_raw,
            "called": self.called,
            "modifiedTime": self.modified_raw,
        }


@dataclass(frozen=True)
class CanonicalCall:
    owner: str
    duration_seconds: float
    status: str
    type: str
    started_raw: Optional[str]
    started_at: Optional[datetime]
    dialed_phone: Optional[str]
    lead_ref_id: Optional[str]


@dataclass(frozen=True)
class CanonicalDeal:
    owner: str
    created_at: Optional[datetime]
    original_created_at: Optional[datetime]
    status: str
    street: Optional[str]
    normalized_phone: Optional[str]
    contact_name: str


@dataclass(frozen=True)
class CanonicalTask:
    owner: str
    created_at: Optional[datetime]
    status: str
    completed: bool


# ---------------------------------------------------------------------------
# Input contract
# ---------------------------------------------------------------------------

def ensure_records(records: Any, collection: str) -> List[Mapping]:
    """Validate a record collection and drop entries that are not mappings.

    Raises:
        InputContractError: ``records`` is not an iterable collection.
    """
    if records is None:
        return []
    if isinstance(records, (str, bytes, Mapping)) or not isinstance(records, Iterable):
        raise InputContractError(
            f"'{collection}' must be a sequence of records, got {type(records).__name__}",
            collection=collection,
        )
    kept = [r for r in records if isinstance(r, Mapping)]
    skipped = len(records) - len(kept) if hasattr(records, "__len__") else 0
    if skipped:
        logger.warning("Skipped %d non-record entries in '%s'", skipped, collection)
    return kept


# ---------------------------------------------------------------------------
# Projection
# ---------------------------------------------------------------------------

def _text(value: Any) -> str:
    return display_text(value)


def _raw_ts(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return value.isoformat() if isinstance(value, datetime) else str(value)


def has_call_activity(record: Mapping, fields: FieldAliases) -> bool:
    """Lead-side evidence of a call: a call count, a last-call time or talk time."""
    call_count = to_num(first_present(record, fields.lead_call_count), 0)
    last_call = first_present(record, fields.lead_last_call)
    duration = to_num(first_present(record, fields.lead_call_duration), 0)
    return call_count > 0 or bool(last_call) or duration > 0


def call_phone(record: Mapping, fields: FieldAliases, subject_pattern) -> Optional[str]:
    """PhoneKey dialled on a call: structured field first, else the subject line.

    The subject fallback takes the *last* phone-looking run in the text.
    """
    structured = first_present(record, fields.call_phone)
    if structured:
        phone = normalize_phone(structured)
        if phone:
            return phone
    subject = first_present(record, fields.call_subject)
    if not subject:
        return None
    matches = subject_pattern.findall(str(subject))
    if not matches:
        return None
    return normalize_phone(matches[-1])


def project_call(record: Mapping, config: EngineConfig, subject_pattern) -> CanonicalCall:
    f = config.fields
    started = first_present(record, f.call_started)
    return CanonicalCall(
        owner=owner_name(record, f.owner),
        duration_seconds=to_num(first_present(record, f.call_duration), 0),
        status=_text(first_present(record, f.call_status)) or "Unknown",
        type=_text(first_present(record, f.call_type)) or "Unknown",
        started_raw=_raw_ts(started),
        started_at=parse_ts(started),
        dialed_phone=call_phone(record, f, subject_pattern),
        lead_ref_id=lookup_id(record, f.call_lead_ref),
    )


def project_lead(record: Mapping, config: EngineConfig, call_phones: FrozenSet[str]) -> CanonicalLead:
    f = config.fields
    raw_phone = first_present(record, f.lead_phone)
    phone_key = normalize_phone(raw_phone)
    first = _text(first_present(record, f.lead_first_name))
    last = _text(first_present(record, f.lead_last_name))
    created = first_present(record, f.created_time)
    modified = first_present(record, f.modified_time)
    lead_id = first_present(record, f.lead_id)
    called = has_call_activity(record, f) or bool(phone_key and phone_key in call_phones)
    return CanonicalLead(
        id=str(lead_id) if lead_id is not None else None,
        name=f"{first} {last or 'Lead'}".strip(),
        phone=_text(raw_phone) or None,
        normalized_phone=phone_key,
        owner=owner_name(record, f.owner),
        lead_status=_text(first_present(record, f.lead_status)),
        lead_sub_status=_text(first_present(record, f.lead_sub_status)),
        created_raw=_raw_ts(created),
        modified_raw=_raw_ts(modified),
        created_at=parse_ts(created),
        modified_at=parse_ts(modified),
        called=called,
        match_name=f"{first} {last}".strip().lower(),
        raw=MappingProxyType(dict(record)),
    )


def project_deal(record: Mapping, config: EngineConfig) -> CanonicalDeal:
    f = config.fields
    street = _text(first_present(record, f.deal_street))
    return CanonicalDeal(
        owner=owner_name(record, f.owner),
        created_at=parse_ts(first_present(record, f.created_time)),
        original_created_at=parse_ts(first_present(record, f.deal_original_created)),
        status=_text(first_present(record, f.deal_status)),
        street=street or None,
        normalized_phone=normalize_phone(first_present(record, f.deal_phone)),
        contact_name=_text(first_present(record, f.deal_name)).lower(),
    )


def project_task(record: Mapping, config: EngineConfig) -> CanonicalTask:
    f = config.fields
    status = _text(first_present(record, f.task_status))
    return CanonicalTask(
        owner=owner_name(record, f.owner),
        created_at=parse_ts(first_present(record, f.created_time)),
        status=status,
        completed=contains_any(status, config.keywords.task_completed),
    )
