"""
Phone / identity matching across leads and calls.

The ``IdentityIndex`` is built once per snapshot and then only read: its
mappings are exposed through ``MappingProxyType`` and its groups are
tuples, so analyzers sharing it cannot mutate each other's view.

Join policy when correlating a call to a lead:
    1. explicit foreign-key id (the call's What_Id / Who_Id lookup)
    2. PhoneKey equality
    3. otherwise unresolved -- the call is left out of lead-joined metrics
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from analytics.projector import CanonicalCall, CanonicalLead

CONTACT_NEW = "new"
CONTACT_RETURNING = "returning"
CONTACT_REPEAT = "repeat"


def build_call_phone_set(calls: Iterable[CanonicalCall]) -> FrozenSet[str]:
    """Every PhoneKey dialled on at least one call."""
    return frozenset(c.dialed_phone for c in calls if c.dialed_phone)


def group_by_phone(leads: Iterable[CanonicalLead]) -> Dict[str, Tuple[CanonicalLead, ...]]:
    """PhoneKey -> leads sharing it, in input order. Leads without a key are skipped."""
    groups: Dict[str, List[CanonicalLead]] = defaultdict(list)
    for lead in leads:
        if lead.normalized_phone:
            groups[lead.normalized_phone].append(lead)
    return {phone: tuple(group) for phone, group in groups.items()}


def contact_kind(group_size: int) -> str:
    """Classify a phone group: 1 = new, 2 = returning, 3+ = repeat."""
    if group_size <= 1:
        return CONTACT_NEW
    if group_size == 2:
        return CONTACT_RETURNING
    return CONTACT_REPEAT


@dataclass(frozen=True)
class IdentityIndex:
    phone_to_leads: Mapping[str, Tuple[CanonicalLead, ...]]
    lead_by_id: Mapping[str, CanonicalLead]
    lead_by_phone: Mapping[str, CanonicalLead]
    call_phones: FrozenSet[str]

    @classmethod
    def build(cls, leads: Iterable[CanonicalLead], calls: Iterable[CanonicalCall]) -> "IdentityIndex":
        leads = list(leads)
        by_id: Dict[str, CanonicalLead] = {}
        by_phone: Dict[str, CanonicalLead] = {}
        for lead in leads:
            # Later records overwrite earlier ones.
            if lead.id:
                by_id[lead.id] = lead
            if lead.normalized_phone:
                by_phone[lead.normalized_phone] = lead
        return cls(
            phone_to_leads=MappingProxyType(group_by_phone(leads)),
            lead_by_id=MappingProxyType(by_id),
            lead_by_phone=MappingProxyType(by_phone),
            call_phones=build_call_phone_set(calls),
        )

    def resolve_lead(self, call: CanonicalCall) -> Optional[CanonicalLead]:
        if call.lead_ref_id and call.lead_ref_id in self.lead_by_id:
            return self.lead_by_id[call.lead_ref_id]
        if call.dialed_phone and call.dialed_phone in self.lead_by_phone:
            return self.lead_by_phone[call.dialed_phone]
        return None

    def group_size(self, phone: Optional[str]) -> int:
        if not phone:
            return 1
        return len(self.phone_to_leads.get(phone, ())) or 1

    def classify_contact(self, phone: Optional[str]) -> str:
        return contact_kind(self.group_size(phone))
