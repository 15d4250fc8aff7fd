"""
Category conversion and booking-area aggregation.

Category conversion picks the first configured category field that is
actually populated on in-window leads and reports lead -> deal conversion
per category value.

Booking areas scan a deal's free-text street address against a gazetteer
of known localities (longest name first, case-insensitive, whole word).
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from typing import Any, Dict, Iterable, List, Optional, Sequence

from analytics.projector import CanonicalDeal, CanonicalLead
from analytics.records import contains_any, display_text, percent
from analytics.timewindow import TimeWindow

logger = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"


class Gazetteer:
    """Compiled whole-word matchers for a list of place names."""

    def __init__(self, areas: Sequence[str]):
        names = sorted(dict.fromkeys(a.strip() for a in areas if a and a.strip()), key=len, reverse=True)
        self._patterns = [
            (name, re.compile(r"\b" + re.escape(name) + r"\b", re.IGNORECASE))
            for name in names
        ]

    def match(self, text: Optional[str]) -> Optional[str]:
        if not text:
            return None
        for name, pattern in self._patterns:
            if pattern.search(text):
                return name
        return None


class CategoryConversionAnalyzer:
    """Lead -> deal conversion grouped by a lead category field."""

    def __init__(
        self,
        window: TimeWindow,
        lookback_days: int,
        category_fields: Sequence[str],
        converted_keywords: Sequence[str],
    ):
        self.window = window
        self.lookback_days = lookback_days
        self.category_fields = list(category_fields)
        self.converted_keywords = list(converted_keywords)

    def choose_field(self, leads: List[CanonicalLead]) -> Optional[str]:
        for field_name in self.category_fields:
            if any(display_text(lead.raw.get(field_name)) for lead in leads):
                return field_name
        return None

    def analyze(self, leads: Iterable[CanonicalLead], deals: Iterable[CanonicalDeal]) -> List[Dict[str, Any]]:
        window_leads = [
            l for l in leads
            if self.window.is_within_last_days(l.created_at, self.lookback_days)
        ]
        window_deals = [
            d for d in deals
            if self.window.is_within_last_days(d.created_at, self.lookback_days)
        ]

        chosen = self.choose_field(window_leads)
        if chosen is None:
            logger.info(
                "No category field populated on leads. Checked: %s",
                ", ".join(self.category_fields),
            )
            return []
        logger.info("Category conversions using field '%s' (last %d days)", chosen, self.lookback_days)

        deal_phones = {d.normalized_phone for d in window_deals if d.normalized_phone}
        deal_names = {d.contact_name for d in window_deals if d.contact_name}

        groups: Dict[str, Dict[str, int]] = {}
        for lead in window_leads:
            category = display_text(lead.raw.get(chosen)) or UNCATEGORIZED
            group = groups.setdefault(category, {"leads": 0, "deals": 0})
            group["leads"] += 1
            if self._converted(lead, deal_phones, deal_names):
                group["deals"] += 1

        result = [
            {
                "category": category,
                "leads": g["leads"],
                "deals": g["deals"],
                "conversionPercent": percent(g["deals"], g["leads"]),
            }
            for category, g in groups.items()
        ]
        result.sort(key=lambda r: r["leads"], reverse=True)
        return result

    def _converted(self, lead: CanonicalLead, deal_phones: set, deal_names: set) -> bool:
        if contains_any(lead.lead_status, self.converted_keywords):
            return True
        if lead.normalized_phone and lead.normalized_phone in deal_phones:
            return True
        return bool(lead.match_name) and lead.match_name in deal_names


class BookingAreaAnalyzer:
    """Most frequent known localities across deal addresses."""

    def __init__(self, gazetteer: Gazetteer, top: int = 5):
        self.gazetteer = gazetteer
        self.top = top

    def analyze(self, deals: Iterable[CanonicalDeal]) -> List[Dict[str, Any]]:
        deals = list(deals)
        counts: Counter = Counter()
        for deal in deals:
            area = self.gazetteer.match(deal.street)
            if area:
                counts[area] += 1
        ranked = counts.most_common(self.top)
        logger.info(
            "Booking areas: %d/%d deals matched an area", sum(counts.values()), len(deals),
        )
        return [
            {"rank": idx, "area": area, "bookings": bookings}
            for idx, (area, bookings) in enumerate(ranked, start=1)
        ]
