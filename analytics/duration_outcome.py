"""
Duration-Outcome Correlator
============================
For today's connected calls, which call lengths go with converted leads and
which with rejected ones, per agent?

Each call is joined to its lead (id first, then PhoneKey); unresolved calls
are dropped. Within every (agent, duration bucket) the distinct contacts,
converted contacts and rejected contacts are counted, and each agent gets:

    topConversion  bucket with the highest converted / contacts
    topRejection   bucket with the highest rejected / contacts
    sweetSpot      bucket maximising conversionRate - rejectionRate

Ties go to the bucket encountered first. ``summarize_agents`` rolls the
rows up into team figures for the duration-insights output.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, Iterable, List, Optional, Sequence

from analytics.matcher import IdentityIndex
from analytics.projector import CanonicalCall, CanonicalLead
from analytics.records import contains_any
from analytics.timewindow import TimeWindow

logger = logging.getLogger(__name__)

OUTCOME_CONVERTED = "converted"
OUTCOME_REJECTED = "rejected"
OUTCOME_PENDING = "pending"


def outcome_bucket(seconds: float) -> str:
    """Coarse 5-way duration partition; non-finite values land in ``<60s``."""
    if seconds is None or not math.isfinite(seconds) or seconds < 60:
        return "<60s"
    if seconds < 120:
        return "60-120s"
    if seconds < 180:
        return "120-180s"
    if seconds < 300:
        return "180-300s"
    return "300s+"


def classify_outcome(
    status: str,
    sub_status: str,
    converted_keywords: Sequence[str],
    rejected_keywords: Sequence[str],
) -> str:
    """converted | rejected | pending; conversion keywords take precedence."""
    text = f"{status or ''} {sub_status or ''}"
    if contains_any(text, converted_keywords):
        return OUTCOME_CONVERTED
    if contains_any(text, rejected_keywords):
        return OUTCOME_REJECTED
    return OUTCOME_PENDING


def _contact_key(call: CanonicalCall, lead: CanonicalLead) -> str:
    return call.dialed_phone or lead.normalized_phone or f"lead:{lead.id}"


class DurationOutcomeCorrelator:
    """Per-agent duration buckets against lead outcomes."""

    def __init__(
        self,
        window: TimeWindow,
        converted_keywords: Sequence[str],
        rejected_keywords: Sequence[str],
    ):
        self.window = window
        self.converted_keywords = list(converted_keywords)
        self.rejected_keywords = list(rejected_keywords)

    def analyze(self, calls: Iterable[CanonicalCall], index: IdentityIndex) -> List[Dict[str, Any]]:
        agents: Dict[str, Dict[str, Dict[str, set]]] = {}
        resolved = unresolved = 0

        for call in calls:
            if not self.window.is_today(call.started_at):
                continue
            if call.duration_seconds <= 0:
                continue
            lead = index.resolve_lead(call)
            if lead is None:
                unresolved += 1
                continue
            resolved += 1

            outcome = classify_outcome(
                lead.lead_status, lead.lead_sub_status,
                self.converted_keywords, self.rejected_keywords,
            )
            key = _contact_key(call, lead)
            buckets = agents.setdefault(call.owner, {})
            stats = buckets.setdefault(
                outcome_bucket(call.duration_seconds),
                {"phones": set(), "converted": set(), "rejected": set()},
            )
            stats["phones"].add(key)
            if outcome == OUTCOME_CONVERTED:
                stats["converted"].add(key)
            elif outcome == OUTCOME_REJECTED:
                stats["rejected"].add(key)

        logger.info(
            "Duration-outcome: %d calls joined to leads, %d unresolved, %d agents",
            resolved, unresolved, len(agents),
        )
        return [self._summarize(agent, buckets) for agent, buckets in agents.items()]

    @staticmethod
    def _summarize(agent: str, buckets: Dict[str, Dict[str, set]]) -> Dict[str, Any]:
        top_conversion: Optional[Dict[str, Any]] = None
        top_rejection: Optional[Dict[str, Any]] = None
        sweet_spot: Optional[Dict[str, Any]] = None
        details = []

        for bucket, data in buckets.items():
            contacts = len(data["phones"]) or 1
            conversion_rate = len(data["converted"]) / contacts
            rejection_rate = len(data["rejected"]) / contacts
            efficiency = conversion_rate - rejection_rate
            details.append({
                "bucket": bucket,
                "phones": len(data["phones"]),
                "converted": len(data["converted"]),
                "rejected": len(data["rejected"]),
                "conversionRate": round(conversion_rate, 4),
                "rejectionRate": round(rejection_rate, 4),
            })
            if top_conversion is None or conversion_rate > top_conversion["_rate"]:
                top_conversion = {
                    "bucket": bucket, "rate": round(conversion_rate, 4),
                    "count": len(data["converted"]), "_rate": conversion_rate,
                }
            if top_rejection is None or rejection_rate > top_rejection["_rate"]:
                top_rejection = {
                    "bucket": bucket, "rate": round(rejection_rate, 4),
                    "count": len(data["rejected"]), "_rate": rejection_rate,
                }
            if sweet_spot is None or efficiency > sweet_spot["_score"]:
                sweet_spot = {
                    "bucket": bucket, "score": round(efficiency, 4),
                    "conversionRate": round(conversion_rate, 4),
                    "rejectionRate": round(rejection_rate, 4),
                    "_score": efficiency,
                }

        for entry in (top_conversion, top_rejection, sweet_spot):
            if entry is not None:
                entry.pop("_rate", None)
                entry.pop("_score", None)

        return {
            "agent": agent,
            "topConversion": top_conversion,
            "topRejection": top_rejection,
            "sweetSpot": sweet_spot,
            "bucketDetails": details,
        }


def summarize_agents(agents: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Team-level figures over the per-agent rows from ``analyze``.

    ``bestAgent`` has the highest sweet-spot score (first agent wins ties);
    ``avgBestConversionPercent`` averages every agent's top conversion rate.
    """
    best: Optional[Dict[str, Any]] = None
    for row in agents:
        if row["sweetSpot"] is None:
            continue
        if best is None or row["sweetSpot"]["score"] > best["sweetSpot"]["score"]:
            best = row

    rates = [row["topConversion"]["rate"] if row["topConversion"] else 0.0 for row in agents]
    avg_rate = sum(rates) / len(rates) if rates else 0.0
    return {
        "agentsAnalyzed": len(agents),
        "agentsWithSweetSpot": sum(
            1 for row in agents if row["sweetSpot"] and row["sweetSpot"]["score"] > 0
        ),
        "bestAgent": (
            {"agent": best["agent"], "bucket": best["sweetSpot"]["bucket"],
             "score": best["sweetSpot"]["score"]}
            if best else None
        ),
        "avgBestConversionPercent": round(avg_rate * 100, 1),
    }
