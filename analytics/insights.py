"""
Customer insights over the lookback lead rows, grouped by PhoneKey.

    repeat loss   rejected leads split into new / returning / repeat contacts
    engagement    a 0-100 score per customer (phone) and its distribution
    win-back      rejected repeat contacts ranked for a recovery attempt

Percentages and scores are final values; renderers only format them.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Dict, List, Sequence

from analytics.matcher import (
    CONTACT_NEW,
    CONTACT_REPEAT,
    CONTACT_RETURNING,
    contact_kind,
    group_by_phone,
)
from analytics.projector import CanonicalLead
from analytics.records import contains_any, percent
from analytics.timewindow import TimeWindow

logger = logging.getLogger(__name__)

TOP_CUSTOMERS = 20
TOP_WIN_BACK = 10
TOP_AGENTS = 4


def engagement_score(records: Sequence[CanonicalLead], recency_days: float) -> int:
    """Score one customer's lead group on a 0-100 scale."""
    connected = sum(1 for r in records if r.called)
    diversity = len({r.lead_status for r in records})
    score = (
        40
        + connected * 15
        + (15 if len(records) > 1 else 0)
        + (15 if recency_days <= 7 else 0)
        + (10 if diversity > 1 else 0)
    )
    return min(100, score)


def engagement_tier(score: int) -> str:
    if score >= 80:
        return "high"
    if score >= 60:
        return "stable"
    if score >= 40:
        return "atRisk"
    return "weak"


class CustomerInsightsAnalyzer:
    """Repeat-loss, engagement and win-back analysis for one batch of leads."""

    def __init__(
        self,
        window: TimeWindow,
        rejection_markers: Sequence[str],
        price_markers: Sequence[str],
    ):
        self.window = window
        self.rejection_markers = list(rejection_markers)
        self.price_markers = list(price_markers)

    def is_rejected(self, lead: CanonicalLead) -> bool:
        # Status wins; sub-status is consulted only when status is blank.
        return contains_any(lead.lead_status or lead.lead_sub_status, self.rejection_markers)

    def analyze(self, leads: Sequence[CanonicalLead]) -> Dict[str, Any]:
        leads = list(leads)
        groups = group_by_phone(leads)
        rejected = [l for l in leads if self.is_rejected(l)]
        return {
            "repeatLoss": self.repeat_loss(rejected, groups),
            "engagement": self.engagement(groups),
            "winBack": self.win_back(rejected, groups),
        }

    def repeat_loss(self, rejected: List[CanonicalLead], groups: Dict[str, tuple]) -> Dict[str, Any]:
        summary = {CONTACT_NEW: 0, CONTACT_RETURNING: 0, CONTACT_REPEAT: 0}
        reasons: Counter = Counter()
        agents: Dict[str, Dict[str, Any]] = {}

        for lead in rejected:
            size = len(groups.get(lead.normalized_phone, ())) if lead.normalized_phone else 1
            kind = contact_kind(size)
            summary[kind] += 1
            reason = lead.lead_sub_status or lead.lead_status or "Unknown"
            reasons[reason] += 1
            agent = agents.setdefault(
                lead.owner, {"total": 0, "repeat": 0, "called": 0, "reasons": Counter()}
            )
            agent["total"] += 1
            agent["repeat"] += int(kind == CONTACT_REPEAT)
            agent["called"] += int(lead.called)
            agent["reasons"][reason] += 1

        total = len(rejected)
        ranked = sorted(
            agents.items(),
            key=lambda kv: kv[1]["repeat"] / max(kv[1]["total"], 1),
            reverse=True,
        )[:TOP_AGENTS]
        return {
            "totalRejected": total,
            "summary": summary,
            "repeatLosses": summary[CONTACT_RETURNING] + summary[CONTACT_REPEAT],
            "repeatLossPercent": percent(summary[CONTACT_RETURNING] + summary[CONTACT_REPEAT], total),
            "topReason": reasons.most_common(1)[0][0] if reasons else None,
            "agents": [
                {
                    "agent": name,
                    "rejected": row["total"],
                    "repeatLossPercent": percent(row["repeat"], row["total"]),
                    "topReason": row["reasons"].most_common(1)[0][0],
                    "calledLeads": row["called"],
                }
                for name, row in ranked
            ],
        }

    def engagement(self, groups: Dict[str, tuple]) -> Dict[str, Any]:
        distribution = {"high": 0, "stable": 0, "atRisk": 0, "weak": 0}
        customers = []
        for phone, records in groups.items():
            recency = self.window.days_since(records[0].created_at) or 0.0
            score = engagement_score(records, recency)
            distribution[engagement_tier(score)] += 1
            customers.append({
                "phone": phone,
                "score": score,
                "recencyDays": round(recency),
                "records": len(records),
                "status": records[0].lead_status or "Open",
            })

        customers.sort(key=lambda c: c["score"], reverse=True)
        rejected = [c for c in customers if contains_any(c["status"], self.rejection_markers)]
        active = [c for c in customers if not contains_any(c["status"], self.rejection_markers)]
        return {
            "totalCustomers": len(customers),
            "distribution": distribution,
            "topActive": active[:TOP_CUSTOMERS],
            "topRejected": rejected[:TOP_CUSTOMERS],
        }

    def win_back(self, rejected: List[CanonicalLead], groups: Dict[str, tuple]) -> Dict[str, Any]:
        candidates = [
            lead for lead in rejected
            if lead.normalized_phone and len(groups.get(lead.normalized_phone, ())) >= 2
        ]
        scored = []
        for lead in candidates:
            group = groups[lead.normalized_phone]
            recency = self.window.days_since(lead.created_at) or 0.0
            engaged = sum(1 for r in group if r.called)
            base = 40 + engaged * 10 + (10 if len(group) > 2 else 0) + max(0.0, 30 - recency) * 0.5
            penalty = (10 if recency > 90 else 0) + (
                10 if contains_any(lead.lead_sub_status, self.price_markers) else 0
            )
            scored.append({
                "phone": lead.normalized_phone,
                "score": max(0, min(100, round(base - penalty))),
                "agent": lead.owner,
                "service": lead.lead_sub_status or "Service TBD",
                "recencyDays": round(recency),
            })

        scored.sort(key=lambda t: t["score"], reverse=True)
        targets = scored[:TOP_WIN_BACK]
        immediate = sum(1 for t in targets if t["score"] >= 80)
        logger.debug("Win-back: %d candidates, %d immediate", len(candidates), immediate)
        return {
            "candidates": len(candidates),
            "immediateTargets": immediate,
            "recoverablePercent": percent(immediate, len(candidates)),
            "targets": targets,
        }
