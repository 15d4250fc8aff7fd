"""
NC Ladder / Funnel Engine
==========================
Leads that fail contact attempts escalate NC1 -> NC2 -> NC3 ("no contact").
This module counts where lookback-window leads sit on that ladder, how long
they took to get there, which ones breach the stage SLA, and at what hour
of day each stage is most often set.

Hour buckets use the lead's modification time (when the CRM status was last
set), falling back to creation time.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from analytics.config import NcSlaHours
from analytics.projector import CanonicalLead
from analytics.records import percent, safe_div
from analytics.timewindow import TimeWindow, hour_label

logger = logging.getLogger(__name__)

STAGES = ("NC1", "NC2", "NC3")

_NON_ALNUM = re.compile(r"[^A-Z0-9]")


def nc_stage(raw: Any) -> Optional[str]:
    """``"nc-1"``, ``"NC 1"`` -> ``"NC1"``; anything else -> None."""
    token = _NON_ALNUM.sub("", str(raw or "").upper())
    return token if token in STAGES else None


def elapsed_hours(lead: CanonicalLead) -> Optional[float]:
    """Hours from creation to last modification, floored at 0."""
    if lead.created_at is None:
        return None
    modified = lead.modified_at or lead.created_at
    return max(0.0, (modified - lead.created_at).total_seconds() / 3600)


def _avg(values: List[float]) -> float:
    return round(safe_div(sum(values), len(values)), 1)


class NCLadderAnalyzer:
    """Funnel, progression, SLA and stage-hour analysis for NC leads."""

    def __init__(self, window: TimeWindow, lookback_days: int, sla: NcSlaHours):
        self.window = window
        self.lookback_days = lookback_days
        self.sla = sla

    def staged_leads(self, leads: Iterable[CanonicalLead]) -> List[tuple]:
        """``(stage, lead)`` for in-window leads with a resolvable stage."""
        staged = []
        for lead in leads:
            if not self.window.is_within_last_days(lead.created_at, self.lookback_days):
                continue
            stage = nc_stage(lead.lead_sub_status)
            if stage:
                staged.append((stage, lead))
        return staged

    def hourly_stage_counts(self, staged: List[tuple]) -> List[Dict[str, int]]:
        rows = [{"nc1": 0, "nc2": 0, "nc3": 0, "total": 0} for _ in range(24)]
        for stage, lead in staged:
            hour = self.window.hour_of_day(lead.modified_at or lead.created_at)
            if hour is None:
                continue
            rows[hour][stage.lower()] += 1
            rows[hour]["total"] += 1
        return rows

    def analyze(
        self,
        leads: Iterable[CanonicalLead],
        hour_scores: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        staged = self.staged_leads(leads)
        direct = {s.lower(): 0 for s in STAGES}
        elapsed: Dict[str, List[float]] = {s: [] for s in STAGES}
        for stage, lead in staged:
            direct[stage.lower()] += 1
            hours = elapsed_hours(lead)
            if hours is not None:
                elapsed[stage].append(hours)

        funnel = {
            "nc1": direct["nc1"] + direct["nc2"] + direct["nc3"],
            "nc2": direct["nc2"] + direct["nc3"],
            "nc3": direct["nc3"],
        }
        progression = {
            "nc1ToNc2Percent": percent(direct["nc2"], direct["nc1"]),
            "nc2ToNc3Percent": percent(direct["nc3"], direct["nc2"]),
            "avgHoursNc1ToNc2": _avg(elapsed["NC2"]),
            "avgHoursNc2ToNc3": _avg(elapsed["NC3"]),
        }
        sla = {
            "nc1ToNc2Hours": self.sla.nc1_to_nc2,
            "nc2ToNc3Hours": self.sla.nc2_to_nc3,
            "overdueNc1": sum(1 for h in elapsed["NC1"] if h > self.sla.nc1_to_nc2),
            "overdueNc2": sum(1 for h in elapsed["NC2"] if h > self.sla.nc2_to_nc3),
        }

        hourly = self.hourly_stage_counts(staged)
        scores = [r["score"] for r in hour_scores] if hour_scores else [0.0] * 24
        ideal_by_stage = {
            key: self._ideal_for_stage(hourly, scores, key) for key in ("nc1", "nc2", "nc3")
        }

        logger.info(
            "NC ladder: direct=%s overdue NC1=%d NC2=%d",
            direct, sla["overdueNc1"], sla["overdueNc2"],
        )
        return {
            "lookbackDays": self.lookback_days,
            "funnel": funnel,
            "directFunnel": direct,
            "progression": progression,
            "sla": sla,
            "idealByStage": ideal_by_stage,
        }

    @staticmethod
    def _ideal_for_stage(hourly: List[Dict[str, int]], scores: List[float], key: str) -> Dict[str, Any]:
        """Hour with most leads at the stage; contact-time score breaks ties."""
        best = max(range(24), key=lambda h: (hourly[h][key], scores[h], -h))
        return {"hour": hour_label(best), "count": hourly[best][key], "score": scores[best]}

    def time_series(self, leads: Iterable[CanonicalLead]) -> Dict[str, Any]:
        """Hourly NC1/NC2/NC3 counts plus peak NC1/NC2 hours for ``ncTime``."""
        hourly = self.hourly_stage_counts(self.staged_leads(leads))
        peak_nc1 = max(range(24), key=lambda h: (hourly[h]["nc1"], -h))
        peak_nc2 = max(range(24), key=lambda h: (hourly[h]["nc2"], -h))
        return {
            "labels": [hour_label(h) for h in range(24)],
            "nc1": [r["nc1"] for r in hourly],
            "nc2": [r["nc2"] for r in hourly],
            "nc3": [r["nc3"] for r in hourly],
            "peakNC1Hour": hour_label(peak_nc1),
            "peakNC1Count": hourly[peak_nc1]["nc1"],
            "peakNC2Hour": hour_label(peak_nc2),
            "peakNC2Count": hourly[peak_nc2]["nc2"],
        }
