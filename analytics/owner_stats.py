"""
Owner performance: per-agent lead retention, lead-to-deal conversion and
task completion over the lookback window.

A deal counts as a conversion for its owner when it was created in the
window *and* its original lead creation time (``originalCreatedAt``) falls
in the same window, so deals from old leads do not inflate the rate.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List

from analytics.projector import CanonicalDeal, CanonicalLead, CanonicalTask
from analytics.records import percent
from analytics.timewindow import TimeWindow

logger = logging.getLogger(__name__)


def _blank_row() -> Dict[str, int]:
    return {
        "leads": 0,
        "called": 0,
        "converted": 0,
        "tasks": 0,
        "completed": 0,
        "todays_leads": 0,
        "todays_called": 0,
        "todays_deals": 0,
    }


class OwnerPerformanceAnalyzer:
    """Aggregate per-owner performance, skipping excluded (non-agent) accounts."""

    def __init__(self, window: TimeWindow, lookback_days: int, exclusions: Iterable[str] = ()):
        self.window = window
        self.lookback_days = lookback_days
        self.exclusions = {str(name).strip().lower() for name in exclusions}

    def is_excluded(self, owner: str) -> bool:
        return str(owner or "").strip().lower() in self.exclusions

    def analyze(
        self,
        leads: Iterable[CanonicalLead],
        deals: Iterable[CanonicalDeal],
        tasks: Iterable[CanonicalTask],
    ) -> List[Dict[str, Any]]:
        stats: Dict[str, Dict[str, int]] = {}

        def in_window(ts) -> bool:
            return self.window.is_within_last_days(ts, self.lookback_days)

        def row(owner: str) -> Dict[str, int]:
            if owner not in stats:
                stats[owner] = _blank_row()
            return stats[owner]

        for lead in leads:
            if in_window(lead.created_at):
                r = row(lead.owner)
                r["leads"] += 1
                r["called"] += int(lead.called)
            if self.window.is_today(lead.created_at):
                r = row(lead.owner)
                r["todays_leads"] += 1
                r["todays_called"] += int(lead.called)

        for deal in deals:
            if in_window(deal.created_at) and in_window(deal.original_created_at):
                row(deal.owner)["converted"] += 1
            if self.window.is_today(deal.created_at):
                row(deal.owner)["todays_deals"] += 1

        for task in tasks:
            if in_window(task.created_at):
                r = row(task.owner)
                r["tasks"] += 1
                r["completed"] += int(task.completed)

        results = [
            {
                "owner": owner,
                "leads": s["leads"],
                "calledLeads": s["called"],
                "retentionPercent": percent(s["called"], s["leads"]),
                "convertedLeads": s["converted"],
                "leadToDealConversionPercent": percent(s["converted"], s["leads"]),
                "totalTasks": s["tasks"],
                "completedTasks": s["completed"],
                "taskCompletionPercent": percent(s["completed"], s["tasks"]),
                "todaysLeads": s["todays_leads"],
                "todaysCalledLeads": s["todays_called"],
                "todaysDeals": s["todays_deals"],
            }
            for owner, s in stats.items()
            if not self.is_excluded(owner)
        ]
        results.sort(key=lambda r: r["leads"], reverse=True)
        logger.info(
            "Owner stats: %d owners (%d excluded)",
            len(results), len(stats) - len(results),
        )
        return results
