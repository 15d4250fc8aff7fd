"""
Snapshot Assembler
===================
Projects raw CRM collections, builds the shared identity index once, runs
every analyzer and composes the dashboard snapshot.

Exports:
    SnapshotAssembler, project_batch, build_snapshot, build_call_snapshot,
    build_duration_outcome_snapshot

Three outputs are produced:
    build_snapshot                   main dashboard metrics
    build_call_snapshot              standalone call analysis
    build_duration_outcome_snapshot  per-agent duration vs outcome

``SnapshotAssembler.build_duration_insights`` wraps the per-agent rows with
a team summary for the runner and the compute endpoint.

Each call produces a complete, fresh value; nothing is merged with earlier
snapshots. The engine performs no I/O.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from analytics.call_analyzer import CallAnalyzer, filter_calls_by_lookback
from analytics.category_area import BookingAreaAnalyzer, CategoryConversionAnalyzer, Gazetteer
from analytics.config import EngineConfig, build_config
from analytics.contact_time import ContactTimeScorer
from analytics.duration_outcome import DurationOutcomeCorrelator, summarize_agents
from analytics.insights import CustomerInsightsAnalyzer
from analytics.lib.errors import ConfigError
from analytics.matcher import IdentityIndex, build_call_phone_set
from analytics.nc_ladder import NCLadderAnalyzer
from analytics.owner_stats import OwnerPerformanceAnalyzer
from analytics.projector import (
    CanonicalCall,
    CanonicalDeal,
    CanonicalLead,
    CanonicalTask,
    ensure_records,
    project_call,
    project_deal,
    project_lead,
    project_task,
)
from analytics.records import percent, safe_div
from analytics.timewindow import WEEKDAY_LABELS, TimeWindow, hour_label

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.0"


@dataclass(frozen=True)
class ProjectedBatch:
    leads: Tuple[CanonicalLead, ...]
    calls: Tuple[CanonicalCall, ...]
    deals: Tuple[CanonicalDeal, ...]
    tasks: Tuple[CanonicalTask, ...]
    index: IdentityIndex


def _compile_subject_pattern(config: EngineConfig):
    try:
        return re.compile(config.subject_phone_pattern)
    except re.error as e:
        raise ConfigError(f"Invalid subject phone pattern: {e}") from e


def project_batch(leads, calls, deals, tasks, config: EngineConfig) -> ProjectedBatch:
    """Validate and project the four raw collections, then index them."""
    pattern = _compile_subject_pattern(config)
    raw_leads = ensure_records(leads, "leads")
    raw_calls = ensure_records(calls, "calls")
    raw_deals = ensure_records(deals, "deals")
    raw_tasks = ensure_records(tasks, "tasks")

    canon_calls = tuple(project_call(r, config, pattern) for r in raw_calls)
    call_phones = build_call_phone_set(canon_calls)
    canon_leads = tuple(project_lead(r, config, call_phones) for r in raw_leads)
    batch = ProjectedBatch(
        leads=canon_leads,
        calls=canon_calls,
        deals=tuple(project_deal(r, config) for r in raw_deals),
        tasks=tuple(project_task(r, config) for r in raw_tasks),
        index=IdentityIndex.build(canon_leads, canon_calls),
    )
    logger.info(
        "Projected %d leads, %d calls, %d deals, %d tasks (%d dialled phones)",
        len(batch.leads), len(batch.calls), len(batch.deals), len(batch.tasks),
        len(batch.index.call_phones),
    )
    return batch


class SnapshotAssembler:
    """Run every analyzer over one batch and assemble the outputs."""

    def __init__(self, config: Optional[Dict[str, Any] | EngineConfig] = None, now: Optional[datetime] = None):
        self.config = build_config(config)
        self.window = TimeWindow(self.config.reference_timezone, now)

    # ------------------------------------------------------------------
    # Main dashboard snapshot
    # ------------------------------------------------------------------

    def build(self, leads, calls, deals, tasks) -> Dict[str, Any]:
        cfg = self.config
        window = self.window
        batch = project_batch(leads, calls, deals, tasks, cfg)
        lookback = cfg.lookback_days

        todays_leads = [l for l in batch.leads if window.is_today(l.created_at)]
        todays_deals = [d for d in batch.deals if window.is_today(d.created_at)]
        todays_tasks = [t for t in batch.tasks if window.is_today(t.created_at)]
        window_leads = [
            l for l in batch.leads if window.is_within_last_days(l.created_at, lookback)
        ]
        latest_leads = window_leads[: cfg.latest_leads_cap]

        scorer = ContactTimeScorer(window, lookback, cfg.min_calls_for_ideal_hour)
        hour_rows = scorer.score_hours(batch.calls)
        ideal = scorer.ideal_hour(hour_rows)

        ladder_analyzer = NCLadderAnalyzer(window, lookback, cfg.nc_sla_hours)
        nc_ladder = ladder_analyzer.analyze(batch.leads, hour_rows)
        nc_series = ladder_analyzer.time_series(batch.leads)

        retention = self._retention(todays_leads)
        compliance = self._compliance(latest_leads)
        connected = [c.duration_seconds for c in batch.calls if c.duration_seconds > 0]
        completed_today = sum(1 for t in todays_tasks if t.completed)
        direct = nc_ladder["directFunnel"]

        kpis = {
            "todaysLeadsCount": len(todays_leads),
            "nc1Count": direct["nc1"],
            "nc2Count": direct["nc2"],
            "nc3Count": direct["nc3"],
            "leadToDealConversionPercent": percent(
                len(todays_deals), len(todays_leads) + len(todays_deals)
            ),
            "totalDealsCount": len(todays_deals),
            "totalTasksCount": len(todays_tasks),
            "taskCompletionPercent": percent(completed_today, len(todays_tasks)),
            "retentionRate": retention["values"][-1] if retention["values"] else 0.0,
            "avgCallDurationSec": round(safe_div(sum(connected), len(connected))),
            "followupComplianceRate": percent(compliance["called"], len(latest_leads)),
        }

        insights = CustomerInsightsAnalyzer(
            window, cfg.keywords.rejection_marker, cfg.keywords.price_objection,
        )
        snapshot = {
            "generatedAt": window.now.isoformat(),
            "schemaVersion": SCHEMA_VERSION,
            "kpis": kpis,
            "retention": retention,
            "calls": self._weekday_calls(batch.calls),
            "compliance": compliance,
            "ncTime": {
                "lookbackDays": lookback,
                "idealHour": ideal["label"] if ideal else "--",
                "idealScore": ideal["score"] if ideal else 0,
                **nc_series,
                "hourlyScores": hour_rows,
            },
            "ncLadder": nc_ladder,
            "categoryConversions": CategoryConversionAnalyzer(
                window, lookback, cfg.category_fields, cfg.keywords.lead_converted,
            ).analyze(batch.leads, batch.deals),
            "topBookingAreas": BookingAreaAnalyzer(
                Gazetteer(cfg.known_areas), cfg.top_booking_areas,
            ).analyze(batch.deals),
            "latestLeadsToday": [l.to_row() for l in latest_leads],
            "overdueFollowups": self._overdue(latest_leads),
            "ownerStats": OwnerPerformanceAnalyzer(
                window, lookback, cfg.owner_exclusion_list,
            ).analyze(batch.leads, batch.deals, batch.tasks),
            "customerInsights": insights.analyze(latest_leads),
        }
        logger.info(
            "Snapshot built: %d leads today, %d deals today, %d tasks today, %d categories",
            kpis["todaysLeadsCount"], kpis["totalDealsCount"], kpis["totalTasksCount"],
            len(snapshot["categoryConversions"]),
        )
        return snapshot

    def _retention(self, todays_leads: List[CanonicalLead]) -> Dict[str, Any]:
        """Hourly share of today's leads that were called, 00:00 to the current hour."""
        hours = range(self.window.current_hour() + 1)
        created = [0] * 24
        called = [0] * 24
        for lead in todays_leads:
            hour = self.window.hour_of_day(lead.created_at)
            if hour is None:
                continue
            created[hour] += 1
            called[hour] += int(lead.called)
        return {
            "labels": [hour_label(h) for h in hours],
            "values": [percent(called[h], created[h]) for h in hours],
        }

    def _weekday_calls(self, calls: Tuple[CanonicalCall, ...]) -> Dict[str, Any]:
        counts = [0] * 7
        durations = [0.0] * 7
        for call in calls:
            idx = self.window.weekday_index(call.started_at)
            if idx is None:
                continue
            counts[idx] += 1
            durations[idx] += max(0.0, call.duration_seconds)
        return {
            "labels": list(WEEKDAY_LABELS),
            "callCounts": counts,
            "avgDurationSec": [round(safe_div(durations[i], counts[i])) for i in range(7)],
        }

    @staticmethod
    def _compliance(leads: List[CanonicalLead]) -> Dict[str, int]:
        called = sum(1 for l in leads if l.called)
        return {
            "called": called,
            "notCalled": max(0, len(leads) - called),
            "modifiedWithoutCall": sum(1 for l in leads if not l.called and l.modified_raw),
        }

    def _overdue(self, leads: List[CanonicalLead]) -> List[Dict[str, Any]]:
        overdue = []
        for lead in leads:
            if lead.called:
                continue
            minutes = self.window.minutes_since(lead.created_at)
            if minutes is None or minutes < self.config.overdue_minutes:
                continue
            overdue.append({
                "name": lead.name,
                "owner": lead.owner,
                "phone": lead.phone,
                "minutesSinceCreated": minutes,
            })
            if len(overdue) >= self.config.overdue_followups_cap:
                break
        return overdue

    # ------------------------------------------------------------------
    # Sibling snapshots
    # ------------------------------------------------------------------

    def build_call_snapshot(self, calls, lookback_days: Optional[int] = None) -> Dict[str, Any]:
        pattern = _compile_subject_pattern(self.config)
        canon = [project_call(r, self.config, pattern) for r in ensure_records(calls, "calls")]
        days = self.config.call_lookback_days if lookback_days is None else lookback_days
        return CallAnalyzer(self.window).analyze(
            filter_calls_by_lookback(canon, days, self.window)
        )

    def build_duration_outcome(self, leads, calls) -> List[Dict[str, Any]]:
        batch = project_batch(leads, calls, [], [], self.config)
        correlator = DurationOutcomeCorrelator(
            self.window,
            self.config.keywords.outcome_converted,
            self.config.keywords.outcome_rejected,
        )
        return correlator.analyze(batch.calls, batch.index)

    def build_duration_insights(self, leads, calls) -> Dict[str, Any]:
        """Per-agent rows wrapped with their team summary and the build time."""
        agents = self.build_duration_outcome(leads, calls)
        return {
            "generatedAt": self.window.now.isoformat(),
            "summary": summarize_agents(agents),
            "agents": agents,
        }


def build_snapshot(leads, calls, deals, tasks, config=None, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Build the main dashboard snapshot."""
    return SnapshotAssembler(config, now).build(leads, calls, deals, tasks)


def build_call_snapshot(calls, config=None, now: Optional[datetime] = None,
                        lookback_days: Optional[int] = None) -> Dict[str, Any]:
    """Build the standalone call-analysis snapshot."""
    return SnapshotAssembler(config, now).build_call_snapshot(calls, lookback_days)


def build_duration_outcome_snapshot(leads, calls, config=None,
                                    now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Build the per-agent duration-outcome snapshot."""
    return SnapshotAssembler(config, now).build_duration_outcome(leads, calls)
