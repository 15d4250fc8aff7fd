"""
Call Analytics Aggregator
==========================
Distribution of call durations, statuses and types, hourly talk time and a
per-owner breakdown with coaching signals. Produces the standalone
call-analysis snapshot.

Only connected calls (duration > 0) feed talk time, average and median.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from typing import Any, Dict, Iterable, List, Optional

from analytics.projector import CanonicalCall
from analytics.records import percent, safe_div
from analytics.timewindow import TimeWindow, hour_label

logger = logging.getLogger(__name__)

DURATION_BUCKETS = ["0s", "<30s", "30-60s", "60-120s", "120-180s", "180-300s", "300s+"]

# Coaching thresholds on an owner's call row
HIGH_CONNECT_RATE = 60.0
LOW_CONNECT_RATE = 45.0
DEEP_CALL_SECONDS = 110.0
RUSHED_CALL_SECONDS = 70.0
LONG_CALL_SECONDS = 180.0
HIGH_ZERO_SHARE = 50.0
STRONG_BUCKET_SHARE = 15.0

STRENGTH_HIGH_CONNECT = "highConnectRate"
STRENGTH_DEEP_CALLS = "deepCalls"
STRENGTH_STRONG_BUCKET = "strongBucket"
ALERT_LOW_CONNECT = "lowConnectRate"
ALERT_ZERO_DURATION = "highZeroDuration"
ALERT_RUSHED_CALLS = "rushedCalls"
ALERT_LONG_CALLS = "longCalls"
ACTION_ADDRESS_ALERT = "addressTopAlert"
ACTION_SHARE_PLAYBOOK = "sharePlaybook"
ACTION_KEEP_MONITORING = "keepMonitoring"


def duration_bucket(seconds: float) -> str:
    """Place a call duration in the 7-way partition."""
    if seconds is None or not math.isfinite(seconds) or seconds <= 0:
        return "0s"
    if seconds < 30:
        return "<30s"
    if seconds < 60:
        return "30-60s"
    if seconds < 120:
        return "60-120s"
    if seconds < 180:
        return "120-180s"
    if seconds < 300:
        return "180-300s"
    return "300s+"


def median(values: List[float]) -> float:
    """Median of ``values``; 0 for an empty list."""
    if not values:
        return 0.0
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2 == 1:
        return float(ordered[mid])
    return (ordered[mid - 1] + ordered[mid]) / 2


def summary_rows(counts: Counter, total: int, key: str) -> List[Dict[str, Any]]:
    """Counter -> ``[{key, count, percent}]`` ordered by count desc, then first seen."""
    rows = [
        {key: label, "count": count, "percent": percent(count, total)}
        for label, count in counts.items()
    ]
    rows.sort(key=lambda r: r["count"], reverse=True)
    return rows


def filter_calls_by_lookback(
    calls: Iterable[CanonicalCall], days: int, window: TimeWindow
) -> List[CanonicalCall]:
    """Calls started within the last ``days`` days; 0 keeps all history."""
    calls = list(calls)
    if not days:
        return calls
    return [c for c in calls if window.is_within_last_days(c.started_at, days)]


def share_of(rows: List[Dict[str, Any]], key: str, label: str) -> float:
    """Percent of the summary row whose ``key`` equals ``label`` (case-insensitive)."""
    for row in rows:
        if str(row[key]).lower() == label.lower():
            return row["percent"]
    return 0.0


def coaching_signals(row: Dict[str, Any]) -> Dict[str, Any]:
    """Strengths, alerts and follow-up actions for one owner row.

    Reads ``connectionRatePercent``, ``avgDurationSec``, ``zeroDurationPercent``
    and the leading entry of ``bucketBreakdown``.
    """
    connect_rate = row["connectionRatePercent"]
    avg_duration = row["avgDurationSec"]
    zero_share = row["zeroDurationPercent"]
    top_bucket = row["bucketBreakdown"][0] if row["bucketBreakdown"] else None

    strengths = []
    if connect_rate >= HIGH_CONNECT_RATE:
        strengths.append(STRENGTH_HIGH_CONNECT)
    if avg_duration >= DEEP_CALL_SECONDS:
        strengths.append(STRENGTH_DEEP_CALLS)
    if top_bucket and top_bucket["bucket"] != "0s" and top_bucket["percent"] > STRONG_BUCKET_SHARE:
        strengths.append(STRENGTH_STRONG_BUCKET)

    alerts = []
    if connect_rate < LOW_CONNECT_RATE:
        alerts.append(ALERT_LOW_CONNECT)
    if zero_share >= HIGH_ZERO_SHARE:
        alerts.append(ALERT_ZERO_DURATION)
    if avg_duration < RUSHED_CALL_SECONDS:
        alerts.append(ALERT_RUSHED_CALLS)
    if avg_duration > LONG_CALL_SECONDS:
        alerts.append(ALERT_LONG_CALLS)

    actions = []
    if alerts:
        actions.append(ACTION_ADDRESS_ALERT)
    if strengths:
        actions.append(ACTION_SHARE_PLAYBOOK)
    if not actions:
        actions.append(ACTION_KEEP_MONITORING)

    return {
        "strengths": strengths,
        "alerts": alerts,
        "actions": actions,
        "topBucket": dict(top_bucket) if top_bucket else None,
    }


class CallAnalyzer:
    """Aggregate call volume, duration and outcome metrics."""

    def __init__(self, window: TimeWindow):
        self.window = window

    def analyze(self, calls: Iterable[CanonicalCall]) -> Dict[str, Any]:
        calls = list(calls)
        total = len(calls)
        durations: List[float] = []
        buckets: Counter = Counter()
        status_counts: Counter = Counter()
        type_counts: Counter = Counter()
        hourly_counts = [0] * 24
        hourly_talk = [0.0] * 24
        total_talk = 0.0
        owners: Dict[str, Dict[str, Any]] = {}

        for call in calls:
            duration = call.duration_seconds
            bucket = duration_bucket(duration)
            connected = duration > 0
            buckets[bucket] += 1
            status_counts[call.status] += 1
            type_counts[call.type] += 1

            if connected:
                durations.append(duration)
                total_talk += duration

            stat = owners.get(call.owner)
            if stat is None:
                stat = owners[call.owner] = {
                    "calls": 0,
                    "connected": 0,
                    "duration_sum": 0.0,
                    "buckets": Counter(),
                    "statuses": Counter(),
                    "hours": Counter(),
                }
            stat["calls"] += 1
            stat["buckets"][bucket] += 1
            stat["statuses"][call.status] += 1
            if connected:
                stat["connected"] += 1
                stat["duration_sum"] += duration

            hour = self.window.hour_of_day(call.started_at)
            if hour is not None:
                hourly_counts[hour] += 1
                stat["hours"][hour] += 1
                if connected:
                    hourly_talk[hour] += duration

        owner_summary = [
            self._owner_row(owner, stat) for owner, stat in owners.items()
        ]
        owner_summary.sort(key=lambda r: r["totalCalls"], reverse=True)

        avg_duration = safe_div(sum(durations), len(durations))
        bucket_summary = summary_rows(buckets, total, "bucket")
        type_summary = summary_rows(type_counts, total, "type")
        peak_talk: Optional[int] = None
        if total_talk > 0:
            peak_talk = max(range(24), key=lambda h: (hourly_talk[h], -h))
        logger.info(
            "Call analysis: %d calls, %d connected, %d owners",
            total, len(durations), len(owner_summary),
        )

        return {
            "generatedAt": self.window.now.isoformat(),
            "totalCalls": total,
            "connectedCalls": len(durations),
            "avgDurationSec": round(avg_duration, 1),
            "medianDurationSec": round(median(durations), 1),
            "zeroDurationPercent": share_of(bucket_summary, "bucket", "0s"),
            "outboundPercent": share_of(type_summary, "type", "Outbound"),
            "inboundPercent": share_of(type_summary, "type", "Inbound"),
            "bucketSummary": bucket_summary,
            "statusSummary": summary_rows(status_counts, total, "status"),
            "typeSummary": type_summary,
            "totalTalkSeconds": _whole(total_talk),
            "totalTalkHours": round(total_talk / 3600, 1),
            "avgTalkPerConnectMinutes": round(safe_div(total_talk, len(durations)) / 60, 1),
            "peakTalkHour": hour_label(peak_talk) if peak_talk is not None else None,
            "hourlyTalkSeconds": [_whole(v) for v in hourly_talk],
            "ownerSummary": owner_summary,
            "hourlyCounts": hourly_counts,
        }

    @staticmethod
    def _owner_row(owner: str, stat: Dict[str, Any]) -> Dict[str, Any]:
        peak: Optional[int] = None
        if stat["hours"]:
            peak = stat["hours"].most_common(1)[0][0]
        avg_booking = round(safe_div(stat["duration_sum"], stat["connected"]), 1)
        bucket_breakdown = summary_rows(stat["buckets"], stat["calls"], "bucket")
        row = {
            "owner": owner,
            "totalCalls": stat["calls"],
            "connectedCalls": stat["connected"],
            "avgDurationSec": avg_booking,
            "connectionRatePercent": percent(stat["connected"], stat["calls"]),
            "avgBookingSeconds": avg_booking,
            "zeroDurationPercent": share_of(bucket_breakdown, "bucket", "0s"),
            "talkMinutes": round(stat["duration_sum"] / 60, 1),
            "peakHour": hour_label(peak) if peak is not None else None,
            "bucketBreakdown": bucket_breakdown,
            "statusBreakdown": summary_rows(stat["statuses"], stat["calls"], "status"),
        }
        row["coaching"] = coaching_signals(row)
        return row


def _whole(value: float) -> float | int:
    """Keep integral second totals as ints in the JSON output."""
    return int(value) if float(value).is_integer() else round(value, 1)
