"""
Contact-time scoring: how effective is calling at each hour of the day?

    score = 0.55 * connectLikeRate
          + 0.30 * min(avgDuration, 180) / 180
          + 0.15 * volumeNorm

``connectLikeRate`` treats a call of 30s or more as a real conversation.
The score measures general call effectiveness across all calls; NC-stage
density plays no part in it.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from analytics.projector import CanonicalCall
from analytics.records import safe_div
from analytics.timewindow import TimeWindow, hour_label

CONNECT_LIKE_SECONDS = 30
DURATION_CAP_SECONDS = 180
WEIGHT_CONNECT = 0.55
WEIGHT_DURATION = 0.30
WEIGHT_VOLUME = 0.15


def composite_score(connect_like_rate: float, avg_duration: float, volume_norm: float) -> float:
    return (
        WEIGHT_CONNECT * connect_like_rate
        + WEIGHT_DURATION * (min(avg_duration, DURATION_CAP_SECONDS) / DURATION_CAP_SECONDS)
        + WEIGHT_VOLUME * volume_norm
    )


class ContactTimeScorer:
    """Score each hour 0-23 from the calls placed in the lookback window."""

    def __init__(self, window: TimeWindow, lookback_days: int, min_calls: int = 20):
        self.window = window
        self.lookback_days = lookback_days
        self.min_calls = min_calls

    def score_hours(self, calls: Iterable[CanonicalCall]) -> List[Dict[str, Any]]:
        stats = [{"calls": 0, "dur_sum": 0.0, "connected_like": 0} for _ in range(24)]
        for call in calls:
            if not self.window.is_within_last_days(call.started_at, self.lookback_days):
                continue
            hour = self.window.hour_of_day(call.started_at)
            if hour is None:
                continue
            stat = stats[hour]
            duration = max(0.0, call.duration_seconds)
            stat["calls"] += 1
            stat["dur_sum"] += duration
            if duration >= CONNECT_LIKE_SECONDS:
                stat["connected_like"] += 1

        max_calls = max(1, max(s["calls"] for s in stats))
        rows = []
        for hour, stat in enumerate(stats):
            avg_dur = safe_div(stat["dur_sum"], stat["calls"])
            rate = safe_div(stat["connected_like"], stat["calls"])
            volume_norm = stat["calls"] / max_calls
            rows.append({
                "hour": hour,
                "label": hour_label(hour),
                "calls": stat["calls"],
                "avgDur": round(avg_dur),
                "connectLikeRate": round(rate * 100, 1),
                "score": round(composite_score(rate, avg_dur, volume_norm), 3),
            })
        return rows

    def ideal_hour(self, rows: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """Highest-scoring hour with enough call volume; earliest hour wins ties."""
        eligible = [r for r in rows if r["calls"] >= self.min_calls]
        if not eligible:
            return None
        return max(eligible, key=lambda r: r["score"])
