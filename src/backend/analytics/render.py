"""
Display helpers for the admin dashboard.

Everything here is formatting: numbers in, strings and chart-ready dicts
out. Chart drawing itself happens in the browser.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Tuple

from .metrics import round_half_up
from .models import (
    CardMetric,
    DailyEngagement,
    FunnelBreakdown,
    MetricDelta,
    RetentionPoint,
    StreakBucket,
    SubmissionRecord,
)

RED = "red"
YELLOW = "yellow"
GREEN = "green"

RETENTION_COLORS = ("#22c55e", "#eab308", "#ef4444")
STREAK_COLORS = ("#ef4444", "#f97316", "#eab308", "#22c55e", "#14b8a6")
ENGAGEMENT_LINES = (
    ("activeUsers", "Active Users", "#c48b98"),
    ("tipsViewed", "Tips Viewed", "#6366f1"),
    ("checklistCompletions", "Checklist Items", "#22c55e"),
)
STATUS_COLORS = {"approved": GREEN, "rejected": RED, "pending": YELLOW}

EMPTY_STATES = {
    "funnel": "No onboarding data available yet.",
    "engagement": "No engagement data available yet.",
    "streaks": "No streak data yet.",
    "submissions": "No submissions yet",
    "summary": "No weekly summary available.",
}


def format_percent(value: float) -> str:
    return f"{round_half_up(value)}%"


def format_count(value: float) -> str:
    return f"{round_half_up(value):,}"


def format_delta(delta: MetricDelta) -> str:
    arrow = "↑" if delta.delta > 0 else "↓" if delta.delta < 0 else "→"
    if delta.delta_percent is None:
        return f"{arrow} {format_count(abs(delta.delta))}"
    return f"{arrow} {format_percent(abs(delta.delta_percent))}"


def threshold_color(value: float, thresholds: Tuple[float, float] = (40, 70)) -> str:
    """
    Red below the low threshold, green at or above the high one.
    """

    low, high = thresholds
    if value < low:
        return RED
    if value < high:
        return YELLOW
    return GREEN


def status_badge(status: Optional[str]) -> Dict[str, str]:
    status = status or "pending"
    return {"label": status[:1].upper() + status[1:], "color": STATUS_COLORS.get(status, YELLOW)}


def render_card(card: CardMetric) -> Dict[str, Any]:
    return {
        "key": card.key,
        "title": card.label,
        "value": card.value,
        "display": f"{format_count(card.value)}{card.unit or ''}",
    }


def render_funnel(funnel: FunnelBreakdown) -> Dict[str, Any]:
    if not funnel.has_data:
        return {"name": funnel.name, "empty": EMPTY_STATES["funnel"], "bars": []}

    bars = []
    for stage in funnel.stages:
        bars.append(
            {
                "key": stage.key,
                "label": stage.label,
                "width": stage.percentage,
                "percent": format_percent(stage.percentage),
                "count": format_count(stage.count),
                "dropoff": f"-{format_count(stage.dropoff)}" if stage.dropoff > 0 else None,
            }
        )
    return {"name": funnel.name, "empty": None, "bars": bars}


def render_retention(points: Sequence[RetentionPoint]) -> List[Dict[str, Any]]:
    return [
        {
            "name": point.label,
            "value": point.value,
            "display": format_percent(point.value),
            "fill": RETENTION_COLORS[index % len(RETENTION_COLORS)],
            "level": threshold_color(point.value),
        }
        for index, point in enumerate(points)
    ]


def render_streaks(buckets: Sequence[StreakBucket]) -> Dict[str, Any]:
    if not any(bucket.users for bucket in buckets):
        return {"empty": EMPTY_STATES["streaks"], "slices": []}
    return {
        "empty": None,
        "slices": [
            {
                "name": bucket.label,
                "value": bucket.users,
                "display": f"{format_count(bucket.users)} users",
                "fill": STREAK_COLORS[index % len(STREAK_COLORS)],
            }
            for index, bucket in enumerate(buckets)
        ],
    }


def render_engagement(days: Sequence[DailyEngagement]) -> Dict[str, Any]:
    if not days:
        return {"empty": EMPTY_STATES["engagement"], "points": [], "lines": []}
    points = [
        {
            "date": f"{day.day:%b} {day.day.day}",
            "activeUsers": day.active_users,
            "tipsViewed": day.tips_viewed,
            "checklistCompletions": day.checklist_completions,
        }
        for day in days
    ]
    lines = [{"dataKey": key, "name": name, "stroke": color} for key, name, color in ENGAGEMENT_LINES]
    return {"empty": None, "points": points, "lines": lines}


def render_submission_row(submission: SubmissionRecord) -> Dict[str, Any]:
    wedding_date = submission.wedding_date
    created_at = submission.created_at
    return {
        "id": submission.id,
        "coupleNames": submission.couple_names,
        "coupleInstagram": submission.couple_instagram,
        "weddingDate": f"{wedding_date:%b} {wedding_date.day}, {wedding_date.year}",
        "location": submission.wedding_location,
        "photos": len(submission.photo_urls or ()),
        "submitted": f"{created_at:%b} {created_at.day}, {created_at.year}",
        "status": status_badge(submission.effective_status),
    }


def render_delta(delta: MetricDelta) -> Dict[str, Any]:
    return {
        "current": delta.current,
        "previous": delta.previous,
        "delta": delta.delta,
        "display": format_delta(delta),
        "trend": "up" if delta.delta > 0 else "down" if delta.delta < 0 else "flat",
    }
