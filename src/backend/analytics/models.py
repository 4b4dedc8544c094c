from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, Optional, Sequence


SUBMISSION_STATUSES = ("pending", "approved", "rejected")
DEFAULT_SUBMISSION_STATUS = "pending"


def parse_event_data(raw: Any) -> Dict[str, Any]:
    """
    Accept the payload either as a mapping or as a JSON-encoded string.

    The mobile client has shipped both shapes over time; anything that does
    not decode to a JSON object is treated as an empty payload.
    """

    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            return {}
    if isinstance(raw, dict):
        return raw
    return {}


@dataclass(frozen=True)
class EventRecord:
    """
    Row of the ``analytics_events`` table as written by the iOS app.

    ``event_data`` mirrors the flexible JSON payload; it carries values such
    as ``current_streak`` for ``streak_updated`` events.
    """

    event_name: str
    created_at: datetime
    user_id: Optional[str] = None
    screen_name: Optional[str] = None
    event_data: Dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None


@dataclass(frozen=True)
class SubmissionRecord:
    """
    Real-wedding submission collected by the public form.

    ``status`` is normalised to ``pending`` when the stored value is missing.
    """

    couple_names: str
    wedding_date: date
    wedding_location: str
    photo_urls: Sequence[str]
    created_at: datetime
    status: str = DEFAULT_SUBMISSION_STATUS
    couple_instagram: Optional[str] = None
    vendor_instagrams: Optional[str] = None
    favorite_detail: Optional[str] = None
    terms_accepted: bool = True
    id: Optional[str] = None

    @property
    def effective_status(self) -> str:
        return self.status or DEFAULT_SUBMISSION_STATUS


@dataclass(frozen=True)
class SummaryRecord:
    period_type: str
    period_start: date
    period_end: date
    summary_text: str
    key_metrics: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    id: Optional[str] = None


@dataclass(frozen=True)
class TimeWindow:
    """
    Half-open interval ``[start, end)`` used to scope queries and aggregates.
    """

    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end


@dataclass(frozen=True)
class DailyCount:
    day: date
    value: int


@dataclass(frozen=True)
class DailyEngagement:
    day: date
    active_users: int
    tips_viewed: int
    checklist_completions: int


@dataclass(frozen=True)
class FunnelStage:
    key: str
    label: str
    count: int
    percentage: float
    dropoff: int = 0


@dataclass(frozen=True)
class FunnelBreakdown:
    name: str
    baseline: str
    stages: Sequence[FunnelStage]

    @property
    def has_data(self) -> bool:
        return any(stage.count for stage in self.stages)


@dataclass(frozen=True)
class RetentionPoint:
    day_offset: int
    label: str
    value: int


@dataclass(frozen=True)
class StreakBucket:
    label: str
    users: int


@dataclass(frozen=True)
class MetricDelta:
    """
    Same aggregate computed over the current and the previous window.
    """

    current: float
    previous: float
    delta: float
    delta_percent: Optional[float] = None


@dataclass(frozen=True)
class SubmissionStats:
    total: int
    pending: int
    approved: int
    rejected: int


@dataclass(frozen=True)
class CardMetric:
    key: str
    label: str
    value: float
    unit: Optional[str] = None


@dataclass(frozen=True)
class WeeklyMetrics:
    active_users: int
    total_events: int
    tips_viewed: int
    onboarding_starts: int
    onboarding_completions: int
    completion_rate: int


@dataclass(frozen=True)
class DashboardResult:
    cards: Sequence[CardMetric]
    funnel: FunnelBreakdown
    engagement: Sequence[DailyEngagement]
    retention: Sequence[RetentionPoint]
    streaks: Sequence[StreakBucket]
    submissions: Sequence[SubmissionRecord]
    submission_stats: SubmissionStats
    week_over_week: Dict[str, MetricDelta] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        """
        Convert the nested dataclasses into a JSON-serialisable structure.
        """

        return {
            "cards": [serialize(card) for card in self.cards],
            "funnel": serialize(self.funnel),
            "engagement": [serialize(day) for day in self.engagement],
            "retention": [serialize(point) for point in self.retention],
            "streaks": [serialize(bucket) for bucket in self.streaks],
            "submissions": [serialize(item) for item in self.submissions],
            "submissionStats": serialize(self.submission_stats),
            "weekOverWeek": {name: serialize(delta) for name, delta in self.week_over_week.items()},
        }


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def serialize(obj: Any) -> Any:
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, FunnelBreakdown):
        return {
            "name": obj.name,
            "baseline": obj.baseline,
            "hasData": obj.has_data,
            "stages": [serialize(stage) for stage in obj.stages],
        }
    if isinstance(obj, SubmissionRecord):
        payload = {_camel(key): serialize(value) for key, value in vars(obj).items()}
        payload["status"] = obj.effective_status
        return payload
    if hasattr(obj, "__dataclass_fields__"):
        return {_camel(key): serialize(getattr(obj, key)) for key in obj.__dataclass_fields__}
    if isinstance(obj, dict):
        return {key: serialize(value) for key, value in obj.items()}
    if isinstance(obj, Iterable) and not isinstance(obj, (str, bytes)):
        return [serialize(item) for item in obj]
    return obj
