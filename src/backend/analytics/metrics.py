"""
Pure aggregations over lists of ``EventRecord``.

Nothing in here talks to the store: callers fetch events through a
repository and hand the rows over, which keeps every metric testable with
plain lists.
"""

from __future__ import annotations

import math
from collections import Counter
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .dataset import DEFAULT_TIMEZONE, EventDataset
from .models import (
    DailyCount,
    DailyEngagement,
    EventRecord,
    FunnelBreakdown,
    FunnelStage,
    MetricDelta,
    RetentionPoint,
    StreakBucket,
    SubmissionRecord,
    SubmissionStats,
    TimeWindow,
    WeeklyMetrics,
    parse_event_data,
)

ONBOARDING_SCREEN_EVENT = "onboarding_screen_viewed"
ONBOARDING_STARTED = "onboarding_started"
ONBOARDING_COMPLETED = "onboarding_completed"
APP_OPENED = "app_opened"
TIP_VIEWED = "tip_viewed"
CHECKLIST_ITEM_COMPLETED = "checklist_item_completed"
STREAK_UPDATED = "streak_updated"

ENGAGEMENT_EVENTS = (APP_OPENED, TIP_VIEWED, CHECKLIST_ITEM_COMPLETED)
RETENTION_DAYS = (1, 7, 30)

ONBOARDING_SCREENS: Tuple[Tuple[str, str], ...] = (
    ("intro", "Intro"),
    ("welcome", "Welcome"),
    ("your_name", "Your Name"),
    ("partner_name", "Partner Name"),
    ("couple_photo", "Couple Photo"),
    ("wedding_date", "Wedding Date"),
    ("wedding_location", "Location"),
    ("tented_question", "Tented Question"),
    ("notifications_permission", "Notifications"),
    ("preparedness", "Preparedness"),
    ("referral_source", "Referral Source"),
    ("rating_request", "Rating Request"),
    ("loading", "Loading"),
    ("plan_reveal", "Plan Reveal"),
)

BASELINE_MAX = "max"
BASELINE_FIRST = "first"
FUNNEL_BASELINES = (BASELINE_MAX, BASELINE_FIRST)

STREAK_BUCKETS: Tuple[Tuple[str, Optional[int]], ...] = (
    ("0 days", 0),
    ("1-3 days", 3),
    ("4-7 days", 7),
    ("8-14 days", 14),
    ("15+ days", None),
)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def ratio_percent(numerator: float, denominator: float) -> int:
    if not denominator:
        return 0
    return round_half_up(numerator / denominator * 100)


def window_ending(now: datetime, days: int) -> TimeWindow:
    return TimeWindow(start=now - timedelta(days=days), end=now)


def previous_window(window: TimeWindow) -> TimeWindow:
    span = window.end - window.start
    return TimeWindow(start=window.start - span, end=window.start)


def unique_users(events: Iterable[EventRecord]) -> int:
    return len({event.user_id for event in events if event.user_id})


def event_counts(events: Iterable[EventRecord]) -> Dict[str, int]:
    return dict(Counter(event.event_name for event in events))


def count_events(events: Iterable[EventRecord], event_name: str) -> int:
    return sum(1 for event in events if event.event_name == event_name)


def daily_active_users(
    events: Sequence[EventRecord],
    window: Optional[TimeWindow] = None,
    timezone: str = DEFAULT_TIMEZONE,
) -> List[DailyCount]:
    """
    Distinct users per calendar day, oldest day first.

    Days that only contain anonymous events still appear with a count of 0.
    """

    dataset = EventDataset(events, timezone=timezone)
    per_day = dataset.users_per_day(window)
    return [DailyCount(day=day, value=len(users)) for day, users in sorted(per_day.items())]


def daily_engagement(
    events: Sequence[EventRecord],
    window: Optional[TimeWindow] = None,
    timezone: str = DEFAULT_TIMEZONE,
) -> List[DailyEngagement]:
    dataset = EventDataset(events, timezone=timezone)
    users = dataset.users_per_day(window, ENGAGEMENT_EVENTS)
    tips: Counter = Counter()
    checklists: Counter = Counter()
    for event, local_time in dataset.iter_events(window, ENGAGEMENT_EVENTS):
        if event.event_name == TIP_VIEWED:
            tips[local_time.date()] += 1
        elif event.event_name == CHECKLIST_ITEM_COMPLETED:
            checklists[local_time.date()] += 1

    return [
        DailyEngagement(
            day=day,
            active_users=len(users[day]),
            tips_viewed=tips[day],
            checklist_completions=checklists[day],
        )
        for day in sorted(users)
    ]


def screen_counts(events: Iterable[EventRecord]) -> Dict[str, int]:
    """
    Distinct users per ``screen_name``.

    Screens whose events carry no ``user_id`` at all fall back to the raw
    event count so older app builds still show up in the funnel.
    """

    users: Dict[str, set] = {}
    raw: Counter = Counter()
    for event in events:
        if not event.screen_name:
            continue
        users.setdefault(event.screen_name, set())
        if event.user_id:
            users[event.screen_name].add(event.user_id)
        raw[event.screen_name] += 1

    return {screen: len(users[screen]) or raw[screen] for screen in raw}


def build_funnel(
    counts: Dict[str, int],
    stages: Sequence[Tuple[str, str]] = ONBOARDING_SCREENS,
    baseline: str = BASELINE_MAX,
    name: str = "Onboarding Funnel",
) -> FunnelBreakdown:
    """
    Turn per-stage counts into an ordered funnel.

    ``baseline`` selects the 100% reference: ``max`` uses the largest stage
    count, ``first`` the first stage. Percentages are capped at 100 either way.
    """

    if baseline not in FUNNEL_BASELINES:
        raise ValueError(f"Unknown funnel baseline: {baseline!r}")

    ordered = [counts.get(key, 0) for key, _ in stages]
    if baseline == BASELINE_MAX:
        reference = max(ordered + [1])
    else:
        reference = ordered[0] if ordered else 0

    result: List[FunnelStage] = []
    for index, ((key, label), count) in enumerate(zip(stages, ordered)):
        raw_percentage = count / reference * 100 if reference > 0 else 0.0
        dropoff = ordered[index - 1] - count if index > 0 else 0
        result.append(
            FunnelStage(
                key=key,
                label=label,
                count=count,
                percentage=min(raw_percentage, 100.0),
                dropoff=dropoff,
            )
        )
    return FunnelBreakdown(name=name, baseline=baseline, stages=result)


def onboarding_funnel(
    events: Iterable[EventRecord],
    baseline: str = BASELINE_MAX,
) -> FunnelBreakdown:
    screens = [event for event in events if event.event_name == ONBOARDING_SCREEN_EVENT]
    return build_funnel(screen_counts(screens), baseline=baseline)


def onboarding_rate(events: Sequence[EventRecord]) -> int:
    starts = count_events(events, ONBOARDING_STARTED)
    completions = count_events(events, ONBOARDING_COMPLETED)
    return ratio_percent(completions, starts)


def retention_rate(events: Sequence[EventRecord], day_offset: int) -> int:
    returns = count_events(events, f"day_{day_offset}_return")
    completions = count_events(events, ONBOARDING_COMPLETED)
    return ratio_percent(returns, completions)


def retention_rates(
    events: Sequence[EventRecord],
    day_offsets: Sequence[int] = RETENTION_DAYS,
) -> List[RetentionPoint]:
    return [
        RetentionPoint(day_offset=offset, label=f"Day {offset}", value=retention_rate(events, offset))
        for offset in day_offsets
    ]


def streak_length(event: EventRecord) -> int:
    value = parse_event_data(event.event_data).get("current_streak")
    if isinstance(value, bool):
        return 0
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def streak_bucket_label(streak: int) -> str:
    for label, upper in STREAK_BUCKETS:
        if upper is None or streak <= upper:
            return label
    return STREAK_BUCKETS[-1][0]


def latest_streaks(events: Sequence[EventRecord]) -> Dict[str, int]:
    dataset = EventDataset(events)
    return {user: streak_length(event) for user, event in dataset.latest_per_user(STREAK_UPDATED).items()}


def streak_distribution(events: Sequence[EventRecord]) -> List[StreakBucket]:
    """
    Bucket every user by the streak reported in their latest ``streak_updated``.
    """

    totals: Counter = Counter(streak_bucket_label(streak) for streak in latest_streaks(events).values())
    return [StreakBucket(label=label, users=totals[label]) for label, _ in STREAK_BUCKETS]


def average_streak(events: Iterable[EventRecord]) -> int:
    streaks = [
        streak
        for event in events
        if event.event_name == STREAK_UPDATED and (streak := streak_length(event)) > 0
    ]
    if not streaks:
        return 0
    return round_half_up(sum(streaks) / len(streaks))


def _calc_delta_percent(current: float, previous: float) -> Optional[float]:
    if previous == 0:
        return None
    return (current - previous) / previous * 100


def compare_periods(
    metric: Callable[[Sequence[EventRecord]], float],
    current_events: Sequence[EventRecord],
    previous_events: Sequence[EventRecord],
) -> MetricDelta:
    current = metric(current_events)
    previous = metric(previous_events)
    return MetricDelta(
        current=current,
        previous=previous,
        delta=current - previous,
        delta_percent=_calc_delta_percent(current, previous),
    )


def week_over_week(
    events: Sequence[EventRecord],
    metric: Callable[[Sequence[EventRecord]], float],
    now: datetime,
) -> MetricDelta:
    """
    Evaluate ``metric`` over ``[now-7d, now)`` and ``[now-14d, now-7d)``.
    """

    dataset = EventDataset(events)
    current_window = window_ending(now, 7)
    current = [event for event, _ in dataset.iter_events(current_window)]
    previous = [event for event, _ in dataset.iter_events(previous_window(current_window))]
    return compare_periods(metric, current, previous)


def weekly_metrics(events: Sequence[EventRecord]) -> WeeklyMetrics:
    starts = count_events(events, ONBOARDING_STARTED)
    completions = count_events(events, ONBOARDING_COMPLETED)
    return WeeklyMetrics(
        active_users=unique_users(events),
        total_events=len(events),
        tips_viewed=count_events(events, TIP_VIEWED),
        onboarding_starts=starts,
        onboarding_completions=completions,
        completion_rate=ratio_percent(completions, starts),
    )


def submission_stats(submissions: Iterable[SubmissionRecord]) -> SubmissionStats:
    statuses = Counter(submission.effective_status for submission in submissions)
    return SubmissionStats(
        total=sum(statuses.values()),
        pending=statuses["pending"],
        approved=statuses["approved"],
        rejected=statuses["rejected"],
    )


def filter_submissions(
    submissions: Sequence[SubmissionRecord],
    status: Optional[str] = None,
) -> List[SubmissionRecord]:
    if not status or status == "all":
        return list(submissions)
    return [submission for submission in submissions if submission.effective_status == status]
