from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError

from . import metrics
from .dataset import DEFAULT_TIMEZONE, coerce_timezone
from .models import (
    CardMetric,
    DailyEngagement,
    DashboardResult,
    EventRecord,
    FunnelBreakdown,
    MetricDelta,
    RetentionPoint,
    StreakBucket,
    SubmissionRecord,
    SubmissionStats,
    SummaryRecord,
    WeeklyMetrics,
)
from .repository import AnalyticsRepository, EventQuery, RepositoryError

logger = logging.getLogger(__name__)

STORE_ERRORS = (SQLAlchemyError, RepositoryError, OSError)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ChatContext:
    recent_event_total: int
    recent_event_counts: Dict[str, int]
    funnel_users: Dict[str, int]
    submission_stats: SubmissionStats


class DashboardService:
    """
    Fetches rows through the injected repository and turns them into widget
    payloads.

    Every fetch goes through ``_safe_events``/``_safe_submissions``: store
    failures are logged and replaced with an empty result, so a broken
    connection renders as zeros instead of an error page.
    """

    def __init__(
        self,
        repository: AnalyticsRepository,
        timezone_name: str = DEFAULT_TIMEZONE,
        funnel_baseline: str = metrics.BASELINE_MAX,
        funnel_days: int = 30,
        engagement_days: int = 30,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repository = repository
        self.timezone_name = timezone_name
        self.funnel_baseline = funnel_baseline
        self.funnel_days = funnel_days
        self.engagement_days = engagement_days
        self.clock = clock

    def _safe_events(self, query: EventQuery) -> Sequence[EventRecord]:
        try:
            return self.repository.query_events(query)
        except STORE_ERRORS as exc:
            logger.warning("Failed to fetch events %s: %s", list(query.event_names) or "*", exc)
            return ()

    def _safe_submissions(self, limit: Optional[int] = None) -> Sequence[SubmissionRecord]:
        try:
            return self.repository.list_submissions(limit=limit)
        except STORE_ERRORS as exc:
            logger.warning("Failed to fetch submissions: %s", exc)
            return ()

    def _start_of_day(self, now: datetime) -> datetime:
        local = now.astimezone(coerce_timezone(self.timezone_name))
        return local.replace(hour=0, minute=0, second=0, microsecond=0)

    def overview_cards(self, now: Optional[datetime] = None) -> List[CardMetric]:
        now = now or self.clock()
        today = self._start_of_day(now)
        month_ago = now - timedelta(days=30)

        today_events = self._safe_events(EventQuery(start=today))
        onboarding_events = self._safe_events(
            EventQuery(event_names=(metrics.ONBOARDING_STARTED, metrics.ONBOARDING_COMPLETED), start=month_ago)
        )
        streak_events = self._safe_events(EventQuery(event_names=(metrics.STREAK_UPDATED,), start=month_ago))

        return [
            CardMetric(key="active_users", label="Users Today", value=metrics.unique_users(today_events)),
            CardMetric(
                key="new_users",
                label="New Signups",
                value=metrics.count_events(today_events, metrics.ONBOARDING_STARTED),
            ),
            CardMetric(
                key="onboarding_rate",
                label="Onboarding %",
                value=metrics.onboarding_rate(onboarding_events),
                unit="%",
            ),
            CardMetric(
                key="tips_viewed",
                label="Tips Viewed",
                value=metrics.count_events(today_events, metrics.TIP_VIEWED),
            ),
            CardMetric(
                key="avg_streak",
                label="Avg Streak",
                value=metrics.average_streak(streak_events),
                unit=" days",
            ),
        ]

    def funnel(self, now: Optional[datetime] = None, baseline: Optional[str] = None) -> FunnelBreakdown:
        now = now or self.clock()
        events = self._safe_events(
            EventQuery(
                event_names=(metrics.ONBOARDING_SCREEN_EVENT,),
                start=now - timedelta(days=self.funnel_days),
            )
        )
        return metrics.onboarding_funnel(events, baseline=baseline or self.funnel_baseline)

    def engagement(self, now: Optional[datetime] = None) -> List[DailyEngagement]:
        now = now or self.clock()
        events = self._safe_events(
            EventQuery(
                event_names=metrics.ENGAGEMENT_EVENTS,
                start=now - timedelta(days=self.engagement_days),
            )
        )
        return metrics.daily_engagement(events, timezone=self.timezone_name)

    def retention(self) -> List[RetentionPoint]:
        names = tuple(f"day_{offset}_return" for offset in metrics.RETENTION_DAYS)
        events = self._safe_events(EventQuery(event_names=names + (metrics.ONBOARDING_COMPLETED,)))
        return metrics.retention_rates(events)

    def streaks(self) -> List[StreakBucket]:
        events = self._safe_events(EventQuery(event_names=(metrics.STREAK_UPDATED,), descending=True))
        return metrics.streak_distribution(events)

    def submissions(self, status: Optional[str] = None) -> Tuple[List[SubmissionRecord], SubmissionStats]:
        submissions = self._safe_submissions()
        return metrics.filter_submissions(submissions, status), metrics.submission_stats(submissions)

    def weekly_metrics(self, now: Optional[datetime] = None) -> Tuple[WeeklyMetrics, WeeklyMetrics]:
        """
        Aggregates for ``[now-7d, now)`` and the week before it.
        """

        now = now or self.clock()
        current_window = metrics.window_ending(now, 7)
        previous = metrics.previous_window(current_window)
        this_week = self._safe_events(EventQuery(start=current_window.start))
        last_week = self._safe_events(EventQuery(start=previous.start, end=previous.end))
        return metrics.weekly_metrics(this_week), metrics.weekly_metrics(last_week)

    def week_over_week(self, now: Optional[datetime] = None) -> Dict[str, MetricDelta]:
        now = now or self.clock()
        events = self._safe_events(EventQuery(start=now - timedelta(days=14), end=now))
        comparisons = {
            "active_users": metrics.unique_users,
            "total_events": len,
            "tips_viewed": lambda rows: metrics.count_events(rows, metrics.TIP_VIEWED),
            "onboarding_rate": metrics.onboarding_rate,
        }
        return {name: metrics.week_over_week(events, metric, now) for name, metric in comparisons.items()}

    def chat_context(
        self,
        now: Optional[datetime] = None,
        recent_limit: int = 500,
        submission_limit: int = 50,
    ) -> ChatContext:
        now = now or self.clock()
        recent = self._safe_events(EventQuery(start=now - timedelta(days=7), descending=True, limit=recent_limit))
        screens = self._safe_events(
            EventQuery(
                event_names=(metrics.ONBOARDING_SCREEN_EVENT,),
                start=now - timedelta(days=self.funnel_days),
            )
        )
        submissions = self._safe_submissions(limit=submission_limit)
        return ChatContext(
            recent_event_total=len(recent),
            recent_event_counts=metrics.event_counts(recent),
            funnel_users=metrics.screen_counts(screens),
            submission_stats=metrics.submission_stats(submissions),
        )

    def latest_summary(self, period_type: str = "weekly", now: Optional[datetime] = None) -> Optional[SummaryRecord]:
        now = now or self.clock()
        since: date = (now - timedelta(days=7)).date()
        try:
            return self.repository.latest_summary(period_type, since=since)
        except STORE_ERRORS as exc:
            logger.warning("Failed to fetch latest %s summary: %s", period_type, exc)
            return None

    async def build(self, now: Optional[datetime] = None, status: Optional[str] = None) -> DashboardResult:
        """
        Load every widget concurrently; widgets do not depend on each other.
        """

        now = now or self.clock()
        cards, funnel, engagement, retention, streaks, (submissions, stats), deltas = await asyncio.gather(
            asyncio.to_thread(self.overview_cards, now),
            asyncio.to_thread(self.funnel, now),
            asyncio.to_thread(self.engagement, now),
            asyncio.to_thread(self.retention),
            asyncio.to_thread(self.streaks),
            asyncio.to_thread(self.submissions, status),
            asyncio.to_thread(self.week_over_week, now),
        )
        return DashboardResult(
            cards=cards,
            funnel=funnel,
            engagement=engagement,
            retention=retention,
            streaks=streaks,
            submissions=submissions,
            submission_stats=stats,
            week_over_week=deltas,
        )
