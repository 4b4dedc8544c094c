"""
Backend analytics helpers for the Daily I Do admin dashboard.

This package reads raw app events and real-wedding submissions from the
event store and emits the aggregates the dashboard widgets render: daily
active users, the onboarding funnel, retention, streak buckets and
week-over-week comparisons.
"""

from .models import (  # noqa: F401
    CardMetric,
    DailyCount,
    DailyEngagement,
    DashboardResult,
    EventRecord,
    FunnelBreakdown,
    FunnelStage,
    MetricDelta,
    RetentionPoint,
    StreakBucket,
    SubmissionRecord,
    SubmissionStats,
    SummaryRecord,
    TimeWindow,
    WeeklyMetrics,
)
from .repository import (  # noqa: F401
    AnalyticsRepository,
    EventQuery,
    InMemoryAnalyticsRepository,
    RepositoryConfig,
    RepositoryError,
    SQLAnalyticsRepository,
    build_repository_from_env,
)
from .service import DashboardService  # noqa: F401
