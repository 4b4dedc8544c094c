from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field
from typing_extensions import TypedDict

from backend.analytics.models import SummaryRecord, WeeklyMetrics


class SummaryKeyMetrics(BaseModel):
    """Metrics stored next to each generated summary (``analytics_summaries.key_metrics``)."""
    active_users: int = Field(0, description="Distinct users in the last 7 days")
    tips_viewed: int = Field(0, description="tip_viewed events in the last 7 days")
    onboarding_rate: int = Field(0, description="Onboarding completion rate, whole percent")


# state
class SummaryState(TypedDict, total=False):
    """Weekly summary graph state."""

    now: datetime
    this_week: WeeklyMetrics
    last_week: WeeklyMetrics

    prompt: str                      # filled in by generate_summary
    summary_text: str
    key_metrics: SummaryKeyMetrics

    summary: Optional[SummaryRecord]  # stored row, set by persist_summary
