"""Pytest fixtures for the Daily I Do admin tests."""

from datetime import date, datetime, timedelta, timezone

import pytest
from langchain_core.messages import AIMessage
from sqlalchemy import create_engine

from backend.analytics.models import EventRecord, SubmissionRecord
from backend.analytics.repository import InMemoryAnalyticsRepository, SQLAnalyticsRepository

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

ENV_VARS = (
    "ADMIN_PASSWORD",
    "ADMIN_SESSION_SECRET",
    "ADMIN_COOKIE_SECURE",
    "ADMIN_LLM_MODEL",
    "ADMIN_LLM_MAX_TOKENS",
    "ANTHROPIC_API_KEY",
    "OPENAI_API_KEY",
    "GET_API_KEYS_FROM_CONFIG",
    "DAILYIDO_DATABASE_URL",
    "DAILYIDO_CREATE_TABLES",
    "DASHBOARD_TIMEZONE",
    "DASHBOARD_FUNNEL_BASELINE",
    "PHOTO_STORAGE_PROVIDER",
    "PHOTO_BUCKET",
    "PHOTO_ENDPOINT",
    "PHOTO_ACCESS_KEY_ID",
    "PHOTO_ACCESS_KEY_SECRET",
    "PHOTO_LOCAL_DIRECTORY",
    "PHOTO_MAX_UPLOAD_BYTES",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep developer .env values from leaking into tests."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def now():
    return NOW


def make_event(name, hours_ago=0.0, user_id=None, screen_name=None, event_data=None, now=NOW):
    return EventRecord(
        event_name=name,
        created_at=now - timedelta(hours=hours_ago),
        user_id=user_id,
        screen_name=screen_name,
        event_data=event_data or {},
    )


def make_submission(couple_names="Ana & Ben", status="pending", days_ago=0, photos=1, now=NOW):
    return SubmissionRecord(
        couple_names=couple_names,
        wedding_date=date(2026, 6, 14),
        wedding_location="Napa, CA",
        photo_urls=tuple(f"https://example.com/{index}.jpg" for index in range(photos)),
        created_at=now - timedelta(days=days_ago),
        status=status,
    )


@pytest.fixture
def sample_events():
    """A small, realistic mix of app events from the last few days."""
    return [
        make_event("app_opened", 1, "u1"),
        make_event("app_opened", 2, "u2"),
        make_event("tip_viewed", 2, "u2"),
        make_event("tip_viewed", 3, "u1"),
        make_event("checklist_item_completed", 26, "u1"),
        make_event("onboarding_started", 50, "u1"),
        make_event("onboarding_started", 50, "u2"),
        make_event("onboarding_completed", 49, "u1"),
        make_event("onboarding_screen_viewed", 50, "u1", "intro"),
        make_event("onboarding_screen_viewed", 50, "u2", "intro"),
        make_event("onboarding_screen_viewed", 49, "u1", "welcome"),
        make_event("day_1_return", 20, "u1"),
        make_event("streak_updated", 30, "u1", event_data={"current_streak": 2}),
        make_event("streak_updated", 5, "u1", event_data={"current_streak": 3}),
        make_event("streak_updated", 4, "u2", event_data={"current_streak": 9}),
    ]


@pytest.fixture
def sample_submissions():
    return [
        make_submission("Ana & Ben", "pending", days_ago=1, photos=2),
        make_submission("Cleo & Dev", "approved", days_ago=3),
        make_submission("Eli & Fay", "rejected", days_ago=5),
    ]


@pytest.fixture
def memory_repository(sample_events, sample_submissions):
    return InMemoryAnalyticsRepository(events=sample_events, submissions=sample_submissions)


@pytest.fixture
def sql_repository(tmp_path):
    """SQL repository backed by a throwaway SQLite file."""
    engine = create_engine(f"sqlite:///{tmp_path / 'analytics.db'}", future=True)
    return SQLAnalyticsRepository(engine, create_tables=True)


class FakeChatModel:
    """Stands in for the configurable LangChain model."""

    def __init__(self, reply="Looks good."):
        self.reply = reply
        self.configs = []
        self.calls = []

    def with_config(self, config):
        self.configs.append(config)
        return self

    async def ainvoke(self, messages, *args, **kwargs):
        self.calls.append(messages)
        if isinstance(self.reply, Exception):
            raise self.reply
        return AIMessage(content=self.reply)


@pytest.fixture
def fake_model():
    return FakeChatModel()
