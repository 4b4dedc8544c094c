"""Tests for the chat and weekly summary flows."""

import asyncio
from datetime import date

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from backend.analytics.models import WeeklyMetrics
from backend.analytics.service import DashboardService
from dailyido_admin.agent import (
    UNABLE_TO_ANSWER,
    ConfigurationError,
    SummaryGenerationError,
    answer_question,
    build_model_config,
    build_summary_prompt,
    generate_weekly_summary,
    not_configured_message,
)
from dailyido_admin.configuration import AdminConfig
from dailyido_admin.utils import get_api_key_for_model, message_text
from conftest import NOW, FakeChatModel


@pytest.fixture
def service(memory_repository):
    return DashboardService(memory_repository, clock=lambda: NOW)


@pytest.fixture
def api_key(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
    return "sk-test"


def test_build_model_config_requires_key():
    with pytest.raises(ConfigurationError):
        build_model_config(AdminConfig())


def test_build_model_config_uses_fixed_budget(api_key):
    configurable = build_model_config(AdminConfig())["configurable"]

    assert configurable["api_key"] == api_key
    assert configurable["max_tokens"] == 1024
    assert configurable["model"].startswith("anthropic:")


def test_api_keys_can_come_from_runnable_config(monkeypatch):
    monkeypatch.setenv("GET_API_KEYS_FROM_CONFIG", "true")
    config = {"configurable": {"apiKeys": {"ANTHROPIC_API_KEY": "from-config"}}}

    assert get_api_key_for_model("anthropic:claude-sonnet-4-20250514", config) == "from-config"
    assert get_api_key_for_model("anthropic:claude-sonnet-4-20250514", None) is None


def test_not_configured_message():
    assert not_configured_message("chat", AdminConfig()) == (
        "AI chat is not configured. Please add ANTHROPIC_API_KEY to your environment variables."
    )


def test_message_text_handles_content_blocks():
    blocks = [{"type": "text", "text": "Hello "}, {"type": "tool_use", "id": "x"}, "there"]

    assert message_text(blocks) == "Hello there"
    assert message_text(AIMessage(content="  padded  ")) == "  padded  "


def test_answer_question_sends_data_context(service, api_key, fake_model):
    answer = asyncio.run(answer_question("How is onboarding doing?", service, model=fake_model))

    assert answer == "Looks good."
    (messages,) = fake_model.calls
    system, human = messages
    assert isinstance(system, SystemMessage) and isinstance(human, HumanMessage)
    assert human.content == "How is onboarding doing?"
    assert "Total events: 15" in system.content
    assert "intro: 2 users" in system.content
    assert "Pending: 1" in system.content
    assert fake_model.configs[0]["configurable"]["max_tokens"] == 1024


def test_answer_question_empty_reply(service, api_key):
    assert asyncio.run(answer_question("Anything?", service, model=FakeChatModel(""))) == UNABLE_TO_ANSWER


def test_answer_question_without_key_does_not_call_model(service, fake_model):
    with pytest.raises(ConfigurationError):
        asyncio.run(answer_question("Anything?", service, model=fake_model))

    assert fake_model.calls == []


def test_build_summary_prompt_is_deterministic():
    this_week = WeeklyMetrics(12, 340, 25, 8, 6, 75)
    last_week = WeeklyMetrics(10, 300, 20, 5, 4, 80)

    prompt = build_summary_prompt(this_week, last_week)

    assert prompt == build_summary_prompt(this_week, last_week)
    assert "- Active users: 12" in prompt
    assert "- Completion rate: 75%" in prompt
    assert "- Total events: 300" in prompt


def test_generate_weekly_summary_persists_record(service, memory_repository, api_key, fake_model):
    record = asyncio.run(generate_weekly_summary(service, memory_repository, model=fake_model, now=NOW))

    assert record.summary_text == "Looks good."
    assert record.period_type == "weekly"
    assert record.period_start == date(2026, 10, 12)
    assert record.period_end == date(2026, 10, 19)
    assert record.key_metrics == {"active_users": 2, "tips_viewed": 2, "onboarding_rate": 50}
    assert memory_repository.summaries == [record]
    (messages,) = fake_model.calls
    assert "- Onboarding starts: 2" in messages[0].content


def test_generate_weekly_summary_rejects_empty_reply(service, memory_repository, api_key):
    with pytest.raises(SummaryGenerationError):
        asyncio.run(generate_weekly_summary(service, memory_repository, model=FakeChatModel("   "), now=NOW))

    assert memory_repository.summaries == []


def test_generate_weekly_summary_requires_key(service, memory_repository, fake_model):
    with pytest.raises(ConfigurationError):
        asyncio.run(generate_weekly_summary(service, memory_repository, model=fake_model, now=NOW))

    assert fake_model.calls == []
    assert memory_repository.summaries == []


def test_generate_weekly_summary_stores_reply_verbatim(service, memory_repository, api_key):
    reply = "  Strong week.\n\nKeep the tips coming.\n"

    record = asyncio.run(generate_weekly_summary(service, memory_repository, model=FakeChatModel(reply), now=NOW))

    assert record.summary_text == reply
    assert memory_repository.summaries[0].summary_text == reply


def test_answer_question_uses_configured_model(service, monkeypatch, fake_model):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-openai")
    config = {"configurable": {"llm": {"model": "openai:gpt-4o", "max_tokens": 256}}}

    assert asyncio.run(answer_question("Anything?", service, config=config, model=fake_model)) == "Looks good."

    configurable = fake_model.configs[0]["configurable"]
    assert configurable["model"] == "openai:gpt-4o"
    assert configurable["max_tokens"] == 256
    assert configurable["api_key"] == "sk-openai"
