from langchain.chat_models import init_chat_model
from langgraph.graph import START, END, StateGraph
from langchain_core.runnables import RunnableConfig
from langchain_core.messages import (
    HumanMessage,
    SystemMessage,
)

from backend.analytics.models import SummaryRecord, WeeklyMetrics
from backend.analytics.repository import AnalyticsRepository
from backend.analytics.service import ChatContext, DashboardService

from .state import SummaryKeyMetrics, SummaryState
from .utils import (
    format_number,
    get_api_key_for_model,
    message_text,
)
from .configuration import (
    AdminConfig
    )

from .prompt import(
    chat_context_prompt,
    weekly_summary_prompt,
    )

from datetime import datetime, timedelta
from typing import Any, Dict, Optional
import asyncio
import logging
from dotenv import load_dotenv


# Initialize a configurable model shared by the chat endpoint and the summary graph
configurable_model = init_chat_model(
    configurable_fields=("model", "temperature", "api_key", "max_tokens"),
)
load_dotenv()

logger = logging.getLogger(__name__)

UNABLE_TO_ANSWER = "Unable to generate response"


class ConfigurationError(RuntimeError):
    """Raised when the LLM provider is not configured."""


class SummaryGenerationError(RuntimeError):
    """Raised when the model returns an empty summary."""


def not_configured_message(feature: str, configurable: AdminConfig) -> str:
    return (
        f"AI {feature} is not configured. "
        f"Please add {configurable.llm.api_key_env} to your environment variables."
    )


def build_model_config(configurable: AdminConfig, config: Optional[RunnableConfig] = None) -> Dict[str, Any]:
    api_key = get_api_key_for_model(configurable.llm.model, config)
    if not api_key:
        raise ConfigurationError(f"{configurable.llm.api_key_env} is not set")
    return {
        "configurable": {
            "model": configurable.llm.model,
            "max_tokens": configurable.llm.max_tokens,
            "temperature": configurable.llm.temperature,
            "api_key": api_key,
        }
    }


# ========== chat ==========

def build_chat_context(context: ChatContext) -> str:
    breakdown = "\n".join(
        f"- {name}: {format_number(count)}" for name, count in context.recent_event_counts.items()
    )
    funnel_summary = "\n".join(
        f"{screen}: {count} users" for screen, count in context.funnel_users.items()
    )
    stats = context.submission_stats
    return chat_context_prompt.format(
        recent_event_total=format_number(context.recent_event_total),
        event_breakdown=breakdown,
        funnel_summary=funnel_summary or "No funnel data available yet",
        submissions_total=stats.total,
        submissions_pending=stats.pending,
        submissions_approved=stats.approved,
    )


async def answer_question(
    question: str,
    service: DashboardService,
    config: Optional[RunnableConfig] = None,
    model: Any = None,
) -> str:
    """Answer a free-form question about the dashboard data with one model call."""
    configurable = AdminConfig.from_runnable_config(config)
    model_config = build_model_config(configurable, config)

    context = await asyncio.to_thread(
        service.chat_context,
        None,
        configurable.dashboard.chat_recent_event_limit,
        configurable.dashboard.chat_submission_limit,
    )
    system_prompt = build_chat_context(context)

    chat_model = (model or configurable_model).with_config(model_config)
    response = await chat_model.ainvoke(
        [SystemMessage(content=system_prompt), HumanMessage(content=question)]
    )
    answer = message_text(response)
    return answer if answer.strip() else UNABLE_TO_ANSWER


# ========== weekly summary ==========

def build_summary_prompt(this_week: WeeklyMetrics, last_week: WeeklyMetrics) -> str:
    return weekly_summary_prompt.format(
        active_users=this_week.active_users,
        total_events=this_week.total_events,
        tips_viewed=this_week.tips_viewed,
        onboarding_starts=this_week.onboarding_starts,
        onboarding_completions=this_week.onboarding_completions,
        completion_rate=this_week.completion_rate,
        previous_active_users=last_week.active_users,
        previous_total_events=last_week.total_events,
        previous_tips_viewed=last_week.tips_viewed,
    )


def summary_key_metrics(this_week: WeeklyMetrics) -> SummaryKeyMetrics:
    return SummaryKeyMetrics(
        active_users=this_week.active_users,
        tips_viewed=this_week.tips_viewed,
        onboarding_rate=this_week.completion_rate,
    )


def build_summary_graph(
    service: DashboardService,
    repository: AnalyticsRepository,
    model: Any = None,
):
    """
    collect_metrics -> generate_summary -> persist_summary

    The store and the model are bound here instead of living in module
    globals, so tests can hand in in-memory fakes.
    """

    async def collect_metrics(state: SummaryState, config: RunnableConfig) -> Dict[str, Any]:
        now = state.get("now") or service.clock()
        this_week, last_week = await asyncio.to_thread(service.weekly_metrics, now)
        return {"now": now, "this_week": this_week, "last_week": last_week}

    async def generate_summary(state: SummaryState, config: RunnableConfig) -> Dict[str, Any]:
        configurable = AdminConfig.from_runnable_config(config)
        model_config = build_model_config(configurable, config)

        prompt = build_summary_prompt(state["this_week"], state["last_week"])
        summary_model = (model or configurable_model).with_config(model_config)
        response = await summary_model.ainvoke([HumanMessage(content=prompt)])

        summary_text = message_text(response)
        if not summary_text.strip():
            raise SummaryGenerationError("Model returned an empty summary")
        return {
            "prompt": prompt,
            "summary_text": summary_text,
            "key_metrics": summary_key_metrics(state["this_week"]),
        }

    async def persist_summary(state: SummaryState, config: RunnableConfig) -> Dict[str, Any]:
        now: datetime = state["now"]
        record = SummaryRecord(
            period_type="weekly",
            period_start=(now - timedelta(days=7)).date(),
            period_end=now.date(),
            summary_text=state["summary_text"],
            key_metrics=state["key_metrics"].model_dump(),
            created_at=now,
        )
        stored = await asyncio.to_thread(repository.insert_summary, record)
        logger.info("Stored weekly summary %s (%s - %s)", stored.id, stored.period_start, stored.period_end)
        return {"summary": stored}

    summary_graph = StateGraph(SummaryState)
    summary_graph.add_node("collect_metrics", collect_metrics)
    summary_graph.add_node("generate_summary", generate_summary)
    summary_graph.add_node("persist_summary", persist_summary)

    summary_graph.add_edge(START, "collect_metrics")
    summary_graph.add_edge("collect_metrics", "generate_summary")
    summary_graph.add_edge("generate_summary", "persist_summary")
    summary_graph.add_edge("persist_summary", END)

    return summary_graph.compile()


async def generate_weekly_summary(
    service: DashboardService,
    repository: AnalyticsRepository,
    config: Optional[RunnableConfig] = None,
    model: Any = None,
    now: Optional[datetime] = None,
) -> SummaryRecord:
    # Fail on missing configuration before touching the store
    build_model_config(AdminConfig.from_runnable_config(config), config)

    graph = build_summary_graph(service, repository, model=model)
    state = await graph.ainvoke({"now": now or service.clock()}, config=config)
    return state["summary"]
