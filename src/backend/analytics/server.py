from __future__ import annotations

import asyncio
from typing import Any, Dict, Literal, Optional

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel

from . import render
from .models import SUBMISSION_STATUSES, serialize
from .service import DashboardService

BaselineName = Literal["max", "first"]


class WidgetResponse(BaseModel):
    data: Any
    display: Any = None


def create_dashboard_app(service: DashboardService) -> FastAPI:
    """
    JSON API behind the admin dashboard widgets.

    Mounted under ``/admin/dashboard`` by the main application, which also
    owns the session guard.
    """

    app = FastAPI(title="Daily I Do Analytics API", version="0.1.0")
    app.state.service = service

    @app.get("/health")
    async def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/overview", response_model=WidgetResponse)
    async def overview() -> WidgetResponse:
        cards = await asyncio.to_thread(service.overview_cards)
        return WidgetResponse(data=serialize(cards), display=[render.render_card(card) for card in cards])

    @app.get("/funnel", response_model=WidgetResponse)
    async def funnel(baseline: Optional[BaselineName] = Query(None)) -> WidgetResponse:
        breakdown = await asyncio.to_thread(service.funnel, None, baseline)
        return WidgetResponse(data=serialize(breakdown), display=render.render_funnel(breakdown))

    @app.get("/engagement", response_model=WidgetResponse)
    async def engagement() -> WidgetResponse:
        days = await asyncio.to_thread(service.engagement)
        return WidgetResponse(data=serialize(days), display=render.render_engagement(days))

    @app.get("/retention", response_model=WidgetResponse)
    async def retention() -> WidgetResponse:
        points = await asyncio.to_thread(service.retention)
        return WidgetResponse(data=serialize(points), display=render.render_retention(points))

    @app.get("/streaks", response_model=WidgetResponse)
    async def streaks() -> WidgetResponse:
        buckets = await asyncio.to_thread(service.streaks)
        return WidgetResponse(data=serialize(buckets), display=render.render_streaks(buckets))

    @app.get("/submissions", response_model=WidgetResponse)
    async def submissions(status: str = "all") -> WidgetResponse:
        check_status_filter(status)
        rows, stats = await asyncio.to_thread(service.submissions, status)
        return WidgetResponse(
            data={"submissions": serialize(rows), "stats": serialize(stats)},
            display=_render_submissions(rows),
        )

    @app.get("/week-over-week", response_model=WidgetResponse)
    async def week_over_week() -> WidgetResponse:
        deltas = await asyncio.to_thread(service.week_over_week)
        return WidgetResponse(
            data=serialize(deltas),
            display={name: render.render_delta(delta) for name, delta in deltas.items()},
        )

    return app


def _render_submissions(rows) -> Dict[str, Any]:
    if not rows:
        return {"empty": render.EMPTY_STATES["submissions"], "rows": []}
    return {"empty": None, "rows": [render.render_submission_row(row) for row in rows]}


def render_dashboard(result) -> Dict[str, Any]:
    rendered: Dict[str, Any] = {
        "cards": [render.render_card(card) for card in result.cards],
        "funnel": render.render_funnel(result.funnel),
        "engagement": render.render_engagement(result.engagement),
        "retention": render.render_retention(result.retention),
        "streaks": render.render_streaks(result.streaks),
        "submissions": _render_submissions(result.submissions),
        "weekOverWeek": {name: render.render_delta(delta) for name, delta in result.week_over_week.items()},
    }
    return rendered


def check_status_filter(status: str) -> None:
    if status != "all" and status not in SUBMISSION_STATUSES:
        raise HTTPException(status_code=400, detail=f"Unknown submission status: {status}")
