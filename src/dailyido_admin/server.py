"""FastAPI server for the Daily I Do admin dashboard and the public submission form."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from langchain_core.runnables import RunnableConfig
from pydantic import BaseModel, Field, ValidationError

from backend.analytics.models import serialize
from backend.analytics.repository import (
    AnalyticsRepository,
    InMemoryAnalyticsRepository,
    RepositoryConfig,
    build_repository_from_env,
)
from backend.analytics.server import check_status_filter, create_dashboard_app, render_dashboard
from backend.analytics.service import DashboardService, utc_now

from .agent import (
    ConfigurationError,
    answer_question,
    generate_weekly_summary,
    not_configured_message,
)
from .auth import AdminGuardMiddleware, SessionManager
from .configuration import AdminConfig
from .storage import PhotoUpload, StorageManager, SubmissionError, SubmissionForm
from .storage_config import PhotoStorageConfig, StorageConfig, load_storage_config

logger = logging.getLogger(__name__)


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)


def _mount_local_media_directory(target_app: FastAPI, photo_cfg: PhotoStorageConfig) -> None:
    """Expose uploaded photos when local_fs storage is enabled."""
    if photo_cfg.provider != "local_fs":
        return

    media_root = Path(photo_cfg.local_directory).expanduser()
    media_root.mkdir(parents=True, exist_ok=True)

    already_mounted = any(
        getattr(route, "path", None) == "/media" for route in target_app.routes
    )
    if not already_mounted:
        target_app.mount("/media", StaticFiles(directory=str(media_root)), name="media")


def _build_repository(storage_config: StorageConfig) -> AnalyticsRepository:
    repository = build_repository_from_env(
        RepositoryConfig(
            database_url=storage_config.database.url,
            create_tables=storage_config.database.create_tables,
        )
    )
    if repository is None:
        logger.warning(
            "DAILYIDO_DATABASE_URL is not configured; the dashboard will show empty data."
        )
        return InMemoryAnalyticsRepository()
    return repository


def _error(message: str, status_code: int = 200) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def create_app(
    repository: Optional[AnalyticsRepository] = None,
    config: Optional[AdminConfig] = None,
    storage_config: Optional[StorageConfig] = None,
    model: Any = None,
    clock: Callable[[], datetime] = utc_now,
) -> FastAPI:
    """
    Build the application. ``uvicorn dailyido_admin.server:create_app --factory``
    serves it with settings taken from the environment.
    """
    config = config or AdminConfig.from_env()
    storage_config = storage_config or load_storage_config(None)
    repository = repository or _build_repository(storage_config)

    service = DashboardService(
        repository,
        timezone_name=config.dashboard.timezone,
        funnel_baseline=config.dashboard.funnel_baseline,
        funnel_days=config.dashboard.funnel_days,
        engagement_days=config.dashboard.engagement_days,
        clock=clock,
    )
    sessions = SessionManager(config.auth)
    storage_manager = StorageManager()
    # Chat and summary read their LLM settings from here, not from a fresh env lookup
    runnable_config: RunnableConfig = {"configurable": config.model_dump()}

    app = FastAPI(title="Daily I Do Admin API", version="0.1.0")
    app.state.service = service
    app.state.sessions = sessions

    app.add_middleware(AdminGuardMiddleware, sessions=sessions)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"]
    )

    _mount_local_media_directory(app, storage_config.photos)
    app.mount("/admin/dashboard", create_dashboard_app(service))

    @app.get("/health")
    async def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/admin/login")
    async def login_page() -> Dict[str, Any]:
        return {"detail": "Admin login required.", "login": f"{config.auth.api_prefix}/login"}

    @app.get("/admin")
    async def admin_dashboard(status: str = "all") -> Dict[str, Any]:
        check_status_filter(status)
        result = await service.build(status=status)
        return {"data": result.as_dict(), "display": render_dashboard(result)}

    @app.post("/admin/api/login")
    async def login(request: Request) -> JSONResponse:
        try:
            payload = await request.json()
        except ValueError:
            return _error("Invalid request", status_code=400)
        if not isinstance(payload, dict):
            return _error("Invalid request", status_code=400)

        if not sessions.login_enabled:
            return _error(
                "Admin login is not configured. Please add ADMIN_PASSWORD to your environment variables.",
                status_code=503,
            )

        if sessions.verify_password(payload.get("password")):
            response = JSONResponse({"success": True})
            sessions.set_session_cookie(response, sessions.issue_token())
            return response

        return _error("Invalid password", status_code=401)

    @app.post("/admin/api/logout")
    async def logout() -> JSONResponse:
        response = JSONResponse({"success": True})
        sessions.clear_session_cookie(response)
        return response

    @app.post("/admin/api/chat")
    async def chat(body: ChatRequest, request: Request) -> JSONResponse:
        if not sessions.is_authenticated(request):
            return _error("Unauthorized", status_code=401)
        try:
            answer = await answer_question(body.message, service, config=runnable_config, model=model)
        except ConfigurationError:
            return _error(not_configured_message("chat", config))
        except Exception:
            logger.exception("Chat API error")
            return _error("Failed to process your question. Please try again.", status_code=500)
        return JSONResponse({"response": answer})

    @app.post("/admin/api/summary")
    async def summary(request: Request) -> JSONResponse:
        if not sessions.is_authenticated(request):
            return _error("Unauthorized", status_code=401)
        try:
            record = await generate_weekly_summary(service, repository, config=runnable_config, model=model)
        except ConfigurationError:
            return _error(not_configured_message("summary", config))
        except Exception:
            logger.exception("Summary API error")
            return _error("Failed to generate summary. Please try again.", status_code=500)
        return JSONResponse({"summary": record.summary_text})

    @app.get("/admin/api/summary")
    async def latest_summary(request: Request) -> JSONResponse:
        if not sessions.is_authenticated(request):
            return _error("Unauthorized", status_code=401)
        record = await asyncio.to_thread(service.latest_summary, "weekly")
        if record is None:
            return JSONResponse({"summary": None, "createdAt": None})
        return JSONResponse({"summary": record.summary_text, "createdAt": serialize(record.created_at)})

    @app.post("/api/submissions", status_code=201)
    async def create_submission(
        couple_names: Optional[str] = Form(None),
        wedding_date: Optional[str] = Form(None),
        wedding_location: Optional[str] = Form(None),
        couple_instagram: Optional[str] = Form(None),
        vendor_instagrams: Optional[str] = Form(None),
        favorite_detail: Optional[str] = Form(None),
        terms_accepted: bool = Form(False),
        photos: Optional[List[UploadFile]] = File(None),
    ):
        try:
            form = SubmissionForm(
                couple_names=couple_names,
                wedding_date=wedding_date,
                wedding_location=wedding_location,
                couple_instagram=couple_instagram,
                vendor_instagrams=vendor_instagrams,
                favorite_detail=favorite_detail,
                terms_accepted=terms_accepted,
            )
        except ValidationError:
            return _error("Please fill in all required fields.", status_code=400)

        uploads = [
            PhotoUpload(
                filename=photo.filename or "photo",
                content=await photo.read(),
                content_type=photo.content_type,
            )
            for photo in photos or []
        ]

        try:
            stored = await storage_manager.create_submission(form, uploads, repository, storage_config.photos)
        except SubmissionError as exc:
            return _error(str(exc), status_code=400)
        except Exception:
            logger.exception("Submission error")
            return _error("There was an error submitting your wedding. Please try again.", status_code=500)
        return JSONResponse({"success": True, "submission": serialize(stored)}, status_code=201)

    return app
