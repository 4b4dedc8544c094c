from __future__ import annotations

import os
import uuid
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from typing import List, Optional, Sequence

from sqlalchemy import JSON as SAJSON
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    select,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import Engine, Row

from .models import (
    DEFAULT_SUBMISSION_STATUS,
    EventRecord,
    SubmissionRecord,
    SummaryRecord,
    parse_event_data,
)


class RepositoryError(RuntimeError):
    """Raised when the event store cannot serve a request."""


@dataclass(frozen=True)
class EventQuery:
    """
    Filter for ``analytics_events``.

    ``start`` is inclusive and ``end`` exclusive; both are optional.
    ``descending`` orders newest first and ``limit`` caps the row count.
    """

    event_names: Sequence[str] = ()
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    descending: bool = False
    limit: Optional[int] = None

    def matches(self, event: EventRecord) -> bool:
        if self.event_names and event.event_name not in self.event_names:
            return False
        created_at = _as_utc(event.created_at)
        if self.start is not None and created_at < _as_utc(self.start):
            return False
        if self.end is not None and created_at >= _as_utc(self.end):
            return False
        return True


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class AnalyticsRepository:
    """
    Interface for the remote store behind the dashboard.

    Implementations take their connection in the constructor; aggregation
    code only ever sees an instance handed to it.
    """

    def query_events(self, query: EventQuery) -> Sequence[EventRecord]:
        raise NotImplementedError

    def list_submissions(self, limit: Optional[int] = None) -> Sequence[SubmissionRecord]:
        raise NotImplementedError

    def insert_submission(self, submission: SubmissionRecord) -> SubmissionRecord:
        raise NotImplementedError

    def insert_summary(self, summary: SummaryRecord) -> SummaryRecord:
        raise NotImplementedError

    def latest_summary(self, period_type: str, since: Optional[date] = None) -> Optional[SummaryRecord]:
        raise NotImplementedError


metadata = MetaData()
json_type = SAJSON().with_variant(JSONB, "postgresql")

events_table = Table(
    "analytics_events",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("event_name", String(128), index=True, nullable=False),
    Column("user_id", String(128), index=True),
    Column("screen_name", String(128)),
    Column("event_data", json_type),
    Column("created_at", DateTime(timezone=True), index=True, nullable=False),
)

submissions_table = Table(
    "submissions",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("couple_names", Text, nullable=False),
    Column("couple_instagram", Text),
    Column("wedding_date", Date, nullable=False),
    Column("wedding_location", Text, nullable=False),
    Column("vendor_instagrams", Text),
    Column("favorite_detail", Text),
    Column("photo_urls", json_type, nullable=False),
    Column("terms_accepted", Boolean, nullable=False, default=True),
    Column("status", String(32)),
    Column("created_at", DateTime(timezone=True), index=True, nullable=False),
)

summaries_table = Table(
    "analytics_summaries",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("period_type", String(32), index=True, nullable=False),
    Column("period_start", Date, nullable=False),
    Column("period_end", Date, nullable=False),
    Column("summary_text", Text, nullable=False),
    Column("key_metrics", json_type),
    Column("created_at", DateTime(timezone=True), index=True, nullable=False),
)


class SQLAnalyticsRepository(AnalyticsRepository):
    """
    Read/write the three tables used by the admin dashboard.

    Timestamps are stored in UTC. SQLite hands them back naive, so every row
    is re-tagged as UTC on the way out.
    """

    def __init__(self, engine: Engine, create_tables: bool = False):
        self.engine = engine
        if create_tables:
            metadata.create_all(self.engine, checkfirst=True)

    def query_events(self, query: EventQuery) -> Sequence[EventRecord]:
        statement = select(events_table)
        if query.event_names:
            statement = statement.where(events_table.c.event_name.in_(list(query.event_names)))
        if query.start is not None:
            statement = statement.where(events_table.c.created_at >= _as_utc(query.start))
        if query.end is not None:
            statement = statement.where(events_table.c.created_at < _as_utc(query.end))
        order = events_table.c.created_at.desc() if query.descending else events_table.c.created_at.asc()
        statement = statement.order_by(order)
        if query.limit is not None:
            statement = statement.limit(query.limit)

        with self.engine.connect() as connection:
            rows = connection.execute(statement).fetchall()
        return tuple(self._row_to_event(row) for row in rows)

    def insert_events(self, events: Sequence[EventRecord]) -> None:
        if not events:
            return
        with self.engine.begin() as connection:
            connection.execute(
                events_table.insert(),
                [
                    {
                        "id": event.id or uuid.uuid4().hex,
                        "event_name": event.event_name,
                        "user_id": event.user_id,
                        "screen_name": event.screen_name,
                        "event_data": dict(event.event_data),
                        "created_at": _as_utc(event.created_at),
                    }
                    for event in events
                ],
            )

    def list_submissions(self, limit: Optional[int] = None) -> Sequence[SubmissionRecord]:
        statement = select(submissions_table).order_by(submissions_table.c.created_at.desc())
        if limit is not None:
            statement = statement.limit(limit)
        with self.engine.connect() as connection:
            rows = connection.execute(statement).fetchall()
        return tuple(self._row_to_submission(row) for row in rows)

    def insert_submission(self, submission: SubmissionRecord) -> SubmissionRecord:
        stored = replace(
            submission,
            id=submission.id or uuid.uuid4().hex,
            status=submission.status or DEFAULT_SUBMISSION_STATUS,
            created_at=_as_utc(submission.created_at),
        )
        with self.engine.begin() as connection:
            connection.execute(
                submissions_table.insert().values(
                    id=stored.id,
                    couple_names=stored.couple_names,
                    couple_instagram=stored.couple_instagram,
                    wedding_date=stored.wedding_date,
                    wedding_location=stored.wedding_location,
                    vendor_instagrams=stored.vendor_instagrams,
                    favorite_detail=stored.favorite_detail,
                    photo_urls=list(stored.photo_urls),
                    terms_accepted=stored.terms_accepted,
                    status=stored.status,
                    created_at=stored.created_at,
                )
            )
        return stored

    def insert_summary(self, summary: SummaryRecord) -> SummaryRecord:
        stored = replace(
            summary,
            id=summary.id or uuid.uuid4().hex,
            created_at=_as_utc(summary.created_at or datetime.now(timezone.utc)),
        )
        with self.engine.begin() as connection:
            connection.execute(
                summaries_table.insert().values(
                    id=stored.id,
                    period_type=stored.period_type,
                    period_start=stored.period_start,
                    period_end=stored.period_end,
                    summary_text=stored.summary_text,
                    key_metrics=dict(stored.key_metrics),
                    created_at=stored.created_at,
                )
            )
        return stored

    def latest_summary(self, period_type: str, since: Optional[date] = None) -> Optional[SummaryRecord]:
        statement = select(summaries_table).where(summaries_table.c.period_type == period_type)
        if since is not None:
            statement = statement.where(summaries_table.c.period_start >= since)
        statement = statement.order_by(summaries_table.c.created_at.desc()).limit(1)
        with self.engine.connect() as connection:
            row = connection.execute(statement).first()
        return self._row_to_summary(row) if row is not None else None

    @staticmethod
    def _row_to_event(row: Row) -> EventRecord:
        return EventRecord(
            id=str(row.id),
            event_name=row.event_name,
            user_id=row.user_id,
            screen_name=row.screen_name,
            event_data=parse_event_data(row.event_data),
            created_at=_as_utc(row.created_at),
        )

    @staticmethod
    def _row_to_submission(row: Row) -> SubmissionRecord:
        photo_urls = row.photo_urls if isinstance(row.photo_urls, list) else []
        return SubmissionRecord(
            id=str(row.id),
            couple_names=row.couple_names,
            couple_instagram=row.couple_instagram,
            wedding_date=row.wedding_date,
            wedding_location=row.wedding_location,
            vendor_instagrams=row.vendor_instagrams,
            favorite_detail=row.favorite_detail,
            photo_urls=tuple(str(url) for url in photo_urls),
            terms_accepted=bool(row.terms_accepted),
            status=row.status or DEFAULT_SUBMISSION_STATUS,
            created_at=_as_utc(row.created_at),
        )

    @staticmethod
    def _row_to_summary(row: Row) -> SummaryRecord:
        return SummaryRecord(
            id=str(row.id),
            period_type=row.period_type,
            period_start=row.period_start,
            period_end=row.period_end,
            summary_text=row.summary_text,
            key_metrics=parse_event_data(row.key_metrics),
            created_at=_as_utc(row.created_at),
        )


class InMemoryAnalyticsRepository(AnalyticsRepository):
    """
    List-backed repository used by tests and by deployments without a
    configured database.
    """

    def __init__(
        self,
        events: Optional[Sequence[EventRecord]] = None,
        submissions: Optional[Sequence[SubmissionRecord]] = None,
        summaries: Optional[Sequence[SummaryRecord]] = None,
    ):
        self.events: List[EventRecord] = list(events or [])
        self.submissions: List[SubmissionRecord] = list(submissions or [])
        self.summaries: List[SummaryRecord] = list(summaries or [])

    def query_events(self, query: EventQuery) -> Sequence[EventRecord]:
        matched = [event for event in self.events if query.matches(event)]
        matched.sort(key=lambda event: _as_utc(event.created_at), reverse=query.descending)
        if query.limit is not None:
            matched = matched[: query.limit]
        return tuple(matched)

    def list_submissions(self, limit: Optional[int] = None) -> Sequence[SubmissionRecord]:
        ordered = sorted(self.submissions, key=lambda item: _as_utc(item.created_at), reverse=True)
        return tuple(ordered[:limit] if limit is not None else ordered)

    def insert_submission(self, submission: SubmissionRecord) -> SubmissionRecord:
        stored = replace(
            submission,
            id=submission.id or uuid.uuid4().hex,
            status=submission.status or DEFAULT_SUBMISSION_STATUS,
        )
        self.submissions.append(stored)
        return stored

    def insert_summary(self, summary: SummaryRecord) -> SummaryRecord:
        stored = replace(
            summary,
            id=summary.id or uuid.uuid4().hex,
            created_at=summary.created_at or datetime.now(timezone.utc),
        )
        self.summaries.append(stored)
        return stored

    def latest_summary(self, period_type: str, since: Optional[date] = None) -> Optional[SummaryRecord]:
        candidates = [
            summary
            for summary in self.summaries
            if summary.period_type == period_type and (since is None or summary.period_start >= since)
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda summary: _as_utc(summary.created_at or datetime.min))


@dataclass(frozen=True)
class RepositoryConfig:
    database_url: Optional[str] = None
    create_tables: bool = False

    @classmethod
    def from_env(cls) -> "RepositoryConfig":
        return cls(
            database_url=os.getenv("DAILYIDO_DATABASE_URL"),
            create_tables=os.getenv("DAILYIDO_CREATE_TABLES", "").lower() in {"1", "true", "yes", "on"},
        )


def build_repository_from_env(config: Optional[RepositoryConfig] = None) -> Optional[AnalyticsRepository]:
    cfg = config or RepositoryConfig.from_env()
    if cfg.database_url:
        engine = create_engine(cfg.database_url, future=True)
        return SQLAnalyticsRepository(engine, create_tables=cfg.create_tables)
    return None
