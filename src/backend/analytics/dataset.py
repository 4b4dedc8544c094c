from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from typing import Collection, Dict, Iterator, Optional, Sequence, Set, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .models import EventRecord, TimeWindow

DEFAULT_TIMEZONE = "UTC"


def coerce_timezone(name: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo(name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(DEFAULT_TIMEZONE)


def normalize_datetime(dt: datetime, tz: ZoneInfo) -> datetime:
    """
    Naive timestamps coming back from the store are UTC; aware ones are
    converted to ``tz``.
    """

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=ZoneInfo("UTC"))
    return dt.astimezone(tz)


def event_user_key(event: EventRecord) -> Optional[str]:
    return event.user_id or None


@dataclass
class EventDataset:
    events: Sequence[EventRecord]
    timezone: str = DEFAULT_TIMEZONE

    def __post_init__(self) -> None:
        self.tz = coerce_timezone(self.timezone)
        self.events = tuple(
            sorted(self.events, key=lambda event: normalize_datetime(event.created_at, self.tz))
        )

    def iter_events(
        self,
        window: Optional[TimeWindow] = None,
        event_names: Optional[Collection[str]] = None,
    ) -> Iterator[Tuple[EventRecord, datetime]]:
        """
        Yield events inside ``window`` (all events when omitted) whose name is
        in ``event_names`` (any name when omitted).

        Returns tuples of (event, localized_created_at) so callers can use
        ``datetime.date()`` for day bucketing directly.
        """

        allowed = set(event_names or ())
        if window is not None:
            window_start = normalize_datetime(window.start, self.tz)
            window_end = normalize_datetime(window.end, self.tz)

        for event in self.events:
            if allowed and event.event_name not in allowed:
                continue
            local_time = normalize_datetime(event.created_at, self.tz)
            if window is not None and not (window_start <= local_time < window_end):
                continue
            yield event, local_time

    def unique_users(
        self,
        window: Optional[TimeWindow] = None,
        event_names: Optional[Collection[str]] = None,
    ) -> Set[str]:
        return {
            key
            for event, _ in self.iter_events(window, event_names)
            if (key := event_user_key(event)) is not None
        }

    def count(
        self,
        window: Optional[TimeWindow] = None,
        event_names: Optional[Collection[str]] = None,
    ) -> int:
        return sum(1 for _ in self.iter_events(window, event_names))

    def users_per_day(
        self,
        window: Optional[TimeWindow] = None,
        event_names: Optional[Collection[str]] = None,
    ) -> Dict[date, Set[str]]:
        daily: Dict[date, Set[str]] = defaultdict(set)
        for event, local_time in self.iter_events(window, event_names):
            bucket = daily[local_time.date()]
            key = event_user_key(event)
            if key is not None:
                bucket.add(key)
        return dict(daily)

    def latest_per_user(self, event_name: str) -> Dict[str, EventRecord]:
        """
        Most recent ``event_name`` event for every user that has one.
        """

        latest: Dict[str, EventRecord] = {}
        for event, _ in reversed(list(self.iter_events(event_names={event_name}))):
            key = event_user_key(event)
            if key is not None and key not in latest:
                latest[key] = event
        return latest
