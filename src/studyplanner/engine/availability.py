"""Per-day free intervals.

Intervals are minutes since midnight, half-open ``[start, end)``, ordered by start.
Per day:
- start from the weekday window (disabled weekday -> nothing),
- test day -> nothing,
- school weekday -> remove everything up to the end of school, then re-add the
  permitted override windows (before school, lunch, free periods) as homework-only,
- remove events,
- drop intervals shorter than the minimum session length.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable

from studyplanner.models import Event, StudyPreferences, TestDate

_SCHOOL_DAYS = range(0, 5)
_DAY_END = 24 * 60


@dataclass(frozen=True, slots=True)
class Interval:
    start: int
    end: int
    homework_only: bool = False
    source: str = "window"

    @property
    def minutes(self) -> int:
        return self.end - self.start

    def as_dict(self) -> dict[str, object]:
        return {
            "start": minutes_to_hhmm(self.start),
            "end": minutes_to_hhmm(self.end),
            "homework_only": self.homework_only,
            "source": self.source,
        }


def time_to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def minutes_to_hhmm(value: int) -> str:
    if value >= _DAY_END:
        return "24:00"
    return f"{value // 60:02d}:{value % 60:02d}"


def iter_days(start: date, end: date) -> list[date]:
    days: list[date] = []
    cursor = start
    while cursor <= end:
        days.append(cursor)
        cursor += timedelta(days=1)
    return days


def _wall_clock(value: datetime) -> datetime:
    # Timezone-aware stamps are read as the wall-clock time they carry.
    return value.replace(tzinfo=None)


def event_span_on_day(event: Event, day: date) -> tuple[int, int] | None:
    """Clip an event to ``day``; ``None`` if it does not touch the day."""
    start = _wall_clock(event.start_time)
    end = _wall_clock(event.end_time)
    day_start = datetime.combine(day, time(0, 0))
    day_end = day_start + timedelta(days=1)
    if end <= day_start or start >= day_end:
        return None
    clipped_start = max(start, day_start)
    clipped_end = min(end, day_end)
    return (
        int((clipped_start - day_start).total_seconds() // 60),
        int((clipped_end - day_start).total_seconds() // 60),
    )


def subtract(intervals: list[Interval], start: int, end: int) -> list[Interval]:
    """Remove ``[start, end)`` from every interval, keeping the pieces left over."""
    if end <= start:
        return list(intervals)
    out: list[Interval] = []
    for interval in intervals:
        if end <= interval.start or start >= interval.end:
            out.append(interval)
            continue
        if interval.start < start:
            out.append(Interval(interval.start, start, interval.homework_only, interval.source))
        if end < interval.end:
            out.append(Interval(end, interval.end, interval.homework_only, interval.source))
    return out


def _clip(start: int, end: int, low: int, high: int) -> tuple[int, int] | None:
    clipped = (max(start, low), min(end, high))
    if clipped[1] <= clipped[0]:
        return None
    return clipped


def excluded_days(test_dates: Iterable[TestDate]) -> set[date]:
    return {item.test_date for item in test_dates}


def _override_windows(preferences: StudyPreferences) -> list[tuple[int, int, str]]:
    windows: list[tuple[int, int, str]] = []
    if preferences.study_before_school and preferences.before_school_start and preferences.before_school_end:
        windows.append(
            (time_to_minutes(preferences.before_school_start), time_to_minutes(preferences.before_school_end), "before_school")
        )
    if preferences.study_during_lunch and preferences.lunch_start and preferences.lunch_end:
        windows.append((time_to_minutes(preferences.lunch_start), time_to_minutes(preferences.lunch_end), "lunch"))
    if preferences.study_during_free_periods:
        for period in preferences.free_periods:
            windows.append((time_to_minutes(period.start), time_to_minutes(period.end), "free_period"))
    return windows


def _is_school_day(day: date, preferences: StudyPreferences) -> bool:
    return preferences.has_school_hours and day.weekday() in _SCHOOL_DAYS


def blocked_intervals_for_day(
    day: date,
    *,
    preferences: StudyPreferences,
    events: Iterable[Event],
    test_dates: Iterable[TestDate],
) -> list[Interval]:
    """Blocked side of the day: whole day on test days, school span, events."""
    if day in excluded_days(test_dates):
        return [Interval(0, _DAY_END, source="test_day")]
    blocked: list[Interval] = []
    if _is_school_day(day, preferences):
        assert preferences.school_end_time is not None
        blocked.append(Interval(0, time_to_minutes(preferences.school_end_time), source="school"))
    for event in events:
        span = event_span_on_day(event, day)
        if span is not None:
            blocked.append(Interval(span[0], span[1], source=f"event:{event.id}"))
    return sorted(blocked, key=lambda item: (item.start, item.end, item.source))


def override_intervals_for_day(day: date, preferences: StudyPreferences) -> list[Interval]:
    """Homework-only windows carved out of school hours, for a school weekday."""
    if not _is_school_day(day, preferences):
        return []
    return [Interval(start, end, True, source) for start, end, source in _override_windows(preferences) if end > start]


def free_intervals_for_day(
    day: date,
    *,
    preferences: StudyPreferences,
    events: Iterable[Event],
    test_dates: Iterable[TestDate],
    min_session_minutes: int = 15,
) -> list[Interval]:
    slot = preferences.slot_for(day)
    if slot is None or not slot.enabled:
        return []
    if day in excluded_days(test_dates):
        return []

    window_start = time_to_minutes(slot.start_time)
    window_end = time_to_minutes(slot.end_time)
    intervals = [Interval(window_start, window_end)]

    if _is_school_day(day, preferences):
        assert preferences.school_end_time is not None
        school_end = time_to_minutes(preferences.school_end_time)
        intervals = subtract(intervals, 0, school_end)
        for override in override_intervals_for_day(day, preferences):
            clipped = _clip(override.start, override.end, 0, school_end)
            if clipped is None:
                continue
            pieces = [Interval(clipped[0], clipped[1], True, override.source)]
            for existing in intervals:
                pieces = subtract(pieces, existing.start, existing.end)
            intervals.extend(pieces)

    for event in events:
        span = event_span_on_day(event, day)
        if span is not None:
            intervals = subtract(intervals, span[0], span[1])

    intervals = [item for item in intervals if item.minutes >= min_session_minutes]
    return sorted(intervals, key=lambda item: (item.start, item.end))


def build_free_intervals(
    *,
    start_date: date,
    end_date: date,
    preferences: StudyPreferences,
    events: Iterable[Event],
    test_dates: Iterable[TestDate],
    min_session_minutes: int = 15,
) -> dict[date, list[Interval]]:
    """Free intervals for every date in ``[start_date, end_date]``; empty lists are kept."""
    event_list = list(events)
    test_list = list(test_dates)
    return {
        day: free_intervals_for_day(
            day,
            preferences=preferences,
            events=event_list,
            test_dates=test_list,
            min_session_minutes=min_session_minutes,
        )
        for day in iter_days(start_date, end_date)
    }
