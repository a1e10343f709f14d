from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from studyplanner.engine.availability import (
    Interval,
    blocked_intervals_for_day,
    build_free_intervals,
    free_intervals_for_day,
    minutes_to_hhmm,
)
from studyplanner.models import WEEKDAYS, DayTimeSlot, Event, StudyPreferences, TestDate

MONDAY = date(2025, 3, 3)
SATURDAY = date(2025, 3, 8)


def _prefs(start: str = "09:00", end: str = "17:00", **extra) -> StudyPreferences:
    slots = [DayTimeSlot(day=day, start_time=start, end_time=end) for day in WEEKDAYS]
    return StudyPreferences(day_time_slots=slots, **extra)


def _school_prefs() -> StudyPreferences:
    return _prefs(
        "07:00",
        "20:00",
        school_start_time="08:30",
        school_end_time="15:30",
        study_during_lunch=True,
        lunch_start="12:00",
        lunch_end="12:45",
    )


def test_plain_day_is_the_configured_window() -> None:
    free = free_intervals_for_day(MONDAY, preferences=_prefs(), events=[], test_dates=[])
    assert free == [Interval(540, 1020)]


def test_disabled_weekday_has_no_availability() -> None:
    slots = [DayTimeSlot(day=day, start_time="09:00", end_time="17:00", enabled=day != "saturday") for day in WEEKDAYS]
    prefs = StudyPreferences(day_time_slots=slots)
    assert free_intervals_for_day(SATURDAY, preferences=prefs, events=[], test_dates=[]) == []
    assert free_intervals_for_day(MONDAY, preferences=prefs, events=[], test_dates=[]) != []


def test_test_day_is_fully_excluded_and_blocked() -> None:
    tests = [TestDate(subject_id="maths", test_date=MONDAY)]
    assert free_intervals_for_day(MONDAY, preferences=_prefs(), events=[], test_dates=tests) == []
    blocked = blocked_intervals_for_day(MONDAY, preferences=_prefs(), events=[], test_dates=tests)
    assert blocked == [Interval(0, 1440, source="test_day")]


def test_school_day_keeps_only_after_school_and_homework_only_lunch() -> None:
    free = free_intervals_for_day(MONDAY, preferences=_school_prefs(), events=[], test_dates=[])
    assert [(item.start, item.end, item.homework_only) for item in free] == [
        (720, 765, True),
        (930, 1200, False),
    ]
    assert free[0].source == "lunch"


def test_weekend_ignores_school_hours() -> None:
    free = free_intervals_for_day(SATURDAY, preferences=_school_prefs(), events=[], test_dates=[])
    assert [(item.start, item.end, item.homework_only) for item in free] == [(420, 1200, False)]


def test_events_split_the_window_and_cross_midnight() -> None:
    prefs = _prefs("09:00", "23:00")
    event = Event(
        id="e1",
        title="Late shift",
        start_time=datetime(2025, 3, 3, 22, 0),
        end_time=datetime(2025, 3, 4, 10, 0),
    )
    free = build_free_intervals(
        start_date=MONDAY,
        end_date=MONDAY + timedelta(days=1),
        preferences=prefs,
        events=[event],
        test_dates=[],
    )
    assert [(item.start, item.end) for item in free[MONDAY]] == [(540, 1320)]
    assert [(item.start, item.end) for item in free[MONDAY + timedelta(days=1)]] == [(600, 1380)]


def test_timezone_aware_event_is_read_as_wall_clock() -> None:
    plus_two = timezone(timedelta(hours=2))
    event = Event(
        id="e1",
        title="Football",
        start_time=datetime(2025, 3, 3, 18, 0, tzinfo=plus_two),
        end_time=datetime(2025, 3, 3, 21, 0, tzinfo=plus_two),
    )
    free = free_intervals_for_day(MONDAY, preferences=_prefs("09:00", "23:00"), events=[event], test_dates=[])
    assert [(item.start, item.end) for item in free] == [(540, 1080), (1260, 1380)]


def test_short_leftover_gaps_are_dropped() -> None:
    event = Event(
        id="e1",
        title="Club",
        start_time=datetime(2025, 3, 3, 9, 0),
        end_time=datetime(2025, 3, 3, 16, 50),
    )
    free = free_intervals_for_day(MONDAY, preferences=_prefs(), events=[event], test_dates=[], min_session_minutes=15)
    assert free == []


def test_build_free_intervals_covers_every_day_of_the_window() -> None:
    free = build_free_intervals(
        start_date=MONDAY,
        end_date=MONDAY + timedelta(days=6),
        preferences=_prefs(),
        events=[],
        test_dates=[TestDate(subject_id="maths", test_date=MONDAY + timedelta(days=2))],
    )
    assert len(free) == 7
    assert free[MONDAY + timedelta(days=2)] == []
    assert sum(item.minutes for intervals in free.values() for item in intervals) == 6 * 480


def test_minutes_to_hhmm() -> None:
    assert minutes_to_hhmm(0) == "00:00"
    assert minutes_to_hhmm(610) == "10:10"
    assert minutes_to_hhmm(1440) == "24:00"
