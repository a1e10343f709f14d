"""Schedule metrics collector."""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from statistics import mean, pstdev
from typing import Any

from studyplanner.engine.availability import Interval
from studyplanner.engine.work_items import WorkItem
from studyplanner.models import Schedule, SessionType


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


def collect_metrics(
    schedule: Schedule,
    free_intervals: dict[date, list[Interval]],
    items: list[WorkItem] | None = None,
) -> dict[str, Any]:
    """Compute schedule metrics; ratios are clamped into [0,1]."""
    study_minutes = 0
    homework_minutes = 0
    break_minutes = 0
    sessions_count = 0
    states: dict[str, int] = defaultdict(int)
    minutes_by_day: dict[str, int] = defaultdict(int)
    subjects_by_day: dict[str, set[str]] = defaultdict(set)

    for day_key, sessions in schedule.items():
        for session in sessions:
            if session.type == SessionType.BREAK:
                break_minutes += session.duration
                continue
            sessions_count += 1
            if session.type == SessionType.HOMEWORK:
                homework_minutes += session.duration
            else:
                study_minutes += session.duration
            minutes_by_day[day_key] += session.duration
            subjects_by_day[day_key].add(session.subject)

    available_minutes = sum(interval.minutes for intervals in free_intervals.values() for interval in intervals)
    used_minutes = study_minutes + homework_minutes + break_minutes
    days_with_availability = [day.isoformat() for day, intervals in free_intervals.items() if intervals]
    daily = [minutes_by_day.get(day, 0) for day in days_with_availability]
    avg_daily = mean(daily) if daily else 0.0
    cv = (pstdev(daily) / max(1.0, avg_daily)) if daily else 0.0

    coverage = 1.0
    if items:
        coverage = sum(1 for item in items if item.placed > 0) / len(items)
    completion = 1.0
    if items:
        required = sum(item.repetitions for item in items)
        completion = sum(min(item.placed, item.repetitions) for item in items) / max(1, required)
        last_day = max(free_intervals) if free_intervals else None
        for item in items:
            states[item.state(last_day)] += 1

    return {
        "sessions_count": sessions_count,
        "study_minutes": study_minutes,
        "homework_minutes": homework_minutes,
        "break_minutes": break_minutes,
        "available_minutes": available_minutes,
        "utilization": _clamp01(used_minutes / max(1, available_minutes)),
        "days_in_window": len(free_intervals),
        "days_with_sessions": sum(1 for minutes in minutes_by_day.values() if minutes > 0),
        "empty_available_days": sum(1 for day in days_with_availability if minutes_by_day.get(day, 0) == 0),
        "subjects_per_day": round(mean(len(s) for s in subjects_by_day.values()), 3) if subjects_by_day else 0.0,
        "balance_score": _clamp01(1.0 - min(1.0, cv)),
        "item_coverage": _clamp01(coverage),
        "repetition_completion": _clamp01(completion),
        "items_by_state": dict(sorted(states.items())),
    }
