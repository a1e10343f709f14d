"""Read-only feasibility estimate: hours needed vs hours available.

Uses the same work-item and duration rules as the allocator but never places
anything, so it can be shown before committing to a generation.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any

from studyplanner.models import FeasibilityReport, GenerationRequest, WeekLoad

from .allocator import item_minutes
from .availability import Interval, build_free_intervals
from .work_items import build_work_items

logger = logging.getLogger(__name__)

STATUS_MANAGEABLE = "manageable"
STATUS_BUSY = "busy"
STATUS_OVERWHELMING = "overwhelming"


def _hours(minutes: float) -> float:
    return round(minutes / 60.0, 1)


def classify(needed_minutes: float, available_minutes: float, *, busy: float, overwhelming: float) -> tuple[str, float | None]:
    """Return (status, utilization); utilization is ``None`` without availability."""
    if available_minutes <= 0:
        return (STATUS_OVERWHELMING if needed_minutes > 0 else STATUS_MANAGEABLE), None
    utilization = needed_minutes / available_minutes
    if utilization < busy:
        return STATUS_MANAGEABLE, utilization
    if utilization <= overwhelming:
        return STATUS_BUSY, utilization
    return STATUS_OVERWHELMING, utilization


def needed_minutes_breakdown(request: GenerationRequest, config: dict[str, Any]) -> dict[str, float]:
    multiplier = float(config.get("test_prep_multiplier", 1.5))
    topics = 0.0
    test_prep = 0.0
    homework = 0.0
    for item in build_work_items(request, config):
        if item.kind == "homework":
            homework += sum(item.piece_minutes)
            continue
        preferred, _ = item_minutes(item, request.preferences)
        minutes = preferred * item.repetitions
        topics += minutes
        if item.test_linked:
            test_prep += minutes * (multiplier - 1.0)
    return {"topics": topics, "homework": homework, "test_prep": test_prep}


def _recommendation(status: str, shortfall_hours: float, weekly: list[WeekLoad]) -> str:
    if status == STATUS_MANAGEABLE:
        return "Your plan is manageable with room for extra review."
    if status == STATUS_BUSY:
        return "Your plan is busy; keep your study windows free and avoid adding commitments."
    overloaded = [week for week in weekly if week.status == STATUS_OVERWHELMING]
    message = f"You need about {shortfall_hours:.1f} more hours; add study time or reduce the topic list."
    if overloaded:
        message += f" The week starting {overloaded[0].start_date.isoformat()} is overloaded."
    return message


def estimate_feasibility(
    request: GenerationRequest,
    config: dict[str, Any],
    free_intervals: dict[date, list[Interval]] | None = None,
) -> FeasibilityReport:
    """Compare needed and available study time, overall and per 7-day bucket."""
    busy = float(config.get("utilization_busy", 0.85))
    overwhelming = float(config.get("utilization_overwhelming", 1.10))
    free = free_intervals
    if free is None:
        free = build_free_intervals(
            start_date=request.start_date,
            end_date=request.end_date,
            preferences=request.preferences,
            events=request.events,
            test_dates=request.test_dates,
            min_session_minutes=int(config.get("min_session_minutes", 15)),
        )

    breakdown = needed_minutes_breakdown(request, config)
    needed = sum(breakdown.values())
    available_by_day = {day: sum(interval.minutes for interval in intervals) for day, intervals in free.items()}
    available = float(sum(available_by_day.values()))
    total_days = max(1, (request.end_date - request.start_date).days + 1)

    weekly: list[WeekLoad] = []
    week_start = request.start_date
    index = 1
    while week_start <= request.end_date:
        week_end = min(request.end_date, week_start + timedelta(days=6))
        days = (week_end - week_start).days + 1
        week_needed = needed * days / total_days
        week_available = float(
            sum(minutes for day, minutes in available_by_day.items() if week_start <= day <= week_end)
        )
        status, utilization = classify(week_needed, week_available, busy=busy, overwhelming=overwhelming)
        weekly.append(
            WeekLoad(
                week=f"week-{index}",
                start_date=week_start,
                end_date=week_end,
                hours_needed=_hours(week_needed),
                hours_available=_hours(week_available),
                utilization=round(utilization, 3) if utilization is not None else None,
                status=status,
            )
        )
        week_start = week_end + timedelta(days=1)
        index += 1

    status, utilization = classify(needed, available, busy=busy, overwhelming=overwhelming)
    logger.info(
        "Feasibility %s: %.1fh needed, %.1fh available", status, needed / 60.0, available / 60.0
    )
    return FeasibilityReport(
        status=status,
        total_hours_needed=_hours(needed),
        total_hours_available=_hours(available),
        difference=_hours(available - needed),
        breakdown={key: _hours(value) for key, value in breakdown.items()},
        weekly=weekly,
        recommendation=_recommendation(status, max(0.0, (needed - available) / 60.0), weekly),
    )
