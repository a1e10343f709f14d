"""Warning, suggestion and infeasibility message generation for schedules."""

from __future__ import annotations

from collections import Counter
from datetime import date
from typing import Any

from studyplanner.engine.availability import Interval
from studyplanner.models import GenerationRequest, Schedule, UnplacedItem

_KIND_LABELS = {"homework": ("homework item", "homework items"), "topic": ("topic", "topics")}

_REASON_PHRASES = {
    "deadline_missed": "could not be fit before {their} deadline{s}",
    "test_date_passed": "could not be fully covered before {their} test date{s}",
    "no_capacity": "did not fit in the available study time",
}


def _plural(kind: str, count: int) -> str:
    singular, plural = _KIND_LABELS.get(kind, ("item", "items"))
    return singular if count == 1 else plural


def build_infeasibility_messages(unplaced: list[UnplacedItem]) -> list[dict[str, Any]]:
    """Human-readable, actionable summaries grouped by kind and reason."""
    counts = Counter((item.kind, item.reason) for item in unplaced)
    messages: list[dict[str, Any]] = []
    for (kind, reason), count in sorted(counts.items()):
        phrase = _REASON_PHRASES.get(reason, "could not be scheduled").format(
            their="its" if count == 1 else "their",
            s="" if count == 1 else "s",
        )
        messages.append(
            {
                "code": f"INFEASIBLE_{reason.upper()}",
                "kind": kind,
                "reason": reason,
                "count": count,
                "item_ids": sorted(item.item_id for item in unplaced if item.kind == kind and item.reason == reason),
                "message": f"{count} {_plural(kind, count)} {phrase}",
            }
        )
    return messages


def build_warnings_and_suggestions(
    *,
    request: GenerationRequest,
    schedule: Schedule,
    free_intervals: dict[date, list[Interval]],
    unplaced: list[UnplacedItem],
) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    """Generate non-fatal warnings and coherent suggestions for a generated schedule."""
    warnings: list[dict[str, Any]] = []
    suggestions: list[dict[str, Any]] = []

    test_days = {test.test_date for test in request.test_dates}
    total_available = sum(interval.minutes for intervals in free_intervals.values() for interval in intervals)

    # (1) No study time at all.
    if total_available == 0:
        warnings.append(
            {
                "code": "WARN_NO_AVAILABILITY",
                "severity": "warning",
                "message": "No study time is available in the planning window.",
            }
        )
        suggestions.append(
            {
                "code": "SUGGEST_ENABLE_STUDY_DAYS",
                "message": "Enable more study days or widen the daily study window.",
            }
        )

    # (2) Study days left without any free interval (events or school fill them).
    blocked_days = sorted(
        day.isoformat()
        for day, intervals in free_intervals.items()
        if not intervals and day not in test_days and _is_enabled(request, day)
    )
    if blocked_days and total_available > 0:
        warnings.append(
            {
                "code": "WARN_STUDY_DAYS_FULLY_BLOCKED",
                "severity": "info",
                "dates": blocked_days,
                "message": f"{len(blocked_days)} study day(s) have no free time after events and school hours.",
            }
        )

    # (3) Homework squeezed onto its last possible day.
    for day_key, sessions in schedule.items():
        day = date.fromisoformat(day_key)
        for session in sessions:
            due = session.homework_due_date
            if due is not None and (due - day).days == 1:
                warnings.append(
                    {
                        "code": "WARN_HOMEWORK_LAST_DAY",
                        "severity": "info",
                        "date": day_key,
                        "session_id": session.id,
                        "message": f"{session.topic} is scheduled on the day before it is due.",
                    }
                )

    # (4) Unplaced work.
    if any(item.reason == "deadline_missed" for item in unplaced):
        suggestions.append(
            {
                "code": "SUGGEST_START_EARLIER",
                "message": "Start the window earlier or free time before homework deadlines.",
            }
        )
    if any(item.reason == "no_capacity" for item in unplaced):
        suggestions.append(
            {
                "code": "SUGGEST_ADD_CAPACITY",
                "message": "Add study time or reduce the number of focus topics.",
            }
        )
    if any(item.reason == "test_date_passed" for item in unplaced):
        suggestions.append(
            {
                "code": "SUGGEST_PRIORITIZE_TEST_TOPICS",
                "message": "Mark the most important test topics as focus so they are studied first.",
            }
        )

    return warnings, suggestions


def _is_enabled(request: GenerationRequest, day: date) -> bool:
    slot = request.preferences.slot_for(day)
    return slot is not None and slot.enabled
