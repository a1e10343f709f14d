"""Deterministic session allocation.

Walks the window day by day and each day's free intervals in time order. Inside an
interval it repeatedly places the highest-ranked eligible work item that fits,
with a break between consecutive placements. Once no mandatory repetition is
still open, remaining room is filled with spaced review sessions.

Rules preserved:
- an item is placed at most once per day,
- homework only on dates strictly before its due date,
- topics only before their linked test date,
- homework-only intervals take homework only.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from studyplanner.errors import GenerationTimeout
from studyplanner.models import Mode, Session, SessionType, StudyPreferences, UnplacedItem
from studyplanner.reporting.decision_trace import DecisionTraceCollector

from .availability import Interval, minutes_to_hhmm
from .policy import break_minutes, revisit_gap_days, session_minutes
from .scoring import rank_items
from .work_items import WorkItem

logger = logging.getLogger(__name__)

REASON_DEADLINE_MISSED = "deadline_missed"
REASON_TEST_DATE_PASSED = "test_date_passed"
REASON_NO_CAPACITY = "no_capacity"

_TRACE_CANDIDATES = 10


@dataclass(slots=True)
class AllocationResult:
    schedule: dict[str, list[Session]]
    items: list[WorkItem]
    unplaced: list[UnplacedItem] = field(default_factory=list)
    iterations: int = 0
    review_sessions: int = 0


@dataclass(slots=True)
class _Choice:
    score: float
    item: WorkItem
    minutes: int
    review: bool
    shrunk: bool


def item_minutes(item: WorkItem, preferences: StudyPreferences) -> tuple[int, int]:
    """Return (preferred, minimum) minutes for the next session of ``item``."""
    piece = item.next_piece_minutes()
    if item.kind == "homework" and piece is not None:
        return piece, piece
    if item.fixed_minutes is not None:
        return item.fixed_minutes, item.fixed_minutes
    return session_minutes(
        mode=item.mode,
        preferences=preferences,
        focus=item.focus,
        test_linked=item.test_linked,
        confidence=item.confidence,
    )


def _mandatory_open(items: list[WorkItem], day: date) -> bool:
    return any(item.remaining > 0 and item.eligible_on(day) for item in items)


def _pick(
    ranked: list[tuple[float, WorkItem]],
    *,
    day: date,
    interval: Interval,
    room: int,
    placed_today: set[str],
    preferences: StudyPreferences,
    review: bool,
    blocked: list[str],
) -> _Choice | None:
    for score, item in ranked:
        if review:
            if item.kind != "topic" or not item.placed_days:
                continue
        elif item.remaining <= 0:
            continue
        if item.item_id in placed_today:
            blocked.append(f"ALREADY_PLACED_TODAY:{item.item_id}")
            continue
        if not item.eligible_on(day):
            blocked.append(f"PAST_LAST_DATE:{item.item_id}")
            continue
        if interval.homework_only and item.kind != "homework":
            blocked.append(f"HOMEWORK_ONLY_WINDOW:{item.item_id}")
            continue
        if review:
            if (day - item.placed_days[-1]).days < revisit_gap_days(item.mode):
                continue
        preferred, minimum = item_minutes(item, preferences)
        if minimum > room:
            blocked.append(f"NO_ROOM:{item.item_id}")
            continue
        minutes = min(preferred, room)
        return _Choice(score=score, item=item, minutes=minutes, review=review, shrunk=minutes < preferred)
    return None


def _note_for(item: WorkItem, review: bool) -> str:
    if item.kind == "homework" and item.deadline is not None:
        return f"Due {item.deadline.isoformat()}"
    if review:
        return "Spaced review"
    if item.test_date is not None:
        return f"{item.test_type or 'test'} on {item.test_date.isoformat()}"
    return ""


def build_session(
    item: WorkItem,
    *,
    day: date,
    start: int,
    minutes: int,
    review: bool = False,
    id_suffix: str = "",
) -> Session:
    session_type = SessionType.REVISION if review else item.next_session_type()
    session_id = item.source_session_id or f"{item.item_id}#{len(item.placed_days) + 1}{id_suffix}"
    return Session(
        id=session_id,
        time=minutes_to_hhmm(start),
        duration=minutes,
        subject=item.subject_name,
        topic=item.name,
        type=session_type,
        notes=_note_for(item, review),
        test_date=item.test_date,
        homework_due_date=item.deadline,
        mode=item.mode,
        topic_id=item.topic_id,
        homework_id=item.homework_id,
    )


def build_break(day: date, start: int, minutes: int, mode: Mode, id_suffix: str = "") -> Session:
    return Session(
        id=f"break-{day.isoformat()}-{minutes_to_hhmm(start).replace(':', '')}{id_suffix}",
        time=minutes_to_hhmm(start),
        duration=minutes,
        topic="Break",
        type=SessionType.BREAK,
        mode=mode,
    )


def unplaced_reason(item: WorkItem, window_end: date) -> str:
    if item.kind == "homework" and item.deadline is not None and item.deadline <= window_end:
        return REASON_DEADLINE_MISSED
    if item.kind == "topic" and item.test_date is not None and item.test_date <= window_end:
        return REASON_TEST_DATE_PASSED
    return REASON_NO_CAPACITY


def collect_unplaced(items: list[WorkItem], window_end: date) -> list[UnplacedItem]:
    unplaced: list[UnplacedItem] = []
    for item in sorted(items, key=lambda it: it.order):
        if item.remaining <= 0:
            continue
        unplaced.append(
            UnplacedItem(
                item_id=item.item_id,
                kind=item.kind,
                subject=item.subject_name,
                name=item.name,
                remaining_repetitions=item.remaining,
                placed_repetitions=item.placed,
                reason=unplaced_reason(item, window_end),
                deadline=item.deadline or item.test_date,
                state=item.state(window_end),
            )
        )
    return unplaced


def allocate_sessions(
    *,
    items: list[WorkItem],
    free_intervals: dict[date, list[Interval]],
    timetable_mode: Mode,
    preferences: StudyPreferences,
    config: dict[str, Any],
    fill_to_end: bool = True,
    decision_trace: DecisionTraceCollector | None = None,
    id_suffix: str = "",
) -> AllocationResult:
    """Place work items into free intervals with deterministic iteration and tie-breaks."""
    max_iterations = int(config.get("max_iterations_per_day", 500))
    time_budget = config.get("time_budget_seconds")
    cap_days = int(config.get("priority_cap_days", 28))
    break_length = break_minutes(timetable_mode, preferences)
    started = time.monotonic()

    schedule: dict[str, list[Session]] = {}
    total_iterations = 0
    review_sessions = 0

    for day in sorted(free_intervals):
        day_sessions: list[Session] = []
        placed_today: set[str] = set()
        ranked = rank_items(items, day, cap_days=cap_days)
        iterations = 0

        for interval in free_intervals[day]:
            cursor = interval.start
            placed_in_interval = False
            while True:
                iterations += 1
                if iterations > max_iterations:
                    raise GenerationTimeout(
                        f"Allocator exceeded {max_iterations} iterations on {day.isoformat()}"
                    )
                if time_budget is not None and time.monotonic() - started > float(time_budget):
                    raise GenerationTimeout(f"Allocator exceeded its {time_budget}s time budget")

                gap = break_length if placed_in_interval else 0
                room = interval.end - cursor - gap
                if room <= 0:
                    break
                blocked: list[str] = []
                choice = _pick(
                    ranked,
                    day=day,
                    interval=interval,
                    room=room,
                    placed_today=placed_today,
                    preferences=preferences,
                    review=False,
                    blocked=blocked,
                )
                if choice is None and fill_to_end and not _mandatory_open(items, day):
                    choice = _pick(
                        ranked,
                        day=day,
                        interval=interval,
                        room=room,
                        placed_today=placed_today,
                        preferences=preferences,
                        review=True,
                        blocked=blocked,
                    )
                if choice is None:
                    break

                if placed_in_interval:
                    day_sessions.append(build_break(day, cursor, break_length, timetable_mode, id_suffix))
                    cursor += break_length

                item = choice.item
                session = build_session(
                    item, day=day, start=cursor, minutes=choice.minutes, review=choice.review, id_suffix=id_suffix
                )
                day_sessions.append(session)
                logger.debug("Placed %s on %s at %s (%d min)", session.id, day, session.time, session.duration)

                if decision_trace is not None:
                    candidates = [
                        (score, candidate)
                        for score, candidate in ranked
                        if candidate.remaining > 0 or choice.review
                    ][:_TRACE_CANDIDATES]
                    rules = ["RULE_PRIORITY_ORDER", "RULE_TIE_BREAK_INPUT_ORDER", "RULE_ONCE_PER_DAY"]
                    if item.kind == "homework":
                        rules.append("RULE_HOMEWORK_BEFORE_DUE")
                    if item.test_date is not None:
                        rules.append("RULE_BEFORE_TEST_DATE")
                    if interval.homework_only:
                        rules.append("RULE_HOMEWORK_ONLY_WINDOW")
                    if choice.shrunk:
                        rules.append("RULE_FLEXIBLE_SHRINK")
                    if choice.review:
                        rules.extend(["RULE_FILL_TO_END", "RULE_REVISIT_SPACING"])
                    decision_trace.record(
                        slot_id=f"{day.isoformat()}@{session.time}",
                        candidate_items=[candidate.item_id for _, candidate in candidates],
                        scores_by_item={candidate.item_id: score for score, candidate in candidates},
                        selected_item_id=item.item_id,
                        session_id=session.id,
                        applied_rules=rules,
                        blocked_constraints=blocked,
                        note="Spaced review after all mandatory work" if choice.review else "Highest ranked item that fits",
                    )

                if choice.review:
                    review_sessions += 1
                else:
                    item.placed += 1
                item.placed_days.append(day)
                placed_today.add(item.item_id)
                cursor += choice.minutes
                placed_in_interval = True

        total_iterations += iterations
        schedule[day.isoformat()] = day_sessions

    window_end = max(free_intervals) if free_intervals else date.max
    return AllocationResult(
        schedule=schedule,
        items=items,
        unplaced=collect_unplaced(items, window_end),
        iterations=total_iterations,
        review_sessions=review_sessions,
    )
