"""Single-session moves and single-day replanning.

Both operate on a TimetableDocument and return a new document; callers persist
it through a ScheduleStore with an optimistic version check.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Any

from studyplanner.errors import ConflictError, ValidationError
from studyplanner.models import (
    DayReplanRequest,
    DayReplanResult,
    DayTimeSlot,
    GenerationRequest,
    MoveResult,
    RedistributedSession,
    RedistributionResult,
    Session,
    SessionOrigin,
    SessionType,
    StudyPreferences,
    TimetableDocument,
    WEEKDAYS,
)
from studyplanner.validation.schedule_validator import Catalog, sanitize_schedule

from .allocator import allocate_sessions
from .availability import Interval, free_intervals_for_day, minutes_to_hhmm, subtract
from .policy import replan_minutes
from .work_items import WorkItem, build_homework_items, topic_session_types, upcoming_tests

logger = logging.getLogger(__name__)

URGENT_HOMEWORK_DAYS = 2
MAX_REDISTRIBUTED_PER_DAY = 3

# Rank bands for a replanned day: urgent homework, listed topics, carried-over sessions, other homework.
_BAND_URGENT = 3000.0
_BAND_TOPICS = 2000.0
_BAND_CARRIED = 1000.0
_BAND_HOMEWORK = 0.0


def _hhmm_to_minutes(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def occupied_free_intervals(
    day: date,
    request: GenerationRequest,
    occupied: list[Session],
    *,
    preferences: StudyPreferences | None = None,
    min_session_minutes: int = 1,
) -> list[Interval]:
    """Free intervals of ``day`` minus the time already taken by ``occupied``."""
    intervals = free_intervals_for_day(
        day,
        preferences=preferences or request.preferences,
        events=request.events,
        test_dates=request.test_dates,
        min_session_minutes=min_session_minutes,
    )
    for session in occupied:
        intervals = subtract(intervals, session.start_minute, session.end_minute)
    return [interval for interval in intervals if interval.minutes >= min_session_minutes]


def _fits(intervals: list[Interval], start: int, duration: int, homework: bool) -> bool:
    for interval in intervals:
        if interval.homework_only and not homework:
            continue
        if interval.start <= start and start + duration <= interval.end:
            return True
    return False


def _first_fit(intervals: list[Interval], duration: int, homework: bool) -> int | None:
    for interval in intervals:
        if interval.homework_only and not homework:
            continue
        if interval.minutes >= duration:
            return interval.start
    return None


def _sorted_day(sessions: list[Session]) -> list[Session]:
    return sorted(sessions, key=lambda s: (s.start_minute, s.id))


def _unique_id(session_id: str, taken: set[str]) -> str:
    candidate, counter = session_id, 1
    while candidate in taken:
        counter += 1
        candidate = f"{session_id}.{counter}"
    return candidate


def move_session(
    document: TimetableDocument,
    source_date: date,
    session_id: str,
    target_date: date,
) -> MoveResult:
    """Move one session to the first fitting gap on ``target_date``.

    Moving a session back to the date it came from reuses its original time when
    that slot is still free, so a move followed by its reverse restores both days.
    """
    source_key = source_date.isoformat()
    target_key = target_date.isoformat()
    source_sessions = list(document.schedule.get(source_key, []))
    index = next((i for i, session in enumerate(source_sessions) if session.id == session_id), None)
    if index is None:
        raise ValidationError.single(
            code="UNKNOWN_SESSION",
            message=f"Session {session_id} not found on {source_key}",
            field_path="$.session_id",
        )
    if not document.start_date <= target_date <= document.end_date:
        raise ValidationError.single(
            code="OUT_OF_WINDOW",
            message=f"Target date {target_key} is outside the timetable window",
            field_path="$.target_date",
        )

    session = source_sessions.pop(index)
    is_homework = session.type == SessionType.HOMEWORK
    if is_homework and session.homework_due_date is not None and target_date >= session.homework_due_date:
        raise ValidationError.single(
            code="TARGET_ON_OR_AFTER_DUE_DATE",
            message=f"Homework is due {session.homework_due_date.isoformat()}",
            field_path="$.target_date",
        )

    request = document.as_request()
    target_sessions = source_sessions if target_key == source_key else list(document.schedule.get(target_key, []))
    target_free = occupied_free_intervals(target_date, request, target_sessions)

    start: int | None = None
    origin = session.moved_from
    returning = origin is not None and origin.date == target_date
    if returning and _fits(target_free, _hhmm_to_minutes(origin.time), session.duration, is_homework):
        start = _hhmm_to_minutes(origin.time)
    if start is None:
        start = _first_fit(target_free, session.duration, is_homework)
    if start is None:
        raise ConflictError(f"No free interval on {target_key} fits {session.duration} minutes")

    if returning:
        moved_from = None
    else:
        moved_from = origin or SessionOrigin(date=source_date, time=session.time)
    moved = session.model_copy(update={"time": minutes_to_hhmm(start), "moved_from": moved_from})

    schedule = {key: list(value) for key, value in document.schedule.items()}
    schedule[source_key] = _sorted_day(source_sessions) if target_key != source_key else source_sessions
    schedule[target_key] = _sorted_day([*target_sessions, moved])
    updated = document.model_copy(update={"schedule": schedule})

    source_free = occupied_free_intervals(source_date, request, schedule[source_key])
    logger.info("Moved %s from %s to %s at %s", session_id, source_key, target_key, moved.time)
    return MoveResult(
        document=updated,
        session=moved,
        source_free_intervals=[interval.as_dict() for interval in source_free],
    )


def _day_preferences(preferences: StudyPreferences, day: date, request: DayReplanRequest) -> StudyPreferences:
    name = WEEKDAYS[day.weekday()]
    slot = DayTimeSlot(day=name, start_time=request.start_time, end_time=request.end_time, enabled=True)
    slots = [existing for existing in preferences.day_time_slots if existing.day != name]
    slots.append(slot)
    return preferences.model_copy(update={"day_time_slots": slots})


def _priority_topic_items(
    document: TimetableDocument,
    request: DayReplanRequest,
    preferences: StudyPreferences,
) -> list[WorkItem]:
    subjects_by_name = {subject.name: subject for subject in document.subjects}
    tests = upcoming_tests(document.test_dates, request.date)
    items: list[WorkItem] = []
    for position, entry in enumerate(request.priority_topics):
        subject = subjects_by_name.get(entry.subject)
        topic = None
        if subject is not None:
            topic = next(
                (t for t in document.topics if t.subject_id == subject.id and t.name == entry.topic),
                None,
            )
        confidence = entry.confidence if entry.confidence is not None else (topic.confidence if topic else None)
        focus = bool(entry.difficulty and entry.difficulty.strip()) or bool(topic and topic.is_focus)
        if topic is not None:
            session_types = topic_session_types(topic, first_of_subject=False)
        elif focus or (confidence is not None and confidence <= 4):
            session_types = [SessionType.PRACTICE]
        else:
            session_types = [SessionType.REVISION]
        test = tests.get(subject.id) if subject else None
        items.append(
            WorkItem(
                item_id=f"topic:{topic.id}" if topic else f"replan:{position}",
                kind="topic",
                subject_id=subject.id if subject else entry.subject,
                subject_name=entry.subject,
                name=entry.topic,
                mode=document.timetable_mode if subject is None else (subject.mode or document.timetable_mode),
                order=position,
                repetitions=1,
                session_types=session_types,
                test_date=test.test_date if test else None,
                test_type=test.test_type if test else None,
                focus=focus,
                confidence=confidence,
                topic_id=topic.id if topic else None,
                fixed_minutes=replan_minutes(confidence, preferences),
                priority_override=_BAND_TOPICS - position,
            )
        )
    return items


def _carried_items(
    sessions: list[Session],
    *,
    listed: set[tuple[str, str]],
    start_order: int,
    timetable_document: TimetableDocument,
) -> list[WorkItem]:
    items: list[WorkItem] = []
    for offset, session in enumerate(sessions):
        if session.type == SessionType.BREAK or (session.subject, session.topic) in listed:
            continue
        is_homework = session.type == SessionType.HOMEWORK
        items.append(
            WorkItem(
                item_id=f"carry:{session.id}",
                kind="homework" if is_homework else "topic",
                subject_id=session.subject,
                subject_name=session.subject,
                name=session.topic,
                mode=session.mode or timetable_document.timetable_mode,
                order=start_order + offset,
                repetitions=1,
                session_types=[session.type],
                piece_minutes=[session.duration] if is_homework else [],
                deadline=session.homework_due_date if is_homework else None,
                test_date=session.test_date,
                topic_id=session.topic_id,
                homework_id=session.homework_id,
                fixed_minutes=session.duration,
                source_session_id=session.id,
                priority_override=_BAND_CARRIED - offset,
            )
        )
    return items


def replan_day(
    document: TimetableDocument,
    request: DayReplanRequest,
    *,
    config: dict[str, Any] | None = None,
) -> DayReplanResult:
    """Rebuild one day from a priority-ordered topic list, carried-over work and open homework.

    Completed sessions stay where they are. The result holds the full new day;
    ``apply_day_replan`` swaps it into the document.
    """
    config = config or {}
    day = request.date
    day_key = day.isoformat()
    generation = document.as_request()

    if not document.start_date <= day <= document.end_date:
        raise ValidationError.single(
            code="OUT_OF_WINDOW",
            message=f"Replan date {day_key} is outside the timetable window",
            field_path="$.date",
        )
    if day in {test.test_date for test in document.test_dates}:
        logger.info("Replan of %s skipped: test day", day_key)
        return DayReplanResult(date=day, sessions=[], reflection=request.reflection)

    completed_ids = set(request.completed_session_ids)
    existing = document.schedule.get(day_key, [])
    kept = [
        session.model_copy(update={"completed": True})
        for session in existing
        if session.type != SessionType.BREAK and (session.completed or session.id in completed_ids)
    ]
    kept_ids = {session.id for session in kept}
    incomplete = [
        session
        for session in [*request.incomplete_sessions, *existing]
        if session.id not in kept_ids and not session.completed and session.type != SessionType.BREAK
    ]
    seen_ids: set[str] = set()
    carried_sessions: list[Session] = []
    for session in incomplete:
        if session.id in seen_ids:
            continue
        seen_ids.add(session.id)
        carried_sessions.append(session)

    preferences = _day_preferences(document.preferences, day, request)
    topic_items = _priority_topic_items(document, request, preferences)
    listed = {(item.subject_name, item.name) for item in topic_items}
    carried = _carried_items(
        carried_sessions,
        listed=listed,
        start_order=len(topic_items),
        timetable_document=document,
    )

    # Open homework due after the day and not already planned on another date.
    planned_elsewhere = {
        session.homework_id
        for key, sessions in document.schedule.items()
        if key != day_key
        for session in sessions
        if session.homework_id
    }
    carried_homework = {item.homework_id for item in carried if item.homework_id}
    homework_items = []
    for item in build_homework_items(
        generation,
        start_order=len(topic_items) + len(carried),
        split_minutes=int(config.get("homework_split_minutes", 120)),
        reference_day=day + timedelta(days=1),
    ):
        if item.homework_id in planned_elsewhere or item.homework_id in carried_homework:
            continue
        item.piece_minutes = item.piece_minutes[:1]
        item.repetitions = 1
        urgent = item.deadline is not None and (item.deadline - day).days <= URGENT_HOMEWORK_DAYS
        item.priority_override = (_BAND_URGENT if urgent else _BAND_HOMEWORK) - item.order
        homework_items.append(item)

    items = [*topic_items, *carried, *homework_items]
    free = occupied_free_intervals(
        day,
        generation,
        kept,
        preferences=preferences,
        min_session_minutes=int(config.get("min_session_minutes", 15)),
    )
    allocation = allocate_sessions(
        items=items,
        free_intervals={day: free},
        timetable_mode=document.timetable_mode,
        preferences=preferences,
        config=config,
        fill_to_end=False,
        id_suffix=f"@{day_key}",
    )

    # Ids stay unique across the document, also when the same day is replanned again.
    taken = {s.id for key, sessions in document.schedule.items() if key != day_key for s in sessions} | kept_ids
    placed: list[Session] = []
    for session in allocation.schedule.get(day_key, []):
        unique = _unique_id(session.id, taken)
        taken.add(unique)
        placed.append(session if unique == session.id else session.model_copy(update={"id": unique}))

    catalog = Catalog.from_request(generation)
    for item in [*topic_items, *carried]:
        if item.kind == "topic":
            catalog.add_topic(item.subject_name, item.name)
    sanitized = sanitize_schedule(
        {day_key: [*kept, *placed]},
        request=generation.model_copy(update={"preferences": preferences}),
        catalog=catalog,
    )
    sessions = sanitized.schedule.get(day_key, [])
    logger.info(
        "Replanned %s: %d sessions, %d unplaced", day_key, len(sessions), len(allocation.unplaced)
    )
    return DayReplanResult(
        date=day,
        sessions=sessions,
        unplaced=allocation.unplaced,
        warnings=sanitized.warnings,
        rejected=sanitized.rejected,
        reflection=request.reflection,
    )


def apply_day_replan(document: TimetableDocument, result: DayReplanResult) -> TimetableDocument:
    """Replace the replanned day as a whole; other days are untouched."""
    schedule = {key: list(value) for key, value in document.schedule.items()}
    schedule[result.date.isoformat()] = list(result.sessions)
    return document.model_copy(update={"schedule": schedule})


def _same_task(a: Session, b: Session) -> bool:
    return (a.subject, a.topic, a.type) == (b.subject, b.topic, b.type)


def _orphan_breaks_dropped(sessions: list[Session]) -> list[Session]:
    """Keep a break only while work sits directly on both sides of it."""
    work = [s for s in sessions if s.type != SessionType.BREAK]
    ends = {s.end_minute for s in work}
    starts = {s.start_minute for s in work}
    return [
        s
        for s in sessions
        if s.type != SessionType.BREAK or (s.start_minute in ends and s.end_minute in starts)
    ]


def redistribute_incomplete(
    document: TimetableDocument,
    day: date,
    session_ids: list[str] | None = None,
    *,
    max_per_day: int = MAX_REDISTRIBUTED_PER_DAY,
) -> RedistributionResult:
    """Spread a day's incomplete sessions over the following days of the window.

    Sessions are taken in time order and each goes to the earliest later date
    with a fitting gap, at most ``max_per_day`` of them per date. Test days are
    skipped, homework stays before its due date and topics before their test
    date, and a date that already holds the same task is passed over. Sessions
    that fit nowhere stay on ``day`` and are listed as unplaced.
    """
    day_key = day.isoformat()
    if not document.start_date <= day <= document.end_date:
        raise ValidationError.single(
            code="OUT_OF_WINDOW",
            message=f"Date {day_key} is outside the timetable window",
            field_path="$.date",
        )
    existing = document.schedule.get(day_key, [])
    candidates = [s for s in existing if s.type != SessionType.BREAK and not s.completed]
    if session_ids is not None:
        known = {s.id for s in candidates}
        for index, session_id in enumerate(session_ids):
            if session_id not in known:
                raise ValidationError.single(
                    code="UNKNOWN_SESSION",
                    message=f"No incomplete session {session_id} on {day_key}",
                    field_path=f"$.session_ids[{index}]",
                )
        wanted = set(session_ids)
        candidates = [s for s in candidates if s.id in wanted]

    request = document.as_request()
    test_days = {test.test_date for test in document.test_dates}
    later_days = [day + timedelta(days=offset) for offset in range(1, (document.end_date - day).days + 1)]
    schedule = {key: list(value) for key, value in document.schedule.items()}
    added: dict[str, int] = defaultdict(int)
    moved: list[RedistributedSession] = []
    unplaced: list[str] = []

    for session in _sorted_day(candidates):
        is_homework = session.type == SessionType.HOMEWORK
        target_key = None
        for target in later_days:
            if is_homework and session.homework_due_date is not None and target >= session.homework_due_date:
                break
            if session.test_date is not None and target >= session.test_date:
                break
            key = target.isoformat()
            occupied = schedule.get(key, [])
            if target in test_days or added[key] >= max_per_day or any(_same_task(s, session) for s in occupied):
                continue
            start = _first_fit(occupied_free_intervals(target, request, occupied), session.duration, is_homework)
            if start is None:
                continue
            relocated = session.model_copy(
                update={
                    "id": _unique_id(session.id, {s.id for s in occupied}),
                    "time": minutes_to_hhmm(start),
                    "moved_from": session.moved_from or SessionOrigin(date=day, time=session.time),
                }
            )
            schedule[key] = _sorted_day([*occupied, relocated])
            added[key] += 1
            target_key = key
            moved.append(
                RedistributedSession(session_id=session.id, from_date=day, to_date=target, time=relocated.time)
            )
            break
        if target_key is None:
            unplaced.append(session.id)

    moved_ids = {entry.session_id for entry in moved}
    schedule[day_key] = _orphan_breaks_dropped([s for s in existing if s.id not in moved_ids])
    logger.info("Redistributed %d sessions from %s, %d left in place", len(moved), day_key, len(unplaced))
    return RedistributionResult(
        document=document.model_copy(update={"schedule": schedule}),
        moved=moved,
        unplaced=unplaced,
    )
