"""Post-placement filter and conflict reporting for schedules.

Only filters and reports; it never adds or moves a session. Rejections are
logged and returned; overlaps are reported as warnings and left in place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, Mapping

from pydantic import ValidationError as PydanticValidationError

from studyplanner.engine.availability import blocked_intervals_for_day, override_intervals_for_day
from studyplanner.models import GenerationRequest, Session, SessionType

logger = logging.getLogger(__name__)

REJECT_MALFORMED = "malformed_session"
REJECT_EVENT_TYPE = "event_type"
REJECT_EVENT_TITLE = "matches_event_title"
REJECT_NOT_IN_CATALOG = "not_in_catalog"
REJECT_ON_OR_AFTER_DUE = "on_or_after_due_date"
REJECT_TEST_DAY = "test_day"
REJECT_INVALID_DATE = "invalid_date"


@dataclass(slots=True)
class Catalog:
    topics: set[tuple[str, str]] = field(default_factory=set)
    homework_due: dict[tuple[str, str], date] = field(default_factory=dict)
    event_titles: set[str] = field(default_factory=set)
    test_days: set[date] = field(default_factory=set)

    @classmethod
    def from_request(cls, request: GenerationRequest) -> "Catalog":
        catalog = cls()
        subject_names = {subject.id: subject.name for subject in request.subjects}
        for topic in request.topics:
            name = subject_names.get(topic.subject_id)
            if name is not None:
                catalog.topics.add((name, topic.name))
        for homework in request.homework:
            catalog.homework_due[(homework.subject, homework.title)] = homework.due_date
            resolved = subject_names.get(homework.subject)
            if resolved is not None:
                catalog.homework_due[(resolved, homework.title)] = homework.due_date
        catalog.event_titles = {event.title for event in request.events}
        catalog.test_days = {test.test_date for test in request.test_dates}
        return catalog

    def add_topic(self, subject: str, topic: str) -> None:
        self.topics.add((subject, topic))


@dataclass(slots=True)
class SanitizeResult:
    schedule: dict[str, list[Session]]
    rejected: list[dict[str, Any]] = field(default_factory=list)
    warnings: list[dict[str, Any]] = field(default_factory=list)


def _reject(rejected: list[dict[str, Any]], *, day: str, entry: Any, reason: str, detail: str) -> None:
    session_id = entry.get("id") if isinstance(entry, dict) else getattr(entry, "id", None)
    logger.warning("Rejected session %s on %s: %s (%s)", session_id, day, reason, detail)
    rejected.append({"date": day, "session_id": session_id, "reason": reason, "detail": detail})


def _coerce(entry: Any) -> Session:
    if isinstance(entry, Session):
        return entry
    if isinstance(entry, dict) and entry.get("type") == "event":
        raise ValueError("event entries are exclusion data, not sessions")
    return Session.model_validate(entry)


def _overlaps(start: int, end: int, other_start: int, other_end: int) -> bool:
    return start < other_end and other_start < end


def sanitize_schedule(
    raw: Mapping[str, Iterable[Any]],
    *,
    request: GenerationRequest,
    catalog: Catalog | None = None,
) -> SanitizeResult:
    """Filter a raw schedule against the request catalog and blocked time."""
    catalog = catalog or Catalog.from_request(request)
    result = SanitizeResult(schedule={})

    for day_key in sorted(raw):
        entries = list(raw[day_key])
        try:
            day = date.fromisoformat(day_key)
        except ValueError:
            for entry in entries:
                _reject(result.rejected, day=day_key, entry=entry, reason=REJECT_INVALID_DATE, detail="not an ISO date")
            continue

        kept: list[Session] = []
        for entry in entries:
            if isinstance(entry, dict) and entry.get("type") == "event":
                _reject(result.rejected, day=day_key, entry=entry, reason=REJECT_EVENT_TYPE, detail="type is event")
                continue
            try:
                session = _coerce(entry)
            except (PydanticValidationError, ValueError) as exc:
                _reject(result.rejected, day=day_key, entry=entry, reason=REJECT_MALFORMED, detail=str(exc).splitlines()[0])
                continue

            if day in catalog.test_days:
                _reject(result.rejected, day=day_key, entry=session, reason=REJECT_TEST_DAY, detail="date is a test day")
                continue
            if session.type == SessionType.BREAK:
                kept.append(session)
                continue
            if session.topic in catalog.event_titles:
                _reject(
                    result.rejected,
                    day=day_key,
                    entry=session,
                    reason=REJECT_EVENT_TITLE,
                    detail=f"title {session.topic!r} is an event",
                )
                continue
            if session.type == SessionType.HOMEWORK:
                due = catalog.homework_due.get((session.subject, session.topic))
                if due is None:
                    _reject(
                        result.rejected,
                        day=day_key,
                        entry=session,
                        reason=REJECT_NOT_IN_CATALOG,
                        detail=f"unknown homework {session.subject}/{session.topic}",
                    )
                    continue
                due = session.homework_due_date or due
                if day >= due:
                    _reject(
                        result.rejected,
                        day=day_key,
                        entry=session,
                        reason=REJECT_ON_OR_AFTER_DUE,
                        detail=f"due {due.isoformat()}",
                    )
                    continue
            elif (session.subject, session.topic) not in catalog.topics:
                _reject(
                    result.rejected,
                    day=day_key,
                    entry=session,
                    reason=REJECT_NOT_IN_CATALOG,
                    detail=f"unknown topic {session.subject}/{session.topic}",
                )
                continue
            kept.append(session)

        kept.sort(key=lambda s: (s.start_minute, s.id))
        result.warnings.extend(_conflict_warnings(day, kept, request))
        result.schedule[day_key] = kept

    return result


def _conflict_warnings(day: date, sessions: list[Session], request: GenerationRequest) -> list[dict[str, Any]]:
    warnings: list[dict[str, Any]] = []
    blocked = blocked_intervals_for_day(
        day,
        preferences=request.preferences,
        events=request.events,
        test_dates=request.test_dates,
    )
    overrides = override_intervals_for_day(day, request.preferences)

    for session in sessions:
        start, end = session.start_minute, session.end_minute
        permitted = session.type == SessionType.HOMEWORK and any(
            window.start <= start and end <= window.end for window in overrides
        )
        for interval in blocked:
            if not _overlaps(start, end, interval.start, interval.end):
                continue
            if permitted and interval.source == "school":
                continue
            warnings.append(
                {
                    "code": "WARN_BLOCKED_OVERLAP",
                    "severity": "warning",
                    "date": day.isoformat(),
                    "session_id": session.id,
                    "blocked_source": interval.source,
                    "message": f"Session {session.id} overlaps blocked time ({interval.source}).",
                }
            )

    for previous, current in zip(sessions, sessions[1:]):
        if current.start_minute < previous.end_minute:
            warnings.append(
                {
                    "code": "WARN_SESSION_OVERLAP",
                    "severity": "warning",
                    "date": day.isoformat(),
                    "session_ids": [previous.id, current.id],
                    "message": f"Sessions {previous.id} and {current.id} overlap.",
                }
            )
    return warnings
