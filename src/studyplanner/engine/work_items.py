"""Build typed work items from a generation request.

A work item is one topic (a set of repeated study sessions) or one homework
assignment (one or more pieces). Repetition counts and session-type splits are
fixed construction rules.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from studyplanner.models import GenerationRequest, Homework, Mode, SessionType, Subject, TestDate, Topic

from .scoring import score_item

logger = logging.getLogger(__name__)

MAX_TOPIC_REPETITIONS = 6
FOCUS_BASE_REPETITIONS = 4
NEAR_TEST_DAYS = 14

ITEM_PENDING = "pending"
ITEM_PARTIAL = "partially-placed"
ITEM_DONE = "fully-placed"
ITEM_DEADLINE_MISSED = "deadline-missed"


@dataclass(slots=True)
class WorkItem:
    item_id: str
    kind: str
    subject_id: str
    subject_name: str
    name: str
    mode: Mode
    order: int
    repetitions: int
    session_types: list[SessionType]
    piece_minutes: list[int] = field(default_factory=list)
    deadline: date | None = None
    test_date: date | None = None
    test_type: str | None = None
    focus: bool = False
    confidence: int | None = None
    topic_id: str | None = None
    homework_id: str | None = None
    fixed_minutes: int | None = None
    source_session_id: str | None = None
    priority: float = 0.0
    priority_override: float | None = None
    placed: int = 0
    placed_days: list[date] = field(default_factory=list)

    @property
    def remaining(self) -> int:
        return max(0, self.repetitions - self.placed)

    @property
    def test_linked(self) -> bool:
        return self.test_date is not None

    @property
    def last_date(self) -> date | None:
        """Last date on which this item may still be placed (inclusive)."""
        limit = self.deadline if self.deadline is not None else self.test_date
        if limit is None:
            return None
        return date.fromordinal(limit.toordinal() - 1)

    def eligible_on(self, day: date) -> bool:
        last = self.last_date
        return last is None or day <= last

    def state(self, today: date | None = None) -> str:
        """Lifecycle state as of the end of ``today``."""
        if self.remaining == 0:
            return ITEM_DONE
        if today is not None and not self.eligible_on(today):
            return ITEM_DEADLINE_MISSED
        return ITEM_PARTIAL if self.placed else ITEM_PENDING

    def next_session_type(self) -> SessionType:
        if not self.session_types:
            return SessionType.STUDY
        return self.session_types[self.placed % len(self.session_types)]

    def next_piece_minutes(self) -> int | None:
        if not self.piece_minutes:
            return None
        return self.piece_minutes[min(self.placed, len(self.piece_minutes) - 1)]

    def as_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "kind": self.kind,
            "subject": self.subject_name,
            "name": self.name,
            "mode": self.mode.value,
            "repetitions": self.repetitions,
            "placed": self.placed,
            "priority": self.priority,
            "deadline": self.deadline.isoformat() if self.deadline else None,
            "test_date": self.test_date.isoformat() if self.test_date else None,
        }


def upcoming_tests(test_dates: list[TestDate], start_date: date) -> dict[str, TestDate]:
    """Nearest test on or after ``start_date`` per subject id."""
    nearest: dict[str, TestDate] = {}
    for test in sorted(test_dates, key=lambda t: (t.test_date, t.subject_id, t.test_type)):
        if test.test_date < start_date:
            continue
        nearest.setdefault(test.subject_id, test)
    return nearest


def topic_repetitions(topic: Topic, test: TestDate | None, start_date: date) -> int:
    confidence = topic.confidence
    if topic.is_focus or (confidence is not None and confidence <= 4):
        repetitions = FOCUS_BASE_REPETITIONS
        if confidence is not None and confidence <= 2:
            repetitions += 1
        if test is not None:
            repetitions += 1
        return min(MAX_TOPIC_REPETITIONS, repetitions)

    baseline = 2 if confidence is not None and 5 <= confidence <= 6 else 1
    if test is not None:
        multiplier = 3 if (test.test_date - start_date).days <= NEAR_TEST_DAYS else 2
        baseline *= multiplier
    return min(MAX_TOPIC_REPETITIONS, baseline)


def topic_session_types(topic: Topic, *, first_of_subject: bool) -> list[SessionType]:
    if topic.is_focus or (topic.confidence is not None and topic.confidence <= 4):
        return [SessionType.PRACTICE, SessionType.EXAM_QUESTIONS]
    if first_of_subject:
        return [SessionType.REVISION, SessionType.EXAM_QUESTIONS]
    return [SessionType.PRACTICE, SessionType.EXAM_QUESTIONS]


def split_homework(duration: int, split_minutes: int = 120) -> list[int]:
    """Near-equal pieces of at most ``split_minutes``; larger pieces first."""
    if duration <= split_minutes:
        return [duration]
    count = math.ceil(duration / split_minutes)
    base, extra = divmod(duration, count)
    return [base + 1 if index < extra else base for index in range(count)]


def _subject_for_homework(homework: Homework, subjects: list[Subject]) -> Subject | None:
    for subject in subjects:
        if homework.subject in (subject.id, subject.name):
            return subject
    return None


def build_topic_items(request: GenerationRequest, *, start_order: int = 0) -> list[WorkItem]:
    subjects = {subject.id: subject for subject in request.subjects}
    tests = upcoming_tests(request.test_dates, request.start_date)
    seen_subjects: set[str] = set()
    items: list[WorkItem] = []
    for index, topic in enumerate(request.topics):
        subject = subjects.get(topic.subject_id)
        if subject is None:
            logger.warning("Skipping topic %s: unknown subject %s", topic.id, topic.subject_id)
            continue
        test = tests.get(subject.id)
        first_of_subject = subject.id not in seen_subjects
        seen_subjects.add(subject.id)
        items.append(
            WorkItem(
                item_id=f"topic:{topic.id}",
                kind="topic",
                subject_id=subject.id,
                subject_name=subject.name,
                name=topic.name,
                mode=request.subject_mode(subject),
                order=start_order + index,
                repetitions=topic_repetitions(topic, test, request.start_date),
                session_types=topic_session_types(topic, first_of_subject=first_of_subject),
                test_date=test.test_date if test else None,
                test_type=test.test_type if test else None,
                focus=topic.is_focus,
                confidence=topic.confidence,
                topic_id=topic.id,
            )
        )
    return items


def build_homework_items(
    request: GenerationRequest,
    *,
    start_order: int = 0,
    split_minutes: int = 120,
    reference_day: date | None = None,
) -> list[WorkItem]:
    """Open homework still due on or after ``reference_day`` (defaults to the window start)."""
    cutoff = reference_day or request.start_date
    items: list[WorkItem] = []
    for index, homework in enumerate(request.homework):
        if homework.completed:
            continue
        if homework.due_date < cutoff:
            logger.debug("Ignoring overdue homework %s (due %s)", homework.id, homework.due_date)
            continue
        subject = _subject_for_homework(homework, request.subjects)
        pieces = split_homework(homework.duration, split_minutes)
        items.append(
            WorkItem(
                item_id=f"homework:{homework.id}",
                kind="homework",
                subject_id=subject.id if subject else homework.subject,
                subject_name=subject.name if subject else homework.subject,
                name=homework.title,
                mode=request.subject_mode(subject) if subject else request.timetable_mode,
                order=start_order + index,
                repetitions=len(pieces),
                session_types=[SessionType.HOMEWORK],
                piece_minutes=pieces,
                deadline=homework.due_date,
                homework_id=homework.id,
            )
        )
    return items


def build_work_items(request: GenerationRequest, config: dict[str, Any]) -> list[WorkItem]:
    """Topics in input order, then homework; priority scored at the window start."""
    topics = build_topic_items(request)
    homework = build_homework_items(
        request,
        start_order=len(request.topics),
        split_minutes=int(config.get("homework_split_minutes", 120)),
    )
    items = [*topics, *homework]
    cap_days = int(config.get("priority_cap_days", 28))
    for item in items:
        item.priority = score_item(item, request.start_date, cap_days=cap_days)
    logger.debug("Built %d work items (%d topics, %d homework)", len(items), len(topics), len(homework))
    return items
