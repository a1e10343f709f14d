"""Pydantic models for scheduler requests, sessions and reports."""

from __future__ import annotations

from datetime import date, datetime, time
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

SCHEDULE_SCHEMA_VERSION = "1.0"
PREFERENCES_SCHEMA_VERSION = 2

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

_HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class Mode(str, Enum):
    SHORT_TERM_EXAM = "short-term-exam"
    LONG_TERM_EXAM = "long-term-exam"
    NO_EXAM = "no-exam"


class DurationMode(str, Enum):
    FIXED = "fixed"
    FLEXIBLE = "flexible"


class SessionType(str, Enum):
    STUDY = "study"
    PRACTICE = "practice"
    EXAM_QUESTIONS = "exam_questions"
    REVISION = "revision"
    HOMEWORK = "homework"
    BREAK = "break"


class _StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class Subject(_StrictModel):
    """A subject chosen at onboarding."""

    id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=100)
    exam_board: str = Field(default="", max_length=50)
    mode: Optional[Mode] = Field(
        default=None,
        description="Per-subject mode; falls back to the timetable mode when omitted",
    )


class Topic(_StrictModel):
    """A topic to cover, owned by a subject."""

    id: str = Field(..., min_length=1, max_length=64)
    subject_id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=200)
    confidence: Optional[int] = Field(default=None, ge=1, le=10)
    focus: bool = False
    difficulties: Optional[str] = Field(default=None, max_length=500)

    @property
    def is_focus(self) -> bool:
        return self.focus or bool((self.difficulties or "").strip())


class TestDate(_StrictModel):
    """A test for a subject; its date is a full-day exclusion."""

    __test__ = False

    subject_id: str = Field(..., min_length=1, max_length=64)
    test_date: date
    test_type: str = Field(default="test", max_length=50)


class Homework(_StrictModel):
    """A homework assignment with a hard due date."""

    id: str = Field(..., min_length=1, max_length=64)
    title: str = Field(..., min_length=1, max_length=200)
    subject: str = Field(..., min_length=1, max_length=100)
    due_date: date
    duration: int = Field(default=60, ge=5, le=600, description="Minutes")
    description: Optional[str] = Field(default=None, max_length=1000)
    completed: bool = False


class Event(_StrictModel):
    """An externally fixed commitment; always blocked time."""

    id: str = Field(..., min_length=1, max_length=64)
    title: str = Field(..., min_length=1, max_length=200)
    start_time: datetime
    end_time: datetime

    @model_validator(mode="after")
    def _end_after_start(self) -> "Event":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class TimeWindow(_StrictModel):
    start: time
    end: time

    @model_validator(mode="after")
    def _ordered(self) -> "TimeWindow":
        if self.end <= self.start:
            raise ValueError("window end must be after start")
        return self


class DayTimeSlot(_StrictModel):
    day: str
    start_time: time
    end_time: time
    enabled: bool = True

    @field_validator("day")
    @classmethod
    def _known_day(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in WEEKDAYS:
            raise ValueError(f"day must be one of: {', '.join(WEEKDAYS)}")
        return normalized

    @model_validator(mode="after")
    def _ordered(self) -> "DayTimeSlot":
        if self.enabled and self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time for an enabled day")
        return self


def _default_day_slots() -> List[DayTimeSlot]:
    return [DayTimeSlot(day=day, start_time=time(9, 0), end_time=time(17, 0)) for day in WEEKDAYS]


class StudyPreferences(_StrictModel):
    """Versioned study preferences (version 2).

    Older payloads are converted by ``normalization.preferences.migrate_preferences``
    before they reach this model.
    """

    schema_version: int = Field(default=PREFERENCES_SCHEMA_VERSION)
    day_time_slots: List[DayTimeSlot] = Field(default_factory=_default_day_slots)
    session_duration: int = Field(default=45, ge=15, le=180)
    break_duration: int = Field(default=15, ge=5, le=60)
    duration_mode: DurationMode = DurationMode.FLEXIBLE
    daily_study_hours: Optional[float] = Field(default=None, ge=0, le=12)
    school_start_time: Optional[time] = None
    school_end_time: Optional[time] = None
    study_before_school: bool = False
    before_school_start: Optional[time] = None
    before_school_end: Optional[time] = None
    study_during_lunch: bool = False
    lunch_start: Optional[time] = None
    lunch_end: Optional[time] = None
    study_during_free_periods: bool = False
    free_periods: List[TimeWindow] = Field(default_factory=list)

    @field_validator("schema_version")
    @classmethod
    def _current_version(cls, value: int) -> int:
        if value != PREFERENCES_SCHEMA_VERSION:
            raise ValueError(f"unsupported preferences schema_version {value}; migrate first")
        return value

    @field_validator("day_time_slots")
    @classmethod
    def _unique_days(cls, value: List[DayTimeSlot]) -> List[DayTimeSlot]:
        days = [slot.day for slot in value]
        if len(days) != len(set(days)):
            raise ValueError("each weekday may appear only once")
        return value

    @model_validator(mode="after")
    def _school_window(self) -> "StudyPreferences":
        if (self.school_start_time is None) != (self.school_end_time is None):
            raise ValueError("school_start_time and school_end_time must be set together")
        if self.school_start_time and self.school_end_time and self.school_end_time <= self.school_start_time:
            raise ValueError("school_end_time must be after school_start_time")
        return self

    def slot_for(self, day: date) -> Optional[DayTimeSlot]:
        name = WEEKDAYS[day.weekday()]
        for slot in self.day_time_slots:
            if slot.day == name:
                return slot
        return None

    @property
    def has_school_hours(self) -> bool:
        return self.school_start_time is not None and self.school_end_time is not None


class GenerationRequest(_StrictModel):
    """Everything the allocator needs for one generation run."""

    subjects: List[Subject] = Field(..., max_length=20)
    topics: List[Topic] = Field(default_factory=list, max_length=500)
    test_dates: List[TestDate] = Field(default_factory=list, max_length=50)
    homework: List[Homework] = Field(default_factory=list, max_length=200)
    preferences: StudyPreferences = Field(default_factory=StudyPreferences)
    events: List[Event] = Field(default_factory=list, max_length=500)
    start_date: date
    end_date: date
    timetable_mode: Mode = Mode.LONG_TERM_EXAM

    @model_validator(mode="after")
    def _window(self) -> "GenerationRequest":
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self

    def subject_mode(self, subject: Subject) -> Mode:
        return subject.mode or self.timetable_mode


class SessionOrigin(BaseModel):
    """Where a moved session came from."""

    date: date
    time: str = Field(..., pattern=_HHMM_PATTERN)


class Session(BaseModel):
    """One placed block in a day of the schedule."""

    model_config = ConfigDict(extra="forbid", use_enum_values=False)

    id: str = Field(..., min_length=1)
    time: str = Field(..., pattern=_HHMM_PATTERN)
    duration: int = Field(..., ge=1, le=24 * 60)
    subject: str = ""
    topic: str = ""
    type: SessionType
    completed: bool = False
    notes: str = ""
    test_date: Optional[date] = None
    homework_due_date: Optional[date] = None
    mode: Optional[Mode] = None
    topic_id: Optional[str] = None
    homework_id: Optional[str] = None
    moved_from: Optional[SessionOrigin] = None

    @property
    def start_minute(self) -> int:
        hours, minutes = self.time.split(":")
        return int(hours) * 60 + int(minutes)

    @property
    def end_minute(self) -> int:
        return self.start_minute + self.duration


Schedule = Dict[str, List[Session]]


class UnplacedItem(BaseModel):
    item_id: str
    kind: str
    subject: str
    name: str
    remaining_repetitions: int
    placed_repetitions: int
    reason: str
    deadline: Optional[date] = None
    state: str = "pending"


class InfeasibilityReport(BaseModel):
    unplaced: List[UnplacedItem] = Field(default_factory=list)
    messages: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def is_feasible(self) -> bool:
        return not self.unplaced


class GenerationResult(BaseModel):
    schedule: Schedule = Field(default_factory=dict)
    infeasibility: InfeasibilityReport = Field(default_factory=InfeasibilityReport)
    warnings: List[Dict[str, Any]] = Field(default_factory=list)
    suggestions: List[Dict[str, Any]] = Field(default_factory=list)
    rejected: List[Dict[str, Any]] = Field(default_factory=list)
    decision_trace: List[Dict[str, Any]] = Field(default_factory=list)
    metrics: Dict[str, Any] = Field(default_factory=dict)


class WeekLoad(BaseModel):
    week: str
    start_date: date
    end_date: date
    hours_needed: float
    hours_available: float
    utilization: Optional[float]
    status: str


class FeasibilityReport(BaseModel):
    status: str
    total_hours_needed: float
    total_hours_available: float
    difference: float
    breakdown: Dict[str, float]
    weekly: List[WeekLoad]
    recommendation: str


class PriorityTopic(_StrictModel):
    """A topic picked for a replanned day, with optional per-call metadata."""

    subject: str = Field(..., min_length=1, max_length=100)
    topic: str = Field(..., min_length=1, max_length=200)
    confidence: Optional[int] = Field(default=None, ge=1, le=10)
    difficulty: Optional[str] = Field(default=None, max_length=500)


class DayReplanRequest(_StrictModel):
    date: date
    start_time: time = time(9, 0)
    end_time: time = time(17, 0)
    priority_topics: List[PriorityTopic] = Field(default_factory=list, max_length=50)
    incomplete_sessions: List[Session] = Field(default_factory=list)
    completed_session_ids: List[str] = Field(default_factory=list)
    reflection: str = Field(default="", max_length=5000)

    @model_validator(mode="after")
    def _window(self) -> "DayReplanRequest":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class DayReplanResult(BaseModel):
    date: date
    sessions: List[Session]
    unplaced: List[UnplacedItem] = Field(default_factory=list)
    warnings: List[Dict[str, Any]] = Field(default_factory=list)
    rejected: List[Dict[str, Any]] = Field(default_factory=list)
    reflection: str = ""


class TimetableDocument(BaseModel):
    """Persisted timetable: generation context plus the schedule."""

    timetable_id: str = Field(..., min_length=1)
    version: int = Field(default=0, ge=0)
    start_date: date
    end_date: date
    timetable_mode: Mode = Mode.LONG_TERM_EXAM
    subjects: List[Subject] = Field(default_factory=list)
    topics: List[Topic] = Field(default_factory=list)
    test_dates: List[TestDate] = Field(default_factory=list)
    homework: List[Homework] = Field(default_factory=list)
    events: List[Event] = Field(default_factory=list)
    preferences: StudyPreferences = Field(default_factory=StudyPreferences)
    schedule: Schedule = Field(default_factory=dict)

    @classmethod
    def from_generation(
        cls, timetable_id: str, request: GenerationRequest, schedule: Schedule
    ) -> "TimetableDocument":
        return cls(
            timetable_id=timetable_id,
            start_date=request.start_date,
            end_date=request.end_date,
            timetable_mode=request.timetable_mode,
            subjects=request.subjects,
            topics=request.topics,
            test_dates=request.test_dates,
            homework=request.homework,
            events=request.events,
            preferences=request.preferences,
            schedule=schedule,
        )

    def as_request(self) -> GenerationRequest:
        return GenerationRequest.model_construct(
            subjects=self.subjects,
            topics=self.topics,
            test_dates=self.test_dates,
            homework=self.homework,
            preferences=self.preferences,
            events=self.events,
            start_date=self.start_date,
            end_date=self.end_date,
            timetable_mode=self.timetable_mode,
        )


class MoveResult(BaseModel):
    document: TimetableDocument
    session: Session
    source_free_intervals: List[Dict[str, Any]] = Field(default_factory=list)


class RedistributedSession(BaseModel):
    session_id: str
    from_date: date
    to_date: date
    time: str


class RedistributionResult(BaseModel):
    document: TimetableDocument
    moved: List[RedistributedSession] = Field(default_factory=list)
    unplaced: List[str] = Field(default_factory=list)
