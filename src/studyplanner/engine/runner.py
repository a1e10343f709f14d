"""Scheduler operations: generate, estimate, move, replan and redistribute."""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timezone
from typing import TYPE_CHECKING, Any

from studyplanner.errors import InfeasibleError, ValidationError
from studyplanner.metrics.collector import collect_metrics
from studyplanner.models import (
    DayReplanRequest,
    DayReplanResult,
    FeasibilityReport,
    GenerationRequest,
    GenerationResult,
    InfeasibilityReport,
    MoveResult,
    RedistributionResult,
    TimetableDocument,
)
from studyplanner.reporting.decision_trace import DecisionTraceCollector
from studyplanner.reporting.warnings import build_infeasibility_messages, build_warnings_and_suggestions
from studyplanner.validation.domain_validator import validate_generation_request
from studyplanner.validation.errors import ValidationReport
from studyplanner.validation.request import parse_day_replan_request, parse_generation_request
from studyplanner.validation.schedule_validator import sanitize_schedule
from studyplanner.normalization.config_resolver import resolve_effective_config

from .allocator import allocate_sessions
from .availability import build_free_intervals
from .feasibility import estimate_feasibility as _estimate_feasibility
from .notes import NotesProvider, annotate_notes
from .reschedule import apply_day_replan, move_session, redistribute_incomplete, replan_day
from .work_items import build_work_items

if TYPE_CHECKING:
    from studyplanner.store import ScheduleStore

logger = logging.getLogger(__name__)


def _effective_config(overrides: dict[str, Any] | None) -> dict[str, Any]:
    report = ValidationReport()
    config = resolve_effective_config(overrides, report)
    if report.errors:
        raise ValidationError(report)
    for issue in report.infos:
        logger.info("%s: %s", issue.code, issue.message)
    return config


def _as_request(request: GenerationRequest | dict[str, Any], config: dict[str, Any]) -> GenerationRequest:
    if isinstance(request, GenerationRequest):
        report = validate_generation_request(request, config)
        if report.errors:
            raise ValidationError(report)
        return request
    return parse_generation_request(request, config=config)


def generate_schedule(
    request: GenerationRequest | dict[str, Any],
    *,
    config: dict[str, Any] | None = None,
    strict: bool = False,
    notes_provider: NotesProvider | None = None,
) -> GenerationResult:
    """Generate a full schedule for the request window.

    Unplaced work is returned in the infeasibility report; with ``strict`` the
    partial result is raised as ``InfeasibleError`` instead.
    """
    effective = _effective_config(config)
    parsed = _as_request(request, effective)

    free = build_free_intervals(
        start_date=parsed.start_date,
        end_date=parsed.end_date,
        preferences=parsed.preferences,
        events=parsed.events,
        test_dates=parsed.test_dates,
        min_session_minutes=int(effective["min_session_minutes"]),
    )
    items = build_work_items(parsed, effective)
    trace = DecisionTraceCollector(start_timestamp=datetime.combine(parsed.start_date, time(0, 0), tzinfo=timezone.utc))
    allocation = allocate_sessions(
        items=items,
        free_intervals=free,
        timetable_mode=parsed.timetable_mode,
        preferences=parsed.preferences,
        config=effective,
        fill_to_end=bool(effective.get("fill_to_end", True)),
        decision_trace=trace,
    )

    sanitized = sanitize_schedule(allocation.schedule, request=parsed)
    schedule, note_failures = annotate_notes(
        sanitized.schedule,
        notes_provider,
        timeout_seconds=float(effective["notes_timeout_seconds"]),
    )

    warnings, suggestions = build_warnings_and_suggestions(
        request=parsed,
        schedule=schedule,
        free_intervals=free,
        unplaced=allocation.unplaced,
    )
    warnings.extend(sanitized.warnings)
    for failure in note_failures:
        warnings.append(
            {
                "code": "WARN_NOTES_UNAVAILABLE",
                "severity": "info",
                "session_id": failure["session_id"],
                "message": f"Notes assist unavailable ({failure['reason']}); kept the default note.",
            }
        )

    metrics = collect_metrics(schedule, free, allocation.items)
    metrics["review_sessions"] = allocation.review_sessions
    metrics["iterations"] = allocation.iterations

    result = GenerationResult(
        schedule=schedule,
        infeasibility=InfeasibilityReport(
            unplaced=allocation.unplaced,
            messages=build_infeasibility_messages(allocation.unplaced),
        ),
        warnings=warnings,
        suggestions=suggestions,
        rejected=sanitized.rejected,
        decision_trace=trace.as_list(),
        metrics=metrics,
    )
    logger.info(
        "Generated %d sessions over %d days (%d unplaced, %d rejected)",
        metrics["sessions_count"],
        len(schedule),
        len(allocation.unplaced),
        len(sanitized.rejected),
    )
    if strict and allocation.unplaced:
        raise InfeasibleError(result)
    return result


def estimate_feasibility(
    request: GenerationRequest | dict[str, Any],
    *,
    config: dict[str, Any] | None = None,
) -> FeasibilityReport:
    """Needed vs available study hours; pure function of the request."""
    effective = _effective_config(config)
    return _estimate_feasibility(_as_request(request, effective), effective)


def create_timetable(
    store: "ScheduleStore",
    timetable_id: str,
    request: GenerationRequest,
    result: GenerationResult,
) -> TimetableDocument:
    """Persist a freshly generated schedule as a new timetable document."""
    document = TimetableDocument.from_generation(timetable_id, request, result.schedule)
    return store.save(document, expected_version=0)


def move_session_in_store(
    store: "ScheduleStore",
    timetable_id: str,
    source_date: date,
    session_id: str,
    target_date: date,
) -> MoveResult:
    """Read-modify-write move under the store's version check."""
    document = store.load(timetable_id)
    moved = move_session(document, source_date, session_id, target_date)
    saved = store.save(moved.document, expected_version=document.version)
    return moved.model_copy(update={"document": saved})


def replan_day_in_store(
    store: "ScheduleStore",
    timetable_id: str,
    request: DayReplanRequest | dict[str, Any],
    *,
    config: dict[str, Any] | None = None,
) -> tuple[TimetableDocument, DayReplanResult]:
    """Replan one day and persist it; returns the saved document and the day result."""
    effective = _effective_config(config)
    parsed = request if isinstance(request, DayReplanRequest) else parse_day_replan_request(request)
    document = store.load(timetable_id)
    result = replan_day(document, parsed, config=effective)
    saved = store.save(apply_day_replan(document, result), expected_version=document.version)
    return saved, result


def redistribute_incomplete_in_store(
    store: "ScheduleStore",
    timetable_id: str,
    day: date,
    session_ids: list[str] | None = None,
) -> RedistributionResult:
    """Spread a day's incomplete sessions over later days and persist the result."""
    document = store.load(timetable_id)
    result = redistribute_incomplete(document, day, session_ids)
    saved = store.save(result.document, expected_version=document.version)
    return result.model_copy(update={"document": saved})
