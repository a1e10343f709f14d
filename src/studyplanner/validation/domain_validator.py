"""Domain-level cross-field validation rules."""

from __future__ import annotations

from typing import Any, Iterable

from studyplanner.models import GenerationRequest

from .errors import ValidationReport


def validate_generation_request(request: GenerationRequest, config: dict[str, Any]) -> ValidationReport:
    """Validate cross-field coherence that the model schema cannot express."""
    report = ValidationReport()

    _check_unique(report, (subject.id for subject in request.subjects), "$.subjects", "DUPLICATE_SUBJECT_ID")
    _check_unique(report, (topic.id for topic in request.topics), "$.topics", "DUPLICATE_TOPIC_ID")
    _check_unique(report, (homework.id for homework in request.homework), "$.homework", "DUPLICATE_HOMEWORK_ID")
    _check_unique(report, (event.id for event in request.events), "$.events", "DUPLICATE_EVENT_ID")

    subject_ids = {subject.id for subject in request.subjects}
    subject_names = {subject.name for subject in request.subjects}

    for idx, topic in enumerate(request.topics):
        if topic.subject_id not in subject_ids:
            report.add_error(
                code="UNKNOWN_SUBJECT_REFERENCE",
                message=f"Unknown subject_id reference: {topic.subject_id}",
                field_path=f"$.topics[{idx}].subject_id",
            )

    for idx, test in enumerate(request.test_dates):
        if test.subject_id not in subject_ids:
            report.add_error(
                code="UNKNOWN_SUBJECT_REFERENCE",
                message=f"Unknown subject_id reference: {test.subject_id}",
                field_path=f"$.test_dates[{idx}].subject_id",
            )

    for idx, homework in enumerate(request.homework):
        if homework.subject not in subject_ids and homework.subject not in subject_names:
            report.add_info(
                code="INFO_HOMEWORK_SUBJECT_UNMATCHED",
                message=f"Homework subject {homework.subject!r} is not a known subject; timetable mode applies",
                field_path=f"$.homework[{idx}].subject",
            )

    max_days = int(config.get("max_window_days", 28))
    window_days = (request.end_date - request.start_date).days + 1
    if window_days > max_days:
        report.add_error(
            code="INVALID_DATE_WINDOW",
            message=f"Planning window spans {window_days} days; at most {max_days} are allowed",
            field_path="$.end_date",
            suggested_fix="Narrow the window or split it into several generations.",
        )

    if not any(slot.enabled for slot in request.preferences.day_time_slots):
        report.add_info(
            code="INFO_NO_STUDY_DAYS",
            message="No weekday is enabled; the schedule will be empty",
            field_path="$.preferences.day_time_slots",
        )

    return report


def _check_unique(report: ValidationReport, values: Iterable[str], path: str, code: str) -> None:
    seen: set[str] = set()
    for idx, value in enumerate(values):
        if value in seen:
            report.add_error(
                code=code,
                message=f"Duplicate id: {value}",
                field_path=f"{path}[{idx}].id",
            )
        seen.add(value)
