from __future__ import annotations

import time
from datetime import date

from studyplanner.engine.feasibility import STATUS_BUSY, STATUS_MANAGEABLE, STATUS_OVERWHELMING, classify
from studyplanner.engine.notes import annotate_notes
from studyplanner.errors import ConflictError, InfeasibleError
from studyplanner.models import GenerationResult, InfeasibilityReport, Session, SessionType, UnplacedItem
from studyplanner.reporting import build_error_report, build_success_report
from studyplanner.reporting.warnings import build_infeasibility_messages


def _schedule() -> dict[str, list[Session]]:
    return {
        "2025-01-06": [
            Session(id="a", time="09:00", duration=50, subject="Maths", topic="Algebra", type=SessionType.PRACTICE, notes="default"),
            Session(id="br", time="09:50", duration=10, topic="Break", type=SessionType.BREAK),
            Session(id="b", time="10:00", duration=50, subject="Maths", topic="Geometry", type=SessionType.REVISION),
        ]
    }


def test_notes_provider_text_is_applied_to_study_sessions_only() -> None:
    seen: list[str] = []

    def provider(session: Session, day: date) -> str:
        seen.append(session.id)
        return f"  Focus on {session.topic} ({day.isoformat()})  "

    annotated, failures = annotate_notes(_schedule(), provider)
    notes = [s.notes for s in annotated["2025-01-06"]]

    assert failures == []
    assert seen == ["a", "b"]
    assert notes == ["Focus on Algebra (2025-01-06)", "", "Focus on Geometry (2025-01-06)"]


def test_notes_provider_failures_keep_placement_and_default_notes() -> None:
    def provider(session: Session, day: date) -> str:
        if session.id == "a":
            raise RuntimeError("upstream unavailable")
        time.sleep(0.5)
        return "too late"

    annotated, failures = annotate_notes(_schedule(), provider, timeout_seconds=0.05)

    assert [(f["session_id"], f["reason"]) for f in failures] == [("a", "RuntimeError"), ("b", "timeout")]
    assert [(s.id, s.time, s.notes) for s in annotated["2025-01-06"]] == [
        ("a", "09:00", "default"),
        ("br", "09:50", ""),
        ("b", "10:00", ""),
    ]


def test_infeasibility_messages_are_grouped_and_readable() -> None:
    unplaced = [
        UnplacedItem(item_id="homework:h1", kind="homework", subject="Maths", name="W1", remaining_repetitions=1, placed_repetitions=0, reason="deadline_missed"),
        UnplacedItem(item_id="homework:h2", kind="homework", subject="Maths", name="W2", remaining_repetitions=1, placed_repetitions=0, reason="deadline_missed"),
        UnplacedItem(item_id="topic:t1", kind="topic", subject="Maths", name="Algebra", remaining_repetitions=2, placed_repetitions=1, reason="no_capacity"),
    ]
    messages = build_infeasibility_messages(unplaced)

    assert [m["message"] for m in messages] == [
        "2 homework items could not be fit before their deadlines",
        "1 topic did not fit in the available study time",
    ]
    assert messages[0]["code"] == "INFEASIBLE_DEADLINE_MISSED"
    assert messages[0]["item_ids"] == ["homework:h1", "homework:h2"]


def test_classify_utilization_bands() -> None:
    assert classify(60, 120, busy=0.85, overwhelming=1.10)[0] == STATUS_MANAGEABLE
    assert classify(110, 120, busy=0.85, overwhelming=1.10)[0] == STATUS_BUSY
    assert classify(200, 120, busy=0.85, overwhelming=1.10)[0] == STATUS_OVERWHELMING
    assert classify(10, 0, busy=0.85, overwhelming=1.10) == (STATUS_OVERWHELMING, None)
    assert classify(0, 0, busy=0.85, overwhelming=1.10) == (STATUS_MANAGEABLE, None)


def test_reports_wrap_results_and_errors() -> None:
    result = GenerationResult(schedule=_schedule())
    report = build_success_report("generate", result, timetable_id="tt1")
    assert report["status"] == "ok"
    assert report["operation"] == "generate"
    assert report["timetable_id"] == "tt1"
    assert report["result"]["schedule"]["2025-01-06"][1]["type"] == "break"

    error = build_error_report(ConflictError("stale version"))
    assert error["status"] == "error"
    assert error["error"] == {"code": "conflict", "message": "stale version"}

    partial = GenerationResult(
        infeasibility=InfeasibilityReport(
            unplaced=[
                UnplacedItem(item_id="topic:t1", kind="topic", subject="Maths", name="Algebra", remaining_repetitions=1, placed_repetitions=0, reason="no_capacity")
            ]
        )
    )
    infeasible = build_error_report(InfeasibleError(partial))["error"]
    assert infeasible["code"] == "infeasible"
    assert infeasible["infeasibility"]["unplaced"][0]["item_id"] == "topic:t1"


def _study_day(count: int) -> dict[str, list[Session]]:
    sessions = [
        Session(id=f"s{i}", time=f"{9 + i:02d}:00", duration=50, subject="Maths", topic=f"T{i}", type=SessionType.PRACTICE)
        for i in range(count)
    ]
    sessions.append(Session(id="hw", time="18:00", duration=30, subject="Maths", topic="Worksheet", type=SessionType.HOMEWORK, notes="Due 2025-01-08"))
    return {"2025-01-06": sessions}


def test_one_slow_notes_call_does_not_fail_the_rest() -> None:
    calls: list[str] = []

    def provider(session: Session, day: date) -> str:
        calls.append(session.id)
        if session.id == "s0":
            time.sleep(0.5)
        return f"Notes for {session.topic}"

    annotated, failures = annotate_notes(_study_day(4), provider, timeout_seconds=0.1)

    assert failures == [{"session_id": "s0", "reason": "timeout"}]
    assert [s.notes for s in annotated["2025-01-06"]] == [
        "",
        "Notes for T1",
        "Notes for T2",
        "Notes for T3",
        "Due 2025-01-08",
    ]
    assert "hw" not in calls


def test_notes_provider_is_skipped_after_repeated_timeouts() -> None:
    def provider(session: Session, day: date) -> str:
        time.sleep(0.3)
        return "late"

    _, failures = annotate_notes(_study_day(5), provider, timeout_seconds=0.05)

    assert [f["reason"] for f in failures] == ["timeout", "timeout", "timeout", "skipped", "skipped"]
