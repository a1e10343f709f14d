from __future__ import annotations

from datetime import date

from studyplanner import generate_schedule
from studyplanner.models import SessionType

DAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


def _window(start: str = "09:00", end: str = "17:00", **extra) -> dict:
    prefs = {"schema_version": 2, "day_time_slots": [{"day": d, "start_time": start, "end_time": end} for d in DAYS]}
    prefs.update(extra)
    return prefs


def _payload(**overrides) -> dict:
    payload = {
        "subjects": [{"id": "maths", "name": "Maths"}],
        "topics": [{"id": "t1", "subject_id": "maths", "name": "Algebra", "confidence": 5}],
        "preferences": _window(),
        "start_date": "2025-01-06",
        "end_date": "2025-01-12",
        "timetable_mode": "long-term-exam",
    }
    payload.update(overrides)
    return payload


def _study(sessions) -> list:
    return [s for s in sessions if s.type not in (SessionType.BREAK, SessionType.HOMEWORK)]


def test_single_topic_week_is_filled_with_spaced_reviews() -> None:
    result = generate_schedule(_payload())
    placements = [
        (date.fromisoformat(day), s) for day, sessions in sorted(result.schedule.items()) for s in sessions
    ]

    assert sorted(result.schedule) == [f"2025-01-{d:02d}" for d in range(6, 13)]
    assert result.infeasibility.is_feasible
    assert [(day.isoformat(), s.type) for day, s in placements] == [
        ("2025-01-06", SessionType.REVISION),
        ("2025-01-07", SessionType.EXAM_QUESTIONS),
        ("2025-01-12", SessionType.REVISION),
    ]
    assert all(45 <= s.duration <= 60 for _, s in placements)
    assert len({s.id for _, s in placements}) == len(placements)
    assert result.metrics["review_sessions"] == 1
    assert result.metrics["items_by_state"] == {"fully-placed": 1}

    # Every empty day sits inside the long-term revisit interval of the previous placement.
    placed_days = [day for day, _ in placements]
    for day_key, sessions in result.schedule.items():
        if sessions:
            continue
        day = date.fromisoformat(day_key)
        previous = max(d for d in placed_days if d < day)
        assert (day - previous).days < 5


def test_homework_lands_before_its_due_date_with_exact_duration() -> None:
    result = generate_schedule(
        _payload(
            topics=[],
            homework=[{"id": "h1", "title": "Essay", "subject": "maths", "due_date": "2025-01-15", "duration": 60}],
            start_date="2025-01-10",
            end_date="2025-01-20",
        )
    )
    homework = [(day, s) for day, sessions in result.schedule.items() for s in sessions if s.type == SessionType.HOMEWORK]

    assert len(homework) == 1
    day, session = homework[0]
    assert date.fromisoformat(day) <= date(2025, 1, 14)
    assert session.duration == 60
    assert result.schedule["2025-01-15"] == []


def test_test_day_is_empty_and_linked_topic_is_revised_before_it() -> None:
    result = generate_schedule(
        _payload(
            subjects=[{"id": "a", "name": "Subject A"}, {"id": "b", "name": "Subject B"}],
            topics=[
                {"id": "ta", "subject_id": "a", "name": "Topic A", "confidence": 5},
                {"id": "tb", "subject_id": "b", "name": "Topic B", "confidence": 5},
            ],
            test_dates=[{"subject_id": "a", "test_date": "2025-02-01"}],
            start_date="2025-01-27",
            end_date="2025-02-03",
        )
    )

    assert result.schedule["2025-02-01"] == []
    topic_a = [(day, s) for day, sessions in result.schedule.items() for s in sessions if s.topic == "Topic A"]
    topic_b = [(day, s) for day, sessions in result.schedule.items() for s in sessions if s.topic == "Topic B"]
    assert all(day < "2025-02-01" for day, _ in topic_a)
    assert len(topic_a) > len([s for _, s in topic_b if s.type != SessionType.REVISION])
    assert all(s.test_date == date(2025, 2, 1) for _, s in topic_a)
    assert all(s.duration == 60 for _, s in topic_a)


def test_evening_event_splits_the_day() -> None:
    topics = [{"id": f"t{i}", "subject_id": "maths", "name": f"Topic {i}", "confidence": 5} for i in range(12)]
    result = generate_schedule(
        _payload(
            topics=topics,
            preferences=_window("09:00", "23:00"),
            events=[
                {
                    "id": "e1",
                    "title": "Orchestra",
                    "start_time": "2025-03-03T18:00:00",
                    "end_time": "2025-03-03T21:00:00",
                }
            ],
            start_date="2025-03-03",
            end_date="2025-03-03",
        )
    )
    sessions = result.schedule["2025-03-03"]

    assert all(s.end_minute <= 18 * 60 or s.start_minute >= 21 * 60 for s in sessions)
    assert any(s.end_minute <= 18 * 60 for s in _study(sessions))
    after = [s for s in _study(sessions) if s.start_minute >= 21 * 60]
    assert after
    assert all(s.end_minute <= 23 * 60 for s in after)
    assert all(s.topic != "Orchestra" for s in sessions)


def test_fixed_mode_uses_exact_session_and_break_lengths() -> None:
    result = generate_schedule(
        _payload(
            topics=[
                {"id": "t1", "subject_id": "maths", "name": "Algebra", "confidence": 3},
                {"id": "t2", "subject_id": "maths", "name": "Geometry", "confidence": 9},
                {"id": "t3", "subject_id": "maths", "name": "Trigonometry", "focus": True},
            ],
            homework=[{"id": "h1", "title": "Problem set", "subject": "maths", "due_date": "2025-01-09", "duration": 90}],
            preferences=_window(duration_mode="fixed", session_duration=45, break_duration=15),
        )
    )
    sessions = [s for day in result.schedule.values() for s in day]

    assert any(s.type == SessionType.BREAK for s in sessions)
    for session in sessions:
        if session.type == SessionType.BREAK:
            assert session.duration == 15
        elif session.type != SessionType.HOMEWORK:
            assert session.duration == 45
    assert [s.duration for s in sessions if s.type == SessionType.HOMEWORK] == [90]
