from __future__ import annotations

from datetime import date

from studyplanner.engine.policy import break_minutes, replan_minutes, revisit_gap_days, session_minutes
from studyplanner.engine.scoring import compute_priority, priority_features, rank_items
from studyplanner.engine.work_items import build_work_items, split_homework, topic_repetitions
from studyplanner.models import DurationMode, GenerationRequest, Mode, StudyPreferences, TestDate, Topic
from studyplanner.normalization import resolve_effective_config

START = date(2025, 1, 6)


def _request(**overrides) -> GenerationRequest:
    payload = {
        "subjects": [{"id": "maths", "name": "Maths"}, {"id": "bio", "name": "Biology", "mode": "no-exam"}],
        "topics": [
            {"id": "t1", "subject_id": "maths", "name": "Algebra", "confidence": 5},
            {"id": "t2", "subject_id": "maths", "name": "Geometry", "confidence": 3},
            {"id": "t3", "subject_id": "bio", "name": "Cells", "confidence": 9},
        ],
        "homework": [
            {"id": "h1", "title": "Worksheet", "subject": "maths", "due_date": "2025-01-09", "duration": 60},
            {"id": "h2", "title": "Essay", "subject": "Biology", "due_date": "2025-01-10", "duration": 250},
            {"id": "h3", "title": "Old", "subject": "maths", "due_date": "2025-01-08", "completed": True},
        ],
        "start_date": "2025-01-06",
        "end_date": "2025-01-12",
    }
    payload.update(overrides)
    return GenerationRequest.model_validate(payload)


def test_flexible_session_minutes_follow_mode_ranges() -> None:
    prefs = StudyPreferences()
    assert session_minutes(mode=Mode.LONG_TERM_EXAM, preferences=prefs, focus=False, test_linked=False, confidence=5) == (50, 45)
    assert session_minutes(mode=Mode.LONG_TERM_EXAM, preferences=prefs, focus=True, test_linked=False, confidence=5) == (60, 45)
    assert session_minutes(mode=Mode.SHORT_TERM_EXAM, preferences=prefs, focus=False, test_linked=True, confidence=None) == (90, 60)
    assert session_minutes(mode=Mode.NO_EXAM, preferences=prefs, focus=False, test_linked=False, confidence=9) == (20, 20)


def test_fixed_mode_uses_configured_lengths() -> None:
    prefs = StudyPreferences(duration_mode=DurationMode.FIXED, session_duration=30, break_duration=20)
    assert session_minutes(mode=Mode.SHORT_TERM_EXAM, preferences=prefs, focus=True, test_linked=True, confidence=1) == (30, 30)
    assert break_minutes(Mode.SHORT_TERM_EXAM, prefs) == 20
    assert replan_minutes(2, prefs) == 30


def test_flexible_breaks_stay_inside_mode_range() -> None:
    prefs = StudyPreferences()
    assert 5 <= break_minutes(Mode.SHORT_TERM_EXAM, prefs) <= 10
    assert 10 <= break_minutes(Mode.LONG_TERM_EXAM, prefs) <= 15
    assert 15 <= break_minutes(Mode.NO_EXAM, prefs) <= 20


def test_replan_minutes_by_confidence_band() -> None:
    prefs = StudyPreferences()
    assert replan_minutes(3, prefs) == 90
    assert replan_minutes(6, prefs) == 75
    assert replan_minutes(9, prefs) == 60
    assert replan_minutes(None, prefs) == 75


def test_revisit_gap_is_the_mode_minimum() -> None:
    assert revisit_gap_days(Mode.LONG_TERM_EXAM) == 5
    assert revisit_gap_days(Mode.SHORT_TERM_EXAM) == 2
    assert revisit_gap_days(Mode.NO_EXAM) == 7


def test_topic_repetition_rules() -> None:
    near_test = TestDate(subject_id="maths", test_date=date(2025, 1, 15))
    far_test = TestDate(subject_id="maths", test_date=date(2025, 1, 30))
    weak = Topic(id="a", subject_id="maths", name="A", confidence=2, focus=True)
    mid = Topic(id="b", subject_id="maths", name="B", confidence=5)
    ok = Topic(id="c", subject_id="maths", name="C", confidence=7)
    strong = Topic(id="d", subject_id="maths", name="D", confidence=9)

    assert topic_repetitions(weak, near_test, START) == 6
    assert topic_repetitions(weak, None, START) == 5
    assert topic_repetitions(mid, None, START) == 2
    assert topic_repetitions(mid, near_test, START) == 6
    assert topic_repetitions(ok, far_test, START) == 2
    assert topic_repetitions(strong, None, START) == 1


def test_difficulties_text_marks_a_topic_as_focus() -> None:
    topic = Topic(id="a", subject_id="maths", name="A", difficulties="keeps mixing up signs")
    assert topic.is_focus
    assert not Topic(id="b", subject_id="maths", name="B", difficulties="   ").is_focus


def test_split_homework_into_near_equal_pieces() -> None:
    assert split_homework(60) == [60]
    assert split_homework(120) == [120]
    assert split_homework(300) == [100, 100, 100]
    assert split_homework(250) == [84, 83, 83]


def test_build_work_items_orders_topics_then_open_homework() -> None:
    request = _request()
    items = build_work_items(request, resolve_effective_config({}))

    assert [item.item_id for item in items] == [
        "topic:t1",
        "topic:t2",
        "topic:t3",
        "homework:h1",
        "homework:h2",
    ]
    essay = items[-1]
    assert essay.piece_minutes == [84, 83, 83]
    assert essay.repetitions == 3
    assert essay.subject_name == "Biology"
    assert essay.mode == Mode.NO_EXAM
    assert items[2].mode == Mode.NO_EXAM
    assert items[0].mode == Mode.LONG_TERM_EXAM
    assert items[1].focus is False
    assert items[1].repetitions == 4


def test_work_item_state_follows_placements_and_deadline() -> None:
    items = {item.item_id: item for item in build_work_items(_request(), resolve_effective_config({}))}
    essay = items["homework:h2"]

    assert essay.state(date(2025, 1, 6)) == "pending"
    essay.placed = 1
    assert essay.state(date(2025, 1, 9)) == "partially-placed"
    assert essay.state(date(2025, 1, 10)) == "deadline-missed"
    essay.placed = 3
    assert essay.state(date(2025, 1, 10)) == "fully-placed"
    assert items["topic:t1"].state(date(2030, 1, 1)) == "pending"


def test_priority_prefers_near_deadlines_and_breaks_ties_by_input_order() -> None:
    request = _request()
    items = build_work_items(request, resolve_effective_config({}))
    ranked = rank_items(items, START)
    assert ranked[0][1].item_id == "homework:h1"

    twins = build_work_items(
        _request(
            topics=[
                {"id": "x", "subject_id": "maths", "name": "X", "confidence": 5},
                {"id": "y", "subject_id": "maths", "name": "Y", "confidence": 5},
            ],
            homework=[],
        ),
        resolve_effective_config({}),
    )
    assert [item.item_id for _, item in rank_items(twins, START)] == ["topic:x", "topic:y"]


def test_test_proximity_raises_priority() -> None:
    request = _request(test_dates=[{"subject_id": "maths", "test_date": "2025-01-08"}], homework=[])
    items = {item.item_id: item for item in build_work_items(request, resolve_effective_config({}))}
    linked = priority_features(items["topic:t1"], START)
    assert linked["test_proximity"] > 0.9
    assert compute_priority(linked) > compute_priority(priority_features(items["topic:t3"], START))
