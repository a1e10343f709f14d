"""Mode policy table: duration ranges, breaks, revisit spacing and intensity."""

from __future__ import annotations

from dataclasses import dataclass

from studyplanner.models import DurationMode, Mode, SessionType, StudyPreferences


@dataclass(frozen=True, slots=True)
class ModePolicy:
    study_minutes: tuple[int, int]
    break_minutes: tuple[int, int]
    revisit_days: tuple[int, int]
    intensity: float

    def break_length(self) -> int:
        low, high = self.break_minutes
        return _round5((low + high) / 2)


MODE_POLICIES: dict[Mode, ModePolicy] = {
    Mode.SHORT_TERM_EXAM: ModePolicy(study_minutes=(60, 90), break_minutes=(5, 10), revisit_days=(2, 3), intensity=1.0),
    Mode.LONG_TERM_EXAM: ModePolicy(study_minutes=(45, 60), break_minutes=(10, 15), revisit_days=(5, 7), intensity=0.6),
    Mode.NO_EXAM: ModePolicy(study_minutes=(20, 45), break_minutes=(15, 20), revisit_days=(7, 10), intensity=0.3),
}

# Replanned topics (single day, flexible mode) size by confidence instead of mode.
REPLAN_MINUTES_BY_CONFIDENCE: tuple[tuple[int, int], ...] = ((4, 90), (7, 75), (10, 60))


def _round5(value: float) -> int:
    return int(5 * round(value / 5))


def policy_for(mode: Mode) -> ModePolicy:
    return MODE_POLICIES[mode]


def session_minutes(
    *,
    mode: Mode,
    preferences: StudyPreferences,
    focus: bool,
    test_linked: bool,
    confidence: int | None,
) -> tuple[int, int]:
    """Return (preferred, minimum) minutes for a non-homework session.

    Fixed mode always uses the configured session length. Flexible mode sizes from
    the mode range: top for focus or test-linked work, bottom for confident topics,
    midpoint otherwise. A flexible session may shrink to the bottom of the range.
    """
    if preferences.duration_mode == DurationMode.FIXED:
        return preferences.session_duration, preferences.session_duration
    low, high = policy_for(mode).study_minutes
    if focus or test_linked:
        return high, low
    if confidence is not None and confidence >= 8:
        return low, low
    return _round5((low + high) / 2), low


def break_minutes(timetable_mode: Mode, preferences: StudyPreferences) -> int:
    if preferences.duration_mode == DurationMode.FIXED:
        return preferences.break_duration
    return policy_for(timetable_mode).break_length()


def replan_minutes(confidence: int | None, preferences: StudyPreferences) -> int:
    if preferences.duration_mode == DurationMode.FIXED:
        return preferences.session_duration
    level = confidence if confidence is not None else 5
    for upper, minutes in REPLAN_MINUTES_BY_CONFIDENCE:
        if level <= upper:
            return minutes
    return REPLAN_MINUTES_BY_CONFIDENCE[-1][1]


def revisit_gap_days(mode: Mode) -> int:
    """Minimum whole days between two placements of the same topic."""
    return policy_for(mode).revisit_days[0]


def is_study_type(session_type: SessionType) -> bool:
    return session_type not in {SessionType.BREAK, SessionType.HOMEWORK}
